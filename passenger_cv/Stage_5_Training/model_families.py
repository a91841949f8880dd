"""
Model-family dispatch table.

Every family is one ModelFamily record: a builder `(params, seed) -> estimator`
plus its default hyper-parameter grid. Grid values are listed simplest model
first, so the earliest grid point (ParameterGrid order) is the simplest one
and wins accuracy ties.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List

from sklearn.base import BaseEstimator
from sklearn.discriminant_analysis import LinearDiscriminantAnalysis
from sklearn.ensemble import GradientBoostingClassifier, RandomForestClassifier
from sklearn.linear_model import LogisticRegression
from sklearn.neighbors import KNeighborsClassifier
from sklearn.tree import DecisionTreeClassifier

from passenger_cv.Stage_5_Training.baseline import MajorityRuleClassifier
from passenger_cv.Stage_5_Training.ctree import ConditionalInferenceTreeClassifier

# regularisation strength, strongest (simplest) first; C = 1 / lambda
LAMBDA_GRID: List[float] = [1.0, 0.1, 0.01, 0.001, 0.0001]


@dataclass(frozen=True)
class ModelFamily:
    name: str
    description: str
    build: Callable[[Dict[str, Any], int], BaseEstimator]
    grid: Dict[str, List[Any]] = field(default_factory=dict)
    # centre/scale numerics + one-hot categoricals before the estimator
    preprocess: bool = True


def _baseline(p, seed):
    return MajorityRuleClassifier(feature=p["feature"])


def _logistic(p, seed):
    return LogisticRegression(penalty=None, max_iter=1000)


def _lasso(p, seed):
    return LogisticRegression(penalty="l1", C=1.0 / p["lambda"], solver="liblinear",
                              max_iter=1000, random_state=seed)


def _ridge(p, seed):
    return LogisticRegression(penalty="l2", C=1.0 / p["lambda"], solver="liblinear",
                              max_iter=1000, random_state=seed)


def _elastic_net(p, seed):
    return LogisticRegression(penalty="elasticnet", l1_ratio=p["l1_ratio"],
                              C=1.0 / p["lambda"], solver="saga",
                              max_iter=5000, random_state=seed)


def _lda(p, seed):
    return LinearDiscriminantAnalysis()


def _knn(p, seed):
    return KNeighborsClassifier(n_neighbors=p["n_neighbors"])


def _cart(p, seed):
    return DecisionTreeClassifier(ccp_alpha=p["ccp_alpha"], random_state=seed)


def _ctree(p, seed):
    return ConditionalInferenceTreeClassifier(mincriterion=p["mincriterion"])


def _random_forest(p, seed):
    return RandomForestClassifier(n_estimators=300, max_features=p["max_features"],
                                  min_samples_leaf=p["min_samples_leaf"],
                                  random_state=seed, n_jobs=1)


def _gbm(p, seed):
    return GradientBoostingClassifier(n_estimators=p["n_estimators"], max_depth=p["max_depth"],
                                      learning_rate=p["learning_rate"], random_state=seed)


FAMILIES: Dict[str, ModelFamily] = {f.name: f for f in [
    ModelFamily("baseline", "majority outcome per level of one categorical",
                _baseline, {"feature": ["sex"]}, preprocess=False),
    ModelFamily("logistic", "unpenalised logistic regression", _logistic),
    ModelFamily("lasso", "L1-penalised logistic regression", _lasso,
                {"lambda": LAMBDA_GRID}),
    ModelFamily("ridge", "L2-penalised logistic regression", _ridge,
                {"lambda": LAMBDA_GRID}),
    ModelFamily("elastic_net", "elastic-net logistic regression", _elastic_net,
                {"l1_ratio": [0.25, 0.5, 0.75], "lambda": LAMBDA_GRID}),
    ModelFamily("lda", "linear discriminant analysis", _lda),
    ModelFamily("knn", "k-nearest neighbours", _knn,
                {"n_neighbors": [25, 21, 17, 13, 9, 5]}),
    ModelFamily("cart", "cost-complexity pruned decision tree", _cart,
                {"ccp_alpha": [0.05, 0.02, 0.01, 0.005, 0.001, 0.0]}),
    ModelFamily("ctree", "conditional-inference tree", _ctree,
                {"mincriterion": [0.99, 0.95, 0.90]}),
    ModelFamily("random_forest", "random forest", _random_forest,
                {"max_features": [2, 4, 6, 8], "min_samples_leaf": [10, 5, 1]}),
    ModelFamily("gbm", "gradient-boosted trees", _gbm,
                {"learning_rate": [0.01, 0.1], "max_depth": [1, 2, 3],
                 "n_estimators": [50, 100, 150]}),
]}


def get_family(name: str) -> ModelFamily:
    try:
        return FAMILIES[name]
    except KeyError:
        raise ValueError(
            f"Unknown model family '{name}'. Available: {sorted(FAMILIES)}") from None
