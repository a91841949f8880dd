import numpy as np
import pandas as pd
from sklearn.base import BaseEstimator, ClassifierMixin
from sklearn.utils.validation import check_is_fitted


class MajorityRuleClassifier(ClassifierMixin, BaseEstimator):
    """
    Constant-rule baseline: predict the majority outcome observed for each
    level of a single categorical column (e.g. "sex"). Levels unseen during
    fit fall back to the overall majority class. Needs a DataFrame input.
    """

    def __init__(self, feature: str = "sex"):
        self.feature = feature

    def _column(self, X) -> pd.Series:
        if not isinstance(X, pd.DataFrame):
            raise TypeError("MajorityRuleClassifier needs a pandas DataFrame input.")
        if self.feature not in X.columns:
            raise ValueError(f"Baseline feature '{self.feature}' is not among the predictors.")
        return X[self.feature].astype(str)

    def fit(self, X, y):
        col = self._column(X)
        y = np.asarray(y)
        self.classes_ = np.unique(y)
        self.n_features_in_ = X.shape[1]
        self.feature_names_in_ = np.asarray(X.columns, dtype=object)

        def proba_of(labels: np.ndarray) -> np.ndarray:
            counts = np.array([(labels == c).sum() for c in self.classes_], dtype=float)
            return counts / counts.sum()

        self.default_proba_ = proba_of(y)
        self.level_proba_ = {
            level: proba_of(y[(col == level).to_numpy()])
            for level in sorted(col.unique())
        }
        # argmax picks the first (smallest) class on ties
        self.rule_ = {level: self.classes_[np.argmax(p)] for level, p in self.level_proba_.items()}
        return self

    def predict_proba(self, X) -> np.ndarray:
        check_is_fitted(self, "level_proba_")
        col = self._column(X)
        return np.vstack([self.level_proba_.get(level, self.default_proba_) for level in col])

    def predict(self, X) -> np.ndarray:
        return self.classes_[np.argmax(self.predict_proba(X), axis=1)]
