#!/usr/bin/env python3
"""
Stage 5: Cross-validated training over a hyper-parameter grid.

  • Every (grid point × fold) fit is independent → joblib, process backend.
  • All families read the same ModelingFrame and FoldAssignment.
  • A grid point that raises (or hits a ConvergenceWarning) on any fold is
    recorded as a FitFailure and excluded; if the whole grid fails the family
    raises FamilyFitError.
  • Selection = highest mean held-out accuracy; ties → earliest grid point.
"""
from __future__ import annotations
import logging
import warnings
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from sklearn.compose import ColumnTransformer
from sklearn.exceptions import ConvergenceWarning
from sklearn.metrics import accuracy_score
from sklearn.model_selection import ParameterGrid
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import OneHotEncoder, StandardScaler

from passenger_cv.config import SEED
from passenger_cv.exceptions import AllFamiliesFailedError, FamilyFitError, FitFailure
from passenger_cv.Stage_3_Feature_Engineering.Feature_Sanitizer import ModelingFrame
from passenger_cv.Stage_4_Split_data.Fold_Planner import FoldAssignment
from passenger_cv.Stage_5_Training.model_families import ModelFamily, get_family
from passenger_cv.utils.perfkit import ParallelMixin, peak_rss_mb, perfclass

log = logging.getLogger("passenger_cv.stage5")

Grid = Union[Dict[str, List[Any]], List[Dict[str, List[Any]]]]


@dataclass
class GridPointResult:
    params: Dict[str, Any]
    fold_accuracy: np.ndarray
    failed: bool = False

    @property
    def mean_accuracy(self) -> float:
        return float("nan") if self.failed else float(np.mean(self.fold_accuracy))


@dataclass
class TrainedModel:
    """A fitted family: selected params, per-fold accuracy, full grid table."""
    family: str
    params: Dict[str, Any]
    fold_accuracy: np.ndarray
    grid_results: List[GridPointResult] = field(default_factory=list)
    failures: List[FitFailure] = field(default_factory=list)
    estimator: Any = None

    @property
    def mean_accuracy(self) -> float:
        return float(np.mean(self.fold_accuracy))

    def grid_table(self) -> pd.DataFrame:
        rows = []
        for i, g in enumerate(self.grid_results):
            row = {"grid_point": i, **g.params, "mean_accuracy": g.mean_accuracy,
                   "failed": g.failed}
            row.update({f"fold_{k}": a for k, a in enumerate(g.fold_accuracy)})
            rows.append(row)
        return pd.DataFrame(rows)


def build_estimator(family: ModelFamily, params: Dict[str, Any], frame: ModelingFrame,
                    seed: int = SEED):
    """Preprocessing + estimator pipeline for one grid point."""
    model = family.build(params, seed)
    if not family.preprocess:
        return Pipeline([("model", model)])
    prep = ColumnTransformer(
        [
            ("num", StandardScaler(), list(frame.numeric_columns)),
            ("cat", OneHotEncoder(handle_unknown="ignore", sparse_output=False),
             list(frame.categorical_columns)),
        ],
        remainder="drop",
    )
    return Pipeline([("prep", prep), ("model", model)])


def _fit_quietly(estimator, X: pd.DataFrame, y: pd.Series):
    with warnings.catch_warnings():
        warnings.simplefilter("error", category=ConvergenceWarning)
        return estimator.fit(X, y)


def _fit_and_score(task: Tuple) -> Tuple[int, int, Optional[float], Optional[str]]:
    """One (grid point, fold) fit; returns (grid_idx, fold, accuracy, error)."""
    grid_idx, fold, family, params, frame, seed, train_idx, test_idx = task
    X, y = frame.X, frame.y
    try:
        est = _fit_quietly(build_estimator(family, params, frame, seed),
                           X.iloc[train_idx], y.iloc[train_idx])
        acc = accuracy_score(y.iloc[test_idx], est.predict(X.iloc[test_idx]))
    except Exception as e:  # recorded as FitFailure by the caller
        return grid_idx, fold, None, f"{type(e).__name__}: {e}"
    return grid_idx, fold, float(acc), None


def select_best(results: Sequence[GridPointResult]) -> int:
    """Index of the best non-failed grid point; ties → earliest index."""
    best_idx, best_score = -1, -np.inf
    for i, g in enumerate(results):
        if g.failed:
            continue
        if g.mean_accuracy > best_score + 1e-12:
            best_idx, best_score = i, g.mean_accuracy
    return best_idx


@perfclass()
class ModelTrainer(ParallelMixin):
    """
    Uniform training contract for every model family:

        ModelTrainer("ridge", seed=42).train(frame, folds, grid) -> TrainedModel
    """

    def __init__(self, family: Union[str, ModelFamily], seed: int = SEED,
                 n_jobs: Union[int, float, None] = None, refit: bool = True):
        super().__init__(n_jobs=n_jobs)
        self.family = get_family(family) if isinstance(family, str) else family
        self.seed = seed
        self.refit = refit

    def train(self, frame: ModelingFrame, folds: FoldAssignment,
              grid: Optional[Grid] = None) -> TrainedModel:
        name = self.family.name
        points = list(ParameterGrid(self.family.grid if grid is None else grid))
        splits = list(folds.splits(frame.data.index))
        log.info(f"[{name}] {len(points)} grid point(s) × {len(splits)} folds")

        tasks = [
            (gi, fold, self.family, params, frame, self.seed, tr, te)
            for gi, params in enumerate(points)
            for fold, (tr, te) in enumerate(splits)
        ]
        outcomes = self.parallel_map(_fit_and_score, tasks)

        acc = np.full((len(points), len(splits)), np.nan)
        failures: List[FitFailure] = []
        for gi, fold, score, err in outcomes:
            if err is not None:
                failures.append(FitFailure(name, dict(points[gi]), fold, err))
                log.warning(f"[{name}] params={points[gi]} fold={fold} failed: {err}")
            else:
                acc[gi, fold] = score

        results = [
            GridPointResult(dict(p), acc[gi].copy(), failed=bool(np.isnan(acc[gi]).any()))
            for gi, p in enumerate(points)
        ]
        best = select_best(results)
        if best < 0:
            raise FamilyFitError(name, failures)

        chosen = results[best]
        log.info(f"[{name}] selected {chosen.params} "
                 f"(mean accuracy {chosen.mean_accuracy:.4f}; "
                 f"{sum(r.failed for r in results)} grid point(s) excluded)")

        estimator = None
        if self.refit:
            try:
                estimator = _fit_quietly(
                    build_estimator(self.family, chosen.params, frame, self.seed),
                    frame.X, frame.y)
            except Exception as e:
                failures.append(FitFailure(name, dict(chosen.params), None,
                                           f"{type(e).__name__}: {e}"))
                raise FamilyFitError(name, failures) from e

        return TrainedModel(
            family=name,
            params=dict(chosen.params),
            fold_accuracy=chosen.fold_accuracy.copy(),
            grid_results=results,
            failures=failures,
            estimator=estimator,
        )


def train_families(frame: ModelingFrame, folds: FoldAssignment,
                   families: Sequence[str],
                   grids: Optional[Dict[str, Grid]] = None,
                   seed: int = SEED,
                   n_jobs: Union[int, float, None] = None,
                   ) -> Tuple[Dict[str, TrainedModel], Dict[str, Exception]]:
    """
    Train each family on the shared folds. A family whose whole grid fails
    is recorded in the second dict; if every family fails,
    AllFamiliesFailedError is raised.
    """
    grids = grids or {}
    trained: Dict[str, TrainedModel] = {}
    errors: Dict[str, Exception] = {}
    for name in families:
        trainer = ModelTrainer(name, seed=seed, n_jobs=n_jobs)
        try:
            trained[name] = trainer.train(frame, folds, grids.get(name))
        except FamilyFitError as e:
            log.error(f"[{name}] family failed: {e}")
            errors[name] = e
        else:
            log.info(f"[{name}] perf: {trainer.perf_report()}")
    log.info(f"Training done: {len(trained)} family(ies), peak RSS {peak_rss_mb():.1f} MB")
    if not trained:
        raise AllFamiliesFailedError(errors)
    return trained, errors
