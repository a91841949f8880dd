"""
Stage 7: Interpretation of the selected model

  • fit_final               – the chosen family + params fitted on all rows
                              (reuses the trainer's full-data refit if present)
  • permutation_importance  – mean accuracy drop after shuffling a predictor
  • partial_dependence      – averaged P(outcome = 1) over a 1-D / 2-D sweep;
                              numeric sweeps never leave the percentile band,
                              categorical sweeps cover every level
"""
from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from sklearn.inspection import permutation_importance as sk_permutation_importance

from passenger_cv.config import (
    PD_GRID_RESOLUTION, PD_PERCENTILES, PERMUTATION_REPEATS, SEED,
)
from passenger_cv.Stage_3_Feature_Engineering.Feature_Sanitizer import ModelingFrame
from passenger_cv.Stage_5_Training.Model_Trainer import TrainedModel, _fit_quietly, build_estimator
from passenger_cv.Stage_5_Training.model_families import get_family

log = logging.getLogger("passenger_cv.stage7")

Feature = Union[str, Tuple[str, str]]


@dataclass(frozen=True)
class PartialDependencePoint:
    values: Tuple[Any, ...]
    mean_predicted_probability: float


class ImportanceAnalyzer:
    def __init__(self, seed: int = SEED, n_repeats: int = PERMUTATION_REPEATS,
                 percentiles: Tuple[float, float] = PD_PERCENTILES,
                 grid_resolution: int = PD_GRID_RESOLUTION, n_jobs: Optional[int] = None):
        self.seed = seed
        self.n_repeats = n_repeats
        self.percentiles = percentiles
        self.grid_resolution = grid_resolution
        self.n_jobs = n_jobs
        self.frame: Optional[ModelingFrame] = None
        self.model_: Any = None
        self.family_: Optional[str] = None
        self.importance_std_: Optional[pd.Series] = None

    def fit_final(self, frame: ModelingFrame, trained: TrainedModel) -> "ImportanceAnalyzer":
        """`trained.family` with its selected params, fitted on every row."""
        if trained.estimator is not None:
            self.model_ = trained.estimator
            log.info(f"Final model '{trained.family}': reusing full-data refit {trained.params}")
        else:
            family = get_family(trained.family)
            self.model_ = _fit_quietly(
                build_estimator(family, trained.params, frame, self.seed), frame.X, frame.y)
            log.info(f"Final model '{trained.family}' refit on {len(frame)} rows with {trained.params}")
        self.frame = frame
        self.family_ = trained.family
        return self

    def _require_fit(self):
        if self.model_ is None or self.frame is None:
            raise RuntimeError("Call fit_final() before computing importance or partial dependence.")

    def permutation_importance(self, n_repeats: Optional[int] = None) -> pd.Series:
        """Predictor → mean accuracy decrease (clipped at 0), highest first."""
        self._require_fit()
        X, y = self.frame.X, self.frame.y
        result = sk_permutation_importance(
            self.model_, X, y, scoring="accuracy",
            n_repeats=n_repeats or self.n_repeats,
            random_state=self.seed, n_jobs=self.n_jobs)
        scores = pd.Series(np.clip(result.importances_mean, 0.0, None),
                           index=X.columns, name="importance")
        # stable ordering: score desc, then column order
        order = sorted(range(len(scores)), key=lambda i: (-scores.iloc[i], i))
        scores = scores.iloc[order]
        self.importance_std_ = pd.Series(result.importances_std, index=X.columns,
                                         name="importance_std").loc[scores.index]
        log.info("Permutation importance (top 5): "
                 + ", ".join(f"{k}={v:.4f}" for k, v in scores.head(5).items()))
        return scores

    def sweep_values(self, feature: str, grid_resolution: Optional[int] = None) -> np.ndarray:
        """
        Values a partial-dependence sweep visits for one predictor.

        Categorical: every level. Numeric: the observed values inside the
        percentile band, or an evenly spaced grid over the band when there
        are more than `grid_resolution` of them.
        """
        self._require_fit()
        x = self.frame.data[feature]
        if feature in self.frame.categorical_columns:
            return np.array(sorted(x.unique()), dtype=object)

        resolution = grid_resolution or self.grid_resolution
        values = x.to_numpy(dtype=float)
        lo, hi = np.percentile(values, [100.0 * p for p in self.percentiles])
        inside = np.unique(values[(values >= lo) & (values <= hi)])
        if len(inside) <= resolution:
            return inside
        return np.linspace(lo, hi, resolution)

    def partial_dependence(self, feature: Feature,
                           grid_resolution: Optional[int] = None) -> List[PartialDependencePoint]:
        """Averaged positive-class probability over a sweep of one feature or a pair."""
        self._require_fit()
        features: Sequence[str] = (feature,) if isinstance(feature, str) else tuple(feature)
        if not 1 <= len(features) <= 2:
            raise ValueError("Partial dependence takes one feature or a pair of features.")
        unknown = [f for f in features if f not in self.frame.predictors]
        if unknown:
            raise KeyError(f"Unknown predictor(s): {unknown}")

        grids = [self.sweep_values(f, grid_resolution) for f in features]
        X = self.frame.X
        positive = list(self.model_.classes_).index(1)

        points = []
        for combo in itertools.product(*grids):
            X_mod = X.copy()
            for f, v in zip(features, combo):
                X_mod[f] = v
            proba = self.model_.predict_proba(X_mod)[:, positive]
            points.append(PartialDependencePoint(
                values=tuple(_to_python(v) for v in combo),
                mean_predicted_probability=float(np.mean(proba)),
            ))
        log.info(f"Partial dependence over {features}: {len(points)} points")
        return points


def _to_python(value):
    return value.item() if isinstance(value, np.generic) else value
