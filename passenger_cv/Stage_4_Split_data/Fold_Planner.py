#!/usr/bin/env python3
from __future__ import annotations
import hashlib
import logging
from dataclasses import dataclass
from typing import Iterator, Tuple

import numpy as np
import pandas as pd
from sklearn.model_selection import PredefinedSplit

from passenger_cv.config import N_FOLDS, SEED
from passenger_cv.Stage_3_Feature_Engineering.Feature_Sanitizer import ModelingFrame

log = logging.getLogger("passenger_cv.stage4")


@dataclass(frozen=True, eq=False)
class FoldAssignment:
    """row_id → fold label in 0..k-1, shared read-only by every model."""
    labels: pd.Series
    k: int
    seed: int

    def test_fold(self, index: pd.Index) -> np.ndarray:
        """Fold labels aligned to `index` (row_ids); unknown ids raise KeyError."""
        missing = index.difference(self.labels.index)
        if len(missing):
            raise KeyError(f"{len(missing)} row_id(s) have no fold label, e.g. {list(missing[:5])}")
        return self.labels.loc[index].to_numpy(dtype=int)

    def cv(self, index: pd.Index) -> PredefinedSplit:
        return PredefinedSplit(test_fold=self.test_fold(index))

    def splits(self, index: pd.Index) -> Iterator[Tuple[np.ndarray, np.ndarray]]:
        """Positional (train, test) index pairs, fold 0 first."""
        yield from self.cv(index).split()

    def fold_sizes(self) -> np.ndarray:
        return np.bincount(self.labels.to_numpy(dtype=int), minlength=self.k)

    def checksum(self) -> str:
        payload = pd.util.hash_pandas_object(self.labels, index=True).to_numpy().tobytes()
        return hashlib.sha256(payload).hexdigest()[:12]


class FoldPlanner:
    """
    One seeded k-way partition for the whole comparison.

    Rows of each outcome class are shuffled with `default_rng(seed)` and
    dealt round-robin into the folds, continuing the deal from one class to
    the next. Every fold therefore gets n // k or n // k + 1 rows, and each
    class is spread as evenly as it can be.
    """

    def __init__(self, k: int = N_FOLDS, seed: int = SEED):
        self.k = k
        self.seed = seed

    def plan(self, frame: ModelingFrame) -> FoldAssignment:
        return self.plan_labels(frame.y)

    def plan_labels(self, y: pd.Series) -> FoldAssignment:
        n = len(y)
        if self.k < 2:
            raise ValueError(f"k must be at least 2, got {self.k}")
        if self.k > n:
            raise ValueError(f"k={self.k} exceeds the number of rows ({n})")
        if not y.index.is_unique:
            raise ValueError("Row identifiers must be unique to assign folds.")

        rng = np.random.default_rng(self.seed)
        order = []
        for cls in sorted(pd.unique(y)):
            members = y.index[(y == cls).to_numpy()].to_numpy()
            order.append(members[rng.permutation(len(members))])
        dealt = np.concatenate(order)

        labels = pd.Series(np.arange(n) % self.k, index=pd.Index(dealt, name=y.index.name),
                           name="fold")
        labels = labels.loc[y.index]
        folds = FoldAssignment(labels=labels, k=self.k, seed=self.seed)
        log.info(f"Planned {self.k} folds over {n} rows (seed={self.seed}): "
                 f"sizes={folds.fold_sizes().tolist()}, checksum={folds.checksum()}")
        return folds
