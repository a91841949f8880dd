"""
Conditional-inference classification tree.

Unlike CART, variable selection and stopping are driven by association
tests rather than impurity:

  1) at each node, test every predictor against the class label
     (asymptotic chi-square test of the between-class share of the
     predictor's variance, df = n_classes - 1);
  2) Bonferroni-adjust the p-values over the predictors tested;
  3) stop unless 1 - min(adjusted p) exceeds `mincriterion`;
  4) split the selected predictor at the threshold that maximises the
     chi-square statistic of the (left/right × class) table, subject to
     `min_samples_leaf`.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

import numpy as np
from scipy import stats
from sklearn.base import BaseEstimator, ClassifierMixin
from sklearn.utils.validation import check_is_fitted


@dataclass
class _Node:
    value: np.ndarray
    feature: int = -1
    threshold: float = np.nan
    left: int = -1
    right: int = -1
    p_value: float = np.nan

    @property
    def is_leaf(self) -> bool:
        return self.feature < 0


def association_p_value(x: np.ndarray, y_enc: np.ndarray, n_classes: int) -> float:
    """p-value of H0: x independent of the class, via (n-1)·η² ~ χ²(K-1)."""
    n = len(x)
    total_ss = float(np.sum((x - x.mean()) ** 2))
    if total_ss <= 0.0 or n < 2:
        return 1.0
    between = 0.0
    for k in range(n_classes):
        xk = x[y_enc == k]
        if len(xk):
            between += len(xk) * (xk.mean() - x.mean()) ** 2
    statistic = (n - 1) * between / total_ss
    return float(stats.chi2.sf(statistic, df=max(n_classes - 1, 1)))


def best_split(x: np.ndarray, y_enc: np.ndarray, n_classes: int, min_leaf: int) -> Optional[float]:
    """Threshold maximising the split chi-square, or None if no admissible cut."""
    order = np.argsort(x, kind="mergesort")
    xs, ys = x[order], y_enc[order]
    n = len(xs)
    onehot = np.zeros((n, n_classes))
    onehot[np.arange(n), ys] = 1.0
    left = np.cumsum(onehot, axis=0)[:-1]          # class counts left of cut i+1
    total = onehot.sum(axis=0)
    right = total - left
    n_left = np.arange(1, n)
    n_right = n - n_left

    admissible = (xs[1:] > xs[:-1]) & (n_left >= min_leaf) & (n_right >= min_leaf)
    if not admissible.any():
        return None

    col = total / n
    with np.errstate(divide="ignore", invalid="ignore"):
        exp_left = n_left[:, None] * col
        exp_right = n_right[:, None] * col
        chi = np.nansum((left - exp_left) ** 2 / exp_left, axis=1) + \
            np.nansum((right - exp_right) ** 2 / exp_right, axis=1)
    chi[~admissible] = -np.inf
    i = int(np.argmax(chi))
    return float((xs[i] + xs[i + 1]) / 2.0)


class ConditionalInferenceTreeClassifier(ClassifierMixin, BaseEstimator):
    def __init__(self, mincriterion: float = 0.95, min_samples_split: int = 20,
                 min_samples_leaf: int = 7, max_depth: Optional[int] = None):
        self.mincriterion = mincriterion
        self.min_samples_split = min_samples_split
        self.min_samples_leaf = min_samples_leaf
        self.max_depth = max_depth

    def fit(self, X, y):
        X = np.asarray(X, dtype=float)
        y = np.asarray(y)
        if X.ndim != 2 or len(X) != len(y):
            raise ValueError("X must be 2-D with one row per label.")
        if not 0.0 < self.mincriterion < 1.0:
            raise ValueError(f"mincriterion must lie in (0, 1), got {self.mincriterion}")
        self.classes_, y_enc = np.unique(y, return_inverse=True)
        self.n_features_in_ = X.shape[1]
        self.nodes_: List[_Node] = []
        self._grow(X, y_enc, np.arange(len(y)), depth=0)
        return self

    def _leaf_value(self, y_enc: np.ndarray) -> np.ndarray:
        counts = np.bincount(y_enc, minlength=len(self.classes_)).astype(float)
        return counts / counts.sum()

    def _grow(self, X: np.ndarray, y_enc: np.ndarray, idx: np.ndarray, depth: int) -> int:
        node_id = len(self.nodes_)
        node = _Node(value=self._leaf_value(y_enc[idx]))
        self.nodes_.append(node)

        n_classes = len(self.classes_)
        if (len(idx) < self.min_samples_split
                or (self.max_depth is not None and depth >= self.max_depth)
                or np.count_nonzero(node.value) <= 1):
            return node_id

        Xn, yn = X[idx], y_enc[idx]
        p_values = np.array([association_p_value(Xn[:, j], yn, n_classes)
                             for j in range(X.shape[1])])
        n_tested = int(np.sum(np.ptp(Xn, axis=0) > 0))
        if n_tested == 0:
            return node_id
        adjusted = np.minimum(p_values * n_tested, 1.0)
        j = int(np.argmin(adjusted))
        if 1.0 - adjusted[j] <= self.mincriterion:
            return node_id

        threshold = best_split(Xn[:, j], yn, n_classes, self.min_samples_leaf)
        if threshold is None:
            return node_id

        go_left = Xn[:, j] <= threshold
        node.feature, node.threshold, node.p_value = j, threshold, float(adjusted[j])
        node.left = self._grow(X, y_enc, idx[go_left], depth + 1)
        node.right = self._grow(X, y_enc, idx[~go_left], depth + 1)
        return node_id

    def predict_proba(self, X) -> np.ndarray:
        check_is_fitted(self, "nodes_")
        X = np.asarray(X, dtype=float)
        out = np.empty((len(X), len(self.classes_)))
        stack = [(0, np.arange(len(X)))]
        while stack:
            node_id, rows = stack.pop()
            node = self.nodes_[node_id]
            if node.is_leaf or len(rows) == 0:
                out[rows] = node.value
                continue
            go_left = X[rows, node.feature] <= node.threshold
            stack.append((node.left, rows[go_left]))
            stack.append((node.right, rows[~go_left]))
        return out

    def predict(self, X) -> np.ndarray:
        return self.classes_[np.argmax(self.predict_proba(X), axis=1)]

    @property
    def n_leaves_(self) -> int:
        check_is_fitted(self, "nodes_")
        return sum(node.is_leaf for node in self.nodes_)

    def get_depth(self) -> int:
        check_is_fitted(self, "nodes_")
        depth = {0: 0}
        for i, node in enumerate(self.nodes_):
            if not node.is_leaf:
                depth[node.left] = depth[node.right] = depth[i] + 1
        return max(depth.values())
