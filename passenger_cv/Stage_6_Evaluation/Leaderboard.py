from __future__ import annotations
import json
import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple, Union

import numpy as np
import pandas as pd
from scipy import stats

from passenger_cv.config import ALPHA, BASELINE_FAMILY

log = logging.getLogger("passenger_cv.stage6")


@dataclass(frozen=True)
class LeaderboardEntry:
    model_name: str
    mean_accuracy: float
    std_accuracy: float
    min: float
    q1: float
    median: float
    q3: float
    max: float


@dataclass(frozen=True)
class PairedComparison:
    """Top model vs baseline on fold-aligned accuracies."""
    model_name: str
    baseline_name: str
    mean_difference: float
    t_statistic: float
    p_value: float
    naive_p_value: float
    alpha: float
    significant: bool


@dataclass(frozen=True)
class Leaderboard:
    entries: Tuple[LeaderboardEntry, ...]
    comparison: Optional[PairedComparison] = None

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    @property
    def best(self) -> LeaderboardEntry:
        return self.entries[0]

    def to_records(self) -> List[Dict[str, Union[str, float]]]:
        return [asdict(e) for e in self.entries]

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.to_records())

    def to_json(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "leaderboard": self.to_records(),
            "comparison": asdict(self.comparison) if self.comparison else None,
        }
        path.write_text(json.dumps(payload, indent=2))
        log.info(f"Leaderboard report → {path}")
        return path


def summarize(name: str, fold_accuracy: np.ndarray) -> LeaderboardEntry:
    a = np.asarray(fold_accuracy, dtype=float)
    q1, median, q3 = np.percentile(a, [25, 50, 75])
    return LeaderboardEntry(
        model_name=name,
        mean_accuracy=float(a.mean()),
        std_accuracy=float(a.std(ddof=1)) if len(a) > 1 else 0.0,
        min=float(a.min()),
        q1=float(q1),
        median=float(median),
        q3=float(q3),
        max=float(a.max()),
    )


def corrected_resampled_ttest(a: np.ndarray, b: np.ndarray) -> Tuple[float, float, float]:
    """
    Paired t-test on k-fold accuracy differences with the Nadeau–Bengio
    variance correction (1/k + n_test/n_train, n_test/n_train = 1/(k-1)).
    Returns (t, corrected p, plain paired-t p).
    """
    a, b = np.asarray(a, dtype=float), np.asarray(b, dtype=float)
    if a.shape != b.shape or a.ndim != 1:
        raise ValueError("Accuracy vectors must be 1-D and fold-aligned.")
    k = len(a)
    if k < 2:
        raise ValueError("Need at least two folds for a paired comparison.")
    d = a - b
    mean_d = float(d.mean())
    var_d = float(d.var(ddof=1))
    if var_d == 0.0:
        if mean_d == 0.0:
            return 0.0, 1.0, 1.0
        return float(np.sign(mean_d) * np.inf), 0.0, 0.0
    corrected_var = (1.0 / k + 1.0 / (k - 1)) * var_d
    t = mean_d / np.sqrt(corrected_var)
    p = float(2.0 * stats.t.sf(abs(t), df=k - 1))
    naive_p = float(stats.ttest_rel(a, b).pvalue)
    return float(t), p, naive_p


class LeaderboardBuilder:
    def __init__(self, baseline_name: str = BASELINE_FAMILY, alpha: float = ALPHA):
        self.baseline_name = baseline_name
        self.alpha = alpha

    def build(self, fold_accuracies: Mapping[str, np.ndarray]) -> Leaderboard:
        """`fold_accuracies`: model name → fold-aligned accuracy vector
        (TrainedModel objects are accepted too)."""
        vectors = {
            name: np.asarray(getattr(v, "fold_accuracy", v), dtype=float)
            for name, v in fold_accuracies.items()
        }
        if not vectors:
            raise ValueError("No trained models to rank.")
        lengths = {len(v) for v in vectors.values()}
        if len(lengths) != 1:
            raise ValueError(f"Fold accuracy vectors differ in length: {lengths}")

        entries = sorted((summarize(n, v) for n, v in vectors.items()),
                         key=lambda e: (-e.mean_accuracy, e.model_name))

        comparison = None
        if self.baseline_name in vectors:
            top = entries[0].model_name
            t, p, naive_p = corrected_resampled_ttest(vectors[top], vectors[self.baseline_name])
            comparison = PairedComparison(
                model_name=top,
                baseline_name=self.baseline_name,
                mean_difference=float(np.mean(vectors[top] - vectors[self.baseline_name])),
                t_statistic=t,
                p_value=p,
                naive_p_value=naive_p,
                alpha=self.alpha,
                significant=bool(p < self.alpha),
            )
            log.info(f"{top} vs {self.baseline_name}: Δ={comparison.mean_difference:+.4f}, "
                     f"t={t:.3f}, p={p:.4f} → "
                     f"{'significant' if comparison.significant else 'not significant'}")
        else:
            log.warning(f"Baseline '{self.baseline_name}' not trained; skipping paired comparison.")

        board = Leaderboard(entries=tuple(entries), comparison=comparison)
        for rank, e in enumerate(board, 1):
            log.info(f"  {rank:2d}. {e.model_name:<14} {e.mean_accuracy:.4f} ± {e.std_accuracy:.4f}")
        return board
