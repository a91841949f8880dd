"""
config.py

Pipeline defaults. Adjust the module-level constants, or pass a
PipelineConfig to run_pipeline() to override them per run.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

# ─── Schema ────────────────────────────────────────────────────────────────
TARGET_COLUMN = "survived"
ROW_ID_COLUMN = "row_id"

# ─── Imputation ────────────────────────────────────────────────────────────
MISSING_LEVEL = "Missing"
MIN_AGE_ROWS: int = 30
AGE_CV_FOLDS: int = 3

# ─── Sanitising ────────────────────────────────────────────────────────────
OTHER_LEVEL = "Other"
RARE_MIN_COUNT: int = 25
NZV_FREQ_CUT: float = 95 / 5
NZV_UNIQUE_CUT: float = 10.0
LEAKAGE_COLUMNS: Tuple[str, ...] = ("boat", "body")
IDENTIFIER_COLUMNS: Tuple[str, ...] = ("name", "ticket", "cabin")
CATEGORICAL_OVERRIDES: Tuple[str, ...] = ("pclass",)

# ─── Cross-validation / comparison ─────────────────────────────────────────
SEED: int = 42
N_FOLDS: int = 5
ALPHA: float = 0.05
BASELINE_FAMILY = "baseline"
DEFAULT_FAMILIES: Tuple[str, ...] = (
    "baseline", "logistic", "lasso", "ridge", "elastic_net", "lda",
    "knn", "cart", "ctree", "random_forest", "gbm",
)

# ─── Interpretation ────────────────────────────────────────────────────────
PERMUTATION_REPEATS: int = 10
PD_PERCENTILES: Tuple[float, float] = (0.05, 0.95)
PD_GRID_RESOLUTION: int = 20


@dataclass
class PipelineConfig:
    seed: int = SEED
    n_folds: int = N_FOLDS
    min_age_rows: int = MIN_AGE_ROWS
    age_cv_folds: int = AGE_CV_FOLDS
    rare_min_count: int = RARE_MIN_COUNT
    nzv_freq_cut: float = NZV_FREQ_CUT
    nzv_unique_cut: float = NZV_UNIQUE_CUT
    leakage_columns: Sequence[str] = LEAKAGE_COLUMNS
    identifier_columns: Sequence[str] = IDENTIFIER_COLUMNS
    categorical_overrides: Sequence[str] = CATEGORICAL_OVERRIDES
    families: Sequence[str] = DEFAULT_FAMILIES
    # family name -> grid (dict of lists) replacing that family's default grid
    grids: Dict[str, Dict[str, List[Any]]] = field(default_factory=dict)
    baseline_family: str = BASELINE_FAMILY
    alpha: float = ALPHA
    n_jobs: Union[int, float, None] = None
    permutation_repeats: int = PERMUTATION_REPEATS
    pd_percentiles: Tuple[float, float] = PD_PERCENTILES
    pd_grid_resolution: int = PD_GRID_RESOLUTION

    def grid_for(self, family: str) -> Optional[Dict[str, List[Any]]]:
        return self.grids.get(family)
