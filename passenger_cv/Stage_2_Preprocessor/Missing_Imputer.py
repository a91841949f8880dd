#!/usr/bin/env python3
from __future__ import annotations
import logging
import warnings
from typing import Dict, List, Optional

import numpy as np
import pandas as pd
from sklearn.compose import ColumnTransformer
from sklearn.linear_model import LinearRegression
from sklearn.model_selection import KFold, cross_validate
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import OneHotEncoder

from passenger_cv.config import (
    AGE_CV_FOLDS, MIN_AGE_ROWS, MISSING_LEVEL, ROW_ID_COLUMN, SEED,
)
from passenger_cv.exceptions import (
    ImputationError, ImputationFallbackWarning, SchemaError,
)
from passenger_cv.Stage_3_Feature_Engineering.Feature_Construction import parse_titles

log = logging.getLogger("passenger_cv.stage2")

SENTINEL_COLUMNS: List[str] = ["cabin", "home_dest"]
AGE_NUMERIC: List[str] = ["family_size", "fare"]
AGE_CATEGORICAL: List[str] = ["sex", "embarked", "title", "pclass"]


class MissingImputer:
    """
    Stage 2: Missing-Value Imputation

    Workflow (every step returns into a fresh copy of the input):
      1) cabin / home_dest  → literal sentinel level ("Missing"), kept as an
         explicit, informative category.
      2) fare               → one global median over the observed rows.
      3) embarked           → most frequent observed level (ties: alphabetical).
      4) age                → linear regression on family size, sex, fare,
         embarked, title and class, fitted on rows with an observed age.
           • 3-fold CV (R², RMSE) is logged for diagnostics only.
           • Predictions are clipped to the observed age range and joined
             back on `row_id`.
           • Fewer than `min_age_rows` observed ages → median fallback,
             surfaced as ImputationFallbackWarning.
         The regression is discarded once the frame is filled.

    Every decision is recorded in `self.report`.
    """

    def __init__(
        self,
        min_age_rows: int = MIN_AGE_ROWS,
        cv_folds: int = AGE_CV_FOLDS,
        missing_level: str = MISSING_LEVEL,
        random_state: int = SEED,
        verbose: bool = False,
    ):
        self.min_age_rows = min_age_rows
        self.cv_folds = cv_folds
        self.missing_level = missing_level
        self.random_state = random_state
        self.verbose = verbose

        self.report: Dict[str, Dict] = {
            "sentinel": {},
            "fare": {},
            "embarked": {},
            "age": {},
        }

    def _log(self, msg: str):
        """INFO when verbose, DEBUG otherwise."""
        log.log(logging.INFO if self.verbose else logging.DEBUG, msg)

    # ── 1) structural missing → sentinel ─────────────────────────────
    def _fill_sentinels(self, df: pd.DataFrame) -> None:
        for col in SENTINEL_COLUMNS:
            n_missing = int(df[col].isna().sum())
            df[col] = df[col].astype(object).where(df[col].notna(), self.missing_level)
            self.report["sentinel"][col] = {
                "n_missing": n_missing, "value": self.missing_level}
            self._log(f"  • '{col}': {n_missing} missing → '{self.missing_level}'")

    # ── 2) fare → global median ──────────────────────────────────────
    def _fill_fare(self, df: pd.DataFrame) -> None:
        n_missing = int(df["fare"].isna().sum())
        observed = df["fare"].dropna()
        if observed.empty:
            raise ImputationError("Column 'fare' has no observed values to take a median from.")
        median = float(observed.median())
        df["fare"] = df["fare"].fillna(median)
        self.report["fare"] = {"n_missing": n_missing, "median": median}
        self._log(f"  • 'fare': {n_missing} missing → median {median:.4f}")

    # ── 3) embarked → mode ───────────────────────────────────────────
    def _fill_embarked(self, df: pd.DataFrame) -> None:
        n_missing = int(df["embarked"].isna().sum())
        counts = df["embarked"].dropna().value_counts()
        if counts.empty:
            mode_val = self.missing_level
            log.warning(
                f"'embarked' has no observed level; filling with '{mode_val}'.")
        else:
            top = counts[counts == counts.max()].index
            mode_val = sorted(str(v) for v in top)[0]
        df["embarked"] = df["embarked"].fillna(mode_val)
        self.report["embarked"] = {"n_missing": n_missing, "mode": mode_val}
        self._log(f"  • 'embarked': {n_missing} missing → mode '{mode_val}'")

    # ── 4) age → regression (or explicit median fallback) ────────────
    @staticmethod
    def _age_design(df: pd.DataFrame) -> pd.DataFrame:
        return pd.DataFrame(
            {
                "family_size": (df["sibsp"] + df["parch"] + 1).to_numpy(),
                "fare": df["fare"].to_numpy(dtype=float),
                "sex": df["sex"].astype(str).to_numpy(),
                "embarked": df["embarked"].astype(str).to_numpy(),
                "title": parse_titles(df).to_numpy(),
                "pclass": df["pclass"].astype(str).to_numpy(),
            },
            index=pd.Index(df[ROW_ID_COLUMN].to_numpy(), name=ROW_ID_COLUMN),
        )

    @staticmethod
    def _age_model() -> Pipeline:
        prep = ColumnTransformer(
            [("cat", OneHotEncoder(handle_unknown="ignore", sparse_output=False), AGE_CATEGORICAL)],
            remainder="passthrough",
        )
        return Pipeline([("prep", prep), ("ols", LinearRegression())])

    def _age_cv_diagnostics(self, X: pd.DataFrame, y: pd.Series) -> Optional[Dict[str, float]]:
        if len(y) < self.cv_folds or self.cv_folds < 2:
            return None
        cv = KFold(n_splits=self.cv_folds, shuffle=True, random_state=self.random_state)
        scores = cross_validate(
            self._age_model(), X, y, cv=cv,
            scoring=("r2", "neg_root_mean_squared_error"),
        )
        return {
            "cv_folds": self.cv_folds,
            "r2_mean": float(np.mean(scores["test_r2"])),
            "rmse_mean": float(-np.mean(scores["test_neg_root_mean_squared_error"])),
        }

    def _fill_age(self, df: pd.DataFrame) -> None:
        missing = df["age"].isna()
        n_missing = int(missing.sum())
        observed = df.loc[~missing, "age"]

        if n_missing == 0:
            self.report["age"] = {"n_missing": 0, "method": "none"}
            self._log("  • 'age': no missing → skip")
            return
        if observed.empty:
            raise ImputationError("Column 'age' has no observed values to impute from.")

        if len(observed) < self.min_age_rows:
            median = float(observed.median())
            msg = (f"Only {len(observed)} rows with observed age "
                   f"(< {self.min_age_rows}); skipping age regression, "
                   f"filling {n_missing} rows with median {median:.2f}.")
            log.warning(msg)
            warnings.warn(msg, ImputationFallbackWarning, stacklevel=3)
            df["age"] = df["age"].fillna(median)
            self.report["age"] = {
                "n_missing": n_missing, "method": "median_fallback", "median": median}
            return

        X = self._age_design(df)
        obs_ids = df.loc[~missing, ROW_ID_COLUMN].to_numpy()
        miss_ids = df.loc[missing, ROW_ID_COLUMN].to_numpy()
        y = pd.Series(observed.to_numpy(dtype=float), index=X.loc[obs_ids].index)

        diagnostics = self._age_cv_diagnostics(X.loc[obs_ids], y)
        if diagnostics is not None:
            log.info(
                f"Age regression {diagnostics['cv_folds']}-fold CV: "
                f"R²={diagnostics['r2_mean']:.3f}, RMSE={diagnostics['rmse_mean']:.3f}")

        model = self._age_model().fit(X.loc[obs_ids], y)
        lo, hi = float(observed.min()), float(observed.max())
        predicted = pd.Series(
            np.clip(model.predict(X.loc[miss_ids]), lo, hi),
            index=X.loc[miss_ids].index,
        )

        # join predictions back on row_id
        df["age"] = df["age"].fillna(df[ROW_ID_COLUMN].map(predicted))
        self.report["age"] = {
            "n_missing": n_missing,
            "method": "linear_regression",
            "n_train": int(len(observed)),
            "predictors": AGE_NUMERIC + AGE_CATEGORICAL,
            "clip_range": [lo, hi],
            "diagnostics": diagnostics,
        }
        self._log(f"  • 'age': {n_missing} missing → regression predictions")

    def fit_transform(self, df: pd.DataFrame) -> pd.DataFrame:
        """Return a new, fully imputed copy of `df` (requires `row_id`)."""
        if ROW_ID_COLUMN not in df.columns:
            raise SchemaError(
                f"Imputer needs a '{ROW_ID_COLUMN}' column; run assign_row_ids() first.")
        out = df.copy()
        self._fill_sentinels(out)
        self._fill_fare(out)
        self._fill_embarked(out)
        self._fill_age(out)
        self._log("MissingImputer → fit_transform() completed.")
        return out
