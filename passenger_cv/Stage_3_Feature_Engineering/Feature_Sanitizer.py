"""
Stage 3½: Feature sanitising → ModelingFrame

  1) drop look-ahead and identifier columns, index rows by `row_id`
  2) collapse rare categorical levels (< min_count rows) into "Other",
     column by column
  3) drop near-zero-variance columns (after step 2, since collapsing can
     itself leave a column near-constant)
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

import pandas as pd

from passenger_cv.config import (
    CATEGORICAL_OVERRIDES, IDENTIFIER_COLUMNS, LEAKAGE_COLUMNS, NZV_FREQ_CUT,
    NZV_UNIQUE_CUT, OTHER_LEVEL, RARE_MIN_COUNT, ROW_ID_COLUMN, TARGET_COLUMN,
)
from passenger_cv.exceptions import DegenerateFeatureError, SchemaError

log = logging.getLogger("passenger_cv.stage3")


@dataclass
class ModelingFrame:
    """Outcome + predictors handed to every candidate model, indexed by row_id."""
    data: pd.DataFrame
    target: str
    numeric_columns: List[str]
    categorical_columns: List[str]
    report: Dict = field(default_factory=dict)

    @property
    def predictors(self) -> List[str]:
        return [c for c in self.data.columns if c != self.target]

    @property
    def X(self) -> pd.DataFrame:
        return self.data[self.predictors]

    @property
    def y(self) -> pd.Series:
        return self.data[self.target]

    @property
    def shape(self) -> Tuple[int, int]:
        return self.data.shape

    def __len__(self) -> int:
        return len(self.data)


def near_zero_var(df: pd.DataFrame,
                  freq_cut: float = NZV_FREQ_CUT,
                  unique_cut: float = NZV_UNIQUE_CUT) -> List[str]:
    """
    Columns that are constant, or whose most common value outnumbers the
    second most common by more than `freq_cut` while fewer than `unique_cut`
    percent of the values are distinct.
    """
    flagged = []
    n = len(df)
    for c in df.columns:
        counts = df[c].value_counts(dropna=False)
        if len(counts) <= 1:
            flagged.append(c)
            continue
        freq_ratio = counts.iloc[0] / counts.iloc[1]
        pct_unique = 100.0 * len(counts) / n
        if freq_ratio > freq_cut and pct_unique < unique_cut:
            flagged.append(c)
    return flagged


def collapse_rare_levels(df: pd.DataFrame,
                         columns: Sequence[str],
                         min_count: int = RARE_MIN_COUNT,
                         other_level: str = OTHER_LEVEL) -> Tuple[pd.DataFrame, Dict[str, List[str]]]:
    out = df.copy()
    relabelled: Dict[str, List[str]] = {}
    for col in columns:
        counts = out[col].value_counts()
        rare = [lvl for lvl, n in counts.items() if n < min_count and lvl != other_level]
        if rare:
            out[col] = out[col].where(~out[col].isin(rare), other_level)
            relabelled[col] = sorted(map(str, rare))
            log.info(f"  • Categorical '{col}': collapsed {len(rare)} rare levels → '{other_level}'")
    return out, relabelled


class FeatureSanitizer:
    def __init__(
        self,
        target: str = TARGET_COLUMN,
        rare_min_count: int = RARE_MIN_COUNT,
        nzv_freq_cut: float = NZV_FREQ_CUT,
        nzv_unique_cut: float = NZV_UNIQUE_CUT,
        leakage_columns: Sequence[str] = LEAKAGE_COLUMNS,
        identifier_columns: Sequence[str] = IDENTIFIER_COLUMNS,
        categorical_overrides: Sequence[str] = CATEGORICAL_OVERRIDES,
        other_level: str = OTHER_LEVEL,
    ):
        self.target = target
        self.rare_min_count = rare_min_count
        self.nzv_freq_cut = nzv_freq_cut
        self.nzv_unique_cut = nzv_unique_cut
        self.leakage_columns = list(leakage_columns)
        self.identifier_columns = list(identifier_columns)
        self.categorical_overrides = list(categorical_overrides)
        self.other_level = other_level

    def _split_types(self, df: pd.DataFrame) -> Tuple[List[str], List[str]]:
        numeric, categorical = [], []
        for c in df.columns:
            if c == self.target:
                continue
            if c in self.categorical_overrides or not pd.api.types.is_numeric_dtype(df[c]) \
                    or pd.api.types.is_bool_dtype(df[c]):
                categorical.append(c)
            else:
                numeric.append(c)
        return numeric, categorical

    def transform(self, df: pd.DataFrame) -> ModelingFrame:
        for col in (self.target, ROW_ID_COLUMN):
            if col not in df.columns:
                raise SchemaError(f"Sanitizer input is missing column '{col}'.")

        dropped_leak = [c for c in self.leakage_columns if c in df.columns]
        dropped_ident = [c for c in self.identifier_columns if c in df.columns]
        out = df.drop(columns=dropped_leak + dropped_ident).set_index(ROW_ID_COLUMN)
        if dropped_leak:
            log.info(f"Dropped look-ahead columns: {dropped_leak}")

        numeric, categorical = self._split_types(out)
        for c in categorical:
            out[c] = out[c].astype(str).where(out[c].notna(), None)
        for c in numeric:
            out[c] = out[c].astype(float)

        still_missing = out.columns[out.isna().any()].tolist()
        if still_missing:
            raise SchemaError(
                f"Columns still contain missing values after imputation: {still_missing}")

        # 1) rare levels first …
        out, relabelled = collapse_rare_levels(
            out, categorical, self.rare_min_count, self.other_level)

        # 2) … then near-zero variance
        nzv = near_zero_var(out[numeric + categorical], self.nzv_freq_cut, self.nzv_unique_cut)
        if nzv:
            log.info(f"Dropped near-zero-variance columns: {nzv}")
        out = out.drop(columns=nzv)
        numeric = [c for c in numeric if c not in nzv]
        categorical = [c for c in categorical if c not in nzv]

        if not numeric and not categorical:
            raise DegenerateFeatureError(
                "No predictor columns remain after sanitising; cannot train models.")

        out = out[[self.target] + numeric + categorical]
        report = {
            "dropped_leakage": dropped_leak,
            "dropped_identifiers": dropped_ident,
            "rare_levels": relabelled,
            "near_zero_var": nzv,
            "numeric": numeric,
            "categorical": categorical,
        }
        log.info(f"ModelingFrame: {out.shape[0]} rows, "
                 f"{len(numeric)} numeric + {len(categorical)} categorical predictors")
        return ModelingFrame(out, self.target, numeric, categorical, report)
