"""
Stage 1: Raw-table schema + row identity

  • normalize_columns – "home.dest" → "home_dest", lower-case names.
  • validate_raw      – Pandera schema check of every raw passenger field
                        (lazy: all failures reported at once).
  • assign_row_ids    – stable synthetic `row_id` used for every later join.
"""
from __future__ import annotations

import logging
from typing import List

import pandas as pd
import pandera as pa

from passenger_cv.config import ROW_ID_COLUMN, TARGET_COLUMN
from passenger_cv.exceptions import SchemaError

log = logging.getLogger("passenger_cv.stage1")


raw_schema = pa.DataFrameSchema(
    {
        "pclass":   pa.Column(int, pa.Check.isin([1, 2, 3]), coerce=True),
        TARGET_COLUMN: pa.Column(int, pa.Check.isin([0, 1]), coerce=True),
        "name":     pa.Column(str, coerce=True),
        "sex":      pa.Column(str, pa.Check.isin(["male", "female"]), coerce=True),
        "age":      pa.Column(float, pa.Check.ge(0), nullable=True, coerce=True),
        "sibsp":    pa.Column(int, pa.Check.ge(0), coerce=True),
        "parch":    pa.Column(int, pa.Check.ge(0), coerce=True),
        "ticket":   pa.Column(str, coerce=True),
        "fare":     pa.Column(float, pa.Check.ge(0), nullable=True, coerce=True),
        "cabin":    pa.Column(str, nullable=True, coerce=True),
        "embarked": pa.Column(str, nullable=True, coerce=True),
        # look-ahead fields: tolerated on input, dropped before modelling
        "boat":     pa.Column(nullable=True, required=False),
        "body":     pa.Column(nullable=True, required=False),
        "home_dest": pa.Column(str, nullable=True, required=False, coerce=True),
    },
    strict=False,
)


def normalize_columns(df: pd.DataFrame) -> pd.DataFrame:
    out = df.copy()
    out.columns = [str(c).strip().lower().replace(".", "_") for c in out.columns]
    return out


def _describe_failures(err: pa.errors.SchemaErrors) -> List[str]:
    cases = err.failure_cases
    lines = []
    for (column, check), grp in cases.groupby(["column", "check"], dropna=False, sort=False):
        sample = grp["failure_case"].head(3).tolist()
        lines.append(f"{column}: {check} (e.g. {sample}, n={len(grp)})")
    return lines


def validate_raw(df: pd.DataFrame) -> pd.DataFrame:
    """
    Validate and coerce the raw passenger table.
    A missing `home_dest` column is added as all-missing so the imputer
    always has it to fill. Raises SchemaError listing every violation.
    """
    if df is None or df.empty:
        raise SchemaError("Raw table is None or empty.")

    try:
        validated = raw_schema.validate(df, lazy=True)
    except pa.errors.SchemaErrors as err:
        failures = _describe_failures(err)
        raise SchemaError(
            "Raw table failed schema validation:\n  " + "\n  ".join(failures),
            failures=failures) from err

    if "home_dest" not in validated.columns:
        validated["home_dest"] = pd.Series(
            [None] * len(validated), index=validated.index, dtype=object)
        log.info("No 'home_dest' column on input; added as all-missing.")

    log.info(f"Raw table validated: {validated.shape[0]} rows × {validated.shape[1]} cols")
    return validated


def assign_row_ids(df: pd.DataFrame) -> pd.DataFrame:
    """Return a copy carrying a unique integer `row_id` (ingestion order)."""
    out = df.copy()
    if ROW_ID_COLUMN in out.columns:
        if out[ROW_ID_COLUMN].isna().any() or not out[ROW_ID_COLUMN].is_unique:
            raise SchemaError(
                f"Existing '{ROW_ID_COLUMN}' column is not a unique identifier.")
        return out.reset_index(drop=True)
    out = out.reset_index(drop=True)
    out.insert(0, ROW_ID_COLUMN, range(len(out)))
    return out
