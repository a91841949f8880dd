import numpy as np
import pandas as pd
import pytest

from passenger_cv.exceptions import SchemaError
from passenger_cv.Stage_1_Ingestion.Data_Schema import assign_row_ids, normalize_columns, validate_raw


def test_normalize_columns_renames_dotted_fields(raw_passengers):
    out = normalize_columns(raw_passengers)
    assert "home_dest" in out.columns
    assert "home.dest" not in out.columns
    assert "home.dest" in raw_passengers.columns


def test_validate_raw_accepts_well_formed_table(raw_passengers):
    out = validate_raw(normalize_columns(raw_passengers))
    assert len(out) == len(raw_passengers)
    assert out["age"].isna().sum() == raw_passengers["age"].isna().sum()
    assert set(out["sex"].unique()) <= {"male", "female"}


def test_validate_raw_adds_missing_home_dest(raw_passengers):
    df = normalize_columns(raw_passengers).drop(columns=["home_dest"])
    out = validate_raw(df)
    assert "home_dest" in out.columns
    assert out["home_dest"].isna().all()


def test_validate_raw_reports_every_violation(raw_passengers):
    df = normalize_columns(raw_passengers)
    df.loc[0, "sex"] = "unknown"
    df.loc[1, "pclass"] = 4
    with pytest.raises(SchemaError) as exc:
        validate_raw(df)
    failed = " ".join(exc.value.failures)
    assert "sex" in failed
    assert "pclass" in failed


def test_validate_raw_rejects_missing_required_column(raw_passengers):
    df = normalize_columns(raw_passengers).drop(columns=["fare"])
    with pytest.raises(SchemaError):
        validate_raw(df)


def test_validate_raw_rejects_empty_table():
    with pytest.raises(SchemaError):
        validate_raw(pd.DataFrame())


def test_assign_row_ids_unique_and_ordered(raw_passengers):
    out = assign_row_ids(raw_passengers)
    assert out.columns[0] == "row_id"
    assert out["row_id"].is_unique
    np.testing.assert_array_equal(out["row_id"].to_numpy(), np.arange(len(raw_passengers)))
    assert "row_id" not in raw_passengers.columns


def test_assign_row_ids_rejects_duplicate_existing_ids(raw_passengers):
    df = raw_passengers.copy()
    df["row_id"] = 7
    with pytest.raises(SchemaError):
        assign_row_ids(df)
