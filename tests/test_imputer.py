import numpy as np
import pandas as pd
import pytest

from passenger_cv.exceptions import ImputationError, ImputationFallbackWarning, SchemaError
from passenger_cv.Stage_2_Preprocessor.Missing_Imputer import MissingImputer

IMPUTED = ["fare", "age", "embarked", "cabin", "home_dest"]


def test_no_missing_values_after_imputation(ingested):
    out = MissingImputer().fit_transform(ingested)
    for col in IMPUTED:
        assert out[col].notna().all(), col
    assert len(out) == len(ingested)


def test_input_frame_is_not_mutated(ingested):
    before = ingested.copy()
    MissingImputer().fit_transform(ingested)
    pd.testing.assert_frame_equal(ingested, before)


def test_sentinel_for_structural_missing(ingested):
    out = MissingImputer().fit_transform(ingested)
    was_missing = ingested["cabin"].isna()
    assert (out.loc[was_missing, "cabin"] == "Missing").all()
    pd.testing.assert_series_equal(out.loc[~was_missing, "cabin"],
                                   ingested.loc[~was_missing, "cabin"].astype(object),
                                   check_dtype=False)


def test_fare_uses_observed_median(ingested):
    imputer = MissingImputer()
    out = imputer.fit_transform(ingested)
    median = ingested["fare"].median()
    assert (out.loc[ingested["fare"].isna(), "fare"] == median).all()
    assert imputer.report["fare"]["median"] == pytest.approx(median)


def test_embarked_mode_ties_break_alphabetically(ingested):
    df = ingested.head(6).copy()
    df["embarked"] = ["S", "C", "S", "C", None, "Q"]
    df["age"] = [20.0, 30.0, 40.0, 50.0, 25.0, 35.0]
    imputer = MissingImputer(min_age_rows=1)
    out = imputer.fit_transform(df)
    assert out["embarked"].iloc[4] == "C"
    assert imputer.report["embarked"]["mode"] == "C"


def test_age_regression_predictions_stay_in_observed_range(ingested):
    imputer = MissingImputer()
    out = imputer.fit_transform(ingested)
    observed = ingested["age"].dropna()
    filled = out.loc[ingested["age"].isna(), "age"]
    assert len(filled) > 0
    assert filled.between(observed.min(), observed.max()).all()
    report = imputer.report["age"]
    assert report["method"] == "linear_regression"
    assert report["diagnostics"]["cv_folds"] == 3
    assert np.isfinite(report["diagnostics"]["rmse_mean"])


def test_age_joined_back_on_row_id(ingested):
    shuffled = ingested.sample(frac=1.0, random_state=3)
    a = MissingImputer().fit_transform(ingested).set_index("row_id")["age"]
    b = MissingImputer().fit_transform(shuffled).set_index("row_id")["age"]
    pd.testing.assert_series_equal(a.sort_index(), b.sort_index(), rtol=1e-6)


def test_few_observed_ages_fall_back_to_median(ingested):
    df = ingested.copy()
    observed_idx = df.index[df["age"].notna()][:10]
    df.loc[~df.index.isin(observed_idx), "age"] = np.nan
    imputer = MissingImputer(min_age_rows=30)
    with pytest.warns(ImputationFallbackWarning):
        out = imputer.fit_transform(df)
    assert out["age"].notna().all()
    assert imputer.report["age"]["method"] == "median_fallback"
    assert out["age"].nunique() <= 11


def test_all_ages_missing_is_an_error(ingested):
    df = ingested.copy()
    df["age"] = np.nan
    with pytest.raises(ImputationError):
        MissingImputer().fit_transform(df)


def test_row_id_required(raw_passengers):
    with pytest.raises(SchemaError):
        MissingImputer().fit_transform(raw_passengers)
