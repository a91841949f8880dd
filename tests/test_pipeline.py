import json

import pandas as pd
import pytest

from passenger_cv import PipelineConfig, run_pipeline
from passenger_cv.exceptions import MalformedRecordError, SchemaError
from passenger_cv.scripts.run_pipeline import main


@pytest.fixture
def quick_config():
    return PipelineConfig(
        families=("baseline", "ridge", "cart"),
        grids={"ridge": {"lambda": [1.0, 0.01]}, "cart": {"ccp_alpha": [0.01, 0.0]}},
        n_jobs=1,
        permutation_repeats=3,
    )


def test_end_to_end(raw_passengers, quick_config):
    result = run_pipeline(raw_passengers, quick_config)

    board = result.leaderboard
    assert len(board) == 3
    means = [e.mean_accuracy for e in board]
    assert means == sorted(means, reverse=True)
    assert board.comparison is not None
    assert board.comparison.baseline_name == "baseline"

    assert result.best_model.family == board.best.model_name
    assert not result.family_errors
    assert set(result.importance.index) == set(result.frame.predictors)
    assert "boat" not in result.frame.data.columns
    assert result.imputation_report["age"]["method"] == "linear_regression"
    sizes = result.folds.fold_sizes()
    assert sizes.max() - sizes.min() <= 1

    labels = result.folds.labels
    assert set(labels.index) == set(range(len(raw_passengers)))
    assert set(labels.index) == set(result.frame.data.index)
    assert set(labels) == set(range(5))

    baseline = next(e for e in board if e.model_name == "baseline")
    assert baseline.min <= baseline.mean_accuracy <= baseline.max
    assert result.frame.data.isna().sum().sum() == 0
    assert result.analyzer.n_jobs == 1


def test_same_config_reproduces_leaderboard(raw_passengers, quick_config):
    a = run_pipeline(raw_passengers, quick_config).leaderboard.to_records()
    b = run_pipeline(raw_passengers, quick_config).leaderboard.to_records()
    assert a == b


def test_schema_violation_aborts(raw_passengers, quick_config):
    raw = raw_passengers.copy()
    raw.loc[0, "survived"] = 3
    with pytest.raises(SchemaError):
        run_pipeline(raw, quick_config)


def test_malformed_name_aborts(raw_passengers, quick_config):
    raw = raw_passengers.copy()
    raw.loc[5, "name"] = "No comma here"
    with pytest.raises(MalformedRecordError) as exc:
        run_pipeline(raw, quick_config)
    assert 5 in exc.value.row_ids


def test_cli_writes_report(tmp_path, raw_passengers):
    csv = tmp_path / "passengers.csv"
    raw_passengers.to_csv(csv, index=False)
    report = tmp_path / "out" / "leaderboard.json"

    code = main([str(csv), "--families", "baseline", "lda", "--n-jobs", "1",
                 "--report", str(report), "--pdp", "sex"])
    assert code == 0
    payload = json.loads(report.read_text())
    assert {r["model_name"] for r in payload["leaderboard"]} == {"baseline", "lda"}


def test_cli_missing_file(tmp_path):
    assert main([str(tmp_path / "absent.csv")]) == 2
