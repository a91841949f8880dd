import numpy as np
import pytest

from passenger_cv.Stage_5_Training.Model_Trainer import ModelTrainer, TrainedModel
from passenger_cv.Stage_7_Interpretation.Importance_Analyzer import ImportanceAnalyzer


@pytest.fixture
def analyzer(modeling_frame):
    ridge = TrainedModel(family="ridge", params={"lambda": 0.01}, fold_accuracy=np.zeros(5))
    return ImportanceAnalyzer(seed=42, n_repeats=5).fit_final(modeling_frame, ridge)


def test_importance_is_non_negative_and_sorted(analyzer, modeling_frame):
    scores = analyzer.permutation_importance()
    assert set(scores.index) == set(modeling_frame.predictors)
    assert (scores >= 0).all()
    assert list(scores) == sorted(scores, reverse=True)
    assert list(analyzer.importance_std_.index) == list(scores.index)


def test_signal_outranks_noise(analyzer):
    scores = analyzer.permutation_importance()
    signal = max(scores.get(c, 0.0) for c in ("sex", "pclass", "title"))
    assert signal > scores["noise"]


def test_importance_is_reproducible(analyzer):
    a = analyzer.permutation_importance()
    b = analyzer.permutation_importance()
    assert a.equals(b)


def test_numeric_partial_dependence_trimmed_to_percentiles(analyzer, modeling_frame):
    points = analyzer.partial_dependence("age")
    ages = modeling_frame.data["age"]
    lo, hi = np.percentile(ages, [4, 96])
    assert 2 <= len(points) <= 20
    for p in points:
        assert len(p.values) == 1
        assert lo - 1e-9 <= p.values[0] <= hi + 1e-9
        assert 0.0 <= p.mean_predicted_probability <= 1.0


def test_categorical_partial_dependence_sweeps_levels(analyzer):
    points = {p.values[0]: p.mean_predicted_probability for p in analyzer.partial_dependence("sex")}
    assert set(points) == {"female", "male"}
    assert points["female"] > points["male"]


def test_two_way_partial_dependence(analyzer, modeling_frame):
    points = analyzer.partial_dependence(("sex", "pclass"))
    levels = modeling_frame.data["pclass"].nunique()
    assert len(points) == 2 * levels
    assert all(len(p.values) == 2 for p in points)


def test_unknown_feature_rejected(analyzer):
    with pytest.raises(KeyError):
        analyzer.partial_dependence("boat")


def test_requires_final_fit():
    with pytest.raises(RuntimeError):
        ImportanceAnalyzer().permutation_importance()


def test_discrete_numeric_sweep_stays_inside_percentile_band(analyzer, modeling_frame):
    sizes = modeling_frame.data["family_size"]
    lo, hi = np.percentile(sizes, [5, 95])
    swept = [p.values[0] for p in analyzer.partial_dependence("family_size")]
    assert swept
    assert set(swept) <= set(sizes.unique())
    assert all(lo <= v <= hi for v in swept)
    assert swept == sorted(swept)


def test_final_fit_reuses_trainer_refit(modeling_frame, folds):
    trained = ModelTrainer("ridge", seed=42, n_jobs=1).train(
        modeling_frame, folds, {"lambda": [0.01]})
    analyzer = ImportanceAnalyzer(seed=42, n_repeats=2).fit_final(modeling_frame, trained)
    assert analyzer.model_ is trained.estimator
