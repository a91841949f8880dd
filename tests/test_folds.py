import numpy as np
import pandas as pd
import pytest

from passenger_cv.Stage_4_Split_data.Fold_Planner import FoldPlanner


def test_same_seed_same_assignment(modeling_frame):
    a = FoldPlanner(k=5, seed=42).plan(modeling_frame)
    b = FoldPlanner(k=5, seed=42).plan(modeling_frame)
    pd.testing.assert_series_equal(a.labels, b.labels)
    assert a.checksum() == b.checksum()


def test_different_seed_changes_assignment(modeling_frame):
    a = FoldPlanner(k=5, seed=42).plan(modeling_frame)
    b = FoldPlanner(k=5, seed=7).plan(modeling_frame)
    assert not a.labels.equals(b.labels)


def test_fold_sizes_differ_by_at_most_one(folds, modeling_frame):
    sizes = folds.fold_sizes()
    assert sizes.sum() == len(modeling_frame)
    assert sizes.max() - sizes.min() <= 1


def test_each_class_spread_evenly(folds, modeling_frame):
    y = modeling_frame.y
    for cls in y.unique():
        per_fold = np.bincount(folds.labels[y == cls].to_numpy(), minlength=folds.k)
        assert per_fold.max() - per_fold.min() <= 1


def test_splits_cover_every_row_once_as_test(folds, modeling_frame):
    seen = []
    splits = list(folds.splits(modeling_frame.data.index))
    assert len(splits) == 5
    for train_idx, test_idx in splits:
        assert np.intersect1d(train_idx, test_idx).size == 0
        seen.extend(test_idx.tolist())
    assert sorted(seen) == list(range(len(modeling_frame)))


def test_labels_follow_row_ids_not_positions(folds, modeling_frame):
    index = modeling_frame.data.index
    reversed_labels = folds.test_fold(index[::-1])
    np.testing.assert_array_equal(reversed_labels, folds.test_fold(index)[::-1])


def test_unknown_row_id_raises(folds):
    with pytest.raises(KeyError):
        folds.test_fold(pd.Index([10_000], name="row_id"))


def test_invalid_fold_counts():
    y = pd.Series([0, 1, 0, 1], index=pd.Index(range(4), name="row_id"))
    with pytest.raises(ValueError):
        FoldPlanner(k=1).plan_labels(y)
    with pytest.raises(ValueError):
        FoldPlanner(k=5).plan_labels(y)


def test_duplicate_row_ids_rejected():
    y = pd.Series([0, 1, 0, 1], index=pd.Index([0, 0, 1, 2], name="row_id"))
    with pytest.raises(ValueError):
        FoldPlanner(k=2).plan_labels(y)
