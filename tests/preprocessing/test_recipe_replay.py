import logging

import numpy as np
import pytest

from mlstudio_engine.data import RawDataset
from mlstudio_engine.errors import DataShapeError
from mlstudio_engine.preprocessing import DataPreprocessor, apply_recipe, run_steps

STEPS = [
    {"type": "handle_missing", "strategy": "mean", "columns": ["x"]},
    {"type": "scale", "columns": ["x"]},
    {"type": "encode", "columns": ["color"], "method": "one-hot"},
    {"type": "feature_engineering", "operations": [{"type": "polynomial", "columns": ["x"]}]},
]


def _training_data():
    return RawDataset.from_records(
        [
            {"x": 0, "color": "red", "y": 1},
            {"x": None, "color": "blue", "y": 2},
            {"x": 10, "color": "red", "y": 3},
        ]
    )


def test_replay_reproduces_training_transform():
    pre = DataPreprocessor()
    data = _training_data()
    fitted = run_steps(pre, data, STEPS)

    replayed = apply_recipe(pre.recipe(), data)
    assert replayed.columns == fitted.columns
    assert replayed.rows == fitted.rows


def test_replay_uses_stored_statistics_on_new_data():
    pre = DataPreprocessor()
    run_steps(pre, _training_data(), STEPS)

    new = RawDataset.from_records(
        [{"x": 5, "color": "green", "y": 0}, {"x": None, "color": "blue", "y": 0}]
    )
    out = apply_recipe(pre.recipe(), new)

    # min/max come from training (0, 10), not from the new rows
    assert np.allclose(out.column_values("x"), [0.5, 0.5])
    assert out.column_values("x_pow2") == pytest.approx([0.25, 0.25])
    # unseen category gets no indicator
    assert out.column_values("color_red") == [0, 0]
    assert out.column_values("color_blue") == [0, 1]


def test_replay_robust_and_target_steps_use_fitted_values():
    data = RawDataset.from_records(
        [
            {"x": 1, "city": "a", "y": 2.0},
            {"x": 2, "city": "b", "y": 4.0},
            {"x": 3, "city": "a", "y": 6.0},
        ]
    )
    pre = DataPreprocessor()
    fitted = run_steps(
        pre,
        data,
        [
            {"type": "normalize", "columns": ["x"], "method": "robust"},
            {"type": "encode", "columns": ["city"], "method": "target", "target_column": "y"},
        ],
    )
    assert apply_recipe(pre.recipe(), data).rows == fitted.rows

    # no label column at inference; unseen city takes the global target mean
    out = apply_recipe(pre.recipe(), RawDataset.from_records([{"x": 5, "city": "zz"}]))
    assert np.isclose(out.column_values("x")[0], 3.0)
    assert np.isclose(out.column_values("city")[0], 4.0)


def test_replay_label_encoding_rejects_unseen_category():
    pre = DataPreprocessor()
    pre.encode_categorical(
        RawDataset.from_records([{"c": "a"}, {"c": "b"}]), ["c"], method="label"
    )
    with pytest.raises(DataShapeError):
        apply_recipe(pre.recipe(), RawDataset.from_records([{"c": "z"}]))


def test_replay_skips_split_steps_and_unknown_columns(caplog):
    pre = DataPreprocessor()
    data = RawDataset.from_records([{"x": v, "y": v} for v in range(5)])
    data = pre.scale(data, ["x", "y"])
    pre.split_data(data)

    with caplog.at_level(logging.WARNING):
        out = apply_recipe(pre.recipe(), RawDataset.from_records([{"x": 2}]))
    assert out.n_rows == 1
    assert np.isclose(out.column_values("x")[0], 0.5)
    assert "'y'" in caplog.text


def test_run_steps_rejects_unknown_step_type():
    with pytest.raises(ValueError):
        run_steps(DataPreprocessor(), _training_data(), [{"type": "shuffle"}])


def test_keep_rows_skips_row_filtering_steps():
    pre = DataPreprocessor()
    data = RawDataset.from_records([{"x": v} for v in [1, 2, 3, 4, None]])
    data = pre.handle_missing_values(data, strategy="drop")
    data = pre.remove_outliers(data, ["x"])
    pre.scale(data, ["x"])

    new = RawDataset.from_records([{"x": 2}, {"x": None}, {"x": 400}])
    assert apply_recipe(pre.recipe(), new).n_rows == 1

    kept = apply_recipe(pre.recipe(), new, keep_rows=True)
    assert kept.n_rows == 3
    assert kept.column_values("x")[1] is None
    assert np.allclose(kept.column_values("x")[0], 1 / 3)
