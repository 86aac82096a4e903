import logging

import numpy as np
import pytest

from mlstudio_engine.data import ColumnType, RawDataset
from mlstudio_engine.errors import DataShapeError
from mlstudio_engine.preprocessing import DataPreprocessor, apply_recipe


def _dataset(values):
    return RawDataset.from_records([{"x": v, "y": i} for i, v in enumerate(values)])


def test_mean_fill_replaces_missing_with_column_mean():
    pre = DataPreprocessor()
    out = pre.handle_missing_values(_dataset([1, None, 3]), strategy="mean", columns=["x"])

    assert out.column_values("x") == [1, 2.0, 3]
    stat = pre.steps[0].statistics["x"]
    assert np.isclose(stat.fill_value, 2.0)
    assert stat.missing_count == 1


def test_median_uses_upper_middle_value():
    pre = DataPreprocessor()
    out = pre.handle_missing_values(_dataset([5, None, 1, 3, 9]), strategy="median", columns=["x"])
    # sorted present values [1, 3, 5, 9] -> index 2
    assert out.column_values("x")[1] == 5


def test_mode_fill_numeric_and_categorical():
    pre = DataPreprocessor()
    out = pre.handle_missing_values(_dataset([2, 2, None, 7]), strategy="mode", columns=["x"])
    assert out.column_values("x")[2] == 2

    cats = RawDataset.from_records([{"c": "a"}, {"c": "b"}, {"c": "a"}, {"c": None}])
    out = DataPreprocessor().handle_missing_values(cats, strategy="mean")
    # non-numeric columns fall back to the most frequent value
    assert out.column_values("c") == ["a", "b", "a", "a"]


def test_drop_removes_rows_with_missing_cells():
    pre = DataPreprocessor()
    out = pre.handle_missing_values(_dataset([1, None, 3]), strategy="drop", columns=["x"])
    assert out.n_rows == 2
    assert out.column_values("y") == [0, 2]
    assert pre.steps[0].statistics["x"].missing_count == 1


def test_input_dataset_is_not_mutated():
    data = _dataset([1, None, 3])
    DataPreprocessor().handle_missing_values(data, strategy="mean")
    assert data.column_values("x") == [1, None, 3]


def test_unknown_column_is_skipped_with_warning(caplog):
    pre = DataPreprocessor()
    with caplog.at_level(logging.WARNING):
        out = pre.handle_missing_values(_dataset([1, None, 3]), columns=["nope", "x"])
    assert "nope" in caplog.text
    assert out.column_values("x") == [1, 2.0, 3]
    assert set(pre.steps[0].statistics) == {"x"}


def test_bad_numeric_cell_reports_column_and_row():
    data = RawDataset(
        columns=["x"],
        types=[ColumnType.NUMERIC],
        rows=[[1.0], ["oops"], [None]],
    )
    with pytest.raises(DataShapeError) as excinfo:
        DataPreprocessor().handle_missing_values(data, strategy="mean")
    assert excinfo.value.column == "x"
    assert excinfo.value.row == 1


def test_unknown_strategy_raises():
    with pytest.raises(ValueError):
        DataPreprocessor().handle_missing_values(_dataset([1, 2]), strategy="zero")


# ============================================================
# Row-order fills and column drops
# ============================================================


def test_forward_fill_carries_previous_value():
    pre = DataPreprocessor()
    out = pre.handle_missing_values(
        _dataset([None, 1, None, None, 4, None]), strategy="forward_fill", columns=["x"]
    )
    # a leading gap has nothing to carry and stays missing
    assert out.column_values("x") == [None, 1, 1, 1, 4, 4]
    assert pre.steps[0].statistics["x"].missing_count == 4


def test_backward_fill_carries_next_value():
    out = DataPreprocessor().handle_missing_values(
        _dataset([None, 1, None, 4, None]), strategy="backward_fill", columns=["x"]
    )
    assert out.column_values("x") == [1, 1, 4, 4, None]


def test_drop_columns_removes_columns_with_gaps():
    data = RawDataset.from_records(
        [{"a": 1, "b": None, "c": 3}, {"a": 2, "b": 5, "c": None}, {"a": 3, "b": 6, "c": 9}]
    )
    pre = DataPreprocessor()
    out = pre.handle_missing_values(data, strategy="drop_columns")

    assert out.columns == ["a"]
    assert out.rows == [[1], [2], [3]]
    stats = pre.steps[0].statistics
    assert stats["a"].missing_count == 0
    assert stats["b"].missing_count == 1


def test_row_order_strategies_replay_on_new_rows():
    data = RawDataset.from_records([{"a": 1, "b": None}, {"a": None, "b": 2}])
    pre = DataPreprocessor()
    pre.handle_missing_values(data, strategy="drop_columns", columns=["b"])
    pre.handle_missing_values(data, strategy="forward_fill", columns=["a"])

    new = RawDataset.from_records([{"a": 7, "b": 1}, {"a": None, "b": 1}])
    out = apply_recipe(pre.recipe(), new)
    # b had gaps at fit time, so it is dropped even though the new rows are complete
    assert out.columns == ["a"]
    assert out.column_values("a") == [7, 7]
