import numpy as np
import pytest

from mlstudio_engine.data import RawDataset, Recipe
from mlstudio_engine.errors import DataShapeError
from mlstudio_engine.preprocessing import (
    DataPreprocessor,
    dataset_features,
    images_to_features,
    images_to_processed,
    prepare_records,
    to_sequences,
)


def test_convert_to_ml_format_produces_float32_buffers():
    data = RawDataset.from_records([{"a": 1, "b": "2.5", "y": 0}, {"a": 3, "b": "4", "y": 1}])
    pre = DataPreprocessor()
    processed = pre.convert_to_ml_format(data, ["a", "b"], "y")

    assert processed.features.dtype == np.float32
    assert processed.features.shape == (2, 2)
    assert np.allclose(processed.features, [[1, 2.5], [3, 4]])
    assert np.array_equal(processed.labels, [0, 1])
    assert processed.feature_names == ["a", "b"]
    assert processed.label_name == "y"
    assert processed.metadata["original_shape"] == [2, 3]
    assert processed.metadata["processed_shape"] == [2, 2]
    assert isinstance(processed.metadata["recipe"], Recipe)


def test_convert_to_ml_format_missing_cell_names_location():
    data = RawDataset.from_records([{"x": 1, "y": 1}, {"x": None, "y": 2}])
    with pytest.raises(DataShapeError) as excinfo:
        DataPreprocessor().convert_to_ml_format(data, ["x"], "y")
    assert excinfo.value.column == "x"
    assert excinfo.value.row == 1


def test_convert_to_ml_format_non_numeric_cell_raises():
    data = RawDataset.from_records([{"c": "red", "y": 1}])
    with pytest.raises(DataShapeError) as excinfo:
        DataPreprocessor().convert_to_ml_format(data, ["c"], "y")
    assert excinfo.value.column == "c"


def test_convert_to_ml_format_column_checks():
    data = RawDataset.from_records([{"x": 1, "y": 1}])
    with pytest.raises(DataShapeError):
        DataPreprocessor().convert_to_ml_format(data, ["x"], "label")
    with pytest.raises(DataShapeError):
        DataPreprocessor().convert_to_ml_format(data, ["missing"], "y")
    # unknown names are ignored as long as one feature column resolves
    processed = DataPreprocessor().convert_to_ml_format(data, ["missing", "x"], "y")
    assert processed.feature_names == ["x"]


def test_ragged_rows_are_rejected():
    data = RawDataset(columns=["x", "y"], types=["numeric", "numeric"], rows=[[1, 2], [3]])
    with pytest.raises(DataShapeError):
        DataPreprocessor().convert_to_ml_format(data, ["x"], "y")


def test_prepare_records_is_strict():
    records = [{"x": 1, "y": 2}, {"x": 2, "y": 4}]
    processed = prepare_records(records, ["x"], "y")
    assert processed.features.shape == (2, 1)
    assert np.array_equal(processed.labels, [2, 4])

    with pytest.raises(DataShapeError):
        prepare_records([], ["x"], "y")
    with pytest.raises(DataShapeError):
        prepare_records(records, [], "y")
    with pytest.raises(DataShapeError) as excinfo:
        prepare_records([{"x": 1, "y": 2}, {"y": 3}], ["x"], "y")
    assert excinfo.value.row == 1


def test_dataset_features_requires_every_column():
    data = RawDataset.from_records([{"a": 1, "b": 2}, {"a": 3, "b": 4}])
    assert np.array_equal(dataset_features(data, ["b", "a"]), [[2, 1], [4, 3]])
    with pytest.raises(DataShapeError) as excinfo:
        dataset_features(data, ["a", "c"])
    assert excinfo.value.column == "c"


def test_images_to_features_pads_and_truncates():
    images = [[1, 2, 3, 4, 5], [1, 2]]
    out = images_to_features(images, (1, 2, 2))
    assert out.shape == (2, 4)
    assert np.array_equal(out[0], [1, 2, 3, 4])
    assert np.array_equal(out[1], [1, 2, 0, 0])


def test_images_to_processed_records_shape():
    processed = images_to_processed([[0.0] * 4, [1.0] * 4], [0, 1], (1, 2, 2))
    assert processed.metadata["image_shape"] == [1, 2, 2]
    assert processed.feature_names[0] == "pixel_0"
    with pytest.raises(DataShapeError):
        images_to_processed([[0.0] * 4], [0, 1], (1, 2, 2))


def test_to_sequences_windows_label_last_row():
    features = np.arange(10, dtype=np.float32).reshape(5, 2)
    labels = np.arange(5, dtype=np.float32)
    windows, targets = to_sequences(features, labels, 3)

    assert windows.shape == (3, 3, 2)
    assert np.array_equal(windows[0], features[0:3])
    assert np.array_equal(targets, [2, 3, 4])


def test_to_sequences_too_short_is_empty():
    windows, targets = to_sequences(np.zeros((2, 3)), np.zeros(2), 5)
    assert windows.shape == (0, 5, 3)
    assert targets.shape == (0,)
