from __future__ import annotations

from pathlib import Path
import json

import pandas as pd
import pytest

from mlstudio_engine.runner import run_from_config


def _write_data(tmp_path: Path) -> Path:
    df = pd.DataFrame(
        {
            "size": [1.0, 2.0, None, 4.0, 5.0, 6.0, 7.0, 8.0, 9.0, 10.0],
            "color": ["red", "blue"] * 5,
            "price": [3.0, 5.0, 7.0, 9.0, 11.0, 13.0, 15.0, 17.0, 19.0, 21.0],
        }
    )
    data_path = tmp_path / "houses.csv"
    df.to_csv(data_path, index=False)
    return data_path


def _write_config(tmp_path: Path, data_path: Path, **overrides) -> Path:
    cfg = {
        "name": "test_run",
        "data_source": str(data_path),
        "feature_columns": ["size", "color_red", "color_blue"],
        "label_column": "price",
        "preprocessing": [
            {"type": "handle_missing", "strategy": "mean", "columns": ["size"]},
            {"type": "encode", "columns": ["color"], "method": "one-hot"},
            {"type": "scale", "columns": ["size"]},
        ],
        "training": {"modelType": "linear_regression", "modelParameters": {"epochs": 5, "seed": 0}},
        "seeds": {"global_seed": 1},
    }
    cfg.update(overrides)
    cfg_path = tmp_path / "cfg.json"
    cfg_path.write_text(json.dumps(cfg))
    return cfg_path


def test_run_from_config_writes_outputs(tmp_path: Path):
    cfg_path = _write_config(tmp_path, _write_data(tmp_path))
    out_dir = tmp_path / "out"

    result = run_from_config(cfg_path, output_dir=out_dir)

    assert len(result.training.history) == 5
    assert result.training.partition_sizes == {"train": 6, "validation": 2, "test": 2}
    assert result.report is not None and "# Model Performance Report" in result.report
    assert set(result.written) == {"model", "report", "history"}

    saved = json.loads((out_dir / "model.json").read_text())
    assert saved["family_id"] == "linear_regression"
    assert saved["metadata"]["feature_names"] == ["size", "color_red", "color_blue"]
    assert [s["type"] for s in saved["recipe"]["steps"]] == ["handle_missing", "encode", "scale"]

    history = pd.read_csv(out_dir / "history.csv")
    assert history.shape[0] == 5
    assert list(history["epoch"]) == [1, 2, 3, 4, 5]


def test_run_without_output_directory_writes_nothing(tmp_path: Path):
    cfg_path = _write_config(tmp_path, _write_data(tmp_path))
    result = run_from_config(cfg_path)
    assert result.written == {}
    assert result.record.family_id == "linear_regression"


def test_run_requires_data_and_columns(tmp_path: Path):
    cfg_path = tmp_path / "cfg.json"
    cfg_path.write_text(json.dumps({"name": "no_data"}))
    with pytest.raises(ValueError):
        run_from_config(cfg_path)

    cfg_path = _write_config(tmp_path, _write_data(tmp_path), label_column=None)
    with pytest.raises(ValueError):
        run_from_config(cfg_path)


def test_config_seed_reaches_model_initialisation(tmp_path: Path):
    data_path = _write_data(tmp_path)
    training = {"modelType": "neural_network", "modelParameters": {"epochs": 2}}
    cfg_path = _write_config(tmp_path, data_path, training=training)

    first = run_from_config(cfg_path)
    second = run_from_config(cfg_path)

    assert first.record.hyperparameters["seed"] == 1
    assert [p.values for p in first.record.parameter_values] == [
        p.values for p in second.record.parameter_values
    ]
