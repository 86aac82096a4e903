from __future__ import annotations

from pathlib import Path
import json

import pytest

from mlstudio_engine.config.loader import load_config, model_seed, seed_everything
from mlstudio_engine.config.models import EngineConfig, TrainingConfig


def test_load_config_yaml(tmp_path: Path):
    cfg_path = tmp_path / "cfg.yaml"
    cfg_path.write_text(
        """
name: test_run
data_source: "/tmp/data.csv"
feature_columns: [x1, x2]
label_column: y
preprocessing:
  - type: handle_missing
    strategy: median
  - type: scale
    columns: [x1]
training:
  modelType: neural_network
  modelParameters:
    hiddenLayers: [16, 8]
    epochs: 20
  testSize: 0.1
seeds:
  global_seed: 123
"""
    )
    cfg = load_config(cfg_path)
    assert isinstance(cfg, EngineConfig)
    assert cfg.name == "test_run"
    assert cfg.feature_columns == ["x1", "x2"]
    assert cfg.preprocessing[0].as_step() == {"type": "handle_missing", "strategy": "median"}
    assert cfg.preprocessing[1].as_step()["columns"] == ["x1"]
    assert cfg.training.model_type == "neural_network"
    assert cfg.training.model_parameters["hiddenLayers"] == [16, 8]
    assert cfg.training.test_size == 0.1
    assert cfg.training.validation_size == 0.2
    assert cfg.seeds.global_seed == 123


def test_load_config_json(tmp_path: Path):
    cfg_path = tmp_path / "cfg.json"
    data = {
        "name": "abc",
        "training": {"model_type": "lstm", "model_parameters": {"units": 4}},
        "output": {"directory": "out", "save_report": False},
    }
    cfg_path.write_text(json.dumps(data))
    cfg = load_config(cfg_path)
    assert cfg.name == "abc"
    assert cfg.training.model_type == "lstm"
    assert cfg.output.directory == "out"
    assert cfg.output.save_report is False
    assert cfg.output.save_model is True


def test_empty_yaml_gives_defaults(tmp_path: Path):
    cfg_path = tmp_path / "empty.yaml"
    cfg_path.write_text("")
    cfg = load_config(cfg_path)
    assert cfg.training.model_type == "linear_regression"
    assert cfg.preprocessing == []


def test_invalid_configs_raise(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "missing.yaml")

    bad_suffix = tmp_path / "cfg.txt"
    bad_suffix.write_text("name: x")
    with pytest.raises(ValueError):
        load_config(bad_suffix)

    bad_step = tmp_path / "step.json"
    bad_step.write_text(json.dumps({"preprocessing": [{"type": "shuffle"}]}))
    with pytest.raises(ValueError):
        load_config(bad_step)

    bad_ratio = tmp_path / "ratio.json"
    bad_ratio.write_text(json.dumps({"training": {"test_size": 0.7, "validation_size": 0.5}}))
    with pytest.raises(ValueError):
        load_config(bad_ratio)


def test_training_config_accepts_both_key_styles():
    a = TrainingConfig.model_validate({"modelType": "svm", "validationSize": 0.0})
    b = TrainingConfig.model_validate({"model_type": "svm", "validation_size": 0.0})
    assert a.model_type == b.model_type == "svm"
    assert a.validation_size == b.validation_size == 0.0


def test_seed_everything_global():
    cfg = EngineConfig(seeds={"global_seed": 999})
    seed_everything(cfg)
    # Validate deterministic random numbers
    a = [__import__("random").random(), __import__("numpy").random.rand()]
    seed_everything(cfg)
    b = [__import__("random").random(), __import__("numpy").random.rand()]
    assert a == b


def test_model_seed_follows_seed_priority():
    assert model_seed(EngineConfig(seeds={"global_seed": 7, "torch": 3})) == 7
    assert model_seed(EngineConfig(seeds={"torch": 3, "numpy": 5})) == 3
    assert model_seed(EngineConfig()) is None
