# src/mlstudio_engine/config/loader.py
from __future__ import annotations

import json
import random
from pathlib import Path
from typing import Optional

import numpy as np
import torch
import yaml
from pydantic import ValidationError

from mlstudio_engine.config.models import EngineConfig


def load_config(path: str | Path) -> EngineConfig:
    """
    Load an EngineConfig from YAML or JSON.

    Automatically validates using Pydantic v2.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file does not exist: {path}")

    text = path.read_text()

    try:
        if path.suffix.lower() in {".yaml", ".yml"}:
            raw = yaml.safe_load(text)
        elif path.suffix.lower() == ".json":
            raw = json.loads(text)
        else:
            raise ValueError("Config path must be YAML or JSON.")
    except (yaml.YAMLError, json.JSONDecodeError, ValueError) as e:
        raise ValueError(f"Failed to parse config: {e}") from e

    try:
        return EngineConfig.model_validate(raw or {})
    except ValidationError as e:
        raise ValueError(f"Invalid EngineConfig: {e}") from e


def seed_everything(cfg: EngineConfig) -> None:
    """
    Seed Python, NumPy and torch for reproducibility.

    Priority:
        1. global_seed
        2. python + numpy + torch
    """
    if cfg.seeds.global_seed is not None:
        seed = cfg.seeds.global_seed
        random.seed(seed)
        np.random.seed(seed)
        torch.manual_seed(seed)
        return

    if cfg.seeds.python is not None:
        random.seed(cfg.seeds.python)

    if cfg.seeds.numpy is not None:
        np.random.seed(cfg.seeds.numpy)

    if cfg.seeds.torch is not None:
        torch.manual_seed(cfg.seeds.torch)


def model_seed(cfg: EngineConfig) -> Optional[int]:
    """
    Seed handed to model initialisation and shuffling.

    Follows the same priority as ``seed_everything``: ``global_seed`` first,
    then the torch seed.
    """
    if cfg.seeds.global_seed is not None:
        return cfg.seeds.global_seed
    return cfg.seeds.torch
