from mlstudio_engine.config.loader import load_config, model_seed, seed_everything
from mlstudio_engine.config.models import (
    EngineConfig,
    OutputSettings,
    RandomSeedConfig,
    StepConfig,
    TrainingConfig,
)

__all__ = [
    "EngineConfig",
    "OutputSettings",
    "RandomSeedConfig",
    "StepConfig",
    "TrainingConfig",
    "load_config",
    "model_seed",
    "seed_everything",
]
