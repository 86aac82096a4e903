# src/mlstudio_engine/config/models.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from mlstudio_engine.data.schemas import StepType


# ============================================================
# Random seeds
# ============================================================


class RandomSeedConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    python: Optional[int] = None
    numpy: Optional[int] = None
    torch: Optional[int] = None
    global_seed: Optional[int] = Field(
        default=None,
        description="If set, overrides python + numpy + torch seeds.",
    )


# ============================================================
# Preprocessing steps
# ============================================================


class StepConfig(BaseModel):
    """
    One preprocessing step as written in a config file.

    ``type`` picks the DataPreprocessor method; the remaining keys are its
    keyword arguments (``columns``, ``strategy``, ``method``, ``factor``,
    ``target_column``, ``operations``).
    """

    model_config = ConfigDict(extra="allow")

    type: StepType

    def as_step(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


# ============================================================
# Training settings
# ============================================================


class TrainingConfig(BaseModel):
    """
    What to train and how to partition the data.

    Also accepts the camelCase keys stored by saved pipelines.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True, protected_namespaces=())

    model_type: str = Field("linear_regression", alias="modelType")
    model_parameters: Dict[str, Any] = Field(default_factory=dict, alias="modelParameters")
    test_size: float = Field(0.2, alias="testSize", ge=0.0, le=1.0)
    validation_size: float = Field(0.2, alias="validationSize", ge=0.0, le=1.0)
    random_state: int = Field(42, alias="randomState")

    @model_validator(mode="after")
    def _check_ratios(self) -> "TrainingConfig":
        if self.test_size + self.validation_size > 1.0:
            raise ValueError("test_size + validation_size must not exceed 1")
        return self


# ============================================================
# Output settings
# ============================================================


class OutputSettings(BaseModel):
    model_config = ConfigDict(extra="allow")

    directory: Optional[str] = None
    save_model: bool = True
    save_report: bool = True
    save_history: bool = True


# ============================================================
# Top-level EngineConfig
# ============================================================


class EngineConfig(BaseModel):
    """
    A training run: data, preprocessing, model and output locations.
    """

    model_config = ConfigDict(extra="allow")

    name: str = "default_run"

    data_source: Optional[str] = None
    feature_columns: List[str] = Field(default_factory=list)
    label_column: Optional[str] = None

    preprocessing: List[StepConfig] = Field(default_factory=list)
    training: TrainingConfig = Field(default_factory=TrainingConfig)
    seeds: RandomSeedConfig = Field(default_factory=RandomSeedConfig)
    output: OutputSettings = Field(default_factory=OutputSettings)
