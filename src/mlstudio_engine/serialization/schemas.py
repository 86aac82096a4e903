# src/mlstudio_engine/serialization/schemas.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from mlstudio_engine.data.schemas import Recipe
from mlstudio_engine.training.history import TrainingProgress

FORMAT_VERSION = 1


class ParameterTensor(BaseModel):
    """One named parameter, flattened row-major."""

    name: str
    shape: List[int]
    dtype: str = "float32"
    values: List[float]


class ModelMetadata(BaseModel):
    feature_names: List[str] = Field(default_factory=list)
    label_name: Optional[str] = None
    input_shape: List[int] = Field(default_factory=list)
    output_shape: List[int] = Field(default_factory=list)


class SerializedModel(BaseModel):
    """
    Persistence-safe record of a trained model.

    ``architecture`` is kept as a plain mapping so that records with layer
    kinds this version cannot rebuild still parse; reconstruction validates it.
    """

    model_config = ConfigDict(extra="ignore")

    format_version: int = FORMAT_VERSION
    family_id: str
    architecture: Dict[str, Any]
    parameter_values: List[ParameterTensor] = Field(default_factory=list)
    hyperparameters: Dict[str, Any] = Field(default_factory=dict)
    recipe: Optional[Recipe] = None
    history: List[TrainingProgress] = Field(default_factory=list)
    metrics: Dict[str, float] = Field(default_factory=dict)
    metadata: ModelMetadata = Field(default_factory=ModelMetadata)
