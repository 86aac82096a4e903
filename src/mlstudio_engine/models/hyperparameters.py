# src/mlstudio_engine/models/hyperparameters.py
from __future__ import annotations

from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class Hyperparameters(BaseModel):
    """
    Model and training hyperparameters.

    Accepts snake_case names and the camelCase keys used by stored pipelines
    (``learningRate``, ``batchSize``, ``hiddenLayers`` ...). Family-specific
    defaults that are left as ``None`` here are resolved by each builder.
    Unknown keys are kept so that records round-trip unchanged.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    # training
    learning_rate: float = Field(0.01, alias="learningRate", gt=0.0)
    epochs: int = Field(100, ge=1)
    batch_size: int = Field(32, alias="batchSize", ge=1)
    shuffle: bool = False
    seed: Optional[int] = None

    # feed-forward / recurrent
    hidden_layers: List[int] = Field(default_factory=lambda: [64, 32], alias="hiddenLayers")
    activation: str = "relu"
    dropout: Optional[float] = Field(None, ge=0.0, lt=1.0)
    units: int = Field(50, ge=1)
    sequence_length: int = Field(10, ge=1)

    # tree / clustering approximations
    n_estimators: int = Field(100, ge=1)
    max_depth: Optional[int] = Field(None, ge=1)
    n_clusters: int = Field(3, ge=1)

    # convolutional
    filters1: Optional[int] = None
    filters2: Optional[int] = None
    filters3: Optional[int] = None
    kernel_size: int = Field(3, alias="kernelSize", ge=1)
    dense_units: Optional[int] = Field(None, alias="denseUnits")
    num_classes: int = Field(2, alias="numClasses", ge=1)
    image_shape: Optional[Tuple[int, int, int]] = Field(
        None, alias="imageShape", description="Channels-first (C, H, W)."
    )

    def field_was_set(self, name: str) -> bool:
        return name in self.model_fields_set
