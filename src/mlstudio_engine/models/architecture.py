# src/mlstudio_engine/models/architecture.py
from __future__ import annotations

import math
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from mlstudio_engine.errors import DataShapeError
from mlstudio_engine.models.families import ModelFamily

Shape = Tuple[int, ...]


class LayerSpec(BaseModel):
    """
    One layer of an architecture, independent of any tensor library.

    Shapes exclude the batch dimension: ``(f,)`` for dense inputs,
    ``(L, f)`` for sequences and ``(C, H, W)`` for images.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    kind: str
    input_shape: Shape
    output_shape: Shape
    config: Dict[str, Any] = Field(default_factory=dict)

    @property
    def input_width(self) -> int:
        return self.input_shape[-1] if self.input_shape else 0


class ModelArchitecture(BaseModel):
    """Ordered layer list plus everything needed to compile and rebuild it."""

    model_config = ConfigDict(frozen=True)

    family: ModelFamily
    input_shape: Shape
    output_units: int
    output_activation: str
    loss: str
    metrics: List[str] = Field(default_factory=list)
    layers: List[LayerSpec]

    @property
    def output_shape(self) -> Shape:
        return self.layers[-1].output_shape

    def summary(self) -> str:
        lines = [f"{self.family.value}: input {self.input_shape}, loss={self.loss}"]
        for spec in self.layers:
            lines.append(f"  {spec.name:<24} {spec.kind:<18} {spec.input_shape} -> {spec.output_shape}")
        return "\n".join(lines)


def _windowed(size: int, kernel: int, stride: int, padding: int) -> int:
    return (size + 2 * padding - kernel) // stride + 1


class ArchitectureBuilder:
    """
    Appends layers while tracking the running shape.

    Convolutions use ``kernel // 2`` padding (same-size output at stride 1);
    pooling is unpadded unless ``same`` is requested.
    """

    def __init__(self, input_shape: Shape):
        if not input_shape or any(int(d) <= 0 for d in input_shape):
            raise DataShapeError(f"Invalid input shape {tuple(input_shape)}")
        self.input_shape: Shape = tuple(int(d) for d in input_shape)
        self.shape: Shape = self.input_shape
        self.layers: List[LayerSpec] = []

    def _push(self, kind: str, output_shape: Shape, **config: Any) -> "ArchitectureBuilder":
        if any(d <= 0 for d in output_shape):
            raise DataShapeError(
                f"Layer {kind} would produce empty output {output_shape} from {self.shape}"
            )
        spec = LayerSpec(
            name=f"{kind}_{len(self.layers)}",
            kind=kind,
            input_shape=self.shape,
            output_shape=tuple(output_shape),
            config=config,
        )
        self.layers.append(spec)
        self.shape = spec.output_shape
        return self

    def _require_rank(self, kind: str, rank: int) -> None:
        if len(self.shape) != rank:
            raise DataShapeError(f"{kind} expects a rank-{rank} input, got shape {self.shape}")

    def dense(self, units: int, activation: str = "linear") -> "ArchitectureBuilder":
        self._require_rank("dense", 1)
        return self._push("dense", (int(units),), units=int(units), activation=activation)

    def dropout(self, rate: Optional[float]) -> "ArchitectureBuilder":
        if not rate:
            return self
        return self._push("dropout", self.shape, rate=float(rate))

    def lstm(self, units: int, dropout: float = 0.0) -> "ArchitectureBuilder":
        self._require_rank("lstm", 2)
        return self._push("lstm", (int(units),), units=int(units), dropout=float(dropout or 0.0))

    def reshape(self, target: Shape) -> "ArchitectureBuilder":
        target = tuple(int(d) for d in target)
        if math.prod(target) != math.prod(self.shape):
            raise DataShapeError(f"Cannot reshape {self.shape} into {target}")
        return self._push("reshape", target, target=list(target))

    def conv2d(
        self, filters: int, kernel_size: int, stride: int = 1, activation: str = "relu"
    ) -> "ArchitectureBuilder":
        self._require_rank("conv2d", 3)
        _, h, w = self.shape
        pad = kernel_size // 2
        out = (
            int(filters),
            _windowed(h, kernel_size, stride, pad),
            _windowed(w, kernel_size, stride, pad),
        )
        return self._push(
            "conv2d",
            out,
            filters=int(filters),
            kernel_size=int(kernel_size),
            stride=int(stride),
            padding=pad,
            activation=activation,
        )

    def max_pool2d(
        self, pool_size: int = 2, stride: Optional[int] = None, same: bool = False
    ) -> "ArchitectureBuilder":
        self._require_rank("max_pool2d", 3)
        stride = stride or pool_size
        pad = pool_size // 2 if same else 0
        c, h, w = self.shape
        out = (c, _windowed(h, pool_size, stride, pad), _windowed(w, pool_size, stride, pad))
        return self._push("max_pool2d", out, pool_size=pool_size, stride=stride, padding=pad)

    def flatten(self) -> "ArchitectureBuilder":
        return self._push("flatten", (math.prod(self.shape),))

    def global_avg_pool2d(self) -> "ArchitectureBuilder":
        self._require_rank("global_avg_pool2d", 3)
        return self._push("global_avg_pool2d", (self.shape[0],))

    def build(
        self,
        family: ModelFamily,
        output_activation: str,
        loss: str,
        metrics: List[str],
    ) -> ModelArchitecture:
        if not self.layers:
            raise DataShapeError("Architecture has no layers")
        return ModelArchitecture(
            family=family,
            input_shape=self.input_shape,
            output_units=self.shape[-1],
            output_activation=output_activation,
            loss=loss,
            metrics=list(metrics),
            layers=list(self.layers),
        )
