# src/mlstudio_engine/models/layers.py
from __future__ import annotations

from collections import OrderedDict
from typing import Callable, Dict, Sequence

import torch
import torch.nn as nn

from mlstudio_engine.errors import ReconstructionError
from mlstudio_engine.models.architecture import LayerSpec

ACTIVATIONS: Dict[str, Callable[[], nn.Module]] = {
    "linear": nn.Identity,
    "relu": nn.ReLU,
    "sigmoid": nn.Sigmoid,
    "tanh": nn.Tanh,
    "softmax": lambda: nn.Softmax(dim=-1),
}


def activation_module(name: str) -> nn.Module:
    try:
        return ACTIVATIONS[name]()
    except KeyError:
        raise ReconstructionError(
            f"Unsupported activation '{name}'. Available: {list(ACTIVATIONS)}"
        ) from None


class Dense(nn.Module):
    """Fully connected layer, Glorot-normal weights and zero bias."""

    def __init__(self, in_features: int, units: int, activation: str = "linear"):
        super().__init__()
        self.linear = nn.Linear(in_features, units)
        nn.init.xavier_normal_(self.linear.weight)
        nn.init.zeros_(self.linear.bias)
        self.act = activation_module(activation)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return self.act(self.linear(x))


class Recurrent(nn.Module):
    """Single LSTM layer returning the last time step."""

    def __init__(self, input_size: int, units: int, dropout: float = 0.0):
        super().__init__()
        self.lstm = nn.LSTM(input_size=input_size, hidden_size=units, batch_first=True)
        self.drop = nn.Dropout(dropout) if dropout > 0 else nn.Identity()

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        out, _ = self.lstm(x)
        return self.drop(out[:, -1, :])


class Conv(nn.Module):
    def __init__(
        self,
        in_channels: int,
        filters: int,
        kernel_size: int,
        stride: int,
        padding: int,
        activation: str,
    ):
        super().__init__()
        self.conv = nn.Conv2d(in_channels, filters, kernel_size, stride=stride, padding=padding)
        self.act = activation_module(activation)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return self.act(self.conv(x))


class Reshape(nn.Module):
    def __init__(self, target: Sequence[int]):
        super().__init__()
        self.target = tuple(target)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return x.reshape(x.shape[0], *self.target)


class GlobalAvgPool2d(nn.Module):
    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return x.mean(dim=(2, 3))


# ===============================================================
# Layer factory registry
# ===============================================================

LayerFactory = Callable[[LayerSpec], nn.Module]
LAYER_FACTORIES: Dict[str, LayerFactory] = {}


def register_layer(kind: str, factory: LayerFactory) -> None:
    LAYER_FACTORIES[kind] = factory


def positive_size(spec: LayerSpec, key: str) -> int:
    """Read a size from a layer config; zero, negative and non-integer sizes are rejected."""
    value = spec.config[key]
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ReconstructionError(f"Layer '{spec.name}' has invalid {key}: {value!r}")
    return value


def build_layer(spec: LayerSpec) -> nn.Module:
    factory = LAYER_FACTORIES.get(spec.kind)
    if factory is None:
        raise ReconstructionError(
            f"Layer kind '{spec.kind}' cannot be rebuilt. Available: {list(LAYER_FACTORIES)}"
        )
    return factory(spec)


def build_network(layers: Sequence[LayerSpec]) -> nn.Sequential:
    """Instantiate a Sequential network; module names match the layer names."""
    return nn.Sequential(OrderedDict((spec.name, build_layer(spec)) for spec in layers))


register_layer(
    "dense",
    lambda s: Dense(s.input_width, positive_size(s, "units"), s.config.get("activation", "linear")),
)
register_layer("dropout", lambda s: nn.Dropout(s.config["rate"]))
register_layer(
    "lstm",
    lambda s: Recurrent(s.input_width, positive_size(s, "units"), s.config.get("dropout", 0.0)),
)
register_layer("reshape", lambda s: Reshape(s.config["target"]))
register_layer(
    "conv2d",
    lambda s: Conv(
        s.input_shape[0],
        positive_size(s, "filters"),
        positive_size(s, "kernel_size"),
        s.config.get("stride", 1),
        s.config.get("padding", s.config["kernel_size"] // 2),
        s.config.get("activation", "relu"),
    ),
)
register_layer(
    "max_pool2d",
    lambda s: nn.MaxPool2d(
        positive_size(s, "pool_size"),
        stride=s.config.get("stride"),
        padding=s.config.get("padding", 0),
    ),
)
register_layer("flatten", lambda s: nn.Flatten())
register_layer("global_avg_pool2d", lambda s: GlobalAvgPool2d())
