# src/mlstudio_engine/models/losses.py
from __future__ import annotations

from typing import Callable, Dict

import torch

from mlstudio_engine.errors import ReconstructionError

EPSILON = 1e-7

TensorFn = Callable[[torch.Tensor, torch.Tensor], torch.Tensor]

# Single-output predictions are passed as (batch,), multi-output as (batch, k)
# with class-id targets.


def mean_squared_error(pred: torch.Tensor, target: torch.Tensor) -> torch.Tensor:
    return torch.mean((pred - target) ** 2)


def binary_crossentropy(pred: torch.Tensor, target: torch.Tensor) -> torch.Tensor:
    p = pred.clamp(EPSILON, 1.0 - EPSILON)
    return -torch.mean(target * torch.log(p) + (1.0 - target) * torch.log(1.0 - p))


def categorical_crossentropy(pred: torch.Tensor, target: torch.Tensor) -> torch.Tensor:
    p = pred.clamp(EPSILON, 1.0)
    picked = p.gather(1, target.long().unsqueeze(1)).squeeze(1)
    return -torch.mean(torch.log(picked))


def hinge(pred: torch.Tensor, target: torch.Tensor) -> torch.Tensor:
    signed = target.gt(0).to(pred.dtype) * 2.0 - 1.0
    return torch.mean(torch.clamp(1.0 - signed * pred, min=0.0))


def mean_absolute_error(pred: torch.Tensor, target: torch.Tensor) -> torch.Tensor:
    return torch.mean(torch.abs(pred - target))


def accuracy(pred: torch.Tensor, target: torch.Tensor) -> torch.Tensor:
    if pred.ndim == 2:
        hits = pred.argmax(dim=1) == target.long()
    else:
        hits = pred.gt(0.5) == target.gt(0.5)
    return hits.to(torch.float32).mean()


LOSSES: Dict[str, TensorFn] = {
    "mse": mean_squared_error,
    "binary_crossentropy": binary_crossentropy,
    "categorical_crossentropy": categorical_crossentropy,
    "hinge": hinge,
}

METRICS: Dict[str, TensorFn] = {
    "mae": mean_absolute_error,
    "accuracy": accuracy,
}


def get_loss(name: str) -> TensorFn:
    if name not in LOSSES:
        raise ReconstructionError(f"Unknown loss '{name}'. Available: {list(LOSSES)}")
    return LOSSES[name]


def get_metric(name: str) -> TensorFn:
    if name not in METRICS:
        raise ReconstructionError(f"Unknown metric '{name}'. Available: {list(METRICS)}")
    return METRICS[name]
