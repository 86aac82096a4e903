# src/mlstudio_engine/models/model.py
from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Mapping, Optional, Sequence

import numpy as np
import torch
import torch.nn as nn

from mlstudio_engine.buffers import BufferScope
from mlstudio_engine.errors import DataShapeError, ModelBusyError, NotTrainedError
from mlstudio_engine.models.architecture import ModelArchitecture
from mlstudio_engine.models.families import ModelFamily
from mlstudio_engine.models.hyperparameters import Hyperparameters
from mlstudio_engine.models.layers import build_network
from mlstudio_engine.models.losses import get_loss, get_metric
from mlstudio_engine.models.registry import build_architecture, coerce_hyperparameters

if TYPE_CHECKING:
    from mlstudio_engine.training.history import History

LOGGER = logging.getLogger(__name__)

PREDICT_CHUNK = 1024


def init_network(architecture: ModelArchitecture, seed: Optional[int] = None) -> nn.Sequential:
    """Instantiate the layers; with a seed, parameter init is reproducible."""
    if seed is None:
        return build_network(architecture.layers)
    with torch.random.fork_rng(devices=[]):
        torch.manual_seed(seed)
        return build_network(architecture.layers)


class Model:
    """
    A compiled network: layers, Adam optimizer and the family's loss/metrics.

    The parameters are mutated in place during training. Only one caller may
    train a given Model at a time (see ``exclusive``).
    """

    def __init__(
        self,
        architecture: ModelArchitecture,
        hyperparameters: Optional[Hyperparameters | Mapping[str, Any]] = None,
        feature_names: Optional[Sequence[str]] = None,
        label_name: Optional[str] = None,
        network: Optional[nn.Sequential] = None,
    ):
        self.architecture = architecture
        self.hyperparameters = coerce_hyperparameters(hyperparameters)
        self.feature_names: List[str] = list(feature_names or [])
        self.label_name = label_name
        self.network = network if network is not None else init_network(
            architecture, self.hyperparameters.seed
        )
        self.loss_fn = get_loss(architecture.loss)
        self.metric_fns = {name: get_metric(name) for name in architecture.metrics}
        self.optimizer = torch.optim.Adam(
            self.network.parameters(), lr=self.hyperparameters.learning_rate
        )
        self.trained = False
        self.degraded = False
        self.history: Optional["History"] = None
        self._lock = threading.Lock()

    @classmethod
    def build(
        cls,
        family: str | ModelFamily,
        input_shape: Sequence[int] | int,
        hyperparameters: Optional[Hyperparameters | Mapping[str, Any]] = None,
        feature_names: Optional[Sequence[str]] = None,
        label_name: Optional[str] = None,
    ) -> "Model":
        hp = coerce_hyperparameters(hyperparameters)
        arch = build_architecture(family, input_shape, hp)
        model = cls(arch, hp, feature_names=feature_names, label_name=label_name)
        LOGGER.info(
            "Built %s model: %d layers, %d parameters",
            arch.family.value,
            len(arch.layers),
            model.parameter_count(),
        )
        return model

    def __repr__(self) -> str:
        return (
            f"Model(family={self.family.value}, input_shape={self.input_shape}, "
            f"trained={self.trained}, degraded={self.degraded})"
        )

    # --------------------------------------------------------
    # Properties
    # --------------------------------------------------------

    @property
    def family(self) -> ModelFamily:
        return self.architecture.family

    @property
    def input_shape(self):
        return tuple(self.architecture.input_shape)

    @property
    def output_units(self) -> int:
        return self.architecture.output_units

    @property
    def is_multi_output(self) -> bool:
        return self.output_units > 1

    @property
    def is_classifier(self) -> bool:
        return "accuracy" in self.architecture.metrics

    def parameter_count(self) -> int:
        return sum(p.numel() for p in self.network.parameters())

    # --------------------------------------------------------
    # Concurrency
    # --------------------------------------------------------

    @contextmanager
    def exclusive(self) -> Iterator["Model"]:
        """Hold the training lock; a second concurrent holder gets ModelBusyError."""
        if not self._lock.acquire(blocking=False):
            raise ModelBusyError(f"{self!r} is already being trained by another caller")
        try:
            yield self
        finally:
            self._lock.release()

    # --------------------------------------------------------
    # Tensors
    # --------------------------------------------------------

    def as_batch(self, x: Any) -> np.ndarray:
        """Validate and coerce inputs to ``(n, *input_shape)`` float32."""
        try:
            arr = np.asarray(x, dtype=np.float32)
        except (TypeError, ValueError) as exc:
            raise DataShapeError(f"Non-numeric model input: {exc}") from exc

        expected = self.input_shape
        if arr.shape == expected:
            arr = arr[None, ...]
        if self.family.is_image and arr.ndim == 4:
            arr = arr.reshape(arr.shape[0], -1)
        if arr.shape[1:] != expected:
            raise DataShapeError(
                f"Expected input rows of shape {expected}, got {tuple(arr.shape[1:])}"
            )
        if not np.all(np.isfinite(arr)):
            raise DataShapeError("Model input contains NaN or infinite values")
        return arr

    def check_targets(self, labels: np.ndarray) -> None:
        """Class-id targets of softmax models must be integers in range."""
        if not self.is_multi_output or labels.size == 0:
            return
        if not np.all(np.isfinite(labels)) or not np.all(labels == np.round(labels)):
            raise DataShapeError("Class labels must be integer ids", column=self.label_name)
        lo, hi = labels.min(), labels.max()
        if lo < 0 or hi >= self.output_units:
            raise DataShapeError(
                f"Class ids must lie in [0, {self.output_units}); got [{lo:g}, {hi:g}]",
                column=self.label_name,
            )

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        out = self.network(x)
        return out if self.is_multi_output else out.squeeze(-1)

    def metrics_on(self, pred: torch.Tensor, target: torch.Tensor) -> Dict[str, float]:
        return {name: float(fn(pred, target)) for name, fn in self.metric_fns.items()}

    # --------------------------------------------------------
    # Inference
    # --------------------------------------------------------

    def predict(self, x: Any) -> np.ndarray:
        """
        Raw model outputs: ``(n,)`` for single-output models, ``(n, k)``
        class probabilities for softmax models.
        """
        if not self.trained:
            raise NotTrainedError(f"{self.family.value} model has not been trained or loaded")
        arr = self.as_batch(x)
        outputs: List[np.ndarray] = []
        self.network.eval()
        with BufferScope("predict") as scope, torch.no_grad():
            inputs = scope.tensor("inputs", arr)
            for start in range(0, len(arr), PREDICT_CHUNK):
                outputs.append(self.forward(inputs[start : start + PREDICT_CHUNK]).numpy())
        if not outputs:
            shape = (0, self.output_units) if self.is_multi_output else (0,)
            return np.empty(shape, dtype=np.float32)
        return np.concatenate(outputs).astype(np.float32)

    def predict_classes(self, x: Any) -> np.ndarray:
        """Class ids: argmax for softmax outputs, ``> 0.5`` otherwise."""
        raw = self.predict(x)
        if raw.ndim == 2:
            return raw.argmax(axis=1).astype(np.float32)
        return (raw > 0.5).astype(np.float32)
