# src/mlstudio_engine/training/orchestrator.py
from __future__ import annotations

import logging
import math
from typing import Callable, Dict, Optional, Tuple

import numpy as np
import torch

from mlstudio_engine.buffers import BufferScope
from mlstudio_engine.errors import DataShapeError, TrainingError
from mlstudio_engine.models.model import Model
from mlstudio_engine.preprocessing.splits import Partition
from mlstudio_engine.training.history import History, TrainingProgress

LOGGER = logging.getLogger(__name__)

ProgressCallback = Callable[[TrainingProgress], None]


def _labels(partition: Partition, model: Model) -> np.ndarray:
    try:
        labels = np.asarray(partition.labels, dtype=np.float32).reshape(-1)
    except (TypeError, ValueError) as exc:
        raise DataShapeError(f"Non-numeric label values: {exc}", column=model.label_name) from exc
    if not np.all(np.isfinite(labels)):
        row = int(np.flatnonzero(~np.isfinite(labels))[0])
        raise DataShapeError("Label is NaN or infinite", column=model.label_name, row=row)
    model.check_targets(labels)
    return labels


def _run_epoch(
    model: Model,
    features: torch.Tensor,
    labels: torch.Tensor,
    batch_size: int,
    order: Optional[np.ndarray],
    epoch: int,
) -> Tuple[float, Dict[str, float]]:
    model.network.train()
    n = features.shape[0]
    loss_sum = 0.0
    metric_sums = {name: 0.0 for name in model.metric_fns}

    for start in range(0, n, batch_size):
        if order is None:
            xb = features[start : start + batch_size]
            yb = labels[start : start + batch_size]
        else:
            idx = torch.from_numpy(order[start : start + batch_size])
            xb, yb = features[idx], labels[idx]

        model.optimizer.zero_grad()
        pred = model.forward(xb)
        loss = model.loss_fn(pred, yb)
        if not torch.isfinite(loss):
            raise TrainingError(
                f"Non-finite loss at epoch {epoch}, batch starting at row {start}"
            )
        loss.backward()
        model.optimizer.step()

        k = yb.shape[0]
        loss_sum += float(loss.item()) * k
        with torch.no_grad():
            for name, value in model.metrics_on(pred.detach(), yb).items():
                metric_sums[name] += value * k

    return loss_sum / n, {name: total / n for name, total in metric_sums.items()}


def evaluate_loss(
    model: Model, features: torch.Tensor, labels: torch.Tensor, batch_size: int
) -> Tuple[float, Dict[str, float]]:
    """Batch-size weighted loss and metrics without updating parameters."""
    model.network.eval()
    n = features.shape[0]
    loss_sum = 0.0
    metric_sums = {name: 0.0 for name in model.metric_fns}
    with torch.no_grad():
        for start in range(0, n, batch_size):
            xb = features[start : start + batch_size]
            yb = labels[start : start + batch_size]
            pred = model.forward(xb)
            k = yb.shape[0]
            loss_sum += float(model.loss_fn(pred, yb).item()) * k
            for name, value in model.metrics_on(pred, yb).items():
                metric_sums[name] += value * k
    return loss_sum / n, {name: total / n for name, total in metric_sums.items()}


def fit(
    model: Model,
    train: Partition,
    validation: Optional[Partition] = None,
    epochs: Optional[int] = None,
    batch_size: Optional[int] = None,
    callback: Optional[ProgressCallback] = None,
) -> History:
    """
    Run the full epoch loop on ``model`` and return its History.

    Every configured epoch runs; there is no early stopping. ``callback`` is
    called synchronously once per epoch, in order. The first data or numeric
    failure aborts the run. Tensor buffers live in a BufferScope and are
    released on return and on error.
    """
    hp = model.hyperparameters
    epochs = epochs if epochs is not None else hp.epochs
    batch_size = batch_size if batch_size is not None else hp.batch_size
    if epochs < 1 or batch_size < 1:
        raise ValueError("epochs and batch_size must be >= 1")
    if train.row_count == 0:
        raise DataShapeError("Training partition is empty")

    x_train = model.as_batch(train.features)
    y_train = _labels(train, model)
    has_val = validation is not None and validation.row_count > 0
    if has_val:
        x_val = model.as_batch(validation.features)
        y_val = _labels(validation, model)

    rng = np.random.default_rng(hp.seed) if hp.shuffle else None
    history = History()

    with model.exclusive(), BufferScope(f"fit:{model.family.value}") as scope:
        xt = scope.tensor("train_features", x_train)
        yt = scope.tensor("train_labels", y_train)
        if has_val:
            xv = scope.tensor("validation_features", x_val)
            yv = scope.tensor("validation_labels", y_val)

        LOGGER.info(
            "Training %s: %d epochs, batch size %d, %d train rows, %d validation rows",
            model.family.value,
            epochs,
            batch_size,
            len(x_train),
            len(x_val) if has_val else 0,
        )

        for epoch in range(1, epochs + 1):
            order = rng.permutation(len(x_train)) if rng is not None else None
            loss, metrics = _run_epoch(model, xt, yt, batch_size, order, epoch)
            if not math.isfinite(loss):
                raise TrainingError(f"Non-finite loss at epoch {epoch}")

            val_loss, val_metrics = None, {}
            if has_val:
                val_loss, val_metrics = evaluate_loss(model, xv, yv, batch_size)

            progress = TrainingProgress(
                epoch=epoch,
                loss=loss,
                accuracy=metrics.get("accuracy"),
                mae=metrics.get("mae"),
                validation_loss=val_loss,
                validation_accuracy=val_metrics.get("accuracy"),
                validation_mae=val_metrics.get("mae"),
            )
            history.append(progress)
            LOGGER.info(
                "Epoch %d/%d - loss %.6f%s",
                epoch,
                epochs,
                loss,
                f" - val_loss {val_loss:.6f}" if val_loss is not None else "",
            )
            if callback is not None:
                callback(progress)

        model.trained = True
        model.history = history

    LOGGER.info("Training finished: final loss %.6f", history.last.loss)
    return history
