# src/mlstudio_engine/evaluation/metrics.py
from __future__ import annotations

from typing import Dict, List, Sequence, Tuple

import numpy as np
from sklearn.metrics import (
    accuracy_score,
    confusion_matrix,
    mean_absolute_error,
    mean_squared_error,
    precision_recall_fscore_support,
    r2_score,
)

from mlstudio_engine.errors import DataShapeError

__all__ = [
    "binarize",
    "classification_metrics",
    "confusion_table",
    "r_squared",
    "regression_metrics",
]

THRESHOLD = 0.5


def _pair(y_true: Sequence[float], y_pred: Sequence[float]) -> Tuple[np.ndarray, np.ndarray]:
    y_true_arr = np.asarray(y_true, dtype=float).reshape(-1)
    y_pred_arr = np.asarray(y_pred, dtype=float).reshape(-1)
    if y_true_arr.shape != y_pred_arr.shape:
        raise DataShapeError(
            f"{y_true_arr.size} actual values but {y_pred_arr.size} predictions"
        )
    if y_true_arr.size == 0:
        raise DataShapeError("Cannot compute metrics on an empty partition")
    return y_true_arr, y_pred_arr


def binarize(predictions: Sequence[float], threshold: float = THRESHOLD) -> np.ndarray:
    """Map scores to {0, 1}; strictly greater than ``threshold`` is positive."""
    return (np.asarray(predictions, dtype=float) > threshold).astype(float)


def r_squared(y_true: Sequence[float], y_pred: Sequence[float]) -> float:
    """
    Coefficient of determination ``1 - SSres/SStot``.

    Parameters
    ----------
    y_true : Sequence[float]
        True target values.
    y_pred : Sequence[float]
        Predicted values.

    Returns
    -------
    float
        R². When the target is constant (``SStot == 0``) this is 1.0 for a
        perfect fit and 0.0 otherwise.
    """
    y_true_arr, y_pred_arr = _pair(y_true, y_pred)
    if y_true_arr.size < 2:
        return 1.0 if np.array_equal(y_true_arr, y_pred_arr) else 0.0
    return float(r2_score(y_true_arr, y_pred_arr))


def regression_metrics(y_true: Sequence[float], y_pred: Sequence[float]) -> Dict[str, float]:
    """
    MSE, RMSE, MAE and R².

    Parameters
    ----------
    y_true : Sequence[float]
        True target values.
    y_pred : Sequence[float]
        Predicted values.

    Returns
    -------
    dict
        Keys ``mse``, ``rmse``, ``mae`` and ``r2``.
    """
    y_true_arr, y_pred_arr = _pair(y_true, y_pred)
    mse = float(mean_squared_error(y_true_arr, y_pred_arr))
    return {
        "mse": mse,
        "rmse": float(np.sqrt(mse)),
        "mae": float(mean_absolute_error(y_true_arr, y_pred_arr)),
        "r2": r_squared(y_true_arr, y_pred_arr),
    }


def classification_metrics(
    y_true: Sequence[float], y_pred_classes: Sequence[float], multiclass: bool = False
) -> Dict[str, float]:
    """
    Accuracy, precision, recall and F1 of class predictions.

    Parameters
    ----------
    y_true : Sequence[float]
        Actual class values.
    y_pred_classes : Sequence[float]
        Predicted classes (already binarized or argmax'ed).
    multiclass : bool
        Macro-average over every observed class instead of scoring class 1.

    Returns
    -------
    dict
        Keys ``accuracy``, ``precision``, ``recall`` and ``f1_score``. Undefined
        ratios (no positive predictions, no positive actuals) are 0.
    """
    y_true_arr, y_pred_arr = _pair(y_true, y_pred_classes)
    if multiclass:
        precision, recall, f1, _ = precision_recall_fscore_support(
            y_true_arr, y_pred_arr, average="macro", zero_division=0
        )
    else:
        # positive class only, even when actuals hold values other than 0/1
        precision, recall, f1, _ = precision_recall_fscore_support(
            y_true_arr, y_pred_arr, labels=[1.0], average="micro", zero_division=0
        )
    return {
        "accuracy": float(accuracy_score(y_true_arr, y_pred_arr)),
        "precision": float(precision),
        "recall": float(recall),
        "f1_score": float(f1),
    }


def confusion_table(
    y_true: Sequence[float], y_pred_classes: Sequence[float]
) -> Tuple[List[float], np.ndarray]:
    """
    Confusion matrix over the sorted union of actual and predicted classes.

    Rows are actual classes and columns predicted classes, so each row sums
    to that class's actual count.
    """
    y_true_arr, y_pred_arr = _pair(y_true, y_pred_classes)
    classes = sorted(set(y_true_arr.tolist()) | set(y_pred_arr.tolist()))
    matrix = confusion_matrix(y_true_arr, y_pred_arr, labels=classes)
    return classes, matrix.astype(int)
