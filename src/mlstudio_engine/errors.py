# src/mlstudio_engine/errors.py
from __future__ import annotations

from typing import Any, Optional


class EngineError(Exception):
    """Base class for every error raised by the training engine."""

    pass


class DataShapeError(EngineError):
    """
    Row/column length mismatch, or a non-numeric value where a number is required.

    ``column`` and ``row`` identify the offending cell when known.
    """

    def __init__(
        self,
        message: str,
        column: Optional[str] = None,
        row: Optional[int] = None,
        value: Any = None,
    ):
        self.column = column
        self.row = row
        self.value = value
        location = []
        if column is not None:
            location.append(f"column '{column}'")
        if row is not None:
            location.append(f"row {row}")
        if location:
            message = f"{message} ({', '.join(location)})"
        super().__init__(message)


class UnsupportedFamilyError(EngineError, KeyError):
    """Unknown model-family id."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message.
        return str(self.args[0]) if self.args else ""


class NotTrainedError(EngineError):
    """predict/serialize called before the model was trained or loaded."""

    pass


class ReconstructionError(EngineError):
    """A serialized architecture references a layer kind that cannot be rebuilt."""

    pass


class TrainingError(EngineError):
    """Unrecoverable numeric failure during the epoch loop (e.g. non-finite loss)."""

    pass


class ModelBusyError(EngineError):
    """A model object is already being trained by another caller."""

    pass
