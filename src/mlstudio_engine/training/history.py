# src/mlstudio_engine/training/history.py
from __future__ import annotations

from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class TrainingProgress(BaseModel):
    """Aggregates for one completed epoch."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    epoch: int = Field(..., ge=1)
    loss: float
    accuracy: Optional[float] = None
    mae: Optional[float] = None
    validation_loss: Optional[float] = Field(None, alias="val_loss")
    validation_accuracy: Optional[float] = Field(None, alias="val_accuracy")
    validation_mae: Optional[float] = Field(None, alias="val_mae")


class History:
    """
    Append-only sequence of TrainingProgress, one per completed epoch.

    Epochs must arrive in order starting at 1; entries are never replaced.
    """

    def __init__(self, entries: Optional[Iterable[TrainingProgress]] = None):
        self._entries: List[TrainingProgress] = []
        for entry in entries or []:
            self.append(entry)

    def append(self, progress: TrainingProgress) -> None:
        expected = len(self._entries) + 1
        if progress.epoch != expected:
            raise ValueError(f"Expected epoch {expected}, got {progress.epoch}")
        self._entries.append(progress)

    @property
    def entries(self) -> Tuple[TrainingProgress, ...]:
        return tuple(self._entries)

    @property
    def last(self) -> Optional[TrainingProgress]:
        return self._entries[-1] if self._entries else None

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[TrainingProgress]:
        return iter(tuple(self._entries))

    def __getitem__(self, index: int) -> TrainingProgress:
        return self._entries[index]

    def series(self, name: str) -> List[Optional[float]]:
        return [getattr(e, name) for e in self._entries]

    def to_records(self) -> List[Dict[str, Any]]:
        return [e.model_dump() for e in self._entries]

    @classmethod
    def from_records(cls, records: Iterable[Dict[str, Any]]) -> "History":
        return cls(TrainingProgress.model_validate(r) for r in records)
