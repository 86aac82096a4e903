# src/mlstudio_engine/buffers.py
from __future__ import annotations

import logging
import threading
from typing import Dict, Optional

import numpy as np
import torch

LOGGER = logging.getLogger(__name__)


class BufferScope:
    """
    Owns the tensors created for one operation and releases them on exit.

    Use as a context manager; tensors are dropped on every exit path,
    including exceptions. ``live_count()`` reports how many tensors are held
    by open scopes across the process.
    """

    _live = 0
    _counter_lock = threading.Lock()

    def __init__(self, name: str):
        self.name = name
        self._buffers: Dict[str, torch.Tensor] = {}

    def __enter__(self) -> "BufferScope":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    def __len__(self) -> int:
        return len(self._buffers)

    def tensor(
        self, key: str, array: np.ndarray, dtype: Optional[torch.dtype] = torch.float32
    ) -> torch.Tensor:
        """Copy ``array`` into a new tensor owned by this scope."""
        if key in self._buffers:
            raise KeyError(f"Buffer '{key}' already allocated in scope '{self.name}'")
        t = torch.tensor(np.asarray(array), dtype=dtype)
        self._buffers[key] = t
        with BufferScope._counter_lock:
            BufferScope._live += 1
        return t

    def get(self, key: str) -> torch.Tensor:
        return self._buffers[key]

    def release(self) -> None:
        n = len(self._buffers)
        if not n:
            return
        self._buffers.clear()
        with BufferScope._counter_lock:
            BufferScope._live -= n
        LOGGER.debug("Released %d buffers from scope '%s'", n, self.name)

    @classmethod
    def live_count(cls) -> int:
        return cls._live
