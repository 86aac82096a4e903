"""Training Orchestrator: epoch loop, progress history and buffer scoping."""
from mlstudio_engine.buffers import BufferScope
from mlstudio_engine.training.history import History, TrainingProgress
from mlstudio_engine.training.orchestrator import ProgressCallback, evaluate_loss, fit

__all__ = [
    "BufferScope",
    "History",
    "ProgressCallback",
    "TrainingProgress",
    "evaluate_loss",
    "fit",
]
