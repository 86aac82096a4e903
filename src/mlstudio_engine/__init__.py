"""ML training & evaluation engine: preprocessing, model families, training, evaluation, serialization."""

__version__ = "0.1.0"
