"""Serializer: model records, JSON round-trip and degraded-mode loading."""
from mlstudio_engine.serialization.schemas import (
    ModelMetadata,
    ParameterTensor,
    SerializedModel,
)
from mlstudio_engine.serialization.serializer import (
    fallback_model,
    from_json,
    from_legacy_record,
    load_model,
    reconstruct,
    save_model,
    to_json,
)

__all__ = [
    "ModelMetadata",
    "ParameterTensor",
    "SerializedModel",
    "fallback_model",
    "from_json",
    "from_legacy_record",
    "load_model",
    "reconstruct",
    "save_model",
    "to_json",
]
