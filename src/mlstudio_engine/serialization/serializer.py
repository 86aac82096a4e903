# src/mlstudio_engine/serialization/serializer.py
from __future__ import annotations

import logging
import math
from collections import OrderedDict
from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np
import torch
import torch.nn as nn

from mlstudio_engine.data.schemas import Recipe
from mlstudio_engine.errors import EngineError, NotTrainedError, ReconstructionError
from mlstudio_engine.models.architecture import LayerSpec, ModelArchitecture
from mlstudio_engine.models.families import ModelFamily, parse_family
from mlstudio_engine.models.hyperparameters import Hyperparameters
from mlstudio_engine.models.layers import build_layer
from mlstudio_engine.models.model import Model
from mlstudio_engine.models.registry import build_architecture
from mlstudio_engine.serialization.schemas import (
    ModelMetadata,
    ParameterTensor,
    SerializedModel,
)
from mlstudio_engine.training.history import History, TrainingProgress

LOGGER = logging.getLogger(__name__)


# ===============================================================
# Save
# ===============================================================


def save_model(
    model: Model,
    recipe: Optional[Recipe] = None,
    metrics: Optional[Mapping[str, float]] = None,
) -> SerializedModel:
    """Capture architecture, parameters, recipe and history of a trained model."""
    if not model.trained:
        raise NotTrainedError("Cannot serialize a model that has not been trained")

    params = [
        ParameterTensor(
            name=name,
            shape=list(tensor.shape),
            values=tensor.detach().cpu().reshape(-1).tolist(),
        )
        for name, tensor in model.network.state_dict().items()
    ]
    history = list(model.history) if model.history is not None else []
    return SerializedModel(
        family_id=model.family.value,
        architecture=model.architecture.model_dump(mode="json"),
        parameter_values=params,
        hyperparameters=model.hyperparameters.model_dump(mode="json"),
        recipe=recipe,
        history=history,
        metrics=dict(metrics or {}),
        metadata=ModelMetadata(
            feature_names=model.feature_names,
            label_name=model.label_name,
            input_shape=list(model.input_shape),
            output_shape=list(model.architecture.output_shape),
        ),
    )


def to_json(record: SerializedModel, indent: Optional[int] = None) -> str:
    return record.model_dump_json(indent=indent)


def from_json(text: str | bytes) -> SerializedModel:
    return SerializedModel.model_validate_json(text)


# ===============================================================
# Load
# ===============================================================


def _rebuild_network(layers: Sequence[LayerSpec]) -> nn.Sequential:
    modules: "OrderedDict[str, nn.Module]" = OrderedDict()
    for spec in layers:
        try:
            modules[spec.name] = build_layer(spec)
        except (KeyError, TypeError, ValueError, RuntimeError) as exc:
            raise ReconstructionError(f"Invalid config for layer '{spec.name}': {exc}") from exc
    return nn.Sequential(modules)


def _load_parameters(network: nn.Sequential, params: Sequence[ParameterTensor]) -> None:
    expected = network.state_dict()
    given = {p.name: p for p in params}
    if set(given) != set(expected):
        missing = sorted(set(expected) - set(given))
        extra = sorted(set(given) - set(expected))
        raise ReconstructionError(f"Parameter mismatch: missing={missing} unexpected={extra}")

    state: Dict[str, torch.Tensor] = {}
    for name, target in expected.items():
        p = given[name]
        if tuple(p.shape) != tuple(target.shape) or len(p.values) != target.numel():
            raise ReconstructionError(
                f"Parameter '{name}' has shape {p.shape}, expected {list(target.shape)}"
            )
        state[name] = torch.tensor(p.values, dtype=target.dtype).reshape(target.shape)
    network.load_state_dict(state)


def reconstruct(record: SerializedModel) -> Model:
    """Rebuild a runnable model exactly; raises ReconstructionError on any mismatch."""
    try:
        family = parse_family(record.family_id)
        arch = ModelArchitecture.model_validate(record.architecture)
        hp = Hyperparameters.model_validate(record.hyperparameters)
    except (EngineError, ValueError) as exc:
        raise ReconstructionError(f"Unreadable model record: {exc}") from exc
    if arch.family != family:
        raise ReconstructionError(
            f"Record family '{family.value}' does not match architecture '{arch.family.value}'"
        )

    network = _rebuild_network(arch.layers)
    _load_parameters(network, record.parameter_values)

    model = Model(
        arch,
        hp,
        feature_names=record.metadata.feature_names,
        label_name=record.metadata.label_name,
        network=network,
    )
    model.history = History(record.history)
    model.trained = True
    return model


def fallback_model(
    input_width: int,
    feature_names: Sequence[str] = (),
    label_name: Optional[str] = None,
) -> Model:
    """Minimal linear model used when a record cannot be rebuilt."""
    width = max(int(input_width), 1)
    arch = build_architecture(ModelFamily.LINEAR, width)
    names = list(feature_names) if len(feature_names) == width else []
    model = Model(arch, Hyperparameters(seed=0), feature_names=names, label_name=label_name)
    model.trained = True
    model.degraded = True
    return model


def _recorded_input_width(record: Any) -> int:
    if isinstance(record, SerializedModel):
        shape = record.metadata.input_shape
        return math.prod(shape) if shape else len(record.metadata.feature_names)
    if not isinstance(record, Mapping):
        return 1
    meta = record.get("metadata") or {}
    shape = meta.get("input_shape") if isinstance(meta, Mapping) else None
    if isinstance(shape, list) and shape and all(isinstance(d, int) for d in shape):
        return math.prod(shape)
    legacy = record.get("trainingMetadata") or {}
    if isinstance(legacy, Mapping):
        width = legacy.get("inputShape")
        if isinstance(width, int) and width > 0:
            return width
        if isinstance(legacy.get("featureNames"), list):
            return len(legacy["featureNames"])
    if isinstance(meta, Mapping) and isinstance(meta.get("feature_names"), list):
        return len(meta["feature_names"])
    return 1


def _recorded_names(record: Any) -> tuple:
    if isinstance(record, SerializedModel):
        return record.metadata.feature_names, record.metadata.label_name
    if isinstance(record, Mapping):
        meta = record.get("metadata") or record.get("trainingMetadata") or {}
        if isinstance(meta, Mapping):
            names = meta.get("feature_names", meta.get("featureNames"))
            label = meta.get("label_name", meta.get("labelName"))
            names = [str(n) for n in names] if isinstance(names, list) else []
            return names, label if isinstance(label, str) else None
    return [], None


def is_legacy_record(record: Mapping[str, Any]) -> bool:
    return "family_id" not in record and (
        "modelType" in record or "trainingMetadata" in record or "weights" in record
    )


def load_model(record: SerializedModel | Mapping[str, Any]) -> Model:
    """
    Rebuild a model from a record, never raising on bad architecture.

    Current records are rebuilt layer by layer; older layer-list records are
    converted first. If anything cannot be rebuilt, a minimal linear model
    with the recorded input width is returned with ``degraded=True``.
    """
    try:
        if isinstance(record, SerializedModel):
            serialized = record
        elif isinstance(record, Mapping) and is_legacy_record(record):
            serialized = from_legacy_record(record)
        else:
            serialized = SerializedModel.model_validate(record)
        model = reconstruct(serialized)
    except (EngineError, ValueError, KeyError, TypeError, AttributeError, RuntimeError) as exc:
        width = _recorded_input_width(record)
        names, label = _recorded_names(record)
        LOGGER.warning(
            "Could not reconstruct model (%s); falling back to a linear model with %d inputs",
            exc,
            width,
        )
        return fallback_model(width, names, label)

    LOGGER.info("Loaded %s model with %d layers", model.family.value, len(model.architecture.layers))
    return model


# ===============================================================
# Legacy layer-list records
# ===============================================================


def _legacy_history(entries: Any) -> List[TrainingProgress]:
    out: List[TrainingProgress] = []
    for e in entries or []:
        if not isinstance(e, Mapping) or "loss" not in e:
            continue
        out.append(
            TrainingProgress(
                epoch=len(out) + 1,
                loss=float(e["loss"]),
                accuracy=e.get("accuracy", e.get("acc")),
                mae=e.get("mae"),
                validation_loss=e.get("validationLoss", e.get("val_loss")),
                validation_accuracy=e.get("validationAccuracy", e.get("val_accuracy")),
            )
        )
    return out


def _legacy_family(layers: List[LayerSpec]) -> ModelFamily:
    dense = [s for s in layers if s.kind == "dense"]
    if len(dense) == 1 and dense[0].config["units"] == 1:
        if dense[0].config.get("activation") == "sigmoid":
            return ModelFamily.LOGISTIC
        return ModelFamily.LINEAR
    return ModelFamily.FEED_FORWARD


def from_legacy_record(raw: Mapping[str, Any]) -> SerializedModel:
    """
    Convert an older Keras-style layer-list record.

    Only ``Dense`` and ``Dropout`` layers convert. Dense kernels are stored
    ``(in, out)`` and are transposed. Any other layer class raises
    ReconstructionError.
    """
    meta = raw.get("trainingMetadata") or {}
    if not isinstance(meta, Mapping):
        raise ReconstructionError("Legacy trainingMetadata is not an object")
    try:
        layer_configs = raw["architecture"]["config"]["layers"]
    except (KeyError, TypeError):
        raise ReconstructionError("Legacy record has no architecture.config.layers") from None
    if not isinstance(layer_configs, list) or not layer_configs:
        raise ReconstructionError("Legacy record has an empty layer list")

    weights = list(raw.get("weights") or [])
    width: Optional[int] = meta.get("inputShape") if isinstance(meta.get("inputShape"), int) else None
    layers: List[LayerSpec] = []
    params: List[ParameterTensor] = []
    cursor = 0

    for i, entry in enumerate(layer_configs):
        if not isinstance(entry, Mapping):
            raise ReconstructionError(f"Legacy layer {i} is not an object")
        cls_name = entry.get("className")
        cfg = entry.get("config") or {}
        if not isinstance(cfg, Mapping):
            raise ReconstructionError(f"Legacy layer {i} has a malformed config")
        if cls_name == "Dense":
            batch_shape = cfg.get("batchInputShape")
            if i == 0 and batch_shape and batch_shape[-1]:
                width = int(batch_shape[-1])
            if not width:
                raise ReconstructionError("Legacy record does not declare its input width")
            units = int(cfg["units"])
            activation = cfg.get("activation") or "linear"
            name = f"dense_{len(layers)}"
            layers.append(
                LayerSpec(
                    name=name,
                    kind="dense",
                    input_shape=(width,),
                    output_shape=(units,),
                    config={"units": units, "activation": activation},
                )
            )
            if cursor >= len(weights):
                raise ReconstructionError(f"Missing kernel for legacy layer {i}")
            kernel = np.asarray(weights[cursor]["data"], dtype=np.float32)
            kernel = kernel.reshape(weights[cursor]["shape"]).T
            cursor += 1
            params.append(
                ParameterTensor(
                    name=f"{name}.linear.weight",
                    shape=list(kernel.shape),
                    values=kernel.reshape(-1).tolist(),
                )
            )
            if cfg.get("useBias", True):
                if cursor >= len(weights):
                    raise ReconstructionError(f"Missing bias for legacy layer {i}")
                bias = [float(v) for v in weights[cursor]["data"]]
                cursor += 1
            else:
                bias = [0.0] * units
            params.append(ParameterTensor(name=f"{name}.linear.bias", shape=[units], values=bias))
            width = units
        elif cls_name == "Dropout":
            if not width:
                raise ReconstructionError("Legacy record does not declare its input width")
            layers.append(
                LayerSpec(
                    name=f"dropout_{len(layers)}",
                    kind="dropout",
                    input_shape=(width,),
                    output_shape=(width,),
                    config={"rate": float(cfg.get("rate", 0.0))},
                )
            )
        else:
            raise ReconstructionError(f"Legacy layer class '{cls_name}' cannot be rebuilt")

    family = _legacy_family(layers)
    last = layers[-1]
    arch = ModelArchitecture(
        family=family,
        input_shape=layers[0].input_shape,
        output_units=last.output_shape[-1],
        output_activation=last.config.get("activation", "linear"),
        loss="binary_crossentropy" if family is ModelFamily.LOGISTIC else "mse",
        metrics=["accuracy"] if family is ModelFamily.LOGISTIC else ["mae"],
        layers=layers,
    )
    LOGGER.info("Converted legacy record with %d layers as %s", len(layers), family.value)
    return SerializedModel(
        family_id=family.value,
        architecture=arch.model_dump(mode="json"),
        parameter_values=params,
        history=_legacy_history(raw.get("trainingHistory")),
        metadata=ModelMetadata(
            feature_names=list(meta.get("featureNames") or []),
            label_name=meta.get("labelName"),
            input_shape=list(layers[0].input_shape),
            output_shape=[last.output_shape[-1]],
        ),
    )
