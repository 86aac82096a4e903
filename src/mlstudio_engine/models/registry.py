# src/mlstudio_engine/models/registry.py
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from mlstudio_engine.errors import UnsupportedFamilyError
from mlstudio_engine.models.architecture import ModelArchitecture, Shape
from mlstudio_engine.models.builders import DEFAULT_BUILDERS, FamilyBuilder
from mlstudio_engine.models.families import ModelFamily, parse_family
from mlstudio_engine.models.hyperparameters import Hyperparameters


# ===============================================================
# Builder Registry
# ===============================================================

BUILDER_REGISTRY: Dict[ModelFamily, FamilyBuilder] = {}


def register_builder(builder: FamilyBuilder) -> None:
    """Register (or replace) the builder strategy for its family."""
    BUILDER_REGISTRY[builder.family] = builder


def get_builder(family: str | ModelFamily) -> FamilyBuilder:
    fam = parse_family(family)
    if fam not in BUILDER_REGISTRY:
        raise UnsupportedFamilyError(
            f"Model family '{fam.value}' not registered. "
            f"Available: {available_families()}"
        )
    return BUILDER_REGISTRY[fam]


def available_families() -> List[str]:
    return [fam.value for fam in BUILDER_REGISTRY]


# ===============================================================
# Architecture Construction
# ===============================================================


def coerce_hyperparameters(
    params: Optional[Hyperparameters | Mapping[str, Any]],
) -> Hyperparameters:
    if params is None:
        return Hyperparameters()
    if isinstance(params, Hyperparameters):
        return params
    return Hyperparameters.model_validate(dict(params))


def build_architecture(
    family: str | ModelFamily,
    input_shape: Shape | int,
    hyperparameters: Optional[Hyperparameters | Mapping[str, Any]] = None,
) -> ModelArchitecture:
    """Deterministic layer list for ``family`` given the input shape (batch excluded)."""
    shape = (input_shape,) if isinstance(input_shape, int) else tuple(input_shape)
    return get_builder(family).build(coerce_hyperparameters(hyperparameters), shape)


# ===============================================================
# REGISTER BUILDERS
# ===============================================================

for _builder in DEFAULT_BUILDERS:
    register_builder(_builder)
