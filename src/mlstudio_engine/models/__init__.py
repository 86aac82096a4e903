"""Model Builder: family registry, architecture descriptors and compiled models."""
from mlstudio_engine.models.architecture import ArchitectureBuilder, LayerSpec, ModelArchitecture
from mlstudio_engine.models.builders import FamilyBuilder
from mlstudio_engine.models.families import ModelFamily, parse_family
from mlstudio_engine.models.hyperparameters import Hyperparameters
from mlstudio_engine.models.layers import build_layer, build_network
from mlstudio_engine.models.model import Model
from mlstudio_engine.models.registry import (
    available_families,
    build_architecture,
    get_builder,
    register_builder,
)

__all__ = [
    "ArchitectureBuilder",
    "FamilyBuilder",
    "Hyperparameters",
    "LayerSpec",
    "Model",
    "ModelArchitecture",
    "ModelFamily",
    "available_families",
    "build_architecture",
    "build_layer",
    "build_network",
    "get_builder",
    "parse_family",
    "register_builder",
]
