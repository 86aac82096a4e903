# src/mlstudio_engine/preprocessing/recipe.py
from __future__ import annotations

import logging

from mlstudio_engine.data.schemas import PreprocessingStep, RawDataset, Recipe
from mlstudio_engine.preprocessing import transforms as T

LOGGER = logging.getLogger(__name__)


def filters_rows(step: PreprocessingStep) -> bool:
    """True for steps that can remove rows (outlier removal, row-dropping fill)."""
    if step.type == "outlier_removal":
        return True
    return step.type == "handle_missing" and step.parameters.get("strategy") == "drop"


def apply_recipe(recipe: Recipe, data: RawDataset, keep_rows: bool = False) -> RawDataset:
    """
    Replay a frozen recipe on unseen data of the same schema.

    Steps reuse their recorded statistics and are never refitted. Split steps
    are skipped: replay prepares inference data, not partitions. With
    ``keep_rows=True`` row-filtering steps are skipped as well, so every
    input row survives and stays aligned with its prediction.
    """
    data.check_shape()
    out = data.copy_with()
    for step in recipe.steps:
        if step.type == "split_data":
            continue
        if keep_rows and filters_rows(step):
            LOGGER.info("replay: keeping rows, skipped %s step #%d", step.type, step.order)
            continue
        out = _replay_step(step, out)
    LOGGER.info("Replayed %d recipe steps on %d rows", len(recipe), out.n_rows)
    return out


def _replay_step(step: PreprocessingStep, data: RawDataset) -> RawDataset:
    if step.type == "feature_engineering":
        for op in step.parameters.get("operations", []):
            data = T.apply_feature_operation(data, op)
        return data

    method = step.parameters.get("method")
    for name, stat in step.statistics.items():
        idx = data.column_index(name)
        if idx is None:
            LOGGER.warning("replay %s: ignoring unknown column '%s'", step.type, name)
            continue

        if step.type == "handle_missing":
            data = T.apply_fill(data, idx, stat)
        elif step.type == "outlier_removal":
            data = T.apply_iqr(data, idx, stat)
        elif step.type == "normalize":
            if method == "robust":
                data = T.apply_robust(data, idx, stat)
            else:
                data = T.apply_zscore(data, idx, stat)
        elif step.type == "scale":
            data = T.apply_minmax(data, idx, stat)
        elif step.type == "encode":
            if method == "one-hot":
                data = T.apply_one_hot(data, idx, stat)
            elif method == "target":
                data = T.apply_target(data, idx, stat)
            else:
                data = T.apply_label(data, idx, stat)
    return data
