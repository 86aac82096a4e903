# src/mlstudio_engine/engine.py
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np

from mlstudio_engine.config.models import TrainingConfig
from mlstudio_engine.data.schemas import ProcessedData, RawDataset, Recipe
from mlstudio_engine.errors import DataShapeError, NotTrainedError
from mlstudio_engine.evaluation.evaluator import EvaluationResult, evaluate
from mlstudio_engine.models.families import ModelFamily, parse_family
from mlstudio_engine.models.model import Model
from mlstudio_engine.models.registry import coerce_hyperparameters
from mlstudio_engine.preprocessing.formats import dataset_features, to_sequences
from mlstudio_engine.preprocessing.pipeline import run_steps
from mlstudio_engine.preprocessing.preprocessor import DataPreprocessor
from mlstudio_engine.preprocessing.recipe import apply_recipe
from mlstudio_engine.preprocessing.splits import Partition, split_arrays
from mlstudio_engine.serialization.schemas import SerializedModel
from mlstudio_engine.serialization.serializer import load_model, save_model
from mlstudio_engine.training.history import History
from mlstudio_engine.training.orchestrator import ProgressCallback, fit

LOGGER = logging.getLogger(__name__)


@dataclass
class TrainingResult:
    model: Model
    history: History
    metrics: Dict[str, Optional[float]]
    evaluation: Optional[EvaluationResult] = None
    partition_sizes: Dict[str, int] = field(default_factory=dict)


class MLTrainer:
    """
    In-process entry point: prepare, train, evaluate, save/load and predict.

    Holds at most one model and the recipe that produced its inputs.
    """

    def __init__(self) -> None:
        self.model: Optional[Model] = None
        self.recipe: Optional[Recipe] = None
        self.last_result: Optional[TrainingResult] = None

    # --------------------------------------------------------
    # Data
    # --------------------------------------------------------

    def prepare_data(
        self,
        data: RawDataset | Sequence[Dict[str, Any]],
        feature_columns: Sequence[str],
        label_column: str,
        steps: Sequence[Mapping[str, Any]] = (),
    ) -> ProcessedData:
        """Run preprocessing steps, then convert the selected columns to ML format."""
        dataset = data if isinstance(data, RawDataset) else RawDataset.from_records(list(data))
        pre = DataPreprocessor()
        if steps:
            dataset = run_steps(pre, dataset, steps)
        processed = pre.convert_to_ml_format(dataset, feature_columns, label_column)
        self.recipe = pre.recipe()
        LOGGER.info(
            "Prepared %d samples x %d features (%d preprocessing steps)",
            processed.n_samples,
            len(processed.feature_names),
            len(self.recipe),
        )
        return processed

    def _inputs(
        self, family: ModelFamily, features: np.ndarray, labels: np.ndarray, length: int
    ):
        if family is ModelFamily.SEQUENCE and features.ndim == 2:
            return to_sequences(features, labels, length)
        return features, labels

    # --------------------------------------------------------
    # Training
    # --------------------------------------------------------

    def train(
        self,
        processed: ProcessedData,
        config: TrainingConfig | Mapping[str, Any],
        on_progress: Optional[ProgressCallback] = None,
    ) -> TrainingResult:
        """
        Build, train and evaluate a model on sequential train/validation/test partitions.

        The test partition (when non-empty) is evaluated after training.
        """
        if not isinstance(config, TrainingConfig):
            config = TrainingConfig.model_validate(dict(config))
        started = time.perf_counter()

        family = parse_family(config.model_type)
        hp = coerce_hyperparameters(config.model_parameters)
        if family.is_image and hp.image_shape is None and "image_shape" in processed.metadata:
            hp = hp.model_copy(update={"image_shape": tuple(processed.metadata["image_shape"])})

        features, labels = self._inputs(
            family, processed.features, processed.labels, hp.sequence_length
        )
        if features.shape[0] == 0:
            raise DataShapeError("No training samples after preparing inputs")
        parts = split_arrays(features, labels, config.test_size, config.validation_size)

        model = Model.build(
            family,
            features.shape[1:],
            hp,
            feature_names=processed.feature_names,
            label_name=processed.label_name,
        )
        history = fit(model, parts.train, parts.validation, callback=on_progress)
        evaluation = evaluate(model, parts.test) if parts.test.row_count else None

        last = history.last
        metrics: Dict[str, Optional[float]] = {
            "final_loss": last.loss,
            "final_accuracy": last.accuracy,
            "validation_loss": last.validation_loss,
            "validation_accuracy": last.validation_accuracy,
            "training_time": time.perf_counter() - started,
        }
        if evaluation is not None:
            metrics.update({f"test_{k}": v for k, v in evaluation.metrics.items()})

        recipe = processed.metadata.get("recipe")
        if isinstance(recipe, Recipe):
            self.recipe = recipe
        self.model = model
        self.last_result = TrainingResult(
            model=model,
            history=history,
            metrics=metrics,
            evaluation=evaluation,
            partition_sizes={
                "train": parts.train.row_count,
                "validation": parts.validation.row_count,
                "test": parts.test.row_count,
            },
        )
        LOGGER.info(
            "Trained %s in %.2fs: final loss %.6f",
            family.value,
            metrics["training_time"],
            last.loss,
        )
        return self.last_result

    # --------------------------------------------------------
    # Inference
    # --------------------------------------------------------

    def _require_model(self) -> Model:
        if self.model is None:
            raise NotTrainedError("No model has been trained or loaded")
        return self.model

    def predict(self, features: Any) -> np.ndarray:
        return self._require_model().predict(features)

    def predict_dataset(self, data: RawDataset | Sequence[Dict[str, Any]]) -> np.ndarray:
        """
        Replay the stored recipe on raw rows, then predict one value per row.

        Row-filtering steps are not replayed, so outputs stay aligned with the
        input rows; a row that still has a missing feature raises
        DataShapeError naming it.
        """
        model = self._require_model()
        dataset = data if isinstance(data, RawDataset) else RawDataset.from_records(list(data))
        if self.recipe is not None:
            dataset = apply_recipe(self.recipe, dataset, keep_rows=True)
        features = dataset_features(dataset, model.feature_names)
        if model.family is ModelFamily.SEQUENCE:
            features, _ = to_sequences(
                features, np.zeros(len(features), dtype=np.float32), model.input_shape[0]
            )
        return model.predict(features)

    def evaluate(self, features: Any, labels: Any) -> EvaluationResult:
        model = self._require_model()
        features = np.asarray(features, dtype=np.float32)
        labels = np.asarray(labels, dtype=np.float32)
        features, labels = self._inputs(model.family, features, labels, model.input_shape[0])
        return evaluate(model, Partition(features, labels))

    def evaluate_dataset(
        self, data: RawDataset | Sequence[Dict[str, Any]], label_column: Optional[str] = None
    ) -> EvaluationResult:
        """Replay the stored recipe on labelled raw rows and evaluate."""
        model = self._require_model()
        label = label_column or model.label_name
        if label is None:
            raise DataShapeError("No label column recorded for this model")
        dataset = data if isinstance(data, RawDataset) else RawDataset.from_records(list(data))
        if self.recipe is not None:
            dataset = apply_recipe(self.recipe, dataset)
        features = dataset_features(dataset, model.feature_names)
        labels = dataset_features(dataset, [label]).reshape(-1)
        return self.evaluate(features, labels)

    # --------------------------------------------------------
    # Persistence
    # --------------------------------------------------------

    def save_model(self) -> SerializedModel:
        model = self._require_model()
        metrics: Dict[str, float] = {}
        if self.last_result is not None and self.last_result.model is model:
            metrics = {k: v for k, v in self.last_result.metrics.items() if v is not None}
        return save_model(model, recipe=self.recipe, metrics=metrics)

    def load_model(self, record: SerializedModel | Mapping[str, Any]) -> Model:
        self.model = load_model(record)
        recipe = record.recipe if isinstance(record, SerializedModel) else None
        if recipe is None and isinstance(record, Mapping) and record.get("recipe"):
            try:
                recipe = Recipe.model_validate(record["recipe"])
            except ValueError as exc:
                LOGGER.warning("Ignoring unreadable recipe on model record: %s", exc)
        self.recipe = recipe
        self.last_result = None
        return self.model

    def dispose(self) -> None:
        self.model = None
        self.recipe = None
        self.last_result = None
        LOGGER.debug("Trainer disposed")

    @property
    def history(self) -> List[Any]:
        if self.model is None or self.model.history is None:
            return []
        return list(self.model.history)
