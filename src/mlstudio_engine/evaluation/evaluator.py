# src/mlstudio_engine/evaluation/evaluator.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

import numpy as np

from mlstudio_engine.evaluation.metrics import (
    binarize,
    classification_metrics,
    confusion_table,
    regression_metrics,
)
from mlstudio_engine.models.model import Model
from mlstudio_engine.preprocessing.splits import Partition
from mlstudio_engine.training.history import History, TrainingProgress
from mlstudio_engine.training.orchestrator import fit

LOGGER = logging.getLogger(__name__)


@dataclass
class FeatureImportance:
    feature: str
    importance: float


@dataclass
class EvaluationResult:
    """
    Inference output on one partition plus its metrics.

    ``predictions`` are point predictions: raw scores for single-output
    models, argmax class ids for softmax models.
    """

    predictions: np.ndarray
    actuals: np.ndarray
    metrics: Dict[str, float]
    confusion_matrix: Optional[np.ndarray] = None
    class_labels: Optional[List[float]] = None
    feature_importance: List[FeatureImportance] = field(default_factory=list)

    @property
    def n_samples(self) -> int:
        return int(self.actuals.shape[0])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "predictions": self.predictions.tolist(),
            "actuals": self.actuals.tolist(),
            "metrics": dict(self.metrics),
            "confusion_matrix": None
            if self.confusion_matrix is None
            else self.confusion_matrix.tolist(),
            "class_labels": self.class_labels,
            "feature_importance": [
                {"feature": f.feature, "importance": f.importance}
                for f in self.feature_importance
            ],
        }


def feature_importance(model: Model) -> List[FeatureImportance]:
    """
    Absolute first-layer weights per input, summed over units, descending.

    Only linear and feed-forward models expose this; other families return
    an empty list.
    """
    if not model.family.supports_feature_importance:
        return []
    first = model.network[0]
    weight = getattr(getattr(first, "linear", None), "weight", None)
    if weight is None:
        return []
    scores = weight.detach().abs().sum(dim=0).numpy()
    names = model.feature_names or [f"feature_{i + 1}" for i in range(scores.size)]
    ranked = [FeatureImportance(n, float(s)) for n, s in zip(names, scores)]
    return sorted(ranked, key=lambda f: f.importance, reverse=True)


def evaluate(model: Model, partition: Partition) -> EvaluationResult:
    """
    Run inference on ``partition`` and compute metrics.

    Regression metrics are always present; classifiers add accuracy,
    precision, recall, F1 and a confusion matrix.
    """
    raw = model.predict(partition.features)
    actuals = np.asarray(partition.labels, dtype=float).reshape(-1)

    if model.is_multi_output:
        point = raw.argmax(axis=1).astype(float)
    else:
        point = raw.astype(float)

    metrics = regression_metrics(actuals, point)
    matrix, classes = None, None
    if model.is_classifier:
        predicted = point if model.is_multi_output else binarize(point)
        metrics.update(
            classification_metrics(actuals, predicted, multiclass=model.is_multi_output)
        )
        classes, matrix = confusion_table(actuals, predicted)

    result = EvaluationResult(
        predictions=point,
        actuals=actuals,
        metrics=metrics,
        confusion_matrix=matrix,
        class_labels=classes,
        feature_importance=feature_importance(model),
    )
    LOGGER.info(
        "Evaluated %s on %d samples: r2=%.4f rmse=%.4f",
        model.family.value,
        result.n_samples,
        metrics["r2"],
        metrics["rmse"],
    )
    return result


# ===============================================================
# Reporting
# ===============================================================


def generate_performance_report(result: EvaluationResult, family: str) -> str:
    """Markdown summary of an EvaluationResult."""
    m = result.metrics
    lines = [
        "# Model Performance Report",
        "",
        f"**Model Type:** {family}",
        f"**Test Samples:** {result.n_samples}",
        "",
        "## Regression Metrics",
        f"- **Mean Squared Error (MSE):** {m['mse']:.4f}",
        f"- **Root Mean Squared Error (RMSE):** {m['rmse']:.4f}",
        f"- **Mean Absolute Error (MAE):** {m['mae']:.4f}",
        f"- **R-squared (R²):** {m['r2']:.4f}",
        "",
    ]
    if "accuracy" in m:
        lines += [
            "## Classification Metrics",
            f"- **Accuracy:** {m['accuracy'] * 100:.2f}%",
            f"- **Precision:** {m['precision'] * 100:.2f}%",
            f"- **Recall:** {m['recall'] * 100:.2f}%",
            f"- **F1-Score:** {m['f1_score'] * 100:.2f}%",
            "",
        ]
    if result.confusion_matrix is not None:
        header = "\t".join(f"{c:g}" for c in result.class_labels or [])
        rows = ["\t".join(str(v) for v in row) for row in result.confusion_matrix.tolist()]
        lines += ["## Confusion Matrix", "```", f"actual\\pred\t{header}"]
        lines += [f"{c:g}\t{row}" for c, row in zip(result.class_labels or [], rows)]
        lines += ["```", ""]
    if result.feature_importance:
        lines.append("## Feature Importance")
        for i, f in enumerate(result.feature_importance[:10], start=1):
            lines.append(f"{i}. **{f.feature}:** {f.importance:.4f}")
    return "\n".join(lines) + "\n"


def build_visualization_data(
    history: History | Sequence[TrainingProgress],
    result: EvaluationResult,
    feature_names: Sequence[str] = (),
) -> Dict[str, List[Dict[str, Any]]]:
    """Chart-ready series: loss/accuracy curves, prediction scatter, residuals, importance."""
    entries = list(history)
    importance = result.feature_importance or [
        FeatureImportance(name, 0.0) for name in feature_names
    ]
    return {
        "loss_history": [
            {"epoch": e.epoch, "loss": e.loss, "validation_loss": e.validation_loss}
            for e in entries
        ],
        "accuracy_history": [
            {
                "epoch": e.epoch,
                "accuracy": e.accuracy or 0.0,
                "validation_accuracy": e.validation_accuracy,
            }
            for e in entries
        ],
        "prediction_scatter": [
            {"actual": float(a), "predicted": float(p)}
            for a, p in zip(result.actuals, result.predictions)
        ],
        "residual_plot": [
            {"predicted": float(p), "residual": float(a - p)}
            for a, p in zip(result.actuals, result.predictions)
        ],
        "feature_importance": [
            {"feature": f.feature, "importance": f.importance} for f in importance
        ],
    }


# ===============================================================
# Model Selection
# ===============================================================


def compare_results(results: Mapping[str, EvaluationResult]) -> Dict[str, Any]:
    """Rank named results by R² (descending); the first entry is the best model."""
    if not results:
        raise ValueError("No results to compare")
    comparison = sorted(
        (
            {
                "model_name": name,
                "r2": r.metrics["r2"],
                "rmse": r.metrics["rmse"],
                "accuracy": r.metrics.get("accuracy"),
            }
            for name, r in results.items()
        ),
        key=lambda row: row["r2"],
        reverse=True,
    )
    return {"best_model": comparison[0]["model_name"], "comparison": comparison}


def cross_validate(
    model_factory: Callable[[], Model],
    features: np.ndarray,
    labels: np.ndarray,
    folds: int = 5,
    epochs: Optional[int] = None,
) -> Dict[str, Any]:
    """
    K-fold R² with contiguous folds; the last fold takes the remainder.

    ``model_factory`` must return a fresh untrained Model for every fold.
    """
    features = np.asarray(features)
    labels = np.asarray(labels)
    n = features.shape[0]
    if folds < 2 or n < folds:
        raise ValueError(f"Need 2 <= folds <= rows, got folds={folds} rows={n}")

    fold_size = n // folds
    scores: List[float] = []
    for k in range(folds):
        start = k * fold_size
        end = n if k == folds - 1 else (k + 1) * fold_size
        keep = np.r_[0:start, end:n]
        model = model_factory()
        fit(model, Partition(features[keep], labels[keep]), epochs=epochs)
        scores.append(evaluate(model, Partition(features[start:end], labels[start:end])).metrics["r2"])

    mean = float(np.mean(scores))
    std = float(np.std(scores))
    LOGGER.info("Cross-validation: mean r2 %.4f +/- %.4f over %d folds", mean, std, folds)
    return {"mean_score": mean, "std_score": std, "scores": scores}
