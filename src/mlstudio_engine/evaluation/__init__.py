"""Evaluator: metrics, confusion matrix, feature importance and reports."""
from mlstudio_engine.evaluation.evaluator import (
    EvaluationResult,
    FeatureImportance,
    build_visualization_data,
    compare_results,
    cross_validate,
    evaluate,
    feature_importance,
    generate_performance_report,
)
from mlstudio_engine.evaluation.metrics import (
    binarize,
    classification_metrics,
    confusion_table,
    r_squared,
    regression_metrics,
)

__all__ = [
    "EvaluationResult",
    "FeatureImportance",
    "binarize",
    "build_visualization_data",
    "classification_metrics",
    "compare_results",
    "confusion_table",
    "cross_validate",
    "evaluate",
    "feature_importance",
    "generate_performance_report",
    "r_squared",
    "regression_metrics",
]
