from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from mlstudio_engine import __version__
from mlstudio_engine.data.schemas import RawDataset
from mlstudio_engine.engine import MLTrainer
from mlstudio_engine.evaluation.evaluator import generate_performance_report
from mlstudio_engine.models.families import parse_family
from mlstudio_engine.models.registry import available_families
from mlstudio_engine.runner import run_from_config


def _load_trainer(model_path: str) -> MLTrainer:
    path = Path(model_path)
    if not path.exists():
        raise FileNotFoundError(f"Model file not found: {path}")
    trainer = MLTrainer()
    model = trainer.load_model(json.loads(path.read_text()))
    if model.degraded:
        print(f"[mlstudio] WARNING: {path} could not be rebuilt; using a fallback linear model")
    return trainer


# ============================================================
# Command: train
# ============================================================


def cmd_train(args):
    print(f"[mlstudio] Training from config: {args.config}")
    result = run_from_config(args.config, output_dir=args.output)

    metrics = result.training.metrics
    print("\n========== Training Complete ==========")
    print(f"Model type: {result.config.training.model_type}")
    print(f"Epochs: {len(result.training.history)}")
    print(f"Final loss: {metrics['final_loss']:.4f}")
    if metrics.get("validation_loss") is not None:
        print(f"Validation loss: {metrics['validation_loss']:.4f}")
    if metrics.get("test_r2") is not None:
        print(f"Test R²: {metrics['test_r2']:.4f}")
    for name, path in result.written.items():
        print(f"  ✓ {name}: {path}")
    print("=======================================\n")


# ============================================================
# Command: evaluate
# ============================================================


def cmd_evaluate(args):
    trainer = _load_trainer(args.model)
    dataset = RawDataset.read_csv(args.data)
    result = trainer.evaluate_dataset(dataset, label_column=args.label)
    print(generate_performance_report(result, trainer.model.family.value))


# ============================================================
# Command: predict
# ============================================================


def cmd_predict(args):
    trainer = _load_trainer(args.model)
    dataset = RawDataset.read_csv(args.data)
    predictions = trainer.predict_dataset(dataset)
    for value in predictions.tolist():
        print(json.dumps(value))


# ============================================================
# Command: families
# ============================================================


def cmd_families(args):
    print("[mlstudio] Registered model families:")
    for family_id in available_families():
        label = parse_family(family_id).approximates
        suffix = f" : {label}" if label else ""
        print(f"  - {family_id}{suffix}")


# ============================================================
# Command: version
# ============================================================


def cmd_version(args):
    print(__version__)


# ============================================================
# Main CLI
# ============================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mlstudio")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    # ------------------------------------------------------------------
    # train
    # ------------------------------------------------------------------
    p_train = sub.add_parser("train", help="Train a model from a config file")
    p_train.add_argument("--config", required=True, help="Path to config JSON/YAML")
    p_train.add_argument(
        "--output", required=False, default=None, help="Directory to save results"
    )
    p_train.set_defaults(func=cmd_train)

    # ------------------------------------------------------------------
    # evaluate
    # ------------------------------------------------------------------
    p_eval = sub.add_parser("evaluate", help="Evaluate a saved model on a labelled CSV")
    p_eval.add_argument("--model", required=True, help="Path to model JSON")
    p_eval.add_argument("--data", required=True, help="Path to CSV data")
    p_eval.add_argument("--label", default=None, help="Label column (defaults to recorded)")
    p_eval.set_defaults(func=cmd_evaluate)

    # ------------------------------------------------------------------
    # predict
    # ------------------------------------------------------------------
    p_pred = sub.add_parser("predict", help="Predict with a saved model")
    p_pred.add_argument("--model", required=True, help="Path to model JSON")
    p_pred.add_argument("--data", required=True, help="Path to CSV data")
    p_pred.set_defaults(func=cmd_predict)

    # ------------------------------------------------------------------
    # families
    # ------------------------------------------------------------------
    p_fam = sub.add_parser("families", help="List registered model families")
    p_fam.set_defaults(func=cmd_families)

    # ------------------------------------------------------------------
    # version
    # ------------------------------------------------------------------
    p_ver = sub.add_parser("version", help="Show version")
    p_ver.set_defaults(func=cmd_version)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    args.func(args)


if __name__ == "__main__":
    main()
