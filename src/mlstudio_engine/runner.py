# src/mlstudio_engine/runner.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

import pandas as pd

from mlstudio_engine.config.loader import load_config, model_seed, seed_everything
from mlstudio_engine.config.models import EngineConfig
from mlstudio_engine.data.schemas import RawDataset
from mlstudio_engine.engine import MLTrainer, TrainingResult
from mlstudio_engine.evaluation.evaluator import generate_performance_report
from mlstudio_engine.serialization.schemas import SerializedModel
from mlstudio_engine.serialization.serializer import to_json

LOGGER = logging.getLogger(__name__)


@dataclass
class RunResult:
    config: EngineConfig
    training: TrainingResult
    record: SerializedModel
    report: Optional[str]
    written: Dict[str, Path]


# ======================================================================
# Main entrypoint
# ======================================================================


def run_from_config(
    path: str | Path,
    output_dir: str | Path | None = None,
) -> RunResult:
    """Load a config, train on its CSV data source and persist the outputs."""
    LOGGER.info("Loading config: %s", path)
    cfg = load_config(path)

    if output_dir is not None:
        cfg.output.directory = str(output_dir)

    LOGGER.info("Applying random seeds")
    seed_everything(cfg)
    seed = model_seed(cfg)
    if seed is not None:
        # an explicit model seed wins over the config-wide one
        cfg.training.model_parameters.setdefault("seed", seed)

    if cfg.data_source is None:
        raise ValueError("Config must provide `data_source`")
    if not cfg.feature_columns or cfg.label_column is None:
        raise ValueError("Config must provide `feature_columns` and `label_column`")

    LOGGER.info("Loading dataset: %s", cfg.data_source)
    dataset = RawDataset.read_csv(cfg.data_source)

    trainer = MLTrainer()
    processed = trainer.prepare_data(
        dataset,
        cfg.feature_columns,
        cfg.label_column,
        steps=[step.as_step() for step in cfg.preprocessing],
    )
    training = trainer.train(processed, cfg.training)
    record = trainer.save_model()

    report = None
    if training.evaluation is not None:
        report = generate_performance_report(training.evaluation, cfg.training.model_type)

    written: Dict[str, Path] = {}
    if cfg.output.directory:
        written = _persist_results(cfg, training, record, report)

    return RunResult(config=cfg, training=training, record=record, report=report, written=written)


# ======================================================================
# Save outputs
# ======================================================================


def _persist_results(
    cfg: EngineConfig,
    training: TrainingResult,
    record: SerializedModel,
    report: Optional[str],
) -> Dict[str, Path]:
    out_dir = Path(cfg.output.directory)
    out_dir.mkdir(parents=True, exist_ok=True)
    LOGGER.info("Saving results to: %s", out_dir)

    written: Dict[str, Path] = {}
    if cfg.output.save_model:
        written["model"] = out_dir / "model.json"
        written["model"].write_text(to_json(record, indent=2))

    if cfg.output.save_report and report is not None:
        written["report"] = out_dir / "report.md"
        written["report"].write_text(report)

    if cfg.output.save_history:
        written["history"] = out_dir / "history.csv"
        pd.DataFrame(training.history.to_records()).to_csv(written["history"], index=False)

    return written
