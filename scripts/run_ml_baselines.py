"""
Run the traditional ML models for spam detection.

This script is a convenience wrapper around
`spambase.training.train_ml.train_and_evaluate_ml_models`, which:

- loads the configured Spambase table and splits it 60/20/20
- grid-searches every model in config/ml.yaml with stratified k-fold CV
- refits the best configuration on the preprocessed training set
- evaluates the refitted models on the validation and test sets
- writes metrics under experiments/results/
- saves fitted models under experiments/models/

Usage (from project root):

    python -m scripts.run_ml_baselines
    # or
    python scripts/run_ml_baselines.py
"""

from __future__ import annotations

import argparse

from spambase.training.train_ml import train_and_evaluate_ml_models
from spambase.utils.training_utils import get_logger, load_train_config


def parse_args() -> argparse.Namespace:
    """
    Parse command-line arguments.
    """
    parser = argparse.ArgumentParser(
        description="Tune and evaluate the traditional ML models on Spambase."
    )
    parser.add_argument(
        "--data-config",
        type=str,
        default="config/data.yaml",
        help="Path to data config YAML (default: config/data.yaml).",
    )
    parser.add_argument(
        "--ml-config",
        type=str,
        default="config/ml.yaml",
        help="Path to ML config YAML (default: config/ml.yaml).",
    )
    parser.add_argument(
        "--train-config",
        type=str,
        default="config/train.yaml",
        help="Path to global train config YAML (default: config/train.yaml).",
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()

    train_cfg = load_train_config(args.train_config)
    logger = get_logger(
        name="run_ml_baselines",
        config=train_cfg,
        log_file_suffix="ml_baselines",
    )

    logger.info("=" * 80)
    logger.info("Starting traditional ML models.")
    logger.info(
        "Configs: data=%s, ml=%s, train=%s",
        args.data_config,
        args.ml_config,
        args.train_config,
    )

    metrics_df = train_and_evaluate_ml_models(
        data_config_path=args.data_config,
        ml_config_path=args.ml_config,
        train_config_path=args.train_config,
    )

    if not metrics_df.empty:
        logger.info("Completed ML models. Metrics:")
        logger.info("\n%s", metrics_df.sort_values("precision", ascending=False))
    else:
        logger.warning("ML run finished, but metrics DataFrame is empty.")

    logger.info("Traditional ML run completed.")


if __name__ == "__main__":
    main()
