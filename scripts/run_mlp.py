"""
Train and evaluate the feed-forward neural network on Spambase.

Thin wrapper around `spambase.training.train_mlp.train_and_evaluate_mlp`.

Usage (from project root):

    python -m scripts.run_mlp
    # or
    python scripts/run_mlp.py --mlp-config config/mlp.yaml
"""

from __future__ import annotations

import argparse

from spambase.training.train_mlp import train_and_evaluate_mlp
from spambase.utils.training_utils import get_logger, load_train_config


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Train and evaluate the MLP spam classifier."
    )
    parser.add_argument(
        "--data-config",
        type=str,
        default="config/data.yaml",
        help="Path to data config YAML (default: config/data.yaml).",
    )
    parser.add_argument(
        "--mlp-config",
        type=str,
        default="config/mlp.yaml",
        help="Path to MLP config YAML (default: config/mlp.yaml).",
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
    logger = get_logger(name="run_mlp", config=train_cfg, log_file_suffix="run_mlp")

    logger.info("=" * 80)
    logger.info("Starting MLP training.")

    metrics = train_and_evaluate_mlp(
        data_config_path=args.data_config,
        mlp_config_path=args.mlp_config,
        train_config_path=args.train_config,
    )

    logger.info(
        "MLP test metrics - prec: %.4f, rec: %.4f, f1: %.4f, acc: %.4f",
        metrics["precision"],
        metrics["recall"],
        metrics["f1"],
        metrics["accuracy"],
    )


if __name__ == "__main__":
    main()
