"""
End-to-end runner for the Spambase report.

This script orchestrates the full pipeline:

1) Load the dataset and write the exploratory tables
2) Stratified 60/20/20 split and train-only preprocessing
3) MLP training with learning-rate decay and early stopping
4) Grid-searched logistic regression, naive Bayes and random forest
5) Test-set point estimates and stratified bootstrap confidence intervals
6) Wilcoxon rank-sum comparisons between models
7) Aggregation of all metrics into a single comparison table

Usage (from the project root):

    python -m scripts.run_all_experiments

or:

    python scripts/run_all_experiments.py --no-plots
"""

from __future__ import annotations

import argparse

from spambase.evaluation.analysis import aggregate_all_results
from spambase.training.experiment import run_experiment
from spambase.utils.training_utils import get_logger, load_train_config


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the full Spambase experiment.")
    parser.add_argument("--data-config", type=str, default="config/data.yaml")
    parser.add_argument("--ml-config", type=str, default="config/ml.yaml")
    parser.add_argument("--mlp-config", type=str, default="config/mlp.yaml")
    parser.add_argument("--train-config", type=str, default="config/train.yaml")
    parser.add_argument(
        "--no-plots",
        action="store_true",
        help="Skip writing figures under experiments/figures/.",
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()

    train_cfg = load_train_config(args.train_config)
    logger = get_logger(
        name="run_all_experiments",
        config=train_cfg,
        log_file_suffix="all",
    )

    logger.info("=" * 80)
    logger.info("Starting full experimental pipeline (MLP + LR/NB/RF).")

    result = run_experiment(
        data_config_path=args.data_config,
        ml_config_path=args.ml_config,
        mlp_config_path=args.mlp_config,
        train_config_path=args.train_config,
        make_plots=not args.no_plots,
    )

    logger.info("=" * 80)
    logger.info("Test point estimates:\n%s", result.point_estimates.to_string(index=False))
    if not result.comparisons.empty:
        logger.info("Rank-sum comparisons:\n%s", result.comparisons.to_string(index=False))

    combined_df = aggregate_all_results(train_config_path=args.train_config)
    logger.info("Aggregated results shape: %s", combined_df.shape)

    logger.info("Full experimental pipeline completed.")


if __name__ == "__main__":
    main()
