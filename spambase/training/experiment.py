"""
End-to-end Spambase experiment.

Runs the whole report pipeline in order:

1) load the dataset and summarise it (EDA tables)
2) stratified train/validation/test split
3) fit the preprocessing on train once; the fitted state is shared by
   every model and applied read-only to validation and test
4) train the MLP
5) tune and refit the traditional models
6) point estimates and stratified bootstrap confidence intervals on test
7) rank-sum comparisons between models
8) save tables (CSV) and figures
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List

import pandas as pd

from spambase.data.datasets import DEFAULT_DATA_CONFIG_PATH, load_data_config, load_spambase_dataset
from spambase.data.exploration import describe_features, summarize_dataset
from spambase.data.split import split_from_config
from spambase.evaluation import plots
from spambase.evaluation.analysis import format_ci_table, point_estimate_table, save_tables
from spambase.evaluation.bootstrap import (
    BootstrapResult,
    bootstrap_evaluate,
    compare_misclassified_confidence,
    compare_models,
)
from spambase.evaluation.metrics import positive_class_scores
from spambase.models.ml_models import load_ml_config
from spambase.models.mlp import load_mlp_config
from spambase.training.train_ml import (
    MLRunResult,
    features_and_labels,
    fit_shared_preprocessing,
    tune_and_evaluate_ml_models,
)
from spambase.training.train_mlp import MLPRunResult, save_mlp_outputs, train_and_evaluate_single_mlp
from spambase.utils.training_utils import ensure_dir_exists, get_logger, load_train_config


@dataclass
class ExperimentResult:
    dataset_summary: Dict[str, Any]
    feature_table: pd.DataFrame
    point_estimates: pd.DataFrame
    bootstrap: BootstrapResult
    comparisons: pd.DataFrame
    confidence_comparisons: pd.DataFrame
    mlp_run: MLPRunResult
    ml_run: MLRunResult


def _run_comparisons(
    bootstrap: BootstrapResult,
    pairs: List[List[str]],
    metrics: List[str],
    logger: logging.Logger,
) -> pd.DataFrame:
    known = set(bootstrap.scores["model"].unique())
    rows = []
    for model_a, model_b in pairs:
        if model_a not in known or model_b not in known:
            logger.warning("Skipping comparison %s vs %s: model not trained.", model_a, model_b)
            continue
        for metric in metrics:
            try:
                row = compare_models(bootstrap.scores, model_a, model_b, metric)
            except ValueError as exc:
                logger.warning("Skipping %s comparison %s vs %s: %s", metric, model_a, model_b, exc)
                continue
            logger.info(
                "Rank-sum %s vs %s on %s: statistic=%.3f, p=%.4g",
                model_a,
                model_b,
                metric,
                row["statistic"],
                row["p_value"],
            )
            rows.append(row)
    return pd.DataFrame(
        rows,
        columns=["model_a", "model_b", "metric", "mean_a", "mean_b", "statistic", "p_value"],
    )


def _run_confidence_comparisons(
    models: Dict[str, Any],
    X_test: Any,
    y_test: Any,
    pairs: List[List[str]],
    threshold: float,
    logger: logging.Logger,
) -> pd.DataFrame:
    rows = []
    for model_a, model_b in pairs:
        if model_a not in models or model_b not in models:
            continue
        try:
            result = compare_misclassified_confidence(
                positive_class_scores(models[model_a], X_test),
                positive_class_scores(models[model_b], X_test),
                y_test,
                threshold=threshold,
            )
        except ValueError as exc:
            logger.warning("Skipping confidence comparison %s vs %s: %s", model_a, model_b, exc)
            continue
        rows.append(
            {
                "model_a": model_a,
                "model_b": model_b,
                "n_misclassified_a": result.n_a,
                "n_misclassified_b": result.n_b,
                "statistic": result.statistic,
                "p_value": result.p_value,
            }
        )
    return pd.DataFrame(
        rows,
        columns=["model_a", "model_b", "n_misclassified_a", "n_misclassified_b", "statistic", "p_value"],
    )


def _save_figures(
    bootstrap: BootstrapResult,
    mlp_run: MLPRunResult,
    test_metrics: Dict[str, Dict[str, Any]],
    figures_dir: str,
) -> None:
    ensure_dir_exists(figures_dir)
    for metric in bootstrap.summary["metric"].unique():
        plots.plot_confidence_intervals(
            bootstrap.summary,
            metric=metric,
            out_path=os.path.join(figures_dir, f"ci_{metric}.png"),
            show=False,
        )
    plots.plot_training_history(
        mlp_run.model.history_,
        out_path=os.path.join(figures_dir, "mlp_history.png"),
        show=False,
    )
    for name, metrics in test_metrics.items():
        plots.plot_confusion_matrix(
            metrics["confusion_matrix"],
            title=f"Confusion matrix ({name})",
            out_path=os.path.join(figures_dir, f"confusion_{name}.png"),
            show=False,
        )


def run_experiment(
    data_config_path: str = DEFAULT_DATA_CONFIG_PATH,
    ml_config_path: str = "config/ml.yaml",
    mlp_config_path: str = "config/mlp.yaml",
    train_config_path: str = "config/train.yaml",
    make_plots: bool = True,
) -> ExperimentResult:
    """
    Run the full report pipeline and write its tables and figures.
    """
    data_cfg = load_data_config(data_config_path)
    ml_cfg = load_ml_config(ml_config_path)
    mlp_cfg = load_mlp_config(mlp_config_path)
    train_cfg = load_train_config(train_config_path)

    logger = get_logger(name="spambase", config=train_cfg, log_file_suffix="experiment")

    seed = int(train_cfg["general"].get("random_state", 42))
    eval_cfg = train_cfg["evaluation"]
    threshold = float(eval_cfg.get("threshold", 0.5))
    results_dir = train_cfg["paths"]["results_dir"]

    # 1) data + EDA
    df, label_mapping = load_spambase_dataset(config_path=data_config_path)
    dataset_summary = summarize_dataset(df)
    feature_table = describe_features(df)
    logger.info("Dataset summary: %s", dataset_summary)

    # 2) split
    train_df, val_df, test_df = split_from_config(df, config_path=data_config_path)

    # 3) preprocessing shared by all models
    preprocessing = fit_shared_preprocessing(train_df, data_cfg, seed)
    state = preprocessing[0]
    X_test_raw, y_test = features_and_labels(test_df)
    X_test = state.apply(X_test_raw)

    # 4) MLP
    logger.info("=" * 80)
    mlp_run = train_and_evaluate_single_mlp(
        train_df, val_df, test_df,
        data_cfg=data_cfg, mlp_cfg=mlp_cfg, train_cfg=train_cfg,
        preprocessing=preprocessing, logger=logger,
    )
    save_mlp_outputs(mlp_run, train_cfg, logger)

    # 5) traditional models
    ml_run = tune_and_evaluate_ml_models(
        train_df, val_df, test_df,
        data_cfg=data_cfg, ml_cfg=ml_cfg, train_cfg=train_cfg,
        preprocessing=preprocessing, logger=logger,
    )

    # 6) point estimates + bootstrap
    logger.info("=" * 80)
    models: Dict[str, Any] = {"mlp": mlp_run.model, **ml_run.models}
    test_metrics = {"mlp": mlp_run.test_metrics, **ml_run.test_metrics}
    point_estimates = point_estimate_table(test_metrics)

    bootstrap = bootstrap_evaluate(
        models,
        X_test,
        y_test,
        n_resamples=int(eval_cfg.get("n_resamples", 1000)),
        confidence_level=float(eval_cfg.get("confidence_level", 0.95)),
        random_state=seed,
        threshold=threshold,
    )

    # 7) significance tests
    pairs = [list(p) for p in eval_cfg.get("comparisons", []) or []]
    comparison_metrics = list(eval_cfg.get("comparison_metrics", ["precision"]))
    comparisons = _run_comparisons(bootstrap, pairs, comparison_metrics, logger)
    confidence_comparisons = _run_confidence_comparisons(models, X_test, y_test, pairs, threshold, logger)

    # 8) outputs
    paths = save_tables(
        {
            "eda_features": feature_table,
            "test_point_estimates": point_estimates,
            "bootstrap_summary": bootstrap.summary,
            "bootstrap_scores": bootstrap.scores,
            "bootstrap_ci_table": format_ci_table(bootstrap.summary),
            "ranksum_metrics": comparisons,
            "ranksum_misclassified_confidence": confidence_comparisons,
        },
        results_dir,
    )
    with open(os.path.join(results_dir, "dataset_summary.json"), "w", encoding="utf-8") as f:
        json.dump({**dataset_summary, "label_mapping": label_mapping}, f, indent=2)
    logger.info("Saved %d result tables under %s", len(paths), results_dir)

    if make_plots:
        _save_figures(bootstrap, mlp_run, test_metrics, train_cfg["paths"].get("figures_dir", "experiments/figures"))

    logger.info("Bootstrap summary:\n%s", bootstrap.summary.to_string(index=False))

    return ExperimentResult(
        dataset_summary=dataset_summary,
        feature_table=feature_table,
        point_estimates=point_estimates,
        bootstrap=bootstrap,
        comparisons=comparisons,
        confidence_comparisons=confidence_comparisons,
        mlp_run=mlp_run,
        ml_run=ml_run,
    )
