"""
Training and evaluation pipeline for the feed-forward neural network.

This module:

- fits the preprocessing on the training split (oversampling included)
- trains ``MLPClassifier`` on the oversampled, transformed training data,
  monitoring validation loss for learning-rate decay and early stopping
- evaluates the restored best network on the validation and test sets
- saves metrics, the per-epoch history and the network weights under
  experiments/

The architecture and training loop are defined in spambase.models.mlp.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import numpy as np
import pandas as pd
import torch

from spambase.data.datasets import (
    DEFAULT_DATA_CONFIG_PATH,
    load_data_config,
    load_spambase_dataset,
)
from spambase.data.split import split_from_config
from spambase.evaluation.metrics import compute_classification_metrics
from spambase.features.preprocessing import PreprocessingState
from spambase.models.mlp import MLPClassifier, load_mlp_config
from spambase.training.train_ml import features_and_labels, fit_shared_preprocessing
from spambase.utils.training_utils import (
    ensure_dir_exists,
    get_device,
    get_logger,
    load_train_config,
)


@dataclass
class MLPRunResult:
    model: MLPClassifier
    state: PreprocessingState
    val_metrics: Dict[str, Any]
    test_metrics: Dict[str, Any]
    history: pd.DataFrame


def train_and_evaluate_single_mlp(
    train_df: pd.DataFrame,
    val_df: pd.DataFrame,
    test_df: pd.DataFrame,
    data_cfg: Dict[str, Any],
    mlp_cfg: Dict[str, Any],
    train_cfg: Dict[str, Any],
    preprocessing: Optional[Tuple[PreprocessingState, pd.DataFrame, np.ndarray]] = None,
    device: Optional[torch.device] = None,
    logger: Optional[logging.Logger] = None,
) -> MLPRunResult:
    """
    Train and evaluate the MLP on already split data.

    Parameters
    ----------
    train_df, val_df, test_df : pd.DataFrame
        Output of the splitter.
    data_cfg, mlp_cfg, train_cfg : Dict[str, Any]
        Parsed config/data.yaml, config/mlp.yaml and config/train.yaml.
    preprocessing : Optional[Tuple[PreprocessingState, pd.DataFrame, np.ndarray]]
        Output of ``fit_shared_preprocessing``; computed here when None.

    Returns
    -------
    MLPRunResult
    """
    logger = logger or logging.getLogger(__name__)
    device = device or get_device(train_cfg)

    seed = int(train_cfg["general"].get("random_state", 42))
    threshold = float(train_cfg["evaluation"].get("threshold", 0.5))

    if preprocessing is None:
        preprocessing = fit_shared_preprocessing(train_df, data_cfg, seed)
    state, X_train, y_train = preprocessing

    X_val_raw, y_val = features_and_labels(val_df)
    X_test_raw, y_test = features_and_labels(test_df)
    X_val = state.apply(X_val_raw)
    X_test = state.apply(X_test_raw)

    model = MLPClassifier.from_config(mlp_cfg, random_state=seed, threshold=threshold, device=device)
    logger.info(
        "Training MLP %s on %d records x %d features (max %d epochs) using %s",
        model.hidden_dims,
        len(X_train),
        X_train.shape[1],
        model.max_epochs,
        device,
    )
    model.fit(X_train, y_train, X_val, y_val)
    logger.info(
        "MLP finished: %s after %d epochs; best val_loss %.4f at epoch %d",
        model.stop_reason_.value,
        len(model.history_),
        model.best_val_loss_,
        model.best_epoch_,
    )

    val_metrics = compute_classification_metrics(y_val, model.predict(X_val))
    test_metrics = compute_classification_metrics(y_test, model.predict(X_test))
    logger.info(
        "[mlp] Test - prec: %.4f, rec: %.4f, f1: %.4f, acc: %.4f",
        test_metrics["precision"],
        test_metrics["recall"],
        test_metrics["f1"],
        test_metrics["accuracy"],
    )

    return MLPRunResult(
        model=model,
        state=state,
        val_metrics=val_metrics,
        test_metrics=test_metrics,
        history=pd.DataFrame(model.history_),
    )


def save_mlp_outputs(run: MLPRunResult, train_cfg: Dict[str, Any], logger: logging.Logger) -> None:
    """
    Write metrics JSON, training history CSV and network weights.
    """
    results_dir = train_cfg["paths"]["results_dir"]
    models_dir = train_cfg["paths"]["models_dir"]
    ensure_dir_exists(results_dir)

    metrics = {
        "model": "mlp",
        "stop_reason": run.model.stop_reason_.value,
        "best_epoch": run.model.best_epoch_,
        "epochs_run": len(run.model.history_),
        **run.test_metrics,
        "validation": run.val_metrics,
    }
    metrics_path = os.path.join(results_dir, "metrics_mlp.json")
    with open(metrics_path, "w", encoding="utf-8") as f:
        json.dump(metrics, f, indent=2)
    logger.info("Saved MLP metrics to %s", metrics_path)

    history_path = os.path.join(results_dir, "mlp_history.csv")
    run.history.to_csv(history_path, index=False)

    save_cfg = train_cfg.get("save", {}) or {}
    if bool(save_cfg.get("save_models", True)):
        ensure_dir_exists(models_dir)
        model_path = os.path.join(models_dir, "mlp.pt")
        overwrite = bool(save_cfg.get("overwrite_existing", False))
        if not os.path.exists(model_path) or overwrite:
            run.model.save(model_path)
            logger.info("Saved MLP weights to %s", model_path)
        else:
            logger.info("MLP weights already exist and overwrite_existing is False: %s", model_path)


def train_and_evaluate_mlp(
    data_config_path: str = DEFAULT_DATA_CONFIG_PATH,
    mlp_config_path: str = "config/mlp.yaml",
    train_config_path: str = "config/train.yaml",
) -> Dict[str, Any]:
    """
    End-to-end pipeline: load, split, preprocess, train and evaluate the MLP.

    Returns
    -------
    Dict[str, Any]
        Test metrics of the trained network.
    """
    data_cfg = load_data_config(data_config_path)
    mlp_cfg = load_mlp_config(mlp_config_path)
    train_cfg = load_train_config(train_config_path)

    logger = get_logger(name="spambase", config=train_cfg, log_file_suffix="mlp")

    df, _ = load_spambase_dataset(config_path=data_config_path)
    train_df, val_df, test_df = split_from_config(df, config_path=data_config_path)

    run = train_and_evaluate_single_mlp(
        train_df,
        val_df,
        test_df,
        data_cfg=data_cfg,
        mlp_cfg=mlp_cfg,
        train_cfg=train_cfg,
        logger=logger,
    )
    save_mlp_outputs(run, train_cfg, logger)
    return run.test_metrics


def main() -> None:
    """
    Main entry point when running this module as a script.
    """
    train_and_evaluate_mlp()


if __name__ == "__main__":
    main()
