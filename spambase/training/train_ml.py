"""
Tuning and evaluation pipeline for the traditional ML models.

For each enabled model family (penalised logistic regression, Gaussian
naive Bayes, random forest) this module:

- runs an exhaustive stratified k-fold grid search on the raw training
  set, refitting the preprocessing inside every fold
- refits the best configuration on the full preprocessed training set
- evaluates it on the validation and test sets (precision, recall, F1,
  accuracy)
- saves the CV table, metrics JSON and (optionally) the fitted model
  under experiments/

It is callable both as a library function and as a standalone script
(via `python -m spambase.training.train_ml`).
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Dict, Optional, Tuple

import joblib
import numpy as np
import pandas as pd

from spambase.data.datasets import (
    DEFAULT_DATA_CONFIG_PATH,
    LABEL_ID_COLUMN,
    get_feature_columns,
    load_data_config,
    load_spambase_dataset,
)
from spambase.data.split import split_from_config
from spambase.evaluation.metrics import METRIC_NAMES, compute_classification_metrics
from spambase.features.preprocessing import PreprocessingState, Preprocessor
from spambase.models.ml_models import (
    get_enabled_models,
    get_model_factory,
    get_param_grid,
    load_ml_config,
)
from spambase.training.grid_search import SearchResult, grid_search
from spambase.utils.training_utils import ensure_dir_exists, get_logger, load_train_config


# ---------------------------------------------------------------------------
# Core helpers
# ---------------------------------------------------------------------------


@dataclass
class MLRunResult:
    models: Dict[str, Any] = field(default_factory=dict)
    searches: Dict[str, SearchResult] = field(default_factory=dict)
    val_metrics: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    test_metrics: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    state: Optional[PreprocessingState] = None
    metrics_df: pd.DataFrame = field(default_factory=pd.DataFrame)


def features_and_labels(df: pd.DataFrame) -> Tuple[pd.DataFrame, np.ndarray]:
    """
    Split a loaded/split DataFrame into the raw feature frame and label IDs.
    """
    return df[get_feature_columns(df)].reset_index(drop=True), df[LABEL_ID_COLUMN].to_numpy().astype(int)


def fit_shared_preprocessing(
    train_df: pd.DataFrame,
    data_cfg: Dict[str, Any],
    random_state: int,
) -> Tuple[PreprocessingState, pd.DataFrame, np.ndarray]:
    """
    Fit the experiment's preprocessing on the training set once.

    Returns the state and the oversampled, transformed training data.
    """
    X_train, y_train = features_and_labels(train_df)
    return Preprocessor.from_config(data_cfg, random_state).fit_resample(X_train, y_train)


def _save_model(model: Any, name: str, models_dir: str, train_cfg: Dict[str, Any], logger: logging.Logger) -> None:
    save_cfg = train_cfg.get("save", {}) or {}
    if not bool(save_cfg.get("save_models", True)):
        return

    ensure_dir_exists(models_dir)
    model_path = os.path.join(models_dir, f"model_{name}.joblib")
    overwrite = bool(save_cfg.get("overwrite_existing", False))
    if not os.path.exists(model_path) or overwrite:
        joblib.dump(model, model_path)
        logger.info("Saved trained model '%s' to %s", name, model_path)
    else:
        logger.info("Model file already exists and overwrite_existing is False: %s", model_path)


# ---------------------------------------------------------------------------
# Tuning + evaluation
# ---------------------------------------------------------------------------


def tune_and_evaluate_ml_models(
    train_df: pd.DataFrame,
    val_df: pd.DataFrame,
    test_df: pd.DataFrame,
    data_cfg: Dict[str, Any],
    ml_cfg: Dict[str, Any],
    train_cfg: Dict[str, Any],
    preprocessing: Optional[Tuple[PreprocessingState, pd.DataFrame, np.ndarray]] = None,
    logger: Optional[logging.Logger] = None,
) -> MLRunResult:
    """
    Tune, refit and evaluate every enabled traditional model family.

    Parameters
    ----------
    train_df, val_df, test_df : pd.DataFrame
        Output of the splitter (raw features plus label columns).
    data_cfg, ml_cfg, train_cfg : Dict[str, Any]
        Parsed config/data.yaml, config/ml.yaml and config/train.yaml.
    preprocessing : Optional[Tuple[PreprocessingState, pd.DataFrame, np.ndarray]]
        Output of ``fit_shared_preprocessing`` (state plus the oversampled,
        transformed training data); computed here when None.

    Returns
    -------
    MLRunResult
    """
    logger = logger or logging.getLogger(__name__)

    seed = int(train_cfg["general"].get("random_state", 42))
    n_jobs = int(train_cfg["general"].get("n_jobs", 1))
    n_folds = int(ml_cfg["general"].get("n_folds", 10))
    selection_metric = str(ml_cfg["general"].get("selection_metric", "precision"))

    results_dir = train_cfg["paths"]["results_dir"]
    models_dir = train_cfg["paths"]["models_dir"]
    ensure_dir_exists(results_dir)

    X_train_raw, y_train = features_and_labels(train_df)
    X_val_raw, y_val = features_and_labels(val_df)
    X_test_raw, y_test = features_and_labels(test_df)

    if preprocessing is None:
        preprocessing = fit_shared_preprocessing(train_df, data_cfg, seed)
    state, X_train, y_train_fit = preprocessing

    X_val = state.apply(X_val_raw)
    X_test = state.apply(X_test_raw)

    preprocessor_factory = partial(Preprocessor.from_config, data_cfg)
    run = MLRunResult(state=state)
    records = []

    for name in get_enabled_models(ml_cfg):
        logger.info("=" * 80)
        logger.info("Tuning model: %s", name)

        factory = get_model_factory(name, ml_cfg)
        search = grid_search(
            model_factory=factory,
            param_grid=get_param_grid(name, ml_cfg),
            X=X_train_raw,
            y=y_train,
            n_folds=n_folds,
            selection_metric=selection_metric,
            random_state=seed,
            preprocessor_factory=preprocessor_factory,
            X_val=X_val_raw,
            y_val=y_val,
            n_jobs=n_jobs,
            model_name=name,
        )
        search.results.to_csv(os.path.join(results_dir, f"cv_{name}.csv"), index=False)

        model = factory(search.best_params, seed)
        model.fit(X_train, y_train_fit)
        logger.info("Model '%s' refitted with %s.", name, search.best_params)

        val_metrics = compute_classification_metrics(y_val, model.predict(X_val))
        test_metrics = compute_classification_metrics(y_test, model.predict(X_test))
        logger.info(
            "Test metrics for %s - prec: %.4f, rec: %.4f, f1: %.4f, acc: %.4f",
            name,
            test_metrics["precision"],
            test_metrics["recall"],
            test_metrics["f1"],
            test_metrics["accuracy"],
        )

        record = {
            "model": name,
            "best_params": json.dumps(search.best_params, sort_keys=True),
            f"cv_mean_{selection_metric}": search.best_score,
            **{m: test_metrics[m] for m in METRIC_NAMES},
            **{f"val_{m}": val_metrics[m] for m in METRIC_NAMES},
        }
        records.append(record)

        metrics_path = os.path.join(results_dir, f"metrics_{name}.json")
        with open(metrics_path, "w", encoding="utf-8") as f:
            json.dump(
                {
                    "model": name,
                    "best_params": search.best_params,
                    **test_metrics,
                    "validation": val_metrics,
                },
                f,
                indent=2,
            )
        logger.info("Saved metrics JSON for %s to %s", name, metrics_path)

        _save_model(model, name, models_dir, train_cfg, logger)

        run.models[name] = model
        run.searches[name] = search
        run.val_metrics[name] = val_metrics
        run.test_metrics[name] = test_metrics

    run.metrics_df = pd.DataFrame(records)
    csv_path = os.path.join(results_dir, "ml_results.csv")
    run.metrics_df.to_csv(csv_path, index=False)
    logger.info("Saved aggregated ML metrics to %s", csv_path)

    return run


def train_and_evaluate_ml_models(
    data_config_path: str = DEFAULT_DATA_CONFIG_PATH,
    ml_config_path: str = "config/ml.yaml",
    train_config_path: str = "config/train.yaml",
) -> pd.DataFrame:
    """
    End-to-end pipeline: load, split, tune and evaluate all traditional models.

    Returns
    -------
    pd.DataFrame
        One row per model with test metrics, validation metrics and the
        selected configuration.
    """
    data_cfg = load_data_config(data_config_path)
    ml_cfg = load_ml_config(ml_config_path)
    train_cfg = load_train_config(train_config_path)

    logger = get_logger(name="spambase", config=train_cfg, log_file_suffix="ml")

    df, label_mapping = load_spambase_dataset(config_path=data_config_path)
    logger.info("Loaded dataset with %d records. Label mapping: %s", len(df), label_mapping)

    train_df, val_df, test_df = split_from_config(df, config_path=data_config_path)

    run = tune_and_evaluate_ml_models(
        train_df,
        val_df,
        test_df,
        data_cfg=data_cfg,
        ml_cfg=ml_cfg,
        train_cfg=train_cfg,
        logger=logger,
    )
    return run.metrics_df


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """
    Main entry point when running this module as a script.
    """
    _ = train_and_evaluate_ml_models()


if __name__ == "__main__":
    main()
