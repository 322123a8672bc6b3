"""
Exhaustive grid search with stratified k-fold cross-validation.

For every hyperparameter configuration of a fixed grid and every fold,
a fresh model is fitted on the other folds and scored on the held-out
fold. Scores are aggregated per configuration (mean and standard error of
precision, recall, F1 and accuracy) and configurations are ranked by the
mean of the selection metric. Ties keep the enumeration order, so the
first-enumerated configuration wins.

When a ``preprocessor_factory`` is given, preprocessing (including
oversampling) is fitted on the training part of each fold only, so the
held-out fold never influences what the model sees during fitting. Each
fold is preprocessed once and the transformed data is shared by every
configuration.

(configuration, fold) pairs are independent and can be evaluated in
parallel with joblib; every pair's seed is fixed before dispatch, so the
result does not depend on ``n_jobs``.
"""

from __future__ import annotations

import logging
import math
import warnings
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from sklearn.model_selection import ParameterGrid

from spambase.data.split import stratified_folds
from spambase.evaluation.metrics import METRIC_NAMES, confusion_counts, metrics_from_counts
from spambase.features.preprocessing import Preprocessor
from spambase.utils.training_utils import derive_seeds


logger = logging.getLogger(__name__)

ModelFactory = Callable[[Dict[str, Any], int], Any]
PreprocessorFactory = Callable[[int], Preprocessor]


@dataclass
class SearchResult:
    """
    Outcome of a grid search.

    ``results`` has one row per configuration (``config_index``,
    ``params``, ``param_<name>`` columns, ``mean_<metric>`` /
    ``sem_<metric>`` columns and ``rank``), sorted by rank.
    ``fold_scores`` has one row per (configuration, fold) pair.
    """

    best_params: Dict[str, Any]
    best_index: int
    selection_metric: str
    results: pd.DataFrame
    fold_scores: pd.DataFrame

    @property
    def best_score(self) -> float:
        return float(self.results.iloc[0][f"mean_{self.selection_metric}"])


def enumerate_grid(param_grid: Dict[str, Sequence[Any]]) -> List[Dict[str, Any]]:
    """
    All configurations of a grid in a fixed, deterministic order.

    An empty grid yields a single empty configuration (model defaults).
    """
    for name, values in (param_grid or {}).items():
        if len(values) == 0:
            raise ValueError(f"Hyperparameter '{name}' has no candidate values.")
    return list(ParameterGrid(param_grid or {}))


def _take(X: Any, idx: np.ndarray) -> Any:
    if isinstance(X, (pd.DataFrame, pd.Series)):
        return X.iloc[idx].reset_index(drop=True)
    return np.asarray(X)[idx]


def _preprocess_fold(
    preprocessor_factory: PreprocessorFactory,
    X_fit: Any,
    y_fit: np.ndarray,
    X_eval: Any,
    y_eval: np.ndarray,
    seed: int,
) -> Tuple[Any, np.ndarray, Any, np.ndarray]:
    state, X_fit, y_fit = preprocessor_factory(seed).fit_resample(X_fit, y_fit)
    return X_fit, np.asarray(y_fit).astype(int), state.apply(X_eval), y_eval


def _fit_and_score(
    model_factory: ModelFactory,
    params: Dict[str, Any],
    X_fit: Any,
    y_fit: np.ndarray,
    X_eval: Any,
    y_eval: np.ndarray,
    seed: int,
) -> Dict[str, float]:
    model = model_factory(params, seed)
    model.fit(X_fit, y_fit)
    y_pred = model.predict(X_eval)
    return metrics_from_counts(*confusion_counts(y_eval, y_pred))


def _aggregate(values: Sequence[float]) -> Tuple[float, float]:
    """Mean and standard error, ignoring undefined (NaN) scores."""
    arr = np.asarray(values, dtype=float)
    arr = arr[~np.isnan(arr)]
    if arr.size == 0:
        return float("nan"), float("nan")
    mean = float(arr.mean())
    sem = float(arr.std(ddof=1) / math.sqrt(arr.size)) if arr.size > 1 else float("nan")
    return mean, sem


def grid_search(
    model_factory: ModelFactory,
    param_grid: Dict[str, Sequence[Any]],
    X: Any,
    y: Any,
    n_folds: int = 10,
    selection_metric: str = "precision",
    random_state: int = 42,
    preprocessor_factory: Optional[PreprocessorFactory] = None,
    X_val: Any = None,
    y_val: Any = None,
    n_jobs: int = 1,
    model_name: str = "model",
) -> SearchResult:
    """
    Evaluate every configuration of ``param_grid`` and select the best.

    Parameters
    ----------
    model_factory : Callable[[dict, int], estimator]
        Builds an unfitted estimator (``fit`` / ``predict``) from one
        configuration and a seed.
    param_grid : Dict[str, Sequence]
        Candidate values per hyperparameter.
    X, y
        Training data. With a ``preprocessor_factory`` X must be the raw
        feature DataFrame.
    n_folds : int
        Number of stratified folds. ``1`` means a single fit on (X, y)
        scored on the explicit validation data (X_val, y_val).
    selection_metric : str
        One of "precision", "recall", "f1", "accuracy".
    random_state : int
        Seed for fold assignment and per-fold model/preprocessing seeds.
    preprocessor_factory : Optional[Callable[[int], Preprocessor]]
        Builds a Preprocessor per fold from the fold's seed.
    n_jobs : int
        joblib workers for fold preprocessing and for (configuration, fold)
        pairs.

    Returns
    -------
    SearchResult
    """
    if selection_metric not in METRIC_NAMES:
        raise ValueError(f"Unknown selection metric '{selection_metric}'. Expected one of {METRIC_NAMES}.")

    configs = enumerate_grid(param_grid)
    y_arr = np.asarray(y).astype(int)

    if int(n_folds) == 1:
        if X_val is None or y_val is None:
            raise ValueError("n_folds=1 requires explicit validation data (X_val, y_val).")
        folds = [(X, y_arr, X_val, np.asarray(y_val).astype(int))]
    else:
        folds = [
            (_take(X, train_idx), y_arr[train_idx], _take(X, val_idx), y_arr[val_idx])
            for train_idx, val_idx in stratified_folds(y_arr, n_folds, random_state)
        ]

    fold_seeds = derive_seeds(random_state, len(folds))

    if preprocessor_factory is not None:
        folds = Parallel(n_jobs=n_jobs)(
            delayed(_preprocess_fold)(preprocessor_factory, *fold, int(seed))
            for fold, seed in zip(folds, fold_seeds)
        )

    logger.info(
        "Grid search for %s: %d configuration(s) x %d fold(s), selecting on %s",
        model_name,
        len(configs),
        len(folds),
        selection_metric,
    )

    tasks = [(ci, fi) for ci in range(len(configs)) for fi in range(len(folds))]
    scores = Parallel(n_jobs=n_jobs)(
        delayed(_fit_and_score)(
            model_factory,
            configs[ci],
            folds[fi][0],
            folds[fi][1],
            folds[fi][2],
            folds[fi][3],
            int(fold_seeds[fi]),
        )
        for ci, fi in tasks
    )

    fold_rows = [
        {"config_index": ci, "fold": fi, **score}
        for (ci, fi), score in zip(tasks, scores)
    ]
    fold_scores = pd.DataFrame(fold_rows, columns=["config_index", "fold", *METRIC_NAMES])

    rows = []
    for ci, params in enumerate(configs):
        subset = fold_scores[fold_scores["config_index"] == ci]
        row: Dict[str, Any] = {"config_index": ci, "params": params}
        row.update({f"param_{k}": v for k, v in params.items()})
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", category=RuntimeWarning)
            for metric in METRIC_NAMES:
                row[f"mean_{metric}"], row[f"sem_{metric}"] = _aggregate(subset[metric])
        rows.append(row)
        logger.info(
            "[%s] %s -> mean %s %.4f (sem %.4f)",
            model_name,
            params,
            selection_metric,
            row[f"mean_{selection_metric}"],
            row[f"sem_{selection_metric}"],
        )

    results = pd.DataFrame(rows)
    results = results.sort_values(
        f"mean_{selection_metric}",
        ascending=False,
        kind="mergesort",
        na_position="last",
    ).reset_index(drop=True)
    results["rank"] = np.arange(1, len(results) + 1)

    best_index = int(results.iloc[0]["config_index"])
    best_params = dict(configs[best_index])
    logger.info("[%s] Best configuration: %s", model_name, best_params)

    return SearchResult(
        best_params=best_params,
        best_index=best_index,
        selection_metric=selection_metric,
        results=results,
        fold_scores=fold_scores,
    )
