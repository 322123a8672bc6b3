"""
Bootstrap confidence intervals and rank-sum comparisons on the test set.

Each resample draws, per class, as many test records as that class has,
with replacement, so every resample has the test set's size and class
counts. All models are scored on the same resamples. Predictions are
record-wise and deterministic, so each model predicts the test set once
and resamples re-score those predictions by index.

Per model and metric the summary reports the point estimate on the full
test set, the resample mean, and the percentile interval at the chosen
confidence level. Resamples where a metric is undefined (NaN) are left
out of the mean and the percentiles and counted in ``n_undefined``.

Rank-sum tests compare two models' bootstrap distributions of a metric,
or their prediction confidence on misclassified records. No correction
for multiple comparisons is applied.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Sequence

import numpy as np
import pandas as pd
from scipy import stats

from spambase.evaluation.metrics import (
    METRIC_NAMES,
    compute_classification_metrics,
    labels_from_scores,
    metrics_from_counts,
    positive_class_scores,
)
from spambase.utils.training_utils import make_rng


logger = logging.getLogger(__name__)


@dataclass
class BootstrapResult:
    summary: pd.DataFrame
    scores: pd.DataFrame
    n_resamples: int
    confidence_level: float


@dataclass(frozen=True)
class RankSumResult:
    statistic: float
    p_value: float
    n_a: int
    n_b: int


def stratified_bootstrap_indices(
    y: Sequence[int],
    n_resamples: int,
    rng: np.random.Generator,
) -> np.ndarray:
    """
    Draw stratified bootstrap resamples of record positions.

    Returns
    -------
    np.ndarray
        Integer array of shape (n_resamples, len(y)).
    """
    if n_resamples < 1:
        raise ValueError(f"n_resamples must be positive, got {n_resamples}.")

    y_arr = np.asarray(y)
    if y_arr.size == 0:
        raise ValueError("Cannot bootstrap an empty test set.")

    blocks = []
    for label in np.unique(y_arr):
        members = np.flatnonzero(y_arr == label)
        blocks.append(rng.choice(members, size=(n_resamples, members.size), replace=True))
    return np.concatenate(blocks, axis=1)


def _resample_metrics(y_true: np.ndarray, y_pred: np.ndarray, indices: np.ndarray) -> pd.DataFrame:
    y_b = y_true[indices]
    p_b = y_pred[indices]
    tp = ((y_b == 1) & (p_b == 1)).sum(axis=1)
    fp = ((y_b == 0) & (p_b == 1)).sum(axis=1)
    fn = ((y_b == 1) & (p_b == 0)).sum(axis=1)
    tn = ((y_b == 0) & (p_b == 0)).sum(axis=1)
    rows = [metrics_from_counts(*counts) for counts in zip(tp, fp, fn, tn)]
    return pd.DataFrame(rows, columns=list(METRIC_NAMES))


def bootstrap_from_predictions(
    predictions: Mapping[str, Sequence[int]],
    y_test: Sequence[int],
    n_resamples: int = 1000,
    confidence_level: float = 0.95,
    random_state: int = 42,
) -> BootstrapResult:
    """
    Bootstrap metrics for already predicted test labels.

    Parameters
    ----------
    predictions : Mapping[str, Sequence[int]]
        Predicted labels on the full test set per model name.
    y_test : Sequence[int]
        True test labels.
    """
    if not 0.0 < confidence_level < 1.0:
        raise ValueError(f"confidence_level must be in (0, 1), got {confidence_level}.")

    y_arr = np.asarray(y_test).astype(int)
    indices = stratified_bootstrap_indices(y_arr, n_resamples, make_rng(random_state))

    alpha = 1.0 - confidence_level
    percentiles = [100.0 * alpha / 2.0, 100.0 * (1.0 - alpha / 2.0)]

    score_frames = []
    summary_rows = []
    for name, y_pred in predictions.items():
        y_pred_arr = np.asarray(y_pred).astype(int)
        if y_pred_arr.shape != y_arr.shape:
            raise ValueError(f"Predictions for '{name}' have shape {y_pred_arr.shape}, expected {y_arr.shape}.")

        point = compute_classification_metrics(y_arr, y_pred_arr, output_confusion_matrix=False)
        resampled = _resample_metrics(y_arr, y_pred_arr, indices)

        for metric in METRIC_NAMES:
            values = resampled[metric].to_numpy()
            valid = values[~np.isnan(values)]
            if valid.size:
                lower, upper = np.percentile(valid, percentiles)
                mean = float(valid.mean())
            else:
                lower = upper = mean = float("nan")
            summary_rows.append(
                {
                    "model": name,
                    "metric": metric,
                    "estimate": point[metric],
                    "mean": mean,
                    "lower": float(lower),
                    "upper": float(upper),
                    "n_undefined": int(values.size - valid.size),
                }
            )

        resampled.insert(0, "resample", np.arange(n_resamples))
        resampled.insert(0, "model", name)
        score_frames.append(resampled)

    summary = pd.DataFrame(
        summary_rows,
        columns=["model", "metric", "estimate", "mean", "lower", "upper", "n_undefined"],
    )
    scores = pd.concat(score_frames, ignore_index=True) if score_frames else pd.DataFrame()

    undefined = summary[summary["n_undefined"] > 0]
    for _, row in undefined.iterrows():
        logger.warning(
            "%s: %s undefined in %d of %d resamples (excluded from the interval)",
            row["model"],
            row["metric"],
            row["n_undefined"],
            n_resamples,
        )

    return BootstrapResult(
        summary=summary,
        scores=scores,
        n_resamples=int(n_resamples),
        confidence_level=float(confidence_level),
    )


def bootstrap_evaluate(
    models: Mapping[str, Any],
    X_test: Any,
    y_test: Sequence[int],
    n_resamples: int = 1000,
    confidence_level: float = 0.95,
    random_state: int = 42,
    threshold: float = 0.5,
) -> BootstrapResult:
    """
    Score fitted models on the test set and bootstrap their metrics.

    Every model must expose ``predict_proba``; spam probabilities are
    thresholded at ``threshold``.
    """
    predictions: Dict[str, np.ndarray] = {
        name: labels_from_scores(positive_class_scores(model, X_test), threshold)
        for name, model in models.items()
    }
    logger.info(
        "Bootstrapping %d model(s) over %d stratified resamples of %d test records",
        len(predictions),
        n_resamples,
        len(np.asarray(y_test)),
    )
    return bootstrap_from_predictions(
        predictions,
        y_test,
        n_resamples=n_resamples,
        confidence_level=confidence_level,
        random_state=random_state,
    )


# ---------------------------------------------------------------------------
# Rank-sum comparisons
# ---------------------------------------------------------------------------


def ranksum_test(sample_a: Sequence[float], sample_b: Sequence[float]) -> RankSumResult:
    """
    Wilcoxon rank-sum test between two samples (NaNs dropped).
    """
    a = np.asarray(sample_a, dtype=float)
    b = np.asarray(sample_b, dtype=float)
    a = a[~np.isnan(a)]
    b = b[~np.isnan(b)]
    if a.size == 0 or b.size == 0:
        raise ValueError("Both samples need at least one defined value for a rank-sum test.")

    result = stats.ranksums(a, b)
    return RankSumResult(
        statistic=float(result.statistic),
        p_value=float(result.pvalue),
        n_a=int(a.size),
        n_b=int(b.size),
    )


def compare_models(
    scores: pd.DataFrame,
    model_a: str,
    model_b: str,
    metric: str,
) -> Dict[str, Any]:
    """
    Rank-sum test on two models' bootstrap distributions of a metric.

    ``scores`` is ``BootstrapResult.scores``.
    """
    if metric not in METRIC_NAMES:
        raise ValueError(f"Unknown metric '{metric}'. Expected one of {METRIC_NAMES}.")
    known = set(scores["model"].unique())
    for name in (model_a, model_b):
        if name not in known:
            raise KeyError(f"No bootstrap scores for model '{name}'. Available: {sorted(known)}")

    a = scores.loc[scores["model"] == model_a, metric]
    b = scores.loc[scores["model"] == model_b, metric]
    result = ranksum_test(a, b)
    return {
        "model_a": model_a,
        "model_b": model_b,
        "metric": metric,
        "mean_a": float(np.nanmean(a)),
        "mean_b": float(np.nanmean(b)),
        "statistic": result.statistic,
        "p_value": result.p_value,
    }


def misclassified_confidence(
    p_spam: Sequence[float],
    y_true: Sequence[int],
    threshold: float = 0.5,
) -> np.ndarray:
    """
    Confidence in the predicted class for every misclassified record.
    """
    p = np.asarray(p_spam, dtype=float)
    y = np.asarray(y_true).astype(int)
    pred = labels_from_scores(p, threshold)
    confidence = np.where(pred == 1, p, 1.0 - p)
    return confidence[pred != y]


def compare_misclassified_confidence(
    p_spam_a: Sequence[float],
    p_spam_b: Sequence[float],
    y_true: Sequence[int],
    threshold: float = 0.5,
) -> RankSumResult:
    """
    Rank-sum test on how confident two models are when they are wrong.
    """
    return ranksum_test(
        misclassified_confidence(p_spam_a, y_true, threshold),
        misclassified_confidence(p_spam_b, y_true, threshold),
    )
