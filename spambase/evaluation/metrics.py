"""
Evaluation metrics for the spam detection experiments.

Metrics are computed from confusion-matrix counts with spam (label 1) as
the positive class:

- precision = TP / (TP + FP)
- recall    = TP / (TP + FN)
- F1        = harmonic mean of precision and recall
- accuracy  = (TP + TN) / total

A metric whose denominator is zero (e.g. precision when nothing is
predicted as spam) is reported as NaN instead of raising, so that
degenerate bootstrap resamples can be counted and excluded downstream.
"""

from __future__ import annotations

from typing import Any, Dict, Sequence, Tuple, Union

import numpy as np
from sklearn.metrics import confusion_matrix


ArrayLike = Union[Sequence[int], np.ndarray]

METRIC_NAMES = ("precision", "recall", "f1", "accuracy")
POSITIVE_LABEL = 1


def _safe_ratio(numerator: float, denominator: float) -> float:
    return float(numerator) / float(denominator) if denominator else float("nan")


def confusion_counts(y_true: ArrayLike, y_pred: ArrayLike) -> Tuple[int, int, int, int]:
    """
    Return (tp, fp, fn, tn) for binary labels with spam = 1.
    """
    y_true_arr = np.asarray(y_true).astype(int)
    y_pred_arr = np.asarray(y_pred).astype(int)
    if y_true_arr.shape != y_pred_arr.shape:
        raise ValueError(
            f"y_true and y_pred must have the same shape, got {y_true_arr.shape} and {y_pred_arr.shape}."
        )
    tn, fp, fn, tp = confusion_matrix(y_true_arr, y_pred_arr, labels=[0, POSITIVE_LABEL]).ravel()
    return int(tp), int(fp), int(fn), int(tn)


def metrics_from_counts(tp: int, fp: int, fn: int, tn: int) -> Dict[str, float]:
    """
    Compute precision, recall, F1 and accuracy from confusion counts.

    >>> m = metrics_from_counts(tp=50, fp=5, fn=5, tn=100)
    >>> round(m["precision"], 3), round(m["accuracy"], 4)
    (0.909, 0.9375)
    """
    precision = _safe_ratio(tp, tp + fp)
    recall = _safe_ratio(tp, tp + fn)

    if np.isnan(precision) or np.isnan(recall):
        f1 = float("nan")
    else:
        f1 = _safe_ratio(2.0 * precision * recall, precision + recall)

    return {
        "precision": precision,
        "recall": recall,
        "f1": f1,
        "accuracy": _safe_ratio(tp + tn, tp + fp + fn + tn),
    }


def compute_classification_metrics(
    y_true: ArrayLike,
    y_pred: ArrayLike,
    output_confusion_matrix: bool = True,
) -> Dict[str, Any]:
    """
    Compute standard classification metrics for a predicted label set.

    Parameters
    ----------
    y_true : ArrayLike
        Ground-truth labels (0 for no spam, 1 for spam).
    y_pred : ArrayLike
        Predicted labels, same shape as y_true.
    output_confusion_matrix : bool
        If True, also include the 2x2 confusion matrix
        ``[[tn, fp], [fn, tp]]`` as a nested list.

    Returns
    -------
    Dict[str, Any]
        Keys "precision", "recall", "f1", "accuracy" and optionally
        "confusion_matrix".
    """
    tp, fp, fn, tn = confusion_counts(y_true, y_pred)
    metrics: Dict[str, Any] = metrics_from_counts(tp, fp, fn, tn)

    if output_confusion_matrix:
        metrics["confusion_matrix"] = [[tn, fp], [fn, tp]]

    return metrics


def labels_from_scores(scores: ArrayLike, threshold: float = 0.5) -> np.ndarray:
    """
    Threshold spam probabilities into class labels.
    """
    return (np.asarray(scores, dtype=float) >= threshold).astype(int)


def positive_class_scores(model: Any, X: Any) -> np.ndarray:
    """
    P(spam) per record from any estimator exposing ``predict_proba``.
    """
    proba = np.asarray(model.predict_proba(X))
    if proba.ndim == 1:
        return proba.astype(float)
    classes = list(getattr(model, "classes_", [0, 1]))
    return proba[:, classes.index(POSITIVE_LABEL)].astype(float)
