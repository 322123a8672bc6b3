"""
Plotting utilities for the Spambase report.

This module provides helpers to visualize:

- bootstrap confidence intervals per model for one metric
- MLP training curves (train/validation loss and learning rate)
- confusion matrices for individual models

Every function takes ``out_path`` (save the figure when given) and
``show`` (call plt.show() or close the figure) and returns (fig, ax).
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, Tuple

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd


def _finish(fig, out_path: Optional[str], show: bool) -> None:
    fig.tight_layout()
    if out_path is not None:
        fig.savefig(out_path, dpi=300, bbox_inches="tight")
    if show:
        plt.show()
    else:
        plt.close(fig)


# ---------------------------------------------------------------------------
# Confidence intervals
# ---------------------------------------------------------------------------


def plot_confidence_intervals(
    summary: pd.DataFrame,
    metric: str = "precision",
    figsize: Tuple[float, float] = (8.0, 5.0),
    title: Optional[str] = None,
    out_path: Optional[str] = None,
    show: bool = True,
):
    """
    Point estimates with bootstrap interval error bars, one row per model.

    Parameters
    ----------
    summary : pd.DataFrame
        ``BootstrapResult.summary`` with columns
        ["model", "metric", "estimate", "lower", "upper", ...].
    metric : str
        Metric to plot.
    """
    df = summary[summary["metric"] == metric]
    if df.empty:
        raise ValueError(f"No bootstrap rows for metric '{metric}'.")

    df = df.sort_values("estimate", ascending=True, na_position="first")
    y_pos = np.arange(len(df))
    estimates = df["estimate"].to_numpy(dtype=float)
    lower_err = np.clip(estimates - df["lower"].to_numpy(dtype=float), 0.0, None)
    upper_err = np.clip(df["upper"].to_numpy(dtype=float) - estimates, 0.0, None)

    fig, ax = plt.subplots(figsize=figsize)
    ax.errorbar(
        estimates,
        y_pos,
        xerr=np.vstack([lower_err, upper_err]),
        fmt="o",
        capsize=4,
    )
    ax.set_yticks(y_pos)
    ax.set_yticklabels(df["model"].astype(str))
    ax.set_xlabel(metric.capitalize())
    ax.set_title(title or f"Test {metric} with bootstrap confidence intervals")
    ax.grid(axis="x", alpha=0.3)

    _finish(fig, out_path, show)
    return fig, ax


# ---------------------------------------------------------------------------
# Training curves
# ---------------------------------------------------------------------------


def plot_training_history(
    history: List[Dict[str, Any]],
    figsize: Tuple[float, float] = (9.0, 5.0),
    title: Optional[str] = None,
    out_path: Optional[str] = None,
    show: bool = True,
):
    """
    Train/validation loss per epoch, with the learning rate on a twin axis.

    ``history`` is ``MLPClassifier.history_``.
    """
    if not history:
        raise ValueError("history is empty; nothing to plot.")

    df = pd.DataFrame(history)

    fig, ax = plt.subplots(figsize=figsize)
    ax.plot(df["epoch"], df["train_loss"], label="train loss")
    ax.plot(df["epoch"], df["val_loss"], label="validation loss")
    ax.set_xlabel("Epoch")
    ax.set_ylabel("Loss")

    lr_ax = ax.twinx()
    lr_ax.step(df["epoch"], df["learning_rate"], where="post", color="grey", alpha=0.6, label="learning rate")
    lr_ax.set_ylabel("Learning rate")

    handles, labels = ax.get_legend_handles_labels()
    lr_handles, lr_labels = lr_ax.get_legend_handles_labels()
    ax.legend(handles + lr_handles, labels + lr_labels, loc="upper right")
    ax.set_title(title or "MLP training history")

    _finish(fig, out_path, show)
    return fig, ax


# ---------------------------------------------------------------------------
# Confusion matrix plots
# ---------------------------------------------------------------------------


def plot_confusion_matrix(
    cm: np.ndarray,
    labels: Sequence[str] = ("no spam", "spam"),
    normalize: bool = False,
    figsize: Tuple[float, float] = (6.0, 5.0),
    title: Optional[str] = None,
    out_path: Optional[str] = None,
    show: bool = True,
):
    """
    Plot a confusion matrix as a heatmap.

    Rows correspond to true labels and columns to predicted labels.
    """
    cm = np.asarray(cm)
    if cm.ndim != 2 or cm.shape[0] != cm.shape[1]:
        raise ValueError("Confusion matrix must be a square 2D array.")

    n_classes = cm.shape[0]
    if len(labels) != n_classes:
        raise ValueError(
            f"Number of labels ({len(labels)}) does not match CM size ({n_classes})."
        )

    if normalize:
        row_sums = cm.sum(axis=1, keepdims=True)
        cm_display = np.divide(cm, row_sums, out=np.zeros(cm.shape, dtype=float), where=row_sums != 0)
        fmt = ".2f"
    else:
        cm_display = cm
        fmt = "d"

    fig, ax = plt.subplots(figsize=figsize)
    im = ax.imshow(cm_display, interpolation="nearest", cmap="Blues")
    fig.colorbar(im, ax=ax)

    ax.set(
        xticks=np.arange(n_classes),
        yticks=np.arange(n_classes),
        xticklabels=labels,
        yticklabels=labels,
        ylabel="True label",
        xlabel="Predicted label",
    )
    ax.set_title(title or ("Normalized confusion matrix" if normalize else "Confusion matrix"))

    thresh = cm_display.max() / 2.0 if cm_display.size > 0 else 0.5
    for i in range(n_classes):
        for j in range(n_classes):
            value = cm_display[i, j]
            ax.text(
                j,
                i,
                format(value, fmt),
                ha="center",
                va="center",
                color="white" if value > thresh else "black",
            )

    _finish(fig, out_path, show)
    return fig, ax
