"""
Result aggregation and report tables.

This module provides helpers to:
- turn per-model test metrics into a comparison table
- format bootstrap summaries as "estimate [lower, upper]" tables
- load the metrics written by the ML and MLP pipelines and aggregate them
  into a single table saved as CSV for reporting
"""

from __future__ import annotations

import json
import os
from typing import Any, Dict, List, Mapping, Optional

import pandas as pd

from spambase.evaluation.metrics import METRIC_NAMES
from spambase.utils.training_utils import ensure_dir_exists, load_train_config


CORE_COLUMNS = ["model", "category", *METRIC_NAMES]


def point_estimate_table(
    metrics_by_model: Mapping[str, Mapping[str, Any]],
    category: Optional[str] = None,
) -> pd.DataFrame:
    """
    One row per model with the four point-estimate metrics.
    """
    rows = []
    for name, metrics in metrics_by_model.items():
        row: Dict[str, Any] = {"model": name}
        if category is not None:
            row["category"] = category
        row.update({m: metrics.get(m) for m in METRIC_NAMES})
        rows.append(row)
    columns = ["model"] + (["category"] if category is not None else []) + list(METRIC_NAMES)
    return pd.DataFrame(rows, columns=columns)


def format_ci_table(summary: pd.DataFrame, decimals: int = 3) -> pd.DataFrame:
    """
    Wide table (model x metric) of "estimate [lower, upper]" strings.

    ``summary`` is ``BootstrapResult.summary``.
    """
    if summary.empty:
        return pd.DataFrame()

    def _fmt(row: pd.Series) -> str:
        return f"{row['estimate']:.{decimals}f} [{row['lower']:.{decimals}f}, {row['upper']:.{decimals}f}]"

    table = summary.assign(ci=summary.apply(_fmt, axis=1))
    wide = table.pivot(index="model", columns="metric", values="ci")
    ordered = [m for m in METRIC_NAMES if m in wide.columns]
    return wide[ordered].reset_index()


def save_tables(tables: Mapping[str, pd.DataFrame], results_dir: str) -> List[str]:
    """
    Save each table as ``<name>.csv`` under results_dir; return the paths.
    """
    ensure_dir_exists(results_dir)
    paths = []
    for name, table in tables.items():
        path = os.path.join(results_dir, f"{name}.csv")
        table.to_csv(path, index=False)
        paths.append(path)
    return paths


# ---------------------------------------------------------------------------
# Loading results written by the pipelines
# ---------------------------------------------------------------------------


def _safe_load_json(path: str) -> Optional[Dict[str, Any]]:
    if not os.path.exists(path):
        return None
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def load_ml_results(results_dir: str) -> pd.DataFrame:
    """
    Load traditional-model test metrics from ml_results.csv (if present).
    """
    path = os.path.join(results_dir, "ml_results.csv")
    if not os.path.exists(path):
        return pd.DataFrame(columns=["model", *METRIC_NAMES])
    return pd.read_csv(path)


def load_mlp_results(results_dir: str) -> pd.DataFrame:
    """
    Load the MLP test metrics from metrics_mlp.json (if present).
    """
    data = _safe_load_json(os.path.join(results_dir, "metrics_mlp.json"))
    if data is None:
        return pd.DataFrame(columns=["model", *METRIC_NAMES])
    return pd.DataFrame([{k: data.get(k) for k in ["model", *METRIC_NAMES]}])


def aggregate_all_results(
    train_config_path: str = "config/train.yaml",
    save: bool = True,
    filename: str = "all_results.csv",
) -> pd.DataFrame:
    """
    Aggregate traditional-model and MLP test metrics into one table,
    sorted by precision.

    Returns
    -------
    pd.DataFrame
        Columns ["model", "category", "precision", "recall", "f1", "accuracy"].
    """
    train_cfg = load_train_config(train_config_path)
    results_dir = train_cfg["paths"]["results_dir"]
    ensure_dir_exists(results_dir)

    frames = []
    for category, df in (("ml", load_ml_results(results_dir)), ("mlp", load_mlp_results(results_dir))):
        if df.empty:
            continue
        df = df.copy()
        df["category"] = category
        frames.append(df[CORE_COLUMNS])

    if frames:
        combined = pd.concat(frames, axis=0, ignore_index=True)
        combined = combined.sort_values("precision", ascending=False, na_position="last")
    else:
        combined = pd.DataFrame(columns=CORE_COLUMNS)

    if save:
        combined.to_csv(os.path.join(results_dir, filename), index=False)

    return combined
