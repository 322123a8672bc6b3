"""
Exploratory summaries of the Spambase table.

These helpers feed the first section of the report: class balance,
sparsity of the frequency features and how strongly each feature
separates spam from non-spam.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import numpy as np
import pandas as pd
from scipy import stats

from spambase.data.datasets import LABEL_COLUMN, LABEL_ID_COLUMN, get_feature_columns


def summarize_dataset(df: pd.DataFrame) -> Dict[str, Any]:
    """
    High-level summary of a loaded dataset.

    Returns
    -------
    Dict[str, Any]
        Keys: "n_records", "n_features", "class_counts",
        "class_proportions", "sparsity" (share of zero feature cells).
    """
    features = get_feature_columns(df)
    values = df[features].to_numpy(dtype=float)

    counts = df[LABEL_COLUMN].value_counts().sort_index()
    return {
        "n_records": int(len(df)),
        "n_features": len(features),
        "class_counts": {str(k): int(v) for k, v in counts.items()},
        "class_proportions": {str(k): float(v) / len(df) for k, v in counts.items()},
        "sparsity": float((values == 0).mean()) if values.size else float("nan"),
    }


def describe_features(df: pd.DataFrame, top_k: Optional[int] = None) -> pd.DataFrame:
    """
    Per-feature descriptive statistics, sorted by absolute correlation with
    the label.

    Columns: feature, mean, std, min, max, zero_share, mean_spam,
    mean_no_spam, label_correlation (point-biserial).
    """
    features = get_feature_columns(df)
    y = df[LABEL_ID_COLUMN].to_numpy()

    rows = []
    for name in features:
        x = df[name].to_numpy(dtype=float)
        if np.ptp(x) == 0:
            corr = float("nan")
        else:
            corr = float(stats.pointbiserialr(y, x)[0])
        rows.append(
            {
                "feature": name,
                "mean": float(x.mean()),
                "std": float(x.std(ddof=1)) if len(x) > 1 else float("nan"),
                "min": float(x.min()),
                "max": float(x.max()),
                "zero_share": float((x == 0).mean()),
                "mean_spam": float(x[y == 1].mean()) if (y == 1).any() else float("nan"),
                "mean_no_spam": float(x[y == 0].mean()) if (y == 0).any() else float("nan"),
                "label_correlation": corr,
            }
        )

    table = pd.DataFrame(rows)
    order = table["label_correlation"].abs().sort_values(ascending=False, na_position="last").index
    table = table.loc[order].reset_index(drop=True)

    if top_k is not None and top_k > 0:
        table = table.head(top_k)
    return table
