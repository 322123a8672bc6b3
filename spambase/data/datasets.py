"""
Dataset loading utilities for the UCI Spambase dataset.

This module is responsible for:
- reading the dataset configuration from config/data.yaml
- loading the raw flat file into a pandas DataFrame
- applying the canonical 57 feature names when the file has no header
- validating that every feature is numeric and non-negative
- mapping the binary label to readable names ("spam", "no spam") and
  numeric IDs (1 for spam, 0 otherwise)

The resulting DataFrame is ready to be split by spambase.data.split and fed to
the preprocessing pipeline.
"""

from __future__ import annotations

import os
from typing import Any, Dict, List, Tuple

import numpy as np
import pandas as pd

from spambase.utils.training_utils import load_yaml_config


DEFAULT_DATA_CONFIG_PATH = "config/data.yaml"

LABEL_COLUMN = "label"
LABEL_ID_COLUMN = "label_id"

_WORDS = [
    "make", "address", "all", "3d", "our", "over", "remove", "internet",
    "order", "mail", "receive", "will", "people", "report", "addresses",
    "free", "business", "email", "you", "credit", "your", "font", "000",
    "money", "hp", "hpl", "george", "650", "lab", "labs", "telnet", "857",
    "data", "415", "85", "technology", "1999", "parts", "pm", "direct", "cs",
    "meeting", "original", "project", "re", "edu", "table", "conference",
]
_CHARS = ["semicolon", "parenthesis", "bracket", "exclamation", "dollar", "hash"]

SPAMBASE_FEATURE_NAMES: List[str] = (
    [f"word_freq_{w}" for w in _WORDS]
    + [f"char_freq_{c}" for c in _CHARS]
    + [
        "capital_run_length_average",
        "capital_run_length_longest",
        "capital_run_length_total",
    ]
)


def load_data_config(config_path: str = DEFAULT_DATA_CONFIG_PATH) -> Dict[str, Any]:
    """
    Load and return the full data configuration dictionary.

    Parameters
    ----------
    config_path : str, optional
        Path to the data YAML configuration file.

    Returns
    -------
    Dict[str, Any]
        Dictionary containing the "dataset", "split", and "preprocessing" sections.
    """
    return load_yaml_config(
        config_path,
        required_sections=("dataset", "split", "preprocessing"),
        kind="Data config",
    )


def get_label_mapping(dataset_cfg: Dict[str, Any]) -> Dict[str, int]:
    """
    Build the mapping from label names to numeric IDs.

    Spam is always the positive class (ID 1).
    """
    negative_label = dataset_cfg.get("negative_label", "no spam")
    positive_label = dataset_cfg.get("positive_label", "spam")
    return {negative_label: 0, positive_label: 1}


def get_feature_columns(df: pd.DataFrame) -> List[str]:
    """
    Return the feature columns of a loaded dataset in schema order.
    """
    return [c for c in df.columns if c not in (LABEL_COLUMN, LABEL_ID_COLUMN)]


def validate_features(df: pd.DataFrame, feature_columns: List[str]) -> None:
    """
    Check that all feature columns are numeric, finite and non-negative.

    Raises
    ------
    ValueError
        If any feature column violates these constraints.
    """
    non_numeric = [c for c in feature_columns if not pd.api.types.is_numeric_dtype(df[c])]
    if non_numeric:
        raise ValueError(f"Non-numeric feature column(s): {non_numeric}")

    values = df[feature_columns].to_numpy(dtype=float)
    if not np.isfinite(values).all():
        raise ValueError("Feature matrix contains missing or non-finite values.")
    if (values < 0).any():
        bad = [c for c in feature_columns if (df[c] < 0).any()]
        raise ValueError(f"Feature column(s) contain negative values: {bad}")


def load_spambase_dataset(
    config_path: str = DEFAULT_DATA_CONFIG_PATH,
) -> Tuple[pd.DataFrame, Dict[str, int]]:
    """
    Load the Spambase dataset according to the configuration.

    Returns
    -------
    Tuple[pd.DataFrame, Dict[str, int]]
        A tuple containing:
        - df: DataFrame with the 57 feature columns followed by
          ["label", "label_id"]
        - label_mapping: dict mapping label names to integer IDs.

    Raises
    ------
    FileNotFoundError
        If the dataset file cannot be found.
    ValueError
        If the column count, feature values or label values are invalid.
    """
    cfg = load_data_config(config_path)
    dataset_cfg = cfg["dataset"]

    path = dataset_cfg.get("path", "data/raw/spambase.data")
    has_header = bool(dataset_cfg.get("has_header", False))
    label_column = dataset_cfg.get("label_column", "spam")
    drop_duplicates = bool(dataset_cfg.get("drop_duplicates", False))

    if not os.path.exists(path):
        raise FileNotFoundError(f"Dataset file not found at: {path}")

    if has_header:
        df = pd.read_csv(path)
    else:
        df = pd.read_csv(path, header=None)
        expected = len(SPAMBASE_FEATURE_NAMES) + 1
        if df.shape[1] != expected:
            raise ValueError(
                f"Expected {expected} columns in headerless dataset, found {df.shape[1]}."
            )
        df.columns = SPAMBASE_FEATURE_NAMES + [label_column]

    if label_column not in df.columns:
        raise ValueError(
            f"Missing label column '{label_column}' in dataset. "
            f"Available columns: {list(df.columns)}"
        )

    raw_labels = df.pop(label_column)
    feature_columns = list(df.columns)
    validate_features(df, feature_columns)

    invalid = ~raw_labels.isin([0, 1])
    if invalid.any():
        raise ValueError(
            f"Label column '{label_column}' must be binary 0/1; "
            f"found values {sorted(raw_labels[invalid].unique().tolist())}"
        )

    label_mapping = get_label_mapping(dataset_cfg)
    id_to_label = {v: k for k, v in label_mapping.items()}

    df[LABEL_ID_COLUMN] = raw_labels.astype(int).to_numpy()
    df[LABEL_COLUMN] = df[LABEL_ID_COLUMN].map(id_to_label)
    df = df[feature_columns + [LABEL_COLUMN, LABEL_ID_COLUMN]]

    if drop_duplicates:
        df = df.drop_duplicates(keep="first")

    df = df.reset_index(drop=True)

    return df, label_mapping
