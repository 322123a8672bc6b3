"""
Train/validation/test splitting and fold assignment for the Spambase data.

This module provides:
- a stratified 60/20/20 train/validation/test split (ratios configurable
  via the "split" section of config/data.yaml)
- stratified k-fold assignment used by the hyperparameter search

We rely on scikit-learn's train_test_split and StratifiedKFold. Class sizes
are checked up front so that an impossible stratification fails at setup
time with a StratificationError rather than deep inside a library call.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Sequence, Tuple

import numpy as np
import pandas as pd
from sklearn.model_selection import StratifiedKFold, train_test_split

from spambase.data.datasets import (
    DEFAULT_DATA_CONFIG_PATH,
    LABEL_ID_COLUMN,
    load_data_config,
)


logger = logging.getLogger(__name__)

FoldIndices = Tuple[np.ndarray, np.ndarray]


class StratificationError(ValueError):
    """Raised when a class is too small to stratify at the requested resolution."""


def check_stratifiable(y: Sequence[int], proportions: Sequence[float]) -> None:
    """
    Check that every class can be represented in every requested part.

    Parameters
    ----------
    y : Sequence[int]
        Class labels.
    proportions : Sequence[float]
        Fraction of the data going to each part (e.g. [0.6, 0.2, 0.2], or
        [1/k] * k for k folds).

    Raises
    ------
    StratificationError
        If some class would get fewer than one member in the smallest part.
    """
    labels, counts = np.unique(np.asarray(y), return_counts=True)
    if len(labels) < 2:
        raise StratificationError(
            f"Stratification needs at least two classes, found {labels.tolist()}."
        )

    smallest = min(proportions)
    needed = max(len(proportions), math.ceil(1.0 / smallest - 1e-9))
    too_small = {int(lbl): int(cnt) for lbl, cnt in zip(labels, counts) if cnt < needed}
    if too_small:
        raise StratificationError(
            f"Class(es) {too_small} have fewer than {needed} members; cannot stratify "
            f"into parts of proportions {list(proportions)}."
        )


def train_val_test_split(
    df: pd.DataFrame,
    train_size: float = 0.6,
    validation_size: float = 0.2,
    label_column: str = LABEL_ID_COLUMN,
    random_state: int = 42,
    stratify: bool = True,
) -> Tuple[pd.DataFrame, pd.DataFrame, pd.DataFrame]:
    """
    Split a DataFrame into disjoint train, validation and test sets.

    The test share is ``1 - train_size - validation_size``. The test set is
    split off first, then the validation set is taken from the remainder so
    that the requested proportions hold for the full data.

    Parameters
    ----------
    df : pd.DataFrame
        Input DataFrame containing at least the label_column.
    train_size, validation_size : float
        Fractions of the full data; both positive with a sum below 1.
    label_column : str
        Column used for stratification.
    random_state : int
        Seed; the split is deterministic for a fixed seed.
    stratify : bool
        Preserve the class ratio in every subset.

    Returns
    -------
    Tuple[pd.DataFrame, pd.DataFrame, pd.DataFrame]
        (train_df, val_df, test_df)

    Raises
    ------
    KeyError
        If the label_column is missing.
    ValueError
        If the proportions are invalid.
    StratificationError
        If a class is too small to stratify.
    """
    if label_column not in df.columns:
        raise KeyError(
            f"Label column '{label_column}' not found in DataFrame. "
            f"Available columns: {list(df.columns)}"
        )

    train_size = float(train_size)
    validation_size = float(validation_size)
    test_size = 1.0 - train_size - validation_size
    if train_size <= 0 or validation_size <= 0 or test_size <= 1e-9:
        raise ValueError(
            "train_size and validation_size must be positive and sum to less than 1; "
            f"got train_size={train_size}, validation_size={validation_size}."
        )

    if stratify:
        check_stratifiable(df[label_column], [train_size, validation_size, test_size])

    remainder_df, test_df = train_test_split(
        df,
        test_size=test_size,
        random_state=random_state,
        stratify=df[label_column] if stratify else None,
        shuffle=True,
    )

    # Validation share relative to what is left after removing test.
    relative_val = validation_size / (train_size + validation_size)
    train_df, val_df = train_test_split(
        remainder_df,
        test_size=relative_val,
        random_state=random_state,
        stratify=remainder_df[label_column] if stratify else None,
        shuffle=True,
    )

    train_df = train_df.reset_index(drop=True)
    val_df = val_df.reset_index(drop=True)
    test_df = test_df.reset_index(drop=True)

    logger.info(
        "Split %d records into train=%d, validation=%d, test=%d",
        len(df),
        len(train_df),
        len(val_df),
        len(test_df),
    )
    return train_df, val_df, test_df


def get_split_config(
    config_path: str = DEFAULT_DATA_CONFIG_PATH,
) -> Dict[str, Any]:
    """
    Retrieve the 'split' section from the data configuration.
    """
    cfg = load_data_config(config_path)
    return cfg["split"]


def split_from_config(
    df: pd.DataFrame,
    config_path: str = DEFAULT_DATA_CONFIG_PATH,
    label_column: str = LABEL_ID_COLUMN,
) -> Tuple[pd.DataFrame, pd.DataFrame, pd.DataFrame]:
    """
    Split a DataFrame according to config/data.yaml.
    """
    split_cfg = get_split_config(config_path)
    return train_val_test_split(
        df,
        train_size=float(split_cfg.get("train_size", 0.6)),
        validation_size=float(split_cfg.get("validation_size", 0.2)),
        label_column=label_column,
        random_state=int(split_cfg.get("random_state", 42)),
        stratify=bool(split_cfg.get("stratify", True)),
    )


def stratified_folds(
    y: Sequence[int],
    n_folds: int,
    random_state: int = 42,
) -> List[FoldIndices]:
    """
    Partition record positions into ``n_folds`` stratified folds.

    Every record appears in exactly one validation fold and in the training
    part of the other ``n_folds - 1`` rounds.

    Returns
    -------
    List[Tuple[np.ndarray, np.ndarray]]
        One (train_indices, validation_indices) pair per fold.

    Raises
    ------
    ValueError
        If n_folds < 2.
    StratificationError
        If a class has fewer than n_folds members.
    """
    n_folds = int(n_folds)
    if n_folds < 2:
        raise ValueError(f"n_folds must be at least 2 for k-fold assignment, got {n_folds}.")

    y_arr = np.asarray(y)
    check_stratifiable(y_arr, [1.0 / n_folds] * n_folds)

    splitter = StratifiedKFold(n_splits=n_folds, shuffle=True, random_state=random_state)
    placeholder = np.zeros(len(y_arr))
    return [
        (train_idx, val_idx)
        for train_idx, val_idx in splitter.split(placeholder, y_arr)
    ]
