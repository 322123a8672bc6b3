"""
Feature preprocessing for the Spambase frequency features.

The pipeline is split into two explicit capabilities:

- ``Preprocessor``: learns a ``PreprocessingState`` from training data only.
- ``PreprocessingState``: an immutable, fitted transformation that is
  applied read-only to the training, validation and test subsets.

Steps, in order:

1. SMOTE oversampling of the minority class up to the majority count
   (training data only; never part of ``apply``)
2. log transform ``log(x + offset)`` with a fixed offset
3. range normalisation with per-feature min/max learned on train
4. correlation pruning: of every pair with |r| above the threshold the
   later-indexed feature is dropped
5. near-zero-variance pruning (frequency ratio / percent-unique heuristic)

Validation and test values may fall outside [0, 1] after normalisation.
They are passed through unclamped by default so that a distribution shift
stays visible downstream; the number of such cells is logged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from imblearn.over_sampling import SMOTE


logger = logging.getLogger(__name__)

ArrayLike = Union[np.ndarray, Sequence[int], pd.Series]


class SchemaMismatchError(ValueError):
    """Raised when data passed to ``apply`` does not match the fitted schema."""


# ---------------------------------------------------------------------------
# Fitted state
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OversamplingSummary:
    minority_label: Optional[int]
    counts_before: Dict[int, int]
    counts_after: Dict[int, int]
    n_synthetic: int


@dataclass(frozen=True, eq=False)
class PreprocessingState:
    """
    Parameters learned from the training data.

    ``feature_min`` / ``feature_max`` are taken after the log transform and
    are aligned with ``feature_names_in``. ``feature_names_out`` is the
    retained schema after both pruning steps.
    """

    feature_names_in: Tuple[str, ...]
    log_offset: float
    feature_min: np.ndarray
    feature_max: np.ndarray
    dropped_correlated: Tuple[str, ...]
    dropped_near_zero_variance: Tuple[str, ...]
    feature_names_out: Tuple[str, ...]
    clip_out_of_range: bool = False
    oversampling: Optional[OversamplingSummary] = None

    def apply(self, X: Union[pd.DataFrame, np.ndarray]) -> pd.DataFrame:
        """
        Transform a subset with the fitted parameters.

        No labels are involved and no records are added or removed.

        Raises
        ------
        SchemaMismatchError
            If the columns differ from the ones seen at fit time.
        """
        frame = _check_schema(X, self.feature_names_in)
        logged = _log_transform(frame.to_numpy(dtype=float), self.log_offset)

        scale = self.feature_max - self.feature_min
        scale = np.where(scale == 0, 1.0, scale)
        normed = (logged - self.feature_min) / scale

        out_of_range = int(((normed < 0) | (normed > 1)).sum())
        if out_of_range:
            logger.debug(
                "%d of %d normalised cells fall outside [0, 1]%s",
                out_of_range,
                normed.size,
                " (clipped)" if self.clip_out_of_range else "",
            )
            if self.clip_out_of_range:
                normed = np.clip(normed, 0.0, 1.0)

        result = pd.DataFrame(normed, columns=list(self.feature_names_in), index=frame.index)
        return result[list(self.feature_names_out)]

    @property
    def n_features_out(self) -> int:
        return len(self.feature_names_out)


def apply_preprocessing(state: PreprocessingState, X: Union[pd.DataFrame, np.ndarray]) -> pd.DataFrame:
    """
    Functional alias for ``state.apply(X)``.
    """
    return state.apply(X)


# ---------------------------------------------------------------------------
# Individual steps
# ---------------------------------------------------------------------------


def _check_schema(X: Union[pd.DataFrame, np.ndarray], expected: Sequence[str]) -> pd.DataFrame:
    expected = list(expected)

    if isinstance(X, pd.DataFrame):
        columns = [str(c) for c in X.columns]
        if columns != expected:
            missing = [c for c in expected if c not in columns]
            extra = [c for c in columns if c not in expected]
            if missing or extra:
                detail = f"missing={missing}, unexpected={extra}"
            else:
                detail = "same columns in a different order"
            raise SchemaMismatchError(f"Feature schema does not match the fitted one: {detail}.")
        return X

    arr = np.asarray(X)
    if arr.ndim != 2 or arr.shape[1] != len(expected):
        raise SchemaMismatchError(
            f"Expected a 2D array with {len(expected)} feature columns, got shape {arr.shape}."
        )
    return pd.DataFrame(arr, columns=expected)


def _log_transform(values: np.ndarray, offset: float) -> np.ndarray:
    if (values + offset <= 0).any():
        raise ValueError(
            f"log transform with offset {offset} is undefined for values <= {-offset}."
        )
    return np.log(values + offset)


def oversample_minority(
    X: pd.DataFrame,
    y: np.ndarray,
    k_neighbors: int = 5,
    random_state: int = 42,
) -> Tuple[pd.DataFrame, np.ndarray, OversamplingSummary]:
    """
    Grow the minority class to the majority count with SMOTE.

    Synthetic records interpolate between a minority record and one of its
    ``k_neighbors`` nearest minority neighbours.
    """
    labels, counts = np.unique(y, return_counts=True)
    counts_before = {int(lbl): int(cnt) for lbl, cnt in zip(labels, counts)}

    if len(labels) != 2:
        raise ValueError(f"Oversampling expects a binary target, found classes {labels.tolist()}.")

    minority = int(labels[np.argmin(counts)])
    if counts[0] == counts[1]:
        return X, y, OversamplingSummary(None, counts_before, counts_before, 0)

    if counts_before[minority] <= k_neighbors:
        raise ValueError(
            f"Minority class {minority} has {counts_before[minority]} records; "
            f"need more than k_neighbors={k_neighbors} for SMOTE."
        )

    smote = SMOTE(k_neighbors=k_neighbors, random_state=random_state)
    X_res, y_res = smote.fit_resample(X, y)
    X_res = pd.DataFrame(np.asarray(X_res), columns=X.columns)
    y_res = np.asarray(y_res).astype(int)

    labels_after, counts_after = np.unique(y_res, return_counts=True)
    summary = OversamplingSummary(
        minority_label=minority,
        counts_before=counts_before,
        counts_after={int(lbl): int(cnt) for lbl, cnt in zip(labels_after, counts_after)},
        n_synthetic=int(len(y_res) - len(y)),
    )
    return X_res, y_res, summary


def correlated_columns(df: pd.DataFrame, threshold: float = 0.9) -> List[str]:
    """
    Columns to drop so that no retained pair has |Pearson r| above threshold.

    Features are visited in column order; whenever a kept feature is too
    correlated with a later one, the later one is dropped.
    """
    if df.shape[1] < 2:
        return []

    corr = np.abs(np.nan_to_num(df.corr(method="pearson").to_numpy(), nan=0.0))
    columns = list(df.columns)
    dropped = np.zeros(len(columns), dtype=bool)

    for i in range(len(columns)):
        if dropped[i]:
            continue
        for j in range(i + 1, len(columns)):
            if not dropped[j] and corr[i, j] > threshold:
                dropped[j] = True

    return [c for c, d in zip(columns, dropped) if d]


def near_zero_variance_columns(
    df: pd.DataFrame,
    freq_ratio_cut: float = 95.0 / 5.0,
    unique_percent_cut: float = 10.0,
) -> List[str]:
    """
    Columns that are constant, or whose most common value dominates the
    second most common by more than ``freq_ratio_cut`` while having at most
    ``unique_percent_cut`` percent distinct values.
    """
    dropped = []
    n = len(df)
    for name in df.columns:
        counts = df[name].value_counts(sort=True)
        if len(counts) <= 1:
            dropped.append(name)
            continue
        freq_ratio = counts.iloc[0] / counts.iloc[1]
        unique_percent = 100.0 * len(counts) / n
        if freq_ratio > freq_ratio_cut and unique_percent <= unique_percent_cut:
            dropped.append(name)
    return dropped


# ---------------------------------------------------------------------------
# Preprocessor
# ---------------------------------------------------------------------------


class Preprocessor:
    """
    Learns a PreprocessingState from training data.

    Parameters
    ----------
    k_neighbors : int
        Neighbourhood size for SMOTE.
    log_offset : float
        Constant added before taking the log.
    correlation_threshold : float
        Absolute Pearson correlation above which one feature of a pair is dropped.
    freq_ratio_cut, unique_percent_cut : float
        Near-zero-variance thresholds.
    oversample : bool
        Apply SMOTE during fitting.
    clip_out_of_range : bool
        Clip normalised values to [0, 1] at apply time.
    random_state : int
        Seed for the oversampling neighbour choice and interpolation.
    """

    def __init__(
        self,
        k_neighbors: int = 5,
        log_offset: float = 1.0,
        correlation_threshold: float = 0.9,
        freq_ratio_cut: float = 95.0 / 5.0,
        unique_percent_cut: float = 10.0,
        oversample: bool = True,
        clip_out_of_range: bool = False,
        random_state: int = 42,
    ) -> None:
        self.k_neighbors = int(k_neighbors)
        self.log_offset = float(log_offset)
        self.correlation_threshold = float(correlation_threshold)
        self.freq_ratio_cut = float(freq_ratio_cut)
        self.unique_percent_cut = float(unique_percent_cut)
        self.oversample = bool(oversample)
        self.clip_out_of_range = bool(clip_out_of_range)
        self.random_state = int(random_state)

    @classmethod
    def from_config(cls, data_cfg: Dict[str, Any], random_state: int) -> "Preprocessor":
        """
        Build a Preprocessor from the "preprocessing" section of config/data.yaml.
        """
        pcfg = data_cfg.get("preprocessing", {}) or {}
        return cls(
            k_neighbors=int(pcfg.get("k_neighbors", 5)),
            log_offset=float(pcfg.get("log_offset", 1.0)),
            correlation_threshold=float(pcfg.get("correlation_threshold", 0.9)),
            freq_ratio_cut=float(pcfg.get("freq_ratio_cut", 95.0 / 5.0)),
            unique_percent_cut=float(pcfg.get("unique_percent_cut", 10.0)),
            oversample=bool(pcfg.get("oversample", True)),
            clip_out_of_range=bool(pcfg.get("clip_out_of_range", False)),
            random_state=random_state,
        )

    def fit(self, X: pd.DataFrame, y: ArrayLike) -> PreprocessingState:
        state, _, _ = self.fit_resample(X, y)
        return state

    def fit_resample(
        self,
        X: pd.DataFrame,
        y: ArrayLike,
    ) -> Tuple[PreprocessingState, pd.DataFrame, np.ndarray]:
        """
        Fit on training data and return the state together with the
        oversampled, transformed training set used for model fitting.
        """
        if not isinstance(X, pd.DataFrame):
            raise TypeError("Preprocessor.fit expects a pandas DataFrame with named feature columns.")
        y_arr = np.asarray(y).astype(int)
        if len(X) != len(y_arr):
            raise ValueError(f"X has {len(X)} rows but y has {len(y_arr)} labels.")
        if len(X) == 0:
            raise ValueError("Cannot fit a Preprocessor on an empty training set.")

        X = X.copy()
        X.columns = [str(c) for c in X.columns]
        names_in = tuple(X.columns)

        if self.oversample:
            X_res, y_res, summary = oversample_minority(
                X, y_arr, k_neighbors=self.k_neighbors, random_state=self.random_state
            )
            logger.info(
                "Oversampling: %s -> %s (%d synthetic records)",
                summary.counts_before,
                summary.counts_after,
                summary.n_synthetic,
            )
        else:
            X_res, y_res, summary = X, y_arr, None

        logged = _log_transform(X_res.to_numpy(dtype=float), self.log_offset)
        feature_min = logged.min(axis=0)
        feature_max = logged.max(axis=0)

        scale = np.where(feature_max - feature_min == 0, 1.0, feature_max - feature_min)
        normed = pd.DataFrame((logged - feature_min) / scale, columns=list(names_in))

        dropped_corr = correlated_columns(normed, self.correlation_threshold)
        remaining = normed.drop(columns=dropped_corr)
        dropped_nzv = near_zero_variance_columns(
            remaining, self.freq_ratio_cut, self.unique_percent_cut
        )
        names_out = tuple(c for c in remaining.columns if c not in set(dropped_nzv))

        if not names_out:
            raise ValueError("Preprocessing removed every feature; check the pruning thresholds.")

        logger.info(
            "Preprocessing keeps %d of %d features (correlated dropped: %s; near-zero variance dropped: %s)",
            len(names_out),
            len(names_in),
            dropped_corr,
            dropped_nzv,
        )

        state = PreprocessingState(
            feature_names_in=names_in,
            log_offset=self.log_offset,
            feature_min=feature_min,
            feature_max=feature_max,
            dropped_correlated=tuple(dropped_corr),
            dropped_near_zero_variance=tuple(dropped_nzv),
            feature_names_out=names_out,
            clip_out_of_range=self.clip_out_of_range,
            oversampling=summary,
        )

        return state, state.apply(X_res), np.asarray(y_res).astype(int)
