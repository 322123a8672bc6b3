"""
Tests for the train-only preprocessing pipeline.

These tests validate that:

- the fitted state gives train, validation and test the same schema
- applying the state never adds or removes records
- no retained feature pair is correlated above the threshold
- correlation ties drop the later-indexed feature
- near-zero-variance columns are detected
- SMOTE balances the classes on the training data only
- a schema mismatch at apply time is an error
"""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from spambase.data.datasets import load_data_config
from spambase.features.preprocessing import (
    Preprocessor,
    SchemaMismatchError,
    apply_preprocessing,
    correlated_columns,
    near_zero_variance_columns,
    oversample_minority,
)


def _with_redundant_columns(X: pd.DataFrame) -> pd.DataFrame:
    X = X.copy()
    X["feat_0_copy"] = X["feat_0"]
    X["feat_3_scaled"] = 3.0 * X["feat_3"]
    return X


def test_schema_identical_across_subsets(frame_factory):
    df = frame_factory(n_records=400)
    X = _with_redundant_columns(df.drop(columns=["label", "label_id"]))
    y = df["label_id"].to_numpy()
    X_train, X_val, X_test = X.iloc[:240], X.iloc[240:320], X.iloc[320:]

    state, X_train_t, y_train_t = Preprocessor(random_state=0).fit_resample(X_train, y[:240])
    X_val_t = state.apply(X_val)
    X_test_t = apply_preprocessing(state, X_test)

    assert list(X_train_t.columns) == list(state.feature_names_out)
    assert list(X_val_t.columns) == list(state.feature_names_out)
    assert list(X_test_t.columns) == list(state.feature_names_out)
    assert len(X_val_t) == 80
    assert len(X_test_t) == 80
    assert len(X_train_t) == len(y_train_t)


def test_redundant_columns_are_pruned(frame_factory):
    df = frame_factory(n_records=400)
    X = _with_redundant_columns(df.drop(columns=["label", "label_id"]))
    y = df["label_id"].to_numpy()

    state, X_t, _ = Preprocessor(random_state=0).fit_resample(X, y)

    assert "feat_0" in state.feature_names_out
    assert "feat_0_copy" in state.dropped_correlated
    assert "feat_3_scaled" in state.dropped_correlated

    corr = np.abs(np.nan_to_num(X_t.corr().to_numpy(), nan=0.0))
    np.fill_diagonal(corr, 0.0)
    assert corr.max() <= 0.9


def test_correlated_columns_drop_later_index():
    rng = np.random.default_rng(1)
    a = rng.normal(size=200)
    df = pd.DataFrame(
        {
            "a": a,
            "b": -a,
            "c": rng.normal(size=200),
            "d": a + rng.normal(scale=1e-3, size=200),
        }
    )
    assert correlated_columns(df, threshold=0.9) == ["b", "d"]


def test_correlated_columns_respect_threshold():
    rng = np.random.default_rng(2)
    a = rng.normal(size=500)
    df = pd.DataFrame({"a": a, "b": a + rng.normal(scale=0.8, size=500)})
    # |r| is about 0.78 here: kept at 0.9, dropped at 0.5.
    assert correlated_columns(df, threshold=0.9) == []
    assert correlated_columns(df, threshold=0.5) == ["b"]


def test_near_zero_variance_columns():
    n = 100
    df = pd.DataFrame(
        {
            "constant": np.zeros(n),
            "mostly_zero": [1.0, 1.0] + [0.0] * (n - 2),
            "continuous": np.linspace(0.0, 1.0, n),
            "balanced_binary": [0.0, 1.0] * (n // 2),
        }
    )
    assert near_zero_variance_columns(df) == ["constant", "mostly_zero"]


def test_oversampling_balances_classes(features_labels):
    X, y = features_labels

    X_res, y_res, summary = oversample_minority(X, y, k_neighbors=5, random_state=0)

    assert summary.minority_label == 1
    assert summary.counts_before == {0: 180, 1: 120}
    assert summary.counts_after == {0: 180, 1: 180}
    assert summary.n_synthetic == 60
    assert len(X_res) == len(y_res) == 360
    assert list(X_res.columns) == list(X.columns)


def test_oversampling_needs_enough_minority_records():
    X = pd.DataFrame({"a": np.arange(20, dtype=float)})
    y = np.array([1] * 4 + [0] * 16)
    with pytest.raises(ValueError):
        oversample_minority(X, y, k_neighbors=5)


def test_oversampling_is_deterministic(features_labels):
    X, y = features_labels
    first = Preprocessor(random_state=5).fit_resample(X, y)
    second = Preprocessor(random_state=5).fit_resample(X, y)
    pd.testing.assert_frame_equal(first[1], second[1])
    np.testing.assert_array_equal(first[2], second[2])


def test_train_values_are_normalised(features_labels):
    X, y = features_labels
    _, X_t, _ = Preprocessor(random_state=0).fit_resample(X, y)
    assert X_t.to_numpy().min() >= 0.0
    assert X_t.to_numpy().max() <= 1.0 + 1e-12


def test_out_of_range_values_pass_through_unless_clipped(features_labels):
    X, y = features_labels
    X_new = X.iloc[:5].copy()
    X_new.iloc[0, 0] = 1000.0

    state = Preprocessor(random_state=0).fit(X, y)
    assert state.apply(X_new).iloc[0, 0] > 1.0

    clipped = Preprocessor(random_state=0, clip_out_of_range=True).fit(X, y)
    assert clipped.apply(X_new).iloc[0, 0] == pytest.approx(1.0)


def test_apply_does_not_change_record_count(features_labels):
    X, y = features_labels
    state = Preprocessor(random_state=0).fit(X, y)
    assert len(state.apply(X)) == len(X)


def test_schema_mismatch_raises(features_labels):
    X, y = features_labels
    state = Preprocessor(random_state=0).fit(X, y)

    with pytest.raises(SchemaMismatchError):
        state.apply(X.drop(columns=["feat_1"]))
    with pytest.raises(SchemaMismatchError):
        state.apply(X[list(reversed(X.columns))])
    with pytest.raises(SchemaMismatchError):
        state.apply(X.to_numpy()[:, :3])


def test_log_transform_rejects_values_below_offset(features_labels):
    X, y = features_labels
    X = X.copy()
    X.iloc[0, 0] = -2.0
    with pytest.raises(ValueError):
        Preprocessor(oversample=False).fit(X, y)


def test_from_config_reads_preprocessing_section():
    data_cfg = load_data_config("config/data.yaml")
    pre = Preprocessor.from_config(data_cfg, random_state=3)

    assert pre.k_neighbors == 5
    assert pre.log_offset == pytest.approx(1.0)
    assert pre.correlation_threshold == pytest.approx(0.9)
    assert pre.oversample is True
    assert pre.random_state == 3
