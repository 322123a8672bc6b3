"""
Basic tests for data loading and exploration utilities.

These tests validate that:

- the data configuration can be loaded correctly
- the loader applies the canonical names to a headerless file and maps labels
- invalid feature or label values are rejected
- the Spambase loader works when the raw file is present

Dataset-dependent tests are skipped if the raw file is not available, so
that the suite still runs in a fresh clone without data.
"""

from __future__ import annotations

import os

import numpy as np
import pandas as pd
import pytest
import yaml

from spambase.data.datasets import (
    LABEL_COLUMN,
    LABEL_ID_COLUMN,
    SPAMBASE_FEATURE_NAMES,
    get_feature_columns,
    load_data_config,
    load_spambase_dataset,
)
from spambase.data.exploration import describe_features, summarize_dataset


DATA_CONFIG_PATH = "config/data.yaml"


def _write_config(tmp_path, data_path: str, **dataset_overrides) -> str:
    cfg = load_data_config(DATA_CONFIG_PATH)
    cfg["dataset"]["path"] = data_path
    cfg["dataset"].update(dataset_overrides)
    config_path = tmp_path / "data.yaml"
    config_path.write_text(yaml.safe_dump(cfg), encoding="utf-8")
    return str(config_path)


def _write_headerless(tmp_path, n_records: int = 20, seed: int = 0) -> str:
    rng = np.random.default_rng(seed)
    X = rng.uniform(0.0, 5.0, size=(n_records, len(SPAMBASE_FEATURE_NAMES)))
    y = np.array([1, 0] * (n_records // 2))
    path = tmp_path / "spambase.data"
    pd.DataFrame(np.column_stack([X, y])).to_csv(path, header=False, index=False)
    return str(path)


def test_load_data_config_has_required_keys():
    cfg = load_data_config(DATA_CONFIG_PATH)

    assert "dataset" in cfg
    assert "split" in cfg
    assert "preprocessing" in cfg

    assert "path" in cfg["dataset"]
    assert cfg["split"]["train_size"] == pytest.approx(0.6)
    assert cfg["split"]["validation_size"] == pytest.approx(0.2)
    assert cfg["preprocessing"]["correlation_threshold"] == pytest.approx(0.9)


def test_missing_config_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_data_config(str(tmp_path / "nope.yaml"))


def test_feature_names_are_canonical():
    assert len(SPAMBASE_FEATURE_NAMES) == 57
    assert len(set(SPAMBASE_FEATURE_NAMES)) == 57
    assert SPAMBASE_FEATURE_NAMES[0] == "word_freq_make"
    assert SPAMBASE_FEATURE_NAMES[-1] == "capital_run_length_total"


def test_load_headerless_file(tmp_path):
    config_path = _write_config(tmp_path, _write_headerless(tmp_path))

    df, label_mapping = load_spambase_dataset(config_path=config_path)

    assert label_mapping == {"no spam": 0, "spam": 1}
    assert len(df) == 20
    assert get_feature_columns(df) == SPAMBASE_FEATURE_NAMES
    assert list(df.columns[-2:]) == [LABEL_COLUMN, LABEL_ID_COLUMN]
    assert set(df[LABEL_ID_COLUMN].unique()) == {0, 1}
    assert (df.loc[df[LABEL_ID_COLUMN] == 1, LABEL_COLUMN] == "spam").all()


def test_loader_rejects_negative_features(tmp_path):
    data_path = _write_headerless(tmp_path)
    raw = pd.read_csv(data_path, header=None)
    raw.iloc[3, 5] = -1.0
    raw.to_csv(data_path, header=False, index=False)

    with pytest.raises(ValueError, match="negative"):
        load_spambase_dataset(config_path=_write_config(tmp_path, data_path))


def test_loader_rejects_non_binary_labels(tmp_path):
    data_path = _write_headerless(tmp_path)
    raw = pd.read_csv(data_path, header=None)
    raw.iloc[0, -1] = 2
    raw.to_csv(data_path, header=False, index=False)

    with pytest.raises(ValueError, match="binary"):
        load_spambase_dataset(config_path=_write_config(tmp_path, data_path))


def test_loader_missing_file_raises(tmp_path):
    config_path = _write_config(tmp_path, str(tmp_path / "missing.data"))
    with pytest.raises(FileNotFoundError):
        load_spambase_dataset(config_path=config_path)


def test_summarize_dataset(spam_frame):
    summary = summarize_dataset(spam_frame)

    assert summary["n_records"] == 300
    assert summary["n_features"] == 6
    assert summary["class_counts"] == {"no spam": 180, "spam": 120}
    assert sum(summary["class_proportions"].values()) == pytest.approx(1.0)
    assert 0.0 <= summary["sparsity"] <= 1.0


def test_describe_features_sorted_by_label_correlation(spam_frame):
    table = describe_features(spam_frame)

    assert len(table) == 6
    corr = table["label_correlation"].abs().to_numpy()
    assert np.all(np.diff(corr) <= 1e-12)
    # Informative features (shifted for spam) come first.
    assert set(table["feature"].head(3)) == {"feat_0", "feat_1", "feat_2"}

    assert len(describe_features(spam_frame, top_k=2)) == 2


@pytest.mark.skipif(
    not os.path.exists(load_data_config(DATA_CONFIG_PATH)["dataset"]["path"]),
    reason="Raw dataset file not found; skipping dataset-dependent test.",
)
def test_load_spambase_dataset_returns_nonempty_df():
    df, label_mapping = load_spambase_dataset(config_path=DATA_CONFIG_PATH)

    assert isinstance(df, pd.DataFrame)
    assert len(df) > 0
    assert len(get_feature_columns(df)) == 57
    assert set(df[LABEL_ID_COLUMN].unique()) <= set(label_mapping.values())
