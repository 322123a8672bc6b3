"""
Shared fixtures for the test suite.

All tests run from the project root (config paths are relative to it) and
use small synthetic tables shaped like the Spambase data: non-negative
frequency-like features and a binary label with spam as the minority.
"""

from __future__ import annotations

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest

from spambase.data.datasets import LABEL_COLUMN, LABEL_ID_COLUMN


def make_frame(n_records: int = 300, n_features: int = 6, spam_share: float = 0.4, seed: int = 0) -> pd.DataFrame:
    """
    Synthetic loaded-dataset frame: features, "label" and "label_id".

    Spam records get larger values on the first half of the features so
    that models have something to learn.
    """
    rng = np.random.default_rng(seed)
    n_spam = int(round(n_records * spam_share))
    y = np.array([1] * n_spam + [0] * (n_records - n_spam))
    rng.shuffle(y)

    X = rng.exponential(scale=1.0, size=(n_records, n_features))
    informative = n_features // 2
    X[:, :informative] += 1.5 * y[:, None]

    df = pd.DataFrame(X, columns=[f"feat_{i}" for i in range(n_features)])
    df[LABEL_COLUMN] = np.where(y == 1, "spam", "no spam")
    df[LABEL_ID_COLUMN] = y
    return df


@pytest.fixture
def spam_frame() -> pd.DataFrame:
    return make_frame()


@pytest.fixture
def features_labels(spam_frame):
    X = spam_frame.drop(columns=[LABEL_COLUMN, LABEL_ID_COLUMN])
    y = spam_frame[LABEL_ID_COLUMN].to_numpy()
    return X, y


@pytest.fixture
def frame_factory():
    return make_frame
