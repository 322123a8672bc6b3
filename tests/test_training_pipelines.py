"""
Smoke tests for the main training pipelines.

We verify that:

- the ML, MLP and full experiment pipelines run end-to-end on a small
  synthetic table with reduced configs (always run)
- the same pipelines run on the real Spambase file when explicitly enabled
  (they are slow: 10-fold grid searches and 1000 bootstrap resamples)

These are *smoke tests*, not accuracy checks: we only assert that the code
runs and writes outputs of the expected type/shape.
"""

from __future__ import annotations

import os

import pandas as pd
import pytest
import yaml

from spambase.data.datasets import LABEL_COLUMN, LABEL_ID_COLUMN, load_data_config
from spambase.training.experiment import run_experiment
from spambase.training.train_ml import train_and_evaluate_ml_models
from spambase.training.train_mlp import train_and_evaluate_mlp


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


DATA_CONFIG_PATH = "config/data.yaml"
TRAIN_CONFIG_PATH = "config/train.yaml"
ML_CONFIG_PATH = "config/ml.yaml"
MLP_CONFIG_PATH = "config/mlp.yaml"

_RAW_DATA_PATH = load_data_config(DATA_CONFIG_PATH)["dataset"]["path"]


def _load(path: str):
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def _dump(cfg, path) -> str:
    path.write_text(yaml.safe_dump(cfg), encoding="utf-8")
    return str(path)


@pytest.fixture
def small_setup(tmp_path, frame_factory):
    """
    Synthetic dataset plus reduced copies of every config under tmp_path.
    """
    df = frame_factory(n_records=300, n_features=6)
    data_path = tmp_path / "spambase.csv"
    df.drop(columns=[LABEL_COLUMN]).rename(columns={LABEL_ID_COLUMN: "spam"}).to_csv(data_path, index=False)

    data_cfg = _load(DATA_CONFIG_PATH)
    data_cfg["dataset"].update({"path": str(data_path), "has_header": True})

    ml_cfg = _load(ML_CONFIG_PATH)
    ml_cfg["general"]["n_folds"] = 3
    ml_cfg["ml_models"]["logistic_regression"]["grid"] = {"penalty": ["l2"], "C": [0.1, 1.0]}
    ml_cfg["ml_models"]["naive_bayes"]["grid"] = {"var_smoothing": [1e-9]}
    ml_cfg["ml_models"]["random_forest"]["grid"] = {
        "n_estimators": [10],
        "max_features": [2],
        "min_samples_leaf": [1, 3],
    }

    mlp_cfg = _load(MLP_CONFIG_PATH)
    mlp_cfg["architecture"]["hidden_dims"] = [8, 4]
    mlp_cfg["optimization"]["max_epochs"] = 20
    mlp_cfg["optimization"]["learning_rate"] = 0.01

    train_cfg = _load(TRAIN_CONFIG_PATH)
    train_cfg["paths"] = {
        name: str(tmp_path / "experiments" / name.replace("_dir", ""))
        for name in ("results_dir", "models_dir", "figures_dir", "logs_dir")
    }
    train_cfg["logging"]["to_file"] = False
    train_cfg["evaluation"]["n_resamples"] = 50

    return {
        "data": _dump(data_cfg, tmp_path / "data.yaml"),
        "ml": _dump(ml_cfg, tmp_path / "ml.yaml"),
        "mlp": _dump(mlp_cfg, tmp_path / "mlp.yaml"),
        "train": _dump(train_cfg, tmp_path / "train.yaml"),
        "results_dir": train_cfg["paths"]["results_dir"],
        "models_dir": train_cfg["paths"]["models_dir"],
        "figures_dir": train_cfg["paths"]["figures_dir"],
    }


# ---------------------------------------------------------------------------
# Synthetic smoke tests
# ---------------------------------------------------------------------------


def test_train_ml_on_synthetic_data(small_setup):
    metrics_df = train_and_evaluate_ml_models(
        data_config_path=small_setup["data"],
        ml_config_path=small_setup["ml"],
        train_config_path=small_setup["train"],
    )

    assert isinstance(metrics_df, pd.DataFrame)
    assert metrics_df["model"].tolist() == ["logistic_regression", "naive_bayes", "random_forest"]
    assert {"precision", "recall", "f1", "accuracy", "best_params"} <= set(metrics_df.columns)

    results_dir = small_setup["results_dir"]
    assert os.path.exists(os.path.join(results_dir, "ml_results.csv"))
    assert os.path.exists(os.path.join(results_dir, "cv_random_forest.csv"))
    assert os.path.exists(os.path.join(small_setup["models_dir"], "model_naive_bayes.joblib"))


def test_train_mlp_on_synthetic_data(small_setup):
    metrics = train_and_evaluate_mlp(
        data_config_path=small_setup["data"],
        mlp_config_path=small_setup["mlp"],
        train_config_path=small_setup["train"],
    )

    assert isinstance(metrics, dict)
    assert {"precision", "recall", "f1", "accuracy"} <= set(metrics)
    assert os.path.exists(os.path.join(small_setup["results_dir"], "metrics_mlp.json"))
    assert os.path.exists(os.path.join(small_setup["results_dir"], "mlp_history.csv"))
    assert os.path.exists(os.path.join(small_setup["models_dir"], "mlp.pt"))


def test_run_experiment_on_synthetic_data(small_setup):
    result = run_experiment(
        data_config_path=small_setup["data"],
        ml_config_path=small_setup["ml"],
        mlp_config_path=small_setup["mlp"],
        train_config_path=small_setup["train"],
        make_plots=True,
    )

    models = ["mlp", "logistic_regression", "naive_bayes", "random_forest"]
    assert result.point_estimates["model"].tolist() == models
    assert len(result.bootstrap.summary) == len(models) * 4
    assert len(result.bootstrap.scores) == len(models) * 50
    assert 0 < len(result.comparisons) <= 3 * 2
    assert set(result.comparisons["model_a"]) == {"mlp"}
    assert result.dataset_summary["n_records"] == 300

    results_dir = small_setup["results_dir"]
    for name in ("bootstrap_summary", "bootstrap_ci_table", "ranksum_metrics", "eda_features"):
        assert os.path.exists(os.path.join(results_dir, f"{name}.csv"))
    assert os.path.exists(os.path.join(results_dir, "dataset_summary.json"))
    assert os.path.exists(os.path.join(small_setup["figures_dir"], "ci_precision.png"))
    assert os.path.exists(os.path.join(small_setup["figures_dir"], "mlp_history.png"))


# ---------------------------------------------------------------------------
# Real-data smoke tests (opt-in)
# ---------------------------------------------------------------------------


_SLOW_ENABLED = os.getenv("RUN_SLOW_TESTS", "0") == "1"


@pytest.mark.skipif(
    not _SLOW_ENABLED,
    reason="Real-data smoke tests are disabled by default. Set RUN_SLOW_TESTS=1 to enable.",
)
@pytest.mark.skipif(
    not os.path.exists(_RAW_DATA_PATH),
    reason="Raw dataset file not found; skipping real-data smoke test.",
)
def test_run_experiment_real_data():
    result = run_experiment(
        data_config_path=DATA_CONFIG_PATH,
        ml_config_path=ML_CONFIG_PATH,
        mlp_config_path=MLP_CONFIG_PATH,
        train_config_path=TRAIN_CONFIG_PATH,
        make_plots=False,
    )

    assert result.dataset_summary["n_features"] == 57
    assert not result.bootstrap.summary.empty
