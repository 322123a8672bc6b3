"""
Traditional machine learning model builders for spam detection.

This module provides helpers to construct the three model families
compared against the neural network:

- penalised Logistic Regression (LR)
- Gaussian Naive Bayes (NB)
- Random Forest (RF)

Fixed settings and the tuning grid of each family are read from
config/ml.yaml. The grid search itself lives in
spambase.training.grid_search; builders here only turn one
hyperparameter combination into an unfitted estimator.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

from sklearn.ensemble import RandomForestClassifier
from sklearn.linear_model import LogisticRegression
from sklearn.naive_bayes import GaussianNB

from spambase.utils.training_utils import load_yaml_config


DEFAULT_ML_CONFIG_PATH = "config/ml.yaml"

ModelFactory = Callable[[Dict[str, Any], int], Any]


# ---------------------------------------------------------------------------
# Config loading
# ---------------------------------------------------------------------------


def load_ml_config(config_path: str = DEFAULT_ML_CONFIG_PATH) -> Dict[str, Any]:
    """
    Load and return the ML configuration dictionary.

    Returns
    -------
    Dict[str, Any]
        Parsed configuration with "general" and "ml_models" sections.

    Raises
    ------
    FileNotFoundError
        If the YAML file does not exist.
    ValueError
        If the YAML file is empty or cannot be parsed.
    KeyError
        If required sections are missing.
    """
    return load_yaml_config(
        config_path,
        required_sections=("general", "ml_models"),
        kind="ML config",
    )


# ---------------------------------------------------------------------------
# Model builder helpers
# ---------------------------------------------------------------------------


def _fixed_settings(cfg: Dict[str, Any], name: str) -> Dict[str, Any]:
    mcfg = dict(cfg["ml_models"].get(name, {}) or {})
    mcfg.pop("grid", None)
    return mcfg


def build_logistic_regression(
    params: Dict[str, Any],
    random_state: int,
    settings: Optional[Dict[str, Any]] = None,
) -> LogisticRegression:
    settings = settings or {}
    return LogisticRegression(
        penalty=str(params.get("penalty", settings.get("penalty", "l2"))),
        C=float(params.get("C", settings.get("C", 1.0))),
        solver=str(settings.get("solver", "liblinear")),
        max_iter=int(settings.get("max_iter", 2000)),
        random_state=random_state,
    )


def build_naive_bayes(
    params: Dict[str, Any],
    random_state: int = 0,
    settings: Optional[Dict[str, Any]] = None,
) -> GaussianNB:
    """
    Build a Gaussian Naive Bayes classifier.

    ``var_smoothing`` is the smoothing factor being tuned; the model has no
    randomness so ``random_state`` is accepted only for a uniform factory
    signature.
    """
    settings = settings or {}
    return GaussianNB(
        var_smoothing=float(params.get("var_smoothing", settings.get("var_smoothing", 1e-9)))
    )


def build_random_forest(
    params: Dict[str, Any],
    random_state: int,
    settings: Optional[Dict[str, Any]] = None,
) -> RandomForestClassifier:
    settings = settings or {}
    return RandomForestClassifier(
        n_estimators=int(params.get("n_estimators", settings.get("n_estimators", 500))),
        max_features=params.get("max_features", settings.get("max_features", "sqrt")),
        min_samples_leaf=int(params.get("min_samples_leaf", settings.get("min_samples_leaf", 1))),
        n_jobs=int(settings.get("n_jobs", 1)),
        random_state=random_state,
    )


_BUILDERS = {
    "logistic_regression": build_logistic_regression,
    "naive_bayes": build_naive_bayes,
    "random_forest": build_random_forest,
}


# ---------------------------------------------------------------------------
# Public factory helpers
# ---------------------------------------------------------------------------


def available_models() -> List[str]:
    return list(_BUILDERS)


def get_model_factory(name: str, cfg: Dict[str, Any]) -> ModelFactory:
    """
    Return a ``(params, random_state) -> estimator`` factory for a family.

    Parameters
    ----------
    name : str
        One of "logistic_regression", "naive_bayes", "random_forest".
    cfg : Dict[str, Any]
        Full ML configuration (config/ml.yaml).
    """
    if name not in _BUILDERS:
        raise ValueError(f"Unknown model '{name}'. Expected one of {available_models()}.")

    builder = _BUILDERS[name]
    settings = _fixed_settings(cfg, name)

    def factory(params: Dict[str, Any], random_state: int) -> Any:
        return builder(params, random_state=random_state, settings=settings)

    return factory


def get_param_grid(name: str, cfg: Dict[str, Any]) -> Dict[str, List[Any]]:
    """
    Return the tuning grid of a family from config/ml.yaml.

    A family without a "grid" entry has a single (default) configuration.
    """
    if name not in cfg["ml_models"]:
        raise KeyError(f'No "{name}" entry under ml_models in the ML config.')
    grid = (cfg["ml_models"][name] or {}).get("grid", {}) or {}
    return {key: list(values) for key, values in grid.items()}


def get_enabled_models(cfg: Dict[str, Any]) -> List[str]:
    names = list(cfg["general"].get("models", available_models()))
    unknown = [n for n in names if n not in _BUILDERS]
    if unknown:
        raise ValueError(f"Unknown model(s) in ML config: {unknown}. Expected {available_models()}.")
    return names
