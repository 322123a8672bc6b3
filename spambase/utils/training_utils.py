"""
Training and utility helpers.

This module centralizes common functionality used across the project:

- loading YAML configuration files (config/train.yaml and friends)
- ensuring directories exist before writing files
- building explicit random sources from integer seeds
- selecting the appropriate device (CPU/GPU)
- constructing loggers that respect config/logging settings

Randomness is never drawn from process-wide state: every component takes
an explicit seed and derives its own generator from it with the helpers
below.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Iterable, Optional

import numpy as np
import torch
import yaml


DEFAULT_TRAIN_CONFIG_PATH = "config/train.yaml"


# ---------------------------------------------------------------------------
# Config loading
# ---------------------------------------------------------------------------


def load_yaml_config(
    config_path: str,
    required_sections: Iterable[str] = (),
    kind: str = "Config",
) -> Dict[str, Any]:
    """
    Load a YAML configuration file and check its top-level sections.

    Parameters
    ----------
    config_path : str
        Path to the YAML file.
    required_sections : Iterable[str]
        Top-level keys that must be present.
    kind : str
        Human-readable name used in error messages (e.g. "Train config").

    Returns
    -------
    Dict[str, Any]
        Parsed configuration.

    Raises
    ------
    FileNotFoundError
        If the YAML file does not exist.
    ValueError
        If the YAML file is empty or cannot be parsed.
    KeyError
        If a required section is missing.
    """
    if not os.path.exists(config_path):
        raise FileNotFoundError(f"{kind} file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        cfg = yaml.safe_load(f)

    if not isinstance(cfg, dict):
        raise ValueError(f"{kind} file is empty or invalid: {config_path}")

    for section in required_sections:
        if section not in cfg:
            raise KeyError(f'Missing "{section}" section in {kind.lower()}: {config_path}')

    return cfg


def load_train_config(
    config_path: str = DEFAULT_TRAIN_CONFIG_PATH,
) -> Dict[str, Any]:
    """
    Load and return the global training configuration dictionary.

    The returned dictionary has the "general", "paths", "logging",
    "evaluation" and "save" sections.
    """
    return load_yaml_config(
        config_path,
        required_sections=("general", "paths", "logging", "evaluation", "save"),
        kind="Train config",
    )


# ---------------------------------------------------------------------------
# Filesystem utilities
# ---------------------------------------------------------------------------


def ensure_dir_exists(path: str) -> None:
    """
    Ensure that a directory exists (create it if necessary).
    """
    if path and not os.path.exists(path):
        os.makedirs(path, exist_ok=True)


# ---------------------------------------------------------------------------
# Reproducibility utilities
# ---------------------------------------------------------------------------


def make_rng(seed: int) -> np.random.Generator:
    """
    Build a NumPy generator from an integer seed.
    """
    return np.random.default_rng(int(seed))


def make_torch_generator(seed: int) -> torch.Generator:
    """
    Build a CPU torch generator from an integer seed (used for batch shuffling).
    """
    generator = torch.Generator()
    generator.manual_seed(int(seed))
    return generator


def derive_seeds(seed: int, n: int) -> np.ndarray:
    """
    Derive ``n`` independent integer seeds from a parent seed.

    Used to hand every parallel task its own fixed seed so results do not
    depend on the order tasks are executed in.
    """
    children = np.random.SeedSequence(int(seed)).spawn(n)
    return np.array([int(c.generate_state(1)[0]) for c in children], dtype=np.int64)


# ---------------------------------------------------------------------------
# Device selection
# ---------------------------------------------------------------------------


def get_device(train_cfg: Dict[str, Any]) -> torch.device:
    """
    Select the appropriate device (CPU or GPU) based on configuration
    and availability.
    """
    general_cfg = train_cfg.get("general", {}) or {}
    preferred = str(general_cfg.get("device", "cpu")).lower()

    if preferred == "cuda" and torch.cuda.is_available():
        return torch.device("cuda")
    return torch.device("cpu")


# ---------------------------------------------------------------------------
# Logging utilities
# ---------------------------------------------------------------------------


def _parse_log_level(level_str: str) -> int:
    """
    Convert a string log level into a logging module constant.
    """
    level_str = (level_str or "INFO").upper()
    return {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }.get(level_str, logging.INFO)


def get_logger(
    name: str,
    config: Dict[str, Any],
    log_file_suffix: Optional[str] = None,
) -> logging.Logger:
    """
    Construct and return a logger that respects the logging section of
    the global training config.

    Parameters
    ----------
    name : str
        Logger name.
    config : Dict[str, Any]
        Global training configuration.
    log_file_suffix : Optional[str]
        Optional suffix appended to the log file name (e.g., "ml", "mlp").

    Returns
    -------
    logging.Logger
        Configured logger instance.
    """
    logger = logging.getLogger(name)

    # Already configured by an earlier call.
    if logger.handlers:
        return logger

    logging_cfg = config.get("logging", {}) or {}
    paths_cfg = config.get("paths", {}) or {}

    level = _parse_log_level(logging_cfg.get("level", "INFO"))
    logger.setLevel(level)

    formatter = logging.Formatter(
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if bool(logging_cfg.get("to_file", True)):
        logs_dir = paths_cfg.get("logs_dir", "experiments/logs")
        ensure_dir_exists(logs_dir)

        file_prefix = logging_cfg.get("file_prefix", "spambase")
        if log_file_suffix:
            filename = f"{file_prefix}_{log_file_suffix}.log"
        else:
            filename = f"{file_prefix}.log"

        file_handler = logging.FileHandler(os.path.join(logs_dir, filename), encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger
