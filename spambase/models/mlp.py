"""
Feed-forward neural network for the Spambase features.

This module contains:

- ``SpamMLP``: the network (4 hidden ReLU layers of 128/64/32/16 units,
  dropout after each hidden layer, one output logit)
- ``PlateauMonitor``: the per-epoch state machine for early stopping; it
  steps torch's ``ReduceLROnPlateau`` for learning-rate decay
- ``MLPClassifier``: a scikit-learn style wrapper with ``fit``,
  ``predict_proba`` and ``predict`` so the network can be scored by the
  same evaluation code as the traditional models

Hyperparameters are configured via config/mlp.yaml.
"""

from __future__ import annotations

import copy
import logging
import math
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import torch
import torch.nn as nn
from torch.utils.data import DataLoader, TensorDataset

from spambase.utils.training_utils import load_yaml_config, make_torch_generator


logger = logging.getLogger(__name__)

DEFAULT_MLP_CONFIG_PATH = "config/mlp.yaml"


class TrainingDivergedError(RuntimeError):
    """Raised when the training or validation loss stops being finite."""


def load_mlp_config(config_path: str = DEFAULT_MLP_CONFIG_PATH) -> Dict[str, Any]:
    """
    Load and return the MLP configuration dictionary.

    Returns
    -------
    Dict[str, Any]
        Parsed configuration with "architecture", "optimization" and
        "schedule" sections.
    """
    return load_yaml_config(
        config_path,
        required_sections=("architecture", "optimization", "schedule"),
        kind="MLP config",
    )


# ---------------------------------------------------------------------------
# Network
# ---------------------------------------------------------------------------


class SpamMLP(nn.Module):
    """
    Fully connected binary classifier.

    Input:
        x: FloatTensor of shape (batch_size, input_dim)

    Output:
        logits of shape (batch_size,); apply a sigmoid for P(spam).
    """

    def __init__(
        self,
        input_dim: int,
        hidden_dims: Sequence[int] = (128, 64, 32, 16),
        dropout: float = 0.25,
        activation: str = "relu",
    ) -> None:
        super().__init__()

        activations = {"relu": nn.ReLU, "gelu": nn.GELU, "tanh": nn.Tanh}
        if activation.lower() not in activations:
            raise ValueError(f"Unknown activation '{activation}'. Expected one of {sorted(activations)}.")
        act_cls = activations[activation.lower()]

        layers: List[nn.Module] = []
        in_dim = input_dim
        for width in hidden_dims:
            layers.append(nn.Linear(in_dim, int(width)))
            layers.append(act_cls())
            layers.append(nn.Dropout(dropout))
            in_dim = int(width)

        self.hidden = nn.Sequential(*layers)
        self.output = nn.Linear(in_dim, 1)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return self.output(self.hidden(x)).squeeze(-1)

    def weight_penalty(self) -> torch.Tensor:
        """Sum of squared weights of all linear layers (biases excluded)."""
        return sum(
            module.weight.pow(2).sum()
            for module in self.modules()
            if isinstance(module, nn.Linear)
        )


# ---------------------------------------------------------------------------
# Training state machine
# ---------------------------------------------------------------------------


class TrainingState(str, Enum):
    TRAINING = "training"
    PLATEAU_DETECTED = "plateau_detected"
    EARLY_STOPPED = "early_stopped"
    COMPLETED = "completed"


class PlateauMonitor:
    """
    Tracks validation loss across epochs.

    - learning-rate decay is delegated to ``ReduceLROnPlateau`` on the given
      optimizer: ``plateau_patience`` epochs without improvement multiply
      the learning rate by ``plateau_factor`` (never below ``min_lr``), and
      the wait restarts after each reduction
    - ``early_stopping_patience`` epochs without improvement end training

    Improvement means a strictly lower loss than the best seen so far.
    """

    def __init__(
        self,
        optimizer: torch.optim.Optimizer,
        plateau_patience: int = 3,
        plateau_factor: float = 0.8,
        min_lr: float = 1e-5,
        early_stopping_patience: int = 5,
    ) -> None:
        if not 0.0 < plateau_factor < 1.0:
            raise ValueError(f"plateau_factor must be in (0, 1), got {plateau_factor}.")
        if int(plateau_patience) < 1:
            raise ValueError(f"plateau_patience must be at least 1, got {plateau_patience}.")
        self.optimizer = optimizer
        self.early_stopping_patience = int(early_stopping_patience)

        # The scheduler reduces once its bad-epoch count exceeds patience.
        self.scheduler = torch.optim.lr_scheduler.ReduceLROnPlateau(
            optimizer,
            mode="min",
            factor=float(plateau_factor),
            patience=int(plateau_patience) - 1,
            threshold=0.0,
            min_lr=float(min_lr),
        )

        self.best_loss = math.inf
        self.best_epoch = 0
        self.epochs_since_improvement = 0

    @property
    def learning_rate(self) -> float:
        return float(self.optimizer.param_groups[0]["lr"])

    def step(self, epoch: int, val_loss: float) -> Tuple[TrainingState, bool]:
        """
        Register one epoch's validation loss.

        Returns
        -------
        Tuple[TrainingState, bool]
            (state, whether the loss improved). ``PLATEAU_DETECTED`` means
            the optimizer's learning rate was lowered for the next epoch.
        """
        improved = val_loss < self.best_loss
        if improved:
            self.best_loss = val_loss
            self.best_epoch = epoch
            self.epochs_since_improvement = 0
        else:
            self.epochs_since_improvement += 1
            if self.epochs_since_improvement >= self.early_stopping_patience:
                return TrainingState.EARLY_STOPPED, False

        lr_before = self.learning_rate
        self.scheduler.step(val_loss)
        if self.learning_rate < lr_before:
            return TrainingState.PLATEAU_DETECTED, improved

        return TrainingState.TRAINING, improved


# ---------------------------------------------------------------------------
# Estimator wrapper
# ---------------------------------------------------------------------------


def _as_float_tensor(X: Any) -> torch.Tensor:
    return torch.as_tensor(np.asarray(X, dtype=np.float32))


class MLPClassifier:
    """
    Scikit-learn style estimator around ``SpamMLP``.

    Training uses binary cross-entropy plus ``l2 * sum(w^2)`` and Adam.
    Each epoch is checked by a ``PlateauMonitor``; on early stopping (and,
    with ``restore_best``, at the epoch ceiling) the weights from the epoch
    with the lowest validation loss are restored.

    Attributes set by ``fit``: ``model_``, ``history_`` (one dict per
    epoch), ``stop_reason_``, ``best_epoch_``, ``best_val_loss_``.
    """

    def __init__(
        self,
        hidden_dims: Sequence[int] = (128, 64, 32, 16),
        dropout: float = 0.25,
        activation: str = "relu",
        learning_rate: float = 1e-3,
        l2: float = 1e-3,
        batch_size: int = 32,
        max_epochs: int = 200,
        plateau_patience: int = 3,
        plateau_factor: float = 0.8,
        min_learning_rate: float = 1e-5,
        early_stopping_patience: int = 5,
        restore_best: bool = True,
        threshold: float = 0.5,
        random_state: int = 42,
        device: Optional[torch.device] = None,
    ) -> None:
        self.hidden_dims = tuple(int(h) for h in hidden_dims)
        self.dropout = float(dropout)
        self.activation = activation
        self.learning_rate = float(learning_rate)
        self.l2 = float(l2)
        self.batch_size = int(batch_size)
        self.max_epochs = int(max_epochs)
        self.plateau_patience = int(plateau_patience)
        self.plateau_factor = float(plateau_factor)
        self.min_learning_rate = float(min_learning_rate)
        self.early_stopping_patience = int(early_stopping_patience)
        self.restore_best = bool(restore_best)
        self.threshold = float(threshold)
        self.random_state = int(random_state)
        self.device = device or torch.device("cpu")

        self.model_: Optional[SpamMLP] = None
        self.history_: List[Dict[str, Any]] = []
        self.stop_reason_: Optional[TrainingState] = None
        self.best_epoch_: Optional[int] = None
        self.best_val_loss_: Optional[float] = None

    @classmethod
    def from_config(
        cls,
        mlp_cfg: Dict[str, Any],
        random_state: int = 42,
        threshold: float = 0.5,
        device: Optional[torch.device] = None,
    ) -> "MLPClassifier":
        arch = mlp_cfg.get("architecture", {}) or {}
        opt = mlp_cfg.get("optimization", {}) or {}
        sched = mlp_cfg.get("schedule", {}) or {}

        optimizer_name = str(opt.get("optimizer", "adam")).lower()
        if optimizer_name != "adam":
            raise ValueError(f"Only the 'adam' optimizer is supported, got '{optimizer_name}'.")

        return cls(
            hidden_dims=arch.get("hidden_dims", (128, 64, 32, 16)),
            dropout=float(arch.get("dropout", 0.25)),
            activation=str(arch.get("activation", "relu")),
            learning_rate=float(opt.get("learning_rate", 1e-3)),
            l2=float(opt.get("l2", 1e-3)),
            batch_size=int(opt.get("batch_size", 32)),
            max_epochs=int(opt.get("max_epochs", 200)),
            plateau_patience=int(sched.get("plateau_patience", 3)),
            plateau_factor=float(sched.get("plateau_factor", 0.8)),
            min_learning_rate=float(sched.get("min_learning_rate", 1e-5)),
            early_stopping_patience=int(sched.get("early_stopping_patience", 5)),
            restore_best=bool(sched.get("restore_best", True)),
            threshold=threshold,
            random_state=random_state,
            device=device,
        )

    # -- training -----------------------------------------------------------

    def _loss(self, model: SpamMLP, logits: torch.Tensor, targets: torch.Tensor) -> torch.Tensor:
        bce = nn.functional.binary_cross_entropy_with_logits(logits, targets)
        return bce + self.l2 * model.weight_penalty()

    def _train_one_epoch(
        self,
        model: SpamMLP,
        loader: DataLoader,
        optimizer: torch.optim.Optimizer,
    ) -> float:
        model.train()
        total_loss = 0.0
        total_records = 0

        for xb, yb in loader:
            xb = xb.to(self.device)
            yb = yb.to(self.device)

            optimizer.zero_grad()
            loss = self._loss(model, model(xb), yb)
            loss.backward()
            optimizer.step()

            total_loss += loss.item() * len(xb)
            total_records += len(xb)

        return total_loss / max(1, total_records)

    def _evaluate_loss(self, model: SpamMLP, X: torch.Tensor, y: torch.Tensor) -> float:
        model.eval()
        with torch.no_grad():
            logits = model(X.to(self.device))
            return float(self._loss(model, logits, y.to(self.device)).item())

    def fit(self, X: Any, y: Any, X_val: Any = None, y_val: Any = None) -> "MLPClassifier":
        """
        Train the network; validation data drives the learning-rate schedule
        and early stopping.

        Raises
        ------
        ValueError
            If validation data is missing or shapes disagree.
        TrainingDivergedError
            If a loss becomes NaN or infinite.
        """
        if X_val is None or y_val is None:
            raise ValueError("MLPClassifier.fit requires validation data (X_val, y_val).")

        X_t = _as_float_tensor(X)
        y_t = _as_float_tensor(y).reshape(-1)
        X_v = _as_float_tensor(X_val)
        y_v = _as_float_tensor(y_val).reshape(-1)

        if X_t.ndim != 2 or len(X_t) != len(y_t):
            raise ValueError(f"X must be 2D with one label per row; got X {tuple(X_t.shape)}, y {tuple(y_t.shape)}.")
        if X_v.ndim != 2 or X_v.shape[1] != X_t.shape[1] or len(X_v) != len(y_v):
            raise ValueError("Validation data must have the same feature width as X and one label per row.")

        fork_devices = [] if self.device.type == "cpu" else None
        with torch.random.fork_rng(devices=fork_devices):
            torch.manual_seed(self.random_state)
            self._fit_loop(X_t, y_t, X_v, y_v)

        return self

    def _fit_loop(self, X_t: torch.Tensor, y_t: torch.Tensor, X_v: torch.Tensor, y_v: torch.Tensor) -> None:
        model = SpamMLP(
            input_dim=X_t.shape[1],
            hidden_dims=self.hidden_dims,
            dropout=self.dropout,
            activation=self.activation,
        ).to(self.device)

        optimizer = torch.optim.Adam(model.parameters(), lr=self.learning_rate)
        monitor = PlateauMonitor(
            optimizer,
            plateau_patience=self.plateau_patience,
            plateau_factor=self.plateau_factor,
            min_lr=self.min_learning_rate,
            early_stopping_patience=self.early_stopping_patience,
        )
        loader = DataLoader(
            TensorDataset(X_t, y_t),
            batch_size=self.batch_size,
            shuffle=True,
            generator=make_torch_generator(self.random_state),
        )

        self.history_ = []
        best_state = copy.deepcopy(model.state_dict())
        stop_reason = TrainingState.COMPLETED

        for epoch in range(1, self.max_epochs + 1):
            train_loss = self._train_one_epoch(model, loader, optimizer)
            val_loss = self._evaluate_loss(model, X_v, y_v)

            if not (math.isfinite(train_loss) and math.isfinite(val_loss)):
                raise TrainingDivergedError(
                    f"Non-finite loss at epoch {epoch}: train_loss={train_loss}, val_loss={val_loss}."
                )

            lr = monitor.learning_rate
            state, improved = monitor.step(epoch, val_loss)
            if improved:
                best_state = copy.deepcopy(model.state_dict())

            self.history_.append(
                {
                    "epoch": epoch,
                    "train_loss": train_loss,
                    "val_loss": val_loss,
                    "learning_rate": lr,
                    "state": state.value,
                }
            )
            logger.debug(
                "Epoch %d/%d - train_loss: %.4f, val_loss: %.4f, lr: %.6f",
                epoch,
                self.max_epochs,
                train_loss,
                val_loss,
                lr,
            )

            if state is TrainingState.PLATEAU_DETECTED:
                logger.info(
                    "Validation loss plateaued at epoch %d; learning rate %.6f -> %.6f",
                    epoch,
                    lr,
                    monitor.learning_rate,
                )
            elif state is TrainingState.EARLY_STOPPED:
                logger.info(
                    "Early stopping at epoch %d; best val_loss %.4f at epoch %d",
                    epoch,
                    monitor.best_loss,
                    monitor.best_epoch,
                )
                stop_reason = TrainingState.EARLY_STOPPED
                break

        if stop_reason is TrainingState.EARLY_STOPPED or self.restore_best:
            model.load_state_dict(best_state)

        self.model_ = model
        self.stop_reason_ = stop_reason
        self.best_epoch_ = monitor.best_epoch
        self.best_val_loss_ = monitor.best_loss

    # -- inference ----------------------------------------------------------

    def _check_fitted(self) -> SpamMLP:
        if self.model_ is None:
            raise RuntimeError("MLPClassifier is not fitted yet; call fit() first.")
        return self.model_

    def predict_proba(self, X: Any) -> np.ndarray:
        """
        Return an (n, 2) array of [P(no spam), P(spam)] per record.
        """
        model = self._check_fitted()
        model.eval()
        with torch.no_grad():
            logits = model(_as_float_tensor(X).to(self.device))
            p_spam = torch.sigmoid(logits).cpu().numpy().astype(float)
        return np.column_stack([1.0 - p_spam, p_spam])

    def predict(self, X: Any) -> np.ndarray:
        return (self.predict_proba(X)[:, 1] >= self.threshold).astype(int)

    def save(self, path: str) -> None:
        """Save the fitted network weights with ``torch.save``."""
        torch.save(self._check_fitted().state_dict(), path)
