"""
Tests for the MLP, its training state machine and its estimator wrapper.
"""

from __future__ import annotations

import numpy as np
import pytest
import torch

from spambase.models.mlp import (
    MLPClassifier,
    PlateauMonitor,
    SpamMLP,
    TrainingDivergedError,
    TrainingState,
    load_mlp_config,
)


MLP_CONFIG_PATH = "config/mlp.yaml"


def _small_data(seed: int = 0, n: int = 120, d: int = 5):
    rng = np.random.default_rng(seed)
    y = (rng.random(n) < 0.5).astype(int)
    X = rng.random((n, d)) + 0.8 * y[:, None]
    return X.astype(np.float32), y


def _small_classifier(**overrides) -> MLPClassifier:
    params = dict(hidden_dims=(8, 4), batch_size=16, max_epochs=6, random_state=0)
    params.update(overrides)
    return MLPClassifier(**params)


# ---------------------------------------------------------------------------
# PlateauMonitor
# ---------------------------------------------------------------------------


def _optimizer(lr: float = 1e-3) -> torch.optim.Optimizer:
    return torch.optim.Adam([torch.nn.Parameter(torch.zeros(1))], lr=lr)


def _monitor(lr: float = 1e-3, **kwargs) -> PlateauMonitor:
    return PlateauMonitor(_optimizer(lr), **kwargs)


def test_plateau_then_early_stop():
    monitor = _monitor(plateau_patience=3, plateau_factor=0.8, min_lr=1e-5, early_stopping_patience=5)

    state, improved = monitor.step(1, 1.0)
    assert (state, improved) == (TrainingState.TRAINING, True)

    states = [monitor.step(epoch, 1.0)[0] for epoch in range(2, 7)]

    assert states == [
        TrainingState.TRAINING,
        TrainingState.TRAINING,
        TrainingState.PLATEAU_DETECTED,
        TrainingState.TRAINING,
        TrainingState.EARLY_STOPPED,
    ]
    assert monitor.learning_rate == pytest.approx(8e-4)
    assert monitor.best_epoch == 1


def test_equal_loss_is_not_an_improvement():
    monitor = _monitor()
    monitor.step(1, 0.5)
    _, improved = monitor.step(2, 0.5)
    assert improved is False
    assert monitor.epochs_since_improvement == 1


def test_improvement_resets_counters():
    monitor = _monitor()
    for epoch, loss in enumerate([1.0, 1.1, 1.2, 0.9, 1.0, 1.0], start=1):
        state, _ = monitor.step(epoch, loss)

    # Two stale epochs after the new best: no reduction yet.
    assert state is TrainingState.TRAINING
    assert monitor.epochs_since_improvement == 2
    assert monitor.best_loss == pytest.approx(0.9)
    assert monitor.best_epoch == 4
    assert monitor.learning_rate == pytest.approx(1e-3)


def test_repeated_reductions_stop_at_floor():
    monitor = _monitor(plateau_patience=3, plateau_factor=0.5, min_lr=1e-4, early_stopping_patience=100)
    monitor.step(1, 1.0)

    reductions = []
    for epoch in range(2, 30):
        state, _ = monitor.step(epoch, 1.0)
        if state is TrainingState.PLATEAU_DETECTED:
            reductions.append((epoch, monitor.learning_rate))

    assert [e for e, _ in reductions] == [4, 7, 10, 13]
    assert [r for _, r in reductions] == pytest.approx([5e-4, 2.5e-4, 1.25e-4, 1e-4])
    assert monitor.learning_rate == pytest.approx(1e-4)


def test_monitor_lowers_the_optimizer_learning_rate():
    optimizer = _optimizer(1e-2)
    monitor = PlateauMonitor(optimizer, plateau_patience=2, plateau_factor=0.5, early_stopping_patience=10)

    for epoch in range(1, 4):
        monitor.step(epoch, 1.0)

    assert optimizer.param_groups[0]["lr"] == pytest.approx(5e-3)


def test_plateau_settings_are_validated():
    with pytest.raises(ValueError):
        _monitor(plateau_factor=1.5)
    with pytest.raises(ValueError):
        _monitor(plateau_patience=0)


# ---------------------------------------------------------------------------
# Network
# ---------------------------------------------------------------------------


def test_network_shape_and_layers():
    net = SpamMLP(input_dim=10)
    widths = [m.out_features for m in net.modules() if isinstance(m, torch.nn.Linear)]
    assert widths == [128, 64, 32, 16, 1]
    assert net(torch.zeros(7, 10)).shape == (7,)
    assert float(net.weight_penalty()) > 0.0


def test_unknown_activation_raises():
    with pytest.raises(ValueError):
        SpamMLP(input_dim=4, activation="softsign")


# ---------------------------------------------------------------------------
# MLPClassifier
# ---------------------------------------------------------------------------


def test_from_config_defaults():
    clf = MLPClassifier.from_config(load_mlp_config(MLP_CONFIG_PATH), random_state=1)

    assert clf.hidden_dims == (128, 64, 32, 16)
    assert clf.dropout == pytest.approx(0.25)
    assert clf.learning_rate == pytest.approx(1e-3)
    assert clf.l2 == pytest.approx(1e-3)
    assert clf.plateau_patience == 3
    assert clf.plateau_factor == pytest.approx(0.8)
    assert clf.min_learning_rate == pytest.approx(1e-5)
    assert clf.early_stopping_patience == 5


def test_from_config_rejects_other_optimizers():
    cfg = load_mlp_config(MLP_CONFIG_PATH)
    cfg["optimization"]["optimizer"] = "sgd"
    with pytest.raises(ValueError):
        MLPClassifier.from_config(cfg)


def test_fit_is_deterministic_for_a_seed():
    X, y = _small_data()
    X_val, y_val = _small_data(seed=1, n=40)

    first = _small_classifier().fit(X, y, X_val, y_val)
    second = _small_classifier().fit(X, y, X_val, y_val)

    assert [h["val_loss"] for h in first.history_] == pytest.approx([h["val_loss"] for h in second.history_])
    np.testing.assert_allclose(first.predict_proba(X_val), second.predict_proba(X_val))


def test_fit_does_not_touch_global_torch_state():
    X, y = _small_data()
    X_val, y_val = _small_data(seed=1, n=40)

    torch.manual_seed(123)
    expected = torch.rand(3)
    torch.manual_seed(123)
    _small_classifier(max_epochs=2).fit(X, y, X_val, y_val)
    assert torch.equal(torch.rand(3), expected)


def test_best_weights_are_restored():
    X, y = _small_data()
    X_val, y_val = _small_data(seed=1, n=40)

    clf = _small_classifier(max_epochs=15, learning_rate=0.05).fit(X, y, X_val, y_val)

    losses = [h["val_loss"] for h in clf.history_]
    assert clf.best_val_loss_ == pytest.approx(min(losses))
    assert clf.best_epoch_ == int(np.argmin(losses)) + 1

    restored = clf._evaluate_loss(
        clf.model_,
        torch.as_tensor(X_val),
        torch.as_tensor(y_val, dtype=torch.float32),
    )
    assert restored == pytest.approx(clf.best_val_loss_, rel=1e-5)


def test_early_stop_restores_best_weights_and_decays_lr():
    X, y = _small_data()
    X_val, y_val = _small_data(seed=1, n=40)

    clf = _small_classifier(max_epochs=300, learning_rate=0.05, restore_best=False).fit(X, y, X_val, y_val)

    assert clf.stop_reason_ is TrainingState.EARLY_STOPPED
    assert len(clf.history_) - clf.best_epoch_ == clf.early_stopping_patience
    assert clf.history_[-1]["state"] == TrainingState.EARLY_STOPPED.value

    restored = clf._evaluate_loss(
        clf.model_,
        torch.as_tensor(X_val),
        torch.as_tensor(y_val, dtype=torch.float32),
    )
    assert restored == pytest.approx(clf.best_val_loss_, rel=1e-5)

    # A plateau always precedes the stop: the next epoch runs at lr * factor.
    lrs = [h["learning_rate"] for h in clf.history_]
    plateau_epochs = [h["epoch"] for h in clf.history_ if h["state"] == TrainingState.PLATEAU_DETECTED.value]
    assert plateau_epochs
    first = plateau_epochs[0]
    assert lrs[first] == pytest.approx(lrs[first - 1] * clf.plateau_factor)
    assert min(lrs) < 0.05


def test_history_records_every_epoch():
    X, y = _small_data()
    X_val, y_val = _small_data(seed=1, n=40)

    clf = _small_classifier(max_epochs=4).fit(X, y, X_val, y_val)

    assert 1 <= len(clf.history_) <= 4
    assert [h["epoch"] for h in clf.history_] == list(range(1, len(clf.history_) + 1))
    assert set(clf.history_[0]) == {"epoch", "train_loss", "val_loss", "learning_rate", "state"}
    assert clf.stop_reason_ in (TrainingState.COMPLETED, TrainingState.EARLY_STOPPED)


def test_predict_proba_shape_and_labels():
    X, y = _small_data()
    X_val, y_val = _small_data(seed=1, n=40)

    clf = _small_classifier(max_epochs=3).fit(X, y, X_val, y_val)
    proba = clf.predict_proba(X_val)

    assert proba.shape == (40, 2)
    np.testing.assert_allclose(proba.sum(axis=1), 1.0, atol=1e-6)
    assert set(np.unique(clf.predict(X_val))) <= {0, 1}


def test_non_finite_loss_raises():
    X, y = _small_data()
    X_val, y_val = _small_data(seed=1, n=40)
    X = X.copy()
    X[0, 0] = np.nan

    with pytest.raises(TrainingDivergedError):
        _small_classifier(max_epochs=2).fit(X, y, X_val, y_val)


def test_fit_requires_validation_data():
    X, y = _small_data()
    with pytest.raises(ValueError):
        _small_classifier().fit(X, y)


def test_predict_before_fit_raises():
    with pytest.raises(RuntimeError):
        _small_classifier().predict_proba(np.zeros((2, 5)))


def test_save_writes_state_dict(tmp_path):
    X, y = _small_data()
    X_val, y_val = _small_data(seed=1, n=40)
    clf = _small_classifier(max_epochs=1).fit(X, y, X_val, y_val)

    path = tmp_path / "mlp.pt"
    clf.save(str(path))

    state = torch.load(str(path))
    assert "output.weight" in state
