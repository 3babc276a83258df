"""Regression metrics for comparing predictions with targets."""

from __future__ import annotations

import math

import numpy as np


def _vectors(y_true: np.ndarray, y_pred: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    t = np.asarray(y_true, dtype=float)
    p = np.asarray(y_pred, dtype=float)
    if t.size == 0 or p.size == 0:
        raise ValueError("metrics need at least one value")
    return t, p


def mse(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    t, p = _vectors(y_true, y_pred)
    return float(np.mean((t - p) ** 2))


def nmse(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    """Mean squared error divided by the variance of the targets."""
    t, p = _vectors(y_true, y_pred)
    var_y = float(np.mean((t - t.mean()) ** 2))
    return mse(t, p) / var_y


def r2(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    return 1.0 - nmse(y_true, y_pred)


def pearson_r(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    t, p = _vectors(y_true, y_pred)
    tc = t - t.mean()
    pc = p - p.mean()
    numerator = float(np.mean(tc * pc))
    denom = math.sqrt(float(np.mean(tc**2)) * float(np.mean(pc**2)))
    return numerator / denom


def score(y_true: np.ndarray, y_pred: np.ndarray) -> dict[str, float]:
    """Print all metrics and return them keyed by name."""
    mse_val = mse(y_true, y_pred)
    metrics = {
        "mse": mse_val,
        "rmse": math.sqrt(mse_val),
        "nmse": nmse(y_true, y_pred),
        "r2": r2(y_true, y_pred),
        "r": pearson_r(y_true, y_pred),
    }

    print("\n=== Bench Metrics ===")
    print(f"MSE   = {metrics['mse']:.6f}")
    print(f"RMSE  = {metrics['rmse']:.6f}")
    print(f"NMSE  = {metrics['nmse']:.6f}")
    print(f"R^2   = {metrics['r2']:.6f}")
    print(f"r     = {metrics['r']:.6f}")

    return metrics