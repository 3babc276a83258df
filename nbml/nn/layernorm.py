"""Layer normalisation over the feature axis of batched sequences."""

from __future__ import annotations

import numpy as np

from nbml.optim.param import Param, ToParams

_VARIANCE_EPS = 1e-5


class LayerNorm(ToParams):
    """Normalise every position of a ``(batch, seq, features)`` array."""

    def __init__(self, d_in: int) -> None:
        self.gamma = np.ones(d_in)
        self.beta = np.zeros(d_in)

        self.o = np.zeros((0, 0))
        self.x_h = np.zeros((0, 0))

        self.d_gamma = np.ones(0)
        self.d_beta = np.zeros(0)

    def forward(self, x: np.ndarray, grad: bool) -> np.ndarray:
        x = np.asarray(x, dtype=float)
        batch_size, seq_len, features = x.shape
        flat = x.reshape(batch_size * seq_len, features)

        centred = flat - flat.sum(axis=1, keepdims=True) / features
        variance = (centred**2).sum(axis=1, keepdims=True) / features
        std = np.sqrt(variance + _VARIANCE_EPS)

        x_h = centred / std
        y = x_h * self.gamma + self.beta

        if grad:
            self.o = std
            self.x_h = x_h

        return y.reshape(batch_size, seq_len, features)

    def backward(self, d_loss: np.ndarray) -> np.ndarray:
        d_loss = np.asarray(d_loss, dtype=float)
        batch_size, seq_len, features = d_loss.shape
        flat = d_loss.reshape(batch_size * seq_len, features)

        self.d_gamma = (flat * self.x_h).sum(axis=0)
        self.d_beta = flat.sum(axis=0)

        dx_hat = flat * self.gamma
        dx = (1.0 / (features * self.o)) * (
            features * dx_hat
            - dx_hat.sum(axis=1, keepdims=True)
            - self.x_h * (dx_hat * self.x_h).sum(axis=1, keepdims=True)
        )

        return dx.reshape(batch_size, seq_len, features)

    def params(self) -> list[Param]:
        return [Param(self, "gamma", "d_gamma"), Param(self, "beta", "d_beta")]