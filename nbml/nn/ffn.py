"""Fully connected layers and feed-forward networks."""

from __future__ import annotations

from typing import Iterable, Union

import numpy as np

from nbml.f import Activation
from nbml.optim.param import Param, ToParams

LayerDef = tuple[int, int, Union[Activation, str]]


class Layer(ToParams):
    """A dense layer ``activation(x @ w + b)``."""

    def __init__(
        self,
        d_in: int,
        d_out: int,
        activation: Activation | str,
        rng: np.random.Generator | None = None,
    ) -> None:
        self.activation = Activation(activation)
        self.w = self.activation.init_weights((d_in, d_out), rng)
        self.b = np.zeros(d_out)

        self.x = np.zeros((0, 0))
        self.z = np.zeros((0, 0))

        self.d_w = np.zeros((0, 0))
        self.d_b = np.zeros(0)

    def forward(self, x: np.ndarray, grad: bool) -> np.ndarray:
        z = x @ self.w + self.b
        if grad:
            self.x = np.array(x, dtype=float, copy=True)
            self.z = z.copy()
        return self.activation.apply(z)

    def backward(self, d_a: np.ndarray) -> np.ndarray:
        d_z = d_a * self.activation.derivative(self.z)
        self.d_w = self.x.T @ d_z
        self.d_b = d_z.sum(axis=0)
        return d_z @ self.w.T

    def params(self) -> list[Param]:
        return [Param(self, "w", "d_w"), Param(self, "b", "d_b")]


class FFN(ToParams):
    """A stack of dense layers applied in order."""

    def __init__(
        self, layers: Iterable[LayerDef], rng: np.random.Generator | None = None
    ) -> None:
        self.layers = [Layer(d_in, d_out, activation, rng) for d_in, d_out, activation in layers]

    def forward(self, x: np.ndarray, grad: bool) -> np.ndarray:
        for layer in self.layers:
            x = layer.forward(x, grad)
        return x

    def backward(self, d_a: np.ndarray) -> np.ndarray:
        for layer in reversed(self.layers):
            d_a = layer.backward(d_a)
        return d_a

    def params(self) -> list[Param]:
        return [param for layer in self.layers for param in layer.params()]