"""A recurrent reservoir whose timescales adapt to a closure readout.

The closure network maps the recurrent state to a nonlinear image of itself.
That image feeds the readout, which is trained on the task, and also serves
as a local target for the recurrent state: only the diagonals of the
recurrent weight matrices are adapted, stretching or squeezing each neuron's
timescale so that the self-mapping becomes predictable.
"""

from __future__ import annotations

import numpy as np

from nbml import f
from nbml.f import Activation
from nbml.nn.ffn import FFN
from nbml.optim.param import Param, ToParams


class Closure(ToParams):
    """State-to-state map ``c`` followed by the task readout ``r``."""

    def __init__(
        self,
        size: int,
        d_out: int,
        c_a: Activation | str,
        r_a: Activation | str,
        rng: np.random.Generator | None = None,
    ) -> None:
        self.size = size
        self.d_out = d_out

        self.c = FFN([(size, size, c_a)], rng=rng)
        self.r = FFN([(size, d_out, r_a)], rng=rng)

        self.target = np.zeros((1, size))

    def forward(self, state: np.ndarray, grad: bool) -> np.ndarray:
        self.target = self.c.forward(state, grad)
        return self.r.forward(self.target.copy(), grad)

    def backward(self, d_loss: np.ndarray) -> np.ndarray:
        d_r = self.r.backward(d_loss)
        return self.c.backward(d_r)

    def params(self) -> list[Param]:
        return [*self.c.params(), *self.r.params()]


class Recurrent(ToParams):
    """A tanh recurrent layer whose weight gradients are kept diagonal."""

    def __init__(self, size: int, rng: np.random.Generator | None = None) -> None:
        self.size = size

        self.states = np.zeros((1, size))
        self.w_i = f.xavier_normal((size, size), rng)
        self.w_r = f.xavier_normal((size, size), rng)
        self.b = np.zeros(size)

        self._input = np.zeros((0, 0))
        self._states = np.zeros((0, 0))
        self._x_w = np.zeros((0, 0))
        self._r_w = np.zeros((0, 0))
        self._preactivations = np.zeros((0, 0))
        self._activations = np.zeros((0, 0))

        self.d_wi = np.zeros((0, 0))
        self.d_wr = np.zeros((0, 0))
        self.d_b = np.zeros(0)

    def forward(self, x: np.ndarray, grad: bool) -> np.ndarray:
        x = np.asarray(x, dtype=float)
        x_w = x @ self.w_i
        r_w = self.states @ self.w_r
        preactivations = x_w + r_w + self.b[np.newaxis, :]
        activations = f.tanh(preactivations)

        if grad:
            self._input = x.copy()
            self._states = self.states.copy()
            self._x_w = x_w
            self._r_w = r_w
            self._preactivations = preactivations
            self._activations = activations.copy()

        self.states = activations
        return self.states.copy()

    def backward(self, d_loss: np.ndarray) -> np.ndarray:
        d_z = np.asarray(d_loss, dtype=float) * f.d_tanh(self._preactivations)
        self.d_wi = np.diag((d_z * self._input)[0])
        self.d_wr = np.diag((d_z * self._states)[0])
        self.d_b = d_z.sum(axis=0)
        return d_z @ self.w_i.T

    def params(self) -> list[Param]:
        return [
            Param(self, "w_i", "d_wi"),
            Param(self, "w_r", "d_wr"),
            Param(self, "b", "d_b"),
        ]


class ClosureNet(ToParams):
    """Projection, adaptive reservoir and closure readout chained together."""

    def __init__(
        self,
        d_in: int,
        d_hidden: int,
        d_out: int,
        c_a: Activation | str,
        r_a: Activation | str,
        rng: np.random.Generator | None = None,
    ) -> None:
        self.projection = FFN([(d_in, d_hidden, Activation.IDENTITY)], rng=rng)
        self.recurrent = Recurrent(d_hidden, rng=rng)
        self.closure = Closure(d_hidden, d_out, c_a, r_a, rng=rng)

    def forward(self, x: np.ndarray, grad: bool) -> np.ndarray:
        p = self.projection.forward(x, grad)
        r = self.recurrent.forward(p, grad)
        return self.closure.forward(r, grad)

    def backward(self, d_loss: np.ndarray) -> None:
        """Train the closure on the task and the reservoir towards the closure target.

        The projection is left untouched: updating it only adds noise.
        """
        self.closure.backward(d_loss)
        d_closure = 2.0 * (self.recurrent.states - self.closure.target)
        self.recurrent.backward(d_closure)

    def reset(self) -> None:
        self.recurrent.states = np.zeros((1, self.recurrent.size))

    def params(self) -> list[Param]:
        return [
            *self.projection.params(),
            *self.recurrent.params(),
            *self.closure.params(),
        ]