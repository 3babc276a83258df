"""A tanh recurrent cell trained with truncated backpropagation through time."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field

import numpy as np

from nbml import f
from nbml.f import Activation
from nbml.nn.ffn import FFN
from nbml.optim.param import Param, ToParams


def _empty() -> np.ndarray:
    return np.zeros((0, 0))


def _accumulate(current: np.ndarray, update: np.ndarray) -> np.ndarray:
    """Add ``update`` to an accumulated gradient, treating an empty one as zero."""
    if current.size == 0:
        return np.array(update, dtype=float, copy=True)
    return current + update


@dataclass
class RecurrentTrajectory:
    """What one forward step of a :class:`Recurrent` cell needs for its backward pass."""

    input: np.ndarray = field(default_factory=_empty)
    state: np.ndarray = field(default_factory=_empty)
    preactivations: np.ndarray = field(default_factory=_empty)
    activations: np.ndarray = field(default_factory=_empty)
    d_loss: np.ndarray = field(default_factory=_empty)


class Recurrent(ToParams):
    """A fully recurrent tanh layer ``h = tanh(x @ w_i + h_prev @ w_r + b)``."""

    def __init__(self, size: int, rng: np.random.Generator | None = None) -> None:
        self.size = size

        self.states = np.zeros((1, size))
        self.w_i = f.xavier_normal((size, size), rng)
        self.w_r = f.xavier_normal((size, size), rng)
        self.b = np.zeros(size)

        self.trajectory = RecurrentTrajectory()
        self.trajectories: deque[RecurrentTrajectory] = deque()

        self.d_wi = np.zeros((0, 0))
        self.d_wr = np.zeros((0, 0))
        self.d_b = np.zeros(0)

    def forward(self, x: np.ndarray, grad: bool) -> np.ndarray:
        x = np.asarray(x, dtype=float)
        preactivations = x @ self.w_i + self.states @ self.w_r + self.b[np.newaxis, :]
        activations = f.tanh(preactivations)

        if grad:
            self.trajectory = RecurrentTrajectory(
                input=x.copy(),
                state=self.states.copy(),
                preactivations=preactivations,
                activations=activations.copy(),
                d_loss=np.zeros((1, self.size)),
            )

        self.states = activations
        return self.states.copy()

    def cache(self, d_loss: np.ndarray, retain: int) -> None:
        """Store the last step with its loss gradient, keeping at most ``retain`` steps."""
        step = RecurrentTrajectory(
            input=self.trajectory.input,
            state=self.trajectory.state,
            preactivations=self.trajectory.preactivations,
            activations=self.trajectory.activations,
            d_loss=np.asarray(d_loss, dtype=float),
        )
        self.trajectories.append(step)
        while len(self.trajectories) > retain:
            self.trajectories.popleft()

    def backward(self) -> np.ndarray:
        """Propagate the cached losses back through time.

        Gradients are added to those already held; an empty gradient counts as zero.
        """
        d_state_next = np.zeros((1, self.size))

        for step in reversed(self.trajectories):
            d_state_next = d_state_next + step.d_loss
            d_act = f.d_tanh(step.preactivations)
            d_z = d_state_next * d_act

            self.d_wi = _accumulate(self.d_wi, step.input.T @ d_z)
            self.d_wr = _accumulate(self.d_wr, step.state.T @ d_z)
            self.d_b = _accumulate(self.d_b, d_z.sum(axis=0))

            jacobian = np.diag(d_act[0]) @ self.w_r.T
            d_state_next = d_state_next @ jacobian

        return d_state_next @ self.w_i.T

    def params(self) -> list[Param]:
        return [
            Param(self, "w_i", "d_wi"),
            Param(self, "w_r", "d_wr"),
            Param(self, "b", "d_b"),
        ]


class RNN(ToParams):
    """Linear projection, a recurrent tanh cell and a linear readout."""

    def __init__(
        self,
        size: int,
        d_in: int,
        d_out: int,
        rng: np.random.Generator | None = None,
    ) -> None:
        self.size = size
        self.d_in = d_in
        self.d_out = d_out

        self.projection = FFN([(d_in, size, Activation.IDENTITY)], rng=rng)
        self.recurrent = Recurrent(size, rng=rng)
        self.readout = FFN([(size, d_out, Activation.IDENTITY)], rng=rng)

    def forward(self, x: np.ndarray, grad: bool) -> np.ndarray:
        x = self.projection.forward(x, grad)
        x = self.recurrent.forward(x, grad)
        return self.readout.forward(x, grad)

    def backward_esn(self, d_loss: np.ndarray) -> None:
        """Train only the readout, as in an echo state network."""
        self.readout.backward(d_loss)

    def backward_bptt(self, d_loss: np.ndarray, retain: int) -> np.ndarray:
        """Backpropagate through the readout, the last ``retain`` steps and the projection."""
        d_readout = self.readout.backward(d_loss)
        self.recurrent.cache(d_readout.copy(), retain)
        d_recurrent = self.recurrent.backward()
        return self.projection.backward(d_recurrent)

    def reset(self) -> None:
        self.recurrent.states = np.zeros((1, self.recurrent.size))

    def params(self) -> list[Param]:
        return [
            *self.readout.params(),
            *self.recurrent.params(),
            *self.projection.params(),
        ]