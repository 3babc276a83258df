"""Small dynamical systems and control environments for benchmarks."""

from __future__ import annotations

import math
from dataclasses import dataclass, field

import numpy as np

_LORENZ_SIGMA = 10.0
_LORENZ_RHO = 28.0
_LORENZ_BETA = 8.0 / 3.0


def lorenz_step(state: np.ndarray, dt: float) -> np.ndarray:
    """Advance the Lorenz system by one Euler step of size ``dt``."""
    x, y, z = (float(v) for v in np.asarray(state, dtype=float)[:3])

    dx = _LORENZ_SIGMA * (y - x)
    dy = x * (_LORENZ_RHO - z) - y
    dz = x * y - _LORENZ_BETA * z

    return np.array([x + dx * dt, y + dy * dt, z + dz * dt])


def _zeros10() -> list[float]:
    return [0.0] * 10


@dataclass
class Narma10:
    """The NARMA10 benchmark; index 0 of each history is the most recent value."""

    ys: list[float] = field(default_factory=_zeros10)
    xs: list[float] = field(default_factory=_zeros10)

    @classmethod
    def random(cls, rng: np.random.Generator | None = None) -> Narma10:
        """Start from random histories; each one is filled with a single draw."""
        rng = rng if rng is not None else np.random.default_rng()
        y = float(rng.random())
        x = float(rng.random())
        return cls(ys=[y] * 10, xs=[x] * 10)

    def step(self, x_t: float) -> float:
        """Feed input ``x_t`` and return the next output."""
        y_prev = self.ys[0]
        y_sum = sum(self.ys)
        x_prev10 = self.xs[9]

        y_t = 0.3 * y_prev + 0.05 * y_prev * y_sum + 1.5 * x_prev10 * x_t + 0.1

        self.ys = [y_t, *self.ys[:-1]]
        self.xs = [x_t, *self.xs[:-1]]

        return y_t


def _wrap_angle(x: float) -> float:
    return math.fmod(x + math.pi, 2.0 * math.pi) - math.pi


@dataclass
class PendulumEnv:
    """Inverted pendulum swing-up with continuous torque; the state is [theta, theta_dot]."""

    state: list[float] = field(default_factory=lambda: [0.0, 0.0])
    max_speed: float = 8.0
    max_torque: float = 2.0
    dt: float = 0.05
    g: float = 10.0
    m: float = 1.0
    l: float = 1.0  # noqa: E741

    def reset(self, rng: np.random.Generator | None = None) -> np.ndarray:
        """Start from a random angle and angular velocity."""
        rng = rng if rng is not None else np.random.default_rng()
        theta = float(rng.uniform(-math.pi, math.pi))
        theta_dot = float(rng.uniform(-1.0, 1.0))
        self.state = [theta, theta_dot]
        return self.observation()

    def step(self, action: float) -> tuple[np.ndarray, float, bool]:
        """Apply torque ``action``; returns observation, reward and a done flag that is never set."""
        u = min(max(float(action), -self.max_torque), self.max_torque)
        th, thdot = self.state

        new_thdot = thdot + (
            3.0 * self.g / (2.0 * self.l) * math.sin(th) + 3.0 / (self.m * self.l**2) * u
        ) * self.dt
        new_thdot = min(max(new_thdot, -self.max_speed), self.max_speed)
        new_th = th + new_thdot * self.dt

        self.state = [_wrap_angle(new_th), new_thdot]

        reward = -(self.state[0] ** 2 + 0.1 * new_thdot**2 + 0.001 * u**2)
        return self.observation(), reward, False

    def observation(self) -> np.ndarray:
        """Return ``[[cos(theta), sin(theta), theta_dot]]``."""
        theta, theta_dot = self.state
        return np.array([[math.cos(theta), math.sin(theta), theta_dot]])