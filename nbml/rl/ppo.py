"""Proximal policy optimisation with a tanh-squashed Gaussian policy."""

from __future__ import annotations

import math
import warnings
from collections import deque
from dataclasses import dataclass
from typing import Iterable, Sequence

import numpy as np

from nbml import f
from nbml.f import Activation
from nbml.nn.ffn import FFN, Layer, LayerDef
from nbml.optim.param import Param, ToParams


@dataclass
class Trajectory:
    """One interaction step: the state, the sampled action and what the critic predicted."""

    state: np.ndarray
    action: np.ndarray
    action_raw: np.ndarray
    log_prob: np.ndarray
    pred_value: float
    reward: float = 0.0


def _concat_rows(feature_size: int, source: Sequence[np.ndarray], indices: Sequence[int]) -> np.ndarray:
    return np.concatenate([np.zeros((0, feature_size)), *(source[i] for i in indices)])


class PPO(ToParams):
    """Continuous-action PPO with separate mean and log-std heads on a shared trunk."""

    def __init__(
        self,
        d_state: int,
        d_action: int,
        values: Iterable[LayerDef],
        policy_hidden: Iterable[LayerDef],
        rng: np.random.Generator | None = None,
    ) -> None:
        policy_hidden = list(policy_hidden)
        if not policy_hidden:
            raise ValueError("Policy network needs at least one hidden layer.")

        self.rng = rng if rng is not None else np.random.default_rng()
        self.d_state = d_state
        self.d_action = d_action

        d_hidden = policy_hidden[-1][1]
        self.values = FFN(values, rng=self.rng)
        self.policy = FFN(policy_hidden, rng=self.rng)
        self.policy_mean_head = Layer(d_hidden, d_action, Activation.IDENTITY, rng=self.rng)
        self.policy_logstd_head = Layer(d_hidden, d_action, Activation.IDENTITY, rng=self.rng)

        self.trajectories: deque[Trajectory] = deque()

    def forward(self, state: np.ndarray) -> Trajectory:
        """Sample an action for ``state``; the returned trajectory is not yet stored."""
        state = np.asarray(state, dtype=float)
        hidden = self.policy.forward(state, False)
        mean = self.policy_mean_head.forward(hidden, False)
        logstd = self.policy_logstd_head.forward(hidden, False)

        std = np.exp(logstd)
        u = mean + std * self.rng.normal(0.0, 1.0, size=mean.shape)
        pred_value = self.values.forward(state, False)
        a = f.tanh(u)

        if np.isnan(a).any():
            warnings.warn("PPO: policy exploded", RuntimeWarning, stacklevel=2)
        if np.isnan(pred_value).any():
            warnings.warn("PPO: values exploded", RuntimeWarning, stacklevel=2)

        log_prob = f.gaussian_log_prob(u, mean, std) - f.tanh_gaussian_correction_eps(u)

        return Trajectory(
            state=state,
            action=a,
            action_raw=u,
            log_prob=log_prob[:, np.newaxis],
            pred_value=float(pred_value[0, 0]),
            reward=0.0,
        )

    def complete(self, trajectory: Trajectory, reward: float) -> None:
        """Record the reward for ``trajectory`` and store it for training."""
        trajectory.reward = float(reward)
        self.trajectories.append(trajectory)

    def backward(
        self,
        gamma: float,
        lam: float,
        clip: float,
        epochs: int,
        c1: float,
        c2: float,
    ) -> None:
        """Compute gradients from the stored trajectories, then forget them.

        The last stored step only supplies the bootstrap value; nothing happens
        with fewer than two steps stored.
        """
        if len(self.trajectories) < 2:
            return

        steps = list(self.trajectories)
        current, following = steps[:-1], steps[1:]
        count = len(current)

        states = [t.state for t in current]
        us = [t.action_raw for t in current]
        log_probs = [t.log_prob for t in current]

        rolling = 0.0
        advantages: list[float] = []
        returns: list[float] = []
        for now, nxt in zip(reversed(current), reversed(following)):
            delta = now.reward + gamma * nxt.pred_value - now.pred_value
            rolling = delta + lam * gamma * rolling
            advantages.append(rolling)
            returns.append(now.pred_value + rolling)
        advantages.reverse()
        returns.reverse()

        adv = np.array(advantages)
        norm_adv = (adv - adv.mean()) / (adv.std() + 1e-8)
        norm_adv_rows = [np.array([[a]]) for a in norm_adv]
        return_rows = [np.array([[r]]) for r in returns]

        indices = list(self.rng.permutation(count))
        batch_size = math.ceil(count / epochs) if epochs > 0 else 0

        for _ in range(epochs):
            batch, indices = indices[:batch_size], indices[batch_size:]

            b_states = _concat_rows(self.d_state, states, batch)
            b_us = _concat_rows(self.d_action, us, batch)
            b_log_probs = _concat_rows(1, log_probs, batch)
            b_adv = _concat_rows(1, norm_adv_rows, batch)
            b_returns = _concat_rows(1, return_rows, batch)

            rows = b_states.shape[0]
            batch_mean = 1.0 / rows if rows else math.inf

            pred_returns = self.values.forward(b_states, True)
            self.values.backward(c1 * batch_mean * (2.0 / count) * (pred_returns - b_returns))

            hidden = self.policy.forward(b_states, True)
            mean = self.policy_mean_head.forward(hidden, True)
            logstd = self.policy_logstd_head.forward(hidden, True)
            std = np.exp(logstd)

            log_prob_new = (
                f.gaussian_log_prob(b_us, mean, std) - f.tanh_gaussian_correction_eps(b_us)
            )[:, np.newaxis]

            r = np.exp(log_prob_new - b_log_probs)
            r_clip = np.clip(r, 1.0 - clip, 1.0 + clip)
            r_adv = np.minimum(r * b_adv, r_clip * b_adv)
            surrogate = -batch_mean * r_adv

            dlogprob_dmean = (b_us - mean) / std**2
            dlogprob_dlogstd = (b_us - mean) ** 2 / std**2 - 1.0
            entropy_grad_logstd = np.zeros(std.shape) * (c2 / batch_mean)

            d_mean = surrogate * dlogprob_dmean
            d_logstd = surrogate * dlogprob_dlogstd + entropy_grad_logstd

            grad_mean = self.policy_mean_head.backward(d_mean)
            grad_logstd = self.policy_logstd_head.backward(d_logstd)
            self.policy.backward(grad_mean + grad_logstd)

        self.trajectories.clear()

    def params(self) -> list[Param]:
        return [
            *self.values.params(),
            *self.policy.params(),
            *self.policy_mean_head.params(),
            *self.policy_logstd_head.params(),
        ]