"""Soft actor-critic with a tanh-squashed Gaussian policy and twin critics."""

from __future__ import annotations

import copy
import math
from collections import deque
from dataclasses import dataclass
from typing import Iterable, Sequence

import numpy as np

from nbml import f
from nbml.f import Activation
from nbml.nn.ffn import FFN, LayerDef
from nbml.optim.param import Param, ToParams

_LOG_STD_MIN = -20.0
_LOG_STD_MAX = 2.0


@dataclass
class Experience:
    """One transition stored in the replay buffer."""

    state: np.ndarray
    action_mean: np.ndarray
    action_log_std: np.ndarray
    action_sample: np.ndarray
    reward: float
    state_next: np.ndarray


def _soft_update(target: FFN, net: FFN, tau: float) -> None:
    for layer, layer_t in zip(net.layers, target.layers):
        layer_t.w = (1.0 - tau) * layer_t.w + tau * layer.w
        layer_t.b = (1.0 - tau) * layer_t.b + tau * layer.b


class SAC(ToParams):
    """Entropy-regularised actor-critic with a learned temperature ``log_alpha``.

    The Q networks take ``state`` and ``action`` side by side; the policy is a
    hidden trunk followed by a mean head and a log-std head whose width is the
    output width of the Q networks.
    """

    def __init__(
        self,
        d_state: int,
        d_action: int,
        q_layers: Iterable[LayerDef],
        policy_hidden_layers: Iterable[LayerDef],
        rng: np.random.Generator | None = None,
    ) -> None:
        q_layers = list(q_layers)
        policy_hidden_layers = list(policy_hidden_layers)

        if not q_layers:
            raise ValueError("Q networks must have at least 1 layer.")
        if q_layers[0][0] != d_state + d_action:
            raise ValueError("Q network input layer must be (d_state + d_action, ..)")
        if not policy_hidden_layers:
            raise ValueError("Policy network must have at least 1 hidden layer.")
        if policy_hidden_layers[0][0] != d_state:
            raise ValueError("Policy network input layer must be (d_state, ..)")

        self.rng = rng if rng is not None else np.random.default_rng()
        self.d_state = d_state
        self.d_action = d_action

        n_action = q_layers[-1][1]
        d_hidden = policy_hidden_layers[-1][1]

        self.q1 = FFN(q_layers, rng=self.rng)
        self.q2 = FFN(q_layers, rng=self.rng)
        self.q1_target = copy.deepcopy(self.q1)
        self.q2_target = copy.deepcopy(self.q2)

        self.policy = FFN(policy_hidden_layers, rng=self.rng)
        self.policy_mean_head = FFN([(d_hidden, n_action, Activation.IDENTITY)], rng=self.rng)
        self.policy_std_head = FFN([(d_hidden, n_action, Activation.IDENTITY)], rng=self.rng)
        self.log_alpha = 0.0
        self.d_log_alpha = 0.0

        self.buffer: deque[Experience] = deque()

    def inference(
        self, x: np.ndarray, grad: bool
    ) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        """Sample actions for ``x``; returns ``(action, mean, raw action, log std)``."""
        hidden = self.policy.forward(np.asarray(x, dtype=float), grad)
        mean = self.policy_mean_head.forward(hidden.copy(), grad)
        log_std = np.clip(self.policy_std_head.forward(hidden, grad), _LOG_STD_MIN, _LOG_STD_MAX)
        std = np.exp(log_std)

        gaussian = self.rng.normal(0.0, 1.0, size=mean.shape)
        a_raw = mean + std * gaussian
        return f.tanh(a_raw), mean, a_raw, log_std

    @staticmethod
    def gaussian_log_prob(
        a_raw: np.ndarray, u: np.ndarray, log_std: np.ndarray
    ) -> np.ndarray:
        """Per-row log density of ``a_raw`` under Gaussians with mean ``u``."""
        eps = 1e-8
        std = np.exp(log_std)
        quadratic = (a_raw - u) ** 2 / std**2
        norm = 2.0 * np.log(np.fmax(std, eps))
        constant = math.log(math.pi * 2.0)
        return (-0.5 * (quadratic + norm + constant)).sum(axis=1)

    @staticmethod
    def tanh_gaussian_correction(a_raw: np.ndarray) -> np.ndarray:
        """Per-row log-determinant of the tanh squashing, kept finite by a small epsilon."""
        return np.log(f.d_tanh(a_raw) + 1e-6).sum(axis=1)

    def remember(self, exp: Experience, retain: int) -> None:
        """Store a transition, keeping at most ``retain`` of the newest."""
        self.buffer.append(exp)
        while len(self.buffer) > retain:
            self.buffer.popleft()

    def batch(self, size: int) -> list[Experience]:
        """Draw up to ``size`` distinct transitions from the buffer in random order."""
        pool = self.rng.permutation(len(self.buffer))
        return [copy.deepcopy(self.buffer[int(i)]) for i in pool[: min(size, len(pool))]]

    def backwards(self, batch: Sequence[Experience], gamma: float, tau: float) -> None:
        """Compute critic, policy and temperature gradients, then soft-update the targets."""
        batch = list(batch)
        if not batch:
            raise ValueError("cannot train on an empty batch")
        n = len(batch)

        states = np.concatenate([np.zeros((0, self.d_state)), *(e.state for e in batch)])
        actions_taken = np.concatenate(
            [np.zeros((0, self.d_action)), *(e.action_sample for e in batch)]
        )
        sa_current = np.concatenate([states, actions_taken], axis=1)

        next_states = np.concatenate(
            [np.zeros((0, self.d_state)), *(e.state_next for e in batch)]
        )
        a_next, *_ = self.inference(next_states, False)
        sa_next = np.concatenate([next_states, a_next], axis=1)

        rewards = np.array([e.reward for e in batch], dtype=float).reshape(-1, 1)

        q1_t_pred = self.q1_target.forward(sa_next, False)
        q2_t_pred = self.q2_target.forward(sa_next, False)
        q2_smaller = q2_t_pred < q1_t_pred
        q1_mask = np.where(q2_smaller, 0.0, 1.0)
        q2_mask = np.where(q2_smaller, 1.0, 0.0)
        qt_min = np.where(q2_smaller, q2_t_pred, q1_t_pred)

        _, mean, a_raw, log_std = self.inference(states, True)

        log_probs = (
            SAC.gaussian_log_prob(a_raw, mean, log_std) - SAC.tanh_gaussian_correction(a_raw)
        )[:, np.newaxis]

        alpha = math.exp(self.log_alpha)
        y_target = rewards + gamma * (qt_min - alpha * log_probs)

        q1_pred = self.q1.forward(sa_current, True)
        q2_pred = self.q2.forward(sa_current, True)

        q1_dloss = (2.0 / n) * (q1_pred - y_target)
        q2_dloss = (2.0 / n) * (q2_pred - y_target)

        # dQ/d(input) first, then overwrite the stored gradients with the real loss.
        dq1_dinput = self.q1.backward(np.ones(q1_pred.shape))
        dq2_dinput = self.q2.backward(np.ones(q2_pred.shape))
        self.q1.backward(q1_dloss)
        self.q2.backward(q2_dloss)

        dq1_da = dq1_dinput[:, self.d_state :]
        dq2_da = dq2_dinput[:, self.d_state :]
        dqmin_da = dq1_da * q1_mask + dq2_da * q2_mask

        d_tanh = f.d_tanh(a_raw)
        std = np.exp(log_std)

        dgaussian_du = (a_raw - mean) / std**2
        dcorrection_du = -2.0 * f.tanh(a_raw)
        dl_dmu = alpha * (dgaussian_du - dcorrection_du) - dqmin_da * d_tanh

        eps = (a_raw - mean) / std
        dgaussian_dlogstd = (a_raw - mean) ** 2 / std**2 - 1.0
        du_dlogstd = std * eps
        dcorrection_dlogstd = dcorrection_du * du_dlogstd
        dl_dlogstd = (
            alpha * (dgaussian_dlogstd - dcorrection_dlogstd) - dqmin_da * d_tanh * du_dlogstd
        )

        mean_loss = self.policy_mean_head.backward(dl_dmu)
        std_loss = self.policy_std_head.backward(dl_dlogstd)
        self.policy.backward(mean_loss + std_loss)

        h_target = -float(self.d_action)
        mean_logp = float(np.mean(log_probs))
        self.d_log_alpha = -(mean_logp + h_target) * alpha

        _soft_update(self.q1_target, self.q1, tau)
        _soft_update(self.q2_target, self.q2, tau)

    def params(self) -> list[Param]:
        return [
            *self.q1.params(),
            *self.q2.params(),
            *self.policy.params(),
            *self.policy_mean_head.params(),
            *self.policy_std_head.params(),
            Param(self, "log_alpha", "d_log_alpha"),
        ]