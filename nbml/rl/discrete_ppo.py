"""Proximal policy optimisation over a discrete action space."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Iterable

import numpy as np

from nbml import f
from nbml.f import Activation
from nbml.nn.ffn import FFN, LayerDef

_GAMMA = 0.9
_LAMBDA = 0.9


@dataclass
class Effect:
    """What the environment returned after an action: its reward and the next state."""

    reward: float
    new_state: np.ndarray


@dataclass
class _PendingStep:
    obs: np.ndarray
    action_ix: int
    action_log_prob: float
    pred_value: float


@dataclass
class _Step:
    obs: np.ndarray
    action_ix: int
    action_log_prob: float
    pred_value: float
    reward: float
    pred_value_next: float


class DiscretePPO:
    """Actor-critic agent with a categorical policy head and a scalar value head.

    The final layers of both networks are appended automatically: ``d_action``
    logits for the policy and a single output for the value network.
    """

    def __init__(
        self,
        policy_layers: Iterable[LayerDef],
        values_layers: Iterable[LayerDef],
        d_action: int,
        d_obs: int,
        rng: np.random.Generator | None = None,
    ) -> None:
        policy_layers = list(policy_layers)
        values_layers = list(values_layers)
        if not policy_layers or not values_layers:
            raise ValueError("policy and value networks need at least one layer")

        policy_layers.append((policy_layers[-1][1], d_action, Activation.IDENTITY))
        values_layers.append((values_layers[-1][1], 1, Activation.IDENTITY))

        self.d_obs = d_obs
        self.d_action = d_action
        self.rng = rng if rng is not None else np.random.default_rng()

        self.policy = FFN(policy_layers, rng=self.rng)
        self.values = FFN(values_layers, rng=self.rng)

        self.partial_trajectories: deque[_PendingStep] = deque()
        self.trajectories: deque[_Step] = deque()

    def forward(self, x: np.ndarray) -> np.ndarray:
        """Sample an action for one observation ``(1, d_obs)`` and return the log-probabilities."""
        x = np.asarray(x, dtype=float)
        logits = self.policy.forward(x, True)
        pred_value = self.values.forward(x, True)

        log_probs = f.log_softmax(logits)
        if log_probs.shape[0] != 1:
            raise ValueError("forward expects a single observation row")
        log_probs = log_probs[0]

        action_ix = f.sample_gumbel_categorical(log_probs, self.rng)
        self.partial_trajectories.append(
            _PendingStep(
                obs=x,
                action_ix=action_ix,
                action_log_prob=float(log_probs[action_ix]),
                pred_value=float(pred_value[0, 0]),
            )
        )
        return log_probs

    def backward(
        self, effects: Iterable[Effect], epochs: int, buffer: int, clip: float
    ) -> None:
        """Complete pending steps with ``effects`` and train on the last ``buffer`` steps."""
        for effect in effects:
            if not self.partial_trajectories:
                continue
            pending = self.partial_trajectories.popleft()
            pred_next = self.values.forward(np.asarray(effect.new_state, dtype=float), False)
            self.trajectories.append(
                _Step(
                    obs=pending.obs,
                    action_ix=pending.action_ix,
                    action_log_prob=pending.action_log_prob,
                    pred_value=pending.pred_value,
                    reward=float(effect.reward),
                    pred_value_next=float(pred_next[0, 0]),
                )
            )

        while len(self.trajectories) > buffer:
            self.trajectories.popleft()

        rolling = 0.0
        advantages: list[float] = []
        returns: list[float] = []
        for step in reversed(self.trajectories):
            delta = step.reward + _GAMMA * step.pred_value_next - step.pred_value
            rolling = delta + _GAMMA * _LAMBDA * rolling
            advantages.append(rolling)
            returns.append(step.pred_value + rolling)
        advantages.reverse()
        returns.reverse()

        observations = np.concatenate(
            [np.zeros((0, self.d_obs)), *(step.obs for step in self.trajectories)]
        )
        v_y_true = np.array(returns, dtype=float).reshape(-1, 1)

        n = len(self.trajectories)
        actions_prev = np.zeros((n, self.d_action))
        actions_mask = np.zeros((n, self.d_action))
        for i, step in enumerate(self.trajectories):
            actions_prev[i, step.action_ix] = step.action_log_prob
            actions_mask[i, step.action_ix] = 1.0

        advantage_arr = np.array(advantages, dtype=float)

        for _ in range(epochs):
            v_y_pred = self.values.forward(observations, True)
            self.values.backward(v_y_pred - v_y_true)

            current = f.log_softmax(self.policy.forward(observations, True))
            ratio = np.exp(current * actions_mask - actions_prev)

            unclipped = ratio * advantage_arr
            clipped = np.clip(ratio, 1.0 - clip, 1.0 + clip) * advantage_arr
            self.policy.backward(np.minimum(clipped, unclipped))