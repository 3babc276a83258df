"""Twin delayed deep deterministic policy gradient."""

from __future__ import annotations

import copy
from collections import deque
from dataclasses import dataclass
from typing import Iterable

import numpy as np

from nbml.nn.ffn import FFN, LayerDef
from nbml.optim.param import Param, ToParams


@dataclass
class Experience:
    """One transition stored in the replay buffer."""

    state: np.ndarray
    action: np.ndarray
    reward: float
    state_next: np.ndarray
    done: bool


def _soft_update(target: FFN, net: FFN, tau: float) -> None:
    for layer, layer_t in zip(net.layers, target.layers):
        layer_t.w = (1.0 - tau) * layer_t.w + tau * layer.w
        layer_t.b = (1.0 - tau) * layer_t.b + tau * layer.b


class TD3(ToParams):
    """Deterministic policy with twin critics, target smoothing and delayed policy updates."""

    def __init__(
        self,
        d_state: int,
        d_action: int,
        q_layers: Iterable[LayerDef],
        policy_layers: Iterable[LayerDef],
        rng: np.random.Generator | None = None,
    ) -> None:
        q_layers = list(q_layers)
        policy_layers = list(policy_layers)

        if not q_layers:
            raise ValueError("Q networks must have at least 1 layer.")
        if q_layers[0][0] != d_state + d_action:
            raise ValueError("Q network input layer must be (d_state + d_action, ..)")
        if q_layers[-1][1] != 1:
            raise ValueError("Q network output layer must be (.., 1)")
        if not policy_layers:
            raise ValueError("Policy network must have at least 1 layer.")
        if policy_layers[0][0] != d_state:
            raise ValueError("Policy network input layer must be (d_state, ..)")
        if policy_layers[-1][1] != d_action:
            raise ValueError("Policy network output layer must be (.., d_action)")

        self.rng = rng if rng is not None else np.random.default_rng()
        self.d_state = d_state
        self.d_action = d_action

        self.q1 = FFN(q_layers, rng=self.rng)
        self.q2 = FFN(q_layers, rng=self.rng)
        self.q1_target = copy.deepcopy(self.q1)
        self.q2_target = copy.deepcopy(self.q2)

        self.policy = FFN(policy_layers, rng=self.rng)
        self.policy_target = copy.deepcopy(self.policy)

        self.total_steps = 0
        self.policy_delay = 2
        self.buffer: deque[Experience] = deque()

    def forward(self, state: np.ndarray) -> np.ndarray:
        return self.policy.forward(np.asarray(state, dtype=float), False)

    @staticmethod
    def noise(
        action: np.ndarray, sigma: float, rng: np.random.Generator | None = None
    ) -> np.ndarray:
        """Add Gaussian exploration noise of standard deviation ``sigma``."""
        rng = rng if rng is not None else np.random.default_rng()
        action = np.asarray(action, dtype=float)
        return action + rng.normal(0.0, sigma, size=action.shape)

    def remember(self, experience: Experience, retain: int) -> None:
        """Store a transition, keeping at most ``retain`` of the newest."""
        self.buffer.append(experience)
        while len(self.buffer) > retain:
            self.buffer.popleft()

    def batch(self, batch_size: int) -> list[Experience]:
        """Draw up to ``batch_size`` distinct transitions from the buffer."""
        size = min(batch_size, len(self.buffer))
        picks = self.rng.choice(len(self.buffer), size=size, replace=False)
        return [self.buffer[int(i)] for i in picks]

    def backward(
        self, batch_size: int, gamma: float, tau: float, sigma: float, clip: float
    ) -> None:
        """Compute critic gradients and, every ``policy_delay`` steps, policy gradients.

        On delayed steps the target networks are also moved towards the live ones.
        """
        batch = self.batch(batch_size)
        n = len(batch)

        states = np.concatenate([np.zeros((0, self.d_state)), *(e.state for e in batch)])
        states_next = np.concatenate(
            [np.zeros((0, self.d_state)), *(e.state_next for e in batch)]
        )
        actions = np.concatenate([np.zeros((0, self.d_action)), *(e.action for e in batch)])
        rewards = np.array([e.reward for e in batch], dtype=float).reshape(-1, 1)
        dones = np.array([1.0 if e.done else 0.0 for e in batch]).reshape(-1, 1)

        smoothing = np.clip(
            self.rng.normal(0.0, sigma, size=(n, self.d_action)), -clip, clip
        )
        actions_next = self.policy_target.forward(states_next, False) + smoothing

        sa = np.concatenate([states, actions], axis=1)
        sa_next = np.concatenate([states_next, actions_next], axis=1)

        q_target_min = np.minimum(
            self.q1_target.forward(sa_next, False), self.q2_target.forward(sa_next, False)
        )
        y_target = rewards + (1.0 - dones) * gamma * q_target_min

        q1_pred = self.q1.forward(sa, True)
        q2_pred = self.q2.forward(sa, True)

        if self.total_steps > 0 and self.total_steps % self.policy_delay == 0:
            dq_da = self.q1.backward(-np.ones(q1_pred.shape))[:, self.d_state :]

            self.policy.forward(states, True)
            self.policy.backward(dq_da)

            _soft_update(self.policy_target, self.policy, tau)
            _soft_update(self.q1_target, self.q1, tau)
            _soft_update(self.q2_target, self.q2, tau)

        scale = 2.0 / n if n else 0.0
        self.q1.backward(scale * (q1_pred - y_target))
        self.q2.backward(scale * (q2_pred - y_target))

        self.total_steps += 1

    def params(self) -> list[Param]:
        return [*self.q1.params(), *self.q2.params(), *self.policy.params()]