"""AdamW optimiser with gradient clipping."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import numpy as np

from nbml import f
from nbml.optim.param import Optimizer, ParamKind, ToParams, kind_of


@dataclass
class _Moments:
    kind: ParamKind
    m: Any
    v: Any


@dataclass
class AdamW(Optimizer):
    """Adam with decoupled weight decay for parameters that enable it."""

    learning_rate: float = 3e-4
    clip_grad: float = 1.0
    beta1: float = 0.9
    beta2: float = 0.999
    epsilon: float = 1e-8
    weight_decay: float = 0.001
    t: int = 1
    moments: list[_Moments] = field(default_factory=list)

    def bind(self, model: ToParams) -> AdamW:
        for param in model.params():
            kind = param.kind
            if kind is ParamKind.SCALAR:
                self.moments.append(_Moments(kind, 0.0, 0.0))
            else:
                zeros = np.zeros(np.shape(param.value))
                self.moments.append(_Moments(kind, zeros, zeros.copy()))
        return self

    def step(self, model: ToParams) -> None:
        self.t += 1
        bc1 = self.beta1**self.t
        bc2 = self.beta2**self.t

        for param, state in zip(model.params(), self.moments):
            grad = param.grad
            if grad is None or param.kind is not state.kind or kind_of(grad) is not state.kind:
                continue

            if state.kind is ParamKind.SCALAR:
                g = float(grad)
            elif state.kind is ParamKind.VECTOR:
                g = f.clip_grad(np.asarray(grad)[np.newaxis, :], self.clip_grad)[0]
            else:
                g = f.clip_grad(grad, self.clip_grad)

            state.m = self.beta1 * state.m + (1.0 - self.beta1) * g
            state.v = self.beta2 * state.v + (1.0 - self.beta2) * g**2

            m_hat = state.m / (1.0 - bc1)
            v_hat = state.v / (1.0 - bc2)
            direction = m_hat / (v_hat**0.5 + self.epsilon)

            if state.kind is ParamKind.MATRIX and param.weight_decay:
                update = self.learning_rate * (direction + self.weight_decay * param.value)
            else:
                update = self.learning_rate * direction
            param.value -= update