"""Plain stochastic gradient descent."""

from __future__ import annotations

from dataclasses import dataclass

from nbml.optim.param import Optimizer, ToParams, kind_of


@dataclass
class SGD(Optimizer):
    """Subtract the scaled gradient from every parameter."""

    learning_rate: float = 1e-3

    def bind(self, model: ToParams) -> SGD:
        return self

    def step(self, model: ToParams) -> None:
        for param in model.params():
            grad = param.grad
            if grad is None or kind_of(grad) is not param.kind:
                continue
            param.value -= grad * self.learning_rate