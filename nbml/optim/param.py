"""Trainable parameter handles, the optimiser interface and weight files."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from os import PathLike
from typing import Any

import numpy as np


class ParamKind(Enum):
    SCALAR = 0
    VECTOR = 1
    MATRIX = 2


def kind_of(value: Any) -> ParamKind:
    """Classify a value as a scalar, vector or matrix parameter."""
    ndim = np.ndim(value)
    if ndim == 0:
        return ParamKind.SCALAR
    if ndim == 1:
        return ParamKind.VECTOR
    if ndim == 2:
        return ParamKind.MATRIX
    raise ValueError(f"parameters must be scalars, vectors or matrices, got {ndim} dimensions")


@dataclass
class Param:
    """A handle on an attribute of ``owner`` and on the attribute holding its gradient."""

    owner: Any
    name: str
    grad_name: str | None = None
    weight_decay: bool = False

    @property
    def value(self) -> Any:
        return getattr(self.owner, self.name)

    @value.setter
    def value(self, new: Any) -> None:
        setattr(self.owner, self.name, new)

    @property
    def grad(self) -> Any:
        if self.grad_name is None:
            return None
        return getattr(self.owner, self.grad_name)

    @grad.setter
    def grad(self, new: Any) -> None:
        if self.grad_name is None:
            raise AttributeError(f"parameter {self.name!r} has no gradient")
        setattr(self.owner, self.grad_name, new)

    @property
    def kind(self) -> ParamKind:
        return kind_of(self.value)


class ToParams(ABC):
    """Something that exposes trainable parameters."""

    @abstractmethod
    def params(self) -> list[Param]:
        """Return the trainable parameters in a stable order."""


class Optimizer(ABC):
    """Updates the parameters of a model from their gradients."""

    @abstractmethod
    def bind(self, model: ToParams) -> Optimizer:
        """Prepare state for ``model`` and return the optimiser."""

    @abstractmethod
    def step(self, model: ToParams) -> None:
        """Apply one update to the parameters of ``model``."""


def zero_grads(model: ToParams) -> None:
    """Reset every gradient to an empty value of its kind."""
    for param in model.params():
        grad = param.grad
        if grad is None:
            continue
        kind = kind_of(grad)
        if kind is ParamKind.SCALAR:
            param.grad = 0.0
        elif kind is ParamKind.VECTOR:
            param.grad = np.zeros(0)
        else:
            param.grad = np.zeros((0, 0))


def save_weights(model: ToParams, path: str | PathLike[str]) -> None:
    """Write the parameter values of ``model`` to ``path``."""
    weights = [np.array(param.value, dtype=float) for param in model.params()]
    with open(path, "wb") as fh:
        np.savez(fh, *weights)


def load_weights(model: ToParams, path: str | PathLike[str]) -> None:
    """Load parameter values saved by :func:`save_weights` into ``model``.

    Parameters are matched by position; a stored value of a different kind
    than the parameter it lines up with is skipped.
    """
    with open(path, "rb") as fh, np.load(fh) as data:
        weights = [data[f"arr_{i}"] for i in range(len(data.files))]

    for param, weight in zip(model.params(), weights):
        kind = kind_of(weight)
        if kind is not param.kind:
            continue
        param.value = float(weight) if kind is ParamKind.SCALAR else weight.copy()