"""Activation functions, weight initialisers and numeric helpers."""

from __future__ import annotations

import math
from enum import Enum
from typing import Callable

import numpy as np

ActivationFn = Callable[[np.ndarray], np.ndarray]
InitializationFn = Callable[..., np.ndarray]


def _rng(rng: np.random.Generator | None) -> np.random.Generator:
    return rng if rng is not None else np.random.default_rng()


# Activations


def relu(x: np.ndarray) -> np.ndarray:
    return np.fmax(np.asarray(x, dtype=float), 0.0)


def d_relu(x: np.ndarray) -> np.ndarray:
    x = np.asarray(x, dtype=float)
    return np.where(np.signbit(x) | np.isnan(x), 0.0, 1.0)


def tanh(x: np.ndarray) -> np.ndarray:
    return np.tanh(x)


def d_tanh(x: np.ndarray) -> np.ndarray:
    return 1.0 - np.tanh(x) ** 2


def leaky_relu(x: np.ndarray) -> np.ndarray:
    x = np.asarray(x, dtype=float)
    return np.where(x >= 0.0, x, 0.01 * x)


def d_leaky_relu(x: np.ndarray) -> np.ndarray:
    x = np.asarray(x, dtype=float)
    return np.where(x >= 0.0, 1.0, 0.01)


def exp(x: np.ndarray) -> np.ndarray:
    return np.exp(x)


def d_exp(x: np.ndarray) -> np.ndarray:
    return np.exp(x)


def softplus(x: np.ndarray) -> np.ndarray:
    x = np.asarray(x, dtype=float)
    with np.errstate(over="ignore"):
        smooth = np.log(1.0 + np.exp(x))
    return np.where(x > 20.0, x, smooth)


def d_softplus(x: np.ndarray) -> np.ndarray:
    return sigmoid(x)


def ident(x: np.ndarray) -> np.ndarray:
    return np.array(x, dtype=float, copy=True)


def d_ident(x: np.ndarray) -> np.ndarray:
    return np.ones(np.shape(x))


def sigmoid(x: np.ndarray) -> np.ndarray:
    with np.errstate(over="ignore"):
        return 1.0 / (1.0 + np.exp(-np.asarray(x, dtype=float)))


def d_sigmoid(x: np.ndarray) -> np.ndarray:
    s = sigmoid(x)
    return s * (1.0 - s)


def _row_max(x: np.ndarray) -> np.ndarray:
    if x.shape[1] == 0:
        return np.full((x.shape[0], 1), 1e-4)
    maxes = np.max(x, axis=1, keepdims=True)
    return np.where(np.isnan(maxes), 1e-4, maxes)


def softmax(x: np.ndarray) -> np.ndarray:
    """Row-wise softmax of a matrix."""
    x = np.asarray(x, dtype=float)
    shifted = np.exp(x - _row_max(x))
    return shifted / shifted.sum(axis=1, keepdims=True)


def d_softmax_cross_entropy(x: np.ndarray) -> np.ndarray:
    return np.array(x, dtype=float, copy=True)


# Initialisers


def he(shape: tuple[int, int], rng: np.random.Generator | None = None) -> np.ndarray:
    bound = math.sqrt(6.0) / math.sqrt(shape[0])
    return _rng(rng).uniform(-bound, bound, size=shape)


def xavier_normal(
    shape: tuple[int, int], rng: np.random.Generator | None = None
) -> np.ndarray:
    std = math.sqrt(2.0 / (shape[0] + shape[1]))
    return _rng(rng).normal(0.0, std, size=shape)


def xavier(shape: tuple[int, int], rng: np.random.Generator | None = None) -> np.ndarray:
    bound = math.sqrt(6.0 / (shape[0] + shape[1]))
    return _rng(rng).uniform(-bound, bound, size=shape)


# Miscellaneous


def linear_norm(x: np.ndarray) -> np.ndarray:
    """Divide every row by its sum."""
    x = np.asarray(x, dtype=float)
    return x / x.sum(axis=1, keepdims=True)


def softmax_vector_jacobian_product(
    upstream: np.ndarray, softmax_out: np.ndarray
) -> np.ndarray:
    """Back-propagate ``upstream`` through a row-wise softmax given its output."""
    dot = np.sum(upstream * softmax_out, axis=1, keepdims=True)
    return softmax_out * (upstream - dot)


def log_softmax(x: np.ndarray) -> np.ndarray:
    x = np.asarray(x, dtype=float)
    shifted = x - _row_max(x)
    return shifted - np.log(np.exp(shifted).sum(axis=1, keepdims=True))


def l2(v: np.ndarray) -> float:
    return float(np.sqrt(np.sum(np.asarray(v, dtype=float) ** 2)))


def l2_norm(v: np.ndarray) -> np.ndarray:
    return np.asarray(v, dtype=float) / l2(v)


def clip_grad(grad: np.ndarray, clip: float) -> np.ndarray:
    """Rescale ``grad`` so that its overall norm does not exceed ``clip``."""
    grad = np.asarray(grad, dtype=float)
    norm = math.sqrt(float(np.sum(grad * grad)))
    if norm > clip:
        return grad * (clip / (norm + 1e-6))
    return grad.copy()


def sample_categorical(probs: np.ndarray, rng: np.random.Generator | None = None) -> int:
    """Draw an index from a probability vector; 0 when nothing is hit."""
    u = _rng(rng).random()
    for i, p in enumerate(np.asarray(probs, dtype=float)):
        if u < p:
            return i
        u -= p
    return 0


def sample_gumbel_categorical(
    log_probs: np.ndarray, rng: np.random.Generator | None = None
) -> int:
    """Draw an index from log-probabilities with the Gumbel-max trick."""
    log_probs = np.asarray(log_probs, dtype=float)
    with np.errstate(divide="ignore"):
        gumbel = -np.log(-np.log(_rng(rng).random(log_probs.shape[0])))
    return int(np.argmax(log_probs + gumbel))


def gaussian_log_prob(x: np.ndarray, u: np.ndarray, o: np.ndarray) -> np.ndarray:
    """Log density of diagonal Gaussians with mean ``u`` and std ``o``, per row."""
    eps = 1e-8
    quadratic = (x - u) ** 2 / o**2
    norm = 2.0 * np.log(np.fmax(o, eps))
    constant = math.log(math.pi * 2.0)
    dims = -0.5 * (quadratic + norm + constant)
    return dims.sum(axis=1)


def tanh_gaussian_correction(a_raw: np.ndarray) -> np.ndarray:
    with np.errstate(divide="ignore"):
        return np.log(d_tanh(a_raw)).sum(axis=1)


def tanh_gaussian_correction_eps(a_raw: np.ndarray) -> np.ndarray:
    deriv = 1.0 - np.tanh(a_raw) ** 2
    return np.log(deriv + 1e-8).sum(axis=1)


class Activation(Enum):
    """A layer activation together with its derivative and weight initialiser."""

    RELU = "relu"
    LEAKY_RELU = "leaky_relu"
    SOFTMAX_CROSS_ENTROPY = "softmax_cross_entropy"
    IDENTITY = "identity"
    EXP = "exp"
    SIGMOID = "sigmoid"
    TANH = "tanh"
    SOFTPLUS = "softplus"

    def apply(self, x: np.ndarray) -> np.ndarray:
        return _ACTIVATIONS[self][0](x)

    def derivative(self, x: np.ndarray) -> np.ndarray:
        return _ACTIVATIONS[self][1](x)

    def init_weights(
        self, shape: tuple[int, int], rng: np.random.Generator | None = None
    ) -> np.ndarray:
        return _ACTIVATIONS[self][2](shape, rng)


_ACTIVATIONS: dict[Activation, tuple[ActivationFn, ActivationFn, InitializationFn]] = {
    Activation.RELU: (relu, d_relu, he),
    Activation.LEAKY_RELU: (leaky_relu, d_leaky_relu, he),
    Activation.SOFTMAX_CROSS_ENTROPY: (softmax, d_softmax_cross_entropy, xavier),
    Activation.IDENTITY: (ident, d_ident, he),
    Activation.EXP: (exp, d_exp, he),
    Activation.SIGMOID: (sigmoid, d_sigmoid, xavier),
    Activation.TANH: (tanh, d_tanh, xavier_normal),
    Activation.SOFTPLUS: (softplus, d_softplus, xavier),
}