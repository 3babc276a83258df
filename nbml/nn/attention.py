"""Multi-head scaled dot-product self-attention."""

from __future__ import annotations

import math

import numpy as np

from nbml import f
from nbml.optim.param import Param, ToParams


class AttentionHead(ToParams):
    """Self-attention with ``n_head`` heads of width ``d_head`` over ``d_in`` features.

    Inputs are ``(batch, seq, d_in)``; the mask is ``(batch, seq)`` and keys
    whose mask value is zero are never attended to.
    """

    def __init__(
        self,
        d_in: int,
        d_head: int,
        n_head: int,
        rng: np.random.Generator | None = None,
    ) -> None:
        self.d_in = d_in
        self.d_head = d_head
        self.n_head = n_head

        self.qkv_w = f.xavier_normal((d_in, 3 * d_head * n_head), rng)
        self.qkv_b = np.zeros(3 * d_head * n_head)
        self.o_w = f.xavier_normal((d_head * n_head, d_in), rng)
        self.o_b = np.zeros(d_in)

        self.x = np.zeros((0, 0))
        self.q = np.zeros((0, 0, 0))
        self.k = np.zeros((0, 0, 0))
        self.v = np.zeros((0, 0, 0))
        self.qkv = np.zeros((0, 0))

        self.scores = np.zeros((0, 0, 0))
        self.attention = np.zeros((0, 0))
        self.o = np.zeros((0, 0))

        self.d_qkv_w = np.zeros((0, 0))
        self.d_qkv_b = np.zeros(0)
        self.d_o_w = np.zeros((0, 0))
        self.d_o_b = np.zeros(0)

    def forward(self, x: np.ndarray, mask: np.ndarray, grad: bool) -> np.ndarray:
        x = np.asarray(x, dtype=float)
        batch_size, seq_len, feature_size = x.shape
        heads, d_head = self.n_head, self.d_head
        groups = batch_size * heads

        padding = np.where(np.asarray(mask, dtype=float) == 0.0, -np.inf, 0.0)
        padding = np.broadcast_to(
            padding[:, np.newaxis, np.newaxis, :], (batch_size, heads, 1, seq_len)
        ).reshape(groups, 1, seq_len)

        flat = x.reshape(batch_size * seq_len, feature_size)
        qkv = flat @ self.qkv_w + self.qkv_b

        if grad:
            self.x = flat.copy()
            self.qkv = qkv.copy()

        split = qkv.reshape(batch_size, seq_len, 3, heads, d_head).transpose(0, 3, 1, 2, 4)
        q = split[..., 0, :].reshape(groups, seq_len, d_head)
        k = split[..., 1, :].reshape(groups, seq_len, d_head)
        v = split[..., 2, :].reshape(groups, seq_len, d_head)

        if grad:
            self.q = q.copy()
            self.k = k.copy()
            self.v = v.copy()

        scores = q @ k.transpose(0, 2, 1) / math.sqrt(d_head) + padding
        weights = f.softmax(scores.reshape(groups * seq_len, seq_len)).reshape(
            groups, seq_len, seq_len
        )
        attended = weights @ v

        if grad:
            self.scores = weights.copy()

        attention = (
            attended.reshape(batch_size, heads, seq_len, d_head)
            .transpose(0, 2, 1, 3)
            .reshape(batch_size * seq_len, heads * d_head)
        )
        output = attention @ self.o_w + self.o_b

        if grad:
            self.o = output.copy()
            self.attention = attention.copy()

        return output.reshape(batch_size, seq_len, feature_size)

    def backward(self, d_a: np.ndarray) -> np.ndarray:
        d_a = np.asarray(d_a, dtype=float)
        batch_size, seq_len, feature_size = d_a.shape
        heads, d_head = self.n_head, self.d_head
        groups = batch_size * heads
        scale = math.sqrt(d_head)

        flat = d_a.reshape(batch_size * seq_len, feature_size)
        self.d_o_w = self.attention.T @ flat
        self.d_o_b = flat.sum(axis=0)

        d_out = (
            (flat @ self.o_w.T)
            .reshape(batch_size, seq_len, heads, d_head)
            .transpose(0, 2, 1, 3)
            .reshape(groups, seq_len, d_head)
        )

        d_v = self.scores.transpose(0, 2, 1) @ d_out
        d_softmax = d_out @ self.v.transpose(0, 2, 1)
        d_scores = f.softmax_vector_jacobian_product(
            d_softmax.reshape(groups * seq_len, seq_len),
            self.scores.reshape(groups * seq_len, seq_len),
        ).reshape(groups, seq_len, seq_len)

        d_q = d_scores @ self.k / scale
        d_k = d_scores.transpose(0, 2, 1) @ self.q / scale

        d_qkv = (
            np.stack([d_q, d_k, d_v])
            .reshape(3, batch_size, heads, seq_len, d_head)
            .transpose(1, 3, 0, 2, 4)
            .reshape(batch_size * seq_len, 3 * heads * d_head)
        )

        self.d_qkv_w = self.x.T @ d_qkv
        self.d_qkv_b = d_qkv.sum(axis=0)

        d_x = d_qkv @ self.qkv_w.T
        return d_x.reshape(batch_size, seq_len, feature_size)

    def params(self) -> list[Param]:
        return [
            Param(self, "qkv_w", "d_qkv_w"),
            Param(self, "qkv_b", "d_qkv_b"),
            Param(self, "o_w", "d_o_w"),
            Param(self, "o_b", "d_o_b"),
        ]