"""A single transformer encoder block."""

from __future__ import annotations

from typing import Iterable

import numpy as np

from nbml.nn.attention import AttentionHead
from nbml.nn.ffn import FFN, LayerDef
from nbml.nn.layernorm import LayerNorm
from nbml.nn.pooling import zero_mask_batch
from nbml.optim.param import Param, ToParams


class TransformerEncoder(ToParams):
    """Attention and feed-forward sublayers with residual connections and layer norms."""

    def __init__(
        self,
        d_in: int,
        d_head: int,
        n_head: int,
        ff_layers: Iterable[LayerDef],
        rng: np.random.Generator | None = None,
    ) -> None:
        self.d_in = d_in
        self.head = AttentionHead(d_in, d_head, n_head, rng=rng)
        self.norm_head = LayerNorm(d_in)
        self.feed_forward = FFN(ff_layers, rng=rng)
        self.norm_feed_forward = LayerNorm(d_in)

    def forward(self, x: np.ndarray, attn_mask: np.ndarray, grad: bool) -> np.ndarray:
        """Pre-norm pass; raises FloatingPointError when a sublayer yields NaN."""
        x = np.asarray(x, dtype=float)
        batch_size, seq_len, features = x.shape

        norm_x = self.norm_head.forward(x, grad)
        x = x + self.head.forward(norm_x, attn_mask, grad)

        if np.isnan(x).any():
            raise FloatingPointError("NaN after the attention sublayer")

        norm_x = self.norm_feed_forward.forward(x, grad)
        ff_x = self.feed_forward.forward(norm_x.reshape(batch_size * seq_len, features), grad)
        x = x + ff_x.reshape(batch_size, seq_len, features)

        if np.isnan(x).any():
            raise FloatingPointError("NaN after the feed-forward sublayer")

        return x

    def backward(self, d_loss: np.ndarray) -> np.ndarray:
        d_loss = np.asarray(d_loss, dtype=float)
        batch_size, seq_len, features = d_loss.shape

        d_ffn = self.feed_forward.backward(d_loss.reshape(batch_size * seq_len, features))
        d_norm_1 = d_loss + self.norm_feed_forward.backward(
            d_ffn.reshape(batch_size, seq_len, features)
        )

        d_attn = self.head.backward(d_norm_1)
        d_norm = self.norm_head.backward(d_attn)

        return d_norm + d_norm_1

    def forward_post(self, x: np.ndarray, grad: bool) -> np.ndarray:
        """Post-norm pass, masking positions whose features sum to zero."""
        x = np.asarray(x, dtype=float)
        batch_size, seq_len, features = x.shape

        mask = zero_mask_batch(x)
        x_attention = self.head.forward(x, mask, grad)
        x_norm_head = self.norm_head.forward(x + x_attention, grad)

        x_ff_2d = self.feed_forward.forward(
            x_norm_head.reshape(batch_size * seq_len, features), grad
        )
        x_ff = x_ff_2d.reshape(batch_size, seq_len, x_ff_2d.shape[1])

        return self.norm_feed_forward.forward(x_norm_head + x_ff, grad)

    def backward_post(self, d_a: np.ndarray) -> np.ndarray:
        d_a = np.asarray(d_a, dtype=float)
        batch_size, seq_len, d_out = d_a.shape

        d_norm_ff = self.norm_feed_forward.backward(d_a)
        d_feed_forward = self.feed_forward.backward(
            d_norm_ff.reshape(batch_size * seq_len, d_out)
        ).reshape(batch_size, seq_len, self.d_in)

        d_resid = self.norm_head.backward(d_feed_forward + d_norm_ff)
        d_attention = self.head.backward(d_resid)

        return d_resid + d_attention

    def params(self) -> list[Param]:
        return [
            *self.head.params(),
            *self.norm_head.params(),
            *self.feed_forward.params(),
            *self.norm_feed_forward.params(),
        ]