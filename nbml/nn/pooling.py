"""Padding masks and masked mean pooling over sequences."""

from __future__ import annotations

import numpy as np


def zero_mask_batch(x: np.ndarray) -> np.ndarray:
    """Mask ``(batch, seq)`` that is 0 where a position's features sum to zero, else 1."""
    sums = np.asarray(x, dtype=float).sum(axis=2)
    return np.where(sums == 0.0, 0.0, 1.0)


class SequencePooling:
    """Average the unmasked positions of a ``(batch, seq, features)`` array."""

    def __init__(self) -> None:
        self.mask = np.zeros((0, 0))
        self.seq_lens = np.zeros((0, 0))

    def forward(self, x: np.ndarray, mask: np.ndarray, grad: bool) -> np.ndarray:
        x = np.asarray(x, dtype=float)
        mask = np.asarray(mask, dtype=float)
        seq_lens = mask.sum(axis=1, keepdims=True)

        if grad:
            self.mask = mask.copy()
            self.seq_lens = seq_lens.copy()

        sums = (x * mask[:, :, np.newaxis]).sum(axis=1)
        return sums / seq_lens

    def backward(self, d_loss: np.ndarray) -> np.ndarray:
        d_loss = np.asarray(d_loss, dtype=float)
        mean_grad = d_loss / self.seq_lens
        return mean_grad[:, np.newaxis, :] * self.mask[:, :, np.newaxis]