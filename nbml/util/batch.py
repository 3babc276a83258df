"""Padding variable-length sequences into one batch."""

from __future__ import annotations

from typing import Sequence

import numpy as np


def batch_with_mask(x: Sequence[np.ndarray]) -> tuple[np.ndarray, np.ndarray]:
    """Stack ``(seq, features)`` arrays into a zero-padded batch and its mask.

    The batch is ``(n, longest, features)``; the mask is ``(n, longest)`` with
    ones over real positions and zeros over padding.
    """
    sequences = [np.asarray(seq, dtype=float) for seq in x]
    max_seq_len = max((seq.shape[0] for seq in sequences), default=0)
    features = sequences[0].shape[1] if sequences else 0

    batch = np.zeros((len(sequences), max_seq_len, features))
    mask = np.zeros((len(sequences), max_seq_len))

    for i, seq in enumerate(sequences):
        batch[i, : seq.shape[0]] = seq
        mask[i, : seq.shape[0]] = 1.0

    return batch, mask