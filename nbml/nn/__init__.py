"""Dense, normalisation, attention, pooling, transformer and recurrent layers with explicit backward passes."""

__all__ = [
    "ffn",
    "layernorm",
    "attention",
    "pooling",
    "transformer_encoder",
    "rnn",
    "closure_esn",
]