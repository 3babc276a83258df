"""Parameter handles, the AdamW and SGD optimizers, and weight persistence."""

__all__ = ["param", "adam", "sgd"]