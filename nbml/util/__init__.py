"""Sequence batching, regression metrics and line plots."""

__all__ = ["batch", "bench", "graph"]