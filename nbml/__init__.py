"""Machine-learning primitives on NumPy: layers, optimizers, recurrent nets, RL agents and demos."""

__version__ = "0.1.5"

__all__ = ["f", "envs", "nn", "optim", "rl", "util", "demos"]