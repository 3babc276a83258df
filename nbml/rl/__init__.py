"""Reinforcement-learning agents: discrete and continuous PPO, TD3 and SAC."""

__all__ = ["discrete_ppo", "ppo", "td3", "sac"]