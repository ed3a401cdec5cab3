# decision_engine/config.py
"""
Centralized configuration with environment variable fallbacks.

Controls exploration rates, learning hyperparameters, persistence keys
and flush cadence for the selector and agent.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

ENV_PREFIX = "DECISION_ENGINE_"


@dataclass(frozen=True)
class BanditConfig:
    """Bandit selector configuration."""

    epsilon: float = 0.1
    key: str = "bandit:stats"
    persist_every: int = 1
    exact_gamma: bool = True


@dataclass(frozen=True)
class AgentConfig:
    """Q-learning agent configuration."""

    learning_rate: float = 0.1
    discount_factor: float = 0.95
    epsilon: float = 0.1
    key: str = "rl:qtable"
    persist_every: int = 1


def env_bool(name: str, default: bool = False) -> bool:
    """Parse boolean from environment variable."""
    v = os.getenv(name)
    if v is None:
        return default
    return v.strip().lower() in ("1", "true", "yes", "on")


def env_float(name: str, default: float) -> float:
    v = os.getenv(name)
    if v is None or not v.strip():
        return default
    try:
        return float(v)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {v!r}") from None


def env_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None or not v.strip():
        return default
    try:
        return int(v)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {v!r}") from None


def get_bandit_config() -> BanditConfig:
    """Get bandit configuration from environment."""
    return BanditConfig(
        epsilon=env_float(ENV_PREFIX + "EPSILON", 0.1),
        key=os.getenv(ENV_PREFIX + "BANDIT_KEY", "bandit:stats"),
        persist_every=env_int(ENV_PREFIX + "PERSIST_EVERY", 1),
        exact_gamma=env_bool(ENV_PREFIX + "EXACT_GAMMA", True),
    )


def get_agent_config() -> AgentConfig:
    """Get agent configuration from environment."""
    return AgentConfig(
        learning_rate=env_float(ENV_PREFIX + "LEARNING_RATE", 0.1),
        discount_factor=env_float(ENV_PREFIX + "DISCOUNT", 0.95),
        epsilon=env_float(ENV_PREFIX + "AGENT_EPSILON", 0.1),
        key=os.getenv(ENV_PREFIX + "QTABLE_KEY", "rl:qtable"),
        persist_every=env_int(ENV_PREFIX + "PERSIST_EVERY", 1),
    )


def get_store_path() -> str:
    return os.getenv(ENV_PREFIX + "STORE_PATH", "decision_engine.sqlite3")


def get_log_level() -> str:
    return os.getenv(ENV_PREFIX + "LOG_LEVEL", "WARNING").upper()
