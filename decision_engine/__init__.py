# decision_engine/__init__.py
"""
Decision Engine - Adaptive selection with bandits and tabular Q-learning.

This module provides:
- A multi-armed bandit selector (epsilon-greedy, UCB1, Thompson sampling)
- A tabular Q-learning agent with epsilon-greedy action choice
- Persistence of learning state through a pluggable key-value store

Quick Start:
    from decision_engine import Arm, BanditSelector, SQLiteStore

    store = SQLiteStore("engine.sqlite3")
    selector = BanditSelector.open([Arm("A"), Arm("B")], store)

    # Pick an arm for this request
    arm = selector.select_arm_thompson_sampling()

    # Later, report what happened
    selector.update(arm.id, reward=1.0)
"""

from __future__ import annotations

from .analytics import (
    ArmPerformance,
    ExperimentSummary,
    arm_rankings,
    experiment_summary,
    export_data,
    greedy_policy_frame,
    q_table_frame,
    statistics_frame,
)
from .arms import (
    Arm,
    ArmStatistics,
    arms_from_json,
    load_arms,
)
from .bandit import (
    BanditAlgorithm,
    epsilon_greedy_select,
    estimate_regret,
    sample_beta,
    sample_gamma,
    select_arm,
    thompson_select,
    ucb_select,
    wilson_interval,
    wilson_lower_bound,
)
from .config import (
    AgentConfig,
    BanditConfig,
    get_agent_config,
    get_bandit_config,
)
from .errors import (
    DecisionEngineError,
    DeserializationError,
    EmptyActionSetError,
    PersistenceError,
    UnknownArmError,
)
from .metrics import EngineMetrics, get_metrics
from .qlearning import (
    Action,
    Experience,
    QLearningAgent,
    QTable,
    State,
)
from .selector import BanditSelector, BestArm
from .store import KeyValueStore, MemoryStore, SQLiteStore

__all__ = [
    # Arms
    "Arm",
    "ArmStatistics",
    "arms_from_json",
    "load_arms",
    # Bandit
    "BanditAlgorithm",
    "BanditSelector",
    "BestArm",
    "select_arm",
    "thompson_select",
    "ucb_select",
    "epsilon_greedy_select",
    "estimate_regret",
    "sample_beta",
    "sample_gamma",
    "wilson_interval",
    "wilson_lower_bound",
    # Q-learning
    "Action",
    "Experience",
    "QLearningAgent",
    "QTable",
    "State",
    # Storage
    "KeyValueStore",
    "MemoryStore",
    "SQLiteStore",
    # Config
    "AgentConfig",
    "BanditConfig",
    "get_agent_config",
    "get_bandit_config",
    # Errors
    "DecisionEngineError",
    "DeserializationError",
    "EmptyActionSetError",
    "PersistenceError",
    "UnknownArmError",
    # Metrics
    "EngineMetrics",
    "get_metrics",
    # Analytics
    "ArmPerformance",
    "ExperimentSummary",
    "arm_rankings",
    "experiment_summary",
    "export_data",
    "greedy_policy_frame",
    "q_table_frame",
    "statistics_frame",
]
