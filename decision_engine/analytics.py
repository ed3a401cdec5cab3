# decision_engine/analytics.py
"""
Learning analytics and visualization data.

Provides:
- Arm performance rankings
- Experiment summaries with regret estimates
- pandas frames for the dashboard
- JSON export of selector and agent state
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Mapping

import pandas as pd

from .bandit import estimate_regret, wilson_interval

if TYPE_CHECKING:
    from .qlearning import QLearningAgent
    from .selector import BanditSelector


@dataclass
class ArmPerformance:
    """Performance metrics for a single arm."""

    arm_id: str
    name: str
    pulls: int
    avg_reward: float
    confidence: float

    @property
    def confidence_interval(self) -> tuple[float, float]:
        """95% Wilson interval for the reward rate."""
        return wilson_interval(self.avg_reward, self.pulls)


@dataclass
class ExperimentSummary:
    """Summary of a bandit experiment."""

    total_pulls: int
    unique_arms: int
    best_arm: str
    best_mean: float
    worst_arm: str
    worst_mean: float
    estimated_regret: float
    arms: list[ArmPerformance]


def arm_rankings(selector: BanditSelector, limit: int = 50) -> list[ArmPerformance]:
    """Arms sorted by average reward, descending. Ties keep arm order."""
    stats = selector.get_statistics()
    results = [
        ArmPerformance(
            arm_id=arm.id,
            name=arm.name,
            pulls=stats[arm.id].pulls,
            avg_reward=stats[arm.id].avg_reward,
            confidence=stats[arm.id].confidence,
        )
        for arm in selector.arms
    ]
    results.sort(key=lambda x: x.avg_reward, reverse=True)
    return results[:limit]


def experiment_summary(selector: BanditSelector) -> ExperimentSummary:
    stats = selector.get_statistics()
    rankings = arm_rankings(selector, limit=len(selector.arms))

    return ExperimentSummary(
        total_pulls=sum(s.pulls for s in stats.values()),
        unique_arms=len(rankings),
        best_arm=rankings[0].arm_id,
        best_mean=rankings[0].avg_reward,
        worst_arm=rankings[-1].arm_id,
        worst_mean=rankings[-1].avg_reward,
        estimated_regret=estimate_regret(stats),
        arms=rankings,
    )


def statistics_frame(selector: BanditSelector) -> pd.DataFrame:
    """One row per arm, in arm order."""
    stats = selector.get_statistics()
    return pd.DataFrame(
        [
            {
                "arm_id": arm.id,
                "name": arm.name,
                "pulls": stats[arm.id].pulls,
                "rewards": stats[arm.id].rewards,
                "avg_reward": stats[arm.id].avg_reward,
                "confidence": stats[arm.id].confidence,
            }
            for arm in selector.arms
        ],
        columns=["arm_id", "name", "pulls", "rewards", "avg_reward", "confidence"],
    )


def q_table_frame(table: Mapping[str, Mapping[str, float]]) -> pd.DataFrame:
    """Long-form Q-table: one row per (state, action)."""
    return pd.DataFrame(
        [
            {"state": state, "action": action, "value": value}
            for state, actions in table.items()
            for action, value in actions.items()
        ],
        columns=["state", "action", "value"],
    )


def greedy_policy_frame(table: Mapping[str, Mapping[str, float]]) -> pd.DataFrame:
    """Best recorded action per state. States with no actions are skipped."""
    rows = []
    for state, actions in table.items():
        if not actions:
            continue
        # max() keeps the first key on ties
        action = max(actions, key=actions.__getitem__)
        rows.append({"state": state, "action": action, "value": actions[action]})
    return pd.DataFrame(rows, columns=["state", "action", "value"])


def export_data(
    selector: BanditSelector | None = None,
    agent: QLearningAgent | None = None,
) -> dict[str, Any]:
    """
    Export learning state for external analysis.

    Returns:
        Dict with bandit summary/statistics and Q-table, where available
    """
    data: dict[str, Any] = {}

    if selector is not None:
        summary = experiment_summary(selector)
        data["bandit"] = {
            "summary": {
                "total_pulls": summary.total_pulls,
                "unique_arms": summary.unique_arms,
                "best_arm": summary.best_arm,
                "best_mean": summary.best_mean,
                "estimated_regret": summary.estimated_regret,
            },
            "statistics": {
                arm_id: s.to_dict() for arm_id, s in selector.get_statistics().items()
            },
        }

    if agent is not None:
        table = agent.q_table
        data["q_table"] = {
            "states": len(table),
            "values": table,
        }

    return data
