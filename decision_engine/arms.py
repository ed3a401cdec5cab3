# decision_engine/arms.py
"""
Arm definitions and per-arm reward statistics.

An arm is one mutually exclusive alternative (a price, a content variant,
a recommendation slate). The payload is opaque to the engine.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .bandit import wilson_lower_bound


@dataclass(frozen=True)
class Arm:
    """A single selectable alternative."""
    id: str
    name: str = ""
    payload: Any = field(default=None, compare=False)

    def __post_init__(self):
        if not self.name:
            object.__setattr__(self, "name", self.id)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "payload": self.payload}


@dataclass(frozen=True)
class ArmStatistics:
    """Pull/reward totals for one arm. Averages are always derived."""
    pulls: int = 0
    rewards: float = 0.0

    @property
    def avg_reward(self) -> float:
        if self.pulls == 0:
            return 0.0
        return self.rewards / self.pulls

    @property
    def confidence(self) -> float:
        """Wilson score lower bound (95%) on the reward rate."""
        return wilson_lower_bound(self.avg_reward, self.pulls)

    def record(self, reward: float) -> ArmStatistics:
        return ArmStatistics(pulls=self.pulls + 1, rewards=self.rewards + reward)

    def to_dict(self) -> dict[str, Any]:
        return {
            "pulls": self.pulls,
            "rewards": self.rewards,
            "avgReward": self.avg_reward,
            "confidence": self.confidence,
        }


ZERO_STATS = ArmStatistics()


def arms_from_json(obj: Any) -> list[Arm]:
    """Build arms from a decoded JSON list of {id, name?, payload?} objects."""
    if not isinstance(obj, list) or not obj:
        raise ValueError("arms must be a non-empty JSON list")

    arms: list[Arm] = []
    seen: set[str] = set()
    for i, raw in enumerate(obj):
        if not isinstance(raw, dict):
            raise ValueError(f"arms[{i}] must be an object")
        arm_id = raw.get("id")
        if not isinstance(arm_id, str) or not arm_id:
            raise ValueError(f"arms[{i}].id must be a non-empty string")
        if arm_id in seen:
            raise ValueError(f"duplicate arm id: {arm_id}")
        seen.add(arm_id)
        arms.append(Arm(arm_id, str(raw.get("name") or arm_id), raw.get("payload")))
    return arms


def load_arms(path: str | Path) -> list[Arm]:
    """Load arm definitions from a JSON file."""
    with open(path, "rb") as f:
        return arms_from_json(json.loads(f.read().decode("utf-8")))
