# decision_engine/serialization.py
"""
Strict JSON encoding of persisted learning state.

Bandit statistics:  [[arm_id, {"pulls", "rewards", "avgReward", "confidence"}], ...]
Q-table:            [{"state": hash, "actions": [[action_id, value], ...]}, ...]

Parsing is all-or-nothing: any structural problem raises
DeserializationError and nothing partial is returned. Derived fields
(avgReward, confidence) are written for readers but recomputed on load.
"""
from __future__ import annotations

import json
import math
from typing import Any, Mapping

from .arms import ArmStatistics
from .errors import malformed


def _dumps(obj: Any) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), allow_nan=False)


def _loads(raw: str | bytes, what: str) -> Any:
    try:
        return json.loads(raw)
    except (ValueError, TypeError) as e:
        raise malformed(what, f"invalid JSON: {e}") from e


def _finite(value: Any, what: str, where: str) -> float:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise malformed(what, f"{where} must be a number")
    if not math.isfinite(value):
        raise malformed(what, f"{where} must be finite")
    return float(value)


# ============================================================
# Bandit statistics
# ============================================================
def dump_statistics(stats: Mapping[str, ArmStatistics]) -> str:
    return _dumps([[arm_id, s.to_dict()] for arm_id, s in stats.items()])


def parse_statistics(raw: str | bytes) -> dict[str, ArmStatistics]:
    what = "bandit statistics"
    data = _loads(raw, what)
    if not isinstance(data, list):
        raise malformed(what, "top level must be a list")

    result: dict[str, ArmStatistics] = {}
    for i, entry in enumerate(data):
        if not isinstance(entry, list) or len(entry) != 2:
            raise malformed(what, f"entry {i} must be an [arm_id, stats] pair")
        arm_id, body = entry
        if not isinstance(arm_id, str):
            raise malformed(what, f"entry {i} arm id must be a string")
        if arm_id in result:
            raise malformed(what, f"duplicate arm id {arm_id!r}")
        if not isinstance(body, dict):
            raise malformed(what, f"entry {i} stats must be an object")

        pulls = body.get("pulls")
        if isinstance(pulls, bool) or not isinstance(pulls, int) or pulls < 0:
            raise malformed(what, f"{arm_id}.pulls must be a non-negative integer")
        rewards = _finite(body.get("rewards"), what, f"{arm_id}.rewards")

        result[arm_id] = ArmStatistics(pulls=pulls, rewards=rewards)
    return result


# ============================================================
# Q-table
# ============================================================
def dump_q_table(table: Mapping[str, Mapping[str, float]]) -> str:
    return _dumps(
        [
            {"state": state, "actions": [[a, v] for a, v in actions.items()]}
            for state, actions in table.items()
        ]
    )


def parse_q_table(raw: str | bytes) -> dict[str, dict[str, float]]:
    what = "Q-table"
    data = _loads(raw, what)
    if not isinstance(data, list):
        raise malformed(what, "top level must be a list")

    result: dict[str, dict[str, float]] = {}
    for i, item in enumerate(data):
        if not isinstance(item, dict):
            raise malformed(what, f"entry {i} must be an object")
        state = item.get("state")
        actions = item.get("actions")
        if not isinstance(state, str):
            raise malformed(what, f"entry {i} state must be a string")
        if state in result:
            raise malformed(what, f"duplicate state {state!r}")
        if not isinstance(actions, list):
            raise malformed(what, f"state {state!r} actions must be a list")

        row: dict[str, float] = {}
        for j, pair in enumerate(actions):
            if not isinstance(pair, list) or len(pair) != 2 or not isinstance(pair[0], str):
                raise malformed(what, f"state {state!r} action {j} must be an [id, value] pair")
            if pair[0] in row:
                raise malformed(what, f"state {state!r} has duplicate action {pair[0]!r}")
            row[pair[0]] = _finite(pair[1], what, f"{state}/{pair[0]}")
        result[state] = row
    return result
