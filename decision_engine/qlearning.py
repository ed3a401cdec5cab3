# decision_engine/qlearning.py
"""
Tabular Q-learning agent.

Learns state/action values from observed transitions:

    Q(s, a) <- Q(s, a) + alpha * (r + gamma * max_a' Q(s', a') - Q(s, a))

The table is keyed by a caller-computed state hash. Missing entries read
as 0, so an unseen next state contributes a neutral future value.
"""

from __future__ import annotations

import copy
import hashlib
import json
import logging
import math
import random
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Sequence

from .config import AgentConfig
from .errors import empty_action_set
from .metrics import EngineMetrics
from .persistence import PersistedState
from .serialization import dump_q_table, parse_q_table
from .store import KeyValueStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class State:
    """Environment state; identity is the hash alone."""

    hash: str
    features: Mapping[str, float] = field(default_factory=dict, compare=False)

    @classmethod
    def from_features(cls, features: Mapping[str, float]) -> State:
        """Build a state whose hash is derived deterministically from its features."""
        canonical = json.dumps(dict(features), sort_keys=True, separators=(",", ":"))
        digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]
        return cls(hash=digest, features=dict(features))


@dataclass(frozen=True)
class Action:
    """A candidate action; identity is the id alone."""

    id: str
    params: Mapping[str, Any] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class Experience:
    """One observed transition."""

    state: State
    action: Action
    reward: float
    next_state: State


class QTable:
    """state hash -> action id -> value. Not thread-safe on its own."""

    def __init__(self, data: Mapping[str, Mapping[str, float]] | None = None) -> None:
        self._rows: dict[str, dict[str, float]] = {}
        if data:
            self.replace(data)

    def get(self, state_hash: str, action_id: str) -> float:
        row = self._rows.get(state_hash)
        if row is None:
            return 0.0
        return row.get(action_id, 0.0)

    def set(self, state_hash: str, action_id: str, value: float) -> None:
        self._rows.setdefault(state_hash, {})[action_id] = value

    def row(self, state_hash: str) -> Mapping[str, float]:
        return MappingProxyType(self._rows.get(state_hash, {}))

    def max_value(self, state_hash: str) -> float:
        row = self._rows.get(state_hash)
        if not row:
            return 0.0
        return max(row.values())

    def states(self) -> list[str]:
        return list(self._rows)

    def snapshot(self) -> dict[str, dict[str, float]]:
        return copy.deepcopy(self._rows)

    def replace(self, data: Mapping[str, Mapping[str, float]]) -> None:
        self._rows = {state: dict(actions) for state, actions in data.items()}

    def __len__(self) -> int:
        return len(self._rows)

    def __contains__(self, state_hash: object) -> bool:
        return state_hash in self._rows


class QLearningAgent(PersistedState):
    """
    Epsilon-greedy tabular Q-learning agent.

    Loads its table from the store at construction and persists after
    every learn() call (or every persist_every calls).
    """

    def __init__(
        self,
        store: KeyValueStore | None = None,
        *,
        learning_rate: float = 0.1,
        discount_factor: float = 0.95,
        epsilon: float = 0.1,
        key: str = "rl:qtable",
        persist_every: int = 1,
        seed: int | None = None,
        metrics: EngineMetrics | None = None,
    ):
        super().__init__(store, key=key, persist_every=persist_every, metrics=metrics)
        if not 0.0 < learning_rate <= 1.0:
            raise ValueError(f"learning_rate must be in (0, 1], got {learning_rate}")
        if not 0.0 <= discount_factor <= 1.0:
            raise ValueError(f"discount_factor must be in [0, 1], got {discount_factor}")
        if not 0.0 <= epsilon <= 1.0:
            raise ValueError(f"epsilon must be in [0, 1], got {epsilon}")

        self.learning_rate = learning_rate
        self.discount_factor = discount_factor
        self.epsilon = epsilon
        self._rng = random.Random(seed)
        self._table = QTable()
        self.load()

    @classmethod
    def from_config(
        cls,
        store: KeyValueStore,
        config: AgentConfig | None = None,
        **kwargs,
    ) -> QLearningAgent:
        config = config or AgentConfig()
        return cls(
            store,
            learning_rate=config.learning_rate,
            discount_factor=config.discount_factor,
            epsilon=config.epsilon,
            key=config.key,
            persist_every=config.persist_every,
            **kwargs,
        )

    def choose_action(self, state: State, possible_actions: Sequence[Action]) -> Action:
        """
        Choose an action for a state.

        Raises:
            EmptyActionSetError: If possible_actions is empty
        """
        if not possible_actions:
            raise empty_action_set(state.hash)

        with self._lock:
            if self._rng.random() < self.epsilon:
                return self._rng.choice(list(possible_actions))

            best_action = possible_actions[0]
            best_value = self._table.get(state.hash, best_action.id)
            for action in possible_actions[1:]:
                value = self._table.get(state.hash, action.id)
                if value > best_value:
                    best_value = value
                    best_action = action

        logger.debug(
            "action_chosen",
            extra={"state": state.hash, "action": best_action.id, "value": best_value},
        )
        return best_action

    def learn(self, experience: Experience) -> float:
        """
        Apply one Q-learning update and return the new value.

        Raises:
            ValueError: If the reward or the resulting value is not finite.
                The table is left unchanged.
        """
        state_hash = experience.state.hash
        action_id = experience.action.id
        reward = float(experience.reward)
        if not math.isfinite(reward):
            raise ValueError(f"reward must be finite, got {reward!r}")

        with self._lock:
            current_q = self._table.get(state_hash, action_id)
            max_next_q = self._table.max_value(experience.next_state.hash)
            new_q = current_q + self.learning_rate * (
                reward + self.discount_factor * max_next_q - current_q
            )
            if not math.isfinite(new_q):
                raise ValueError(f"Q-value for {state_hash}/{action_id} overflows")
            self._table.set(state_hash, action_id, new_q)
            table_size = len(self._table)
            due = self._mark_dirty_locked()

        self.metrics.record_learn(table_size)
        logger.info(
            "q_value_updated",
            extra={
                "state": state_hash,
                "action": action_id,
                "old_q": current_q,
                "new_q": new_q,
                "reward": reward,
            },
        )

        if due:
            self._auto_persist()
        return new_q

    def get_state_value(self, state: State) -> float:
        """Best recorded value for a state, 0 if unseen."""
        with self._lock:
            return self._table.max_value(state.hash)

    def get_q_value(self, state: State, action: Action) -> float:
        with self._lock:
            return self._table.get(state.hash, action.id)

    @property
    def q_table(self) -> dict[str, dict[str, float]]:
        """Deep copy of the current table."""
        with self._lock:
            return self._table.snapshot()

    # ------------------------------------------------------------
    # Persistence hooks
    # ------------------------------------------------------------
    def _encode_locked(self) -> str:
        return dump_q_table(self._table.snapshot())

    def _decode(self, raw: str) -> dict[str, dict[str, float]]:
        return parse_q_table(raw)

    def _install_locked(self, state: dict[str, dict[str, float]]) -> None:
        self._table.replace(state)
        logger.info("q_table_loaded", extra={"key": self.key, "states": len(state)})
