# decision_engine/selector.py
"""
Bandit selector over a fixed set of arms.

Provides:
- Epsilon-greedy, UCB1 and Thompson sampling selection
- Reward updates with Wilson confidence
- Persistence via an injected KeyValueStore
"""

from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Sequence

from .arms import Arm, ArmStatistics
from .bandit import (
    BanditAlgorithm,
    epsilon_greedy_select,
    greedy_select,
    thompson_select,
    ucb_select,
)
from .config import BanditConfig
from .errors import unknown_arm
from .metrics import EngineMetrics
from .persistence import PersistedState
from .serialization import dump_statistics, parse_statistics
from .store import KeyValueStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BestArm:
    """Current leader and its statistics."""

    arm: Arm
    stats: ArmStatistics


class BanditSelector(PersistedState):
    """
    Multi-armed bandit over a fixed, ordered list of arms.

    Selection never mutates statistics; only update() does. All reads and
    read-modify-writes of the statistics map happen under one lock.
    """

    def __init__(
        self,
        arms: Sequence[Arm],
        store: KeyValueStore | None = None,
        *,
        epsilon: float = 0.1,
        key: str = "bandit:stats",
        persist_every: int = 1,
        exact_gamma: bool = True,
        seed: int | None = None,
        metrics: EngineMetrics | None = None,
    ):
        super().__init__(store, key=key, persist_every=persist_every, metrics=metrics)
        if not arms:
            raise ValueError("BanditSelector needs at least one arm")
        ids = [arm.id for arm in arms]
        if len(set(ids)) != len(ids):
            raise ValueError(f"Arm ids must be unique: {ids}")
        if not 0.0 <= epsilon <= 1.0:
            raise ValueError(f"epsilon must be in [0, 1], got {epsilon}")

        self._arms = tuple(arms)
        self._by_id = {arm.id: arm for arm in self._arms}
        self._ids = ids
        self.epsilon = epsilon
        self.exact_gamma = exact_gamma
        self._rng = random.Random(seed)
        self._stats: dict[str, ArmStatistics] = {arm_id: ArmStatistics() for arm_id in ids}

    @classmethod
    def open(cls, arms: Sequence[Arm], store: KeyValueStore, **kwargs) -> BanditSelector:
        """Construct and load persisted statistics."""
        selector = cls(arms, store, **kwargs)
        selector.load()
        return selector

    @classmethod
    def from_config(
        cls,
        arms: Sequence[Arm],
        store: KeyValueStore,
        config: BanditConfig | None = None,
        **kwargs,
    ) -> BanditSelector:
        config = config or BanditConfig()
        return cls.open(
            arms,
            store,
            epsilon=config.epsilon,
            key=config.key,
            persist_every=config.persist_every,
            exact_gamma=config.exact_gamma,
            **kwargs,
        )

    @property
    def arms(self) -> tuple[Arm, ...]:
        return self._arms

    def _pick(self, policy: BanditAlgorithm, arm_id: str) -> Arm:
        self.metrics.record_decision(policy.value)
        logger.debug("arm_selected", extra={"policy": policy.value, "arm_id": arm_id})
        return self._by_id[arm_id]

    # ------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------
    def select_arm_epsilon_greedy(self) -> Arm:
        """Random arm with probability epsilon, otherwise the best average."""
        with self._lock:
            arm_id = epsilon_greedy_select(
                self._ids, self._stats, epsilon=self.epsilon, rng=self._rng
            )
        return self._pick(BanditAlgorithm.EPSILON_GREEDY, arm_id)

    def select_arm_ucb(self) -> Arm:
        """UCB1; deterministic for a fixed statistics snapshot."""
        with self._lock:
            arm_id = ucb_select(self._ids, self._stats)
        return self._pick(BanditAlgorithm.UCB1, arm_id)

    def select_arm_thompson_sampling(self) -> Arm:
        with self._lock:
            arm_id = thompson_select(
                self._ids, self._stats, rng=self._rng, exact=self.exact_gamma
            )
        return self._pick(BanditAlgorithm.THOMPSON, arm_id)

    def select_arm(self, algorithm: BanditAlgorithm | str = BanditAlgorithm.THOMPSON) -> Arm:
        """Select with the named policy."""
        algorithm = BanditAlgorithm(algorithm)
        if algorithm == BanditAlgorithm.EPSILON_GREEDY:
            return self.select_arm_epsilon_greedy()
        if algorithm == BanditAlgorithm.UCB1:
            return self.select_arm_ucb()
        return self.select_arm_thompson_sampling()

    # ------------------------------------------------------------
    # Learning
    # ------------------------------------------------------------
    def update(self, arm_id: str, reward: float) -> ArmStatistics:
        """
        Record an observed reward for an arm.

        Args:
            arm_id: Id of a constructed arm
            reward: Observed reward, ideally in [0, 1]

        Returns:
            The arm's new statistics

        Raises:
            UnknownArmError: If arm_id is not one of the selector's arms
            ValueError: If reward is NaN or infinite, or the running total
                would overflow
        """
        reward = float(reward)
        if not math.isfinite(reward):
            raise ValueError(f"reward must be finite, got {reward!r}")

        with self._lock:
            current = self._stats.get(arm_id)
            if current is None:
                raise unknown_arm(arm_id)
            stats = current.record(reward)
            if not math.isfinite(stats.rewards):
                raise ValueError(f"reward total for {arm_id!r} overflows")
            self._stats[arm_id] = stats
            due = self._mark_dirty_locked()

        self.metrics.record_update(arm_id)
        logger.info(
            "arm_updated",
            extra={
                "arm_id": arm_id,
                "pulls": stats.pulls,
                "avg_reward": stats.avg_reward,
                "confidence": stats.confidence,
            },
        )

        if due:
            self._auto_persist()
        return stats

    def get_statistics(self) -> Mapping[str, ArmStatistics]:
        """Read-only snapshot of per-arm statistics."""
        with self._lock:
            return MappingProxyType(dict(self._stats))

    def get_best_arm(self) -> BestArm:
        with self._lock:
            arm_id = greedy_select(self._ids, self._stats)
            stats = self._stats[arm_id]
        return BestArm(arm=self._by_id[arm_id], stats=stats)

    # ------------------------------------------------------------
    # Persistence hooks
    # ------------------------------------------------------------
    def _encode_locked(self) -> str:
        return dump_statistics(self._stats)

    def _decode(self, raw: str) -> dict[str, ArmStatistics]:
        loaded = parse_statistics(raw)
        unknown = sorted(set(loaded) - set(self._by_id))
        if unknown:
            logger.warning("unknown_arms_dropped", extra={"key": self.key, "arm_ids": unknown})
        return {arm_id: loaded.get(arm_id, ArmStatistics()) for arm_id in self._ids}

    def _install_locked(self, state: dict[str, ArmStatistics]) -> None:
        self._stats = state
        logger.info("bandit_stats_loaded", extra={"key": self.key, "arms": len(state)})
