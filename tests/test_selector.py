"""Tests for the bandit selector."""

from __future__ import annotations

import threading

import pytest

from decision_engine.arms import Arm, ArmStatistics
from decision_engine.config import BanditConfig
from decision_engine.errors import DeserializationError, PersistenceError, UnknownArmError
from decision_engine.selector import BanditSelector
from decision_engine.serialization import dump_statistics


class TestConstruction:
    """Construction and initial state."""

    def test_requires_arms(self, store):
        with pytest.raises(ValueError):
            BanditSelector([], store)

    def test_rejects_duplicate_ids(self, store):
        with pytest.raises(ValueError):
            BanditSelector([Arm("A"), Arm("A")], store)

    def test_rejects_bad_epsilon(self, arms, store):
        with pytest.raises(ValueError):
            BanditSelector(arms, store, epsilon=1.5)

    def test_all_zero_statistics(self, arms, store):
        selector = BanditSelector(arms, store)
        stats = selector.get_statistics()
        assert set(stats) == {"A", "B"}
        for s in stats.values():
            assert s.pulls == 0
            assert s.rewards == 0.0
            assert s.avg_reward == 0.0
            assert s.confidence == 0.0

    def test_arm_name_defaults_to_id(self):
        assert Arm("X").name == "X"


class TestUpdate:
    """Reward updates."""

    def test_exact_average(self, arms, store):
        """pulls == N and avg == sum/N exactly."""
        selector = BanditSelector(arms, store)
        rewards = [0.1, 0.7, 0.2, 1.0, 0.0, 0.33]
        for r in rewards:
            selector.update("A", r)

        s = selector.get_statistics()["A"]
        assert s.pulls == len(rewards)
        assert s.avg_reward == sum(rewards) / len(rewards)

    def test_untouched_arm_stays_zero(self, arms, store):
        selector = BanditSelector(arms, store)
        for _ in range(10):
            selector.update("A", 1.0)
        assert selector.get_statistics()["B"] == ArmStatistics()

    def test_confidence_recomputed(self, arms, store):
        selector = BanditSelector(arms, store)
        for _ in range(5):
            stats = selector.update("A", 1.0)
        assert stats.confidence == pytest.approx(0.565508, abs=1e-5)

    def test_unknown_arm(self, arms, store):
        selector = BanditSelector(arms, store)
        selector.update("A", 1.0)
        before = dict(selector.get_statistics())

        with pytest.raises(UnknownArmError) as exc:
            selector.update("Z", 1.0)

        assert exc.value.code == "arm:unknown"
        assert isinstance(exc.value, KeyError)
        assert dict(selector.get_statistics()) == before
        assert selector.pending_updates == 0

    @pytest.mark.parametrize("reward", [float("nan"), float("inf"), float("-inf")])
    def test_rejects_non_finite_reward(self, arms, store, reward):
        selector = BanditSelector(arms, store)
        with pytest.raises(ValueError):
            selector.update("A", reward)

        assert selector.get_statistics()["A"] == ArmStatistics()
        assert selector.pending_updates == 0
        assert store.writes == 0

    def test_rejects_overflowing_total(self, arms, store):
        selector = BanditSelector(arms, store)
        selector.update("A", 1e308)
        with pytest.raises(ValueError):
            selector.update("A", 1e308)

        assert selector.get_statistics()["A"].pulls == 1
        assert BanditSelector.open(arms, store).get_statistics()["A"].pulls == 1

    def test_statistics_snapshot_is_read_only(self, arms, store):
        selector = BanditSelector(arms, store)
        snapshot = selector.get_statistics()
        with pytest.raises(TypeError):
            snapshot["A"] = ArmStatistics(pulls=9)  # type: ignore[index]

        selector.update("A", 1.0)
        assert snapshot["A"].pulls == 0


class TestSelection:
    """Policy selection through the selector."""

    def test_example_scenario(self, arms, store):
        """A always pays, B never does."""
        selector = BanditSelector(arms, store)
        for _ in range(5):
            selector.update("A", 1)
        for _ in range(5):
            selector.update("B", 0)

        assert selector.get_best_arm().arm.id == "A"
        assert selector.get_statistics()["A"].avg_reward == 1
        assert selector.get_statistics()["B"].avg_reward == 0

    def test_best_arm_ties_to_first(self, arms, store):
        selector = BanditSelector(arms, store)
        best = selector.get_best_arm()
        assert best.arm.id == "A"
        assert best.stats.pulls == 0

    def test_epsilon_zero_exploits(self, arms, store):
        selector = BanditSelector(arms, store, epsilon=0.0, seed=1)
        selector.update("A", 0.2)
        selector.update("B", 0.8)
        assert all(selector.select_arm_epsilon_greedy().id == "B" for _ in range(100))

    def test_epsilon_one_explores(self, arms, store):
        selector = BanditSelector(arms, store, epsilon=1.0, seed=2)
        selector.update("A", 1.0)
        picks = {selector.select_arm_epsilon_greedy().id for _ in range(100)}
        assert picks == {"A", "B"}

    def test_ucb_bootstrap(self, arms, store):
        selector = BanditSelector(arms, store)
        assert selector.select_arm_ucb().id == "A"
        selector.update("A", 1.0)
        assert selector.select_arm_ucb().id == "B"

    def test_ucb_deterministic_for_fixed_snapshot(self, store):
        selector = BanditSelector([Arm("A"), Arm("B"), Arm("C")], store)
        for arm_id, reward in [("A", 1.0), ("B", 0.0), ("C", 1.0), ("A", 0.0), ("C", 1.0)]:
            selector.update(arm_id, reward)

        first = selector.select_arm_ucb()
        assert all(selector.select_arm_ucb() == first for _ in range(50))

    def test_thompson_prefers_winner(self, arms, store):
        selector = BanditSelector(arms, store, seed=3)
        for _ in range(50):
            selector.update("A", 0.0)
            selector.update("B", 1.0)

        picks = [selector.select_arm_thompson_sampling().id for _ in range(200)]
        assert picks.count("B") >= 180

    def test_thompson_approximate_sampler(self, arms, store):
        selector = BanditSelector(arms, store, seed=4, exact_gamma=False)
        for _ in range(50):
            selector.update("A", 1.0)
            selector.update("B", 0.0)

        picks = [selector.select_arm_thompson_sampling().id for _ in range(200)]
        assert picks.count("A") >= 180

    def test_selection_does_not_mutate(self, arms, store):
        selector = BanditSelector(arms, store, seed=5)
        selector.update("A", 1.0)
        before = dict(selector.get_statistics())
        writes = store.writes

        for policy in ("thompson", "ucb1", "epsilon_greedy"):
            selector.select_arm(policy)

        assert dict(selector.get_statistics()) == before
        assert store.writes == writes

    def test_decisions_are_counted(self, arms, store, metrics):
        selector = BanditSelector(arms, store, metrics=metrics)
        selector.select_arm_ucb()
        selector.select_arm_ucb()
        selector.select_arm_thompson_sampling()
        assert metrics.to_dict()["decisions"] == {"ucb1": 2, "thompson": 1}


class TestPersistence:
    """Persist/load contract."""

    def test_round_trip(self, arms, store):
        selector = BanditSelector(arms, store)
        for r in (1.0, 0.0, 0.25):
            selector.update("A", r)
        selector.update("B", 0.5)

        fresh = BanditSelector(arms, store)
        assert fresh.load() is True
        assert dict(fresh.get_statistics()) == dict(selector.get_statistics())

    def test_open_loads(self, arms, store):
        BanditSelector(arms, store).update("B", 1.0)
        assert BanditSelector.open(arms, store).get_statistics()["B"].pulls == 1

    def test_from_config(self, arms, store):
        config = BanditConfig(epsilon=0.0, key="pricing", persist_every=2, exact_gamma=False)
        selector = BanditSelector.from_config(arms, store, config)
        assert selector.epsilon == 0.0
        assert selector.key == "pricing"
        assert selector.persist_every == 2
        assert selector.exact_gamma is False

    def test_missing_key_keeps_state(self, arms, store):
        selector = BanditSelector(arms, store, key="nothing-here")
        assert selector.load() is False
        assert selector.get_statistics()["A"].pulls == 0

    def test_read_failure_cold_starts(self, arms, store, metrics):
        store.fail_reads = True
        selector = BanditSelector(arms, store, metrics=metrics)
        assert selector.load() is False
        assert selector.get_statistics()["A"].pulls == 0
        assert metrics.to_dict()["cold_starts"] == {"bandit:stats": 1}

    def test_malformed_data_raises(self, arms, store):
        selector = BanditSelector(arms, store)
        selector.update("A", 1.0)
        store.set("bandit:stats", "{not json")

        with pytest.raises(DeserializationError):
            selector.load()
        assert selector.get_statistics()["A"].pulls == 1

    def test_snapshot_missing_and_unknown_arms(self, arms, store):
        store.set(
            "bandit:stats",
            dump_statistics({"A": ArmStatistics(3, 2.0), "Z": ArmStatistics(7, 7.0)}),
        )
        selector = BanditSelector.open(arms, store)
        stats = selector.get_statistics()
        assert set(stats) == {"A", "B"}
        assert stats["A"] == ArmStatistics(3, 2.0)
        assert stats["B"] == ArmStatistics()

    def test_write_failure_keeps_update(self, arms, store, metrics):
        selector = BanditSelector(arms, store, metrics=metrics)
        store.fail_writes = True

        stats = selector.update("A", 1.0)
        assert stats.pulls == 1
        assert selector.get_statistics()["A"].pulls == 1
        assert selector.pending_updates == 1
        assert metrics.to_dict()["persist"]["failed"] == {"bandit:stats": 1}

        with pytest.raises(PersistenceError):
            selector.persist()

        store.fail_writes = False
        selector.update("B", 0.0)
        assert selector.pending_updates == 0

        reloaded = BanditSelector.open(arms, store)
        assert reloaded.get_statistics()["A"].pulls == 1
        assert reloaded.get_statistics()["B"].pulls == 1

    def test_unreachable_store_is_contained(self, arms, unreachable_store, metrics):
        selector = BanditSelector.open(arms, unreachable_store, metrics=metrics)
        assert metrics.to_dict()["cold_starts"] == {"bandit:stats": 1}

        stats = selector.update("A", 1.0)
        assert stats.pulls == 1
        assert selector.pending_updates == 1
        assert metrics.to_dict()["persist"]["failed"] == {"bandit:stats": 1}

        with pytest.raises(PersistenceError) as exc:
            selector.persist()
        assert exc.value.code == "store:write_failed"
        assert isinstance(exc.value.__cause__, ConnectionError)

    def test_debounced_persistence(self, arms, store):
        selector = BanditSelector(arms, store, persist_every=3)
        selector.update("A", 1.0)
        selector.update("A", 1.0)
        assert store.get("bandit:stats") is None
        assert selector.pending_updates == 2

        selector.update("B", 1.0)
        assert store.get("bandit:stats") is not None
        assert selector.pending_updates == 0

    def test_flush(self, arms, store):
        selector = BanditSelector(arms, store, persist_every=10)
        assert selector.flush() is False

        selector.update("A", 0.5)
        assert selector.flush() is True
        assert selector.flush() is False
        assert BanditSelector.open(arms, store).get_statistics()["A"].pulls == 1

    def test_rejects_bad_persist_every(self, arms, store):
        with pytest.raises(ValueError):
            BanditSelector(arms, store, persist_every=0)


class TestConcurrency:
    """Lost-update protection."""

    def test_concurrent_updates_same_arm(self, arms, store):
        selector = BanditSelector(arms, store)
        threads_n, per_thread = 8, 250
        barrier = threading.Barrier(threads_n)

        def worker():
            barrier.wait()
            for _ in range(per_thread):
                selector.update("A", 1)

        threads = [threading.Thread(target=worker) for _ in range(threads_n)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        s = selector.get_statistics()["A"]
        assert s.pulls == threads_n * per_thread
        assert s.rewards == threads_n * per_thread

        # The last write to the store carries every increment
        reloaded = BanditSelector.open(arms, store)
        assert reloaded.get_statistics()["A"].pulls == threads_n * per_thread

    def test_concurrent_select_and_update(self, arms, store):
        selector = BanditSelector(arms, store, seed=9)
        errors: list[BaseException] = []

        def updater():
            for i in range(200):
                selector.update("AB"[i % 2], i % 3 / 2)

        def chooser():
            try:
                for _ in range(200):
                    selector.select_arm_thompson_sampling()
                    selector.select_arm_ucb()
            except BaseException as e:  # pragma: no cover
                errors.append(e)

        threads = [threading.Thread(target=updater), threading.Thread(target=chooser)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert not errors
        stats = selector.get_statistics()
        assert stats["A"].pulls + stats["B"].pulls == 200
