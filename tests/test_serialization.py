"""Tests for persisted-state encoding."""

from __future__ import annotations

import json

import pytest

from decision_engine.arms import ArmStatistics
from decision_engine.errors import DeserializationError
from decision_engine.serialization import (
    dump_q_table,
    dump_statistics,
    parse_q_table,
    parse_statistics,
)


class TestStatisticsFormat:
    """Bandit statistics encoding."""

    def test_pair_list_layout(self):
        raw = dump_statistics({"A": ArmStatistics(2, 1.0)})
        assert json.loads(raw) == [
            ["A", {"pulls": 2, "rewards": 1.0, "avgReward": 0.5, "confidence": pytest.approx(0.0945, abs=1e-3)}]
        ]

    def test_round_trip(self):
        stats = {"A": ArmStatistics(3, 0.1 + 0.2), "B": ArmStatistics(), "C": ArmStatistics(1, -0.5)}
        assert parse_statistics(dump_statistics(stats)) == stats

    def test_derived_fields_recomputed(self):
        raw = '[["A", {"pulls": 4, "rewards": 2.0, "avgReward": 0.99, "confidence": 7}]]'
        s = parse_statistics(raw)["A"]
        assert s.avg_reward == 0.5
        assert s.confidence < 0.5

    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            "{}",
            '[["A"]]',
            '[[1, {"pulls": 1, "rewards": 1}]]',
            '[["A", []]]',
            '[["A", {"pulls": -1, "rewards": 0}]]',
            '[["A", {"pulls": 1.5, "rewards": 0}]]',
            '[["A", {"pulls": true, "rewards": 0}]]',
            '[["A", {"pulls": 1}]]',
            '[["A", {"pulls": 1, "rewards": "1"}]]',
            '[["A", {"pulls": 1, "rewards": NaN}]]',
            '[["A", {"pulls": 1, "rewards": 1}], ["A", {"pulls": 2, "rewards": 1}]]',
        ],
    )
    def test_malformed(self, raw):
        with pytest.raises(DeserializationError) as exc:
            parse_statistics(raw)
        assert exc.value.code == "store:malformed"


class TestQTableFormat:
    """Q-table encoding."""

    def test_layout(self):
        raw = dump_q_table({"s0": {"left": 0.5, "right": 1.0}})
        assert json.loads(raw) == [{"state": "s0", "actions": [["left", 0.5], ["right", 1.0]]}]

    def test_round_trip(self):
        table = {"s0": {"left": 0.5, "right": -1.25}, "s1": {}, "s2": {"x": 1e-9}}
        assert parse_q_table(dump_q_table(table)) == table

    def test_dump_refuses_non_finite(self):
        with pytest.raises(ValueError):
            dump_q_table({"s": {"a": float("nan")}})
        with pytest.raises(ValueError):
            dump_statistics({"A": ArmStatistics(1, float("inf"))})

    def test_integer_values_become_floats(self):
        assert parse_q_table('[{"state": "s", "actions": [["a", 2]]}]') == {"s": {"a": 2.0}}

    @pytest.mark.parametrize(
        "raw",
        [
            "",
            '{"state": "s"}',
            '["s"]',
            '[{"state": 1, "actions": []}]',
            '[{"state": "s"}]',
            '[{"state": "s", "actions": [["a"]]}]',
            '[{"state": "s", "actions": [[1, 2.0]]}]',
            '[{"state": "s", "actions": [["a", "high"]]}]',
            '[{"state": "s", "actions": [["a", Infinity]]}]',
            '[{"state": "s", "actions": [["a", 1], ["a", 2]]}]',
            '[{"state": "s", "actions": []}, {"state": "s", "actions": []}]',
        ],
    )
    def test_malformed(self, raw):
        with pytest.raises(DeserializationError):
            parse_q_table(raw)
