"""Shared fixtures for decision engine tests."""

from __future__ import annotations

import pytest

from decision_engine.arms import Arm
from decision_engine.errors import store_read_failed, store_write_failed
from decision_engine.metrics import EngineMetrics
from decision_engine.store import MemoryStore


class FlakyStore(MemoryStore):
    """Memory store whose reads or writes can be switched to fail."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_reads = False
        self.fail_writes = False
        self.writes = 0

    def get(self, key: str) -> str | None:
        if self.fail_reads:
            raise store_read_failed(key, "store offline")
        return super().get(key)

    def set(self, key: str, value: str) -> None:
        if self.fail_writes:
            raise store_write_failed(key, "store offline")
        self.writes += 1
        super().set(key, value)


class UnreachableStore:
    """Store that fails the way a network-backed client does, without PersistenceError."""

    def get(self, key: str) -> str | None:
        raise ConnectionError("connection refused")

    def set(self, key: str, value: str) -> None:
        raise ConnectionError("connection refused")


@pytest.fixture
def arms() -> list[Arm]:
    return [Arm("A", "Price 9.99", {"price": 9.99}), Arm("B", "Price 12.99", {"price": 12.99})]


@pytest.fixture
def store() -> FlakyStore:
    return FlakyStore()


@pytest.fixture
def unreachable_store() -> UnreachableStore:
    return UnreachableStore()


@pytest.fixture
def metrics() -> EngineMetrics:
    return EngineMetrics()
