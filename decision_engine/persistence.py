# decision_engine/persistence.py
"""
Shared persistence contract for learning state held in memory.

Subclasses own one lock around their mutable state and implement the
encode/decode hooks. This base provides:
- persist(): snapshot under the lock, write outside it
- load(): atomic replace, cold start on read failure
- flush(): write only when updates are pending
- debounced auto-persist every N mutations
"""

from __future__ import annotations

import logging
import time
from threading import Lock
from typing import Any

from .errors import PersistenceError, store_read_failed, store_write_failed
from .metrics import EngineMetrics, get_metrics
from .store import KeyValueStore, MemoryStore

logger = logging.getLogger(__name__)


class PersistedState:
    """Base for components whose state is snapshotted to a KeyValueStore."""

    def __init__(
        self,
        store: KeyValueStore | None,
        *,
        key: str,
        persist_every: int = 1,
        metrics: EngineMetrics | None = None,
    ) -> None:
        if persist_every < 1:
            raise ValueError(f"persist_every must be >= 1, got {persist_every}")
        self.store: KeyValueStore = store if store is not None else MemoryStore()
        self.key = key
        self.persist_every = persist_every
        self.metrics = metrics or get_metrics()

        # Guards in-memory state
        self._lock = Lock()
        # Serializes store writes so an older snapshot never lands last
        self._io_lock = Lock()
        self._pending = 0

    # ------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------
    def _encode_locked(self) -> str:
        raise NotImplementedError

    def _decode(self, raw: str) -> Any:
        raise NotImplementedError

    def _install_locked(self, state: Any) -> None:
        raise NotImplementedError

    # ------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------
    @property
    def pending_updates(self) -> int:
        """Mutations applied in memory but not yet written."""
        with self._lock:
            return self._pending

    def persist(self) -> None:
        """
        Write a snapshot of the current state to the store.

        Raises:
            PersistenceError: If the store write fails. In-memory state is
                kept and the next successful persist includes it.
        """
        with self._io_lock:
            with self._lock:
                payload = self._encode_locked()
                written = self._pending

            start = time.perf_counter()
            try:
                self.store.set(self.key, payload)
            except Exception as e:
                self.metrics.record_persist(self.key, time.perf_counter() - start, success=False)
                if isinstance(e, PersistenceError):
                    raise
                raise store_write_failed(self.key, repr(e)) from e
            self.metrics.record_persist(self.key, time.perf_counter() - start)

            with self._lock:
                self._pending = max(0, self._pending - written)

    def flush(self) -> bool:
        """Persist if there are pending updates. Returns True if a write happened."""
        if self.pending_updates == 0:
            return False
        self.persist()
        return True

    def load(self) -> bool:
        """
        Replace in-memory state with the stored snapshot.

        A store read failure keeps the current state (empty on a fresh
        instance) and returns False. A missing key also returns False.

        Raises:
            DeserializationError: If the stored snapshot is malformed.
        """
        try:
            raw = self.store.get(self.key)
        except Exception as e:
            # Caller-supplied stores may raise anything
            err = e if isinstance(e, PersistenceError) else store_read_failed(self.key, repr(e))
            logger.warning(
                "cold_start", extra={"key": self.key, "code": err.code, "error": str(err)}
            )
            self.metrics.record_cold_start(self.key)
            return False

        if raw is None:
            return False

        state = self._decode(raw)
        with self._lock:
            self._install_locked(state)
            self._pending = 0
        return True

    def _mark_dirty_locked(self) -> bool:
        """Count one mutation; True when an auto-persist is due."""
        self._pending += 1
        return self._pending >= self.persist_every

    def _auto_persist(self) -> None:
        try:
            self.persist()
        except PersistenceError as e:
            logger.warning(
                "persist_failed",
                extra={"key": self.key, "code": e.code, "error": str(e)},
            )
