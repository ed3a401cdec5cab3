# decision_engine/errors.py
"""
Error taxonomy with structured codes for machine-readable analysis.

Error codes follow the pattern: {category}:{specific_code}

Categories:
- arm: Bandit arm lookup failures
- action: Invalid action sets passed to the agent
- store: Persistence I/O and decoding failures
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    ARM = "arm"
    ACTION = "action"
    STORE = "store"


class ErrorCode:
    ARM_UNKNOWN = "arm:unknown"

    ACTION_EMPTY_SET = "action:empty_set"

    STORE_READ_FAILED = "store:read_failed"
    STORE_WRITE_FAILED = "store:write_failed"
    STORE_MALFORMED = "store:malformed"


class DecisionEngineError(Exception):
    """Base error carrying a structured code."""

    code = "engine:error"

    def __init__(self, message: str, *, code: str | None = None, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details or None

    @property
    def category(self) -> str:
        return self.code.split(":")[0] if ":" in self.code else "unknown"

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            d["details"] = self.details
        return d


class UnknownArmError(DecisionEngineError, KeyError):
    """Raised when an update names an arm the selector was not built with."""

    code = ErrorCode.ARM_UNKNOWN

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return self.message


class EmptyActionSetError(DecisionEngineError, ValueError):
    """Raised when the agent is asked to choose from no actions."""

    code = ErrorCode.ACTION_EMPTY_SET


class PersistenceError(DecisionEngineError):
    """Raised when the backing store cannot be read or written."""

    code = ErrorCode.STORE_WRITE_FAILED


class DeserializationError(DecisionEngineError):
    """Raised when persisted state cannot be decoded."""

    code = ErrorCode.STORE_MALFORMED


# Convenience constructors
def unknown_arm(arm_id: str) -> UnknownArmError:
    return UnknownArmError(f"Arm {arm_id} not found", arm_id=arm_id)


def empty_action_set(state_hash: str) -> EmptyActionSetError:
    return EmptyActionSetError("Cannot choose from an empty action set", state=state_hash)


def store_read_failed(key: str, reason: str) -> PersistenceError:
    return PersistenceError(
        f"Failed to read {key}: {reason}", code=ErrorCode.STORE_READ_FAILED, key=key
    )


def store_write_failed(key: str, reason: str) -> PersistenceError:
    return PersistenceError(
        f"Failed to write {key}: {reason}", code=ErrorCode.STORE_WRITE_FAILED, key=key
    )


def malformed(what: str, reason: str) -> DeserializationError:
    return DeserializationError(f"Malformed {what}: {reason}", what=what)
