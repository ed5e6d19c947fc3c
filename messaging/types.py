"""
Value types shared by the gate, the retention engine and the scheduler.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import NamedTuple

from .exceptions import InvalidPairError


class ConversationKey(NamedTuple):
    """Unordered user pair stored as (smaller id, larger id)."""

    low: int
    high: int

    @classmethod
    def of(cls, user_a: int, user_b: int) -> "ConversationKey":
        if user_a == user_b:
            raise InvalidPairError()
        return cls(user_a, user_b) if user_a < user_b else cls(user_b, user_a)

    def __str__(self):
        return f"({self.low}, {self.high})"


class Decision(enum.Enum):
    """Outcome of a communication gate check."""

    ESTABLISHED = "established"
    FIRST_CONTACT = "first_contact"
    DENIED = "denied"

    @property
    def permitted(self) -> bool:
        return self is not Decision.DENIED


@dataclass(frozen=True)
class RetentionPolicy:
    count: int
    enabled: bool


@dataclass(frozen=True)
class EnforcementResult:
    deleted: int
    remaining: int
    failed_ids: tuple = ()


@dataclass(frozen=True)
class RetentionStats:
    total_messages: int
    retention_count: int
    messages_to_delete: int

    @property
    def needs_cleanup(self) -> bool:
        return self.messages_to_delete > 0


@dataclass
class SweepReport:
    """Aggregate of one pass over many conversations."""

    pairs: int = 0
    enforced: int = 0
    deleted: int = 0
    failures: list = field(default_factory=list)
    abandoned: bool = False
    skipped: bool = False

    def record_failure(self, key: ConversationKey, exc: Exception) -> None:
        self.failures.append((key, str(exc)))

    def as_dict(self) -> dict:
        return {
            "pairs": self.pairs,
            "enforced": self.enforced,
            "deleted": self.deleted,
            "failures": [
                {"user1": key.low, "user2": key.high, "error": error}
                for key, error in self.failures
            ],
            "abandoned": self.abandoned,
            "skipped": self.skipped,
        }
