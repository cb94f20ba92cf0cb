from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

from safepath.errors import ErrorKind

T = TypeVar("T")


class OutcomeStatus(str, Enum):
    OK = "ok"
    DEGRADED = "degraded"
    FAILED = "failed"


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Good data, best-effort data, or no data.

    ``Degraded`` always carries a usable value next to the reason it is not
    the real thing; ``Failed`` carries only the reason.
    """

    status: OutcomeStatus
    value: Optional[T] = None
    reason: Optional[ErrorKind] = None

    @classmethod
    def ok(cls, value: T) -> "Outcome[T]":
        return cls(OutcomeStatus.OK, value=value)

    @classmethod
    def degraded(cls, value: T, reason: ErrorKind) -> "Outcome[T]":
        return cls(OutcomeStatus.DEGRADED, value=value, reason=reason)

    @classmethod
    def failed(cls, reason: ErrorKind) -> "Outcome[T]":
        return cls(OutcomeStatus.FAILED, reason=reason)

    @property
    def is_ok(self) -> bool:
        return self.status is OutcomeStatus.OK

    @property
    def is_degraded(self) -> bool:
        return self.status is OutcomeStatus.DEGRADED

    @property
    def is_failed(self) -> bool:
        return self.status is OutcomeStatus.FAILED
