"""Driver outcome types consumed by the run coordinator."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class OutcomeState(str, Enum):
    COMPLETED = "completed"
    NOT_YET_DUE = "not_yet_due"
    ABORTED = "aborted"


class AbortKind(str, Enum):
    CONFIG_MISSING = "config_missing"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    COMMUNICATION_ERROR = "communication_error"
    REMOTE_REJECTED = "remote_rejected"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class DriverOutcome:
    state: OutcomeState
    cause: str = ""
    kind: Optional[AbortKind] = None
    attempts: int = 0

    @classmethod
    def completed(cls, attempts: int = 0) -> "DriverOutcome":
        return cls(OutcomeState.COMPLETED, attempts=attempts)

    @classmethod
    def not_yet_due(cls, cause: str = "", attempts: int = 0) -> "DriverOutcome":
        return cls(OutcomeState.NOT_YET_DUE, cause=cause, attempts=attempts)

    @classmethod
    def aborted(cls, cause: str, kind: AbortKind = AbortKind.REMOTE_REJECTED, attempts: int = 0) -> "DriverOutcome":
        return cls(OutcomeState.ABORTED, cause=cause, kind=kind, attempts=attempts)

    @property
    def is_completed(self) -> bool:
        return self.state is OutcomeState.COMPLETED

    @property
    def is_aborted(self) -> bool:
        return self.state is OutcomeState.ABORTED

    @property
    def exit_code(self) -> int:
        return 1 if self.is_aborted else 0

    def describe(self) -> str:
        if self.is_aborted:
            return f"ABORTED ({self.kind.value if self.kind else 'unknown'}): {self.cause}"
        if self.state is OutcomeState.NOT_YET_DUE:
            return f"NOT YET DUE{': ' + self.cause if self.cause else ''}"
        return "COMPLETED"
