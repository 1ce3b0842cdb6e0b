"""Classify free-text contract failure reasons into known sentinels."""

from __future__ import annotations

from enum import Enum
from typing import Tuple


class FailureKind(str, Enum):
    DISTRIBUTION_ACTIVE = "distribution_active"
    CYCLE_NOT_COMPLETE = "cycle_not_complete"
    UNKNOWN = "unknown"


# Exhaustive table; anything not listed falls through to UNKNOWN and aborts the run.
SENTINELS: Tuple[Tuple[str, FailureKind], ...] = (
    ("distribution already active", FailureKind.DISTRIBUTION_ACTIVE),
    ("cycle not complete", FailureKind.CYCLE_NOT_COMPLETE),
)


def classify_failure(reason: str) -> FailureKind:
    text = str(reason or "").lower()
    for needle, kind in SENTINELS:
        if needle in text:
            return kind
    return FailureKind.UNKNOWN
