#!/usr/bin/env python3

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from failure_reasons import FailureKind, classify_failure
from keeper_lock import acquire_keeper_lock, lock_path_for, release_keeper_lock
from keeper_utils import format_duration, format_eth


def test_known_sentinels() -> None:
    assert classify_failure("Distribution already active") is FailureKind.DISTRIBUTION_ACTIVE
    assert classify_failure("execution reverted: Distribution already active") is FailureKind.DISTRIBUTION_ACTIVE
    assert classify_failure("Cycle not complete") is FailureKind.CYCLE_NOT_COMPLETE
    assert classify_failure("CYCLE NOT COMPLETE yet") is FailureKind.CYCLE_NOT_COMPLETE


def test_unknown_reasons_fail_safe() -> None:
    for reason in ("insufficient gas", "nonce too low", "", None, "Distribution not complete"):
        assert classify_failure(reason) is FailureKind.UNKNOWN


def test_second_lock_on_same_contract_is_refused(tmp_path) -> None:
    path = lock_path_for(str(tmp_path), "0xABCDEF0000000000000000000000000000000001")
    first = acquire_keeper_lock(path)
    try:
        assert first is not None
        assert acquire_keeper_lock(path) is None
    finally:
        release_keeper_lock(first)

    again = acquire_keeper_lock(path)
    assert again is not None
    release_keeper_lock(again)
    assert path.name == "keeper_0xabcdef0000000000000000000000000000000001.lock"


def test_formatting_helpers() -> None:
    assert format_duration(5 * 3600 + 61) == "5h 1m 1s"
    assert format_duration(-5) == "0h 0m 0s"
    assert format_eth(10**15) == "0.001"
    assert format_eth(0) == "0"
