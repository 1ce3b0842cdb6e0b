#!/usr/bin/env python3
"""Epoch-start driver: readiness gate, sentinel handling, completion checks, guards."""

import asyncio
import logging
import sys
import time
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import epoch_start
from chain.base import ActionResult, CycleStatus, EpochInfo, SnapshotProgress, TxReceipt
from chain.rpc import CommunicationError
from epoch_start import EpochStartDriver, EpochStartSettings
from outcomes import AbortKind, OutcomeState

HOUR = 3600


def _status(elapsed: int, interval: int = 6 * HOUR, in_progress: bool = False) -> CycleStatus:
    now = int(time.time())
    return CycleStatus(
        cycle_id=7,
        interval_seconds=interval,
        accumulation_start=now - elapsed,
        distribution_start=0,
        is_distribution_active=False,
        is_snapshot_in_progress=in_progress,
    )


def _ok(n: int = 1) -> ActionResult:
    return ActionResult.ok("batchStartEpoch", TxReceipt(f"0x{n:064x}", 100 + n, 210_000, 1))


def _fail(reason: str) -> ActionResult:
    return ActionResult.failed("batchStartEpoch", reason, "simulation")


class FakeReader:
    def __init__(self, status, dist_active=(), in_progress=(), epoch_info=None):
        self.status = status
        self._dist_active = list(dist_active)
        self._in_progress = list(in_progress)
        self.epoch_info = epoch_info
        self.progress_reads = 0

    async def read_status(self):
        if isinstance(self.status, Exception):
            raise self.status
        return self.status

    async def read_distribution_active(self):
        return self._dist_active.pop(0) if self._dist_active else False

    async def read_snapshot_in_progress(self):
        return self._in_progress.pop(0) if self._in_progress else True

    async def read_snapshot_progress(self):
        self.progress_reads += 1
        return SnapshotProgress(10, 100, False, 50, 500, False)

    async def read_epoch_info(self):
        return self.epoch_info


class FakeInvoker:
    def __init__(self, results):
        self._results = list(results)
        self.calls = []

    async def attempt(self, action, gas_limit):
        self.calls.append((action, gas_limit))
        return self._results.pop(0)


def _patch_sleep(monkeypatch):
    sleeps = []

    async def fake_sleep(seconds):
        sleeps.append(seconds)

    monkeypatch.setattr(epoch_start.asyncio, "sleep", fake_sleep)
    return sleeps


def _run(driver):
    return asyncio.run(driver.run())


def test_not_yet_due_makes_no_action_calls(monkeypatch) -> None:
    _patch_sleep(monkeypatch)
    reader = FakeReader(_status(elapsed=5 * HOUR))
    invoker = FakeInvoker([])

    outcome = _run(EpochStartDriver(reader, invoker, logging.getLogger("test")))

    assert outcome.state is OutcomeState.NOT_YET_DUE
    assert outcome.exit_code == 0
    assert invoker.calls == []


def test_distribution_already_active_completes_after_one_call(monkeypatch) -> None:
    _patch_sleep(monkeypatch)
    reader = FakeReader(_status(elapsed=6 * HOUR), in_progress=[False])
    invoker = FakeInvoker([_fail("execution reverted: Distribution already active")])

    outcome = _run(EpochStartDriver(reader, invoker, logging.getLogger("test")))

    assert outcome.state is OutcomeState.COMPLETED
    assert outcome.attempts == 1
    assert len(invoker.calls) == 1
    assert invoker.calls[0] == ("batchStartEpoch", 3_000_000)


def test_already_active_after_many_batches_still_completes(monkeypatch) -> None:
    _patch_sleep(monkeypatch)
    reader = FakeReader(_status(elapsed=7 * HOUR))
    invoker = FakeInvoker([_ok(1), _ok(2), _ok(3), _ok(4), _fail("Distribution already active")])

    outcome = _run(EpochStartDriver(reader, invoker, logging.getLogger("test")))

    assert outcome.state is OutcomeState.COMPLETED
    assert outcome.attempts == 5


def test_three_successful_batches_until_distribution_active(monkeypatch) -> None:
    sleeps = _patch_sleep(monkeypatch)
    # Snapshot stays in progress after batches 1-2; batch 3 flips the flag.
    reader = FakeReader(
        _status(elapsed=6 * HOUR + 60, in_progress=True),
        dist_active=[False, False, True],
        in_progress=[True, True, True, True, True],
        epoch_info=EpochInfo(8, 0, 0, 0, 6 * HOUR, False, False),
    )
    invoker = FakeInvoker([_ok(1), _ok(2), _ok(3)])
    settings = EpochStartSettings(call_delay_sec=2.0)

    outcome = _run(EpochStartDriver(reader, invoker, logging.getLogger("test"), settings))

    assert outcome.state is OutcomeState.COMPLETED
    assert outcome.attempts == 3
    assert len(invoker.calls) == 3
    assert sleeps == [2.0, 2.0]
    assert reader.progress_reads == 3


def test_unknown_failure_aborts_immediately(monkeypatch) -> None:
    sleeps = _patch_sleep(monkeypatch)
    reader = FakeReader(_status(elapsed=6 * HOUR))
    invoker = FakeInvoker([_fail("insufficient gas"), _ok(2)])

    outcome = _run(EpochStartDriver(reader, invoker, logging.getLogger("test")))

    assert outcome.state is OutcomeState.ABORTED
    assert outcome.kind is AbortKind.REMOTE_REJECTED
    assert "insufficient gas" in outcome.cause
    assert outcome.exit_code == 1
    assert len(invoker.calls) == 1
    assert sleeps == []


def test_cycle_not_complete_race_is_not_yet_due(monkeypatch) -> None:
    _patch_sleep(monkeypatch)
    reader = FakeReader(_status(elapsed=6 * HOUR))
    invoker = FakeInvoker([_fail("Cycle not complete")])

    outcome = _run(EpochStartDriver(reader, invoker, logging.getLogger("test")))

    assert outcome.state is OutcomeState.NOT_YET_DUE
    assert outcome.exit_code == 0
    assert len(invoker.calls) == 1


def test_redundant_second_run_is_never_rejected(monkeypatch) -> None:
    _patch_sleep(monkeypatch)
    log = logging.getLogger("test")

    first = _run(EpochStartDriver(
        FakeReader(_status(elapsed=6 * HOUR), dist_active=[True]),
        FakeInvoker([_ok(1)]),
        log,
    ))
    # Contract already moved on: either the gate says not due or the call says already active.
    second_gate = _run(EpochStartDriver(FakeReader(_status(elapsed=0)), FakeInvoker([]), log))
    second_race = _run(EpochStartDriver(
        FakeReader(_status(elapsed=6 * HOUR)),
        FakeInvoker([_fail("Distribution already active")]),
        log,
    ))

    assert first.state is OutcomeState.COMPLETED
    assert second_gate.state is OutcomeState.NOT_YET_DUE
    assert second_race.state is OutcomeState.COMPLETED


def test_settle_recheck_waits_then_completes(monkeypatch) -> None:
    sleeps = _patch_sleep(monkeypatch)
    # Batch succeeds, flag still false, snapshot finished -> settle delay -> flag true.
    reader = FakeReader(
        _status(elapsed=6 * HOUR),
        dist_active=[False, True],
        in_progress=[True, False],
    )
    invoker = FakeInvoker([_ok(1)])
    settings = EpochStartSettings(settle_delay_sec=1.0, call_delay_sec=2.0)

    outcome = _run(EpochStartDriver(reader, invoker, logging.getLogger("test"), settings))

    assert outcome.state is OutcomeState.COMPLETED
    assert outcome.attempts == 1
    assert sleeps == [1.0]


def test_settle_recheck_still_inactive_keeps_looping(monkeypatch) -> None:
    sleeps = _patch_sleep(monkeypatch)
    reader = FakeReader(
        _status(elapsed=6 * HOUR),
        dist_active=[False, False, True],
        in_progress=[False, False, False],
    )
    invoker = FakeInvoker([_ok(1), _ok(2)])
    settings = EpochStartSettings(settle_delay_sec=1.0, call_delay_sec=2.0)

    outcome = _run(EpochStartDriver(reader, invoker, logging.getLogger("test"), settings))

    assert outcome.state is OutcomeState.COMPLETED
    assert outcome.attempts == 2
    assert sleeps == [1.0, 2.0]


def test_batch_cap_aborts_with_timeout(monkeypatch) -> None:
    _patch_sleep(monkeypatch)
    reader = FakeReader(_status(elapsed=6 * HOUR))
    invoker = FakeInvoker([_ok(n) for n in range(10)])
    settings = EpochStartSettings(max_batches=4, max_runtime_sec=0)

    outcome = _run(EpochStartDriver(reader, invoker, logging.getLogger("test"), settings))

    assert outcome.state is OutcomeState.ABORTED
    assert outcome.kind is AbortKind.TIMEOUT
    assert len(invoker.calls) == 4


def test_runtime_cap_aborts_with_timeout(monkeypatch) -> None:
    _patch_sleep(monkeypatch)
    clock = {"t": 1000.0}

    def fake_monotonic():
        clock["t"] += 30.0
        return clock["t"]

    reader = FakeReader(_status(elapsed=6 * HOUR))
    invoker = FakeInvoker([_ok(n) for n in range(10)])
    settings = EpochStartSettings(max_batches=0, max_runtime_sec=100)
    driver = EpochStartDriver(reader, invoker, logging.getLogger("test"), settings)
    driver._monotonic = fake_monotonic

    outcome = _run(driver)

    assert outcome.kind is AbortKind.TIMEOUT
    assert len(invoker.calls) == 3


def test_status_read_failure_aborts_as_communication_error(monkeypatch) -> None:
    _patch_sleep(monkeypatch)
    reader = FakeReader(CommunicationError("connection refused"))
    invoker = FakeInvoker([])

    outcome = _run(EpochStartDriver(reader, invoker, logging.getLogger("test")))

    assert outcome.kind is AbortKind.COMMUNICATION_ERROR
    assert outcome.exit_code == 1
    assert invoker.calls == []


class FlakyReader(FakeReader):
    """Snapshot-flag reads start failing after *ok_reads* answers."""

    def __init__(self, status, ok_reads):
        super().__init__(status)
        self.ok_reads = ok_reads

    async def read_snapshot_in_progress(self):
        if self.ok_reads <= 0:
            raise CommunicationError("eth_call request failed: connection reset")
        self.ok_reads -= 1
        return True


def test_mid_run_read_failure_keeps_attempt_count(monkeypatch) -> None:
    _patch_sleep(monkeypatch)
    # Two batches use two snapshot reads each; the third batch's pre-call read fails.
    reader = FlakyReader(_status(elapsed=7 * HOUR), ok_reads=4)
    invoker = FakeInvoker([_ok(1), _ok(2), _ok(3)])

    outcome = _run(EpochStartDriver(reader, invoker, logging.getLogger("test")))

    assert len(invoker.calls) == 2
    assert outcome.state is OutcomeState.ABORTED
    assert outcome.kind is AbortKind.COMMUNICATION_ERROR
    assert outcome.attempts == 2


def test_completion_check_read_failure_counts_the_batch(monkeypatch) -> None:
    _patch_sleep(monkeypatch)
    # The pre-call read succeeds, then the completion check's snapshot read fails.
    reader = FlakyReader(_status(elapsed=7 * HOUR), ok_reads=1)
    invoker = FakeInvoker([_ok(1)])

    outcome = _run(EpochStartDriver(reader, invoker, logging.getLogger("test")))

    assert len(invoker.calls) == 1
    assert outcome.kind is AbortKind.COMMUNICATION_ERROR
    assert outcome.attempts == 1
