#!/usr/bin/env python3
"""One-shot companions to the epoch-start driver: end cycle, flush, status."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from chain.abi import ACTION_END_CYCLE, ACTION_FLUSH
from chain.rpc import CommunicationError
from keeper_utils import BANNER, format_duration, format_eth, now_ts
from outcomes import AbortKind, DriverOutcome


@dataclass
class OneShotSettings:
    gas_limit: int = 1_500_000


def _result_outcome(result, log: logging.Logger, done_msg: str) -> DriverOutcome:
    if result.success:
        log.info(BANNER)
        log.info(f"✅ {done_msg}")
        log.info(BANNER)
        return DriverOutcome.completed(attempts=1)
    log.error(f"❌ {result.action} failed: {result.reason}")
    return DriverOutcome.aborted(result.reason, kind=AbortKind.REMOTE_REJECTED, attempts=1)


class CycleEndDriver:
    """Closes an elapsed distribution period with a single batchEndCycle().

    No internal retry: the scheduler re-triggers on the same cadence as start.
    """

    def __init__(self, reader, invoker, log: logging.Logger, settings: Optional[OneShotSettings] = None):
        self.reader = reader
        self.invoker = invoker
        self.log = log
        self.settings = settings or OneShotSettings()

    async def run(self) -> DriverOutcome:
        self.log.info(BANNER)
        self.log.info("END CYCLE")
        self.log.info(BANNER)

        try:
            if not await self.reader.read_distribution_active():
                self.log.info("No active distribution to end.")
                return DriverOutcome.not_yet_due("no active distribution")
            status = await self.reader.read_status()
        except CommunicationError as exc:
            self.log.error(f"❌ Status read failed: {exc}")
            return DriverOutcome.aborted(str(exc), kind=AbortKind.COMMUNICATION_ERROR)

        elapsed = status.distribution_elapsed(now_ts())
        self.log.info(f"Distribution elapsed: {format_duration(elapsed)}")
        if elapsed < status.interval_seconds:
            remaining = status.interval_seconds - elapsed
            self.log.info(f"⏳ Distribution not complete yet. {format_duration(remaining)} remaining.")
            return DriverOutcome.not_yet_due(f"{format_duration(remaining)} remaining")

        self.log.info("🔄 Ending distribution...")
        result = await self.invoker.attempt(ACTION_END_CYCLE, self.settings.gas_limit)
        return _result_outcome(result, self.log, "CYCLE ENDED")


class FlushDriver:
    """Pays out distribution remainders; not gated on any timer."""

    def __init__(self, invoker, log: logging.Logger, settings: Optional[OneShotSettings] = None):
        self.invoker = invoker
        self.log = log
        self.settings = settings or OneShotSettings()

    async def run(self) -> DriverOutcome:
        self.log.info(BANNER)
        self.log.info("FLUSH DISTRIBUTIONS")
        self.log.info(BANNER)
        result = await self.invoker.attempt(ACTION_FLUSH, self.settings.gas_limit)
        return _result_outcome(result, self.log, "DISTRIBUTIONS FLUSHED")


class StatusReport:
    """Read-only status dump; never submits."""

    def __init__(self, reader, log: logging.Logger):
        self.reader = reader
        self.log = log

    async def run(self) -> DriverOutcome:
        try:
            status = await self.reader.read_status()
            info = await self.reader.read_epoch_info()
        except CommunicationError as exc:
            self.log.error(f"❌ Status read failed: {exc}")
            return DriverOutcome.aborted(str(exc), kind=AbortKind.COMMUNICATION_ERROR)

        now = now_ts()
        self.log.info("─── Status ───")
        self.log.info(f"Cycle ID: {status.cycle_id}")
        self.log.info(f"Cycle Interval: {format_duration(status.interval_seconds)}")
        self.log.info(f"Distribution active: {status.is_distribution_active}")
        if status.is_distribution_active:
            self.log.info(f"Distribution elapsed: {format_duration(status.distribution_elapsed(now))}")
        else:
            self.log.info(f"Accumulation elapsed: {format_duration(status.accumulation_elapsed(now))}")
        self.log.info(f"Snapshot in progress: {status.is_snapshot_in_progress}")
        if status.snapshot_progress is not None:
            self.log.info(status.snapshot_progress.describe())
        if info is not None:
            self.log.info(
                f"Epoch info: cycle={info.cycle_id} raised={format_eth(info.eth_raised)} ETH "
                f"for_rewards={format_eth(info.eth_for_rewards)} ETH "
                f"remaining={format_duration(info.time_remaining)}"
            )
        return DriverOutcome.not_yet_due("status only")
