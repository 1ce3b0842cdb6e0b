#!/usr/bin/env python3
"""
Epoch-start driver.

Runs once per trigger. When the accumulation interval has elapsed it calls
batchStartEpoch() back-to-back until the contract reports the distribution
phase active, then returns.

Flow:
    1. Read cycle status; exit NOT YET DUE if the interval has not elapsed
    2. Loop: log snapshot progress -> batchStartEpoch() -> completion check
    3. Constant pause between calls (rate limits, not backoff)
    4. Stop on completion, a benign sentinel, an unknown failure, or a guard
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional

from chain.abi import ACTION_START_EPOCH
from chain.rpc import CommunicationError
from failure_reasons import FailureKind, classify_failure
from keeper_utils import BANNER, format_duration, format_eth, now_ts
from outcomes import AbortKind, DriverOutcome


@dataclass
class EpochStartSettings:
    gas_limit: int = 3_000_000
    call_delay_sec: float = 2.0
    settle_delay_sec: float = 1.0
    settle_attempts: int = 1
    max_batches: int = 500          # 0 = no cap
    max_runtime_sec: float = 3600.0  # 0 = no cap


class EpochStartDriver:
    def __init__(self, reader, invoker, log: logging.Logger, settings: Optional[EpochStartSettings] = None):
        self.reader = reader
        self.invoker = invoker
        self.log = log
        self.settings = settings or EpochStartSettings()
        self._monotonic = time.monotonic

    async def run(self) -> DriverOutcome:
        self.log.info(BANNER)
        self.log.info("START EPOCH (continuous mode)")
        self.log.info(BANNER)

        try:
            status = await self.reader.read_status()
        except CommunicationError as exc:
            self.log.error(f"❌ Status read failed: {exc}")
            return DriverOutcome.aborted(str(exc), kind=AbortKind.COMMUNICATION_ERROR)

        elapsed = status.accumulation_elapsed(now_ts())
        self.log.info("─── Status ───")
        self.log.info(f"Cycle ID: {status.cycle_id}")
        self.log.info(f"Cycle Interval: {format_duration(status.interval_seconds)}")
        self.log.info(f"Time Elapsed: {format_duration(elapsed)}")

        if elapsed < status.interval_seconds:
            remaining = status.interval_seconds - elapsed
            self.log.info(f"⏳ Epoch not complete yet. {format_duration(remaining)} remaining.")
            self.log.info("✓ Nothing to do, exiting.")
            return DriverOutcome.not_yet_due(f"{format_duration(remaining)} remaining")

        self.log.info("🚀 EPOCH COMPLETE - starting continuous processing...")
        outcome = await self._loop()

        if outcome.is_completed:
            await self._log_epoch_info()

        self.log.info(BANNER)
        self.log.info(f"Processed {outcome.attempts} batches - final state: {outcome.describe()}")
        self.log.info(BANNER)
        return outcome

    async def _loop(self) -> DriverOutcome:
        s = self.settings
        started = self._monotonic()
        batches = 0

        while True:
            if s.max_batches and batches >= s.max_batches:
                cause = f"no completion after {batches} batches"
                self.log.error(f"❌ {cause}")
                return DriverOutcome.aborted(cause, kind=AbortKind.TIMEOUT, attempts=batches)
            if s.max_runtime_sec and self._monotonic() - started >= s.max_runtime_sec:
                cause = f"no completion after {format_duration(s.max_runtime_sec)}"
                self.log.error(f"❌ {cause}")
                return DriverOutcome.aborted(cause, kind=AbortKind.TIMEOUT, attempts=batches)

            batches += 1
            self.log.info(f"─── Batch {batches} ───")

            try:
                if await self.reader.read_snapshot_in_progress():
                    progress = await self.reader.read_snapshot_progress()
                    self.log.info(progress.describe())
            except CommunicationError as exc:
                return self._read_failed(exc, batches - 1)

            result = await self.invoker.attempt(ACTION_START_EPOCH, s.gas_limit)

            if not result.success:
                kind = classify_failure(result.reason)
                if kind is FailureKind.DISTRIBUTION_ACTIVE:
                    self.log.info("✅ EPOCH COMPLETE! Distribution is now active.")
                    return DriverOutcome.completed(attempts=batches)
                if kind is FailureKind.CYCLE_NOT_COMPLETE:
                    self.log.warning("⚠️ Cycle not complete. Exiting.")
                    return DriverOutcome.not_yet_due(result.reason, attempts=batches)
                self.log.error(f"❌ Unexpected error from {result.action}: {result.reason}")
                return DriverOutcome.aborted(result.reason, kind=AbortKind.REMOTE_REJECTED, attempts=batches)

            try:
                started_now = await self._distribution_started()
            except CommunicationError as exc:
                return self._read_failed(exc, batches)
            if started_now:
                self.log.info("✅ EPOCH COMPLETE! Distribution is now active.")
                return DriverOutcome.completed(attempts=batches)

            await asyncio.sleep(s.call_delay_sec)

    def _read_failed(self, exc: CommunicationError, batches: int) -> DriverOutcome:
        self.log.error(f"❌ Read failed mid-run: {exc}")
        return DriverOutcome.aborted(str(exc), kind=AbortKind.COMMUNICATION_ERROR, attempts=batches)

    async def _distribution_started(self) -> bool:
        """Completion check after a successful batch.

        Once the snapshot has finished the flag can lag the write it depends on,
        so it is re-read up to settle_attempts times, settle_delay_sec apart.
        """
        if await self.reader.read_distribution_active():
            return True
        if await self.reader.read_snapshot_in_progress():
            return False
        for _ in range(max(1, self.settings.settle_attempts)):
            self.log.info("Checking if distribution started...")
            await asyncio.sleep(self.settings.settle_delay_sec)
            if await self.reader.read_distribution_active():
                return True
        return False

    async def _log_epoch_info(self) -> None:
        try:
            info = await self.reader.read_epoch_info()
        except CommunicationError as exc:
            self.log.debug(f"Epoch info read failed: {exc}")
            return
        if info is None:
            return
        self.log.info("─── New Epoch Info ───")
        self.log.info(f"Cycle: {info.cycle_id}")
        self.log.info(f"ETH Raised (new cycle): {format_eth(info.eth_raised)} ETH")
