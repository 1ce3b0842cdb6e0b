#!/usr/bin/env python3
"""Read-only view of the rewards contract (cycle status, snapshot progress)."""

from __future__ import annotations

import logging
from typing import Any, Optional, Tuple

from logging_utils import get_logger

from .abi import AbiError, decode_view, encode_view
from .base import CycleStatus, EpochInfo, SnapshotProgress
from .rpc import CommunicationError, JsonRpcClient, RpcError


class RewardsContract:
    """Pure queries against the rewards contract at block ``latest``.

    Failures surface as CommunicationError; no retries happen here, callers own
    the retry policy.
    """

    def __init__(self, rpc: JsonRpcClient, address: str, log: Optional[logging.Logger] = None):
        self.rpc = rpc
        self.address = address
        self.log = log or get_logger(__name__)

    async def _view(self, name: str) -> Tuple[Any, ...]:
        try:
            raw = await self.rpc.eth_call(self.address, encode_view(name))
            return decode_view(name, raw)
        except (RpcError, AbiError) as exc:
            raise CommunicationError(f"{name}() read failed: {exc}") from exc

    async def _view_one(self, name: str) -> Any:
        return (await self._view(name))[0]

    async def read_distribution_active(self) -> bool:
        return bool(await self._view_one("isDistActive"))

    async def read_snapshot_in_progress(self) -> bool:
        return bool(await self._view_one("isSnapshotInProgress"))

    async def read_snapshot_progress(self) -> SnapshotProgress:
        nft_progress, nft_total, nft_done, token_progress, token_total, token_done = await self._view(
            "getSnapshotProgress"
        )
        return SnapshotProgress(
            nft_progress=int(nft_progress),
            nft_total=int(nft_total),
            nft_done=bool(nft_done),
            token_progress=int(token_progress),
            token_total=int(token_total),
            token_done=bool(token_done),
        )

    async def read_status(self) -> CycleStatus:
        in_progress = await self.read_snapshot_in_progress()
        return CycleStatus(
            cycle_id=int(await self._view_one("currentDisplayCycleId")),
            interval_seconds=int(await self._view_one("cycleInterval")),
            accumulation_start=int(await self._view_one("accStartTime")),
            distribution_start=int(await self._view_one("distStartTime")),
            is_distribution_active=await self.read_distribution_active(),
            is_snapshot_in_progress=in_progress,
            snapshot_progress=await self.read_snapshot_progress() if in_progress else None,
        )

    async def read_epoch_info(self) -> Optional[EpochInfo]:
        """Best-effort: older contracts lack getCurrentEpochInfo()."""
        try:
            values = await self._view("getCurrentEpochInfo")
        except CommunicationError as exc:
            self.log.debug(f"getCurrentEpochInfo unavailable: {exc}")
            return None
        cycle_id, raised, for_rewards, elapsed, remaining, complete, snap_active = values
        return EpochInfo(
            cycle_id=int(cycle_id),
            eth_raised=int(raised),
            eth_for_rewards=int(for_rewards),
            time_elapsed=int(elapsed),
            time_remaining=int(remaining),
            is_epoch_complete=bool(complete),
            is_snapshot_active=bool(snap_active),
        )
