#!/usr/bin/env python3
"""
Shared dataclasses for the rewards contract surface.

- CycleStatus / SnapshotProgress: point-in-time reads of the reward cycle
- EpochInfo: optional bot-friendly summary (newer contracts only)
- TxReceipt / ActionResult: outcome of one state-mutating attempt
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class SnapshotProgress:
    """Per-category holder snapshot counters."""
    nft_progress: int
    nft_total: int
    nft_done: bool
    token_progress: int
    token_total: int
    token_done: bool

    def describe(self) -> str:
        return (
            f"NFT: {self.nft_progress}/{self.nft_total} (done: {self.nft_done}) | "
            f"Token: {self.token_progress}/{self.token_total} (done: {self.token_done})"
        )


@dataclass(frozen=True)
class CycleStatus:
    cycle_id: int
    interval_seconds: int
    accumulation_start: int
    distribution_start: int
    is_distribution_active: bool
    is_snapshot_in_progress: bool
    snapshot_progress: Optional[SnapshotProgress] = None

    def accumulation_elapsed(self, now: int) -> int:
        return int(now) - int(self.accumulation_start)

    def distribution_elapsed(self, now: int) -> int:
        return int(now) - int(self.distribution_start)


@dataclass(frozen=True)
class EpochInfo:
    cycle_id: int
    eth_raised: int
    eth_for_rewards: int
    time_elapsed: int
    time_remaining: int
    is_epoch_complete: bool
    is_snapshot_active: bool


@dataclass(frozen=True)
class TxReceipt:
    tx_hash: str
    block_number: int
    gas_used: int
    status: int

    @property
    def succeeded(self) -> bool:
        return self.status == 1

    @classmethod
    def from_rpc(cls, data: Dict[str, Any]) -> "TxReceipt":
        """Build from an eth_getTransactionReceipt result (hex quantities)."""
        return cls(
            tx_hash=str(data.get("transactionHash") or ""),
            block_number=int(str(data.get("blockNumber") or "0x0"), 16),
            gas_used=int(str(data.get("gasUsed") or "0x0"), 16),
            status=int(str(data.get("status") or "0x0"), 16),
        )


STAGE_SIMULATION = "simulation"
STAGE_SUBMISSION = "submission"
STAGE_CONFIRMATION = "confirmation"


@dataclass
class ActionResult:
    """Result of one ActionInvoker attempt: Success(receipt) or Failure(reason)."""
    action: str
    success: bool
    receipt: Optional[TxReceipt] = None
    reason: str = ""
    stage: str = ""
    tx_hash: Optional[str] = None

    @classmethod
    def ok(cls, action: str, receipt: TxReceipt) -> "ActionResult":
        return cls(action=action, success=True, receipt=receipt, tx_hash=receipt.tx_hash)

    @classmethod
    def failed(
        cls,
        action: str,
        reason: str,
        stage: str,
        tx_hash: Optional[str] = None,
    ) -> "ActionResult":
        return cls(action=action, success=False, reason=reason, stage=stage, tx_hash=tx_hash)
