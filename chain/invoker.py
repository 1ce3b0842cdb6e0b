#!/usr/bin/env python3
"""Single-attempt executor for state-mutating contract calls.

Pattern: simulate with eth_call first, then sign locally (eth_account), submit
the raw transaction and poll for the receipt. A failed simulation never
reaches submission, so a call that is guaranteed to revert costs no gas.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, Optional

from eth_account import Account

from logging_utils import get_logger

from .abi import encode_action, revert_reason
from .base import (
    STAGE_CONFIRMATION,
    STAGE_SIMULATION,
    STAGE_SUBMISSION,
    ActionResult,
    TxReceipt,
)
from .rpc import CommunicationError, JsonRpcClient, RpcError

# Fallback tip when the node does not implement eth_maxPriorityFeePerGas.
DEFAULT_PRIORITY_FEE_WEI = 1_500_000_000


class ActionInvoker:
    """Generic over the action; reused for start-epoch, end-cycle and flush."""

    def __init__(
        self,
        rpc: JsonRpcClient,
        contract_address: str,
        private_key: str,
        log: Optional[logging.Logger] = None,
        receipt_timeout_sec: float = 180.0,
        receipt_poll_sec: float = 2.0,
    ):
        self.rpc = rpc
        self.contract_address = contract_address
        self.log = log or get_logger(__name__)
        self.receipt_timeout_sec = float(receipt_timeout_sec)
        self.receipt_poll_sec = float(receipt_poll_sec)
        self._account = Account.from_key(private_key)
        self._chain_id: Optional[int] = None

    @property
    def address(self) -> str:
        return self._account.address

    async def balance_wei(self) -> int:
        return await self.rpc.get_quantity("eth_getBalance", [self.address, "latest"])

    async def attempt(self, action: str, gas_limit: int) -> ActionResult:
        """One simulate -> submit -> confirm pass. Never raises for remote failures."""
        self.log.info(f"→ Calling {action}()...")
        data = encode_action(action)

        reason = await self._simulate(data)
        if reason is not None:
            self.log.warning(f"  ✗ FAILED (simulation): {reason}")
            return ActionResult.failed(action, reason, STAGE_SIMULATION)

        try:
            tx_hash = await self._submit(data, gas_limit)
        except RpcError as exc:
            reason = revert_reason(exc)
            self.log.warning(f"  ✗ FAILED (submission): {reason}")
            return ActionResult.failed(action, reason, STAGE_SUBMISSION)
        except CommunicationError as exc:
            self.log.warning(f"  ✗ FAILED (submission): {exc}")
            return ActionResult.failed(action, str(exc), STAGE_SUBMISSION)
        self.log.info(f"  TX: {tx_hash}")

        try:
            receipt = await self._wait_for_receipt(tx_hash)
        except (RpcError, CommunicationError) as exc:
            self.log.warning(f"  ✗ FAILED (confirmation): {exc}")
            return ActionResult.failed(action, str(exc), STAGE_CONFIRMATION, tx_hash=tx_hash)

        if receipt is None:
            reason = f"timed out after {self.receipt_timeout_sec:.0f}s waiting for receipt of {tx_hash}"
            self.log.warning(f"  ✗ FAILED (confirmation): {reason}")
            return ActionResult.failed(action, reason, STAGE_CONFIRMATION, tx_hash=tx_hash)
        if not receipt.succeeded:
            reason = f"transaction reverted (tx {tx_hash}, gas: {receipt.gas_used})"
            self.log.warning(f"  ✗ FAILED (confirmation): {reason}")
            return ActionResult.failed(action, reason, STAGE_CONFIRMATION, tx_hash=tx_hash)

        self.log.info(f"  ✓ SUCCESS (gas: {receipt.gas_used}, block: {receipt.block_number})")
        return ActionResult.ok(action, receipt)

    async def _simulate(self, data: str) -> Optional[str]:
        """Return None if the call would succeed, else the failure reason."""
        try:
            await self.rpc.eth_call(self.contract_address, data, sender=self.address)
        except RpcError as exc:
            return revert_reason(exc)
        except CommunicationError as exc:
            return str(exc)
        return None

    async def _chain_id_value(self) -> int:
        if self._chain_id is None:
            self._chain_id = await self.rpc.get_quantity("eth_chainId")
        return self._chain_id

    async def _fee_fields(self) -> Dict[str, Any]:
        block = await self.rpc.call("eth_getBlockByNumber", ["latest", False])
        base_fee_raw = block.get("baseFeePerGas") if isinstance(block, dict) else None
        if not base_fee_raw:
            return {"gasPrice": await self.rpc.get_quantity("eth_gasPrice")}
        base_fee = int(str(base_fee_raw), 16)
        try:
            priority = await self.rpc.get_quantity("eth_maxPriorityFeePerGas")
        except RpcError:
            priority = DEFAULT_PRIORITY_FEE_WEI
        return {
            "type": 2,
            "maxFeePerGas": base_fee * 2 + priority,
            "maxPriorityFeePerGas": priority,
        }

    async def _submit(self, data: str, gas_limit: int) -> str:
        nonce = await self.rpc.get_quantity("eth_getTransactionCount", [self.address, "pending"])
        tx: Dict[str, Any] = {
            "chainId": await self._chain_id_value(),
            "nonce": nonce,
            "to": self.contract_address,
            "value": 0,
            "data": data,
            "gas": int(gas_limit),
        }
        tx.update(await self._fee_fields())
        signed = Account.sign_transaction(tx, self._account.key)
        raw_tx = getattr(signed, "raw_transaction", None)
        if raw_tx is None:
            raw_tx = getattr(signed, "rawTransaction")
        result = await self.rpc.call("eth_sendRawTransaction", ["0x" + bytes(raw_tx).hex()], retry=False)
        return str(result)

    async def _wait_for_receipt(self, tx_hash: str) -> Optional[TxReceipt]:
        deadline = time.monotonic() + self.receipt_timeout_sec
        while True:
            data = await self.rpc.call("eth_getTransactionReceipt", [tx_hash])
            if isinstance(data, dict) and data.get("blockNumber"):
                return TxReceipt.from_rpc(data)
            if time.monotonic() >= deadline:
                return None
            await asyncio.sleep(self.receipt_poll_sec)
