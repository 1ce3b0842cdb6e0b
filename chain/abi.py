#!/usr/bin/env python3
"""Rewards contract ABI surface: calldata encoding, return decoding, revert reasons."""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence, Tuple

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_abi.exceptions import DecodingError
from eth_utils import keccak

from .rpc import RpcError

# name -> (signature, output types)
VIEW_FUNCTIONS: Dict[str, Tuple[str, Tuple[str, ...]]] = {
    "isDistActive": ("isDistActive()", ("bool",)),
    "accStartTime": ("accStartTime()", ("uint256",)),
    "distStartTime": ("distStartTime()", ("uint256",)),
    "cycleInterval": ("cycleInterval()", ("uint256",)),
    "currentDisplayCycleId": ("currentDisplayCycleId()", ("uint256",)),
    "isSnapshotInProgress": ("isSnapshotInProgress()", ("bool",)),
    # nftProgress, nftTotal, nftDone, tokenProgress, tokenTotal, tokenDone
    "getSnapshotProgress": (
        "getSnapshotProgress()",
        ("uint256", "uint256", "bool", "uint256", "uint256", "bool"),
    ),
    # cycleId, ethRaised, ethForRewards, timeElapsed, timeRemaining, isEpochComplete, isSnapshotActive
    "getCurrentEpochInfo": (
        "getCurrentEpochInfo()",
        ("uint256", "uint256", "uint256", "uint256", "uint256", "bool", "bool"),
    ),
}

ACTION_START_EPOCH = "batchStartEpoch"
ACTION_END_CYCLE = "batchEndCycle"
ACTION_FLUSH = "flushDistributions"

ACTION_FUNCTIONS: Dict[str, str] = {
    ACTION_START_EPOCH: "batchStartEpoch()",
    ACTION_END_CYCLE: "batchEndCycle()",
    ACTION_FLUSH: "flushDistributions()",
}

ERROR_SELECTOR = keccak(text="Error(string)")[:4]
PANIC_SELECTOR = keccak(text="Panic(uint256)")[:4]

_REVERT_PREFIXES = ("execution reverted: ", "execution reverted")


class AbiError(ValueError):
    """Return data could not be decoded with the expected output types."""


def selector(signature: str) -> bytes:
    return keccak(text=signature)[:4]


def encode_call(signature: str, arg_types: Sequence[str] = (), args: Sequence[Any] = ()) -> str:
    encoded_args = abi_encode(list(arg_types), list(args)) if arg_types else b""
    return "0x" + (selector(signature) + encoded_args).hex()


def encode_view(name: str) -> str:
    signature, _ = VIEW_FUNCTIONS[name]
    return encode_call(signature)


def encode_action(name: str) -> str:
    try:
        signature = ACTION_FUNCTIONS[name]
    except KeyError as exc:
        raise AbiError(f"Unknown action: {name}") from exc
    return encode_call(signature)


def _to_bytes(data: Any) -> bytes:
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    text = str(data or "").strip()
    if text.startswith(("0x", "0X")):
        text = text[2:]
    try:
        return bytes.fromhex(text)
    except ValueError as exc:
        raise AbiError(f"Not hex data: {data!r}") from exc


def decode_view(name: str, data: Any) -> Tuple[Any, ...]:
    _, output_types = VIEW_FUNCTIONS[name]
    raw = _to_bytes(data)
    if not raw:
        # Empty return usually means the function does not exist on this contract.
        raise AbiError(f"{name} returned no data")
    try:
        return tuple(abi_decode(list(output_types), raw))
    except DecodingError as exc:
        raise AbiError(f"{name} returned malformed data: {exc}") from exc


def decode_revert_data(data: Any) -> Optional[str]:
    """Decode Error(string) / Panic(uint256) revert payloads; None if unrecognised."""
    try:
        raw = _to_bytes(data)
    except AbiError:
        return None
    if len(raw) < 4:
        return None
    head, body = raw[:4], raw[4:]
    try:
        if head == ERROR_SELECTOR:
            return str(abi_decode(["string"], body)[0])
        if head == PANIC_SELECTOR:
            return f"panic {hex(abi_decode(['uint256'], body)[0])}"
    except DecodingError:
        return None
    return None


def revert_reason(exc: RpcError) -> str:
    """Most specific human-readable reason carried by an RpcError."""
    data = exc.data
    if isinstance(data, dict):
        data = data.get("data") or data.get("message")
    decoded = decode_revert_data(data) if isinstance(data, (str, bytes, bytearray)) else None
    if decoded:
        return decoded
    message = str(exc.message or "").strip()
    for prefix in _REVERT_PREFIXES:
        if message.startswith(prefix) and len(message) > len(prefix):
            return message[len(prefix):].strip()
    return message or str(exc)
