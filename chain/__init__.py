"""Rewards contract access: JSON-RPC transport, state reader and action invoker."""

from .base import ActionResult, CycleStatus, EpochInfo, SnapshotProgress, TxReceipt
from .invoker import ActionInvoker
from .rewards import RewardsContract
from .rpc import CommunicationError, JsonRpcClient, RpcError

__all__ = [
    "ActionResult",
    "CycleStatus",
    "EpochInfo",
    "SnapshotProgress",
    "TxReceipt",
    "ActionInvoker",
    "RewardsContract",
    "CommunicationError",
    "JsonRpcClient",
    "RpcError",
]
