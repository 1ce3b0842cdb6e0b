"""Small formatting helpers shared by the drivers."""

from __future__ import annotations

import time
from decimal import Decimal

from eth_utils import from_wei

BANNER = "═" * 60


def now_ts() -> int:
    return int(time.time())


def format_duration(seconds: int) -> str:
    s = max(0, int(seconds))
    return f"{s // 3600}h {(s % 3600) // 60}m {s % 60}s"


def format_eth(wei: int) -> str:
    value = from_wei(int(wei), "ether")
    return format(Decimal(value).normalize(), "f")
