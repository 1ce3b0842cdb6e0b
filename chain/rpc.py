#!/usr/bin/env python3
"""Minimal async JSON-RPC client for an EVM node (aiohttp POST)."""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Any, List, Optional

import aiohttp

from logging_utils import get_logger

# Max retries on 429 before giving up
MAX_RPC_RETRIES = 3


class CommunicationError(RuntimeError):
    """Endpoint unreachable or returned something that is not a JSON-RPC response."""


class RpcError(RuntimeError):
    """The node answered with a JSON-RPC error object (reverts land here)."""

    def __init__(self, method: str, code: Optional[int], message: str, data: Any = None) -> None:
        super().__init__(f"{method} failed ({code}): {message}")
        self.method = method
        self.code = code
        self.message = message
        self.data = data


class JsonRpcClient:
    """One aiohttp session per process; calls are awaited strictly one at a time."""

    def __init__(self, url: str, log: Optional[logging.Logger] = None, timeout_sec: float = 30.0):
        self.url = url
        self.log = log or get_logger(__name__)
        self.timeout_sec = float(timeout_sec)
        self._session: Optional[aiohttp.ClientSession] = None
        self._ids = itertools.count(1)

    async def open(self) -> None:
        if self._session and not self._session.closed:
            return
        self._session = aiohttp.ClientSession(
            headers={"Content-Type": "application/json"},
            timeout=aiohttp.ClientTimeout(total=self.timeout_sec),
        )

    async def close(self) -> None:
        """Close aiohttp session to avoid resource leaks."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> "JsonRpcClient":
        await self.open()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def call(self, method: str, params: Optional[List[Any]] = None, retry: bool = True) -> Any:
        """POST one JSON-RPC request and return its ``result``.

        429 responses are retried up to MAX_RPC_RETRIES when *retry* is set.
        Raw transaction submission passes retry=False so an ambiguous answer is
        never resent.
        """
        if not self._session or self._session.closed:
            raise CommunicationError("RPC session not available (not opened or closed)")

        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": list(params or []),
        }
        attempts = MAX_RPC_RETRIES if retry else 1
        for attempt in range(attempts):
            try:
                async with self._session.post(self.url, json=payload) as resp:
                    if resp.status == 429 and attempt + 1 < attempts:
                        self.log.warning(
                            f"429 rate limit on {method} (attempt {attempt + 1}/{attempts})"
                        )
                        await asyncio.sleep(0.5 * (attempt + 1))
                        continue
                    if resp.status != 200:
                        text = await resp.text()
                        raise CommunicationError(f"HTTP {resp.status} on {method}: {text[:200]}")
                    body = await resp.json(content_type=None)
            except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
                raise CommunicationError(f"{method} request failed: {exc}") from exc
            return self._unwrap(method, body)

        raise CommunicationError(f"{method} rate limited (429) after {attempts} attempts")

    @staticmethod
    def _unwrap(method: str, body: Any) -> Any:
        if not isinstance(body, dict):
            raise CommunicationError(f"{method} returned non-object payload")
        error = body.get("error")
        if error not in (None, {}):
            if isinstance(error, dict):
                raise RpcError(method, error.get("code"), str(error.get("message") or ""), error.get("data"))
            raise RpcError(method, None, str(error))
        if "result" not in body:
            raise CommunicationError(f"{method} response missing result")
        return body["result"]

    # ------------------------------------------------------------------ helpers

    async def eth_call(self, to: str, data: str, sender: Optional[str] = None) -> str:
        tx = {"to": to, "data": data}
        if sender:
            tx["from"] = sender
        result = await self.call("eth_call", [tx, "latest"])
        if not isinstance(result, str):
            raise CommunicationError(f"eth_call returned non-hex result: {result!r}")
        return result

    async def get_quantity(self, method: str, params: Optional[List[Any]] = None) -> int:
        result = await self.call(method, params)
        try:
            return int(str(result), 16)
        except (TypeError, ValueError) as exc:
            raise CommunicationError(f"{method} returned non-numeric result: {result!r}") from exc
