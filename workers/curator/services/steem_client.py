from __future__ import annotations

import itertools
import json
import math
from typing import Any

import httpx

from curator.engine.errors import TransientProviderError


class SteemClient:
    """JSON-RPC client for the content platform's public API nodes."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport
        self._ids = itertools.count(1)

    async def get_accounts(self, names: list[str]) -> list[dict[str, Any]]:
        result = await self._call("condenser_api.get_accounts", [names])
        return result if isinstance(result, list) else []

    async def get_follow_count(self, account: str) -> dict[str, Any]:
        result = await self._call("condenser_api.get_follow_count", [account])
        if not isinstance(result, dict):
            raise TransientProviderError(f"unexpected follow count payload for {account}")
        return result

    async def get_content(self, author: str, permlink: str) -> dict[str, Any]:
        result = await self._call("condenser_api.get_content", [author, permlink])
        # Missing posts come back as an empty shell with a blank author.
        if not isinstance(result, dict) or not result.get("author"):
            raise TransientProviderError(f"content not found: {author}/{permlink}")
        return result

    async def _call(self, method: str, params: list[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.base_url, json=payload)
                response.raise_for_status()
                body = response.json()
        except (httpx.HTTPError, json.JSONDecodeError) as exc:
            raise TransientProviderError(f"{method} failed: {exc}") from exc

        if not isinstance(body, dict):
            raise TransientProviderError(f"{method} returned a non-object response")
        if body.get("error"):
            error = body["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise TransientProviderError(f"{method} error: {message}")
        return body.get("result")


def format_reputation(raw: Any) -> int:
    """Converts a raw on-chain reputation value to the familiar 25-based score."""
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return 25
    if value == 0:
        return 25
    negative = value < 0
    reputation = max(math.log10(abs(value)) - 9, 0.0)
    if negative:
        reputation = -reputation
    return int(reputation * 9 + 25)


def parse_asset(value: Any) -> float:
    """Reads the amount out of an asset string such as ``"1.234 SBD"``."""
    if isinstance(value, (int, float)):
        return float(value)
    if not isinstance(value, str):
        return 0.0
    amount, _, _ = value.strip().partition(" ")
    try:
        return float(amount)
    except ValueError:
        return 0.0
