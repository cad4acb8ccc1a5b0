from __future__ import annotations

import json
from typing import Any

import httpx

from curator.engine.errors import AuthFailure


class SteemConnectClient:
    """OAuth token refresh plus vote/comment broadcast through the signing gateway."""

    def __init__(
        self,
        host: str,
        *,
        refresh_token: str,
        client_secret: str,
        scopes: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.host = host.rstrip("/")
        self.refresh_token = refresh_token
        self.client_secret = client_secret
        self.scopes = scopes
        self.timeout = timeout
        self.transport = transport
        self.access_token: str | None = None

    async def refresh_access_token(self) -> str:
        params = {
            "refresh_token": self.refresh_token,
            "client_secret": self.client_secret,
            "scope": self.scopes,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(f"{self.host}/api/oauth2/token", params=params)
                payload = response.json()
        except (httpx.HTTPError, json.JSONDecodeError) as exc:
            raise AuthFailure(f"token refresh failed: {exc}") from exc

        token = payload.get("access_token") if isinstance(payload, dict) else None
        if not token:
            raise AuthFailure(f"token refresh returned no access token (status={response.status_code})")
        self.access_token = str(token)
        return self.access_token

    async def vote(self, voter: str, author: str, permlink: str, weight: int) -> None:
        await self._broadcast(
            [
                [
                    "vote",
                    {"voter": voter, "author": author, "permlink": permlink, "weight": weight},
                ]
            ]
        )

    async def comment(
        self,
        parent_author: str,
        parent_permlink: str,
        author: str,
        permlink: str,
        body: str,
        json_metadata: dict[str, Any],
    ) -> None:
        await self._broadcast(
            [
                [
                    "comment",
                    {
                        "parent_author": parent_author,
                        "parent_permlink": parent_permlink,
                        "author": author,
                        "permlink": permlink,
                        "title": "",
                        "body": body,
                        "json_metadata": json.dumps(json_metadata),
                    },
                ]
            ]
        )

    async def _broadcast(self, operations: list[list[Any]]) -> dict[str, Any]:
        if not self.access_token:
            raise AuthFailure("broadcast attempted without an access token")
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.post(
                f"{self.host}/api/broadcast",
                json={"operations": operations},
                headers={"Authorization": self.access_token},
            )
            response.raise_for_status()
        try:
            payload = response.json()
        except json.JSONDecodeError:
            # Replies are not read; an empty acknowledgement is accepted.
            return {}
        return payload if isinstance(payload, dict) else {}
