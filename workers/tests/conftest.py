from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx
import pytest

from curator.core.config import Settings
from curator.engine.errors import AuthFailure, TransientProviderError
from curator.engine.models import CategoryStats, RunLease
from curator.jobs.run_lease import lease_expired
from curator.services.protocols import ContributionFilter


class FakeRepository:
    def __init__(
        self,
        records: list[dict[str, Any]] | None = None,
        *,
        prior_contributions: dict[str, int] | None = None,
        stats: dict[str, CategoryStats] | None = None,
        lease: RunLease | None = None,
    ) -> None:
        self.records = list(records or [])
        self.prior_contributions = dict(prior_contributions or {})
        self.stats = dict(stats or {})
        self.lease = lease or RunLease(active=False)
        self.filters: list[ContributionFilter] = []
        self.queries = 0
        self.released_by: list[str] = []

    async def count(self, contribution_filter: ContributionFilter) -> int:
        self.filters.append(contribution_filter)
        if contribution_filter.author:
            return self.prior_contributions.get(contribution_filter.author, 0)
        return len(self.records)

    async def query(self, contribution_filter: ContributionFilter, *, limit: int, sort: str = "net_votes") -> list[dict[str, Any]]:
        self.queries += 1
        return self.records[:limit]

    async def get_category_stats(self) -> dict[str, CategoryStats]:
        return self.stats

    async def get_run_lease(self) -> RunLease:
        return self.lease

    async def acquire_run_lease(self, *, holder: str, lease_seconds: int) -> RunLease | None:
        now = datetime.now(timezone.utc)
        if self.lease.active and not lease_expired(self.lease, now=now):
            return None
        self.lease = RunLease(
            active=True,
            holder=holder,
            acquired_at=now,
            lease_expires_at=now + timedelta(seconds=lease_seconds),
        )
        return self.lease

    async def release_run_lease(self, *, holder: str) -> None:
        self.released_by.append(holder)
        if self.lease.holder == holder:
            self.lease = RunLease(active=False, holder=holder)


class FakeSteem:
    def __init__(self) -> None:
        self.contents: dict[tuple[str, str], dict[str, Any]] = {}
        self.accounts: dict[str, dict[str, Any]] = {}
        self.followers: dict[str, int] = {}
        self.content_failures: dict[tuple[str, str], int] = {}
        self.failing_accounts: set[str] = set()
        self.calls: list[tuple[str, Any]] = []

    async def get_content(self, author: str, permlink: str) -> dict[str, Any]:
        self.calls.append(("get_content", (author, permlink)))
        key = (author, permlink)
        if self.content_failures.get(key, 0) > 0:
            self.content_failures[key] -= 1
            raise TransientProviderError(f"node timeout for {author}/{permlink}")
        return self.contents[key]

    async def get_accounts(self, names: list[str]) -> list[dict[str, Any]]:
        self.calls.append(("get_accounts", tuple(names)))
        for name in names:
            if name in self.failing_accounts:
                raise TransientProviderError(f"get_accounts failed for {name}")
        return [self.accounts[name] for name in names if name in self.accounts]

    async def get_follow_count(self, account: str) -> dict[str, Any]:
        self.calls.append(("get_follow_count", account))
        return {"account": account, "follower_count": self.followers.get(account, 0)}


class FakeSteemConnect:
    def __init__(self, *, token: str | None = "access-token", vote_error: Exception | None = None) -> None:
        self.token = token
        self.vote_error = vote_error
        self.votes: list[tuple[str, str, str, int]] = []
        self.comments: list[dict[str, Any]] = []

    async def refresh_access_token(self) -> str:
        if not self.token:
            raise AuthFailure("token refresh returned no access token")
        return self.token

    async def vote(self, voter: str, author: str, permlink: str, weight: int) -> None:
        if self.vote_error is not None:
            raise self.vote_error
        self.votes.append((voter, author, permlink, weight))

    async def comment(
        self,
        parent_author: str,
        parent_permlink: str,
        author: str,
        permlink: str,
        body: str,
        json_metadata: dict[str, Any],
    ) -> None:
        self.comments.append(
            {
                "parent_author": parent_author,
                "parent_permlink": parent_permlink,
                "author": author,
                "permlink": permlink,
                "body": body,
                "json_metadata": json_metadata,
            }
        )


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def make_content(
    author: str,
    permlink: str,
    *,
    raw_type: str,
    net_votes: int = 1,
    votes: list[dict[str, Any]] | None = None,
    pending_payout: str = "0.000 SBD",
    cashout_time: str = "2030-01-01T00:00:00",
) -> dict[str, Any]:
    return {
        "id": 1,
        "author": author,
        "permlink": permlink,
        "json_metadata": json.dumps({"type": raw_type}),
        "created": "2018-03-01T00:00:00",
        "net_votes": net_votes,
        "active_votes": votes or [],
        "pending_payout_value": pending_payout,
        "total_payout_value": "0.000 SBD",
        "curator_payout_value": "0.000 SBD",
        "cashout_time": cashout_time,
    }


def make_record(record_id: str, author: str, permlink: str, *, raw_type: str, net_votes: int = 1) -> dict[str, Any]:
    return {
        "id": record_id,
        "author": author,
        "permlink": permlink,
        "json_metadata": {"type": raw_type},
        "created": datetime(2018, 3, 1, tzinfo=timezone.utc),
        "cashout_time": "2030-01-01T00:00:00",
        "net_votes": net_votes,
        "active_votes": [],
    }


@pytest.fixture
def settings() -> Settings:
    return Settings(
        agent_account="curator-bot",
        refresh_token="refresh",
        client_secret="secret",
        inter_call_delay_seconds=3.0,
        otel_enabled=False,
    )


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def http_error() -> httpx.HTTPError:
    return httpx.ConnectError("broadcast gateway unreachable")
