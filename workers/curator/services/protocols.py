"""Provider contracts the curation engine depends on.

Every external collaborator of a run is reached through one of these
protocols so a run can be driven end to end with in-process fakes.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal, Protocol

from curator.engine.models import CategoryStats, RunLease

PAID_REWARDS_DATE = "1969-12-31T23:59:59"

SortKey = Literal["net_votes", "created"]


@dataclass(slots=True)
class ContributionFilter:
    """Conditions a stored contribution must meet; ``None`` fields are ignored."""

    reviewed: bool | None = True
    exclude_flagged: bool = True
    author: str | None = None
    exclude_author: str | None = None
    exclude_voter: str | None = None
    exclude_id: str | None = None
    created_before: datetime | None = None
    cashout_after: str | None = None


class ContentRepository(Protocol):
    async def count(self, contribution_filter: ContributionFilter) -> int:
        ...

    async def query(
        self,
        contribution_filter: ContributionFilter,
        *,
        limit: int,
        sort: SortKey = "net_votes",
    ) -> list[dict[str, Any]]:
        ...


class RunStateStore(Protocol):
    async def get_run_lease(self) -> RunLease:
        ...

    async def acquire_run_lease(self, *, holder: str, lease_seconds: int) -> RunLease | None:
        """Returns the new lease, or ``None`` when an unexpired lease is held."""
        ...

    async def release_run_lease(self, *, holder: str) -> None:
        ...

    async def get_category_stats(self) -> dict[str, CategoryStats]:
        ...


class ContentProvider(Protocol):
    async def get_content(self, author: str, permlink: str) -> dict[str, Any]:
        ...


class AccountInfoProvider(Protocol):
    async def get_accounts(self, names: list[str]) -> list[dict[str, Any]]:
        ...


class FollowProvider(Protocol):
    async def get_follow_count(self, account: str) -> dict[str, Any]:
        ...


class AuthorizationProvider(Protocol):
    async def refresh_access_token(self) -> str:
        ...


class ActionDispatcher(Protocol):
    async def vote(self, voter: str, author: str, permlink: str, weight: int) -> None:
        ...

    async def comment(
        self,
        parent_author: str,
        parent_permlink: str,
        author: str,
        permlink: str,
        body: str,
        json_metadata: dict[str, Any],
    ) -> None:
        ...
