from __future__ import annotations

import json
import logging
from functools import lru_cache
from typing import Any

import asyncpg  # type: ignore[import-untyped]

from curator.core.config import get_settings
from curator.engine.models import CategoryStats, RunLease
from curator.services.protocols import ContributionFilter, SortKey

logger = logging.getLogger(__name__)

RUN_STATE_ID = 1

# A run may take over the lease only when it is released or has run out. An
# active lease without an expiry stays held until it is cleared by hand.
LEASE_TAKEOVER_PREDICATE = (
    "curator_run_state.active = false "
    "or (curator_run_state.lease_expires_at is not null and curator_run_state.lease_expires_at <= now())"
)


class RepositoryError(Exception):
    """Base repository error."""


class RepositoryUnavailableError(RepositoryError):
    """Raised when the database is unavailable or not configured."""


class PostgresRepository:
    """Stored contributions, category stats and the run lease.

    Expected tables::

        contributions(id text, author text, permlink text, json_metadata jsonb,
                      reviewed bool, flagged bool, created timestamptz,
                      cashout_time text, net_votes int, active_votes jsonb)
        curation_category_stats(category text, average_paid_authors numeric,
                                average_paid_curators numeric)
        curator_run_state(id int, active bool, holder text,
                          acquired_at timestamptz, lease_expires_at timestamptz)
    """

    def __init__(self, database_url: str | None, min_pool_size: int, max_pool_size: int) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self._pool: asyncpg.Pool | None = None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def count(self, contribution_filter: ContributionFilter) -> int:
        pool = await self._get_pool()
        where_sql, params = self._build_where(contribution_filter)
        value = await pool.fetchval(f"select count(*) from contributions c where {where_sql}", *params)
        return int(value or 0)

    async def query(
        self,
        contribution_filter: ContributionFilter,
        *,
        limit: int,
        sort: SortKey = "net_votes",
    ) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        where_sql, params = self._build_where(contribution_filter)
        order_by_sql = "c.net_votes desc, c.created asc" if sort == "net_votes" else "c.created desc"
        params.append(max(0, limit))
        rows = await pool.fetch(
            f"""
            select
              c.id::text as id,
              c.author,
              c.permlink,
              c.json_metadata,
              c.created,
              c.cashout_time,
              c.net_votes,
              c.active_votes
            from contributions c
            where {where_sql}
            order by {order_by_sql}
            limit ${len(params)}
            """,
            *params,
        )
        return [self._contribution_row_to_dict(row) for row in rows]

    async def get_category_stats(self) -> dict[str, CategoryStats]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            """
            select category, average_paid_authors, average_paid_curators
            from curation_category_stats
            """
        )
        return {
            row["category"]: CategoryStats(
                average_paid_authors=float(row["average_paid_authors"] or 0),
                average_paid_curators=float(row["average_paid_curators"] or 0),
            )
            for row in rows
        }

    async def get_run_lease(self) -> RunLease:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            """
            select active, holder, acquired_at, lease_expires_at
            from curator_run_state
            where id = $1
            """,
            RUN_STATE_ID,
        )
        if row is None:
            return RunLease(active=False)
        return self._lease_row_to_lease(row)

    async def acquire_run_lease(self, *, holder: str, lease_seconds: int) -> RunLease | None:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                previous = await conn.fetchrow(
                    """
                    select active, holder, lease_expires_at
                    from curator_run_state
                    where id = $1
                    for update
                    """,
                    RUN_STATE_ID,
                )
                row = await conn.fetchrow(
                    f"""
                    insert into curator_run_state (id, active, holder, acquired_at, lease_expires_at)
                    values ($1, true, $2, now(), now() + ($3::int * interval '1 second'))
                    on conflict (id) do update
                    set
                      active = true,
                      holder = excluded.holder,
                      acquired_at = excluded.acquired_at,
                      lease_expires_at = excluded.lease_expires_at
                    where {LEASE_TAKEOVER_PREDICATE}
                    returning active, holder, acquired_at, lease_expires_at
                    """,
                    RUN_STATE_ID,
                    holder,
                    lease_seconds,
                )
                if row is None:
                    return None
                if previous is not None and previous["active"]:
                    logger.warning(
                        "recovered expired run lease held by %s (expired at %s)",
                        previous["holder"],
                        previous["lease_expires_at"],
                    )
                return self._lease_row_to_lease(row)

    async def release_run_lease(self, *, holder: str) -> None:
        pool = await self._get_pool()
        await pool.execute(
            """
            update curator_run_state
            set active = false, lease_expires_at = null
            where id = $1 and holder = $2
            """,
            RUN_STATE_ID,
            holder,
        )

    @staticmethod
    def _build_where(contribution_filter: ContributionFilter) -> tuple[str, list[Any]]:
        conditions: list[str] = []
        params: list[Any] = []

        def bind(value: Any) -> str:
            params.append(value)
            return f"${len(params)}"

        if contribution_filter.reviewed is not None:
            conditions.append(f"c.reviewed = {bind(contribution_filter.reviewed)}")
        if contribution_filter.exclude_flagged:
            conditions.append("coalesce(c.flagged, false) = false")
        if contribution_filter.author:
            conditions.append(f"c.author = {bind(contribution_filter.author)}")
        if contribution_filter.exclude_author:
            conditions.append(f"c.author <> {bind(contribution_filter.exclude_author)}")
        if contribution_filter.exclude_id:
            conditions.append(f"c.id::text <> {bind(contribution_filter.exclude_id)}")
        if contribution_filter.exclude_voter:
            token = bind(contribution_filter.exclude_voter)
            conditions.append(
                "not exists (select 1 from jsonb_array_elements(coalesce(c.active_votes, '[]'::jsonb)) as vote "
                f"where vote->>'voter' = {token})"
            )
        if contribution_filter.created_before is not None:
            conditions.append(f"c.created <= {bind(contribution_filter.created_before)}")
        if contribution_filter.cashout_after is not None:
            conditions.append(f"c.cashout_time > {bind(contribution_filter.cashout_after)}")

        return (" and ".join(conditions) if conditions else "true"), params

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise RepositoryUnavailableError("CURATOR_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=15,
            )
            return self._pool
        except Exception as exc:  # pragma: no cover - depends on environment
            raise RepositoryUnavailableError("database unavailable") from exc

    @staticmethod
    def _contribution_row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
        json_metadata = _coerce_json(row["json_metadata"], default={})
        active_votes = _coerce_json(row["active_votes"], default=[])
        return {
            "id": row["id"],
            "author": row["author"],
            "permlink": row["permlink"],
            "json_metadata": json_metadata if isinstance(json_metadata, dict) else {},
            "created": row["created"],
            "cashout_time": row["cashout_time"],
            "net_votes": int(row["net_votes"] or 0),
            "active_votes": active_votes if isinstance(active_votes, list) else [],
        }

    @staticmethod
    def _lease_row_to_lease(row: asyncpg.Record) -> RunLease:
        return RunLease(
            active=bool(row["active"]),
            holder=row["holder"],
            acquired_at=row["acquired_at"],
            lease_expires_at=row["lease_expires_at"],
        )


def _coerce_json(value: Any, *, default: Any) -> Any:
    if isinstance(value, str):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return default
    if value is None:
        return default
    return value


@lru_cache
def get_repository() -> PostgresRepository:
    settings = get_settings()
    return PostgresRepository(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
    )
