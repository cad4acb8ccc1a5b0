from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from curator.services.protocols import PAID_REWARDS_DATE, ContributionFilter
from curator.services.repository import (
    LEASE_TAKEOVER_PREDICATE,
    PostgresRepository,
    RepositoryUnavailableError,
    _coerce_json,
)


def test_build_where_renders_eligibility_conditions() -> None:
    created_before = datetime(2018, 3, 10, 6, 0, tzinfo=timezone.utc)

    where_sql, params = PostgresRepository._build_where(
        ContributionFilter(
            exclude_author="curator-bot",
            exclude_voter="curator-bot",
            created_before=created_before,
            cashout_after=PAID_REWARDS_DATE,
        )
    )

    assert where_sql.startswith("c.reviewed = $1 and coalesce(c.flagged, false) = false")
    assert "c.author <> $2" in where_sql
    assert "vote->>'voter' = $3" in where_sql
    assert "c.created <= $4" in where_sql
    assert "c.cashout_time > $5" in where_sql
    assert params == [True, "curator-bot", "curator-bot", created_before, PAID_REWARDS_DATE]


def test_build_where_for_prior_contributions_keeps_flagged_posts() -> None:
    where_sql, params = PostgresRepository._build_where(
        ContributionFilter(reviewed=True, exclude_flagged=False, author="alice", exclude_id="42")
    )

    assert where_sql == "c.reviewed = $1 and c.author = $2 and c.id::text <> $3"
    assert params == [True, "alice", "42"]


def test_build_where_without_conditions_matches_everything() -> None:
    assert PostgresRepository._build_where(ContributionFilter(reviewed=None, exclude_flagged=False)) == ("true", [])


def test_contribution_rows_decode_json_columns() -> None:
    row = {
        "id": "1",
        "author": "alice",
        "permlink": "post",
        "json_metadata": '{"type": "ideas"}',
        "created": None,
        "cashout_time": "2030-01-01T00:00:00",
        "net_votes": None,
        "active_votes": "not json",
    }

    record = PostgresRepository._contribution_row_to_dict(row)

    assert record["json_metadata"] == {"type": "ideas"}
    assert record["active_votes"] == []
    assert record["net_votes"] == 0


def test_coerce_json_passes_decoded_values_through() -> None:
    assert _coerce_json([{"voter": "bob"}], default=[]) == [{"voter": "bob"}]
    assert _coerce_json(None, default={}) == {}


def test_repository_requires_database_url() -> None:
    repository = PostgresRepository(database_url=None, min_pool_size=1, max_pool_size=2)

    with pytest.raises(RepositoryUnavailableError):
        asyncio.run(repository.count(ContributionFilter()))


def test_lease_takeover_requires_released_or_expired_lease() -> None:
    released, expired = LEASE_TAKEOVER_PREDICATE.split(" or ", 1)

    assert released == "curator_run_state.active = false"
    assert expired == (
        "(curator_run_state.lease_expires_at is not null and curator_run_state.lease_expires_at <= now())"
    )
    assert "expires_at is null" not in LEASE_TAKEOVER_PREDICATE
