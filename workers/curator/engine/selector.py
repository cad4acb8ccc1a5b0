from __future__ import annotations

import json
import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

from curator.core.retry import RetryPolicy
from curator.engine.errors import TransientProviderError
from curator.engine.models import ActiveVote, Candidate
from curator.services.protocols import (
    PAID_REWARDS_DATE,
    ContentProvider,
    ContentRepository,
    ContributionFilter,
)
from curator.services.steem_client import parse_asset

logger = logging.getLogger(__name__)

RankingKey = Callable[[Candidate], Any]


def by_net_votes(candidate: Candidate) -> tuple[int, datetime]:
    created = candidate.created or datetime.max.replace(tzinfo=timezone.utc)
    return (-candidate.net_votes, created)


def eligibility_filter(agent_account: str, *, min_age: timedelta, now: datetime) -> ContributionFilter:
    return ContributionFilter(
        reviewed=True,
        exclude_author=agent_account,
        exclude_voter=agent_account,
        created_before=now - min_age,
        cashout_after=PAID_REWARDS_DATE,
    )


class CandidateSelector:
    def __init__(
        self,
        repository: ContentRepository,
        content_provider: ContentProvider,
        *,
        agent_account: str,
        min_age: timedelta,
        retry_policy: RetryPolicy,
        ranking_key: RankingKey = by_net_votes,
    ) -> None:
        self.repository = repository
        self.content_provider = content_provider
        self.agent_account = agent_account
        self.min_age = min_age
        self.retry_policy = retry_policy
        self.ranking_key = ranking_key

    async def select(self, *, now: datetime | None = None) -> list[Candidate]:
        now = now or datetime.now(timezone.utc)
        contribution_filter = eligibility_filter(self.agent_account, min_age=self.min_age, now=now)
        total = await self.repository.count(contribution_filter)
        if total <= 0:
            return []
        records = await self.repository.query(contribution_filter, limit=total, sort="net_votes")

        candidates: list[Candidate] = []
        for record in records:
            author = str(record.get("author") or "")
            permlink = str(record.get("permlink") or "")
            try:
                content = await self.retry_policy.run(
                    lambda: self.content_provider.get_content(author, permlink),
                    label=f"get_content {author}/{permlink}",
                )
            except TransientProviderError as exc:
                logger.error("dropping %s/%s: content lookup exhausted retries: %s", author, permlink, exc)
                continue

            candidate = candidate_from_content(record, content)
            if not self._still_eligible(candidate):
                logger.info("dropping %s/%s: no longer eligible", author, permlink)
                continue
            candidates.append(candidate)

        candidates.sort(key=self.ranking_key)
        logger.info("selected %s of %s stored contributions", len(candidates), len(records))
        return candidates

    def _still_eligible(self, candidate: Candidate) -> bool:
        if candidate.author == self.agent_account:
            return False
        if self.agent_account in candidate.voters:
            return False
        return bool(candidate.cashout_time) and str(candidate.cashout_time) > PAID_REWARDS_DATE


def candidate_from_content(record: dict[str, Any], content: dict[str, Any]) -> Candidate:
    """Merges a stored contribution with its live platform state.

    The stored record wins for identity and type (moderators may retype a
    contribution); the live content wins for votes and payouts.
    """
    stored_metadata = record.get("json_metadata") if isinstance(record.get("json_metadata"), dict) else {}
    live_metadata = _parse_metadata(content.get("json_metadata"))
    raw_type = stored_metadata.get("type") or live_metadata.get("type") or ""

    return Candidate(
        id=str(record.get("id") or content.get("id") or ""),
        author=str(content.get("author") or record.get("author") or ""),
        permlink=str(content.get("permlink") or record.get("permlink") or ""),
        raw_type=str(raw_type),
        created=_parse_timestamp(content.get("created")) or _parse_timestamp(record.get("created")),
        net_votes=_as_int(content.get("net_votes"), default=_as_int(record.get("net_votes"), default=0)),
        active_votes=[_parse_vote(vote) for vote in content.get("active_votes") or [] if isinstance(vote, dict)],
        pending_payout_value=parse_asset(content.get("pending_payout_value")),
        total_payout_value=parse_asset(content.get("total_payout_value")),
        curator_payout_value=parse_asset(content.get("curator_payout_value")),
        cashout_time=content.get("cashout_time") or record.get("cashout_time"),
    )


def _parse_vote(vote: dict[str, Any]) -> ActiveVote:
    return ActiveVote(
        voter=str(vote.get("voter") or ""),
        percent=float(_as_int(vote.get("percent"), default=0)),
        rshares=_as_float(vote.get("rshares")),
    )


def _parse_metadata(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        return value
    if isinstance(value, str) and value.strip():
        try:
            decoded = json.loads(value)
        except json.JSONDecodeError:
            return {}
        return decoded if isinstance(decoded, dict) else {}
    return {}


def _parse_timestamp(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        try:
            dt = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _as_int(value: Any, *, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0
