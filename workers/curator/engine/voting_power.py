from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

FULL_VOTING_POWER = 10000
REGENERATION_SECONDS = 432000  # five days from empty to full


def current_voting_power(account: dict[str, Any], now: datetime | None = None) -> float:
    """Estimates the account's voting power now from its last recorded vote."""
    now = now or datetime.now(timezone.utc)
    stored_power = float(account.get("voting_power") or 0)
    last_vote_time = _parse_chain_time(account.get("last_vote_time"))
    if last_vote_time is None:
        return stored_power
    seconds_since_vote = max(0.0, (now - last_vote_time).total_seconds())
    return stored_power + FULL_VOTING_POWER * seconds_since_vote / REGENERATION_SECONDS


def _parse_chain_time(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    # Chain timestamps carry no offset but are UTC.
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
