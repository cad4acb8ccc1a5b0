from __future__ import annotations

from datetime import datetime, timezone

from curator.engine.models import RunLease


def lease_expired(lease: RunLease, now: datetime | None = None) -> bool:
    now = now or datetime.now(timezone.utc)
    expires_at = lease.lease_expires_at
    if expires_at is None:
        return not lease.active
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at <= now


def is_stale(lease: RunLease, now: datetime | None = None) -> bool:
    return lease.active and lease_expired(lease, now=now)


def describe_lease(lease: RunLease, now: datetime | None = None) -> str:
    if not lease.active:
        return "idle"
    now = now or datetime.now(timezone.utc)
    if lease.lease_expires_at is None:
        return f"held by {lease.holder} without expiry"
    state = "stale" if is_stale(lease, now=now) else "held"
    return f"{state} by {lease.holder} until {lease.lease_expires_at.isoformat()}"
