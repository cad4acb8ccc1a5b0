#!/usr/bin/env python3
"""Emit SQL that force-clears the curator's single-flight run lease."""

from __future__ import annotations

import argparse


def _quote_sql(value: str) -> str:
    escaped = value.replace("'", "''")
    return f"'{escaped}'"


def render_sql(*, holder: str | None, stale_only: bool) -> str:
    conditions = ["id = 1", "active = true"]
    if holder:
        conditions.append(f"holder = {_quote_sql(holder)}")
    if stale_only:
        conditions.append("(lease_expires_at is null or lease_expires_at <= now())")
    where_sql = "\n  and ".join(conditions)

    return f"""-- Curator run lease recovery SQL
-- Run this against the curator database after confirming no run is in progress.

update curator_run_state
set active = false, lease_expires_at = null
where {where_sql}
returning holder, acquired_at;
"""


def main() -> None:
    parser = argparse.ArgumentParser(description="Emit SQL to clear a stuck curator run lease.")
    parser.add_argument("--holder", help="Only clear the lease if it is held by this holder id")
    parser.add_argument(
        "--stale-only",
        action="store_true",
        help="Only clear a lease that has already expired or never had an expiry",
    )
    args = parser.parse_args()

    print(render_sql(holder=args.holder, stale_only=args.stale_only))


if __name__ == "__main__":
    main()
