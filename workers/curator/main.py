from __future__ import annotations

import asyncio
import logging
import random
import sys

from curator.core.config import Settings, get_settings
from curator.core.telemetry import configure_logging, setup_telemetry, shutdown_telemetry
from curator.jobs.curation_run import RunReport, build_coordinator
from curator.services.repository import get_repository
from curator.services.steem_client import SteemClient
from curator.services.steemconnect_client import SteemConnectClient

logger = logging.getLogger(__name__)


async def run_once(settings: Settings) -> RunReport:
    repository = get_repository()
    coordinator = build_coordinator(
        settings,
        repository=repository,
        steem=SteemClient(settings.steem_api_url, timeout=settings.request_timeout_seconds),
        steemconnect=SteemConnectClient(
            settings.steemconnect_host,
            refresh_token=settings.refresh_token or "",
            client_secret=settings.client_secret or "",
            scopes=settings.steemconnect_scopes,
            timeout=settings.request_timeout_seconds,
        ),
    )
    report = await coordinator.run()
    logger.info(
        "run %s finished state=%s reason=%s dispatched=%s failures=%s",
        report.run_id,
        report.state.value,
        report.abort_reason,
        report.dispatched,
        report.dispatch_failures,
    )
    return report


async def run_worker() -> int:
    settings = get_settings()
    configure_logging(settings.log_level)
    telemetry_runtime = setup_telemetry(settings)
    logger.info("starting curator for agent=%s dry_run=%s", settings.agent_account, settings.dry_run)

    backoff = settings.crash_backoff_seconds
    try:
        while True:
            try:
                report = await run_once(settings)
                if settings.run_once:
                    return report.exit_code
                backoff = settings.crash_backoff_seconds
                await asyncio.sleep(settings.run_interval_seconds)
            except Exception as exc:  # pragma: no cover - bootstrap robustness
                if settings.run_once:
                    logger.exception("curation run crashed")
                    return 1
                jitter = random.uniform(0.0, 0.5)
                sleep_for = min(backoff * (2.0 + jitter), settings.max_backoff_seconds)
                logger.exception("curation run crashed: %s; retry in %.1fs", exc, sleep_for)
                await asyncio.sleep(sleep_for)
                backoff = sleep_for
    finally:
        await get_repository().close()
        shutdown_telemetry(telemetry_runtime)


def main() -> None:
    sys.exit(asyncio.run(run_worker()))


if __name__ == "__main__":
    main()
