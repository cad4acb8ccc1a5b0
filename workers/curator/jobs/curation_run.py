from __future__ import annotations

import asyncio
import logging
import socket
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import StrEnum
from uuid import uuid4

import httpx
from opentelemetry import trace

from curator.core.config import Settings
from curator.core.retry import RetryPolicy, linear_backoff
from curator.engine.allocator import allocate
from curator.engine.categories import (
    CategoryClassifier,
    build_allocation_context,
    default_rules,
    load_category_table,
)
from curator.engine.commentary import build_comment_body, comment_metadata, comment_permlink
from curator.engine.denylist import load_denylist
from curator.engine.errors import (
    AllocationDegenerate,
    AuthFailure,
    ConfigError,
    CuratorError,
    RunAlreadyActive,
    TransientProviderError,
)
from curator.engine.models import Candidate, VoteBatch
from curator.engine.normalizer import normalize
from curator.engine.scorer import PostScorer
from curator.engine.selector import CandidateSelector
from curator.engine.voting_power import current_voting_power
from curator.jobs.run_lease import describe_lease
from curator.services.protocols import (
    AccountInfoProvider,
    ActionDispatcher,
    AuthorizationProvider,
    RunStateStore,
)
from curator.services.repository import PostgresRepository, RepositoryError
from curator.services.steem_client import SteemClient
from curator.services.steemconnect_client import SteemConnectClient

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class RunState(StrEnum):
    IDLE = "idle"
    CHECKING_SINGLE_FLIGHT = "checking_single_flight"
    SELECTING = "selecting"
    ALLOCATING = "allocating"
    SCORING = "scoring"
    NORMALIZING = "normalizing"
    DISPATCHING = "dispatching"
    DONE = "done"
    ABORTED = "aborted"


MAX_VOTE_WEIGHT = 10000

# Aborts that end the run without anything having gone wrong.
GRACEFUL_ABORT_REASONS = frozenset({"already_running", "empty_candidate_set", "voting_power_low"})


@dataclass(slots=True)
class RunReport:
    run_id: str
    state: RunState = RunState.IDLE
    abort_reason: str | None = None
    detail: str | None = None
    batch: VoteBatch | None = None
    transitions: list[RunState] = field(default_factory=lambda: [RunState.IDLE])
    dispatched: int = 0
    dispatch_failures: int = 0

    @property
    def exit_code(self) -> int:
        if self.state == RunState.DONE:
            return 0
        return 0 if self.abort_reason in GRACEFUL_ABORT_REASONS else 1


class RunAborted(Exception):
    def __init__(self, reason: str, detail: str | None = None) -> None:
        super().__init__(detail or reason)
        self.reason = reason
        self.detail = detail


class RunCoordinator:
    """Sequences one curation run under the single-flight run lease."""

    def __init__(
        self,
        settings: Settings,
        *,
        run_state: RunStateStore,
        selector: CandidateSelector,
        scorer: PostScorer,
        accounts: AccountInfoProvider,
        authorization: AuthorizationProvider,
        dispatcher: ActionDispatcher,
        classifier: CategoryClassifier,
        category_table: dict[str, tuple[float, float, float]],
        lookup_policy: RetryPolicy,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.settings = settings
        self.run_state = run_state
        self.selector = selector
        self.scorer = scorer
        self.accounts = accounts
        self.authorization = authorization
        self.dispatcher = dispatcher
        self.classifier = classifier
        self.category_table = category_table
        self.lookup_policy = lookup_policy
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.holder = f"{socket.gethostname()}:{uuid4().hex[:8]}"

    async def run(self) -> RunReport:
        report = RunReport(run_id=uuid4().hex)
        lease_acquired = False
        with tracer.start_as_current_span("curator.run") as span:
            span.set_attribute("curator.run_id", report.run_id)
            try:
                self.settings.require_credentials()
                self._transition(report, RunState.CHECKING_SINGLE_FLIGHT)
                lease_acquired = await self._acquire_lease()
                await self._check_voting_power()
                stats = await self.run_state.get_category_stats()
                await self.authorization.refresh_access_token()

                self._transition(report, RunState.SELECTING)
                candidates = self._classifiable(await self.selector.select(now=self.clock()))
                if not candidates:
                    raise RunAborted("empty_candidate_set", "there are no contributions to vote")

                self._transition(report, RunState.ALLOCATING)
                context = build_allocation_context(self.category_table, stats=stats, now=self.clock())
                allocate(
                    context,
                    candidates,
                    classifier=self.classifier,
                    total_budget=self.settings.total_budget,
                )

                self._transition(report, RunState.SCORING)
                scored = await self.scorer.score_all(candidates, context)

                self._transition(report, RunState.NORMALIZING)
                batch = normalize(
                    VoteBatch(candidates=scored[: self.settings.top_k]),
                    context,
                    total_budget=self.settings.total_budget,
                )
                report.batch = batch

                self._transition(report, RunState.DISPATCHING)
                await self._dispatch(batch, report)
                self._transition(report, RunState.DONE)
            except RunAborted as exc:
                self._abort(report, exc.reason, exc.detail)
            except RunAlreadyActive as exc:
                self._abort(report, "already_running", str(exc))
            except ConfigError as exc:
                self._abort(report, "config_error", str(exc))
            except AuthFailure as exc:
                self._abort(report, "auth_failure", str(exc))
            except AllocationDegenerate as exc:
                self._abort(report, "allocation_degenerate", str(exc))
            except TransientProviderError as exc:
                self._abort(report, "provider_failure", str(exc))
            except (CuratorError, RepositoryError) as exc:
                self._abort(report, "run_failure", str(exc))
            except Exception as exc:
                self._abort(report, "unexpected_error", repr(exc))
                raise
            finally:
                if lease_acquired:
                    await self._release_lease()
                span.set_attribute("curator.state", report.state.value)
                if report.abort_reason:
                    span.set_attribute("curator.abort_reason", report.abort_reason)
        return report

    async def _acquire_lease(self) -> bool:
        lease = await self.run_state.acquire_run_lease(
            holder=self.holder,
            lease_seconds=self.settings.run_lease_seconds,
        )
        if lease is None:
            current = await self.run_state.get_run_lease()
            raise RunAlreadyActive(f"run lease {describe_lease(current, now=self.clock())}")
        return True

    async def _release_lease(self) -> None:
        try:
            await self.run_state.release_run_lease(holder=self.holder)
        except Exception:
            logger.exception("failed to release run lease held by %s; it will expire on its own", self.holder)

    async def _check_voting_power(self) -> None:
        accounts = await self.lookup_policy.run(
            lambda: self.accounts.get_accounts([self.settings.agent_account or ""]),
            label="get_accounts agent",
        )
        if not accounts:
            raise TransientProviderError(f"agent account {self.settings.agent_account} not found")
        voting_power = current_voting_power(accounts[0], now=self.clock())
        logger.info("agent voting power %.0f/%.0f", voting_power, self.settings.voting_power_threshold)
        if voting_power < self.settings.voting_power_threshold and not self.settings.forced:
            raise RunAborted("voting_power_low", f"voting power {voting_power:.0f} is too low to start voting")

    def _classifiable(self, candidates: list[Candidate]) -> list[Candidate]:
        kept: list[Candidate] = []
        for candidate in candidates:
            if self.classifier.classify(candidate.raw_type) is None:
                logger.warning(
                    "skipping %s/%s: unknown contribution type %r",
                    candidate.author,
                    candidate.permlink,
                    candidate.raw_type,
                )
                continue
            kept.append(candidate)
        return kept

    async def _dispatch(self, batch: VoteBatch, report: RunReport) -> None:
        agent = self.settings.agent_account or ""
        metadata = comment_metadata(
            tags=self.settings.comment_tags,
            community=self.settings.comment_community,
            app=self.settings.comment_app,
        )
        for candidate in batch.candidates:
            weight = min(round((candidate.final_vote or 0.0) * 100), MAX_VOTE_WEIGHT)
            logger.info(
                "vote %s/%s category=%s score=%s weight=%.2f%%",
                candidate.author,
                candidate.permlink,
                candidate.category,
                candidate.raw_score,
                candidate.final_vote or 0.0,
            )
            if self.settings.dry_run:
                continue
            try:
                await self.dispatcher.vote(agent, candidate.author, candidate.permlink, weight)
                await self.dispatcher.comment(
                    candidate.author,
                    candidate.permlink,
                    agent,
                    comment_permlink(candidate.author, candidate.permlink, now=self.clock()),
                    build_comment_body(agent, candidate),
                    metadata,
                )
                report.dispatched += 1
            except (httpx.HTTPError, AuthFailure, ValueError):
                report.dispatch_failures += 1
                logger.exception("dispatch failed for %s/%s", candidate.author, candidate.permlink)

    def _transition(self, report: RunReport, state: RunState) -> None:
        logger.info("run %s: %s -> %s", report.run_id, report.state.value, state.value)
        report.state = state
        report.transitions.append(state)
        trace.get_current_span().add_event("curator.transition", {"state": state.value})

    def _abort(self, report: RunReport, reason: str, detail: str | None) -> None:
        report.abort_reason = reason
        report.detail = detail
        self._transition(report, RunState.ABORTED)
        if reason in GRACEFUL_ABORT_REASONS:
            logger.info("run %s ended: %s (%s)", report.run_id, reason, detail)
        else:
            logger.error("run %s aborted: %s (%s)", report.run_id, reason, detail)


def build_coordinator(
    settings: Settings,
    *,
    repository: PostgresRepository,
    steem: SteemClient,
    steemconnect: SteemConnectClient,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> RunCoordinator:
    category_table = load_category_table(settings.category_table_json)
    classifier = CategoryClassifier(default_rules(list(category_table)))
    lookup_policy = RetryPolicy(max_attempts=settings.account_retry_max_attempts, sleep=sleep)
    content_policy = RetryPolicy(
        max_attempts=settings.content_retry_max_attempts,
        backoff=linear_backoff(settings.content_retry_backoff_seconds),
        sleep=sleep,
    )
    selector = CandidateSelector(
        repository,
        steem,
        agent_account=settings.agent_account or "",
        min_age=timedelta(hours=settings.min_age_hours),
        retry_policy=content_policy,
    )
    scorer = PostScorer(
        repository,
        steem,
        steem,
        classifier=classifier,
        denylist=load_denylist(settings.extra_automated_voters_json),
        low_follower_threshold=settings.low_follower_threshold,
        lookup_policy=lookup_policy,
        inter_call_delay_seconds=settings.inter_call_delay_seconds,
        sleep=sleep,
    )
    return RunCoordinator(
        settings,
        run_state=repository,
        selector=selector,
        scorer=scorer,
        accounts=steem,
        authorization=steemconnect,
        dispatcher=steemconnect,
        classifier=classifier,
        category_table=category_table,
        lookup_policy=lookup_policy,
    )
