from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from curator.core.retry import RetryPolicy, single_attempt
from curator.engine.categories import CategoryClassifier
from curator.engine.errors import TransientProviderError
from curator.engine.models import AllocationContext, Candidate
from curator.engine.normalizer import round_half_up
from curator.services.protocols import AccountInfoProvider, ContentRepository, ContributionFilter, FollowProvider
from curator.services.steem_client import format_reputation

logger = logging.getLogger(__name__)

MAX_SCORE = 100
LOVED_THRESHOLD = 55
LOW_FOLLOWER_BONUS = 20
REWARD_BONUS = 20
NEWCOMER_BONUS = 15
PRODUCTIVITY_BASE_BONUS = 5
PRODUCTIVITY_STEP_BONUS = 5
PRODUCTIVITY_MILESTONES = (15, 40, 60, 120)
REPUTATION_STEP_BONUS = 2.5
REPUTATION_THRESHOLDS = (25, 50, 65, 70)

ACHIEVEMENT_LOVED = "WOW WOW WOW People loved what you did here. GREAT JOB!"
ACHIEVEMENT_LOW_FOLLOWERS = "You have less than {threshold} followers. Just gave you a gift to help you succeed!"
ACHIEVEMENT_REWARDS = "You are generating more rewards than average for this category. Super!;)"
ACHIEVEMENT_NEWCOMER = "This is your first accepted contribution here in Utopian. Welcome!"
ACHIEVEMENT_PRODUCTIVE = "Seems like you contribute quite often. AMAZING!"


@dataclass(slots=True)
class ScoringSignals:
    rank_consensus: float
    total_generated: float
    average_rewards: float
    follower_count: int
    prior_contributions: int
    reputation: int


@dataclass(slots=True)
class ScoreResult:
    final_score: int
    achievements: list[str] = field(default_factory=list)


def rank_consensus(candidate: Candidate, denylist: frozenset[str]) -> tuple[float, float]:
    """Returns ``(base_score, total_generated)`` from the candidate's human votes.

    An upvote's effective weight is the larger of its declared percent and its
    share of the payout, so large accounts voting below 100% still count fully.
    """
    votes = [vote for vote in candidate.active_votes if vote.voter not in denylist]
    upvotes = [vote for vote in votes if vote.percent > 0]

    total_payout = candidate.total_payout
    vote_rshares = sum(vote.rshares for vote in votes)
    ratio = total_payout / vote_rshares if vote_rshares and total_payout else 0.0

    total_generated = 0.0
    total_weight_percentage = 0.0
    for upvote in upvotes:
        vote_value = upvote.rshares * ratio
        share_of_payout = (vote_value / total_payout) * 100 if total_payout else 0.0
        total_generated += vote_value
        total_weight_percentage += max(share_of_payout, upvote.percent)

    average_weight_percentage = total_weight_percentage / max(len(upvotes), 1) / 100
    return average_weight_percentage * len(upvotes) / 100, total_generated


def score_signals(signals: ScoringSignals, *, low_follower_threshold: int = 500) -> ScoreResult:
    achievements: list[str] = []
    score = signals.rank_consensus

    if score > LOVED_THRESHOLD:
        achievements.append(ACHIEVEMENT_LOVED)

    if signals.follower_count < low_follower_threshold:
        score += LOW_FOLLOWER_BONUS
        achievements.append(ACHIEVEMENT_LOW_FOLLOWERS.format(threshold=low_follower_threshold))
    if signals.total_generated > signals.average_rewards:
        score += REWARD_BONUS
        achievements.append(ACHIEVEMENT_REWARDS)
    if signals.prior_contributions == 0:
        score += NEWCOMER_BONUS
        achievements.append(ACHIEVEMENT_NEWCOMER)
    if signals.prior_contributions > 0:
        score += PRODUCTIVITY_BASE_BONUS
        score += PRODUCTIVITY_STEP_BONUS * sum(
            1 for milestone in PRODUCTIVITY_MILESTONES if signals.prior_contributions >= milestone
        )
        achievements.append(ACHIEVEMENT_PRODUCTIVE)

    score += REPUTATION_STEP_BONUS * sum(1 for threshold in REPUTATION_THRESHOLDS if signals.reputation >= threshold)

    final_score = MAX_SCORE if score >= MAX_SCORE else max(0, round_half_up(score))
    return ScoreResult(final_score=final_score, achievements=achievements)


class PostScorer:
    def __init__(
        self,
        repository: ContentRepository,
        accounts: AccountInfoProvider,
        follows: FollowProvider,
        *,
        classifier: CategoryClassifier,
        denylist: frozenset[str],
        low_follower_threshold: int = 500,
        lookup_policy: RetryPolicy | None = None,
        inter_call_delay_seconds: float = 3.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.repository = repository
        self.accounts = accounts
        self.follows = follows
        self.classifier = classifier
        self.denylist = denylist
        self.low_follower_threshold = low_follower_threshold
        self.lookup_policy = lookup_policy or single_attempt()
        self.inter_call_delay_seconds = inter_call_delay_seconds
        self.sleep = sleep

    async def score_all(self, candidates: list[Candidate], context: AllocationContext) -> list[Candidate]:
        scored: list[Candidate] = []
        for index, candidate in enumerate(candidates):
            if index and self.inter_call_delay_seconds > 0:
                await self.sleep(self.inter_call_delay_seconds)
            scored.append(await self.score(candidate, context))
        logger.info("scored %s candidates", len(scored))
        return scored

    async def score(self, candidate: Candidate, context: AllocationContext) -> Candidate:
        category_id = self.classifier.classify(candidate.raw_type)
        if category_id is None or category_id not in context.profiles:
            raise ValueError(f"unclassified contribution type {candidate.raw_type!r}")

        account = await self._fetch_account(candidate.author)
        followers = await self.lookup_policy.run(
            lambda: self.follows.get_follow_count(str(account.get("name") or candidate.author)),
            label=f"get_follow_count {candidate.author}",
        )
        prior_contributions = await self.repository.count(
            ContributionFilter(
                reviewed=True,
                exclude_flagged=False,
                author=candidate.author,
                exclude_id=candidate.id,
            )
        )

        # Historical stats are kept per raw type, so task subtypes have their own averages.
        stats_key = candidate.raw_type if candidate.raw_type in context.stats else category_id
        base_score, total_generated = rank_consensus(candidate, self.denylist)
        result = score_signals(
            ScoringSignals(
                rank_consensus=base_score,
                total_generated=total_generated,
                average_rewards=context.stats_for(stats_key).average_rewards,
                follower_count=int(followers.get("follower_count") or 0),
                prior_contributions=prior_contributions,
                reputation=format_reputation(account.get("reputation")),
            ),
            low_follower_threshold=self.low_follower_threshold,
        )

        candidate.category = category_id
        candidate.rank_consensus = base_score
        candidate.total_generated = total_generated
        candidate.raw_score = result.final_score
        candidate.achievements = result.achievements
        context.add_vote_weight(category_id, result.final_score)

        logger.info(
            "scored %s/%s category=%s score=%s achievements=%s",
            candidate.author,
            candidate.permlink,
            category_id,
            result.final_score,
            len(result.achievements),
        )
        return candidate

    async def _fetch_account(self, name: str) -> dict[str, Any]:
        accounts = await self.lookup_policy.run(
            lambda: self.accounts.get_accounts([name]),
            label=f"get_accounts {name}",
        )
        if len(accounts) != 1 or not isinstance(accounts[0], dict):
            raise TransientProviderError(f"account lookup for {name} returned {len(accounts)} accounts")
        return accounts[0]
