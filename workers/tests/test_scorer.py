from __future__ import annotations

import asyncio

import pytest

from conftest import FakeRepository, FakeSteem, RecordingSleep
from curator.core.retry import RetryPolicy
from curator.engine.categories import CategoryClassifier, build_allocation_context, default_rules, load_category_table
from curator.engine.errors import TransientProviderError
from curator.engine.models import ActiveVote, Candidate, CategoryStats
from curator.engine.scorer import (
    ACHIEVEMENT_LOVED,
    ACHIEVEMENT_NEWCOMER,
    ACHIEVEMENT_PRODUCTIVE,
    ACHIEVEMENT_REWARDS,
    PostScorer,
    ScoringSignals,
    rank_consensus,
    score_signals,
)


def _signals(**overrides: float) -> ScoringSignals:
    values = {
        "rank_consensus": 10.0,
        "total_generated": 0.0,
        "average_rewards": 0.0,
        "follower_count": 0,
        "prior_contributions": 0,
        "reputation": 0,
    }
    values.update(overrides)
    return ScoringSignals(**values)


def test_newcomer_with_few_followers_scores_bonuses() -> None:
    result = score_signals(_signals())

    assert result.final_score == 45
    assert ACHIEVEMENT_NEWCOMER in result.achievements
    assert ACHIEVEMENT_REWARDS not in result.achievements


def test_score_is_capped_at_maximum() -> None:
    result = score_signals(_signals(rank_consensus=95.0, total_generated=5.0, average_rewards=1.0))

    assert result.final_score == 100
    assert result.achievements[0] == ACHIEVEMENT_LOVED


def test_productivity_bonus_accumulates_per_milestone() -> None:
    result = score_signals(_signals(rank_consensus=0.0, follower_count=1000, prior_contributions=120, reputation=70))

    # 5 base + 4 milestones * 5 + 4 reputation steps * 2.5
    assert result.final_score == 35
    assert result.achievements == [ACHIEVEMENT_PRODUCTIVE]


def test_reputation_steps_and_rounding() -> None:
    result = score_signals(_signals(rank_consensus=0.0, follower_count=1000, prior_contributions=1, reputation=25))

    # 5 productivity + 2.5 reputation rounds half up
    assert result.final_score == 8


def test_rank_consensus_ignores_automated_voters() -> None:
    candidate = Candidate(
        id="1",
        author="alice",
        permlink="post",
        raw_type="ideas",
        pending_payout_value=4.0,
        active_votes=[
            ActiveVote(voter="randowhale", percent=10000, rshares=1e12),
            ActiveVote(voter="bob", percent=10000, rshares=3e12),
            ActiveVote(voter="carol", percent=5000, rshares=1e12),
        ],
    )

    base, total_generated = rank_consensus(candidate, frozenset({"randowhale"}))

    assert total_generated == pytest.approx(4.0)
    assert base == pytest.approx((10000 + 5000) / 2 / 100 * 2 / 100)


def test_rank_consensus_credits_payout_share_over_low_percent() -> None:
    candidate = Candidate(
        id="1",
        author="alice",
        permlink="post",
        raw_type="ideas",
        pending_payout_value=4.0,
        active_votes=[
            ActiveVote(voter="whale", percent=10, rshares=3e12),
            ActiveVote(voter="carol", percent=5000, rshares=1e12),
        ],
    )

    base, _ = rank_consensus(candidate, frozenset())

    assert base == pytest.approx((75 + 5000) / 2 / 100 * 2 / 100)


def test_rank_consensus_without_votes_is_zero() -> None:
    candidate = Candidate(id="1", author="alice", permlink="post", raw_type="ideas")

    assert rank_consensus(candidate, frozenset()) == (0.0, 0.0)


def _scorer(repository: FakeRepository, steem: FakeSteem, sleep: RecordingSleep) -> PostScorer:
    table = load_category_table(None)
    return PostScorer(
        repository,
        steem,
        steem,
        classifier=CategoryClassifier(default_rules(list(table))),
        denylist=frozenset(),
        lookup_policy=RetryPolicy(max_attempts=1, sleep=sleep),
        inter_call_delay_seconds=3.0,
        sleep=sleep,
    )


def test_post_scorer_accumulates_category_weight(recording_sleep: RecordingSleep) -> None:
    repository = FakeRepository(
        prior_contributions={"bob": 15},
        stats={"task-graphics": CategoryStats(average_paid_authors=50.0)},
    )
    steem = FakeSteem()
    steem.accounts = {"alice": {"name": "alice", "reputation": 0}, "bob": {"name": "bob", "reputation": 0}}
    steem.followers = {"alice": 10, "bob": 900}
    context = build_allocation_context(load_category_table(None))
    candidates = [
        Candidate(id="1", author="alice", permlink="first", raw_type="ideas"),
        Candidate(id="2", author="bob", permlink="second", raw_type="task-graphics"),
    ]

    scored = asyncio.run(_scorer(repository, steem, recording_sleep).score_all(candidates, context))

    alice, bob = scored
    # 20 low followers + 15 newcomer + 2.5 reputation (25)
    assert alice.raw_score == 38
    assert alice.category == "ideas"
    # 5 + 5 productivity + 2.5 reputation (25)
    assert bob.raw_score == 13
    assert bob.category == "tasks-requests"
    assert context.profile("ideas").total_vote_weight == 38
    assert context.profile("tasks-requests").total_vote_weight == 13
    assert recording_sleep.delays == [3.0]

    prior_filters = [f for f in repository.filters if f.author]
    assert [f.exclude_id for f in prior_filters] == ["1", "2"]
    assert all(f.reviewed and not f.exclude_flagged for f in prior_filters)


def test_post_scorer_propagates_account_failures(recording_sleep: RecordingSleep) -> None:
    steem = FakeSteem()
    steem.failing_accounts = {"alice"}
    context = build_allocation_context(load_category_table(None))
    candidate = Candidate(id="1", author="alice", permlink="first", raw_type="ideas")

    with pytest.raises(TransientProviderError):
        asyncio.run(_scorer(FakeRepository(), steem, recording_sleep).score(candidate, context))

    assert context.profile("ideas").total_vote_weight == 0.0


def test_post_scorer_rejects_missing_account(recording_sleep: RecordingSleep) -> None:
    context = build_allocation_context(load_category_table(None))
    candidate = Candidate(id="1", author="ghost", permlink="first", raw_type="ideas")

    with pytest.raises(TransientProviderError):
        asyncio.run(_scorer(FakeRepository(), FakeSteem(), recording_sleep).score(candidate, context))


def test_post_scorer_rejects_unclassified_types(recording_sleep: RecordingSleep) -> None:
    context = build_allocation_context(load_category_table(None))
    candidate = Candidate(id="1", author="alice", permlink="first", raw_type="poetry")

    with pytest.raises(ValueError):
        asyncio.run(_scorer(FakeRepository(), FakeSteem(), recording_sleep).score(candidate, context))


def _returning_author_score(**overrides: float) -> int:
    values = {"rank_consensus": 12.0, "follower_count": 1000, "prior_contributions": 1}
    values.update(overrides)
    return score_signals(_signals(**values)).final_score


def test_score_never_drops_as_bonus_signals_grow() -> None:
    by_reputation = [_returning_author_score(reputation=rep) for rep in (0, 25, 50, 65, 70, 80)]
    by_history = [_returning_author_score(prior_contributions=count) for count in (1, 15, 40, 60, 120, 500)]
    by_rank = [_returning_author_score(rank_consensus=rank) for rank in (0.0, 10.0, 55.5, 99.0)]

    for scores in (by_reputation, by_history, by_rank):
        assert scores == sorted(scores)
    assert _returning_author_score(total_generated=3.0, average_rewards=1.0) > _returning_author_score(
        total_generated=1.0, average_rewards=1.0
    )
    assert _returning_author_score(follower_count=10) > _returning_author_score()


def test_score_has_a_floor_of_zero() -> None:
    assert _returning_author_score(rank_consensus=-30.0) == 0
    assert _returning_author_score(rank_consensus=0.0) == 5
