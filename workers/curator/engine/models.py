from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(slots=True)
class CategoryProfile:
    id: str
    difficulty: float
    min_vote: float
    max_vote: float
    total_vote_weight: float = 0.0
    weighted_demand: float = 0.0
    assigned_pool: float = 0.0


@dataclass(slots=True)
class CategoryStats:
    average_paid_authors: float = 0.0
    average_paid_curators: float = 0.0

    @property
    def average_rewards(self) -> float:
        return self.average_paid_authors + self.average_paid_curators


@dataclass(slots=True)
class ActiveVote:
    voter: str
    percent: float
    rshares: float


@dataclass(slots=True)
class Candidate:
    id: str
    author: str
    permlink: str
    raw_type: str
    created: datetime | None = None
    net_votes: int = 0
    active_votes: list[ActiveVote] = field(default_factory=list)
    pending_payout_value: float = 0.0
    total_payout_value: float = 0.0
    curator_payout_value: float = 0.0
    cashout_time: str | None = None
    category: str | None = None
    raw_score: float = 0.0
    rank_consensus: float = 0.0
    total_generated: float = 0.0
    achievements: list[str] = field(default_factory=list)
    clamped_vote: float | None = None
    final_vote: float | None = None

    @property
    def total_payout(self) -> float:
        return self.pending_payout_value + self.total_payout_value + self.curator_payout_value

    @property
    def voters(self) -> set[str]:
        return {vote.voter for vote in self.active_votes}

    def to_log_dict(self) -> dict[str, Any]:
        return {
            "author": self.author,
            "permlink": self.permlink,
            "category": self.category,
            "raw_score": self.raw_score,
            "clamped_vote": self.clamped_vote,
            "final_vote": self.final_vote,
        }


@dataclass(slots=True)
class VoteBatch:
    candidates: list[Candidate]
    total_vote_before_rescale: float = 0.0

    @property
    def total_final_vote(self) -> float:
        return sum(candidate.final_vote or 0.0 for candidate in self.candidates)


@dataclass(slots=True)
class AllocationContext:
    """Per-run category table: budgets and running score totals.

    Built fresh for every run so no state leaks between runs.
    """

    profiles: dict[str, CategoryProfile]
    stats: dict[str, CategoryStats] = field(default_factory=dict)
    created_at: datetime | None = None

    def profile(self, category_id: str) -> CategoryProfile:
        return self.profiles[category_id]

    def stats_for(self, category_id: str) -> CategoryStats:
        return self.stats.get(category_id) or CategoryStats()

    def add_vote_weight(self, category_id: str, score: float) -> None:
        self.profiles[category_id].total_vote_weight += score

    @property
    def total_assigned_pool(self) -> float:
        return sum(profile.assigned_pool for profile in self.profiles.values())


@dataclass(slots=True)
class RunLease:
    active: bool
    holder: str | None = None
    acquired_at: datetime | None = None
    lease_expires_at: datetime | None = None
