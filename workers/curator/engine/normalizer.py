from __future__ import annotations

import logging
import math

from curator.engine.models import AllocationContext, Candidate, CategoryProfile, VoteBatch

logger = logging.getLogger(__name__)


def clamp_vote(candidate: Candidate, profile: CategoryProfile) -> float:
    """Converts a candidate's score to a vote weight bounded by its category.

    Both bounds are inclusive: a computed vote equal to ``min_vote`` or
    ``max_vote`` is set to that bound.
    """
    if profile.total_vote_weight <= 0 or profile.assigned_pool <= 0:
        return profile.min_vote

    assigned_weight = (candidate.raw_score / profile.total_vote_weight * 100) * profile.assigned_pool / 100
    calculated_vote = round_half_up(assigned_weight / profile.assigned_pool * 100)

    vote = float(calculated_vote)
    if calculated_vote >= profile.max_vote:
        vote = profile.max_vote
    if calculated_vote <= profile.min_vote:
        vote = profile.min_vote
    return vote


def normalize(batch: VoteBatch, context: AllocationContext, *, total_budget: float) -> VoteBatch:
    for candidate in batch.candidates:
        if candidate.category is None:
            raise ValueError(f"candidate {candidate.author}/{candidate.permlink} has no category")
        candidate.clamped_vote = clamp_vote(candidate, context.profile(candidate.category))

    total_vote = sum(candidate.clamped_vote or 0.0 for candidate in batch.candidates)
    batch.total_vote_before_rescale = total_vote
    if total_vote <= 0:
        for candidate in batch.candidates:
            candidate.final_vote = 0.0
        return batch

    for candidate in batch.candidates:
        candidate.final_vote = round((candidate.clamped_vote or 0.0) * total_budget / total_vote, 2)
        logger.debug("vote %s", candidate.to_log_dict())

    logger.info(
        "normalized batch size=%s total_vote=%.2f total_final_vote=%.2f",
        len(batch.candidates),
        total_vote,
        batch.total_final_vote,
    )
    return batch


def round_half_up(value: float) -> int:
    # round() rounds halves to even; scores and votes round .5 upwards.
    return math.floor(value + 0.5)
