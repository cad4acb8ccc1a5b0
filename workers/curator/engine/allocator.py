from __future__ import annotations

import logging
from collections import Counter

from curator.engine.categories import CategoryClassifier
from curator.engine.errors import AllocationDegenerate
from curator.engine.models import AllocationContext, Candidate

logger = logging.getLogger(__name__)


def count_by_category(candidates: list[Candidate], classifier: CategoryClassifier) -> Counter[str]:
    counts: Counter[str] = Counter()
    for candidate in candidates:
        category_id = classifier.classify(candidate.raw_type)
        if category_id is not None:
            counts[category_id] += 1
    return counts


def allocate(
    context: AllocationContext,
    candidates: list[Candidate],
    *,
    classifier: CategoryClassifier,
    total_budget: float,
) -> AllocationContext:
    """Splits ``total_budget`` across the context's categories.

    Exact-match categories get ``count / total_weighted_demand * 100 * difficulty``
    percent of the budget. The aggregate bucket instead uses its share of all
    candidates (``count / total_candidates * 100``) before applying difficulty.
    """
    counts = count_by_category(candidates, classifier)
    total_candidates = sum(counts.values())

    total_weighted_demand = 0.0
    for category_id, profile in context.profiles.items():
        profile.weighted_demand = counts.get(category_id, 0) * profile.difficulty
        total_weighted_demand += profile.weighted_demand

    if total_weighted_demand <= 0 or total_candidates == 0:
        raise AllocationDegenerate("total weighted demand is zero")

    for category_id, profile in context.profiles.items():
        count = counts.get(category_id, 0)
        if classifier.is_aggregate(category_id):
            share = count / total_candidates * 100
        else:
            share = count / total_weighted_demand * 100
        profile.assigned_pool = share * profile.difficulty * total_budget / 100

    logger.info(
        "allocated %.2f of budget=%.2f across categories=%s (weighted_demand=%.2f candidates=%s)",
        context.total_assigned_pool,
        total_budget,
        {category_id: round(context.profiles[category_id].assigned_pool, 2) for category_id in counts},
        total_weighted_demand,
        total_candidates,
    )
    return context

