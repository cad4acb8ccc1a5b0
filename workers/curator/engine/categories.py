from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal

from curator.engine.models import AllocationContext, CategoryProfile, CategoryStats

logger = logging.getLogger(__name__)

DIFFICULTY_MULTIPLIER = 3.0
MAX_VOTE_EVER = 30.0
AGGREGATE_CATEGORY = "tasks-requests"
AGGREGATE_PREFIX = "task-"

# category -> (relative difficulty, min_vote, max_vote)
DEFAULT_CATEGORY_TABLE: dict[str, tuple[float, float, float]] = {
    "ideas": (0.8, 1.5, 4.0),
    "development": (2.5, 30.0, MAX_VOTE_EVER),
    "bug-hunting": (1.0, 2.0, 5.0),
    "translations": (1.4, 7.0, 10.0),
    "graphics": (1.7, 7.5, MAX_VOTE_EVER),
    "analysis": (1.6, 8.0, 20.0),
    "social": (1.5, 5.0, 10.0),
    "documentation": (1.5, 5.0, 20.0),
    "tutorials": (1.9, 7.0, 15.0),
    "video-tutorials": (1.7, 8.0, 15.0),
    "copywriting": (1.55, 5.0, 15.0),
    "blog": (1.0, 2.0, 5.0),
    AGGREGATE_CATEGORY: (1.1, 3.0, 6.0),
}

RuleKind = Literal["exact", "prefix"]


@dataclass(frozen=True, slots=True)
class ClassificationRule:
    kind: RuleKind
    pattern: str
    category: str

    def matches(self, raw_type: str) -> bool:
        if self.kind == "exact":
            return raw_type == self.pattern
        return raw_type.startswith(self.pattern)


class CategoryClassifier:
    """Maps a contribution's raw type to a category id.

    Exact rules are tried before prefix rules, so a raw type that names a
    category directly never falls into the aggregate bucket.
    """

    def __init__(self, rules: list[ClassificationRule]) -> None:
        self.rules = sorted(rules, key=lambda rule: 0 if rule.kind == "exact" else 1)

    def classify(self, raw_type: str | None) -> str | None:
        if not raw_type:
            return None
        for rule in self.rules:
            if rule.matches(raw_type):
                return rule.category
        return None

    def prefix_rules_for(self, category_id: str) -> list[ClassificationRule]:
        return [rule for rule in self.rules if rule.kind == "prefix" and rule.category == category_id]

    def is_aggregate(self, category_id: str) -> bool:
        return bool(self.prefix_rules_for(category_id))


def default_rules(category_ids: list[str]) -> list[ClassificationRule]:
    rules = [ClassificationRule(kind="exact", pattern=category_id, category=category_id) for category_id in category_ids]
    if AGGREGATE_CATEGORY in category_ids:
        rules.append(ClassificationRule(kind="prefix", pattern=AGGREGATE_PREFIX, category=AGGREGATE_CATEGORY))
    return rules


def load_category_table(raw: str | None) -> dict[str, tuple[float, float, float]]:
    """Returns the default table with per-category overrides from JSON applied.

    The JSON maps category ids to ``{"difficulty": .., "min_vote": .., "max_vote": ..}``;
    difficulty is relative and gets multiplied by ``DIFFICULTY_MULTIPLIER`` later.
    """
    table = dict(DEFAULT_CATEGORY_TABLE)
    if not raw:
        return table
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("ignoring malformed category table override")
        return table
    if not isinstance(decoded, dict):
        return table

    for category_id, overrides in decoded.items():
        if not isinstance(category_id, str) or not isinstance(overrides, dict):
            continue
        difficulty, min_vote, max_vote = table.get(category_id, (1.0, 0.0, MAX_VOTE_EVER))
        table[category_id] = (
            _as_float(overrides.get("difficulty"), default=difficulty),
            _as_float(overrides.get("min_vote"), default=min_vote),
            _as_float(overrides.get("max_vote"), default=max_vote),
        )
    return table


def build_allocation_context(
    table: dict[str, tuple[float, float, float]],
    *,
    stats: dict[str, CategoryStats] | None = None,
    now: datetime | None = None,
) -> AllocationContext:
    profiles = {
        category_id: CategoryProfile(
            id=category_id,
            difficulty=difficulty * DIFFICULTY_MULTIPLIER,
            min_vote=min_vote,
            max_vote=max_vote,
        )
        for category_id, (difficulty, min_vote, max_vote) in table.items()
    }
    return AllocationContext(profiles=profiles, stats=dict(stats or {}), created_at=now)


def _as_float(value: Any, *, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default
