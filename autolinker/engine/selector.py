"""Placement selection: turn candidates into accepted links under caps."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import FrozenSet, List, Mapping, Optional, Sequence, Tuple

from .matcher import Candidate
from .types import EngineSettings

BlockKey = Tuple[str, Tuple[int, int]]


@dataclass(frozen=True)
class CapState:
    """Cap bookkeeping threaded through successive :func:`select` calls.

    ``frontier`` is the end offset of the last accepted placement; since
    candidates arrive in document order, anything starting before it
    overlaps an accepted link.
    """

    total: int = 0
    per_rule: Mapping[str, int] = field(default_factory=dict)
    per_category: Mapping[str, int] = field(default_factory=dict)
    used_keywords: FrozenSet[Tuple[str, str]] = frozenset()
    per_block: Mapping[BlockKey, int] = field(default_factory=dict)
    frontier: int = 0


@dataclass(frozen=True)
class Rejection:
    candidate: Candidate
    reason: str


@dataclass(frozen=True)
class Selection:
    accepted: Tuple[Candidate, ...]
    rejected: Tuple[Rejection, ...]
    state: CapState


def select(
    candidates: Sequence[Candidate],
    settings: EngineSettings,
    state: Optional[CapState] = None,
) -> Selection:
    """Accept candidates left to right while every cap has budget.

    Checks run in a fixed order: global cap, category cap, rule cap, one
    link per (rule, keyword), the rule's per-block cap, then overlap with an
    already accepted link. The first failing check is the rejection reason.
    """

    state = state or CapState()
    total = state.total
    per_rule = Counter(state.per_rule)
    per_category = Counter(state.per_category)
    per_block = Counter(state.per_block)
    used_keywords = set(state.used_keywords)
    frontier = state.frontier

    global_cap = settings.default_max_links_per_page
    accepted: List[Candidate] = []
    rejected: List[Rejection] = []

    for candidate in candidates:
        rule = candidate.rule
        category = rule.category
        keyword_key = (rule.id, candidate.keyword.casefold())
        block_key = (rule.id, candidate.block)

        reason = None
        if global_cap > 0 and total >= global_cap:
            reason = "global_cap"
        elif category is not None and category.category_cap > 0 and per_category[category.id] >= category.category_cap:
            reason = "category_cap"
        elif per_rule[rule.id] >= rule.cap:
            reason = "rule_cap"
        elif keyword_key in used_keywords:
            reason = "keyword_used"
        elif rule.rule.max_per_block is not None and per_block[block_key] >= rule.rule.max_per_block:
            reason = "block_cap"
        elif candidate.start < frontier:
            reason = "overlap"

        if reason is not None:
            rejected.append(Rejection(candidate=candidate, reason=reason))
            continue

        accepted.append(candidate)
        total += 1
        per_rule[rule.id] += 1
        if category is not None:
            per_category[category.id] += 1
        per_block[block_key] += 1
        used_keywords.add(keyword_key)
        frontier = candidate.end

    return Selection(
        accepted=tuple(accepted),
        rejected=tuple(rejected),
        state=CapState(
            total=total,
            per_rule=dict(per_rule),
            per_category=dict(per_category),
            used_keywords=frozenset(used_keywords),
            per_block=dict(per_block),
            frontier=frontier,
        ),
    )
