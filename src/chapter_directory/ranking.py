"""chapter_directory.ranking

Deterministic directory ordering.

Each member gets one composite ``SortKey`` and the list is sorted by it.
Precedence of the key fields:

  tier ordinal        BOARD < COMMITTEE < JUNIOR_GROUP < SENIOR_GROUP
  role_rank           officers only: current_role.rank ascending
  history_priority    seniors only: 0 past president, 1 past chair, 2 none
  history_recency     seniors with history: highest term/year first
  joined              juniors and seniors: join_date ascending
  name                lexicographic ascending
  member_id           last resort so the order is strict

Officers do not use the join date; equal-rank officers fall back to name
and then id. Fields a tier does not use are held at 0 so they never decide
the order inside that tier.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from chapter_directory.classify import classify
from chapter_directory.models import Member, SeniorTitleKind, Tier

# Senior history priorities
PAST_PRESIDENT_PRIORITY = 0
PAST_CHAIR_PRIORITY = 1
NO_HISTORY_PRIORITY = 2


@dataclass(frozen=True, order=True)
class SortKey:
    tier: int
    role_rank: int
    history_priority: int
    history_recency: int
    joined: int
    name: str
    member_id: str


def senior_history_priority(member: Member) -> int:
    kinds = {entry.kind for entry in member.senior_history}
    if SeniorTitleKind.PAST_PRESIDENT in kinds:
        return PAST_PRESIDENT_PRIORITY
    if SeniorTitleKind.PAST_CHAIR in kinds:
        return PAST_CHAIR_PRIORITY
    return NO_HISTORY_PRIORITY


def senior_history_recency(member: Member) -> int:
    """Highest term number (past presidents) or year (past chairs), else 0."""
    priority = senior_history_priority(member)
    if priority == NO_HISTORY_PRIORITY:
        return 0
    kind = (
        SeniorTitleKind.PAST_PRESIDENT
        if priority == PAST_PRESIDENT_PRIORITY
        else SeniorTitleKind.PAST_CHAIR
    )
    return max(entry.recency for entry in member.senior_history if entry.kind is kind)


def sort_key(member: Member) -> SortKey:
    tier = classify(member)
    role_rank = 0
    history_priority = 0
    history_recency = 0
    joined = 0

    if tier in (Tier.BOARD, Tier.COMMITTEE):
        role_rank = member.current_role.rank  # type: ignore[union-attr]
    else:
        joined = member.join_date.toordinal()
        if tier is Tier.SENIOR_GROUP:
            history_priority = senior_history_priority(member)
            # Negated so the highest term/year sorts first.
            history_recency = -senior_history_recency(member)

    return SortKey(
        tier=tier.ordinal,
        role_rank=role_rank,
        history_priority=history_priority,
        history_recency=history_recency,
        joined=joined,
        name=member.name,
        member_id=member.id,
    )


def rank_members(members: Iterable[Member]) -> list[Member]:
    """Return a new list of ``members`` in directory order.

    The input is expected to be filtered already; it is not modified.
    """
    return sorted(members, key=sort_key)
