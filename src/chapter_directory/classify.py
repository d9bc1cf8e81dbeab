"""chapter_directory.classify

Member → directory tier, plus the section-boundary helpers the directory
view uses to place headers over a ranked list.
"""

from __future__ import annotations

from typing import Sequence

from chapter_directory.models import BOARD_RANK_MAX, Member, MemberCategory, Tier


def classify(member: Member) -> Tier:
    """Return the tier for ``member``.

    Depends only on ``current_role`` and ``category``.
    """
    if member.current_role is not None:
        if member.current_role.rank <= BOARD_RANK_MAX:
            return Tier.BOARD
        return Tier.COMMITTEE
    if member.category is MemberCategory.JUNIOR:
        return Tier.JUNIOR_GROUP
    return Tier.SENIOR_GROUP


def tier_boundaries(ranked: Sequence[Member]) -> list[int]:
    """Indices in ``ranked`` where a new tier section starts (0 included)."""
    starts: list[int] = []
    previous: Tier | None = None
    for idx, member in enumerate(ranked):
        tier = classify(member)
        if tier is not previous:
            starts.append(idx)
            previous = tier
    return starts


def group_by_tier(ranked: Sequence[Member]) -> list[tuple[Tier, list[Member]]]:
    """Split an already-ranked list into (tier, members) sections in order."""
    sections: list[tuple[Tier, list[Member]]] = []
    for member in ranked:
        tier = classify(member)
        if not sections or sections[-1][0] is not tier:
            sections.append((tier, []))
        sections[-1][1].append(member)
    return sections
