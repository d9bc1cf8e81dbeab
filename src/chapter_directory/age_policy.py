"""chapter_directory.age_policy

Junior → senior transition rule.

The rule compares calendar years only (``as_of.year - birth_date.year``), so
a member whose birthday has not yet come round this year is treated as a
year older than they are. The same ``>=`` comparison is used for bulk import
and for the standing administrative alert.

Nothing here changes a member's category; moving a member to the senior
category stays an administrative action.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable

from chapter_directory.models import SENIOR_AGE_THRESHOLD, Member, MemberCategory


@dataclass(frozen=True)
class TransitionAlert:
    member_id: str
    name: str
    chapter: str
    birth_date: date
    year_difference: int


def year_difference(birth_date: date, as_of: date) -> int:
    return as_of.year - birth_date.year


def should_be_senior(birth_date: date, as_of: date) -> bool:
    return year_difference(birth_date, as_of) >= SENIOR_AGE_THRESHOLD


def initial_category(birth_date: date | None, as_of: date) -> MemberCategory:
    """Category for a newly imported member; unknown birth dates stay junior."""
    if birth_date is not None and should_be_senior(birth_date, as_of):
        return MemberCategory.SENIOR
    return MemberCategory.JUNIOR


def find_pending_transitions(
    roster: Iterable[Member],
    as_of: date,
) -> list[TransitionAlert]:
    """Junior members who have crossed the threshold but were not moved yet."""
    alerts: list[TransitionAlert] = []
    for member in roster:
        if member.category is not MemberCategory.JUNIOR or member.birth_date is None:
            continue
        if should_be_senior(member.birth_date, as_of):
            alerts.append(
                TransitionAlert(
                    member_id=member.id,
                    name=member.name,
                    chapter=member.chapter,
                    birth_date=member.birth_date,
                    year_difference=year_difference(member.birth_date, as_of),
                )
            )
    return alerts
