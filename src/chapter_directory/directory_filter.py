"""chapter_directory.directory_filter

Predicate applied to the roster before ranking: chapter, free-text search,
tab, birth month, and membership status. Ranking never filters.

Free-text search matches a case- and accent-insensitive substring of the
name, English name or company, or a plain substring of the mobile number.
A phone-like term (digits with spaces, dashes, dots, parentheses or a
leading +) also matches the mobile with punctuation ignored on both sides,
so "0911222333" finds "0911-222-333".
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from chapter_directory.models import BOARD_RANK_MAX, Member, MemberCategory
from chapter_directory.normalize import search_text


_PHONE_LIKE = re.compile(r"\+?[\d\s().-]+")


def _digits(value: str | None) -> str:
    return re.sub(r"\D", "", value or "")


class DirectoryTab(str, Enum):
    ALL = "all"
    CURRENT = "current"
    COMMITTEE = "committee"
    JUNIOR = "junior"
    SENIOR = "senior"


@dataclass(frozen=True)
class DirectoryFilter:
    chapter: str | None = None
    search: str | None = None
    tab: DirectoryTab = DirectoryTab.ALL
    birth_month: int | None = None
    include_inactive: bool = False

    def __post_init__(self) -> None:
        if self.birth_month is not None and not 1 <= self.birth_month <= 12:
            raise ValueError(f"birth_month must be 1-12, got {self.birth_month}")

    @property
    def is_default_view(self) -> bool:
        """True when the full grouped directory (with section headers) is shown."""
        return (
            self.tab is DirectoryTab.ALL
            and not search_text(self.search)
            and self.birth_month is None
        )

    def matches(self, member: Member) -> bool:
        if self.chapter is not None and member.chapter != self.chapter:
            return False
        if not self.include_inactive and not member.status.is_listed:
            return False
        if not self._matches_search(member):
            return False
        if self.birth_month is not None:
            if member.birth_date is None or member.birth_date.month != self.birth_month:
                return False
        return self._matches_tab(member)

    def apply(self, members: Iterable[Member]) -> list[Member]:
        return [m for m in members if self.matches(m)]

    def _matches_search(self, member: Member) -> bool:
        term = search_text(self.search)
        if term is None:
            return True
        for value in (member.name, member.english_name, member.company):
            folded = search_text(value)
            if folded is not None and term in folded:
                return True
        mobile = member.mobile or ""
        raw = (self.search or "").strip()
        if raw in mobile:
            return True
        digits = _digits(raw)
        return (
            bool(digits)
            and _PHONE_LIKE.fullmatch(raw) is not None
            and digits in _digits(mobile)
        )

    def _matches_tab(self, member: Member) -> bool:
        role = member.current_role
        if self.tab is DirectoryTab.CURRENT:
            return role is not None
        if self.tab is DirectoryTab.COMMITTEE:
            return role is not None and role.rank > BOARD_RANK_MAX
        if self.tab is DirectoryTab.JUNIOR:
            return member.category is MemberCategory.JUNIOR
        if self.tab is DirectoryTab.SENIOR:
            return member.category is MemberCategory.SENIOR
        return True
