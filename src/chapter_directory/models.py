"""chapter_directory.models

Immutable record types shared by the role synchronizer, the classifier and
the ranking engine.

Members and slots are frozen dataclasses: every transform returns new
records, nothing is edited in place. Member-id collections on a slot are
ordered tuples without duplicates.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum

# ---------------------------------------------------------------------------
# Policy constants
# ---------------------------------------------------------------------------

# Slots ranked at or below this value are governance (board) positions;
# anything above is a delegated committee-chair position.
BOARD_RANK_MAX = 40

# Calendar-year difference at which a junior member is due to move to the
# senior category.
SENIOR_AGE_THRESHOLD = 40


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class MemberCategory(str, Enum):
    JUNIOR = "junior"
    SENIOR = "senior"


class MembershipStatus(str, Enum):
    ACTIVE = "active"
    ON_LEAVE = "on_leave"
    RESIGNED = "resigned"
    REINSTATED = "reinstated"
    PROBATION_FAILED = "probation_failed"
    NOT_JOINING = "not_joining"

    @property
    def is_listed(self) -> bool:
        """Whether members in this status appear in the default directory."""
        return self in (MembershipStatus.ACTIVE, MembershipStatus.REINSTATED)


class SeniorTitleKind(str, Enum):
    PAST_PRESIDENT = "past_president"
    PAST_CHAIR = "past_chair"


class SlotPosition(str, Enum):
    MAIN = "main"
    DEPUTY = "deputy"


class Tier(Enum):
    """Directory tier, declared in display order."""

    BOARD = (0, "Board")
    COMMITTEE = (1, "Committee Chairs")
    JUNIOR_GROUP = (2, "Members")
    SENIOR_GROUP = (3, "Senior Members")

    def __init__(self, ordinal: int, label: str) -> None:
        self.ordinal = ordinal
        self.label = label


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CurrentRole:
    role_name: str
    rank: int


@dataclass(frozen=True)
class SeniorHistoryEntry:
    """A past top-tier title.

    PAST_PRESIDENT entries carry ``term_number``; PAST_CHAIR entries carry
    ``year``. A missing value sorts as 0.
    """

    kind: SeniorTitleKind
    term_number: int | None = None
    year: int | None = None

    @property
    def recency(self) -> int:
        if self.kind is SeniorTitleKind.PAST_PRESIDENT:
            return self.term_number or 0
        return self.year or 0


@dataclass(frozen=True)
class StatusChange:
    """One membership status adjustment, kept on the member in order."""

    from_status: MembershipStatus
    to_status: MembershipStatus
    changed_at: datetime
    changed_by: str
    reason: str | None = None


@dataclass(frozen=True)
class Member:
    id: str
    name: str
    chapter: str
    category: MemberCategory
    join_date: date
    birth_date: date | None = None
    status: MembershipStatus = MembershipStatus.ACTIVE
    senior_history: tuple[SeniorHistoryEntry, ...] = ()
    current_role: CurrentRole | None = None
    english_name: str | None = None
    company: str | None = None
    mobile: str | None = None
    status_log: tuple[StatusChange, ...] = ()


@dataclass(frozen=True)
class OrgRoleSlot:
    """One organizational position for a term.

    ``deputy_title`` is set exactly when ``has_deputy`` is true. Deputies
    share the slot's rank.
    """

    id: str
    rank: int
    main_title: str
    main_member_ids: tuple[str, ...] = ()
    has_deputy: bool = False
    deputy_title: str | None = None
    deputy_member_ids: tuple[str, ...] = ()
    section: str = field(default="teams", compare=False)

    def __post_init__(self) -> None:
        if self.has_deputy and not self.deputy_title:
            raise ValueError(f"slot {self.id!r}: has_deputy requires a deputy_title")
        if not self.has_deputy and (self.deputy_title or self.deputy_member_ids):
            raise ValueError(f"slot {self.id!r}: deputy fields set without has_deputy")

    def position_of(self, member_id: str) -> SlotPosition | None:
        """Return where ``member_id`` sits in this slot; main wins over deputy."""
        if member_id in self.main_member_ids:
            return SlotPosition.MAIN
        if member_id in self.deputy_member_ids:
            return SlotPosition.DEPUTY
        return None

    @property
    def member_ids(self) -> tuple[str, ...]:
        return self.main_member_ids + self.deputy_member_ids
