"""chapter_directory.role_sync

Projects role-slot assignments onto member records (--mode sync).

``synchronize`` is the pure core: for each member it scans the slots in
their stored collection order (not rank order) and takes the first slot
whose main or deputy id set contains the member.

  main holder  → CurrentRole(main_title, rank)
  deputy       → CurrentRole("<deputy_title>(<main_title>)", rank)
  no slot      → current_role cleared

Every member in the input is recomputed; there is no partial mode.

A member listed in more than one slot is a data-entry defect. By default
the first slot in collection order wins; ``find_duplicate_assignments``
reports those members, and ``reject_conflicts=True`` turns them into a
``DuplicateAssignmentError`` instead.

``apply_role_sync`` is the side-effecting shell. It swaps the in-memory
roster first, then hands the full roster to the repository as one bulk
replace. A failed write is reported in the returned outcome; the local
roster is left as it is and the caller reconciles (usually by re-fetching).
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence, Union

from chapter_directory.models import CurrentRole, Member, OrgRoleSlot, SlotPosition
from chapter_directory.repository import BulkReplaceResult, MemberRepository

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class DuplicateAssignmentError(ValueError):
    """Raised in strict mode when members are assigned to more than one slot."""

    def __init__(self, conflicts: list["DuplicateAssignment"]) -> None:
        self.conflicts = conflicts
        detail = "; ".join(
            f"{c.member_id} in {', '.join(c.slot_ids)}" for c in conflicts[:10]
        )
        super().__init__(f"{len(conflicts)} member(s) assigned to several slots: {detail}")


# ---------------------------------------------------------------------------
# Resolution outcomes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Assigned:
    role: CurrentRole
    slot_id: str
    position: SlotPosition


@dataclass(frozen=True)
class Unassigned:
    pass


@dataclass(frozen=True)
class Conflict:
    slot_ids: tuple[str, ...]


RoleResolution = Union[Assigned, Unassigned, Conflict]


@dataclass(frozen=True)
class DuplicateAssignment:
    member_id: str
    slot_ids: tuple[str, ...]


# ---------------------------------------------------------------------------
# Pure core
# ---------------------------------------------------------------------------

def role_for(slot: OrgRoleSlot, position: SlotPosition) -> CurrentRole:
    if position is SlotPosition.DEPUTY:
        return CurrentRole(
            role_name=f"{slot.deputy_title}({slot.main_title})",
            rank=slot.rank,
        )
    return CurrentRole(role_name=slot.main_title, rank=slot.rank)


def first_match(member_id: str, slots: Sequence[OrgRoleSlot]) -> Assigned | None:
    """First slot in collection order that holds ``member_id``."""
    for slot in slots:
        position = slot.position_of(member_id)
        if position is not None:
            return Assigned(role=role_for(slot, position), slot_id=slot.id, position=position)
    return None


def resolve_role(member_id: str, slots: Sequence[OrgRoleSlot]) -> RoleResolution:
    """Resolve a member's role, reporting a Conflict instead of picking one."""
    holding = tuple(slot.id for slot in slots if slot.position_of(member_id) is not None)
    if len(holding) > 1:
        return Conflict(slot_ids=holding)
    match = first_match(member_id, slots)
    return match if match is not None else Unassigned()


def find_duplicate_assignments(slots: Sequence[OrgRoleSlot]) -> list[DuplicateAssignment]:
    """Members held by more than one slot, in first-seen order.

    A member listed as both main and deputy of the same slot counts once.
    """
    holders: dict[str, list[str]] = {}
    for slot in slots:
        for member_id in dict.fromkeys(slot.member_ids):
            holders.setdefault(member_id, []).append(slot.id)
    return [
        DuplicateAssignment(member_id=member_id, slot_ids=tuple(slot_ids))
        for member_id, slot_ids in holders.items()
        if len(slot_ids) > 1
    ]


def synchronize(
    roster: Iterable[Member],
    slots: Sequence[OrgRoleSlot],
    reject_conflicts: bool = False,
) -> list[Member]:
    """Return a new roster with every member's current_role recomputed.

    Raises:
        DuplicateAssignmentError: only when ``reject_conflicts`` is set and a
            member of ``roster`` sits in more than one slot.
    """
    members = list(roster)
    if reject_conflicts:
        roster_ids = {m.id for m in members}
        conflicts = [
            c for c in find_duplicate_assignments(slots) if c.member_id in roster_ids
        ]
        if conflicts:
            raise DuplicateAssignmentError(conflicts)

    synced: list[Member] = []
    for member in members:
        match = first_match(member.id, slots)
        role = match.role if match is not None else None
        if member.current_role == role:
            synced.append(member)
        else:
            synced.append(dataclasses.replace(member, current_role=role))
    return synced


# ---------------------------------------------------------------------------
# Optimistic persistence shell
# ---------------------------------------------------------------------------

@dataclass
class DirectoryState:
    """The in-memory roster the directory view renders from."""

    roster: list[Member] = field(default_factory=list)


@dataclass
class SyncCounters:
    members_synced: int = 0
    roles_assigned: int = 0
    roles_cleared: int = 0
    roles_changed: int = 0
    duplicate_assignments: int = 0
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "members_synced": self.members_synced,
            "roles_assigned": self.roles_assigned,
            "roles_cleared": self.roles_cleared,
            "roles_changed": self.roles_changed,
            "duplicate_assignments": self.duplicate_assignments,
            "warnings": self.warnings[:50],
        }


@dataclass
class SyncOutcome:
    counters: SyncCounters
    persisted: BulkReplaceResult

    @property
    def ok(self) -> bool:
        return self.persisted.ok


def _count_changes(before: Sequence[Member], after: Sequence[Member], ctrs: SyncCounters) -> None:
    for old, new in zip(before, after):
        ctrs.members_synced += 1
        if new.current_role is not None:
            ctrs.roles_assigned += 1
        elif old.current_role is not None:
            ctrs.roles_cleared += 1
        if old.current_role != new.current_role:
            ctrs.roles_changed += 1


def apply_role_sync(
    state: DirectoryState,
    slots: Sequence[OrgRoleSlot],
    repository: MemberRepository,
    reject_conflicts: bool = False,
) -> SyncOutcome:
    """Synchronize ``state.roster`` against ``slots`` and bulk-write the result.

    The state is updated before the write is attempted and is not restored
    when the write fails.
    """
    before = list(state.roster)
    # Strict mode raises before any duplicate is logged.
    after = synchronize(before, slots, reject_conflicts=reject_conflicts)

    ctrs = SyncCounters()
    roster_ids = {m.id for m in before}
    for dup in find_duplicate_assignments(slots):
        if dup.member_id not in roster_ids:
            continue
        ctrs.duplicate_assignments += 1
        msg = (
            f"member {dup.member_id} assigned to slots {', '.join(dup.slot_ids)}; "
            f"using {dup.slot_ids[0]}"
        )
        ctrs.warnings.append(msg)
        log.warning("Duplicate role assignment: %s", msg)

    _count_changes(before, after, ctrs)
    state.roster = after

    persisted = repository.bulk_replace(after)
    if not persisted.ok:
        log.error(
            "Bulk replace of %d members failed: %s; local roster is ahead of storage.",
            len(after), persisted.error,
        )
        ctrs.warnings.append(f"persistence failed: {persisted.error}")
    return SyncOutcome(counters=ctrs, persisted=persisted)


def build_sync_report(outcome: SyncOutcome, dry_run: bool = False) -> str:
    ctrs = outcome.counters
    lines = [
        "=" * 60,
        "Role Synchronization Report",
        f"  dry_run: {dry_run}",
        "=" * 60,
        f"  members synced:          {ctrs.members_synced}",
        f"  roles assigned:          {ctrs.roles_assigned}",
        f"  roles cleared:           {ctrs.roles_cleared}",
        f"  roles changed:           {ctrs.roles_changed}",
        f"  duplicate assignments:   {ctrs.duplicate_assignments}",
        f"Persisted:                 {outcome.persisted.ok} "
        f"({outcome.persisted.written} written)",
    ]
    if ctrs.warnings:
        lines.append(f"\nWarnings ({len(ctrs.warnings)}):")
        for w in ctrs.warnings[:20]:
            lines.append(f"  {w}")
        if len(ctrs.warnings) > 20:
            lines.append(f"  ... and {len(ctrs.warnings) - 20} more")
    lines.append("=" * 60)
    return "\n".join(lines)
