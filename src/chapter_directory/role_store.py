"""chapter_directory.role_store

Editable collection of role slots for one term.

The store keeps slots in collection order, which is the order the
synchronizer scans them in. Edits replace the affected slot with a new
frozen ``OrgRoleSlot``; ``slots()`` hands out an immutable snapshot.
"""

from __future__ import annotations

import dataclasses
from typing import Iterable

from chapter_directory.models import OrgRoleSlot, SlotPosition

DEFAULT_NEW_SLOT_RANK = 200
DEFAULT_DEPUTY_TITLE = "Deputy Chair"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class SlotNotFoundError(KeyError):
    """Raised when an edit names a slot id the store does not hold."""


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class RoleAssignmentStore:
    def __init__(self, slots: Iterable[OrgRoleSlot] = ()) -> None:
        self._slots: list[OrgRoleSlot] = []
        for slot in slots:
            self.add_slot(slot)

    def slots(self) -> tuple[OrgRoleSlot, ...]:
        """Snapshot in collection order."""
        return tuple(self._slots)

    def slots_by_rank(self) -> list[OrgRoleSlot]:
        """Display order; ties keep collection order."""
        return sorted(self._slots, key=lambda s: s.rank)

    def get(self, slot_id: str) -> OrgRoleSlot:
        return self._slots[self._index(slot_id)]

    def __len__(self) -> int:
        return len(self._slots)

    # -- slot lifecycle ----------------------------------------------------

    def add_slot(self, slot: OrgRoleSlot) -> OrgRoleSlot:
        if any(s.id == slot.id for s in self._slots):
            raise ValueError(f"slot id {slot.id!r} already exists")
        self._slots.append(slot)
        return slot

    def new_committee_slot(
        self,
        slot_id: str,
        main_title: str,
        rank: int = DEFAULT_NEW_SLOT_RANK,
        deputy_title: str | None = DEFAULT_DEPUTY_TITLE,
    ) -> OrgRoleSlot:
        """Append an empty committee slot, with a deputy position by default."""
        return self.add_slot(
            OrgRoleSlot(
                id=slot_id,
                rank=rank,
                main_title=main_title,
                has_deputy=deputy_title is not None,
                deputy_title=deputy_title,
                section="teams",
            )
        )

    def remove_slot(self, slot_id: str) -> OrgRoleSlot:
        return self._slots.pop(self._index(slot_id))

    # -- titles / deputy ---------------------------------------------------

    def edit_titles(
        self,
        slot_id: str,
        main_title: str | None = None,
        deputy_title: str | None = None,
    ) -> OrgRoleSlot:
        slot = self.get(slot_id)
        changes: dict[str, object] = {}
        if main_title is not None:
            changes["main_title"] = main_title
        if deputy_title is not None:
            if not slot.has_deputy:
                raise ValueError(f"slot {slot_id!r} has no deputy position")
            changes["deputy_title"] = deputy_title
        return self._replace(slot_id, **changes)

    def set_rank(self, slot_id: str, rank: int) -> OrgRoleSlot:
        return self._replace(slot_id, rank=rank)

    def enable_deputy(self, slot_id: str, deputy_title: str = DEFAULT_DEPUTY_TITLE) -> OrgRoleSlot:
        return self._replace(slot_id, has_deputy=True, deputy_title=deputy_title)

    def disable_deputy(self, slot_id: str) -> OrgRoleSlot:
        """Drop the deputy position along with its holders."""
        return self._replace(
            slot_id, has_deputy=False, deputy_title=None, deputy_member_ids=()
        )

    # -- assignments -------------------------------------------------------

    def assign(
        self,
        slot_id: str,
        member_id: str,
        position: SlotPosition = SlotPosition.MAIN,
    ) -> OrgRoleSlot:
        slot = self.get(slot_id)
        field_name = self._ids_field(slot, position)
        ids = getattr(slot, field_name)
        if member_id in ids:
            return slot
        return self._replace(slot_id, **{field_name: ids + (member_id,)})

    def unassign(
        self,
        slot_id: str,
        member_id: str,
        position: SlotPosition = SlotPosition.MAIN,
    ) -> OrgRoleSlot:
        slot = self.get(slot_id)
        field_name = self._ids_field(slot, position)
        ids = getattr(slot, field_name)
        return self._replace(
            slot_id, **{field_name: tuple(i for i in ids if i != member_id)}
        )

    def toggle(
        self,
        slot_id: str,
        member_id: str,
        position: SlotPosition = SlotPosition.MAIN,
    ) -> OrgRoleSlot:
        slot = self.get(slot_id)
        if member_id in getattr(slot, self._ids_field(slot, position)):
            return self.unassign(slot_id, member_id, position)
        return self.assign(slot_id, member_id, position)

    def slots_holding(self, member_id: str) -> list[str]:
        return [s.id for s in self._slots if s.position_of(member_id) is not None]

    # -- internals ---------------------------------------------------------

    def _index(self, slot_id: str) -> int:
        for idx, slot in enumerate(self._slots):
            if slot.id == slot_id:
                return idx
        raise SlotNotFoundError(slot_id)

    def _replace(self, slot_id: str, **changes: object) -> OrgRoleSlot:
        idx = self._index(slot_id)
        updated = dataclasses.replace(self._slots[idx], **changes)
        self._slots[idx] = updated
        return updated

    @staticmethod
    def _ids_field(slot: OrgRoleSlot, position: SlotPosition) -> str:
        if position is SlotPosition.DEPUTY:
            if not slot.has_deputy:
                raise ValueError(f"slot {slot.id!r} has no deputy position")
            return "deputy_member_ids"
        return "main_member_ids"
