"""chapter_directory.membership_status

Membership status adjustments (--mode status).

A status change never edits a member in place: ``change_status`` returns
the updated record together with the ``StatusChange`` appended to its
``status_log``. The log is append-only except for explicit removal of a
mistaken entry with ``remove_status_change``; removing an entry does not
touch the current status.
"""

from __future__ import annotations

import dataclasses
from datetime import datetime

from chapter_directory.models import Member, MembershipStatus, StatusChange


def change_status(
    member: Member,
    new_status: MembershipStatus,
    changed_by: str,
    changed_at: datetime,
    reason: str | None = None,
) -> tuple[Member, StatusChange]:
    """Move ``member`` to ``new_status`` and record the change.

    Raises:
        ValueError: if the member already has ``new_status``.
    """
    if member.status is new_status:
        raise ValueError(f"member {member.id} is already {new_status.value}")
    entry = StatusChange(
        from_status=member.status,
        to_status=new_status,
        changed_at=changed_at,
        changed_by=changed_by,
        reason=reason,
    )
    updated = dataclasses.replace(
        member,
        status=new_status,
        status_log=member.status_log + (entry,),
    )
    return updated, entry


def remove_status_change(member: Member, index: int) -> Member:
    """Drop the log entry at ``index`` (oldest first).

    Raises:
        IndexError: if there is no entry at ``index``.
    """
    if not 0 <= index < len(member.status_log):
        raise IndexError(f"member {member.id} has no status change #{index}")
    log = member.status_log[:index] + member.status_log[index + 1:]
    return dataclasses.replace(member, status_log=log)
