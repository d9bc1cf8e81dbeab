"""chapter_directory.repository

Member storage collaborators.

The core only needs two operations:

  list_all(chapter)       → full roster, optionally limited to one chapter
  bulk_replace(members)   → write every given record as a whole, all or none

``bulk_replace`` never raises for storage problems; it returns a
``BulkReplaceResult`` so callers holding an optimistic in-memory roster can
decide whether to retry or re-fetch.

PostgresMemberRepository uses a single transaction per bulk replace; the
schema lives in migrations/*.sql (applied in file-name order).
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Protocol, Sequence

import psycopg

from chapter_directory.models import (
    CurrentRole,
    Member,
    MemberCategory,
    MembershipStatus,
    SeniorHistoryEntry,
    SeniorTitleKind,
    StatusChange,
)

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result + protocol
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BulkReplaceResult:
    ok: bool
    written: int = 0
    error: str | None = None


class MemberRepository(Protocol):
    def list_all(self, chapter: str | None = None) -> list[Member]: ...

    def bulk_replace(self, members: Sequence[Member]) -> BulkReplaceResult: ...


# ---------------------------------------------------------------------------
# In-memory repository
# ---------------------------------------------------------------------------

class InMemoryMemberRepository:
    """Dict-backed repository; ``fail_with`` simulates a storage outage."""

    def __init__(self, members: Iterable[Member] = ()) -> None:
        self._members: dict[str, Member] = {m.id: m for m in members}
        self.fail_with: str | None = None
        self.bulk_calls = 0

    def list_all(self, chapter: str | None = None) -> list[Member]:
        return [
            m for m in self._members.values()
            if chapter is None or m.chapter == chapter
        ]

    def bulk_replace(self, members: Sequence[Member]) -> BulkReplaceResult:
        self.bulk_calls += 1
        if self.fail_with is not None:
            return BulkReplaceResult(ok=False, error=self.fail_with)
        for member in members:
            self._members[member.id] = member
        return BulkReplaceResult(ok=True, written=len(members))


# ---------------------------------------------------------------------------
# Row mapping
# ---------------------------------------------------------------------------

_SELECT_COLUMNS = """
    id, name, chapter, category, status, join_date, birth_date,
    senior_history, current_role_name, current_role_rank,
    english_name, company, mobile, status_log
"""


def history_to_json(history: Sequence[SeniorHistoryEntry]) -> str:
    return json.dumps([
        {"kind": h.kind.value, "term_number": h.term_number, "year": h.year}
        for h in history
    ])


def history_from_json(raw: Any) -> tuple[SeniorHistoryEntry, ...]:
    if raw is None:
        return ()
    items = json.loads(raw) if isinstance(raw, str) else raw
    return tuple(
        SeniorHistoryEntry(
            kind=SeniorTitleKind(item["kind"]),
            term_number=item.get("term_number"),
            year=item.get("year"),
        )
        for item in items
    )


def status_log_to_json(log: Sequence[StatusChange]) -> str:
    return json.dumps([
        {
            "from_status": c.from_status.value,
            "to_status": c.to_status.value,
            "changed_at": c.changed_at.isoformat(),
            "changed_by": c.changed_by,
            "reason": c.reason,
        }
        for c in log
    ])


def status_log_from_json(raw: Any) -> tuple[StatusChange, ...]:
    if raw is None:
        return ()
    items = json.loads(raw) if isinstance(raw, str) else raw
    return tuple(
        StatusChange(
            from_status=MembershipStatus(item["from_status"]),
            to_status=MembershipStatus(item["to_status"]),
            changed_at=datetime.fromisoformat(item["changed_at"]),
            changed_by=item["changed_by"],
            reason=item.get("reason"),
        )
        for item in items
    )


def member_from_row(row: Sequence[Any]) -> Member:
    (
        member_id, name, chapter, category, status, join_date, birth_date,
        history, role_name, role_rank, english_name, company, mobile,
        status_log,
    ) = row
    current_role = (
        CurrentRole(role_name=role_name, rank=int(role_rank))
        if role_name is not None and role_rank is not None
        else None
    )
    return Member(
        id=str(member_id),
        name=name,
        chapter=chapter,
        category=MemberCategory(category),
        status=MembershipStatus(status),
        join_date=join_date,
        birth_date=birth_date,
        senior_history=history_from_json(history),
        current_role=current_role,
        english_name=english_name,
        company=company,
        mobile=mobile,
        status_log=status_log_from_json(status_log),
    )


def member_to_params(member: Member) -> tuple[Any, ...]:
    role = member.current_role
    return (
        member.id,
        member.name,
        member.chapter,
        member.category.value,
        member.status.value,
        member.join_date,
        member.birth_date,
        history_to_json(member.senior_history),
        role.role_name if role else None,
        role.rank if role else None,
        member.english_name,
        member.company,
        member.mobile,
        status_log_to_json(member.status_log),
    )


# ---------------------------------------------------------------------------
# PostgreSQL repository
# ---------------------------------------------------------------------------

class PostgresMemberRepository:
    """psycopg-backed repository.

    Args:
        conn: Open psycopg connection with autocommit off; the repository
            commits or rolls back its own bulk replace.
        dry_run: Roll back every bulk replace instead of committing.
    """

    def __init__(self, conn: psycopg.Connection, dry_run: bool = False) -> None:
        self._conn = conn
        self._dry_run = dry_run

    def list_all(self, chapter: str | None = None) -> list[Member]:
        if chapter is None:
            rows = self._conn.execute(
                f"SELECT {_SELECT_COLUMNS} FROM member ORDER BY id"
            ).fetchall()
        else:
            rows = self._conn.execute(
                f"SELECT {_SELECT_COLUMNS} FROM member WHERE chapter = %s ORDER BY id",
                (chapter,),
            ).fetchall()
        return [member_from_row(r) for r in rows]

    def bulk_replace(self, members: Sequence[Member]) -> BulkReplaceResult:
        try:
            with self._conn.cursor() as cur:
                cur.executemany(
                    """
                    INSERT INTO member
                        (id, name, chapter, category, status, join_date, birth_date,
                         senior_history, current_role_name, current_role_rank,
                         english_name, company, mobile, status_log, updated_at)
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s::jsonb, %s, %s, %s, %s, %s, %s::jsonb, now())
                    ON CONFLICT (id) DO UPDATE SET
                        name = EXCLUDED.name,
                        chapter = EXCLUDED.chapter,
                        category = EXCLUDED.category,
                        status = EXCLUDED.status,
                        join_date = EXCLUDED.join_date,
                        birth_date = EXCLUDED.birth_date,
                        senior_history = EXCLUDED.senior_history,
                        current_role_name = EXCLUDED.current_role_name,
                        current_role_rank = EXCLUDED.current_role_rank,
                        english_name = EXCLUDED.english_name,
                        company = EXCLUDED.company,
                        mobile = EXCLUDED.mobile,
                        status_log = EXCLUDED.status_log,
                        updated_at = now()
                    """,
                    [member_to_params(m) for m in members],
                )
            if self._dry_run:
                self._conn.rollback()
            else:
                self._conn.commit()
        except psycopg.Error as exc:
            if not self._conn.closed:
                self._conn.rollback()
            log.error("bulk_replace failed after %d members queued: %s", len(members), exc)
            return BulkReplaceResult(ok=False, error=str(exc))
        return BulkReplaceResult(ok=True, written=len(members))
