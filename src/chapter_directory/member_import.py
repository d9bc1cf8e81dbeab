"""chapter_directory.member_import

Roster CSV import (--mode import).

Input CSV format (comma-delimited, header row required, UTF-8 with or
without BOM):
    id,name,chapter,join_date[,category,status,birth_date,english_name,
    company,mobile,past_president_terms,past_chair_years]

Required columns: id, name, chapter, join_date
Multi-valued columns use ';' separators, e.g. past_president_terms "3;7".

Row handling:
  - Missing id / name / chapter, or a missing or unparsable join_date or
    birth_date, sends the row to the reject CSV; it is never imported.
  - A blank category is derived from the birth date with the age policy
    (``initial_category``); unknown birth dates import as junior.
  - An explicit category is kept as given; a junior who is already past
    the age threshold is counted as a transition alert, not changed.
  - current_role and the status change log are carried over from the stored
    record with the same id; only role synchronization may change the role
    and only --mode status appends to the log.
"""

from __future__ import annotations

import csv
import logging
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Mapping

from chapter_directory.age_policy import initial_category, should_be_senior
from chapter_directory.models import (
    Member,
    MemberCategory,
    MembershipStatus,
    SeniorHistoryEntry,
    SeniorTitleKind,
)
from chapter_directory.normalize import normalize_space, parse_date, parse_int, trim
from chapter_directory.shared import RejectWriter

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_REQUIRED_COLS = frozenset({"id", "name", "chapter", "join_date"})

_CATEGORY_ALIASES = {
    "junior": MemberCategory.JUNIOR,
    "yb": MemberCategory.JUNIOR,
    "senior": MemberCategory.SENIOR,
    "ob": MemberCategory.SENIOR,
}


# ---------------------------------------------------------------------------
# Counters
# ---------------------------------------------------------------------------

@dataclass
class ImportCounters:
    rows_read: int = 0
    rows_imported: int = 0
    rows_rejected: int = 0
    categories_derived: int = 0
    transition_alerts: int = 0
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "rows_read": self.rows_read,
            "rows_imported": self.rows_imported,
            "rows_rejected": self.rows_rejected,
            "categories_derived": self.categories_derived,
            "transition_alerts": self.transition_alerts,
            "warnings": self.warnings[:50],
        }


class RowRejected(ValueError):
    """A CSV row that cannot become a Member; the message is the reject reason."""


# ---------------------------------------------------------------------------
# Row parsing
# ---------------------------------------------------------------------------

def _split_ints(value: str | None, column: str) -> list[int]:
    v = trim(value)
    if v is None:
        return []
    out: list[int] = []
    for part in v.split(";"):
        if not part.strip():
            continue
        n = parse_int(part)
        if n is None:
            raise RowRejected(f"invalid_{column}:{part.strip()}")
        out.append(n)
    return out


def parse_senior_history(row: Mapping[str, str]) -> tuple[SeniorHistoryEntry, ...]:
    history = [
        SeniorHistoryEntry(kind=SeniorTitleKind.PAST_PRESIDENT, term_number=term)
        for term in _split_ints(row.get("past_president_terms"), "past_president_terms")
    ]
    history.extend(
        SeniorHistoryEntry(kind=SeniorTitleKind.PAST_CHAIR, year=year)
        for year in _split_ints(row.get("past_chair_years"), "past_chair_years")
    )
    return tuple(history)


def _parse_category(value: str | None) -> MemberCategory | None:
    v = trim(value)
    if v is None:
        return None
    category = _CATEGORY_ALIASES.get(v.lower())
    if category is None:
        raise RowRejected(f"invalid_category:{v}")
    return category


def _parse_status(value: str | None) -> MembershipStatus:
    v = trim(value)
    if v is None:
        return MembershipStatus.ACTIVE
    try:
        return MembershipStatus(v.lower())
    except ValueError:
        raise RowRejected(f"invalid_status:{v}") from None


def parse_member_row(
    row: Mapping[str, str],
    as_of: date,
    existing: Member | None = None,
) -> tuple[Member, bool]:
    """Build a Member from one CSV row.

    Returns:
        (member, category_derived)

    Raises:
        RowRejected: with the reject reason as message.
    """
    member_id = trim(row.get("id"))
    name = normalize_space(row.get("name"))
    chapter = normalize_space(row.get("chapter"))
    if member_id is None:
        raise RowRejected("missing_id")
    if name is None:
        raise RowRejected("missing_name")
    if chapter is None:
        raise RowRejected("missing_chapter")

    raw_join = trim(row.get("join_date"))
    join_date = parse_date(raw_join)
    if join_date is None:
        raise RowRejected(f"invalid_join_date:{raw_join or ''}")

    raw_birth = trim(row.get("birth_date"))
    birth_date = parse_date(raw_birth)
    if raw_birth is not None and birth_date is None:
        raise RowRejected(f"invalid_birth_date:{raw_birth}")

    category = _parse_category(row.get("category"))
    derived = category is None
    if category is None:
        category = initial_category(birth_date, as_of)

    member = Member(
        id=member_id,
        name=name,
        chapter=chapter,
        category=category,
        join_date=join_date,
        birth_date=birth_date,
        status=_parse_status(row.get("status")),
        senior_history=parse_senior_history(row),
        current_role=existing.current_role if existing is not None else None,
        english_name=normalize_space(row.get("english_name")),
        company=normalize_space(row.get("company")),
        mobile=normalize_space(row.get("mobile")),
        status_log=existing.status_log if existing is not None else (),
    )
    return member, derived


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------

def run_member_import(
    csv_path: Path,
    rejects: RejectWriter,
    as_of: date,
    existing: Mapping[str, Member] | None = None,
) -> tuple[list[Member], ImportCounters]:
    """Parse ``csv_path`` into Members; bad rows go to ``rejects``.

    Raises:
        ValueError: if the header lacks a required column.
    """
    ctrs = ImportCounters()
    existing = existing or {}
    members: list[Member] = []
    seen_ids: set[str] = set()

    with csv_path.open(newline="", encoding="utf-8-sig") as fh:
        reader = csv.DictReader(fh)
        missing = _REQUIRED_COLS - set(reader.fieldnames or [])
        if missing:
            raise ValueError(f"CSV missing required columns: {sorted(missing)}")

        for row in reader:
            ctrs.rows_read += 1
            try:
                member, derived = parse_member_row(
                    row, as_of, existing.get(trim(row.get("id")) or "")
                )
                if member.id in seen_ids:
                    raise RowRejected(f"duplicate_id:{member.id}")
            except RowRejected as exc:
                rejects.write(row, str(exc))
                ctrs.rows_rejected += 1
                continue

            seen_ids.add(member.id)
            if derived:
                ctrs.categories_derived += 1
            elif (
                member.category is MemberCategory.JUNIOR
                and member.birth_date is not None
                and should_be_senior(member.birth_date, as_of)
            ):
                ctrs.transition_alerts += 1
                ctrs.warnings.append(
                    f"{member.id} ({member.name}) is past the senior age threshold"
                )
            members.append(member)
            ctrs.rows_imported += 1

    if ctrs.rows_rejected:
        log.warning("%d of %d rows rejected from %s", ctrs.rows_rejected, ctrs.rows_read, csv_path)
    return members, ctrs


def build_import_report(ctrs: ImportCounters, dry_run: bool = False) -> str:
    lines = [
        "=" * 60,
        "Member Import Report",
        f"  dry_run: {dry_run}",
        "=" * 60,
        f"  rows read:               {ctrs.rows_read}",
        f"  rows imported:           {ctrs.rows_imported}",
        f"  rows rejected:           {ctrs.rows_rejected}",
        f"  categories derived:      {ctrs.categories_derived}",
        f"  transition alerts:       {ctrs.transition_alerts}",
    ]
    if ctrs.warnings:
        lines.append(f"\nWarnings ({len(ctrs.warnings)}):")
        for w in ctrs.warnings[:20]:
            lines.append(f"  {w}")
        if len(ctrs.warnings) > 20:
            lines.append(f"  ... and {len(ctrs.warnings) - 20} more")
    lines.append("=" * 60)
    return "\n".join(lines)
