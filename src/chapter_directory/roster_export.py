"""chapter_directory.roster_export

Ranked roster CSV export (--mode export).

Rows are written in directory order with the tier as a column so a
spreadsheet reproduces the grouped listing. The file carries a UTF-8 BOM
for spreadsheet applications that need it to detect the encoding.
"""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Sequence

from chapter_directory.classify import classify
from chapter_directory.models import Member

EXPORT_COLUMNS = [
    "id",
    "name",
    "english_name",
    "chapter",
    "tier",
    "category",
    "current_role",
    "role_rank",
    "join_date",
    "birth_date",
    "company",
    "mobile",
    "past_president_terms",
    "past_chair_years",
]


def member_to_export_row(member: Member) -> dict[str, str]:
    role = member.current_role
    terms = [str(h.term_number) for h in member.senior_history if h.term_number is not None]
    years = [str(h.year) for h in member.senior_history if h.year is not None]
    return {
        "id": member.id,
        "name": member.name,
        "english_name": member.english_name or "",
        "chapter": member.chapter,
        "tier": classify(member).label,
        "category": member.category.value,
        "current_role": role.role_name if role else "",
        "role_rank": str(role.rank) if role else "",
        "join_date": member.join_date.isoformat(),
        "birth_date": member.birth_date.isoformat() if member.birth_date else "",
        "company": member.company or "",
        "mobile": member.mobile or "",
        "past_president_terms": ";".join(terms),
        "past_chair_years": ";".join(years),
    }


def export_roster_csv(ranked: Sequence[Member], out_path: Path) -> int:
    """Write ``ranked`` (already in directory order) to ``out_path``; return row count."""
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with out_path.open("w", newline="", encoding="utf-8-sig") as fh:
        writer = csv.DictWriter(fh, fieldnames=EXPORT_COLUMNS)
        writer.writeheader()
        for member in ranked:
            writer.writerow(member_to_export_row(member))
    return len(ranked)
