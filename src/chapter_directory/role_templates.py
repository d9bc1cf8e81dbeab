"""chapter_directory.role_templates

YAML role templates: the per-term list of organizational slots, optionally
with their current assignments.

Responsibilities:
  - Load and validate template files from config/role_templates/*.yml
  - Hash YAML content for traceability
  - Write a store's slots (with assignments) back to YAML

Usage:
    from pathlib import Path
    from chapter_directory.role_templates import load_role_template

    template = load_role_template(Path("config/role_templates/default.yml"))
    store = template.to_store()

File layout:
    term: "2026"
    version: "v1"
    chapter: Chiayi          # optional; sync is limited to this chapter
    slots:
      - id: e1
        section: admin
        rank: 30
        main_title: Secretary General
        deputy_title: Deputy Secretary General   # omit for no deputy
        main_member_ids: []
        deputy_member_ids: []
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Sequence

import yaml

from chapter_directory.models import OrgRoleSlot
from chapter_directory.role_store import RoleAssignmentStore

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

REQUIRED_YAML_KEYS = frozenset({"term", "version", "slots"})

REQUIRED_SLOT_KEYS = frozenset({"id", "rank", "main_title"})

VALID_SECTIONS = frozenset({"main_axis", "advisors", "supervisors", "admin", "teams"})


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class RoleTemplateValidationError(ValueError):
    """Raised when a YAML role template fails schema validation."""


# ---------------------------------------------------------------------------
# RoleTemplate dataclass
# ---------------------------------------------------------------------------

@dataclass
class RoleTemplate:
    """Parsed, validated role template loaded from a YAML file."""

    term: str
    version: str
    yaml_hash: str
    slots: list[OrgRoleSlot]
    chapter: str | None = None
    raw_yaml: str = field(repr=False, default="")

    def to_store(self) -> RoleAssignmentStore:
        return RoleAssignmentStore(self.slots)


# ---------------------------------------------------------------------------
# Loader + validator
# ---------------------------------------------------------------------------

def load_role_template(yaml_path: Path) -> RoleTemplate:
    """Load, validate, and return a RoleTemplate from a YAML file.

    Raises:
        RoleTemplateValidationError: If any required field is missing or invalid.
        FileNotFoundError: If the YAML file does not exist.
    """
    raw = yaml_path.read_text(encoding="utf-8")
    return parse_role_template(raw)


def parse_role_template(raw: str) -> RoleTemplate:
    data: Any = yaml.safe_load(raw)
    validate_role_template(data)
    return RoleTemplate(
        term=str(data["term"]),
        version=str(data["version"]),
        yaml_hash=hashlib.sha256(raw.encode("utf-8")).hexdigest(),
        slots=[_slot_from_dict(s) for s in data["slots"]],
        chapter=str(data["chapter"]) if data.get("chapter") is not None else None,
        raw_yaml=raw,
    )


def _ids(value: Any) -> tuple[str, ...]:
    # Ordered de-dup; ids may be written as numbers in hand-edited files.
    # The validator guarantees a list.
    return tuple(dict.fromkeys(str(v) for v in (value or [])))


def _slot_from_dict(item: dict[str, Any]) -> OrgRoleSlot:
    deputy_title = item.get("deputy_title")
    return OrgRoleSlot(
        id=str(item["id"]),
        rank=int(item["rank"]),
        main_title=str(item["main_title"]),
        main_member_ids=_ids(item.get("main_member_ids")),
        has_deputy=deputy_title is not None,
        deputy_title=str(deputy_title) if deputy_title is not None else None,
        deputy_member_ids=_ids(item.get("deputy_member_ids")),
        section=str(item.get("section", "teams")),
    )


def validate_role_template(data: Any) -> None:
    """Raise RoleTemplateValidationError if data does not match the schema.

    Validates:
      - Required top-level keys present, ``slots`` a non-empty list
      - Each slot has id / rank / main_title, integer rank, known section
      - Slot ids are unique
      - deputy_title, when present, is a non-empty string
      - main_member_ids / deputy_member_ids are lists
      - deputy_member_ids only on slots with a deputy_title
      - optional ``chapter`` is a non-empty string
    """
    if not isinstance(data, dict):
        raise RoleTemplateValidationError("YAML root must be a mapping.")

    missing_keys = REQUIRED_YAML_KEYS - set(data.keys())
    if missing_keys:
        raise RoleTemplateValidationError(f"Missing required YAML keys: {sorted(missing_keys)}")

    chapter = data.get("chapter")
    if chapter is not None and (not isinstance(chapter, str) or not chapter.strip()):
        raise RoleTemplateValidationError("'chapter' must be a non-empty string when present.")

    slots = data.get("slots")
    if not isinstance(slots, list) or not slots:
        raise RoleTemplateValidationError("'slots' must be a non-empty list.")

    seen_ids: set[str] = set()
    for idx, item in enumerate(slots):
        if not isinstance(item, dict):
            raise RoleTemplateValidationError(f"slot #{idx} must be a mapping.")
        missing = REQUIRED_SLOT_KEYS - set(item.keys())
        if missing:
            raise RoleTemplateValidationError(f"slot #{idx} missing keys: {sorted(missing)}")

        slot_id = str(item["id"])
        if slot_id in seen_ids:
            raise RoleTemplateValidationError(f"Duplicate slot id '{slot_id}'.")
        seen_ids.add(slot_id)

        rank = item["rank"]
        if isinstance(rank, bool) or not isinstance(rank, int):
            raise RoleTemplateValidationError(
                f"slot '{slot_id}' rank '{rank}' is not an integer."
            )

        section = item.get("section", "teams")
        if section not in VALID_SECTIONS:
            raise RoleTemplateValidationError(
                f"slot '{slot_id}' section '{section}'. Must be one of {sorted(VALID_SECTIONS)}."
            )

        deputy_title = item.get("deputy_title")
        if deputy_title is not None and (
            not isinstance(deputy_title, str) or not deputy_title.strip()
        ):
            raise RoleTemplateValidationError(
                f"slot '{slot_id}' deputy_title must be a non-empty string; omit it for no deputy."
            )

        for ids_key in ("main_member_ids", "deputy_member_ids"):
            ids = item.get(ids_key)
            if ids is not None and not isinstance(ids, list):
                raise RoleTemplateValidationError(
                    f"slot '{slot_id}' {ids_key} must be a list, got {ids!r}."
                )

        if item.get("deputy_member_ids") and item.get("deputy_title") is None:
            raise RoleTemplateValidationError(
                f"slot '{slot_id}' lists deputy_member_ids without a deputy_title."
            )


# ---------------------------------------------------------------------------
# Writer
# ---------------------------------------------------------------------------

def template_to_dict(
    term: str,
    version: str,
    slots: Sequence[OrgRoleSlot],
    chapter: str | None = None,
) -> dict[str, Any]:
    out_slots: list[dict[str, Any]] = []
    for slot in slots:
        item: dict[str, Any] = {
            "id": slot.id,
            "section": slot.section,
            "rank": slot.rank,
            "main_title": slot.main_title,
            "main_member_ids": list(slot.main_member_ids),
        }
        if slot.has_deputy:
            item["deputy_title"] = slot.deputy_title
            item["deputy_member_ids"] = list(slot.deputy_member_ids)
        out_slots.append(item)
    out: dict[str, Any] = {"term": term, "version": version}
    if chapter is not None:
        out["chapter"] = chapter
    out["slots"] = out_slots
    return out


def save_role_template(
    yaml_path: Path,
    term: str,
    version: str,
    slots: Sequence[OrgRoleSlot],
    chapter: str | None = None,
) -> RoleTemplate:
    """Write slots (collection order preserved) and return the reloaded template."""
    raw = yaml.safe_dump(
        template_to_dict(term, version, slots, chapter),
        sort_keys=False,
        allow_unicode=True,
    )
    yaml_path.parent.mkdir(parents=True, exist_ok=True)
    yaml_path.write_text(raw, encoding="utf-8")
    return parse_role_template(raw)
