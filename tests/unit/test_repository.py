"""Unit tests for chapter_directory.repository (no database required)."""

from __future__ import annotations

import json
from datetime import date, datetime, timezone

import pytest

from chapter_directory.models import (
    CurrentRole,
    Member,
    MemberCategory,
    MembershipStatus,
    SeniorHistoryEntry,
    SeniorTitleKind,
    StatusChange,
)
from chapter_directory.repository import (
    BulkReplaceResult,
    InMemoryMemberRepository,
    history_from_json,
    history_to_json,
    member_from_row,
    member_to_params,
    status_log_from_json,
    status_log_to_json,
)


def _member(member_id: str, chapter: str = "Chiayi", **overrides) -> Member:
    fields = dict(
        id=member_id,
        name=f"Name {member_id}",
        chapter=chapter,
        category=MemberCategory.JUNIOR,
        join_date=date(2015, 1, 1),
    )
    fields.update(overrides)
    return Member(**fields)


# ---------------------------------------------------------------------------
# InMemoryMemberRepository
# ---------------------------------------------------------------------------

class TestInMemoryRepository:
    def test_list_all_and_chapter_filter(self):
        repo = InMemoryMemberRepository([_member("a"), _member("b", "Nantou"), _member("c")])
        assert [m.id for m in repo.list_all()] == ["a", "b", "c"]
        assert [m.id for m in repo.list_all("Nantou")] == ["b"]
        assert repo.list_all("Tainan") == []

    def test_bulk_replace_overwrites_by_id(self):
        repo = InMemoryMemberRepository([_member("a"), _member("b")])
        updated = _member("a", current_role=CurrentRole("President", 10))
        result = repo.bulk_replace([updated, _member("z")])

        assert result == BulkReplaceResult(ok=True, written=2)
        assert [m.id for m in repo.list_all()] == ["a", "b", "z"]
        assert repo.list_all()[0].current_role == CurrentRole("President", 10)

    def test_failure_leaves_store_untouched(self):
        repo = InMemoryMemberRepository([_member("a")])
        repo.fail_with = "connection reset"
        result = repo.bulk_replace([_member("a", name="Changed")])

        assert not result.ok
        assert result.error == "connection reset"
        assert repo.list_all()[0].name == "Name a"
        assert repo.bulk_calls == 1


# ---------------------------------------------------------------------------
# JSON history helpers
# ---------------------------------------------------------------------------

HISTORY = (
    SeniorHistoryEntry(SeniorTitleKind.PAST_PRESIDENT, term_number=5),
    SeniorHistoryEntry(SeniorTitleKind.PAST_CHAIR, year=2019),
)


class TestHistoryJson:
    def test_to_json_shape(self):
        assert json.loads(history_to_json(HISTORY)) == [
            {"kind": "past_president", "term_number": 5, "year": None},
            {"kind": "past_chair", "term_number": None, "year": 2019},
        ]

    def test_from_string(self):
        assert history_from_json(history_to_json(HISTORY)) == HISTORY

    def test_from_decoded_list(self):
        # psycopg hands jsonb columns back already decoded
        assert history_from_json([{"kind": "past_chair", "year": 2019}]) == HISTORY[1:]

    def test_none_is_empty(self):
        assert history_from_json(None) == ()

    def test_unknown_kind_raises(self):
        with pytest.raises(ValueError):
            history_from_json([{"kind": "past_mascot"}])


# ---------------------------------------------------------------------------
# Row mapping
# ---------------------------------------------------------------------------

class TestRowMapping:
    def test_params_then_row(self):
        member = _member(
            "a",
            category=MemberCategory.SENIOR,
            status=MembershipStatus.REINSTATED,
            birth_date=date(1970, 2, 3),
            senior_history=HISTORY,
            current_role=CurrentRole("Honorary Advisor", 45),
            english_name="Andy",
            company="Acme",
            mobile="0911",
        )
        params = member_to_params(member)
        assert params[3:5] == ("senior", "reinstated")
        assert params[8:10] == ("Honorary Advisor", 45)
        assert member_from_row(params) == member

    def test_no_role_maps_to_nulls(self):
        params = member_to_params(_member("a"))
        assert params[8:10] == (None, None)
        assert member_from_row(params).current_role is None


# ---------------------------------------------------------------------------
# Status log
# ---------------------------------------------------------------------------

STATUS_LOG = (
    StatusChange(
        from_status=MembershipStatus.ACTIVE,
        to_status=MembershipStatus.ON_LEAVE,
        changed_at=datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc),
        changed_by="secretary",
        reason="overseas posting",
    ),
    StatusChange(
        from_status=MembershipStatus.ON_LEAVE,
        to_status=MembershipStatus.REINSTATED,
        changed_at=datetime(2026, 9, 1, 9, 30, tzinfo=timezone.utc),
        changed_by="admin",
    ),
)


class TestStatusLogJson:
    def test_to_json_shape(self):
        assert json.loads(status_log_to_json(STATUS_LOG[:1])) == [{
            "from_status": "active",
            "to_status": "on_leave",
            "changed_at": "2026-03-01T09:30:00+00:00",
            "changed_by": "secretary",
            "reason": "overseas posting",
        }]

    def test_from_string(self):
        assert status_log_from_json(status_log_to_json(STATUS_LOG)) == STATUS_LOG

    def test_none_is_empty(self):
        assert status_log_from_json(None) == ()

    def test_row_mapping_keeps_log(self):
        member = _member("a", status=MembershipStatus.REINSTATED, status_log=STATUS_LOG)
        assert member_from_row(member_to_params(member)) == member
