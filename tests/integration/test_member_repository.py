"""Integration tests for PostgresMemberRepository and the sync CLI.

These tests run against an ephemeral PostgreSQL database with the schema
applied via the db_conn fixture in conftest.py.
"""

from __future__ import annotations

import textwrap
from datetime import date, datetime, timezone
from pathlib import Path

from click.testing import CliRunner

from chapter_directory.cli import main
from chapter_directory.models import (
    CurrentRole,
    Member,
    MemberCategory,
    MembershipStatus,
    SeniorHistoryEntry,
    SeniorTitleKind,
    StatusChange,
)
from chapter_directory.repository import PostgresMemberRepository


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


def _count(conn) -> int:
    return conn.execute("SELECT count(*) FROM member").fetchone()[0]


# ---------------------------------------------------------------------------
# Round trip
# ---------------------------------------------------------------------------

class TestBulkReplace:
    def test_round_trip_all_fields(self, db_conn):
        conn, _ = db_conn
        repo = PostgresMemberRepository(conn)
        member = _member(
            "a",
            category=MemberCategory.SENIOR,
            status=MembershipStatus.ON_LEAVE,
            birth_date=date(1970, 2, 3),
            senior_history=(
                SeniorHistoryEntry(SeniorTitleKind.PAST_PRESIDENT, term_number=7),
                SeniorHistoryEntry(SeniorTitleKind.PAST_CHAIR, year=2012),
            ),
            current_role=CurrentRole("Honorary Advisor", 45),
            english_name="Andy",
            company="Acme Rice",
            mobile="0911-222-333",
            status_log=(
                StatusChange(
                    from_status=MembershipStatus.ACTIVE,
                    to_status=MembershipStatus.ON_LEAVE,
                    changed_at=datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc),
                    changed_by="secretary",
                    reason="overseas posting",
                ),
            ),
        )
        result = repo.bulk_replace([member])

        assert result.ok
        assert result.written == 1
        assert repo.list_all() == [member]

    def test_replaces_existing_rows(self, db_conn):
        conn, _ = db_conn
        repo = PostgresMemberRepository(conn)
        repo.bulk_replace([_member("a", current_role=CurrentRole("President", 10))])
        repo.bulk_replace([_member("a", name="Renamed")])

        (stored,) = repo.list_all()
        assert stored.name == "Renamed"
        assert stored.current_role is None
        assert _count(conn) == 1

    def test_chapter_filter_and_order(self, db_conn):
        conn, _ = db_conn
        repo = PostgresMemberRepository(conn)
        repo.bulk_replace([_member("c"), _member("b", "Nantou"), _member("a")])

        assert [m.id for m in repo.list_all()] == ["a", "b", "c"]
        assert [m.id for m in repo.list_all("Chiayi")] == ["a", "c"]

    def test_dry_run_rolls_back(self, db_conn):
        conn, _ = db_conn
        result = PostgresMemberRepository(conn, dry_run=True).bulk_replace([_member("a")])

        assert result.ok
        assert _count(conn) == 0

    def test_failure_writes_nothing(self, db_conn):
        conn, _ = db_conn
        repo = PostgresMemberRepository(conn)
        result = repo.bulk_replace([_member("a"), _member("b", name=None)])

        assert not result.ok
        assert result.error
        assert _count(conn) == 0
        # connection stays usable after the rollback
        assert repo.bulk_replace([_member("a")]).ok


# ---------------------------------------------------------------------------
# CLI end to end
# ---------------------------------------------------------------------------

TEMPLATE_YAML = textwrap.dedent("""\
    term: "2026"
    version: "v1"
    chapter: Chiayi
    slots:
      - id: president
        rank: 10
        main_title: President
        main_member_ids: [a]
      - id: sports
        rank: 101
        main_title: Sports Chair
        deputy_title: Deputy Chair
        deputy_member_ids: [b]
""")


class TestSyncCli:
    def _invoke(self, dsn: str, tmp_path: Path, *extra: str):
        template = tmp_path / "roles.yml"
        template.write_text(TEMPLATE_YAML, encoding="utf-8")
        return CliRunner().invoke(main, [
            "--mode", "sync",
            "--db-dsn", dsn,
            "--role-template", str(template),
            "--reports-dir", str(tmp_path / "reports"),
            "--run-id", "test-sync",
            *extra,
        ])

    def test_sync_writes_roles(self, db_conn, tmp_path):
        conn, dsn = db_conn
        repo = PostgresMemberRepository(conn)
        repo.bulk_replace([
            _member("a"),
            _member("b"),
            _member("c", current_role=CurrentRole("Treasurer", 35)),
        ])

        result = self._invoke(dsn, tmp_path)
        assert result.exit_code == 0, result.output

        roles = {m.id: m.current_role for m in repo.list_all()}
        assert roles == {
            "a": CurrentRole("President", 10),
            "b": CurrentRole("Deputy Chair(Sports Chair)", 101),
            "c": None,
        }

    def test_dry_run_leaves_roles_untouched(self, db_conn, tmp_path):
        conn, dsn = db_conn
        repo = PostgresMemberRepository(conn)
        repo.bulk_replace([_member("a"), _member("b")])

        result = self._invoke(dsn, tmp_path, "--dry-run")
        assert result.exit_code == 0, result.output
        assert "DRY RUN: rolled back." in result.output
        assert all(m.current_role is None for m in repo.list_all())

    def test_other_chapters_keep_roles(self, db_conn, tmp_path):
        conn, dsn = db_conn
        repo = PostgresMemberRepository(conn)
        repo.bulk_replace([
            _member("a"),
            _member("n1", "Nantou", current_role=CurrentRole("President", 10)),
        ])

        result = self._invoke(dsn, tmp_path)
        assert result.exit_code == 0, result.output

        roles = {m.id: m.current_role for m in repo.list_all()}
        assert roles["a"] == CurrentRole("President", 10)
        assert roles["n1"] == CurrentRole("President", 10)


class TestStatusCli:
    def test_status_change_is_stored_with_log(self, db_conn, tmp_path):
        conn, dsn = db_conn
        repo = PostgresMemberRepository(conn)
        repo.bulk_replace([_member("a")])

        result = CliRunner().invoke(main, [
            "--mode", "status",
            "--db-dsn", dsn,
            "--member-id", "a",
            "--status", "resigned",
            "--reason", "moved away",
            "--reports-dir", str(tmp_path / "reports"),
            "--run-id", "test-status",
        ])
        assert result.exit_code == 0, result.output

        (stored,) = repo.list_all()
        assert stored.status is MembershipStatus.RESIGNED
        (entry,) = stored.status_log
        assert entry.from_status is MembershipStatus.ACTIVE
        assert entry.reason == "moved away"
        assert entry.changed_at.tzinfo is not None
