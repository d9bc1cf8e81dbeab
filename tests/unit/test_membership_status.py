"""Unit tests for chapter_directory.membership_status."""

from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from chapter_directory.membership_status import change_status, remove_status_change
from chapter_directory.models import (
    Member,
    MemberCategory,
    MembershipStatus,
    StatusChange,
)

T1 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
T2 = datetime(2026, 4, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def member() -> Member:
    return Member(
        id="m1",
        name="Chen Wei",
        chapter="Chiayi",
        category=MemberCategory.JUNIOR,
        join_date=date(2015, 1, 1),
    )


class TestChangeStatus:
    def test_returns_updated_member_and_entry(self, member: Member):
        updated, entry = change_status(
            member, MembershipStatus.ON_LEAVE, "secretary", T1, "overseas"
        )

        assert updated.status is MembershipStatus.ON_LEAVE
        assert entry == StatusChange(
            from_status=MembershipStatus.ACTIVE,
            to_status=MembershipStatus.ON_LEAVE,
            changed_at=T1,
            changed_by="secretary",
            reason="overseas",
        )
        assert updated.status_log == (entry,)

    def test_input_untouched(self, member: Member):
        change_status(member, MembershipStatus.RESIGNED, "admin", T1)
        assert member.status is MembershipStatus.ACTIVE
        assert member.status_log == ()

    def test_log_appends_in_order(self, member: Member):
        on_leave, _ = change_status(member, MembershipStatus.ON_LEAVE, "admin", T1)
        back, _ = change_status(on_leave, MembershipStatus.REINSTATED, "admin", T2)

        assert [(c.from_status, c.to_status) for c in back.status_log] == [
            (MembershipStatus.ACTIVE, MembershipStatus.ON_LEAVE),
            (MembershipStatus.ON_LEAVE, MembershipStatus.REINSTATED),
        ]

    def test_same_status_rejected(self, member: Member):
        with pytest.raises(ValueError, match="already active"):
            change_status(member, MembershipStatus.ACTIVE, "admin", T1)

    def test_other_fields_preserved(self, member: Member):
        updated, _ = change_status(member, MembershipStatus.RESIGNED, "admin", T1)
        assert updated.name == member.name
        assert updated.join_date == member.join_date


class TestRemoveStatusChange:
    def test_removes_entry_keeps_status(self, member: Member):
        first, _ = change_status(member, MembershipStatus.ON_LEAVE, "admin", T1)
        second, _ = change_status(first, MembershipStatus.RESIGNED, "admin", T2)

        trimmed = remove_status_change(second, 0)

        assert trimmed.status is MembershipStatus.RESIGNED
        assert [c.changed_at for c in trimmed.status_log] == [T2]

    def test_out_of_range(self, member: Member):
        with pytest.raises(IndexError):
            remove_status_change(member, 0)
