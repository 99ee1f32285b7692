"""
Tests for sprint boundaries.
"""

import pytest
from datetime import date, timedelta

from team_availability.sprints import (
    InvalidSprintError,
    Sprint,
    SprintWindow,
    check_sprint_sequence,
    resolve_current_sprint,
    sprint_end_date,
    sprint_for_date,
    sprint_length_for_range,
    validate_sprint_length,
)


ANCHOR = date(2025, 8, 10)


class TestSprintLength:
    """Tests for sprint length validation."""

    def test_valid_lengths(self):
        """Test 1 through 4 weeks."""
        for weeks in (1, 2, 3, 4):
            assert validate_sprint_length(weeks) == weeks

    def test_invalid_lengths(self):
        """Test out-of-range and non-integer lengths."""
        for weeks in (0, 5, -1, 2.5, "2", True):
            with pytest.raises(InvalidSprintError):
                validate_sprint_length(weeks)

    def test_end_date(self):
        """Test end = start + weeks * 7 - 1."""
        assert sprint_end_date(ANCHOR, 1) == date(2025, 8, 16)
        assert sprint_end_date(ANCHOR, 2) == date(2025, 8, 23)
        assert sprint_end_date("2025-08-10", 3) == date(2025, 8, 30)

    def test_length_for_range(self):
        """Test deriving whole weeks from an inclusive range."""
        assert sprint_length_for_range(ANCHOR, date(2025, 8, 16)) == 1
        assert sprint_length_for_range(ANCHOR, date(2025, 8, 30)) == 3
        assert sprint_length_for_range("2025-08-10", "2025-09-06") == 4

    def test_length_for_bad_range(self):
        """Test partial weeks, inverted ranges and lengths outside 1-4 weeks."""
        for end in (date(2025, 8, 20), date(2025, 8, 10), date(2025, 8, 1), date(2025, 9, 13)):
            with pytest.raises(InvalidSprintError):
                sprint_length_for_range(ANCHOR, end)


class TestSprintForDate:
    """Tests for the sprint boundary function."""

    def test_anchor_day(self):
        """Test that the anchor's own start is in the anchor sprint."""
        window = sprint_for_date(ANCHOR, 2, ANCHOR)
        assert window == SprintWindow(1, ANCHOR, date(2025, 8, 23), 2)

    def test_last_day_and_next_sprint(self):
        """Test the boundary between two sprints."""
        assert sprint_for_date(ANCHOR, 2, date(2025, 8, 23)).number == 1
        nxt = sprint_for_date(ANCHOR, 2, date(2025, 8, 24))
        assert nxt.number == 2
        assert nxt.start_date == date(2025, 8, 24)
        assert nxt.end_date == date(2025, 9, 6)

    def test_anchor_number_carries(self):
        """Test numbering continues from a later anchor sprint."""
        window = sprint_for_date(ANCHOR, 2, date(2025, 9, 1), anchor_number=7)
        assert window.number == 8

    def test_days_before_anchor(self):
        """Test dates before the anchor resolve to earlier sprints."""
        window = sprint_for_date(ANCHOR, 2, date(2025, 8, 9), anchor_number=3)
        assert window.number == 2
        assert window.start_date == date(2025, 7, 27)
        assert window.end_date == date(2025, 8, 9)

    def test_before_first_sprint(self):
        """Test that no sprint number below 1 is produced."""
        with pytest.raises(InvalidSprintError):
            sprint_for_date(ANCHOR, 2, date(2025, 8, 9))

    def test_windows_tile_without_gaps(self):
        """Test 200 consecutive days map to contiguous windows."""
        for weeks in (1, 2, 3, 4):
            previous = None
            for offset in range(200):
                day = ANCHOR + timedelta(days=offset)
                window = sprint_for_date(ANCHOR, weeks, day)

                assert window.contains(day)
                assert (window.end_date - window.start_date).days == weeks * 7 - 1
                if previous is not None and window != previous:
                    assert window.number == previous.number + 1
                    assert window.start_date == previous.end_date + timedelta(days=1)
                previous = window

    def test_resolve_current_sprint(self):
        """Test recomputing from a stored row."""
        stored = Sprint(id=9, team_id=1, number=4, start_date=ANCHOR,
                        end_date=date(2025, 8, 23), length_weeks=2)
        window = resolve_current_sprint(stored, date(2025, 9, 1))

        assert window.number == 5
        assert window.start_date == date(2025, 8, 24)
        assert resolve_current_sprint(None, ANCHOR) is None


class TestSprintWindow:
    """Tests for computed sprint windows."""

    def test_working_days_and_progress(self):
        """Test working day count and working-day progress."""
        window = sprint_for_date(ANCHOR, 2, ANCHOR)

        assert len(window.working_days) == 10
        assert window.progress_percentage(date(2025, 8, 14)) == 50.0
        assert window.progress_percentage(date(2025, 8, 16)) == 50.0
        assert window.progress_percentage(date(2025, 8, 23)) == 100.0
        assert window.working_days_remaining(date(2025, 8, 14)) == 5

    def test_to_dict(self):
        """Test serialization with and without a reference day."""
        window = sprint_for_date(ANCHOR, 2, ANCHOR)

        plain = window.to_dict()
        assert plain["name"] == "Sprint 1"
        assert plain["end_date"] == "2025-08-23"
        assert "is_current" not in plain

        current = window.to_dict(today=date(2025, 8, 12))
        assert current["is_current"] is True
        assert current["working_days"] == 10


class TestStoredSprint:
    """Tests for stored sprint rows."""

    def test_from_row(self):
        """Test parsing a database row."""
        sprint = Sprint.from_row({
            "id": 3,
            "team_id": 1,
            "sprint_number": 12,
            "start_date": "2025-08-10",
            "end_date": "2025-08-23",
            "length_weeks": 2,
        })
        assert sprint.number == 12
        assert sprint.end_date == date(2025, 8, 23)
        assert sprint.to_dict()["start_date"] == "2025-08-10"

    def test_from_row_without_end(self):
        """Test a row whose end date is derived from its length."""
        sprint = Sprint.from_row({"start_date": "2025-08-10", "length_weeks": 3})
        assert sprint.end_date == date(2025, 8, 30)
        assert sprint.number == 1

    def test_rejects_inverted_range(self):
        """Test that end must be after start."""
        with pytest.raises(InvalidSprintError):
            Sprint(id=1, team_id=1, number=1, start_date=ANCHOR, end_date=ANCHOR, length_weeks=2)

    def test_sequence_problems(self):
        """Test gap, overlap and numbering checks."""
        s1 = Sprint(1, 1, 1, date(2025, 8, 10), date(2025, 8, 23), 2)
        s2 = Sprint(2, 1, 2, date(2025, 8, 24), date(2025, 9, 6), 2)
        assert check_sprint_sequence([s2, s1]) == []

        gap = Sprint(3, 1, 3, date(2025, 9, 10), date(2025, 9, 23), 2)
        overlap = Sprint(4, 1, 5, date(2025, 9, 20), date(2025, 10, 3), 2)
        problems = check_sprint_sequence([s1, s2, gap, overlap])

        assert any("Gap of 3 day(s)" in p for p in problems)
        assert any("overlaps" in p for p in problems)
        assert any("jumps from 3 to 5" in p for p in problems)
