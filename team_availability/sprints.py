"""
Sprint Boundaries

One pure function decides which sprint a date falls in. Stored sprint rows
are only anchors; the current window is recomputed from them on read.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from .calculations import (
    DateLike,
    to_date,
    working_days_in_range,
    calculate_days_remaining,
)


MIN_SPRINT_WEEKS = 1
MAX_SPRINT_WEEKS = 4


class InvalidSprintError(ValueError):
    """Raised for an out-of-range sprint length or an inverted date range."""


def validate_sprint_length(length_weeks: int) -> int:
    if not isinstance(length_weeks, int) or isinstance(length_weeks, bool):
        raise InvalidSprintError(f"Sprint length must be an integer, got {length_weeks!r}")
    if not MIN_SPRINT_WEEKS <= length_weeks <= MAX_SPRINT_WEEKS:
        raise InvalidSprintError(
            f"Sprint length must be between {MIN_SPRINT_WEEKS} and {MAX_SPRINT_WEEKS} weeks, "
            f"got {length_weeks}"
        )
    return length_weeks


def sprint_end_date(start: DateLike, length_weeks: int) -> date:
    """Last calendar day of a sprint starting on ``start``."""
    validate_sprint_length(length_weeks)
    return to_date(start) + timedelta(days=length_weeks * 7 - 1)


def sprint_length_for_range(start: DateLike, end: DateLike) -> int:
    """
    Sprint length in weeks for an inclusive date range.

    Raises:
        InvalidSprintError: unless the range is 1-4 whole weeks
    """
    start_date = to_date(start)
    end_date = to_date(end)
    if end_date <= start_date:
        raise InvalidSprintError(f"Sprint end {end_date} must be after start {start_date}")

    weeks, extra_days = divmod((end_date - start_date).days + 1, 7)
    if extra_days:
        raise InvalidSprintError(
            f"Sprint {start_date} to {end_date} is not a whole number of weeks"
        )
    return validate_sprint_length(weeks)


@dataclass
class Sprint:
    """A stored sprint row."""
    id: Optional[int]
    team_id: Optional[int]
    number: int
    start_date: date
    end_date: date
    length_weeks: int

    def __post_init__(self):
        validate_sprint_length(self.length_weeks)
        if self.end_date <= self.start_date:
            raise InvalidSprintError(
                f"Sprint end {self.end_date} must be after start {self.start_date}"
            )

    @classmethod
    def from_row(cls, row: dict) -> "Sprint":
        start = to_date(row["start_date"])
        length = int(row.get("length_weeks") or 2)
        end = to_date(row["end_date"]) if row.get("end_date") else sprint_end_date(start, length)
        return cls(
            id=row.get("id"),
            team_id=row.get("team_id"),
            number=int(row.get("sprint_number") or row.get("number") or 1),
            start_date=start,
            end_date=end,
            length_weeks=length,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "team_id": self.team_id,
            "number": self.number,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "length_weeks": self.length_weeks,
        }


@dataclass(frozen=True)
class SprintWindow:
    """A computed sprint: number plus inclusive date range."""
    number: int
    start_date: date
    end_date: date
    length_weeks: int

    @property
    def name(self) -> str:
        return f"Sprint {self.number}"

    @property
    def working_days(self) -> list[date]:
        return working_days_in_range(self.start_date, self.end_date)

    def contains(self, day: DateLike) -> bool:
        return self.start_date <= to_date(day) <= self.end_date

    def progress_percentage(self, day: DateLike) -> float:
        """Share of working days elapsed (day inclusive)."""
        target = to_date(day)
        days = self.working_days
        if not days:
            return 0.0
        elapsed = len([d for d in days if d <= target])
        return round(elapsed / len(days) * 100, 1)

    def working_days_remaining(self, day: DateLike) -> int:
        return calculate_days_remaining(self.end_date, day)

    def to_dict(self, today: Optional[DateLike] = None) -> dict:
        data = {
            "number": self.number,
            "name": self.name,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "length_weeks": self.length_weeks,
            "working_days": len(self.working_days),
        }
        if today is not None:
            data["is_current"] = self.contains(today)
            data["progress_percentage"] = self.progress_percentage(today)
            data["working_days_remaining"] = self.working_days_remaining(today)
        return data


def sprint_for_date(
    anchor_start: DateLike,
    length_weeks: int,
    day: DateLike,
    anchor_number: int = 1
) -> SprintWindow:
    """
    Compute the sprint window containing ``day``.

    Sprints are back-to-back blocks of ``length_weeks * 7`` calendar days
    numbered consecutively from the anchor sprint, so no two windows overlap
    and none leave a gap.

    Args:
        anchor_start: Start date of a known sprint
        length_weeks: Sprint length (1-4 weeks)
        day: Date to locate
        anchor_number: Number of the anchor sprint

    Raises:
        InvalidSprintError: on a bad length or when ``day`` would fall before sprint 1
    """
    validate_sprint_length(length_weeks)
    anchor = to_date(anchor_start)
    target = to_date(day)
    span = length_weeks * 7

    offset = (target - anchor).days // span  # floors toward -inf for earlier days
    number = anchor_number + offset
    if number < 1:
        raise InvalidSprintError(
            f"{target} falls before sprint 1 (anchor sprint {anchor_number} starts {anchor})"
        )

    start = anchor + timedelta(days=offset * span)
    return SprintWindow(
        number=number,
        start_date=start,
        end_date=start + timedelta(days=span - 1),
        length_weeks=length_weeks,
    )


def resolve_current_sprint(stored: Optional[Sprint], day: DateLike) -> Optional[SprintWindow]:
    """Recompute the current sprint from a stored sprint row."""
    if stored is None:
        return None
    return sprint_for_date(stored.start_date, stored.length_weeks, day, stored.number)


def check_sprint_sequence(sprints: list[Sprint]) -> list[str]:
    """
    Find gaps and overlaps between a team's consecutive sprints.

    Returns:
        Human-readable problems; empty when the sequence is continuous
    """
    problems = []
    ordered = sorted(sprints, key=lambda s: s.start_date)

    for previous, current in zip(ordered, ordered[1:]):
        expected_start = previous.end_date + timedelta(days=1)
        if current.start_date > expected_start:
            gap = (current.start_date - expected_start).days
            problems.append(
                f"Gap of {gap} day(s) between sprint {previous.number} and sprint {current.number}"
            )
        elif current.start_date < expected_start:
            overlap = (expected_start - current.start_date).days
            problems.append(
                f"Sprint {current.number} overlaps sprint {previous.number} by {overlap} day(s)"
            )
        if current.number != previous.number + 1:
            problems.append(
                f"Sprint number jumps from {previous.number} to {current.number}"
            )

    return problems
