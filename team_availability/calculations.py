"""
Sprint and Hours Calculations

Working-day counting, sprint capacity and completion arithmetic for the
Sunday-Thursday work week.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Iterable, Optional, Union
from enum import Enum


DateLike = Union[date, datetime, str]

HOURS_PER_DAY = 7.0
HALF_DAY_HOURS = 3.5
WORKING_DAYS_PER_WEEK = 5
HOURS_PER_PERSON_PER_WEEK = HOURS_PER_DAY * WORKING_DAYS_PER_WEEK  # 35

# Python weekday(): Monday=0 ... Sunday=6
WORKING_WEEKDAYS = frozenset({6, 0, 1, 2, 3})  # Sunday through Thursday
WEEKEND_WEEKDAYS = frozenset({4, 5})           # Friday, Saturday

SCHEDULE_VALUE_HOURS = {
    "1": HOURS_PER_DAY,
    "0.5": HALF_DAY_HOURS,
    "X": 0.0,
}


class InvalidScheduleValueError(ValueError):
    """Raised for a schedule value outside '1', '0.5', 'X'."""


class SprintHealth(Enum):
    """Sprint health band."""
    EXCELLENT = "excellent"
    GOOD = "good"
    WARNING = "warning"
    CRITICAL = "critical"


def to_date(value: DateLike) -> date:
    """Coerce a date, datetime or ISO-8601 string to a date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            raise ValueError(f"Invalid date: {value!r}") from None
    raise ValueError(f"Invalid date: {value!r}")


def value_to_hours(value: Optional[str], missing_hours: float = 0.0) -> float:
    """
    Convert a schedule value to hours.

    Args:
        value: '1' (full day), '0.5' (half day) or 'X' (absent)
        missing_hours: Hours counted for a missing (None/empty) value

    Raises:
        InvalidScheduleValueError: for any other value
    """
    if value is None or value == "":
        return missing_hours

    key = str(value).strip()
    if key == "x":
        key = "X"
    try:
        return SCHEDULE_VALUE_HOURS[key]
    except KeyError:
        raise InvalidScheduleValueError(
            f"Unknown schedule value {value!r}; expected one of '1', '0.5', 'X'"
        ) from None


def hours_to_value(hours: float) -> str:
    """Convert hours back to the closest schedule value."""
    if hours >= HOURS_PER_DAY:
        return "1"
    if hours >= HALF_DAY_HOURS:
        return "0.5"
    return "X"


def is_working_day(day: DateLike) -> bool:
    return to_date(day).weekday() in WORKING_WEEKDAYS


def working_days_in_range(start: DateLike, end: DateLike) -> list[date]:
    """All Sunday-Thursday dates in [start, end], inclusive."""
    start_date = to_date(start)
    end_date = to_date(end)

    days = []
    current = start_date
    while current <= end_date:
        if current.weekday() in WORKING_WEEKDAYS:
            days.append(current)
        current += timedelta(days=1)
    return days


def calculate_working_days(start: DateLike, end: DateLike) -> int:
    """Count working days in [start, end]; 0 when end precedes start."""
    start_date = to_date(start)
    end_date = to_date(end)
    if end_date < start_date:
        return 0

    # Whole weeks contribute 5 days each; walk only the remainder
    total_days = (end_date - start_date).days + 1
    full_weeks, remainder = divmod(total_days, 7)
    count = full_weeks * WORKING_DAYS_PER_WEEK
    for offset in range(remainder):
        if (start_date + timedelta(days=full_weeks * 7 + offset)).weekday() in WORKING_WEEKDAYS:
            count += 1
    return count


def calculate_sprint_potential(member_count: int, start: DateLike, end: DateLike) -> float:
    """
    Sprint potential hours: members x working days x 7.

    Example:
        8 members over a 2-week sprint (10 working days) -> 560 hours
    """
    if member_count is None or member_count <= 0:
        raise ValueError(f"member_count must be positive, got {member_count!r}")
    return member_count * calculate_working_days(start, end) * HOURS_PER_DAY


def _entry_hours(entry: Any, missing_hours: float) -> float:
    if isinstance(entry, dict):
        hours = entry.get("hours")
        value = entry.get("value")
    else:
        hours = getattr(entry, "hours", None)
        value = getattr(entry, "value", None)

    if hours is not None:
        return float(hours)
    return value_to_hours(value, missing_hours)


def calculate_actual_planned_hours(entries: Iterable[Any], missing_hours: float = 0.0) -> float:
    """
    Sum hours across schedule entries.

    An entry's pre-resolved ``hours`` wins over its ``value``. Entries may be
    ScheduleEntry objects or plain dicts.
    """
    return sum(_entry_hours(entry, missing_hours) for entry in entries)


def calculate_completion_percentage(submitted_hours: float, potential_hours: float) -> float:
    """Submitted / potential as a percentage in [0, 100]; 0 when potential is 0."""
    if not potential_hours or potential_hours <= 0:
        return 0.0
    percentage = (submitted_hours / potential_hours) * 100
    return max(0.0, min(100.0, percentage))


def week_range(day: DateLike) -> tuple[date, date]:
    """The Sunday-Saturday week containing ``day``."""
    target = to_date(day)
    days_since_sunday = (target.weekday() + 1) % 7
    start = target - timedelta(days=days_since_sunday)
    return start, start + timedelta(days=6)


def calculate_sprint_progress(start: DateLike, end: DateLike, today: DateLike) -> float:
    """Percentage of sprint calendar time elapsed."""
    start_date = to_date(start)
    end_date = to_date(end)
    current = to_date(today)

    if current < start_date:
        return 0.0
    if current > end_date:
        return 100.0

    total = (end_date - start_date).days
    if total <= 0:
        return 100.0
    return round(((current - start_date).days / total) * 100, 1)


def calculate_days_remaining(end: DateLike, today: DateLike) -> int:
    """Working days strictly after today, up to and including the end date."""
    end_date = to_date(end)
    current = to_date(today)
    if current >= end_date:
        return 0
    return calculate_working_days(current + timedelta(days=1), end_date)


def sprint_health_status(completion_percentage: float, days_remaining: int) -> SprintHealth:
    if completion_percentage >= 90:
        return SprintHealth.EXCELLENT
    if completion_percentage >= 75:
        return SprintHealth.GOOD
    if completion_percentage >= 50 or days_remaining > 3:
        return SprintHealth.WARNING
    return SprintHealth.CRITICAL


@dataclass
class SprintMetrics:
    """Capacity and planning totals for one team over one sprint."""
    potential_hours: float
    actual_planned_hours: float
    completion_percentage: float
    working_days: int
    team_size: int

    def to_dict(self) -> dict:
        return {
            "potential_hours": self.potential_hours,
            "actual_planned_hours": self.actual_planned_hours,
            "completion_percentage": round(self.completion_percentage, 1),
            "working_days": self.working_days,
            "team_size": self.team_size,
        }


@dataclass
class SprintProgress:
    """Time progress of a sprint versus planning completion."""
    sprint_progress_percentage: float
    days_remaining: int
    is_on_track: bool
    health: SprintHealth

    def to_dict(self) -> dict:
        return {
            "sprint_progress_percentage": self.sprint_progress_percentage,
            "days_remaining": self.days_remaining,
            "is_on_track": self.is_on_track,
            "health": self.health.value,
        }


def calculate_sprint_metrics(
    team_size: int,
    start: DateLike,
    end: DateLike,
    entries: Iterable[Any],
    missing_hours: float = 0.0
) -> SprintMetrics:
    """Potential, planned and completion for a team's sprint."""
    potential = calculate_sprint_potential(team_size, start, end)
    planned = calculate_actual_planned_hours(entries, missing_hours)
    return SprintMetrics(
        potential_hours=potential,
        actual_planned_hours=planned,
        completion_percentage=calculate_completion_percentage(planned, potential),
        working_days=calculate_working_days(start, end),
        team_size=team_size,
    )


def calculate_sprint_progress_info(
    start: DateLike,
    end: DateLike,
    completion_percentage: float,
    today: DateLike
) -> SprintProgress:
    """
    Combine elapsed sprint time with planning completion.

    A sprint is on track when completion reaches at least 80% of the elapsed
    time share, with a floor of 20%.
    """
    progress = calculate_sprint_progress(start, end, today)
    days_remaining = calculate_days_remaining(end, today)
    expected = max(20.0, progress * 0.8)
    return SprintProgress(
        sprint_progress_percentage=progress,
        days_remaining=days_remaining,
        is_on_track=completion_percentage >= expected,
        health=sprint_health_status(completion_percentage, days_remaining),
    )


@dataclass
class CalculationCheck:
    """Result of cross-checking a stored potential against the formula."""
    is_valid: bool
    expected_potential: float
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "expected_potential": self.expected_potential,
            "errors": self.errors,
            "warnings": self.warnings,
        }


def validate_sprint_calculation(
    team_size: int,
    start: DateLike,
    end: DateLike,
    calculated_potential: float
) -> CalculationCheck:
    """Check a reported sprint potential against members x days x 7."""
    working_days = calculate_working_days(start, end)
    expected = calculate_sprint_potential(team_size, start, end)
    errors = []
    warnings = []

    if calculated_potential != expected:
        errors.append(
            f"Sprint potential mismatch: expected {expected:g}h, got {calculated_potential:g}h"
        )

    sprint_weeks = max(1, -(-working_days // WORKING_DAYS_PER_WEEK))
    hours_per_week = calculated_potential / team_size / sprint_weeks
    if abs(hours_per_week - HOURS_PER_PERSON_PER_WEEK) > 0.1:
        errors.append(
            f"Hours per week inconsistent: expected {HOURS_PER_PERSON_PER_WEEK:g}h/person/week, "
            f"calculated {hours_per_week:.1f}h"
        )

    if working_days < WORKING_DAYS_PER_WEEK:
        warnings.append("Sprint shorter than one week")
    if team_size > 12:
        warnings.append("Team larger than 12 members")
    if working_days > 60:
        warnings.append("Sprint longer than 60 working days")

    return CalculationCheck(
        is_valid=not errors,
        expected_potential=expected,
        errors=errors,
        warnings=warnings,
    )
