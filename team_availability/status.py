"""
Submission Status Resolver

Classifies each member's weekly schedule submission and rolls it up to team
and company completion rates.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, Optional
from enum import Enum

from .calculations import (
    HOURS_PER_DAY,
    InvalidScheduleValueError,
    calculate_actual_planned_hours,
    calculate_completion_percentage,
    calculate_sprint_potential,
    week_range,
    working_days_in_range,
)
from .integrations import DataSource, DataSourceError, Team, TeamMember, ScheduleEntry
from .retry import RetryPolicy, RetryExhaustedError
from .sprints import InvalidSprintError, SprintWindow, resolve_current_sprint


logger = logging.getLogger(__name__)

UPSTREAM_ERRORS = (DataSourceError, RetryExhaustedError, asyncio.TimeoutError, InvalidScheduleValueError)


class SubmissionStatus(Enum):
    """Weekly schedule submission status."""
    COMPLETE = "complete"        # every expected working day has an entry
    PARTIAL = "partial"          # some but not all
    MISSING = "missing"          # none
    UNAVAILABLE = "unavailable"  # data could not be read


class TeamHealth(Enum):
    """Team completion band."""
    EXCELLENT = "excellent"          # 90%+
    GOOD = "good"                    # 75-90%
    NEEDS_ATTENTION = "needs_attention"  # 50-75%
    CRITICAL = "critical"            # below 50%
    UNAVAILABLE = "unavailable"


def classify_submission(entry_dates: Iterable[date], expected_days: Iterable[date]) -> SubmissionStatus:
    """Classify by how much of the expected working days the entries cover."""
    expected = set(expected_days)
    covered = expected & set(entry_dates)

    if covered == expected:
        return SubmissionStatus.COMPLETE
    if covered:
        return SubmissionStatus.PARTIAL
    return SubmissionStatus.MISSING


def team_health(completion_rate: float) -> TeamHealth:
    if completion_rate >= 90:
        return TeamHealth.EXCELLENT
    if completion_rate >= 75:
        return TeamHealth.GOOD
    if completion_rate >= 50:
        return TeamHealth.NEEDS_ATTENTION
    return TeamHealth.CRITICAL


@dataclass
class MemberSubmissionStatus:
    """Submission picture for one member."""
    member_id: int
    member_name: str
    hebrew: str = ""
    is_manager: bool = False
    is_critical: bool = False
    week_status: SubmissionStatus = SubmissionStatus.MISSING
    week_hours: float = 0.0
    sprint_submitted_hours: float = 0.0
    sprint_potential_hours: float = 0.0
    pending_entries: int = 0
    last_activity: Optional[date] = None

    @property
    def sprint_completion_percentage(self) -> float:
        return calculate_completion_percentage(self.sprint_submitted_hours, self.sprint_potential_hours)

    def to_dict(self) -> dict:
        return {
            "member_id": self.member_id,
            "member_name": self.member_name,
            "hebrew": self.hebrew,
            "is_manager": self.is_manager,
            "is_critical": self.is_critical,
            "week_status": self.week_status.value,
            "week_hours": self.week_hours,
            "sprint": {
                "submitted_hours": self.sprint_submitted_hours,
                "potential_hours": self.sprint_potential_hours,
                "completion_percentage": round(self.sprint_completion_percentage, 1),
                "pending_entries": self.pending_entries,
            },
            "last_activity": self.last_activity.isoformat() if self.last_activity else None,
        }


@dataclass
class TeamCompletionStatus:
    """Submission roll-up for one team."""
    team_id: int
    team_name: str
    week_start: date
    week_end: date
    members: list[MemberSubmissionStatus] = field(default_factory=list)
    sprint: Optional[SprintWindow] = None
    sprint_potential_hours: float = 0.0
    available: bool = True
    error: Optional[str] = None

    def _count(self, status: SubmissionStatus) -> int:
        return len([m for m in self.members if m.week_status == status])

    @property
    def total_members(self) -> int:
        return len(self.members)

    @property
    def complete_members(self) -> int:
        return self._count(SubmissionStatus.COMPLETE)

    @property
    def partial_members(self) -> int:
        return self._count(SubmissionStatus.PARTIAL)

    @property
    def missing_members(self) -> int:
        return self._count(SubmissionStatus.MISSING)

    @property
    def completion_rate(self) -> float:
        """Share of members whose week is complete."""
        if not self.available or not self.members:
            return 0.0
        return (self.complete_members / self.total_members) * 100

    @property
    def submitted_hours(self) -> float:
        return sum(m.sprint_submitted_hours for m in self.members)

    @property
    def submission_percentage(self) -> float:
        return calculate_completion_percentage(self.submitted_hours, self.sprint_potential_hours)

    @property
    def health(self) -> TeamHealth:
        if not self.available:
            return TeamHealth.UNAVAILABLE
        return team_health(self.completion_rate)

    @classmethod
    def unavailable(
        cls,
        team: Team,
        week_start: date,
        week_end: date,
        members: Optional[list[TeamMember]] = None,
        error: Optional[str] = None
    ) -> "TeamCompletionStatus":
        """Explicit degraded status when the team's data could not be read."""
        return cls(
            team_id=team.id,
            team_name=team.name,
            week_start=week_start,
            week_end=week_end,
            members=[
                MemberSubmissionStatus(
                    member_id=m.id,
                    member_name=m.name,
                    hebrew=m.hebrew,
                    is_manager=m.is_manager,
                    is_critical=m.is_critical,
                    week_status=SubmissionStatus.UNAVAILABLE,
                )
                for m in (members or [])
            ],
            available=False,
            error=error,
        )

    def to_dict(self, include_members: bool = True) -> dict:
        data = {
            "team_id": self.team_id,
            "team_name": self.team_name,
            "available": self.available,
            "error": self.error,
            "week": {"start": self.week_start.isoformat(), "end": self.week_end.isoformat()},
            "sprint": self.sprint.to_dict() if self.sprint else None,
            "summary": {
                "total_members": self.total_members,
                "complete": self.complete_members,
                "partial": self.partial_members,
                "missing": self.missing_members,
                "completion_rate": round(self.completion_rate, 1),
                "submitted_hours": self.submitted_hours,
                "potential_hours": self.sprint_potential_hours,
                "submission_percentage": round(self.submission_percentage, 1),
                "health": self.health.value,
            },
        }
        if include_members:
            data["members"] = [m.to_dict() for m in self.members]
        return data


@dataclass
class CompanyCompletionStatus:
    """Company-wide roll-up, weighted by member count."""
    teams: list[TeamCompletionStatus] = field(default_factory=list)
    calculated_at: datetime = field(default_factory=datetime.now)

    @property
    def available_teams(self) -> list[TeamCompletionStatus]:
        return [t for t in self.teams if t.available]

    @property
    def unavailable_team_ids(self) -> list[int]:
        return [t.team_id for t in self.teams if not t.available]

    @property
    def total_members(self) -> int:
        return sum(t.total_members for t in self.available_teams)

    @property
    def complete_members(self) -> int:
        return sum(t.complete_members for t in self.available_teams)

    @property
    def completion_rate(self) -> float:
        """Complete members over all members of readable teams."""
        total = self.total_members
        if not total:
            return 0.0
        return (self.complete_members / total) * 100

    def to_dict(self) -> dict:
        return {
            "calculated_at": self.calculated_at.isoformat(),
            "summary": {
                "total_teams": len(self.teams),
                "total_members": self.total_members,
                "complete_members": self.complete_members,
                "completion_rate": round(self.completion_rate, 1),
                "unavailable_teams": self.unavailable_team_ids,
            },
            "teams": [t.to_dict(include_members=False) for t in self.teams],
        }


class AlertSeverity(Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass
class Alert:
    severity: AlertSeverity
    team_id: int
    team_name: str
    message: str
    member_id: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "severity": self.severity.value,
            "team_id": self.team_id,
            "team_name": self.team_name,
            "member_id": self.member_id,
            "message": self.message,
        }


def generate_alerts(company: CompanyCompletionStatus) -> list[Alert]:
    """
    Alerts for teams and critical members that need follow-up.

    Returns:
        Alerts, most severe first
    """
    alerts = []

    for team in company.teams:
        if not team.available:
            alerts.append(Alert(
                severity=AlertSeverity.WARNING,
                team_id=team.team_id,
                team_name=team.team_name,
                message=f"Schedule data for {team.team_name} is unavailable",
            ))
            continue

        if team.total_members and team.health == TeamHealth.CRITICAL:
            alerts.append(Alert(
                severity=AlertSeverity.CRITICAL,
                team_id=team.team_id,
                team_name=team.team_name,
                message=(
                    f"{team.team_name}: only {team.complete_members}/{team.total_members} "
                    f"members submitted this week ({team.completion_rate:.0f}%)"
                ),
            ))

        for member in team.members:
            if member.is_critical and member.week_status == SubmissionStatus.MISSING:
                alerts.append(Alert(
                    severity=AlertSeverity.WARNING,
                    team_id=team.team_id,
                    team_name=team.team_name,
                    member_id=member.member_id,
                    message=f"{member.member_name} has not submitted this week's schedule",
                ))

    order = {AlertSeverity.CRITICAL: 0, AlertSeverity.WARNING: 1, AlertSeverity.INFO: 2}
    alerts.sort(key=lambda a: order[a.severity])
    return alerts


class StatusResolver:
    """
    Resolves submission status from the data source.

    Upstream failures for a team degrade that team to an explicit
    "unavailable" status; other teams are unaffected.

    Usage:
        resolver = StatusResolver(source, retry=RetryPolicy(max_attempts=3))
        company = await resolver.company_status()
        print(f"Company completion: {company.completion_rate:.0f}%")
    """

    def __init__(
        self,
        source: DataSource,
        retry: Optional[RetryPolicy] = None,
        missing_hours: float = 0.0
    ):
        self.source = source
        self.retry = retry
        self.missing_hours = missing_hours

    async def _read(self, label: str, operation):
        if self.retry is None:
            return await operation()
        return await self.retry.run(operation, label=label)

    async def current_sprint(self, team_id: int, today: Optional[date] = None) -> Optional[SprintWindow]:
        """Sprint window containing ``today``, derived from the stored sprint."""
        today = today or date.today()
        stored = await self._read(
            f"get_current_sprint({team_id})",
            lambda: self.source.get_current_sprint(team_id)
        )
        try:
            return resolve_current_sprint(stored, today)
        except InvalidSprintError as e:
            logger.info("No current sprint for team %s: %s", team_id, e)
            return None

    def _member_status(
        self,
        member: TeamMember,
        entries: list[ScheduleEntry],
        week_days: list[date],
        sprint: Optional[SprintWindow]
    ) -> MemberSubmissionStatus:
        week_start, week_end = week_days[0], week_days[-1]
        week_entries = [e for e in entries if week_start <= e.date <= week_end]

        status = MemberSubmissionStatus(
            member_id=member.id,
            member_name=member.name,
            hebrew=member.hebrew,
            is_manager=member.is_manager,
            is_critical=member.is_critical,
            week_status=classify_submission((e.date for e in week_entries), week_days),
            week_hours=calculate_actual_planned_hours(week_entries, self.missing_hours),
        )

        if sprint is not None:
            sprint_days = sprint.working_days
            sprint_entries = [e for e in entries if sprint.contains(e.date)]
            submitted_days = {e.date for e in sprint_entries}
            status.sprint_submitted_hours = calculate_actual_planned_hours(sprint_entries, self.missing_hours)
            status.sprint_potential_hours = len(sprint_days) * HOURS_PER_DAY
            status.pending_entries = len([d for d in sprint_days if d not in submitted_days])

        if entries:
            status.last_activity = max(e.date for e in entries)
        return status

    async def team_status(self, team: Team, today: Optional[date] = None) -> TeamCompletionStatus:
        """
        Completion status for one team for the week containing ``today``.

        Never raises for upstream data errors; returns an unavailable status
        and logs a warning instead.
        """
        today = today or date.today()
        week_start, week_end = week_range(today)
        week_days = working_days_in_range(week_start, week_end)
        members: list[TeamMember] = []

        try:
            members = await self._read(
                f"get_team_members({team.id})",
                lambda: self.source.get_team_members(team.id)
            )
            members = [m for m in members if m.is_active_on(week_start)]
            sprint = await self.current_sprint(team.id, today)

            if not members:
                return TeamCompletionStatus(
                    team_id=team.id,
                    team_name=team.name,
                    week_start=week_start,
                    week_end=week_end,
                    sprint=sprint,
                )

            range_start = min(week_start, sprint.start_date) if sprint else week_start
            range_end = max(week_end, sprint.end_date) if sprint else week_end
            member_ids = [m.id for m in members]
            entries = await self._read(
                f"get_schedule_entries(team={team.id})",
                lambda: self.source.get_schedule_entries(member_ids, range_start, range_end)
            )

            by_member: dict[int, list[ScheduleEntry]] = {m.id: [] for m in members}
            for entry in entries:
                if entry.member_id in by_member:
                    by_member[entry.member_id].append(entry)

            member_statuses = [
                self._member_status(m, by_member[m.id], week_days, sprint)
                for m in members
            ]
        except UPSTREAM_ERRORS as e:
            logger.warning(
                "Submission status unavailable for team %s (%s): %s", team.id, team.name, e,
                extra={"team_id": team.id}
            )
            return TeamCompletionStatus.unavailable(team, week_start, week_end, members, str(e))

        # Managers first, then by sprint completion
        member_statuses.sort(key=lambda m: (not m.is_manager, -m.sprint_completion_percentage))

        potential = (
            calculate_sprint_potential(len(members), sprint.start_date, sprint.end_date)
            if sprint else 0.0
        )
        return TeamCompletionStatus(
            team_id=team.id,
            team_name=team.name,
            week_start=week_start,
            week_end=week_end,
            members=member_statuses,
            sprint=sprint,
            sprint_potential_hours=potential,
        )

    async def member_statuses(self, team: Team, today: Optional[date] = None) -> list[MemberSubmissionStatus]:
        """Per-member statuses for one team, managers first."""
        status = await self.team_status(team, today)
        return status.members

    async def company_status(self, today: Optional[date] = None) -> CompanyCompletionStatus:
        """
        Company roll-up across all teams.

        The team list is required; failing to read it propagates. Each team
        is resolved concurrently and degrades independently.
        """
        today = today or date.today()
        teams = await self._read("get_teams", self.source.get_teams)
        statuses = await asyncio.gather(*(self.team_status(t, today) for t in teams))

        unavailable = [s.team_name for s in statuses if not s.available]
        if unavailable:
            logger.warning("Company status computed without %d team(s): %s", len(unavailable), ", ".join(unavailable))

        return CompanyCompletionStatus(teams=list(statuses))
