"""
Database Integration for Team Availability

Reads teams, members, schedule entries and sprints from the hosted
Postgres (Supabase/PostgREST) backend.
"""

import os
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Union

import httpx

from ..calculations import DateLike, to_date, value_to_hours, SCHEDULE_VALUE_HOURS
from ..sprints import Sprint, sprint_end_date, sprint_length_for_range, validate_sprint_length


logger = logging.getLogger(__name__)


class DataSourceError(Exception):
    """A read or write against the backing store failed."""


@dataclass
class Team:
    """A team and its sprint configuration."""
    id: int
    name: str
    sprint_length_weeks: int = 2
    description: Optional[str] = None
    color: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict) -> "Team":
        return cls(
            id=int(row["id"]),
            name=row["name"],
            sprint_length_weeks=int(row.get("sprint_length_weeks") or 2),
            description=row.get("description"),
            color=row.get("color"),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "sprint_length_weeks": self.sprint_length_weeks,
            "description": self.description,
            "color": self.color,
        }


@dataclass
class TeamMember:
    """A member of exactly one team."""
    id: int
    team_id: int
    name: str
    hebrew: str = ""
    is_manager: bool = False
    role: Optional[str] = None
    is_critical: bool = False
    inactive_date: Optional[date] = None

    def is_active_on(self, day: DateLike) -> bool:
        """Members are soft-retired from their inactivation date onwards."""
        return self.inactive_date is None or to_date(day) < self.inactive_date

    @classmethod
    def from_row(cls, row: dict) -> "TeamMember":
        inactive = row.get("inactive_date")
        return cls(
            id=int(row["id"]),
            team_id=int(row["team_id"]),
            name=row["name"],
            hebrew=row.get("hebrew") or "",
            is_manager=bool(row.get("is_manager") or row.get("isManager")),
            role=row.get("role"),
            is_critical=bool(row.get("is_critical")),
            inactive_date=to_date(inactive) if inactive else None,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "team_id": self.team_id,
            "name": self.name,
            "hebrew": self.hebrew,
            "is_manager": self.is_manager,
            "role": self.role,
            "is_critical": self.is_critical,
            "inactive_date": self.inactive_date.isoformat() if self.inactive_date else None,
        }


@dataclass
class ScheduleEntry:
    """One member's availability value for one date."""
    member_id: int
    date: date
    value: str
    reason: Optional[str] = None
    hours: Optional[float] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: dict) -> "ScheduleEntry":
        created = row.get("created_at")
        hours = row.get("hours")
        return cls(
            member_id=int(row["member_id"]),
            date=to_date(row["date"]),
            value=str(row["value"]),
            reason=row.get("reason"),
            hours=float(hours) if hours is not None else None,
            created_at=datetime.fromisoformat(created.replace("Z", "+00:00")) if created else None,
        )

    def to_dict(self) -> dict:
        return {
            "member_id": self.member_id,
            "date": self.date.isoformat(),
            "value": self.value,
            "reason": self.reason,
            "hours": self.hours if self.hours is not None else value_to_hours(self.value),
        }


class DataSource(ABC):
    """Abstract base class for the backing store."""

    @abstractmethod
    async def get_teams(self) -> list[Team]:
        pass

    @abstractmethod
    async def get_team_members(self, team_id: int) -> list[TeamMember]:
        pass

    @abstractmethod
    async def get_schedule_entries(
        self,
        member_ids: list[int],
        start: date,
        end: date
    ) -> list[ScheduleEntry]:
        """Entries for the given members with start <= date <= end."""
        pass

    @abstractmethod
    async def get_current_sprint(self, team_id: int) -> Optional[Sprint]:
        """Latest stored sprint row for the team, used as an anchor."""
        pass

    @abstractmethod
    async def get_sprint(self, sprint_id: int) -> Optional[Sprint]:
        pass

    @abstractmethod
    async def update_schedule_entry(
        self,
        member_id: int,
        day: date,
        value: str,
        reason: Optional[str] = None
    ) -> ScheduleEntry:
        pass

    @abstractmethod
    async def create_sprint(self, team_id: int, start: date, length_weeks: int) -> Sprint:
        pass

    @abstractmethod
    async def update_sprint_dates(self, sprint_id: int, start: date, end: date) -> Sprint:
        """Move a sprint. The length in weeks is derived from the new range."""
        pass


def _check_schedule_value(value: str) -> None:
    if value not in SCHEDULE_VALUE_HOURS:
        raise ValueError(f"Unknown schedule value {value!r}; expected one of '1', '0.5', 'X'")


class SupabaseDataSource(DataSource):
    """
    PostgREST client for the hosted database.

    Usage:
        source = SupabaseDataSource(
            url="https://project.supabase.co",
            key="service_role_key"
        )
        teams = await source.get_teams()
    """

    def __init__(
        self,
        url: Optional[str] = None,
        key: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.url = (url or os.getenv("SUPABASE_URL", "")).rstrip("/")
        self.key = key or os.getenv("SUPABASE_KEY")
        self.timeout = timeout
        self.transport = transport

        if not all([self.url, self.key]):
            raise ValueError(
                "Database credentials required. Set SUPABASE_URL and SUPABASE_KEY env vars "
                "or pass them as parameters."
            )

        self.headers = {
            "apikey": self.key,
            "Authorization": f"Bearer {self.key}",
            "Accept": "application/json",
        }

    async def _request(
        self,
        method: str,
        table: str,
        params: Optional[Union[dict, list]] = None,
        json: Optional[dict] = None,
        prefer: Optional[str] = None
    ) -> list[dict]:
        """Make an authenticated request to the REST endpoint."""
        headers = dict(self.headers)
        if prefer:
            headers["Prefer"] = prefer

        try:
            async with httpx.AsyncClient(transport=self.transport) as client:
                response = await client.request(
                    method,
                    f"{self.url}/rest/v1/{table}",
                    params=params,
                    json=json,
                    headers=headers,
                    timeout=self.timeout
                )
                response.raise_for_status()
                payload = response.json() if response.content else []
        except httpx.HTTPError as e:
            logger.debug("%s %s failed: %s", method, table, e)
            raise DataSourceError(f"{method} {table} failed: {e}") from e
        except ValueError as e:
            raise DataSourceError(f"{method} {table} returned malformed JSON") from e

        if isinstance(payload, dict):
            payload = [payload]
        if not isinstance(payload, list):
            raise DataSourceError(f"{method} {table} returned unexpected payload")
        return payload

    @staticmethod
    def _parse(rows: list[dict], parser, table: str) -> list:
        try:
            return [parser(row) for row in rows]
        except (KeyError, TypeError, ValueError) as e:
            raise DataSourceError(f"Malformed {table} row: {e}") from e

    async def get_teams(self) -> list[Team]:
        rows = await self._request("GET", "teams", params={"select": "*", "order": "name.asc"})
        return self._parse(rows, Team.from_row, "teams")

    async def get_team_members(self, team_id: int) -> list[TeamMember]:
        rows = await self._request(
            "GET",
            "team_members",
            params={"select": "*", "team_id": f"eq.{team_id}", "order": "name.asc"}
        )
        return self._parse(rows, TeamMember.from_row, "team_members")

    async def get_schedule_entries(
        self,
        member_ids: list[int],
        start: date,
        end: date
    ) -> list[ScheduleEntry]:
        if not member_ids:
            return []
        ids = ",".join(str(m) for m in member_ids)
        rows = await self._request(
            "GET",
            "schedule_entries",
            params=[
                ("select", "*"),
                ("member_id", f"in.({ids})"),
                ("date", f"gte.{start.isoformat()}"),
                ("date", f"lte.{end.isoformat()}"),
            ]
        )
        return self._parse(rows, ScheduleEntry.from_row, "schedule_entries")

    async def get_current_sprint(self, team_id: int) -> Optional[Sprint]:
        rows = await self._request(
            "GET",
            "team_sprints",
            params={
                "select": "*",
                "team_id": f"eq.{team_id}",
                "order": "sprint_number.desc",
                "limit": "1",
            }
        )
        sprints = self._parse(rows, Sprint.from_row, "team_sprints")
        return sprints[0] if sprints else None

    async def get_sprint(self, sprint_id: int) -> Optional[Sprint]:
        rows = await self._request(
            "GET",
            "team_sprints",
            params={"select": "*", "id": f"eq.{sprint_id}"}
        )
        sprints = self._parse(rows, Sprint.from_row, "team_sprints")
        return sprints[0] if sprints else None

    async def update_schedule_entry(
        self,
        member_id: int,
        day: date,
        value: str,
        reason: Optional[str] = None
    ) -> ScheduleEntry:
        _check_schedule_value(value)
        rows = await self._request(
            "POST",
            "schedule_entries",
            params={"on_conflict": "member_id,date"},
            json={"member_id": member_id, "date": day.isoformat(), "value": value, "reason": reason},
            prefer="resolution=merge-duplicates,return=representation"
        )
        entries = self._parse(rows, ScheduleEntry.from_row, "schedule_entries")
        if not entries:
            raise DataSourceError("Upsert of schedule entry returned no row")
        return entries[0]

    async def create_sprint(self, team_id: int, start: date, length_weeks: int) -> Sprint:
        validate_sprint_length(length_weeks)
        previous = await self.get_current_sprint(team_id)
        number = previous.number + 1 if previous else 1
        rows = await self._request(
            "POST",
            "team_sprints",
            json={
                "team_id": team_id,
                "sprint_number": number,
                "start_date": start.isoformat(),
                "end_date": sprint_end_date(start, length_weeks).isoformat(),
                "length_weeks": length_weeks,
            },
            prefer="return=representation"
        )
        sprints = self._parse(rows, Sprint.from_row, "team_sprints")
        if not sprints:
            raise DataSourceError("Insert of sprint returned no row")
        return sprints[0]

    async def update_sprint_dates(self, sprint_id: int, start: date, end: date) -> Sprint:
        length_weeks = sprint_length_for_range(start, end)
        rows = await self._request(
            "PATCH",
            "team_sprints",
            params={"id": f"eq.{sprint_id}"},
            json={
                "start_date": start.isoformat(),
                "end_date": end.isoformat(),
                "length_weeks": length_weeks,
            },
            prefer="return=representation"
        )
        sprints = self._parse(rows, Sprint.from_row, "team_sprints")
        if not sprints:
            raise KeyError(sprint_id)
        return sprints[0]


class InMemoryDataSource(DataSource):
    """
    Dict-backed data source for local runs and tests.

    Usage:
        source = InMemoryDataSource(teams=[...], members=[...], entries=[...])
    """

    def __init__(
        self,
        teams: Optional[list[Team]] = None,
        members: Optional[list[TeamMember]] = None,
        entries: Optional[list[ScheduleEntry]] = None,
        sprints: Optional[list[Sprint]] = None
    ):
        self.teams = {t.id: t for t in (teams or [])}
        self.members = {m.id: m for m in (members or [])}
        self.entries = {(e.member_id, e.date): e for e in (entries or [])}
        self.sprints = {s.id: s for s in (sprints or [])}
        self.calls: dict[str, int] = {}

    def _count(self, name: str) -> None:
        self.calls[name] = self.calls.get(name, 0) + 1

    async def get_teams(self) -> list[Team]:
        self._count("get_teams")
        return sorted(self.teams.values(), key=lambda t: t.name)

    async def get_team_members(self, team_id: int) -> list[TeamMember]:
        self._count("get_team_members")
        return [m for m in self.members.values() if m.team_id == team_id]

    async def get_schedule_entries(
        self,
        member_ids: list[int],
        start: date,
        end: date
    ) -> list[ScheduleEntry]:
        self._count("get_schedule_entries")
        wanted = set(member_ids)
        return [
            e for (member_id, day), e in sorted(self.entries.items())
            if member_id in wanted and start <= day <= end
        ]

    async def get_current_sprint(self, team_id: int) -> Optional[Sprint]:
        self._count("get_current_sprint")
        team_sprints = [s for s in self.sprints.values() if s.team_id == team_id]
        if not team_sprints:
            return None
        return max(team_sprints, key=lambda s: s.number)

    async def get_sprint(self, sprint_id: int) -> Optional[Sprint]:
        self._count("get_sprint")
        return self.sprints.get(sprint_id)

    async def update_schedule_entry(
        self,
        member_id: int,
        day: date,
        value: str,
        reason: Optional[str] = None
    ) -> ScheduleEntry:
        _check_schedule_value(value)
        if member_id not in self.members:
            raise KeyError(member_id)
        entry = ScheduleEntry(member_id=member_id, date=day, value=value, reason=reason)
        self.entries[(member_id, day)] = entry
        return entry

    async def create_sprint(self, team_id: int, start: date, length_weeks: int) -> Sprint:
        validate_sprint_length(length_weeks)
        if team_id not in self.teams:
            raise KeyError(team_id)
        previous = await self.get_current_sprint(team_id)
        sprint = Sprint(
            id=max(self.sprints, default=0) + 1,
            team_id=team_id,
            number=previous.number + 1 if previous else 1,
            start_date=start,
            end_date=sprint_end_date(start, length_weeks),
            length_weeks=length_weeks,
        )
        self.sprints[sprint.id] = sprint
        return sprint

    async def update_sprint_dates(self, sprint_id: int, start: date, end: date) -> Sprint:
        length_weeks = sprint_length_for_range(start, end)
        sprint = self.sprints[sprint_id]
        sprint.start_date = start
        sprint.end_date = end
        sprint.length_weeks = length_weeks
        return sprint
