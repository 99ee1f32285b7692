"""
Shared fixtures.

The reference week is Sunday 2025-08-10 to Saturday 2025-08-16; its working
days are Aug 10-14. Sprint 1 runs Aug 10-23 (two weeks, 10 working days).
"""

from datetime import date, timedelta
from typing import Generator

import pytest
from fastapi.testclient import TestClient

from team_availability.api import create_app
from team_availability.cache import CalculationCache
from team_availability.config import Config
from team_availability.integrations import (
    InMemoryDataSource,
    ScheduleEntry,
    Team,
    TeamMember,
)
from team_availability.sprints import Sprint


WEEK_START = date(2025, 8, 10)
WEEK_DAYS = [WEEK_START + timedelta(days=i) for i in range(5)]


def full_week(member_id: int, value: str = "1") -> list[ScheduleEntry]:
    return [ScheduleEntry(member_id=member_id, date=d, value=value) for d in WEEK_DAYS]


@pytest.fixture()
def week_start() -> date:
    return WEEK_START


@pytest.fixture()
def sample_source() -> InMemoryDataSource:
    """
    Two teams:
      Product (1): Yossi complete, Dana partial, Avi missing, Ruth inactive
      Infra (2): Noa complete, Eli complete
    """
    teams = [
        Team(id=1, name="Product", sprint_length_weeks=2),
        Team(id=2, name="Infra", sprint_length_weeks=2),
    ]
    members = [
        TeamMember(id=1, team_id=1, name="Yossi", hebrew="יוסי", is_manager=True),
        TeamMember(id=2, team_id=1, name="Dana", hebrew="דנה"),
        TeamMember(id=3, team_id=1, name="Avi", hebrew="אבי", is_critical=True),
        TeamMember(id=4, team_id=1, name="Ruth", hebrew="רות", inactive_date=date(2025, 8, 1)),
        TeamMember(id=5, team_id=2, name="Noa", hebrew="נועה"),
        TeamMember(id=6, team_id=2, name="Eli", hebrew="אלי"),
    ]
    entries = (
        full_week(1)
        + [
            ScheduleEntry(member_id=2, date=WEEK_DAYS[0], value="1"),
            ScheduleEntry(member_id=2, date=WEEK_DAYS[1], value="0.5"),
            ScheduleEntry(member_id=2, date=WEEK_DAYS[2], value="X", reason="Sick"),
        ]
        + full_week(4)
        + full_week(5)
        + full_week(6, value="0.5")
    )
    sprints = [
        Sprint(id=1, team_id=1, number=1, start_date=WEEK_START,
               end_date=date(2025, 8, 23), length_weeks=2),
        Sprint(id=2, team_id=2, number=1, start_date=WEEK_START,
               end_date=date(2025, 8, 23), length_weeks=2),
    ]
    return InMemoryDataSource(teams=teams, members=members, entries=entries, sprints=sprints)


@pytest.fixture()
def test_config(tmp_path) -> Config:
    path = tmp_path / "config.yaml"
    path.write_text(
        "retry:\n"
        "  max_attempts: 2\n"
        "  base_delay: 0\n"
        "access:\n"
        "  roles:\n"
        "    admin@company.com: admin\n"
        "    dana@company.com:\n"
        "      role: scrum_master\n"
        "      team_id: 1\n"
        "    avi@company.com:\n"
        "      role: member\n"
        "      team_id: 1\n"
        "      member_id: 3\n"
    )
    return Config(config_path=str(path))


@pytest.fixture()
def client(test_config, sample_source) -> Generator[TestClient, None, None]:
    app = create_app(config=test_config, source=sample_source, cache=CalculationCache())
    with TestClient(app) as c:
        yield c
