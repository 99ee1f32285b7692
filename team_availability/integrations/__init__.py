"""
Team Availability - Integrations

Data access for the hosted database:
- Teams, members, schedule entries and sprints
- Supabase (PostgREST) client and an in-memory source
"""

from .database import (
    DataSource,
    DataSourceError,
    InMemoryDataSource,
    ScheduleEntry,
    SupabaseDataSource,
    Team,
    TeamMember,
)

__all__ = [
    "DataSource",
    "DataSourceError",
    "InMemoryDataSource",
    "ScheduleEntry",
    "SupabaseDataSource",
    "Team",
    "TeamMember",
]
