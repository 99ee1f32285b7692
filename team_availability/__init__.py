"""
Team Availability

Sprint capacity, schedule submission status and cached roll-ups for teams
working a Sunday-Thursday week.
"""

__version__ = "1.0.0"

from .calculations import (
    HOURS_PER_DAY,
    InvalidScheduleValueError,
    SprintHealth,
    SprintMetrics,
    SprintProgress,
    value_to_hours,
    calculate_working_days,
    calculate_sprint_potential,
    calculate_actual_planned_hours,
    calculate_completion_percentage,
    calculate_sprint_metrics,
)

from .sprints import (
    InvalidSprintError,
    Sprint,
    SprintWindow,
    sprint_for_date,
    resolve_current_sprint,
)

from .integrations import (
    DataSource,
    DataSourceError,
    InMemoryDataSource,
    SupabaseDataSource,
    Team,
    TeamMember,
    ScheduleEntry,
)

from .retry import (
    RetryPolicy,
    RetryExhaustedError,
    LatestOnlyLoader,
    SupersededError,
    backoff_delay,
)

from .cache import (
    CalculationCache,
    CacheState,
    make_key,
)

from .status import (
    StatusResolver,
    SubmissionStatus,
    TeamHealth,
    MemberSubmissionStatus,
    TeamCompletionStatus,
    CompanyCompletionStatus,
    generate_alerts,
)

__all__ = [
    # Version
    "__version__",

    # Calculations
    "HOURS_PER_DAY",
    "InvalidScheduleValueError",
    "SprintHealth",
    "SprintMetrics",
    "SprintProgress",
    "value_to_hours",
    "calculate_working_days",
    "calculate_sprint_potential",
    "calculate_actual_planned_hours",
    "calculate_completion_percentage",
    "calculate_sprint_metrics",

    # Sprints
    "InvalidSprintError",
    "Sprint",
    "SprintWindow",
    "sprint_for_date",
    "resolve_current_sprint",

    # Data access
    "DataSource",
    "DataSourceError",
    "InMemoryDataSource",
    "SupabaseDataSource",
    "Team",
    "TeamMember",
    "ScheduleEntry",

    # Retry
    "RetryPolicy",
    "RetryExhaustedError",
    "LatestOnlyLoader",
    "SupersededError",
    "backoff_delay",

    # Cache
    "CalculationCache",
    "CacheState",
    "make_key",

    # Status
    "StatusResolver",
    "SubmissionStatus",
    "TeamHealth",
    "MemberSubmissionStatus",
    "TeamCompletionStatus",
    "CompanyCompletionStatus",
    "generate_alerts",
]
