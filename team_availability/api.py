"""
FastAPI Backend for Team Availability

Serves submission status, sprint capacity and alerts, and accepts schedule
and sprint changes.
"""

import asyncio
import contextlib
from contextlib import asynccontextmanager
import logging
from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from .cache import CalculationCache, make_key
from .calculations import calculate_sprint_potential, calculate_working_days
from .config import Config
from .integrations import DataSource, DataSourceError, InMemoryDataSource, SupabaseDataSource, Team
from .logging_config import setup_logging
from .permissions import Identity, Permission, PermissionDeniedError, require_permission
from .retry import RetryExhaustedError, RetryPolicy
from .status import StatusResolver, generate_alerts


logger = logging.getLogger(__name__)

UPSTREAM_ERRORS = (DataSourceError, RetryExhaustedError)


# Pydantic models for API
class ScheduleUpdate(BaseModel):
    team_id: int
    member_id: int
    day: date
    value: str  # "1", "0.5", "X"
    reason: Optional[str] = None


class SprintCreate(BaseModel):
    team_id: int
    start_date: date
    length_weeks: int = 2


class SprintDatesUpdate(BaseModel):
    team_id: int
    start_date: date
    end_date: date


class InvalidateRequest(BaseModel):
    team_id: Optional[int] = None


def build_data_source(config: Config) -> DataSource:
    """Supabase when configured, otherwise an empty in-memory source."""
    if config.database_url and config.database_key:
        return SupabaseDataSource(url=config.database_url, key=config.database_key)
    logger.warning("SUPABASE_URL/SUPABASE_KEY not set, using an empty in-memory data source")
    return InMemoryDataSource()


# Lifespan context manager
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    config: Config = app.state.config
    setup_logging(config.log_level, config.log_json)
    logger.info("Team Availability API starting up")
    sweeper = asyncio.create_task(app.state.cache.run_sweeper())
    yield
    sweeper.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await sweeper
    logger.info("Team Availability API shutting down")


router = APIRouter()


def _state(request: Request):
    return request.app.state


def get_identity(request: Request, user_id: Optional[str]) -> Identity:
    if not user_id:
        raise HTTPException(status_code=401, detail="X-User-Id header required")
    roles = _state(request).config.roles
    try:
        return Identity.from_config(user_id, roles.get(user_id))
    except ValueError as e:
        raise HTTPException(status_code=500, detail=f"Bad role configuration for {user_id}: {e}")


def _invalidate_team(request: Request, team_id: int) -> None:
    cache: CalculationCache = _state(request).cache
    for prefix in (f"team_status:{team_id}:", f"team_sprint:{team_id}:", "company_status:", "alerts:"):
        cache.invalidate_prefix(prefix)


async def _find_team(request: Request, team_id: int) -> Team:
    try:
        teams = await _state(request).source.get_teams()
    except UPSTREAM_ERRORS as e:
        raise HTTPException(status_code=502, detail=str(e))
    for team in teams:
        if team.id == team_id:
            return team
    raise HTTPException(status_code=404, detail=f"Team {team_id} not found")


def _fully_available(company) -> bool:
    return not company.unavailable_team_ids


async def _company_status(request: Request, day: date):
    state = _state(request)
    try:
        return await state.cache.get_or_fetch(
            make_key("company_status", day),
            lambda: state.resolver.company_status(day),
            timeout=state.config.analytics_timeout,
            should_cache=_fully_available
        )
    except UPSTREAM_ERRORS as e:
        raise HTTPException(status_code=502, detail=str(e))


# Health check
@router.get("/health")
async def health_check(request: Request):
    """Health check endpoint."""
    state = _state(request)
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "database": type(state.source).__name__,
        "cache": state.cache.stats().to_dict(),
    }


@router.get("/api/teams")
async def list_teams(request: Request):
    """List all teams."""
    try:
        teams = await _state(request).source.get_teams()
    except UPSTREAM_ERRORS as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {"teams": [t.to_dict() for t in teams]}


@router.get("/api/teams/{team_id}/status")
async def get_team_status(request: Request, team_id: int, day: Optional[date] = None):
    """Weekly submission status for a team."""
    state = _state(request)
    day = day or date.today()
    team = await _find_team(request, team_id)

    status = await state.cache.get_or_fetch(
        make_key("team_status", team_id, day),
        lambda: state.resolver.team_status(team, day),
        timeout=state.config.analytics_timeout,
        should_cache=lambda s: s.available
    )
    return status.to_dict()


@router.get("/api/teams/{team_id}/sprint")
async def get_team_sprint(request: Request, team_id: int, day: Optional[date] = None):
    """Current sprint window and capacity for a team."""
    state = _state(request)
    day = day or date.today()
    await _find_team(request, team_id)

    async def load():
        sprint = await state.resolver.current_sprint(team_id, day)
        if sprint is None:
            return None
        members = await state.source.get_team_members(team_id)
        active = [m for m in members if m.is_active_on(sprint.start_date)]
        data = sprint.to_dict(today=day)
        data["team_size"] = len(active)
        data["potential_hours"] = (
            calculate_sprint_potential(len(active), sprint.start_date, sprint.end_date)
            if active else 0.0
        )
        return data

    try:
        data = await state.cache.get_or_fetch(
            make_key("team_sprint", team_id, day),
            load,
            timeout=state.config.analytics_timeout
        )
    except UPSTREAM_ERRORS as e:
        raise HTTPException(status_code=502, detail=str(e))

    if data is None:
        raise HTTPException(status_code=404, detail=f"No sprint configured for team {team_id}")
    return data


@router.get("/api/company/status")
async def get_company_status(request: Request, day: Optional[date] = None):
    """Company-wide submission status."""
    company = await _company_status(request, day or date.today())
    return company.to_dict()


@router.get("/api/alerts")
async def get_alerts(request: Request, day: Optional[date] = None):
    """Alerts for teams and critical members needing follow-up."""
    state = _state(request)
    day = day or date.today()

    async def load():
        company = await _company_status(request, day)
        return company, generate_alerts(company)

    _, alerts = await state.cache.get_or_fetch(
        make_key("alerts", day),
        load,
        timeout=state.config.alerts_timeout,
        should_cache=lambda result: _fully_available(result[0])
    )
    return {"count": len(alerts), "alerts": [a.to_dict() for a in alerts]}


@router.get("/api/sprint/potential")
async def get_sprint_potential(members: int, start: date, end: date):
    """Sprint potential hours for a team size and date range."""
    try:
        potential = calculate_sprint_potential(members, start, end)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {
        "members": members,
        "start": start.isoformat(),
        "end": end.isoformat(),
        "working_days": calculate_working_days(start, end),
        "potential_hours": potential,
    }


@router.put("/api/schedule")
async def update_schedule(
    request: Request,
    update: ScheduleUpdate,
    x_user_id: Optional[str] = Header(None)
):
    """Create or overwrite one member's entry for one date."""
    state = _state(request)
    identity = get_identity(request, x_user_id)

    try:
        require_permission(identity, Permission.EDIT_OWN_SCHEDULE, update.team_id, update.member_id)
    except PermissionDeniedError as e:
        raise HTTPException(status_code=403, detail=str(e))

    try:
        members = await state.source.get_team_members(update.team_id)
        if not any(m.id == update.member_id for m in members):
            raise HTTPException(
                status_code=404,
                detail=f"Member {update.member_id} not found in team {update.team_id}"
            )
        entry = await state.source.update_schedule_entry(
            update.member_id, update.day, update.value, update.reason
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except UPSTREAM_ERRORS as e:
        raise HTTPException(status_code=502, detail=str(e))

    _invalidate_team(request, update.team_id)
    return entry.to_dict()


@router.post("/api/sprints")
async def create_sprint(
    request: Request,
    payload: SprintCreate,
    x_user_id: Optional[str] = Header(None)
):
    """Start a new sprint for a team."""
    state = _state(request)
    identity = get_identity(request, x_user_id)

    try:
        require_permission(identity, Permission.MANAGE_SPRINTS, payload.team_id)
    except PermissionDeniedError as e:
        raise HTTPException(status_code=403, detail=str(e))

    await _find_team(request, payload.team_id)
    try:
        sprint = await state.source.create_sprint(payload.team_id, payload.start_date, payload.length_weeks)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except UPSTREAM_ERRORS as e:
        raise HTTPException(status_code=502, detail=str(e))

    _invalidate_team(request, payload.team_id)
    return sprint.to_dict()


@router.patch("/api/sprints/{sprint_id}")
async def update_sprint_dates(
    request: Request,
    sprint_id: int,
    payload: SprintDatesUpdate,
    x_user_id: Optional[str] = Header(None)
):
    """Move a sprint's start and end dates."""
    state = _state(request)
    identity = get_identity(request, x_user_id)

    try:
        stored = await state.source.get_sprint(sprint_id)
    except UPSTREAM_ERRORS as e:
        raise HTTPException(status_code=502, detail=str(e))
    if stored is None or stored.team_id != payload.team_id:
        raise HTTPException(
            status_code=404,
            detail=f"Sprint {sprint_id} not found in team {payload.team_id}"
        )

    # Authorise against the team that owns the row
    try:
        require_permission(identity, Permission.MANAGE_SPRINTS, stored.team_id)
    except PermissionDeniedError as e:
        raise HTTPException(status_code=403, detail=str(e))

    try:
        sprint = await state.source.update_sprint_dates(sprint_id, payload.start_date, payload.end_date)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Sprint {sprint_id} not found")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except UPSTREAM_ERRORS as e:
        raise HTTPException(status_code=502, detail=str(e))

    _invalidate_team(request, stored.team_id)
    return sprint.to_dict()


@router.post("/api/cache/invalidate")
async def invalidate_cache(
    request: Request,
    payload: InvalidateRequest,
    x_user_id: Optional[str] = Header(None)
):
    """Drop cached calculations for one team, or everything."""
    identity = get_identity(request, x_user_id)
    try:
        require_permission(identity, Permission.MANAGE_CACHE)
    except PermissionDeniedError as e:
        raise HTTPException(status_code=403, detail=str(e))

    cache: CalculationCache = _state(request).cache
    if payload.team_id is None:
        cache.clear()
    else:
        _invalidate_team(request, payload.team_id)
    return {"invalidated": True, "team_id": payload.team_id, "cache": cache.stats().to_dict()}


def create_app(
    config: Optional[Config] = None,
    source: Optional[DataSource] = None,
    cache: Optional[CalculationCache] = None
) -> FastAPI:
    """Build the app with its data source, cache and resolver."""
    config = config or Config()

    app = FastAPI(
        title="Team Availability",
        description="API for schedule submission status and sprint capacity",
        version="1.0.0",
        lifespan=lifespan
    )

    app.state.config = config
    app.state.source = source or build_data_source(config)
    app.state.cache = cache or CalculationCache(
        default_timeout=config.analytics_timeout,
        stale_threshold=config.stale_threshold,
        sweep_interval=config.sweep_interval
    )
    app.state.resolver = StatusResolver(
        app.state.source,
        retry=RetryPolicy(
            max_attempts=config.retry_max_attempts,
            base_delay=config.retry_base_delay,
            max_delay=config.retry_max_delay
        ),
        missing_hours=config.unknown_value_hours
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    return app


# Run with: uvicorn team_availability.api:create_app --factory --reload
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app, factory=True, host="0.0.0.0", port=8000)
