# groupfit/app.py
# =============================================================================
# GroupFit API — shared weekly plans & member progress (FastAPI + SQLAlchemy
# 2.x async, Pydantic v2). Groups hold a default plan plus per-week overrides;
# members log workouts; progress is computed on request, never stored.
# =============================================================================

from __future__ import annotations

import logging
import os
import re
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator, Dict, List, Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi import Path as FPath
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from sqlalchemy import delete, desc, select, text

from groupfit import calendar_week
from groupfit.calendar_week import InvalidWeekIdentifier, adjacent_week, week_identifier_of, week_range_of
from groupfit.db import (
    GroupRow,
    WorkoutRow,
    async_session,
    db_type,
    engine,
    entry_from_row,
    group_from_row,
    init_db,
)
from groupfit.models import DAYS, PlannedEntry, ProgressSummary, WeekPlan
from groupfit.plan_resolver import current_week_view, effective_plan, has_override
from groupfit.progress import weekly_progress

# -----------------------------------------------------------------------------
# Logging
# -----------------------------------------------------------------------------
logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
log = logging.getLogger("groupfit-api")


# -----------------------------------------------------------------------------
# Reference clock (overridden in tests via app.dependency_overrides)
# -----------------------------------------------------------------------------
def get_now() -> datetime:
    return datetime.now()


# -----------------------------------------------------------------------------
# Pydantic schemas
# -----------------------------------------------------------------------------
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _check_date(v: str) -> str:
    if not _DATE_RE.match(v):
        raise ValueError("date must be YYYY-MM-DD format")
    try:
        datetime.strptime(v, "%Y-%m-%d")
    except ValueError:
        raise ValueError("date is not a valid calendar date")
    return v


def _check_plan_days(plan: Optional[WeekPlan]) -> Optional[WeekPlan]:
    if plan is None:
        return None
    cleaned: WeekPlan = {}
    for day, entries in plan.items():
        key = day.strip().upper()
        if key not in DAYS:
            raise ValueError(f"unknown day {day!r}; expected one of {list(DAYS)}")
        cleaned[key] = entries
    return cleaned


def _plan_to_json(plan: Optional[WeekPlan]) -> Optional[dict]:
    if plan is None:
        return None
    return {
        day: [e.model_dump(exclude_none=True, exclude_defaults=True) for e in entries]
        for day, entries in plan.items()
    }


class HealthOut(BaseModel):
    ok: bool = True
    db_connected: bool = True
    db_type: str
    timestamp: str


class GenericResponse(BaseModel):
    message: str


class GroupIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    goal_type: Optional[str] = Field(None, validation_alias=AliasChoices("goal_type", "goalType"))
    goal_date: Optional[str] = Field(None, validation_alias=AliasChoices("goal_date", "goalDate"))
    default_plan: Optional[WeekPlan] = Field(
        None, validation_alias=AliasChoices("default_plan", "defaultPlan", "trainingPlan")
    )
    week_overrides: Dict[str, WeekPlan] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("week_overrides", "weekOverrides", "weeklyPlanOverrides"),
    )

    @field_validator("name")
    @classmethod
    def normalize_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("group name cannot be empty")
        return v

    @field_validator("goal_date")
    @classmethod
    def validate_goal_date(cls, v: Optional[str]) -> Optional[str]:
        return _check_date(v) if v is not None else None

    @field_validator("default_plan")
    @classmethod
    def validate_default_plan(cls, v: Optional[WeekPlan]) -> Optional[WeekPlan]:
        return _check_plan_days(v)

    @field_validator("week_overrides")
    @classmethod
    def normalize_override_keys(cls, v: Dict[str, WeekPlan]) -> Dict[str, WeekPlan]:
        normalized: Dict[str, WeekPlan] = {}
        seen: Dict[str, str] = {}
        for raw_key, plan in v.items():
            key = week_identifier_of(raw_key)
            if key in seen:
                raise ValueError(
                    f"override weeks {seen[key]!r} and {raw_key!r} both fall in week {key}"
                )
            seen[key] = raw_key
            normalized[key] = _check_plan_days(plan)
        return normalized


class GroupOut(BaseModel):
    id: int
    name: str
    goal_type: Optional[str] = None
    goal_date: Optional[str] = None
    default_plan: Optional[WeekPlan] = None
    week_overrides: Dict[str, WeekPlan] = Field(default_factory=dict)


class PlanIn(BaseModel):
    plan: Optional[WeekPlan] = None

    @field_validator("plan")
    @classmethod
    def validate_plan(cls, v: Optional[WeekPlan]) -> Optional[WeekPlan]:
        return _check_plan_days(v)


class EffectivePlanOut(BaseModel):
    group_id: int
    week: str
    is_override: bool
    plan: Dict[str, List[PlannedEntry]]


class WorkoutIn(BaseModel):
    """One logged workout by one member."""
    model_config = ConfigDict(populate_by_name=True)

    group_id: int = Field(validation_alias=AliasChoices("group_id", "groupId"))
    member_id: str = Field(validation_alias=AliasChoices("member_id", "memberId", "userId"))
    workout_kind: str = Field(validation_alias=AliasChoices("workout_kind", "type"))
    date: str
    amount: Optional[float] = None
    unit: Optional[str] = None
    distance: Optional[float] = None
    duration_minutes: Optional[float] = Field(
        None, validation_alias=AliasChoices("duration_minutes", "duration")
    )
    notes: Optional[str] = None

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: str) -> str:
        return _check_date(v)

    @field_validator("member_id", "workout_kind")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("value cannot be empty")
        return v

    @field_validator("amount", "distance", "duration_minutes")
    @classmethod
    def non_negative(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v < 0:
            raise ValueError("value must be non-negative")
        return v

    @field_validator("unit")
    @classmethod
    def normalize_unit(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None


class WorkoutOut(BaseModel):
    id: int
    group_id: int
    member_id: str
    workout_kind: str
    date: str
    amount: Optional[float] = None
    unit: Optional[str] = None
    distance: Optional[float] = None
    duration_minutes: Optional[float] = None
    notes: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class WeekOut(BaseModel):
    week: str
    start: datetime
    end: datetime
    previous: str
    next: str
    is_current_week: bool


class CountdownOut(BaseModel):
    group_id: int
    goal_type: Optional[str] = None
    goal_date: Optional[str] = None
    days_until: int
    label: str


# -----------------------------------------------------------------------------
# App (with lifespan)
# -----------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    await init_db()
    yield
    await engine.dispose()


app = FastAPI(
    title="GroupFit API",
    description="Group training plans and weekly member progress.",
    version="1.0.0",
    lifespan=lifespan,
)


@app.exception_handler(InvalidWeekIdentifier)
async def invalid_week_handler(request: Request, exc: InvalidWeekIdentifier) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": str(exc)})


# -----------------------------------------------------------------------------
# Rate limiting middleware (simple in-memory, per-IP)
# -----------------------------------------------------------------------------
_rate_limit_store: Dict[str, List[float]] = {}
RATE_LIMIT_REQUESTS = int(os.getenv("RATE_LIMIT_REQUESTS", "60"))
RATE_LIMIT_WINDOW = int(os.getenv("RATE_LIMIT_WINDOW", "60"))  # seconds


def _prune_rate_limit_store(window_start: float) -> None:
    """Forget clients with no request inside the current window."""
    for ip in [ip for ip, hits in _rate_limit_store.items() if not hits or hits[-1] <= window_start]:
        del _rate_limit_store[ip]


@app.middleware("http")
async def rate_limit_middleware(request: Request, call_next):
    client_ip = request.client.host if request.client else "unknown"
    now = time.time()
    window_start = now - RATE_LIMIT_WINDOW

    _prune_rate_limit_store(window_start)
    hits = [t for t in _rate_limit_store.get(client_ip, []) if t > window_start]

    if len(hits) >= RATE_LIMIT_REQUESTS:
        _rate_limit_store[client_ip] = hits
        return Response(
            content='{"detail":"Rate limit exceeded. Try again later."}',
            status_code=429,
            media_type="application/json",
        )

    hits.append(now)
    _rate_limit_store[client_ip] = hits
    response = await call_next(request)
    response.headers["X-RateLimit-Limit"] = str(RATE_LIMIT_REQUESTS)
    response.headers["X-RateLimit-Remaining"] = str(RATE_LIMIT_REQUESTS - len(hits))
    return response


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def _resolve_week(week: Optional[str], now: datetime) -> str:
    """Any date inside the week (or nothing, meaning this week) -> week key."""
    if week is None:
        return week_identifier_of(now=now)
    return week_identifier_of(week)


def _group_out(row: GroupRow) -> GroupOut:
    group = group_from_row(row)
    return GroupOut(
        id=row.id,
        name=group.name,
        goal_type=group.goal_type,
        goal_date=group.goal_date,
        default_plan=group.default_plan,
        week_overrides=group.week_overrides,
    )


async def _get_group_row(session, group_id: int) -> GroupRow:
    row = await session.get(GroupRow, group_id)
    if not row:
        raise HTTPException(404, "Group not found")
    return row


# -----------------------------------------------------------------------------
# Health / Root
# -----------------------------------------------------------------------------
@app.get("/health", response_model=HealthOut)
async def health() -> HealthOut:
    db_connected = False
    try:
        async with async_session() as s:
            await s.execute(text("SELECT 1"))
            db_connected = True
    except Exception as e:
        log.error(f"Health check DB query failed: {e}")
    return HealthOut(
        ok=db_connected,
        db_connected=db_connected,
        db_type=db_type(),
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


@app.get("/", response_model=GenericResponse)
async def root() -> GenericResponse:
    return GenericResponse(message="GroupFit API v1 is running")


# -----------------------------------------------------------------------------
# Groups
# -----------------------------------------------------------------------------
@app.post("/groups", response_model=GroupOut, status_code=201)
async def create_group(body: GroupIn) -> GroupOut:
    async with async_session() as s:
        row = GroupRow(
            name=body.name,
            goal_type=body.goal_type,
            goal_date=body.goal_date,
            default_plan=_plan_to_json(body.default_plan),
            week_overrides={k: _plan_to_json(p) for k, p in body.week_overrides.items()},
        )
        s.add(row)
        await s.commit()
        await s.refresh(row)
        log.info(f"Created group {row.id} ({row.name})")
        return _group_out(row)


@app.get("/groups/{group_id}", response_model=GroupOut)
async def get_group(group_id: int = FPath(..., ge=1)) -> GroupOut:
    async with async_session() as s:
        row = await _get_group_row(s, group_id)
        return _group_out(row)


@app.delete("/groups/{group_id}", response_model=GenericResponse)
async def delete_group(group_id: int = FPath(..., ge=1)) -> GenericResponse:
    async with async_session() as s:
        row = await _get_group_row(s, group_id)
        await s.execute(delete(WorkoutRow).where(WorkoutRow.group_id == group_id))
        await s.delete(row)
        await s.commit()
    return GenericResponse(message="Group deleted")


@app.put("/groups/{group_id}/plan", response_model=GroupOut)
async def set_default_plan(
    group_id: int = FPath(..., ge=1), body: PlanIn = Body(...)
) -> GroupOut:
    async with async_session() as s:
        row = await _get_group_row(s, group_id)
        row.default_plan = _plan_to_json(body.plan)
        await s.commit()
        await s.refresh(row)
        return _group_out(row)


@app.put("/groups/{group_id}/weeks/{week}/plan", response_model=GroupOut)
async def set_week_override(
    group_id: int = FPath(..., ge=1),
    week: str = FPath(..., description="YYYY-MM-DD, any day of the week"),
    body: PlanIn = Body(...),
) -> GroupOut:
    if body.plan is None:
        raise HTTPException(400, "Override plan is required; use DELETE to remove an override")
    key = week_identifier_of(week)
    async with async_session() as s:
        row = await _get_group_row(s, group_id)
        overrides = dict(row.week_overrides or {})
        overrides[key] = _plan_to_json(body.plan)
        row.week_overrides = overrides
        await s.commit()
        await s.refresh(row)
        return _group_out(row)


@app.delete("/groups/{group_id}/weeks/{week}/plan", response_model=GroupOut)
async def delete_week_override(
    group_id: int = FPath(..., ge=1),
    week: str = FPath(..., description="YYYY-MM-DD, any day of the week"),
) -> GroupOut:
    key = week_identifier_of(week)
    async with async_session() as s:
        row = await _get_group_row(s, group_id)
        overrides = dict(row.week_overrides or {})
        if key not in overrides:
            raise HTTPException(404, f"No override for week {key}")
        del overrides[key]
        row.week_overrides = overrides
        await s.commit()
        await s.refresh(row)
        return _group_out(row)


# -----------------------------------------------------------------------------
# Plans & progress
# -----------------------------------------------------------------------------
@app.get("/groups/{group_id}/plan", response_model=EffectivePlanOut)
async def get_effective_plan(
    group_id: int = FPath(..., ge=1),
    week: Optional[str] = Query(None, description="YYYY-MM-DD, any day of the week"),
    now: datetime = Depends(get_now),
) -> EffectivePlanOut:
    key = _resolve_week(week, now)
    async with async_session() as s:
        row = await _get_group_row(s, group_id)
    group = group_from_row(row)
    return EffectivePlanOut(
        group_id=group_id,
        week=key,
        is_override=has_override(group, key),
        plan=effective_plan(group, key, now=now),
    )


@app.get("/groups/{group_id}/plan/current", response_model=EffectivePlanOut)
async def get_current_week_plan(
    group_id: int = FPath(..., ge=1),
    now: datetime = Depends(get_now),
) -> EffectivePlanOut:
    key = week_identifier_of(now=now)
    async with async_session() as s:
        row = await _get_group_row(s, group_id)
    group = group_from_row(row)
    return EffectivePlanOut(
        group_id=group_id,
        week=key,
        is_override=has_override(group, key),
        plan=current_week_view(group, now=now),
    )


@app.get("/groups/{group_id}/progress", response_model=ProgressSummary)
async def get_progress(
    group_id: int = FPath(..., ge=1),
    member_id: str = Query(..., min_length=1),
    week: Optional[str] = Query(None, description="YYYY-MM-DD, any day of the week"),
    now: datetime = Depends(get_now),
) -> ProgressSummary:
    key = _resolve_week(week, now)
    async with async_session() as s:
        row = await _get_group_row(s, group_id)
        result = await s.execute(select(WorkoutRow).where(WorkoutRow.group_id == group_id))
        workouts = result.scalars().all()
    group = group_from_row(row)
    entries = [entry_from_row(w) for w in workouts]
    return weekly_progress(group, member_id, entries, key, now=now)


@app.get("/groups/{group_id}/countdown", response_model=CountdownOut)
async def get_countdown(
    group_id: int = FPath(..., ge=1),
    now: datetime = Depends(get_now),
) -> CountdownOut:
    async with async_session() as s:
        row = await _get_group_row(s, group_id)
    days = calendar_week.days_until(row.goal_date, now=now) if row.goal_date else 0
    return CountdownOut(
        group_id=group_id,
        goal_type=row.goal_type,
        goal_date=row.goal_date,
        days_until=days,
        label="day" if days == 1 else "days",
    )


# -----------------------------------------------------------------------------
# Week navigation
# -----------------------------------------------------------------------------
@app.get("/weeks/{week}", response_model=WeekOut)
async def get_week(
    week: str = FPath(..., description="YYYY-MM-DD, any day of the week"),
    now: datetime = Depends(get_now),
) -> WeekOut:
    key = week_identifier_of(week)
    start, end = week_range_of(key)
    return WeekOut(
        week=key,
        start=start,
        end=end,
        previous=adjacent_week(key, "previous"),
        next=adjacent_week(key, "next"),
        is_current_week=key == week_identifier_of(now=now),
    )


# -----------------------------------------------------------------------------
# Workouts
# -----------------------------------------------------------------------------
@app.post("/workouts", response_model=WorkoutOut, status_code=201)
async def add_workout(w: WorkoutIn) -> WorkoutOut:
    async with async_session() as s:
        await _get_group_row(s, w.group_id)
        obj = WorkoutRow(**w.model_dump())
        s.add(obj)
        await s.commit()
        await s.refresh(obj)
        return WorkoutOut.model_validate(obj)


@app.get("/workouts", response_model=List[WorkoutOut])
async def query_workouts(
    group_id: int = Query(..., ge=1),
    member_id: Optional[str] = None,
    start: Optional[str] = Query(None, description="YYYY-MM-DD"),
    end: Optional[str] = Query(None, description="YYYY-MM-DD"),
) -> List[WorkoutOut]:
    stmt = select(WorkoutRow).where(WorkoutRow.group_id == group_id)
    if member_id:
        stmt = stmt.where(WorkoutRow.member_id == member_id)
    if start:
        stmt = stmt.where(WorkoutRow.date >= start)
    if end:
        stmt = stmt.where(WorkoutRow.date <= end)
    stmt = stmt.order_by(desc(WorkoutRow.date), desc(WorkoutRow.id))
    async with async_session() as s:
        result = await s.execute(stmt)
        rows = result.scalars().all()
    return [WorkoutOut.model_validate(r) for r in rows]


@app.put("/workouts/{workout_id}", response_model=WorkoutOut)
async def edit_workout(
    workout_id: int = FPath(..., ge=1), body: WorkoutIn = Body(...)
) -> WorkoutOut:
    async with async_session() as s:
        w = await s.get(WorkoutRow, workout_id)
        if not w:
            raise HTTPException(404, "Workout not found")
        if body.group_id != w.group_id:
            raise HTTPException(400, "Workouts cannot move between groups")
        for k, v in body.model_dump().items():
            setattr(w, k, v)
        await s.commit()
        await s.refresh(w)
        return WorkoutOut.model_validate(w)


@app.delete("/workouts/{workout_id}", response_model=GenericResponse)
async def delete_workout(workout_id: int = FPath(..., ge=1)) -> GenericResponse:
    async with async_session() as s:
        w = await s.get(WorkoutRow, workout_id)
        if not w:
            raise HTTPException(404, "Workout not found")
        await s.delete(w)
        await s.commit()
    return GenericResponse(message="Workout deleted")
