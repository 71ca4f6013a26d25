# groupfit/db.py
# =============================================================================
# Storage for groups and logged workouts (SQLAlchemy 2.x async).
# Plans are stored as JSON documents exactly as clients send them; the engine
# only ever sees them after validation into groupfit.models.
# =============================================================================

from __future__ import annotations

import logging
import os
from pathlib import Path as OSPath
from typing import Any, Optional

from sqlalchemy import JSON, Float, Integer, String
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from groupfit.models import Group, LoggedEntry

log = logging.getLogger("groupfit-api")

# -----------------------------------------------------------------------------
# DB connection
# Priority:
#   1) Cloud SQL (PostgreSQL) if CLOUD_SQL_CONNECTION_NAME is set
#   2) env GROUPFIT_DB (path to a SQLite file)
#   3) ./groupfit.db
# -----------------------------------------------------------------------------
_cloud_sql = os.getenv("CLOUD_SQL_CONNECTION_NAME")  # e.g. project:region:instance
_db_user = os.getenv("DB_USER", "postgres")
_db_pass = os.getenv("DB_PASSWORD", "")
_db_name = os.getenv("DB_NAME", "groupfit")

if _cloud_sql:
    _socket_path = f"/cloudsql/{_cloud_sql}"
    DB_PATH = f"postgresql+asyncpg://{_db_user}:{_db_pass}@/{_db_name}?host={_socket_path}"
    engine = create_async_engine(DB_PATH, echo=False, pool_pre_ping=True)
    log.info(f"Using Cloud SQL (async): {_cloud_sql}")
else:
    DB_PATH = os.getenv("GROUPFIT_DB") or str((OSPath.cwd() / "groupfit.db").resolve())
    engine = create_async_engine(f"sqlite+aiosqlite:///{DB_PATH}", echo=False)
    log.info(f"Using SQLite (async): {DB_PATH}")

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


def db_type() -> str:
    """Return a safe description of the DB type (no credentials)."""
    if _cloud_sql:
        return f"Cloud SQL PostgreSQL ({_cloud_sql})"
    return "SQLite"


# -----------------------------------------------------------------------------
# SQLAlchemy models
# -----------------------------------------------------------------------------
class Base(DeclarativeBase):
    pass


class GroupRow(Base):
    __tablename__ = "fitness_group"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    goal_type: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    goal_date: Mapped[Optional[str]] = mapped_column(String, nullable=True)     # YYYY-MM-DD
    default_plan: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)   # day -> entries
    week_overrides: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True) # week key -> plan


class WorkoutRow(Base):
    __tablename__ = "workout"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    group_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    member_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    workout_kind: Mapped[str] = mapped_column(String, nullable=False)
    date: Mapped[str] = mapped_column(String, nullable=False)                   # YYYY-MM-DD
    amount: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    unit: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    duration_minutes: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    # Legacy column: amount-free distance from older clients
    distance: Mapped[Optional[float]] = mapped_column(Float, nullable=True)


async def init_db() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# -----------------------------------------------------------------------------
# Row -> domain
# -----------------------------------------------------------------------------
def group_from_row(row: GroupRow) -> Group:
    data: dict[str, Any] = {
        "id": row.id,
        "name": row.name,
        "goal_type": row.goal_type,
        "goal_date": row.goal_date,
        "default_plan": row.default_plan,
        "week_overrides": row.week_overrides or {},
    }
    return Group.model_validate(data)


def entry_from_row(row: WorkoutRow) -> LoggedEntry:
    return LoggedEntry(
        id=row.id,
        member_id=row.member_id,
        workout_kind=row.workout_kind,
        date=row.date,
        amount=row.amount,
        unit=row.unit,
        distance=row.distance,
        duration_minutes=row.duration_minutes,
        notes=row.notes,
    )
