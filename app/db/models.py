from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import JSON, Boolean, Date, DateTime, Index, Integer, String, Text, UniqueConstraint, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all database models."""


class WeeklyPlanRecord(Base):
    """Weekly base plan, one live row per user per cycle week.

    Stores:
    - days: weekday key -> day plan JSON (empty while generation is pending)
    - status: pending | generating | generated | active | archived
    - redo bookkeeping: redo_used, redo_count_today, last_redo_date, redo_reason

    Superseded plans are archived (status, is_locked, deactivated_at), never
    deleted on regeneration. Archived rows do not count toward the per-week
    uniqueness.
    """

    __tablename__ = "weekly_base_plans"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    week_start_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    is_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    days: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    generation_job_id: Mapped[str | None] = mapped_column(String, nullable=True)
    redo_used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    redo_count_today: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_redo_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    redo_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )
    deactivated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index(
            "uq_weekly_base_plans_user_week_live",
            "user_id",
            "week_start_date",
            unique=True,
            sqlite_where=text("status != 'archived'"),
            postgresql_where=text("status != 'archived'"),
        ),
    )


class PlanJob(Base):
    """Queued base plan generation job.

    At most one pending/processing job per user, enforced by a partial unique
    index so that concurrent inserts cannot both succeed.
    """

    __tablename__ = "plan_generation_jobs"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    profile_snapshot: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending", index=True)
    week_start_date: Mapped[date] = mapped_column(Date, nullable=False)

    is_redo: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    redo_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    redo_type: Mapped[str | None] = mapped_column(String, nullable=True)
    source_plan_id: Mapped[str | None] = mapped_column(String, nullable=True)
    target_plan_id: Mapped[str | None] = mapped_column(String, nullable=True)

    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index(
            "uq_plan_generation_jobs_user_active",
            "user_id",
            unique=True,
            sqlite_where=text("status IN ('pending', 'processing')"),
            postgresql_where=text("status IN ('pending', 'processing')"),
        ),
        Index("idx_plan_generation_jobs_status_created", "status", "created_at"),
    )


class CheckinRecord(Base):
    """Daily check-in, append-only, one per user per day."""

    __tablename__ = "checkins"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    checkin_date: Mapped[date] = mapped_column(Date, nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (UniqueConstraint("user_id", "checkin_date", name="uq_checkins_user_date"),)


class DailyPlanRecord(Base):
    """Titrated daily plan plus what the user reported doing with it."""

    __tablename__ = "daily_plans"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    plan_date: Mapped[date] = mapped_column(Date, nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    daily_highlights: Mapped[str | None] = mapped_column(Text, nullable=True)
    flags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    adherence: Mapped[int | None] = mapped_column(Integer, nullable=True)
    completed_supplements: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (UniqueConstraint("user_id", "plan_date", name="uq_daily_plans_user_date"),)


class BasePlanJobStateRecord(Base):
    """Per-user base plan generation state (idle | pending | ready | error)."""

    __tablename__ = "base_plan_job_states"

    user_id: Mapped[str] = mapped_column(String, primary_key=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="idle")
    job_id: Mapped[str | None] = mapped_column(String, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # orchestrator instance running the pending job
    owner: Mapped[str | None] = mapped_column(String, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )
