"""Persistence for plans, plan jobs, check-ins, daily plans and job state.

Plain functions over a caller-owned SQLAlchemy session. Functions flush
where later statements in the same transaction depend on the write; commit
is always the caller's decision.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from loguru import logger
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.db.models import BasePlanJobStateRecord, CheckinRecord, DailyPlanRecord, PlanJob, WeeklyPlanRecord
from app.jobs.state import BasePlanJobState, JobStatus, as_utc
from app.memory.last_day import DailyPlanSummary
from app.planning.errors import PlanEngineError
from app.planning.schema.checkin import CheckinData
from app.planning.schema.daily import DailyPlan
from app.planning.schema.plan import PlanStatus, WeeklyBasePlan

ACTIVE_JOB_STATUSES = ("pending", "processing")


class DuplicateCheckinError(PlanEngineError):
    """A check-in already exists for this user and day."""


# ---------------------------------------------------------------------------
# Weekly plans
# ---------------------------------------------------------------------------


def to_weekly_plan(record: WeeklyPlanRecord) -> WeeklyBasePlan:
    return WeeklyBasePlan(
        id=record.id,
        user_id=record.user_id,
        created_at=as_utc(record.created_at),
        week_start_date=record.week_start_date,
        status=PlanStatus(record.status),
        is_locked=record.is_locked,
        days=record.days or {},
        deactivated_at=as_utc(record.deactivated_at),
    )


def get_plan(session: Session, plan_id: str) -> WeeklyPlanRecord | None:
    return session.get(WeeklyPlanRecord, plan_id)


def get_live_plan(session: Session, user_id: str, week_start_date: date) -> WeeklyPlanRecord | None:
    """The non-archived plan for a cycle week, if any."""
    return session.execute(
        select(WeeklyPlanRecord).where(
            WeeklyPlanRecord.user_id == user_id,
            WeeklyPlanRecord.week_start_date == week_start_date,
            WeeklyPlanRecord.status != PlanStatus.ARCHIVED,
        )
    ).scalar_one_or_none()


def get_current_plan(session: Session, user_id: str) -> WeeklyPlanRecord | None:
    """Most recent generated or active plan."""
    return session.execute(
        select(WeeklyPlanRecord)
        .where(
            WeeklyPlanRecord.user_id == user_id,
            WeeklyPlanRecord.status.in_([PlanStatus.GENERATED, PlanStatus.ACTIVE]),
        )
        .order_by(WeeklyPlanRecord.week_start_date.desc(), WeeklyPlanRecord.created_at.desc())
        .limit(1)
    ).scalar_one_or_none()


def archive_plan(session: Session, plan: WeeklyPlanRecord, now: datetime) -> None:
    plan.status = PlanStatus.ARCHIVED
    plan.is_locked = True
    plan.deactivated_at = now
    session.flush()
    logger.info("Plan archived", plan_id=plan.id, user_id=plan.user_id)


def archive_live_plans(session: Session, user_id: str, now: datetime) -> int:
    """Archive every non-archived plan of a user. Returns the number archived."""
    plans = (
        session.execute(
            select(WeeklyPlanRecord).where(
                WeeklyPlanRecord.user_id == user_id,
                WeeklyPlanRecord.status != PlanStatus.ARCHIVED,
            )
        )
        .scalars()
        .all()
    )
    for plan in plans:
        archive_plan(session, plan, now)
    return len(plans)


def activate_current_plan(session: Session, user_id: str) -> WeeklyPlanRecord | None:
    """Lock the user's current plan as the confirmed one. Redo is blocked from here on."""
    plan = get_current_plan(session, user_id)
    if plan is None:
        return None
    plan.status = PlanStatus.ACTIVE
    plan.is_locked = True
    session.flush()
    logger.info("Plan activated", plan_id=plan.id, user_id=user_id)
    return plan


def store_generated_plan(
    session: Session, user_id: str, week_start_date: date, days: dict[str, Any], now: datetime
) -> WeeklyPlanRecord:
    """Archive the user's previous plans and store a freshly generated one."""
    archive_live_plans(session, user_id, now)
    plan = WeeklyPlanRecord(
        user_id=user_id,
        week_start_date=week_start_date,
        status=PlanStatus.GENERATED,
        days=days,
        created_at=now,
    )
    session.add(plan)
    session.flush()
    return plan


def list_plans(session: Session, user_id: str, *, include_archived: bool = False) -> list[WeeklyPlanRecord]:
    query = select(WeeklyPlanRecord).where(WeeklyPlanRecord.user_id == user_id)
    if not include_archived:
        query = query.where(WeeklyPlanRecord.status != PlanStatus.ARCHIVED)
    query = query.order_by(WeeklyPlanRecord.week_start_date.desc(), WeeklyPlanRecord.created_at.desc())
    return list(session.execute(query).scalars().all())


def purge_archived_plans(session: Session, user_id: str, keep_cycles: int) -> int:
    """Delete archived plans older than the newest ``keep_cycles`` cycle weeks.

    keep_cycles <= 0 keeps everything. Returns the number of rows deleted.
    """
    if keep_cycles <= 0:
        return 0

    weeks = (
        session.execute(
            select(WeeklyPlanRecord.week_start_date)
            .where(WeeklyPlanRecord.user_id == user_id, WeeklyPlanRecord.status == PlanStatus.ARCHIVED)
            .distinct()
            .order_by(WeeklyPlanRecord.week_start_date.desc())
        )
        .scalars()
        .all()
    )
    if len(weeks) <= keep_cycles:
        return 0

    cutoff = weeks[keep_cycles - 1]
    result = session.execute(
        delete(WeeklyPlanRecord).where(
            WeeklyPlanRecord.user_id == user_id,
            WeeklyPlanRecord.status == PlanStatus.ARCHIVED,
            WeeklyPlanRecord.week_start_date < cutoff,
        )
    )
    deleted = result.rowcount or 0
    logger.info("Purged archived plans", user_id=user_id, deleted=deleted, keep_cycles=keep_cycles)
    return deleted


# ---------------------------------------------------------------------------
# Plan jobs
# ---------------------------------------------------------------------------


def get_job(session: Session, job_id: str) -> PlanJob | None:
    return session.get(PlanJob, job_id)


def get_active_job(session: Session, user_id: str) -> PlanJob | None:
    return session.execute(
        select(PlanJob).where(PlanJob.user_id == user_id, PlanJob.status.in_(ACTIVE_JOB_STATUSES))
    ).scalar_one_or_none()


def insert_job(session: Session, job: PlanJob) -> bool:
    """Insert a job. Returns False when another active job for the user won the race.

    On a lost race the session is rolled back, discarding everything else
    done in the same transaction.
    """
    session.add(job)
    try:
        session.flush()
    except IntegrityError:
        session.rollback()
        logger.info("Concurrent plan job insert lost the race", user_id=job.user_id)
        return False
    return True


def claim_next_job(session: Session, now: datetime) -> PlanJob | None:
    """Claim the oldest pending job (-> processing, attempts + 1)."""
    job = session.execute(
        select(PlanJob)
        .where(PlanJob.status == "pending")
        .order_by(PlanJob.created_at)
        .limit(1)
        .with_for_update(skip_locked=True)
    ).scalar_one_or_none()
    if job is None:
        return None

    job.status = "processing"
    job.attempts += 1
    job.started_at = now
    session.flush()
    return job


def complete_job(session: Session, job: PlanJob, now: datetime) -> None:
    job.status = "completed"
    job.completed_at = now
    job.error = None
    session.flush()


def fail_job(session: Session, job: PlanJob, error: str, now: datetime) -> None:
    job.status = "failed"
    job.completed_at = now
    job.error = error
    session.flush()


# ---------------------------------------------------------------------------
# Check-ins
# ---------------------------------------------------------------------------


def add_checkin(session: Session, user_id: str, checkin: CheckinData) -> CheckinRecord:
    """Store a check-in.

    Raises:
        DuplicateCheckinError: If the user already checked in that day
    """
    existing = session.execute(
        select(CheckinRecord.id).where(CheckinRecord.user_id == user_id, CheckinRecord.checkin_date == checkin.date)
    ).scalar_one_or_none()
    if existing is not None:
        raise DuplicateCheckinError(f"Check-in already exists for {checkin.date.isoformat()}")

    record = CheckinRecord(
        user_id=user_id,
        checkin_date=checkin.date,
        payload=checkin.model_dump(mode="json", by_alias=True),
    )
    session.add(record)
    try:
        session.flush()
    except IntegrityError as e:
        session.rollback()
        raise DuplicateCheckinError(f"Check-in already exists for {checkin.date.isoformat()}") from e
    return record


def get_checkin(session: Session, user_id: str, checkin_date: date) -> CheckinData | None:
    record = session.execute(
        select(CheckinRecord).where(CheckinRecord.user_id == user_id, CheckinRecord.checkin_date == checkin_date)
    ).scalar_one_or_none()
    return CheckinData.model_validate(record.payload) if record else None


def recent_checkins(session: Session, user_id: str, *, until: date, limit: int = 30) -> list[CheckinData]:
    """Up to ``limit`` most recent check-ins on or before ``until``, oldest first."""
    records = (
        session.execute(
            select(CheckinRecord)
            .where(CheckinRecord.user_id == user_id, CheckinRecord.checkin_date <= until)
            .order_by(CheckinRecord.checkin_date.desc())
            .limit(limit)
        )
        .scalars()
        .all()
    )
    return [CheckinData.model_validate(record.payload) for record in reversed(records)]


# ---------------------------------------------------------------------------
# Daily plans
# ---------------------------------------------------------------------------


def _get_daily_plan_record(session: Session, user_id: str, plan_date: date) -> DailyPlanRecord | None:
    return session.execute(
        select(DailyPlanRecord).where(DailyPlanRecord.user_id == user_id, DailyPlanRecord.plan_date == plan_date)
    ).scalar_one_or_none()


def save_daily_plan(session: Session, user_id: str, plan: DailyPlan) -> DailyPlanRecord:
    """Insert or replace the daily plan for ``plan.date``."""
    record = _get_daily_plan_record(session, user_id, plan.date)
    payload = plan.model_dump(mode="json", by_alias=True)
    if record is None:
        record = DailyPlanRecord(user_id=user_id, plan_date=plan.date, payload=payload)
        session.add(record)
    else:
        record.payload = payload
    record.daily_highlights = plan.daily_highlights
    record.flags = list(plan.flags)
    session.flush()
    return record


def record_adherence(
    session: Session, user_id: str, plan_date: date, adherence: int, completed_supplements: list[str]
) -> DailyPlanRecord | None:
    record = _get_daily_plan_record(session, user_id, plan_date)
    if record is None:
        return None
    record.adherence = adherence
    record.completed_supplements = list(completed_supplements)
    session.flush()
    return record


def recent_daily_plans(session: Session, user_id: str, *, until: date, limit: int = 7) -> list[DailyPlanSummary]:
    records = (
        session.execute(
            select(DailyPlanRecord)
            .where(DailyPlanRecord.user_id == user_id, DailyPlanRecord.plan_date <= until)
            .order_by(DailyPlanRecord.plan_date.desc())
            .limit(limit)
        )
        .scalars()
        .all()
    )
    return [
        DailyPlanSummary(
            date=record.plan_date,
            adherence=record.adherence,
            daily_highlights=record.daily_highlights,
            completed_supplements=list(record.completed_supplements or []),
        )
        for record in records
    ]


# ---------------------------------------------------------------------------
# Base plan job state
# ---------------------------------------------------------------------------


def load_job_state(session: Session, user_id: str) -> BasePlanJobState:
    record = session.get(BasePlanJobStateRecord, user_id)
    if record is None:
        return BasePlanJobState()
    return BasePlanJobState(
        status=JobStatus(record.status),
        job_id=record.job_id,
        started_at=as_utc(record.started_at),
        completed_at=as_utc(record.completed_at),
        error=record.error,
        verified=record.verified,
        owner=record.owner,
    )


def save_job_state(session: Session, user_id: str, state: BasePlanJobState) -> None:
    record = session.get(BasePlanJobStateRecord, user_id)
    if record is None:
        record = BasePlanJobStateRecord(user_id=user_id)
        session.add(record)
    record.status = state.status
    record.job_id = state.job_id
    record.started_at = state.started_at
    record.completed_at = state.completed_at
    record.error = state.error
    record.verified = state.verified
    record.owner = state.owner
    session.flush()
