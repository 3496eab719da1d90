"""Queue-backed plan generation: job creation and the worker step.

create_plan_job() validates a request, enforces per-user dedup and the redo
rules, and enqueues a job row plus a placeholder plan. It never waits for
generation. process_next_job() is the worker side: it claims the oldest
pending job and runs the generation pipeline for it.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from app.config.settings import settings
from app.db.repository import (
    ACTIVE_JOB_STATUSES,
    archive_plan,
    claim_next_job,
    complete_job,
    fail_job,
    get_active_job,
    get_job,
    get_live_plan,
    get_plan,
    insert_job,
    purge_archived_plans,
)
from app.db.models import PlanJob, WeeklyPlanRecord
from app.db.session import get_session
from app.jobs.errors import PlanJobRequestError
from app.jobs.inflight import SingleFlight
from app.jobs.orchestrator import PlanGenerator, SessionFactory, utcnow
from app.jobs.week import local_date, week_start_date
from app.notifications.service import Notifier, PlanEvent, PlanEventType
from app.planning.errors import PlanGenerationError
from app.planning.pipeline import RedoRequest, generate_base_plan
from app.planning.schema.plan import PlanStatus, RedoType
from app.planning.schema.profile import UserProfile
from app.services.llm.completion import CompletionClient

MAX_REDO_REASON_LENGTH = 500
REQUIRED_SNAPSHOT_KEYS = ("goal", "trainingDays")


class CreateJobStatus(StrEnum):
    CREATED = "created"
    REDO_STARTED = "redo_started"
    EXISTING = "existing"
    PLAN_EXISTS = "plan_exists"
    REDO_BLOCKED_ACTIVATED = "redo_blocked_activated"
    REDO_LIMIT_REACHED = "redo_limit_reached"
    REDO_BLOCKED_GENERATING = "redo_blocked_generating"


class CreateJobRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    profile_snapshot: dict[str, Any]
    is_redo: bool = False
    redo_reason: str | None = None
    redo_type: RedoType | None = None
    force_regenerate: bool = False


class CreateJobResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    status: CreateJobStatus
    job_id: str | None = None
    plan_id: str | None = None
    message: str | None = None


class ProcessStatus(StrEnum):
    NO_JOBS = "no_jobs"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class ProcessResult:
    status: ProcessStatus
    job_id: str | None = None
    error: str | None = None


def _validate_snapshot(snapshot: dict[str, Any]) -> UserProfile:
    missing = [key for key in REQUIRED_SNAPSHOT_KEYS if snapshot.get(key) in (None, "")]
    if missing:
        raise PlanJobRequestError(f"Profile snapshot is missing required fields: {', '.join(missing)}")
    try:
        return UserProfile.model_validate(snapshot)
    except ValidationError as e:
        raise PlanJobRequestError(f"Invalid profile snapshot: {e.error_count()} validation error(s)") from e


def _redo_reason(request: CreateJobRequest) -> str | None:
    if not request.is_redo:
        return None
    reason = (request.redo_reason or "").strip()
    if not reason:
        raise PlanJobRequestError("A reason is required to redo a plan")
    if len(reason) > MAX_REDO_REASON_LENGTH:
        raise PlanJobRequestError(f"Redo reason must be at most {MAX_REDO_REASON_LENGTH} characters")
    return reason


def _existing(session, user_id: str) -> CreateJobResponse:
    job = get_active_job(session, user_id)
    return CreateJobResponse(status=CreateJobStatus.EXISTING, job_id=job.id if job else None)


def _job_is_live(session, job_id: str | None) -> bool:
    if not job_id:
        return False
    job = get_job(session, job_id)
    return job is not None and job.status in ACTIVE_JOB_STATUSES


def create_plan_job(session, user_id: str, request: CreateJobRequest, now: datetime) -> CreateJobResponse:
    """Enqueue a base plan generation job for the user's current cycle week.

    Raises:
        PlanJobRequestError: Invalid snapshot, missing/oversized redo reason,
            or a redo with no plan to redo
    """
    profile = _validate_snapshot(request.profile_snapshot)
    reason = _redo_reason(request)
    redo_type = (request.redo_type or RedoType.BOTH) if request.is_redo else None

    active = get_active_job(session, user_id)
    if active is not None:
        logger.info("Plan job already active", user_id=user_id, job_id=active.id)
        return CreateJobResponse(status=CreateJobStatus.EXISTING, job_id=active.id)

    week_start = week_start_date(now, profile.timezone)
    today = local_date(now, profile.timezone)
    plan = get_live_plan(session, user_id, week_start)
    redo_count = 0

    if plan is not None and request.is_redo:
        if plan.is_locked or plan.status in (PlanStatus.ACTIVE, PlanStatus.ARCHIVED):
            return CreateJobResponse(
                status=CreateJobStatus.REDO_BLOCKED_ACTIVATED,
                plan_id=plan.id,
                message="Plan has already been activated and can no longer be redone",
            )
        redo_count = plan.redo_count_today if plan.last_redo_date == today else 0
        if redo_count >= settings.redo_daily_limit:
            return CreateJobResponse(
                status=CreateJobStatus.REDO_LIMIT_REACHED,
                plan_id=plan.id,
                message=f"Daily redo limit of {settings.redo_daily_limit} reached",
            )
        if plan.status in (PlanStatus.PENDING, PlanStatus.GENERATING):
            return CreateJobResponse(
                status=CreateJobStatus.REDO_BLOCKED_GENERATING,
                plan_id=plan.id,
                message="Plan is still being generated",
            )
    elif plan is not None:
        if request.force_regenerate:
            archive_plan(session, plan, now)
            plan = None
        elif plan.status in (PlanStatus.GENERATED, PlanStatus.ACTIVE):
            return CreateJobResponse(status=CreateJobStatus.PLAN_EXISTS, plan_id=plan.id)
        elif _job_is_live(session, plan.generation_job_id):
            return CreateJobResponse(status=CreateJobStatus.EXISTING, job_id=plan.generation_job_id, plan_id=plan.id)
    elif request.is_redo:
        raise PlanJobRequestError("No plan found to redo")

    target_plan_id = plan.id if plan is not None else str(uuid.uuid4())
    job = PlanJob(
        id=str(uuid.uuid4()),
        user_id=user_id,
        profile_snapshot=dict(request.profile_snapshot),
        status="pending",
        week_start_date=week_start,
        is_redo=request.is_redo,
        redo_reason=reason,
        redo_type=redo_type,
        source_plan_id=plan.id if request.is_redo else None,
        target_plan_id=target_plan_id,
        created_at=now,
    )
    if not insert_job(session, job):
        return _existing(session, user_id)

    if plan is None:
        plan = WeeklyPlanRecord(
            id=target_plan_id,
            user_id=user_id,
            week_start_date=week_start,
            status=PlanStatus.PENDING,
            days={},
            generation_job_id=job.id,
            created_at=now,
        )
        session.add(plan)
    else:
        plan.status = PlanStatus.PENDING
        plan.generation_job_id = job.id
        if request.is_redo:
            plan.redo_used = True
            plan.redo_count_today = redo_count + 1
            plan.last_redo_date = today
            plan.redo_reason = reason
    session.flush()

    status = CreateJobStatus.REDO_STARTED if request.is_redo else CreateJobStatus.CREATED
    logger.info(
        "Plan job created",
        user_id=user_id,
        job_id=job.id,
        plan_id=plan.id,
        status=status,
        week_start_date=week_start.isoformat(),
        redo_type=redo_type,
    )
    return CreateJobResponse(status=status, job_id=job.id, plan_id=plan.id)


_create_flight: SingleFlight[CreateJobResponse] = SingleFlight("create_plan_job")


async def submit_plan_job(
    user_id: str,
    request: CreateJobRequest,
    *,
    session_factory: SessionFactory = get_session,
    clock: Callable[[], datetime] = utcnow,
) -> CreateJobResponse:
    """create_plan_job() in its own transaction, shared by concurrent callers for the same user."""

    async def _create() -> CreateJobResponse:
        with session_factory() as session:
            return create_plan_job(session, user_id, request, clock())

    return await _create_flight.do(user_id, _create)


async def process_next_job(
    client: CompletionClient,
    notifier: Notifier,
    *,
    session_factory: SessionFactory = get_session,
    clock: Callable[[], datetime] = utcnow,
    generate: PlanGenerator = generate_base_plan,
) -> ProcessResult:
    """Claim and run the oldest pending job."""
    with session_factory() as session:
        job = claim_next_job(session, clock())
        if job is None:
            return ProcessResult(ProcessStatus.NO_JOBS)

        job_id, user_id = job.id, job.user_id
        snapshot = dict(job.profile_snapshot)
        plan = get_plan(session, job.target_plan_id) if job.target_plan_id else None
        redo = None
        if plan is not None and not plan.is_locked:
            plan.status = PlanStatus.GENERATING
            if job.is_redo:
                redo = RedoRequest(
                    reason=job.redo_reason or "",
                    redo_type=RedoType(job.redo_type or RedoType.BOTH),
                    source_days=dict(plan.days or {}),
                )
        logger.info("Processing plan job", job_id=job_id, user_id=user_id, attempts=job.attempts, redo=job.is_redo)

    error: str | None = None
    days: dict[str, Any] | None = None
    try:
        profile = UserProfile.model_validate(snapshot)
        result = await generate(profile, client, redo=redo)
        days = result.days
    except PlanGenerationError as e:
        error = str(e)
    except ValidationError as e:
        error = f"Invalid profile snapshot: {e.error_count()} validation error(s)"
    except Exception as e:
        logger.exception("Unexpected error while processing plan job", job_id=job_id, error=str(e))
        error = "Unexpected error during plan generation"

    with session_factory() as session:
        job = get_job(session, job_id)
        plan = get_plan(session, job.target_plan_id) if job.target_plan_id else None
        now = clock()
        if days is not None and plan is not None and plan.is_locked:
            # locked while the job ran; the activated plan is kept as is
            plan.status = PlanStatus.ACTIVE
            days, error = None, "Plan was activated during generation; result discarded"
            fail_job(session, job, error, now)
        elif days is not None:
            if plan is not None:
                plan.days = days
                plan.status = PlanStatus.GENERATED
                purge_archived_plans(session, user_id, settings.archived_plan_retention_cycles)
            complete_job(session, job, now)
        else:
            if plan is not None and not plan.is_locked:
                # a failed redo leaves the previous plan in place
                plan.status = PlanStatus.GENERATED if plan.days else PlanStatus.PENDING
            fail_job(session, job, error or "Plan generation failed", now)

    if days is not None:
        logger.info("Plan job completed", job_id=job_id, user_id=user_id)
        await notifier.notify(PlanEvent(PlanEventType.PLAN_READY, user_id, job_id))
        return ProcessResult(ProcessStatus.COMPLETED, job_id)

    logger.error("Plan job failed", job_id=job_id, user_id=user_id, error=error)
    await notifier.notify(PlanEvent(PlanEventType.PLAN_ERROR, user_id, job_id, message=error))
    return ProcessResult(ProcessStatus.FAILED, job_id, error)
