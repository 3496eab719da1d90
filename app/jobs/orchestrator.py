"""In-process base plan job orchestration.

Tracks one generation per user through idle -> pending -> ready | error,
persisting the state so clients can poll it. Generation runs as a background
asyncio task registered in a per-user single-flight registry; the persisted
state row is the source of truth for what clients see.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Awaitable, Callable
from contextlib import AbstractContextManager
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any

from loguru import logger
from sqlalchemy.orm import Session

from app.config.settings import settings
from app.db.repository import (
    activate_current_plan,
    load_job_state,
    purge_archived_plans,
    save_job_state,
    store_generated_plan,
)
from app.db.session import get_session
from app.jobs.errors import INTERRUPTED_JOB_MESSAGE, STALE_JOB_MESSAGE, StaleJobError
from app.jobs.inflight import SingleFlight
from app.jobs.state import BasePlanJobState, JobStatus
from app.jobs.week import week_start_date
from app.notifications.service import Notifier, PlanEvent, PlanEventType
from app.planning.errors import PlanGenerationError
from app.planning.pipeline import GeneratedPlan, generate_base_plan
from app.planning.schema.profile import UserProfile
from app.services.llm.completion import CompletionClient

UNEXPECTED_ERROR_MESSAGE = "Unexpected error during plan generation. Please try again."

SessionFactory = Callable[[], AbstractContextManager[Session]]
PlanGenerator = Callable[..., Awaitable[GeneratedPlan]]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BasePlanJobOrchestrator:
    def __init__(
        self,
        client: CompletionClient,
        notifier: Notifier,
        *,
        session_factory: SessionFactory = get_session,
        clock: Callable[[], datetime] = utcnow,
        generate: PlanGenerator = generate_base_plan,
    ):
        self.client = client
        self.notifier = notifier
        self._session_factory = session_factory
        self._clock = clock
        self._generate = generate
        self._inflight: SingleFlight[BasePlanJobState] = SingleFlight("base_plan_generation")
        # tags persisted pending jobs so other processes leave them alone
        self.instance_id = uuid.uuid4().hex

    def is_generating(self, user_id: str) -> bool:
        return self._inflight.in_flight(user_id)

    def get_state(self, user_id: str) -> BasePlanJobState:
        """Read the persisted state, demoting a stale pending job to idle."""
        with self._session_factory() as session:
            state = load_job_state(session, user_id)
            if state.status != JobStatus.PENDING or state.started_at is None or self.is_generating(user_id):
                return state

            age = self._clock() - state.started_at
            if age <= timedelta(minutes=settings.job_stale_minutes):
                return state

            stale = StaleJobError(user_id, state.job_id, age.total_seconds())
            logger.warning("Self-healing stale plan job", user_id=user_id, job_id=state.job_id, error=str(stale))
            healed = state.idle(error=STALE_JOB_MESSAGE)
            save_job_state(session, user_id, healed)
            return healed

    def _owned_elsewhere(self, state: BasePlanJobState) -> bool:
        return state.owner is not None and state.owner != self.instance_id

    def validate_pending_state(self, user_id: str) -> BasePlanJobState:
        """Fail a pending job that has no running generation after the grace period.

        A job started by another orchestrator instance may still be running
        there, so it is only failed once it is stale.
        """
        with self._session_factory() as session:
            state = load_job_state(session, user_id)
            if state.status != JobStatus.PENDING or state.started_at is None or self.is_generating(user_id):
                return state

            now = self._clock()
            if self._owned_elsewhere(state):
                window = timedelta(minutes=settings.job_stale_minutes)
            else:
                window = timedelta(seconds=settings.job_grace_seconds)
            if now - state.started_at <= window:
                return state

            logger.warning(
                "Pending plan job has no running generation", user_id=user_id, job_id=state.job_id, owner=state.owner
            )
            failed = state.failed(INTERRUPTED_JOB_MESSAGE, now)
            save_job_state(session, user_id, failed)
            return failed

    def start(self, user_id: str, profile: UserProfile) -> str:
        """Start a generation, or return the job id of the one already running.

        Must be called from a running event loop; the generation continues in
        the background after this returns.
        """
        if self.is_generating(user_id):
            with self._session_factory() as session:
                job_id = load_job_state(session, user_id).job_id
            logger.info("Plan generation already in flight", user_id=user_id, job_id=job_id)
            return job_id

        now = self._clock()
        with self._session_factory() as session:
            state = load_job_state(session, user_id)
            if (
                state.status == JobStatus.PENDING
                and state.started_at is not None
                and self._owned_elsewhere(state)
                and now - state.started_at <= timedelta(minutes=settings.job_stale_minutes)
            ):
                logger.info(
                    "Plan generation already running in another process",
                    user_id=user_id,
                    job_id=state.job_id,
                    owner=state.owner,
                )
                return state.job_id

            job_id = str(uuid.uuid4())
            save_job_state(session, user_id, state.pending(job_id, now, owner=self.instance_id))

        self._inflight.launch(user_id, lambda: self._run(user_id, job_id, profile))
        logger.info("Plan generation started", user_id=user_id, job_id=job_id)
        return job_id

    async def wait(self, user_id: str) -> BasePlanJobState:
        """Wait for the in-flight generation (if any) and return the resulting state."""
        task = self._inflight.get(user_id)
        if task is None:
            return self.get_state(user_id)
        return await asyncio.shield(task)

    def cancel(self, user_id: str) -> BasePlanJobState:
        """Back to idle. A running model call finishes in the background and is discarded."""
        state = self._to_idle(user_id)
        logger.info("Plan generation cancelled", user_id=user_id)
        return state

    def reset(self, user_id: str) -> BasePlanJobState:
        state = self._to_idle(user_id)
        logger.info("Plan job state reset", user_id=user_id)
        return state

    def retry(self, user_id: str, profile: UserProfile) -> str:
        self.reset(user_id)
        return self.start(user_id, profile)

    def verify(self, user_id: str) -> BasePlanJobState:
        """Record the user's explicit confirmation and activate the current plan."""
        with self._session_factory() as session:
            state = replace(load_job_state(session, user_id), verified=True)
            save_job_state(session, user_id, state)
            plan = activate_current_plan(session, user_id)
        logger.info("Base plan verified", user_id=user_id, plan_id=plan.id if plan else None)
        return state

    def _to_idle(self, user_id: str) -> BasePlanJobState:
        self._inflight.forget(user_id)
        with self._session_factory() as session:
            state = load_job_state(session, user_id).idle()
            save_job_state(session, user_id, state)
        return state

    async def _run(self, user_id: str, job_id: str, profile: UserProfile) -> BasePlanJobState:
        try:
            result = await self._generate(profile, self.client)
        except PlanGenerationError as e:
            return await self._finish(user_id, job_id, profile, error=str(e))
        except Exception as e:
            logger.exception("Unexpected plan generation failure", user_id=user_id, job_id=job_id, error=str(e))
            return await self._finish(user_id, job_id, profile, error=UNEXPECTED_ERROR_MESSAGE)
        return await self._finish(user_id, job_id, profile, days=result.days)

    async def _finish(
        self,
        user_id: str,
        job_id: str,
        profile: UserProfile,
        *,
        days: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> BasePlanJobState:
        with self._session_factory() as session:
            state = load_job_state(session, user_id)
            if state.status != JobStatus.PENDING or state.job_id != job_id:
                logger.info(
                    "Discarding outcome of cancelled or superseded plan job",
                    user_id=user_id,
                    job_id=job_id,
                    current_job_id=state.job_id,
                    current_status=state.status,
                )
                return state

            now = self._clock()
            if days is not None:
                plan = store_generated_plan(session, user_id, week_start_date(now, profile.timezone), days, now)
                if settings.archived_plan_retention_cycles > 0:
                    purge_archived_plans(session, user_id, settings.archived_plan_retention_cycles)
                state = state.ready(now)
                event = PlanEvent(PlanEventType.PLAN_READY, user_id, job_id)
                logger.info("Base plan ready", user_id=user_id, job_id=job_id, plan_id=plan.id)
            else:
                state = state.failed(error or UNEXPECTED_ERROR_MESSAGE, now)
                event = PlanEvent(PlanEventType.PLAN_ERROR, user_id, job_id, message=state.error)
                logger.error("Base plan generation failed", user_id=user_id, job_id=job_id, error=state.error)
            save_job_state(session, user_id, state)

        await self.notifier.notify(event)
        return state
