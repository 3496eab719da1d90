"""Base plan generation state and lifecycle endpoints (in-process orchestrator)."""

from typing import Any

from fastapi import APIRouter, Depends, Query
from loguru import logger
from pydantic import BaseModel

from app.api.dependencies.auth import get_current_user_id
from app.api.dependencies.services import get_orchestrator
from app.db.repository import list_plans, to_weekly_plan
from app.db.session import get_session
from app.jobs.orchestrator import BasePlanJobOrchestrator
from app.planning.schema.plan import WeeklyBasePlan
from app.planning.schema.profile import UserProfile

router = APIRouter(prefix="/base-plan", tags=["base-plan"])


class StartResponse(BaseModel):
    job_id: str | None


@router.get("/state")
async def get_state(
    validate: bool = Query(False, description="Fail a pending job with no running generation"),
    user_id: str = Depends(get_current_user_id),
    orchestrator: BasePlanJobOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    state = orchestrator.validate_pending_state(user_id) if validate else orchestrator.get_state(user_id)
    return state.to_dict()


@router.post("/start", response_model=StartResponse)
async def start_generation(
    profile: UserProfile,
    user_id: str = Depends(get_current_user_id),
    orchestrator: BasePlanJobOrchestrator = Depends(get_orchestrator),
) -> StartResponse:
    logger.info("Base plan generation requested", user_id=user_id)
    return StartResponse(job_id=orchestrator.start(user_id, profile))


@router.post("/retry", response_model=StartResponse)
async def retry_generation(
    profile: UserProfile,
    user_id: str = Depends(get_current_user_id),
    orchestrator: BasePlanJobOrchestrator = Depends(get_orchestrator),
) -> StartResponse:
    return StartResponse(job_id=orchestrator.retry(user_id, profile))


@router.post("/cancel")
async def cancel_generation(
    user_id: str = Depends(get_current_user_id),
    orchestrator: BasePlanJobOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    return orchestrator.cancel(user_id).to_dict()


@router.post("/reset")
async def reset_state(
    user_id: str = Depends(get_current_user_id),
    orchestrator: BasePlanJobOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    return orchestrator.reset(user_id).to_dict()


@router.post("/verify")
async def verify_plan(
    user_id: str = Depends(get_current_user_id),
    orchestrator: BasePlanJobOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    return orchestrator.verify(user_id).to_dict()


@router.get("/plans", response_model=list[WeeklyBasePlan])
async def get_plans(
    include_archived: bool = Query(False),
    user_id: str = Depends(get_current_user_id),
) -> list[WeeklyBasePlan]:
    with get_session() as session:
        return [to_weekly_plan(plan) for plan in list_plans(session, user_id, include_archived=include_archived)]
