"""Daily plan titration endpoints."""

from datetime import date, datetime, timedelta, timezone
from datetime import date as date_type
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy.orm import Session

from app.api.dependencies.auth import get_current_user_id
from app.api.dependencies.services import get_completion_client
from app.daily.titration import RequiresRetry, generate_daily_plan
from app.db.repository import (
    get_checkin,
    get_current_plan,
    recent_checkins,
    recent_daily_plans,
    record_adherence,
    save_daily_plan,
)
from app.db.session import get_db
from app.jobs.week import local_date
from app.memory.last_day import build_last_day_context
from app.memory.trends import build_trend_memory
from app.planning.schema.plan import WEEKDAYS
from app.planning.schema.profile import UserProfile
from app.services.llm.completion import CompletionClient

router = APIRouter(prefix="/daily-plan", tags=["daily-plan"])


class DailyPlanRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    profile: UserProfile
    date: date_type | None = None


class AdherenceRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    adherence: int = Field(..., ge=0, le=100)
    completed_supplements: list[str] = Field(default_factory=list)


@router.post("")
async def create_daily_plan(
    request: DailyPlanRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    client: CompletionClient = Depends(get_completion_client),
) -> dict[str, Any]:
    """Titrate today's base plan day to today's check-in.

    Raises:
        HTTPException: 404 without a check-in or base plan for the day;
            503 when the model step fails and the user should retry
    """
    profile = request.profile
    plan_date = request.date or local_date(datetime.now(timezone.utc), profile.timezone)

    checkin = get_checkin(db, user_id, plan_date)
    if checkin is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No check-in recorded for this day")

    plan = get_current_plan(db, user_id)
    day_key = WEEKDAYS[plan_date.weekday()]
    base_day = (plan.days or {}).get(day_key) if plan else None
    if not base_day:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No base plan available for this day")

    checkins = recent_checkins(db, user_id, until=plan_date)
    memory = build_trend_memory(profile.goal, checkins)
    last_day = build_last_day_context(
        checkins,
        recent_daily_plans(db, user_id, until=plan_date - timedelta(days=1)),
        plan_date,
    )

    result = await generate_daily_plan(
        profile, day_key, base_day, checkin, client, plan_date=plan_date, memory=memory, last_day=last_day
    )
    if isinstance(result, RequiresRetry):
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=result.reason)

    save_daily_plan(db, user_id, result.plan)
    db.commit()
    logger.info("Daily plan stored", user_id=user_id, plan_date=plan_date.isoformat(), flags=result.plan.flags)
    return result.plan.model_dump(mode="json", by_alias=True)


@router.post("/{plan_date}/adherence")
async def record_daily_adherence(
    plan_date: date,
    request: AdherenceRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    record = record_adherence(db, user_id, plan_date, request.adherence, request.completed_supplements)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No daily plan for this date")
    db.commit()
    return {"date": plan_date.isoformat(), "adherence": record.adherence}
