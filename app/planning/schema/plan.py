from datetime import date, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

WEEKDAYS: tuple[str, ...] = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


class PlanStatus(StrEnum):
    PENDING = "pending"
    GENERATING = "generating"
    GENERATED = "generated"
    ACTIVE = "active"
    ARCHIVED = "archived"


class RedoType(StrEnum):
    WORKOUT = "workout"
    NUTRITION = "nutrition"
    BOTH = "both"


class WeeklyBasePlan(BaseModel):
    """Seven-day workout, nutrition and recovery template for one cycle."""

    id: str
    user_id: str
    created_at: datetime
    week_start_date: date
    status: PlanStatus
    is_locked: bool = False
    days: dict[str, dict[str, Any]] = Field(default_factory=dict)
    deactivated_at: datetime | None = None
