from datetime import date as date_type
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class DailyPlan(BaseModel):
    """One titrated day: the base plan's day adjusted to today's check-in."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    date: date_type
    workout: dict[str, Any]
    nutrition: dict[str, Any]
    recovery: dict[str, Any]
    motivation: str = ""
    adjustments: list[str] = Field(default_factory=list)
    nutrition_adjustments: list[str] = Field(default_factory=list)
    flags: list[str] = Field(default_factory=list)
    daily_highlights: str = ""
