"""Yesterday snapshot used as context for the daily titration."""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, timedelta
from datetime import date as date_type
from enum import StrEnum

from pydantic import BaseModel, Field

from app.planning.schema.checkin import CheckinData

NO_HISTORY_DAYS = 999
COMPLETED_ADHERENCE = 80
PARTIAL_ADHERENCE = 30

HEALTH_KEYWORDS: tuple[str, ...] = (
    "sore throat",
    "cold",
    "fever",
    "sick",
    "headache",
    "nausea",
    "flu",
    "cough",
    "congestion",
    "fatigue",
    "tired",
    "exhausted",
    "migraine",
    "stomach",
    "digestive",
    "cramps",
    "pain",
    "injury",
    "injured",
    "pulled muscle",
    "strain",
    "sprain",
    "ache",
    "unwell",
    "ill",
)

# Checked in order; the first match wins
LIFESTYLE_KEYWORDS: tuple[tuple[str, str], ...] = (
    ("travel", "travel day"),
    ("traveling", "travel day"),
    ("travelling", "travel day"),
    ("trip", "travel day"),
    ("flight", "travel day"),
    ("busy", "very busy day"),
    ("hectic", "very busy day"),
    ("stressful", "very busy day"),
    ("work", "work"),
    ("deadline", "very busy day"),
    ("rest day", "rest day"),
    ("recovery day", "rest day"),
    ("deload", "rest day"),
    ("light day", "rest day"),
    ("celebration", "special event"),
    ("party", "special event"),
    ("event", "special event"),
    ("wedding", "special event"),
    ("birthday", "special event"),
    ("vacation", "vacation"),
    ("holiday", "vacation"),
    ("weekend", "weekend"),
)


class WorkoutStatus(StrEnum):
    COMPLETED = "completed"
    PARTIAL = "partial"
    SKIPPED = "skipped"
    UNKNOWN = "unknown"


class NutritionStatus(StrEnum):
    ON_TARGET = "on_target"
    UNDER = "under"
    OVER = "over"
    UNKNOWN = "unknown"


class SupplementsStatus(StrEnum):
    TAKEN = "taken"
    SKIPPED = "skipped"
    UNKNOWN = "unknown"


class DailyPlanSummary(BaseModel):
    """What the last-day context needs from a stored daily plan."""

    date: date_type
    adherence: int | None = Field(None, ge=0, le=100)
    nutrition_status: NutritionStatus | None = None
    daily_highlights: str | None = None
    completed_supplements: list[str] = Field(default_factory=list)


@dataclass(frozen=True)
class LastDayContext:
    last_checkin_date: date | None
    days_since_last_checkin: int
    had_checkin_yesterday: bool
    yesterday_workout_status: WorkoutStatus
    yesterday_nutrition_status: NutritionStatus
    yesterday_supplements_status: SupplementsStatus
    yesterday_completed_supplements: list[str] = field(default_factory=list)
    health_note: str | None = None
    lifestyle_note: str | None = None
    yesterday_special_request: str | None = None
    yesterday_highlights: str | None = None


def _keyword_pattern(keyword: str, *, whole_word: bool = False) -> re.Pattern[str]:
    # Anchored at a word start so "ill" does not match inside "will"
    suffix = r"\b" if whole_word else ""
    return re.compile(rf"\b{re.escape(keyword)}{suffix}", re.IGNORECASE)


_HEALTH_PATTERNS = [(keyword, _keyword_pattern(keyword)) for keyword in HEALTH_KEYWORDS]
_LIFESTYLE_PATTERNS = [(label, _keyword_pattern(keyword, whole_word=True)) for keyword, label in LIFESTYLE_KEYWORDS]


def parse_health_note(text: str | None) -> str | None:
    """Return the first health keyword mentioned in a free-text note."""
    if not text:
        return None
    for keyword, pattern in _HEALTH_PATTERNS:
        if pattern.search(text):
            return keyword
    return None


def parse_lifestyle_note(text: str | None) -> str | None:
    """Map a free-text note to a lifestyle descriptor such as "travel day"."""
    if not text:
        return None
    for label, pattern in _LIFESTYLE_PATTERNS:
        if pattern.search(text):
            return label
    return None


def workout_status(plan: DailyPlanSummary | None) -> WorkoutStatus:
    if plan is None or plan.adherence is None:
        return WorkoutStatus.UNKNOWN
    if plan.adherence >= COMPLETED_ADHERENCE:
        return WorkoutStatus.COMPLETED
    if plan.adherence >= PARTIAL_ADHERENCE:
        return WorkoutStatus.PARTIAL
    if plan.adherence == 0:
        return WorkoutStatus.SKIPPED
    return WorkoutStatus.UNKNOWN


def build_last_day_context(
    checkins: Sequence[CheckinData],
    recent_daily_plans: Sequence[DailyPlanSummary],
    today: date,
) -> LastDayContext:
    """Summarize what happened before today.

    Args:
        checkins: Recent check-ins in any order (today's may be included and is ignored)
        recent_daily_plans: Recent stored daily plans
        today: Local date of the plan being built

    Returns:
        LastDayContext; days_since_last_checkin is 999 when there is no earlier check-in
    """
    past = sorted((c for c in checkins if c.date < today), key=lambda c: c.date, reverse=True)
    last_checkin = past[0] if past else None

    days_since = (today - last_checkin.date).days if last_checkin else NO_HISTORY_DAYS
    yesterday = today - timedelta(days=1)

    yesterday_plan = next((plan for plan in recent_daily_plans if plan.date == yesterday), None)
    yesterday_checkin = next((c for c in past if c.date == yesterday), None)
    special_request = yesterday_checkin.special_request if yesterday_checkin else None

    completed_supplements = list(yesterday_plan.completed_supplements) if yesterday_plan else []

    return LastDayContext(
        last_checkin_date=last_checkin.date if last_checkin else None,
        days_since_last_checkin=days_since,
        had_checkin_yesterday=days_since == 1,
        yesterday_workout_status=workout_status(yesterday_plan),
        yesterday_nutrition_status=(
            yesterday_plan.nutrition_status if yesterday_plan and yesterday_plan.nutrition_status else NutritionStatus.UNKNOWN
        ),
        yesterday_supplements_status=SupplementsStatus.TAKEN if completed_supplements else SupplementsStatus.UNKNOWN,
        yesterday_completed_supplements=completed_supplements,
        health_note=parse_health_note(special_request),
        lifestyle_note=parse_lifestyle_note(special_request),
        yesterday_special_request=special_request or None,
        yesterday_highlights=yesterday_plan.daily_highlights if yesterday_plan else None,
    )
