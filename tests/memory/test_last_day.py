from datetime import date, timedelta

import pytest

from app.memory.last_day import (
    NO_HISTORY_DAYS,
    DailyPlanSummary,
    NutritionStatus,
    SupplementsStatus,
    WorkoutStatus,
    build_last_day_context,
    parse_health_note,
    parse_lifestyle_note,
    workout_status,
)
from app.planning.schema.checkin import CheckinData

TODAY = date(2026, 3, 12)
YESTERDAY = TODAY - timedelta(days=1)


def test_no_history_reports_sentinel_gap():
    context = build_last_day_context([], [], TODAY)

    assert context.days_since_last_checkin == NO_HISTORY_DAYS
    assert context.last_checkin_date is None
    assert context.had_checkin_yesterday is False
    assert context.yesterday_workout_status == WorkoutStatus.UNKNOWN


def test_ten_day_gap():
    checkins = [CheckinData(date=TODAY - timedelta(days=10), energy=6)]

    context = build_last_day_context(checkins, [], TODAY)

    assert context.days_since_last_checkin == 10
    assert context.had_checkin_yesterday is False
    assert context.yesterday_workout_status == WorkoutStatus.UNKNOWN
    assert context.yesterday_nutrition_status == NutritionStatus.UNKNOWN
    assert context.yesterday_supplements_status == SupplementsStatus.UNKNOWN


def test_todays_checkin_is_ignored():
    checkins = [CheckinData(date=TODAY, energy=6), CheckinData(date=TODAY - timedelta(days=3), energy=6)]

    context = build_last_day_context(checkins, [], TODAY)

    assert context.days_since_last_checkin == 3


def test_yesterday_context():
    checkins = [
        CheckinData(date=YESTERDAY, special_request="Woke up with a sore throat, traveling for work tomorrow"),
        CheckinData(date=YESTERDAY - timedelta(days=1)),
    ]
    plans = [
        DailyPlanSummary(
            date=YESTERDAY,
            adherence=85,
            nutrition_status=NutritionStatus.UNDER,
            daily_highlights="Push session. Good energy, low stress.",
            completed_supplements=["Creatine"],
        )
    ]

    context = build_last_day_context(checkins, plans, TODAY)

    assert context.had_checkin_yesterday is True
    assert context.yesterday_workout_status == WorkoutStatus.COMPLETED
    assert context.yesterday_nutrition_status == NutritionStatus.UNDER
    assert context.yesterday_supplements_status == SupplementsStatus.TAKEN
    assert context.yesterday_completed_supplements == ["Creatine"]
    assert context.health_note == "sore throat"
    assert context.lifestyle_note == "travel day"
    assert context.yesterday_highlights == "Push session. Good energy, low stress."


@pytest.mark.parametrize(
    ("adherence", "expected"),
    [(100, WorkoutStatus.COMPLETED), (80, WorkoutStatus.COMPLETED), (50, WorkoutStatus.PARTIAL),
     (10, WorkoutStatus.UNKNOWN), (0, WorkoutStatus.SKIPPED), (None, WorkoutStatus.UNKNOWN)],
)
def test_workout_status_from_adherence(adherence, expected):
    assert workout_status(DailyPlanSummary(date=YESTERDAY, adherence=adherence)) == expected


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("I feel ill today", "ill"),
        ("I will be fine", None),
        ("Bad HEADACHE since lunch", "headache"),
        ("feeling a bit tired", "tired"),
        ("", None),
        (None, None),
    ],
)
def test_parse_health_note(text, expected):
    assert parse_health_note(text) == expected


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("Big deadline tomorrow", "very busy day"),
        ("Long day at work", "work"),
        ("Flight to Berlin", "travel day"),
        ("networking dinner", None),
        ("Sister's wedding this weekend", "special event"),
        ("Taking a deload", "rest day"),
    ],
)
def test_parse_lifestyle_note(text, expected):
    assert parse_lifestyle_note(text) == expected
