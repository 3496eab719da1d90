"""Tests for the deterministic check-in rules applied before titration."""

import copy
from datetime import date

from app.daily.baseline import GENTLE_MOBILITY, SLEEP_HYGIENE, STRESS_RELIEF_BLOCK, apply_baseline
from app.planning.schema.checkin import CheckinData

PLAN_DATE = date(2026, 3, 2)


def _checkin(**kwargs) -> CheckinData:
    return CheckinData(date=PLAN_DATE, **kwargs)


def test_low_energy_trims_main_block_and_raises_rir(profile, make_day):
    day = make_day()
    original = copy.deepcopy(day)

    plan = apply_baseline(day, _checkin(energy=3, stress=3), profile, PLAN_DATE)

    warm_up, main = plan.workout["blocks"]
    assert [item["exercise"] for item in main["items"]] == ["Dumbbell press", "Dumbbell row"]
    assert all(item["RIR"] >= 3 for item in main["items"])
    assert warm_up == original["workout"]["blocks"][0]
    assert plan.recovery["mobility"] == GENTLE_MOBILITY
    assert "energy is 3/10" in plan.adjustments[0]
    assert day == original


def test_moderate_energy_raises_rir_only(profile, make_day):
    plan = apply_baseline(make_day(), _checkin(energy=4, stress=3), profile, PLAN_DATE)

    main = plan.workout["blocks"][1]
    assert len(main["items"]) == 3
    assert all(item["RIR"] == 2 for item in main["items"])
    assert plan.recovery["mobility"] == GENTLE_MOBILITY


def test_single_block_is_the_main_block(profile, make_day):
    day = make_day()
    day["workout"]["blocks"] = day["workout"]["blocks"][1:]

    plan = apply_baseline(day, _checkin(energy=2), profile, PLAN_DATE)

    assert len(plan.workout["blocks"][0]["items"]) == 2


def test_high_stress_switches_to_stress_relief(profile, make_day):
    plan = apply_baseline(make_day(), _checkin(energy=8, stress=8), profile, PLAN_DATE)

    assert plan.workout["focus"] == ["Recovery", "Stress Relief"]
    assert plan.workout["blocks"] == [STRESS_RELIEF_BLOCK]
    assert plan.recovery["sleep"] == SLEEP_HYGIENE


def test_soreness_adds_caution_note(profile, make_day):
    plan = apply_baseline(make_day(), _checkin(energy=8, stress=2, soreness=["legs", "back"]), profile, PLAN_DATE)

    assert plan.workout["notes"].startswith("Soreness in legs, back")
    assert plan.adjustments == ["Modified for legs, back soreness"]


def test_good_day_changes_nothing(profile, make_day):
    day = make_day()

    plan = apply_baseline(day, _checkin(energy=8, stress=2, motivation=9), profile, PLAN_DATE)

    assert plan.workout == day["workout"]
    assert plan.recovery == day["recovery"]
    assert plan.nutrition == day["nutrition"]
    assert plan.adjustments == []
    assert plan.motivation.startswith("High motivation today")
    assert plan.date == PLAN_DATE


def test_missing_values_are_treated_as_mid_scale(profile, make_day):
    plan = apply_baseline(make_day(), _checkin(), profile, PLAN_DATE)

    assert plan.adjustments == ["Reduced intensity because energy is 5/10"]
    assert "muscle gain" in plan.motivation
