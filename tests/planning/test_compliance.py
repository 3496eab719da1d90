"""Tests for plan compliance validation and the verify-and-fix stage."""

import copy
import json

import pytest

from app.planning.compliance import (
    IssueKind,
    find_avoided_exercises,
    find_forbidden_foods,
    fix_plan,
    forbidden_token,
    removable_token,
    scrub_violations,
    unwrap_plan_days,
    validate_plan,
)
from app.planning.errors import PipelineStage, StructuralError, VerificationError
from app.planning.schema.plan import WEEKDAYS
from app.planning.schema.profile import DietaryRestriction, UserProfile
from app.planning.targets import nutrition_targets
from app.services.llm.completion import CompletionError


@pytest.fixture
def vegetarian_profile(profile) -> UserProfile:
    return profile.model_copy(
        update={"dietary_prefs": [DietaryRestriction.VEGETARIAN], "avoid_exercises": ["Burpees"]}
    )


def test_clean_plan_has_no_issues(profile, make_plan):
    report = validate_plan(make_plan(), profile, nutrition_targets(profile))

    assert report.is_clean
    assert report.can_proceed


def test_reports_forbidden_foods_and_avoided_exercises(vegetarian_profile, make_plan):
    days = make_plan(foods=["Chicken breast", "Scrambled Eggs", "Rice"], exercises=["Burpees", "Push-ups"])

    report = validate_plan(days, vegetarian_profile, nutrition_targets(vegetarian_profile))

    assert len(report.of_kind(IssueKind.FORBIDDEN_FOOD)) == 2 * len(WEEKDAYS)
    assert len(report.of_kind(IssueKind.AVOIDED_EXERCISE)) == len(WEEKDAYS)
    assert report.can_proceed


def test_reports_macro_and_meal_count_mismatches(profile, make_plan):
    days = make_plan()
    days["monday"]["nutrition"]["total_kcal"] = 1800
    days["tuesday"]["nutrition"]["meals"].pop()

    report = validate_plan(days, profile, nutrition_targets(profile))

    assert [issue.day for issue in report.of_kind(IssueKind.MACRO_MISMATCH)] == ["monday"]
    assert [issue.day for issue in report.of_kind(IssueKind.MEAL_COUNT)] == ["tuesday"]


def test_missing_day_blocks_fixing(profile, make_plan):
    days = make_plan()
    del days["sunday"]

    report = validate_plan(days, profile, nutrition_targets(profile))

    assert report.missing_days == ["sunday"]
    assert not report.can_proceed
    with pytest.raises(StructuralError):
        report.ensure_fixable()


def test_only_structural_issues_count_toward_threshold(profile, make_plan):
    days = make_plan(calories=1800, protein_g=90)
    report = validate_plan(days, profile, nutrition_targets(profile))

    assert len(report.of_kind(IssueKind.MACRO_MISMATCH)) == 14
    assert report.can_proceed

    for day in WEEKDAYS[:5]:
        del days[day]["recovery"]
        del days[day]["reason"]
    report = validate_plan(days, profile, nutrition_targets(profile))

    assert len(report.structural_issues) == 10
    assert not report.can_proceed


def test_forbidden_token_is_case_insensitive_substring():
    assert forbidden_token("Grilled CHICKEN thighs", DietaryRestriction.VEGETARIAN) == "chicken"
    assert forbidden_token("Boiled eggs", DietaryRestriction.VEGETARIAN) == "egg"
    assert forbidden_token("Boiled eggs", DietaryRestriction.EGGITARIAN) is None
    assert forbidden_token("Salmon", DietaryRestriction.NON_VEGETARIAN) is None


@pytest.mark.parametrize(
    ("food", "expected"),
    [
        ("Boiled eggs", "egg"),
        ("Ham sandwich", "ham"),
        ("Hamburger", "ham"),
        ("Fish-cake", "fish"),
        ("Eggplant parmesan", None),
        ("Graham crackers", None),
        ("Shampoo-free oats", None),
    ],
)
def test_removable_token_matches_word_starts(food, expected):
    assert removable_token(food, DietaryRestriction.VEGETARIAN) == expected


def test_scrub_keeps_plant_foods_that_contain_blocklist_tokens(vegetarian_profile, make_plan):
    days = make_plan(foods=["Eggplant curry", "Graham crackers", "Ham sandwich"])

    scrubbed, notes = scrub_violations(days, vegetarian_profile)

    foods = [meal["items"][0]["food"] for meal in scrubbed["monday"]["nutrition"]["meals"]]
    assert foods == ["Eggplant curry", "Graham crackers", "Lentils"]
    assert len(notes) == 7


@pytest.mark.parametrize(
    "response",
    [
        {"plan": {"days": {"monday": {}}}},
        {"plan": {"monday": {}}},
        {"days": {"monday": {}}},
        {"monday": {}},
    ],
)
def test_unwrap_plan_days_accepts_envelope_shapes(response):
    assert unwrap_plan_days(response) == {"monday": {}}


def test_unwrap_plan_days_rejects_non_objects():
    assert unwrap_plan_days(["monday"]) == {}


@pytest.mark.asyncio
async def test_fix_plan_scrubs_violations_the_verifier_left(vegetarian_profile, make_plan, fake_client):
    """Vegetarian user with Burpees avoided: the verifier misses both and drops Sunday."""
    targets = nutrition_targets(vegetarian_profile)
    raw = make_plan(foods=["Chicken breast", "Rice and dal", "Lentil curry"], exercises=["Burpees", "Push-ups"])
    verifier_days = {day: copy.deepcopy(raw[day]) for day in WEEKDAYS if day != "sunday"}
    for day in verifier_days.values():
        day["nutrition"]["total_kcal"] = 1800
    fake_client.queue(
        json.dumps(
            {
                "verified": True,
                "issues": ["chicken on a vegetarian plan"],
                "fixes": ["swapped proteins"],
                "plan": {"days": verifier_days},
            }
        )
    )

    result = await fix_plan(raw, vegetarian_profile, targets, fake_client, attempt=1)

    assert list(result.days) == list(WEEKDAYS)
    for day in result.days.values():
        assert find_forbidden_foods(day, DietaryRestriction.VEGETARIAN) == []
        assert find_avoided_exercises(day, ["Burpees"]) == []
        assert day["nutrition"]["total_kcal"] == targets.calories
        assert day["nutrition"]["protein_g"] == targets.protein_g
        assert len(day["nutrition"]["meals"]) == targets.meals_per_day
        assert day["recovery"]["supplementCard"]["current"] == ["Creatine"]
    # The only item of the first meal was removed, so a safe item replaces it
    assert result.days["sunday"]["nutrition"]["meals"][0]["items"] == [{"food": "Lentils", "qty": "1 cup cooked"}]
    assert result.model_verified is True
    assert "swapped proteins" in result.fixes
    assert any("removed avoided exercise Burpees" in fix for fix in result.fixes)
    assert "chicken on a vegetarian plan" in result.issues


@pytest.mark.asyncio
async def test_fix_plan_does_not_mutate_input(profile, make_plan, plan_json, fake_client):
    raw = make_plan(calories=1800)
    fake_client.queue(plan_json(raw, verified=False))

    result = await fix_plan(raw, profile, nutrition_targets(profile), fake_client)

    assert raw["monday"]["nutrition"]["total_kcal"] == 1800
    assert result.days["monday"]["nutrition"]["total_kcal"] == 2500
    assert result.model_verified is False


@pytest.mark.asyncio
async def test_fix_plan_fills_missing_sub_structures(profile, make_plan, plan_json, fake_client):
    raw = make_plan()
    fixed = make_plan()
    fixed["monday"]["recovery"] = {}
    fixed["monday"]["reason"] = "ok"
    fixed["tuesday"]["workout"] = None
    fake_client.queue(plan_json(fixed, verified=True))

    result = await fix_plan(raw, profile, nutrition_targets(profile), fake_client)

    assert result.days["monday"]["recovery"]["mobility"] == ["Light stretching"]
    assert result.days["monday"]["recovery"]["sleep"] == ["Aim for 7-8 hours of sleep"]
    assert result.days["monday"]["reason"].startswith("Today's plan is designed for your muscle gain goal")
    assert result.days["tuesday"]["workout"]["focus"] == ["Rest"]


@pytest.mark.asyncio
async def test_fix_plan_wraps_model_failure(profile, make_plan, fake_client):
    fake_client.queue(CompletionError("timeout"))

    with pytest.raises(VerificationError) as exc_info:
        await fix_plan(make_plan(calories=1800), profile, nutrition_targets(profile), fake_client, attempt=2)

    assert exc_info.value.stage == PipelineStage.VERIFICATION
    assert exc_info.value.attempt == 2
    assert exc_info.value.issues


@pytest.mark.asyncio
async def test_fix_plan_rejects_unfixable_plan_without_model_call(profile, make_plan, fake_client):
    days = make_plan()
    del days["friday"]

    with pytest.raises(StructuralError):
        await fix_plan(days, profile, nutrition_targets(profile), fake_client)

    assert fake_client.calls == []
