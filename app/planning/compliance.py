"""Compliance validation and repair for generated base plans.

Validation is local and deterministic. Repair combines one model call (the
verification prompt) with deterministic post-enforcement: macro values and
required sub-structures are always overwritten from the profile, whatever
the model returned.
"""

from __future__ import annotations

import copy
import re
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from loguru import logger

from app.config.settings import settings
from app.planning.errors import ParseError, StructuralError, VerificationError
from app.planning.json_recovery import parse_model_json
from app.planning.prompts import build_verification_messages
from app.planning.schema.plan import WEEKDAYS
from app.planning.schema.profile import DietaryRestriction, UserProfile
from app.planning.targets import NutritionTargets
from app.services.llm.completion import CompletionClient, CompletionError

# A plan with this many structural issues or more is regenerated rather than fixed
MAX_STRUCTURAL_ISSUES = 10

MIN_REASON_LENGTH = 10

_MEAT_AND_FISH = (
    "chicken",
    "beef",
    "pork",
    "fish",
    "salmon",
    "tuna",
    "meat",
    "steak",
    "bacon",
    "ham",
    "turkey",
    "shrimp",
    "prawns",
)

FORBIDDEN_FOODS: dict[DietaryRestriction, tuple[str, ...]] = {
    DietaryRestriction.VEGETARIAN: (*_MEAT_AND_FISH, "egg", "eggs"),
    DietaryRestriction.EGGITARIAN: _MEAT_AND_FISH,
    DietaryRestriction.NON_VEGETARIAN: (),
}

# Whole words that start with a blocklist token but are plant foods
SAFE_FOOD_WORDS = ("eggplant", "eggplants")

# Used when scrubbing empties a meal; must not contain any blocklist token
SAFE_MEAL_ITEM = {"food": "Lentils", "qty": "1 cup cooked"}

DEFAULT_MOBILITY = ["Light stretching"]
DEFAULT_SLEEP = ["Aim for 7-8 hours of sleep"]
DEFAULT_HYDRATION_L = 2.5


class IssueKind(StrEnum):
    MISSING_DAY = "missing_day"
    MISSING_SECTION = "missing_section"
    MALFORMED_SECTION = "malformed_section"
    MACRO_MISMATCH = "macro_mismatch"
    MEAL_COUNT = "meal_count"
    FORBIDDEN_FOOD = "forbidden_food"
    AVOIDED_EXERCISE = "avoided_exercise"


STRUCTURAL_KINDS = frozenset({IssueKind.MISSING_DAY, IssueKind.MISSING_SECTION, IssueKind.MALFORMED_SECTION})


@dataclass(frozen=True)
class ComplianceIssue:
    kind: IssueKind
    day: str | None
    message: str

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class ValidationReport:
    issues: list[ComplianceIssue] = field(default_factory=list)

    @property
    def missing_days(self) -> list[str]:
        return [i.day for i in self.issues if i.kind == IssueKind.MISSING_DAY and i.day]

    @property
    def structural_issues(self) -> list[ComplianceIssue]:
        return self.of_kind(*STRUCTURAL_KINDS)

    @property
    def can_proceed(self) -> bool:
        return not self.missing_days and len(self.structural_issues) < MAX_STRUCTURAL_ISSUES

    @property
    def is_clean(self) -> bool:
        return not self.issues

    def messages(self) -> list[str]:
        return [issue.message for issue in self.issues]

    def of_kind(self, *kinds: IssueKind) -> list[ComplianceIssue]:
        return [issue for issue in self.issues if issue.kind in kinds]

    def ensure_fixable(self) -> None:
        """Raise StructuralError when the plan is too damaged to fix.

        Raises:
            StructuralError: If any weekday is missing or the structural issue
                count reaches MAX_STRUCTURAL_ISSUES
        """
        if self.missing_days:
            raise StructuralError(f"Plan is missing days: {', '.join(self.missing_days)}", self.messages())
        if len(self.structural_issues) >= MAX_STRUCTURAL_ISSUES:
            raise StructuralError(
                f"Plan has too many structural issues to fix ({len(self.structural_issues)})", self.messages()
            )


@dataclass(frozen=True)
class FixResult:
    days: dict[str, Any]
    issues: list[str]
    fixes: list[str]
    model_verified: bool


def _as_int(value: Any) -> int | None:
    try:
        return round(float(value))
    except (TypeError, ValueError):
        return None


def _meal_items(day: dict[str, Any]) -> list[dict[str, Any]]:
    nutrition = day.get("nutrition")
    if not isinstance(nutrition, dict) or not isinstance(nutrition.get("meals"), list):
        return []
    items = []
    for meal in nutrition["meals"]:
        if isinstance(meal, dict) and isinstance(meal.get("items"), list):
            items.extend(item for item in meal["items"] if isinstance(item, dict))
    return items


def _workout_items(day: dict[str, Any]) -> list[dict[str, Any]]:
    workout = day.get("workout")
    if not isinstance(workout, dict) or not isinstance(workout.get("blocks"), list):
        return []
    items = []
    for block in workout["blocks"]:
        if isinstance(block, dict) and isinstance(block.get("items"), list):
            items.extend(item for item in block["items"] if isinstance(item, dict))
    return items


def forbidden_token(food: str, restriction: DietaryRestriction) -> str | None:
    """Return the first blocklist token found in a food name, if any."""
    lowered = food.lower()
    for token in FORBIDDEN_FOODS[restriction]:
        if token in lowered:
            return token
    return None


def removable_token(food: str, restriction: DietaryRestriction) -> str | None:
    """Blocklist token starting a word of the food name, for deterministic removal.

    Stricter than forbidden_token(): "Graham crackers" and "Eggplant" are
    flagged for the verifier but never deleted.
    """
    words = [word for word in re.findall(r"[a-z]+", food.lower()) if word not in SAFE_FOOD_WORDS]
    for token in FORBIDDEN_FOODS[restriction]:
        if any(word.startswith(token) for word in words):
            return token
    return None


def avoided_match(exercise: str, avoided: list[str]) -> str | None:
    lowered = exercise.lower()
    for name in avoided:
        needle = name.strip().lower()
        if needle and needle in lowered:
            return name
    return None


def find_forbidden_foods(day: dict[str, Any], restriction: DietaryRestriction) -> list[str]:
    return [
        str(item.get("food"))
        for item in _meal_items(day)
        if isinstance(item.get("food"), str) and forbidden_token(item["food"], restriction)
    ]


def find_avoided_exercises(day: dict[str, Any], avoided: list[str]) -> list[str]:
    if not avoided:
        return []
    return [
        str(item.get("exercise"))
        for item in _workout_items(day)
        if isinstance(item.get("exercise"), str) and avoided_match(item["exercise"], avoided)
    ]


def _validate_day(
    day_key: str,
    day: dict[str, Any],
    profile: UserProfile,
    targets: NutritionTargets,
) -> list[ComplianceIssue]:
    issues: list[ComplianceIssue] = []

    def add(kind: IssueKind, message: str) -> None:
        issues.append(ComplianceIssue(kind, day_key, f"{day_key}: {message}"))

    workout = day.get("workout")
    if not isinstance(workout, dict):
        add(IssueKind.MISSING_SECTION, "missing workout")
    else:
        if not isinstance(workout.get("focus"), list):
            add(IssueKind.MALFORMED_SECTION, "workout.focus must be a list")
        if not isinstance(workout.get("blocks"), list):
            add(IssueKind.MALFORMED_SECTION, "workout.blocks must be a list")

    nutrition = day.get("nutrition")
    if not isinstance(nutrition, dict):
        add(IssueKind.MISSING_SECTION, "missing nutrition")
    else:
        kcal = _as_int(nutrition.get("total_kcal"))
        if kcal != targets.calories:
            add(IssueKind.MACRO_MISMATCH, f"total_kcal {nutrition.get('total_kcal')} != {targets.calories}")
        protein = _as_int(nutrition.get("protein_g"))
        if protein != targets.protein_g:
            add(IssueKind.MACRO_MISMATCH, f"protein_g {nutrition.get('protein_g')} != {targets.protein_g}")
        meals = nutrition.get("meals")
        if not isinstance(meals, list):
            add(IssueKind.MALFORMED_SECTION, "nutrition.meals must be a list")
        elif len(meals) != targets.meals_per_day:
            add(IssueKind.MEAL_COUNT, f"{len(meals)} meals, expected {targets.meals_per_day}")

    recovery = day.get("recovery")
    if not isinstance(recovery, dict):
        add(IssueKind.MISSING_SECTION, "missing recovery")
    else:
        if not isinstance(recovery.get("mobility"), list):
            add(IssueKind.MALFORMED_SECTION, "recovery.mobility must be a list")
        if not isinstance(recovery.get("sleep"), list):
            add(IssueKind.MALFORMED_SECTION, "recovery.sleep must be a list")

    if not isinstance(day.get("reason"), str) or not day["reason"].strip():
        add(IssueKind.MISSING_SECTION, "missing reason")

    for food in find_forbidden_foods(day, profile.dietary_restriction):
        add(IssueKind.FORBIDDEN_FOOD, f"forbidden food for {profile.dietary_restriction} diet: {food}")

    for exercise in find_avoided_exercises(day, profile.avoid_exercises):
        add(IssueKind.AVOIDED_EXERCISE, f"avoided exercise present: {exercise}")

    return issues


def validate_plan(days: dict[str, Any], profile: UserProfile, targets: NutritionTargets) -> ValidationReport:
    """Enumerate compliance issues without any network access."""
    issues: list[ComplianceIssue] = []
    for day_key in WEEKDAYS:
        day = days.get(day_key) if isinstance(days, dict) else None
        if not isinstance(day, dict):
            issues.append(ComplianceIssue(IssueKind.MISSING_DAY, day_key, f"Missing day: {day_key}"))
            continue
        issues.extend(_validate_day(day_key, day, profile, targets))
    return ValidationReport(issues)


def unwrap_plan_days(response: Any) -> dict[str, Any]:
    """Find the day mapping in a verifier response.

    Looks at ``plan.days``, then ``plan``, then ``days``, then the object itself.
    """
    if not isinstance(response, dict):
        return {}
    plan = response.get("plan")
    if isinstance(plan, dict):
        if isinstance(plan.get("days"), dict):
            return plan["days"]
        return plan
    if isinstance(response.get("days"), dict):
        return response["days"]
    return response


def _rest_day_workout() -> dict[str, Any]:
    return {
        "focus": ["Rest"],
        "blocks": [
            {
                "name": "Active Recovery",
                "items": [{"exercise": "Light walking", "sets": 1, "reps": "20-30 min", "RIR": 5}],
            }
        ],
        "notes": "Rest day: focus on recovery and light movement.",
    }


def _as_list(value: Any) -> list[Any]:
    if isinstance(value, list):
        return value
    if isinstance(value, str) and value.strip():
        return [value]
    return []


def default_reason(profile: UserProfile) -> str:
    return f"Today's plan is designed for your {profile.goal_label} goal with {profile.equipment_label} exercises."


def enforce_day(day: Any, profile: UserProfile, targets: NutritionTargets) -> dict[str, Any]:
    """Force macros and required sub-structures onto one day."""
    day = copy.deepcopy(day) if isinstance(day, dict) else {}

    workout = day.get("workout")
    if not isinstance(workout, dict):
        day["workout"] = _rest_day_workout()
    else:
        workout["focus"] = _as_list(workout.get("focus"))
        workout["blocks"] = [b for b in _as_list(workout.get("blocks")) if isinstance(b, dict)]

    nutrition = day.get("nutrition") if isinstance(day.get("nutrition"), dict) else {}
    nutrition["total_kcal"] = targets.calories
    nutrition["protein_g"] = targets.protein_g
    nutrition["meals_per_day"] = targets.meals_per_day
    nutrition["meals"] = [m for m in _as_list(nutrition.get("meals")) if isinstance(m, dict)]
    if not isinstance(nutrition.get("hydration_l"), (int, float)):
        nutrition["hydration_l"] = DEFAULT_HYDRATION_L
    day["nutrition"] = nutrition

    recovery = day.get("recovery") if isinstance(day.get("recovery"), dict) else {}
    recovery["mobility"] = _as_list(recovery.get("mobility")) or list(DEFAULT_MOBILITY)
    recovery["sleep"] = _as_list(recovery.get("sleep")) or list(DEFAULT_SLEEP)
    recovery["supplements"] = _as_list(recovery.get("supplements"))
    card = recovery.get("supplementCard") if isinstance(recovery.get("supplementCard"), dict) else {}
    recovery["supplementCard"] = {
        "current": list(profile.supplements),
        "addOns": _as_list(card.get("addOns")),
    }
    day["recovery"] = recovery

    reason = day.get("reason")
    if not isinstance(reason, str) or len(reason.strip()) < MIN_REASON_LENGTH:
        day["reason"] = default_reason(profile)

    return day


def enforce_plan(days: dict[str, Any], profile: UserProfile, targets: NutritionTargets) -> dict[str, Any]:
    return {day_key: enforce_day(days.get(day_key), profile, targets) for day_key in WEEKDAYS}


def scrub_violations(days: dict[str, Any], profile: UserProfile) -> tuple[dict[str, Any], list[str]]:
    """Remove meal items and exercises that still violate user constraints.

    Returns:
        Tuple of (scrubbed days, human-readable notes for each removal)
    """
    restriction = profile.dietary_restriction
    scrubbed = copy.deepcopy(days)
    notes: list[str] = []

    for day_key, day in scrubbed.items():
        if not isinstance(day, dict):
            continue

        nutrition = day.get("nutrition")
        if isinstance(nutrition, dict) and isinstance(nutrition.get("meals"), list):
            for meal in nutrition["meals"]:
                if not isinstance(meal, dict) or not isinstance(meal.get("items"), list):
                    continue
                kept = []
                for item in meal["items"]:
                    food = item.get("food") if isinstance(item, dict) else None
                    if isinstance(food, str) and removable_token(food, restriction):
                        notes.append(f"{day_key}: removed {food} ({restriction})")
                        continue
                    kept.append(item)
                if meal["items"] and not kept:
                    kept = [dict(SAFE_MEAL_ITEM)]
                meal["items"] = kept

        workout = day.get("workout")
        if profile.avoid_exercises and isinstance(workout, dict) and isinstance(workout.get("blocks"), list):
            blocks = []
            for block in workout["blocks"]:
                if not isinstance(block, dict) or not isinstance(block.get("items"), list):
                    blocks.append(block)
                    continue
                kept = []
                for item in block["items"]:
                    exercise = item.get("exercise") if isinstance(item, dict) else None
                    if isinstance(exercise, str) and avoided_match(exercise, profile.avoid_exercises):
                        notes.append(f"{day_key}: removed avoided exercise {exercise}")
                        continue
                    kept.append(item)
                if kept or not block["items"]:
                    blocks.append({**block, "items": kept})
            workout["blocks"] = blocks

    if notes:
        logger.warning("Scrubbed constraint violations left by verifier", removed=len(notes))
    return scrubbed, notes


async def fix_plan(
    days: dict[str, Any],
    profile: UserProfile,
    targets: NutritionTargets,
    client: CompletionClient,
    *,
    report: ValidationReport | None = None,
    attempt: int | None = None,
) -> FixResult:
    """Verify and fix a raw plan (Stage 2).

    Args:
        days: Raw day mapping from Stage 1
        profile: User profile
        targets: Nutrition targets derived from the profile
        client: Model-completion collaborator
        report: Local validation report, computed when omitted
        attempt: Pipeline attempt number (for error tagging)

    Returns:
        FixResult with a complete 7-day plan that passes structural and macro checks

    Raises:
        StructuralError: If the raw plan is too damaged to fix
        VerificationError: If the verifier call fails or returns nothing usable
    """
    report = report or validate_plan(days, profile, targets)
    report.ensure_fixable()

    logger.info(
        "Verifying raw plan",
        local_issues=len(report.issues),
        forbidden_foods=len(report.of_kind(IssueKind.FORBIDDEN_FOOD)),
        avoided_exercises=len(report.of_kind(IssueKind.AVOIDED_EXERCISE)),
        attempt=attempt,
    )

    messages = build_verification_messages(days, profile, targets, report.messages())
    try:
        text = await client.complete(messages, max_tokens=settings.llm_max_tokens)
        response = parse_model_json(text)
    except (CompletionError, ParseError) as e:
        raise VerificationError(f"Verifier call failed: {e}", attempt=attempt, issues=report.messages()) from e

    fixed_days = unwrap_plan_days(response)
    restored = [day_key for day_key in WEEKDAYS if not isinstance(fixed_days.get(day_key), dict)]
    if restored:
        logger.warning("Verifier dropped days, keeping raw versions", days=restored)
    merged = {
        day_key: fixed_days[day_key] if day_key not in restored else days[day_key]
        for day_key in WEEKDAYS
    }

    scrubbed, scrub_notes = scrub_violations(merged, profile)
    enforced = enforce_plan(scrubbed, profile, targets)

    post_report = validate_plan(enforced, profile, targets)
    blocking = post_report.of_kind(*STRUCTURAL_KINDS, IssueKind.MACRO_MISMATCH)
    if blocking:
        raise VerificationError(
            "Plan failed post-enforcement checks",
            attempt=attempt,
            issues=[issue.message for issue in blocking],
        )

    envelope = response if isinstance(response, dict) else {}
    model_issues = [str(i) for i in _as_list(envelope.get("issues"))]
    model_fixes = [str(f) for f in _as_list(envelope.get("fixes"))]
    remaining = post_report.messages()
    if remaining:
        logger.info("Plan has best-effort issues after fixing", remaining=remaining)

    return FixResult(
        days=enforced,
        issues=report.messages() + model_issues,
        fixes=model_fixes + scrub_notes,
        model_verified=envelope.get("verified") is True,
    )
