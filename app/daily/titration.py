"""Daily titration: personalize one base plan day to today's check-in.

Two layers, always both:

1. Deterministic baseline (app.daily.baseline.apply_baseline)
2. One model call that refines the baseline using the check-in, trend memory
   and yesterday's context

There is no fallback. If the model call fails or its output cannot be used,
the caller gets RequiresRetry and the user is asked to try again.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import date
from typing import Any

from loguru import logger

from app.config.settings import settings
from app.daily.baseline import apply_baseline
from app.memory.last_day import LastDayContext, WorkoutStatus
from app.memory.trends import TrendMemory
from app.planning.errors import ParseError, PlanEngineError
from app.planning.json_recovery import parse_model_json
from app.planning.schema.checkin import CheckinData
from app.planning.schema.daily import DailyPlan
from app.planning.schema.profile import UserProfile
from app.planning.targets import meal_names
from app.services.llm.completion import ChatMessage, CompletionClient, CompletionError

DAILY_PLAN_RETRY_MESSAGE = "DAILY_PLAN_AI_FAILED_TRY_AGAIN"

MIN_MOTIVATION_LENGTH = 10
MIN_CARE_NOTES_LENGTH = 50
MIN_HIGHLIGHTS_LENGTH = 20
LOW_EMA = 0.5

TITRATION_SYSTEM_PROMPT = """You are a personal daily coach for a fitness app.
Take the user's check-in and make visible, specific adjustments to today's plan.

ADJUSTMENT RULES:
- Energy 1-3: cut volume by 40%, RIR 4+. Energy 4-5: cut volume by 20%, RIR +1-2. Energy 8-10: may add 1-2 sets.
- Desired intensity 1-3: recovery day. 8-10: push hard with lower RIR.
- Avoid or substitute exercises that load sore areas. Chronic soreness (3+ days): avoid that muscle group entirely.
- Alcohol yesterday: reduce intensity by 20%, emphasize hydration.
- Heavy digestion: lighter, more spaced meals. Light digestion: denser meals are fine.
- Sleep under 6 hours: add a nap suggestion and an earlier bedtime. Stress 7+: add stress-relief activities.
- Honor any fitness-related special request and say so in adjustments.
- Apply the calorie target given in calculatedTargets exactly.
- Generate exactly the requested number of meals.

Every adjustment must name what changed and which check-in value caused it.
"adjustments" holds workout changes only; "nutritionAdjustments" holds nutrition changes only.
"recovery.careNotes" is a calm 3-5 sentence debrief that interprets the data rather than repeating it.
"dailyHighlights" is a 2-3 sentence factual summary of today, stored as context for tomorrow.
If you cannot safely generate a plan, set "fatalError" to explain why; otherwise it must be null.

Return ONLY valid JSON with this structure:
{
  "workout": {"focus": [str], "blocks": [{"name": str, "items": [{"exercise": str, "sets": int, "reps": str, "RIR": int}]}], "intensity": str, "notes": str},
  "nutrition": {"total_kcal": int, "protein_g": int, "meals_per_day": int, "meals": [{"name": str, "items": [{"food": str, "qty": str}]}], "hydration_l": float},
  "recovery": {"mobility": [str], "sleep": [str], "careNotes": str, "supplementCard": {"current": [str], "addOns": [str]}},
  "motivation": str,
  "adjustments": [str],
  "nutritionAdjustments": [str],
  "flags": [str],
  "dailyHighlights": str,
  "fatalError": null
}"""


class DailyTitrationError(PlanEngineError):
    """The model's daily plan response could not be used."""


@dataclass(frozen=True)
class Ok:
    plan: DailyPlan


@dataclass(frozen=True)
class RequiresRetry:
    reason: str = DAILY_PLAN_RETRY_MESSAGE
    detail: str | None = None


TitrationResult = Ok | RequiresRetry


@dataclass(frozen=True)
class DailyTargets:
    base_calories: int
    calorie_adjustment: int
    target_calories: int
    protein_g: int
    meals_per_day: int


def daily_targets(base_day: dict[str, Any], profile: UserProfile, memory: TrendMemory | None) -> DailyTargets:
    nutrition = base_day.get("nutrition") or {}
    base_calories = int(nutrition.get("total_kcal") or profile.daily_calorie_target or 0)
    adjustment = memory.weight_trend.recommended_calorie_delta if memory else 0
    return DailyTargets(
        base_calories=base_calories,
        calorie_adjustment=adjustment,
        target_calories=base_calories + adjustment,
        protein_g=int(nutrition.get("protein_g") or profile.daily_protein_target or 0),
        meals_per_day=profile.meal_count,
    )


def _checkin_summary(checkin: CheckinData) -> dict[str, Any]:
    return checkin.model_dump(mode="json", by_alias=True, exclude_none=True)


def build_titration_messages(
    profile: UserProfile,
    day_key: str,
    base_day: dict[str, Any],
    baseline: DailyPlan,
    checkin: CheckinData,
    memory: TrendMemory | None,
    last_day: LastDayContext | None,
    targets: DailyTargets,
) -> list[ChatMessage]:
    context = {
        "context": {
            "day": day_key,
            "goal": profile.goal_label,
            "trainingLevel": profile.training_level,
            "equipment": profile.equipment_label,
            "injuries": profile.injuries,
            "dietaryPreferences": list(profile.dietary_prefs),
            "supplements": list(profile.supplements),
            "mealCount": profile.meal_count,
            "mealNames": meal_names(profile.meal_count),
        },
        "todayBasePlan": {key: base_day.get(key) for key in ("workout", "nutrition", "recovery")},
        "deterministicPlan": {
            "workout": baseline.workout,
            "nutrition": baseline.nutrition,
            "recovery": baseline.recovery,
            "currentMotivation": baseline.motivation,
            "ruleBasedAdjustments": baseline.adjustments,
        },
        "todayCheckin": _checkin_summary(checkin),
        "memoryLayer": asdict(memory) if memory else None,
        "yesterday": asdict(last_day) if last_day else None,
        "calculatedTargets": {
            "baseCalories": targets.base_calories,
            "calorieAdjustment": targets.calorie_adjustment,
            "targetCalories": targets.target_calories,
            "proteinTarget": targets.protein_g,
            "mealsPerDay": targets.meals_per_day,
        },
    }
    user_prompt = "Generate today's personalized plan from this data:\n\n" + json.dumps(context, indent=2, default=str)
    return [
        ChatMessage(role="system", content=TITRATION_SYSTEM_PROMPT),
        ChatMessage(role="user", content=user_prompt),
    ]


def auto_flags(checkin: CheckinData, memory: TrendMemory | None) -> list[str]:
    """Flags derived directly from the check-in and trend memory."""
    flags: list[str] = []

    if checkin.energy is not None:
        if checkin.energy <= 3:
            flags.append("LOW_ENERGY")
        elif checkin.energy >= 8:
            flags.append("HIGH_ENERGY")
    if checkin.stress is not None and checkin.stress >= 7:
        flags.append("HIGH_STRESS")
    if checkin.sleep_hours is not None and checkin.sleep_hours < 6:
        flags.append("LOW_SLEEP")
    if checkin.workout_intensity is not None:
        if checkin.workout_intensity >= 8:
            flags.append("HIGH_INTENSITY_REQUESTED")
        elif checkin.workout_intensity <= 3:
            flags.append("RECOVERY_DAY_REQUESTED")
    if checkin.alcohol_yesterday:
        flags.append("ALCOHOL_YESTERDAY")
    if checkin.supplements_taken is False:
        flags.append("MISSED_SUPPLEMENTS")
    if checkin.soreness:
        flags.append("SORENESS_" + "_".join(checkin.soreness).upper().replace(" ", "_"))

    if memory:
        if memory.ema.sleep < LOW_EMA:
            flags.append("LOW_SLEEP_TREND")
        if memory.ema.energy < LOW_EMA:
            flags.append("LOW_ENERGY_TREND")
        for streak in memory.red_flag_soreness:
            flags.append(f"CHRONIC_SORENESS_{streak.area.upper().replace(' ', '_')}")
        delta = memory.weight_trend.recommended_calorie_delta
        if delta:
            flags.append(f"CALORIE_ADJUST_{delta:+d}")

    if checkin.special_request and checkin.special_request.strip():
        flags.append("HAS_SPECIAL_REQUEST")
    return flags


def fallback_motivation(checkin: CheckinData, profile: UserProfile) -> str:
    energy = checkin.energy or 5
    stress = checkin.stress or 5
    if energy >= 7 and stress <= 4:
        return (
            "Favorable conditions for quality work today. "
            f"Stay focused on execution and trust the process toward {profile.goal_label}."
        )
    if energy <= 4 or stress >= 7:
        return (
            "Today calls for a measured approach. Prioritize movement quality over intensity "
            "and remember that consistency matters more than any single session."
        )
    return (
        "Adequate readiness for today's session. "
        f"Focus on the fundamentals and let the work accumulate toward {profile.goal_label}."
    )


def _is_re_entry(last_day: LastDayContext | None) -> bool:
    return last_day is not None and 1 < last_day.days_since_last_checkin < 999


def fallback_care_notes(
    checkin: CheckinData,
    profile: UserProfile,
    memory: TrendMemory | None,
    last_day: LastDayContext | None,
) -> str:
    energy = checkin.energy or 5
    stress = checkin.stress or 5
    sleep_hours = checkin.sleep_hours or 7
    readiness = (energy / 10) * 0.3 + ((10 - stress) / 10) * 0.3 + (min(sleep_hours, 8) / 8) * 0.4

    re_entry = _is_re_entry(last_day)
    health_note = last_day.health_note if last_day else None
    skipped = last_day is not None and last_day.yesterday_workout_status == WorkoutStatus.SKIPPED

    if re_entry:
        opening = (
            f"After {last_day.days_since_last_checkin} days away from check-ins, "
            "today's session is structured as a measured re-entry to training."
        )
    elif health_note:
        opening = f"Following yesterday's reported {health_note}, today's plan has been calibrated with recovery in mind."
    elif skipped:
        opening = "Yesterday's session was missed, so today is framed as a low-friction restart rather than a catch-up."
    elif readiness >= 0.7:
        opening = "Today's profile indicates favorable conditions for productive training."
    elif readiness >= 0.5:
        opening = "Current indicators suggest moderate readiness with some factors warranting attention today."
    else:
        opening = "Today's markers point toward accumulated fatigue, so a conservative approach is appropriate."

    if health_note:
        insight = f"If the {health_note} symptoms persist, reduce intensity further and prioritize hydration and rest."
    elif checkin.soreness:
        areas = " and ".join(checkin.soreness)
        if memory and memory.red_flag_soreness:
            insight = f"Persistent {areas} discomfort over several days suggests incomplete recovery of those tissues."
        else:
            insight = f"Residual {areas} soreness reflects normal adaptation, and exercise selection has been adjusted."
    elif sleep_hours < 6:
        insight = "Short sleep limits recovery capacity, so execution matters more than intensity today."
    elif stress >= 7:
        insight = "Elevated stress impairs recovery, so the session avoids adding unnecessary load."
    else:
        insight = "The balance of recovery indicators supports the planned training stimulus."

    if re_entry or skipped:
        closing = "Focus on completing the session rather than maximizing output."
    elif readiness < 0.5:
        closing = f"Prioritize movement quality and evening recovery to keep progressing toward {profile.goal_label}."
    else:
        closing = f"Keep effort consistent and trust that systematic work accumulates toward {profile.goal_label}."

    return " ".join([opening, insight, closing])


def fallback_highlights(checkin: CheckinData, workout: dict[str, Any], last_day: LastDayContext | None) -> str:
    focus = workout.get("focus") if isinstance(workout.get("focus"), list) else None
    parts = [f"{' and '.join(str(f) for f in focus) if focus else 'General training'} session."]

    energy = checkin.energy or 5
    stress = checkin.stress or 5
    if energy >= 7 and stress <= 4:
        parts.append("Good energy, low stress.")
    elif energy <= 4 or stress >= 7:
        parts.append("Reduced readiness indicators.")
    else:
        parts.append("Moderate readiness.")

    if checkin.soreness:
        parts.append(f"{', '.join(checkin.soreness)} soreness noted.")
    if _is_re_entry(last_day):
        parts.append(f"Returning after a {last_day.days_since_last_checkin}-day break.")
    elif last_day and last_day.health_note:
        parts.append(f"Following {last_day.health_note} from yesterday.")
    elif last_day and last_day.yesterday_workout_status == WorkoutStatus.SKIPPED:
        parts.append("Re-entry after a missed session.")
    return " ".join(parts)


def _text(value: Any, min_length: int) -> str | None:
    if isinstance(value, str) and len(value.strip()) >= min_length:
        return value.strip()
    return None


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item is not None]


def validate_titration_response(
    parsed: Any,
    *,
    plan_date: date,
    base_day: dict[str, Any],
    checkin: CheckinData,
    profile: UserProfile,
    memory: TrendMemory | None,
    last_day: LastDayContext | None,
    targets: DailyTargets,
) -> DailyPlan:
    """Check the model response and fill soft gaps.

    Raises:
        DailyTitrationError: On a reported fatal error or a missing core section
    """
    if not isinstance(parsed, dict):
        raise DailyTitrationError("Daily plan response is not a JSON object")
    if parsed.get("fatalError"):
        raise DailyTitrationError(f"Model reported a fatal error: {parsed['fatalError']}")

    sections = {key: parsed.get(key) for key in ("workout", "nutrition", "recovery")}
    missing = [key for key, value in sections.items() if not isinstance(value, dict)]
    if missing:
        raise DailyTitrationError(f"Daily plan response is missing sections: {', '.join(missing)}")

    base_workout = base_day.get("workout") or {}
    workout = dict(sections["workout"])
    if not isinstance(workout.get("blocks"), list):
        workout["blocks"] = list(base_workout.get("blocks") or [])
    if not isinstance(workout.get("focus"), list):
        workout["focus"] = list(base_workout.get("focus") or ["General"])

    nutrition = dict(sections["nutrition"])
    nutrition["total_kcal"] = targets.target_calories
    nutrition["protein_g"] = targets.protein_g
    nutrition["meals_per_day"] = targets.meals_per_day
    if not isinstance(nutrition.get("meals"), list):
        nutrition["meals"] = list((base_day.get("nutrition") or {}).get("meals") or [])

    recovery = dict(sections["recovery"])
    recovery["careNotes"] = _text(recovery.get("careNotes"), MIN_CARE_NOTES_LENGTH) or fallback_care_notes(
        checkin, profile, memory, last_day
    )

    flags = list(dict.fromkeys(_string_list(parsed.get("flags")) + auto_flags(checkin, memory)))

    return DailyPlan(
        date=plan_date,
        workout=workout,
        nutrition=nutrition,
        recovery=recovery,
        motivation=_text(parsed.get("motivation"), MIN_MOTIVATION_LENGTH) or fallback_motivation(checkin, profile),
        adjustments=_string_list(parsed.get("adjustments")),
        nutrition_adjustments=_string_list(parsed.get("nutritionAdjustments")),
        flags=flags,
        daily_highlights=_text(parsed.get("dailyHighlights"), MIN_HIGHLIGHTS_LENGTH)
        or fallback_highlights(checkin, workout, last_day),
    )


async def generate_daily_plan(
    profile: UserProfile,
    day_key: str,
    base_day: dict[str, Any],
    checkin: CheckinData,
    client: CompletionClient,
    *,
    plan_date: date,
    memory: TrendMemory | None = None,
    last_day: LastDayContext | None = None,
) -> TitrationResult:
    """Build today's plan: deterministic baseline, then one model refinement.

    Args:
        profile: User profile
        day_key: Weekday key of the base plan day (e.g. "monday")
        base_day: The base plan's day
        checkin: Today's check-in
        client: Model-completion collaborator
        plan_date: Date of the plan being built
        memory: Trend memory (None with too little history)
        last_day: Yesterday's context

    Returns:
        Ok with the titrated plan, or RequiresRetry on any model, parse or
        validation failure
    """
    baseline = apply_baseline(base_day, checkin, profile, plan_date)
    targets = daily_targets(base_day, profile, memory)
    messages = build_titration_messages(profile, day_key, base_day, baseline, checkin, memory, last_day, targets)

    logger.info(
        "Starting daily plan titration",
        day=day_key,
        plan_date=plan_date.isoformat(),
        energy=checkin.energy,
        stress=checkin.stress,
        has_memory=memory is not None,
        target_calories=targets.target_calories,
    )

    try:
        text = await client.complete(messages, max_tokens=settings.llm_titration_max_tokens)
        parsed = parse_model_json(text)
        plan = validate_titration_response(
            parsed,
            plan_date=plan_date,
            base_day=base_day,
            checkin=checkin,
            profile=profile,
            memory=memory,
            last_day=last_day,
            targets=targets,
        )
    except (CompletionError, ParseError, DailyTitrationError) as e:
        logger.error("Daily plan titration failed", day=day_key, error=str(e), error_type=type(e).__name__)
        return RequiresRetry(detail=str(e))

    logger.info(
        "Daily plan titrated",
        day=day_key,
        adjustments=len(plan.adjustments),
        nutrition_adjustments=len(plan.nutrition_adjustments),
        flags=plan.flags,
    )
    return Ok(plan)
