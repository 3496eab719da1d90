"""Prompt builders for the two-stage base plan pipeline.

Stage 1 (generation) asks for a complete raw 7-day plan. Stage 2
(verification) hands the raw plan back with the issues found locally and asks
for a corrected plan.
"""

from __future__ import annotations

import json
from typing import Any

from app.planning.schema.plan import WEEKDAYS
from app.planning.schema.profile import DietaryRestriction, Goal, TrainingLevel, UserProfile
from app.planning.targets import NutritionTargets, meal_names, workout_split
from app.services.llm.completion import ChatMessage

GENERATION_SYSTEM_PROMPT = "You are an elite fitness coach AI creating a personalized 7-day workout and nutrition plan."

VERIFICATION_SYSTEM_PROMPT = (
    "You are a fitness plan quality assurance AI. Your job is to verify a generated fitness plan "
    "and FIX any issues found."
)

GOAL_INSTRUCTIONS: dict[Goal, str] = {
    Goal.WEIGHT_LOSS: (
        "- Include circuit-style training where appropriate\n"
        "- Higher rep ranges (12-15 reps) for metabolic effect\n"
        "- Include 2-3 cardio sessions (HIIT or LISS)\n"
        "- Shorter rest periods (30-60 seconds)\n"
        "- Emphasize compound movements for calorie burn"
    ),
    Goal.MUSCLE_GAIN: (
        "- Focus on progressive overload\n"
        "- Lower rep ranges for main lifts (6-10 reps)\n"
        "- Higher volume (4-5 sets for main exercises)\n"
        "- Longer rest periods (2-3 minutes for compounds)\n"
        "- Include isolation work for lagging body parts"
    ),
    Goal.ENDURANCE: (
        "- Include supersets and circuit training\n"
        "- Moderate rep ranges (10-15 reps)\n"
        "- Shorter rest periods (30-45 seconds)\n"
        "- Include 3-4 cardio sessions\n"
        "- Focus on muscular endurance"
    ),
    Goal.GENERAL_FITNESS: (
        "- Balanced approach with variety\n"
        "- Moderate rep ranges (8-12 reps)\n"
        "- Mix of compound and isolation exercises\n"
        "- Include 2-3 cardio sessions\n"
        "- Focus on functional movements"
    ),
    Goal.FLEXIBILITY_MOBILITY: (
        "- Include yoga and stretching sessions\n"
        "- Focus on mobility work each day\n"
        "- Light resistance training\n"
        "- Active recovery emphasis\n"
        "- Mind-body connection exercises"
    ),
}

LEVEL_INSTRUCTIONS: dict[TrainingLevel, str] = {
    TrainingLevel.BEGINNER: (
        "- Focus on basic compound movements (squat, deadlift, bench, row, press)\n"
        "- Use machines where appropriate for safety\n"
        "- Lower volume: 2-3 sets per exercise\n"
        "- Higher RIR (3-4) to learn proper form\n"
        "- Include form cues in notes"
    ),
    TrainingLevel.INTERMEDIATE: (
        "- Include both compound and isolation exercises\n"
        "- Moderate volume: 3-4 sets per exercise\n"
        "- RIR of 2-3 for most exercises\n"
        "- Can include supersets and drop sets occasionally\n"
        "- Progressive overload focus"
    ),
    TrainingLevel.PROFESSIONAL: (
        "- Advanced techniques (drop sets, rest-pause, supersets)\n"
        "- Higher volume: 4-5 sets for main lifts\n"
        "- Lower RIR (1-2) for intensity\n"
        "- Periodization considerations\n"
        "- Include intensity techniques"
    ),
}

DIETARY_RULES: dict[DietaryRestriction, str] = {
    DietaryRestriction.VEGETARIAN: (
        "DIETARY RULES (STRICT - VEGETARIAN):\n"
        "- ABSOLUTELY NO: meat, chicken, fish, seafood, eggs\n"
        "- USE ONLY: vegetables, legumes, tofu, paneer, tempeh, seitan, grains, dairy, nuts, seeds\n"
        "- Protein sources: lentils, chickpeas, beans, paneer, tofu, greek yogurt, cottage cheese, quinoa"
    ),
    DietaryRestriction.EGGITARIAN: (
        "DIETARY RULES (STRICT - EGGITARIAN):\n"
        "- ABSOLUTELY NO: meat, chicken, fish, seafood\n"
        "- EGGS ARE ALLOWED\n"
        "- Protein sources: eggs, lentils, chickpeas, beans, paneer, tofu, greek yogurt"
    ),
    DietaryRestriction.NON_VEGETARIAN: (
        "DIETARY RULES (NON-VEG):\n"
        "- All protein sources allowed\n"
        "- Prioritize lean proteins: chicken breast, fish, lean beef, eggs\n"
        "- Include variety across the week"
    ),
}

DIETARY_CHECKS: dict[DietaryRestriction, str] = {
    DietaryRestriction.VEGETARIAN: "VEGETARIAN: No meat, chicken, fish, seafood, or eggs in any meal",
    DietaryRestriction.EGGITARIAN: "EGGITARIAN: No meat, chicken, fish, or seafood (eggs are OK)",
    DietaryRestriction.NON_VEGETARIAN: "NON-VEG: Any protein sources allowed",
}


def _bullets(lines: list[str | None]) -> str:
    return "\n".join(f"- {line}" for line in lines if line)


def build_profile_section(profile: UserProfile, targets: NutritionTargets) -> str:
    """Render the user profile block shared by both stages."""
    split = workout_split(profile.training_days, profile.preferred_workout_split)
    sections = [
        "## USER PROFILE",
        "### Core Information",
        _bullets(
            [
                f"Name: {profile.name or 'User'}",
                f"Goal: {profile.goal_label}",
                f"Training Days: {profile.training_days} days per week",
                f"Equipment: {', '.join(profile.equipment) or 'Bodyweight only'}",
                f"Dietary Preference: {', '.join(profile.dietary_prefs) or 'No restrictions'}",
                f"Dietary Notes: {profile.dietary_notes}" if profile.dietary_notes else None,
            ]
        ),
    ]

    body_stats = _bullets(
        [
            f"Age: {profile.age} years" if profile.age else None,
            f"Sex: {profile.sex}" if profile.sex else None,
            f"Height: {profile.height} cm" if profile.height else None,
            f"Weight: {profile.weight} kg" if profile.weight else None,
            f"Goal Weight: {profile.goal_weight} kg" if profile.goal_weight else None,
            f"Activity Level: {profile.activity_level}" if profile.activity_level else None,
        ]
    )
    if body_stats:
        sections += ["### Body Stats", body_stats]

    sections += [
        "### Nutrition Targets",
        _bullets(
            [
                f"Daily Calories: {targets.calories} kcal",
                f"Daily Protein: {targets.protein_g}g",
                f"Meals per Day: {targets.meals_per_day}",
            ]
        ),
        "### Training Preferences",
        _bullets(
            [
                f"Experience Level: {profile.training_level}",
                f"Workout Split: {' -> '.join(split)}",
                f"Session Length: {profile.session_length} minutes" if profile.session_length else None,
            ]
        ),
    ]

    if profile.avoid_exercises:
        sections += ["### Exercises to AVOID (CRITICAL)", _bullets(list(profile.avoid_exercises))]
    if profile.injuries:
        sections += ["### Injuries/Limitations (CRITICAL)", profile.injuries]
    if profile.supplements:
        sections += ["### Current Supplements", _bullets(list(profile.supplements))]
    if profile.special_requests:
        sections += ["### Special Requests", profile.special_requests]
    if profile.plan_regeneration_request:
        sections += ["### Requested Weekly Plan Changes (CRITICAL)", profile.plan_regeneration_request]

    return "\n".join(sections)


def _day_template(targets: NutritionTargets) -> dict[str, Any]:
    return {
        "workout": {
            "focus": ["Primary Focus"],
            "blocks": [
                {"name": "Warm-up", "items": [{"exercise": "Exercise Name", "sets": 1, "reps": "5-10 min", "RIR": 0}]},
                {"name": "Main", "items": [{"exercise": "Exercise Name", "sets": 3, "reps": "8-12", "RIR": 2}]},
                {"name": "Cool-down", "items": [{"exercise": "Static Stretching", "sets": 1, "reps": "5 min", "RIR": 0}]},
            ],
            "notes": "Brief coaching notes for this workout",
        },
        "nutrition": {
            "total_kcal": targets.calories,
            "protein_g": targets.protein_g,
            "meals_per_day": targets.meals_per_day,
            "meals": [
                {"name": name, "items": [{"food": "Food item", "qty": "amount with unit"}]}
                for name in meal_names(targets.meals_per_day)
            ],
            "hydration_l": 2.5,
        },
        "recovery": {
            "mobility": ["Specific mobility exercise"],
            "sleep": ["Sleep recommendation"],
            "supplements": ["Name (Dosage) - Timing"],
            "supplementCard": {"current": ["Existing supplement"], "addOns": ["Recommended add-on"]},
        },
        "reason": "2-3 sentences explaining why this day's plan fits the user's goals and preferences.",
    }


def build_generation_messages(
    profile: UserProfile,
    targets: NutritionTargets,
    redo_reason: str | None = None,
) -> list[ChatMessage]:
    """Build the Stage 1 (generation) prompt."""
    split = workout_split(profile.training_days, profile.preferred_workout_split)
    day_assignments = "\n".join(f"- {day}: {focus}" for day, focus in zip(WEEKDAYS, split, strict=True))
    avoided = ", ".join(profile.avoid_exercises) or "none specified"

    parts = [
        GENERATION_SYSTEM_PROMPT,
        build_profile_section(profile, targets),
    ]
    if redo_reason:
        parts.append(
            "## CURRENT USER REQUEST (CRITICAL)\n"
            f"- {redo_reason}\n"
            "- These changes override previous weekly preferences where applicable."
        )
    parts += [
        "## NUTRITION TARGETS (CRITICAL - MUST MATCH EXACTLY)\n"
        f"- Daily Calories: EXACTLY {targets.calories} kcal (total_kcal field)\n"
        f"- Daily Protein: EXACTLY {targets.protein_g}g (protein_g field)\n"
        f"- Meals per day: EXACTLY {targets.meals_per_day} meals named: {', '.join(meal_names(targets.meals_per_day))}",
        f"## GOAL-SPECIFIC INSTRUCTIONS ({profile.goal_label})\n{GOAL_INSTRUCTIONS[profile.goal]}",
        f"## EXPERIENCE LEVEL INSTRUCTIONS ({profile.training_level})\n{LEVEL_INSTRUCTIONS[profile.training_level]}",
        f"## WEEKLY SPLIT ASSIGNMENT\n{day_assignments}",
        "## EQUIPMENT AVAILABLE\n"
        f"{', '.join(profile.equipment) or 'Bodyweight only'}\n"
        "- Only use exercises that can be performed with the available equipment",
        f"## EXERCISES TO AVOID (NEVER INCLUDE THESE)\n{avoided}",
    ]
    if profile.injuries:
        parts.append(f"## INJURIES/LIMITATIONS (MODIFY EXERCISES ACCORDINGLY)\n{profile.injuries}")
    parts += [
        DIETARY_RULES[profile.dietary_restriction],
        "## OUTPUT FORMAT\n"
        "Return ONLY valid JSON with a \"days\" object keyed monday through sunday. Each day looks like:\n"
        f"{json.dumps(_day_template(targets), indent=2)}",
        "CRITICAL RULES:\n"
        "1. Return ONLY the JSON object, no markdown, no explanation\n"
        "2. Include ALL 7 days (monday through sunday)\n"
        "3. Each day MUST have workout, nutrition, recovery, and reason\n"
        f"4. Nutrition must match the exact calorie ({targets.calories}) and protein ({targets.protein_g}g) targets\n"
        f"5. Never include avoided exercises: {avoided}\n"
        "6. Respect dietary restrictions strictly\n"
        "7. RIR must be 0-5 and sets must be 1-10\n"
        "8. Include specific exercise names, not placeholders",
    ]

    return [
        ChatMessage(role="system", content="\n\n".join(parts)),
        ChatMessage(role="user", content="Create my personalized 7-day fitness plan now. Return ONLY valid JSON."),
    ]


def build_verification_messages(
    plan_days: dict[str, Any],
    profile: UserProfile,
    targets: NutritionTargets,
    issues: list[str],
) -> list[ChatMessage]:
    """Build the Stage 2 (verify and fix) prompt."""
    requirements = "\n\n".join(
        [
            VERIFICATION_SYSTEM_PROMPT,
            "## USER REQUIREMENTS TO VERIFY",
            "### Dietary Requirements (CRITICAL)\n"
            f"- Diet Type: {', '.join(profile.dietary_prefs) or 'No restrictions'}\n"
            f"- Rule: {DIETARY_CHECKS[profile.dietary_restriction]}",
            "### Nutrition Targets (MUST MATCH)\n"
            f"- Daily Calories: {targets.calories} kcal (each day's total_kcal must be exactly this)\n"
            f"- Daily Protein: {targets.protein_g}g (each day's protein_g must be exactly this)\n"
            f"- Meals per Day: {targets.meals_per_day}",
            f"### Equipment Available\n- {', '.join(profile.equipment) or 'Bodyweight only'}",
            f"### Exercises to AVOID (MUST NOT APPEAR)\n{', '.join(profile.avoid_exercises) or 'None specified'}",
            f"### Injuries/Limitations\n{profile.injuries or 'None specified'}",
            f"### Training Level\n- Level: {profile.training_level}",
            f"### User's Current Supplements\n{', '.join(profile.supplements) or 'None specified'}",
            "## ISSUES ALREADY DETECTED (FIX ALL OF THESE)\n" + (_bullets(list(issues)) or "- None detected locally"),
            "## OUTPUT FORMAT\n"
            "Return ONLY valid JSON:\n"
            '{"verified": true, "issues": ["..."], "fixes": ["..."], "plan": {"days": {"monday": {...}, "...": "all 7 days"}}}',
        ]
    )
    user_prompt = (
        "Verify and fix this fitness plan:\n\n"
        f"{json.dumps({'days': plan_days}, indent=2)}\n\n"
        "Check ALL requirements and return the corrected plan as JSON."
    )
    return [
        ChatMessage(role="system", content=requirements),
        ChatMessage(role="user", content=user_prompt),
    ]
