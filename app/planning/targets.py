"""Nutrition targets, weekly split and meal naming derived from a profile."""

from dataclasses import dataclass

from app.planning.schema.profile import ActivityLevel, Goal, Sex, UserProfile

DEFAULT_BMR = 2000

ACTIVITY_MULTIPLIERS: dict[ActivityLevel, float] = {
    ActivityLevel.SEDENTARY: 1.2,
    ActivityLevel.LIGHTLY_ACTIVE: 1.375,
    ActivityLevel.MODERATELY_ACTIVE: 1.55,
    ActivityLevel.VERY_ACTIVE: 1.725,
    ActivityLevel.EXTRA_ACTIVE: 1.9,
}

PREFERRED_SPLITS: dict[str, list[str]] = {
    "PPL": ["Push", "Pull", "Legs", "Push", "Pull", "Legs", "Rest"],
    "Push Pull Legs": ["Push", "Pull", "Legs", "Push", "Pull", "Legs", "Rest"],
    "Upper Lower": ["Upper Body", "Lower Body", "Rest", "Upper Body", "Lower Body", "Rest", "Rest"],
    "Full Body": ["Full Body", "Rest", "Full Body", "Rest", "Full Body", "Rest", "Rest"],
    "Bro Split": ["Chest", "Back", "Shoulders", "Arms", "Legs", "Rest", "Rest"],
}

DEFAULT_SPLITS: dict[int, list[str]] = {
    1: ["Full Body", "Rest", "Rest", "Rest", "Rest", "Rest", "Rest"],
    2: ["Upper Body", "Rest", "Rest", "Lower Body", "Rest", "Rest", "Rest"],
    3: ["Push", "Rest", "Pull", "Rest", "Legs", "Rest", "Rest"],
    4: ["Upper Body", "Lower Body", "Rest", "Upper Body", "Lower Body", "Rest", "Rest"],
    5: ["Push", "Pull", "Legs", "Upper Body", "Lower Body", "Rest", "Rest"],
    6: ["Push", "Pull", "Legs", "Push", "Pull", "Legs", "Rest"],
    7: ["Push", "Pull", "Legs", "Upper Body", "Lower Body", "Full Body", "Active Recovery"],
}

MEAL_NAMES: dict[int, list[str]] = {
    1: ["Main Meal"],
    2: ["First Meal", "Second Meal"],
    3: ["Breakfast", "Lunch", "Dinner"],
    4: ["Breakfast", "Lunch", "Afternoon Snack", "Dinner"],
    5: ["Breakfast", "Morning Snack", "Lunch", "Afternoon Snack", "Dinner"],
    6: ["Breakfast", "Morning Snack", "Lunch", "Afternoon Snack", "Dinner", "Evening Snack"],
    7: ["Breakfast", "Mid-Morning", "Lunch", "Afternoon Snack", "Post-Workout", "Dinner", "Before Bed"],
    8: ["Breakfast", "Snack 1", "Lunch", "Snack 2", "Pre-Workout", "Post-Workout", "Dinner", "Before Bed"],
}


@dataclass(frozen=True)
class NutritionTargets:
    calories: int
    protein_g: int
    meals_per_day: int


def calculate_bmr(profile: UserProfile) -> int:
    """Basal metabolic rate (Mifflin-St Jeor).

    Falls back to DEFAULT_BMR when any body stat is missing.
    """
    if not (profile.weight and profile.height and profile.age and profile.sex):
        return DEFAULT_BMR

    base = 10 * profile.weight + 6.25 * profile.height - 5 * profile.age
    offset = 5 if profile.sex == Sex.MALE else -161
    return round(base + offset)


def calculate_tdee(profile: UserProfile) -> int:
    multiplier = ACTIVITY_MULTIPLIERS.get(profile.activity_level or ActivityLevel.MODERATELY_ACTIVE, 1.55)
    return round(calculate_bmr(profile) * multiplier)


def calorie_target(profile: UserProfile) -> int:
    if profile.daily_calorie_target:
        return profile.daily_calorie_target

    tdee = calculate_tdee(profile)
    if profile.goal == Goal.WEIGHT_LOSS:
        return round(tdee * 0.85)
    if profile.goal == Goal.MUSCLE_GAIN:
        return round(tdee * 1.1)
    return tdee


def protein_target(profile: UserProfile) -> int:
    if profile.daily_protein_target:
        return profile.daily_protein_target
    if not profile.weight:
        # 30% of calories from protein, 4 kcal per gram
        return round(calorie_target(profile) * 0.3 / 4)

    multiplier = 2.2 if profile.goal == Goal.MUSCLE_GAIN else 1.8
    return round(profile.weight * multiplier)


def nutrition_targets(profile: UserProfile) -> NutritionTargets:
    return NutritionTargets(
        calories=calorie_target(profile),
        protein_g=protein_target(profile),
        meals_per_day=profile.meal_count,
    )


def workout_split(training_days: int, preferred_split: str | None = None) -> list[str]:
    """Return the focus for each weekday, Monday first."""
    if preferred_split and preferred_split in PREFERRED_SPLITS:
        return list(PREFERRED_SPLITS[preferred_split])
    return list(DEFAULT_SPLITS[min(max(training_days, 1), 7)])


def meal_names(meal_count: int) -> list[str]:
    return list(MEAL_NAMES.get(meal_count, MEAL_NAMES[3]))
