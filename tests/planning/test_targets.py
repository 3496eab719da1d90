from app.planning.schema.profile import ActivityLevel, Goal, Sex, UserProfile
from app.planning.targets import (
    DEFAULT_BMR,
    calculate_bmr,
    calorie_target,
    meal_names,
    nutrition_targets,
    protein_target,
    workout_split,
)


def _profile(**kwargs) -> UserProfile:
    return UserProfile(**{"goal": Goal.GENERAL_FITNESS, "training_days": 3, **kwargs})


def test_bmr_uses_mifflin_st_jeor():
    profile = _profile(weight=80, height=180, age=30, sex=Sex.MALE)

    assert calculate_bmr(profile) == 1780


def test_bmr_falls_back_without_body_stats():
    assert calculate_bmr(_profile(weight=80)) == DEFAULT_BMR


def test_calorie_target_applies_goal_adjustment():
    # 2000 * 1.55 = 3100
    assert calorie_target(_profile()) == 3100
    assert calorie_target(_profile(goal=Goal.WEIGHT_LOSS)) == 2635
    assert calorie_target(_profile(goal=Goal.MUSCLE_GAIN)) == 3410


def test_calorie_target_uses_activity_level():
    assert calorie_target(_profile(activity_level=ActivityLevel.SEDENTARY)) == 2400


def test_explicit_targets_win():
    profile = _profile(daily_calorie_target=2200, daily_protein_target=150, weight=90)

    assert calorie_target(profile) == 2200
    assert protein_target(profile) == 150


def test_protein_target_from_weight_and_goal():
    assert protein_target(_profile(weight=80, goal=Goal.MUSCLE_GAIN)) == 176
    assert protein_target(_profile(weight=80)) == 144


def test_protein_target_without_weight_uses_calorie_share():
    assert protein_target(_profile(daily_calorie_target=2000)) == 150


def test_nutrition_targets_carry_meal_count():
    targets = nutrition_targets(_profile(daily_calorie_target=2000, daily_protein_target=120, meal_count=5))

    assert (targets.calories, targets.protein_g, targets.meals_per_day) == (2000, 120, 5)


def test_workout_split_defaults_by_training_days():
    assert workout_split(3) == ["Push", "Rest", "Pull", "Rest", "Legs", "Rest", "Rest"]
    assert workout_split(0) == workout_split(1)
    assert workout_split(12) == workout_split(7)


def test_workout_split_prefers_named_split():
    assert workout_split(3, "Upper Lower")[:2] == ["Upper Body", "Lower Body"]
    assert workout_split(3, "Unknown Split") == workout_split(3)


def test_meal_names_fall_back_to_three_meals():
    assert meal_names(4) == ["Breakfast", "Lunch", "Afternoon Snack", "Dinner"]
    assert meal_names(12) == ["Breakfast", "Lunch", "Dinner"]
