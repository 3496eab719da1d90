from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Goal(StrEnum):
    WEIGHT_LOSS = "WEIGHT_LOSS"
    MUSCLE_GAIN = "MUSCLE_GAIN"
    ENDURANCE = "ENDURANCE"
    GENERAL_FITNESS = "GENERAL_FITNESS"
    FLEXIBILITY_MOBILITY = "FLEXIBILITY_MOBILITY"


class DietaryRestriction(StrEnum):
    VEGETARIAN = "Vegetarian"
    EGGITARIAN = "Eggitarian"
    NON_VEGETARIAN = "Non-Vegetarian"


class TrainingLevel(StrEnum):
    BEGINNER = "Beginner"
    INTERMEDIATE = "Intermediate"
    PROFESSIONAL = "Professional"


class ActivityLevel(StrEnum):
    SEDENTARY = "Sedentary"
    LIGHTLY_ACTIVE = "Lightly Active"
    MODERATELY_ACTIVE = "Moderately Active"
    VERY_ACTIVE = "Very Active"
    EXTRA_ACTIVE = "Extra Active"


class Sex(StrEnum):
    MALE = "Male"
    FEMALE = "Female"


class UserProfile(BaseModel):
    """Immutable profile read model used as generation input.

    Accepts both snake_case and the camelCase keys used by client profile
    snapshots (e.g. ``trainingDays``).
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel, extra="ignore")

    goal: Goal
    training_days: int = Field(..., ge=1, le=7)
    equipment: list[str] = Field(default_factory=list)
    dietary_prefs: list[DietaryRestriction] = Field(default_factory=list)
    avoid_exercises: list[str] = Field(default_factory=list)
    supplements: list[str] = Field(default_factory=list)
    session_length: int | None = Field(None, gt=0, description="Minutes per session")
    daily_calorie_target: int | None = Field(None, gt=0)
    daily_protein_target: int | None = Field(None, gt=0)
    special_requests: str | None = None

    name: str | None = None
    age: int | None = Field(None, gt=0)
    sex: Sex | None = None
    height: float | None = Field(None, gt=0, description="cm")
    weight: float | None = Field(None, gt=0, description="kg")
    goal_weight: float | None = Field(None, gt=0)
    activity_level: ActivityLevel | None = None
    training_level: TrainingLevel = TrainingLevel.INTERMEDIATE
    preferred_workout_split: str | None = None
    meal_count: int = Field(3, ge=1, le=8)
    injuries: str | None = None
    dietary_notes: str | None = None
    timezone: str | None = None
    plan_regeneration_request: str | None = None

    @property
    def dietary_restriction(self) -> DietaryRestriction:
        """Strictest restriction the user selected."""
        if DietaryRestriction.VEGETARIAN in self.dietary_prefs:
            return DietaryRestriction.VEGETARIAN
        if DietaryRestriction.EGGITARIAN in self.dietary_prefs:
            return DietaryRestriction.EGGITARIAN
        return DietaryRestriction.NON_VEGETARIAN

    @property
    def goal_label(self) -> str:
        return self.goal.value.replace("_", " ").lower()

    @property
    def equipment_label(self) -> str:
        return ", ".join(self.equipment) if self.equipment else "bodyweight"
