from datetime import date as date_type
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Digestion(StrEnum):
    HEAVY = "Heavy"
    NORMAL = "Normal"
    LIGHT = "Light"


class WokeFeeling(StrEnum):
    TIRED = "Tired"
    REFRESHED = "Refreshed"
    WIRED = "Wired"


class CheckinData(BaseModel):
    """A dated snapshot of the user's subjective state.

    Append-only: one per user per day, never edited after creation.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel, extra="ignore")

    date: date_type
    mood: str | None = None
    energy: int | None = Field(None, ge=1, le=10)
    stress: int | None = Field(None, ge=1, le=10)
    motivation: int | None = Field(None, ge=1, le=10)
    sleep_hours: float | None = Field(None, ge=0, le=24)
    sleep_quality: int | None = Field(None, ge=1, le=10)
    woke_feeling: WokeFeeling | None = None
    soreness: list[str] = Field(default_factory=list)
    digestion: Digestion | None = None
    water_l: float | None = Field(None, ge=0)
    body_weight: float | None = Field(None, gt=0)
    current_weight: float | None = Field(None, gt=0)
    alcohol_yesterday: bool | None = None
    supplements_taken: bool | None = None
    workout_intensity: int | None = Field(None, ge=1, le=10)
    yesterday_workout_quality: int | None = Field(None, ge=1, le=10)
    special_request: str | None = None

    @property
    def weight(self) -> float | None:
        return self.current_weight if self.current_weight is not None else self.body_weight
