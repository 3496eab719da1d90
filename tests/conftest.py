"""Root conftest for all tests.

Shared fixtures: an in-memory database wired into app.db.session, a fake
model client, a recording notifier, a sample profile and plan builders.
"""

import itertools
import json
from collections.abc import Sequence
from typing import Any

import pytest
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.config.settings import settings
from app.db import session as db_session
from app.db.models import Base
from app.notifications.service import PlanEvent
from app.planning.schema.plan import WEEKDAYS
from app.planning.schema.profile import Goal, UserProfile
from app.planning.targets import meal_names
from app.services.llm.completion import ChatMessage, CompletionError

TEST_SECRET = "test-secret"

DEFAULT_FOODS = ("Oats with berries", "Rice and dal", "Paneer stir fry")
DEFAULT_EXERCISES = ("Dumbbell press", "Dumbbell row", "Goblet squat")


class FakeCompletionClient:
    """CompletionClient returning queued responses in order.

    An Exception instance in the queue is raised instead of returned. An
    empty queue raises CompletionError.
    """

    def __init__(self, responses: Sequence[str | Exception] = ()):
        self.responses = list(responses)
        self.calls: list[list[ChatMessage]] = []
        self.max_tokens: list[int] = []

    def queue(self, *responses: str | Exception) -> None:
        self.responses.extend(responses)

    async def complete(self, messages: Sequence[ChatMessage], max_tokens: int) -> str:
        self.calls.append(list(messages))
        self.max_tokens.append(max_tokens)
        if not self.responses:
            raise CompletionError("No response queued")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class RecordingNotifier:
    def __init__(self):
        self.events: list[PlanEvent] = []

    async def notify(self, event: PlanEvent) -> None:
        self.events.append(event)


def build_day(
    calories: int = 2500,
    protein_g: int = 160,
    meals_per_day: int = 3,
    *,
    foods: Sequence[str] = DEFAULT_FOODS,
    exercises: Sequence[str] = DEFAULT_EXERCISES,
) -> dict[str, Any]:
    food_cycle = itertools.cycle(foods)
    return {
        "workout": {
            "focus": ["Upper Body"],
            "blocks": [
                {"name": "Warm-up", "items": [{"exercise": "Arm circles", "sets": 1, "reps": "10", "RIR": 5}]},
                {
                    "name": "Main",
                    "items": [{"exercise": name, "sets": 3, "reps": "8-10", "RIR": 1} for name in exercises],
                },
            ],
            "notes": "Control the eccentric.",
        },
        "nutrition": {
            "total_kcal": calories,
            "protein_g": protein_g,
            "meals_per_day": meals_per_day,
            "meals": [
                {"name": name, "items": [{"food": next(food_cycle), "qty": "1 serving"}]}
                for name in meal_names(meals_per_day)
            ],
            "hydration_l": 3.0,
        },
        "recovery": {
            "mobility": ["Hip openers"],
            "sleep": ["Aim for 8 hours"],
            "supplements": [],
            "supplementCard": {"current": [], "addOns": []},
        },
        "reason": "Built around progressive overload for your goal.",
    }


@pytest.fixture
def make_day():
    """Factory for one well-formed plan day."""
    return build_day


@pytest.fixture
def make_plan():
    """Factory for a well-formed 7-day plan (same day template every weekday)."""

    def _make_plan(**kwargs: Any) -> dict[str, Any]:
        return {day: build_day(**kwargs) for day in WEEKDAYS}

    return _make_plan


@pytest.fixture
def plan_json():
    """Serialize days (plus optional envelope keys) the way the model would."""

    def _plan_json(days: dict[str, Any], **envelope: Any) -> str:
        if envelope:
            return json.dumps({**envelope, "plan": {"days": days}})
        return json.dumps({"days": days})

    return _plan_json


@pytest.fixture
def profile() -> UserProfile:
    return UserProfile(
        goal=Goal.MUSCLE_GAIN,
        training_days=4,
        equipment=["dumbbells"],
        daily_calorie_target=2500,
        daily_protein_target=160,
        meal_count=3,
        supplements=["Creatine"],
        timezone="UTC",
    )


@pytest.fixture
def fake_client() -> FakeCompletionClient:
    return FakeCompletionClient()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def db_engine(monkeypatch):
    """In-memory SQLite shared by every session the app opens during a test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    monkeypatch.setattr(db_session, "_engine", engine)
    monkeypatch.setattr(
        db_session,
        "_SessionLocal",
        sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine),
    )
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def auth_headers(monkeypatch):
    """Factory for bearer headers signed with a test key."""
    monkeypatch.setattr(settings, "auth_secret_key", TEST_SECRET)
    monkeypatch.setattr(settings, "auth_algorithm", "HS256")

    def _headers(user_id: str = "user-1") -> dict[str, str]:
        token = jwt.encode({"sub": user_id}, TEST_SECRET, algorithm="HS256")
        return {"Authorization": f"Bearer {token}"}

    return _headers
