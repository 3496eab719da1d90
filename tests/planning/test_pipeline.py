"""Tests for the generate -> verify base plan pipeline."""

import pytest

from app.planning import pipeline
from app.planning.errors import GenerationError, PipelineStage, PlanGenerationError
from app.planning.pipeline import RedoRequest, apply_redo, generate_base_plan
from app.planning.schema.plan import WEEKDAYS, RedoType
from app.services.llm.completion import CompletionError


@pytest.mark.asyncio
async def test_generates_verified_plan_in_one_attempt(profile, make_plan, plan_json, fake_client):
    fake_client.queue(plan_json(make_plan(calories=2300)), plan_json(make_plan(), verified=True, fixes=["kcal"]))

    result = await generate_base_plan(profile, fake_client, max_attempts=2, retry_delay=0)

    assert result.attempt == 1
    assert list(result.days) == list(WEEKDAYS)
    assert result.verified_by_model is True
    assert result.fixes == ["kcal"]
    assert result.targets.calories == 2500
    assert len(fake_client.calls) == 2
    assert any("macro" in issue or "total_kcal" in issue for issue in result.issues)


@pytest.mark.asyncio
async def test_retries_after_missing_weekdays(profile, make_plan, plan_json, fake_client):
    partial = {"monday": make_plan()["monday"]}
    fake_client.queue(plan_json(partial), plan_json(make_plan()), plan_json(make_plan(), verified=True))

    result = await generate_base_plan(profile, fake_client, max_attempts=2, retry_delay=0)

    assert result.attempt == 2
    assert len(fake_client.calls) == 3


@pytest.mark.asyncio
async def test_raises_last_error_when_attempts_exhausted(profile, fake_client):
    fake_client.queue("I'm sorry, I can't do that.", CompletionError("rate limited"))

    with pytest.raises(GenerationError) as exc_info:
        await generate_base_plan(profile, fake_client, max_attempts=2, retry_delay=0)

    assert exc_info.value.stage == PipelineStage.GENERATION
    assert exc_info.value.attempt == 2
    assert "rate limited" in str(exc_info.value)


@pytest.mark.asyncio
async def test_fixed_delay_only_between_attempts(profile, fake_client, monkeypatch):
    delays: list[float] = []

    async def _record_sleep(seconds: float) -> None:
        delays.append(seconds)

    monkeypatch.setattr(pipeline.asyncio, "sleep", _record_sleep)
    fake_client.queue("no json", "still no json", "nothing")

    with pytest.raises(GenerationError) as exc_info:
        await generate_base_plan(profile, fake_client, max_attempts=3, retry_delay=1.5)

    assert exc_info.value.attempt == 3
    assert len(fake_client.calls) == 3
    assert delays == [1.5, 1.5]


@pytest.mark.asyncio
async def test_missing_weekdays_are_listed_as_issues(profile, make_plan, plan_json, fake_client):
    fake_client.queue(plan_json({"monday": make_plan()["monday"]}))

    with pytest.raises(GenerationError) as exc_info:
        await generate_base_plan(profile, fake_client, max_attempts=1, retry_delay=0)

    assert "Missing day: sunday" in exc_info.value.issues
    assert len(exc_info.value.issues) == 6


@pytest.mark.asyncio
async def test_structurally_broken_plan_fails_validation_stage(profile, plan_json, fake_client):
    fake_client.queue(plan_json({day: {} for day in WEEKDAYS}))

    with pytest.raises(PlanGenerationError) as exc_info:
        await generate_base_plan(profile, fake_client, max_attempts=1, retry_delay=0)

    assert exc_info.value.stage == PipelineStage.VALIDATION
    # The verifier is never called for an unfixable plan
    assert len(fake_client.calls) == 1


@pytest.mark.asyncio
async def test_verification_failure_is_tagged_with_stage(profile, make_plan, plan_json, fake_client):
    fake_client.queue(plan_json(make_plan()), "not json at all")

    with pytest.raises(PlanGenerationError) as exc_info:
        await generate_base_plan(profile, fake_client, max_attempts=1, retry_delay=0)

    assert exc_info.value.stage == PipelineStage.VERIFICATION
    assert str(exc_info.value).startswith("[verification attempt 1]")


@pytest.mark.asyncio
async def test_redo_reason_reaches_generation_prompt(profile, make_plan, plan_json, fake_client):
    fake_client.queue(plan_json(make_plan()), plan_json(make_plan(), verified=True))
    redo = RedoRequest(reason="More leg work please", redo_type=RedoType.BOTH)

    await generate_base_plan(profile, fake_client, redo=redo, max_attempts=1, retry_delay=0)

    generation_prompt = "\n".join(message.content for message in fake_client.calls[0])
    assert "More leg work please" in generation_prompt


def test_workout_redo_keeps_existing_nutrition(make_day):
    source = {"monday": make_day(foods=["Tofu scramble"])}
    new = {"monday": make_day(foods=["Oats"], exercises=["Lunges"])}

    merged = apply_redo(new, RedoRequest(reason="swap", redo_type=RedoType.WORKOUT, source_days=source))

    assert merged["monday"]["nutrition"] == source["monday"]["nutrition"]
    assert merged["monday"]["workout"] == new["monday"]["workout"]


def test_nutrition_redo_keeps_existing_workout(make_day):
    source = {"monday": make_day(exercises=["Deadlift"])}
    new = {"monday": make_day(foods=["Oats"], exercises=["Lunges"])}

    merged = apply_redo(new, RedoRequest(reason="swap", redo_type=RedoType.NUTRITION, source_days=source))

    assert merged["monday"]["workout"] == source["monday"]["workout"]
    assert merged["monday"]["nutrition"] == new["monday"]["nutrition"]


def test_full_redo_replaces_everything(make_day):
    new = {"monday": make_day(exercises=["Lunges"])}

    assert apply_redo(new, RedoRequest(reason="all new", source_days={"monday": make_day()})) is new
