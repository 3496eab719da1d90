"""Two-stage base plan generation pipeline.

Each attempt runs generate -> verify:

- Stage 1 asks the model for a raw 7-day plan and requires all seven weekday keys.
- Stage 2 validates the raw plan locally and hands it to the verifier/fixer.

A failed attempt is retried after a fixed delay, up to the configured attempt
ceiling. When every attempt fails the last typed error is raised. No
deterministic fallback plan is ever substituted.
"""

from __future__ import annotations

import asyncio
import copy
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from app.config.settings import settings
from app.planning.compliance import fix_plan, validate_plan
from app.planning.errors import GenerationError, ParseError, PipelineStage, PlanGenerationError, StructuralError
from app.planning.json_recovery import parse_model_json
from app.planning.prompts import build_generation_messages
from app.planning.schema.plan import WEEKDAYS, RedoType
from app.planning.schema.profile import UserProfile
from app.planning.targets import NutritionTargets, nutrition_targets
from app.services.llm.completion import CompletionClient, CompletionError


@dataclass(frozen=True)
class RedoRequest:
    """User-requested regeneration of part of an existing plan.

    Attributes:
        reason: Free-text reason, injected into the generation prompt
        redo_type: Which sections to regenerate
        source_days: Days of the plan being redone (sections not being
            regenerated are carried over from here)
    """

    reason: str
    redo_type: RedoType = RedoType.BOTH
    source_days: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class GeneratedPlan:
    days: dict[str, Any]
    targets: NutritionTargets
    attempt: int
    issues: list[str]
    fixes: list[str]
    verified_by_model: bool


async def generate_raw_plan(
    profile: UserProfile,
    targets: NutritionTargets,
    client: CompletionClient,
    *,
    attempt: int,
    redo_reason: str | None = None,
) -> dict[str, Any]:
    """Stage 1: request a raw plan and check that all weekdays are present.

    Raises:
        GenerationError: On model failure, unparseable output or missing weekdays
    """
    messages = build_generation_messages(profile, targets, redo_reason=redo_reason)
    try:
        text = await client.complete(messages, max_tokens=settings.llm_max_tokens)
    except CompletionError as e:
        raise GenerationError(f"Model call failed: {e}", attempt=attempt) from e

    try:
        parsed = parse_model_json(text)
    except ParseError as e:
        raise GenerationError("Model output was not valid JSON", attempt=attempt, issues=[str(e)]) from e

    days = parsed.get("days") if isinstance(parsed, dict) and isinstance(parsed.get("days"), dict) else parsed
    if not isinstance(days, dict):
        raise GenerationError("Model output did not contain a day mapping", attempt=attempt)

    missing = [day for day in WEEKDAYS if not isinstance(days.get(day), dict)]
    if missing:
        raise GenerationError(
            f"Raw plan is missing weekdays: {', '.join(missing)}",
            attempt=attempt,
            issues=[f"Missing day: {day}" for day in missing],
        )

    return {day: days[day] for day in WEEKDAYS}


def apply_redo(days: dict[str, Any], redo: RedoRequest) -> dict[str, Any]:
    """Carry over the sections a partial redo does not regenerate."""
    if redo.redo_type == RedoType.BOTH:
        return days

    keep_section = "nutrition" if redo.redo_type == RedoType.WORKOUT else "workout"
    merged: dict[str, Any] = {}
    for day_key, day in days.items():
        source = redo.source_days.get(day_key)
        if isinstance(source, dict) and keep_section in source:
            merged[day_key] = {**day, keep_section: copy.deepcopy(source[keep_section])}
        else:
            merged[day_key] = day
    return merged


async def generate_base_plan(
    profile: UserProfile,
    client: CompletionClient,
    *,
    redo: RedoRequest | None = None,
    max_attempts: int | None = None,
    retry_delay: float | None = None,
) -> GeneratedPlan:
    """Run the generate -> verify pipeline with bounded retries.

    Args:
        profile: User profile (immutable)
        client: Model-completion collaborator
        redo: Optional redo request
        max_attempts: Attempt ceiling (defaults to settings)
        retry_delay: Fixed delay in seconds between attempts (defaults to settings)

    Returns:
        GeneratedPlan with a verified, macro-enforced 7-day plan

    Raises:
        PlanGenerationError: From the last attempt, tagged with stage, attempt and issues
    """
    max_attempts = max_attempts or settings.generation_max_attempts
    retry_delay = settings.generation_retry_delay_seconds if retry_delay is None else retry_delay
    targets = nutrition_targets(profile)
    redo_reason = redo.reason if redo else profile.plan_regeneration_request

    logger.info(
        "Starting base plan generation",
        goal=profile.goal,
        calories=targets.calories,
        protein_g=targets.protein_g,
        meals_per_day=targets.meals_per_day,
        redo_type=redo.redo_type if redo else None,
        max_attempts=max_attempts,
    )

    attempt = 0
    while True:
        attempt += 1
        try:
            raw_days = await generate_raw_plan(profile, targets, client, attempt=attempt, redo_reason=redo_reason)
            if redo:
                raw_days = apply_redo(raw_days, redo)
            report = validate_plan(raw_days, profile, targets)
            result = await fix_plan(raw_days, profile, targets, client, report=report, attempt=attempt)
        except StructuralError as e:
            error = PlanGenerationError(str(e), PipelineStage.VALIDATION, attempt=attempt, issues=e.issues)
        except PlanGenerationError as e:
            error = e
        else:
            logger.info(
                "Base plan generated",
                attempt=attempt,
                issues_found=len(result.issues),
                fixes_applied=len(result.fixes),
                verified_by_model=result.model_verified,
            )
            return GeneratedPlan(
                days=result.days,
                targets=targets,
                attempt=attempt,
                issues=result.issues,
                fixes=result.fixes,
                verified_by_model=result.model_verified,
            )

        logger.warning(
            "Base plan attempt failed",
            attempt=attempt,
            max_attempts=max_attempts,
            stage=error.stage,
            error=str(error),
            issues=error.issues[:10],
        )
        if attempt >= max_attempts:
            logger.error(
                "Base plan generation exhausted all attempts",
                attempts=max_attempts,
                stage=error.stage,
                error=str(error),
            )
            raise error
        await asyncio.sleep(retry_delay)
