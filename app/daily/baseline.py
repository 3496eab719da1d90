"""Deterministic, rule-based adjustment of a base plan day to a check-in.

This is the first of the two daily titration layers. Its output is handed to
the model as a starting point and is never served on its own.
"""

from __future__ import annotations

import copy
from datetime import date
from typing import Any

from app.planning.schema.checkin import CheckinData
from app.planning.schema.daily import DailyPlan
from app.planning.schema.profile import UserProfile

LOW_ENERGY = 4
MODERATE_ENERGY = 6
GENTLE_MOBILITY_ENERGY = 5
HIGH_STRESS = 7
SLEEP_HYGIENE_STRESS = 6

# Missing check-in values are treated as mid-scale
DEFAULT_SCALE_VALUE = 5

STRESS_RELIEF_BLOCK: dict[str, Any] = {
    "name": "Stress Relief",
    "items": [
        {"exercise": "Deep breathing", "sets": 1, "reps": "5 min", "RIR": 0},
        {"exercise": "Gentle yoga", "sets": 1, "reps": "15 min", "RIR": 0},
        {"exercise": "Walking", "sets": 1, "reps": "20 min", "RIR": 0},
    ],
}
GENTLE_MOBILITY = ["Gentle stretching", "Breathing exercises", "Light movement"]
SLEEP_HYGIENE = ["Prioritize 8+ hours tonight", "Consider meditation", "Avoid screens 2 hours before bed"]


def motivation_message(motivation: int, goal_label: str) -> str:
    if motivation >= 8:
        return "High motivation today. Channel it into quality reps and clean form."
    if motivation >= 5:
        return f"Steady progress towards your {goal_label} goal. Stay consistent."
    return "Every small step counts. Showing up is the hardest part, and you did."


def _main_block(workout: dict[str, Any]) -> dict[str, Any] | None:
    """The main working block: the second block when a warm-up leads, else the only one."""
    blocks = workout.get("blocks")
    if not isinstance(blocks, list) or not blocks:
        return None
    block = blocks[1] if len(blocks) > 1 else blocks[0]
    if not isinstance(block, dict) or not isinstance(block.get("items"), list):
        return None
    return block


def _raise_rir(items: list[dict[str, Any]], floor: int) -> None:
    for item in items:
        if isinstance(item, dict):
            current = item.get("RIR")
            item["RIR"] = max(current, floor) if isinstance(current, int) else floor


def apply_baseline(day: dict[str, Any], checkin: CheckinData, profile: UserProfile, plan_date: date) -> DailyPlan:
    """Apply the deterministic check-in rules to one base plan day.

    Rules, in order:

    - energy < 4: main block trimmed to its first 2 items, RIR raised to >= 3
    - energy < 6: main block RIR raised to >= 2
    - stress > 7: workout replaced by the stress-relief protocol
    - any soreness: caution note on the workout
    - energy < 5: gentle mobility; stress > 6: sleep hygiene tips

    The input day is never mutated.
    """
    energy = checkin.energy if checkin.energy is not None else DEFAULT_SCALE_VALUE
    stress = checkin.stress if checkin.stress is not None else DEFAULT_SCALE_VALUE
    motivation = checkin.motivation if checkin.motivation is not None else DEFAULT_SCALE_VALUE

    workout = copy.deepcopy(day.get("workout") or {})
    recovery = copy.deepcopy(day.get("recovery") or {})
    nutrition = copy.deepcopy(day.get("nutrition") or {})
    adjustments: list[str] = []

    main_block = _main_block(workout)
    if main_block is not None:
        if energy < LOW_ENERGY:
            main_block["items"] = main_block["items"][:2]
            _raise_rir(main_block["items"], 3)
            adjustments.append(f"Reduced volume and intensity because energy is {energy}/10")
        elif energy < MODERATE_ENERGY:
            _raise_rir(main_block["items"], 2)
            adjustments.append(f"Reduced intensity because energy is {energy}/10")

    if stress > HIGH_STRESS:
        workout["focus"] = ["Recovery", "Stress Relief"]
        workout["blocks"] = [copy.deepcopy(STRESS_RELIEF_BLOCK)]
        adjustments.append(f"Switched to a stress-relief protocol because stress is {stress}/10")

    if checkin.soreness:
        areas = ", ".join(checkin.soreness)
        workout["notes"] = f"Soreness in {areas}: modify or skip exercises that load these areas"
        adjustments.append(f"Modified for {areas} soreness")

    if energy < GENTLE_MOBILITY_ENERGY:
        recovery["mobility"] = list(GENTLE_MOBILITY)
    if stress > SLEEP_HYGIENE_STRESS:
        recovery["sleep"] = list(SLEEP_HYGIENE)

    return DailyPlan(
        date=plan_date,
        workout=workout,
        nutrition=nutrition,
        recovery=recovery,
        motivation=motivation_message(motivation, profile.goal_label),
        adjustments=adjustments,
    )
