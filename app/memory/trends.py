"""Trend memory derived from recent check-ins.

Turns the last few check-ins into smoothed 0-1 scores (EMA), soreness and
digestion streaks, and a 7-day weight trend with a bounded calorie
adjustment. Pure functions only: no I/O, no model calls.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import StrEnum

from app.planning.schema.checkin import CheckinData, Digestion
from app.planning.schema.profile import Goal

MIN_CHECKINS = 4
EMA_WINDOW = 4
EMA_ALPHA = 0.6
NEUTRAL_SCORE = 0.5
STREAK_RED_FLAG_DAYS = 3
WEIGHT_WINDOW_DAYS = 7
FLAT_WEIGHT_KG = 0.2

# Weight is not moving toward the goal at all
STALL_CALORIE_DELTA = 150
# Weight is moving away from the goal
REVERSAL_CALORIE_DELTA = 300


class TrendDirection(StrEnum):
    UP = "up"
    DOWN = "down"
    FLAT = "flat"


def score_sleep(hours: float) -> float:
    if hours < 2:
        return 0.0
    if hours < 4:
        return 0.25
    if hours < 7:
        return 0.5
    if hours <= 10:
        return 1.0
    return 0.75


def score_energy(value: float) -> float:
    if value < 3:
        return 0.0
    if value < 5:
        return 0.5
    if value < 7:
        return 0.75
    return 1.0


def score_water(litres: float) -> float:
    if litres < 1:
        return 0.0
    if litres < 3.5:
        return 0.5
    return 1.0


def score_stress(value: float) -> float:
    if value < 3:
        return 1.0
    if value < 5:
        return 0.75
    if value < 7:
        return 0.25
    return 0.0


def exponential_moving_average(values: Sequence[float], alpha: float = EMA_ALPHA) -> float:
    """EMA seeded with the oldest value, rounded to 2 decimals.

    Returns NEUTRAL_SCORE for an empty sequence.
    """
    if not values:
        return NEUTRAL_SCORE
    ema = values[0]
    for value in values[1:]:
        ema = alpha * value + (1 - alpha) * ema
    return round(ema, 2)


@dataclass(frozen=True)
class MetricScores:
    sleep: float
    energy: float
    water: float
    stress: float


@dataclass(frozen=True)
class SorenessStreak:
    area: str
    length: int
    is_red_flag: bool


@dataclass(frozen=True)
class DigestionStreak:
    state: Digestion
    length: int
    is_red_flag: bool


@dataclass(frozen=True)
class WeightPoint:
    date: date
    weight: float


@dataclass(frozen=True)
class WeightTrend:
    points: list[WeightPoint] = field(default_factory=list)
    delta_kg: float = 0.0
    direction: TrendDirection = TrendDirection.FLAT
    recommended_calorie_delta: int = 0


@dataclass(frozen=True)
class TrendMemory:
    """Derived view over recent check-ins.

    Attributes:
        scores: Latest raw 0-1 score per metric (0 when a metric has no data)
        ema: Smoothed 0-1 score per metric
        soreness_history: One-line summary of soreness over the EMA window
        soreness_streaks: Current streak per area sore on the latest check-in
        digestion_history: One-line summary of digestion over the EMA window
        digestion_streaks: Current digestion streak (empty without digestion data)
        weight_trend: 7-day weight direction and calorie adjustment
    """

    scores: MetricScores
    ema: MetricScores
    soreness_history: str
    soreness_streaks: list[SorenessStreak]
    digestion_history: str
    digestion_streaks: list[DigestionStreak]
    weight_trend: WeightTrend

    @property
    def red_flag_soreness(self) -> list[SorenessStreak]:
        return [streak for streak in self.soreness_streaks if streak.is_red_flag]

    @property
    def red_flag_digestion(self) -> list[DigestionStreak]:
        return [streak for streak in self.digestion_streaks if streak.is_red_flag]


def _scores(
    checkins: Sequence[CheckinData],
    extract: Callable[[CheckinData], float | None],
    scorer: Callable[[float], float],
) -> list[float]:
    values = (extract(checkin) for checkin in checkins)
    return [scorer(value) for value in values if value is not None]


def _consecutive_run(checkins: Sequence[CheckinData], matches: Callable[[CheckinData], bool]) -> int:
    """Length of the run of matching check-ins on consecutive days, newest first."""
    length = 0
    expected: date | None = None
    for checkin in reversed(checkins):
        if expected is not None and checkin.date != expected:
            break
        if not matches(checkin):
            break
        length += 1
        expected = checkin.date - timedelta(days=1)
    return length


def soreness_streaks(checkins: Sequence[CheckinData]) -> list[SorenessStreak]:
    """Streaks for every area sore on the newest check-in (oldest-first input)."""
    if not checkins:
        return []

    streaks = []
    for area in dict.fromkeys(checkins[-1].soreness):
        length = _consecutive_run(checkins, lambda checkin, area=area: area in checkin.soreness)
        streaks.append(SorenessStreak(area=area, length=length, is_red_flag=length >= STREAK_RED_FLAG_DAYS))
    return streaks


def digestion_streaks(checkins: Sequence[CheckinData]) -> list[DigestionStreak]:
    """Streak of the newest check-in's digestion state (oldest-first input)."""
    if not checkins or checkins[-1].digestion is None:
        return []

    state = checkins[-1].digestion
    length = _consecutive_run(checkins, lambda checkin: checkin.digestion == state)
    red_flag = length >= STREAK_RED_FLAG_DAYS and state != Digestion.NORMAL
    return [DigestionStreak(state=state, length=length, is_red_flag=red_flag)]


def calorie_delta_for(goal: Goal, direction: TrendDirection) -> int:
    if goal == Goal.WEIGHT_LOSS:
        if direction == TrendDirection.FLAT:
            return -STALL_CALORIE_DELTA
        if direction == TrendDirection.UP:
            return -REVERSAL_CALORIE_DELTA
    elif goal == Goal.MUSCLE_GAIN:
        if direction == TrendDirection.FLAT:
            return STALL_CALORIE_DELTA
        if direction == TrendDirection.DOWN:
            return REVERSAL_CALORIE_DELTA
    return 0


def weight_trend(goal: Goal, checkins: Sequence[CheckinData]) -> WeightTrend:
    """Weight direction over the most recent 7 days of check-ins.

    Needs at least two recorded weights, otherwise the trend is flat with no
    calorie adjustment.
    """
    if not checkins:
        return WeightTrend()

    window_start = checkins[-1].date - timedelta(days=WEIGHT_WINDOW_DAYS - 1)
    points = [
        WeightPoint(date=checkin.date, weight=checkin.weight)
        for checkin in checkins
        if checkin.date >= window_start and checkin.weight is not None
    ]
    if len(points) < 2:
        return WeightTrend(points=points)

    delta = round(points[-1].weight - points[0].weight, 2)
    if abs(delta) < FLAT_WEIGHT_KG:
        direction = TrendDirection.FLAT
    else:
        direction = TrendDirection.UP if delta > 0 else TrendDirection.DOWN

    return WeightTrend(
        points=points,
        delta_kg=delta,
        direction=direction,
        recommended_calorie_delta=calorie_delta_for(goal, direction),
    )


def build_trend_memory(goal: Goal, checkins: Sequence[CheckinData]) -> TrendMemory | None:
    """Build trend memory from recent check-ins, in any order.

    Args:
        goal: The user's goal (drives the calorie adjustment direction)
        checkins: Recent check-ins (typically the last 15-30)

    Returns:
        TrendMemory, or None with fewer than 4 check-ins
    """
    if len(checkins) < MIN_CHECKINS:
        return None

    ordered = sorted(checkins, key=lambda checkin: checkin.date)
    window = ordered[-EMA_WINDOW:]

    sleep = _scores(window, lambda c: c.sleep_hours, score_sleep)
    energy = _scores(window, lambda c: c.energy, score_energy)
    water = _scores(window, lambda c: c.water_l, score_water)
    stress = _scores(window, lambda c: c.stress, score_stress)

    scores = MetricScores(
        sleep=sleep[-1] if sleep else 0.0,
        energy=energy[-1] if energy else 0.0,
        water=water[-1] if water else 0.0,
        stress=stress[-1] if stress else 0.0,
    )
    ema = MetricScores(
        sleep=exponential_moving_average(sleep),
        energy=exponential_moving_average(energy),
        water=exponential_moving_average(water),
        stress=exponential_moving_average(stress),
    )

    soreness_parts = [", ".join(c.soreness) if c.soreness else "none" for c in window]
    digestion_parts = [str(c.digestion or Digestion.NORMAL) for c in window]

    return TrendMemory(
        scores=scores,
        ema=ema,
        soreness_history=f"Soreness in last {len(window)} days: {'; '.join(soreness_parts)}",
        soreness_streaks=soreness_streaks(ordered),
        digestion_history=f"Digestion in last {len(window)} days: {', '.join(digestion_parts)}",
        digestion_streaks=digestion_streaks(ordered),
        weight_trend=weight_trend(goal, ordered),
    )
