"""Multi-factor urgency score for due items.

Five additive components, each clamped on its own, then summed, rounded and
clamped into [0, 100]:

=========== ======= =================================================
component   range   driven by
=========== ======= =================================================
difficulty  0-35    low ease factor
efficiency  >= 0    few repetitions for the item's age, long gaps
status      0-20    new / learning / mastered label
overdue     0-20    hours past `next_review_at`
interval    0-15    short current interval (logistic decay)
=========== ======= =================================================

The efficiency component is only floored at zero; its forgetting multiplier
can push it above its 25-point weight. The total is still clamped.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from ..models.review import ReviewItem, ReviewStatus
from .constants import PRIORITY_WEIGHTS_V1, PriorityWeights
from .scheduler import round_half_up

_DAY = timedelta(days=1)
_HOUR = timedelta(hours=1)
# math.exp overflows just above 709
_EXP_LIMIT = 700.0
# beyond this interval the logistic term is already 0.0 in float precision
_INTERVAL_CEILING = 10_000


@dataclass(frozen=True)
class ScoreBreakdown:
    difficulty: float = 0.0
    efficiency: float = 0.0
    status: float = 0.0
    overdue: float = 0.0
    interval: float = 0.0

    def total(self) -> float:
        return self.difficulty + self.efficiency + self.status + self.overdue + self.interval

    def as_dict(self) -> dict[str, float]:
        return {
            "difficulty": self.difficulty,
            "efficiency": self.efficiency,
            "status": self.status,
            "overdue": self.overdue,
            "interval": self.interval,
        }


@dataclass(frozen=True)
class PriorityScore:
    total: int
    breakdown: ScoreBreakdown
    reasoning: list[str] = field(default_factory=list)
    weights_version: str = PRIORITY_WEIGHTS_V1.version


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _whole_units(delta: timedelta, unit: timedelta) -> int:
    """Floor of `delta / unit`; negative deltas floor towards -inf."""
    return math.floor(delta / unit)


def _difficulty_component(item: ReviewItem, w: PriorityWeights, reasoning: list[str]) -> float:
    value = _clamp(
        w.difficulty_cap - (item.ease_factor - w.difficulty_ease_origin) * w.difficulty_slope,
        0.0,
        w.difficulty_cap,
    )
    if item.ease_factor < w.struggle_ease_threshold:
        reasoning.append(f"High difficulty (ease factor: {item.ease_factor:.2f})")
    return value


def _efficiency_component(
    item: ReviewItem, now: datetime, w: PriorityWeights, reasoning: list[str]
) -> float:
    days_since_created = max(1, _whole_units(now - item.created_at, _DAY))
    days_since_last_review = _whole_units(now - item.last_reviewed_at, _DAY)

    expected_reps = max(1.0, days_since_created / w.days_per_expected_rep)
    normalized_efficiency = min(1.0, item.repetitions / expected_reps)
    forgetting_multiplier = min(
        w.forgetting_multiplier_cap,
        1 + (days_since_last_review / max(1, item.interval)) * w.forgetting_rate,
    )
    value = max(0.0, (1 - normalized_efficiency) * w.efficiency_weight * forgetting_multiplier)
    if normalized_efficiency < w.underperforming_threshold:
        reasoning.append("Underperforming - review frequency too low")
    return value


def _status_component(item: ReviewItem, w: PriorityWeights, reasoning: list[str]) -> float:
    struggling = item.ease_factor < w.struggle_ease_threshold
    if item.status == ReviewStatus.learning and struggling:
        reasoning.append("Struggling learning word - boosting priority")
        return w.struggling_learning_score
    if item.status == ReviewStatus.mastered and struggling:
        reasoning.append("Regression detected in mastered word")
        return w.mastered_regression_score
    return w.status_scores[item.status]


def _overdue_component(
    item: ReviewItem, now: datetime, w: PriorityWeights, reasoning: list[str]
) -> float:
    if item.next_review_at > now:
        return 0.0
    hours_overdue = _whole_units(now - item.next_review_at, _HOUR)
    if hours_overdue <= w.overdue_day_hours:
        value = hours_overdue * w.overdue_hourly_rate
    else:
        days_overdue = hours_overdue / w.overdue_day_hours
        value = w.overdue_base_after_day + min(
            w.overdue_extra_cap, days_overdue * w.overdue_daily_rate
        )
    if hours_overdue >= w.overdue_day_hours:
        reasoning.append(f"{hours_overdue // w.overdue_day_hours} days overdue")
    return _clamp(value, 0.0, w.overdue_cap)


def _interval_component(item: ReviewItem, w: PriorityWeights) -> float:
    exponent = (min(item.interval, _INTERVAL_CEILING) - w.interval_midpoint) / w.interval_steepness
    if exponent > _EXP_LIMIT:
        return 0.0
    return _clamp(w.interval_cap / (1 + math.exp(exponent)), 0.0, w.interval_cap)


def score(item: ReviewItem, now: datetime, weights: PriorityWeights = PRIORITY_WEIGHTS_V1) -> PriorityScore:
    """Score how urgently `item` should be reviewed at `now`.

    Pure: the same item and `now` always give the same result.
    """
    reasoning: list[str] = []
    breakdown = ScoreBreakdown(
        difficulty=_difficulty_component(item, weights, reasoning),
        efficiency=_efficiency_component(item, now, weights, reasoning),
        status=_status_component(item, weights, reasoning),
        overdue=_overdue_component(item, now, weights, reasoning),
        interval=_interval_component(item, weights),
    )
    total = int(_clamp(round_half_up(breakdown.total()), 0, weights.total_cap))
    return PriorityScore(
        total=total,
        breakdown=breakdown,
        reasoning=reasoning,
        weights_version=weights.version,
    )
