"""SM-2 state transition.

`advance` maps the current review state and a 0-5 rating to the next state.
`next_status` is the matching label transition; callers must apply both so
the label never drifts from the schedule.

Ease factor update (every rating, pass or fail)::

    EF' = max(1.3, EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02)))

    q:   0      1      2      3      4     5
    dEF: -0.80  -0.54  -0.32  -0.14  0.00  +0.10
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta

from ..errors import InvalidRating, InvalidReviewState
from ..models.review import ReviewStatus
from .constants import SCHEDULER_CONFIG, SchedulerConfig


@dataclass(frozen=True)
class ScheduleResult:
    interval: int
    ease_factor: float
    repetitions: int
    next_review_at: datetime


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (not banker's rounding)."""
    return int(math.floor(value + 0.5))


def validate_rating(rating: object, config: SchedulerConfig = SCHEDULER_CONFIG) -> int:
    """Return `rating` if it is an int within the configured range.

    bool は int のサブクラスだが評価値としては受け付けない。範囲外を丸めずに拒否する。
    """
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise InvalidRating(
            f"rating must be an integer between {config.min_rating} and {config.max_rating}",
            rating=repr(rating),
        )
    if not config.min_rating <= rating <= config.max_rating:
        raise InvalidRating(
            f"rating must be between {config.min_rating} and {config.max_rating}",
            rating=rating,
        )
    return rating


def _validate_state(
    interval: int, ease_factor: float, repetitions: int, config: SchedulerConfig
) -> None:
    if isinstance(interval, bool) or not isinstance(interval, int) or interval < 1:
        raise InvalidReviewState("interval must be an integer >= 1", interval=interval)
    if not math.isfinite(ease_factor) or ease_factor < config.ease_floor:
        raise InvalidReviewState(
            f"ease_factor must be a finite number >= {config.ease_floor}",
            ease_factor=ease_factor,
        )
    if isinstance(repetitions, bool) or not isinstance(repetitions, int) or repetitions < 0:
        raise InvalidReviewState("repetitions must be an integer >= 0", repetitions=repetitions)


def next_ease_factor(
    ease_factor: float, rating: int, config: SchedulerConfig = SCHEDULER_CONFIG
) -> float:
    miss = config.max_rating - rating
    return max(config.ease_floor, ease_factor + (0.1 - miss * (0.08 + miss * 0.02)))


def advance(
    interval: int,
    ease_factor: float,
    repetitions: int,
    rating: int,
    now: datetime,
    config: SchedulerConfig = SCHEDULER_CONFIG,
) -> ScheduleResult:
    """Compute the next review state for one rating.

    - 失敗（rating < 3）: repetitions=0, interval=1 にリセット。ease の減点は保持。
    - 成功: repetitions+1。1回目→1日、2回目→6日、以降は round(旧interval × 新ease)。

    Raises InvalidRating / InvalidReviewState before computing anything.
    """
    validate_rating(rating, config)
    _validate_state(interval, ease_factor, repetitions, config)

    new_ease = next_ease_factor(ease_factor, rating, config)

    if rating < config.passing_rating:
        new_repetitions = 0
        new_interval = config.first_interval
    else:
        new_repetitions = repetitions + 1
        if new_repetitions == 1:
            new_interval = config.first_interval
        elif new_repetitions == 2:
            new_interval = config.second_interval
        else:
            grown = min(interval, config.max_interval) * new_ease
            if grown >= config.max_interval:
                new_interval = config.max_interval
            else:
                new_interval = max(1, round_half_up(grown))

    return ScheduleResult(
        interval=new_interval,
        ease_factor=new_ease,
        repetitions=new_repetitions,
        next_review_at=now + timedelta(days=new_interval),
    )


def next_status(rating: int, config: SchedulerConfig = SCHEDULER_CONFIG) -> ReviewStatus:
    """Label after a rating: `learning` on a pass, `new` on a fail.

    A failed `mastered` item becomes `new`, not `learning`. Kept as-is pending
    product review.
    """
    validate_rating(rating, config)
    if rating >= config.passing_rating:
        return ReviewStatus.learning
    return ReviewStatus.new


def new_item_defaults(now: datetime, config: SchedulerConfig = SCHEDULER_CONFIG) -> ScheduleResult:
    """Initial state for a freshly created item; due immediately."""
    return ScheduleResult(
        interval=config.default_interval,
        ease_factor=config.default_ease_factor,
        repetitions=0,
        next_review_at=now,
    )
