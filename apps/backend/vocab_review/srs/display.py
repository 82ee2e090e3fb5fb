"""Browse-time presentation helpers layered on the scheduler.

一覧画面向けの表示用ユーティリティ。スケジューリングの計算は持たず、
scheduler の状態を人が読める形に整形するだけにとどめる。
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime

from ..models.review import ensure_utc
from .constants import SCHEDULER_CONFIG
from .scheduler import round_half_up, validate_rating

_MAX_STARS = 5

# (lower bound of ease factor, label, stars), checked top-down
_EASE_LEVELS: tuple[tuple[float, str, int], ...] = (
    (2.8, "Very Easy", 5),
    (2.4, "Easy", 4),
    (2.0, "Medium", 3),
    (1.6, "Hard", 2),
)

_RATING_DESCRIPTIONS = {
    0: "Complete blackout",
    1: "Incorrect with difficult recall",
    2: "Incorrect with easy recall",
    3: "Correct with difficult recall",
    4: "Correct with some hesitation",
    5: "Perfect recall",
}


@dataclass(frozen=True)
class EaseDifficulty:
    label: str
    stars: int


def is_due(next_review_at: datetime, now: datetime | None = None) -> bool:
    """True when the item should be shown at `now` (inclusive)."""
    at = ensure_utc(now) if now is not None else datetime.now(UTC)
    return ensure_utc(next_review_at) <= at


def ease_difficulty(ease_factor: float) -> EaseDifficulty:
    for threshold, label, stars in _EASE_LEVELS:
        if ease_factor >= threshold:
            return EaseDifficulty(label=label, stars=stars)
    return EaseDifficulty(label="Very Hard", stars=1)


def ease_stars(ease_factor: float) -> str:
    """e.g. ``★★★☆☆`` for a medium ease factor."""
    stars = ease_difficulty(ease_factor).stars
    return "★" * stars + "☆" * (_MAX_STARS - stars)


def format_interval(days: int) -> str:
    if days == 1:
        return "1 day"
    if days < 30:
        return f"{days} days"
    if days < 365:
        months = round_half_up(days / 30)
        return "1 month" if months == 1 else f"{months} months"
    years = round_half_up(days / 365)
    return "1 year" if years == 1 else f"{years} years"


def rating_description(rating: int) -> str:
    return _RATING_DESCRIPTIONS[validate_rating(rating, SCHEDULER_CONFIG)]
