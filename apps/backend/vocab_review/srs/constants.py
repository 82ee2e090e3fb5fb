"""Scheduler constants and versioned priority weights.

SM-2 の定数と優先度スコアの重みをここに集約する。重みは版付きで管理し、
将来の調整で過去のスコアの意味が黙って変わらないようにする。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from ..models.review import ReviewStatus


@dataclass(frozen=True)
class SchedulerConfig:
    """Constants of the SM-2 state transition."""

    ease_floor: float = 1.3
    default_ease_factor: float = 2.5
    default_interval: int = 1
    first_interval: int = 1
    second_interval: int = 6
    passing_rating: int = 3
    min_rating: int = 0
    max_rating: int = 5
    # 100 年。これを超える次回日時は datetime の範囲を外れうる
    max_interval: int = 36500


SCHEDULER_CONFIG = SchedulerConfig()


def _default_status_scores() -> Mapping[ReviewStatus, float]:
    return MappingProxyType(
        {
            ReviewStatus.new: 20.0,
            ReviewStatus.learning: 15.0,
            ReviewStatus.mastered: 5.0,
        }
    )


@dataclass(frozen=True)
class PriorityWeights:
    """Caps and coefficients of the five priority components."""

    version: str = "v1"

    # difficulty
    difficulty_cap: float = 35.0
    difficulty_ease_origin: float = 1.3
    difficulty_slope: float = 25.0
    struggle_ease_threshold: float = 2.0

    # efficiency
    efficiency_weight: float = 25.0
    days_per_expected_rep: float = 7.0
    forgetting_rate: float = 0.5
    forgetting_multiplier_cap: float = 2.0
    underperforming_threshold: float = 0.5

    # status
    status_scores: Mapping[ReviewStatus, float] = field(default_factory=_default_status_scores)
    struggling_learning_score: float = 18.0
    mastered_regression_score: float = 10.0

    # overdue
    overdue_cap: float = 20.0
    overdue_day_hours: int = 24
    overdue_hourly_rate: float = 0.5
    overdue_base_after_day: float = 12.0
    overdue_daily_rate: float = 2.0
    overdue_extra_cap: float = 8.0

    # interval (logistic decay)
    interval_cap: float = 15.0
    interval_midpoint: float = 10.0
    interval_steepness: float = 5.0

    total_cap: int = 100


PRIORITY_WEIGHTS_V1 = PriorityWeights()

PRIORITY_WEIGHTS: Mapping[str, PriorityWeights] = MappingProxyType(
    {PRIORITY_WEIGHTS_V1.version: PRIORITY_WEIGHTS_V1}
)


def get_priority_weights(version: str) -> PriorityWeights:
    """Return the registered weight set for `version`.

    Raises KeyError for an unknown version so misconfiguration fails at startup.
    """
    try:
        return PRIORITY_WEIGHTS[version]
    except KeyError:
        raise KeyError(
            f"unknown priority weights version {version!r}; "
            f"known: {sorted(PRIORITY_WEIGHTS)}"
        ) from None
