"""Spaced-repetition core: SM-2 scheduling, priority scoring and selection.

Everything in this package is pure and synchronous; persistence lives in
``vocab_review.store``.
"""

from .constants import (
    PRIORITY_WEIGHTS,
    PRIORITY_WEIGHTS_V1,
    SCHEDULER_CONFIG,
    PriorityWeights,
    SchedulerConfig,
    get_priority_weights,
)
from .display import ease_difficulty, ease_stars, format_interval, is_due, rating_description
from .priority import PriorityScore, ScoreBreakdown, score
from .scheduler import (
    ScheduleResult,
    advance,
    new_item_defaults,
    next_status,
    validate_rating,
)
from .selector import (
    PriorityMode,
    PriorityRange,
    RankedItem,
    SelectionResult,
    SelectionStats,
    parse_priority_mode,
    select,
    validate_limit,
)

__all__ = [
    # Scheduler
    "ScheduleResult",
    "advance",
    "new_item_defaults",
    "next_status",
    "validate_rating",
    # Priority
    "PriorityScore",
    "ScoreBreakdown",
    "score",
    # Selector
    "PriorityMode",
    "PriorityRange",
    "RankedItem",
    "SelectionResult",
    "SelectionStats",
    "parse_priority_mode",
    "select",
    "validate_limit",
    # Display
    "ease_difficulty",
    "ease_stars",
    "format_interval",
    "is_due",
    "rating_description",
    # Parameters
    "PRIORITY_WEIGHTS",
    "PRIORITY_WEIGHTS_V1",
    "SCHEDULER_CONFIG",
    "PriorityWeights",
    "SchedulerConfig",
    "get_priority_weights",
]
