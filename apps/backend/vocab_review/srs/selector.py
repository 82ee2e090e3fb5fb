from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Generic, Sequence, TypeVar

from ..errors import InvalidLimit, InvalidPriorityMode
from ..models.review import ReviewItem, ensure_utc
from .constants import PRIORITY_WEIGHTS_V1, PriorityWeights
from .priority import PriorityScore, score

ItemT = TypeVar("ItemT", bound=ReviewItem)


class PriorityMode(str, Enum):
    """Selection policy for a review session."""

    time = "time"
    difficulty = "difficulty"


@dataclass(frozen=True)
class PriorityRange:
    highest: int
    lowest: int


@dataclass(frozen=True)
class SelectionStats:
    total_due: int
    priority_mode: PriorityMode
    priority_range: PriorityRange | None = None


@dataclass(frozen=True)
class RankedItem(Generic[ItemT]):
    item: ItemT
    priority: PriorityScore | None = None


@dataclass(frozen=True)
class SelectionResult(Generic[ItemT]):
    entries: list[RankedItem[ItemT]] = field(default_factory=list)
    stats: SelectionStats | None = None

    @property
    def items(self) -> list[ItemT]:
        return [entry.item for entry in self.entries]

    @property
    def count(self) -> int:
        return len(self.entries)


def parse_priority_mode(mode: PriorityMode | str) -> PriorityMode:
    if isinstance(mode, PriorityMode):
        return mode
    try:
        return PriorityMode(str(mode).strip().lower())
    except ValueError:
        raise InvalidPriorityMode(
            "priority must be one of: time, difficulty", priority=str(mode)
        ) from None


def validate_limit(limit: object, maximum: int | None = None) -> int:
    """Return `limit` if it is a positive int (and within `maximum` when given).

    上限超過や 0 以下は丸めずに InvalidLimit として拒否する。
    """
    if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
        raise InvalidLimit("limit must be a positive integer", limit=repr(limit))
    if maximum is not None and limit > maximum:
        raise InvalidLimit(f"limit must be at most {maximum}", limit=limit, maximum=maximum)
    return limit


def select(
    due_items: Sequence[ItemT],
    mode: PriorityMode | str,
    limit: int,
    include_stats: bool = False,
    *,
    now: datetime | None = None,
    weights: PriorityWeights = PRIORITY_WEIGHTS_V1,
    total_due: int | None = None,
) -> SelectionResult[ItemT]:
    """Order and truncate a due set.

    - ``time``: oldest `next_review_at` first.
    - ``difficulty``: highest priority score first; ties keep the input order.

    `total_due` overrides the pre-truncation size reported in the stats, for
    callers that already pushed the limit into the store query.
    """
    priority_mode = parse_priority_mode(mode)
    validate_limit(limit)

    if priority_mode is PriorityMode.time:
        ordered = sorted(due_items, key=lambda item: item.next_review_at)
        entries: list[RankedItem[ItemT]] = [RankedItem(item=item) for item in ordered[:limit]]
    else:
        at = ensure_utc(now) if now is not None else datetime.now(UTC)
        scored = [RankedItem(item=item, priority=score(item, at, weights)) for item in due_items]
        # list.sort は reverse=True でも安定。同点はストアの返却順を保つ
        scored.sort(key=lambda entry: entry.priority.total, reverse=True)  # type: ignore[union-attr]
        entries = scored[:limit]

    stats: SelectionStats | None = None
    if include_stats:
        priority_range: PriorityRange | None = None
        if priority_mode is PriorityMode.difficulty and entries:
            totals = [entry.priority.total for entry in entries if entry.priority is not None]
            priority_range = PriorityRange(highest=max(totals), lowest=min(totals))
        stats = SelectionStats(
            total_due=len(due_items) if total_due is None else total_due,
            priority_mode=priority_mode,
            priority_range=priority_range,
        )

    return SelectionResult(entries=entries, stats=stats)
