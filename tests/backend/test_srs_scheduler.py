"""SM-2 の状態遷移（advance / next_status / new_item_defaults）の検証。"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from vocab_review.errors import InvalidRating, InvalidReviewState
from vocab_review.models.review import ReviewStatus
from vocab_review.srs.constants import SCHEDULER_CONFIG
from vocab_review.srs.scheduler import (
    advance,
    new_item_defaults,
    next_ease_factor,
    next_status,
    round_half_up,
    validate_rating,
)

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)


def test_first_success_schedules_one_day_and_raises_ease() -> None:
    result = advance(1, 2.5, 0, 5, T0)

    assert result.ease_factor == pytest.approx(2.6)
    assert result.repetitions == 1
    assert result.interval == 1
    assert result.next_review_at == T0 + timedelta(days=1)


def test_second_success_schedules_six_days() -> None:
    result = advance(1, 2.5, 1, 5, T0)

    assert result.repetitions == 2
    assert result.interval == 6
    assert result.next_review_at == T0 + timedelta(days=6)


def test_third_success_multiplies_previous_interval_by_new_ease() -> None:
    result = advance(6, 2.6, 2, 4, T0)

    # rating 4 leaves the ease factor unchanged: round(6 * 2.6) = 16
    assert result.ease_factor == pytest.approx(2.6)
    assert result.repetitions == 3
    assert result.interval == 16


def test_failure_resets_repetitions_and_interval_but_keeps_ease_penalty() -> None:
    result = advance(6, 2.6, 2, 0, T0)

    assert result.repetitions == 0
    assert result.interval == 1
    assert result.ease_factor == pytest.approx(1.8)
    assert result.next_review_at == T0 + timedelta(days=1)


@pytest.mark.parametrize(
    ("rating", "delta"),
    [(0, -0.80), (1, -0.54), (2, -0.32), (3, -0.14), (4, 0.0), (5, 0.10)],
)
def test_ease_delta_per_rating(rating: int, delta: float) -> None:
    assert next_ease_factor(2.5, rating) == pytest.approx(2.5 + delta)


def test_ease_factor_never_drops_below_floor() -> None:
    state = (1, 1.3, 0)
    for _ in range(5):
        result = advance(*state, 0, T0)
        assert result.ease_factor >= SCHEDULER_CONFIG.ease_floor
        state = (result.interval, result.ease_factor, result.repetitions)
    assert state[1] == pytest.approx(1.3)


def test_interval_is_capped_for_huge_inputs() -> None:
    result = advance(SCHEDULER_CONFIG.max_interval, 2.5, 10, 5, T0)

    assert result.interval == SCHEDULER_CONFIG.max_interval
    assert result.next_review_at == T0 + timedelta(days=SCHEDULER_CONFIG.max_interval)


def test_long_pass_streak_keeps_invariants() -> None:
    interval, ease, reps = 1, 2.5, 0
    for _ in range(30):
        result = advance(interval, ease, reps, 5, T0)
        assert result.interval >= 1
        if reps >= 2:
            assert result.interval >= interval
        assert result.ease_factor >= 1.3
        assert result.repetitions == reps + 1
        interval, ease, reps = result.interval, result.ease_factor, result.repetitions
    assert interval == SCHEDULER_CONFIG.max_interval


def test_advance_is_deterministic() -> None:
    assert advance(6, 2.36, 2, 3, T0) == advance(6, 2.36, 2, 3, T0)


@pytest.mark.parametrize("rating", [-1, 6, 2.5, "3", None, True])
def test_invalid_ratings_are_rejected(rating: object) -> None:
    with pytest.raises(InvalidRating):
        advance(1, 2.5, 0, rating, T0)  # type: ignore[arg-type]


def test_validate_rating_returns_value_in_range() -> None:
    assert [validate_rating(r) for r in range(6)] == [0, 1, 2, 3, 4, 5]


@pytest.mark.parametrize(
    ("interval", "ease", "reps"),
    [(0, 2.5, 0), (1, 1.2, 0), (1, float("nan"), 0), (1, float("inf"), 0), (1, 2.5, -1)],
)
def test_invalid_state_is_rejected(interval: int, ease: float, reps: int) -> None:
    with pytest.raises(InvalidReviewState):
        advance(interval, ease, reps, 4, T0)


@pytest.mark.parametrize(
    ("rating", "expected"),
    [
        (0, ReviewStatus.new),
        (2, ReviewStatus.new),
        (3, ReviewStatus.learning),
        (5, ReviewStatus.learning),
    ],
)
def test_next_status_follows_passing_threshold(rating: int, expected: ReviewStatus) -> None:
    assert next_status(rating) is expected


def test_next_status_rejects_out_of_range() -> None:
    with pytest.raises(InvalidRating):
        next_status(7)


def test_new_item_defaults_are_due_immediately() -> None:
    defaults = new_item_defaults(T0)

    assert defaults.interval == 1
    assert defaults.ease_factor == 2.5
    assert defaults.repetitions == 0
    assert defaults.next_review_at == T0


@pytest.mark.parametrize(("value", "expected"), [(0.5, 1), (1.5, 2), (2.5, 3), (2.49, 2)])
def test_round_half_up(value: float, expected: int) -> None:
    assert round_half_up(value) == expected
