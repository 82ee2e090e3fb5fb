"""SQLite ストア（所有者スコープ、due 抽出、CAS 付き評価適用）の検証。"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from vocab_review.errors import ItemNotFound, OwnershipMismatch, StaleReviewState
from vocab_review.models.review import ReviewStatus
from vocab_review.srs.scheduler import advance
from vocab_review.store import VocabularySQLiteStore

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)


@pytest.fixture()
def store(tmp_path: Path) -> VocabularySQLiteStore:
    return VocabularySQLiteStore(str(tmp_path / "nested" / "srs.sqlite3"))


def _create(store: VocabularySQLiteStore, owner: str = "alice", word: str = "น้ำ", now: datetime = T0):
    return store.create_word(owner, word=word, translation="water", sentence=f"{word} ครับ", now=now)


def test_created_word_has_defaults_and_is_due_immediately(store: VocabularySQLiteStore) -> None:
    word = _create(store)

    assert word.owner_id == "alice"
    assert word.status is ReviewStatus.new
    assert (word.interval, word.ease_factor, word.repetitions) == (1, 2.5, 0)
    assert word.next_review_at == T0
    assert word.created_at == T0
    assert [w.id for w in store.list_due("alice", T0)] == [word.id]


def test_list_due_orders_oldest_first_and_honours_limit(store: VocabularySQLiteStore) -> None:
    late = _create(store, word="a", now=T0 + timedelta(hours=2))
    early = _create(store, word="b", now=T0)
    future = _create(store, word="c", now=T0 + timedelta(days=3))

    due = store.list_due("alice", T0 + timedelta(hours=3))

    assert [w.id for w in due] == [early.id, late.id]
    assert future.id not in {w.id for w in due}
    assert [w.id for w in store.list_due("alice", T0 + timedelta(hours=3), limit=1)] == [early.id]
    assert store.count_due("alice", T0 + timedelta(hours=3)) == 2


def test_reads_are_scoped_to_owner(store: VocabularySQLiteStore) -> None:
    word = _create(store, owner="alice")
    _create(store, owner="bob")

    assert [w.id for w in store.list_words("alice")] == [word.id]
    with pytest.raises(OwnershipMismatch):
        store.get_word("bob", word.id)
    with pytest.raises(ItemNotFound):
        store.get_word("alice", "missing")


def test_apply_review_persists_schedule_and_logs_history(store: VocabularySQLiteStore) -> None:
    word = _create(store)
    reviewed_at = T0 + timedelta(minutes=5)
    schedule = advance(word.interval, word.ease_factor, word.repetitions, 5, reviewed_at)

    updated = store.apply_review(
        "alice",
        word.id,
        schedule=schedule,
        status=ReviewStatus.learning,
        rating=5,
        now=reviewed_at,
        expected_updated_at=word.last_reviewed_at,
    )

    assert updated.status is ReviewStatus.learning
    assert updated.repetitions == 1
    assert updated.ease_factor == pytest.approx(2.6)
    assert updated.next_review_at == reviewed_at + timedelta(days=1)
    assert updated.updated_at == reviewed_at

    history = store.review_history("alice", word.id)
    assert len(history) == 1
    assert history[0].rating == 5
    assert history[0].reviewed_at == reviewed_at


def test_apply_review_rejects_stale_expected_state(store: VocabularySQLiteStore) -> None:
    word = _create(store)
    schedule = advance(1, 2.5, 0, 4, T0 + timedelta(minutes=1))
    store.apply_review(
        "alice",
        word.id,
        schedule=schedule,
        status=ReviewStatus.learning,
        rating=4,
        now=T0 + timedelta(minutes=1),
        expected_updated_at=word.last_reviewed_at,
    )

    with pytest.raises(StaleReviewState):
        store.apply_review(
            "alice",
            word.id,
            schedule=schedule,
            status=ReviewStatus.learning,
            rating=4,
            now=T0 + timedelta(minutes=2),
            expected_updated_at=word.last_reviewed_at,
        )

    # 拒否された評価は状態も履歴も変更しない
    current = store.get_word("alice", word.id)
    assert current.repetitions == 1
    assert len(store.review_history("alice", word.id)) == 1


def test_apply_review_checks_owner(store: VocabularySQLiteStore) -> None:
    word = _create(store)
    schedule = advance(1, 2.5, 0, 4, T0)

    with pytest.raises(OwnershipMismatch):
        store.apply_review(
            "mallory",
            word.id,
            schedule=schedule,
            status=ReviewStatus.learning,
            rating=4,
            now=T0,
            expected_updated_at=word.last_reviewed_at,
        )


def test_update_status_delete_and_stats(store: VocabularySQLiteStore) -> None:
    first = _create(store, word="a")
    second = _create(store, word="b", now=T0 + timedelta(days=5))

    store.update_status("alice", first.id, ReviewStatus.mastered, now=T0 + timedelta(hours=1))
    stats = store.learning_stats("alice", T0 + timedelta(days=1))

    assert (stats.total, stats.new, stats.learning, stats.mastered) == (2, 1, 0, 1)
    assert stats.due_now == 1
    assert [w.id for w in store.list_words("alice", ReviewStatus.mastered)] == [first.id]

    store.delete_word("alice", second.id)
    with pytest.raises(ItemNotFound):
        store.get_word("alice", second.id)
    with pytest.raises(OwnershipMismatch):
        store.delete_word("bob", first.id)
