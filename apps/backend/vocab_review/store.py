from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Iterator

from .config import settings
from .errors import ItemNotFound, OwnershipMismatch, StaleReviewState
from .id_factory import generate_vocabulary_id
from .models.review import ReviewStatus, VocabularyWord, ensure_utc
from .srs.scheduler import ScheduleResult, new_item_defaults

_WORD_COLUMNS = (
    "id, user_id, word, word_romanization, translation, sentence, "
    "sentence_romanization, sentence_translation, status, interval, ease_factor, "
    "repetitions, next_review, created_at, updated_at"
)


def _iso(value: datetime) -> str:
    """Fixed-width UTC ISO string so TEXT comparison matches time order."""
    return ensure_utc(value).isoformat(timespec="microseconds")


def _parse(value: str | None) -> datetime | None:
    if value is None:
        return None
    return ensure_utc(datetime.fromisoformat(value))


@dataclass(frozen=True)
class ReviewLogEntry:
    vocabulary_id: str
    reviewed_at: datetime
    rating: int
    interval: int
    ease_factor: float
    repetitions: int
    next_review_at: datetime


@dataclass(frozen=True)
class LearningStats:
    total: int
    new: int
    learning: int
    mastered: int
    due_now: int


class VocabularySQLiteStore:
    """SQLite-backed store for vocabulary review items.

    - すべての読み書きは所有者（user_id）でスコープする
    - 評価の適用は BEGIN IMMEDIATE で直列化し、updated_at の比較で
      同一アイテムへの二重適用・競合更新を拒否する
    - 評価履歴は reviews テーブルに追記する
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        self._ensure_dirs()
        self._init_db()

    # --- low-level helpers ---
    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            self.db_path, timeout=10.0, isolation_level=None, check_same_thread=False
        )
        conn.row_factory = sqlite3.Row
        with conn:  # autocommit on pragma
            conn.execute("pragma journal_mode=WAL;")
            conn.execute("pragma foreign_keys=ON;")
        return conn

    @contextmanager
    def _conn(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()

    def _ensure_dirs(self) -> None:
        p = Path(self.db_path)
        if p.parent and not p.parent.exists():
            p.parent.mkdir(parents=True, exist_ok=True)

    def _init_db(self) -> None:
        with self._conn() as conn:
            with conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS vocabulary (
                        id TEXT PRIMARY KEY,
                        user_id TEXT NOT NULL,
                        word TEXT NOT NULL,
                        word_romanization TEXT NOT NULL DEFAULT '',
                        translation TEXT NOT NULL,
                        sentence TEXT NOT NULL,
                        sentence_romanization TEXT NOT NULL DEFAULT '',
                        sentence_translation TEXT NOT NULL DEFAULT '',
                        status TEXT NOT NULL DEFAULT 'new',
                        interval INTEGER NOT NULL DEFAULT 1,
                        ease_factor REAL NOT NULL DEFAULT 2.5,
                        repetitions INTEGER NOT NULL DEFAULT 0,
                        next_review TEXT NOT NULL,
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    );
                    """
                )
                conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_vocabulary_user_due ON vocabulary(user_id, next_review);"
                )
                conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_vocabulary_user_created ON vocabulary(user_id, created_at);"
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS reviews (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        vocabulary_id TEXT NOT NULL,
                        user_id TEXT NOT NULL,
                        reviewed_at TEXT NOT NULL,
                        rating INTEGER NOT NULL,
                        interval INTEGER NOT NULL,
                        ease_factor REAL NOT NULL,
                        repetitions INTEGER NOT NULL,
                        next_review TEXT NOT NULL,
                        FOREIGN KEY(vocabulary_id) REFERENCES vocabulary(id) ON DELETE CASCADE
                    );
                    """
                )
                conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_reviews_vocabulary ON reviews(vocabulary_id, reviewed_at);"
                )

    @staticmethod
    def _row_to_word(row: sqlite3.Row) -> VocabularyWord:
        return VocabularyWord(
            id=row["id"],
            owner_id=row["user_id"],
            word=row["word"],
            word_romanization=row["word_romanization"] or "",
            translation=row["translation"],
            sentence=row["sentence"],
            sentence_romanization=row["sentence_romanization"] or "",
            sentence_translation=row["sentence_translation"] or "",
            status=ReviewStatus(row["status"]),
            interval=int(row["interval"]),
            ease_factor=float(row["ease_factor"]),
            repetitions=int(row["repetitions"]),
            next_review_at=_parse(row["next_review"]),
            created_at=_parse(row["created_at"]),
            updated_at=_parse(row["updated_at"]),
        )

    @staticmethod
    def _check_owner(row: sqlite3.Row | None, owner_id: str, word_id: str) -> sqlite3.Row:
        if row is None:
            raise ItemNotFound("Vocabulary word not found", id=word_id)
        if row["user_id"] != owner_id:
            raise OwnershipMismatch("Vocabulary word belongs to another user", id=word_id)
        return row

    # --- public API ---
    def create_word(
        self,
        owner_id: str,
        *,
        word: str,
        translation: str,
        sentence: str,
        word_romanization: str = "",
        sentence_romanization: str = "",
        sentence_translation: str = "",
        now: datetime | None = None,
    ) -> VocabularyWord:
        """Insert a new word with default scheduling state (due immediately)."""
        at = ensure_utc(now) if now is not None else datetime.now(UTC)
        defaults = new_item_defaults(at)
        word_id = generate_vocabulary_id()
        with self._conn() as conn:
            with conn:
                conn.execute(
                    f"""
                    INSERT INTO vocabulary({_WORD_COLUMNS})
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
                    """,
                    (
                        word_id,
                        owner_id,
                        word,
                        word_romanization,
                        translation,
                        sentence,
                        sentence_romanization,
                        sentence_translation,
                        ReviewStatus.new.value,
                        defaults.interval,
                        defaults.ease_factor,
                        defaults.repetitions,
                        _iso(defaults.next_review_at),
                        _iso(at),
                        _iso(at),
                    ),
                )
        return self.get_word(owner_id, word_id)

    def get_word(self, owner_id: str, word_id: str) -> VocabularyWord:
        with self._conn() as conn:
            row = conn.execute(
                f"SELECT {_WORD_COLUMNS} FROM vocabulary WHERE id = ?;", (word_id,)
            ).fetchone()
        return self._row_to_word(self._check_owner(row, owner_id, word_id))

    def list_words(self, owner_id: str, status: ReviewStatus | None = None) -> list[VocabularyWord]:
        """Return the owner's words, newest first, optionally filtered by status."""
        query = f"SELECT {_WORD_COLUMNS} FROM vocabulary WHERE user_id = ?"
        params: list[object] = [owner_id]
        if status is not None:
            query += " AND status = ?"
            params.append(ReviewStatus(status).value)
        query += " ORDER BY created_at DESC, id ASC;"
        with self._conn() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_word(row) for row in rows]

    def list_due(
        self, owner_id: str, now: datetime, limit: int | None = None
    ) -> list[VocabularyWord]:
        """Return words with `next_review <= now`, oldest due first.

        `limit` を渡すと time モードの並び替え・切り詰めを SQL 側で行う。
        """
        query = (
            f"SELECT {_WORD_COLUMNS} FROM vocabulary "
            "WHERE user_id = ? AND next_review <= ? ORDER BY next_review ASC, id ASC"
        )
        params: list[object] = [owner_id, _iso(now)]
        if limit is not None:
            query += " LIMIT ?"
            params.append(int(limit))
        with self._conn() as conn:
            rows = conn.execute(query + ";", params).fetchall()
        return [self._row_to_word(row) for row in rows]

    def count_due(self, owner_id: str, now: datetime) -> int:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT COUNT(1) AS c FROM vocabulary WHERE user_id = ? AND next_review <= ?;",
                (owner_id, _iso(now)),
            ).fetchone()
        return int(row["c"])

    def apply_review(
        self,
        owner_id: str,
        word_id: str,
        *,
        schedule: ScheduleResult,
        status: ReviewStatus,
        rating: int,
        now: datetime,
        expected_updated_at: datetime,
    ) -> VocabularyWord:
        """Persist a computed schedule atomically and log the rating.

        `expected_updated_at` が現在値と一致しない場合は StaleReviewState を送出し、
        何も書き込まない（compare-and-swap）。
        """
        conn = self._connect()
        try:
            # BEGIN IMMEDIATE to avoid concurrent writers on the same row
            conn.execute("BEGIN IMMEDIATE;")
            row = conn.execute(
                f"SELECT {_WORD_COLUMNS} FROM vocabulary WHERE id = ?;", (word_id,)
            ).fetchone()
            self._check_owner(row, owner_id, word_id)
            expected = _iso(expected_updated_at)
            if row["updated_at"] != expected:
                raise StaleReviewState(
                    "Vocabulary word was modified by another review",
                    id=word_id,
                    expected_updated_at=expected,
                    current_updated_at=row["updated_at"],
                )

            updated_at = _iso(now)
            next_review = _iso(schedule.next_review_at)
            conn.execute(
                """
                UPDATE vocabulary
                SET interval = ?, ease_factor = ?, repetitions = ?, next_review = ?,
                    status = ?, updated_at = ?
                WHERE id = ? AND user_id = ? AND updated_at = ?;
                """,
                (
                    schedule.interval,
                    schedule.ease_factor,
                    schedule.repetitions,
                    next_review,
                    ReviewStatus(status).value,
                    updated_at,
                    word_id,
                    owner_id,
                    expected,
                ),
            )
            conn.execute(
                """
                INSERT INTO reviews(
                    vocabulary_id, user_id, reviewed_at, rating, interval, ease_factor, repetitions, next_review
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    word_id,
                    owner_id,
                    updated_at,
                    rating,
                    schedule.interval,
                    schedule.ease_factor,
                    schedule.repetitions,
                    next_review,
                ),
            )
            updated_row = conn.execute(
                f"SELECT {_WORD_COLUMNS} FROM vocabulary WHERE id = ?;", (word_id,)
            ).fetchone()
            conn.execute("COMMIT;")
            return self._row_to_word(updated_row)
        except Exception:
            if conn.in_transaction:
                conn.execute("ROLLBACK;")
            raise
        finally:
            conn.close()

    def update_status(
        self, owner_id: str, word_id: str, status: ReviewStatus, now: datetime | None = None
    ) -> VocabularyWord:
        at = ensure_utc(now) if now is not None else datetime.now(UTC)
        with self._conn() as conn:
            with conn:
                row = conn.execute(
                    "SELECT id, user_id FROM vocabulary WHERE id = ?;", (word_id,)
                ).fetchone()
                self._check_owner(row, owner_id, word_id)
                conn.execute(
                    "UPDATE vocabulary SET status = ?, updated_at = ? WHERE id = ?;",
                    (ReviewStatus(status).value, _iso(at), word_id),
                )
        return self.get_word(owner_id, word_id)

    def delete_word(self, owner_id: str, word_id: str) -> None:
        with self._conn() as conn:
            with conn:
                row = conn.execute(
                    "SELECT id, user_id FROM vocabulary WHERE id = ?;", (word_id,)
                ).fetchone()
                self._check_owner(row, owner_id, word_id)
                conn.execute("DELETE FROM vocabulary WHERE id = ?;", (word_id,))

    # --- stats & history ---
    def learning_stats(self, owner_id: str, now: datetime) -> LearningStats:
        """Return per-status counts and the number of words due at `now`."""
        with self._conn() as conn:
            rows = conn.execute(
                "SELECT status, COUNT(1) AS c FROM vocabulary WHERE user_id = ? GROUP BY status;",
                (owner_id,),
            ).fetchall()
        counts = {row["status"]: int(row["c"]) for row in rows}
        return LearningStats(
            total=sum(counts.values()),
            new=counts.get(ReviewStatus.new.value, 0),
            learning=counts.get(ReviewStatus.learning.value, 0),
            mastered=counts.get(ReviewStatus.mastered.value, 0),
            due_now=self.count_due(owner_id, now),
        )

    def review_history(self, owner_id: str, word_id: str, limit: int = 20) -> list[ReviewLogEntry]:
        """直近の評価履歴を新しい順に最大 limit 件返す。"""
        self.get_word(owner_id, word_id)
        with self._conn() as conn:
            rows = conn.execute(
                """
                SELECT vocabulary_id, reviewed_at, rating, interval, ease_factor, repetitions, next_review
                FROM reviews
                WHERE vocabulary_id = ? AND user_id = ?
                ORDER BY reviewed_at DESC, id DESC
                LIMIT ?;
                """,
                (word_id, owner_id, int(limit)),
            ).fetchall()
        return [
            ReviewLogEntry(
                vocabulary_id=row["vocabulary_id"],
                reviewed_at=_parse(row["reviewed_at"]),
                rating=int(row["rating"]),
                interval=int(row["interval"]),
                ease_factor=float(row["ease_factor"]),
                repetitions=int(row["repetitions"]),
                next_review_at=_parse(row["next_review"]),
            )
            for row in rows
        ]


# module-level singleton store (wired to settings)
store = VocabularySQLiteStore(db_path=settings.srs_db_path)
