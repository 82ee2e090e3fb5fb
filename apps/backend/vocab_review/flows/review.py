from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime

from ..config import Settings, settings as default_settings
from ..errors import SrsError
from ..logging import logger
from ..models.review import VocabularyWord, ensure_utc
from ..srs.constants import PriorityWeights, get_priority_weights
from ..srs.scheduler import ScheduleResult, advance, next_status, validate_rating
from ..srs.selector import PriorityMode, SelectionResult, parse_priority_mode, select, validate_limit
from ..store import VocabularySQLiteStore


@dataclass(frozen=True)
class RatingOutcome:
    word: VocabularyWord
    schedule: ScheduleResult


class ReviewFlow:
    """Orchestrate rating events and review sessions against the store.

    評価: 入力検証 → 読み込み → advance/next_status → CAS 付きで永続化。
    セッション: due 集合の取得 → Selector による並び替えと切り詰め。
    検証はすべて書き込みより前に行う。
    """

    def __init__(
        self,
        store: VocabularySQLiteStore,
        *,
        settings: Settings | None = None,
        weights: PriorityWeights | None = None,
    ) -> None:
        self.store = store
        self.settings = settings or default_settings
        self.weights = weights or get_priority_weights(self.settings.priority_weights_version)

    def rate(
        self,
        owner_id: str,
        word_id: str,
        rating: int,
        *,
        expected_updated_at: datetime | None = None,
        now: datetime | None = None,
    ) -> RatingOutcome:
        at = ensure_utc(now) if now is not None else datetime.now(UTC)
        try:
            validate_rating(rating)
            current = self.store.get_word(owner_id, word_id)
            schedule = advance(
                current.interval,
                current.ease_factor,
                current.repetitions,
                rating,
                at,
            )
            updated = self.store.apply_review(
                owner_id,
                word_id,
                schedule=schedule,
                status=next_status(rating),
                rating=rating,
                now=at,
                expected_updated_at=expected_updated_at or current.last_reviewed_at,
            )
        except SrsError as exc:
            logger.info(
                "review_rejected",
                owner_id=owner_id,
                word_id=word_id,
                rating=rating,
                error_code=exc.code,
            )
            raise

        logger.info(
            "review_rated",
            owner_id=owner_id,
            word_id=word_id,
            rating=rating,
            previous_status=current.status.value,
            status=updated.status.value,
            interval=schedule.interval,
            ease_factor=round(schedule.ease_factor, 4),
            repetitions=schedule.repetitions,
            next_review_at=schedule.next_review_at.isoformat(),
        )
        return RatingOutcome(word=updated, schedule=schedule)

    def due_session(
        self,
        owner_id: str,
        *,
        limit: int | None = None,
        priority: PriorityMode | str | None = None,
        include_stats: bool = False,
        now: datetime | None = None,
    ) -> SelectionResult[VocabularyWord]:
        """Select the words to review now.

        time モードでは並び替えと件数制限をストアのクエリへ押し下げる
        （全件ソート後の切り詰めと同じ結果になる）。difficulty モードは
        due 集合全体をスコアリングする必要があるため全件を読み込む。
        """
        at = ensure_utc(now) if now is not None else datetime.now(UTC)
        resolved_limit = validate_limit(
            self.settings.due_limit_default if limit is None else limit,
            maximum=self.settings.due_limit_max,
        )
        mode = parse_priority_mode(priority or self.settings.default_priority_mode)

        if mode is PriorityMode.time:
            due = self.store.list_due(owner_id, at, limit=resolved_limit)
            total_due = self.store.count_due(owner_id, at) if include_stats else None
        else:
            due = self.store.list_due(owner_id, at)
            total_due = None

        result = select(
            due,
            mode,
            resolved_limit,
            include_stats,
            now=at,
            weights=self.weights,
            total_due=total_due,
        )
        logger.info(
            "due_session_selected",
            owner_id=owner_id,
            priority_mode=mode.value,
            limit=resolved_limit,
            selected=result.count,
            fetched=len(due),
        )
        return result
