from __future__ import annotations

from datetime import UTC, datetime
from functools import partial

import anyio  # オフロード用
from fastapi import APIRouter, Depends, Query, Request

from ..auth import get_current_owner
from ..errors import InvalidLimit
from ..flows.review import ReviewFlow
from ..logging import logger
from ..models.review import ReviewStatus
from ..models.vocabulary import (
    DeleteResponse,
    DueResponse,
    DueStatsOut,
    DueWordOut,
    LearningStatsResponse,
    PriorityBreakdownOut,
    PriorityRangeOut,
    RatingRequest,
    RatingResponse,
    ReviewHistoryResponse,
    ReviewLogOut,
    ScheduleOut,
    VocabularyCreateRequest,
    VocabularyStatusUpdateRequest,
    VocabularyWordOut,
    WordListResponse,
    WordResponse,
)
from ..srs.selector import RankedItem, SelectionStats
from ..store import store

router = APIRouter(tags=["vocabulary"])


def _flow(request: Request) -> ReviewFlow:
    return ReviewFlow(store, weights=request.app.state.priority_weights)


def _parse_limit(raw: str | None) -> int | None:
    """Parse the `limit` query string; non-integers are rejected as InvalidLimit (400)."""
    if raw is None:
        return None
    try:
        return int(raw.strip())
    except ValueError:
        raise InvalidLimit("limit must be a positive integer", limit=raw) from None


def _due_word_out(entry: RankedItem) -> DueWordOut:
    out = DueWordOut.model_validate(entry.item.model_dump(exclude={"owner_id"}))
    if entry.priority is not None:
        out.priority_score = entry.priority.total
        out.priority_reasoning = list(entry.priority.reasoning)
        out.priority_breakdown = PriorityBreakdownOut(**entry.priority.breakdown.as_dict())
    return out


def _stats_out(stats: SelectionStats | None) -> DueStatsOut | None:
    if stats is None:
        return None
    priority_range = None
    if stats.priority_range is not None:
        priority_range = PriorityRangeOut(
            highest=stats.priority_range.highest,
            lowest=stats.priority_range.lowest,
        )
    return DueStatsOut(
        total_due=stats.total_due,
        priority_mode=stats.priority_mode.value,
        priority_range=priority_range,
    )


@router.post("", response_model=WordResponse, summary="単語を保存（即座に復習対象）")
async def create_vocabulary(
    req: VocabularyCreateRequest, owner_id: str = Depends(get_current_owner)
) -> WordResponse:
    word = await anyio.to_thread.run_sync(
        partial(store.create_word, owner_id, **req.model_dump())
    )
    logger.info("vocabulary_created", owner_id=owner_id, word_id=word.id)
    return WordResponse(word=VocabularyWordOut.from_word(word))


@router.get("", response_model=WordListResponse, summary="保存済み単語の一覧")
async def list_vocabulary(
    status: ReviewStatus | None = Query(default=None, description="new|learning|mastered"),
    owner_id: str = Depends(get_current_owner),
) -> WordListResponse:
    words = await anyio.to_thread.run_sync(partial(store.list_words, owner_id, status))
    return WordListResponse(words=[VocabularyWordOut.from_word(w) for w in words])


@router.put("", response_model=WordResponse, summary="学習ステータスを手動更新")
async def update_vocabulary_status(
    req: VocabularyStatusUpdateRequest, owner_id: str = Depends(get_current_owner)
) -> WordResponse:
    word = await anyio.to_thread.run_sync(
        partial(store.update_status, owner_id, req.id, req.status)
    )
    return WordResponse(word=VocabularyWordOut.from_word(word))


@router.delete("", response_model=DeleteResponse, summary="単語を削除")
async def delete_vocabulary(
    id: str = Query(min_length=1, description="削除する単語のID"),
    owner_id: str = Depends(get_current_owner),
) -> DeleteResponse:
    await anyio.to_thread.run_sync(partial(store.delete_word, owner_id, id))
    return DeleteResponse(success=True)


@router.get(
    "/due",
    response_model=DueResponse,
    response_model_exclude_none=True,
    summary="今復習すべき単語を取得",
)
async def get_due_vocabulary(
    request: Request,
    limit: str | None = Query(default=None, description="出題数（1..上限、既定20）"),
    priority: str | None = Query(default=None, description="time|difficulty"),
    include_stats: bool = Query(default=False, description="統計情報を含める"),
    owner_id: str = Depends(get_current_owner),
) -> DueResponse:
    """Return the review session for the caller.

    - difficulty: 優先度スコアの高い順。各語にスコア・内訳・理由を付与
    - time: 出題予定時刻の古い順
    不正な limit/priority は 400 を返す（丸めない）。
    """
    result = await anyio.to_thread.run_sync(
        partial(
            _flow(request).due_session,
            owner_id,
            limit=_parse_limit(limit),
            priority=priority,
            include_stats=include_stats,
        )
    )
    return DueResponse(
        words=[_due_word_out(entry) for entry in result.entries],
        count=result.count,
        stats=_stats_out(result.stats),
    )


@router.post("/rate", response_model=RatingResponse, summary="復習結果を評価（0..5）")
async def rate_vocabulary(
    req: RatingRequest, request: Request, owner_id: str = Depends(get_current_owner)
) -> RatingResponse:
    outcome = await anyio.to_thread.run_sync(
        partial(
            _flow(request).rate,
            owner_id,
            req.id,
            req.rating,
            expected_updated_at=req.expected_updated_at,
        )
    )
    schedule = outcome.schedule
    return RatingResponse(
        word=VocabularyWordOut.from_word(outcome.word),
        schedule=ScheduleOut(
            interval=schedule.interval,
            ease_factor=schedule.ease_factor,
            repetitions=schedule.repetitions,
            next_review_at=schedule.next_review_at,
        ),
    )


@router.get("/stats", response_model=LearningStatsResponse, summary="学習進捗の統計")
async def get_learning_stats(owner_id: str = Depends(get_current_owner)) -> LearningStatsResponse:
    stats = await anyio.to_thread.run_sync(
        partial(store.learning_stats, owner_id, datetime.now(UTC))
    )
    return LearningStatsResponse(
        total=stats.total,
        new=stats.new,
        learning=stats.learning,
        mastered=stats.mastered,
        due_now=stats.due_now,
    )


@router.get("/{word_id}/history", response_model=ReviewHistoryResponse)
async def get_review_history(
    word_id: str,
    limit: int = Query(default=20, ge=1, le=200, description="取得件数上限"),
    owner_id: str = Depends(get_current_owner),
) -> ReviewHistoryResponse:
    entries = await anyio.to_thread.run_sync(
        partial(store.review_history, owner_id, word_id, limit)
    )
    return ReviewHistoryResponse(
        reviews=[
            ReviewLogOut(
                reviewed_at=e.reviewed_at,
                rating=e.rating,
                interval=e.interval,
                ease_factor=e.ease_factor,
                repetitions=e.repetitions,
                next_review_at=e.next_review_at,
            )
            for e in entries
        ]
    )
