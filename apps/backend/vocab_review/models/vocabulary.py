from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .review import ReviewStatus, VocabularyWord


class VocabularyCreateRequest(BaseModel):
    """Request model for saving a vocabulary word.

    所有者は X-User-Id ヘッダから決まるため、ボディには含めない。
    新規作成された語は即座に復習対象（due）となる。
    """

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "word": "สวัสดี",
                    "word_romanization": "sawatdee",
                    "translation": "hello",
                    "sentence": "สวัสดีครับ",
                    "sentence_romanization": "sawatdee khrap",
                    "sentence_translation": "Hello (polite, male speaker)",
                }
            ]
        }
    )

    word: str = Field(min_length=1, max_length=200, description="見出し語（1..200文字）")
    word_romanization: str = Field(default="", max_length=200)
    translation: str = Field(min_length=1, max_length=500)
    sentence: str = Field(min_length=1, max_length=1000)
    sentence_romanization: str = Field(default="", max_length=1000)
    sentence_translation: str = Field(default="", max_length=1000)


class VocabularyStatusUpdateRequest(BaseModel):
    id: str = Field(min_length=1)
    status: ReviewStatus


class RatingRequest(BaseModel):
    """復習結果の評価（0..5）を送るためのリクエスト。

    - rating: 0=完全に忘れた … 5=完璧に想起。型変換せずにそのまま受け取り、
      整数以外（true, "3", 3.0 など）や範囲外はスケジューラ側で 400 として拒否する
    - expected_updated_at: 任意。前回取得時の updated_at を渡すと、その後に別の評価が
      適用済みであれば 409 となり二重適用を防げる
    """

    id: str = Field(min_length=1)
    rating: Any = Field(json_schema_extra={"type": "integer", "minimum": 0, "maximum": 5})
    expected_updated_at: datetime | None = None


class VocabularyWordOut(BaseModel):
    id: str
    word: str
    word_romanization: str
    translation: str
    sentence: str
    sentence_romanization: str
    sentence_translation: str
    status: ReviewStatus
    interval: int
    ease_factor: float
    repetitions: int
    next_review_at: datetime
    created_at: datetime
    updated_at: datetime | None = None

    @classmethod
    def from_word(cls, word: VocabularyWord) -> "VocabularyWordOut":
        return cls.model_validate(word.model_dump(exclude={"owner_id"}))


class PriorityBreakdownOut(BaseModel):
    difficulty: float
    efficiency: float
    status: float
    overdue: float
    interval: float


class DueWordOut(VocabularyWordOut):
    """A due word; priority fields are present only in difficulty mode."""

    priority_score: int | None = None
    priority_reasoning: list[str] | None = None
    priority_breakdown: PriorityBreakdownOut | None = None


class PriorityRangeOut(BaseModel):
    highest: int
    lowest: int


class DueStatsOut(BaseModel):
    total_due: int
    priority_mode: str
    priority_range: PriorityRangeOut | None = None


class DueResponse(BaseModel):
    words: list[DueWordOut]
    count: int
    stats: DueStatsOut | None = None


class ScheduleOut(BaseModel):
    interval: int
    ease_factor: float
    repetitions: int
    next_review_at: datetime


class RatingResponse(BaseModel):
    word: VocabularyWordOut
    schedule: ScheduleOut


class WordResponse(BaseModel):
    word: VocabularyWordOut


class WordListResponse(BaseModel):
    words: list[VocabularyWordOut]


class DeleteResponse(BaseModel):
    success: bool


class LearningStatsResponse(BaseModel):
    """進捗の見える化 用の統計レスポンス（ステータス別件数と現在の due 件数）。"""

    total: int
    new: int
    learning: int
    mastered: int
    due_now: int


class ReviewLogOut(BaseModel):
    reviewed_at: datetime
    rating: int
    interval: int
    ease_factor: float
    repetitions: int
    next_review_at: datetime


class ReviewHistoryResponse(BaseModel):
    reviews: list[ReviewLogOut]
