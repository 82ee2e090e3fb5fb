from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class ReviewStatus(str, Enum):
    """Coarse learning label. Not part of the scheduling math."""

    new = "new"
    learning = "learning"
    mastered = "mastered"


class ReviewItem(BaseModel):
    """Scheduling state of a single learnable item.

    SM-2 の状態（interval/ease_factor/repetitions）と出題時刻を保持する。
    `next_review_at <= now` で出題対象（due）となる。
    """

    model_config = ConfigDict(extra="ignore")

    id: str
    interval: int = Field(default=1, ge=1)
    ease_factor: float = Field(default=2.5, ge=1.3, allow_inf_nan=False)
    repetitions: int = Field(default=0, ge=0)
    status: ReviewStatus = ReviewStatus.new
    next_review_at: datetime
    created_at: datetime
    updated_at: datetime | None = None

    @field_validator("next_review_at", "created_at", "updated_at")
    @classmethod
    def _as_utc(cls, value: datetime | None) -> datetime | None:
        # naive/aware の混在比較で TypeError にならないよう UTC に揃える
        return ensure_utc(value) if value is not None else None

    @property
    def last_reviewed_at(self) -> datetime:
        """`updated_at` when present, otherwise `created_at`."""
        return self.updated_at or self.created_at


class VocabularyWord(ReviewItem):
    """A stored vocabulary entry owned by one user."""

    owner_id: str
    word: str
    word_romanization: str = ""
    translation: str
    sentence: str
    sentence_romanization: str = ""
    sentence_translation: str = ""
