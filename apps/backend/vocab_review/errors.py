"""Error taxonomy and the FastAPI handler that renders it.

スケジューラ/セレクタ/ストアが送出するドメイン例外を 1 か所に定義し、
HTTP 層では `status_code` と `code` をそのまま 4xx 応答へ変換する。
入力検証は常に状態更新より前に行うため、これらの例外が送出された時点で
永続化済みの状態は変化していない。
"""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

from .logging import logger


class SrsError(Exception):
    """Base class for scheduling and store-boundary errors."""

    status_code: int = 400
    code: str = "SRS_ERROR"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class InvalidRating(SrsError):
    code = "INVALID_RATING"


class InvalidLimit(SrsError):
    code = "INVALID_LIMIT"


class InvalidPriorityMode(SrsError):
    code = "INVALID_PRIORITY_MODE"


class InvalidReviewState(SrsError):
    """Stored scheduling state is outside the algorithm's domain."""

    status_code = 422
    code = "INVALID_REVIEW_STATE"


class ItemNotFound(SrsError):
    status_code = 404
    code = "ITEM_NOT_FOUND"


class OwnershipMismatch(SrsError):
    status_code = 403
    code = "OWNERSHIP_MISMATCH"


class StaleReviewState(SrsError):
    """The item changed between read and write (concurrent or duplicate rating)."""

    status_code = 409
    code = "STALE_REVIEW_STATE"


def _request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    return str(request_id) if request_id else uuid.uuid4().hex


async def srs_error_handler(request: Request, exc: SrsError) -> JSONResponse:
    """Render an :class:`SrsError` as `{error_code, message, details, request_id}`."""

    request_id = _request_id(request)
    logger.warning(
        "srs_error",
        error_code=exc.code,
        status_code=exc.status_code,
        message=exc.message,
        path=request.url.path,
        request_id=request_id,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.code,
            "message": exc.message,
            "details": exc.details or None,
            "request_id": request_id,
        },
    )
