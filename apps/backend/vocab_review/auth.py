from __future__ import annotations

from fastapi import Header, HTTPException, Request, status

from .logging import logger

_MAX_OWNER_ID_LENGTH = 255


def resolve_owner_id(request: Request) -> str | None:
    """Return the trimmed `X-User-Id` header value, or None when absent/blank."""

    raw = request.headers.get("x-user-id")
    if raw is None:
        return None
    owner_id = raw.strip()
    return owner_id or None


async def get_current_owner(
    request: Request,
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
) -> str:
    """FastAPI dependency resolving the owner of the vocabulary being accessed.

    認証自体は上流（リバースプロキシや IdP）の責務とし、本サービスは検証済みの
    ユーザ ID が `X-User-Id` ヘッダで渡される前提で所有者スコープのみを行う。
    """

    owner_id = (x_user_id or "").strip()
    if not owner_id:
        logger.warning(
            "owner_missing",
            path=request.url.path,
            method=request.method,
            request_id=getattr(request.state, "request_id", None),
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )
    if len(owner_id) > _MAX_OWNER_ID_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-User-Id is too long",
        )
    return owner_id
