from fastapi import APIRouter
from fastapi.responses import JSONResponse

from ..metrics import registry

router = APIRouter(tags=["health"])


@router.get("/healthz")
def health_check() -> dict[str, str]:
    """Liveness probe. 監視ツールやコンテナオーケストレータからの疎通確認用。"""
    return {"status": "ok"}


@router.get("/metrics")
def metrics() -> JSONResponse:
    """Return the in-memory per-route metrics snapshot (p95, errors, status counts)."""
    return JSONResponse(content={"routes": registry.snapshot()})
