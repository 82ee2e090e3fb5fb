from __future__ import annotations

import inspect

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from .config import settings
from .errors import SrsError, srs_error_handler
from .logging import configure_logging, logger
from .middleware import AccessLogAndMetricsMiddleware, RateLimitMiddleware, RequestIDMiddleware
from .routers import health, vocabulary
from .srs.constants import get_priority_weights


_PROXY_MIDDLEWARE_PARAM = (
    "forwarded_allow_ips"
    if "forwarded_allow_ips"
    in inspect.signature(ProxyHeadersMiddleware.__init__).parameters
    else "trusted_hosts"
)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance."""
    configure_logging()
    logger.info(
        "app_init",
        environment=settings.environment,
        db_path=settings.srs_db_path,
        default_priority_mode=settings.default_priority_mode,
        priority_weights_version=settings.priority_weights_version,
    )
    # 未登録の重みバージョンはリクエスト時ではなく起動時に失敗させる
    try:
        weights = get_priority_weights(settings.priority_weights_version)
    except KeyError:
        logger.error(
            "priority_weights_unknown", version=settings.priority_weights_version
        )
        raise
    app = FastAPI(title="Vocabulary Review API", version="0.1.0")
    app.state.priority_weights = weights

    configured_origins = list(settings.allowed_cors_origins)
    allow_credentials = bool(configured_origins)
    if not configured_origins:
        configured_origins = ["*"]
    configured_proxies = [value for value in settings.trusted_proxy_ips if value] or ["127.0.0.1"]

    # ワイルドカード許可時は資格情報付き CORS を無効化する
    app.add_middleware(
        CORSMiddleware,
        allow_origins=configured_origins,
        allow_credentials=allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    # Middleware stack (inner → outer):
    #   CORS → AccessLog → RequestID → RateLimit → ProxyHeaders
    # Starlette では後から追加したものが外側で実行される。ProxyHeaders で
    # X-Forwarded-For を読み替えてから RateLimit が実クライアント IP で判定する。
    app.add_middleware(AccessLogAndMetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        ip_capacity_per_minute=settings.rate_limit_per_min_ip,
        user_capacity_per_minute=settings.rate_limit_per_min_user,
    )
    app.add_middleware(
        ProxyHeadersMiddleware,
        **{_PROXY_MIDDLEWARE_PARAM: ",".join(configured_proxies)},
    )

    app.add_exception_handler(SrsError, srs_error_handler)

    app.include_router(vocabulary.router, prefix="/api/vocabulary")
    app.include_router(health.router)

    return app


app = create_app()
