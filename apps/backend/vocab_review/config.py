from typing import Annotated

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources.types import NoDecode


DEFAULT_DB_PATH = ".data/vocab_review.sqlite3"
_PRIORITY_MODES = frozenset({"time", "difficulty"})


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    環境変数から読み込まれるアプリ設定クラス。
    - environment: 実行環境（development/staging/production など）
    - srs_db_path: 復習データを保存する SQLite のパス
    - due_limit_*: 1 セッションで出題する件数の既定値と上限
    """

    environment: str = Field(
        default="development",
        description="Runtime environment / 実行環境",
    )

    # --- データ永続化設定 ---
    srs_db_path: str = Field(
        default=DEFAULT_DB_PATH,
        description="Path to SQLite database for review items / 復習アイテム用SQLite DBパス",
        validation_alias=AliasChoices("srs_db_path", "vocab_review_db_path"),
    )

    # --- 復習セッション ---
    due_limit_default: int = Field(
        default=20,
        description="Default number of due items per session / 1セッションの既定出題数",
    )
    due_limit_max: int = Field(
        default=50,
        description="Upper bound for the due limit query parameter / 出題数の上限",
    )
    default_priority_mode: str = Field(
        default="difficulty",
        description="Default selection policy (time|difficulty) / 既定の出題優先モード",
    )
    priority_weights_version: str = Field(
        default="v1",
        description="Version of the priority scoring weights / 優先度スコア重みのバージョン",
    )

    # --- Operations/Observability ---
    rate_limit_per_min_ip: int = Field(
        default=240,
        description="Per-IP API requests per minute / IP単位の毎分上限",
    )
    rate_limit_per_min_user: int = Field(
        default=240,
        description="Per-user API requests per minute / ユーザ単位の毎分上限（X-User-Id）",
    )
    sentry_dsn: str | None = Field(
        default=None, description="Sentry DSN (enable if set)"
    )
    # なぜ: CORS の許可オリジンを設定で明示し、未設定時のみワイルドカードに
    # フォールバックする（その場合クッキー付き CORS は許可しない）。
    allowed_cors_origins: Annotated[tuple[str, ...], NoDecode] = Field(
        default=(),
        description=(
            "Comma separated CORS origins / CORS で許可するオリジンのカンマ区切り一覧"
        ),
        validation_alias=AliasChoices("allowed_cors_origins", "cors_allowed_origins"),
    )

    trusted_proxy_ips: Annotated[tuple[str, ...], NoDecode] = Field(
        default=("127.0.0.1",),
        description="Proxies allowed to set X-Forwarded-For / 信頼するプロキシのIP（カンマ区切り）",
    )

    # Pydantic v2 settings config
    # - env_file: .env を読み込む
    # - extra: .env に存在する未使用キーを無視
    # - case_sensitive: 環境変数キーの大小文字を区別しない
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )

    @field_validator("allowed_cors_origins", "trusted_proxy_ips", mode="before")
    @classmethod
    def _parse_origins(cls, value: object) -> tuple[str, ...]:
        if value is None:
            return ()
        if isinstance(value, str):
            return tuple(origin.strip() for origin in value.split(",") if origin.strip())
        return tuple(str(origin).strip() for origin in value if str(origin).strip())  # type: ignore[union-attr]

    @field_validator("default_priority_mode", mode="before")
    @classmethod
    def _normalize_priority_mode(cls, value: object) -> str:
        mode = str(value or "").strip().lower()
        if mode not in _PRIORITY_MODES:
            raise ValueError(
                f"default_priority_mode must be one of {sorted(_PRIORITY_MODES)}"
            )
        return mode

    @field_validator("due_limit_default", "due_limit_max")
    @classmethod
    def _positive_limit(cls, value: int) -> int:
        if value < 1:
            raise ValueError("due limits must be positive")
        return value

    @model_validator(mode="after")
    def _default_within_max(self) -> "Settings":
        # 既定値が上限を超えると毎回 InvalidLimit になるため起動時に弾く
        if self.due_limit_default > self.due_limit_max:
            raise ValueError("due_limit_default must not exceed due_limit_max")
        return self


settings = Settings()
