from functools import lru_cache

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    # ─────────── APP ───────────
    app_name: str = "StudEx Escrow Service"
    environment: str = "dev"
    log_level: str = "INFO"

    # ─────────── API ───────────
    api_prefix: str = "/api/v1"
    request_id_header: str = "X-Request-Id"

    # ─────────── DATABASE ───────────
    database_url: str
    database_echo: bool = False
    database_pool_size: int = 5

    # ─────────── JWT / AUTH ───────────
    # tokens are issued by the identity service; we only verify them
    jwt_secret_key: str
    jwt_algorithm: str = "HS256"
    jwt_access_token_minutes: int = 1440  # 24 hours

    # ─────────── REGISTRY ───────────
    default_page_size: int = 10
    max_page_size: int = 100

    # ─────────── CONCURRENCY ───────────
    # attempts per unit of work before ConcurrencyConflict
    conflict_retries: int = 5

    # ─────────── NOTIFICATIONS ───────────
    notification_inbox_enabled: bool = True

    @field_validator("database_url")
    @classmethod
    def _normalize_scheme(cls, v: str) -> str:
        # Heroku-style URLs; SQLAlchemy 2 only accepts postgresql://
        if v.startswith("postgres://"):
            return "postgresql://" + v[len("postgres://"):]
        return v

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, v: str) -> str:
        return v.upper()

    @model_validator(mode="after")
    def _check_paging(self) -> "Settings":
        if self.default_page_size < 1 or self.max_page_size < self.default_page_size:
            raise ValueError("need 1 <= default_page_size <= max_page_size")
        if self.conflict_retries < 1:
            raise ValueError("conflict_retries must be >= 1")
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
