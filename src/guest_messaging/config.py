from __future__ import annotations

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    POSTGRES_USER: str
    POSTGRES_PASSWORD: str
    POSTGRES_DB: str
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DATABASE_URL: str | None = None

    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_RECYCLE: int = 300

    JWT_SECRET: str = ""
    JWT_ALGORITHM: str = "HS256"
    JWT_AUDIENCE: str | None = None

    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    CORS_ORIGINS: list[str] = ["*"]
    LOG_LEVEL: str = "INFO"

    WAHA_API_URL: str = "http://localhost:3000"
    WAHA_API_KEY: str | None = None
    WAHA_SESSION_NAME: str = "default"
    WAHA_WEBHOOK_TOKEN: str = ""
    WAHA_WEBHOOK_URL: str | None = None
    WAHA_TIMEOUT_SECONDS: float = 30.0

    QUEUE_POLL_INTERVAL: float = 1.0
    QUEUE_BATCH_SIZE: int = 10
    QUEUE_MAX_RETRIES: int = 3
    QUEUE_BACKOFF_BASE_SECONDS: float = 1.0
    QUEUE_RATE_LIMIT_DEFER_SECONDS: float = 60.0
    QUEUE_SEND_TIMEOUT_SECONDS: float = 30.0
    QUEUE_STORE_ERROR_PAUSE_SECONDS: float = 5.0
    # 0 disables the reaper. Keep above QUEUE_BATCH_SIZE * QUEUE_SEND_TIMEOUT_SECONDS.
    QUEUE_STALE_AFTER_SECONDS: float = 600.0
    QUEUE_REAPER_INTERVAL_SECONDS: float = 60.0
    QUEUE_RETENTION_DAYS: int = 7

    RATE_LIMIT_MAX_MESSAGES: int = 80
    RATE_LIMIT_WINDOW_SECONDS: int = 3600

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.POSTGRES_DB}"
        )

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()  # type: ignore[call-arg]
