"""Application configuration using Pydantic Settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "sqlite:///./ftcmetrics.db"

    # Redis (optional). Empty URL or REDIS_ENABLED=false disables the store:
    # the upstream cache then always fetches live with no stale fallback.
    REDIS_ENABLED: bool = True
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_COMMAND_TIMEOUT_SECONDS: float = 2.0

    # FTC Events API
    FTC_API_BASE_URL: str = "https://ftc-api.firstinspires.org/v2.0"
    FTC_API_USERNAME: str = ""
    FTC_API_TOKEN: str = ""
    FTC_SEASON: int = 2025  # DECODE
    FTC_API_TIMEOUT_SECONDS: float = 20.0
    FTC_API_MAX_RETRIES: int = 2
    FTC_API_RETRY_DELAY_SECONDS: float = 2.0

    # Tiered cache
    CACHE_KEY_PREFIX: str = "ftcmetrics"
    CACHE_DEFAULT_FRESH_TTL: int = 300
    CACHE_DEFAULT_STALE_TTL: int = 3600

    # Rankings aggregation
    RANKINGS_BATCH_SIZE: int = 5
    RANKINGS_UPSERT_BATCH_SIZE: int = 50
    RANKINGS_SNAPSHOT_TTL: int = 2 * 60 * 60
    RANKINGS_REFRESH_MINUTES: int = 30
    RANKINGS_SCHEDULER_ENABLED: bool = True
    RANKINGS_EXCLUDED_EVENT_TYPES: str = "offseason,off-season,scrimmage,workshop,practice,demo"

    # OPR
    OPR_RIDGE_LAMBDA: float = 1e-3
    OPR_CONDITION_LIMIT: float = 1e10

    # EPA (recency weighting + trend). Tuning parameters, not a contract.
    EPA_K_MAX: float = 0.5
    EPA_K_MIN: float = 0.1
    EPA_K_DECAY: float = 0.1
    EPA_TREND_WINDOW: int = 3
    EPA_TREND_THRESHOLD: float = 0.5
    # "dynamic" = per-robot average of the match set, "fixed" = values below
    EPA_BASELINE_MODE: str = "dynamic"
    EPA_BASELINE_AUTO: float = 0.0
    EPA_BASELINE_TELEOP: float = 0.0
    EPA_BASELINE_ENDGAME: float = 0.0

    # Match prediction
    PREDICT_LOGISTIC_SCALE: float = 10.0
    PREDICT_PROBABILITY_FLOOR: float = 0.01

    # Observability
    LOG_LEVEL: str = "INFO"
    SENTRY_DSN: str = ""
    SENTRY_ENV: str = "development"
    SENTRY_TRACES_SAMPLE_RATE: float = 0.05
    METRICS_BEARER_TOKEN: str = ""

    # HTTP
    CORS_ORIGINS: str = "http://localhost:3000"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @property
    def excluded_event_types(self) -> list[str]:
        return [t.strip().lower() for t in self.RANKINGS_EXCLUDED_EVENT_TYPES.split(",") if t.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
