import os
import sys
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "OKR Template API"
    app_env: str = "local"
    api_v1_prefix: str = "/api/v1"
    log_level: str = "INFO"

    postgres_dsn: str = "sqlite:///./okr.db"
    redis_url: str = "redis://localhost:6379/0"

    template_cache_backend: str = "memory"
    template_cache_ttl_seconds: float = 300.0

    suggestion_service_url: str = "http://localhost:3002"
    suggestion_service_timeout_seconds: float = 30.0
    suggestion_auto_fallback: bool = True
    suggestion_retry_max_attempts: int = 3
    suggestion_retry_base_delay_seconds: float = 1.0
    suggestion_retry_max_delay_seconds: float = 30.0
    suggestion_circuit_failure_threshold: int = 5
    suggestion_circuit_reset_timeout_seconds: float = 60.0

    duplicate_similarity_threshold: float = 0.8
    max_bulk_size: int = 50
    high_priority_warning_ratio: float = 0.3

    error_journal_max_entries: int = 100
    slow_operation_threshold_ms: float = 2000.0
    metrics_enabled: bool = False

    @model_validator(mode="after")
    def validate_guardrails(self) -> "Settings":
        if not 0.0 < self.duplicate_similarity_threshold <= 1.0:
            raise ValueError("DUPLICATE_SIMILARITY_THRESHOLD must be within (0, 1].")
        if self.max_bulk_size < 1:
            raise ValueError("MAX_BULK_SIZE must be at least 1.")
        if self.suggestion_retry_max_attempts < 1:
            raise ValueError("SUGGESTION_RETRY_MAX_ATTEMPTS must be at least 1.")
        if self.template_cache_backend not in {"memory", "redis"}:
            raise ValueError("TEMPLATE_CACHE_BACKEND must be 'memory' or 'redis'.")

        if self.app_env.lower() != "production":
            return self

        if self.postgres_dsn.startswith("sqlite"):
            raise ValueError("Production requires POSTGRES_DSN backed by PostgreSQL.")
        if self.suggestion_service_url.startswith("http://localhost"):
            raise ValueError("Production forbids a localhost SUGGESTION_SERVICE_URL.")
        return self


@lru_cache
def get_settings() -> Settings:
    app_env = os.getenv("APP_ENV", "").lower()
    is_pytest_runtime = "pytest" in sys.modules
    if app_env == "test" or (not app_env and is_pytest_runtime):
        return Settings(
            app_env="test",
            postgres_dsn=os.getenv("POSTGRES_DSN", "").strip() or "sqlite:///./okr-test.db",
            template_cache_backend="memory",
            suggestion_service_url="http://suggestions.test",
        )
    return Settings()
