import os
from pathlib import Path

from loguru import logger
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def get_database_url() -> str:
    """Get database URL, using absolute path for SQLite to avoid path resolution issues.

    SQLite is only meant for local development. Set DATABASE_URL to a
    PostgreSQL connection string for any shared deployment.
    """
    db_url = os.getenv("DATABASE_URL", "")
    if db_url:
        logger.info(f"Using DATABASE_URL from environment: {db_url}")
        return db_url

    db_path = Path(__file__).parent.parent.parent / "plan_engine.db"
    db_url = f"sqlite:///{db_path.resolve()}"
    logger.warning(f"Using SQLite database (LOCAL DEV ONLY): {db_url}")
    return db_url


class Settings(BaseSettings):
    database_url: str = Field(
        default_factory=get_database_url,
        validation_alias="DATABASE_URL",
    )
    redis_url: str = Field(default="redis://localhost:6379/0", validation_alias="REDIS_URL")
    openai_api_key: str = Field(default="", validation_alias="OPENAI_API_KEY")
    llm_provider: str = Field(default="openai", validation_alias="LLM_PROVIDER")
    llm_model: str = Field(default="gpt-4o-mini", validation_alias="LLM_MODEL")
    llm_max_tokens: int = Field(
        default=16000,
        validation_alias="LLM_MAX_TOKENS",
        description="Token budget for base plan generation and verification calls",
    )
    llm_titration_max_tokens: int = Field(
        default=4000,
        validation_alias="LLM_TITRATION_MAX_TOKENS",
        description="Token budget for the daily titration call",
    )
    auth_secret_key: str = Field(default="", validation_alias="AUTH_SECRET_KEY")
    auth_algorithm: str = Field(default="HS256", validation_alias="AUTH_ALGORITHM")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_file: str | None = Field(default=None, validation_alias="LOG_FILE")

    generation_max_attempts: int = Field(default=2, ge=1, validation_alias="GENERATION_MAX_ATTEMPTS")
    generation_retry_delay_seconds: float = Field(
        default=2.0,
        ge=0.0,
        validation_alias="GENERATION_RETRY_DELAY_SECONDS",
        description="Fixed delay between generation attempts (no jitter)",
    )
    job_stale_minutes: int = Field(
        default=15,
        validation_alias="JOB_STALE_MINUTES",
        description="A pending job older than this with no running generation is demoted on read",
    )
    job_grace_seconds: int = Field(
        default=30,
        validation_alias="JOB_GRACE_SECONDS",
        description="Grace period before a pending job with no running generation is marked interrupted",
    )
    redo_daily_limit: int = Field(default=2, ge=0, validation_alias="REDO_DAILY_LIMIT")
    archived_plan_retention_cycles: int = Field(
        default=0,
        ge=0,
        validation_alias="ARCHIVED_PLAN_RETENTION_CYCLES",
        description="Number of archived plan cycles to keep per user (0 keeps everything)",
    )
    notification_webhook_url: str = Field(default="", validation_alias="NOTIFICATION_WEBHOOK_URL")
    plan_queue_dispatch_enabled: bool = Field(
        default=True,
        validation_alias="PLAN_QUEUE_DISPATCH_ENABLED",
        description="Dispatch the queue worker task after a plan job is created",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Validate that log level is one of the standard logging levels."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_value = value.upper()
        if upper_value not in valid_levels:
            logger.warning(f"Invalid LOG_LEVEL '{value}'. Valid levels are: {', '.join(valid_levels)}. Defaulting to INFO.")
            return "INFO"
        return upper_value

    @field_validator("llm_provider")
    @classmethod
    def validate_llm_provider(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("auth_secret_key")
    @classmethod
    def validate_auth_secret_key(cls, value: str) -> str:
        """Warn when no signing key is configured.

        Token verification fails for every request until AUTH_SECRET_KEY is set.
        """
        if not value:
            logger.warning("AUTH_SECRET_KEY is not set. Authenticated endpoints will reject all tokens.")
        return value

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()
