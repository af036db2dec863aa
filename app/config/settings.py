import os
from pathlib import Path

from loguru import logger
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_AGENT_BASE_URL = "http://localhost:5678/webhook"
MIN_AUTH_SECRET_LENGTH = 32


def get_database_url() -> str:
    """Get database URL, using absolute path for SQLite to avoid path resolution issues.

    SQLite is for local development only. Set DATABASE_URL to a PostgreSQL
    connection string in production.
    """
    db_url = os.getenv("DATABASE_URL", "")
    if db_url:
        logger.info(f"Using DATABASE_URL from environment: {db_url}")
        return db_url

    db_path = Path(__file__).parent.parent.parent / "gympal.db"
    abs_path = db_path.resolve()
    db_url = f"sqlite:///{abs_path}"
    logger.warning(f"Using SQLite database (LOCAL DEV ONLY): {db_url}")
    return db_url


class Settings(BaseSettings):
    database_url: str = Field(
        default_factory=get_database_url,
        validation_alias="DATABASE_URL",
    )
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_file: str = Field(default="", validation_alias="LOG_FILE")

    # User session tokens (HTTP surface)
    auth_secret_key: str = Field(default="", validation_alias="AUTH_SECRET_KEY", validate_default=True)
    auth_algorithm: str = Field(default="HS256", validation_alias="AUTH_ALGORITHM")
    auth_token_expire_days: int = Field(default=30, validation_alias="AUTH_TOKEN_EXPIRE_DAYS")

    # AI agent webhooks
    reception_agent_webhook_url: str = Field(
        default=f"{_DEFAULT_AGENT_BASE_URL}/receptionAgent",
        validation_alias="RECEPTION_AGENT_WEBHOOK_URL",
        description="First agent: general reception chat",
    )
    data_agent_webhook_url: str = Field(
        default=f"{_DEFAULT_AGENT_BASE_URL}/dataAgent",
        validation_alias="DATA_AGENT_WEBHOOK_URL",
        description="Second agent: collects the data a routine needs",
    )
    recommend_exercises_webhook_url: str = Field(
        default=f"{_DEFAULT_AGENT_BASE_URL}/recommend-exercises",
        validation_alias="RECOMMEND_EXERCISES_WEBHOOK_URL",
        description="Third agent: generates the workout routine",
    )

    # Agent credentials
    agent_issuer: str = Field(default="gympal-backend", validation_alias="AGENT_ISSUER")
    agent_private_key: str = Field(
        default="",
        validation_alias="AGENT_PRIVATE_KEY",
        description="PEM encoded private key used to sign agent credentials",
    )
    agent_private_key_path: str = Field(default="", validation_alias="AGENT_PRIVATE_KEY_PATH")
    agent_jwt_algorithm: str = Field(default="RS512", validation_alias="AGENT_JWT_ALGORITHM")
    agent_jwt_expiration_seconds: int = Field(default=1800, validation_alias="AGENT_JWT_EXPIRATION_SECONDS")

    # Agent retry policy
    agent_request_timeout_ms: int = Field(default=60000, validation_alias="AGENT_REQUEST_TIMEOUT_MS")
    agent_request_max_retries: int = Field(
        default=3,
        validation_alias="AGENT_REQUEST_MAX_RETRIES",
        description="Total attempts per agent call (1 disables retries)",
    )
    agent_retry_delay_ms: int = Field(default=3000, validation_alias="AGENT_RETRY_DELAY_MS")
    agent_transport_timeout_seconds: float = Field(
        default=300.0,
        validation_alias="AGENT_TRANSPORT_TIMEOUT_SECONDS",
        description="Connection ceiling for agent calls that carry no timeout of their own",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
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

    @field_validator("auth_secret_key")
    @classmethod
    def validate_auth_secret_key(cls, value: str) -> str:
        """Session tokens are refused while the key is unset; a short key is only warned about."""
        if not value:
            logger.warning("AUTH_SECRET_KEY is not set. Session tokens cannot be issued or verified until it is configured.")
        elif len(value) < MIN_AUTH_SECRET_LENGTH:
            logger.warning(f"AUTH_SECRET_KEY is shorter than {MIN_AUTH_SECRET_LENGTH} characters. Use a longer random key in production.")
        return value

    @field_validator("auth_algorithm")
    @classmethod
    def validate_auth_algorithm(cls, value: str) -> str:
        upper_value = value.upper()
        if upper_value not in {"HS256", "HS384", "HS512"}:
            logger.warning(f"AUTH_ALGORITHM must be an HMAC algorithm, got {value}. Defaulting to HS256.")
            return "HS256"
        return upper_value

    @field_validator("agent_private_key")
    @classmethod
    def unescape_private_key(cls, value: str) -> str:
        """Allow single-line PEM values with literal \\n escapes (common in hosted env vars)."""
        if value and "\\n" in value:
            return value.replace("\\n", "\n")
        return value

    @field_validator("agent_jwt_expiration_seconds")
    @classmethod
    def validate_jwt_expiration(cls, value: int) -> int:
        if value <= 0:
            logger.warning(f"AGENT_JWT_EXPIRATION_SECONDS must be positive, got {value}. Defaulting to 1800.")
            return 1800
        return value

    @field_validator("agent_request_timeout_ms")
    @classmethod
    def validate_request_timeout(cls, value: int) -> int:
        if value <= 0:
            logger.warning(f"AGENT_REQUEST_TIMEOUT_MS must be positive, got {value}. Defaulting to 60000.")
            return 60000
        return value

    @field_validator("agent_request_max_retries")
    @classmethod
    def validate_max_retries(cls, value: int) -> int:
        """At least one attempt is always made."""
        return max(1, value)

    @field_validator("agent_retry_delay_ms")
    @classmethod
    def validate_retry_delay(cls, value: int) -> int:
        """Retry delay has a 500ms floor."""
        return max(500, value)

    @field_validator("reception_agent_webhook_url", "data_agent_webhook_url", "recommend_exercises_webhook_url")
    @classmethod
    def validate_webhook_url(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            logger.warning(f"Agent webhook URL does not look like an HTTP URL: {value}")
        return value


settings = Settings()
