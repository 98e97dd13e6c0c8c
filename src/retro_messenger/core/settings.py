"""Application settings and configuration.

This module defines all configuration options for the Retro Messenger core.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Retro Messenger", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Key material
    rsa_key_size: int = Field(default=2048, alias="RSA_KEY_SIZE")
    rsa_public_exponent: int = Field(default=65537, alias="RSA_PUBLIC_EXPONENT")
    pbkdf2_iterations: int = Field(default=100_000, alias="PBKDF2_ITERATIONS")

    # Password hashing (argon2id) for account credentials
    argon2_time_cost: int = Field(default=2, alias="ARGON2_TIME_COST")
    argon2_memory_cost: int = Field(default=19_456, alias="ARGON2_MEMORY_COST")
    argon2_parallelism: int = Field(default=1, alias="ARGON2_PARALLELISM")

    # Accounts and sessions
    min_password_length: int = Field(default=6, alias="MIN_PASSWORD_LENGTH")
    session_ttl_seconds: int = Field(default=60 * 60 * 24, alias="SESSION_TTL_SECONDS")

    # Delivery
    inbox_default_limit: int = Field(default=50, alias="INBOX_DEFAULT_LIMIT")
    inbox_max_limit: int = Field(default=100, alias="INBOX_MAX_LIMIT")

    # Push channel
    stream_keepalive_seconds: float = Field(default=15.0, alias="STREAM_KEEPALIVE_SECONDS")
    stream_queue_maxsize: int = Field(default=256, alias="STREAM_QUEUE_MAXSIZE")
    reconnect_backoff_ms: list[int] = Field(
        default=[1000, 2000, 4000, 8000],
        alias="RECONNECT_BACKOFF_MS",
    )
    client_http_timeout_seconds: float = Field(
        default=10.0,
        alias="CLIENT_HTTP_TIMEOUT_SECONDS",
    )

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(
        default=["*"],
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(
        default=["*"],
        alias="CORS_ALLOW_HEADERS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def backoff_table(self) -> tuple[int, ...]:
        """Return the reconnect delays (milliseconds) as an immutable tuple."""
        return tuple(self.reconnect_backoff_ms)


settings = Settings()
