"""Centralized configuration using pydantic-settings.

All configuration is loaded from environment variables and .env files.
This is the single source of truth for all audit platform configuration.
"""

from enum import Enum

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TEST = "test"


class LogLevel(str, Enum):
    """Log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class Settings(BaseSettings):
    """Main application settings.

    All settings can be overridden via environment variables.
    For nested settings, use double underscore: AUDIT__FAILED_LOGIN_THRESHOLD=10
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_nested_delimiter="__",
        extra="ignore",
    )

    # ============================================================
    # Core Application Settings
    # ============================================================

    app_name: str = Field("edurisk-audit", description="Application name")
    app_version: str = Field("1.0.0", description="Application version")
    environment: Environment = Field(Environment.DEVELOPMENT, description="Deployment environment")
    debug: bool = Field(False, description="Debug mode")
    testing: bool = Field(False, description="Testing mode")

    # ============================================================
    # Database Configuration
    # ============================================================

    class DatabaseSettings(BaseModel):
        """Database configuration."""

        url: str = Field(
            "sqlite+aiosqlite:///./edurisk_audit.sqlite",
            description="Async SQLAlchemy database URL",
        )

        # Connection pool (ignored for SQLite)
        pool_size: int = Field(10, description="Connection pool size")
        max_overflow: int = Field(20, description="Max overflow connections")
        pool_timeout: int = Field(30, description="Pool timeout in seconds")
        pool_recycle: int = Field(3600, description="Recycle connections after seconds")
        pool_pre_ping: bool = Field(True, description="Test connections before use")

        echo: bool = Field(False, description="Echo SQL statements")

        @property
        def is_sqlite(self) -> bool:
            return self.url.startswith("sqlite")

    database: DatabaseSettings = DatabaseSettings()  # type: ignore[call-arg]

    # ============================================================
    # Observability
    # ============================================================

    class ObservabilitySettings(BaseModel):
        """Logging configuration."""

        log_level: LogLevel = Field(LogLevel.INFO, description="Log level")
        log_format: str = Field("json", description="Log format (json or console)")

    observability: ObservabilitySettings = ObservabilitySettings()  # type: ignore[call-arg]

    # ============================================================
    # Audit Configuration
    # ============================================================

    class AuditSettings(BaseModel):
        """Audit recording, analytics and retention configuration."""

        enabled: bool = Field(True, description="Enable audit recording")
        write_timeout_seconds: float = Field(
            5.0, gt=0, description="Upper bound for a single audit write"
        )

        # Retention
        default_retention_days: int = Field(
            2555, ge=1, description="Retention period applied when a record does not set one"
        )
        max_retention_days: int = Field(
            2555, ge=1, description="Upper bound on any record's retention period"
        )
        sweep_interval_seconds: int = Field(
            86400, ge=1, description="Interval between retention sweeps"
        )
        archive_enabled: bool = Field(False, description="Archive expired records before deletion")
        archive_location: str = Field(
            "/var/audit/archive", description="Directory for gzip JSON-lines archives"
        )

        # Query and aggregation
        default_page_size: int = Field(50, ge=1, description="Default page size for queries")
        max_page_size: int = Field(500, ge=1, description="Largest page a caller may request")
        stats_window_days: int = Field(30, ge=1, description="Default statistics window")
        top_actions_limit: int = Field(10, ge=1, description="Actions in the frequency ranking")

        # Anomaly detection
        anomaly_window_hours: int = Field(24, ge=1, description="Anomaly scan window")
        failed_login_threshold: int = Field(
            5, ge=1, description="Failed logins from one IP before it is flagged"
        )
        bulk_access_threshold: int = Field(
            100, ge=1, description="Read/download events by one actor before it is flagged"
        )
        bulk_access_actions: list[str] = Field(
            default_factory=lambda: ["STUDENT_VIEWED", "DOCUMENT_DOWNLOADED"],
            description="Action codes counted by the bulk-access heuristic",
        )

        # Request capture
        trust_forwarded_for: bool = Field(
            False, description="Take the client IP from X-Forwarded-For"
        )
        redact_headers: list[str] = Field(
            default_factory=lambda: ["authorization", "cookie"],
            description="Header names masked in the stored header snapshot",
        )

        @field_validator("redact_headers")
        @classmethod
        def lowercase_headers(cls, v: list[str]) -> list[str]:
            return [name.lower() for name in v]

        @field_validator("bulk_access_actions")
        @classmethod
        def normalize_actions(cls, v: list[str]) -> list[str]:
            # Membership in AuditAction is checked at startup by the anomaly module
            actions = [code.strip().upper() for code in v if code.strip()]
            if not actions:
                raise ValueError("at least one bulk access action is required")
            return actions

    audit: AuditSettings = AuditSettings()  # type: ignore[call-arg]

    # ============================================================
    # Validation & Helpers
    # ============================================================

    @field_validator("environment", mode="before")
    @classmethod
    def validate_environment(cls, v: object) -> object:
        """Validate environment."""
        if isinstance(v, str):
            return Environment(v.lower())
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == Environment.PRODUCTION

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.environment == Environment.DEVELOPMENT

    @property
    def is_testing(self) -> bool:
        """Check if running in test mode."""
        return self.testing or self.environment == Environment.TEST


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get global settings instance (singleton)."""
    global _settings
    if _settings is None:
        _settings = Settings()  # type: ignore
    return _settings


def reset_settings() -> None:
    """Reset settings (mainly for testing)."""
    global _settings
    _settings = None


# Convenience export
settings = get_settings()
