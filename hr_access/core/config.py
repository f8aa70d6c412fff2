"""
Configuration management for HR Access Backend
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from typing import Optional, List


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )

    # Required settings
    DATABASE_URL: str = Field(..., description="Database URL backing the document store")
    JWT_SECRET_KEY: str = Field(..., description="Key used to verify identity provider tokens")

    # Optional settings with defaults
    JWT_ALGORITHM: str = Field(default="HS256", description="JWT algorithm")
    JWT_EXPIRE_MINUTES: int = Field(default=120, description="Lifetime of locally issued tokens")

    APP_ENV: str = Field(default="local", description="Application environment: local, staging, prod")
    LOG_LEVEL: str = Field(default="INFO", description="Logging level: DEBUG, INFO, WARNING, ERROR")

    # CORS settings
    ALLOWED_ORIGINS: str = Field(
        default="*",
        description="Comma-separated list of allowed CORS origins. Use '*' for local only."
    )

    # Version (can be git SHA or semver)
    VERSION: Optional[str] = Field(default=None, description="Application version (git SHA or semver)")

    # Document store limits
    WRITE_BATCH_SIZE: int = Field(
        default=500,
        ge=1,
        le=500,
        description="Maximum number of writes committed together in one batch",
    )
    BACKFILL_PAGE_SIZE: int = Field(
        default=500,
        ge=1,
        description="Page size used when the backfill sweeps a collection",
    )

    # Change-event dispatch: inline runs handlers right after the write, background uses a thread pool
    TRIGGER_MODE: str = Field(default="background", description="Trigger dispatch mode: inline, background")
    TRIGGER_WORKERS: int = Field(default=4, ge=1, description="Worker threads for background triggers")

    # RBAC defaults
    DEFAULT_ROLE: str = Field(default="employee", description="Role a user falls back to when revoked")
    AUDIT_EMAIL_DOMAIN: str = Field(
        default="humanresources.app",
        description="Domain used for the system/unknown performer sentinel addresses",
    )
    SEED_RBAC_ON_STARTUP: bool = Field(
        default=True,
        description="Create the system roles and their grants at startup if missing",
    )

    @field_validator("APP_ENV")
    @classmethod
    def validate_app_env(cls, v: str) -> str:
        """Validate APP_ENV"""
        allowed = ["local", "staging", "prod"]
        if v not in allowed:
            raise ValueError(f"APP_ENV must be one of {allowed}")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate LOG_LEVEL"""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of {allowed}")
        return v.upper()

    @field_validator("TRIGGER_MODE")
    @classmethod
    def validate_trigger_mode(cls, v: str) -> str:
        allowed = ["inline", "background"]
        if v not in allowed:
            raise ValueError(f"TRIGGER_MODE must be one of {allowed}")
        return v

    def validate_production(self) -> None:
        """
        Validate settings for production environment

        Raises:
            ValueError: If production settings are invalid
        """
        if self.APP_ENV == "prod":
            # JWT_SECRET_KEY must be at least 32 characters in production
            if len(self.JWT_SECRET_KEY) < 32:
                raise ValueError(
                    "JWT_SECRET_KEY must be at least 32 characters in production environment"
                )

            # ALLOWED_ORIGINS must not be wildcard in production
            if self.ALLOWED_ORIGINS == "*" or not self.ALLOWED_ORIGINS:
                raise ValueError(
                    "ALLOWED_ORIGINS must be explicitly set (not '*') in production environment"
                )

    def get_allowed_origins_list(self) -> List[str]:
        """
        Get list of allowed CORS origins

        Returns:
            List of allowed origins (or ['*'] for local)
        """
        if self.ALLOWED_ORIGINS == "*":
            return ["*"]
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]

    @property
    def system_actor_email(self) -> str:
        return f"system@{self.AUDIT_EMAIL_DOMAIN}"

    @property
    def unknown_actor_email(self) -> str:
        return f"unknown@{self.AUDIT_EMAIL_DOMAIN}"


# Create settings instance
settings = Settings()

# Validate production settings if in prod
if settings.APP_ENV == "prod":
    settings.validate_production()
