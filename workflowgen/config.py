from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables with validation."""

    model_config = SettingsConfigDict(
        env_file=(str(Path(__file__).resolve().parents[1] / ".env"), ".env"),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        populate_by_name=True,
    )

    app_name: str = Field(default="Workflow Generation Engine", alias="APP_NAME")
    app_env: Literal["development", "staging", "production", "test"] = Field(
        default="production",
        alias="APP_ENV",
    )
    api_v1_prefix: str = Field(default="/api/v1", alias="API_V1_PREFIX")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000"],
        alias="CORS_ORIGINS",
    )

    anthropic_api_key: SecretStr = Field(default=SecretStr(""), alias="ANTHROPIC_API_KEY")
    anthropic_model: str = Field(default="claude-3-5-sonnet-20241022", alias="ANTHROPIC_MODEL")
    anthropic_advanced_model: str = Field(
        default="claude-3-7-sonnet-20250219",
        alias="ANTHROPIC_ADVANCED_MODEL",
    )
    anthropic_version: str = Field(default="2023-06-01", alias="ANTHROPIC_VERSION")

    openai_api_key: SecretStr = Field(default=SecretStr(""), alias="OPENAI_API_KEY")
    openai_model: str = Field(default="gpt-4o-mini", alias="OPENAI_MODEL")
    openai_advanced_model: str = Field(default="gpt-4o", alias="OPENAI_ADVANCED_MODEL")
    openai_base_url: str = Field(default="https://api.openai.com/v1", alias="OPENAI_BASE_URL")

    advanced_model_enabled: bool = Field(default=False, alias="ADVANCED_MODEL_ENABLED")
    provider_timeout_seconds: float = Field(
        default=60.0, gt=0, le=600, alias="PROVIDER_TIMEOUT_SECONDS"
    )

    budget_policy: Literal["warn", "block"] = Field(default="warn", alias="BUDGET_POLICY")
    daily_cost_budget: float = Field(default=10.00, ge=0, alias="DAILY_COST_BUDGET")
    single_call_limit: float = Field(default=1.00, ge=0, alias="SINGLE_CALL_LIMIT")

    cost_log_backend: Literal["memory", "database"] = Field(default="memory", alias="COST_LOG_BACKEND")
    cost_log_database_url: str = Field(
        default="sqlite:///./workflowgen_costs.db",
        alias="COST_LOG_DATABASE_URL",
    )
    cost_log_max_entries: int | None = Field(default=None, ge=1, alias="COST_LOG_MAX_ENTRIES")

    knowledge_corpus_path: Path | None = Field(default=None, alias="KNOWLEDGE_CORPUS_PATH")
    similar_workflow_limit: int = Field(default=3, ge=1, le=20, alias="SIMILAR_WORKFLOW_LIMIT")
    similarity_threshold: float = Field(default=0.1, ge=0, le=1, alias="SIMILARITY_THRESHOLD")

    @field_validator("api_v1_prefix")
    @classmethod
    def validate_api_prefix(cls, value: str) -> str:
        """Ensure the API prefix starts with a slash and has no trailing slash."""
        normalized = value.strip()
        if not normalized.startswith("/"):
            raise ValueError("API_V1_PREFIX must start with '/'.")
        if len(normalized) > 1 and normalized.endswith("/"):
            normalized = normalized.rstrip("/")
        return normalized

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, value: str | list[str]) -> list[str]:
        """Support comma-separated CORS origins from environment variables."""
        if isinstance(value, str):
            if not value.strip():
                return []
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @field_validator("cost_log_database_url")
    @classmethod
    def validate_cost_log_url(cls, value: str) -> str:
        """Only SQLAlchemy URLs for SQLite or PostgreSQL are supported for the cost log."""
        lowered = value.lower()
        if not (lowered.startswith("sqlite") or lowered.startswith("postgresql")):
            raise ValueError("COST_LOG_DATABASE_URL must be a sqlite:// or postgresql:// URL")
        return value

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        return value.strip().upper() or "INFO"

    def configured_secrets(self) -> list[str]:
        """Literal credential values that must never leak into prompts or workflows."""
        values = [
            self.anthropic_api_key.get_secret_value(),
            self.openai_api_key.get_secret_value(),
        ]
        return [v for v in values if v]


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""
    return Settings()


settings: Settings = get_settings()
