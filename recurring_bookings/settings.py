from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

PATTERN_KINDS = ("daily", "weekly", "biweekly", "monthly", "custom")


class Settings(BaseSettings):
    app_name: str = "recurring-bookings"
    app_env: Literal["dev", "prod"] = Field("prod")
    log_level: str = Field("INFO")
    database_url: str = Field("sqlite+aiosqlite:///./recurring.db")
    database_pool_size: int = Field(5)
    database_max_overflow: int = Field(5)
    database_pool_timeout_seconds: float = Field(30.0)
    database_statement_timeout_ms: int = Field(5000)
    business_timezone: str = Field("UTC")

    max_occurrences: int = Field(500, ge=1)
    default_occurrence_limit: int = Field(52, ge=1)
    initial_window_count: int = Field(12, ge=1)
    initial_window_days: int = Field(90, ge=1)
    generate_ahead_days: int = Field(30, ge=1, le=365)
    extend_batch_limit: int = Field(100, ge=1)
    max_advance_days: int = Field(365, ge=1)
    allow_instance_skip: bool = Field(True)
    allow_instance_reschedule: bool = Field(True)
    enable_custom_patterns: bool = Field(True)
    disabled_patterns_raw: str | None = Field(None, validation_alias="disabled_patterns")

    availability_mode: Literal["stub", "http"] = Field("stub")
    availability_base_url: str | None = Field(None)
    availability_api_key: str | None = Field(None)
    availability_timeout_seconds: float = Field(3.0, gt=0)
    availability_circuit_failure_threshold: int = Field(5)
    availability_circuit_recovery_seconds: float = Field(30.0)

    metrics_enabled: bool = Field(False)
    metrics_token: str | None = Field(None)
    job_heartbeat_required: bool = Field(False)
    job_heartbeat_ttl_seconds: int = Field(7200)

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    @field_validator("disabled_patterns_raw")
    @classmethod
    def validate_disabled_patterns(cls, value: str | None) -> str | None:
        if not value:
            return value
        unknown = [item for item in _split_csv(value) if item not in PATTERN_KINDS]
        if unknown:
            raise ValueError(f"Unknown pattern kinds: {', '.join(unknown)}")
        return value

    @property
    def disabled_patterns(self) -> frozenset[str]:
        return frozenset(_split_csv(self.disabled_patterns_raw))


def _split_csv(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [item.strip().lower() for item in raw.split(",") if item.strip()]


settings = Settings()
