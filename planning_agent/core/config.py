"""Configuration management for the Household Planning Agent service.

Configuration is loaded from environment variables. Pipeline thresholds
live in PlanningConfig so they can be tuned per deployment without code
changes.
"""

from __future__ import annotations

import os
from enum import StrEnum
from functools import lru_cache
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from pydantic import AliasChoices, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

POSTGRESQL_PREFIX = "postgresql://"
ASYNCPG_DRIVER = "+asyncpg"
PSYCOPG_DRIVER = "+psycopg"
ENGINE_OPTION_QUERY_KEYS = frozenset({"pool_size", "max_overflow", "pool_timeout", "pool_recycle"})


def normalize_database_url(url: str) -> str:
    """Strip SQLAlchemy engine-only options accidentally passed as URL query args."""
    url = url.strip()
    parsed = urlsplit(url)
    if not parsed.query:
        return url

    kept = [
        (key, value)
        for key, value in parse_qsl(parsed.query, keep_blank_values=True)
        if key.lower() not in ENGINE_OPTION_QUERY_KEYS
    ]
    return urlunsplit(
        (parsed.scheme, parsed.netloc, parsed.path, urlencode(kept, doseq=True), parsed.fragment)
    )


def to_asyncpg_url(url: str) -> str:
    """Return a SQLAlchemy URL compatible with the asyncpg dialect."""
    normalized = normalize_database_url(url)
    if normalized.startswith(f"postgresql{PSYCOPG_DRIVER}://"):
        return normalized.replace(PSYCOPG_DRIVER, ASYNCPG_DRIVER, 1)
    if normalized.startswith(POSTGRESQL_PREFIX):
        return normalized.replace(POSTGRESQL_PREFIX, f"postgresql{ASYNCPG_DRIVER}://", 1)
    return normalized


def to_psycopg_url(url: str) -> str:
    """Return a SQLAlchemy URL compatible with the psycopg dialect."""
    normalized = normalize_database_url(url)
    if normalized.startswith(f"postgresql{ASYNCPG_DRIVER}://"):
        return normalized.replace(ASYNCPG_DRIVER, PSYCOPG_DRIVER, 1)
    if normalized.startswith(POSTGRESQL_PREFIX):
        return normalized.replace(POSTGRESQL_PREFIX, f"postgresql{PSYCOPG_DRIVER}://", 1)
    return normalized


def to_libpq_url(url: str) -> str:
    """Return a libpq/psycopg-native URL (postgresql://...)."""
    normalized = normalize_database_url(url)
    for driver in (ASYNCPG_DRIVER, PSYCOPG_DRIVER):
        if normalized.startswith(f"postgresql{driver}://"):
            return normalized.replace(f"postgresql{driver}://", POSTGRESQL_PREFIX, 1)
    return normalized


class AppEnvironment(StrEnum):
    LOCAL = "local"
    TEST = "test"
    PROD = "prod"


class LogLevel(StrEnum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class AppConfig(BaseSettings):
    name: str = Field(default="household-planning-agent")
    env: AppEnvironment = Field(default=AppEnvironment.LOCAL)
    version: str = Field(default="0.1.0")
    debug: bool = Field(default=False)
    log_level: LogLevel = Field(default=LogLevel.INFO)
    api_prefix: str = Field(default="/api/v1")

    model_config = SettingsConfigDict(env_prefix="APP_")

    @field_validator("env", mode="before")
    @classmethod
    def validate_env(cls, v: str | AppEnvironment) -> AppEnvironment:
        if isinstance(v, AppEnvironment):
            return v
        return AppEnvironment(v)

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v: str | LogLevel) -> LogLevel:
        if isinstance(v, LogLevel):
            return v
        return LogLevel(v.upper())


class ServerConfig(BaseSettings):
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8010)
    workers: int = Field(default=4)

    model_config = SettingsConfigDict(env_prefix="SERVER_")


class DatabaseConfig(BaseSettings):
    url_app: str = Field(default="", alias="database_url_app")
    url_admin: str = Field(default="", alias="database_url_admin")

    host: str = Field(default="localhost")
    port: int = Field(default=5432)
    name: str = Field(default="household")
    user: str = Field(default="postgres")
    password: SecretStr = Field(default=SecretStr(""))
    pool_size: int = Field(default=10)
    max_overflow: int = Field(default=10)
    pool_timeout: int = Field(default=30)
    pool_recycle: int = Field(default=1800)
    echo: bool = Field(default=False)

    model_config = SettingsConfigDict(
        env_prefix="DATABASE_",
        populate_by_name=True,
    )

    @property
    def async_url(self) -> str:
        if self.url_app:
            return to_asyncpg_url(self.url_app)
        password = self.password.get_secret_value()
        return f"postgresql{ASYNCPG_DRIVER}://{self.user}:{password}@{self.host}:{self.port}/{self.name}"

    @property
    def sync_url(self) -> str:
        if self.url_app:
            return to_psycopg_url(self.url_app)
        password = self.password.get_secret_value()
        return f"postgresql{PSYCOPG_DRIVER}://{self.user}:{password}@{self.host}:{self.port}/{self.name}"


class SecurityConfig(BaseSettings):
    cors_allowed_origins: str = Field(default="http://localhost:3000")
    cors_allow_credentials: bool = Field(default=True)
    cors_allow_methods: list[str] = Field(default=["GET", "POST"])
    cors_allow_headers: list[str] = Field(default=["Authorization", "Content-Type", "X-Request-ID"])
    max_request_size_bytes: int = Field(default=1_048_576)

    model_config = SettingsConfigDict(env_prefix="SECURITY_")

    @field_validator("cors_allowed_origins", mode="after")
    @classmethod
    def validate_cors_allowed_origins(cls, v: str | list[str]) -> list[str]:
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v


class ObservabilityConfig(BaseSettings):
    service_name: str = Field(default="household-planning-agent")
    otlp_endpoint: str | None = Field(
        default=None,
        validation_alias=AliasChoices("exporter_otlp_endpoint", "otlp_endpoint"),
    )
    otlp_insecure: bool = Field(
        default=True,
        validation_alias=AliasChoices("exporter_otlp_insecure", "otlp_insecure"),
    )
    log_record_format: str = Field(default="json")

    model_config = SettingsConfigDict(env_prefix="OTEL_")

    @model_validator(mode="after")
    def apply_exporter_env_fallbacks(self) -> ObservabilityConfig:
        """Support standard OpenTelemetry env names used in container orchestration."""
        if not self.otlp_endpoint:
            endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
            if endpoint:
                self.otlp_endpoint = endpoint

        insecure = os.getenv("OTEL_EXPORTER_OTLP_INSECURE")
        if insecure is not None:
            self.otlp_insecure = insecure.strip().lower() in {"1", "true", "yes", "on"}

        return self


class PlanningConfig(BaseSettings):
    """Thresholds used by the analysis, guardrail and metrics components."""

    # Budget analysis
    budget_variance_threshold: float = Field(default=0.20)
    budget_adjustment_factor: float = Field(default=0.8)

    # Cash flow analysis
    upcoming_bill_count: int = Field(default=5)
    max_deferred_bills: int = Field(default=3)
    defer_deficit_fraction: float = Field(default=0.5)
    defer_days: int = Field(default=30)
    large_bill_threshold: float = Field(default=5000)
    partial_pay_fraction: float = Field(default=0.5)
    min_partial_relief: float = Field(default=1000)
    max_partial_payments: int = Field(default=2)

    # Debt analysis
    small_balance_threshold: float = Field(default=10000)
    snowball_min_small_balances: int = Field(default=3)
    extra_payment_fraction: float = Field(default=0.3)
    max_extra_payment: float = Field(default=5000)
    min_extra_payment: float = Field(default=1000)
    high_interest_rate: float = Field(default=15.0)
    consolidation_rate_floor: float = Field(default=8.0)
    consolidation_rate_discount: float = Field(default=5.0)
    consolidation_term_months: int = Field(default=60)
    emergency_debt_threshold: float = Field(default=50000)
    emergency_min_net_flow: float = Field(default=2000)
    emergency_buffer_months: float = Field(default=3)
    emergency_buffer_cap: float = Field(default=50000)

    # Goal analysis
    urgent_goal_months: int = Field(default=12)
    goal_allocation_fraction: float = Field(default=0.2)
    max_goal_allocation: float = Field(default=3000)
    goal_consolidation_min_goals: int = Field(default=5)
    emergency_goal_min_net_flow: float = Field(default=1000)
    emergency_goal_months: float = Field(default=6)
    emergency_goal_cap: float = Field(default=100000)

    # Metrics read API
    metrics_window_days: int = Field(default=7)

    model_config = SettingsConfigDict(env_prefix="PLANNING_")

    @field_validator(
        "budget_variance_threshold",
        "budget_adjustment_factor",
        "defer_deficit_fraction",
        "partial_pay_fraction",
        "extra_payment_fraction",
        "goal_allocation_fraction",
    )
    @classmethod
    def validate_fraction(cls, v: float) -> float:
        if not 0 < v <= 1:
            raise ValueError("fractions must be in (0, 1]")
        return v


class Settings(BaseSettings):
    app: AppConfig = Field(default_factory=AppConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)
    planning: PlanningConfig = Field(default_factory=PlanningConfig)
    metrics_token: str | None = Field(default=None)

    @model_validator(mode="after")
    def validate_production_settings(self) -> Settings:
        if self.app.env == AppEnvironment.PROD and self.observability.otlp_insecure:
            raise ValueError("OTLP insecure mode is not allowed in production")
        return self


@lru_cache
def get_settings() -> Settings:
    return Settings()


def reload_settings() -> Settings:
    get_settings.cache_clear()
    return get_settings()
