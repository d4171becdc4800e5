"""Pydantic-based configuration helpers for the service ticketing backend."""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Iterable, List

from pydantic import BaseModel, Field, ValidationError, field_validator

MIN_SLA_TIMEOUT_MINUTES = 1
MAX_SLA_TIMEOUT_MINUTES = 60


def _split_csv(value: str | list[str] | None) -> list[str]:
    if value is None:
        return []
    if isinstance(value, list):
        return [item.strip() for item in value if item and item.strip()]
    return [item.strip() for item in value.split(",") if item.strip()]


class AppSettings(BaseModel):
    """Settings required by the web application and the SLA monitor."""

    database_url: str = Field(..., alias="DATABASE_URL")
    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    cron_secret: str = Field(..., alias="CRON_SECRET")
    jwt_expiry_minutes: int = Field(60 * 24, alias="JWT_EXPIRY_MINUTES")
    default_sla_timeout_minutes: int = Field(15, alias="DEFAULT_SLA_TIMEOUT_MINUTES")
    admin_email: str | None = Field(None, alias="ADMIN_EMAIL")
    operational_team_emails: List[str] = Field(default_factory=list, alias="OPERATIONAL_TEAM_EMAILS")
    smtp_host: str | None = Field(None, alias="SMTP_HOST")
    smtp_port: int = Field(587, alias="SMTP_PORT")
    smtp_username: str | None = Field(None, alias="SMTP_USERNAME")
    smtp_password: str | None = Field(None, alias="SMTP_PASSWORD")
    smtp_use_tls: bool = Field(True, alias="SMTP_USE_TLS")
    email_from: str = Field("no-reply@service-ticketing.local", alias="EMAIL_FROM")
    auto_create_schema: bool = Field(True, alias="AUTO_CREATE_SCHEMA")
    request_list_max_limit: int = Field(100, alias="REQUEST_LIST_MAX_LIMIT")
    log_level: str = Field("info", alias="LOG_LEVEL")

    @field_validator("operational_team_emails", mode="before")
    @classmethod
    def _split_emails(cls, value: str | list[str] | None) -> list[str]:
        return _split_csv(value)

    @field_validator("admin_email", "smtp_host", "smtp_username", "smtp_password", mode="before")
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        trimmed = str(value).strip()
        return trimmed or None

    @field_validator("default_sla_timeout_minutes")
    @classmethod
    def _ensure_sla_bounds(cls, value: int) -> int:
        if value < MIN_SLA_TIMEOUT_MINUTES or value > MAX_SLA_TIMEOUT_MINUTES:
            raise ValueError(
                f"SLA timeout must be between {MIN_SLA_TIMEOUT_MINUTES} and {MAX_SLA_TIMEOUT_MINUTES} minutes"
            )
        return value

    @field_validator("jwt_expiry_minutes", "request_list_max_limit")
    @classmethod
    def _ensure_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("Value must be greater than zero")
        return value


class CronSettings(BaseModel):
    """Settings for the standalone SLA polling process."""

    api_base_url: str = Field(..., alias="API_BASE_URL")
    cron_secret: str = Field(..., alias="CRON_SECRET")
    interval_seconds: float = Field(60.0, alias="CRON_INTERVAL_SECONDS")
    request_timeout: float = Field(30.0, alias="CRON_REQUEST_TIMEOUT")
    log_level: str = Field("info", alias="LOG_LEVEL")

    @field_validator("api_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        cleaned = value.strip().rstrip("/")
        if not cleaned:
            raise ValueError("API_BASE_URL must not be empty")
        return cleaned

    @field_validator("interval_seconds", "request_timeout")
    @classmethod
    def _ensure_positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("Intervals must be greater than zero")
        return value

    @field_validator("log_level")
    @classmethod
    def _normalise_level(cls, value: str) -> str:
        level = value.strip().lower()
        if level not in {"debug", "info", "warning", "error"}:
            raise ValueError("LOG_LEVEL must be one of debug, info, warning, error")
        return level


def _format_missing(fields: Iterable[str]) -> str:
    """Return a human-friendly comma-separated list of missing env vars."""

    unique: List[str] = []
    for field in fields:
        if field not in unique:
            unique.append(field)
    return ", ".join(unique)


def _raise_settings_error(exc: ValidationError) -> None:
    missing = [str(error["loc"][0]) for error in exc.errors() if error["type"] == "missing"]
    if missing:
        message = f"Missing required environment variables: {_format_missing(missing)}"
    else:
        invalid = [str(error["loc"][0]) for error in exc.errors()]
        message = f"Invalid environment variables: {_format_missing(invalid)}"
    raise RuntimeError(message) from exc


@lru_cache()
def get_settings() -> AppSettings:
    """Fetch and cache application settings from environment variables."""

    try:
        return AppSettings.model_validate(os.environ)
    except ValidationError as exc:
        _raise_settings_error(exc)
        raise


@lru_cache()
def get_cron_settings() -> CronSettings:
    """Fetch and cache poller settings from environment variables."""

    try:
        return CronSettings.model_validate(os.environ)
    except ValidationError as exc:
        _raise_settings_error(exc)
        raise
