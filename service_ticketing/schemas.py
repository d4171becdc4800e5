"""Pydantic models validating API payloads and query strings."""

from __future__ import annotations

import re
from datetime import UTC, date, datetime, time
from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator, model_validator
from pydantic.alias_generators import to_camel, to_snake

from service_ticketing import statuses
from service_ticketing.config import get_settings
from service_ticketing.models import DEFAULT_SERVICE_RADIUS_KM

PartnerStatusUpdate = Literal["confirmed", "in_progress", "completed"]


class _Input(BaseModel):
    model_config = ConfigDict(
        str_strip_whitespace=True,
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    )


class CreateRequestInput(_Input):
    category_id: int = Field(..., gt=0)
    service_id: int | None = Field(None, gt=0)
    customer_name: str = Field(..., min_length=2, max_length=255)
    customer_phone: str = Field(..., min_length=10, max_length=50)
    customer_address: str = Field(..., min_length=5)
    customer_lat: float = Field(..., ge=-90, le=90)
    customer_lng: float = Field(..., ge=-180, le=180)
    description: str | None = None


class AssignRequestInput(_Input):
    partner_id: int = Field(..., gt=0)
    branch_id: int = Field(..., gt=0)


class RejectRequestInput(_Input):
    reason: str = Field(..., min_length=10)


class UpdateStatusInput(_Input):
    status: PartnerStatusUpdate
    notes: str | None = None


class RateRequestInput(_Input):
    rating: int = Field(..., ge=1, le=5)
    feedback: str | None = None


_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _parse_datetime(value: str | datetime | None, *, end_of_day: bool = False) -> datetime | None:
    """Parse an ISO-8601 value as UTC; a bare date can stand for the last instant of that day."""

    if value is None or isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if not text:
            return None
        if end_of_day and _DATE_ONLY.match(text):
            try:
                return datetime.combine(date.fromisoformat(text), time.max, tzinfo=UTC)
            except ValueError as exc:
                raise ValueError("must be an ISO-8601 datetime") from exc
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError as exc:
            raise ValueError("must be an ISO-8601 datetime") from exc
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


class RequestFilters(_Input):
    """Query-string filters for request listings."""

    status: str | None = None
    category_id: int | None = Field(None, gt=0)
    partner_id: int | None = Field(None, gt=0)
    branch_id: int | None = Field(None, gt=0)
    date_from: datetime | None = None
    date_to: datetime | None = None
    query: str | None = None
    page: int = Field(1, ge=1)
    limit: int = Field(20, ge=1, validate_default=True)
    sort_by: Literal["created_at", "updated_at", "submitted_at", "assigned_at", "completed_at"] = "created_at"
    sort_order: Literal["asc", "desc"] = "desc"

    @field_validator("status", "query", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if value is None:
            return None
        trimmed = str(value).strip()
        return trimmed or None

    @field_validator("category_id", "partner_id", "branch_id", mode="before")
    @classmethod
    def _empty_id(cls, value):
        if value in ("", None):
            return None
        return value

    @field_validator("status")
    @classmethod
    def _known_status(cls, value: str | None) -> str | None:
        if value is not None and value not in statuses.REQUEST_STATUSES:
            raise ValueError(f"unknown status '{value}'")
        return value

    @field_validator("date_from", "date_to", mode="before")
    @classmethod
    def _dates(cls, value, info: ValidationInfo):
        return _parse_datetime(value, end_of_day=info.field_name == "date_to")

    @field_validator("limit")
    @classmethod
    def _cap_limit(cls, value: int) -> int:
        return min(value, get_settings().request_list_max_limit)

    @field_validator("sort_by", mode="before")
    @classmethod
    def _snake_sort_field(cls, value):
        return to_snake(str(value).strip())

    @field_validator("sort_order", mode="before")
    @classmethod
    def _lower(cls, value):
        return str(value).strip().lower()

    @model_validator(mode="before")
    @classmethod
    def _drop_empty_sort(cls, data):
        if isinstance(data, dict):
            data = {key: value for key, value in data.items() if not (key.lower().startswith("sort") and value in ("", None))}
        return data

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class LoginInput(_Input):
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def _lower_email(cls, value: str) -> str:
        return value.lower()


class RegisterInput(_Input):
    name: str = Field(..., min_length=2, max_length=255)
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=8)
    phone: str | None = Field(None, max_length=50)

    @field_validator("email")
    @classmethod
    def _valid_email(cls, value: str) -> str:
        if "@" not in value or value.startswith("@") or value.endswith("@"):
            raise ValueError("must be a valid email address")
        return value.lower()


class ChangePasswordInput(_Input):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8)


class PartnerInput(_Input):
    name: str = Field(..., min_length=2, max_length=255)
    contact_email: str | None = None
    contact_phone: str | None = None
    status: Literal["active", "inactive", "suspended"] = "active"


class PartnerUpdateInput(_Input):
    name: str | None = Field(None, min_length=2, max_length=255)
    contact_email: str | None = None
    contact_phone: str | None = None
    status: Literal["active", "inactive", "suspended"] | None = None


class BranchInput(_Input):
    name: str = Field(..., min_length=2, max_length=255)
    address: str | None = None
    lat: float | None = Field(None, ge=-90, le=90)
    lng: float | None = Field(None, ge=-180, le=180)
    contact_name: str | None = None
    phone: str | None = None
    radius_km: float = Field(DEFAULT_SERVICE_RADIUS_KM, gt=0)


class PartnerUserInput(RegisterInput):
    branch_ids: List[int] = Field(default_factory=list)
    role: str = "technician"


class StaffUserInput(RegisterInput):
    user_type: Literal["admin", "operation"] = "operation"


class PartnerCategoryInput(_Input):
    category_id: int = Field(..., gt=0)


class NearestBranchQuery(_Input):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    category_id: int | None = Field(None, gt=0)
    partner_id: int | None = Field(None, gt=0)

    @field_validator("category_id", "partner_id", mode="before")
    @classmethod
    def _empty_id(cls, value):
        if value in ("", None):
            return None
        return value


class CategoryInput(_Input):
    name: str = Field(..., min_length=2, max_length=255)
    description: str | None = None


class ServiceInput(_Input):
    category_id: int = Field(..., gt=0)
    name: str = Field(..., min_length=2, max_length=255)
    description: str | None = None


class ConfigurationInput(_Input):
    value: str
    description: str | None = None
    partner_id: int | None = Field(None, gt=0)
