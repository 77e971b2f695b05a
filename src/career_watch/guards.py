"""Whitelisting and validation applied to every job record before insert."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Literal
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


class JobValidationError(ValueError):
    pass


VALID_JOB_COLUMNS: tuple[str, ...] = (
    "title",
    "url",
    "matched_keywords",
    "date_found",
    "description",
    "company_id",
    "company_name",
    "status",
    "priority",
    "salary",
    "requirements",
    "application_deadline",
)

_CAMEL_ALIASES = {
    "matchedKeywords": "matched_keywords",
    "dateFound": "date_found",
    "companyId": "company_id",
    "companyName": "company_name",
    "applicationDeadline": "application_deadline",
}


class JobInsert(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str = Field(min_length=1)
    url: str
    company_id: int
    matched_keywords: list[str] = Field(default_factory=list)
    date_found: str
    description: str | None = None
    company_name: str | None = None
    status: Literal["New", "Seen", "Applied", "Archived"] = "New"
    priority: Literal["high", "medium", "low"] = "medium"
    salary: str | None = None
    requirements: list[str] | None = None
    application_deadline: str | None = None

    @field_validator("title")
    @classmethod
    def _strip_title(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("title must not be blank")
        return stripped

    @field_validator("url")
    @classmethod
    def _validate_url(cls, value: str) -> str:
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"url must be an absolute http(s) URL: {value!r}")
        return value


def _canonical_key(key: str) -> str:
    return _CAMEL_ALIASES.get(key, key)


def sanitize_job_data(data: Mapping[str, Any]) -> dict[str, Any]:
    sanitized: dict[str, Any] = {}
    for key, value in data.items():
        column = _canonical_key(str(key))
        if column in VALID_JOB_COLUMNS:
            sanitized[column] = value
    return sanitized


def validate_job_columns(data: Mapping[str, Any]) -> dict[str, Any]:
    valid_columns: list[str] = []
    invalid_columns: list[str] = []
    for key in data:
        if _canonical_key(str(key)) in VALID_JOB_COLUMNS:
            valid_columns.append(key)
        else:
            invalid_columns.append(key)
    return {
        "is_valid": not invalid_columns,
        "invalid_columns": invalid_columns,
        "valid_columns": valid_columns,
    }


def get_valid_job_columns() -> tuple[str, ...]:
    return VALID_JOB_COLUMNS


def prepare_job_for_insert(raw: object) -> JobInsert:
    """Whitelist, default and validate an untyped job record.

    Raises:
        JobValidationError: if ``raw`` is not a mapping or a required field is
            missing or malformed.
    """
    if not isinstance(raw, Mapping):
        raise JobValidationError("Invalid input: expected a mapping")

    data = sanitize_job_data(raw)
    if not data.get("status"):
        data["status"] = "New"
    if not data.get("priority"):
        data["priority"] = "medium"
    if not data.get("date_found"):
        data["date_found"] = datetime.now(timezone.utc).isoformat()
    if not data.get("matched_keywords"):
        data["matched_keywords"] = []

    try:
        return JobInsert(**data)
    except ValidationError as exc:
        raise JobValidationError(f"Job validation failed: {exc}") from exc
