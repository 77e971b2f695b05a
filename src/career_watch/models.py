from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Literal, Mapping

Priority = Literal["high", "medium", "low"]
JobStatus = Literal["New", "Seen", "Applied", "Archived"]
SiteStatus = Literal["active", "inactive"]
ExtractionTier = Literal["dom", "ai"]

PRIORITIES: tuple[str, ...] = ("high", "medium", "low")
JOB_STATUSES: tuple[str, ...] = ("New", "Seen", "Applied", "Archived")
DEFAULT_INTERVAL_MINUTES = 1440


@dataclass(frozen=True)
class TrackedSite:
    id: int
    name: str
    url: str
    career_page_url: str
    keywords: list[str]
    priority: str = "medium"
    check_interval_minutes: int = DEFAULT_INTERVAL_MINUTES
    status: str = "active"
    last_checked_at: str | None = None
    user_id: str | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class CandidateJob:
    title: str
    url: str
    company_name: str
    matched_keywords: list[str]
    date_found: str
    tier: str = "dom"
    description: str | None = None


@dataclass(frozen=True)
class JobDetails:
    description: str
    application_deadline: str | None = None


@dataclass(frozen=True)
class PersistedJob:
    id: int
    company_id: int
    title: str
    url: str
    company_name: str
    matched_keywords: list[str]
    date_found: str
    description: str | None
    application_deadline: str | None
    status: str
    priority: str
    salary: str | None = None
    requirements: list[str] | None = None


@dataclass(frozen=True)
class SiteCheckResult:
    company_id: int
    name: str
    found_count: int = 0
    new_count: int = 0
    used_ai_fallback: bool = False
    error: str | None = None


@dataclass(frozen=True)
class RunResult:
    total_sites: int
    due_sites: int
    processed: int
    new_jobs: int
    site_results: list[SiteCheckResult] = field(default_factory=list)

    @property
    def failed_site_count(self) -> int:
        return sum(1 for result in self.site_results if result.error)


@dataclass(frozen=True)
class OnboardResult:
    site: TrackedSite
    jobs_found: int
    jobs_saved: int
    used_ai_fallback: bool = False


def _pick(record: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in record and record[key] is not None:
            return record[key]
    return default


def _as_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.startswith("["):
            try:
                decoded = json.loads(stripped)
            except ValueError:
                decoded = None
            if isinstance(decoded, list):
                return [str(item) for item in decoded]
        return [item.strip() for item in stripped.split(",") if item.strip()]
    return [str(item) for item in value]


def _company_name(record: Mapping[str, Any]) -> str:
    company = _pick(record, "company_name", "companyName", "company", default="")
    if isinstance(company, Mapping):
        return str(company.get("name") or "")
    return str(company)


def site_from_record(record: Mapping[str, Any]) -> TrackedSite:
    """Build a TrackedSite from a store row or an API payload.

    Both snake_case columns and the camelCase names used in API payloads are
    accepted.
    """
    url = str(_pick(record, "url", "website_url", default=""))
    return TrackedSite(
        id=int(_pick(record, "id", default=0)),
        name=str(_pick(record, "name", "company_name", default="")),
        url=url,
        career_page_url=str(
            _pick(record, "career_page_url", "careerPageUrl", "careers_page_url", default=url)
        ),
        keywords=_as_list(_pick(record, "keywords")),
        priority=str(_pick(record, "priority", default="medium")),
        check_interval_minutes=int(
            _pick(
                record,
                "check_interval_minutes",
                "checkInterval",
                default=DEFAULT_INTERVAL_MINUTES,
            )
        ),
        status=str(_pick(record, "status", default="active")),
        last_checked_at=_pick(record, "last_checked_at", "lastChecked"),
        user_id=_pick(record, "user_id", "userId"),
        created_at=_pick(record, "created_at", "createdAt"),
    )


def job_from_record(record: Mapping[str, Any]) -> PersistedJob:
    company = _pick(record, "company_id", "companyId")
    if company is None and isinstance(record.get("company"), Mapping):
        company = record["company"].get("id")
    requirements = _pick(record, "requirements")
    return PersistedJob(
        id=int(_pick(record, "id", default=0)),
        company_id=int(company or 0),
        title=str(_pick(record, "title", default="")),
        url=str(_pick(record, "url", default="")),
        company_name=_company_name(record),
        matched_keywords=_as_list(_pick(record, "matched_keywords", "matchedKeywords")),
        date_found=str(_pick(record, "date_found", "dateFound", default="")),
        description=_pick(record, "description"),
        application_deadline=_pick(record, "application_deadline", "applicationDeadline"),
        status=str(_pick(record, "status", default="New")),
        priority=str(_pick(record, "priority", default="medium")),
        salary=_pick(record, "salary"),
        requirements=_as_list(requirements) if requirements is not None else None,
    )
