from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from career_watch.guards import JobInsert, JobValidationError, prepare_job_for_insert
from career_watch.models import CandidateJob, JobDetails, TrackedSite
from career_watch.retry import run_with_retry
from career_watch.storage import SiteStore

logger = logging.getLogger(__name__)


def filter_new_candidates(
    candidates: Iterable[CandidateJob], existing_urls: set[str]
) -> list[CandidateJob]:
    return [candidate for candidate in candidates if candidate.url not in existing_urls]


def build_job_record(
    site: TrackedSite, candidate: CandidateJob, details: JobDetails
) -> dict[str, Any]:
    return {
        "title": candidate.title,
        "url": candidate.url,
        "company_name": candidate.company_name,
        "matched_keywords": list(candidate.matched_keywords),
        "date_found": candidate.date_found,
        "description": details.description,
        "application_deadline": details.application_deadline,
        "company_id": site.id,
        "status": "New",
        "priority": site.priority,
    }


def persist_jobs(
    store: SiteStore,
    site: TrackedSite,
    records: Iterable[dict[str, Any]],
    *,
    checked_at_utc: str | None = None,
    retry_attempts: int = 3,
    retry_delay_seconds: float = 0.5,
) -> int:
    """Insert the records that pass the guard and mark the site as checked.

    Rejected records are dropped individually. The last-checked timestamp is
    updated even when nothing was inserted.
    """
    accepted: list[JobInsert] = []
    for record in records:
        try:
            accepted.append(prepare_job_for_insert(record))
        except JobValidationError as exc:
            logger.warning("dropping job %r for %s: %s", record.get("url"), site.name, exc)

    inserted = store.insert_jobs(accepted) if accepted else 0
    run_with_retry(
        store.touch_site,
        site.id,
        checked_at_utc,
        attempts=retry_attempts,
        delay_seconds=retry_delay_seconds,
    )
    return inserted
