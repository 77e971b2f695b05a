import re

import pytest

from career_watch.guards import (
    JobValidationError,
    get_valid_job_columns,
    prepare_job_for_insert,
    sanitize_job_data,
    validate_job_columns,
)

VALID_JOB = {
    "title": "Software Engineer",
    "url": "https://job.example.com",
    "matchedKeywords": ["react", "typescript"],
    "dateFound": "2026-01-01T10:00:00+00:00",
    "description": "A great job opportunity.",
    "companyId": 1,
    "status": "Seen",
    "priority": "high",
    "salary": "$100,000",
    "requirements": ["3+ years experience"],
    "applicationDeadline": "2026-02-28",
    "extraColumn": "should be removed",
}


def test_prepare_job_keeps_whitelisted_fields() -> None:
    job = prepare_job_for_insert(VALID_JOB)

    assert job.title == "Software Engineer"
    assert job.url == "https://job.example.com"
    assert job.matched_keywords == ["react", "typescript"]
    assert job.company_id == 1
    assert job.status == "Seen"
    assert job.priority == "high"
    assert job.application_deadline == "2026-02-28"
    assert "extraColumn" not in job.model_dump()


def test_prepare_job_applies_defaults() -> None:
    job = prepare_job_for_insert(
        {"title": "Frontend Developer", "url": "https://acme.com/jobs/7", "company_id": 2}
    )

    assert job.status == "New"
    assert job.priority == "medium"
    assert job.matched_keywords == []
    assert re.match(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}", job.date_found)
    assert job.application_deadline is None


def test_prepare_job_drops_injected_columns() -> None:
    job = prepare_job_for_insert(
        {
            "title": "Engineer",
            "url": "https://acme.com/jobs/1",
            "company_id": 1,
            "; DROP TABLE jobs; --": "malicious",
            "user_id": "someone-else",
        }
    )
    dumped = job.model_dump()
    assert "; DROP TABLE jobs; --" not in dumped
    assert "user_id" not in dumped


@pytest.mark.parametrize("raw", [None, "string", 123, True, ["title"]])
def test_prepare_job_rejects_non_mappings(raw) -> None:
    with pytest.raises(JobValidationError, match="Invalid input"):
        prepare_job_for_insert(raw)


@pytest.mark.parametrize(
    "raw",
    [
        {"unknown": "value"},
        {"title": "Engineer", "company_id": 1},
        {"title": "Engineer", "url": "https://acme.com/jobs/1"},
        {"title": "Engineer", "url": "invalid-url", "company_id": 1},
        {"title": "Engineer", "url": "mailto:jobs@acme.com", "company_id": 1},
        {"title": "   ", "url": "https://acme.com/jobs/1", "company_id": 1},
        {"title": "Engineer", "url": "https://acme.com/jobs/1", "company_id": 1, "status": "Gone"},
    ],
)
def test_prepare_job_rejects_missing_or_malformed_fields(raw) -> None:
    with pytest.raises(JobValidationError, match="Job validation failed"):
        prepare_job_for_insert(raw)


def test_sanitize_job_data_maps_camel_case_and_drops_unknown() -> None:
    sanitized = sanitize_job_data({"companyId": 3, "title": "x", "evil": 1})
    assert sanitized == {"company_id": 3, "title": "x"}


def test_validate_job_columns_reports_invalid_keys() -> None:
    report = validate_job_columns({"title": "x", "dateFound": "now", "bogus": 1})
    assert report["is_valid"] is False
    assert report["invalid_columns"] == ["bogus"]
    assert report["valid_columns"] == ["title", "dateFound"]


def test_valid_columns_include_required_fields() -> None:
    columns = get_valid_job_columns()
    for required in ("title", "url", "company_id"):
        assert required in columns
