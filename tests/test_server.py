import asyncio

import pytest
from fakes import FakeBrowser, StubAIExtractor, padded
from fastapi.testclient import TestClient

from career_watch.config import Settings
from career_watch.server import create_app, run_check_exclusive
from career_watch.storage import SiteStore

DETAIL = "<main>" + "Ship delightful interfaces with a small product team. " * 3 + "</main>"
ACME = {
    "https://acme.com": padded("<h1>Welcome to Acme</h1>"),
    "https://acme.com/careers": padded(
        """
        <h1>Careers</h1>
        <a href="/jobs/1">Software Engineer - React</a>
        <a href="/careers/2">Senior Frontend Developer</a>
        <a href="/positions/3">Backend Engineer</a>
        """
    ),
    "https://acme.com/jobs/1": DETAIL,
    "https://acme.com/careers/2": DETAIL,
}


@pytest.fixture
def store(tmp_path):
    with SiteStore(tmp_path / "state.sqlite") as site_store:
        yield site_store


@pytest.fixture
def client(tmp_path, store):
    settings = Settings(
        db_path=tmp_path / "state.sqlite",
        llm_api_key="test-key",
        cron_secret="test-secret",
        settle_ms=0,
        scroll_delay_ms=0,
        scheduler_enabled=False,
        store_retry_delay_seconds=0.0,
    )
    app = create_app(
        settings,
        store=store,
        browser_factory=lambda: FakeBrowser(ACME),
        ai_extractor=StubAIExtractor(),
    )
    with TestClient(app) as test_client:
        yield test_client


def _add_acme(client: TestClient):
    return client.post(
        "/api/companies",
        json={"url": "acme.com", "keywords": ["react", "frontend"], "checkInterval": "2 hours"},
    )


def test_health(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "OK"


def test_add_company_runs_first_extraction(client: TestClient, store: SiteStore) -> None:
    response = _add_acme(client)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["jobsFound"] == 2
    assert body["jobsSaved"] == 2
    assert body["usedAiFallback"] is False
    assert body["company"]["career_page_url"] == "https://acme.com/careers"
    assert body["company"]["check_interval_minutes"] == 120
    assert store.count_jobs() == 2


def test_add_company_validation_errors(client: TestClient) -> None:
    missing = client.post("/api/companies", json={"url": "acme.com"})
    assert missing.status_code == 400
    assert missing.json() == {"success": False, "error": "Invalid request: keywords"}

    bad_priority = client.post(
        "/api/companies", json={"url": "acme.com", "keywords": ["react"], "priority": "urgent"}
    )
    assert bad_priority.status_code == 400

    bad_url = client.post("/api/companies", json={"url": "localhost", "keywords": ["react"]})
    assert bad_url.status_code == 400
    assert bad_url.json()["success"] is False


def test_add_company_unreachable_site(client: TestClient) -> None:
    response = client.post("/api/companies", json={"url": "unreachable.io", "keywords": "react"})

    assert response.status_code == 502
    assert "Could not find career page" in response.json()["error"]


def test_company_and_job_management(client: TestClient) -> None:
    company_id = _add_acme(client).json()["company"]["id"]

    companies = client.get("/api/companies").json()["companies"]
    assert [company["name"] for company in companies] == ["acme"]

    assert client.put(f"/api/companies/{company_id}/priority", json={"priority": "low"}).status_code == 200
    jobs = client.get("/api/jobs", params={"company_id": company_id}).json()["jobs"]
    assert {job["priority"] for job in jobs} == {"low"}

    job_id = jobs[0]["id"]
    assert client.put(f"/api/jobs/{job_id}/status", json={"status": "Applied"}).status_code == 200
    assert client.put(f"/api/jobs/{job_id}/status", json={"status": "Gone"}).status_code == 400
    assert client.delete(f"/api/jobs/{job_id}").status_code == 200
    assert client.delete(f"/api/jobs/{job_id}").status_code == 404

    assert client.delete(f"/api/companies/{company_id}").status_code == 200
    assert client.get("/api/jobs").json()["jobs"] == []


def test_missing_resources_use_error_shape(client: TestClient) -> None:
    response = client.delete("/api/companies/999")
    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "Company not found"}

    assert client.put("/api/companies/999/priority", json={"priority": "high"}).status_code == 404
    assert client.get("/api/nope").json()["success"] is False


def test_cron_requires_bearer_secret(client: TestClient, store: SiteStore) -> None:
    store.add_site(
        name="acme",
        url="https://acme.com",
        career_page_url="https://acme.com/careers",
        keywords=["react"],
    )

    assert client.post("/api/cron/check-jobs").status_code == 401
    unauthorized = client.get("/api/cron/check-jobs", headers={"Authorization": "Bearer wrong"})
    assert unauthorized.status_code == 401
    assert unauthorized.json() == {"success": False, "error": "Unauthorized"}
    assert store.get_site(1).last_checked_at is None

    response = client.post(
        "/api/cron/check-jobs", headers={"Authorization": "Bearer test-secret"}
    )

    assert response.status_code == 200
    body = response.json()
    assert (body["processed"], body["newJobs"], body["failed"]) == (1, 1, 0)
    assert body["totalCompanies"] == 1


def test_cron_rejects_non_ascii_token(client: TestClient) -> None:
    response = client.post(
        "/api/cron/check-jobs", headers={"Authorization": "Bearer café".encode("latin-1")}
    )

    assert response.status_code == 401
    assert response.json() == {"success": False, "error": "Unauthorized"}


def test_cron_refuses_to_overlap_a_running_check(client: TestClient, store: SiteStore) -> None:
    store.add_site(
        name="acme",
        url="https://acme.com",
        career_page_url="https://acme.com/careers",
        keywords=["react"],
    )
    state = client.app.state
    asyncio.run(state.run_lock.acquire())

    response = client.post("/api/cron/check-jobs", headers={"Authorization": "Bearer test-secret"})

    assert response.status_code == 409
    assert response.json() == {"success": False, "error": "A check is already running"}
    assert asyncio.run(run_check_exclusive(state)) is None
    assert store.get_site(1).last_checked_at is None

    state.run_lock.release()
    assert asyncio.run(run_check_exclusive(state)).processed == 1
