import asyncio
import json

import httpx

from career_watch.scrapers.ai_fallback import (
    MAX_CONTENT_CHARS,
    AIFallbackExtractor,
    build_messages,
    parse_completion,
)

CAREER_PAGE = "https://acme.com/careers"

COMPLETION = """1. Frontend Engineer | https://acme.com/jobs/fe | Build React apps
- Backend Engineer | https://acme.com/jobs/be | Go services

Designer | no link here
Data Analyst | also no link
QA
"""


def _chat_response(content: str) -> httpx.Response:
    return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})


def _extract(handler, content: str = "We are hiring a Frontend Engineer", retry_attempts: int = 1):
    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            extractor = AIFallbackExtractor(
                "test-key",
                base_url="https://llm.test/v1/",
                model="test-model",
                retry_attempts=retry_attempts,
                client=client,
            )
            return await extractor.extract(
                content,
                keywords=["react"],
                company_name="acme",
                career_page_url=CAREER_PAGE,
            )

    return asyncio.run(scenario())


def test_parse_completion_reads_one_job_per_line() -> None:
    jobs = parse_completion(
        COMPLETION,
        career_page_url=CAREER_PAGE,
        company_name="acme",
        keywords=["react"],
        found_at="2026-03-02T12:00:00+00:00",
    )

    assert [job.title for job in jobs] == ["Frontend Engineer", "Backend Engineer", "Designer"]
    assert [job.url for job in jobs] == [
        "https://acme.com/jobs/fe",
        "https://acme.com/jobs/be",
        CAREER_PAGE,
    ]
    assert jobs[0].matched_keywords == ["react"]
    assert jobs[1].matched_keywords == []
    assert jobs[0].description == "Frontend Engineer | https://acme.com/jobs/fe | Build React apps"
    assert all(job.tier == "ai" for job in jobs)


def test_parse_completion_truncates_long_titles() -> None:
    jobs = parse_completion(
        "X" * 200 + " | https://acme.com/jobs/1",
        career_page_url=CAREER_PAGE,
        company_name="acme",
        keywords=[],
    )

    assert len(jobs[0].title) == 150


def test_build_messages_caps_page_content() -> None:
    messages = build_messages("a" * (MAX_CONTENT_CHARS + 500), [], "acme", CAREER_PAGE)

    assert messages[0]["role"] == "system"
    assert "Include every job posting" in messages[1]["content"]
    assert "a" * MAX_CONTENT_CHARS in messages[1]["content"]
    assert "a" * (MAX_CONTENT_CHARS + 1) not in messages[1]["content"]


def test_extract_posts_chat_completion_request() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return _chat_response(COMPLETION)

    jobs = _extract(handler)

    assert len(jobs) == 3
    request = seen[0]
    assert str(request.url) == "https://llm.test/v1/chat/completions"
    assert request.headers["Authorization"] == "Bearer test-key"
    body = json.loads(request.content)
    assert body["model"] == "test-model"
    assert "react" in body["messages"][1]["content"]
    assert "We are hiring a Frontend Engineer" in body["messages"][1]["content"]


def test_extract_returns_empty_list_on_http_error() -> None:
    assert _extract(lambda request: httpx.Response(500, text="upstream exploded")) == []


def test_extract_returns_empty_list_on_malformed_payloads() -> None:
    assert _extract(lambda request: httpx.Response(200, text="not json")) == []
    assert _extract(lambda request: httpx.Response(200, json={"choices": []})) == []
    assert _extract(lambda request: httpx.Response(200, json={"error": "nope"})) == []


def test_extract_returns_empty_list_for_empty_completion() -> None:
    assert _extract(lambda request: _chat_response("")) == []


def test_extract_skips_request_for_blank_content() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return _chat_response(COMPLETION)

    assert _extract(handler, content="   ") == []
    assert calls == []


def test_extract_retries_transport_errors() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) == 1:
            raise httpx.ConnectError("connection refused", request=request)
        return _chat_response("Frontend Engineer | https://acme.com/jobs/fe | React")

    jobs = _extract(handler, retry_attempts=2)

    assert len(calls) == 2
    assert [job.url for job in jobs] == ["https://acme.com/jobs/fe"]
