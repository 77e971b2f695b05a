"""Language-model extraction used when DOM heuristics find nothing.

This tier is deliberately low precision: the completion is read line by line
and every usable line becomes one candidate.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from typing import Any

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from career_watch.keywords import match_keywords
from career_watch.models import CandidateJob
from career_watch.scrapers.common import clean_spaces, utc_now_iso

logger = logging.getLogger(__name__)

MAX_CONTENT_CHARS = 12_000
MAX_TITLE_CHARS = 150
MIN_TITLE_LENGTH = 3

_URL_PATTERN = re.compile(r"https?://[^\s|<>\"')\]]+")
_LINE_PREFIX = re.compile(r"^\s*(?:[-*•]+|\d+[.)])\s*")

SYSTEM_PROMPT = (
    "You extract job postings from career web pages. "
    "Answer with one job per line in the form: Title | URL | short description. "
    "Do not add headings, numbering or commentary. "
    "If there are no job postings, answer with an empty message."
)


def build_messages(
    content: str,
    keywords: Sequence[str],
    company_name: str,
    career_page_url: str,
) -> list[dict[str, str]]:
    if keywords:
        focus = "Only include jobs related to these keywords: " + ", ".join(keywords) + "."
    else:
        focus = "Include every job posting you can find."
    user_prompt = (
        f"Company: {company_name}\n"
        f"Career page: {career_page_url}\n"
        f"{focus}\n\n"
        f"Page content:\n{content[:MAX_CONTENT_CHARS]}"
    )
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": user_prompt},
    ]


def parse_completion(
    text: str,
    *,
    career_page_url: str,
    company_name: str,
    keywords: Sequence[str],
    found_at: str | None = None,
) -> list[CandidateJob]:
    date_found = found_at or utc_now_iso()
    candidates: list[CandidateJob] = []
    seen_urls: set[str] = set()

    for raw_line in (text or "").splitlines():
        line = clean_spaces(_LINE_PREFIX.sub("", raw_line))
        if not line:
            continue

        url_match = _URL_PATTERN.search(line)
        url = url_match.group(0).rstrip(".,;") if url_match else career_page_url

        title = clean_spaces(line.split(" | ", 1)[0])[:MAX_TITLE_CHARS]
        if len(title) < MIN_TITLE_LENGTH or url in seen_urls:
            continue
        seen_urls.add(url)

        candidates.append(
            CandidateJob(
                title=title,
                url=url,
                company_name=company_name,
                matched_keywords=match_keywords(line, keywords),
                date_found=date_found,
                tier="ai",
                description=line,
            )
        )

    return candidates


def _completion_text(payload: Any) -> str:
    content = payload["choices"][0]["message"]["content"]
    if not isinstance(content, str):
        raise ValueError("completion content is not text")
    return content


class AIFallbackExtractor:
    def __init__(
        self,
        api_key: str,
        *,
        base_url: str,
        model: str,
        timeout_seconds: float = 30.0,
        retry_attempts: int = 2,
        client: httpx.AsyncClient | None = None,
    ):
        self._api_key = api_key
        self._endpoint = f"{base_url.rstrip('/')}/chat/completions"
        self._model = model
        self._timeout = timeout_seconds
        self._retry_attempts = retry_attempts
        self._client = client

    async def _post(self, client: httpx.AsyncClient, body: dict[str, Any]) -> httpx.Response:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._retry_attempts),
            wait=wait_fixed(1),
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
        ):
            with attempt:
                response = await client.post(
                    self._endpoint,
                    json=body,
                    headers={"Authorization": f"Bearer {self._api_key}"},
                    timeout=self._timeout,
                )
                response.raise_for_status()
        return response

    async def complete(self, messages: list[dict[str, str]]) -> str:
        body = {"model": self._model, "messages": messages, "temperature": 0.2}
        if self._client is not None:
            response = await self._post(self._client, body)
        else:
            async with httpx.AsyncClient() as client:
                response = await self._post(client, body)
        return _completion_text(response.json())

    async def extract(
        self,
        content: str,
        *,
        keywords: Sequence[str],
        company_name: str,
        career_page_url: str,
    ) -> list[CandidateJob]:
        """Return candidates parsed from a completion, or [] on any failure."""
        if not content.strip():
            return []
        messages = build_messages(content, keywords, company_name, career_page_url)
        try:
            text = await self.complete(messages)
        except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError) as exc:
            logger.warning("AI fallback failed for %s: %s", company_name, exc)
            return []

        candidates = parse_completion(
            text,
            career_page_url=career_page_url,
            company_name=company_name,
            keywords=keywords,
        )
        logger.info("AI fallback produced %d candidate jobs for %s", len(candidates), company_name)
        return candidates
