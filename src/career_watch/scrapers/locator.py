"""Best-effort discovery of a company's job-listing page."""

from __future__ import annotations

import logging
import re
from urllib.parse import urljoin, urlparse

from career_watch.scrapers.common import visible_text

logger = logging.getLogger(__name__)

COMMON_CAREER_PATHS = (
    "/careers",
    "/jobs",
    "/employment",
    "/work-with-us",
    "/job-openings",
    "/opportunities",
)
MIN_CAREER_PAGE_LENGTH = 1000

_JOB_SIGNAL = re.compile(r"jobs?|careers?|employment|hiring|opportunit(?:y|ies)", re.I)


class CareerPageError(RuntimeError):
    pass


def normalize_site_url(raw: str) -> str:
    value = (raw or "").strip()
    if not value:
        raise ValueError("site URL must not be empty")
    if "://" not in value:
        value = f"https://{value}"
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.hostname or "." not in parsed.hostname:
        raise ValueError(f"invalid site URL: {raw!r}")
    return value


def extract_company_name(url: str) -> str:
    try:
        hostname = urlparse(url).hostname or ""
    except ValueError:
        return "Unknown Company"
    if hostname.startswith("www."):
        hostname = hostname[4:]
    name = hostname.split(".")[0]
    return name or "Unknown Company"


def has_job_signal(html: str) -> bool:
    return bool(_JOB_SIGNAL.search(visible_text(html)))


async def _load(page, url: str, *, timeout_ms: int, settle_ms: int) -> str:
    response = await page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
    if response is not None and not response.ok:
        raise CareerPageError(f"{url} answered with HTTP {response.status}")
    if settle_ms:
        await page.wait_for_timeout(settle_ms)
    return await page.content()


async def find_career_page(
    page,
    url: str,
    *,
    timeout_ms: int = 30_000,
    probe_timeout_ms: int = 20_000,
    settle_ms: int = 0,
) -> str:
    """Return the most likely job-listing URL for ``url``.

    The root page wins if it already mentions jobs. Otherwise the common
    career paths are probed in order and the first substantial page with job
    content is accepted. When nothing qualifies, ``<root>/careers`` is returned
    unvalidated.

    Raises:
        CareerPageError: if the root URL itself cannot be loaded.
    """
    try:
        await page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
        if settle_ms:
            await page.wait_for_timeout(settle_ms)
        html = await page.content()
    except Exception as exc:
        raise CareerPageError(f"Could not find career page for {url}: {exc}") from exc

    if has_job_signal(html):
        logger.info("career content found on root page %s", url)
        return url

    for path in COMMON_CAREER_PATHS:
        candidate = urljoin(url, path)
        try:
            candidate_html = await _load(
                page, candidate, timeout_ms=probe_timeout_ms, settle_ms=settle_ms
            )
        except Exception as exc:
            logger.info("career path %s failed: %s", candidate, exc)
            continue
        if len(candidate_html) > MIN_CAREER_PAGE_LENGTH and has_job_signal(candidate_html):
            logger.info("found career page %s", candidate)
            return candidate

    fallback = f"{url.rstrip('/')}/careers"
    logger.info("no career page detected for %s, using %s", url, fallback)
    return fallback
