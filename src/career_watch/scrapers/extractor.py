"""Heuristic job-link extraction from a rendered listing page."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from urllib.parse import urljoin

from bs4 import Tag

from career_watch.keywords import match_keywords
from career_watch.models import CandidateJob
from career_watch.scrapers.common import clean_spaces, is_http_url, make_soup, utc_now_iso

logger = logging.getLogger(__name__)

JOB_SELECTORS = (
    "a[href*='job' i]",
    "a[href*='position' i]",
    "a[href*='career' i]",
    "a[href*='opening' i]",
    ".job-listing",
    ".career-item",
    "[class*='job' i]",
    "[class*='position' i]",
    "[class*='opening' i]",
    "[class*='career' i]",
    "[data-testid*='job' i]",
)
MIN_TITLE_LENGTH = 3

SCROLL_SCRIPT = "() => window.scrollTo(0, document.body.scrollHeight)"
COUNT_SCRIPT = "() => document.querySelectorAll('a[href], li, article, [class*=\"job\"]').length"


def _anchor_for(element: Tag) -> Tag | None:
    if element.name == "a" and element.get("href"):
        return element
    parent = element.find_parent("a", href=True)
    if parent is not None:
        return parent
    nested = element.find_all("a", href=True, limit=2)
    if len(nested) == 1:
        return nested[0]
    return None


def parse_job_links(
    html: str,
    *,
    base_url: str,
    keywords: Sequence[str],
    company_name: str,
    found_at: str | None = None,
) -> list[CandidateJob]:
    """Extract candidate postings in document order.

    With an empty keyword list every well-formed link is kept; otherwise a
    link is kept only when its title matches at least one keyword.
    """
    soup = make_soup(html)
    date_found = found_at or utc_now_iso()
    candidates: list[CandidateJob] = []
    seen_urls: set[str] = set()

    for element in soup.select(", ".join(JOB_SELECTORS)):
        anchor = _anchor_for(element)
        if anchor is None:
            continue

        title = clean_spaces(anchor.get_text(" ", strip=True))
        if len(title) < MIN_TITLE_LENGTH:
            continue

        url = urljoin(base_url, str(anchor.get("href", "")).strip())
        if not is_http_url(url) or url in seen_urls:
            continue
        seen_urls.add(url)

        matched = match_keywords(title, keywords)
        if keywords and not matched:
            continue

        candidates.append(
            CandidateJob(
                title=title,
                url=url,
                company_name=company_name,
                matched_keywords=matched,
                date_found=date_found,
            )
        )

    return candidates


async def scroll_to_load(
    page,
    *,
    max_attempts: int = 12,
    stable_polls: int = 3,
    delay_ms: int = 800,
) -> int:
    """Scroll until the element count stops growing; returns the attempts used."""
    previous_count = -1
    unchanged = 0
    attempts = 0
    try:
        while attempts < max_attempts:
            attempts += 1
            await page.evaluate(SCROLL_SCRIPT)
            if delay_ms:
                await page.wait_for_timeout(delay_ms)
            count = await page.evaluate(COUNT_SCRIPT)
            if count <= previous_count:
                unchanged += 1
                if unchanged >= stable_polls:
                    break
            else:
                unchanged = 0
                previous_count = count
    except Exception as exc:
        logger.warning("scroll to load failed on %s: %s", getattr(page, "url", "?"), exc)
    return attempts


async def extract_candidates(
    page,
    keywords: Sequence[str],
    company_name: str,
    *,
    scroll_delay_ms: int = 800,
) -> list[CandidateJob]:
    await scroll_to_load(page, delay_ms=scroll_delay_ms)
    html = await page.content()
    candidates = parse_job_links(
        html,
        base_url=page.url,
        keywords=keywords,
        company_name=company_name,
    )
    logger.info("extracted %d candidate jobs for %s", len(candidates), company_name)
    return candidates
