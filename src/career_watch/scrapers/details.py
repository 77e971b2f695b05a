from __future__ import annotations

import logging
import re
from datetime import datetime

from career_watch.models import JobDetails
from career_watch.scrapers.common import make_soup

logger = logging.getLogger(__name__)

DESCRIPTION_SELECTORS = (
    ".job-description",
    ".description",
    "[class*='description']",
    ".content",
    ".job-content",
    "article",
    "main",
    ".job-details",
    "[class*='job-details']",
)
MIN_DESCRIPTION_LENGTH = 100
MIN_BODY_LENGTH = 200
BODY_EXCERPT_LENGTH = 500

NO_DESCRIPTION = "No description available."
UNAVAILABLE_DESCRIPTION = "Unable to fetch job description."

_US_DATE = r"(\d{1,2}/\d{1,2}/\d{4})"
_ISO_DATE = r"(\d{4}-\d{2}-\d{2})"

# (pattern, strptime format); tried in order, first parseable match wins.
DEADLINE_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"deadline[:\s]+" + _US_DATE, re.I), "%m/%d/%Y"),
    (re.compile(r"deadline[:\s]+" + _ISO_DATE, re.I), "%Y-%m-%d"),
    (re.compile(r"apply by[:\s]+" + _US_DATE, re.I), "%m/%d/%Y"),
    (re.compile(r"apply by[:\s]+" + _ISO_DATE, re.I), "%Y-%m-%d"),
    (re.compile(r"closing date[:\s]+" + _US_DATE, re.I), "%m/%d/%Y"),
    (re.compile(r"closing date[:\s]+" + _ISO_DATE, re.I), "%Y-%m-%d"),
)


def parse_deadline(text: str) -> str | None:
    for pattern, date_format in DEADLINE_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        try:
            return datetime.strptime(match.group(1), date_format).date().isoformat()
        except ValueError:
            continue
    return None


def parse_job_details(html: str) -> JobDetails:
    soup = make_soup(html)

    description = ""
    for selector in DESCRIPTION_SELECTORS:
        element = soup.select_one(selector)
        if element is None:
            continue
        text = element.get_text("\n", strip=True)
        if len(text) > MIN_DESCRIPTION_LENGTH:
            description = text
            break

    body = soup.body or soup
    body_text = body.get_text("\n", strip=True)
    if not description and len(body_text) > MIN_BODY_LENGTH:
        description = body_text[:BODY_EXCERPT_LENGTH] + "..."

    return JobDetails(
        description=description or NO_DESCRIPTION,
        application_deadline=parse_deadline(body.get_text(" ", strip=True)),
    )


async def fetch_job_details(
    page,
    url: str,
    *,
    timeout_ms: int = 30_000,
    settle_ms: int = 0,
) -> JobDetails:
    """Visit a posting and extract its description and deadline; never raises."""
    try:
        response = await page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
        if response is not None and not response.ok:
            logger.warning("job page %s answered with HTTP %s", url, response.status)
            return JobDetails(description=UNAVAILABLE_DESCRIPTION, application_deadline=None)
        if settle_ms:
            await page.wait_for_timeout(settle_ms)
        html = await page.content()
        return parse_job_details(html)
    except Exception as exc:
        logger.warning("could not fetch job details from %s: %s", url, exc)
        return JobDetails(description=UNAVAILABLE_DESCRIPTION, application_deadline=None)
