from __future__ import annotations

import re
from datetime import datetime, timezone
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from career_watch.models import CandidateJob

_NON_VISIBLE_TAGS = ("script", "style", "noscript", "template", "svg")


def clean_spaces(value: str) -> str:
    return re.sub(r"\s+", " ", value).strip()


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def is_http_url(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def make_soup(html: str) -> BeautifulSoup:
    soup = BeautifulSoup(html or "", "html.parser")
    for tag in soup(_NON_VISIBLE_TAGS):
        tag.decompose()
    return soup


def visible_text(html: str, separator: str = " ") -> str:
    soup = make_soup(html)
    root = soup.body or soup
    return root.get_text(separator, strip=True)


def dedupe_candidates(candidates: list[CandidateJob]) -> list[CandidateJob]:
    seen: set[str] = set()
    deduped: list[CandidateJob] = []
    for candidate in candidates:
        if candidate.url in seen:
            continue
        seen.add(candidate.url)
        deduped.append(candidate)
    return deduped
