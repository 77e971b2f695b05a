from __future__ import annotations

import re
import unicodedata
from collections.abc import Iterable


def normalize_text(value: str) -> str:
    normalized = unicodedata.normalize("NFKC", value or "").casefold()
    return re.sub(r"\s+", " ", normalized).strip()


def parse_keywords(value: str | Iterable[str] | None) -> list[str]:
    if not value:
        return []
    items = value.split(",") if isinstance(value, str) else list(value)
    keywords: list[str] = []
    seen: set[str] = set()
    for item in items:
        keyword = str(item).strip().lower()
        if not keyword or keyword in seen:
            continue
        seen.add(keyword)
        keywords.append(keyword)
    return keywords


def match_keywords(text: str, keywords: Iterable[str]) -> list[str]:
    """Return the keywords found in ``text``; punctuation is significant, so "c++" needs "c++"."""
    haystack = normalize_text(text)
    matched: list[str] = []
    seen: set[str] = set()
    for keyword in keywords:
        needle = normalize_text(keyword)
        if not needle or needle in seen:
            continue
        if needle in haystack:
            seen.add(needle)
            matched.append(keyword)
    return matched
