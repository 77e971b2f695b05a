from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime, timedelta, timezone

from career_watch.models import DEFAULT_INTERVAL_MINUTES, TrackedSite

logger = logging.getLogger(__name__)

_UNIT_MINUTES = {
    "hour": 60,
    "hours": 60,
    "day": 60 * 24,
    "days": 60 * 24,
    "week": 60 * 24 * 7,
    "weeks": 60 * 24 * 7,
}


def convert_interval_to_minutes(value: str | None) -> int:
    """Convert a user-facing interval such as "2 hours" into minutes.

    Anything that cannot be read as a positive count of hours, days or weeks
    falls back to one day.
    """
    if not value or not isinstance(value, str):
        return DEFAULT_INTERVAL_MINUTES
    parts = value.strip().lower().split()
    if len(parts) != 2:
        return DEFAULT_INTERVAL_MINUTES
    count_raw, unit = parts
    try:
        count = int(count_raw)
    except ValueError:
        return DEFAULT_INTERVAL_MINUTES
    if count <= 0 or unit not in _UNIT_MINUTES:
        return DEFAULT_INTERVAL_MINUTES
    return count * _UNIT_MINUTES[unit]


def _parse_timestamp(raw: str) -> datetime | None:
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_due(site: TrackedSite, now_utc: datetime) -> bool:
    if not site.last_checked_at:
        return True
    last_checked = _parse_timestamp(site.last_checked_at)
    if last_checked is None:
        return True
    interval = site.check_interval_minutes or DEFAULT_INTERVAL_MINUTES
    return now_utc >= last_checked + timedelta(minutes=interval)


def select_due_sites(sites: Iterable[TrackedSite], now_utc: datetime) -> list[TrackedSite]:
    return [site for site in sites if site.status == "active" and is_due(site, now_utc)]


async def run_periodically(
    job: Callable[[], Awaitable[object]],
    interval_seconds: float,
    *,
    run_immediately: bool = False,
) -> None:
    """Await ``job`` on a fixed cadence until cancelled."""
    if not run_immediately:
        await asyncio.sleep(interval_seconds)
    while True:
        try:
            await job()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("scheduled tick failed")
        await asyncio.sleep(interval_seconds)
