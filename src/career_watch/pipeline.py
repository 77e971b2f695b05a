from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol

from career_watch.config import Settings
from career_watch.gate import build_job_record, filter_new_candidates, persist_jobs
from career_watch.keywords import parse_keywords
from career_watch.models import (
    PRIORITIES,
    CandidateJob,
    JobDetails,
    OnboardResult,
    RunResult,
    SiteCheckResult,
    TrackedSite,
)
from career_watch.schedule import convert_interval_to_minutes, select_due_sites
from career_watch.scrapers.common import dedupe_candidates, visible_text
from career_watch.scrapers.details import fetch_job_details, parse_deadline
from career_watch.scrapers.extractor import extract_candidates
from career_watch.scrapers.locator import extract_company_name, find_career_page, normalize_site_url
from career_watch.storage import SiteStore

logger = logging.getLogger(__name__)


class CandidateSource(Protocol):
    async def extract(
        self,
        content: str,
        *,
        keywords: Sequence[str],
        company_name: str,
        career_page_url: str,
    ) -> list[CandidateJob]: ...


BrowserFactory = Callable[[], AbstractAsyncContextManager[Any]]


@dataclass(frozen=True)
class OnboardRequest:
    url: str
    keywords: Sequence[str] | str
    priority: str = "medium"
    check_interval: str | None = None
    career_page_url: str | None = None
    user_id: str | None = None


def _iso(moment: datetime) -> str:
    return moment.replace(microsecond=0).isoformat()


async def _close_page(page) -> None:
    try:
        await page.close()
    except Exception as exc:
        logger.warning("failed to close page: %s", exc)


async def _collect_candidates(
    page,
    site: TrackedSite,
    *,
    settings: Settings,
    ai_extractor: CandidateSource,
) -> tuple[list[CandidateJob], bool]:
    response = await page.goto(
        site.career_page_url,
        wait_until="domcontentloaded",
        timeout=settings.navigation_timeout_ms,
    )
    if response is not None and not response.ok:
        logger.warning(
            "career page %s answered with HTTP %s, treating as empty",
            site.career_page_url,
            response.status,
        )
        return [], False
    if settings.settle_ms:
        await page.wait_for_timeout(settings.settle_ms)

    candidates = await extract_candidates(
        page, site.keywords, site.name, scroll_delay_ms=settings.scroll_delay_ms
    )
    if candidates:
        return candidates, False

    logger.info("no DOM matches for %s, trying AI fallback", site.name)
    html = await page.content()
    fallback = await ai_extractor.extract(
        visible_text(html),
        keywords=site.keywords,
        company_name=site.name,
        career_page_url=site.career_page_url,
    )
    return dedupe_candidates(fallback), True


async def _enrich(page, site: TrackedSite, candidate: CandidateJob, settings: Settings) -> JobDetails:
    if candidate.tier == "ai" and candidate.url == site.career_page_url and candidate.description:
        # The listing page itself carries no per-job detail worth visiting.
        return JobDetails(
            description=candidate.description,
            application_deadline=parse_deadline(candidate.description),
        )
    return await fetch_job_details(
        page,
        candidate.url,
        timeout_ms=settings.navigation_timeout_ms,
        settle_ms=settings.settle_ms,
    )


async def _enrich_and_persist(
    page,
    site: TrackedSite,
    candidates: list[CandidateJob],
    *,
    settings: Settings,
    store: SiteStore,
    limit: int,
    checked_at_utc: str,
) -> int:
    existing_urls = store.existing_job_urls(site.id)
    fresh = filter_new_candidates(candidates, existing_urls)[:limit]

    records = []
    for candidate in fresh:
        details = await _enrich(page, site, candidate, settings)
        records.append(build_job_record(site, candidate, details))

    return persist_jobs(
        store,
        site,
        records,
        checked_at_utc=checked_at_utc,
        retry_attempts=settings.store_retry_attempts,
        retry_delay_seconds=settings.store_retry_delay_seconds,
    )


async def check_site(
    page,
    site: TrackedSite,
    *,
    settings: Settings,
    store: SiteStore,
    ai_extractor: CandidateSource,
    limit: int | None = None,
    now_utc: datetime | None = None,
) -> SiteCheckResult:
    checked_at = _iso(now_utc or datetime.now(timezone.utc))
    candidates, used_ai = await _collect_candidates(
        page, site, settings=settings, ai_extractor=ai_extractor
    )
    new_count = await _enrich_and_persist(
        page,
        site,
        candidates,
        settings=settings,
        store=store,
        limit=limit or settings.recheck_job_limit,
        checked_at_utc=checked_at,
    )
    logger.info(
        "checked %s: found=%d new=%d ai_fallback=%s",
        site.name,
        len(candidates),
        new_count,
        used_ai,
    )
    return SiteCheckResult(
        company_id=site.id,
        name=site.name,
        found_count=len(candidates),
        new_count=new_count,
        used_ai_fallback=used_ai,
    )


async def onboard_site(
    request: OnboardRequest,
    *,
    settings: Settings,
    store: SiteStore,
    browser_factory: BrowserFactory,
    ai_extractor: CandidateSource,
    now_utc: datetime | None = None,
) -> OnboardResult:
    """Register a new site and run its first extraction immediately.

    A failure after the site row is written removes the row again, so a retry
    does not leave a duplicate behind.

    Raises:
        ValueError: for an invalid URL or priority.
        CareerPageError: when the site cannot be reached.
    """
    url = normalize_site_url(request.url)
    if request.priority not in PRIORITIES:
        raise ValueError(f"priority must be one of {', '.join(PRIORITIES)}")
    keywords = parse_keywords(request.keywords)
    name = extract_company_name(url)
    interval = convert_interval_to_minutes(request.check_interval)
    checked_at = _iso(now_utc or datetime.now(timezone.utc))

    async with browser_factory() as browser:
        page = await browser.new_page()
        try:
            if request.career_page_url:
                career_page_url = normalize_site_url(request.career_page_url)
            else:
                career_page_url = await find_career_page(
                    page,
                    url,
                    timeout_ms=settings.navigation_timeout_ms,
                    probe_timeout_ms=settings.probe_timeout_ms,
                    settle_ms=settings.settle_ms,
                )
            site = store.add_site(
                name=name,
                url=url,
                career_page_url=career_page_url,
                keywords=keywords,
                priority=request.priority,
                check_interval_minutes=interval,
                user_id=request.user_id,
            )
            logger.info("onboarding %s via %s", name, career_page_url)

            try:
                candidates, used_ai = await _collect_candidates(
                    page, site, settings=settings, ai_extractor=ai_extractor
                )
                saved = await _enrich_and_persist(
                    page,
                    site,
                    candidates,
                    settings=settings,
                    store=store,
                    limit=settings.onboard_job_limit,
                    checked_at_utc=checked_at,
                )
            except Exception:
                logger.warning("onboarding %s failed, removing site %d", name, site.id)
                store.delete_site(site.id)
                raise
        finally:
            await _close_page(page)

    return OnboardResult(
        site=store.get_site(site.id) or site,
        jobs_found=len(candidates),
        jobs_saved=saved,
        used_ai_fallback=used_ai,
    )


async def run_scheduled_check(
    settings: Settings,
    *,
    store: SiteStore,
    browser_factory: BrowserFactory,
    ai_extractor: CandidateSource,
    now_utc: datetime | None = None,
) -> RunResult:
    run_at = now_utc or datetime.now(timezone.utc)
    sites = store.list_sites(status="active")
    due_sites = select_due_sites(sites, run_at)
    batch = due_sites[: settings.max_sites_per_run]

    if not batch:
        logger.info("no sites due (active=%d)", len(sites))
        return RunResult(total_sites=len(sites), due_sites=len(due_sites), processed=0, new_jobs=0)

    logger.info("checking %d of %d due sites", len(batch), len(due_sites))
    site_results: list[SiteCheckResult] = []
    async with browser_factory() as browser:
        for site in batch:
            page = None
            try:
                page = await browser.new_page()
                result = await check_site(
                    page,
                    site,
                    settings=settings,
                    store=store,
                    ai_extractor=ai_extractor,
                    limit=settings.recheck_job_limit,
                    now_utc=run_at,
                )
            except Exception as exc:
                logger.error("error checking %s: %s", site.name, exc)
                result = SiteCheckResult(company_id=site.id, name=site.name, error=str(exc))
            finally:
                if page is not None:
                    await _close_page(page)
            site_results.append(result)

    run_result = RunResult(
        total_sites=len(sites),
        due_sites=len(due_sites),
        processed=len(batch),
        new_jobs=sum(result.new_count for result in site_results),
        site_results=site_results,
    )
    logger.info(
        "scheduled check finished: processed=%d new_jobs=%d failed=%d",
        run_result.processed,
        run_result.new_jobs,
        run_result.failed_site_count,
    )
    return run_result
