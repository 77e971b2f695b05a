"""REST surface and cron trigger around the extraction pipeline."""

from __future__ import annotations

import asyncio
import hmac
import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime, timezone

from fastapi import APIRouter, FastAPI, Header, HTTPException, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from career_watch.browser import BrowserSession
from career_watch.config import Settings
from career_watch.models import JobStatus, Priority, RunResult
from career_watch.pipeline import (
    BrowserFactory,
    CandidateSource,
    OnboardRequest,
    onboard_site,
    run_scheduled_check,
)
from career_watch.retry import run_with_retry
from career_watch.schedule import run_periodically
from career_watch.scrapers.ai_fallback import AIFallbackExtractor
from career_watch.scrapers.locator import CareerPageError
from career_watch.storage import SiteStore

logger = logging.getLogger(__name__)


class AddCompanyRequest(BaseModel):
    url: str = Field(min_length=1)
    keywords: list[str] | str
    priority: Priority = "medium"
    check_interval: str | None = Field(default=None, alias="checkInterval")
    career_page_url: str | None = Field(default=None, alias="careerPageUrl")
    user_id: str | None = Field(default=None, alias="userId")

    model_config = ConfigDict(populate_by_name=True)


class PriorityUpdate(BaseModel):
    priority: Priority


class StatusUpdate(BaseModel):
    status: JobStatus


def _state(request: Request):
    return request.app.state


def _authorized(authorization: str | None, secret: str) -> bool:
    if not secret or not authorization:
        return False
    return hmac.compare_digest(authorization.encode(), f"Bearer {secret}".encode())


def build_ai_extractor(settings: Settings) -> AIFallbackExtractor:
    return AIFallbackExtractor(
        settings.llm_api_key,
        base_url=settings.llm_base_url,
        model=settings.llm_model,
        timeout_seconds=settings.llm_timeout_seconds,
        retry_attempts=settings.llm_retry_attempts,
    )


async def run_check_exclusive(state) -> RunResult | None:
    """Run one scheduled check unless another is in progress; returns None when skipped."""
    lock: asyncio.Lock = state.run_lock
    if lock.locked():
        return None
    async with lock:
        return await run_scheduled_check(
            state.settings,
            store=state.store,
            browser_factory=state.browser_factory,
            ai_extractor=state.ai_extractor,
        )


router = APIRouter(prefix="/api")


@router.post("/companies")
async def add_company(payload: AddCompanyRequest, request: Request):
    state = _state(request)
    onboard_request = OnboardRequest(
        url=payload.url,
        keywords=payload.keywords,
        priority=payload.priority,
        check_interval=payload.check_interval,
        career_page_url=payload.career_page_url,
        user_id=payload.user_id,
    )
    try:
        result = await onboard_site(
            onboard_request,
            settings=state.settings,
            store=state.store,
            browser_factory=state.browser_factory,
            ai_extractor=state.ai_extractor,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except CareerPageError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("failed to onboard %s", payload.url)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(exc) or "Internal server error",
        ) from exc

    return {
        "success": True,
        "company": asdict(result.site),
        "jobsFound": result.jobs_found,
        "jobsSaved": result.jobs_saved,
        "usedAiFallback": result.used_ai_fallback,
    }


@router.get("/companies")
def list_companies(request: Request):
    sites = _state(request).store.list_sites()
    return {"success": True, "companies": [asdict(site) for site in sites]}


@router.delete("/companies/{company_id}")
def delete_company(company_id: int, request: Request):
    if not _state(request).store.delete_site(company_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Company not found")
    return {"success": True}


@router.put("/companies/{company_id}/priority")
def update_company_priority(company_id: int, payload: PriorityUpdate, request: Request):
    state = _state(request)
    updated = run_with_retry(
        state.store.update_site_priority,
        company_id,
        payload.priority,
        attempts=state.settings.store_retry_attempts,
        delay_seconds=state.settings.store_retry_delay_seconds,
    )
    if not updated:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Company not found")
    return {"success": True}


@router.get("/jobs")
def list_jobs(request: Request, company_id: int | None = Query(default=None)):
    jobs = _state(request).store.list_jobs(company_id)
    return {"success": True, "jobs": [asdict(job) for job in jobs]}


@router.delete("/jobs/{job_id}")
def delete_job(job_id: int, request: Request):
    if not _state(request).store.delete_job(job_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    return {"success": True}


@router.put("/jobs/{job_id}/status")
def update_job_status(job_id: int, payload: StatusUpdate, request: Request):
    if not _state(request).store.update_job_status(job_id, payload.status):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    return {"success": True}


@router.api_route("/cron/check-jobs", methods=["GET", "POST"])
async def cron_check_jobs(request: Request, authorization: str | None = Header(default=None)):
    state = _state(request)
    if not _authorized(authorization, state.settings.cron_secret):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    result = await run_check_exclusive(state)
    if result is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A check is already running")
    return {
        "success": True,
        "processed": result.processed,
        "newJobs": result.new_jobs,
        "totalCompanies": result.total_sites,
        "due": result.due_sites,
        "failed": result.failed_site_count,
    }


def create_app(
    settings: Settings,
    *,
    store: SiteStore | None = None,
    browser_factory: BrowserFactory | None = None,
    ai_extractor: CandidateSource | None = None,
) -> FastAPI:
    owns_store = store is None
    site_store = store if store is not None else SiteStore(settings.db_path)

    async def scheduled_tick() -> None:
        if await run_check_exclusive(app.state) is None:
            logger.info("previous check still running, skipping scheduled tick")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        task: asyncio.Task | None = None
        if settings.scheduler_enabled:
            logger.info(
                "starting scheduler every %d minutes", settings.scheduler_interval_minutes
            )
            task = asyncio.create_task(
                run_periodically(scheduled_tick, settings.scheduler_interval_minutes * 60)
            )
        yield
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if owns_store:
            site_store.close()

    app = FastAPI(title="career-watch", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = site_store
    app.state.browser_factory = browser_factory or (lambda: BrowserSession.from_settings(settings))
    app.state.ai_extractor = ai_extractor or build_ai_extractor(settings)
    app.state.run_lock = asyncio.Lock()
    app.include_router(router)

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(_: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": str(exc.detail)},
        )

    @app.exception_handler(RequestValidationError)
    async def _validation_error(_: Request, exc: RequestValidationError) -> JSONResponse:
        fields = sorted({".".join(str(part) for part in err["loc"][1:]) for err in exc.errors()})
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "error": f"Invalid request: {', '.join(fields)}"},
        )

    @app.get("/health")
    async def health():
        return {
            "success": True,
            "status": "OK",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    return app
