from __future__ import annotations

import argparse
import asyncio

from career_watch.browser import BrowserSession
from career_watch.config import (
    RUN_REQUIRED_ENVS,
    assert_required_envs,
    load_settings,
    mask_secret,
    missing_envs,
)
from career_watch.log import configure_logging
from career_watch.pipeline import OnboardRequest, onboard_site, run_scheduled_check
from career_watch.scrapers.locator import CareerPageError
from career_watch.server import build_ai_extractor, create_app
from career_watch.storage import SiteStore


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="career-watch")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("run", help="Recheck every active site that is due")
    subparsers.add_parser("serve", help="Start the HTTP API with the periodic scheduler")
    subparsers.add_parser("healthcheck", help="Validate config and local runtime readiness")

    onboard_parser = subparsers.add_parser("onboard", help="Add a site and run its first extraction")
    onboard_parser.add_argument("url")
    onboard_parser.add_argument("--keywords", default="", help="Comma separated keywords")
    onboard_parser.add_argument("--priority", choices=("high", "medium", "low"), default="medium")
    onboard_parser.add_argument("--interval", default="1 day", help='e.g. "2 hours", "1 week"')
    onboard_parser.add_argument("--career-page-url", default=None)

    return parser


def _cmd_run() -> int:
    settings = load_settings()
    assert_required_envs(RUN_REQUIRED_ENVS)
    configure_logging(settings.log_level)

    with SiteStore(settings.db_path) as store:
        result = asyncio.run(
            run_scheduled_check(
                settings,
                store=store,
                browser_factory=lambda: BrowserSession.from_settings(settings),
                ai_extractor=build_ai_extractor(settings),
            )
        )

    print(
        "run summary:",
        f"total_sites={result.total_sites}",
        f"due={result.due_sites}",
        f"processed={result.processed}",
        f"new_jobs={result.new_jobs}",
        f"failed_sites={result.failed_site_count}",
    )
    if result.processed and result.failed_site_count == result.processed:
        return 1
    return 0


def _cmd_onboard(args: argparse.Namespace) -> int:
    settings = load_settings()
    assert_required_envs(RUN_REQUIRED_ENVS)
    configure_logging(settings.log_level)

    request = OnboardRequest(
        url=args.url,
        keywords=args.keywords,
        priority=args.priority,
        check_interval=args.interval,
        career_page_url=args.career_page_url,
    )
    with SiteStore(settings.db_path) as store:
        result = asyncio.run(
            onboard_site(
                request,
                settings=settings,
                store=store,
                browser_factory=lambda: BrowserSession.from_settings(settings),
                ai_extractor=build_ai_extractor(settings),
            )
        )

    print(
        f"added {result.site.name} (id={result.site.id})",
        f"career_page={result.site.career_page_url}",
        f"jobs_found={result.jobs_found}",
        f"jobs_saved={result.jobs_saved}",
    )
    return 0


def _cmd_serve() -> int:
    import uvicorn

    settings = load_settings()
    assert_required_envs(RUN_REQUIRED_ENVS)
    configure_logging(settings.log_level)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)
    return 0


def _cmd_healthcheck() -> int:
    settings = load_settings()
    missing = missing_envs(RUN_REQUIRED_ENVS)
    if missing:
        print("missing required env vars:", ", ".join(missing))
        return 1

    try:
        with SiteStore(settings.db_path) as store:
            site_count = len(store.list_sites())
    except Exception as exc:
        print(f"store check failed: {exc}")
        return 1

    print(f"store ready: {settings.db_path} ({site_count} sites)")
    print(f"llm endpoint: {settings.llm_base_url} model={settings.llm_model}")
    print(f"llm api key: {mask_secret(settings.llm_api_key)}")
    print("healthcheck passed")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        if args.command == "run":
            return _cmd_run()
        if args.command == "onboard":
            return _cmd_onboard(args)
        if args.command == "serve":
            return _cmd_serve()
        if args.command == "healthcheck":
            return _cmd_healthcheck()
    except (ValueError, CareerPageError) as exc:
        print(exc)
        return 1

    parser.print_help()
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
