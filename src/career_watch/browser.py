from __future__ import annotations

from contextlib import AbstractAsyncContextManager

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

from career_watch.config import Settings

LAUNCH_ARGS = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
)


class BrowserSession(AbstractAsyncContextManager["BrowserSession"]):
    """One Chromium process and context shared by every page of a run."""

    def __init__(self, *, headless: bool = True, user_agent: str | None = None):
        self.headless = headless
        self.user_agent = user_agent
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "BrowserSession":
        return cls(headless=settings.headless, user_agent=settings.user_agent)

    async def start(self) -> None:
        if self._browser is not None:
            raise RuntimeError("browser session already started")
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self.headless, args=list(LAUNCH_ARGS)
        )
        context_kwargs = {"user_agent": self.user_agent} if self.user_agent else {}
        self._context = await self._browser.new_context(**context_kwargs)

    async def new_page(self) -> Page:
        if self._context is None:
            raise RuntimeError("browser session not started")
        return await self._context.new_page()

    async def close(self) -> None:
        if self._context is not None:
            await self._context.close()
            self._context = None
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

    async def __aenter__(self) -> "BrowserSession":
        try:
            await self.start()
        except Exception:
            await self.close()
            raise
        return self

    async def __aexit__(self, exc_type, exc, exc_tb) -> None:
        await self.close()
