"""
Playwright browser shell.

Runs the music page in a persistent Chromium profile (logins survive
restarts) and turns page events into plugin host calls:

- a new page              -> host.attach_context
- DOMContentLoaded        -> host.content_loaded
- main frame navigated    -> "location" signal for the discovery utility
- page closed             -> host.detach_context
- program console errors  -> the tubeshell.page logger

Renderer -> host messages arrive through one binding exposed to every
page. Pages opened from the settings window are left alone.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

from playwright.async_api import BrowserContext, Error as PlaywrightError, Frame, Page, Playwright, async_playwright

from tubeshell.errors import RendererError
from tubeshell.obs import log_console, logger
from tubeshell.plugins.manager import PluginHost
from tubeshell.renderer.context import BRIDGE_NAME, RendererContext
from tubeshell.settings import ShellSettings
from tubeshell.utils import spawn

# Drops the "controlled by automated software" infobar
IGNORED_DEFAULT_ARGS = ["--enable-automation"]
BROWSER_ARGS = ["--disable-blink-features=AutomationControlled", "--autoplay-policy=no-user-gesture-required"]


class PlaywrightContext(RendererContext):
    def __init__(self, page: Page, name: Optional[str] = None):
        super().__init__(name)
        self.page = page

    @property
    def url(self) -> str:
        return self.page.url

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        if self.closed or self.page.is_closed():
            raise RendererError(f"{self.id} is closed")
        try:
            return await self.page.evaluate(expression, arg)
        except PlaywrightError as e:
            raise RendererError(e.message) from e

    async def add_init_script(self, script: str) -> None:
        if self.closed or self.page.is_closed():
            raise RendererError(f"{self.id} is closed")
        try:
            await self.page.add_init_script(script=script)
        except PlaywrightError as e:
            raise RendererError(e.message) from e


class BrowserShell:
    def __init__(self, host: PluginHost, settings: ShellSettings):
        self.host = host
        self.settings = settings
        self.playwright: Optional[Playwright] = None
        self.browser: Optional[BrowserContext] = None
        self.contexts: dict[Page, PlaywrightContext] = {}
        # Settings pages and anything they open
        self._utility_pages: set[Page] = set()
        self._tasks: set[asyncio.Task] = set()
        self._closed = asyncio.Event()

    @logger.instrument("Launching browser...")
    async def start(self) -> None:
        self.settings.profile_dir.mkdir(parents=True, exist_ok=True)
        self.playwright = await async_playwright().start()
        try:
            self.browser = await self.playwright.chromium.launch_persistent_context(
                str(self.settings.profile_dir),
                headless=self.settings.headless,
                channel=self.settings.browser_channel,
                # Page CSP and Trusted Types would block evaluated program bodies
                bypass_csp=True,
                no_viewport=True,
                args=BROWSER_ARGS,
                ignore_default_args=IGNORED_DEFAULT_ARGS,
            )
        except PlaywrightError:
            await self.playwright.stop()
            self.playwright = None
            raise

        await self.browser.expose_binding(BRIDGE_NAME, self._on_bridge)
        self.browser.on("page", lambda page: spawn(self._on_page(page), self._tasks, name="page-opened"))
        self.browser.on("close", lambda _browser: self._closed.set())

        pages = list(self.browser.pages)
        for page in pages:
            await self._attach(page)
        page = pages[0] if pages else await self.browser.new_page()
        await page.goto(self.settings.start_url)
        logger.info(f"Opened {self.settings.start_url}")

    async def wait_closed(self) -> None:
        """Block until the user closes the browser."""
        await self._closed.wait()

    async def close(self) -> None:
        for context in list(self.contexts.values()):
            await self.host.detach_context(context)
        self.contexts.clear()
        if self.browser is not None:
            try:
                await self.browser.close()
            except PlaywrightError as e:
                logger.debug(f"Browser already closed: {e}")
            self.browser = None
        if self.playwright is not None:
            await self.playwright.stop()
            self.playwright = None
        for task in list(self._tasks):
            task.cancel()

    async def open_settings(self) -> None:
        url = self.settings.settings_url
        if url is None or self.browser is None:
            logger.warning("Settings page is disabled (no settings port)")
            return
        page = await self.browser.new_page()
        self._utility_pages.add(page)
        await page.goto(url)

    # Page events

    async def _on_page(self, page: Page) -> None:
        opener = await page.opener()
        if page in self.contexts or page in self._utility_pages:
            return
        if opener is not None and opener in self._utility_pages:
            self._utility_pages.add(page)
            page.on("close", lambda closed: self._utility_pages.discard(closed))
            return
        await self._attach(page)

    async def _attach(self, page: Page) -> None:
        context = PlaywrightContext(page)
        self.contexts[page] = context
        context.on("open-settings", lambda _payload: self.open_settings())

        page.on("domcontentloaded", lambda _page: spawn(self._content_loaded(context), self._tasks))
        page.on("framenavigated", lambda frame: self._frame_navigated(context, frame))
        page.on("console", lambda message: log_console(context.id, message.type, message.text))
        page.on("close", lambda _page: spawn(self._page_closed(page), self._tasks))

        await self.host.attach_context(context)

    async def _content_loaded(self, context: PlaywrightContext) -> None:
        if context.page in self._utility_pages:
            return
        await self.host.content_loaded(context)

    def _frame_navigated(self, context: PlaywrightContext, frame: Frame) -> None:
        if frame is context.page.main_frame:
            spawn(context.emit("location", {"url": frame.url, "source": "frame"}), self._tasks)

    async def _page_closed(self, page: Page) -> None:
        context = self.contexts.pop(page, None)
        if context is not None:
            await self.host.detach_context(context)

    async def _on_bridge(self, source: Any, message: Any) -> Any:
        page = source.get("page") if isinstance(source, dict) else getattr(source, "page", None)
        context = self.contexts.get(page)
        if context is None:
            return None
        return await context.handle_bridge(message)
