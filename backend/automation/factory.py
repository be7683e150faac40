"""
Automation connection factory.

Owns the Playwright driver and the browser process, and leases one
AutomationConnection per session. The driver and browser are started lazily
on the first acquire() and stopped by close() at process shutdown.
"""

import asyncio
import logging
from typing import Optional

from playwright.async_api import Error as PlaywrightError, async_playwright

from automation.config import DEFAULT_VIEWPORT, AutomationConfig
from automation.connection import AutomationConnection
from errors import AcquisitionError

logger = logging.getLogger(__name__)


class AutomationConnectionFactory:

    def __init__(self, config: Optional[AutomationConfig] = None):
        self.config = config or AutomationConfig()
        self._playwright = None
        self._browser = None
        self._shared_context = None
        self._shared_page = None
        self._shared_lock = asyncio.Lock()
        self._start_lock = asyncio.Lock()
        self._closed = False

    async def acquire(self, label: str = "") -> AutomationConnection:
        """
        Lease a connection for one session.

        Isolated mode opens a new BrowserContext and page; shared mode hands
        out a lease on the single shared page, forwarding through one lock.
        Any backend failure is raised as AcquisitionError.
        """
        if self._closed:
            raise AcquisitionError("automation factory is shut down")

        engine = self.config.browser.value
        try:
            if self.config.shared:
                page = await self._ensure_shared_page()
                return AutomationConnection(page, context=None, lock=self._shared_lock, label=label)

            browser = await self._ensure_browser()
            context = await browser.new_context(viewport=DEFAULT_VIEWPORT)
            try:
                page = await context.new_page()
            except PlaywrightError:
                await context.close()
                raise
            return AutomationConnection(page, context=context, label=label)
        except PlaywrightError as exc:
            logger.error("Could not acquire %s connection: %s", engine, exc)
            raise AcquisitionError(f"could not start {engine} automation: {exc}") from exc

    async def release(self, connection: AutomationConnection) -> None:
        """Release a lease. Releasing the same connection twice is a no-op."""
        if connection.released:
            return
        await connection.close()
        logger.debug("Released automation connection %s", connection.label)

    async def close(self) -> None:
        """Stop the shared context, browser and driver. Safe to call repeatedly."""
        if self._closed:
            return
        self._closed = True

        async with self._start_lock:
            if self._shared_context is not None:
                await _quietly(self._shared_context.close(), "shared context")
            if self._browser is not None:
                await _quietly(self._browser.close(), "browser")
            if self._playwright is not None:
                await _quietly(self._playwright.stop(), "playwright driver")
            self._shared_context = None
            self._shared_page = None
            self._browser = None
            self._playwright = None

        logger.info("Automation factory closed")

    # ─── Lazy start ───────────────────────────────────────────────────

    async def _ensure_playwright(self):
        if self._playwright is None:
            self._playwright = await async_playwright().start()
        return getattr(self._playwright, self.config.browser.browser_type)

    async def _ensure_browser(self):
        async with self._start_lock:
            if self._browser is None or not self._browser.is_connected():
                browser_type = await self._ensure_playwright()
                self._browser = await browser_type.launch(**self.config.launch_options())
                logger.info(
                    "Launched %s (headless=%s)", self.config.browser.value, self.config.headless
                )
            return self._browser

    async def _ensure_shared_page(self):
        async with self._start_lock:
            if self._shared_page is not None and not self._shared_page.is_closed():
                return self._shared_page

            browser_type = await self._ensure_playwright()
            options = self.config.launch_options()
            if self.config.user_data_dir:
                # launch_persistent_context() returns the BrowserContext directly
                self._shared_context = await browser_type.launch_persistent_context(
                    self.config.user_data_dir, viewport=DEFAULT_VIEWPORT, **options
                )
            else:
                if self._browser is None or not self._browser.is_connected():
                    self._browser = await browser_type.launch(**options)
                self._shared_context = await self._browser.new_context(viewport=DEFAULT_VIEWPORT)

            pages = self._shared_context.pages
            self._shared_page = pages[0] if pages else await self._shared_context.new_page()
            logger.warning(
                "Shared browser context started (profile=%s); sessions are not isolated",
                self.config.user_data_dir or "ephemeral",
            )
            return self._shared_page


async def _quietly(awaitable, what: str) -> None:
    try:
        await awaitable
    except PlaywrightError as exc:
        logger.debug("Ignoring error while closing %s: %s", what, exc)
