from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from .config import Settings
from .errors import RenderError, RenderTimeout, RendererUnavailable
from .logging_utils import get_logger

log = get_logger(__name__)

# Subsystems a print-only headless browser never needs.
BASE_LAUNCH_ARGS = (
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--no-first-run",
    "--disable-background-timer-throttling",
    "--disable-backgrounding-occluded-windows",
    "--disable-renderer-backgrounding",
    "--disable-features=TranslateUI",
    "--disable-default-apps",
    "--disable-extensions",
    "--hide-scrollbars",
    "--mute-audio",
    "--disable-background-networking",
    "--disable-sync",
    "--disable-translate",
    "--disable-ipc-flooding-protection",
)

# Only for containers that already isolate the process.
SANDBOX_OFF_ARGS = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--no-zygote",
)

PROBE_HTML = "<html><body><h1>Test</h1></body></html>"


def launch_args(settings: Settings) -> list[str]:
    args = list(BASE_LAUNCH_ARGS)
    if settings.chromium_no_sandbox:
        args.extend(SANDBOX_OFF_ARGS)
    return args


class SessionState(str, Enum):
    IDLE = "idle"
    LAUNCHING = "launching"
    READY = "ready"
    RENDERING = "rendering"
    CLOSING = "closing"
    CLOSED = "closed"
    FAILED = "failed"


@dataclass(frozen=True)
class PageOptions:
    format: str = "A4"
    print_background: bool = True
    margin_top: str = "20mm"
    margin_right: str = "15mm"
    margin_bottom: str = "20mm"
    margin_left: str = "15mm"

    def margin(self) -> dict[str, str]:
        return {
            "top": self.margin_top,
            "right": self.margin_right,
            "bottom": self.margin_bottom,
            "left": self.margin_left,
        }


class BrowserSession:
    """One headless Chromium owned by a single request.

    Use as ``async with BrowserSession(settings) as session``. The browser is
    released exactly once whichever way the block exits; a failure while
    closing is logged and never replaces the error that is propagating.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        playwright_factory: Callable[[], Any] = async_playwright,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self.settings = settings
        self._factory = playwright_factory
        self._log = logger or log
        self.state = SessionState.IDLE
        self._manager: Any = None
        self._browser: Any = None
        self._closed = False

    async def __aenter__(self) -> "BrowserSession":
        await self.launch()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _transition(self, state: SessionState) -> None:
        self._log.debug("Browser session %s -> %s", self.state.value, state.value)
        self.state = state

    async def launch(self) -> None:
        if self.state is not SessionState.IDLE:
            raise RenderError(f"Cannot launch a browser session in state '{self.state.value}'")
        self._transition(SessionState.LAUNCHING)
        self._log.info("Launching browser...")
        try:
            self._manager = self._factory()
            playwright = await self._manager.__aenter__()
            self._browser = await playwright.chromium.launch(
                headless=True,
                args=launch_args(self.settings),
                executable_path=self.settings.chromium_path or None,
            )
        except Exception as e:
            self._transition(SessionState.FAILED)
            await self._release()
            raise RendererUnavailable(f"Chromium failed to launch: {e}") from e
        self._transition(SessionState.READY)

    async def render_pdf(self, html: str, options: PageOptions | None = None) -> bytes:
        if self.state is not SessionState.READY:
            raise RenderError(f"Cannot render in browser session state '{self.state.value}'")
        options = options or PageOptions()
        content_ms = self.settings.content_timeout_ms
        capture_ms = self.settings.capture_timeout_ms
        self._transition(SessionState.RENDERING)
        try:
            page = await self._browser.new_page()
            self._log.info("Setting content (%d chars)...", len(html))
            try:
                await page.set_content(html, wait_until="domcontentloaded", timeout=content_ms)
            except (PlaywrightTimeoutError, asyncio.TimeoutError) as e:
                raise RenderTimeout(f"Content load timed out after {content_ms}ms") from e
            self._log.info("Generating PDF...")
            try:
                pdf_bytes = await asyncio.wait_for(
                    page.pdf(
                        format=options.format,
                        print_background=options.print_background,
                        margin=options.margin(),
                    ),
                    timeout=capture_ms / 1000.0,
                )
            except (PlaywrightTimeoutError, asyncio.TimeoutError) as e:
                raise RenderTimeout(f"PDF capture timed out after {capture_ms}ms") from e
        except RenderError:
            self._transition(SessionState.FAILED)
            raise
        except Exception as e:
            self._transition(SessionState.FAILED)
            raise RenderError(f"Browser rendering failed: {e}") from e
        return bytes(pdf_bytes)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        failed = self.state is SessionState.FAILED
        if not failed:
            self._transition(SessionState.CLOSING)
        await self._release()
        if not failed:
            self._transition(SessionState.CLOSED)
        self._log.info("Browser session released (%s)", self.state.value)

    async def _release(self) -> None:
        if self._browser is not None:
            browser, self._browser = self._browser, None
            try:
                await browser.close()
            except Exception as e:
                self._log.warning("Error closing browser: %s", e)
        if self._manager is not None:
            manager, self._manager = self._manager, None
            try:
                await manager.__aexit__(None, None, None)
            except Exception as e:
                self._log.warning("Error stopping Playwright: %s", e)


async def probe_browser(settings: Settings, *, playwright_factory: Callable[[], Any] = async_playwright) -> str | None:
    """Launch, render a one-line page and close. Returns an error message or ``None``."""
    try:
        async with BrowserSession(settings, playwright_factory=playwright_factory) as session:
            pdf_bytes = await session.render_pdf(PROBE_HTML)
    except RenderError as e:
        return str(e)
    if not pdf_bytes:
        return "Test PDF generation returned empty result"
    log.info("Browser probe generated a %d byte test PDF", len(pdf_bytes))
    return None
