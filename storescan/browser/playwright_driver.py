"""Playwright implementation of the page and session capabilities."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ..config import ScanConfig
from ..errors import CapabilityUnavailableError, NavigationError, OperationTimeout
from .driver import NetworkEvent, NetworkObserver, ObserverHandle, ObserverRegistry, PutResponse

LOGGER = logging.getLogger(__name__)

LAUNCH_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--disable-dev-shm-usage",
    "--no-sandbox",
]


class PlaywrightPage:
    """Adapts a Playwright ``Page`` to :class:`~storescan.browser.driver.PageDriver`."""

    def __init__(self, page: Page) -> None:
        self._page = page
        self._observers = ObserverRegistry()
        page.on("request", self._on_request)
        page.on("response", self._on_response)

    @property
    def url(self) -> str:
        return self._page.url

    def _on_request(self, request: Any) -> None:
        if not len(self._observers):
            return
        self._observers.emit(
            NetworkEvent(kind="request", url=request.url, headers=dict(request.headers), method=request.method)
        )

    def _on_response(self, response: Any) -> None:
        if not len(self._observers):
            return
        self._observers.emit(
            NetworkEvent(
                kind="response",
                url=response.url,
                headers=dict(response.headers),
                method=response.request.method,
                status=response.status,
            )
        )

    async def goto(self, url: str, *, timeout_ms: int, wait_until: str = "networkidle") -> Optional[int]:
        try:
            response = await self._page.goto(url, timeout=timeout_ms, wait_until=wait_until)
        except PlaywrightTimeoutError:
            raise OperationTimeout(f"navigation to {url}", timeout_ms) from None
        except PlaywrightError as exc:
            raise NavigationError(f"navigation to {url} failed: {exc.message}") from exc
        return response.status if response is not None else None

    async def content(self) -> str:
        return await self._page.content()

    async def title(self) -> str:
        return await self._page.title()

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        return await self._page.evaluate(script, arg)

    async def wait_for_load_state(self, state: str = "domcontentloaded", *, timeout_ms: Optional[int] = None) -> None:
        try:
            await self._page.wait_for_load_state(state, timeout=timeout_ms)
        except PlaywrightTimeoutError:
            raise OperationTimeout(f"load state {state}", timeout_ms) from None

    async def click(self, selector: str, *, index: int = 0, timeout_ms: Optional[int] = None) -> bool:
        locator = self._page.locator(selector)
        if await locator.count() <= index:
            return False
        try:
            await locator.nth(index).click(timeout=timeout_ms)
        except PlaywrightTimeoutError:
            raise OperationTimeout(f"click {selector}", timeout_ms) from None
        return True

    async def count(self, selector: str) -> int:
        return await self._page.locator(selector).count()

    def add_network_observer(self, observer: NetworkObserver) -> ObserverHandle:
        return self._observers.add(observer)

    async def close(self) -> None:
        self._page.remove_listener("request", self._on_request)
        self._page.remove_listener("response", self._on_response)
        if not self._page.is_closed():
            await self._page.close()


class PlaywrightSession:
    """One browser with one shared context; every page shares its cookies."""

    def __init__(self, playwright: Playwright, browser: Browser, context: BrowserContext) -> None:
        self._playwright = playwright
        self._browser = browser
        self._context = context

    async def new_page(self) -> PlaywrightPage:
        return PlaywrightPage(await self._context.new_page())

    async def put(self, url: str, *, headers: Dict[str, str], body: str, timeout_ms: int) -> PutResponse:
        try:
            response = await self._context.request.put(url, headers=headers, data=body, timeout=timeout_ms)
        except PlaywrightTimeoutError:
            raise OperationTimeout(f"PUT {url}", timeout_ms) from None
        except PlaywrightError as exc:
            raise NavigationError(f"PUT {url} failed: {exc.message}") from exc
        try:
            text = await response.text()
        except PlaywrightError:
            text = ""
        return PutResponse(status=response.status, text=text)

    async def close(self) -> None:
        """Cleanup resources."""
        for name, closer in (
            ("context", self._context.close),
            ("browser", self._browser.close),
            ("playwright", self._playwright.stop),
        ):
            try:
                await closer()
            except Exception as exc:
                LOGGER.warning("Failed to close %s: %s", name, exc)
        LOGGER.info("Browser session closed")


async def launch_session(config: ScanConfig) -> PlaywrightSession:
    """Start Chromium with a single shared context.

    Raises
    ------
    CapabilityUnavailableError
        If the browser cannot be launched
    """
    settings, site = config.settings, config.site
    playwright = await async_playwright().start()
    try:
        browser = await playwright.chromium.launch(headless=settings.headless, args=LAUNCH_ARGS)
        context = await browser.new_context(
            user_agent=site.user_agent,
            viewport={"width": settings.viewport_width, "height": settings.viewport_height},
            locale="en-US",
        )
    except PlaywrightError as exc:
        await playwright.stop()
        raise CapabilityUnavailableError(f"browser launch failed: {exc.message}") from exc
    LOGGER.info("🌐 Browser started (headless=%s)", settings.headless)
    return PlaywrightSession(playwright, browser, context)


__all__ = ["PlaywrightPage", "PlaywrightSession", "launch_session"]
