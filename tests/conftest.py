"""In-memory stand-ins for the browser session and its pages."""
from __future__ import annotations

import time
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import pytest

from storescan.browser.driver import NetworkEvent, ObserverHandle, ObserverRegistry, PutResponse
from storescan.config import ScanConfig, ScanSettings
from storescan.session.context import TOKEN_STORAGE_KEY
from storescan.session.storage import MemoryStore

DEFAULT_HTML = "<html><head><title>Whole Foods Market</title></head><body></body></html>"

Route = Union[Tuple[Optional[int], str, str], Exception]


class FakeSite:
    """Routes shared by all pages of a fake session: url -> (status, html, title)."""

    def __init__(self) -> None:
        self.routes: Dict[str, Route] = {}
        self.default: Route = (200, DEFAULT_HTML, "Whole Foods Market")

    def add(self, url: str, html: str = DEFAULT_HTML, status: Optional[int] = 200, title: str = "Whole Foods Market") -> None:
        self.routes[url] = (status, html, title)

    def fail(self, url: str, exc: Exception) -> None:
        self.routes[url] = exc

    def resolve(self, url: str) -> Route:
        return self.routes.get(url, self.default)


class FakePage:
    def __init__(self, site: FakeSite) -> None:
        self.site = site
        self.url = "about:blank"
        self.html = ""
        self.page_title = ""
        self.globals: Dict[str, str] = {}
        self.counts: Dict[str, int] = {}
        self.on_click: Dict[str, Callable[["FakePage"], None]] = {}
        self.goto_calls: List[str] = []
        self.clicks: List[Tuple[str, int]] = []
        self.traffic_headers: Dict[str, str] = {}
        self.observers = ObserverRegistry()
        self.closed = False

    async def goto(self, url: str, *, timeout_ms: int, wait_until: str = "networkidle") -> Optional[int]:
        self.goto_calls.append(url)
        route = self.site.resolve(url)
        if isinstance(route, Exception):
            raise route
        status, html, title = route
        self.url, self.html, self.page_title = url, html, title
        if self.traffic_headers:
            self.emit("request", url, self.traffic_headers)
        return status

    async def content(self) -> str:
        return self.html

    async def title(self) -> str:
        return self.page_title

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        return dict(self.globals)

    async def wait_for_load_state(self, state: str = "domcontentloaded", *, timeout_ms: Optional[int] = None) -> None:
        return None

    async def click(self, selector: str, *, index: int = 0, timeout_ms: Optional[int] = None) -> bool:
        if self.counts.get(selector, 0) <= index:
            return False
        self.clicks.append((selector, index))
        handler = self.on_click.get(selector)
        if handler is not None:
            handler(self)
        return True

    async def count(self, selector: str) -> int:
        return self.counts.get(selector, 0)

    def add_network_observer(self, observer) -> ObserverHandle:
        return self.observers.add(observer)

    def emit(self, kind: str, url: str, headers: Dict[str, str], status: Optional[int] = None) -> None:
        self.observers.emit(NetworkEvent(kind=kind, url=url, headers=dict(headers), status=status))

    async def close(self) -> None:
        self.closed = True


class FakeSession:
    def __init__(self, site: Optional[FakeSite] = None) -> None:
        self.site = site or FakeSite()
        self.pages: List[FakePage] = []
        self.page_failures = 0
        self.put_statuses: List[Union[int, Exception]] = []
        self.put_calls: List[Dict[str, Any]] = []
        self.closed = False
        self.on_new_page: Optional[Callable[[FakePage], None]] = None

    async def new_page(self) -> FakePage:
        if self.page_failures:
            self.page_failures -= 1
            raise RuntimeError("tab crashed")
        page = FakePage(self.site)
        if self.on_new_page is not None:
            self.on_new_page(page)
        self.pages.append(page)
        return page

    async def put(self, url: str, *, headers: Dict[str, str], body: str, timeout_ms: int) -> PutResponse:
        self.put_calls.append({"url": url, "headers": dict(headers), "body": body})
        outcome = self.put_statuses.pop(0) if self.put_statuses else 200
        if isinstance(outcome, Exception):
            raise outcome
        return PutResponse(status=outcome)

    async def close(self) -> None:
        self.closed = True


def fast_settings(**overrides: Any) -> ScanSettings:
    values = dict(
        max_agents=2,
        headless=True,
        delay_between_items_ms=0,
        delay_between_stores_ms=0,
        switch_settle_ms=0,
        agent_settle_ms=0,
        provoke_reveal_ms=0,
        navigation_retries=2,
        retry_wait_s=0,
        carousel_click_ms=0,
        carousel_settle_ms=0,
    )
    values.update(overrides)
    return ScanSettings(**values)


def token_store(value: str = "cached-token-value", age_s: float = 60.0) -> MemoryStore:
    return MemoryStore({TOKEN_STORAGE_KEY: {"value": value, "captured_at": time.time() - age_s, "source": "cache"}})


@pytest.fixture
def config() -> ScanConfig:
    return ScanConfig(settings=fast_settings())


@pytest.fixture
def site() -> FakeSite:
    return FakeSite()


@pytest.fixture
def session(site: FakeSite) -> FakeSession:
    return FakeSession(site)
