"""Contracts for the page-automation and privileged-request capabilities.

The scanner never talks to Playwright directly; it consumes these protocols so
the orchestration logic can run against fakes in tests.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class NetworkEvent:
    """A request leaving, or a response arriving at, a page.

    Header names are lower-case.
    """

    kind: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    method: str = "GET"
    status: Optional[int] = None


NetworkObserver = Callable[[NetworkEvent], None]


class ObserverHandle:
    """Returned by ``add_network_observer``; ``remove()`` unregisters the observer."""

    def __init__(self, registry: "ObserverRegistry", observer: NetworkObserver) -> None:
        self._registry = registry
        self._observer = observer

    def remove(self) -> None:
        self._registry.discard(self._observer)


class ObserverRegistry:
    """Fan-out of network events to the currently registered observers."""

    def __init__(self) -> None:
        self._observers: List[NetworkObserver] = []

    def add(self, observer: NetworkObserver) -> ObserverHandle:
        self._observers.append(observer)
        return ObserverHandle(self, observer)

    def discard(self, observer: NetworkObserver) -> None:
        try:
            self._observers.remove(observer)
        except ValueError:
            pass

    def __len__(self) -> int:
        return len(self._observers)

    def emit(self, event: NetworkEvent) -> None:
        for observer in list(self._observers):
            try:
                observer(event)
            except Exception as exc:
                LOGGER.warning("Network observer failed on %s %s: %s", event.kind, event.url, exc)


@dataclass
class PutResponse:
    status: int
    text: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class PageDriver(Protocol):
    """One isolated tab inside the shared authenticated browser session."""

    @property
    def url(self) -> str:
        ...

    async def goto(self, url: str, *, timeout_ms: int, wait_until: str = "networkidle") -> Optional[int]:
        """Navigate and return the main response status (None if unknown)."""
        ...

    async def content(self) -> str:
        ...

    async def title(self) -> str:
        ...

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        ...

    async def wait_for_load_state(self, state: str = "domcontentloaded", *, timeout_ms: Optional[int] = None) -> None:
        ...

    async def click(self, selector: str, *, index: int = 0, timeout_ms: Optional[int] = None) -> bool:
        """Click the ``index``-th match; False when nothing matches."""
        ...

    async def count(self, selector: str) -> int:
        ...

    def add_network_observer(self, observer: NetworkObserver) -> ObserverHandle:
        ...

    async def close(self) -> None:
        ...


class BrowserSession(Protocol):
    """The shared authenticated context: cookies set here are visible to every page."""

    async def new_page(self) -> PageDriver:
        ...

    async def put(self, url: str, *, headers: Dict[str, str], body: str, timeout_ms: int) -> PutResponse:
        """Issue a state-changing request carrying the session cookies."""
        ...

    async def close(self) -> None:
        ...
