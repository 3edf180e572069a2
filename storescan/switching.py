"""Serialized activation of the store (location) bound to the browser session.

State machine per ``switch_to`` call::

    Idle -> Switching -> Verifying -> Settled
                 |
                 +-> Failed -> (store page navigation) -> Settled
                                                      \\-> Failed

A missing store id or token fails immediately without the alternate path.
"""
from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from bs4 import BeautifulSoup

from .browser.driver import BrowserSession, NetworkEvent, PageDriver, PutResponse
from .config import ScanConfig
from .session.context import SessionContext
from .session.tokens import TokenManager

LOGGER = logging.getLogger(__name__)

METHOD_AFFINITY = "affinity-request"
METHOD_STORE_PAGE = "store-page"
REJECTED_STATUSES = (401, 403)
STORE_MARKER_SELECTORS = ('[data-testid="store-selector"]', ".store-selector")
_STORE_IN_URL = re.compile(r"store[=/](\d+)", re.IGNORECASE)


class SwitchState(str, Enum):
    IDLE = "idle"
    SWITCHING = "switching"
    VERIFYING = "verifying"
    SETTLED = "settled"
    FAILED = "failed"


@dataclass
class SwitchOutcome:
    """Result of one ``switch_to`` call."""

    location_code: str
    store_id: Optional[str] = None
    success: bool = False
    state: SwitchState = SwitchState.IDLE
    method: Optional[str] = None
    verified: bool = False
    error: Optional[str] = None
    transitions: List[SwitchState] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "location_code": self.location_code,
            "store_id": self.store_id,
            "success": self.success,
            "state": self.state.value,
            "method": self.method,
            "verified": self.verified,
            "error": self.error,
            "transitions": [s.value for s in self.transitions],
        }


class StoreSwitcher:
    """Moves the shared session from one location to another.

    Parameters
    ----------
    session : BrowserSession
        Shared context used for the privileged request
    page : PageDriver
        Control page used for token capture, verification and the alternate path
    tokens : TokenManager
        Token source
    store_ids : mapping
        Location code to numeric store id
    config : ScanConfig
        Run configuration
    context : SessionContext
        Run context
    """

    def __init__(
        self,
        session: BrowserSession,
        page: PageDriver,
        tokens: TokenManager,
        store_ids: Mapping[str, Any],
        config: ScanConfig,
        context: SessionContext,
    ) -> None:
        self.session = session
        self.page = page
        self.tokens = tokens
        self.store_ids = {str(k).strip(): str(v).strip() for k, v in store_ids.items() if v not in (None, "")}
        self.config = config
        self.context = context
        self.state = SwitchState.IDLE
        self.target: Optional[str] = None
        self.history: List[SwitchOutcome] = []
        self._lock = asyncio.Lock()

    @property
    def in_flight(self) -> bool:
        return self._lock.locked()

    def _move(self, outcome: SwitchOutcome, state: SwitchState) -> None:
        LOGGER.debug("Switch %s: %s -> %s", outcome.location_code, self.state.value, state.value)
        self.state = state
        outcome.state = state
        outcome.transitions.append(state)

    def _log_traffic(self, event: NetworkEvent) -> None:
        site = self.config.site
        if site.switch_path in event.url or site.store_path_template.split("{")[0] in event.url:
            LOGGER.debug("Switch traffic: %s %s %s %s", event.kind, event.method, event.url, event.status or "")

    async def switch_to(self, location_code: str) -> SwitchOutcome:
        """Activate a location. Never raises; failures are in the outcome."""
        async with self._lock:
            self.target = location_code
            outcome = SwitchOutcome(location_code=location_code, store_id=self.store_ids.get(location_code))
            self._move(outcome, SwitchState.IDLE)
            handle = self.page.add_network_observer(self._log_traffic)
            try:
                await self._run(outcome)
            except Exception as exc:
                LOGGER.error("Unexpected error while switching to %s: %s", location_code, exc, exc_info=True)
                outcome.error = f"unexpected error: {exc}"
                outcome.success = False
                if outcome.state is not SwitchState.FAILED:
                    self._move(outcome, SwitchState.FAILED)
            finally:
                handle.remove()
            self.history.append(outcome)
            if outcome.success:
                LOGGER.info("🏪 Switched to %s (store %s) via %s", location_code, outcome.store_id, outcome.method)
            else:
                LOGGER.error("❌ Could not switch to %s: %s", location_code, outcome.error)
            return outcome

    async def _run(self, outcome: SwitchOutcome) -> None:
        self._move(outcome, SwitchState.SWITCHING)
        if outcome.store_id is None:
            outcome.error = f"no store id for location {outcome.location_code}"
            self._move(outcome, SwitchState.FAILED)
            return

        token = await self.tokens.get_token(self.page)
        if not token:
            outcome.error = "no session token available"
            self._move(outcome, SwitchState.FAILED)
            return

        response, error = await self._request(outcome.store_id, token)
        if response is not None and response.ok:
            self._move(outcome, SwitchState.VERIFYING)
            await self._settle()
            outcome.verified = await self._verify(outcome.location_code, outcome.store_id)
            outcome.method = METHOD_AFFINITY
            outcome.success = True
            self._move(outcome, SwitchState.SETTLED)
            return

        if response is not None:
            error = f"switch request returned HTTP {response.status}"
            if response.status in REJECTED_STATUSES:
                self.tokens.invalidate()
        outcome.error = error
        self._move(outcome, SwitchState.FAILED)

        if await self._alternate(outcome.store_id):
            outcome.method = METHOD_STORE_PAGE
            outcome.success = True
            outcome.error = None
            self._move(outcome, SwitchState.SETTLED)
        else:
            outcome.error = f"{error}; store page navigation failed"

    async def _request(self, store_id: str, token: str) -> Tuple[Optional[PutResponse], Optional[str]]:
        site = self.config.site
        headers = dict(site.switch_headers)
        headers[site.token_header] = token
        headers["referer"] = site.url("/")
        body = json.dumps({"storeId": store_id})
        try:
            response = await self.session.put(
                site.switch_url,
                headers=headers,
                body=body,
                timeout_ms=self.config.settings.page_timeout_ms,
            )
        except Exception as exc:
            LOGGER.warning("Switch request for store %s failed: %s", store_id, exc)
            return None, f"switch request failed: {exc}"
        LOGGER.debug("Switch request for store %s: HTTP %s", store_id, response.status)
        return response, None

    async def _settle(self) -> None:
        delay = self.config.settings.switch_settle_ms
        if delay:
            await asyncio.sleep(delay / 1000)

    async def _verify(self, location_code: str, store_id: str) -> bool:
        """Reload the baseline page and look for the store; inconclusive is not an error."""
        try:
            await self.page.goto(self.config.site.baseline_url, timeout_ms=self.config.settings.page_timeout_ms)
            html = await self.page.content()
        except Exception as exc:
            LOGGER.warning("Could not verify switch to %s: %s", location_code, exc)
            return False
        verified = store_marker_present(html, self.page.url, location_code, store_id)
        if not verified:
            LOGGER.warning("Switch to %s accepted but not confirmed on page", location_code)
        return verified

    async def _alternate(self, store_id: str) -> bool:
        site, settings = self.config.site, self.config.settings
        LOGGER.info("🔄 Trying store page navigation for store %s", store_id)
        try:
            status = await self.page.goto(site.store_url(store_id), timeout_ms=settings.page_timeout_ms)
            if status is not None and not 200 <= status < 400:
                LOGGER.error("Store page for %s returned HTTP %s", store_id, status)
                return False
            await self._settle()
            await self.page.goto(site.baseline_url, timeout_ms=settings.page_timeout_ms)
        except Exception as exc:
            LOGGER.error("Store page navigation for %s failed: %s", store_id, exc)
            return False
        return True


def store_marker_present(html: str, url: str, location_code: str, store_id: str) -> bool:
    """Check a document for the active store id or code."""
    soup = BeautifulSoup(html or "", "html.parser")
    for node in soup.select("[data-store-id]"):
        if node.get("data-store-id") == store_id:
            return True
    if location_code:
        code = re.compile(rf"\b{re.escape(location_code)}\b")
        for selector in STORE_MARKER_SELECTORS:
            for node in soup.select(selector):
                if code.search(node.get_text(" ", strip=True)):
                    return True
    match = _STORE_IN_URL.search(url or "")
    return bool(match and match.group(1) == store_id)


__all__ = ["SwitchState", "SwitchOutcome", "StoreSwitcher", "store_marker_present"]
