"""Acquisition and caching of the anti-forgery token used by location switches.

Tiers, tried in order until one yields a value:

1. cache        in-memory or persisted token younger than ``token_max_age_s``
2. passive      first token seen in page traffic since the last invalidation; it is
                persisted on capture and served past the cache age until invalidated
3. provoked     click the store selector and confirm control, capture the header
                of the request the page sends
4. document     static scan of the current document
5. fallback     configured static token, only when ``use_fallback_token`` is set
"""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

from ..config import ScanSettings, SiteConfig
from ..errors import ErrorKind, OperationTimeout, Result
from ..models import SessionToken, TokenSource, mask_token
from ..strategies import ChainOutcome, StrategyChain
from ..browser.driver import NetworkEvent, ObserverHandle, PageDriver
from .context import SessionContext
from .document import GLOBALS_JS, DocumentSnapshot, DocumentTokenScanner, global_paths

LOGGER = logging.getLogger(__name__)

PROVOKE_TIMEOUT_S = 10.0
RESPONSE_TOKEN_HEADERS = ("x-csrf-token", "csrf-token")


class TokenManager:
    """Hands out the session token; ``get_token`` never raises."""

    def __init__(
        self,
        context: SessionContext,
        settings: ScanSettings,
        site: SiteConfig,
        provoke_timeout_s: float = PROVOKE_TIMEOUT_S,
    ) -> None:
        self.context = context
        self.settings = settings
        self.site = site
        self.provoke_timeout_s = provoke_timeout_s
        self.header = site.token_header.lower()
        self.scanner = DocumentTokenScanner(self.header)
        self.last_outcome: Optional[ChainOutcome[str]] = None
        self.chain: StrategyChain[str] = StrategyChain(
            "token",
            [
                ("cache", self._from_cache),
                ("passive-observation", self._from_observation),
                ("provoked-interaction", self._from_provocation),
                ("document-scan", self._from_document),
                ("static-fallback", self._from_fallback),
            ],
            error_kind=ErrorKind.TOKEN_ACQUISITION,
        )

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    async def get_token(self, page: Optional[PageDriver] = None) -> Optional[str]:
        """Return a usable token or None when every tier came up empty.

        Parameters
        ----------
        page : PageDriver, optional
            Page used by the provoked and document tiers. Without one those
            tiers are recorded as failed attempts.
        """
        try:
            outcome = await self.chain.arun(page)
        except Exception as exc:
            LOGGER.error("Token acquisition aborted: %s", exc)
            return None
        self.last_outcome = outcome
        if outcome.ok:
            LOGGER.debug("Token ready via %s: %s", outcome.winner, mask_token(outcome.value))
            return outcome.value
        LOGGER.warning("No session token available after tiers: %s", ", ".join(outcome.tried()))
        return None

    def install_passive_observer(self, page: PageDriver) -> ObserverHandle:
        """Watch a page's traffic for the token header."""
        return page.add_network_observer(self.observe)

    def observe(self, event: NetworkEvent) -> None:
        value = self._token_from_event(event)
        if not value or not self.context.passive_capture_armed:
            return
        current = self.context.token
        if current is not None and current.value == value:
            return
        self.context.observed_token = value
        self.context.passive_capture_armed = False
        LOGGER.info("Observed session token in %s to %s: %s", event.kind, event.url, mask_token(value))
        self.context.remember_token(value, TokenSource.PASSIVE_OBSERVATION)

    def invalidate(self) -> None:
        """Drop the cached token and re-arm passive capture."""
        LOGGER.info("Invalidating session token %s", mask_token(self.context.token.value if self.context.token else None))
        self.context.forget_token()

    @property
    def current(self) -> Optional[SessionToken]:
        return self.context.token

    # ------------------------------------------------------------------ #
    # Tiers
    # ------------------------------------------------------------------ #

    def _from_cache(self, page: Optional[PageDriver]) -> Result[str]:
        token = self.context.fresh_token()
        if token is None:
            return Result.fail(ErrorKind.TOKEN_ACQUISITION, "no fresh cached token")
        return Result.ok(token.value, f"age {int(token.age(self.context.clock()))}s")

    def _from_observation(self, page: Optional[PageDriver]) -> Result[str]:
        value = self.context.observed_token
        if not value:
            return Result.fail(ErrorKind.TOKEN_ACQUISITION, "nothing observed")
        token = self.context.token
        if token is None or token.value != value:
            return Result.fail(ErrorKind.TOKEN_ACQUISITION, "observed token superseded")
        return Result.ok(value, f"observed {int(token.age(self.context.clock()))}s ago")

    async def _from_provocation(self, page: Optional[PageDriver]) -> Result[str]:
        if page is None:
            return Result.fail(ErrorKind.TOKEN_ACQUISITION, "no page")
        timeout_ms = self.settings.page_timeout_ms
        if not await page.click(self.site.store_selector_button, timeout_ms=timeout_ms):
            return Result.fail(ErrorKind.TOKEN_ACQUISITION, "store selector control not found")
        if self.settings.provoke_reveal_ms:
            await asyncio.sleep(self.settings.provoke_reveal_ms / 1000)
        if await page.count(self.site.confirm_store_button) == 0:
            return Result.fail(ErrorKind.TOKEN_ACQUISITION, "confirm control not found")

        loop = asyncio.get_running_loop()
        captured: asyncio.Future = loop.create_future()

        def on_event(event: NetworkEvent) -> None:
            if event.kind != "request" or captured.done():
                return
            value = event.headers.get(self.header)
            if value:
                captured.set_result(value)

        handle = page.add_network_observer(on_event)
        try:
            await page.click(self.site.confirm_store_button, timeout_ms=timeout_ms)
            value = await asyncio.wait_for(captured, timeout=self.provoke_timeout_s)
        except asyncio.TimeoutError:
            raise OperationTimeout("provoked token capture", int(self.provoke_timeout_s * 1000)) from None
        finally:
            handle.remove()
        self.context.remember_token(value, TokenSource.PROVOKED_INTERACTION)
        return Result.ok(value)

    async def _from_document(self, page: Optional[PageDriver]) -> Result[str]:
        if page is None:
            return Result.fail(ErrorKind.TOKEN_ACQUISITION, "no page")
        html = await page.content()
        try:
            found = await page.evaluate(GLOBALS_JS, list(global_paths(self.header)))
        except Exception as exc:
            LOGGER.debug("Global lookup unavailable on %s: %s", page.url, exc)
            found = {}
        snapshot = DocumentSnapshot(html=html, url=page.url, globals=dict(found or {}))
        outcome = self.scanner.scan(snapshot)
        if not outcome.ok:
            return Result.fail(ErrorKind.TOKEN_ACQUISITION, "document scan: " + ", ".join(outcome.tried()))
        self.context.remember_token(outcome.value, TokenSource.DOCUMENT_SCAN)
        return Result.ok(outcome.value, outcome.winner or "")

    def _from_fallback(self, page: Optional[PageDriver]) -> Result[str]:
        if not self.settings.use_fallback_token:
            return Result.fail(ErrorKind.TOKEN_ACQUISITION, "fallback disabled")
        if not self.settings.fallback_token:
            return Result.fail(ErrorKind.TOKEN_ACQUISITION, "fallback token not configured")
        LOGGER.warning("Using configured fallback token")
        self.context.remember_token(self.settings.fallback_token, TokenSource.STATIC_FALLBACK)
        return Result.ok(self.settings.fallback_token)

    def _token_from_event(self, event: NetworkEvent) -> Optional[str]:
        if event.kind == "request":
            return event.headers.get(self.header)
        if event.kind == "response":
            for name in RESPONSE_TOKEN_HEADERS:
                if event.headers.get(name):
                    return event.headers[name]
        return None


__all__ = ["TokenManager", "PROVOKE_TIMEOUT_S"]
