"""Fixed-size pool of persistent agent pages sharing one browser context."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_random

from ..config import ScanConfig
from ..errors import CapabilityUnavailableError, ErrorKind, NavigationError, OperationTimeout
from ..session.context import SessionContext
from ..session.tokens import TokenManager
from ..strategies import Attempt
from .driver import BrowserSession, ObserverHandle, PageDriver

LOGGER = logging.getLogger(__name__)


@dataclass
class Agent:
    """A persistent page that processes tasks."""

    id: str
    page: PageDriver
    assigned_location: Optional[str] = None
    busy: bool = False
    tasks_done: int = 0
    observer: Optional[ObserverHandle] = field(default=None, repr=False)


class AgentPool:
    """Creates N agents up front and keeps them for the whole run."""

    def __init__(
        self,
        session: BrowserSession,
        context: SessionContext,
        tokens: TokenManager,
        config: ScanConfig,
    ) -> None:
        self.session = session
        self.context = context
        self.tokens = tokens
        self.config = config
        self.agents: List[Agent] = []
        self.failures: List[Attempt] = []

    async def initialize(self, n: int) -> List[Agent]:
        """Open up to ``n`` agent pages, each parked on the baseline page.

        Creation failures are recorded and the pool continues with fewer
        agents.

        Raises
        ------
        CapabilityUnavailableError
            If not a single agent could be created
        """
        settle = self.config.settings.agent_settle_ms / 1000
        for index in range(1, n + 1):
            agent_id = f"agent-{index}"
            agent = await self._create(agent_id)
            if agent is None:
                continue
            self.agents.append(agent)
            LOGGER.info("✅ %s ready (%d/%d)", agent_id, len(self.agents), n)
            if settle and index < n:
                await asyncio.sleep(settle)

        if not self.agents:
            raise CapabilityUnavailableError(f"no agent page could be opened ({len(self.failures)} failures)")
        if len(self.agents) < n:
            LOGGER.warning("Proceeding with %d of %d agents", len(self.agents), n)
        return list(self.agents)

    async def _create(self, agent_id: str) -> Optional[Agent]:
        page: Optional[PageDriver] = None
        try:
            page = await self.session.new_page()
            handle = self.tokens.install_passive_observer(page)
            await self._open_baseline(page)
            return Agent(id=agent_id, page=page, observer=handle)
        except Exception as exc:
            kind = ErrorKind.TIMEOUT if isinstance(exc, OperationTimeout) else ErrorKind.AGENT_CREATION
            self.failures.append(Attempt(strategy=agent_id, ok=False, message=str(exc), error=kind))
            LOGGER.error("❌ Failed to create %s: %s", agent_id, exc)
            if page is not None:
                await self._close_page(page)
            return None

    async def _open_baseline(self, page: PageDriver) -> None:
        settings = self.config.settings
        url = self.config.site.baseline_url
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(max(1, settings.navigation_retries)),
            wait=wait_random(0, settings.retry_wait_s),
            retry=retry_if_exception_type((OperationTimeout, NavigationError)),
            reraise=True,
        ):
            with attempt:
                status = await page.goto(url, timeout_ms=settings.page_timeout_ms)
                if status is not None and status >= 400:
                    raise NavigationError(f"baseline page returned HTTP {status}")

    def reassign(self, agent: Agent, location_code: Optional[str]) -> None:
        """Record which location an agent is working on."""
        agent.assigned_location = location_code

    @property
    def size(self) -> int:
        return len(self.agents)

    async def teardown(self) -> None:
        """Close every agent page. Safe to call more than once."""
        agents, self.agents = self.agents, []
        for agent in agents:
            if agent.observer is not None:
                agent.observer.remove()
            await self._close_page(agent.page)
        if agents:
            LOGGER.info("Closed %d agent pages", len(agents))

    async def _close_page(self, page: PageDriver) -> None:
        try:
            await page.close()
        except Exception as exc:
            LOGGER.warning("Failed to close page: %s", exc)


__all__ = ["Agent", "AgentPool"]
