"""Scan run driver: locations one at a time, agents concurrently within each."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Iterable, List, Mapping, Optional

from .browser.driver import BrowserSession, PageDriver
from .browser.pool import Agent, AgentPool
from .browser.playwright_driver import launch_session
from .config import ScanConfig
from .errors import CapabilityUnavailableError, OperationTimeout, ScanError
from .extraction import extract, extract_cards, extract_fields
from .models import LOCATION_SWITCH_FAILED, ScanResult, ScanTask
from .queue import TaskQueue
from .reporter import ProgressReporter
from .session.context import SessionContext
from .session.storage import KeyValueStore, MemoryStore
from .session.tokens import TokenManager
from .switching import StoreSwitcher

LOGGER = logging.getLogger(__name__)

SessionFactory = Callable[[ScanConfig], Awaitable[BrowserSession]]

ERROR_TITLE_MARKERS = ("error", "not found", "404")
MERCHANDISING_ITEM = "merchandising"
_PAUSE_SLICE_S = 0.1


def is_error_title(title: str) -> bool:
    lowered = (title or "").lower()
    return any(marker in lowered for marker in ERROR_TITLE_MARKERS)


def merchandising_tasks(tasks: Iterable[ScanTask], store_ids: Mapping[str, object]) -> List[ScanTask]:
    """One task per location: locations of the work list, else every mapped store."""
    codes: List[str] = []
    for task in tasks:
        if task.location_code not in codes:
            codes.append(task.location_code)
    if not codes:
        codes = [str(code) for code in store_ids]
    return [ScanTask(location_code=code, item_id="", item_name=MERCHANDISING_ITEM) for code in codes]


class ScanOrchestrator:
    """Runs a scan end to end.

    Parameters
    ----------
    config : ScanConfig
        Run configuration
    session_factory : callable, optional
        Coroutine function returning a :class:`BrowserSession`; Playwright by default
    storage : KeyValueStore, optional
        Durable store for the token cache
    reporter : ProgressReporter, optional
        Receives progress, results and switch outcomes
    """

    def __init__(
        self,
        config: ScanConfig,
        *,
        session_factory: Optional[SessionFactory] = None,
        storage: Optional[KeyValueStore] = None,
        reporter: Optional[ProgressReporter] = None,
    ) -> None:
        self.config = config
        self.settings = config.settings
        self.site = config.site
        self.context = SessionContext(
            storage=storage if storage is not None else MemoryStore(),
            token_max_age_s=self.settings.token_max_age_s,
        )
        self.tokens = TokenManager(self.context, self.settings, self.site)
        self.reporter = reporter or ProgressReporter()
        self.session_factory = session_factory or launch_session
        self.results: List[ScanResult] = []
        self.pool: Optional[AgentPool] = None
        self.switcher: Optional[StoreSwitcher] = None
        self.running = False

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    async def start_scan(self, tasks: Iterable[ScanTask], store_ids: Mapping[str, object]) -> List[ScanResult]:
        """Process every task and return one result per claimed task.

        Raises
        ------
        CapabilityUnavailableError
            If the browser cannot be launched or no agent page can be opened
        """
        if self.running:
            raise ScanError("a scan is already running")
        self.running = True
        self.results = []
        self.context.stop_event.clear()

        tasks = list(tasks)
        if self.settings.mode == "merchandising":
            tasks = merchandising_tasks(tasks, store_ids)
        queue = TaskQueue(tasks, self.context)
        self.reporter.set_total(len(tasks))
        LOGGER.info(
            "🚀 Starting %s scan: %d tasks across %d locations, %d agents",
            self.settings.mode,
            len(tasks),
            len(queue.locations()),
            self.settings.max_agents,
        )

        try:
            session = await self.session_factory(self.config)
        except CapabilityUnavailableError:
            self.running = False
            raise
        except Exception as exc:
            self.running = False
            raise CapabilityUnavailableError(f"browser session unavailable: {exc}") from exc

        self.pool = AgentPool(session, self.context, self.tokens, self.config)
        try:
            agents = await self.pool.initialize(self.settings.max_agents)
            self.switcher = StoreSwitcher(session, agents[0].page, self.tokens, store_ids, self.config, self.context)
            await self._run_locations(queue, agents)
        finally:
            await self.pool.teardown()
            try:
                await session.close()
            except Exception as exc:
                LOGGER.warning("Failed to close browser session: %s", exc)
            self.running = False

        snapshot = self.reporter.snapshot()
        LOGGER.info(
            "🏁 Scan finished: %d results (%d ok, %d failed)%s",
            len(self.results),
            sum(1 for r in self.results if r.success),
            sum(1 for r in self.results if not r.success),
            " after stop request" if self.context.stop_requested else "",
        )
        LOGGER.debug("Final progress: %s", snapshot.to_dict())
        return list(self.results)

    def stop_scan(self) -> None:
        """Ask the run to halt; in-flight tasks finish first."""
        if not self.context.stop_requested:
            LOGGER.info("🛑 Stop requested")
        self.context.request_stop()

    # ------------------------------------------------------------------ #
    # Run loop
    # ------------------------------------------------------------------ #

    async def _run_locations(self, queue: TaskQueue, agents: List[Agent]) -> None:
        for index, code in enumerate(queue.locations()):
            if self.context.stop_requested:
                break
            if index:
                await self._pause(self.settings.delay_between_stores_ms)
                if self.context.stop_requested:
                    break

            self.reporter.record_location_start(code)
            outcome = await self.switcher.switch_to(code)
            self.reporter.record_switch(outcome)
            if not outcome.success:
                skipped = queue.drain(code)
                LOGGER.warning("Skipping %d tasks of %s: %s", len(skipped), code, outcome.error)
                for task in skipped:
                    self._record(ScanResult.failure(task, LOCATION_SWITCH_FAILED))
                continue

            queue.expose(code)
            for agent in agents:
                self.pool.reassign(agent, code)
            await asyncio.gather(*(self._agent_loop(agent, queue, code) for agent in agents))
            LOGGER.info("✅ Location %s done (%s)", code, queue.stats())

    async def _agent_loop(self, agent: Agent, queue: TaskQueue, code: str) -> None:
        while True:
            task = queue.claim_next(code)
            if task is None:
                return
            self._record(await self._process(agent, task))
            if queue.remaining(code):
                await self._pause(self.settings.delay_between_items_ms)

    async def _process(self, agent: Agent, task: ScanTask) -> ScanResult:
        agent.busy = True
        started = time.monotonic()
        try:
            if self.settings.mode == "merchandising":
                result = await self._process_location(agent.page, task)
            else:
                result = await self._process_item(agent.page, task)
        except OperationTimeout as exc:
            result = ScanResult.failure(task, str(exc))
        except Exception as exc:
            LOGGER.debug("Task %s/%s failed", task.location_code, task.item_id, exc_info=True)
            result = ScanResult.failure(task, str(exc) or type(exc).__name__)
        finally:
            agent.busy = False
            agent.tasks_done += 1
        result.timing_ms = int((time.monotonic() - started) * 1000)
        result.agent_id = agent.id
        if result.success:
            LOGGER.info("✅ %s - %s (%dms, %s)", task.location_code, task.item_id or task.item_name, result.timing_ms, agent.id)
        else:
            LOGGER.warning("❌ %s - %s: %s", task.location_code, task.item_id or task.item_name, result.error)
        return result

    async def _open(self, page: PageDriver, task: ScanTask, url: str) -> Optional[ScanResult]:
        """Navigate and return a failure result if the page is not usable."""
        timeout_ms = self.settings.page_timeout_ms
        status = await page.goto(url, timeout_ms=timeout_ms)
        if status is not None and not 200 <= status < 300:
            return ScanResult.failure(task, f"HTTP {status} error", url=url)
        await page.wait_for_load_state("domcontentloaded", timeout_ms=timeout_ms)
        if is_error_title(await page.title()):
            return ScanResult.failure(task, "Item page not found or error page", url=url)
        return None

    async def _process_item(self, page: PageDriver, task: ScanTask) -> ScanResult:
        url = self.site.item_url(task.item_id)
        failed = await self._open(page, task, url)
        if failed is not None:
            return failed
        report = extract_fields(await page.content())
        return ScanResult(
            location_code=task.location_code,
            item_id=task.item_id,
            item_name=task.item_name,
            success=True,
            fields=report.fields,
            extraction=report.audit(),
            url=url,
        )

    async def _process_location(self, page: PageDriver, task: ScanTask) -> ScanResult:
        url = self.site.baseline_url
        failed = await self._open(page, task, url)
        if failed is not None:
            return failed
        await self._walk_carousels(page)
        await self._pause(self.settings.carousel_settle_ms)
        html = await page.content()
        records = extract(html)
        cards = extract_cards(html)
        extraction = {r.carousel_id: [a.to_dict() for a in r.attempts] for r in records}
        extraction["card-names"] = [[a.to_dict() for a in c.attempts] for c in cards.cards]
        return ScanResult(
            location_code=task.location_code,
            item_id=task.item_id,
            item_name=task.item_name,
            success=True,
            fields={
                "carousel_count": len(records),
                "total_item_ids": sum(r.item_count for r in records),
                "carousels": [r.to_dict() for r in records],
                "cards": [c.to_dict() for c in cards.cards],
                "visible_item_count": len(cards.cards),
                "empty_card_count": cards.empty_count,
            },
            extraction=extraction,
            url=url,
        )

    async def _walk_carousels(self, page: PageDriver) -> None:
        """Page every carousel forward so lazily loaded items enter the document."""
        selector = self.site.carousel_next_button
        click_timeout = min(self.settings.page_timeout_ms, 5000)
        buttons = await page.count(selector)
        for index in range(buttons):
            for _ in range(self.settings.carousel_pages):
                try:
                    if not await page.click(selector, index=index, timeout_ms=click_timeout):
                        break
                except Exception as exc:
                    LOGGER.debug("Carousel %d stopped paging: %s", index + 1, exc)
                    break
                await self._pause(self.settings.carousel_click_ms)

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def _record(self, result: ScanResult) -> None:
        self.results.append(result)
        self.reporter.record_result(result)

    async def _pause(self, delay_ms: int) -> None:
        """Sleep, waking early when a stop is requested."""
        deadline = time.monotonic() + delay_ms / 1000
        while not self.context.stop_requested:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return
            await asyncio.sleep(min(remaining, _PAUSE_SLICE_S))


__all__ = ["ScanOrchestrator", "is_error_title", "merchandising_tasks"]
