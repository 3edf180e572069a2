"""Progress counters and result fan-out to registered callbacks."""
from __future__ import annotations

import logging
from typing import Any, Callable, List, Optional

from .models import ProgressSnapshot, ScanResult

LOGGER = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressSnapshot], Any]
ResultCallback = Callable[[ScanResult], Any]
SwitchCallback = Callable[[Any], Any]


class ProgressReporter:
    """Keeps run counters and notifies subscribers.

    All methods are synchronous and never raise; a failing callback is logged
    and the remaining callbacks still run.
    """

    def __init__(self) -> None:
        self.current_location: Optional[str] = None
        self.items_processed = 0
        self.total_items = 0
        self.success_count = 0
        self.error_count = 0
        self.results: List[ScanResult] = []
        self.switch_events: List[Any] = []
        self._on_progress: List[ProgressCallback] = []
        self._on_result: List[ResultCallback] = []
        self._on_switch: List[SwitchCallback] = []

    def subscribe(
        self,
        on_progress: Optional[ProgressCallback] = None,
        on_result: Optional[ResultCallback] = None,
        on_switch: Optional[SwitchCallback] = None,
    ) -> None:
        if on_progress is not None:
            self._on_progress.append(on_progress)
        if on_result is not None:
            self._on_result.append(on_result)
        if on_switch is not None:
            self._on_switch.append(on_switch)

    def set_total(self, total: int) -> None:
        self.total_items = total

    def snapshot(self) -> ProgressSnapshot:
        return ProgressSnapshot(
            current_location=self.current_location,
            items_processed=self.items_processed,
            total_items=self.total_items,
            success_count=self.success_count,
            error_count=self.error_count,
        )

    def record_location_start(self, location_code: str) -> None:
        self.current_location = location_code
        LOGGER.info("📍 Location %s started", location_code)

    def record_switch(self, outcome: Any) -> None:
        """Store a switch outcome and emit progress."""
        self.switch_events.append(outcome)
        self._notify(self._on_switch, outcome)
        self._notify(self._on_progress, self.snapshot())

    def record_result(self, result: ScanResult) -> None:
        self.results.append(result)
        self.items_processed += 1
        if result.success:
            self.success_count += 1
        else:
            self.error_count += 1
        self._notify(self._on_result, result)
        self._notify(self._on_progress, self.snapshot())

    def _notify(self, callbacks: List[Callable[[Any], Any]], payload: Any) -> None:
        for callback in list(callbacks):
            try:
                callback(payload)
            except Exception as exc:
                LOGGER.error("Progress callback %r failed: %s", callback, exc, exc_info=True)


__all__ = ["ProgressReporter"]
