"""Per-location task partitions with atomic claiming."""
from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set

from .models import ScanTask
from .session.context import SessionContext

LOGGER = logging.getLogger(__name__)


@dataclass
class QueueEntry:
    """Task slot inside a partition."""

    task: ScanTask
    claimed: bool = False


class TaskQueue:
    """Tasks grouped by location in first-seen order.

    A partition hands out tasks only after :meth:`expose` has been called for
    it, i.e. after its location switch settled. ``claim_next`` finds and marks
    an entry without yielding to the event loop and under a lock, so every task
    is handed out at most once.
    """

    def __init__(self, tasks: Iterable[ScanTask], context: Optional[SessionContext] = None) -> None:
        """Initialize queue.

        Parameters
        ----------
        tasks : iterable of ScanTask
            Work list; duplicates are kept as separate tasks
        context : SessionContext, optional
            Run context whose stop flag ends claiming
        """
        self.context = context or SessionContext()
        self._partitions: "OrderedDict[str, List[QueueEntry]]" = OrderedDict()
        self._exposed: Set[str] = set()
        self._lock = threading.Lock()
        for task in tasks:
            self._partitions.setdefault(task.location_code, []).append(QueueEntry(task))
        LOGGER.debug("Queue built: %d tasks in %d partitions", len(self), len(self._partitions))

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._partitions.values())

    def locations(self) -> List[str]:
        return list(self._partitions)

    def partition(self, location_code: str) -> List[ScanTask]:
        return [entry.task for entry in self._partitions.get(location_code, [])]

    def expose(self, location_code: str) -> None:
        with self._lock:
            self._exposed.add(location_code)

    def is_exposed(self, location_code: str) -> bool:
        return location_code in self._exposed

    def claim_next(self, location_code: str) -> Optional[ScanTask]:
        """Claim the next unclaimed task of an exposed partition.

        Returns
        -------
        ScanTask or None
            None when the partition is exhausted, not exposed, unknown, or a
            stop was requested
        """
        if self.context.stop_requested:
            return None
        with self._lock:
            if location_code not in self._exposed:
                return None
            for entry in self._partitions.get(location_code, ()):
                if not entry.claimed:
                    entry.claimed = True
                    return entry.task
        return None

    def drain(self, location_code: str) -> List[ScanTask]:
        """Claim every remaining task of a partition regardless of exposure."""
        drained: List[ScanTask] = []
        with self._lock:
            for entry in self._partitions.get(location_code, ()):
                if not entry.claimed:
                    entry.claimed = True
                    drained.append(entry.task)
        return drained

    def remaining(self, location_code: str) -> int:
        return sum(1 for entry in self._partitions.get(location_code, ()) if not entry.claimed)

    def stats(self) -> Dict[str, int]:
        """Get queue statistics."""
        with self._lock:
            claimed = sum(1 for entries in self._partitions.values() for e in entries if e.claimed)
        total = len(self)
        return {
            "total": total,
            "claimed": claimed,
            "remaining": total - claimed,
            "partitions": len(self._partitions),
            "exposed": len(self._exposed),
        }


__all__ = ["QueueEntry", "TaskQueue"]
