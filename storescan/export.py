"""Result export: JSON lines plus a per-location summary."""
from __future__ import annotations

import logging
from collections import OrderedDict
from pathlib import Path
from typing import Any, Dict, Iterable, List, Sequence

import orjson

from .models import ScanResult

LOGGER = logging.getLogger(__name__)


def result_line(result: ScanResult) -> bytes:
    return orjson.dumps(result.model_dump(mode="json")) + b"\n"


def write_results(results: Iterable[ScanResult], path: str | Path) -> int:
    """Write one JSON object per line; returns the number of lines."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    count = 0
    with path.open("wb") as f:
        for result in results:
            f.write(result_line(result))
            count += 1
    LOGGER.info("Wrote %d results to %s", count, path)
    return count


def summarize_by_location(results: Sequence[ScanResult]) -> List[Dict[str, Any]]:
    """Totals per location in first-seen order.

    ``avg_load_time_ms`` averages the timings of successful results only.
    """
    groups: "OrderedDict[str, List[ScanResult]]" = OrderedDict()
    for result in results:
        groups.setdefault(result.location_code, []).append(result)

    summary = []
    for code, group in groups.items():
        ok = [r for r in group if r.success]
        timings = [r.timing_ms for r in ok if r.timing_ms is not None]
        summary.append(
            {
                "location_code": code,
                "total": len(group),
                "successful": len(ok),
                "failed": len(group) - len(ok),
                "success_rate": round(100.0 * len(ok) / len(group), 1) if group else 0.0,
                "avg_load_time_ms": round(sum(timings) / len(timings)) if timings else None,
            }
        )
    return summary


def write_summary(results: Sequence[ScanResult], path: str | Path) -> List[Dict[str, Any]]:
    summary = summarize_by_location(results)
    Path(path).write_bytes(orjson.dumps(summary, option=orjson.OPT_INDENT_2))
    return summary


__all__ = ["result_line", "summarize_by_location", "write_results", "write_summary"]
