"""Data model shared across scanner components."""
from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

LOCATION_SWITCH_FAILED = "location switch failed"
TOKEN_MAX_AGE_SECONDS = 24 * 60 * 60


@dataclass(frozen=True)
class ScanTask:
    """Unit of work: one item at one location."""

    location_code: str
    item_id: str
    item_name: str = ""


class TokenSource(str, Enum):
    """Where a session token came from."""

    CACHE = "cache"
    PASSIVE_OBSERVATION = "passive-observation"
    PROVOKED_INTERACTION = "provoked-interaction"
    DOCUMENT_SCAN = "document-scan"
    STATIC_FALLBACK = "static-fallback"


@dataclass
class SessionToken:
    """Anti-forgery credential required by the location switch request."""

    value: str
    captured_at: float
    source: TokenSource

    def age(self, now: Optional[float] = None) -> float:
        return (time.time() if now is None else now) - self.captured_at

    def is_fresh(self, max_age_seconds: float = TOKEN_MAX_AGE_SECONDS, now: Optional[float] = None) -> bool:
        """Check if the token is young enough to reuse.

        Parameters
        ----------
        max_age_seconds : float
            Maximum age in seconds (default: 24 hours)
        now : float, optional
            Reference timestamp, ``time.time()`` when omitted

        Returns
        -------
        bool
            True if the token is fresh
        """
        return self.age(now) < max_age_seconds

    def to_dict(self) -> Dict[str, Any]:
        return {"value": self.value, "captured_at": self.captured_at, "source": self.source.value}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional["SessionToken"]:
        """Rebuild a token from storage; returns None for malformed entries."""
        if not isinstance(data, dict):
            return None
        value = data.get("value")
        captured_at = data.get("captured_at")
        if not value or not isinstance(captured_at, (int, float)):
            return None
        try:
            source = TokenSource(data.get("source") or TokenSource.CACHE.value)
        except ValueError:
            source = TokenSource.CACHE
        return cls(value=str(value), captured_at=float(captured_at), source=source)

    def preview(self) -> str:
        return mask_token(self.value)


def mask_token(value: Optional[str]) -> str:
    """Shorten a token for log output."""
    if not value:
        return "<none>"
    return f"{value[:12]}..." if len(value) > 12 else value


class ScanResult(BaseModel):
    """Outcome of one task attempt. Append-only."""

    location_code: str
    item_id: str
    item_name: str = ""
    success: bool = False
    fields: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None
    timing_ms: Optional[int] = None
    agent_id: Optional[str] = None
    url: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    extraction: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def failure(cls, task: ScanTask, error: str, **extra: Any) -> "ScanResult":
        return cls(
            location_code=task.location_code,
            item_id=task.item_id,
            item_name=task.item_name,
            success=False,
            error=error,
            **extra,
        )


@dataclass(frozen=True)
class ProgressSnapshot:
    """Counters emitted after every task and every location switch."""

    current_location: Optional[str]
    items_processed: int
    total_items: int
    success_count: int
    error_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "current_location": self.current_location,
            "items_processed": self.items_processed,
            "total_items": self.total_items,
            "success_count": self.success_count,
            "error_count": self.error_count,
        }
