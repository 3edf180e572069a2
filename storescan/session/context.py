"""Mutable state shared by every component of one scan run."""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from ..models import TOKEN_MAX_AGE_SECONDS, SessionToken, TokenSource
from .storage import KeyValueStore, MemoryStore

LOGGER = logging.getLogger(__name__)

TOKEN_STORAGE_KEY = "session_token"


@dataclass
class SessionContext:
    """Owns the captured token, the passive-capture flag and the stop flag.

    A single instance is created per run and handed to the token manager, the
    switch state machine, the task queue and the agent pool.
    """

    storage: KeyValueStore = field(default_factory=MemoryStore)
    token_max_age_s: float = TOKEN_MAX_AGE_SECONDS
    clock: Callable[[], float] = time.time
    token: Optional[SessionToken] = None
    passive_capture_armed: bool = True
    observed_token: Optional[str] = None
    stop_event: threading.Event = field(default_factory=threading.Event)

    @property
    def stop_requested(self) -> bool:
        return self.stop_event.is_set()

    def request_stop(self) -> None:
        self.stop_event.set()

    def load_token(self) -> Optional[SessionToken]:
        """Read the persisted token, ignoring malformed entries."""
        return SessionToken.from_dict(self.storage.get(TOKEN_STORAGE_KEY))

    def fresh_token(self) -> Optional[SessionToken]:
        """Return the in-memory or persisted token if it is still fresh."""
        now = self.clock()
        if self.token is not None and self.token.is_fresh(self.token_max_age_s, now):
            return self.token
        stored = self.load_token()
        if stored is not None and stored.is_fresh(self.token_max_age_s, now):
            self.token = stored
            return stored
        return None

    def remember_token(self, value: str, source: TokenSource) -> SessionToken:
        """Cache and persist a captured token. Last write wins."""
        token = SessionToken(value=value, captured_at=self.clock(), source=source)
        self.token = token
        try:
            self.storage.set(TOKEN_STORAGE_KEY, token.to_dict())
        except Exception as exc:
            LOGGER.error("Failed to persist session token: %s", exc)
        LOGGER.info("Captured session token %s (source=%s)", token.preview(), source.value)
        return token

    def forget_token(self) -> None:
        self.token = None
        self.observed_token = None
        self.passive_capture_armed = True
        try:
            self.storage.delete(TOKEN_STORAGE_KEY)
        except Exception as exc:
            LOGGER.error("Failed to delete persisted session token: %s", exc)
