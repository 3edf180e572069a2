"""Ordered fallback chains: first successful strategy wins, every attempt is recorded."""
from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, List, Optional, Sequence, Tuple, TypeVar

from .errors import ErrorKind, OperationTimeout, Result

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Attempt:
    """One strategy invocation inside a chain."""

    strategy: str
    ok: bool
    message: str = ""
    error: Optional[ErrorKind] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "strategy": self.strategy,
            "ok": self.ok,
            "message": self.message,
            "error": self.error.value if self.error else None,
        }


@dataclass
class ChainOutcome(Generic[T]):
    """Winning value (if any) plus the audit trail of attempts."""

    value: Optional[T] = None
    winner: Optional[str] = None
    attempts: List[Attempt] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.winner is not None

    def tried(self) -> List[str]:
        """Names of the strategies that actually ran, in order."""
        return [a.strategy for a in self.attempts]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "winner": self.winner,
            "attempts": [a.to_dict() for a in self.attempts],
        }


class StrategyChain(Generic[T]):
    """Runs named strategies in order until one returns a successful ``Result``.

    A strategy is any callable returning ``Result`` (or an awaitable of one when
    the chain is driven with :meth:`arun`). Exceptions raised by a strategy are
    recorded as failed attempts with the chain's ``error_kind``;
    ``OperationTimeout`` is recorded as ``ErrorKind.TIMEOUT``.
    """

    def __init__(
        self,
        name: str,
        strategies: Sequence[Tuple[str, Callable[..., Any]]],
        *,
        error_kind: ErrorKind,
    ) -> None:
        self.name = name
        self.strategies = list(strategies)
        self.error_kind = error_kind

    @property
    def names(self) -> List[str]:
        return [name for name, _ in self.strategies]

    def run(self, *args: Any, **kwargs: Any) -> ChainOutcome[T]:
        """Run synchronous strategies."""
        outcome: ChainOutcome[T] = ChainOutcome()
        for name, strategy in self.strategies:
            try:
                result = strategy(*args, **kwargs)
            except OperationTimeout as exc:
                result = Result.fail(ErrorKind.TIMEOUT, str(exc))
            except Exception as exc:
                result = self._from_exception(name, exc)
            if inspect.isawaitable(result):
                if inspect.iscoroutine(result):
                    result.close()
                raise TypeError(f"strategy {name!r} is async; use arun()")
            if self._record(outcome, name, result):
                return outcome
        return outcome

    async def arun(self, *args: Any, **kwargs: Any) -> ChainOutcome[T]:
        """Run strategies that may be coroutines."""
        outcome: ChainOutcome[T] = ChainOutcome()
        for name, strategy in self.strategies:
            try:
                result = strategy(*args, **kwargs)
                if inspect.isawaitable(result):
                    result = await result
            except OperationTimeout as exc:
                result = Result.fail(ErrorKind.TIMEOUT, str(exc))
            except Exception as exc:
                result = self._from_exception(name, exc)
            if self._record(outcome, name, result):
                return outcome
        return outcome

    def _from_exception(self, name: str, exc: Exception) -> Result[T]:
        LOGGER.debug("%s: strategy %s raised %s", self.name, name, exc, exc_info=True)
        return Result.fail(self.error_kind, f"{type(exc).__name__}: {exc}")

    def _record(self, outcome: ChainOutcome[T], name: str, result: Optional[Result[T]]) -> bool:
        if result is None:
            result = Result.fail(self.error_kind, "no result")
        outcome.attempts.append(
            Attempt(strategy=name, ok=result.is_ok, message=result.message, error=result.error)
        )
        if result.is_ok:
            outcome.value = result.value
            outcome.winner = name
            LOGGER.debug("%s: %s succeeded", self.name, name)
            return True
        return False
