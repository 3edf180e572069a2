import asyncio

import pytest

from storescan.errors import ErrorKind, OperationTimeout, Result
from storescan.strategies import StrategyChain


def _chain(*strategies):
    return StrategyChain("test", list(strategies), error_kind=ErrorKind.TASK_EXTRACTION)


def test_first_success_wins_and_later_strategies_do_not_run():
    calls = []

    def miss(x):
        calls.append("miss")
        return Result.fail(ErrorKind.TASK_EXTRACTION, "nope")

    def hit(x):
        calls.append("hit")
        return Result.ok(x * 2)

    def never(x):
        calls.append("never")
        return Result.ok(0)

    outcome = _chain(("miss", miss), ("hit", hit), ("never", never)).run(21)

    assert outcome.ok
    assert outcome.value == 42
    assert outcome.winner == "hit"
    assert outcome.tried() == ["miss", "hit"]
    assert calls == ["miss", "hit"]


def test_exceptions_become_failed_attempts():
    def boom():
        raise KeyError("missing")

    def late():
        return Result.ok("late")

    outcome = _chain(("boom", boom), ("late", late)).run()

    first = outcome.attempts[0]
    assert not first.ok
    assert first.error is ErrorKind.TASK_EXTRACTION
    assert "KeyError" in first.message
    assert outcome.value == "late"


def test_timeouts_keep_their_kind():
    def slow():
        raise OperationTimeout("navigation", 100)

    outcome = _chain(("slow", slow)).run()

    assert not outcome.ok
    assert outcome.attempts[0].error is ErrorKind.TIMEOUT
    assert "100ms" in outcome.attempts[0].message


def test_none_result_is_a_failure():
    outcome = _chain(("empty", lambda: None)).run()
    assert not outcome.ok
    assert outcome.attempts[0].message == "no result"


def test_sync_run_rejects_async_strategies():
    async def coro():
        return Result.ok(1)

    with pytest.raises(TypeError):
        _chain(("coro", coro)).run()


def test_async_run_mixes_sync_and_async_strategies():
    async def async_miss():
        await asyncio.sleep(0)
        return Result.fail(ErrorKind.TASK_EXTRACTION, "async miss")

    def sync_hit():
        return Result.ok("sync")

    outcome = asyncio.run(_chain(("a", async_miss), ("b", sync_hit)).arun())

    assert outcome.winner == "b"
    assert [a.to_dict()["ok"] for a in outcome.attempts] == [False, True]
