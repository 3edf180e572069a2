import asyncio
from concurrent.futures import ThreadPoolExecutor

from storescan.models import ScanTask
from storescan.queue import TaskQueue
from storescan.session.context import SessionContext


def _tasks():
    return [
        ScanTask("AAA", "B0TEST0001"),
        ScanTask("BBB", "B0TEST0002"),
        ScanTask("AAA", "B0TEST0003"),
        ScanTask("AAA", "B0TEST0004"),
        ScanTask("BBB", "B0TEST0005"),
    ]


def test_partitions_keep_first_seen_location_order():
    queue = TaskQueue(_tasks())
    assert queue.locations() == ["AAA", "BBB"]
    assert [t.item_id for t in queue.partition("AAA")] == ["B0TEST0001", "B0TEST0003", "B0TEST0004"]
    assert len(queue) == 5


def test_partition_is_closed_until_exposed():
    queue = TaskQueue(_tasks())
    assert queue.claim_next("AAA") is None
    queue.expose("AAA")
    assert queue.claim_next("AAA").item_id == "B0TEST0001"
    assert queue.claim_next("BBB") is None


def test_concurrent_agents_claim_each_task_exactly_once():
    tasks = [ScanTask("AAA", f"B0TEST{i:04d}") for i in range(25)]
    queue = TaskQueue(tasks)
    queue.expose("AAA")

    async def agent(claimed):
        while True:
            task = queue.claim_next("AAA")
            if task is None:
                return
            claimed.append(task)
            await asyncio.sleep(0)

    async def run():
        buckets = [[] for _ in range(4)]
        await asyncio.gather(*(agent(b) for b in buckets))
        return buckets

    buckets = asyncio.run(run())
    claimed = [t for bucket in buckets for t in bucket]

    assert sorted(t.item_id for t in claimed) == sorted(t.item_id for t in tasks)
    assert len(claimed) == len(set(claimed)) == 25
    assert sum(1 for bucket in buckets if bucket) > 1


def test_claims_from_threads_never_duplicate():
    tasks = [ScanTask("AAA", f"B0TEST{i:04d}") for i in range(200)]
    queue = TaskQueue(tasks)
    queue.expose("AAA")

    def drain_worker():
        got = []
        while True:
            task = queue.claim_next("AAA")
            if task is None:
                return got
            got.append(task.item_id)

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: drain_worker(), range(8)))

    claimed = [item for got in results for item in got]
    assert len(claimed) == 200
    assert len(set(claimed)) == 200


def test_stop_flag_ends_claiming():
    context = SessionContext()
    queue = TaskQueue(_tasks(), context)
    queue.expose("AAA")
    assert queue.claim_next("AAA") is not None
    context.request_stop()
    assert queue.claim_next("AAA") is None
    assert queue.stats()["claimed"] == 1


def test_drain_returns_only_unclaimed_tasks_once():
    queue = TaskQueue(_tasks())
    queue.expose("AAA")
    first = queue.claim_next("AAA")

    drained = queue.drain("AAA")

    assert first not in drained
    assert len(drained) == 2
    assert queue.drain("AAA") == []
    assert queue.remaining("AAA") == 0


def test_empty_or_unknown_partition_returns_none():
    queue = TaskQueue([])
    queue.expose("ZZZ")
    assert queue.claim_next("ZZZ") is None
    assert queue.locations() == []
    assert queue.stats() == {"total": 0, "claimed": 0, "remaining": 0, "partitions": 0, "exposed": 1}
