"""
Tests for the entity cache.
"""

import asyncio

import pytest

from conftest import KEY, settle
from offline_cache.entities import QueryKey, QueryStatus
from offline_cache.errors import ServerError, UnauthorizedError, ValidationError
from offline_cache.services import CacheEventType, EntityCache, QueryOptions


def make_fetcher(*results):
    """Return a fetcher yielding ``results`` in order and counting calls."""
    queue = list(results)

    async def fetcher():
        fetcher.calls += 1
        result = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(result, Exception):
            raise result
        return result

    fetcher.calls = 0
    return fetcher


@pytest.mark.asyncio
async def test_read_returns_immediately_and_fetches_in_background(cache):
    fetcher = make_fetcher([{"id": 1, "text": "a"}])

    entry = cache.read(KEY, fetcher)
    assert entry.data is None
    assert entry.status == QueryStatus.LOADING
    assert entry.is_fetching

    entry = await cache.ensure(KEY)
    assert entry.status == QueryStatus.SUCCESS
    assert entry.data == [{"id": 1, "text": "a"}]
    assert not entry.is_fetching
    assert fetcher.calls == 1


@pytest.mark.asyncio
async def test_concurrent_reads_share_one_fetch(cache):
    release = asyncio.Event()

    async def fetcher():
        fetcher.calls += 1
        await release.wait()
        return ["x"]

    fetcher.calls = 0

    cache.read(KEY, fetcher)
    cache.read(KEY, fetcher)
    waiters = [asyncio.create_task(cache.ensure(KEY)) for _ in range(3)]
    await asyncio.sleep(0)
    release.set()
    results = await asyncio.gather(*waiters)

    assert fetcher.calls == 1
    assert all(entry.data == ["x"] for entry in results)


@pytest.mark.asyncio
async def test_fresh_entry_is_not_refetched_until_stale(cache, clock):
    fetcher = make_fetcher(["v1"], ["v2"])
    options = QueryOptions(stale_time=60)

    await cache.ensure(KEY, fetcher, options)
    clock.advance(30)
    entry = await cache.ensure(KEY)
    assert entry.data == ["v1"]
    assert fetcher.calls == 1

    clock.advance(31)
    entry = await cache.ensure(KEY)
    assert entry.data == ["v2"]
    assert fetcher.calls == 2


@pytest.mark.asyncio
async def test_failed_refresh_keeps_last_good_data(cache, clock):
    fetcher = make_fetcher(["good"], ValidationError("Bad request", 400))
    options = QueryOptions(stale_time=0)

    await cache.ensure(KEY, fetcher, options)
    clock.advance(1)
    entry = await cache.ensure(KEY)

    assert entry.status == QueryStatus.ERROR
    assert entry.error == "Bad request"
    assert entry.data == ["good"]


@pytest.mark.asyncio
async def test_server_errors_are_retried(cache):
    fetcher = make_fetcher(ServerError("down", 503), ServerError("down", 503), ["ok"])

    entry = await cache.ensure(KEY, fetcher)

    assert entry.data == ["ok"]
    assert fetcher.calls == 3


@pytest.mark.asyncio
async def test_server_errors_give_up_after_bounded_attempts(cache):
    fetcher = make_fetcher(ServerError("down", 503))

    entry = await cache.ensure(KEY, fetcher)

    assert entry.status == QueryStatus.ERROR
    assert fetcher.calls == 3


@pytest.mark.asyncio
async def test_disabled_query_never_fetches(cache):
    fetcher = make_fetcher(["x"])

    entry = await cache.ensure(KEY, fetcher, QueryOptions(enabled=False))

    assert entry.status == QueryStatus.IDLE
    assert fetcher.calls == 0


@pytest.mark.asyncio
async def test_write_creates_entry_without_fetching(cache):
    entry = cache.write(KEY, lambda old: (old or []) + ["a"])

    assert entry.data == ["a"]
    assert entry.status == QueryStatus.SUCCESS
    assert entry.updated_at is not None
    assert not entry.is_fetching


@pytest.mark.asyncio
async def test_invalidate_refetches_observed_keys_only(cache):
    observed = make_fetcher(["fresh"])
    unobserved_key = QueryKey.of("files", "list")
    unobserved = make_fetcher(["files"])

    await cache.ensure(KEY, observed)
    await cache.ensure(unobserved_key, unobserved)
    cache.observe(KEY, lambda entry: None)

    assert cache.invalidate(KEY) == 1
    assert cache.invalidate(unobserved_key) == 1
    await settle()

    assert observed.calls == 2
    assert unobserved.calls == 1
    assert cache.get(unobserved_key).is_invalidated
    assert not cache.get(KEY).is_invalidated


@pytest.mark.asyncio
async def test_invalidate_by_prefix(cache):
    cache.write(QueryKey.of("entries", "list"), lambda _: [])
    cache.write(QueryKey.of("entries", "detail", "1"), lambda _: {})
    cache.write(QueryKey.of("files", "list"), lambda _: [])

    assert cache.invalidate(QueryKey.of("entries"), exact=False) == 2
    assert not cache.get(QueryKey.of("files", "list")).is_invalidated


@pytest.mark.asyncio
async def test_cancelled_fetch_result_is_discarded(cache):
    release = asyncio.Event()

    async def fetcher():
        await release.wait()
        return ["server"]

    cache.read(KEY, fetcher)
    assert cache.cancel_in_flight(KEY)
    cache.write(KEY, lambda _: ["optimistic"])

    release.set()
    await settle()

    assert cache.get(KEY).data == ["optimistic"]


@pytest.mark.asyncio
async def test_cancel_without_fetch_in_flight(cache):
    assert not cache.cancel_in_flight(KEY)


@pytest.mark.asyncio
async def test_unauthorized_fetch_suspends_refresh(clock, retry):
    calls = []
    cache = EntityCache(clock=clock, retry=retry, on_unauthorized=lambda: calls.append(1))
    fetcher = make_fetcher(["cached"], UnauthorizedError("Unauthorized", 401))
    options = QueryOptions(stale_time=0)

    await cache.ensure(KEY, fetcher, options)
    clock.advance(1)
    entry = await cache.ensure(KEY)

    assert calls == [1]
    assert entry.data == ["cached"]
    assert cache.refresh_suspended

    clock.advance(1)
    await cache.ensure(KEY)
    assert fetcher.calls == 2
    assert calls == [1]

    cache.resume_refresh()
    await cache.ensure(KEY)
    assert fetcher.calls == 3


@pytest.mark.asyncio
async def test_teardown_clears_entries_and_discards_in_flight(cache):
    release = asyncio.Event()

    async def fetcher():
        await release.wait()
        return ["late"]

    cache.write(QueryKey.of("files", "list"), lambda _: [])
    cache.read(KEY, fetcher)
    epoch = cache.epoch

    cache.teardown()
    release.set()
    await settle()

    assert cache.keys() == []
    assert cache.epoch == epoch + 1


@pytest.mark.asyncio
async def test_reconciler_is_applied_to_fetched_data(cache):
    cache.set_reconciler(lambda key, data: ["pending"] + data)

    entry = await cache.ensure(KEY, make_fetcher(["server"]))

    assert entry.data == ["pending", "server"]


@pytest.mark.asyncio
async def test_observers_and_listeners_are_notified(cache):
    seen = []
    events = []
    unobserve = cache.observe(KEY, lambda entry: seen.append(entry.data))
    unsubscribe = cache.subscribe(lambda event: events.append(event.type))

    cache.write(KEY, lambda _: [1])
    cache.remove(KEY)

    assert seen == [[1]]
    assert events == [CacheEventType.UPDATED, CacheEventType.REMOVED]
    unobserve()
    unsubscribe()


@pytest.mark.asyncio
async def test_failing_listener_does_not_break_writes(cache):
    def broken(event):
        raise RuntimeError("listener bug")

    cache.subscribe(broken)
    entry = cache.write(KEY, lambda _: ["ok"])

    assert entry.data == ["ok"]


@pytest.mark.asyncio
async def test_unobserved_entry_is_collected_after_gc_time(cache):
    cache.read(KEY, options=QueryOptions(gc_time=0.01))
    cache.write(KEY, lambda _: ["x"])
    unobserve = cache.observe(KEY, lambda entry: None)

    unobserve()
    await asyncio.sleep(0.05)

    assert cache.get(KEY) is None


@pytest.mark.asyncio
async def test_reobserving_cancels_collection(cache):
    cache.read(KEY, options=QueryOptions(gc_time=0.01))
    cache.write(KEY, lambda _: ["x"])
    cache.observe(KEY, lambda entry: None)()
    cache.observe(KEY, lambda entry: None)

    await asyncio.sleep(0.05)

    assert cache.get(KEY) is not None


@pytest.mark.asyncio
async def test_entry_that_is_only_read_is_collected(cache):
    await cache.ensure(KEY, make_fetcher([{"id": 1, "text": "a"}]), QueryOptions(gc_time=0.01))

    await asyncio.sleep(0.1)

    assert cache.get(KEY) is None


@pytest.mark.asyncio
async def test_each_use_restarts_collection_timer(cache):
    cache.read(KEY, options=QueryOptions(gc_time=0.1))
    await asyncio.sleep(0.06)
    cache.write(KEY, lambda _: ["x"])
    await asyncio.sleep(0.06)

    assert cache.get(KEY) is not None
    await asyncio.sleep(0.1)
    assert cache.get(KEY) is None


@pytest.mark.asyncio
async def test_hydrated_entry_is_collected_when_never_viewed(cache):
    from offline_cache.entities import CacheEntry

    cache.hydrate(
        [CacheEntry(key=KEY, data=["stored"], status=QueryStatus.SUCCESS, updated_at=1.0)],
        QueryOptions(gc_time=0.01),
    )

    await asyncio.sleep(0.05)

    assert cache.get(KEY) is None


@pytest.mark.asyncio
async def test_held_key_is_not_fetched_until_released(cache):
    fetcher = make_fetcher(["a"])
    cache.observe(KEY, lambda entry: None)
    cache.hold(KEY)

    entry = cache.read(KEY, fetcher)
    assert not entry.is_fetching
    cache.hold(KEY)
    cache.release(KEY)
    assert fetcher.calls == 0

    cache.release(KEY)
    await settle()

    assert fetcher.calls == 1
    assert cache.get(KEY).data == ["a"]
    assert not cache.is_held(KEY)


def test_collect_garbage_removes_only_expired_unobserved_entries(cache, clock):
    kept = QueryKey.of("files", "list")
    cache.read(KEY, options=QueryOptions(gc_time=10))
    cache.read(kept, options=QueryOptions(gc_time=10))
    cache.observe(kept, lambda entry: None)

    clock.advance(11)

    assert cache.collect_garbage() == 1
    assert cache.keys() == [kept]


def test_hydrate_does_not_overwrite_live_entries(cache):
    from offline_cache.entities import CacheEntry

    cache.write(KEY, lambda _: ["live"])
    added = cache.hydrate(
        [
            CacheEntry(key=KEY, data=["stored"], status=QueryStatus.SUCCESS, updated_at=1.0),
            CacheEntry(key=QueryKey.of("files", "list"), data=[], status=QueryStatus.SUCCESS, updated_at=1.0),
        ]
    )

    assert added == 1
    assert cache.get(KEY).data == ["live"]
