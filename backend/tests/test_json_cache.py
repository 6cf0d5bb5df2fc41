import pytest

from app.services.feed.cache import JsonCache
from tests.fakes import DeferredExecutor, FakeClock, InlineExecutor


class Source:
    def __init__(self, *values):
        self.values = list(values)
        self.calls = 0
        self.fail = False

    def __call__(self):
        self.calls += 1
        if self.fail:
            raise RuntimeError("backend down")
        return self.values[min(self.calls - 1, len(self.values) - 1)]


def make_cache(executor=None):
    clock = FakeClock()
    return JsonCache(clock=clock, executor=executor or InlineExecutor()), clock


def test_empty_fetches_synchronously():
    cache, _ = make_cache()
    src = Source("v1")
    assert cache.get("k", src, ttl=60, stale_time=120) == "v1"
    assert src.calls == 1


def test_empty_fetch_error_propagates():
    cache, _ = make_cache()
    src = Source("v1")
    src.fail = True
    with pytest.raises(RuntimeError):
        cache.get("k", src, ttl=60, stale_time=120)
    assert cache.status("k")["exists"] is False


def test_fresh_entry_served_without_fetch():
    cache, clock = make_cache()
    src = Source("v1", "v2")
    cache.get("k", src, ttl=60, stale_time=120)
    clock.advance(59)
    assert cache.get("k", src, ttl=60, stale_time=120) == "v1"
    assert src.calls == 1


def test_stale_serves_old_value_and_revalidates_once():
    executor = DeferredExecutor()
    cache, clock = make_cache(executor)
    src = Source("v1", "v2")
    cache.get("k", src, ttl=60, stale_time=120)
    clock.advance(90)
    for _ in range(3):
        assert cache.get("k", src, ttl=60, stale_time=120) == "v1"
    assert len(executor.pending) == 1

    executor.run_all()
    assert src.calls == 2
    assert cache.get("k", src, ttl=60, stale_time=120) == "v2"
    assert cache.status("k")["isStale"] is False


def test_failed_revalidation_keeps_stale_entry():
    cache, clock = make_cache()
    src = Source("v1")
    cache.get("k", src, ttl=60, stale_time=120)
    clock.advance(90)
    src.fail = True
    assert cache.get("k", src, ttl=60, stale_time=120) == "v1"
    assert cache.status("k")["exists"] is True
    # a later request may schedule another attempt
    assert cache.get("k", src, ttl=60, stale_time=120) == "v1"
    assert src.calls == 3


def test_expired_fetches_synchronously():
    executor = DeferredExecutor()
    cache, clock = make_cache(executor)
    src = Source("v1", "v2")
    cache.get("k", src, ttl=60, stale_time=120)
    clock.advance(121)
    assert cache.get("k", src, ttl=60, stale_time=120) == "v2"
    assert executor.pending == []


def test_expired_fetch_failure_serves_last_resort_entry():
    cache, clock = make_cache()
    src = Source("v1")
    cache.get("k", src, ttl=60, stale_time=120)
    clock.advance(500)
    src.fail = True
    assert cache.get("k", src, ttl=60, stale_time=120) == "v1"


def test_stale_without_swr_blocks_on_fetch():
    executor = DeferredExecutor()
    cache, clock = make_cache(executor)
    src = Source("v1", "v2")
    cache.get("k", src, ttl=60, stale_time=120)
    clock.advance(90)
    assert cache.get("k", src, ttl=60, stale_time=120, stale_while_revalidate=False) == "v2"
    assert executor.pending == []


def test_invalidate_forces_refetch():
    cache, _ = make_cache()
    src = Source("v1", "v2")
    cache.get("k", src, ttl=60, stale_time=120)
    cache.invalidate("k")
    assert cache.status("k") == {"exists": False, "age": None, "isStale": False}
    assert cache.get("k", src, ttl=60, stale_time=120) == "v2"


def test_revalidation_started_before_invalidate_is_discarded():
    executor = DeferredExecutor()
    cache, clock = make_cache(executor)
    src = Source("old", "pre-invalidate read", "after write")
    cache.get("k", src, ttl=60, stale_time=120)
    clock.advance(90)
    cache.get("k", src, ttl=60, stale_time=120)
    cache.invalidate("k")
    executor.run_all()
    assert cache.status("k")["exists"] is False
    assert cache.get("k", src, ttl=60, stale_time=120) == "after write"


def test_invalidate_all_and_set():
    cache, clock = make_cache()
    cache.set("a", 1)
    cache.set("b", 2)
    clock.advance(5)
    assert cache.status("a") == {"exists": True, "age": 5.0, "isStale": False}
    cache.invalidate_all()
    assert cache.keys() == []


def test_first_fetch_racing_invalidate_all_is_not_stored():
    cache, _ = make_cache()

    def fetch_then_invalidate():
        cache.invalidate_all()
        return "read before invalidation"

    assert cache.get("never-seen", fetch_then_invalidate, ttl=60, stale_time=120) == "read before invalidation"
    assert cache.status("never-seen")["exists"] is False

    src = Source("fresh")
    assert cache.get("never-seen", src, ttl=60, stale_time=120) == "fresh"
    assert cache.status("never-seen")["exists"] is True
