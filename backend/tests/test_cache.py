import asyncio

from app.core.cache import TTLCache


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_entries_expire_after_ttl():
    clock = FakeClock()
    cache = TTLCache(default_ttl=10, clock=clock)
    cache.set("products:all", [1, 2])

    clock.now = 9.9
    assert cache.get("products:all") == [1, 2]
    clock.now = 10
    assert cache.get("products:all") is None


def test_per_call_ttl_overrides_default():
    clock = FakeClock()
    cache = TTLCache(default_ttl=600, clock=clock)
    cache.set("k", "v")
    clock.now = 5
    assert cache.get("k", ttl=3) is None
    assert cache.get("k") == "v"


def test_get_or_set_loads_once():
    cache = TTLCache(clock=FakeClock())
    calls = []

    async def loader():
        calls.append(1)
        return {"rows": 3}

    first = asyncio.run(cache.get_or_set("categories:all", loader))
    second = asyncio.run(cache.get_or_set("categories:all", loader))

    assert first == ({"rows": 3}, False)
    assert second == ({"rows": 3}, True)
    assert len(calls) == 1


def test_invalidate_prefix_and_clear():
    cache = TTLCache(clock=FakeClock())
    cache.set("products:a", 1)
    cache.set("products:b", 2)
    cache.set("categories:all", 3)

    assert cache.invalidate_prefix("products:") == 2
    assert cache.get("categories:all") == 3
    cache.invalidate("categories:all")
    assert len(cache) == 0

    cache.set("x", 1)
    cache.clear()
    assert cache.get("x") is None


def test_sweep_drops_stale_entries():
    clock = FakeClock()
    cache = TTLCache(default_ttl=10, clock=clock)
    cache.set("old", 1)
    clock.now = 8
    cache.set("new", 2)
    clock.now = 12

    assert cache.sweep() == 1
    assert cache.get("new") == 2
