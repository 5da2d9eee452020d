from cache import TTLCache


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_entry_expires_after_ttl():
    clock = FakeClock()
    cache = TTLCache(ttl=60, clock=clock)
    cache.set("zhihu", [1, 2])

    clock.now = 59
    assert cache.get("zhihu") == [1, 2]
    clock.now = 60
    assert cache.get("zhihu") is None
    assert len(cache) == 0


def test_zero_ttl_disables_cache():
    cache = TTLCache(ttl=0)
    cache.set("zhihu", [1])
    assert "zhihu" not in cache
    assert len(cache) == 0


def test_clear():
    cache = TTLCache(ttl=60)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.clear()
    assert cache.get("a") is None
    assert len(cache) == 0
