import threading

import pytest
from PIL import Image

pytest.importorskip("cv2")
from reel_planner import reframe
from reel_planner.reframe import FramePlanCache


def _plan(cache, image_id, aspect=16 / 9):
    return reframe.plan_reframe(Image.new("RGB", (64, 48)), aspect, image_id=image_id, cache=cache)


def test_repeated_request_returns_cached_plan(monkeypatch):
    cache = FramePlanCache()
    first = _plan(cache, "a.jpg")

    def fail(*args, **kwargs):
        raise AssertionError("energy recomputed for a cached plan")

    monkeypatch.setattr(reframe, "detect_focus_point", fail)
    assert _plan(cache, "a.jpg") is first
    assert ("a.jpg", round(16 / 9, 4)) in cache


def test_aspect_is_part_of_the_key():
    cache = FramePlanCache()
    wide = _plan(cache, "a.jpg", 16 / 9)
    tall = _plan(cache, "a.jpg", 9 / 16)
    assert wide is not tall
    assert len(cache) == 2


def test_oldest_entry_is_evicted():
    cache = FramePlanCache(max_entries=2)
    for name in ("a", "b", "c"):
        _plan(cache, name)
    assert cache.get("a", 16 / 9) is None
    assert cache.get("c", 16 / 9) is not None
    assert cache.stats() == {"size": 2, "max_size": 2}


def test_clear_empties_cache():
    cache = FramePlanCache()
    _plan(cache, "a")
    cache.clear()
    assert len(cache) == 0


def test_concurrent_writers_and_readers():
    cache = FramePlanCache(max_entries=50)
    plan = _plan(FramePlanCache(), "seed")
    seen = []

    def writer(n):
        for i in range(200):
            cache.put(f"{n}-{i}", 16 / 9, plan)
            seen.append(len(cache))

    threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(cache) == 50
    assert max(seen) <= 50
    assert cache.stats() == {"size": 50, "max_size": 50}
