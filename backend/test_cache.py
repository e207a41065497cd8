"""Tests for the real-time score cache."""

from datetime import datetime

from cache import ScoreCache, location_key
from models import Location, SafetyScore
from conftest import FakeClock

LOC = Location(latitude=-33.92584, longitude=18.42321)


def _score(overall=70):
    return SafetyScore(
        overall=overall, crimeRisk=70, timeFactor=70, populationDensity=70, lightingLevel=70,
        confidenceLevel=80, lastCalculated=datetime(2024, 6, 5, 12, 0),
    )


def test_location_key_quantizes_to_four_decimals():
    assert location_key(LOC) == "-33.9258,18.4232"
    assert location_key(Location(latitude=-33.925841, longitude=18.423209)) == location_key(LOC)


def test_entries_expire_after_ttl():
    clock = FakeClock(datetime(2024, 6, 5, 12, 0))
    cache = ScoreCache(ttl_seconds=300, clock=clock)
    entry = cache.set("k", _score(), LOC)
    assert (entry.expires_at - entry.created_at).total_seconds() == 300

    clock.advance(minutes=4, seconds=59)
    assert cache.get("k") is entry

    clock.advance(seconds=1)
    assert cache.get("k") is None
    assert "k" in cache

    assert cache.evict_expired() == 1
    assert len(cache) == 0


def test_replace_only_swaps_the_expected_entry():
    clock = FakeClock(datetime(2024, 6, 5, 12, 0))
    cache = ScoreCache(clock=clock)
    stale = cache.set("k", _score(60), LOC)
    fresh = cache.set("k", _score(65), LOC)

    assert not cache.replace("k", stale, _score(10))
    assert cache.get("k") is fresh

    assert cache.replace("k", fresh, _score(90))
    updated = cache.get("k")
    assert updated.score.overall == 90
    assert updated.expires_at == fresh.expires_at


def test_snapshot_and_clear():
    cache = ScoreCache()
    cache.set("a", _score(), LOC)
    cache.set("b", _score(), LOC)
    assert sorted(k for k, _ in cache.snapshot()) == ["a", "b"]
    cache.clear()
    assert len(cache) == 0
