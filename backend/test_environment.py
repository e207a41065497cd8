"""Tests for simulated environmental conditions and their score adjustment."""

from datetime import datetime

import pytest

from environment import (
    EnvironmentSimulator,
    FixedEnvironment,
    describe_conditions,
    environmental_adjustment,
    events_adjustment,
    traffic_adjustment,
    weather_adjustment,
)
from models import (
    EnvironmentalConditions, EventConditions, Location, TrafficConditions, WeatherConditions,
)

LOC = Location(latitude=-33.9258, longitude=18.4232)


def test_seeded_simulators_agree():
    now = datetime(2024, 6, 8, 19, 0)
    a = EnvironmentSimulator(seed=7)
    b = EnvironmentSimulator(seed=7)
    assert [a.current(LOC, now) for _ in range(20)] == [b.current(LOC, now) for _ in range(20)]


def test_simulated_ranges():
    sim = EnvironmentSimulator(seed=1)
    rush = datetime(2024, 6, 5, 8, 0)
    quiet = datetime(2024, 6, 5, 3, 0)
    for _ in range(200):
        c = sim.current(LOC, rush)
        assert c.weather.condition in ("clear", "cloudy", "rain", "fog")
        assert 60 <= c.weather.visibility <= 100
        assert 10 <= c.weather.temperature <= 30
        assert c.traffic.congestionLevel >= 60
        assert c.traffic.incidents in (0, 1)
        assert c.events.crowdDensity == "high"

        c = sim.current(LOC, quiet)
        assert c.traffic.congestionLevel <= 60
        assert c.events.crowdDensity == "low"
        assert c.events.nearbyEvents == []


def test_weather_mix_roughly_matches_distribution():
    sim = EnvironmentSimulator(seed=3)
    now = datetime(2024, 6, 5, 12, 0)
    draws = [sim.current(LOC, now).weather.condition for _ in range(2000)]
    assert 0.5 < draws.count("clear") / len(draws) < 0.7


def test_weather_adjustment():
    assert weather_adjustment(WeatherConditions(condition="clear", visibility=90, temperature=20)) == 3
    assert weather_adjustment(WeatherConditions(condition="cloudy", visibility=70, temperature=20)) == 0
    assert weather_adjustment(WeatherConditions(condition="fog", visibility=40, temperature=2)) == -10
    assert weather_adjustment(WeatherConditions(condition="rain", visibility=60, temperature=38)) == -4
    assert weather_adjustment(None) == 0


def test_traffic_adjustment():
    assert traffic_adjustment(TrafficConditions(congestionLevel=80, avgSpeed=20, incidents=1)) == -1
    assert traffic_adjustment(TrafficConditions(congestionLevel=10, avgSpeed=55)) == -1
    assert traffic_adjustment(TrafficConditions(congestionLevel=50, avgSpeed=45)) == 0


def test_events_adjustment():
    events = EventConditions(nearbyEvents=["a", "b", "c"], crowdDensity="high", emergencyServices=True)
    assert events_adjustment(events) == 1
    assert events_adjustment(EventConditions(crowdDensity="low")) == -1
    assert events_adjustment(EventConditions(nearbyEvents=["a"], crowdDensity="medium")) == 2


def test_environmental_adjustment_sums_parts():
    conditions = EnvironmentalConditions(
        weather=WeatherConditions(condition="fog", visibility=40, temperature=2),
        traffic=TrafficConditions(congestionLevel=80, avgSpeed=20, incidents=1),
        events=EventConditions(nearbyEvents=["a", "b", "c"], crowdDensity="high", emergencyServices=True),
    )
    assert environmental_adjustment(conditions) == -10
    assert environmental_adjustment(EnvironmentalConditions()) == 0
    assert environmental_adjustment(None) == 0


def test_fixed_environment():
    conditions = EnvironmentalConditions(weather=WeatherConditions(condition="clear", visibility=90, temperature=20))
    env = FixedEnvironment(conditions)
    assert env.current(LOC, datetime(2024, 1, 1)) is conditions


@pytest.mark.parametrize("conditions, expected", [
    (EnvironmentalConditions(weather=WeatherConditions(condition="rain", visibility=70, temperature=15)),
     "Current weather conditions may impact visibility."),
    (EnvironmentalConditions(traffic=TrafficConditions(congestionLevel=50, avgSpeed=40, incidents=1)),
     "Traffic incidents nearby may affect navigation."),
    (EnvironmentalConditions(), ""),
])
def test_describe_conditions(conditions, expected):
    assert describe_conditions(conditions) == expected
