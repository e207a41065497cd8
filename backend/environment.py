"""SafeRoute Backend — Simulated environmental signals

Weather, traffic and event conditions drawn from fixed Cape Town-ish
distributions, plus the additive score adjustment they imply.
"""

import logging
import threading
from datetime import datetime
from typing import Optional, Protocol

import numpy as np

from models import (
    EnvironmentalConditions,
    EventConditions,
    Location,
    TrafficConditions,
    WeatherConditions,
)

logger = logging.getLogger("saferoute.environment")

WEATHER_CONDITIONS = ("clear", "cloudy", "rain", "fog")
WEATHER_PROBABILITIES = (0.60, 0.20, 0.15, 0.05)

BASE_SPEED_KMH = 40
TRAFFIC_INCIDENT_PROBABILITY = 0.05
EMERGENCY_PROBABILITY = 0.02


def is_rush_hour(hour: int) -> bool:
    return 7 <= hour <= 9 or 17 <= hour <= 19


class EnvironmentProvider(Protocol):
    def current(self, location: Location, now: datetime) -> EnvironmentalConditions: ...


class EnvironmentSimulator:
    """Draws a fresh set of conditions per call from a seedable numpy RNG."""

    def __init__(self, seed: Optional[int] = None):
        self._rng = np.random.default_rng(seed)
        self._lock = threading.Lock()
        if seed is not None:
            logger.info(f"Environment simulator seeded with {seed}")

    def current(self, location: Location, now: datetime) -> EnvironmentalConditions:
        # numpy Generators are not thread-safe
        with self._lock:
            return EnvironmentalConditions(
                weather=self._weather(),
                traffic=self._traffic(now.hour),
                events=self._events(now),
            )

    def _weather(self) -> WeatherConditions:
        condition = self._rng.choice(WEATHER_CONDITIONS, p=WEATHER_PROBABILITIES)
        return WeatherConditions(
            condition=str(condition),
            visibility=round(float(self._rng.uniform(60, 100))),
            temperature=round(float(self._rng.uniform(10, 30))),
        )

    def _traffic(self, hour: int) -> TrafficConditions:
        rng = self._rng
        if is_rush_hour(hour):
            congestion = rng.uniform(60, 100)
            speed = BASE_SPEED_KMH - rng.uniform(0, 20)
        else:
            congestion = rng.uniform(0, 60)
            speed = BASE_SPEED_KMH + rng.uniform(0, 20)
        return TrafficConditions(
            congestionLevel=round(float(congestion)),
            avgSpeed=round(float(speed)),
            incidents=int(rng.random() < TRAFFIC_INCIDENT_PROBABILITY),
        )

    def _events(self, now: datetime) -> EventConditions:
        rng = self._rng
        hour = now.hour
        events: list[str] = []

        if 18 <= hour <= 23:
            if rng.random() < 0.3:
                events.append("Restaurant/bar activity")
            if rng.random() < 0.1:
                events.append("Live music venue")
        if 9 <= hour <= 17 and rng.random() < 0.4:
            events.append("Business district activity")
        if now.weekday() >= 5 and rng.random() < 0.2:
            events.append("Weekend market/event")

        if 2 <= hour <= 6:
            crowd = "low"
        elif 7 <= hour <= 9 or 17 <= hour <= 20:
            crowd = "high"
        else:
            crowd = "medium"

        return EventConditions(
            nearbyEvents=events,
            crowdDensity=crowd,
            emergencyServices=bool(rng.random() < EMERGENCY_PROBABILITY),
        )


class FixedEnvironment:
    """Provider that always reports the same conditions."""

    def __init__(self, conditions: Optional[EnvironmentalConditions] = None):
        self.conditions = conditions or EnvironmentalConditions()

    def current(self, location: Location, now: datetime) -> EnvironmentalConditions:
        return self.conditions


# ─────────────────────────── Adjustment ─────────────────────────

def weather_adjustment(weather: Optional[WeatherConditions]) -> int:
    if weather is None:
        return 0
    adj = 0
    if weather.visibility < 50:
        adj -= 5
    elif weather.visibility > 80:
        adj += 2

    adj += {"clear": 1, "cloudy": 0, "rain": -3, "fog": -4}[weather.condition]

    if weather.temperature < 5 or weather.temperature > 35:
        adj -= 1
    return adj


def traffic_adjustment(traffic: Optional[TrafficConditions]) -> int:
    if traffic is None:
        return 0
    adj = 0
    if traffic.congestionLevel > 70:
        adj += 1
    elif traffic.congestionLevel < 20:
        adj -= 1
    adj -= traffic.incidents * 2
    return adj


def events_adjustment(events: Optional[EventConditions]) -> int:
    if events is None:
        return 0
    adj = -3 if events.emergencyServices else 0
    adj += {"low": -1, "medium": 1, "high": 2}[events.crowdDensity]
    adj += min(2, len(events.nearbyEvents))
    return adj


def environmental_adjustment(conditions: Optional[EnvironmentalConditions]) -> int:
    """Additive overall-score adjustment for the given conditions."""
    if conditions is None:
        return 0
    return (weather_adjustment(conditions.weather)
            + traffic_adjustment(conditions.traffic)
            + events_adjustment(conditions.events))


def describe_conditions(conditions: Optional[EnvironmentalConditions]) -> str:
    """Short sentences for conditions worth surfacing in an explanation."""
    if conditions is None:
        return ""
    notes = []
    weather = conditions.weather
    if weather and (weather.condition == "rain" or weather.visibility < 50):
        notes.append("Current weather conditions may impact visibility.")
    if conditions.traffic and conditions.traffic.incidents > 0:
        notes.append("Traffic incidents nearby may affect navigation.")
    return " ".join(notes)
