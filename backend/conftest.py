"""Shared pytest fixtures for the SafeRoute backend."""

from datetime import date, datetime, timedelta

import pytest

from crime_data import CrimeDataService
from models import (
    CrimeRecord, CrimeStatistic, DateRange, EconomicIndicators, Location,
)

REFERENCE_DATE = date(2024, 6, 1)

# 2024-06-05 is a Wednesday
WEDNESDAY_NOON = datetime(2024, 6, 5, 12, 0)

FLAT_PATTERN = tuple([1 / 24] * 24)


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def make_stat(crime_type="violent", count=10, severity=6, pattern=FLAT_PATTERN, confidence=90.0):
    return CrimeStatistic(
        type=crime_type,
        subtype="test",
        incidentCount=count,
        severity=severity,
        timePattern=pattern,
        confidence=confidence,
    )


def make_record(
    stats=None,
    risk="low",
    density=3000,
    business=5.0,
    lighting=60.0,
    last_updated=datetime(2024, 6, 1),
    lat=-33.9258,
    lng=18.4232,
):
    return CrimeRecord(
        id="crime_test",
        location=Location(latitude=lat, longitude=lng, neighborhood="Testville", address="Testville, Cape Town"),
        gridCell="CT_57_42",
        timeframe=DateRange(start=last_updated - timedelta(days=180), end=last_updated),
        crimeStats=tuple(stats if stats is not None else [make_stat()]),
        riskLevel=risk,
        populationDensity=density,
        economicIndicators=EconomicIndicators(
            averageIncome=100_000,
            unemploymentRate=20,
            businessDensity=business,
            lightingInfrastructure=lighting,
        ),
        lastUpdated=last_updated,
    )


class StubCrimeData:
    """Stands in for CrimeDataService with a fixed record list."""

    def __init__(self, records=(), error: Exception = None):
        self.records = list(records)
        self.error = error
        self.initialized = True

    def get_by_location(self, location):
        if self.error is not None:
            raise self.error
        return list(self.records)

    def get_nearby_risky_areas(self, location, radius_km=2.0):
        return [r for r in self.records if r.riskLevel in ("high", "critical")]


@pytest.fixture(scope="session")
def service():
    svc = CrimeDataService(reference_date=REFERENCE_DATE)
    svc.initialize()
    return svc


@pytest.fixture
def clock():
    return FakeClock(WEDNESDAY_NOON)
