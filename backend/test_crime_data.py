"""Tests for the in-memory crime data service."""

import threading
import time

import pytest

from crime_data import CrimeDataService, risk_level_for_score
from errors import DataInitializationError
from models import Location
from conftest import REFERENCE_DATE, make_record, make_stat

CITY_BOWL = Location(latitude=-33.9258, longitude=18.4232)
KHAYELITSHA = Location(latitude=-34.0333, longitude=18.6833)


class CountingGenerator:
    def __init__(self, records, delay=0.05):
        self.records = records
        self.delay = delay
        self.calls = 0
        self._lock = threading.Lock()

    def generate(self):
        with self._lock:
            self.calls += 1
        time.sleep(self.delay)
        return self.records


class FailingGenerator:
    def __init__(self):
        self.calls = 0

    def generate(self):
        self.calls += 1
        raise RuntimeError("disk on fire")


@pytest.mark.parametrize("score, level", [
    (0, "low"),
    (29, "low"),
    (30, "medium"),
    (59, "medium"),
    (60, "high"),
    (79, "high"),
    (80, "critical"),
    (500, "critical"),
])
def test_risk_bands(score, level):
    assert risk_level_for_score(score) == level


def test_risk_level_is_weighted_average():
    # 10 incidents × severity 3 × weight 1.0 over weight 1.0 → 30
    record = make_record(stats=[make_stat("violent", count=10, severity=3)])
    assert CrimeDataService.risk_level_for_records([record]) == "medium"

    # (10·3·1.0 + 0·1·0.4) / 1.4 ≈ 21.4
    record = make_record(stats=[make_stat("violent", count=10, severity=3), make_stat("petty", count=0, severity=1)])
    assert CrimeDataService.risk_level_for_records([record]) == "low"


def test_no_data_is_low_risk():
    assert CrimeDataService.risk_level_for_records([]) == "low"


def test_single_flight_initialization():
    generator = CountingGenerator((make_record(),))
    svc = CrimeDataService(generator=generator)
    barrier = threading.Barrier(8)

    def worker():
        barrier.wait()
        svc.initialize()

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert generator.calls == 1
    assert svc.initialized
    assert len(svc.all_records()) == 1


def test_initialization_failure_is_sticky():
    generator = FailingGenerator()
    svc = CrimeDataService(generator=generator)

    with pytest.raises(DataInitializationError) as excinfo:
        svc.get_by_location(CITY_BOWL)
    assert "disk on fire" in excinfo.value.details["reason"]

    with pytest.raises(DataInitializationError):
        svc.all_records()
    assert generator.calls == 1
    assert not svc.initialized


def test_get_by_location_uses_grid_cell(service):
    records = service.get_by_location(CITY_BOWL)
    assert {r.location.neighborhood for r in records} == {"City Bowl", "V&A Waterfront"}
    assert all(r.gridCell == "CT_57_42" for r in records)
    assert service.get_by_location(Location(latitude=0.0, longitude=0.0)) == []


def test_get_by_id_and_grid_cell(service):
    record = service.get_by_location(KHAYELITSHA)[0]
    assert service.get_by_id(record.id) is record
    assert service.get_by_id("missing") is None
    assert service.get_by_grid_cell(record.gridCell) == [record]


def test_get_by_area(service):
    assert [r.location.neighborhood for r in service.get_by_area("woodstock")] == ["Woodstock"]
    assert len(service.get_by_area("")) == 15
    assert service.get_by_area("Mitchell%27s") == service.get_by_area("mitchell's")


def test_statistics_filter_and_rescale(service):
    violent = service.get_statistics(crime_type="violent")
    assert len(violent) == 15 * 5
    assert all(s.type == "violent" for s in violent)

    six = service.get_statistics(area="langa")
    year = service.get_statistics(area="langa", timeframe="1year")
    assert len(six) == 20
    assert [s.incidentCount * 2 for s in six] == [s.incidentCount for s in year]


def test_records_are_shared_not_copied(service):
    assert service.all_records() is service.all_records()
    assert service.get_by_location(CITY_BOWL)[0] is service.get_by_location(CITY_BOWL)[0]


def test_calculate_risk_level(service):
    assert service.calculate_risk_level(Location(latitude=0.0, longitude=0.0)) == "low"
    assert service.calculate_risk_level(KHAYELITSHA) == "critical"


def test_crime_pattern_by_time(service):
    value = service.get_crime_pattern_by_time(CITY_BOWL, 19)
    assert 0 < value < 1
    assert service.get_crime_pattern_by_time(Location(latitude=0.0, longitude=0.0), 19) == 0.0


def test_nearby_risky_areas(service):
    nearby = service.get_nearby_risky_areas(KHAYELITSHA, radius_km=2.0)
    assert [r.location.neighborhood for r in nearby] == ["Khayelitsha"]
    assert service.get_nearby_risky_areas(CITY_BOWL, radius_km=2.0) == []


def test_area_summaries_sorted(service):
    summaries = service.get_all_areas_with_risk_levels()
    assert len(summaries) == 15
    counts = [s.incidentCount for s in summaries]
    assert counts == sorted(counts, reverse=True)


def test_trend_defaults_to_six_months(service):
    record = service.get_by_location(KHAYELITSHA)[0]
    trend = service.get_trend(record)
    assert trend.timeframe == "6months"
    assert trend.totalIncidents == sum(s.incidentCount for s in record.crimeStats)


def test_reference_date_passthrough():
    svc = CrimeDataService(reference_date=REFERENCE_DATE)
    assert svc.generator.reference_date == REFERENCE_DATE
