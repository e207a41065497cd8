"""SafeRoute Backend — Crime Data Service

Materializes the synthetic dataset once and answers location, grid, area
and aggregate queries from in-memory indexes.
"""

import logging
import threading
from collections import defaultdict
from datetime import date
from typing import Optional
from urllib.parse import unquote

from config import (
    CRIME_TYPE_WEIGHTS,
    DEFAULT_CRIME_TYPE_WEIGHT,
    DEFAULT_TIMEFRAME,
    RISK_BAND_CEILING,
    RISK_BANDS,
)
from crime_generator import (
    CrimeDataGenerator, apply_timeframe, grid_cell_id, haversine_km,
)
from errors import DataInitializationError
from models import AreaRiskSummary, CrimeRecord, CrimeStatistic, Location, Trend

logger = logging.getLogger("saferoute.crime_data")


def risk_level_for_score(score: float) -> str:
    """Map a weighted incident×severity score onto low/medium/high/critical."""
    for upper, level in RISK_BANDS:
        if score < upper:
            return level
    return RISK_BAND_CEILING


class CrimeDataService:
    """In-memory crime data indexed by record id and grid cell.

    The dataset is built lazily on first access; concurrent first callers
    wait on a single build. A failed build is remembered and re-raised to
    every later caller.
    """

    def __init__(self, generator: Optional[CrimeDataGenerator] = None,
                 reference_date: Optional[date] = None):
        self.generator = generator or CrimeDataGenerator(reference_date)
        self._by_id: dict[str, CrimeRecord] = {}
        self._by_grid: dict[str, list[CrimeRecord]] = {}
        self._records: tuple[CrimeRecord, ...] = ()
        self._initialized = False
        self._init_error: Optional[DataInitializationError] = None
        self._init_lock = threading.Lock()

    # ── Initialization ──

    def initialize(self) -> None:
        if self._initialized:
            return
        with self._init_lock:
            if self._initialized:
                return
            if self._init_error is not None:
                raise self._init_error
            try:
                records = tuple(self.generator.generate())
                by_id: dict[str, CrimeRecord] = {}
                by_grid: dict[str, list[CrimeRecord]] = defaultdict(list)
                for record in records:
                    by_id[record.id] = record
                    by_grid[record.gridCell].append(record)
            except Exception as e:
                logger.error(f"Crime data initialization failed: {e}")
                self._init_error = DataInitializationError(
                    "Crime data initialization failed",
                    details={"reason": str(e)},
                )
                raise self._init_error from e

            self._records = records
            self._by_id = by_id
            self._by_grid = dict(by_grid)
            self._initialized = True
            logger.info(
                f"CrimeDataService initialized with {len(records)} records "
                f"across {len(self._by_grid)} grid cells"
            )

    @property
    def initialized(self) -> bool:
        return self._initialized

    def all_records(self) -> tuple[CrimeRecord, ...]:
        self.initialize()
        return self._records

    # ── Lookups ──

    def get_by_id(self, record_id: str) -> Optional[CrimeRecord]:
        self.initialize()
        return self._by_id.get(record_id)

    def get_by_location(self, location: Location) -> list[CrimeRecord]:
        self.initialize()
        return list(self._by_grid.get(grid_cell_id(location.latitude, location.longitude), []))

    def get_by_grid_cell(self, grid_id: str) -> list[CrimeRecord]:
        self.initialize()
        return list(self._by_grid.get(grid_id, []))

    def get_by_area(self, area: str) -> list[CrimeRecord]:
        self.initialize()
        query = unquote(area or "").strip().lower()
        if not query:
            return list(self._records)
        return [
            r for r in self._records
            if query in (r.location.neighborhood or "").lower()
            or query in (r.location.address or "").lower()
        ]

    def get_statistics(
        self,
        area: Optional[str] = None,
        crime_type: Optional[str] = None,
        timeframe: Optional[str] = None,
    ) -> list[CrimeStatistic]:
        """Flatten crime statistics across matching records.

        When a timeframe is given the counts are rescaled to that window.
        """
        records = self.get_by_area(area) if area else list(self.all_records())
        if timeframe:
            records = list(apply_timeframe(records, timeframe))

        stats: list[CrimeStatistic] = []
        for record in records:
            for stat in record.crimeStats:
                if crime_type and stat.type != crime_type:
                    continue
                stats.append(stat)
        return stats

    # ── Aggregates ──

    def calculate_risk_level(self, location: Location) -> str:
        return self.risk_level_for_records(self.get_by_location(location))

    @staticmethod
    def risk_level_for_records(records: list[CrimeRecord]) -> str:
        total_score = 0.0
        total_weight = 0.0
        for record in records:
            for stat in record.crimeStats:
                weight = CRIME_TYPE_WEIGHTS.get(stat.type, DEFAULT_CRIME_TYPE_WEIGHT)
                total_score += stat.incidentCount * stat.severity * weight
                total_weight += weight

        if total_weight == 0:
            return "low"
        return risk_level_for_score(total_score / total_weight)

    def get_crime_pattern_by_time(self, location: Location, hour: int) -> float:
        """Mean probability of a crime falling in ``hour`` across local stats."""
        values = [
            stat.timePattern[hour]
            for record in self.get_by_location(location)
            for stat in record.crimeStats
            if 0 <= hour < len(stat.timePattern)
        ]
        return sum(values) / len(values) if values else 0.0

    def get_nearby_risky_areas(self, location: Location, radius_km: float = 2.0) -> list[CrimeRecord]:
        self.initialize()
        return [
            r for r in self._records
            if r.riskLevel in ("high", "critical")
            and haversine_km(location.latitude, location.longitude,
                             r.location.latitude, r.location.longitude) <= radius_km
        ]

    def get_all_areas_with_risk_levels(self) -> list[AreaRiskSummary]:
        self.initialize()
        seen: set[str] = set()
        summaries: list[AreaRiskSummary] = []
        for record in self._records:
            area = record.location.neighborhood or record.location.address or "Unknown"
            if area in seen:
                continue
            seen.add(area)
            summaries.append(AreaRiskSummary(
                area=area,
                riskLevel=record.riskLevel,
                incidentCount=sum(s.incidentCount for s in record.crimeStats),
            ))
        summaries.sort(key=lambda s: -s.incidentCount)
        return summaries

    def get_trend(self, record: CrimeRecord, timeframe: Optional[str] = None) -> Trend:
        return self.generator.calculate_trend(record, timeframe or DEFAULT_TIMEFRAME)
