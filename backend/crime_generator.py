"""SafeRoute Backend — Synthetic Cape Town Crime Data Generator

Builds a reproducible crime dataset for a fixed table of Cape Town suburbs.
Every random draw goes through ``deterministic_variation`` so two runs with
the same reference date and timeframe produce identical records.
"""

import logging
import math
import re
import threading
from datetime import date, datetime, time, timedelta
from typing import Optional
from urllib.parse import unquote

from cachetools import LRUCache, cached

from config import (
    CAPE_TOWN_BOUNDS,
    DEFAULT_TIMEFRAME,
    GRID_CELLS_PER_DEGREE,
    GRID_ORIGIN_LAT,
    GRID_ORIGIN_LNG,
    TIMEFRAME_DAYS,
    TIMEFRAME_MULTIPLIERS,
    TREND_BASELINES,
    TREND_IMPROVING_PCT,
    TREND_WORSENING_PCT,
)
from models import (
    CrimeRecord, CrimeStatistic, DateRange, EconomicIndicators, Location, Trend,
)

logger = logging.getLogger("saferoute.generator")

# ─────────────────────────── Area table ─────────────────────────
# Suburbs grouped by the risk profile they are generated with.

CAPE_TOWN_AREAS: list[dict] = [
    # Low risk
    {"name": "Camps Bay", "lat": -33.9588, "lng": 18.4718, "population": 4200, "risk": "low", "type": "recreational"},
    {"name": "Clifton", "lat": -33.9394, "lng": 18.3761, "population": 1800, "risk": "low", "type": "residential"},
    {"name": "Sea Point", "lat": -33.9248, "lng": 18.3917, "population": 12500, "risk": "low", "type": "residential"},
    {"name": "Green Point", "lat": -33.9108, "lng": 18.4058, "population": 4300, "risk": "low", "type": "residential"},
    {"name": "V&A Waterfront", "lat": -33.9249, "lng": 18.4241, "population": 2000, "risk": "low", "type": "commercial"},
    # Medium risk
    {"name": "City Bowl", "lat": -33.9258, "lng": 18.4232, "population": 18000, "risk": "medium", "type": "commercial"},
    {"name": "Woodstock", "lat": -33.9333, "lng": 18.4500, "population": 15200, "risk": "medium", "type": "industrial"},
    {"name": "Observatory", "lat": -33.9333, "lng": 18.4833, "population": 12800, "risk": "medium", "type": "residential"},
    {"name": "Salt River", "lat": -33.9347, "lng": 18.4653, "population": 11500, "risk": "medium", "type": "industrial"},
    {"name": "Mowbray", "lat": -33.9500, "lng": 18.4667, "population": 9600, "risk": "medium", "type": "residential"},
    # High risk
    {"name": "Khayelitsha", "lat": -34.0333, "lng": 18.6833, "population": 391749, "risk": "high", "type": "residential"},
    {"name": "Gugulethu", "lat": -33.9833, "lng": 18.5833, "population": 98468, "risk": "high", "type": "residential"},
    {"name": "Langa", "lat": -33.9500, "lng": 18.5500, "population": 52401, "risk": "high", "type": "residential"},
    {"name": "Mitchell's Plain", "lat": -34.0500, "lng": 18.6000, "population": 310485, "risk": "high", "type": "residential"},
    {"name": "Philippi", "lat": -34.0000, "lng": 18.5333, "population": 191749, "risk": "high", "type": "residential"},
]

# ─────────────────────────── Crime patterns ─────────────────────
# base_rate: incidents per subtype per 10k residents over six months.

CRIME_PATTERNS: dict[str, dict] = {
    "violent": {
        "subtypes": ["assault", "robbery", "hijacking", "murder", "sexual_offense"],
        "severity_range": (6, 10),
        "base_rate": 25,
        # Evening/night heavy
        "time_pattern": [
            0.08, 0.06, 0.05, 0.04, 0.03, 0.03, 0.04, 0.05, 0.06, 0.05, 0.04, 0.04,
            0.05, 0.05, 0.06, 0.07, 0.08, 0.09, 0.10, 0.12, 0.11, 0.10, 0.09, 0.08,
        ],
    },
    "property": {
        "subtypes": ["burglary", "theft", "shoplifting", "vandalism", "fraud"],
        "severity_range": (3, 7),
        "base_rate": 40,
        # Daytime, when residents are away
        "time_pattern": [
            0.02, 0.01, 0.01, 0.01, 0.02, 0.03, 0.05, 0.08, 0.10, 0.12, 0.11, 0.09,
            0.08, 0.07, 0.08, 0.09, 0.08, 0.06, 0.05, 0.04, 0.03, 0.03, 0.02, 0.02,
        ],
    },
    "petty": {
        "subtypes": ["pickpocketing", "bag_snatching", "bicycle_theft", "mobile_theft", "begging"],
        "severity_range": (1, 4),
        "base_rate": 35,
        # Commuter hours
        "time_pattern": [
            0.01, 0.01, 0.01, 0.02, 0.03, 0.05, 0.08, 0.12, 0.11, 0.09, 0.07, 0.06,
            0.08, 0.07, 0.06, 0.07, 0.09, 0.11, 0.10, 0.08, 0.05, 0.03, 0.02, 0.01,
        ],
    },
    "vehicular": {
        "subtypes": ["car_theft", "car_breaking", "hijacking", "smash_grab", "traffic_crime"],
        "severity_range": (4, 8),
        "base_rate": 30,
        # Peak traffic
        "time_pattern": [
            0.02, 0.01, 0.01, 0.02, 0.03, 0.05, 0.09, 0.13, 0.12, 0.08, 0.06, 0.05,
            0.06, 0.05, 0.06, 0.08, 0.10, 0.12, 0.11, 0.09, 0.06, 0.04, 0.03, 0.02,
        ],
    },
}

# Incident volume multiplier per generation profile
_PROFILE_MULTIPLIERS = {"low": 0.3, "medium": 1.0, "high": 2.5}

# (floor, span) per indicator: values drawn uniformly in [floor, floor + span)
_ECONOMIC_PROFILES = {
    "low": {
        "averageIncome": (450_000, 200_000),   # R450k-650k
        "unemploymentRate": (5, 10),           # 5-15%
        "businessDensity": (80, 40),           # 80-120 per km²
        "lightingInfrastructure": (80, 20),    # 80-100%
    },
    "medium": {
        "averageIncome": (250_000, 150_000),
        "unemploymentRate": (15, 15),
        "businessDensity": (40, 30),
        "lightingInfrastructure": (60, 25),
    },
    "high": {
        "averageIncome": (50_000, 100_000),
        "unemploymentRate": (30, 25),
        "businessDensity": (10, 20),
        "lightingInfrastructure": (30, 30),
    },
}

# Draw stream ids. Changing one changes every generated value.
_STREAM_COUNT = 0
_STREAM_SEVERITY = 1
_STREAM_CONFIDENCE = 2
_STREAM_HOUR = 3          # 3..26, one per hour
_STREAM_ECONOMIC = 100


# ─────────────────────────── Deterministic draws ────────────────

_MASK64 = 0xFFFFFFFFFFFFFFFF


def deterministic_variation(seed: int) -> float:
    """Map an integer seed to a float in [0, 1) using the splitmix64 finalizer.

    Same seed, same value, on every platform and interpreter run.
    """
    z = (seed + 0x9E3779B97F4A7C15) & _MASK64
    z = ((z ^ (z >> 30)) * 0xBF58476D1CE4E5B9) & _MASK64
    z = ((z ^ (z >> 27)) * 0x94D049BB133111EB) & _MASK64
    z ^= z >> 31
    return (z >> 11) / float(1 << 53)


def area_seed(name: str) -> int:
    """Stable per-area seed: character codes weighted by 1-based position."""
    return sum((i + 1) * ord(ch) for i, ch in enumerate(name))


def _draw(seed: int, *stream: int) -> float:
    s = seed
    for part in stream:
        s = (s * 1_000_003 + part) & _MASK64
    return deterministic_variation(s)


# ─────────────────────────── Geo helpers ────────────────────────

def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in kilometres (Haversine formula)."""
    R = 6371.0
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)
    a = (math.sin(dlat / 2) ** 2
         + math.cos(math.radians(lat1))
         * math.cos(math.radians(lat2))
         * math.sin(dlng / 2) ** 2)
    a = max(0.0, min(1.0, a))
    return R * 2 * math.atan2(math.sqrt(a), math.sqrt(1.0 - a))


def grid_cell_id(lat: float, lng: float) -> str:
    """Quantize a coordinate into its ~1 km grid cell id (0.01° steps)."""
    lat_idx = math.floor((lat - GRID_ORIGIN_LAT) * GRID_CELLS_PER_DEGREE)
    lng_idx = math.floor((lng - GRID_ORIGIN_LNG) * GRID_CELLS_PER_DEGREE)
    return f"CT_{lat_idx}_{lng_idx}"


def is_within_cape_town(lat: float, lng: float) -> bool:
    return (CAPE_TOWN_BOUNDS["south"] <= lat <= CAPE_TOWN_BOUNDS["north"]
            and CAPE_TOWN_BOUNDS["west"] <= lng <= CAPE_TOWN_BOUNDS["east"])


def normalize_timeframe(timeframe: Optional[str]) -> str:
    """Return a known timeframe key; unknown values fall back to six months."""
    if timeframe in TIMEFRAME_MULTIPLIERS:
        return timeframe
    if timeframe:
        logger.debug(f"Unknown timeframe {timeframe!r}, using {DEFAULT_TIMEFRAME}")
    return DEFAULT_TIMEFRAME


# ─────────────────────────── Record construction ────────────────

def _slug(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", name.lower()).strip("_")


def _build_statistics(area: dict, seed: int) -> tuple[CrimeStatistic, ...]:
    stats: list[CrimeStatistic] = []
    profile_mult = _PROFILE_MULTIPLIERS[area["risk"]]
    index = 0

    for crime_type, pattern in CRIME_PATTERNS.items():
        lo, hi = pattern["severity_range"]
        base = area["population"] / 10_000 * profile_mult * pattern["base_rate"]

        for subtype in pattern["subtypes"]:
            count = int(round(base * (0.5 + _draw(seed, index, _STREAM_COUNT))))

            severity = lo + int(_draw(seed, index, _STREAM_SEVERITY) * (hi - lo + 1))
            severity = max(lo, min(hi, severity))

            # ±20% per-hour perturbation, then renormalize to a distribution
            perturbed = [
                max(0.01, p * (0.8 + 0.4 * _draw(seed, index, _STREAM_HOUR + hour)))
                for hour, p in enumerate(pattern["time_pattern"])
            ]
            total = sum(perturbed)
            time_pattern = tuple(p / total for p in perturbed)

            confidence = round(75 + _draw(seed, index, _STREAM_CONFIDENCE) * 20, 1)

            stats.append(CrimeStatistic(
                type=crime_type,
                subtype=subtype,
                incidentCount=max(0, count),
                severity=severity,
                timePattern=time_pattern,
                confidence=confidence,
            ))
            index += 1

    return tuple(stats)


def _build_economics(risk: str, seed: int) -> EconomicIndicators:
    values = {}
    for k, (field, (floor, span)) in enumerate(_ECONOMIC_PROFILES[risk].items()):
        values[field] = round(floor + _draw(seed, _STREAM_ECONOMIC, k) * span, 2)
    return EconomicIndicators(**values)


def _build_record(area: dict, reference: datetime) -> CrimeRecord:
    seed = area_seed(area["name"])
    grid = grid_cell_id(area["lat"], area["lng"])
    days = TIMEFRAME_DAYS[DEFAULT_TIMEFRAME]

    return CrimeRecord(
        id=f"crime_{grid}_{_slug(area['name'])}",
        location=Location(
            latitude=area["lat"],
            longitude=area["lng"],
            address=f"{area['name']}, Cape Town",
            neighborhood=area["name"],
            type=area["type"],
        ),
        gridCell=grid,
        timeframe=DateRange(start=reference - timedelta(days=days), end=reference),
        crimeStats=_build_statistics(area, seed),
        riskLevel=area["risk"],
        populationDensity=area["population"],
        economicIndicators=_build_economics(area["risk"], seed),
        lastUpdated=reference,
        dataSource="synthetic",
    )


def apply_timeframe(dataset, timeframe: str) -> tuple[CrimeRecord, ...]:
    """Rescale six-month incident counts to another window.

    Returns new records; the input records are left untouched.
    """
    timeframe = normalize_timeframe(timeframe)
    mult = TIMEFRAME_MULTIPLIERS[timeframe]
    days = TIMEFRAME_DAYS[timeframe]

    rescaled = []
    for record in dataset:
        stats = tuple(
            s.model_copy(update={"incidentCount": int(round(s.incidentCount * mult))})
            for s in record.crimeStats
        )
        end = record.timeframe.end
        rescaled.append(record.model_copy(update={
            "crimeStats": stats,
            "timeframe": DateRange(start=end - timedelta(days=days), end=end),
        }))
    return tuple(rescaled)


@cached(cache=LRUCache(maxsize=16), lock=threading.Lock())
def _build_dataset(reference_date: date, timeframe: str) -> tuple[CrimeRecord, ...]:
    reference = datetime.combine(reference_date, time.min)
    base = tuple(_build_record(area, reference) for area in CAPE_TOWN_AREAS)
    if timeframe == DEFAULT_TIMEFRAME:
        return base
    return apply_timeframe(base, timeframe)


# ─────────────────────────── Generator ──────────────────────────

class CrimeDataGenerator:
    """Synthetic dataset for the configured Cape Town areas.

    Pure over the static area table: results depend only on the reference
    date and timeframe, and are memoized per that pair.
    """

    def __init__(self, reference_date: Optional[date] = None):
        self.reference_date = reference_date or date.today()

    @property
    def areas(self) -> list[dict]:
        return list(CAPE_TOWN_AREAS)

    def generate(
        self,
        reference_date: Optional[date] = None,
        timeframe: str = DEFAULT_TIMEFRAME,
    ) -> tuple[CrimeRecord, ...]:
        """Generate (or reuse) the dataset for ``reference_date``."""
        return _build_dataset(reference_date or self.reference_date, normalize_timeframe(timeframe))

    @staticmethod
    def apply_timeframe(dataset, timeframe: str) -> tuple[CrimeRecord, ...]:
        return apply_timeframe(dataset, timeframe)

    @staticmethod
    def calculate_trend(record: CrimeRecord, timeframe: str = DEFAULT_TIMEFRAME) -> Trend:
        """Compare a six-month record against its risk level's baseline average.

        Both sides are rescaled to ``timeframe`` before comparing.
        """
        timeframe = normalize_timeframe(timeframe)
        mult = TIMEFRAME_MULTIPLIERS[timeframe]
        total = sum(int(round(s.incidentCount * mult)) for s in record.crimeStats)
        baseline = TREND_BASELINES[record.riskLevel] * mult

        change = (total - baseline) / baseline * 100 if baseline > 0 else 0.0
        if change <= TREND_IMPROVING_PCT:
            direction = "improving"
        elif change >= TREND_WORSENING_PCT:
            direction = "worsening"
        else:
            direction = "stable"

        return Trend(
            direction=direction,
            changePercent=round(change, 1),
            totalIncidents=total,
            baseline=round(baseline, 1),
            timeframe=timeframe,
        )

    # ── Queries ──

    def get_by_area(self, area: str) -> Optional[CrimeRecord]:
        query = unquote(area or "").strip().lower()
        if not query:
            return None
        for record in self.generate():
            if (query in (record.location.neighborhood or "").lower()
                    or query in (record.location.address or "").lower()):
                return record
        return None

    def get_by_grid_id(self, grid_id: str) -> Optional[CrimeRecord]:
        for record in self.generate():
            if record.gridCell == grid_id:
                return record
        return None

    def get_by_coordinates(self, lat: float, lng: float, radius_km: float = 1.0) -> list[CrimeRecord]:
        return [
            r for r in self.generate()
            if haversine_km(lat, lng, r.location.latitude, r.location.longitude) <= radius_km
        ]

    def get_area_risk_level(self, lat: float, lng: float) -> str:
        """Risk level of the closest configured area."""
        closest = min(CAPE_TOWN_AREAS, key=lambda a: haversine_km(lat, lng, a["lat"], a["lng"]))
        return closest["risk"]

    @staticmethod
    def is_within_bounds(lat: float, lng: float) -> bool:
        return is_within_cape_town(lat, lng)
