"""SafeRoute Backend — Configuration & Constants"""

import os
from datetime import date
from pathlib import Path
from dotenv import load_dotenv

# Load .env from project root (one level up from backend/)
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path)


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    return int(raw) if raw.strip() else default


def _env_date(name: str) -> date | None:
    raw = os.environ.get(name, "").strip()
    return date.fromisoformat(raw) if raw else None


# ── Runtime ──
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
CACHE_TTL_SECONDS = _env_int("SAFEROUTE_CACHE_TTL_SECONDS", 300)            # 5 min
REFRESH_INTERVAL_SECONDS = _env_int("SAFEROUTE_REFRESH_INTERVAL_SECONDS", 30)
REFERENCE_DATE = _env_date("SAFEROUTE_REFERENCE_DATE")                     # None → today
ENV_SEED = _env_int("SAFEROUTE_ENV_SEED", -1)                              # -1 → unseeded

# ── Cape Town metropolitan bounds ──
CAPE_TOWN_BOUNDS = {
    "north": -33.5,
    "south": -34.5,
    "west": 18.0,
    "east": 19.0,
}

# Grid origin for ~1 km cells (0.01°)
GRID_ORIGIN_LAT = -34.5
GRID_ORIGIN_LNG = 18.0
GRID_CELLS_PER_DEGREE = 100

# ── Composite score weights (crime, time, population, lighting) ──
SCORE_WEIGHTS = {
    "crime": 0.4,
    "time": 0.3,
    "population": 0.2,
    "lighting": 0.1,
}

# Crime-risk multiplier applied to the incident-derived base score
RISK_MULTIPLIERS = {"low": 1.0, "medium": 0.8, "high": 0.6, "critical": 0.4}

# Incident count at which the crime-risk base bottoms out
MAX_INCIDENTS_FOR_AREA = 50

# Crime type weights for the weighted risk-level average
CRIME_TYPE_WEIGHTS = {
    "violent": 1.0,
    "vehicular": 0.8,
    "property": 0.6,
    "petty": 0.4,
}
DEFAULT_CRIME_TYPE_WEIGHT = 0.5

# Risk bands over the weighted incident×severity score (hand-tuned)
RISK_BANDS = [
    (30.0, "low"),
    (60.0, "medium"),
    (80.0, "high"),
]
RISK_BAND_CEILING = "critical"

# ── Timeframes ──
DEFAULT_TIMEFRAME = "6months"
TIMEFRAME_MULTIPLIERS = {
    "1month": 1 / 6,
    "3months": 0.5,
    "6months": 1.0,
    "1year": 2.0,
}
TIMEFRAME_DAYS = {
    "1month": 30,
    "3months": 90,
    "6months": 180,
    "1year": 365,
}

# Average 6-month incident totals per risk level (hand-tuned baselines)
TREND_BASELINES = {
    "low": 120.0,
    "medium": 1000.0,
    "high": 30000.0,
    "critical": 60000.0,
}
TREND_IMPROVING_PCT = -7.0
TREND_WORSENING_PCT = 10.0

# ── Score bands used by explanations, recommendations and alerts ──
IMPACT_POSITIVE_MIN = 70
IMPACT_NEUTRAL_MIN = 40
SEGMENT_HIGH_RISK_BELOW = 40
SEGMENT_SAFE_MIN = 70
SEGMENT_CRITICAL_BELOW = 25

# ── Route analysis ──
POOR_LIGHTING_BELOW = 40
ISOLATED_POPULATION_BELOW = 30
POOR_LIGHTING_SEGMENT_SHARE = 0.3
MAX_HIGH_RISK_SEGMENTS = 3
