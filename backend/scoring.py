"""SafeRoute Backend — Safety Scoring Engine

Composite score:
    overall = 0.4·crimeRisk + 0.3·timeFactor + 0.2·populationDensity + 0.1·lightingLevel

Components are computed from the first crime record in the location's grid
cell. Any component without data falls back to a fixed default instead of
failing the request.
"""

import logging
import math
import threading
import time
import uuid
from datetime import datetime
from typing import Callable, Optional

from cache import ScoreCache, location_key
from config import (
    CACHE_TTL_SECONDS,
    IMPACT_NEUTRAL_MIN,
    IMPACT_POSITIVE_MIN,
    ISOLATED_POPULATION_BELOW,
    MAX_HIGH_RISK_SEGMENTS,
    MAX_INCIDENTS_FOR_AREA,
    POOR_LIGHTING_BELOW,
    POOR_LIGHTING_SEGMENT_SHARE,
    REFRESH_INTERVAL_SECONDS,
    RISK_MULTIPLIERS,
    SCORE_WEIGHTS,
    SEGMENT_CRITICAL_BELOW,
    SEGMENT_HIGH_RISK_BELOW,
    SEGMENT_SAFE_MIN,
)
from crime_data import CrimeDataService
from environment import (
    EnvironmentProvider,
    EnvironmentSimulator,
    describe_conditions,
    environmental_adjustment,
)
from errors import InvalidInputError, SafeRouteError, ScoringComputationError
from models import (
    CrimeRecord,
    Location,
    Route,
    RouteAnalysis,
    RouteCharacteristics,
    RouteSegment,
    SafetyAlert,
    SafetyFactor,
    SafetyRecommendation,
    SafetyScore,
    ScoreLocationResult,
    ScoringFactors,
    ScoringMetadata,
    SegmentAnalysis,
    SegmentRiskFactor,
    TimeContext,
    UserContext,
)

logger = logging.getLogger("saferoute.scoring")

DEFAULT_CRIME_SCORE = 70
DEFAULT_TIME_SCORE = 80
DEFAULT_POPULATION_SCORE = 70
DEFAULT_LIGHTING_SCORE = 80

ENVIRONMENT_FACTOR_WEIGHT = 0.05
ENVIRONMENT_FACTOR_MIN_ADJUSTMENT = 2

CITY_CENTER = Location(latitude=-33.9249, longitude=18.4241, address="Cape Town City Center")

_FACTOR_DESCRIPTIONS = {
    "time": "Time-based safety factor",
    "population": "Area activity and population density",
    "lighting": "Street lighting and visibility",
}


# ─────────────────────────── Helpers ────────────────────────────

def round_half_up(value: float) -> int:
    """Round halves up: 50.5 -> 51, 60.5 -> 61."""
    return int(math.floor(value + 0.5))


def clamp_score(value: float) -> int:
    return max(0, min(100, round_half_up(value)))


def impact_for(value: float) -> str:
    if value >= IMPACT_POSITIVE_MIN:
        return "positive"
    if value >= IMPACT_NEUTRAL_MIN:
        return "neutral"
    return "negative"


def weighted_overall(crime: float, time_factor: float, population: float, lighting: float) -> float:
    return (crime * SCORE_WEIGHTS["crime"]
            + time_factor * SCORE_WEIGHTS["time"]
            + population * SCORE_WEIGHTS["population"]
            + lighting * SCORE_WEIGHTS["lighting"])


def composite_overall(crime: int, time_factor: int, population: int, lighting: int) -> int:
    return clamp_score(weighted_overall(crime, time_factor, population, lighting))


def _is_night(hour: int) -> bool:
    return hour >= 22 or hour < 6


def _naive(dt: datetime) -> datetime:
    return dt.replace(tzinfo=None) if dt.tzinfo is not None else dt


def midpoint(start: Location, end: Location) -> Location:
    return Location(
        latitude=(start.latitude + end.latitude) / 2,
        longitude=(start.longitude + end.longitude) / 2,
        address=f"Midpoint between {start.address or 'start'} and {end.address or 'end'}",
    )


def validate_location(location: Location) -> None:
    """Reject coordinates that can't be scored at all (NaN, off the globe)."""
    lat, lng = location.latitude, location.longitude
    errors = []
    if math.isnan(lat) or math.isnan(lng):
        errors.append("Coordinates cannot be NaN values")
    else:
        if not -90 <= lat <= 90:
            errors.append("Latitude must be between -90 and 90 degrees")
        if not -180 <= lng <= 180:
            errors.append("Longitude must be between -180 and 180 degrees")
    if errors:
        raise InvalidInputError(
            "; ".join(errors),
            details={"latitude": lat, "longitude": lng, "errors": errors},
        )


# ─────────────────────────── Components ─────────────────────────

def crime_risk_score(record: Optional[CrimeRecord], travel_mode: Optional[str] = None) -> int:
    if record is None:
        return DEFAULT_CRIME_SCORE

    total = sum(s.incidentCount for s in record.crimeStats)
    base = max(0.0, 100 - min(100.0, total / MAX_INCIDENTS_FOR_AREA * 100))
    score = base * RISK_MULTIPLIERS[record.riskLevel]

    types = {s.type for s in record.crimeStats}
    if travel_mode == "walking" and "petty" in types:
        score -= 15
    elif travel_mode == "driving" and "vehicular" in types:
        score -= 10

    return clamp_score(score)


def night_crime_probability(record: CrimeRecord) -> float:
    """Mean share of each crime type's incidents falling in 22:00–06:00."""
    if not record.crimeStats:
        return 0.0
    total = sum(
        sum(p for hour, p in enumerate(s.timePattern) if _is_night(hour))
        for s in record.crimeStats
    )
    return total / len(record.crimeStats)


def time_factor_score(now: Optional[datetime], record: Optional[CrimeRecord] = None) -> int:
    if now is None:
        return DEFAULT_TIME_SCORE

    hour = now.hour
    if 6 <= hour < 18:
        score = 90
    elif 18 <= hour < 22:
        score = 75
    elif _is_night(hour):
        score = 50
    else:
        score = 60

    if record is not None and _is_night(hour) and night_crime_probability(record) > 0.3:
        score -= 20

    # Friday/Saturday nights
    if now.weekday() in (4, 5) and hour >= 20:
        score -= 5

    return clamp_score(score)


def population_density_score(record: Optional[CrimeRecord]) -> int:
    if record is None:
        return DEFAULT_POPULATION_SCORE

    density = record.populationDensity
    if density < 1000:
        score = 60
    elif density < 5000:
        score = 85
    elif density < 15000:
        score = 90
    else:
        score = 70

    score += min(20.0, record.economicIndicators.businessDensity * 2)
    return clamp_score(score)


def lighting_score(location: Location, now: Optional[datetime], record: Optional[CrimeRecord] = None) -> int:
    candidates = []
    if location.safetyMetrics is not None and location.safetyMetrics.lightingQuality is not None:
        candidates.append(location.safetyMetrics.lightingQuality)
    if record is not None:
        candidates.append(record.economicIndicators.lightingInfrastructure)
    score = max(candidates) if candidates else DEFAULT_LIGHTING_SCORE

    if now is not None:
        if now.hour >= 19 or now.hour < 6:
            score = min(score, 95)
        else:
            score = max(score, 85)

    return clamp_score(score)


def build_factors(crime: int, time_factor: int, population: int, lighting: int,
                  record: Optional[CrimeRecord]) -> list[SafetyFactor]:
    risk = record.riskLevel if record is not None else "moderate"
    return [
        SafetyFactor(type="crime", impact=impact_for(crime), weight=SCORE_WEIGHTS["crime"],
                     description=f"Crime risk level: {risk}", value=crime),
        SafetyFactor(type="time", impact=impact_for(time_factor), weight=SCORE_WEIGHTS["time"],
                     description=_FACTOR_DESCRIPTIONS["time"], value=time_factor),
        SafetyFactor(type="population", impact=impact_for(population), weight=SCORE_WEIGHTS["population"],
                     description=_FACTOR_DESCRIPTIONS["population"], value=population),
        SafetyFactor(type="lighting", impact=impact_for(lighting), weight=SCORE_WEIGHTS["lighting"],
                     description=_FACTOR_DESCRIPTIONS["lighting"], value=lighting),
    ]


def confidence_level(record: Optional[CrimeRecord], factors: list[SafetyFactor], now: datetime) -> int:
    confidence = 70.0

    if record is not None and record.crimeStats:
        mean = sum(s.confidence for s in record.crimeStats) / len(record.crimeStats)
        confidence = max(confidence, mean)

        age_days = (_naive(now) - _naive(record.lastUpdated)).total_seconds() / 86400
        if age_days > 30:
            confidence -= 10
        if age_days > 90:
            confidence -= 20

    if factors:
        confidence *= sum(1 for f in factors if f.value > 0) / len(factors)

    return clamp_score(confidence)


def safety_explanation(overall: int, factors: list[SafetyFactor], record: Optional[CrimeRecord]) -> str:
    if overall >= 80:
        text = "This area shows good safety indicators"
    elif overall >= 60:
        text = "This area has moderate safety with some concerns"
    elif overall >= 40:
        text = "This area has notable safety risks that require attention"
    else:
        text = "This area has significant safety concerns"

    positive = [f for f in factors if f.impact == "positive"]
    negative = [f for f in factors if f.impact == "negative"]
    if positive:
        top = max(positive, key=lambda f: f.value)
        text += f". Positive factors include {top.description.lower()}"
    if negative:
        worst = min(negative, key=lambda f: f.value)
        text += f". Main concerns are {worst.description.lower()}"

    if record is not None and record.riskLevel in ("high", "critical"):
        text += ". This area has elevated crime statistics"

    return text + "."


def recommendations_for(score: SafetyScore, record: Optional[CrimeRecord],
                        time_context: Optional[TimeContext]) -> list[SafetyRecommendation]:
    recs = []
    if score.overall < 40:
        recs.append(SafetyRecommendation(
            type="route_change", priority="high",
            description="Consider an alternative route with better safety ratings",
            estimatedImprovement=30,
        ))
    if score.timeFactor < 50 and time_context is not None:
        recs.append(SafetyRecommendation(
            type="time_change", priority="medium",
            description="Travel during daylight hours for improved safety",
            estimatedImprovement=25,
        ))
    if score.lightingLevel < 40:
        recs.append(SafetyRecommendation(
            type="precaution", priority="medium",
            description="Use additional lighting (flashlight/phone) in poorly lit areas",
            estimatedImprovement=15,
        ))
    if record is not None and record.riskLevel == "critical":
        recs.append(SafetyRecommendation(
            type="alert_contact", priority="critical",
            description="Share location with trusted contacts and avoid travel alone",
            estimatedImprovement=20,
        ))
    return recs


def _alert(kind: str, severity: str, message: str, location: Location, now: datetime) -> SafetyAlert:
    return SafetyAlert(
        id=f"alert-{uuid.uuid4().hex[:12]}",
        type=kind,
        severity=severity,
        message=message,
        location=location,
        timestamp=now,
    )


def alerts_for(score: SafetyScore, location: Location, now: datetime) -> list[SafetyAlert]:
    alerts = []
    if score.overall < 30:
        alerts.append(_alert("high_crime_area", "critical",
                             "High crime area detected - exercise extreme caution", location, now))
    if score.lightingLevel < 30:
        alerts.append(_alert("poor_lighting", "warning",
                             "Poor lighting conditions - consider alternative timing or route", location, now))
    return alerts


# ─────────────────────────── Routes ─────────────────────────────

def apply_route_characteristics(score: SafetyScore, characteristics: RouteCharacteristics,
                                segment: RouteSegment) -> SafetyScore:
    """Bias a segment score by route preferences and the segment's road/lighting."""
    crime = clamp_score(score.crimeRisk + characteristics.safetyBias)
    lighting = clamp_score(score.lightingLevel + characteristics.lightingBias)
    population = clamp_score(score.populationDensity + characteristics.populationBias)

    if segment.roadType == "highway":
        population = clamp_score(population - 5)
    elif segment.roadType == "local":
        population = clamp_score(population + 8)
        lighting = clamp_score(lighting + 5)

    if segment.lightingLevel == "high":
        lighting = clamp_score(lighting + 10)
    elif segment.lightingLevel == "low":
        lighting = clamp_score(lighting - 10)

    values = {"crime": crime, "time": score.timeFactor, "population": population, "lighting": lighting}
    factors = [
        f.model_copy(update={"value": values[f.type], "impact": impact_for(values[f.type])})
        if f.type in values else f
        for f in score.factors
    ]
    route_type = characteristics.routeType or "standard"

    return score.model_copy(update={
        "crimeRisk": crime,
        "populationDensity": population,
        "lightingLevel": lighting,
        "overall": composite_overall(crime, score.timeFactor, population, lighting),
        "factors": factors,
        "explanation": f"{route_type.capitalize()} route characteristics applied. {score.explanation}",
    })


def _segment_description(segment: RouteSegment) -> str:
    address = segment.endLocation.address or segment.startLocation.address
    if address:
        return address
    neighborhood = segment.endLocation.neighborhood or segment.startLocation.neighborhood
    if neighborhood:
        return f"{neighborhood} area"
    return f"{segment.roadType} section"


def route_explanation(segments: list[RouteSegment], now: datetime) -> str:
    scores = [s.safetyScore for s in segments]
    n = len(scores)
    avg_safety = sum(s.overall for s in scores) / n
    avg_crime = sum(s.crimeRisk for s in scores) / n
    avg_lighting = sum(s.lightingLevel for s in scores) / n
    avg_population = sum(s.populationDensity for s in scores) / n

    text = f"This route spans {n} segments with an average safety score of {round_half_up(avg_safety)}/100. "
    if avg_safety >= 75:
        text += "Generally considered a safe route"
    elif avg_safety >= 60:
        text += "Moderate safety levels with some areas requiring attention"
    elif avg_safety >= 40:
        text += "Mixed safety conditions - exercise caution"
    else:
        text += "Multiple safety concerns identified - consider alternative routes"

    high_risk = sum(1 for s in scores if s.overall < SEGMENT_HIGH_RISK_BELOW)
    safe = sum(1 for s in scores if s.overall >= SEGMENT_SAFE_MIN)
    if high_risk:
        text += f". {high_risk} segment{'s' if high_risk > 1 else ''} identified as high-risk"
    if safe:
        text += f". {safe} segment{'s are' if safe > 1 else ' is'} well-lit and populated"

    concerns = []
    if avg_crime < 50:
        concerns.append("elevated crime risk")
    if avg_lighting < 50:
        concerns.append("poor lighting conditions")
    if avg_population < 40:
        concerns.append("isolated areas with low foot traffic")
    if concerns:
        text += f". Main concerns: {', '.join(concerns)}"

    riskiest = min(segments, key=lambda s: s.safetyScore.overall)
    if riskiest.safetyScore.overall < 50:
        text += (f". Most cautious area: {_segment_description(riskiest)} "
                 f"(safety score: {riskiest.safetyScore.overall}/100)")

    if avg_lighting < 60 and (now.hour >= 19 or now.hour <= 6):
        text += ". Recommend daytime travel due to lighting concerns"

    road_types = {s.roadType for s in segments}
    if "highway" in road_types and "residential" in road_types:
        text += ". Route includes both highway and residential sections"
    elif "highway" in road_types:
        text += ". Primarily highway route with good visibility"
    elif "residential" in road_types:
        text += ". Route through residential areas with variable lighting"

    return text + "."


def aggregate_route_factors(segments: list[RouteSegment]) -> list[SafetyFactor]:
    aggregated = []
    for kind in ("crime", "time", "population", "lighting"):
        relevant = [f for s in segments for f in s.safetyScore.factors if f.type == kind]
        if not relevant:
            continue
        value = sum(f.value for f in relevant) / len(relevant)
        aggregated.append(SafetyFactor(
            type=kind,
            impact=impact_for(value),
            weight=sum(f.weight for f in relevant) / len(relevant),
            description=f"Route average {kind} factor",
            value=round_half_up(value),
        ))
    return aggregated


def aggregate_route_score(segments: list[RouteSegment], now: datetime) -> SafetyScore:
    """Distance-weighted overall; plain means for the other components."""
    scores = [s.safetyScore for s in segments]
    n = len(scores)
    total_distance = sum(s.distance for s in segments)

    if total_distance > 0:
        overall = sum(s.safetyScore.overall * s.distance for s in segments) / total_distance
    else:
        overall = sum(s.overall for s in scores) / n

    def mean(attr: str) -> int:
        return round_half_up(sum(getattr(s, attr) for s in scores) / n)

    return SafetyScore(
        overall=clamp_score(overall),
        crimeRisk=mean("crimeRisk"),
        timeFactor=mean("timeFactor"),
        populationDensity=mean("populationDensity"),
        lightingLevel=mean("lightingLevel"),
        historicalIncidents=sum(s.historicalIncidents for s in scores),
        confidenceLevel=mean("confidenceLevel"),
        explanation=route_explanation(segments, now),
        lastCalculated=now,
        factors=aggregate_route_factors(segments),
    )


# ─────────────────────────── Route analysis ─────────────────────

_HOTSPOT_ADVICE = [
    "Stay alert and avoid walking alone",
    "Keep valuables secure and out of sight",
    "Use well-lit and populated routes when possible",
]
_LIGHTING_ADVICE = [
    "Carry flashlight or use phone light",
    "Travel during daylight hours if possible",
    "Wear reflective or bright colored clothing",
]
_ISOLATION_ADVICE = [
    "Share location with trusted contacts",
    "Consider traveling with others",
    "Have emergency contacts readily available",
]
_TRAFFIC_ADVICE = [
    "Stay aware of traffic conditions",
    "Use designated crossings only",
    "Keep away from road edge when possible",
]
_LATE_NIGHT_ADVICE = [
    "Consider postponing travel to daylight hours",
    "Travel in groups when possible",
    "Stay in well-lit, populated areas",
]


def segment_risk_factors(segment: RouteSegment, records: list[CrimeRecord],
                         now: Optional[datetime] = None) -> list[SegmentRiskFactor]:
    """List the concrete hazards on a scored segment.

    ``records`` are the crime records around the segment midpoint; every
    high or critical one becomes a hotspot. ``now`` enables the late-night check.
    """
    score = segment.safetyScore
    centre = midpoint(segment.startLocation, segment.endLocation)
    factors = []

    for record in records:
        if record.riskLevel not in ("high", "critical"):
            continue
        crime_types = ", ".join(dict.fromkeys(s.type for s in record.crimeStats))
        factors.append(SegmentRiskFactor(
            type="crime_hotspot",
            severity="critical" if record.riskLevel == "critical" else "high",
            location=record.location,
            description=f"High crime area: {crime_types}",
            mitigationSuggestions=_HOTSPOT_ADVICE,
            timeRelevant=True,
        ))

    if score.lightingLevel < POOR_LIGHTING_BELOW:
        factors.append(SegmentRiskFactor(
            type="poor_visibility",
            severity="high" if score.lightingLevel < 20 else "medium",
            location=centre,
            description=f"Poor lighting conditions ({score.lightingLevel}/100)",
            mitigationSuggestions=_LIGHTING_ADVICE,
            timeRelevant=True,
        ))

    if score.populationDensity < ISOLATED_POPULATION_BELOW:
        factors.append(SegmentRiskFactor(
            type="isolated_area",
            severity="high" if score.populationDensity < 15 else "medium",
            location=centre,
            description="Low population density area with limited foot traffic",
            mitigationSuggestions=_ISOLATION_ADVICE,
            timeRelevant=False,
        ))

    if segment.roadType == "highway" and score.overall < 60:
        factors.append(SegmentRiskFactor(
            type="high_traffic",
            severity="medium",
            location=segment.startLocation,
            description="High-speed traffic area with safety concerns",
            mitigationSuggestions=_TRAFFIC_ADVICE,
            timeRelevant=True,
        ))

    if now is not None and (now.hour >= 22 or now.hour <= 5) and score.timeFactor < 50:
        factors.append(SegmentRiskFactor(
            type="poor_visibility",
            severity="high" if score.timeFactor < 30 else "medium",
            location=centre,
            description="Late night/early morning travel with reduced safety",
            mitigationSuggestions=_LATE_NIGHT_ADVICE,
            timeRelevant=True,
        ))

    return factors


def identify_high_risk_segments(analyses: list[SegmentAnalysis],
                                max_segments: int = MAX_HIGH_RISK_SEGMENTS) -> list[SegmentAnalysis]:
    """Riskiest segments first, only those below the high-risk band."""
    ranked = sorted(analyses, key=lambda a: a.segment.safetyScore.overall)
    risky = [a for a in ranked if a.segment.safetyScore.overall < SEGMENT_HIGH_RISK_BELOW]
    return risky[:max_segments]


def route_recommendations(analyses: list[SegmentAnalysis],
                          now: Optional[datetime] = None) -> list[SafetyRecommendation]:
    recs = []
    n = len(analyses)

    critical = sum(1 for a in analyses if a.segment.safetyScore.overall < SEGMENT_CRITICAL_BELOW)
    if critical:
        recs.append(SafetyRecommendation(
            type="route_change", priority="critical",
            description=f"Route contains {critical} segment(s) with critical safety concerns",
            estimatedImprovement=40,
        ))

    time_sensitive = sum(1 for a in analyses if any(f.timeRelevant for f in a.riskFactors))
    if time_sensitive > 2 and now is not None and (now.hour >= 19 or now.hour <= 6):
        recs.append(SafetyRecommendation(
            type="time_change", priority="medium",
            description="Consider travelling during daylight hours for improved safety",
            estimatedImprovement=20,
        ))

    dark = sum(1 for a in analyses if a.segment.safetyScore.lightingLevel < POOR_LIGHTING_BELOW)
    if dark > n * POOR_LIGHTING_SEGMENT_SHARE:
        recs.append(SafetyRecommendation(
            type="precaution", priority="medium",
            description="Route includes areas with poor lighting - carry additional lighting",
            estimatedImprovement=15,
        ))

    if any(f.type == "isolated_area" for a in analyses for f in a.riskFactors):
        recs.append(SafetyRecommendation(
            type="alert_contact", priority="high",
            description="Share location with trusted contacts when travelling through isolated areas",
            estimatedImprovement=25,
        ))

    return recs


# ─────────────────────────── Engine ─────────────────────────────

class SafetyScoringEngine:
    """Scores locations and routes, and serves cached real-time scores.

    Owns a TTL score cache and a background thread that keeps the
    time-sensitive part of live cache entries current. Call ``start()`` to
    run the refresh thread and ``stop()`` to join it.
    """

    def __init__(
        self,
        crime_data: Optional[CrimeDataService] = None,
        environment: Optional[EnvironmentProvider] = None,
        clock: Optional[Callable[[], datetime]] = None,
        cache_ttl_seconds: int = CACHE_TTL_SECONDS,
        refresh_interval_seconds: float = REFRESH_INTERVAL_SECONDS,
    ):
        self.crime_data = crime_data or CrimeDataService()
        self.environment = environment or EnvironmentSimulator()
        self.clock = clock or datetime.now
        self.cache = ScoreCache(ttl_seconds=cache_ttl_seconds, clock=self.clock)
        self.refresh_interval = refresh_interval_seconds

        self._worker: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._worker_lock = threading.Lock()

    # ── Data access ──

    def _record_for(self, location: Location) -> Optional[CrimeRecord]:
        records = self.crime_data.get_by_location(location)
        return records[0] if records else None

    def _compute(self, location: Location, now: Optional[datetime], record: Optional[CrimeRecord],
                 travel_mode: Optional[str] = None) -> SafetyScore:
        crime = crime_risk_score(record, travel_mode)
        time_factor = time_factor_score(now, record)
        population = population_density_score(record)
        lighting = lighting_score(location, now, record)

        overall = composite_overall(crime, time_factor, population, lighting)
        factors = build_factors(crime, time_factor, population, lighting, record)

        return SafetyScore(
            overall=overall,
            crimeRisk=crime,
            timeFactor=time_factor,
            populationDensity=population,
            lightingLevel=lighting,
            historicalIncidents=sum(s.incidentCount for s in record.crimeStats) if record else 0,
            confidenceLevel=confidence_level(record, factors, self.clock()),
            explanation=safety_explanation(overall, factors, record),
            lastCalculated=self.clock(),
            factors=factors,
        )

    def _apply_real_time(self, score: SafetyScore, location: Location, now: datetime,
                         recompute_time: bool = True) -> SafetyScore:
        """Recompute the time factor at ``now`` and layer the environmental adjustment on top.

        Crime, population and lighting components are reused as-is.
        """
        record = self._record_for(location)
        time_factor = time_factor_score(now, record) if recompute_time else score.timeFactor
        conditions = self.environment.current(location, now)
        adjustment = environmental_adjustment(conditions)

        factors = []
        for f in score.factors:
            if f.type == "environment":
                continue
            if f.type == "time":
                f = f.model_copy(update={
                    "value": time_factor,
                    "impact": impact_for(time_factor),
                    "description": f"Current time safety factor ({now:%H:%M})",
                })
            factors.append(f)
        if abs(adjustment) > ENVIRONMENT_FACTOR_MIN_ADJUSTMENT:
            factors.append(SafetyFactor(
                type="environment",
                impact="positive" if adjustment > 0 else "negative",
                weight=ENVIRONMENT_FACTOR_WEIGHT,
                description="Current environmental conditions",
                value=clamp_score(50 + adjustment * 10),
            ))

        base = weighted_overall(score.crimeRisk, time_factor, score.populationDensity, score.lightingLevel)
        explanation = safety_explanation(
            clamp_score(base), [f for f in factors if f.type != "environment"], record,
        )
        time_change = time_factor - score.timeFactor
        if time_change > 5:
            explanation += " Current time conditions have improved safety."
        elif time_change < -5:
            explanation += " Current time conditions have reduced safety."
        notes = describe_conditions(conditions)
        if notes:
            explanation += " " + notes

        return score.model_copy(update={
            "overall": clamp_score(base + adjustment),
            "timeFactor": time_factor,
            "factors": factors,
            "explanation": explanation,
            "lastCalculated": self.clock(),
        })

    # ── Public operations ──

    def score_location(
        self,
        location: Location,
        time_context: Optional[TimeContext] = None,
        factors: Optional[ScoringFactors] = None,
        user_context: Optional[UserContext] = None,
    ) -> ScoreLocationResult:
        validate_location(location)
        factors = factors or ScoringFactors()
        started = time.perf_counter()

        try:
            record = self._record_for(location) if factors.includeCrimeData else None
            now = time_context.currentTime if time_context else None
            travel_mode = user_context.travelMode if user_context else None

            score = self._compute(location, now, record, travel_mode)
            if factors.includeEnvironmental:
                score = self._apply_real_time(score, location, now or self.clock(),
                                              recompute_time=now is not None)

            recommendations = recommendations_for(score, record, time_context)
            alerts = alerts_for(score, location, self.clock())
        except SafeRouteError:
            raise
        except Exception as e:
            logger.error(f"Scoring failed at ({location.latitude}, {location.longitude}): {e}")
            raise ScoringComputationError(
                f"Safety calculation failed: {e}",
                details={"latitude": location.latitude, "longitude": location.longitude, "reason": str(e)},
            ) from e

        stats = record.crimeStats if record else ()
        metadata = ScoringMetadata(
            calculationTimeMs=round((time.perf_counter() - started) * 1000, 3),
            dataSourcesUsed=[record.dataSource if record else "synthetic"],
            confidenceFactors={
                "crimeData": stats[0].confidence if stats else 85,
                "timeAnalysis": 90 if time_context else 70,
                "locationData": 95 if location.address else 80,
            },
        )
        return ScoreLocationResult(
            safetyScore=score,
            recommendations=recommendations,
            alerts=alerts,
            metadata=metadata,
        )

    def score_route(
        self,
        route: Route,
        time_context: Optional[TimeContext] = None,
        characteristics: Optional[RouteCharacteristics] = None,
    ) -> Route:
        if not route.segments:
            raise InvalidInputError("Route must contain at least one segment", details={"routeId": route.id})

        scored = []
        for segment in route.segments:
            result = self.score_location(
                midpoint(segment.startLocation, segment.endLocation),
                time_context,
                ScoringFactors(includeCrimeData=True, includeHistorical=True),
            )
            score = result.safetyScore
            if characteristics is not None:
                score = apply_route_characteristics(score, characteristics, segment)
            scored.append(segment.model_copy(update={"safetyScore": score}))

        now = self.clock()
        try:
            route_score = aggregate_route_score(scored, now)
        except Exception as e:
            logger.error(f"Route aggregation failed for {route.id}: {e}")
            raise ScoringComputationError(
                f"Route aggregation failed: {e}",
                details={"routeId": route.id, "reason": str(e)},
            ) from e

        logger.debug(f"Scored route {route.id}: {len(scored)} segments, overall {route_score.overall}")
        return route.model_copy(update={
            "safetyScore": route_score,
            "segments": scored,
            "lastUpdated": now,
        })

    def analyze_route(
        self,
        route: Route,
        time_context: Optional[TimeContext] = None,
        characteristics: Optional[RouteCharacteristics] = None,
        max_segments: int = MAX_HIGH_RISK_SEGMENTS,
    ) -> RouteAnalysis:
        """Score a route, then flag its riskiest segments and suggest route-level changes."""
        scored = self.score_route(route, time_context, characteristics)
        now = time_context.currentTime if time_context else None

        analyses = []
        for segment in scored.segments:
            records = self.crime_data.get_by_location(midpoint(segment.startLocation, segment.endLocation))
            analyses.append(SegmentAnalysis(
                segment=segment,
                riskFactors=segment_risk_factors(segment, records, now),
            ))

        return RouteAnalysis(
            route=scored,
            segments=analyses,
            highRiskSegments=identify_high_risk_segments(analyses, max_segments),
            recommendations=route_recommendations(analyses, now),
        )

    def get_real_time_score(
        self,
        location: Location,
        time_context: Optional[TimeContext] = None,
        force_refresh: bool = False,
    ) -> SafetyScore:
        validate_location(location)
        now = (time_context.currentTime if time_context and time_context.currentTime else None) or self.clock()
        key = location_key(location)

        try:
            entry = None if force_refresh else self.cache.get(key)
            if entry is not None:
                return self._apply_real_time(entry.score, entry.location, now)

            record = self._record_for(location)
            score = self._apply_real_time(self._compute(location, now, record), location, now)
        except SafeRouteError:
            raise
        except Exception as e:
            logger.error(f"Real-time scoring failed at ({location.latitude}, {location.longitude}): {e}")
            raise ScoringComputationError(
                f"Real-time safety calculation failed: {e}",
                details={"latitude": location.latitude, "longitude": location.longitude, "reason": str(e)},
            ) from e

        self.cache.set(key, score, location)
        return score

    def get_alerts(
        self,
        location: Optional[Location] = None,
        radius_km: float = 5.0,
        severity: Optional[str] = None,
    ) -> list[SafetyAlert]:
        """Night-time and nearby high-risk area alerts, or city-wide ones without a location."""
        now = self.clock()
        alerts: list[SafetyAlert] = []

        if location is not None:
            validate_location(location)
            if now.hour >= 20 or now.hour <= 6:
                alerts.append(_alert("poor_lighting", "warning",
                                     "Reduced visibility during nighttime hours - stay in well-lit areas",
                                     location, now))
            for record in self.crime_data.get_nearby_risky_areas(location, radius_km)[:3]:
                alerts.append(_alert(
                    "high_crime_area",
                    "critical" if record.riskLevel == "critical" else "warning",
                    f"Elevated crime activity reported in {record.location.neighborhood or 'nearby area'}",
                    record.location, now,
                ))
        elif now.hour >= 22 or now.hour <= 5:
            alerts.append(_alert("poor_lighting", "info",
                                 "Late night hours - exercise additional caution when traveling",
                                 CITY_CENTER, now))

        if severity:
            alerts = [a for a in alerts if a.severity == severity]
        return alerts

    # ── Background refresh ──

    def refresh_cached_scores(self) -> int:
        """Evict expired entries and bring the rest up to the current time.

        Returns the number of entries refreshed.
        """
        evicted = self.cache.evict_expired()
        now = self.clock()
        refreshed = 0

        for key, entry in self.cache.snapshot():
            if entry.expired(now):
                continue
            try:
                score = self._apply_real_time(entry.score, entry.location, now)
            except Exception as e:
                logger.warning(f"Could not refresh cached score {key}: {e}")
                continue
            if self.cache.replace(key, entry, score):
                refreshed += 1

        logger.debug(f"Refresh sweep: {refreshed} refreshed, {evicted} evicted")
        return refreshed

    def _refresh_loop(self, stop_event: threading.Event):
        while not stop_event.wait(self.refresh_interval):
            try:
                self.refresh_cached_scores()
            except Exception as e:
                logger.error(f"Refresh sweep failed: {e}")

    def start(self):
        with self._worker_lock:
            if self._worker is not None and self._worker.is_alive():
                return
            self._stop_event = threading.Event()
            self._worker = threading.Thread(
                target=self._refresh_loop,
                args=(self._stop_event,),
                name="saferoute-score-refresh",
                daemon=True,
            )
            self._worker.start()
        logger.info(f"Score refresh worker started (every {self.refresh_interval}s)")

    def stop(self, timeout: Optional[float] = 5.0):
        with self._worker_lock:
            worker, self._worker = self._worker, None
            self._stop_event.set()
        if worker is not None:
            worker.join(timeout)
            logger.info("Score refresh worker stopped")

    @property
    def running(self) -> bool:
        worker = self._worker
        return worker is not None and worker.is_alive()
