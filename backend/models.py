"""SafeRoute Backend — Pydantic Models"""

from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, ConfigDict, Field

RiskLevel = Literal["low", "medium", "high", "critical"]
CrimeType = Literal["violent", "property", "petty", "vehicular"]
LocationType = Literal[
    "residential", "commercial", "industrial", "recreational", "transport_hub", "landmark",
]
TravelMode = Literal["driving", "walking", "transit", "cycling"]
Impact = Literal["positive", "negative", "neutral"]
TrendDirection = Literal["improving", "stable", "worsening"]


# ─────────────────────────── Locations ──────────────────────────

class LocationSafetyMetrics(BaseModel):
    model_config = ConfigDict(frozen=True)

    currentRiskLevel: float = 0.0
    historicalIncidents: int = 0
    lightingQuality: Optional[float] = None
    footTraffic: float = 0.0
    emergencyServiceDistance: float = 0.0
    cctvCoverage: bool = False


class Location(BaseModel):
    model_config = ConfigDict(frozen=True)

    latitude: float
    longitude: float
    id: Optional[str] = None
    address: Optional[str] = None
    neighborhood: Optional[str] = None
    type: Optional[LocationType] = None
    safetyMetrics: Optional[LocationSafetyMetrics] = None


class LocationValidation(BaseModel):
    isValid: bool
    withinBounds: bool
    neighborhood: Optional[str] = None
    errors: list[str] = []
    suggestions: list[str] = []
    enrichedLocation: Optional[Location] = None


# ─────────────────────────── Crime data ─────────────────────────
# Records are immutable snapshots shared by reference across callers.

class DateRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime


class CrimeStatistic(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: CrimeType
    subtype: str
    incidentCount: int = Field(ge=0)
    severity: int
    timePattern: tuple[float, ...]  # 24 hourly probabilities, sums to 1.0
    confidence: float = Field(ge=0, le=100)


class EconomicIndicators(BaseModel):
    model_config = ConfigDict(frozen=True)

    averageIncome: float
    unemploymentRate: float  # percent
    businessDensity: float   # businesses per km²
    lightingInfrastructure: float = Field(ge=0, le=100)


class CrimeRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    location: Location
    gridCell: str
    timeframe: DateRange
    crimeStats: tuple[CrimeStatistic, ...]
    riskLevel: RiskLevel
    populationDensity: int
    economicIndicators: EconomicIndicators
    lastUpdated: datetime
    dataSource: Literal["saps", "synthetic", "crowdsourced"] = "synthetic"


class Trend(BaseModel):
    direction: TrendDirection
    changePercent: float
    totalIncidents: int
    baseline: float
    timeframe: str


class AreaRiskSummary(BaseModel):
    area: str
    riskLevel: RiskLevel
    incidentCount: int


# ─────────────────────────── Scoring ────────────────────────────

class SafetyFactor(BaseModel):
    type: Literal["crime", "lighting", "population", "time", "weather", "events", "environment"]
    impact: Impact
    weight: float
    description: str = ""
    value: float


class SafetyScore(BaseModel):
    overall: int = Field(ge=0, le=100)
    crimeRisk: int
    timeFactor: int
    populationDensity: int
    lightingLevel: int
    historicalIncidents: int = 0
    confidenceLevel: int
    explanation: str = ""
    lastCalculated: datetime
    factors: list[SafetyFactor] = []


class TimeContext(BaseModel):
    currentTime: Optional[datetime] = None
    travelDuration: Optional[int] = None  # minutes
    dayOfWeek: Optional[str] = None
    isHoliday: bool = False


class ScoringFactors(BaseModel):
    includeCrimeData: bool = True
    includeEnvironmental: bool = False
    includeRealTime: bool = False
    includeHistorical: bool = True


class UserContext(BaseModel):
    travelMode: Optional[TravelMode] = None
    vulnerabilityFactors: list[str] = []
    riskTolerance: Optional[Literal["low", "medium", "high"]] = None


class SafetyRecommendation(BaseModel):
    type: Literal["route_change", "time_change", "precaution", "alert_contact"]
    priority: Literal["low", "medium", "high", "critical"]
    description: str
    actionable: bool = True
    estimatedImprovement: Optional[int] = None


class SafetyAlert(BaseModel):
    id: str
    type: Literal["high_crime_area", "poor_lighting", "route_deviation", "emergency"]
    severity: Literal["info", "warning", "critical"]
    message: str
    location: Location
    timestamp: datetime
    acknowledged: bool = False


class ScoringMetadata(BaseModel):
    calculationTimeMs: float
    dataSourcesUsed: list[str]
    confidenceFactors: dict[str, float]


class ScoreLocationResult(BaseModel):
    safetyScore: SafetyScore
    recommendations: list[SafetyRecommendation] = []
    alerts: list[SafetyAlert] = []
    metadata: ScoringMetadata


# ─────────────────────────── Routes ─────────────────────────────

class RouteSegment(BaseModel):
    id: str
    startLocation: Location
    endLocation: Location
    distance: float = Field(ge=0)  # meters
    duration: float = 0.0          # seconds
    safetyScore: Optional[SafetyScore] = None
    roadType: Literal["highway", "arterial", "local", "residential"] = "local"
    lightingLevel: Literal["high", "medium", "low", "none"] = "medium"


class Route(BaseModel):
    id: str
    origin: Location
    destination: Location
    waypoints: list[Location] = []
    totalDistance: float = 0.0
    estimatedDuration: float = 0.0
    safetyScore: Optional[SafetyScore] = None
    segments: list[RouteSegment] = []
    alternativeRank: int = 1
    createdAt: Optional[datetime] = None
    lastUpdated: Optional[datetime] = None


class RouteCharacteristics(BaseModel):
    routeType: str = "standard"
    safetyBias: float = 0.0
    lightingBias: float = 0.0
    populationBias: float = 0.0


class SegmentRiskFactor(BaseModel):
    type: Literal["crime_hotspot", "poor_visibility", "isolated_area", "high_traffic"]
    severity: RiskLevel
    location: Location
    description: str
    mitigationSuggestions: list[str] = []
    timeRelevant: bool  # varies with time of day


class SegmentAnalysis(BaseModel):
    segment: RouteSegment
    riskFactors: list[SegmentRiskFactor] = []


class RouteAnalysis(BaseModel):
    route: Route
    segments: list[SegmentAnalysis]
    highRiskSegments: list[SegmentAnalysis]
    recommendations: list[SafetyRecommendation]


# ─────────────────────────── Environment ────────────────────────

class WeatherConditions(BaseModel):
    condition: Literal["clear", "cloudy", "rain", "fog"]
    visibility: float  # 0-100
    temperature: float  # °C


class TrafficConditions(BaseModel):
    congestionLevel: float  # 0-100
    avgSpeed: float         # km/h
    incidents: int = 0


class EventConditions(BaseModel):
    nearbyEvents: list[str] = []
    crowdDensity: Literal["low", "medium", "high"] = "medium"
    emergencyServices: bool = False


class EnvironmentalConditions(BaseModel):
    weather: Optional[WeatherConditions] = None
    traffic: Optional[TrafficConditions] = None
    events: Optional[EventConditions] = None


# ─────────────────────────── API shapes ─────────────────────────

class SafetyScoreRequest(BaseModel):
    location: Location
    timeContext: Optional[TimeContext] = None
    factors: Optional[ScoringFactors] = None
    userContext: Optional[UserContext] = None


class RouteScoreRequest(BaseModel):
    route: Route
    timeContext: Optional[TimeContext] = None
    characteristics: Optional[RouteCharacteristics] = None


class RouteAnalysisRequest(RouteScoreRequest):
    maxSegments: int = Field(3, ge=1)


class RealTimeScoreRequest(BaseModel):
    location: Location
    timeContext: Optional[TimeContext] = None
    forceRefresh: bool = False


class AreaSafetyResponse(BaseModel):
    gridId: str
    location: Location
    records: list[CrimeRecord]
    safetyScore: SafetyScore
    riskLevel: RiskLevel
    trend: Trend
    dataConfidence: int


class AlertsResponse(BaseModel):
    alerts: list[SafetyAlert]
    count: int
    radiusKm: Optional[float] = None
    generatedAt: datetime


class CrimeDataResponse(BaseModel):
    statistics: list[CrimeStatistic]
    totalIncidents: int
    areas: list[AreaRiskSummary]
    timeframe: str


class HealthResponse(BaseModel):
    status: str
    records: int
    cachedScores: int
    refreshRunning: bool


class ErrorResponse(BaseModel):
    error: str
    message: str
    details: dict = {}
    timestamp: datetime
    requestId: str
