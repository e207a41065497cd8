"""SafeRoute Backend — FastAPI Routes"""

import logging
import re
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import DEFAULT_TIMEFRAME, ENV_SEED, REFERENCE_DATE
from crime_data import CrimeDataService
from crime_generator import normalize_timeframe
from environment import EnvironmentSimulator
from errors import (
    DataInitializationError,
    InvalidInputError,
    SafeRouteError,
    ScoringComputationError,
)
from location import LocationValidator
from models import (
    AlertsResponse,
    AreaSafetyResponse,
    CrimeDataResponse,
    ErrorResponse,
    HealthResponse,
    Location,
    RealTimeScoreRequest,
    Route,
    RouteAnalysis,
    RouteAnalysisRequest,
    RouteScoreRequest,
    SafetyScore,
    SafetyScoreRequest,
    ScoreLocationResult,
)
from scoring import SafetyScoringEngine

logger = logging.getLogger("saferoute")

GRID_ID_PATTERN = re.compile(r"^CT_-?\d+_-?\d+$")

_allowed_origins = [
    f"http://localhost:{p}" for p in range(3000, 3010)
] + [
    f"http://localhost:{p}" for p in range(5173, 5180)
] + [
    f"http://127.0.0.1:{p}" for p in range(3000, 3010)
] + [
    f"http://127.0.0.1:{p}" for p in range(5173, 5180)
]

_STATUS_BY_ERROR = {
    InvalidInputError: 400,
    DataInitializationError: 503,
    ScoringComputationError: 500,
}

router = APIRouter(prefix="/api")


def build_engine() -> SafetyScoringEngine:
    """Engine wired from environment configuration."""
    return SafetyScoringEngine(
        crime_data=CrimeDataService(reference_date=REFERENCE_DATE),
        environment=EnvironmentSimulator(seed=None if ENV_SEED < 0 else ENV_SEED),
    )


def _engine(request: Request) -> SafetyScoringEngine:
    return request.app.state.engine


def _validator(request: Request) -> LocationValidator:
    return request.app.state.validator


def _require_valid_route(request: Request, route: Route):
    validator = _validator(request)
    for segment in route.segments:
        for endpoint in (segment.startLocation, segment.endLocation):
            try:
                validator.require_valid(endpoint)
            except InvalidInputError as e:
                e.details.update(routeId=route.id, segmentId=segment.id)
                raise


# ─────────────────────────── Error responses ────────────────────

def error_response(request: Request, status_code: int, error: str, message: str,
                   details: Optional[dict] = None) -> JSONResponse:
    body = ErrorResponse(
        error=error,
        message=message,
        details=details or {},
        timestamp=datetime.now(),
        requestId=request.headers.get("x-request-id") or str(uuid.uuid4()),
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


async def saferoute_error_handler(request: Request, exc: SafeRouteError):
    status_code = next(
        (code for kind, code in _STATUS_BY_ERROR.items() if isinstance(exc, kind)), 500,
    )
    if status_code >= 500:
        logger.error(f"{exc.code} for {request.url.path}: {exc.message}")
    else:
        logger.info(f"{exc.code} for {request.url.path}: {exc.message}")
    return error_response(request, status_code, exc.code, exc.message, exc.details)


async def validation_error_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Validation error for {request.url.path}: {exc}")
    errors = [
        {"loc": [str(p) for p in e.get("loc", ())], "msg": e.get("msg", ""), "type": e.get("type", "")}
        for e in exc.errors()
    ]
    return error_response(request, 400, InvalidInputError.code, "Request validation failed",
                          {"errors": errors})


# ─────────────────────────── Utility Endpoints ──────────────────

@router.get("/health", response_model=HealthResponse)
def health(request: Request):
    engine = _engine(request)
    service = engine.crime_data
    return HealthResponse(
        status="ok" if service.initialized else "degraded",
        records=len(service.all_records()) if service.initialized else 0,
        cachedScores=len(engine.cache),
        refreshRunning=engine.running,
    )


# ─────────────────────────── Scoring Endpoints ──────────────────

@router.post("/safety/score", response_model=ScoreLocationResult)
def score_location(req: SafetyScoreRequest, request: Request):
    location = _validator(request).require_valid(req.location)
    return _engine(request).score_location(location, req.timeContext, req.factors, req.userContext)


@router.post("/safety/route", response_model=Route)
def score_route(req: RouteScoreRequest, request: Request):
    _require_valid_route(request, req.route)
    return _engine(request).score_route(req.route, req.timeContext, req.characteristics)


@router.post("/safety/route/analysis", response_model=RouteAnalysis)
def analyze_route(req: RouteAnalysisRequest, request: Request):
    _require_valid_route(request, req.route)
    return _engine(request).analyze_route(req.route, req.timeContext, req.characteristics, req.maxSegments)


@router.post("/safety/realtime", response_model=SafetyScore)
def real_time_score(req: RealTimeScoreRequest, request: Request):
    location = _validator(request).require_valid(req.location)
    return _engine(request).get_real_time_score(location, req.timeContext, req.forceRefresh)


# ─────────────────────────── Area & Crime Data ──────────────────

@router.get("/safety/area/{grid_id}", response_model=AreaSafetyResponse)
def area_safety(grid_id: str, request: Request, timeframe: str = DEFAULT_TIMEFRAME):
    if not GRID_ID_PATTERN.match(grid_id):
        return error_response(request, 400, "INVALID_GRID_ID",
                              "Grid ID must follow format: CT_<lat index>_<lng index> (e.g., CT_57_42)")

    engine = _engine(request)
    records = engine.crime_data.get_by_grid_cell(grid_id)
    if not records:
        return error_response(request, 404, "GRID_NOT_FOUND", f"No data available for grid cell {grid_id}")

    record = records[0]
    center = Location(
        latitude=record.location.latitude,
        longitude=record.location.longitude,
        address=record.location.address,
    )
    score = engine.score_location(center).safetyScore

    return AreaSafetyResponse(
        gridId=grid_id,
        location=record.location,
        records=records,
        safetyScore=score,
        riskLevel=record.riskLevel,
        trend=engine.crime_data.get_trend(record, timeframe),
        dataConfidence=score.confidenceLevel,
    )


def _parse_location(raw: str) -> Location:
    parts = raw.split(",")
    try:
        lat, lng = (float(p) for p in parts)
    except ValueError:
        raise InvalidInputError(
            "Location must be in format: latitude,longitude", details={"location": raw},
        ) from None
    return Location(latitude=lat, longitude=lng)


@router.get("/safety/alerts", response_model=AlertsResponse)
def safety_alerts(request: Request, location: Optional[str] = None, radius: float = 5.0,
                  severity: Optional[str] = None):
    engine = _engine(request)
    query_location = None
    if location:
        query_location = _validator(request).require_valid(_parse_location(location))

    if severity not in (None, "info", "warning", "critical"):
        severity = None

    alerts = engine.get_alerts(query_location, radius_km=radius, severity=severity)
    return AlertsResponse(
        alerts=alerts,
        count=len(alerts),
        radiusKm=radius if query_location else None,
        generatedAt=engine.clock(),
    )


@router.get("/safety/crime-data", response_model=CrimeDataResponse)
def crime_data(request: Request, area: Optional[str] = None, crimeType: Optional[str] = None,
               timeframe: Optional[str] = None):
    service = _engine(request).crime_data
    timeframe = normalize_timeframe(timeframe)
    stats = service.get_statistics(area, crimeType, timeframe)

    areas = service.get_all_areas_with_risk_levels()
    if area:
        query = area.strip().lower()
        areas = [a for a in areas if query in a.area.lower()]

    return CrimeDataResponse(
        statistics=stats,
        totalIncidents=sum(s.incidentCount for s in stats),
        areas=areas,
        timeframe=timeframe,
    )


# ─────────────────────────── App Setup ──────────────────────────

def create_app(engine: Optional[SafetyScoringEngine] = None) -> FastAPI:
    engine = engine or build_engine()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            engine.crime_data.initialize()
        except DataInitializationError as e:
            logger.error(f"Serving without crime data: {e.message}")
        engine.start()
        yield
        engine.stop()

    app = FastAPI(title="SafeRoute Safety API", version="1.0.0", lifespan=lifespan)
    app.state.engine = engine
    app.state.validator = LocationValidator()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(SafeRouteError, saferoute_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.include_router(router)
    return app


app = create_app()
