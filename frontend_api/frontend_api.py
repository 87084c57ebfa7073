"""
Weather Insights Frontend API

A RESTful FastAPI application that exposes the historical weather analysis of
UK postcodes. Weather data is fetched from OpenMeteo, locations from
postcodes.io, and both are kept in the in-memory request cache of the
analysis service.

Features:
    - Health check endpoint for monitoring service readiness
    - Full historical analysis (aggregates, runs, trends, rankings, correlations, insights)
    - Current conditions with today's daily summary
    - Request cache statistics and expired entry purge

Endpoints:
    GET /health - Service health status
    GET /analysis/{postcode} - Historical analysis of a postcode
    GET /current/{postcode} - Current conditions of a postcode
    GET /cache - Request cache statistics
    DELETE /cache/expired - Purge expired cache entries

Error Mapping:
    - NotFoundError -> 404
    - ProviderError, MalformedSeriesError -> 502
    - Anything else -> 500

Dependencies:
    - FastAPI: Web framework for building APIs
    - Pydantic: Data validation and serialization
    - analysis_service: Orchestration of resolver, provider, cache and analyzer

Configuration:
    The service reads config/{CONFIG_FILE env var or config.json} from the
    working directory when present, and falls back to defaults otherwise.
"""

import logging
import os
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from analysis_service import ClimateAnalysisService
from climate_analysis import AnalysisConfig
from location_resolver import PostcodesIoResolver
from openmeteo_client import OpenMeteoClientConfig, OpenMeteoWeatherProvider
from weather_models import (
    MalformedSeriesError,
    NotFoundError,
    ProviderError,
    bundle_to_dict,
)

T = TypeVar("T")


class LocationResponse(BaseModel):
    postcode: str
    latitude: float
    longitude: float
    name: str
    region: Optional[str] = None


class AnalysisResponse(BaseModel):
    location: LocationResponse
    start: Optional[date]
    end: Optional[date]
    days: int
    monthly: List[Dict[str, Any]]
    seasonal: List[Dict[str, Any]]
    yearly: List[Dict[str, Any]]
    runs: Dict[str, List[Dict[str, Any]]]
    trends: Dict[str, Optional[Dict[str, Any]]]
    yearly_trends: Dict[str, Optional[Dict[str, Any]]]
    rankings: Dict[str, Optional[List[Dict[str, Any]]]]
    rainfall_distribution: Optional[Dict[str, float]]
    correlations: List[Dict[str, Any]]
    insights: Dict[str, Any]
    recent: List[Dict[str, Any]]
    generated_at: datetime
    series: Optional[List[Dict[str, Any]]] = None


class CurrentConditionsResponse(BaseModel):
    location: LocationResponse
    time: datetime
    readings: Dict[str, Optional[float]]
    today: Dict[str, Optional[float]]


class CacheStatsResponse(BaseModel):
    size: int
    capacity: int
    in_flight: int
    hits: int
    misses: int
    shared: int
    evictions: int
    expirations: int
    hit_rate: float


class PurgeResponse(BaseModel):
    purged: int


class HealthResponse(BaseModel):
    status: str
    cache: str
    message: Optional[str] = None


service: Optional[ClimateAnalysisService] = None

logger = logging.getLogger(name="Frontend API")


def create_service() -> ClimateAnalysisService:
    """Build the analysis service from the configuration file, if present."""
    config_file = os.path.join(
        os.getcwd(),
        "config",
        os.getenv("CONFIG_FILE", "config.json"),
    )
    from_file = os.path.exists(config_file)

    return ClimateAnalysisService(
        resolver=PostcodesIoResolver(),
        provider=OpenMeteoWeatherProvider(
            OpenMeteoClientConfig(create_from_file=from_file, config_file=config_file)
        ),
        config=AnalysisConfig(create_from_file=from_file, config_file=config_file),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan definition of FastAPI app.

    - Creates the analysis service (and its empty request cache) on startup.
    - Drops it on shutdown.

    Args:
        app (FastAPI): FastAPI instance.
    """
    global service
    try:
        service = create_service()
        yield
    finally:
        service = None


app = FastAPI(
    title="Weather Insights API",
    description="RESTful API for historical weather analysis of UK postcodes",
    version="1.0.0",
    lifespan=lifespan,
)


def _require_service() -> ClimateAnalysisService:
    if service is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return service


async def _guarded(call: Callable[[], Awaitable[T]], postcode: str) -> T:
    try:
        return await call()
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (ProviderError, MalformedSeriesError) as e:
        logger.error(f"Upstream failure for {postcode}: {e}")
        raise HTTPException(status_code=502, detail=f"Weather data unavailable: {e}")
    except Exception as e:
        logger.error(f"Unexpected failure for {postcode}: {e}")
        raise HTTPException(status_code=500, detail=f"Error analysing {postcode}: {e}")


@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Health check endpoint that verifies the service is initialized.

    Raises:
        HTTPException: Status 503 when the service has not been initialized.

    Returns:
        HealthResponse: HealthResponse object.
    """
    if service is None:
        raise HTTPException(
            status_code=503,
            detail={"status": "unhealthy", "cache": "unavailable"},
        )

    stats = service.cache.stats()
    return HealthResponse(
        status="healthy",
        cache="ready",
        message=f"{stats.size} cached responses",
    )


@app.get("/analysis/{postcode}", response_model=AnalysisResponse)
async def get_analysis(postcode: str, include_series: bool = False) -> AnalysisResponse:
    """Historical analysis of a postcode.

    Args:
        postcode (str): UK postcode, whitespace and case are ignored.
        include_series (bool): Whether to include every daily observation.

    Raises:
        HTTPException: Status 404 for unknown postcodes, 502 for upstream failures.
    """
    current_service = _require_service()
    bundle = await _guarded(lambda: current_service.analyse(postcode), postcode)

    body = bundle_to_dict(bundle)
    if not include_series:
        body.pop("series")
    return AnalysisResponse(
        **body,
        start=bundle.series.start,
        end=bundle.series.end,
        days=len(bundle.series),
    )


@app.get("/current/{postcode}", response_model=CurrentConditionsResponse)
async def get_current(postcode: str) -> CurrentConditionsResponse:
    """Current conditions of a postcode.

    Raises:
        HTTPException: Status 404 for unknown postcodes, 502 for upstream failures.
    """
    current_service = _require_service()
    conditions = await _guarded(lambda: current_service.current_conditions(postcode), postcode)
    return CurrentConditionsResponse(**bundle_to_dict(conditions))


@app.get("/cache", response_model=CacheStatsResponse)
async def get_cache_stats() -> CacheStatsResponse:
    stats = _require_service().cache.stats()
    return CacheStatsResponse(
        size=stats.size,
        capacity=stats.capacity,
        in_flight=stats.in_flight,
        hits=stats.hits,
        misses=stats.misses,
        shared=stats.shared,
        evictions=stats.evictions,
        expirations=stats.expirations,
        hit_rate=stats.hit_rate,
    )


@app.delete("/cache/expired", response_model=PurgeResponse)
async def purge_expired() -> PurgeResponse:
    return PurgeResponse(purged=_require_service().cache.purge_expired())
