"""
REST API module for Weather App backend.

Provides endpoints for:
- Current weather lookup by city (OpenWeatherMap)
- High score submission, ranking and maintenance (SQLite)
- Health monitoring
"""

import logging
import os
from typing import List, Optional
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from .config import ApiConfig
from .database import DEFAULT_LEVEL, DEFAULT_LIMIT, ScoreRecord, ScoreStore, StoreResult
from .errors import HttpError, WeatherAppError
from .fetcher import WeatherApiClient, WeatherRecord

logger = logging.getLogger(__name__)


# =============================================================================
# Pydantic Models
# =============================================================================

class ConditionModel(BaseModel):
    code: str
    description: str


class WeatherResponse(BaseModel):
    city: str
    valid: bool
    temperature: Optional[float]
    feels_like: Optional[float]
    humidity: Optional[int]
    pressure: Optional[int]
    description: str
    conditions: List[ConditionModel]
    summary: str


class ScoreCreate(BaseModel):
    player_name: str = Field(..., min_length=1)
    score: int
    level_name: str = DEFAULT_LEVEL


class ScoreModel(BaseModel):
    id: int
    player_name: str
    score: int
    level_name: str
    created_at: datetime


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    database: str
    weather_api: str


# =============================================================================
# Global State
# =============================================================================

client: Optional[WeatherApiClient] = None
store: Optional[ScoreStore] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    global client, store

    logger.info("Starting Weather App backend...")

    client = WeatherApiClient(ApiConfig.load())
    store = ScoreStore(os.getenv("WEATHERAPP_DB_PATH") or None)
    store.open()

    try:
        yield
    finally:
        logger.info("Shutting down...")
        store.close()
        logger.info("Shutdown complete")


app = FastAPI(
    title="Weather App API",
    description="Current weather from OpenWeatherMap and a local high score table",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Error Mapping
# =============================================================================

ERROR_MESSAGES = {
    "config": "Weather service is not configured. Please set up your API key.",
    "network": "Could not reach the weather service. Check your connection.",
    "http": "The weather service rejected the request.",
    "transport": "The weather service response could not be read.",
    "decode": "Failed to retrieve valid weather data.",
    "store_unavailable": "High scores are unavailable.",
    "io": "Could not access the high score table.",
}

ERROR_STATUS = {
    "invalid_input": 400,
    "config": 503,
    "network": 502,
    "http": 502,
    "transport": 502,
    "decode": 502,
    "store_unavailable": 503,
    "io": 500,
}


def describe_error(error: WeatherAppError) -> str:
    """User-facing message for an error kind."""
    if error.kind == "invalid_input":
        return str(error)
    if isinstance(error, HttpError) and error.status == 404:
        return "City not found. Check the spelling and try again."
    return ERROR_MESSAGES.get(error.kind, "An error occurred. Please try again.")


def error_status(error: WeatherAppError) -> int:
    if isinstance(error, HttpError) and error.status == 404:
        return 404
    return ERROR_STATUS.get(error.kind, 500)


def raise_for_error(error: WeatherAppError) -> None:
    raise HTTPException(status_code=error_status(error), detail=describe_error(error))


def unwrap(result: StoreResult):
    if not result.ok:
        raise_for_error(result.error)
    return result.value


def require_store() -> ScoreStore:
    if not store:
        raise HTTPException(status_code=503, detail="Database not available")
    return store


def to_weather_response(record: WeatherRecord) -> WeatherResponse:
    return WeatherResponse(
        city=record.city,
        valid=record.is_valid,
        temperature=record.temperature,
        feels_like=record.feels_like,
        humidity=record.humidity,
        pressure=record.pressure,
        description=record.primary_description,
        conditions=[ConditionModel(code=c.code, description=c.description) for c in record.conditions],
        summary=record.summary(),
    )


def to_score_model(record: ScoreRecord) -> ScoreModel:
    return ScoreModel(
        id=record.id,
        player_name=record.player_name,
        score=record.score,
        level_name=record.level_name,
        created_at=record.created_at,
    )


# =============================================================================
# API Endpoints - Info
# =============================================================================

@app.get("/", tags=["Info"])
async def root():
    """API information."""
    return {
        "name": "Weather App API",
        "version": "1.0.0",
        "endpoints": ["/weather/{city}", "/scores", "/scores/level/{level_name}", "/scores/count"],
    }


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Health check endpoint."""
    store_state = store.state.value if store else "missing"
    api_ready = bool(client and client.config.is_configured())

    return HealthResponse(
        status="healthy" if store_state == "open" and api_ready else "degraded",
        timestamp=datetime.now(timezone.utc).isoformat(),
        database=store_state,
        weather_api="configured" if api_ready else "not configured",
    )


# =============================================================================
# API Endpoints - Weather
# =============================================================================

@app.get("/weather/{city}", response_model=WeatherResponse, tags=["Weather"])
async def get_weather(city: str):
    """Get current weather for a city."""
    if not client:
        raise HTTPException(status_code=503, detail="Weather client not available")

    result = await client.fetch(city)
    if not result.ok:
        raise_for_error(result.error)

    return to_weather_response(result.record)


# =============================================================================
# API Endpoints - High Scores
# =============================================================================

@app.post("/scores", response_model=ScoreModel, status_code=201, tags=["Scores"])
async def add_score(payload: ScoreCreate):
    """Submit a high score."""
    record = unwrap(require_store().add_score(payload.player_name, payload.score, payload.level_name))
    return to_score_model(record)


@app.get("/scores", response_model=List[ScoreModel], tags=["Scores"])
async def get_top_scores(limit: int = Query(default=DEFAULT_LIMIT, ge=0, le=100)):
    """Get the highest scores across all levels."""
    records = unwrap(require_store().top_scores(limit))
    return [to_score_model(r) for r in records]


@app.get("/scores/count", tags=["Scores"])
async def get_score_count():
    """Get total number of stored high scores."""
    return {"total": unwrap(require_store().count())}


@app.get("/scores/level/{level_name}", response_model=List[ScoreModel], tags=["Scores"])
async def get_level_scores(level_name: str, limit: int = Query(default=DEFAULT_LIMIT, ge=0, le=100)):
    """Get the highest scores for one level."""
    records = unwrap(require_store().top_scores_for_level(level_name, limit))
    return [to_score_model(r) for r in records]


@app.delete("/scores", tags=["Scores"])
async def clear_scores():
    """Delete every stored high score."""
    removed = unwrap(require_store().clear_all())
    logger.info(f"Cleared {removed} high scores via API")
    return {"removed": removed}


def main() -> None:
    import uvicorn

    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO"),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    uvicorn.run(
        "weatherapp.api:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("DEBUG", "false").lower() == "true"
    )


if __name__ == "__main__":
    main()
