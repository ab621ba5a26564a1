"""
Weather App Backend

Data access for a small weather and high score application:
- OpenWeatherMap current weather fetching (async, classified failures)
- SQLite high score persistence with explicit lifecycle
- REST API for data access
"""

from .config import ApiConfig
from .database import ScoreRecord, ScoreStore, StoreResult, StoreState
from .errors import (
    ConfigError,
    DecodeError,
    FetchError,
    HttpError,
    InvalidInputError,
    IoError,
    NetworkError,
    StoreAlreadyOpenError,
    StoreError,
    StoreUnavailableError,
    TransportError,
    WeatherAppError,
)
from .fetcher import Condition, FetchResult, Measurements, WeatherApiClient, WeatherRecord

__version__ = "1.0.0"

__all__ = [
    "ApiConfig",
    "WeatherApiClient",
    "WeatherRecord",
    "Measurements",
    "Condition",
    "FetchResult",
    "ScoreStore",
    "ScoreRecord",
    "StoreResult",
    "StoreState",
    "WeatherAppError",
    "FetchError",
    "StoreError",
    "InvalidInputError",
    "ConfigError",
    "NetworkError",
    "HttpError",
    "TransportError",
    "DecodeError",
    "StoreUnavailableError",
    "IoError",
    "StoreAlreadyOpenError",
]
