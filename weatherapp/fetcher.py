"""
Weather fetcher module for Weather App backend.

Retrieves current conditions for a city from the OpenWeatherMap API:
- Request construction (escaped city, API key, metric units)
- Asynchronous fetch (blocking request run on the loop's executor)
- Four-way outcome classification (success, connection, HTTP, body read)
- JSON decoding into an immutable WeatherRecord

No retries and no caching: one request, one classified result.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Tuple
from urllib.parse import quote_plus

import requests
from requests.adapters import HTTPAdapter
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .config import ApiConfig
from .errors import (
    ConfigError,
    DecodeError,
    FetchError,
    HttpError,
    InvalidInputError,
    NetworkError,
    TransportError,
)

logger = logging.getLogger(__name__)

USER_AGENT = "WeatherAppClient/1.0"
UNITS = "metric"


# =============================================================================
# Weather Record
# =============================================================================

class Condition(BaseModel):
    """One weather-condition descriptor, e.g. Rain / light rain."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    code: str = Field(alias="main")
    description: str = ""
    id: Optional[int] = None
    icon: Optional[str] = None


class Measurements(BaseModel):
    """The `main` block of the payload."""
    model_config = ConfigDict(frozen=True)

    temp: float
    feels_like: float
    humidity: int
    pressure: int


class WeatherRecord(BaseModel):
    """
    Current weather for a city.

    A record is only usable when `is_valid` holds; a payload missing the
    measurements block or every condition still decodes, but is invalid.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    city: str = Field(default="", alias="name")
    measurements: Optional[Measurements] = Field(default=None, alias="main")
    conditions: Tuple[Condition, ...] = Field(default=(), alias="weather")

    @field_validator("city", mode="before")
    @classmethod
    def _null_city(cls, value):
        return "" if value is None else value

    @field_validator("conditions", mode="before")
    @classmethod
    def _null_conditions(cls, value):
        return () if value is None else value

    @property
    def is_valid(self) -> bool:
        return self.measurements is not None and len(self.conditions) > 0

    @property
    def temperature(self) -> Optional[float]:
        return self.measurements.temp if self.measurements else None

    @property
    def feels_like(self) -> Optional[float]:
        return self.measurements.feels_like if self.measurements else None

    @property
    def humidity(self) -> Optional[int]:
        return self.measurements.humidity if self.measurements else None

    @property
    def pressure(self) -> Optional[int]:
        return self.measurements.pressure if self.measurements else None

    @property
    def primary_condition(self) -> Optional[Condition]:
        return self.conditions[0] if self.conditions else None

    @property
    def primary_description(self) -> str:
        primary = self.primary_condition
        return primary.description if primary else ""

    def summary(self) -> str:
        """Multi-line display text; blocks missing from the payload are omitted."""
        lines = []
        if self.measurements is not None:
            m = self.measurements
            lines.append(f"City: {self.city}")
            lines.append(f"Temperature: {m.temp:.1f}°C (Feels like: {m.feels_like:.1f}°C)")
            lines.append(f"Humidity: {m.humidity}%")
            lines.append(f"Pressure: {m.pressure} hPa")
        if self.conditions:
            lines.append(f"Description: {self.primary_description}")
        return "\n".join(lines)


@dataclass
class FetchResult:
    """Outcome of one fetch: exactly one of `record` and `error` is set."""
    city: str
    record: Optional[WeatherRecord]
    error: Optional[FetchError]
    fetch_time: str
    response_time_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


# =============================================================================
# Client
# =============================================================================

class WeatherApiClient:
    """
    Client for the OpenWeatherMap current-weather endpoint.

    Holds only read-only configuration; every fetch opens its own HTTP
    session, so concurrent fetches never share request state.
    """

    def __init__(self, config: ApiConfig):
        self.config = config

    def _create_session(self) -> requests.Session:
        """Create HTTP session without a retry strategy."""
        session = requests.Session()

        adapter = HTTPAdapter(max_retries=0)
        session.mount("http://", adapter)
        session.mount("https://", adapter)

        session.headers.update({
            "User-Agent": USER_AGENT,
            "Accept": "application/json",
        })

        return session

    async def fetch(self, city: str) -> FetchResult:
        """Fetch weather for `city` without blocking the event loop."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.fetch_blocking, city)

    def fetch_blocking(self, city: str) -> FetchResult:
        """
        Fetch and decode current weather for a city.

        Returns:
            FetchResult holding either the WeatherRecord or the classified error
        """
        fetch_start = datetime.now(timezone.utc)
        city = (city or "").strip()

        if not city:
            return self._failure(city, fetch_start, InvalidInputError("City name cannot be empty"))

        if not self.config.is_configured():
            return self._failure(city, fetch_start, ConfigError(
                "API key not configured. Set OPENWEATHER_API_KEY or add it to config.json"
            ))

        try:
            body = self._fetch_raw(city)
            record = self._parse_weather(body)
        except FetchError as e:
            return self._failure(city, fetch_start, e)

        response_time = self._elapsed_ms(fetch_start)
        if record.is_valid:
            logger.info(f"Fetched weather for {city}: {record.temperature:.1f}°C, "
                        f"{record.primary_description} ({response_time}ms)")
        else:
            logger.warning(f"Fetched weather for {city} is incomplete ({response_time}ms)")

        return FetchResult(
            city=city,
            record=record,
            error=None,
            fetch_time=fetch_start.isoformat(),
            response_time_ms=response_time,
        )

    def _fetch_raw(self, city: str) -> bytes:
        """Issue the request and classify the transport outcome."""
        params = {"q": city, "appid": self.config.api_key, "units": UNITS}

        try:
            with self._create_session() as session:
                response = session.get(self.config.base_url, params=params, timeout=self.config.timeout)
                content = response.content
        except requests.Timeout:
            raise NetworkError(f"Request timed out after {self.config.timeout}s")
        except requests.ConnectionError as e:
            raise NetworkError(f"Network connection failed: {self._redact(e)}")
        except (requests.exceptions.ChunkedEncodingError,
                requests.exceptions.ContentDecodingError,
                requests.exceptions.StreamConsumedError) as e:
            raise TransportError(f"Failed to read response body: {self._redact(e)}")
        except requests.RequestException as e:
            raise NetworkError(f"Request failed: {self._redact(e)}")

        if not 200 <= response.status_code < 300:
            raise HttpError(response.status_code, self._error_message(response))

        if not content:
            raise TransportError("Response body is empty")

        return content

    def _redact(self, error: Exception) -> str:
        """Exception text with the API key masked; transport errors embed the request URL."""
        text = str(error)
        key = self.config.api_key
        if not key:
            return text
        for form in {key, quote_plus(key)}:
            text = text.replace(form, "***")
        return text

    def _error_message(self, response: requests.Response) -> str:
        """Prefer the provider's JSON `message` over the reason phrase."""
        try:
            data = response.json()
        except ValueError:
            data = None
        if isinstance(data, dict) and data.get("message"):
            return str(data["message"])
        return response.reason or ""

    def _parse_weather(self, body: bytes) -> WeatherRecord:
        try:
            return WeatherRecord.model_validate_json(body)
        except ValidationError as e:
            raise DecodeError(f"Failed to parse weather data: {e}")

    def _failure(self, city: str, fetch_start: datetime, error: FetchError) -> FetchResult:
        logger.error(f"Weather fetch for {city or '<empty>'} failed ({error.kind}): {error}")
        return FetchResult(
            city=city,
            record=None,
            error=error,
            fetch_time=fetch_start.isoformat(),
            response_time_ms=self._elapsed_ms(fetch_start),
        )

    @staticmethod
    def _elapsed_ms(start: datetime) -> int:
        return int((datetime.now(timezone.utc) - start).total_seconds() * 1000)
