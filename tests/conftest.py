from __future__ import annotations

import pytest

from requests_mock import Mocker

from weatherapp.config import ApiConfig
from weatherapp.database import ScoreStore
from weatherapp.fetcher import WeatherApiClient

BASE_URL = "https://weather.test/data/2.5/weather"


@pytest.fixture
def requests_mock():
    with Mocker() as mock:
        yield mock


@pytest.fixture
def api_config() -> ApiConfig:
    return ApiConfig(api_key="test-key", base_url=BASE_URL, timeout=5)


@pytest.fixture
def client(api_config: ApiConfig) -> WeatherApiClient:
    return WeatherApiClient(api_config)


@pytest.fixture
def weather_payload() -> dict:
    return {
        "name": "London",
        "main": {
            "temp": 14.31,
            "feels_like": 13.4,
            "temp_min": 12.0,
            "temp_max": 16.1,
            "humidity": 72,
            "pressure": 1012,
        },
        "weather": [
            {"id": 520, "main": "Rain", "description": "light intensity shower rain", "icon": "09d"},
            {"id": 701, "main": "Mist", "description": "mist", "icon": "50d"},
        ],
        "cod": 200,
    }


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "scores" / "GameData.db"


@pytest.fixture
def store(db_path):
    with ScoreStore(db_path) as opened:
        yield opened


@pytest.fixture(autouse=True)
def release_active_store():
    yield
    leftover = ScoreStore._active
    if leftover is not None:
        leftover.close()


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    for name in ["OPENWEATHER_API_KEY", "OPENWEATHER_BASE_URL", "OPENWEATHER_TIMEOUT"]:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("WEATHERAPP_CONFIG", str(tmp_path / "no-config.json"))
