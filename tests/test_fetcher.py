from __future__ import annotations

import asyncio
from urllib.parse import parse_qs, urlparse

import pytest
import requests

from weatherapp.config import ApiConfig
from weatherapp.errors import (
    ConfigError,
    DecodeError,
    HttpError,
    InvalidInputError,
    NetworkError,
    TransportError,
)
from weatherapp.fetcher import WeatherApiClient, WeatherRecord

from .conftest import BASE_URL


def query_of(request) -> dict:
    return {key: values[0] for key, values in parse_qs(urlparse(request.url).query).items()}


def test_fetch_returns_decoded_record(client, requests_mock, weather_payload):
    requests_mock.get(BASE_URL, json=weather_payload)

    result = client.fetch_blocking("London")

    assert result.ok
    assert result.error is None
    record = result.record
    assert record.is_valid
    assert record.city == "London"
    assert record.temperature == pytest.approx(14.31)
    assert record.feels_like == pytest.approx(13.4)
    assert record.humidity == 72
    assert record.pressure == 1012
    assert [c.code for c in record.conditions] == ["Rain", "Mist"]
    assert record.primary_condition.id == 520
    assert record.primary_description == "light intensity shower rain"


def test_fetch_builds_metric_query(client, requests_mock, weather_payload):
    requests_mock.get(BASE_URL, json=weather_payload)

    client.fetch_blocking("  São Paulo ")

    request = requests_mock.last_request
    assert "q=S%C3%A3o+Paulo" in request.url
    assert query_of(request) == {"q": "São Paulo", "appid": "test-key", "units": "metric"}


@pytest.mark.parametrize("city", ["", "   ", "\t\n", None])
def test_empty_city_is_rejected_without_network_call(client, requests_mock, city):
    requests_mock.get(BASE_URL, json={})

    result = client.fetch_blocking(city)

    assert isinstance(result.error, InvalidInputError)
    assert result.error.kind == "invalid_input"
    assert result.record is None
    assert requests_mock.call_count == 0


@pytest.mark.parametrize("api_key", ["", "   ", "YOUR_API_KEY_HERE"])
def test_missing_api_key_is_rejected_without_network_call(requests_mock, api_key):
    client = WeatherApiClient(ApiConfig(api_key=api_key, base_url=BASE_URL))
    requests_mock.get(BASE_URL, json={})

    result = client.fetch_blocking("London")

    assert isinstance(result.error, ConfigError)
    assert requests_mock.call_count == 0


def test_empty_city_checked_before_configuration(requests_mock):
    client = WeatherApiClient(ApiConfig(api_key="", base_url=BASE_URL))

    result = client.fetch_blocking(" ")

    assert isinstance(result.error, InvalidInputError)


def test_http_404_carries_status_and_provider_message(client, requests_mock):
    requests_mock.get(BASE_URL, status_code=404, json={"cod": "404", "message": "city not found"})

    result = client.fetch_blocking("Atlantis")

    assert isinstance(result.error, HttpError)
    assert result.error.status == 404
    assert result.error.message == "city not found"
    assert result.record is None


def test_http_error_without_json_uses_reason(client, requests_mock):
    requests_mock.get(BASE_URL, status_code=503, text="<html>down</html>", reason="Service Unavailable")

    result = client.fetch_blocking("London")

    assert isinstance(result.error, HttpError)
    assert result.error.status == 503
    assert result.error.message == "Service Unavailable"
    assert str(result.error) == "HTTP 503: Service Unavailable"


def test_unauthorized_key_is_an_http_error(client, requests_mock):
    requests_mock.get(BASE_URL, status_code=401, json={"cod": 401, "message": "Invalid API key"})

    result = client.fetch_blocking("London")

    assert result.error.kind == "http"
    assert result.error.status == 401


def test_malformed_json_is_a_decode_error(client, requests_mock):
    requests_mock.get(BASE_URL, text='{"name": "London", "main": {')

    result = client.fetch_blocking("London")

    assert isinstance(result.error, DecodeError)
    assert "Failed to parse weather data" in result.error.message
    assert result.record is None
    assert not result.ok


def test_non_object_payload_is_a_decode_error(client, requests_mock):
    requests_mock.get(BASE_URL, json=[1, 2, 3])

    result = client.fetch_blocking("London")

    assert isinstance(result.error, DecodeError)


def test_mistyped_measurement_is_a_decode_error(client, requests_mock, weather_payload):
    weather_payload["main"]["temp"] = "warm"
    requests_mock.get(BASE_URL, json=weather_payload)

    result = client.fetch_blocking("London")

    assert isinstance(result.error, DecodeError)


def test_missing_blocks_decode_to_invalid_record(client, requests_mock):
    requests_mock.get(BASE_URL, json={"name": "Nowhere", "weather": []})

    result = client.fetch_blocking("Nowhere")

    assert result.ok
    assert result.record.is_valid is False
    assert result.record.temperature is None
    assert result.record.primary_condition is None
    assert result.record.primary_description == ""


def test_record_without_conditions_is_invalid(client, requests_mock, weather_payload):
    weather_payload["weather"] = None
    requests_mock.get(BASE_URL, json=weather_payload)

    result = client.fetch_blocking("London")

    assert result.ok
    assert result.record.measurements is not None
    assert result.record.is_valid is False


def test_empty_body_is_a_transport_error(client, requests_mock):
    requests_mock.get(BASE_URL, content=b"")

    result = client.fetch_blocking("London")

    assert isinstance(result.error, TransportError)


def test_broken_body_is_a_transport_error(client, requests_mock):
    requests_mock.get(BASE_URL, exc=requests.exceptions.ChunkedEncodingError("connection broken"))

    result = client.fetch_blocking("London")

    assert isinstance(result.error, TransportError)
    assert "connection broken" in result.error.message


@pytest.mark.parametrize("exc", [
    requests.exceptions.ConnectionError("Name or service not known"),
    requests.exceptions.SSLError("certificate verify failed"),
    requests.exceptions.ConnectTimeout("timed out"),
    requests.exceptions.ReadTimeout("timed out"),
])
def test_unreachable_server_is_a_network_error(client, requests_mock, exc):
    requests_mock.get(BASE_URL, exc=exc)

    result = client.fetch_blocking("London")

    assert isinstance(result.error, NetworkError)
    assert result.error.kind == "network"


def test_timeout_message_names_the_limit(client, requests_mock):
    requests_mock.get(BASE_URL, exc=requests.exceptions.ReadTimeout)

    result = client.fetch_blocking("London")

    assert result.error.message == "Request timed out after 5s"


def test_summary_matches_display_format(weather_payload):
    record = WeatherRecord.model_validate(weather_payload)

    assert record.summary() == (
        "City: London\n"
        "Temperature: 14.3°C (Feels like: 13.4°C)\n"
        "Humidity: 72%\n"
        "Pressure: 1012 hPa\n"
        "Description: light intensity shower rain"
    )


def test_record_is_immutable(weather_payload):
    record = WeatherRecord.model_validate(weather_payload)

    with pytest.raises(Exception):
        record.city = "Paris"


@pytest.mark.asyncio
async def test_async_fetch_returns_record(client, requests_mock, weather_payload):
    requests_mock.get(BASE_URL, json=weather_payload)

    result = await client.fetch("London")

    assert result.ok
    assert result.record.city == "London"


@pytest.mark.asyncio
async def test_concurrent_fetches_get_their_own_results(client, requests_mock, weather_payload):
    paris = dict(weather_payload, name="Paris")
    oslo = dict(weather_payload, name="Oslo")
    requests_mock.get(f"{BASE_URL}?q=Paris", json=paris)
    requests_mock.get(f"{BASE_URL}?q=Oslo", json=oslo)

    results = await asyncio.gather(client.fetch("Paris"), client.fetch("Oslo"), client.fetch("Paris"))

    assert [r.record.city for r in results] == ["Paris", "Oslo", "Paris"]
    assert [r.city for r in results] == ["Paris", "Oslo", "Paris"]


@pytest.mark.asyncio
async def test_async_precondition_failure_skips_network(client, requests_mock):
    result = await client.fetch("   ")

    assert isinstance(result.error, InvalidInputError)
    assert requests_mock.call_count == 0


@pytest.mark.parametrize("exc", [
    requests.exceptions.ConnectionError(
        "HTTPConnectionPool(host='127.0.0.1', port=9): Max retries exceeded with url: "
        "/weather?q=London&appid=SECRETKEY123&units=metric"
    ),
    requests.exceptions.ChunkedEncodingError("broken read of /weather?appid=SECRETKEY123"),
    requests.exceptions.InvalidURL("bad url http://x/weather?appid=SECRETKEY123"),
])
def test_api_key_never_logged_or_returned(requests_mock, caplog, exc):
    client = WeatherApiClient(ApiConfig(api_key="SECRETKEY123", base_url=BASE_URL))
    requests_mock.get(BASE_URL, exc=exc)

    with caplog.at_level("DEBUG", logger="weatherapp"):
        result = client.fetch_blocking("London")

    assert not result.ok
    assert "SECRETKEY123" not in result.error.message
    assert "SECRETKEY123" not in caplog.text
    assert "***" in result.error.message
