"""Tests for ForecastService parsing, caching and failure mapping."""

from unittest.mock import MagicMock

import pytest
import requests

from app.domain.exceptions import DependencyError
from app.services.utilities.forecast_service import ForecastService


def _step(temp, humidity, wind=2.0, rain=None):
    step = {"main": {"temp": temp, "humidity": humidity}, "wind": {"speed": wind}}
    if rain is not None:
        step["rain"] = {"3h": rain}
    return step


def _session(payload=None, *, error=None):
    session = MagicMock()
    if error is not None:
        session.get.side_effect = error
    else:
        response = MagicMock()
        response.json.return_value = payload
        response.raise_for_status.return_value = None
        session.get.return_value = response
    return session


PAYLOAD = {
    "list": [
        _step(18.0, 60, rain=0.5),
        _step(24.5, 50),
        _step(27.1, 40, wind=4.0, rain=1.0),
        _step(21.0, 70),
        _step(16.0, 80),
        _step(14.0, 85),
        _step(13.0, 90),
        _step(15.0, 85, rain=2.0),
        # beyond 24 hours; ignored
        _step(35.0, 10, rain=50.0),
    ]
}


def test_forecast_aggregates_first_24_hours():
    service = ForecastService("key", session=_session(PAYLOAD))

    forecast = service.get_forecast(40.42, -3.70)

    assert forecast.temperature_c == 27.1
    assert forecast.humidity_pct == 70.0
    assert forecast.rainfall_mm_next_24h == 3.5
    assert forecast.wind_kph == pytest.approx(8.1)


def test_request_carries_coordinates_key_and_timeout():
    session = _session(PAYLOAD)
    service = ForecastService("secret", api_url="https://weather.test/v2/", timeout_seconds=2.5, session=session)

    service.get_forecast(40.42, -3.70)

    args, kwargs = session.get.call_args
    assert args[0] == "https://weather.test/v2/forecast"
    assert kwargs["params"]["appid"] == "secret"
    assert kwargs["params"]["units"] == "metric"
    assert kwargs["timeout"] == 2.5


def test_forecast_is_cached_per_location():
    session = _session(PAYLOAD)
    service = ForecastService("key", session=session)

    service.get_forecast(40.421, -3.701)
    service.get_forecast(40.4209, -3.7012)
    service.get_forecast(10.0, 10.0)

    assert session.get.call_count == 2
    assert service.cache_stats()["hits"] == 1


def test_timeout_maps_to_dependency_error_and_is_not_cached():
    session = _session(error=requests.Timeout("read timed out"))
    service = ForecastService("key", session=session)

    for _ in range(2):
        with pytest.raises(DependencyError) as exc_info:
            service.get_forecast(40.42, -3.70)
        assert exc_info.value.code == DependencyError.FORECAST_UNAVAILABLE

    assert session.get.call_count == 2


def test_http_error_maps_to_dependency_error():
    session = _session(PAYLOAD)
    session.get.return_value.raise_for_status.side_effect = requests.HTTPError("401 Unauthorized")
    service = ForecastService("bad-key", session=session)

    with pytest.raises(DependencyError):
        service.get_forecast(40.42, -3.70)


def test_missing_api_key_fails_without_request():
    session = _session(PAYLOAD)
    service = ForecastService("", session=session)

    with pytest.raises(DependencyError) as exc_info:
        service.get_forecast(40.42, -3.70)

    assert "not configured" in str(exc_info.value)
    session.get.assert_not_called()


@pytest.mark.parametrize(
    "payload",
    [
        {"list": []},
        {},
        {"list": [{"main": {"humidity": 50}}]},
    ],
)
def test_unusable_payload(payload):
    service = ForecastService("key", session=_session(payload))
    with pytest.raises(DependencyError) as exc_info:
        service.get_forecast(1.0, 1.0)
    assert exc_info.value.code == DependencyError.FORECAST_UNAVAILABLE
