"""
Forecast Service
================

Fetches a 24-hour weather outlook for a farm location from the
OpenWeatherMap 5-day/3-hour forecast endpoint.

Features:
- Bounded request timeout; never blocks a caller indefinitely
- TTL cache keyed by rounded coordinates to minimize API calls
- Every failure surfaces as ``DependencyError(FORECAST_UNAVAILABLE)``
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests

from app.domain.exceptions import DependencyError
from app.domain.recommendation_engine import Forecast
from app.utils.cache import TTLCache

logger = logging.getLogger(__name__)

# The /forecast endpoint returns 3-hour steps; 8 steps cover 24 hours.
STEPS_PER_DAY = 8
MPS_TO_KPH = 3.6


class ForecastService:
    """
    Forecast provider backed by the OpenWeatherMap API.

    https://openweathermap.org/forecast5
    """

    DEFAULT_API_URL = "https://api.openweathermap.org/data/2.5"

    def __init__(
        self,
        api_key: Optional[str],
        *,
        api_url: str = DEFAULT_API_URL,
        timeout_seconds: float = 5.0,
        cache_minutes: float = 5,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the forecast service.

        Args:
            api_key: OpenWeatherMap API key; without one every lookup fails fast
            api_url: Base API URL (without the ``/forecast`` suffix)
            timeout_seconds: Per-request timeout
            cache_minutes: How long a successful forecast is reused
            session: Optional ``requests.Session`` (tests inject a mock)
        """
        self.api_key = api_key
        self.api_url = api_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._session = session or requests.Session()
        self._cache = TTLCache(ttl_seconds=cache_minutes * 60, maxsize=256)

        logger.info("ForecastService initialized (url=%s, timeout=%ss)", self.api_url, timeout_seconds)

    def get_forecast(self, latitude: float, longitude: float) -> Forecast:
        """
        Return the next-24h outlook for a location.

        Raises:
            DependencyError: provider unreachable, misconfigured or returned
                an unusable payload.
        """
        cache_key = (round(latitude, 2), round(longitude, 2))
        return self._cache.get(cache_key, lambda: self._fetch(latitude, longitude))

    def cache_stats(self) -> Dict[str, Any]:
        return self._cache.get_stats()

    def _fetch(self, latitude: float, longitude: float) -> Forecast:
        if not self.api_key:
            raise DependencyError(
                "Weather API key not configured", code=DependencyError.FORECAST_UNAVAILABLE
            )

        params = {
            "lat": latitude,
            "lon": longitude,
            "appid": self.api_key,
            "units": "metric",
        }
        try:
            response = self._session.get(
                f"{self.api_url}/forecast",
                params=params,
                timeout=self.timeout_seconds,
            )
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Forecast request failed for (%s, %s): %s", latitude, longitude, exc)
            raise DependencyError(
                "Forecast provider unavailable",
                code=DependencyError.FORECAST_UNAVAILABLE,
                detail={"latitude": latitude, "longitude": longitude},
            ) from exc

        forecast = self._parse(payload)
        logger.debug(
            "Forecast fetched for (%s, %s): %.1f°C, %.0f%% RH, %.1fmm rain",
            latitude,
            longitude,
            forecast.temperature_c,
            forecast.humidity_pct,
            forecast.rainfall_mm_next_24h,
        )
        return forecast

    @staticmethod
    def _parse(payload: Dict[str, Any]) -> Forecast:
        """Reduce the first 24 hours of 3-hour steps to a single outlook.

        Temperature is the window maximum; humidity and wind are averaged;
        rainfall is summed from each step's ``rain['3h']``.
        """
        steps: List[Dict[str, Any]] = list(payload.get("list") or [])[:STEPS_PER_DAY]
        if not steps:
            raise DependencyError(
                "Forecast payload contained no entries", code=DependencyError.FORECAST_UNAVAILABLE
            )
        try:
            temperatures = [float(step["main"]["temp"]) for step in steps]
            humidities = [float(step["main"]["humidity"]) for step in steps]
            winds = [float((step.get("wind") or {}).get("speed", 0.0)) * MPS_TO_KPH for step in steps]
            rainfall = sum(float((step.get("rain") or {}).get("3h", 0.0)) for step in steps)
        except (KeyError, TypeError, ValueError) as exc:
            raise DependencyError(
                "Malformed forecast payload", code=DependencyError.FORECAST_UNAVAILABLE
            ) from exc

        return Forecast(
            temperature_c=round(max(temperatures), 1),
            humidity_pct=round(sum(humidities) / len(humidities), 1),
            wind_kph=round(sum(winds) / len(winds), 1),
            rainfall_mm_next_24h=round(rainfall, 1),
        )
