"""Open-Meteo current conditions plus the model's elevation for the point."""

from __future__ import annotations

import logging
from typing import Any

from placelens import config
from placelens.adapters.base import HttpAdapter, to_float
from placelens.errors import AdapterUnavailable
from placelens.models import Coordinate, WeatherReading

logger = logging.getLogger(__name__)

# WMO weather interpretation codes.
WEATHER_CODES: dict[int, str] = {
    0: "Clear sky",
    1: "Mainly clear",
    2: "Partly cloudy",
    3: "Overcast",
    45: "Fog",
    48: "Depositing rime fog",
    51: "Light drizzle",
    53: "Moderate drizzle",
    55: "Dense drizzle",
    56: "Light freezing drizzle",
    57: "Dense freezing drizzle",
    61: "Slight rain",
    63: "Moderate rain",
    65: "Heavy rain",
    66: "Light freezing rain",
    67: "Heavy freezing rain",
    71: "Slight snowfall",
    73: "Moderate snowfall",
    75: "Heavy snowfall",
    77: "Snow grains",
    80: "Slight rain showers",
    81: "Moderate rain showers",
    82: "Violent rain showers",
    85: "Slight snow showers",
    86: "Heavy snow showers",
    95: "Thunderstorm",
    96: "Thunderstorm with slight hail",
    99: "Thunderstorm with heavy hail",
}


def parse_forecast(data: Any) -> WeatherReading:
    if not isinstance(data, dict) or data.get("error"):
        raise AdapterUnavailable("open_meteo", str(data.get("reason")) if isinstance(data, dict) else "unexpected payload")
    current = data.get("current") or {}
    code = to_float(current.get("weather_code"))
    code_int = int(code) if code is not None else None
    return WeatherReading(
        temperature_c=to_float(current.get("temperature_2m")),
        wind_kph=to_float(current.get("wind_speed_10m")),
        precipitation_mm=to_float(current.get("precipitation")),
        weather_code=code_int,
        description=WEATHER_CODES.get(code_int) if code_int is not None else None,
        observed_at=current.get("time") if isinstance(current.get("time"), str) else None,
        elevation_m=to_float(data.get("elevation")),
    )


class WeatherService(HttpAdapter):
    name = "open_meteo"

    def __init__(self, url: str = config.OPEN_METEO_URL, **kwargs: Any):
        super().__init__(**kwargs)
        self.url = url

    async def fetch(self, center: Coordinate, radius_m: int = 0) -> WeatherReading:
        data = await self._get_json(
            self.url,
            params={
                "latitude": center.lat,
                "longitude": center.lon,
                "current": "temperature_2m,wind_speed_10m,precipitation,weather_code",
                "temperature_unit": "celsius",
                "wind_speed_unit": "kmh",
                "precipitation_unit": "mm",
                "timezone": "auto",
            },
        )
        return parse_forecast(data)
