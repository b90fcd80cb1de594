"""Current weather lookup for a map location via Open-Meteo."""
import logging

import requests

from models.chat import GeoLocation
from models.map import WeatherSnapshot
from utils.constants import WEATHER_API_URL

logger = logging.getLogger(__name__)

WEATHER_CODES = {
    0: "Clear sky",
    1: "Mainly clear",
    2: "Partly cloudy",
    3: "Overcast",
    45: "Foggy",
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
    71: "Slight snow",
    73: "Moderate snow",
    75: "Heavy snow",
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


class WeatherLookupError(Exception):
    """The weather provider could not be reached or answered garbage."""


def describe_weather_code(code: int) -> str:
    """Convert WMO weather code to human-readable description."""
    return WEATHER_CODES.get(code, "Unknown conditions")


def _precipitation_chance(data: dict) -> float:
    """Precipitation probability of the hour matching the current reading."""
    hourly = data.get("hourly") or {}
    times = hourly.get("time") or []
    chances = hourly.get("precipitation_probability") or []
    current_time = (data.get("current") or {}).get("time")
    if not isinstance(current_time, str) or not current_time:
        return 0.0
    current_hour = current_time[:13]
    for time_value, chance in zip(times, chances):
        if not isinstance(time_value, str):
            continue
        if time_value[:13] == current_hour and chance is not None:
            return float(chance)
    return 0.0


def lookup_weather(location: GeoLocation, timeout: float = 10.0) -> WeatherSnapshot:
    """Fetch the current weather for an already validated location.

    Raises:
        WeatherLookupError: On transport errors, non-200 answers or missing fields.
    """
    params = {
        "latitude": location.lat,
        "longitude": location.lng,
        "current": "temperature_2m,weather_code,wind_speed_10m,relative_humidity_2m,surface_pressure",
        "hourly": "precipitation_probability",
        "timezone": "auto",
        "forecast_days": 1,
    }
    try:
        response = requests.get(WEATHER_API_URL, params=params, timeout=timeout)
    except requests.RequestException as exc:
        logger.warning("Weather request failed for %s,%s: %s", location.lat, location.lng, exc)
        raise WeatherLookupError("Weather data unavailable") from exc

    if response.status_code != 200:
        logger.warning("Weather API returned %d", response.status_code)
        raise WeatherLookupError("Weather data unavailable")

    try:
        data = response.json()
    except ValueError as exc:
        raise WeatherLookupError("Weather data unavailable") from exc
    current = data.get("current") if isinstance(data, dict) else None
    if not current:
        raise WeatherLookupError("Weather data unavailable")

    try:
        code = int(current["weather_code"])
        return WeatherSnapshot(
            location=location,
            temperature=current["temperature_2m"],
            weatherCode=code,
            description=describe_weather_code(code),
            windSpeed=current["wind_speed_10m"],
            humidity=current["relative_humidity_2m"],
            pressure=current.get("surface_pressure"),
            precipitationChance=_precipitation_chance(data),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise WeatherLookupError("Weather data unavailable") from exc
