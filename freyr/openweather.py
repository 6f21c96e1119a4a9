"""Temperature lookup for a city through the OpenWeather HTTP API."""

from __future__ import annotations

import json
import urllib.error
import urllib.request
from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import Any

GEOCODE_URL = "http://api.openweathermap.org/geo/1.0/direct?q={city},{country}&limit=5&appid={api_key}"
WEATHER_URL = (
    "https://api.openweathermap.org/data/2.5/weather"
    "?lat={lat:f}&lon={lon:f}&exclude=hourly,daily&appid={api_key}&units=metric"
)


class OpenWeatherError(Exception):
    """The weather service could not be reached or gave an unusable answer."""


@dataclass(frozen=True)
class Location:
    """A city within a country."""

    country: str
    city: str


@dataclass(frozen=True)
class LatLonTemp:
    """Coordinates and, once looked up, the temperature in whole degrees."""

    lat: float
    lon: float
    temp: int = 0


def get_lat_lon(api_key: str, location: Location) -> LatLonTemp:
    """Resolve a location to the coordinates of its first geocoding match."""
    url = GEOCODE_URL.format(city=location.city, country=location.country, api_key=api_key)
    data = _fetch_json(url)
    if not isinstance(data, list):
        raise OpenWeatherError("unexpected geocoding response")
    if not data:
        raise OpenWeatherError(f"no geocoding result for {location.city},{location.country}")
    first = data[0]
    if not isinstance(first, Mapping):
        raise OpenWeatherError("unexpected geocoding response")
    return LatLonTemp(lat=_number(first, "lat"), lon=_number(first, "lon"))


def get_temp(api_key: str, coords: LatLonTemp) -> LatLonTemp:
    """Return ``coords`` with the current temperature, truncated to an integer."""
    url = WEATHER_URL.format(lat=coords.lat, lon=coords.lon, api_key=api_key)
    data = _fetch_json(url)
    if not isinstance(data, Mapping):
        raise OpenWeatherError("unexpected weather response")
    main = data.get("main")
    if main is None:
        main = {}
    if not isinstance(main, Mapping):
        raise OpenWeatherError("unexpected weather response")
    return replace(coords, temp=int(_number(main, "temp")))


def get_temp_by_country(api_key: str, location: Location) -> LatLonTemp:
    """Look up a location's coordinates and then its current temperature."""
    return get_temp(api_key, get_lat_lon(api_key, location))


def _fetch_json(url: str) -> Any:
    try:
        with urllib.request.urlopen(url) as response:
            body = response.read()
    except urllib.error.HTTPError as exc:
        body = exc.read()
    except (urllib.error.URLError, OSError) as exc:
        raise OpenWeatherError(f"weather service request failed: {exc}") from exc
    try:
        return json.loads(body)
    except ValueError as exc:
        raise OpenWeatherError("weather service returned invalid JSON") from exc


def _number(data: Mapping[str, Any], key: str) -> float:
    value = data.get(key)
    if value is None:
        return 0.0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise OpenWeatherError(f"field {key!r} is not a number")
    return float(value)