"""Ship and operator specification types with their JSON forms."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, ClassVar

GROUP = "freyr.fmtl.au"
VERSION = "v1alpha1"
API_VERSION = f"{GROUP}/{VERSION}"
KIND = "Ship"

_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1

# JSON field name under which the weather service account is stored.
_APPID_FIELD = "apiKey"

_JSON_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


@dataclass
class WeatherMode:
    """Where to look up the temperature that drives the conscript count."""

    country: str = ""
    city: str = ""
    api_key: str = ""


@dataclass
class TrigMode:
    """A sine wave of the given period between ``min`` and ``max``."""

    duration: str = ""
    min: int = 0
    max: int = 0


@dataclass
class PodSpec:
    """Image and extra environment for one of the managed workloads."""

    image: str = ""
    env_vars: dict[str, str] | None = None


@dataclass
class OperatorSpec:
    """The part of a ship's spec that the captain service reads."""

    mode: str = ""
    weather: WeatherMode = field(default_factory=WeatherMode)
    trig: TrigMode = field(default_factory=TrigMode)

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON object form, leaving out empty scalar fields."""
        data: dict[str, Any] = {}
        if self.mode:
            data["mode"] = self.mode
        data["weather"] = _weather_dict(self.weather)
        data["trig"] = _trig_dict(self.trig)
        return data


@dataclass
class ShipSpec:
    """Desired state of a ship."""

    mode: str = ""
    weather: WeatherMode = field(default_factory=WeatherMode)
    trig: TrigMode = field(default_factory=TrigMode)
    captain: PodSpec = field(default_factory=PodSpec)
    conscript: PodSpec = field(default_factory=PodSpec)
    env_vars: dict[str, str] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON object form, leaving out empty scalar fields."""
        data: dict[str, Any] = {}
        if self.mode:
            data["mode"] = self.mode
        data["weather"] = _weather_dict(self.weather)
        data["trig"] = _trig_dict(self.trig)
        data["captain"] = _pod_dict(self.captain)
        data["conscript"] = _pod_dict(self.conscript)
        data["envs"] = _sorted_map(self.env_vars)
        return data

    def to_json(self) -> str:
        """Return compact JSON with sorted map keys and HTML-safe escapes."""
        text = json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=False)
        return "".join(_JSON_ESCAPES.get(char, char) for char in text)


@dataclass
class Ship:
    """A ship resource: its identity and its spec."""

    api_version: ClassVar[str] = API_VERSION
    kind: ClassVar[str] = KIND

    name: str = ""
    namespace: str = ""
    spec: ShipSpec = field(default_factory=ShipSpec)
    uid: str = ""


def parse_operator_spec(text: str | bytes) -> OperatorSpec:
    """Parse the operator configuration JSON; unknown keys are ignored."""
    try:
        data = json.loads(text)
        if data is None:
            return OperatorSpec()
        if not isinstance(data, Mapping):
            raise ValueError("operator config must be a JSON object")
        return OperatorSpec(
            mode=_string(data, "mode"),
            weather=_weather_from(_section(data, "weather")),
            trig=_trig_from(_section(data, "trig")),
        )
    except (ValueError, TypeError) as exc:
        raise ValueError("error unmarshalling operator config") from exc


def ship_spec_from_dict(data: Mapping[str, Any]) -> ShipSpec:
    """Build a ShipSpec from its JSON object form."""
    if not isinstance(data, Mapping):
        raise ValueError("ship spec must be an object")
    return ShipSpec(
        mode=_string(data, "mode"),
        weather=_weather_from(_section(data, "weather")),
        trig=_trig_from(_section(data, "trig")),
        captain=_pod_from(_section(data, "captain")),
        conscript=_pod_from(_section(data, "conscript")),
        env_vars=_string_map(data, "envs"),
    )


def _weather_dict(weather: WeatherMode) -> dict[str, Any]:
    pairs = (("country", weather.country), ("city", weather.city), (_APPID_FIELD, weather.api_key))
    return {key: value for key, value in pairs if value}


def _trig_dict(trig: TrigMode) -> dict[str, Any]:
    pairs = (("duration", trig.duration), ("min", trig.min), ("max", trig.max))
    return {key: value for key, value in pairs if value}


def _pod_dict(pod: PodSpec) -> dict[str, Any]:
    data: dict[str, Any] = {}
    if pod.image:
        data["image"] = pod.image
    data["envs"] = _sorted_map(pod.env_vars)
    return data


def _sorted_map(values: dict[str, str] | None) -> dict[str, str] | None:
    if values is None:
        return None
    return {key: values[key] for key in sorted(values)}


def _weather_from(data: Mapping[str, Any]) -> WeatherMode:
    return WeatherMode(
        country=_string(data, "country"),
        city=_string(data, "city"),
        api_key=_string(data, _APPID_FIELD),
    )


def _trig_from(data: Mapping[str, Any]) -> TrigMode:
    return TrigMode(
        duration=_string(data, "duration"),
        min=_int32(data, "min"),
        max=_int32(data, "max"),
    )


def _pod_from(data: Mapping[str, Any]) -> PodSpec:
    return PodSpec(image=_string(data, "image"), env_vars=_string_map(data, "envs"))


def _section(data: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ValueError(f"field {key!r} must be an object")
    return value


def _string(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} must be a string")
    return value


def _int32(data: Mapping[str, Any], key: str) -> int:
    value = data.get(key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"field {key!r} must be an integer")
    if not _INT32_MIN <= value <= _INT32_MAX:
        raise ValueError(f"field {key!r} overflows a 32-bit integer")
    return value


def _string_map(data: Mapping[str, Any], key: str) -> dict[str, str] | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, Mapping):
        raise ValueError(f"field {key!r} must be an object")
    result: dict[str, str] = {}
    for name, item in value.items():
        if not isinstance(item, str):
            raise ValueError(f"value of {key!r}[{name!r}] must be a string")
        result[str(name)] = item
    return result