"""Reconciliation of ship resources against the objects they own."""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from .openweather import LatLonTemp, Location, OpenWeatherError, get_temp_by_country
from .resources import (
    captain_deployment,
    captain_service,
    captain_url,
    config_map_for,
    conscript_deployment,
)
from .spec import Ship
from .trig import TrigArgs, get_value

SHIP = "Ship"
CONFIG_MAP = "ConfigMap"
DEPLOYMENT = "Deployment"
SERVICE = "Service"
RESTARTED_AT = "kubectl.kubernetes.io/restartedAt"

log = logging.getLogger(__name__)

WeatherLookup = Callable[[str, Location], LatLonTemp]


class NotFoundError(LookupError):
    """The requested object does not exist."""

    def __init__(self, kind: str, namespace: str, name: str) -> None:
        super().__init__(f'{kind} "{namespace}/{name}" not found')
        self.kind = kind
        self.namespace = namespace
        self.name = name


def _identity(obj: Any) -> tuple[str, str]:
    if isinstance(obj, Mapping):
        metadata = obj.get("metadata") or {}
        return metadata.get("namespace", ""), metadata.get("name", "")
    return obj.namespace, obj.name


class InMemoryClient:
    """An object store keyed by kind, namespace and name.

    Objects are copied on the way in and on the way out, so callers never
    share state with the store.
    """

    def __init__(self) -> None:
        self._objects: dict[tuple[str, str, str], Any] = {}

    def get(self, kind: str, namespace: str, name: str) -> Any:
        """Return a copy of the stored object; raise NotFoundError if absent."""
        try:
            return copy.deepcopy(self._objects[(kind, namespace, name)])
        except KeyError:
            raise NotFoundError(kind, namespace, name) from None

    def create(self, kind: str, obj: Any) -> None:
        """Store a new object; raise ValueError if one already has its name."""
        namespace, name = _identity(obj)
        key = (kind, namespace, name)
        if key in self._objects:
            raise ValueError(f'{kind} "{namespace}/{name}" already exists')
        self._objects[key] = copy.deepcopy(obj)

    def update(self, kind: str, obj: Any) -> None:
        """Replace an existing object; raise NotFoundError if absent."""
        namespace, name = _identity(obj)
        key = (kind, namespace, name)
        if key not in self._objects:
            raise NotFoundError(kind, namespace, name)
        self._objects[key] = copy.deepcopy(obj)

    def delete(self, kind: str, namespace: str, name: str) -> None:
        """Remove an object; raise NotFoundError if absent."""
        try:
            del self._objects[(kind, namespace, name)]
        except KeyError:
            raise NotFoundError(kind, namespace, name) from None


@dataclass(frozen=True)
class Request:
    """The ship to reconcile."""

    name: str
    namespace: str


@dataclass(frozen=True)
class Result:
    """Outcome of one reconciliation."""

    requeue: bool = False
    requeue_after: float = 0.0


def _rfc3339(moment: datetime) -> str:
    text = moment.isoformat(timespec="seconds")
    if moment.utcoffset() is not None and not moment.utcoffset():
        text = text[: -len("+00:00")] + "Z"
    return text


class ShipReconciler:
    """Drives the objects owned by a ship towards its spec, one step per call."""

    def __init__(
        self,
        client: InMemoryClient,
        *,
        weather_lookup: WeatherLookup = get_temp_by_country,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.client = client
        self.weather_lookup = weather_lookup
        self.clock = clock or (lambda: datetime.now().astimezone())

    def reconcile(self, request: Request) -> Result:
        """Make one step of progress; raises on errors the caller should retry."""
        namespace = request.namespace
        if not namespace:
            raise ValueError("namespace is empty")

        try:
            ship: Ship = self.client.get(SHIP, namespace, request.name)
        except NotFoundError:
            log.info("Ship resource not deployed. Ignoring since object must be deleted")
            return Result()

        log.info("Reconciling Ship")
        url = captain_url(ship)
        operator_config = ship.spec.to_json()

        try:
            config_map = self.client.get(CONFIG_MAP, namespace, f"{ship.name}-config")
        except NotFoundError:
            self.client.create(CONFIG_MAP, config_map_for(ship, operator_config))
            log.info("Created a new ConfigMap")
            return Result()

        try:
            captain = self.client.get(DEPLOYMENT, namespace, f"{ship.name}-captain")
        except NotFoundError:
            log.info("Creating a new Captain Deployment")
            self.client.create(DEPLOYMENT, captain_deployment(ship))
            return Result()

        try:
            self.client.get(SERVICE, ship.namespace, f"{ship.name}-svc")
        except NotFoundError:
            container = captain["spec"]["template"]["spec"]["containers"][0]
            port = container["ports"][0]["containerPort"]
            log.info("Creating a new Captain Service")
            self.client.create(SERVICE, captain_service(ship, port))
            return Result()

        try:
            conscript = self.client.get(DEPLOYMENT, namespace, f"{ship.name}-conscript")
        except NotFoundError:
            log.info("Creating a new Conscript Deployment")
            self.client.create(DEPLOYMENT, conscript_deployment(ship))
            return Result()

        data = config_map.get("data")
        if data is None:
            data = config_map["data"] = {}
        if data.get("CAPTAIN_URL") != url or data.get("OPERATOR_CONFIG") != operator_config:
            log.info("Updating ConfigMap")
            data["CAPTAIN_URL"] = url
            data["OPERATOR_CONFIG"] = operator_config
            self.client.update(CONFIG_MAP, config_map)

            template_meta = captain["spec"]["template"].setdefault("metadata", {})
            annotations = template_meta.get("annotations")
            if annotations is None:
                annotations = template_meta["annotations"] = {}
            annotations[RESTARTED_AT] = _rfc3339(self.clock())
            self.client.update(DEPLOYMENT, captain)

        if captain["spec"].get("replicas") != 1:
            captain["spec"]["replicas"] = 1
            self.client.update(DEPLOYMENT, captain)

        target = self._target_conscripts(ship, conscript)
        if conscript["spec"].get("replicas") != target:
            conscript["spec"]["replicas"] = target
            self.client.update(DEPLOYMENT, conscript)

        return Result()

    def _target_conscripts(self, ship: Ship, conscript: Mapping[str, Any]) -> int:
        target = 1
        spec = ship.spec
        if spec.mode == "weather":
            location = Location(country=spec.weather.country, city=spec.weather.city)
            try:
                target = self.weather_lookup(spec.weather.api_key, location).temp
            except OpenWeatherError:
                log.exception("Failed to retrieve weather")
                target = 0
            log.info("Reconciling Weather mode: conscripts=%d", target)
        elif spec.mode == "trig":
            args = TrigArgs(spec.trig.duration, spec.trig.min, spec.trig.max)
            try:
                target = int(get_value(args, self.clock()))
            except ValueError:
                log.exception("Failed to retrieve trig value")
            log.info(
                "Reconciling Trig mode: target=%d actual=%s duration=%s min=%d max=%d",
                target,
                conscript["spec"].get("replicas"),
                spec.trig.duration,
                spec.trig.min,
                spec.trig.max,
            )
        return target


def ignore_replicas_only_update(old: Any, new: Any) -> bool:
    """Return False when two deployments differ only in their replica count."""
    if not all(
        isinstance(obj, Mapping) and obj.get("kind") == DEPLOYMENT for obj in (old, new)
    ):
        return True
    old_spec = copy.deepcopy(dict(old.get("spec") or {}))
    new_spec = copy.deepcopy(dict(new.get("spec") or {}))
    old_spec.pop("replicas", None)
    new_spec.pop("replicas", None)
    return old_spec != new_spec