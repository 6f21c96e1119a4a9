"""Structured, one-line JSON logging of served HTTP requests."""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from typing import Any

_NANOS_PER_SECOND = 10**9
_ONE_MINUTE = 60


def format_latency(seconds: float) -> str:
    """Format a duration in seconds the compact way, e.g. ``1m30s`` or ``1.5ms``."""
    nanos = round(seconds * _NANOS_PER_SECOND)
    sign = "-" if nanos < 0 else ""
    value = abs(nanos)
    if value == 0:
        return "0s"
    if value < 1_000:
        return f"{sign}{value}ns"
    if value < 1_000_000:
        return sign + _with_fraction(value, 3) + "\u00b5s"
    if value < _NANOS_PER_SECOND:
        return sign + _with_fraction(value, 6) + "ms"

    whole_seconds, frac_nanos = divmod(value, _NANOS_PER_SECOND)
    text = _with_fraction(whole_seconds % 60 * _NANOS_PER_SECOND + frac_nanos, 9) + "s"
    minutes = whole_seconds // 60
    if minutes:
        text = f"{minutes % 60}m" + text
        hours = minutes // 60
        if hours:
            text = f"{hours}h" + text
    return sign + text


def _with_fraction(value: int, precision: int) -> str:
    whole, frac = divmod(value, 10**precision)
    digits = f"{frac:0{precision}d}".rstrip("0")
    return f"{whole}.{digits}" if digits else str(whole)


@dataclass
class RequestRecord:
    """What was observed about one served request.

    ``latency`` is in seconds; ``body_size`` is -1 when no body was written.
    """

    method: str
    path: str
    status_code: int
    client_ip: str = ""
    query: str = ""
    body_size: int = -1
    latency: float = 0.0
    error_message: str = ""

    def fields(self) -> dict[str, Any]:
        """Return the logged fields, in their logged order."""
        latency = self.latency
        if latency > _ONE_MINUTE:
            latency = float(math.trunc(latency))
        path = f"{self.path}?{self.query}" if self.query else self.path
        return {
            "client_id": self.client_ip,
            "method": self.method,
            "status_code": self.status_code,
            "body_size": self.body_size,
            "path": path,
            "latency": format_latency(latency),
        }

    def log(self, logger: logging.Logger) -> None:
        """Log the record as JSON; server errors at ERROR, the rest at INFO."""
        level = logging.ERROR if self.status_code >= 500 else logging.INFO
        payload = {**self.fields(), "message": self.error_message}
        logger.log(level, json.dumps(payload))