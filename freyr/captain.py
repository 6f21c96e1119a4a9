"""The captain service: tracks enlisted conscripts and reports the target count."""

from __future__ import annotations

import argparse
import html
import json
import logging
import os
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any
from urllib.parse import urlsplit

from .httplog import RequestRecord
from .spec import OperatorSpec, parse_operator_spec
from .trig import TrigArgs, get_value, render_chart

METRIC_CONSCRIPTS_TARGET = "conscripts.target"
METRIC_CONSCRIPTS_ACTUAL = "conscripts.actual"
METRIC_CONSCRIPTS_UNIQUE = "conscripts.unique"
METRIC_UNIT = "{conscripts}"
METRIC_DESCRIPTIONS = {
    METRIC_CONSCRIPTS_TARGET: "The target number of conscripts",
    METRIC_CONSCRIPTS_ACTUAL: "The actual number of conscripts",
    METRIC_CONSCRIPTS_UNIQUE: "The unique number of conscripts",
}

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 5001
STALE_AFTER = timedelta(seconds=3)
TARGET_ERROR = "error calculating the target conscripts"
REQUEST_TIMEOUT = 15

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Conscript:
    """An enlisted conscript and when it last checked in."""

    ip: str
    last_seen: datetime


class CaptainMetrics:
    """The captain's gauges for target and actual counts and its unique counter."""

    def __init__(
        self,
        target_callback: Callable[[], float],
        actual_callback: Callable[[], int],
    ) -> None:
        self._target_callback = target_callback
        self._actual_callback = actual_callback
        self._unique = 0
        self._lock = threading.Lock()

    def inc_unique(self) -> None:
        """Count one more conscript never seen before."""
        with self._lock:
            self._unique += 1

    def observe(self) -> dict[str, int]:
        """Read every metric, calling the gauge callbacks."""
        target = int(self._target_callback())
        log.info("target observable %d", target)
        with self._lock:
            unique = self._unique
        return {
            METRIC_CONSCRIPTS_TARGET: target,
            METRIC_CONSCRIPTS_ACTUAL: int(self._actual_callback()),
            METRIC_CONSCRIPTS_UNIQUE: unique,
        }


def _format_time(moment: datetime) -> str:
    text = moment.isoformat()
    if "." in text:
        head, _, rest = text.partition(".")
        digits = rest.rstrip("+-Z:0123456789")
        fraction = rest[: len(rest) - len(rest.lstrip("0123456789"))]
        offset = rest[len(fraction):]
        fraction = fraction.rstrip("0")
        text = head + ("." + fraction if fraction else "") + digits + offset
    if text.endswith("+00:00"):
        text = text[: -len("+00:00")] + "Z"
    return text


def _now() -> datetime:
    return datetime.now().astimezone()


class CaptainController:
    """Keeps the conscript roster and answers the captain's HTTP routes."""

    def __init__(
        self,
        spec: OperatorSpec,
        *,
        name: str = "",
        namespace: str = "",
        stale_after: timedelta = STALE_AFTER,
    ) -> None:
        self.spec = spec
        self.name = name
        self.namespace = namespace
        self.stale_after = stale_after
        self._conscripts: dict[str, Conscript] = {}
        self._lock = threading.Lock()
        self.metrics = CaptainMetrics(self._metric_target, lambda: len(self.conscripts))
        log.info("operator spec: %s", spec)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> CaptainController:
        """Build a controller from OPERATOR_CONFIG, NAME and NAMESPACE."""
        env = os.environ if environ is None else environ
        spec = parse_operator_spec(env.get("OPERATOR_CONFIG", ""))
        return cls(spec, name=env.get("NAME", ""), namespace=env.get("NAMESPACE", ""))

    @property
    def conscripts(self) -> dict[str, Conscript]:
        """A snapshot of the roster, keyed by remote address."""
        with self._lock:
            return dict(self._conscripts)

    def _trig_args(self) -> TrigArgs:
        trig = self.spec.trig
        return TrigArgs(duration=trig.duration, min=trig.min, max=trig.max)

    def _metric_target(self) -> float:
        try:
            return get_value(self._trig_args())
        except ValueError:
            return 0.0

    def enlist(self, remote_addr: str, now: datetime | None = None) -> bool:
        """Record a check-in; return True if the address was not on the roster."""
        log.info("enlisting %s", remote_addr)
        moment = now or _now()
        with self._lock:
            is_new = remote_addr not in self._conscripts
            self._conscripts[remote_addr] = Conscript(ip=remote_addr, last_seen=moment)
        if is_new:
            self.metrics.inc_unique()
        return is_new

    def _last_seen(self) -> dict[str, str]:
        return {key: _format_time(c.last_seen) for key, c in self.conscripts.items()}

    def docket(self, now: datetime | None = None) -> dict[str, Any]:
        """Return the JSON docket; raise ValueError if the target cannot be computed."""
        try:
            target = int(get_value(self._trig_args(), now))
        except ValueError as exc:
            raise ValueError(TARGET_ERROR) from exc
        roster = self._last_seen()
        data: dict[str, Any] = {"operator": self.spec.to_dict()}
        if self.name:
            data["name"] = self.name
            data["namespace"] = self.name
        data["conscripts"] = roster
        if target:
            data["target"] = target
        data["actual"] = len(roster)
        return data

    def docket_page(self, now: datetime | None = None) -> str:
        """Return the docket as an HTML page, with the wave chart in trig mode."""
        roster = self.conscripts
        target = 0
        chart = ""
        if self.spec.mode == "trig":
            args = self._trig_args()
            try:
                target = int(get_value(args, now))
            except ValueError:
                target = 0
            chart = render_chart(args, now)
        rows = "".join(
            f"<tr><td>{html.escape(key)}</td>"
            f"<td>{c.last_seen.strftime('%H:%M:%S')}</td></tr>"
            for key, c in sorted(roster.items())
        )
        return (
            "<!DOCTYPE html><html><head><title>Docket</title></head><body>"
            f"<h1>{html.escape(self.name)}</h1>"
            f"<p>Namespace: {html.escape(self.namespace)}</p>"
            f"<p>Mode: {html.escape(self.spec.mode)}</p>"
            f"<p>Target: {target}</p>"
            f"<p>Actual: {len(roster)}</p>"
            f"<pre>{html.escape(chart)}</pre>"
            f"<table>{rows}</table>"
            "</body></html>"
        )

    def purge_conscripts(self, now: datetime | None = None) -> list[str]:
        """Drop conscripts unseen for longer than the stale period; return their keys."""
        moment = now or _now()
        with self._lock:
            stale = [
                key
                for key, c in self._conscripts.items()
                if moment - c.last_seen > self.stale_after
            ]
            for key in stale:
                log.debug("purging %s", key)
                del self._conscripts[key]
        return stale

    def run_purger(self, stop_event: threading.Event) -> None:
        """Purge stale conscripts every stale period until ``stop_event`` is set."""
        while True:
            self.purge_conscripts()
            if stop_event.wait(self.stale_after.total_seconds()):
                return


def _remote_addr(client_address: tuple[Any, ...]) -> str:
    host, port = client_address[0], client_address[1]
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def make_server(
    controller: CaptainController, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT
) -> ThreadingHTTPServer:
    """Create (but do not start) the captain's HTTP server."""

    class Handler(BaseHTTPRequestHandler):
        timeout = REQUEST_TIMEOUT

        def do_GET(self) -> None:
            start = time.monotonic()
            parts = urlsplit(self.path)
            status, content_type, body = self._route(parts.path)
            self.send_response(status)
            self.send_header("Content-Type", content_type)
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)
            RequestRecord(
                method="GET",
                path=parts.path,
                query=parts.query,
                status_code=status,
                client_ip=self.client_address[0],
                body_size=len(body),
                latency=time.monotonic() - start,
            ).log(log)

        def _route(self, path: str) -> tuple[int, str, bytes]:
            if path == "/":
                page = controller.docket_page()
                return 200, "text/html; charset=utf-8", page.encode()
            if path == "/enlist":
                controller.enlist(_remote_addr(self.client_address))
                return 200, "text/plain; charset=utf-8", b""
            if path == "/conscripts":
                try:
                    payload: Any = controller.docket()
                    status = 200
                except ValueError as exc:
                    payload, status = {"Message": str(exc)}, 500
                return status, "application/json; charset=utf-8", json.dumps(payload).encode()
            return 404, "text/plain", b"404 page not found"

        def log_message(self, *args: Any) -> None:
            pass

    return ThreadingHTTPServer((host, port), Handler)


def main(argv: list[str] | None = None) -> int:
    """Run the captain service until interrupted."""
    parser = argparse.ArgumentParser(prog="freyr-captain", description="Run the captain service.")
    parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO)

    host = os.environ.get("HOST_NAME", DEFAULT_HOST)
    try:
        port = int(os.environ.get("HOST_PORT", DEFAULT_PORT))
        controller = CaptainController.from_env()
    except ValueError:
        log.exception("error creating captain controller")
        return 1

    stop = threading.Event()
    purger = threading.Thread(target=controller.run_purger, args=(stop,), daemon=True)
    purger.start()

    server = make_server(controller, host, port)
    log.info("serving @ %s:%d", host, port)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        log.info("Shutdown event received")
    finally:
        stop.set()
        server.server_close()
    log.info("gracefully shut down")
    return 0