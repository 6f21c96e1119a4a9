"""The conscript service: enlists with its captain every interval and serves a health route."""

from __future__ import annotations

import argparse
import json
import logging
import os
import threading
import time
import urllib.error
import urllib.request
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any
from urllib.parse import urlsplit

from .httplog import RequestRecord

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 5003
DEFAULT_CAPTAIN_URL = "http://freyr-captain:5001"
ENLIST_INTERVAL = 1.0
REQUEST_TIMEOUT = 15

log = logging.getLogger(__name__)


def enlist_request(url: str) -> int:
    """Check in with the captain at ``url`` and return the HTTP status it answered.

    Raises OSError when the captain cannot be reached; an error status is
    returned rather than raised.
    """
    try:
        with urllib.request.urlopen(f"{url}/enlist", timeout=REQUEST_TIMEOUT) as response:
            status = response.status
    except urllib.error.HTTPError as exc:
        status = exc.code
    log.info("enlisted to %s - %d", url, status)
    return status


def schedule_conscription(url: str, interval: float = ENLIST_INTERVAL) -> threading.Event:
    """Enlist with ``url`` now and every ``interval`` seconds in the background.

    Returns an event; setting it stops the schedule.
    """
    stop = threading.Event()

    def run() -> None:
        while True:
            try:
                enlist_request(url)
            except OSError as exc:
                log.error("error enlisting to %s: %s", url, exc)
            if stop.wait(interval):
                return

    threading.Thread(target=run, name="conscription", daemon=True).start()
    return stop


def make_server(host: str = DEFAULT_HOST, port: int = DEFAULT_PORT) -> ThreadingHTTPServer:
    """Create (but do not start) the conscript's HTTP server."""

    class Handler(BaseHTTPRequestHandler):
        timeout = REQUEST_TIMEOUT

        def do_GET(self) -> None:
            start = time.monotonic()
            parts = urlsplit(self.path)
            if parts.path == "/":
                status = 200
                content_type = "application/json; charset=utf-8"
                body = json.dumps({"status": "okay"}).encode()
            else:
                status, content_type, body = 404, "text/plain", b"404 page not found"
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

        def log_message(self, *args: Any) -> None:
            pass

    return ThreadingHTTPServer((host, port), Handler)


def main(argv: list[str] | None = None) -> int:
    """Run the conscript service until interrupted."""
    parser = argparse.ArgumentParser(
        prog="freyr-conscript", description="Run the conscript service."
    )
    parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO)

    host = os.environ.get("HOST_NAME", DEFAULT_HOST)
    url = os.environ.get("CAPTAIN_URL", DEFAULT_CAPTAIN_URL)
    try:
        port = int(os.environ.get("HOST_PORT", DEFAULT_PORT))
    except ValueError:
        log.exception("invalid HOST_PORT")
        return 1

    stop = schedule_conscription(url, ENLIST_INTERVAL)
    server = make_server(host, port)
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