"""HTTP handler for health checks and Prometheus metrics."""

from __future__ import annotations

import json
import logging
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlparse

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest

logger = logging.getLogger(__name__)

ReadinessCheck = Callable[[], bool]


class HealthRequestHandler(BaseHTTPRequestHandler):
    """Serves liveness, readiness and metrics.

    Liveness always answers 200 while the process can serve requests.
    Readiness answers 200 only when every check passes, 503 otherwise; the
    body lists each check and its result.
    """

    # These will be set by the server
    registry: Optional[CollectorRegistry] = None
    checks: Dict[str, ReadinessCheck] = {}
    live_path: str = "/livez"
    ready_path: str = "/readyz"
    metrics_path: str = "/metrics"

    def do_GET(self):
        path = urlparse(self.path).path
        if path == self.live_path:
            return self._send_json({"status": "ok"})
        if path == self.ready_path:
            return self._handle_ready()
        if path == self.metrics_path:
            return self._handle_metrics()
        self.send_error(HTTPStatus.NOT_FOUND, "Unknown endpoint")

    def _handle_ready(self):
        results = {}
        for name, check in self.checks.items():
            try:
                results[name] = bool(check())
            except Exception as exc:  # a failing check means not ready
                logger.warning(f"[health] readiness check {name} raised: {exc!r}")
                results[name] = False
        ready = all(results.values())
        payload = {
            "status": "ok" if ready else "unavailable",
            "checks": [{"name": k, "ok": v} for k, v in sorted(results.items())],
        }
        self._send_json(payload, status_code=HTTPStatus.OK if ready else HTTPStatus.SERVICE_UNAVAILABLE)

    def _handle_metrics(self):
        if self.registry is None:
            self.send_error(HTTPStatus.SERVICE_UNAVAILABLE, "Metrics not initialized.")
            return
        body = generate_latest(self.registry)
        self.send_response(HTTPStatus.OK)
        self.send_header("Content-Type", CONTENT_TYPE_LATEST)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _send_json(self, data: Any, *, status_code: HTTPStatus = HTTPStatus.OK):
        body = json.dumps(data).encode("utf-8")
        self.send_response(status_code)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Cache-Control", "no-store, max-age=0")
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format, *args):
        logger.debug(f"[health] {self.address_string()} {format % args}")
