"""Lightweight HTTP surface for the news service.

Endpoints:
- GET /news?category=&limit=  - ranked articles as JSON
- GET /feeds                  - feed catalog with breaker state
- GET /health                 - service status (200 ok, 503 degraded)
- GET /health/ping            - plain "ok" for uptime monitors

Requests are served by the stdlib ``ThreadingHTTPServer``; every call into
the async service is submitted to one background event loop owned by an
:class:`~finfeed.utils.event_loop_manager.EventLoopManager`.

Usage:
    server = start_health_server(NewsService(), port=8080)
"""

from __future__ import annotations

import json
import threading
from datetime import datetime, timezone
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Dict, Optional, Type
from urllib.parse import parse_qs, urlparse

from .config import get_settings
from .logging_utils import get_logger
from .service import NewsService
from .utils.event_loop_manager import EventLoopManager

log = get_logger(__name__)

REQUEST_TIMEOUT_SECS = 120.0


class NewsRequestHandler(BaseHTTPRequestHandler):
    """HTTP request handler; ``service`` and ``loop`` are bound per server."""

    service: NewsService
    loop: EventLoopManager

    def log_message(self, format, *args):
        """Suppress default HTTP server logging to avoid noise."""

    def do_GET(self):
        parsed = urlparse(self.path)
        route = parsed.path.rstrip("/") or "/"
        query = parse_qs(parsed.query)
        if route == "/health/ping":
            self._handle_ping()
        elif route == "/health":
            self._handle_health()
        elif route == "/news":
            self._handle_news(query)
        elif route == "/feeds":
            self._handle_feeds()
        elif route == "/":
            self._handle_root()
        else:
            self._send_json(404, {"error": "Not Found"})

    def _send_json(
        self, status: int, body: Dict[str, Any], headers: Optional[Dict[str, str]] = None
    ) -> None:
        payload = json.dumps(body, indent=2).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(payload)))
        for key, value in (headers or {}).items():
            self.send_header(key, value)
        self.end_headers()
        self.wfile.write(payload)

    def _handle_root(self):
        self.send_response(200)
        self.send_header("Content-Type", "text/plain")
        self.end_headers()
        self.wfile.write(
            b"finfeed news service\n"
            b"Endpoints:\n"
            b"  GET /news?category=&limit= - Ranked financial news\n"
            b"  GET /feeds                 - Feed catalog\n"
            b"  GET /health                - Service status\n"
            b"  GET /health/ping           - Simple uptime check\n"
        )

    def _handle_ping(self):
        self.send_response(200)
        self.send_header("Content-Type", "text/plain")
        self.end_headers()
        self.wfile.write(b"ok")

    def _handle_health(self):
        status = self.service.status()
        status["timestamp"] = datetime.now(timezone.utc).isoformat()
        self._send_json(200 if status["status"] == "ok" else 503, status)

    def _handle_feeds(self):
        tracker = self.service.aggregator.tracker
        feeds = [
            {
                "name": f.name,
                "url": f.url,
                "category": f.category,
                "credibility": f.credibility,
                "enabled": f.enabled,
                "breaker": tracker.state_for(f.name).value,
            }
            for f in self.service.aggregator.registry.feeds
        ]
        self._send_json(200, {"feeds": feeds, "total": len(feeds)})

    def _client_id(self) -> str:
        """Peer address, or the first X-Forwarded-For hop when trusted."""
        forwarded = self.headers.get("X-Forwarded-For")
        if forwarded and self.service.settings.trust_forwarded:
            return forwarded.split(",")[0].strip() or self.client_address[0]
        return self.client_address[0]

    def _handle_news(self, query: Dict[str, Any]):
        category = (query.get("category") or [None])[0]
        raw_limit = (query.get("limit") or ["10"])[0]
        try:
            limit = int(raw_limit)
        except (TypeError, ValueError):
            self._send_json(400, {"error": "limit must be an integer"})
            return

        client_id = self._client_id()
        try:
            resp = self.loop.run_async(
                self.service.get_news(client_id=client_id, category=category, limit=limit),
                timeout=REQUEST_TIMEOUT_SECS,
            )
        except Exception as e:
            log.error("news_handler_error err=%s", e.__class__.__name__, exc_info=True)
            self._send_json(500, {"error": "Internal server error"})
            return
        cache_secs = int(self.service.settings.cache_fresh_secs)
        self._send_json(resp.status, resp.to_dict(), resp.headers(cache_secs))


def make_handler(
    service: NewsService, loop: EventLoopManager
) -> Type[NewsRequestHandler]:
    return type(
        "BoundNewsRequestHandler",
        (NewsRequestHandler,),
        {"service": service, "loop": loop},
    )


def create_server(
    service: NewsService,
    port: int,
    host: str = "0.0.0.0",
    loop: Optional[EventLoopManager] = None,
) -> ThreadingHTTPServer:
    """Build (but do not start) a server; starts ``loop`` if needed."""
    loop = loop or EventLoopManager()
    if not loop.is_running():
        loop.start()
    server = ThreadingHTTPServer((host, port), make_handler(service, loop))
    server.daemon_threads = True
    server.loop_manager = loop  # type: ignore[attr-defined]
    return server


def start_health_server(
    service: NewsService,
    port: Optional[int] = None,
    host: str = "0.0.0.0",
) -> ThreadingHTTPServer:
    """Serve in a daemon thread and return the server.

    ``port`` defaults to HEALTH_CHECK_PORT (8080).  Call
    :func:`stop_health_server` to shut it down.
    """
    if port is None:
        port = get_settings().health_check_port
    server = create_server(service, port, host=host)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    log.info("health_server_started host=%s port=%d", host, server.server_address[1])
    return server


def stop_health_server(server: ThreadingHTTPServer) -> None:
    server.shutdown()
    server.server_close()
    loop = getattr(server, "loop_manager", None)
    if loop is not None:
        loop.stop()
    log.info("health_server_stopped")
