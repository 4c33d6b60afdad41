"""Minimal HTTP server exposing the published snapshot file verbatim."""

from __future__ import annotations

import logging
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

from prometheus_client import CONTENT_TYPE_LATEST

logger = logging.getLogger("vramtherm.server")

DEFAULT_PORT = 9500

LANDING_PAGE = (
    b"<html>"
    b"<head><title>vramtherm exporter</title></head>"
    b"<body>"
    b"<h1>vramtherm exporter</h1>"
    b"<p><a href='/metrics'>Metrics</a></p>"
    b"</body>"
    b"</html>"
)


class _SnapshotHandler(BaseHTTPRequestHandler):
    snapshot_path: Path

    def do_GET(self) -> None:  # noqa: N802
        path = self.path.split("?", 1)[0]
        if path == "/":
            self._reply(HTTPStatus.OK, LANDING_PAGE, "text/html; charset=utf-8")
        elif path == "/metrics":
            self._serve_snapshot()
        else:
            self._reply(HTTPStatus.NOT_FOUND, b"Not Found\n", "text/plain; charset=utf-8")

    def _serve_snapshot(self) -> None:
        try:
            body = self.snapshot_path.read_bytes()
        except FileNotFoundError:
            self._reply(HTTPStatus.NOT_FOUND, b"Snapshot not available\n", "text/plain; charset=utf-8")
            return
        except OSError:
            logger.error("Cannot read snapshot %s", self.snapshot_path, exc_info=True)
            self._reply(
                HTTPStatus.INTERNAL_SERVER_ERROR,
                b"Failed to read snapshot\n",
                "text/plain; charset=utf-8",
            )
            return
        self._reply(HTTPStatus.OK, body, CONTENT_TYPE_LATEST)

    def _reply(self, status: HTTPStatus, body: bytes, content_type: str) -> None:
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format: str, *args: object) -> None:  # noqa: A002
        logger.debug("%s - %s", self.address_string(), format % args)


def make_server(snapshot_path: str | Path, host: str = "0.0.0.0", port: int = DEFAULT_PORT) -> ThreadingHTTPServer:
    """Build (but do not start) a server bound to ``host:port``."""
    handler = type(
        "SnapshotHandler",
        (_SnapshotHandler,),
        {"snapshot_path": Path(snapshot_path)},
    )
    return ThreadingHTTPServer((host, port), handler)


def serve_forever(snapshot_path: str | Path, host: str = "0.0.0.0", port: int = DEFAULT_PORT) -> None:
    server = make_server(snapshot_path, host, port)
    logger.info("Serving %s on http://%s:%d/metrics", snapshot_path, host, port)
    try:
        server.serve_forever()
    finally:
        server.server_close()
