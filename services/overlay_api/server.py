"""HTTP API serving overlay state to a browser source."""

from __future__ import annotations

import asyncio
import json
import threading
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar
from urllib.parse import urlparse

from runtime import version as runtime_version
from shared.config.widget import OverlayApiSettings
from shared.logging.logger import get_logger

log = get_logger("services.overlay_api")

T = TypeVar("T")

Response = Tuple[int, Dict[str, Any]]


class OverlayApiServer:
    """
    Threaded HTTP server in front of one widget session.

    Request threads never touch session state directly: every read and
    mutation is handed to the session's event loop and awaited there.
    Without a loop (tests, offline tools) calls run inline.
    """

    LOOP_TIMEOUT = 5.0

    def __init__(
        self,
        settings: OverlayApiSettings,
        session,
        *,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        allow_origins: Optional[List[str]] = None,
    ) -> None:
        self._settings = settings
        self._session = session
        self._loop = loop
        self._allow_origins = allow_origins if allow_origins is not None else ["*"]
        self._thread: Optional[threading.Thread] = None
        self._server: Optional[ThreadingHTTPServer] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def address(self) -> Optional[Tuple[str, int]]:
        if not self._server:
            return None
        host, port = self._server.server_address[:2]
        return str(host), int(port)

    def start(self) -> None:
        if not self._settings.enabled:
            log.info("Overlay API server disabled via config")
            return
        if self._thread and self._thread.is_alive():
            return

        self._server = ThreadingHTTPServer(
            (self._settings.host, int(self._settings.port)),
            self._build_handler(),
        )
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()
        host, port = self.address
        log.info(f"Overlay API server running on {host}:{port}")

    def stop(self) -> None:
        if not self._server:
            return
        self._server.shutdown()
        self._server.server_close()
        self._server = None
        log.info("Overlay API server stopped")

    # ------------------------------------------------------------------
    # Loop hand-off
    # ------------------------------------------------------------------

    def _on_loop(self, fn: Callable[[], T]) -> T:
        if self._loop is None:
            return fn()

        async def _call() -> T:
            return fn()

        future = asyncio.run_coroutine_threadsafe(_call(), self._loop)
        return future.result(timeout=self.LOOP_TIMEOUT)

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    def handle_get(self, path: str) -> Response:
        if path == "/api/state":
            return HTTPStatus.OK, self._on_loop(
                lambda: {"overlay": self._session.snapshot()}
            )

        if path == "/api/status":
            return HTTPStatus.OK, self._on_loop(self._session.status.snapshot)

        if path == "/api/version":
            return HTTPStatus.OK, runtime_version.as_dict()

        return HTTPStatus.NOT_FOUND, {"error": "unknown endpoint"}

    def handle_post(self, path: str, payload: Dict[str, Any]) -> Response:
        if path == "/api/clear":
            self._on_loop(self._session.clear_chat)
            return HTTPStatus.OK, {"cleared": True}

        if path == "/api/refresh":
            self._on_loop(self._session.refresh)
            return HTTPStatus.OK, {"refreshed": True}

        if path == "/api/test-alert":
            name = str(payload.get("display_name") or "TestViewer").strip()[:25]
            try:
                count = int(payload.get("visit_count", 1))
            except (TypeError, ValueError):
                return HTTPStatus.BAD_REQUEST, {"error": "visit_count must be an integer"}
            if count < 1:
                return HTTPStatus.BAD_REQUEST, {"error": "visit_count must be >= 1"}

            queued = self._on_loop(lambda: self._session.test_alert(name, count))
            if not queued:
                return HTTPStatus.CONFLICT, {"error": "alerts are disabled"}
            return HTTPStatus.ACCEPTED, {"queued": True, "display_name": name}

        return HTTPStatus.NOT_FOUND, {"error": "unknown endpoint"}

    # ------------------------------------------------------------------
    # HTTP handler
    # ------------------------------------------------------------------

    def _build_handler(self):
        api = self
        allow_origins = self._allow_origins

        class Handler(BaseHTTPRequestHandler):
            def _send_json(self, status: int, payload: Dict[str, Any]) -> None:
                body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
                self.send_response(status)
                self.send_header("Content-Type", "application/json; charset=utf-8")
                self.send_header("Content-Length", str(len(body)))
                self.send_header("Cache-Control", "no-store")
                self._apply_cors()
                self.end_headers()
                self.wfile.write(body)

            def _apply_cors(self) -> None:
                if not allow_origins:
                    return
                origin = self.headers.get("Origin")
                if "*" in allow_origins:
                    self.send_header("Access-Control-Allow-Origin", "*")
                elif origin and origin in allow_origins:
                    self.send_header("Access-Control-Allow-Origin", origin)
                self.send_header("Access-Control-Allow-Headers", "Content-Type")
                self.send_header("Access-Control-Allow-Methods", "GET, POST, OPTIONS")

            def _read_json_body(self) -> Dict[str, Any]:
                length = int(self.headers.get("Content-Length", 0) or 0)
                if length <= 0:
                    return {}
                raw = self.rfile.read(length)
                try:
                    payload = json.loads(raw.decode("utf-8"))
                except (UnicodeDecodeError, json.JSONDecodeError):
                    return {}
                return payload if isinstance(payload, dict) else {}

            def _respond(self, handler: Callable[[], Response]) -> None:
                try:
                    status, payload = handler()
                except Exception as e:
                    log.warning(f"Overlay API request failed ({self.path}): {e}")
                    status, payload = HTTPStatus.INTERNAL_SERVER_ERROR, {"error": "internal error"}
                self._send_json(status, payload)

            def do_OPTIONS(self) -> None:  # noqa: N802 - stdlib signature
                self.send_response(HTTPStatus.NO_CONTENT)
                self._apply_cors()
                self.end_headers()

            def do_GET(self) -> None:  # noqa: N802 - stdlib signature
                path = urlparse(self.path).path.rstrip("/")
                self._respond(lambda: api.handle_get(path))

            def do_POST(self) -> None:  # noqa: N802 - stdlib signature
                path = urlparse(self.path).path.rstrip("/")
                payload = self._read_json_body()
                self._respond(lambda: api.handle_post(path, payload))

            def log_message(self, format: str, *args: Any) -> None:
                log.debug(f"{self.address_string()} - {format % args}")

        return Handler


__all__ = ["OverlayApiServer"]
