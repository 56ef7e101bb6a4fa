from __future__ import annotations

"""HTTP transport the server core runs on.

The core only relies on the :class:`Transport` protocol. The bundled
implementation sits on :mod:`http.server` with one thread per request.
"""

import logging
import socket
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Callable, Iterable, Optional, Protocol, Tuple
from urllib.parse import urlsplit

from .errors import InvalidResponseError
from .http import HttpRequest, HttpResponse, check_header, internal_error, json_error

MAX_BODY_BYTES = 5 * 1024 * 1024

RequestCallback = Callable[[HttpRequest], HttpResponse]

logger = logging.getLogger(__name__)


class Transport(Protocol):
    @property
    def server_address(self) -> Optional[Tuple[str, int]]:
        """Address actually bound, once :meth:`bind` succeeded."""

    def bind(self, address: str, port: int) -> None:
        """Open the listening socket. Raises :class:`OSError` on failure."""

    def set_allowed_methods(self, methods: Iterable[str]) -> None:
        """Reject every other request method before the callback sees it."""

    def set_handler(self, handler: RequestCallback) -> None:
        """Register the callback invoked once per accepted request."""

    def serve_forever(self) -> None:
        """Run the event loop until :meth:`shutdown` is called."""

    def shutdown(self) -> None:
        """Stop :meth:`serve_forever`; safe to call from another thread."""

    def close(self) -> None:
        """Release the listening socket."""


class AsiRequestHandler(BaseHTTPRequestHandler):
    transport: "HttpServerTransport"
    server_version = "pyasi/0.1"

    def handle_request(self) -> None:
        callback = self.transport.handler
        if callback is None:
            self._write(json_error(HTTPStatus.SERVICE_UNAVAILABLE, "no application registered"))
            return

        try:
            request = self._read_request()
        except ValueError as exc:
            self._write(json_error(HTTPStatus.BAD_REQUEST, str(exc)))
            return

        try:
            response = callback(request)
        except Exception:  # noqa: BLE001
            logger.exception("request handler failed for %s %s", self.command, self.path)
            response = internal_error()

        self._write(response)

    def log_message(self, format: str, *args) -> None:  # pragma: no cover - structured logging
        logger.debug("%s - %s", self.address_string(), format % args)

    def _read_request(self) -> HttpRequest:
        raw_length = self.headers.get("content-length") or "0"
        try:
            content_length = int(raw_length)
        except ValueError as exc:
            raise ValueError("invalid content-length") from exc
        if content_length < 0 or content_length > MAX_BODY_BYTES:
            raise ValueError("content-length out of range")

        body = self.rfile.read(content_length) if content_length > 0 else b""
        parsed = urlsplit(self.path)
        return HttpRequest(
            method=self.command,
            target=self.path,
            path=parsed.path,
            query=parsed.query,
            headers={name.lower(): value for name, value in self.headers.items()},
            body=body,
            client=self.client_address,
        )

    def _write(self, response: HttpResponse) -> None:
        response.ensure_content_length()
        try:
            for name, value in response.headers.items():
                check_header(name, value)
        except InvalidResponseError as exc:
            logger.error("refusing to send headers for %s %s: %s", self.command, self.path, exc)
            response = internal_error()
        self.send_response(response.status)
        for name, value in response.headers.items():
            self.send_header(name, value)
        self.end_headers()
        if self.command != "HEAD" and response.body:
            self.wfile.write(response.body)


class ThreadingHTTPServerV6(ThreadingHTTPServer):
    address_family = socket.AF_INET6


def server_class_for(address: str) -> type:
    # IPv6 literals ("::", "::1", "fe80::1") always contain a colon; IPv4 and host names never do.
    if ":" in address:
        return ThreadingHTTPServerV6
    return ThreadingHTTPServer


class HttpServerTransport:
    """:class:`Transport` backed by :class:`http.server.ThreadingHTTPServer`."""

    def __init__(self) -> None:
        self.handler: Optional[RequestCallback] = None
        self._allowed_methods: frozenset[str] = frozenset()
        self._httpd: Optional[ThreadingHTTPServer] = None

    @property
    def server_address(self) -> Optional[Tuple[str, int]]:
        if self._httpd is None:
            return None
        host, port = self._httpd.server_address[:2]
        return host, port

    def bind(self, address: str, port: int) -> None:
        if self._httpd is not None:
            raise RuntimeError("transport is already bound")
        server_class = server_class_for(address)
        self._httpd = server_class((address, port), self._build_handler_class())
        self._httpd.daemon_threads = True
        logger.info("listening on %s:%s", *self.server_address)

    def set_allowed_methods(self, methods: Iterable[str]) -> None:
        self._allowed_methods = frozenset(method.upper() for method in methods)
        if self._httpd is not None:
            self._httpd.RequestHandlerClass = self._build_handler_class()

    def set_handler(self, handler: RequestCallback) -> None:
        self.handler = handler

    def serve_forever(self) -> None:
        if self._httpd is None:
            raise RuntimeError("transport must be bound before serving")
        self._httpd.serve_forever()

    def shutdown(self) -> None:
        if self._httpd is not None:
            self._httpd.shutdown()

    def close(self) -> None:
        if self._httpd is not None:
            self._httpd.server_close()
            self._httpd = None

    def _build_handler_class(self) -> type:
        # http.server answers 501 for any method without a do_<METHOD> attribute.
        namespace = {f"do_{method}": AsiRequestHandler.handle_request for method in self._allowed_methods}
        namespace["transport"] = self
        return type("ConfiguredAsiRequestHandler", (AsiRequestHandler,), namespace)


__all__ = [
    "AsiRequestHandler",
    "HttpServerTransport",
    "MAX_BODY_BYTES",
    "RequestCallback",
    "ThreadingHTTPServerV6",
    "Transport",
    "server_class_for",
]
