from __future__ import annotations

"""Server lifecycle: one application, one bound address, one event loop."""

import logging
import threading
from typing import Any, Callable, List, Mapping, Optional, Tuple

from .config import BIND_ADDRESS, PORT, coerce_port, resolve_config
from .errors import StartupError
from .handlers import BufferFactory, Dispatcher
from .transport import HttpServerTransport, Transport

ALLOWED_METHODS = ("GET", "POST")

VERSION = (0, 1)

logger = logging.getLogger(__name__)


def version() -> List[int]:
    """Return ``[major, minor]`` of the interface this package implements."""

    return list(VERSION)


class Server:
    """Serves a single application over a transport.

    Each instance is independent; an embedding program may create as many as
    it needs. :meth:`run` blocks for the whole lifetime of the server and
    reports startup problems by returning a :class:`StartupError` instead of
    raising it.
    """

    def __init__(
        self,
        transport_factory: Callable[[], Transport] = HttpServerTransport,
        *,
        buffer_factory: BufferFactory = bytearray,
    ) -> None:
        self._transport_factory = transport_factory
        self._buffer_factory = buffer_factory
        self._lock = threading.Lock()
        self._running = False
        self._transport: Optional[Transport] = None
        self._config: Optional[Mapping[str, str]] = None
        self.ready = threading.Event()

    @staticmethod
    def version() -> List[int]:
        return version()

    @property
    def config(self) -> Optional[Mapping[str, str]]:
        return self._config

    @property
    def server_address(self) -> Optional[Tuple[str, int]]:
        transport = self._transport
        return transport.server_address if transport is not None else None

    def run(self, application: Any, config: Optional[Mapping[str, str]] = None) -> Optional[StartupError]:
        """Serve ``application`` until :meth:`shutdown` or Ctrl-C.

        Returns ``None`` after a clean stop, or the :class:`StartupError`
        explaining why nothing was served.
        """

        if application is None:
            logger.error("failed to start: no application given")
            return StartupError("an application is required to run the server")

        with self._lock:
            if self._running:
                logger.error("failed to start: server is already running")
                return StartupError("server is already running")
            self._running = True

        try:
            return self._run(application, config)
        finally:
            with self._lock:
                self._running = False

    def shutdown(self) -> None:
        transport = self._transport
        if transport is not None:
            transport.shutdown()

    def _run(self, application: Any, config: Optional[Mapping[str, str]]) -> Optional[StartupError]:
        resolved = resolve_config(config)
        try:
            dispatcher = Dispatcher(application, resolved, buffer_factory=self._buffer_factory)
        except TypeError as exc:
            logger.error("failed to start: %s", exc)
            return StartupError(str(exc))

        try:
            port = coerce_port(resolved[PORT])
        except ValueError as exc:
            logger.error("failed to start: %s", exc)
            return StartupError(str(exc))

        transport = self._transport_factory()
        try:
            transport.bind(resolved[BIND_ADDRESS], port)
        except OSError as exc:
            logger.error("failed to bind %s:%s: %s", resolved[BIND_ADDRESS], port, exc)
            return StartupError(f"cannot bind {resolved[BIND_ADDRESS]}:{port}: {exc}")

        self._config = resolved
        self._transport = transport
        transport.set_allowed_methods(ALLOWED_METHODS)
        transport.set_handler(dispatcher.dispatch)
        logger.info("serving %s on %s:%s", type(application).__name__, resolved[BIND_ADDRESS], port)

        self.ready.set()
        try:
            transport.serve_forever()
        except KeyboardInterrupt:
            logger.info("interrupted, shutting down")
        finally:
            self.ready.clear()
            transport.close()
            self._transport = None
        logger.info("server stopped")
        return None


__all__ = ["ALLOWED_METHODS", "Server", "VERSION", "version"]
