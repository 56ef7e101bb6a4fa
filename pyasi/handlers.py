from __future__ import annotations

import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, MutableSequence, Optional, Tuple, Union

from .application import AppCallable, as_callable
from .environ import build_environment
from .errors import InvalidResponseError
from .http import Environment, HttpRequest, HttpResponse, check_header, internal_error, readonly

logger = logging.getLogger(__name__)

BufferFactory = Callable[[], MutableSequence[int]]

# Raised while allocating or filling the outbound body buffer.
ASSEMBLY_ERRORS = (MemoryError, OSError, BufferError)


@dataclass(slots=True)
class RequestContext:
    """Mutable context passed across the handler chain for one request."""

    request: HttpRequest
    environment: Optional[Environment] = None
    response: Optional[HttpResponse] = None


class Handler(ABC):
    """Chain-of-responsibility handler interface."""

    @abstractmethod
    def set_next(self, handler: "Handler") -> "Handler":
        ...

    @abstractmethod
    def handle(self, ctx: RequestContext) -> HttpResponse:
        ...


class AbstractHandler(Handler):
    def __init__(self) -> None:
        self._next: Optional[Handler] = None

    def set_next(self, handler: Handler) -> Handler:
        self._next = handler
        return handler

    def _handle_next(self, ctx: RequestContext) -> HttpResponse:
        if self._next is None:
            if ctx.response is None:
                logger.error("handler chain ended without a response for %s", ctx.request.target)
                ctx.response = internal_error()
            return ctx.response
        return self._next.handle(ctx)


class LoggingHandler(AbstractHandler):
    def handle(self, ctx: RequestContext) -> HttpResponse:  # noqa: D401
        start = time.monotonic()
        response = self._handle_next(ctx)
        entry = {
            "method": ctx.request.method,
            "path": ctx.request.path,
            "query": ctx.request.query,
            "status": int(response.status),
            "ms": round((time.monotonic() - start) * 1000, 1),
            "remote": ctx.request.client[0] if ctx.request.client else None,
        }
        logger.info("%s", json.dumps(entry, separators=(",", ":")))
        return response


class ErrorHandler(AbstractHandler):
    """Turns any failure further down the chain into a 500 for this request only."""

    def handle(self, ctx: RequestContext) -> HttpResponse:  # noqa: D401
        try:
            return self._handle_next(ctx)
        except InvalidResponseError as exc:
            logger.error("invalid application response for %s %s: %s", ctx.request.method, ctx.request.target, exc)
        except Exception:  # noqa: BLE001
            logger.exception("application failed for %s %s", ctx.request.method, ctx.request.target)
        ctx.response = internal_error()
        return ctx.response


class EnvironmentHandler(AbstractHandler):
    def __init__(self, config: Mapping[str, str]) -> None:
        super().__init__()
        self._config = config

    def handle(self, ctx: RequestContext) -> HttpResponse:  # noqa: D401
        request = ctx.request
        ctx.environment = readonly(build_environment(request.method, request.path, request.query, self._config))
        return self._handle_next(ctx)


class ApplicationHandler(AbstractHandler):
    """Calls the application and copies its result into the transport reply."""

    def __init__(self, application: AppCallable, buffer_factory: BufferFactory = bytearray) -> None:
        super().__init__()
        self._application = application
        self._buffer_factory = buffer_factory

    def handle(self, ctx: RequestContext) -> HttpResponse:  # noqa: D401
        status, body, headers = unpack_result(self._application(ctx.environment))
        try:
            ctx.response = self._assemble(status, body, headers)
        except ASSEMBLY_ERRORS as exc:
            logger.error("failed to assemble response for %s: %r", ctx.request.target, exc)
            ctx.response = internal_error()
        return ctx.response

    def _assemble(self, status: int, body: Union[str, bytes], headers: Mapping[str, str]) -> HttpResponse:
        buffer = self._buffer_factory()
        buffer.extend(body.encode("utf-8") if isinstance(body, str) else body)
        response = HttpResponse(status)
        for name, value in headers.items():
            response.headers[name] = value
        response.body = bytes(buffer)
        return response


def unpack_result(result: Any) -> Tuple[int, Union[str, bytes], Dict[str, str]]:
    """Validate an application's return value and split it into its parts."""

    try:
        status, body, headers = result
    except (TypeError, ValueError) as exc:
        raise InvalidResponseError(f"expected (status, body, headers), got {type(result).__name__}") from exc

    if isinstance(status, bool) or not isinstance(status, int):
        raise InvalidResponseError(f"status code must be an int, got {type(status).__name__}")
    if not 100 <= status <= 599:
        raise InvalidResponseError(f"status code out of range: {status}")
    if not isinstance(body, (str, bytes)):
        raise InvalidResponseError(f"body must be str or bytes, got {type(body).__name__}")
    if not isinstance(headers, Mapping):
        raise InvalidResponseError(f"headers must be a mapping, got {type(headers).__name__}")
    for name, value in headers.items():
        check_header(name, value)
    return int(status), body, dict(headers)


class Dispatcher:
    """Facade the transport calls once per request."""

    def __init__(
        self,
        application: Any,
        config: Mapping[str, str],
        *,
        buffer_factory: BufferFactory = bytearray,
    ) -> None:
        logging_handler = LoggingHandler()
        error_handler = ErrorHandler()
        environment_handler = EnvironmentHandler(config)
        application_handler = ApplicationHandler(as_callable(application), buffer_factory)

        logging_handler.set_next(error_handler)
        error_handler.set_next(environment_handler)
        environment_handler.set_next(application_handler)

        self._entry: Handler = logging_handler

    def dispatch(self, request: HttpRequest) -> HttpResponse:
        logger.debug("dispatching URI=%s, CMD=%s", request.target, request.method)
        response = self._entry.handle(RequestContext(request=request))
        response.ensure_content_length()
        return response


__all__ = [
    "AbstractHandler",
    "ApplicationHandler",
    "Dispatcher",
    "EnvironmentHandler",
    "ErrorHandler",
    "Handler",
    "LoggingHandler",
    "RequestContext",
    "unpack_result",
]
