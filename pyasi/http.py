from __future__ import annotations

"""Transport-level HTTP primitives exchanged between the transport and the core.

The environment handed to applications is built from :class:`HttpRequest`
and the application's result is turned back into an :class:`HttpResponse`.
"""

import json
from dataclasses import dataclass, field
from http import HTTPStatus
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from .errors import InvalidResponseError


@dataclass(slots=True)
class HttpRequest:
    """Represents an HTTP request handed over by the transport."""

    method: str
    target: str
    path: Optional[str]
    query: Optional[str]
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    client: Optional[Tuple[str, int]] = None


@dataclass(slots=True)
class HttpResponse:
    """Represents the reply the transport writes on the wire."""

    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def ensure_content_length(self) -> None:
        """Guarantee the ``Content-Length`` header is present."""

        if not any(name.lower() == "content-length" for name in self.headers):
            self.headers["Content-Length"] = str(len(self.body))


Environment = Mapping[str, str]
Headers = Mapping[str, str]
ResponseTriple = Tuple[int, Union[str, bytes], Headers]


def readonly(mapping: Mapping[str, str]) -> Mapping[str, str]:
    return MappingProxyType(dict(mapping))


def check_header(name: Any, value: Any) -> None:
    """Reject header pairs that cannot go on the wire as one latin-1 line."""

    if not isinstance(name, str) or not isinstance(value, str):
        raise InvalidResponseError(f"header {name!r} must map str to str")
    if not name or any(ch in name for ch in ":\r\n \t"):
        raise InvalidResponseError(f"invalid header name: {name!r}")
    if "\r" in value or "\n" in value:
        raise InvalidResponseError(f"header {name!r} contains a line break")
    try:
        name.encode("latin-1")
        value.encode("latin-1")
    except UnicodeEncodeError as exc:
        raise InvalidResponseError(f"header {name!r} is not latin-1 encodable") from exc


def json_error(status: HTTPStatus | int, message: str) -> HttpResponse:
    body = json.dumps({"error": message}).encode()
    headers = {
        "Content-Type": "application/json",
        "Content-Length": str(len(body)),
    }
    return HttpResponse(int(status), headers, body)


def internal_error() -> HttpResponse:
    return json_error(HTTPStatus.INTERNAL_SERVER_ERROR, "Internal Server Error")


__all__ = [
    "Environment",
    "Headers",
    "HttpRequest",
    "HttpResponse",
    "ResponseTriple",
    "check_header",
    "internal_error",
    "json_error",
    "readonly",
]
