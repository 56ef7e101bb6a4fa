"""Minimal application server interface: one application, one call contract."""

from .application import Application
from .config import load_config, resolve_config
from .environ import build_environment
from .errors import AsiError, InvalidResponseError, StartupError
from .handlers import Dispatcher
from .http import HttpRequest, HttpResponse
from .server import Server, version
from .transport import HttpServerTransport, Transport

__all__ = [
    "Application",
    "AsiError",
    "Dispatcher",
    "HttpRequest",
    "HttpResponse",
    "HttpServerTransport",
    "InvalidResponseError",
    "Server",
    "StartupError",
    "Transport",
    "build_environment",
    "load_config",
    "resolve_config",
    "version",
]
