from __future__ import annotations


class AsiError(Exception):
    """Base class for errors raised by the server core."""


class StartupError(AsiError):
    """The server could not start; nothing was bound."""


class InvalidResponseError(AsiError):
    """The application returned something other than ``(status, body, headers)``."""


__all__ = ["AsiError", "InvalidResponseError", "StartupError"]
