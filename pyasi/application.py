from __future__ import annotations

"""The application capability served by :class:`pyasi.server.Server`."""

from abc import ABC, abstractmethod
from typing import Any, Callable

from .http import Environment, ResponseTriple

AppCallable = Callable[[Environment], ResponseTriple]


class Application(ABC):
    """Defines the contract every served application implements.

    ``call`` receives the per-request environment as a read-only mapping and
    returns ``(status, body, headers)``. It runs synchronously on the
    transport's request thread; implementations that keep mutable state must
    synchronise it themselves when the transport serves requests concurrently.
    """

    @abstractmethod
    def call(self, environment: Environment) -> ResponseTriple:
        """Handle one request and return the response triple."""


def as_callable(application: Any) -> AppCallable:
    """Return the function the dispatcher invokes for ``application``.

    Objects exposing ``call`` are preferred over plain callables so an
    :class:`Application` subclass that also defines ``__call__`` keeps its
    documented entry point.
    """

    call = getattr(application, "call", None)
    if callable(call):
        return call
    if callable(application):
        return application
    raise TypeError(f"{type(application).__name__} is not an application: expected a call() method or a callable")


__all__ = ["AppCallable", "Application", "as_callable"]
