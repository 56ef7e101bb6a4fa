from __future__ import annotations

import logging
import os
import socket
from typing import Dict, Mapping, Optional

from .http import readonly

SERVER_NAME = "server_name"
BIND_ADDRESS = "bind_address"
PORT = "port"

DEFAULT_BIND_ADDRESS = "0.0.0.0"
DEFAULT_PORT = "7077"

_ENV_KEYS = {
    SERVER_NAME: "ASI_SERVER_NAME",
    BIND_ADDRESS: "ASI_BIND_ADDRESS",
    PORT: "ASI_PORT",
}

logger = logging.getLogger(__name__)


def resolve_config(override: Optional[Mapping[str, str]] = None) -> Mapping[str, str]:
    """Merge ``override`` with the defaults and freeze the result.

    Keys other than ``server_name``, ``bind_address`` and ``port`` are kept
    as given. When ``server_name`` is missing the local host name is looked up
    once; if that fails the key is left out and the server runs without it.
    """

    config: Dict[str, str] = dict(override) if override else {}

    if SERVER_NAME not in config:
        try:
            config[SERVER_NAME] = socket.gethostname()
        except OSError as exc:
            logger.error("failed to look up host name, errno=%s: %s", exc.errno, exc)
    config.setdefault(BIND_ADDRESS, DEFAULT_BIND_ADDRESS)
    config.setdefault(PORT, DEFAULT_PORT)

    return readonly(config)


def load_config(environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """Read a partial configuration from ``ASI_*`` environment variables.

    Only the variables that are set end up in the result, so it can be handed
    straight to :func:`resolve_config` without masking its defaults.
    """

    source = os.environ if environ is None else environ
    config: Dict[str, str] = {}
    for key, variable in _ENV_KEYS.items():
        value = (source.get(variable) or "").strip()
        if value:
            config[key] = value
    return config


def coerce_port(raw: str) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"invalid port number: {raw!r}") from exc
    if value < 0 or value > 65535:
        raise ValueError(f"invalid port number: {raw!r}")
    return value


__all__ = [
    "BIND_ADDRESS",
    "DEFAULT_BIND_ADDRESS",
    "DEFAULT_PORT",
    "PORT",
    "SERVER_NAME",
    "coerce_port",
    "load_config",
    "resolve_config",
]
