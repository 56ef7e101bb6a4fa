from __future__ import annotations

from typing import Dict, Mapping, Optional

from .config import PORT, SERVER_NAME


def classify_method(request_method: Optional[str]) -> str:
    # Only GET and POST reach the dispatcher; everything not GET counts as POST.
    if request_method and request_method.upper() == "GET":
        return "GET"
    return "POST"


def build_environment(
    request_method: Optional[str],
    uri_path: Optional[str],
    uri_query: Optional[str],
    config: Mapping[str, str],
) -> Dict[str, str]:
    """Describe one request as the flat mapping applications receive.

    Server name and port are taken from the resolved configuration, not from
    the request's ``Host`` header.
    """

    return {
        "REQUEST_METHOD": classify_method(request_method),
        "SCRIPT_NAME": "",
        "PATH_INFO": uri_path or "",
        "QUERY_STRING": uri_query or "",
        "SERVER_NAME": config.get(SERVER_NAME, ""),
        "SERVER_PORT": str(config.get(PORT, "")),
    }


__all__ = ["build_environment", "classify_method"]
