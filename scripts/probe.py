from __future__ import annotations

import os
import sys
import urllib.error
import urllib.request

from pyasi.config import DEFAULT_PORT, PORT, load_config


def main() -> None:
    host = os.environ.get("PROBE_HOST", "127.0.0.1")
    timeout = float(os.environ.get("PROBE_TIMEOUT", "2"))
    path = os.environ.get("PROBE_PATH", "/")
    port = load_config().get(PORT, DEFAULT_PORT)

    url = f"http://{host}:{port}{path}"
    try:
        with urllib.request.urlopen(url, timeout=timeout) as resp:
            print(f"[probe] {url} -> {resp.getcode()}")
            return
    except urllib.error.HTTPError as err:
        # Any HTTP answer means the server is up, whatever the application said.
        print(f"[probe] {url} -> {err.code}")
        return
    except (urllib.error.URLError, OSError) as exc:
        print(f"[probe] {url} unreachable: {exc}", file=sys.stderr)

    raise SystemExit(1)


if __name__ == "__main__":
    main()
