from __future__ import annotations

import logging
import sys

from .application import Application
from .config import load_config
from .http import Environment, ResponseTriple
from .server import Server


class HelloApplication(Application):
    def call(self, environment: Environment) -> ResponseTriple:
        return 200, "Hello, ASI!!", {"Content-Type": "text/plain"}


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    server = Server()
    error = server.run(HelloApplication(), load_config())
    if error is not None:
        print(f"[pyasi] fatal error: {error}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover - cli entry point
    sys.exit(main())
