"""Module entrypoint for running the invoice API server."""

from __future__ import annotations

import logging

from .config import LOG_LEVEL, env_int, env_str
from .server import run


def main() -> None:
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    host = env_str("INVOICE_HOST", "0.0.0.0")
    port = env_int("INVOICE_PORT", 8080)
    try:
        run(host, port)
    except KeyboardInterrupt:
        logging.getLogger(__name__).info("Shutting down")


if __name__ == "__main__":
    main()
