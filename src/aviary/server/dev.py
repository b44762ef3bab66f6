"""Development server.

Starts a pounce ASGI server with the live aviary App object.
"""

from __future__ import annotations

import logging


def run_dev_server(
    app: object,
    host: str,
    port: int,
    *,
    reload: bool = False,
    log_level: str = "info",
) -> None:
    """Start a single-worker pounce server for *app*.

    Pounce's ``run()`` takes an import string, but here we already hold
    a live ``App``, so ``pounce.Server`` is driven directly with the
    ASGI callable.
    """
    from pounce.config import ServerConfig
    from pounce.server import Server

    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )
    config = ServerConfig(host=host, port=port, workers=1, reload=reload)
    Server(config, app).run()
