"""Serving a kiln App with pounce.

Pounce's ``run()`` takes an import string, but kiln usually has a live
``App`` object, so the server is built directly from ``pounce.Server``.
Always a single worker: every render holds its state in-process.
"""

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from kiln.app import App

logger = logging.getLogger("kiln.server")


def run_server(
    app: App,
    host: str | None = None,
    port: int | None = None,
    *,
    reload: bool | None = None,
    app_path: str | None = None,
) -> None:
    """Serve *app* until interrupted.

    ``host``, ``port`` and ``reload`` default to the app's config
    (``reload`` follows ``config.debug``). When *app_path* is given
    (``"module:attribute"``), pounce reimports the app on each reload.
    """
    from pounce.config import ServerConfig
    from pounce.server import Server

    config = app.config
    host = host or config.host
    port = port or config.port
    reload = config.debug if reload is None else reload

    server_config = ServerConfig(
        host=host,
        port=port,
        workers=1,
        reload=reload,
        reload_include=config.reload_include,
        reload_dirs=config.reload_dirs,
        log_level=config.log_level,
    )
    logger.info(
        "kiln serving on http://%s:%d (render timeout %.1fs%s)",
        host,
        port,
        config.render_timeout,
        ", reload" if reload else "",
    )
    Server(server_config, app, app_path=app_path).run()
