"""Serve the dashboard API with uvicorn."""

from __future__ import annotations

import logging
import threading
import webbrowser
from pathlib import Path
from typing import Optional

import uvicorn

from .paths import get_db_path
from .webapp import create_app

logger = logging.getLogger(__name__)

BROWSER_DELAY_SECONDS = 1.0
_WILDCARD_HOSTS = {"0.0.0.0", "::", ""}


def dashboard_url(host: str, port: int) -> str:
    """URL of the interactive API docs, reachable from this machine."""
    if host in _WILDCARD_HOSTS:
        host = "127.0.0.1"
    elif ":" in host:
        host = f"[{host}]"
    return f"http://{host}:{port}/docs"


def run_dashboard(
    *,
    host: str = "127.0.0.1",
    port: int = 8765,
    db_path: Optional[Path] = None,
    open_browser: bool = True,
    log_level: str = "info",
) -> None:
    """Build the app for ``db_path`` and block in uvicorn until interrupted."""
    app = create_app(db_path=db_path or get_db_path())
    logger.info("Dashboard database: %s", app.state.db_path)

    if open_browser:
        opener = threading.Timer(
            BROWSER_DELAY_SECONDS, _open_browser, args=(dashboard_url(host, port),)
        )
        opener.daemon = True
        opener.start()

    uvicorn.run(app, host=host, port=port, log_level=log_level)


def _open_browser(url: str) -> None:
    try:
        webbrowser.open(url)
    except webbrowser.Error:
        logger.exception("Failed to launch browser for %s", url)
