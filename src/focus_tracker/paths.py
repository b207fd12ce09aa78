"""Where the focus tracker keeps its database."""

from __future__ import annotations

import os
from pathlib import Path

from platformdirs import user_data_path


APP_NAME = "FocusTracker"
DB_FILENAME = "focus.sqlite3"
# Points every command and the dashboard at one database file.
DB_PATH_ENV = "FOCUS_TRACKER_DB"


def get_data_dir() -> Path:
    """Per-user data directory, created on first use."""
    path = user_data_path(appname=APP_NAME, appauthor=False, roaming=True)
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_db_path() -> Path:
    override = os.environ.get(DB_PATH_ENV, "").strip()
    if override:
        path = Path(override).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        return path
    return get_data_dir() / DB_FILENAME
