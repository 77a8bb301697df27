"""Runtime configuration read from environment variables."""

from __future__ import annotations

import os
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_DB_NAME = "flickrsync.db"
DEFAULT_STORAGE_FOLDER = "downloads"


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, str(default)) or default)
    except ValueError:
        return default


def _list_env(name: str) -> list[str]:
    raw = os.environ.get(name, "")
    return [part.strip() for part in raw.split(",") if part.strip()]


API_URL = (
    os.environ.get("FLICKRSYNC_API_URL", "").strip()
    or "https://www.flickr.com/services/rest"
)
API_KEYS = _list_env("FLICKRSYNC_API_KEYS")
PROXIES = _list_env("FLICKRSYNC_PROXIES")
BATCH_SIZE = _int_env("FLICKRSYNC_BATCH_SIZE", 12)

# Debug flag controlled by env var FLICKRSYNC_DEBUG
DEBUG = os.environ.get("FLICKRSYNC_DEBUG", "").lower() in {"1", "true", "yes", "on"}


def default_db_path() -> str:
    """Return the SQLite index path, honouring FLICKRSYNC_DB_PATH."""
    env_path = os.environ.get("FLICKRSYNC_DB_PATH", "").strip()
    if env_path:
        return os.path.abspath(env_path)
    return str((PROJECT_ROOT / DEFAULT_DB_NAME).resolve())


def default_storage_root() -> str:
    """Return the root folder for mirrored files, honouring FLICKRSYNC_STORAGE."""
    env_path = os.environ.get("FLICKRSYNC_STORAGE", "").strip()
    if env_path:
        return os.path.abspath(env_path)
    return os.path.join(os.getcwd(), DEFAULT_STORAGE_FOLDER)
