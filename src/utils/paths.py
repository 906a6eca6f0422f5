"""File path resolution using platformdirs.

The data directory resolves from FLEETOPS_DATA_DIR when set, otherwise
to the platform user data dir:
  macOS: ~/Library/Application Support/fleetops-bulk/
  Linux: ~/.local/share/fleetops-bulk/
"""

import os
from pathlib import Path

import platformdirs

APP_NAME = "fleetops-bulk"


def get_data_dir() -> Path:
    """Return the directory for persistent data (DB)."""
    override = os.environ.get("FLEETOPS_DATA_DIR", "").strip()
    if override:
        return Path(override).expanduser()
    return Path(platformdirs.user_data_dir(APP_NAME, appauthor=False))


def get_default_db_path() -> Path:
    """Return the default SQLite database file path."""
    return get_data_dir() / "fleetops_bulk.db"


def ensure_parent_dir(file_path: str | Path) -> None:
    """Create the parent directory of a file if it doesn't exist."""
    Path(file_path).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)
