"""Location of the history database.

``DATABASE_URI`` wins. Otherwise the engine keeps a SQLite file in
``HISTOMERGE_DATA_DIR``, or in ``$XDG_DATA_HOME/histomerge`` when unset.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Final

APP_DIR_NAME: Final[str] = "histomerge"
DEFAULT_DB_FILENAME: Final[str] = "histomerge.db"


@dataclass(frozen=True, slots=True)
class DatabaseConfig:
    uri: str


def data_dir() -> Path:
    env_dir = os.getenv("HISTOMERGE_DATA_DIR")
    if env_dir:
        return Path(env_dir).expanduser().resolve()
    base = os.getenv("XDG_DATA_HOME")
    base_path = Path(base) if base else (Path.home() / ".local" / "share")
    return (base_path / APP_DIR_NAME).expanduser().resolve()


def get_database_config() -> DatabaseConfig:
    env_uri = os.getenv("DATABASE_URI")
    if env_uri:
        return DatabaseConfig(uri=env_uri)
    directory = data_dir()
    directory.mkdir(parents=True, exist_ok=True)
    return DatabaseConfig(uri=f"sqlite+pysqlite:///{directory / DEFAULT_DB_FILENAME}")
