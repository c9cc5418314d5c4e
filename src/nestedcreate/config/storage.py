"""Where the default database lives when ``DATABASE_URI`` is not set."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Final

DATABASE_FILENAME: Final[str] = "nestedcreate.db"


@dataclass(frozen=True, slots=True)
class DatabaseConfig:
    uri: str


def data_dir() -> Path:
    """``NESTEDCREATE_DATA_DIR``, else ``$XDG_DATA_HOME/nestedcreate``."""

    explicit = os.getenv("NESTEDCREATE_DATA_DIR")
    if explicit:
        return Path(explicit).expanduser().resolve()
    xdg = os.getenv("XDG_DATA_HOME")
    base = Path(xdg) if xdg else Path.home() / ".local" / "share"
    return (base / "nestedcreate").expanduser().resolve()


def get_database_config() -> DatabaseConfig:
    uri = os.getenv("DATABASE_URI")
    if uri:
        return DatabaseConfig(uri=uri)
    directory = data_dir()
    directory.mkdir(parents=True, exist_ok=True)
    return DatabaseConfig(uri=f"sqlite+pysqlite:///{directory / DATABASE_FILENAME}")
