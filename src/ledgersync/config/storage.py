"""Where the projection database lives and how SQLite connections behave."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from .env import env_int

APP_DIR_NAME: Final[str] = "ledgersync"
DEFAULT_DB_FILENAME: Final[str] = "ledgersync.db"
DEFAULT_SQLITE_BUSY_TIMEOUT_MS: Final[int] = 5_000


@dataclass(frozen=True, slots=True)
class StorageConfig:
    data_dir: Path
    database_filename: str = DEFAULT_DB_FILENAME

    def database_path(self) -> Path:
        """Path of the SQLite file; creates ``data_dir`` on first use."""

        data_dir = self.data_dir.expanduser().resolve()
        data_dir.mkdir(parents=True, exist_ok=True)
        return data_dir / self.database_filename


@dataclass(frozen=True, slots=True)
class DatabaseConfig:
    uri: str
    # Job workers and the sync loop write from different threads.
    sqlite_busy_timeout_ms: int = DEFAULT_SQLITE_BUSY_TIMEOUT_MS

    @property
    def is_sqlite(self) -> bool:
        return self.uri.startswith("sqlite")


def _xdg_data_home() -> Path:
    base = os.getenv("XDG_DATA_HOME")
    return Path(base) if base else Path.home() / ".local" / "share"


def get_storage_config() -> StorageConfig:
    env_dir = os.getenv("LEDGERSYNC_DATA_DIR")
    return StorageConfig(data_dir=Path(env_dir) if env_dir else _xdg_data_home() / APP_DIR_NAME)


def get_database_config(*, storage: StorageConfig | None = None) -> DatabaseConfig:
    busy_timeout = env_int("LEDGERSYNC_SQLITE_BUSY_TIMEOUT_MS", DEFAULT_SQLITE_BUSY_TIMEOUT_MS)
    uri = os.getenv("DATABASE_URI")
    if not uri:
        uri = f"sqlite+pysqlite:///{(storage or get_storage_config()).database_path()}"
    return DatabaseConfig(uri=uri, sqlite_busy_timeout_ms=busy_timeout)
