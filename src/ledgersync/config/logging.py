"""Root logger setup for the ledgersync CLI and sync service."""

from __future__ import annotations

import logging
import os

LOG_LEVEL_ENV = "LEDGERSYNC_LOG_LEVEL"

QUIET_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "alembic.runtime.migration")


def _level_from_env(default: int) -> int:
    name = os.getenv(LOG_LEVEL_ENV, "").strip().upper()
    if not name:
        return default
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else default


def configure_logging(*, level: int | None = None, force: bool = False) -> None:
    """Log to stderr with full timestamps; ``LEDGERSYNC_LOG_LEVEL`` overrides INFO.

    Library loggers in ``QUIET_LOGGERS`` stay at WARNING unless the root level is
    DEBUG.
    """

    effective = level if level is not None else _level_from_env(logging.INFO)
    logging.basicConfig(
        level=effective,
        format="%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s",
        force=force,
    )
    if effective > logging.DEBUG:
        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
