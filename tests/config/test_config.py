from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING

import pytest

from ledgersync.config import (
    SUI_FULLNODE_URLS,
    ConfigurationError,
    MissingConfigurationError,
    configure_logging,
    env_float,
    env_int,
    get_database_config,
    get_job_queue_config,
    get_rate_limit_config,
    get_sui_config,
    get_sync_config,
    require_env_vars,
)
from ledgersync.config.logging import QUIET_LOGGERS
from ledgersync.config.sync import DEFAULT_EVENT_BATCH_SIZE, DEFAULT_SYNC_INTERVAL_SECONDS

if TYPE_CHECKING:
    from pathlib import Path


def test_require_env_vars_returns_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EXAMPLE_VAR", "value")

    result = require_env_vars(["EXAMPLE_VAR"])

    assert result["EXAMPLE_VAR"] == "value"


def test_require_env_vars_lists_every_missing_name(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("MISSING_A", raising=False)
    monkeypatch.setenv("MISSING_B", "   ")

    with pytest.raises(MissingConfigurationError) as exc:
        require_env_vars(["MISSING_B", "MISSING_A"])

    assert "MISSING_A, MISSING_B" in str(exc.value)
    assert exc.value.variables == ("MISSING_A", "MISSING_B")


def test_numeric_env_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EXAMPLE_INT", "7")
    monkeypatch.setenv("EXAMPLE_FLOAT", "0.5")
    monkeypatch.setenv("EXAMPLE_BLANK", "")

    assert env_int("EXAMPLE_INT", 1) == 7
    assert env_float("EXAMPLE_FLOAT", 1.0) == 0.5
    assert env_int("EXAMPLE_BLANK", 3) == 3


@pytest.mark.parametrize(("raw", "message"), [("seven", "integer"), ("-1", ">= 0")])
def test_env_int_rejects_bad_values(
    monkeypatch: pytest.MonkeyPatch, raw: str, message: str
) -> None:
    monkeypatch.setenv("EXAMPLE_INT", raw)

    with pytest.raises(ConfigurationError, match=message):
        env_int("EXAMPLE_INT", 1)


def test_sync_config_defaults_and_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("LEDGERSYNC_SYNC_INTERVAL_SECONDS", "LEDGERSYNC_BATCH_SIZE"):
        monkeypatch.delenv(name, raising=False)

    defaults = get_sync_config()
    monkeypatch.setenv("LEDGERSYNC_BATCH_SIZE", "25")
    monkeypatch.setenv("LEDGERSYNC_ORPHAN_HORIZON_CYCLES", "3")

    overridden = get_sync_config()

    assert defaults.interval_seconds == DEFAULT_SYNC_INTERVAL_SECONDS
    assert defaults.batch_size == DEFAULT_EVENT_BATCH_SIZE
    assert overridden.batch_size == 25
    assert overridden.orphan_horizon_cycles == 3


def test_sync_config_rejects_zero_batch(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LEDGERSYNC_BATCH_SIZE", "0")

    with pytest.raises(ConfigurationError):
        get_sync_config()


def test_job_queue_config(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LEDGERSYNC_JOB_WORKERS", "4")
    monkeypatch.setenv("LEDGERSYNC_JOB_RETENTION_HOURS", "48")

    config = get_job_queue_config()

    assert config.workers == 4
    assert config.retention == timedelta(hours=48)
    assert config.deadline == timedelta(seconds=config.deadline_seconds)


def test_rate_limit_config(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LEDGERSYNC_INGEST_LIMIT_PER_MINUTE", "5")
    monkeypatch.delenv("LEDGERSYNC_READ_LIMIT_PER_MINUTE", raising=False)

    config = get_rate_limit_config()

    assert config.ingest_trigger.max_requests == 5
    assert config.ingest_trigger.window_seconds == 60.0
    assert config.authenticated_read.max_requests == 60


def test_sui_config_requires_package_id(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("SUI_PACKAGE_ID", raising=False)

    with pytest.raises(MissingConfigurationError, match="SUI_PACKAGE_ID"):
        get_sui_config()


def test_sui_config_uses_network_endpoint(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SUI_PACKAGE_ID", " 0xfeed ")
    monkeypatch.setenv("SUI_NETWORK", "mainnet")
    monkeypatch.delenv("SUI_RPC_URL", raising=False)
    monkeypatch.delenv("SUI_MODULE", raising=False)

    config = get_sui_config()

    assert config.rpc_url == SUI_FULLNODE_URLS["mainnet"]
    assert config.event_type("LicenseIssued") == "0xfeed::license::LicenseIssued"


def test_sui_config_custom_network_needs_rpc_url(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SUI_PACKAGE_ID", "0xfeed")
    monkeypatch.setenv("SUI_NETWORK", "private")
    monkeypatch.delenv("SUI_RPC_URL", raising=False)

    with pytest.raises(ConfigurationError, match="SUI_NETWORK"):
        get_sui_config()

    monkeypatch.setenv("SUI_RPC_URL", "http://sui.internal:9000")
    assert get_sui_config().rpc_url == "http://sui.internal:9000"


def test_database_uri_defaults_to_data_dir(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.delenv("DATABASE_URI", raising=False)
    monkeypatch.setenv("LEDGERSYNC_DATA_DIR", str(tmp_path / "data"))

    config = get_database_config()

    assert config.uri == f"sqlite+pysqlite:///{(tmp_path / 'data').resolve() / 'ledgersync.db'}"
    assert (tmp_path / "data").is_dir()
    assert config.is_sqlite


def test_database_uri_env_wins(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URI", "postgresql+psycopg://db/ledgersync")

    config = get_database_config()

    assert config.uri == "postgresql+psycopg://db/ledgersync"
    assert not config.is_sqlite


def test_sqlite_busy_timeout_is_configurable(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URI", "sqlite+pysqlite:///:memory:")
    monkeypatch.setenv("LEDGERSYNC_SQLITE_BUSY_TIMEOUT_MS", "250")

    assert get_database_config().sqlite_busy_timeout_ms == 250


def test_invalid_value_names_its_variable(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EXAMPLE_FLOAT", "fast")

    with pytest.raises(ConfigurationError) as exc:
        env_float("EXAMPLE_FLOAT", 1.0)

    assert exc.value.variables == ("EXAMPLE_FLOAT",)


def test_configure_logging_reads_level_and_quiets_libraries(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    calls: list[dict[str, object]] = []
    monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: calls.append(kwargs))
    previous = {name: logging.getLogger(name).level for name in QUIET_LOGGERS}
    try:
        monkeypatch.setenv("LEDGERSYNC_LOG_LEVEL", "error")
        configure_logging()
        monkeypatch.setenv("LEDGERSYNC_LOG_LEVEL", "chatty")
        configure_logging()

        assert [call["level"] for call in calls] == [logging.ERROR, logging.INFO]
        assert {logging.getLogger(name).level for name in QUIET_LOGGERS} == {logging.WARNING}
    finally:
        for name, level in previous.items():
            logging.getLogger(name).setLevel(level)
