"""Application configuration helpers."""

from __future__ import annotations

from .env import env_float, env_int, require_env_vars
from .errors import ConfigurationError, MissingConfigurationError
from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy
from .logging import configure_logging
from .rate_limit import (
    AUTHENTICATED_READ,
    INGEST_TRIGGER,
    LimitClass,
    RateLimitConfig,
    get_rate_limit_config,
)
from .storage import DatabaseConfig, StorageConfig, get_database_config, get_storage_config
from .sui import SUI_FULLNODE_URLS, SuiConfig, get_sui_config
from .sync import JobQueueConfig, SyncConfig, get_job_queue_config, get_sync_config

__all__ = [
    "AUTHENTICATED_READ",
    "INGEST_TRIGGER",
    "SUI_FULLNODE_URLS",
    "ConfigurationError",
    "DatabaseConfig",
    "JobQueueConfig",
    "LimitClass",
    "MissingConfigurationError",
    "RateLimit",
    "RateLimitConfig",
    "ResilienceConfig",
    "RetryPolicy",
    "StorageConfig",
    "SuiConfig",
    "SyncConfig",
    "configure_logging",
    "env_float",
    "env_int",
    "get_database_config",
    "get_job_queue_config",
    "get_rate_limit_config",
    "get_storage_config",
    "get_sui_config",
    "get_sync_config",
    "require_env_vars",
]
