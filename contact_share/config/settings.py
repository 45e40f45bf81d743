"""
Typed application settings built from the YAML configuration.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any

from contact_share.api.cloudkit_api import (
    DEFAULT_INITIAL_RETRY_DELAY,
    DEFAULT_MAX_RETRIES,
    DEFAULT_MAX_RETRY_DELAY,
    DEFAULT_PAGE_SIZE,
    DEFAULT_TIMEOUT,
    ENVIRONMENT_DEVELOPMENT,
)
from contact_share.auth.cloudkit_auth import DEFAULT_API_TOKEN_ENV
from contact_share.sync.fetcher import DEFAULT_MAX_WORKERS
from contact_share.sync.zone import DEFAULT_ZONE_NAME

# Container used when none is configured
DEFAULT_CONTAINER_IDENTIFIER = "iCloud.com.example.contact-share"

# Log files kept by cleanup_old_logs
DEFAULT_LOG_RETENTION_COUNT = 10


@dataclass
class Settings:
    """
    Effective settings for one CLI invocation.

    Usage:
        config = ConfigLoader().load_and_validate()
        settings = Settings.from_dict(config)
    """

    container_identifier: str = DEFAULT_CONTAINER_IDENTIFIER
    environment: str = ENVIRONMENT_DEVELOPMENT
    api_token: str | None = None
    api_token_env: str = DEFAULT_API_TOKEN_ENV
    zone_name: str = DEFAULT_ZONE_NAME
    api_page_size: int = DEFAULT_PAGE_SIZE
    api_max_retries: int = DEFAULT_MAX_RETRIES
    api_initial_retry_delay: float = DEFAULT_INITIAL_RETRY_DELAY
    api_max_retry_delay: float = DEFAULT_MAX_RETRY_DELAY
    api_timeout: int = DEFAULT_TIMEOUT
    max_workers: int = DEFAULT_MAX_WORKERS
    verbose: bool = False
    log_dir: str | None = None
    log_retention_count: int = DEFAULT_LOG_RETENTION_COUNT

    @classmethod
    def from_dict(cls, config: dict[str, Any]) -> Settings:
        """
        Create Settings from a validated configuration dictionary.

        Unknown keys are ignored; missing keys take their defaults.
        """
        known = {f.name for f in fields(cls)}
        values = {key: value for key, value in config.items() if key in known}
        return cls(**values)
