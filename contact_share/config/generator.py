"""
Configuration file generator for contact sharing.

Provides the documented default configuration written by ``init-config``.
"""

import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def generate_default_config() -> str:
    """
    Generate default YAML configuration with all options documented.

    Returns:
        String containing YAML configuration with comments
    """
    return """# Contact Share Configuration
# ===========================
#
# This file sets the options for contact-share.
# CLI arguments always override these values.
#
# To use this configuration:
#   1. Save as ~/.contact-share/config.yaml (or custom location)
#   2. Uncomment and modify options as needed
#   3. Run contact-share commands normally

# Container
# ---------

# CloudKit container identifier
# Default: iCloud.com.example.contact-share
# container_identifier: iCloud.com.example.contact-share

# Container environment: development or production
# Default: development
# environment: development

# Name of the custom zone holding your contacts
# Default: Contacts
# zone_name: Contacts


# Credentials
# -----------

# CloudKit API token for the container.
# Prefer the environment variable below over storing the token here.
# api_token: your-api-token

# Environment variable consulted for the API token
# Default: CONTACT_SHARE_API_TOKEN
# api_token_env: CONTACT_SHARE_API_TOKEN


# API Options
# -----------

# Records per change page (server maximum is 200)
# Default: 200
# api_page_size: 200

# Attempts for throttled or failed requests
# Default: 5
# api_max_retries: 5

# Backoff delays in seconds
# Default: 1.0 and 60.0
# api_initial_retry_delay: 1.0
# api_max_retry_delay: 60.0

# HTTP timeout per request in seconds
# Default: 30
# api_timeout: 30


# Sync Options
# ------------

# Shared zones fetched at the same time
# Default: 4
# max_workers: 4


# Logging Options
# ---------------

# Enable verbose output with detailed logging
# Default: false
# verbose: true

# Directory for log files
# Default: ~/.contact-share/logs
# log_dir: /path/to/logs

# Number of log files to keep (0 keeps all)
# Default: 10
# log_retention_count: 10
"""


def save_config_file(
    config_path: Path, overwrite: bool = False
) -> tuple[bool, str | None]:
    """
    Save the default configuration file to the given path.

    Creates parent directories if they don't exist and writes the file
    with owner-only permissions.

    Args:
        config_path: Path where the config file should be saved
        overwrite: If True, overwrite an existing file

    Returns:
        Tuple of (success, error_message)
    """
    try:
        config_path = config_path.expanduser().resolve()

        if config_path.exists() and not overwrite:
            return (
                False,
                f"Configuration file already exists: {config_path}\n"
                "Use --force to overwrite.",
            )

        config_path.parent.mkdir(parents=True, mode=0o700, exist_ok=True)
        config_path.write_text(generate_default_config(), encoding="utf-8")
        config_path.chmod(0o600)

        logger.info(f"Created configuration file: {config_path}")
        return (True, None)

    except OSError as e:
        error_msg = f"Failed to create configuration file: {e}"
        logger.error(error_msg)
        return (False, error_msg)
