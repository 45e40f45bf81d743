"""
contact_share.utils - Utility module

Common utilities including logging configuration and path resolution.
"""

from contact_share.utils.paths import (
    CONFIG_DIR_ENV_VAR,
    DEFAULT_CONFIG_DIR,
    resolve_config_dir,
    state_db_path,
)

__all__ = [
    "CONFIG_DIR_ENV_VAR",
    "DEFAULT_CONFIG_DIR",
    "resolve_config_dir",
    "state_db_path",
]
