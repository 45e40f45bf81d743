"""
contact_share.config - Configuration management module

Contains configuration loading, validation, and default settings.
"""

from contact_share.config.generator import generate_default_config, save_config_file
from contact_share.config.loader import ConfigError, ConfigLoader
from contact_share.config.settings import Settings

__all__ = [
    "ConfigError",
    "ConfigLoader",
    "Settings",
    "generate_default_config",
    "save_config_file",
]
