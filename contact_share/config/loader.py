"""
Configuration loader for contact_share.

Reads ``config.yaml`` from the config directory. A missing or empty file
means "use the defaults"; known keys are checked for type and range,
unknown keys are ignored so older files keep working.
"""

import logging
from pathlib import Path
from typing import Any, Optional

import yaml

from contact_share.api.cloudkit_api import VALID_ENVIRONMENTS
from contact_share.utils import resolve_config_dir

DEFAULT_CONFIG_FILE = "config.yaml"

logger = logging.getLogger(__name__)

Number = (int, float)

# Known configuration keys and their expected types
VALID_KEYS: dict[str, Any] = {
    "container_identifier": str,
    "environment": str,
    "zone_name": str,
    "api_token": str,
    "api_token_env": str,
    "api_page_size": int,
    "api_max_retries": int,
    "api_initial_retry_delay": Number,
    "api_max_retry_delay": Number,
    "api_timeout": int,
    "max_workers": int,
    "verbose": bool,
    "log_dir": str,
    "log_retention_count": int,
}

# Lower bounds: (minimum, inclusive)
MINIMUMS: dict[str, tuple[float, bool]] = {
    "api_page_size": (1, True),
    "api_max_retries": (1, True),
    "api_timeout": (1, True),
    "max_workers": (1, True),
    "log_retention_count": (0, True),
    "api_initial_retry_delay": (0, False),
    "api_max_retry_delay": (0, False),
}

# String keys that must not be blank
REQUIRED_TEXT = ("container_identifier", "zone_name")


class ConfigError(Exception):
    """Raised when configuration loading or validation fails."""

    pass


def _type_name(expected: Any) -> str:
    if isinstance(expected, tuple):
        return " or ".join(t.__name__ for t in expected)
    return expected.__name__


def _has_type(value: Any, expected: Any) -> bool:
    # YAML booleans are ints to Python; only accept them for bool keys
    if isinstance(value, bool):
        return expected is bool
    return isinstance(value, expected)


class ConfigLoader:
    """
    Loads and validates ``config.yaml``.

    Usage:
        loader = ConfigLoader()
        config = loader.load_and_validate()
    """

    def __init__(
        self,
        config_dir: Optional[Path] = None,
        config_file: str = DEFAULT_CONFIG_FILE,
    ):
        """
        Args:
            config_dir: Directory holding the file.
                       Defaults to ~/.contact-share/ or $CONTACT_SHARE_CONFIG_DIR
            config_file: File name inside config_dir
        """
        self.config_dir = resolve_config_dir(config_dir)
        self.config_file = config_file

    @property
    def config_path(self) -> Path:
        return self.config_dir / self.config_file

    def load(self) -> dict[str, Any]:
        """Load ``config_path``; see load_from_file()."""
        return self.load_from_file(self.config_path)

    def load_from_file(self, path: Path | str) -> dict[str, Any]:
        """
        Read a YAML configuration file.

        Returns:
            The parsed mapping, or {} when the file is missing or empty

        Raises:
            ConfigError: If the file cannot be read, is not valid YAML,
                or does not hold a mapping
        """
        path = Path(path)
        if not path.is_file():
            logger.debug(f"No configuration file at {path}, using defaults")
            return {}

        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse YAML configuration file: {e}") from e
        except OSError as e:
            raise ConfigError(f"Failed to read configuration file {path}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(
                f"{path} must contain a YAML dictionary, got {type(data).__name__}"
            )

        logger.debug(f"Loaded {len(data)} configuration keys from {path}")
        return data

    def validate(self, config: dict[str, Any]) -> None:
        """
        Check types and ranges of the known keys.

        Raises:
            ConfigError: On the first invalid value
        """
        if not isinstance(config, dict):
            raise ConfigError(
                f"Configuration must be a dictionary, got {type(config).__name__}"
            )

        known = {key: value for key, value in config.items() if key in VALID_KEYS}

        for key, value in known.items():
            expected = VALID_KEYS[key]
            if not _has_type(value, expected):
                raise ConfigError(
                    f"Invalid type for '{key}': expected {_type_name(expected)}, "
                    f"got {type(value).__name__}"
                )

        environment = known.get("environment")
        if environment is not None and environment not in VALID_ENVIRONMENTS:
            raise ConfigError(
                f"Invalid environment '{environment}'. "
                f"Must be one of: {', '.join(VALID_ENVIRONMENTS)}"
            )

        for key in REQUIRED_TEXT:
            if key in known and not known[key].strip():
                raise ConfigError(f"{key} cannot be empty")

        for key, (minimum, inclusive) in MINIMUMS.items():
            if key not in known:
                continue
            value = known[key]
            if value < minimum or (value == minimum and not inclusive):
                bound = ">=" if inclusive else ">"
                raise ConfigError(f"{key} must be {bound} {minimum}, got {value}")

    def load_and_validate(self) -> dict[str, Any]:
        """
        Load ``config_path`` and validate it.

        Raises:
            ConfigError: If the file cannot be loaded or is invalid
        """
        config = self.load()
        self.validate(config)
        return config
