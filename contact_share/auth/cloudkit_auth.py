"""
Token management for CloudKit Web Services.

Provides credential handling with support for:
- API token lookup from configuration, environment or a token file
- Web auth token storage per container in the user's config directory
- Secure file permissions for stored tokens
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from contact_share.utils.paths import resolve_config_dir

# Environment variable consulted for the API token by default
DEFAULT_API_TOKEN_ENV = "CONTACT_SHARE_API_TOKEN"

# Token file names inside the config directory
API_TOKEN_FILE = "api_token.txt"
WEB_AUTH_TOKEN_FILE = "web_auth_token.json"

logger = logging.getLogger(__name__)


class AuthenticationError(Exception):
    """Raised when tokens are missing or cannot be stored."""

    pass


@dataclass(frozen=True)
class CloudKitCredentials:
    """
    Tokens sent with every CloudKit request.

    Attributes:
        api_token: Container API token (identifies the app)
        web_auth_token: Signed-in user's token; None for anonymous access
    """

    api_token: str
    web_auth_token: str | None = None

    def __repr__(self) -> str:
        return (
            f"CloudKitCredentials(api_token=***, "
            f"web_auth_token={'***' if self.web_auth_token else None})"
        )


class CloudKitAuth:
    """
    Token manager for one CloudKit container.

    Attributes:
        config_dir: Directory for storing tokens
        container_identifier: Container the web auth token belongs to

    Usage:
        auth = CloudKitAuth("iCloud.com.example.app")

        # Store the token returned after signing in
        auth.save_web_auth_token(token)

        # Build credentials for the API wrapper
        creds = auth.get_credentials(api_token=config_token)
    """

    def __init__(
        self,
        container_identifier: str,
        config_dir: Path | None = None,
        api_token_env: str = DEFAULT_API_TOKEN_ENV,
    ):
        """
        Initialize the token manager.

        Args:
            container_identifier: CloudKit container identifier
            config_dir: Directory for storing tokens.
                       Defaults to ~/.contact-share/ or $CONTACT_SHARE_CONFIG_DIR
            api_token_env: Environment variable holding the API token
        """
        self.config_dir = resolve_config_dir(config_dir)
        self.container_identifier = container_identifier
        self.api_token_env = api_token_env

    @property
    def web_auth_token_path(self) -> Path:
        return self.config_dir / WEB_AUTH_TOKEN_FILE

    @property
    def api_token_path(self) -> Path:
        return self.config_dir / API_TOKEN_FILE

    def _ensure_config_dir(self) -> None:
        """Create the configuration directory with 700 permissions if needed."""
        if not self.config_dir.exists():
            self.config_dir.mkdir(parents=True, mode=0o700)
            logger.debug(f"Created config directory: {self.config_dir}")

    def _load_token_file(self) -> dict[str, Any]:
        path = self.web_auth_token_path
        if not path.exists():
            return {}

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Invalid token file {path}: {e}")
            return {}

        return data if isinstance(data, dict) else {}

    def resolve_api_token(self, api_token: str | None = None) -> str | None:
        """
        Find the container API token.

        Priority:
            1. Explicit api_token (usually from config.yaml)
            2. The configured environment variable
            3. api_token.txt in the config directory
        """
        if api_token:
            return api_token

        env_token = os.environ.get(self.api_token_env)
        if env_token:
            return env_token.strip()

        if self.api_token_path.exists():
            token = self.api_token_path.read_text(encoding="utf-8").strip()
            if token:
                return token

        return None

    def load_web_auth_token(self) -> str | None:
        """Return the stored web auth token for this container, if any."""
        token = self._load_token_file().get(self.container_identifier)
        return token if isinstance(token, str) and token else None

    def save_web_auth_token(self, token: str) -> None:
        """
        Store the web auth token for this container.

        Raises:
            AuthenticationError: If the token is empty or cannot be written
        """
        if not token or not token.strip():
            raise AuthenticationError("Web auth token cannot be empty")

        try:
            self._ensure_config_dir()
            data = self._load_token_file()
            data[self.container_identifier] = token.strip()

            self.web_auth_token_path.write_text(json.dumps(data), encoding="utf-8")
            self.web_auth_token_path.chmod(0o600)
        except OSError as e:
            raise AuthenticationError(f"Failed to store web auth token: {e}") from e

        logger.debug(f"Saved web auth token for {self.container_identifier}")

    def clear(self) -> bool:
        """
        Remove the stored web auth token for this container.

        Returns:
            True if a token was removed
        """
        data = self._load_token_file()
        if self.container_identifier not in data:
            return False

        del data[self.container_identifier]
        if data:
            self.web_auth_token_path.write_text(json.dumps(data), encoding="utf-8")
        else:
            self.web_auth_token_path.unlink()

        logger.info(f"Cleared web auth token for {self.container_identifier}")
        return True

    def is_authenticated(self) -> bool:
        """Check whether a web auth token is stored for this container."""
        return self.load_web_auth_token() is not None

    def get_credentials(self, api_token: str | None = None) -> CloudKitCredentials:
        """
        Build credentials for the API wrapper.

        Args:
            api_token: Explicit API token, usually from configuration

        Raises:
            AuthenticationError: If no API token can be found
        """
        resolved = self.resolve_api_token(api_token)
        if not resolved:
            raise AuthenticationError(
                "No CloudKit API token found. Set 'api_token' in config.yaml, "
                f"export {self.api_token_env}, or save it to {self.api_token_path}"
            )

        return CloudKitCredentials(
            api_token=resolved, web_auth_token=self.load_web_auth_token()
        )

    def get_auth_status(self, api_token: str | None = None) -> dict[str, Any]:
        """
        Summarize token availability for status display.

        Returns:
            Dictionary with config_dir, container, api_token and web_auth_token flags
        """
        return {
            "config_dir": str(self.config_dir),
            "container": self.container_identifier,
            "api_token": self.resolve_api_token(api_token) is not None,
            "web_auth_token": self.is_authenticated(),
        }
