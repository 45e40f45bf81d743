"""
Tests for the config module.

Tests configuration loading, validation, and generation functionality
including YAML parsing, error handling, and file operations.
"""

import os
import re
import stat
from unittest.mock import patch

import pytest
import yaml

from contact_share.config.generator import generate_default_config, save_config_file
from contact_share.config.loader import (
    DEFAULT_CONFIG_FILE,
    ConfigError,
    ConfigLoader,
)
from contact_share.config.settings import (
    DEFAULT_CONTAINER_IDENTIFIER,
    Settings,
)


class TestConfigLoaderInitialization:
    """Tests for ConfigLoader initialization."""

    def test_custom_config_dir_via_argument(self, tmp_path):
        """Test that custom config dir can be passed as argument."""
        loader = ConfigLoader(config_dir=tmp_path)
        assert loader.config_dir == tmp_path.resolve()
        assert loader.config_path == tmp_path.resolve() / DEFAULT_CONFIG_FILE

    def test_config_dir_from_environment_variable(self, tmp_path):
        """Test that config dir can be set via environment variable."""
        with patch.dict(os.environ, {"CONTACT_SHARE_CONFIG_DIR": str(tmp_path)}):
            loader = ConfigLoader()
        assert loader.config_dir == tmp_path.resolve()

    def test_custom_config_file(self, tmp_path):
        """Test that the file name can be changed."""
        loader = ConfigLoader(config_dir=tmp_path, config_file="other.yaml")
        assert loader.config_path.name == "other.yaml"


class TestConfigLoading:
    """Tests for loading YAML files."""

    def test_missing_file_returns_empty(self, tmp_path):
        """Test that a missing file is not an error."""
        assert ConfigLoader(config_dir=tmp_path).load() == {}

    def test_empty_file_returns_empty(self, tmp_path):
        """Test that an empty file yields no options."""
        (tmp_path / "config.yaml").write_text("")
        assert ConfigLoader(config_dir=tmp_path).load() == {}

    def test_loads_values(self, tmp_path):
        """Test that values are read from YAML."""
        (tmp_path / "config.yaml").write_text(
            "container_identifier: iCloud.com.example.app\nmax_workers: 2\n"
        )

        config = ConfigLoader(config_dir=tmp_path).load()

        assert config == {
            "container_identifier": "iCloud.com.example.app",
            "max_workers": 2,
        }

    def test_invalid_yaml_raises(self, tmp_path):
        """Test that a parse error raises ConfigError."""
        (tmp_path / "config.yaml").write_text("key: [unclosed\n")

        with pytest.raises(ConfigError, match="Failed to parse"):
            ConfigLoader(config_dir=tmp_path).load()

    def test_non_dictionary_raises(self, tmp_path):
        """Test that a top-level list is rejected."""
        (tmp_path / "config.yaml").write_text("- a\n- b\n")

        with pytest.raises(ConfigError, match="YAML dictionary"):
            ConfigLoader(config_dir=tmp_path).load()

    def test_load_from_explicit_file(self, tmp_path):
        """Test loading a file outside the config dir."""
        path = tmp_path / "elsewhere.yaml"
        path.write_text("zone_name: People\n")

        assert ConfigLoader(config_dir=tmp_path).load_from_file(path) == {
            "zone_name": "People"
        }


class TestConfigValidation:
    """Tests for ConfigLoader.validate."""

    @pytest.fixture
    def loader(self, tmp_path):
        return ConfigLoader(config_dir=tmp_path)

    def test_valid_config(self, loader):
        """Test that a complete valid config passes."""
        loader.validate(
            {
                "container_identifier": "iCloud.com.example.app",
                "environment": "production",
                "zone_name": "Contacts",
                "api_page_size": 100,
                "api_initial_retry_delay": 0.5,
                "api_max_retry_delay": 30,
                "verbose": True,
                "log_retention_count": 0,
            }
        )

    def test_unknown_keys_ignored(self, loader):
        """Test that unknown keys are allowed."""
        loader.validate({"something_else": [1, 2, 3]})

    @pytest.mark.parametrize(
        "config",
        [
            {"max_workers": "four"},
            {"max_workers": True},
            {"verbose": "yes"},
            {"api_initial_retry_delay": "1"},
            {"container_identifier": 42},
        ],
    )
    def test_wrong_types(self, loader, config):
        """Test that type mismatches are rejected."""
        with pytest.raises(ConfigError, match="Invalid type"):
            loader.validate(config)

    def test_invalid_environment(self, loader):
        """Test that unknown environments are rejected."""
        with pytest.raises(ConfigError, match="Invalid environment"):
            loader.validate({"environment": "staging"})

    @pytest.mark.parametrize("key", ["container_identifier", "zone_name"])
    def test_empty_names(self, loader, key):
        """Test that blank identifiers are rejected."""
        with pytest.raises(ConfigError, match="cannot be empty"):
            loader.validate({key: "  "})

    @pytest.mark.parametrize(
        "config",
        [
            {"api_page_size": 0},
            {"api_max_retries": 0},
            {"api_timeout": -1},
            {"max_workers": 0},
            {"log_retention_count": -1},
            {"api_initial_retry_delay": 0},
            {"api_max_retry_delay": -2.5},
        ],
    )
    def test_out_of_range_values(self, loader, config):
        """Test numeric range checks."""
        with pytest.raises(ConfigError):
            loader.validate(config)

    def test_load_and_validate(self, tmp_path):
        """Test that loading validates the result."""
        (tmp_path / "config.yaml").write_text("max_workers: 0\n")

        with pytest.raises(ConfigError, match="max_workers"):
            ConfigLoader(config_dir=tmp_path).load_and_validate()


class TestSettings:
    """Tests for Settings.from_dict."""

    def test_defaults(self):
        """Test values used without a config file."""
        settings = Settings.from_dict({})

        assert settings.container_identifier == DEFAULT_CONTAINER_IDENTIFIER
        assert settings.environment == "development"
        assert settings.zone_name == "Contacts"
        assert settings.api_token is None

    def test_overrides_and_unknown_keys(self):
        """Test that known keys override and unknown keys are dropped."""
        settings = Settings.from_dict(
            {"zone_name": "People", "max_workers": 8, "legacy_option": 1}
        )

        assert settings.zone_name == "People"
        assert settings.max_workers == 8
        assert not hasattr(settings, "legacy_option")


class TestConfigGenerator:
    """Tests for the default configuration file."""

    def test_template_is_valid_yaml(self):
        """Test that the all-commented template parses to nothing."""
        assert yaml.safe_load(generate_default_config()) is None

    def test_template_documents_every_setting(self):
        """Test that each Settings field appears in the template."""
        template = generate_default_config()
        for name in Settings.__dataclass_fields__:
            assert f"# {name}:" in template

    def test_uncommented_template_validates(self, tmp_path):
        """Test that the documented example values are valid."""
        option_line = re.compile(r"^# ([a-z_]+: .+)$")
        lines = [
            match.group(1)
            for match in map(option_line.match, generate_default_config().splitlines())
            if match
        ]
        config = yaml.safe_load("\n".join(lines))

        assert set(config) == set(Settings.__dataclass_fields__)

        ConfigLoader(config_dir=tmp_path).validate(config)

    def test_save_config_file(self, tmp_path):
        """Test writing the template."""
        path = tmp_path / "sub" / "config.yaml"

        success, error = save_config_file(path)

        assert success is True
        assert error is None
        assert path.read_text() == generate_default_config()
        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_existing_file_not_overwritten(self, tmp_path):
        """Test that an existing file is kept without --force."""
        path = tmp_path / "config.yaml"
        path.write_text("zone_name: Mine\n")

        success, error = save_config_file(path)

        assert success is False
        assert "--force" in error
        assert path.read_text() == "zone_name: Mine\n"

    def test_overwrite(self, tmp_path):
        """Test that overwrite replaces the file."""
        path = tmp_path / "config.yaml"
        path.write_text("zone_name: Mine\n")

        success, _ = save_config_file(path, overwrite=True)

        assert success is True
        assert path.read_text() == generate_default_config()
