"""Tests for config/loader.py module.

Covers:
- _load_yaml() function
- load_config() precedence: kwargs > env > YAML > defaults
- validation failures surfacing as ConfigError
"""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from xcplane.config.loader import GLOBAL_CONFIG_PATH, _load_yaml, load_config
from xcplane.core.errors import ConfigError, ErrorCode


class TestLoadYaml:
    """Tests for _load_yaml function."""

    def test_returns_empty_dict_for_missing_file(self, tmp_path: Path) -> None:
        assert _load_yaml(tmp_path / "nonexistent.yaml") == {}

    def test_loads_valid_yaml(self, tmp_path: Path) -> None:
        yaml_file = tmp_path / "config.yaml"
        yaml_file.write_text("cache:\n  response_max_entries: 50\n")

        assert _load_yaml(yaml_file) == {"cache": {"response_max_entries": 50}}

    def test_returns_empty_for_empty_file(self, tmp_path: Path) -> None:
        yaml_file = tmp_path / "empty.yaml"
        yaml_file.write_text("")

        assert _load_yaml(yaml_file) == {}

    def test_raises_config_error_for_invalid_yaml(self, tmp_path: Path) -> None:
        yaml_file = tmp_path / "bad.yaml"
        yaml_file.write_text("cache: [unclosed\n")

        with pytest.raises(ConfigError) as exc_info:
            _load_yaml(yaml_file)
        assert exc_info.value.code == ErrorCode.CONFIG_PARSE_ERROR


class TestLoadConfig:
    """Tests for load_config precedence."""

    def test_returns_default_config_when_no_file(self, tmp_path: Path) -> None:
        config = load_config(tmp_path / "missing.yaml")

        assert config.cache.response_max_entries == 100
        assert config.cache.response_max_age_sec == 1800.0
        assert config.execution.build_timeout_sec == 55.0
        assert config.persistence.enabled is True

    def test_loads_yaml_values(self, tmp_path: Path) -> None:
        yaml_file = tmp_path / "config.yaml"
        yaml_file.write_text("cache:\n  response_max_entries: 7\npersistence:\n  enabled: false\n")

        config = load_config(yaml_file)

        assert config.cache.response_max_entries == 7
        assert config.persistence.enabled is False

    def test_env_vars_override_yaml(self, tmp_path: Path) -> None:
        yaml_file = tmp_path / "config.yaml"
        yaml_file.write_text("logging:\n  level: DEBUG\n")

        with patch.dict(os.environ, {"XCPLANE__LOGGING__LEVEL": "INFO"}):
            config = load_config(yaml_file)

        assert config.logging.level == "INFO"

    def test_kwargs_override_all(self, tmp_path: Path) -> None:
        yaml_file = tmp_path / "config.yaml"
        yaml_file.write_text("logging:\n  level: DEBUG\n")

        with patch.dict(os.environ, {"XCPLANE__LOGGING__LEVEL": "WARNING"}):
            config = load_config(yaml_file, logging={"level": "ERROR"})

        assert config.logging.level == "ERROR"

    def test_raises_config_error_for_invalid_value(self, tmp_path: Path) -> None:
        yaml_file = tmp_path / "config.yaml"
        yaml_file.write_text("cache:\n  response_max_entries: 0\n")

        with pytest.raises(ConfigError) as exc_info:
            load_config(yaml_file)
        assert exc_info.value.code == ErrorCode.CONFIG_INVALID_VALUE

    def test_raises_parse_error_for_non_mapping(self, tmp_path: Path) -> None:
        yaml_file = tmp_path / "config.yaml"
        yaml_file.write_text("- just\n- a list\n")

        with pytest.raises(ConfigError) as exc_info:
            load_config(yaml_file)
        assert exc_info.value.code == ErrorCode.CONFIG_PARSE_ERROR


class TestGlobalConfigPath:
    def test_is_in_user_config(self) -> None:
        assert GLOBAL_CONFIG_PATH.parts[-3:] == (".config", "xcplane", "config.yaml")
