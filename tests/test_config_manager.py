"""
Unit tests for configuration loading.
"""

import pytest
import yaml

from config_manager import DEFAULT_CONFIG, load_config, save_config
from exceptions import ConfigError


class TestLoadConfig:
    """Tests for load_config."""

    def test_missing_file_returns_defaults(self, tmp_path):
        config = load_config(tmp_path / "absent.yaml")

        assert config == DEFAULT_CONFIG
        assert config is not DEFAULT_CONFIG

    def test_nested_values_merge_with_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.dump({"budgeting": {"near_limit_pct": 90}, "extra": 1}))

        config = load_config(path)

        assert config["budgeting"]["near_limit_pct"] == 90
        assert config["budgeting"]["default_period_type"] == "monthly"
        assert config["logging"]["level"] == "INFO"
        assert config["extra"] == 1

    def test_empty_file_returns_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")

        assert load_config(path) == DEFAULT_CONFIG

    def test_invalid_yaml_raises_config_error(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("database: [unclosed")

        with pytest.raises(ConfigError) as exc_info:
            load_config(path)
        assert exc_info.value.details["config_path"] == str(path)

    def test_non_mapping_root_raises_config_error(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- just\n- a list\n")

        with pytest.raises(ConfigError):
            load_config(path)


class TestSaveConfig:
    """Tests for save_config."""

    def test_save_preserves_existing_keys(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.dump({"keep": "me"}))

        save_config({"analytics": {"top_categories_limit": 3}}, path)

        saved = yaml.safe_load(path.read_text())
        assert saved["keep"] == "me"
        assert load_config(path)["analytics"]["top_categories_limit"] == 3
