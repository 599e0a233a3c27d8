"""
Unit tests for config.loaders module.

Tests cover:
- Path resolution (relative vs absolute)
- YAML loading with environment variable expansion
- Error handling (missing files, invalid YAML, non-mapping root)
"""

import os
import pytest
import yaml

from everycall.config.loaders import (
    DEFAULT_CONFIG_PATH,
    _PROJ_DIR,
    load_yaml_with_env_expansion,
    resolve_config_path,
)


class TestResolveConfigPath:
    """Tests for resolve_config_path function."""

    def test_absolute_path_unchanged(self):
        """Absolute paths should be returned unchanged."""
        abs_path = "/etc/everycall/test.yaml"
        assert resolve_config_path(abs_path) == abs_path

    def test_relative_path_resolved(self):
        """Relative paths should be resolved relative to project root."""
        result = resolve_config_path(DEFAULT_CONFIG_PATH)

        assert os.path.isabs(result)
        assert result.endswith(DEFAULT_CONFIG_PATH)
        assert result.startswith(str(_PROJ_DIR))

    def test_project_root_contains_package(self):
        """Project root is the directory holding the everycall package."""
        assert (_PROJ_DIR / "everycall" / "__init__.py").exists()


class TestLoadYamlWithEnvExpansion:
    """Tests for load_yaml_with_env_expansion function."""

    def test_load_simple_yaml(self, tmp_path):
        """Should load simple YAML without env vars."""
        config_file = tmp_path / "test.yaml"
        config_file.write_text("""
gateway:
  port: 3101
  signature_required: true
""")
        result = load_yaml_with_env_expansion(str(config_file))

        assert result['gateway']['port'] == 3101
        assert result['gateway']['signature_required'] is True

    def test_env_var_expansion_dollar_brace(self, tmp_path, monkeypatch):
        """Should expand ${VAR} style environment variables."""
        monkeypatch.setenv("TEST_BASE_URL", "https://calls.example.com")
        monkeypatch.setenv("TEST_PORT", "8080")

        config_file = tmp_path / "test.yaml"
        config_file.write_text("""
gateway:
  public_base_url: ${TEST_BASE_URL}
  port: ${TEST_PORT}
""")
        result = load_yaml_with_env_expansion(str(config_file))

        assert result['gateway']['public_base_url'] == 'https://calls.example.com'
        # YAML parser converts numeric strings to int
        assert result['gateway']['port'] == 8080

    def test_env_var_expansion_dollar_only(self, tmp_path, monkeypatch):
        """Should expand $VAR style environment variables."""
        monkeypatch.setenv("TEST_MODEL", "gpt-4.1-mini")

        config_file = tmp_path / "test.yaml"
        config_file.write_text("model: $TEST_MODEL\n")

        assert load_yaml_with_env_expansion(str(config_file))['model'] == 'gpt-4.1-mini'

    def test_missing_env_var_left_unchanged(self, tmp_path):
        """Missing env vars should be left unchanged (not expanded)."""
        config_file = tmp_path / "test.yaml"
        config_file.write_text("missing: ${EVERYCALL_NONEXISTENT_VAR}\n")

        result = load_yaml_with_env_expansion(str(config_file))

        assert result['missing'] == '${EVERYCALL_NONEXISTENT_VAR}'

    def test_file_not_found_raises_error(self):
        """Should raise FileNotFoundError for missing files."""
        with pytest.raises(FileNotFoundError) as exc_info:
            load_yaml_with_env_expansion("/nonexistent/path/everycall.yaml")

        assert "not found" in str(exc_info.value).lower()

    def test_invalid_yaml_raises_error(self, tmp_path):
        """Should raise YAMLError for invalid YAML syntax."""
        config_file = tmp_path / "invalid.yaml"
        config_file.write_text("""
key1: value1
  key2: value2
    key3: value3
""")
        with pytest.raises(yaml.YAMLError) as exc_info:
            load_yaml_with_env_expansion(str(config_file))

        assert "parsing" in str(exc_info.value).lower()

    def test_non_mapping_root_raises_error(self, tmp_path):
        """A list or scalar document is not a configuration."""
        config_file = tmp_path / "list.yaml"
        config_file.write_text("- a\n- b\n")

        with pytest.raises(yaml.YAMLError):
            load_yaml_with_env_expansion(str(config_file))

    def test_empty_file_returns_empty_dict(self, tmp_path):
        """Empty YAML file should return empty dict."""
        config_file = tmp_path / "empty.yaml"
        config_file.write_text("")

        assert load_yaml_with_env_expansion(str(config_file)) == {}

    def test_shipped_config_loads(self):
        """The config file shipped with the repo parses and carries no credentials."""
        result = load_yaml_with_env_expansion(resolve_config_path(DEFAULT_CONFIG_PATH))

        assert set(result) == {'gateway', 'orchestrator', 'voice', 'logging'}
        assert 'api_key' not in result['orchestrator']
        assert 'twilio_auth_token' not in result['gateway']
