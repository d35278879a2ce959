"""Tests for settings storage and validation."""

from unittest.mock import patch

import keyring.errors
import pytest
import yaml

from project_maker.settings import (
    ConfigValidator,
    OllamaConfig,
    Settings,
    SettingsStorage,
    ShellMode,
)
from project_maker.settings.storage import HOME_ENV_VAR, default_config_dir


@pytest.fixture
def storage(tmp_path):
    return SettingsStorage(config_dir=tmp_path / "config")


class TestSettingsStorage:
    """Tests for YAML persistence."""

    def test_missing_file_gives_defaults(self, storage):
        """Test that a missing config file yields default settings."""
        settings = storage.load()

        assert settings == Settings()
        assert settings.ollama.base_url == "http://localhost:11434"
        assert settings.automation.shell_mode == ShellMode.NATIVE

    def test_save_and_load(self, storage):
        """Test saving and reloading settings."""
        settings = Settings()
        settings.ollama.model = "qwen2.5-coder:7b"
        settings.ollama.top_p = 0.9
        settings.automation.shell_mode = ShellMode.MOCK
        settings.automation.step_timeout_seconds = 120.0
        settings.github.username = "octocat"

        storage.save(settings)

        assert storage.config_file.exists()
        assert storage.load() == settings

    def test_saved_file_is_plain_yaml(self, storage):
        """Test the on-disk layout."""
        storage.save(Settings())

        data = yaml.safe_load(storage.config_file.read_text())

        assert data["ollama"]["model"] == "llama3"
        assert data["automation"]["shell_mode"] == "native"
        assert list(data) == ["ollama", "automation", "github", "database_url", "default_project_path"]

    def test_malformed_values_fall_back(self, storage):
        """Test that bad values are replaced by defaults."""
        storage.config_dir.mkdir(parents=True)
        storage.config_file.write_text(yaml.dump({
            "ollama": {"model": "codellama:7b", "temperature": "warm"},
            "automation": {"shell_mode": "docker", "mock_failure_rate": 0.5},
            "github": "not a section",
        }))

        settings = storage.load()

        assert settings.ollama.model == "codellama:7b"
        assert settings.ollama.temperature == OllamaConfig().temperature
        assert settings.automation.shell_mode == ShellMode.NATIVE
        assert settings.automation.mock_failure_rate == 0.5
        assert settings.github.username == ""

    def test_non_mapping_file(self, storage):
        """Test that a YAML list is ignored."""
        storage.config_dir.mkdir(parents=True)
        storage.config_file.write_text("- just\n- a list\n")

        assert storage.load() == Settings()

    def test_home_env_var(self, tmp_path, monkeypatch):
        """Test that the config dir follows the environment override."""
        monkeypatch.setenv(HOME_ENV_VAR, str(tmp_path / "pm-home"))

        assert default_config_dir() == tmp_path / "pm-home"
        assert SettingsStorage().config_file == tmp_path / "pm-home" / "config.yaml"

    def test_default_database_url(self, storage):
        """Test the database URL default and override."""
        settings = Settings()
        assert storage.database_url(settings) == f"sqlite:///{storage.config_dir / 'project_maker.db'}"

        settings.database_url = "sqlite:////srv/pm.db"
        assert storage.database_url(settings) == "sqlite:////srv/pm.db"


class TestSetValue:
    """Tests for dotted-key updates."""

    def test_nested_value(self, storage):
        """Test changing a nested value with type parsing."""
        updated = storage.set_value(Settings(), "ollama.temperature", "0.2")

        assert updated.ollama.temperature == 0.2

    def test_enum_value(self, storage):
        """Test changing the shell mode."""
        updated = storage.set_value(Settings(), "automation.shell_mode", "mock")

        assert updated.automation.shell_mode == ShellMode.MOCK

    def test_null_clears_optional(self, storage):
        """Test that null resets an optional value."""
        settings = Settings()
        settings.automation.step_timeout_seconds = 30.0

        updated = storage.set_value(settings, "automation.step_timeout_seconds", "null")

        assert updated.automation.step_timeout_seconds is None

    def test_top_level_value(self, storage):
        """Test changing a top-level key."""
        updated = storage.set_value(Settings(), "default_project_path", "~/code")

        assert updated.default_project_path == "~/code"

    def test_original_unchanged(self, storage):
        """Test that set_value returns a copy."""
        settings = Settings()

        storage.set_value(settings, "ollama.model", "mistral")

        assert settings.ollama.model == "llama3"

    @pytest.mark.parametrize("key", ["ollama.colour", "nope", "ollama", "automation.shell_mode.extra"])
    def test_unknown_key(self, storage, key):
        """Test that unknown keys are rejected."""
        with pytest.raises(ValueError):
            storage.set_value(Settings(), key, "1")

    @pytest.mark.parametrize("key,value", [
        ("ollama.temperature", "hot"),
        ("automation.shell_mode", "docker"),
        ("automation.stderr_tail_lines", "many"),
    ])
    def test_invalid_value(self, storage, key, value):
        """Test that values of the wrong type are rejected."""
        with pytest.raises(ValueError):
            storage.set_value(Settings(), key, value)


class TestSecrets:
    """Tests for keyring-backed secrets."""

    def test_get_token(self, storage):
        """Test reading the GitHub token."""
        with patch("project_maker.settings.storage.keyring.get_password", return_value="ghp_abc") as get:
            assert storage.get_github_token() == "ghp_abc"
            assert storage.has_github_token() is True

        get.assert_called_with("project-maker", "github")

    def test_missing_token(self, storage):
        """Test that an absent token is reported as missing."""
        with patch("project_maker.settings.storage.keyring.get_password", return_value=None):
            assert storage.has_github_token() is False

    def test_keyring_unavailable_on_read(self, storage):
        """Test that a keyring failure reads as no token."""
        with patch(
            "project_maker.settings.storage.keyring.get_password",
            side_effect=keyring.errors.KeyringError("no backend"),
        ):
            assert storage.get_github_token() is None

    def test_keyring_unavailable_on_write(self, storage):
        """Test that a keyring failure on write is re-raised."""
        with patch(
            "project_maker.settings.storage.keyring.set_password",
            side_effect=keyring.errors.KeyringError("no backend"),
        ):
            with pytest.raises(keyring.errors.KeyringError):
                storage.set_github_token("ghp_abc")

    def test_delete_missing_token(self, storage):
        """Test that deleting a missing token is not an error."""
        with patch(
            "project_maker.settings.storage.keyring.delete_password",
            side_effect=keyring.errors.PasswordDeleteError("not found"),
        ) as delete:
            storage.delete_github_token()

        delete.assert_called_once_with("project-maker", "github")


class TestConfigValidator:
    """Tests for ConfigValidator."""

    def test_defaults_are_valid(self):
        """Test that default settings validate cleanly."""
        result = ConfigValidator().validate(Settings())

        assert result.valid is True
        assert result.errors == []
        assert result.warnings == []

    def test_bad_ollama_values(self):
        """Test errors for invalid generation settings."""
        settings = Settings()
        settings.ollama.base_url = "localhost:11434"
        settings.ollama.model = ""
        settings.ollama.temperature = 3.0
        settings.ollama.top_p = 0.0
        settings.ollama.timeout_seconds = 0

        result = ConfigValidator().validate(settings)

        assert result.valid is False
        assert len(result.errors) == 5

    def test_small_num_predict_warns(self):
        """Test that a small token limit is a warning only."""
        settings = Settings()
        settings.ollama.num_predict = 256

        result = ConfigValidator().validate(settings)

        assert result.valid is True
        assert any("num_predict" in w for w in result.warnings)

    def test_mock_mode_warns(self):
        """Test that mock mode produces a warning."""
        settings = Settings()
        settings.automation.shell_mode = ShellMode.MOCK

        result = ConfigValidator().validate_automation(settings)

        assert result.valid is True
        assert len(result.warnings) == 1

    def test_bad_automation_values(self):
        """Test errors for invalid automation settings."""
        settings = Settings()
        settings.automation.mock_failure_rate = 1.5
        settings.automation.mock_min_latency = 2.0
        settings.automation.mock_max_latency = 1.0
        settings.automation.step_timeout_seconds = -1
        settings.automation.stderr_tail_lines = -3

        result = ConfigValidator().validate_automation(settings)

        assert len(result.errors) == 4

    def test_credentials_username_without_token(self, storage):
        """Test the warning for a username without a stored token."""
        settings = Settings()
        settings.github.username = "octocat"

        with patch("project_maker.settings.storage.keyring.get_password", return_value=None):
            result = ConfigValidator().validate_credentials(settings, storage)

        assert result.valid is True
        assert "octocat" in result.warnings[0]
