"""
Settings storage management for Project Maker.

This module provides YAML-based configuration file persistence with:
- Automatic directory creation
- Dataclass to dict conversion for serialization
- Fallback to defaults for missing or malformed values
- Secure token storage using system keyring
"""

import logging
import os
from pathlib import Path
from typing import Any, Callable

import keyring
import keyring.errors
import yaml

from .models import AutomationSettings, GitHubConfig, OllamaConfig, Settings, ShellMode

logger = logging.getLogger(__name__)

HOME_ENV_VAR = "PROJECT_MAKER_HOME"


def default_config_dir() -> Path:
    """Configuration directory: $PROJECT_MAKER_HOME or ~/.project-maker"""
    override = os.environ.get(HOME_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".project-maker"


def _optional_float(value: Any) -> float | None:
    return None if value is None else float(value)


class SettingsStorage:
    """
    Settings storage manager.

    Handles loading and saving Settings objects to YAML configuration files.
    Configuration is stored at ~/.project-maker/config.yaml by default.

    Attributes:
        config_dir: Directory path for configuration files.
        config_file: Path to the main configuration file.
    """

    KEYRING_SERVICE = "project-maker"
    GITHUB_TOKEN_KEY = "github"

    def __init__(self, config_dir: Path | None = None) -> None:
        """
        Initialize the settings storage.

        Args:
            config_dir: Optional path to configuration directory.
                       Defaults to $PROJECT_MAKER_HOME or ~/.project-maker/
        """
        self.config_dir = config_dir or default_config_dir()
        self.config_file = self.config_dir / "config.yaml"

    def load(self) -> Settings:
        """
        Load settings from the configuration file.

        Returns:
            Settings object loaded from config file, or default Settings
            if the configuration file does not exist.
        """
        if not self.config_file.exists():
            return Settings()

        with open(self.config_file, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            logger.warning("Ignoring malformed configuration file %s", self.config_file)
            return Settings()

        return self._dict_to_settings(data)

    def save(self, settings: Settings) -> None:
        """
        Save settings to the configuration file.

        Creates the configuration directory if it does not exist.

        Args:
            settings: Settings object to save.
        """
        self.config_dir.mkdir(parents=True, exist_ok=True)

        data = self.settings_to_dict(settings)
        with open(self.config_file, "w", encoding="utf-8") as f:
            yaml.dump(data, f, default_flow_style=False, allow_unicode=True, sort_keys=False)

    def database_url(self, settings: Settings) -> str:
        """Resolve the database URL, defaulting to a SQLite file in the config dir."""
        if settings.database_url:
            return settings.database_url
        return f"sqlite:///{self.config_dir / 'project_maker.db'}"

    def set_value(self, settings: Settings, key: str, raw_value: str) -> Settings:
        """
        Return a copy of settings with one dotted key changed.

        The value is parsed as YAML, so "0.5" becomes a float and "null"
        clears an optional value.

        Args:
            settings: Current settings.
            key: Dotted key such as "ollama.model" or "database_url".
            raw_value: Value as typed by the user.

        Raises:
            ValueError: If the key is unknown or the value has the wrong type.
        """
        data = self.settings_to_dict(settings)
        section, _, name = key.rpartition(".")
        target = data.get(section) if section else data
        if not isinstance(target, dict) or name not in target or isinstance(target[name], dict):
            raise ValueError(f"Unknown setting: {key}")

        target[name] = yaml.safe_load(raw_value) if raw_value.strip() else ""
        return self._dict_to_settings(data, strict=True)

    def settings_to_dict(self, settings: Settings) -> dict[str, Any]:
        """
        Convert Settings object to a dictionary suitable for YAML serialization.

        Args:
            settings: Settings object to convert.

        Returns:
            Dictionary representation of the settings.
        """
        result: dict[str, Any] = {}

        result["ollama"] = {
            "base_url": settings.ollama.base_url,
            "model": settings.ollama.model,
            "temperature": settings.ollama.temperature,
            "top_p": settings.ollama.top_p,
            "num_predict": settings.ollama.num_predict,
            "timeout_seconds": settings.ollama.timeout_seconds,
            "availability_timeout_seconds": settings.ollama.availability_timeout_seconds,
        }

        result["automation"] = {
            "shell_mode": settings.automation.shell_mode.value,
            "mock_failure_rate": settings.automation.mock_failure_rate,
            "mock_min_latency": settings.automation.mock_min_latency,
            "mock_max_latency": settings.automation.mock_max_latency,
            "step_timeout_seconds": settings.automation.step_timeout_seconds,
            "stderr_tail_lines": settings.automation.stderr_tail_lines,
        }

        result["github"] = {
            "username": settings.github.username,
        }

        result["database_url"] = settings.database_url
        result["default_project_path"] = settings.default_project_path

        return result

    def _dict_to_settings(self, data: dict[str, Any], strict: bool = False) -> Settings:
        """
        Convert a dictionary to a Settings object.

        Missing values take their defaults. Malformed values are replaced by
        their defaults with a warning, or raise ValueError when strict.

        Args:
            data: Dictionary loaded from YAML file.
            strict: Raise instead of falling back to defaults.

        Returns:
            Settings object with values from the dictionary.
        """
        def section(name: str) -> dict[str, Any]:
            value = data.get(name) or {}
            if not isinstance(value, dict):
                if strict:
                    raise ValueError(f"Invalid section: {name}")
                logger.warning("Ignoring malformed '%s' section", name)
                return {}
            return value

        def read(source: dict[str, Any], key: str, default: Any, convert: Callable[[Any], Any]) -> Any:
            if source.get(key) is None:
                return default
            try:
                return convert(source[key])
            except (TypeError, ValueError):
                if strict:
                    raise ValueError(f"Invalid value for {key}: {source[key]!r}") from None
                logger.warning("Invalid value for %s: %r, using default", key, source[key])
                return default

        ollama_defaults = OllamaConfig()
        ollama_data = section("ollama")
        ollama = OllamaConfig(
            base_url=read(ollama_data, "base_url", ollama_defaults.base_url, str),
            model=read(ollama_data, "model", ollama_defaults.model, str),
            temperature=read(ollama_data, "temperature", ollama_defaults.temperature, float),
            top_p=read(ollama_data, "top_p", ollama_defaults.top_p, _optional_float),
            num_predict=read(ollama_data, "num_predict", ollama_defaults.num_predict, int),
            timeout_seconds=read(ollama_data, "timeout_seconds", ollama_defaults.timeout_seconds, float),
            availability_timeout_seconds=read(
                ollama_data,
                "availability_timeout_seconds",
                ollama_defaults.availability_timeout_seconds,
                float,
            ),
        )

        automation_defaults = AutomationSettings()
        automation_data = section("automation")
        automation = AutomationSettings(
            shell_mode=read(automation_data, "shell_mode", automation_defaults.shell_mode, ShellMode),
            mock_failure_rate=read(
                automation_data, "mock_failure_rate", automation_defaults.mock_failure_rate, float
            ),
            mock_min_latency=read(
                automation_data, "mock_min_latency", automation_defaults.mock_min_latency, float
            ),
            mock_max_latency=read(
                automation_data, "mock_max_latency", automation_defaults.mock_max_latency, float
            ),
            step_timeout_seconds=read(
                automation_data,
                "step_timeout_seconds",
                automation_defaults.step_timeout_seconds,
                _optional_float,
            ),
            stderr_tail_lines=read(
                automation_data, "stderr_tail_lines", automation_defaults.stderr_tail_lines, int
            ),
        )

        github = GitHubConfig(
            username=read(section("github"), "username", "", str),
        )

        return Settings(
            ollama=ollama,
            automation=automation,
            github=github,
            database_url=read(data, "database_url", "", str),
            default_project_path=read(data, "default_project_path", "", str),
        )

    # ========================================================================
    # Token Management (using keyring for secure storage)
    # ========================================================================

    def get_secret(self, name: str) -> str | None:
        """
        Get a secret from the system keyring.

        Args:
            name: The secret name (e.g., "github").

        Returns:
            The secret if found, or None if not stored or keyring unavailable.
        """
        try:
            return keyring.get_password(self.KEYRING_SERVICE, name)
        except keyring.errors.KeyringError as e:
            logger.warning(f"Keyring unavailable, cannot retrieve {name} secret: {e}")
            return None

    def set_secret(self, name: str, value: str) -> None:
        """
        Store a secret in the system keyring.

        Raises:
            keyring.errors.KeyringError: If keyring is not available.
        """
        try:
            keyring.set_password(self.KEYRING_SERVICE, name, value)
            logger.debug(f"Secret {name} stored successfully")
        except keyring.errors.KeyringError as e:
            logger.error(f"Failed to store secret in keyring: {e}")
            raise

    def delete_secret(self, name: str) -> None:
        """Delete a secret from the system keyring; a missing secret is not an error."""
        try:
            keyring.delete_password(self.KEYRING_SERVICE, name)
            logger.debug(f"Secret {name} deleted successfully")
        except keyring.errors.PasswordDeleteError:
            logger.debug(f"No secret found for {name} to delete")
        except keyring.errors.KeyringError as e:
            logger.warning(f"Keyring error while deleting secret: {e}")

    def get_github_token(self) -> str | None:
        return self.get_secret(self.GITHUB_TOKEN_KEY)

    def set_github_token(self, token: str) -> None:
        self.set_secret(self.GITHUB_TOKEN_KEY, token)

    def delete_github_token(self) -> None:
        self.delete_secret(self.GITHUB_TOKEN_KEY)

    def has_github_token(self) -> bool:
        token = self.get_github_token()
        return token is not None and len(token) > 0
