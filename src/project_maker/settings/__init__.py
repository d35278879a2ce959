"""
Settings management module for Project Maker.

This module provides configuration management including:
- Settings data models (ShellMode, OllamaConfig, AutomationSettings, Settings)
- YAML-based configuration storage
- Secure token storage using keyring
- Configuration validation
"""

from .models import (
    AutomationSettings,
    GitHubConfig,
    OllamaConfig,
    Settings,
    ShellMode,
)
from .storage import SettingsStorage
from .validation import ConfigValidator, ValidationResult

__all__ = [
    # Models
    "AutomationSettings",
    "GitHubConfig",
    "OllamaConfig",
    "Settings",
    "ShellMode",
    # Storage
    "SettingsStorage",
    # Validation
    "ConfigValidator",
    "ValidationResult",
]
