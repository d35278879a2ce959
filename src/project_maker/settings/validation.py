"""
Configuration validation for Project Maker.

This module provides validation of Settings objects:
- Generation service configuration
- Automation configuration
- Credentials verification
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List
from urllib.parse import urlparse

from .models import Settings, ShellMode

if TYPE_CHECKING:
    from .storage import SettingsStorage


@dataclass
class ValidationResult:
    """
    Result of a configuration validation.

    Attributes:
        valid: Whether the configuration passed all validation checks.
        errors: List of error messages (validation failures).
        warnings: List of warning messages (non-critical issues).
    """

    valid: bool = True
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def add_error(self, message: str) -> None:
        """Add an error message and mark validation as failed."""
        self.errors.append(message)
        self.valid = False

    def add_warning(self, message: str) -> None:
        """Add a warning message (does not affect validity)."""
        self.warnings.append(message)

    def merge(self, other: "ValidationResult") -> None:
        """Merge another ValidationResult into this one."""
        if not other.valid:
            self.valid = False
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)


class ConfigValidator:
    """
    Configuration validator for Project Maker settings.

    Provides validation methods for different aspects of the configuration:
    - Full configuration validation
    - Generation service validation
    - Automation validation
    - Credentials validation
    """

    def validate(self, settings: Settings) -> ValidationResult:
        """
        Validate the complete settings configuration.

        Note: Does NOT validate credentials (use validate_credentials for that).

        Args:
            settings: Settings object to validate.

        Returns:
            ValidationResult with any errors or warnings.
        """
        result = ValidationResult()
        result.merge(self.validate_ollama(settings))
        result.merge(self.validate_automation(settings))
        return result

    def validate_ollama(self, settings: Settings) -> ValidationResult:
        """
        Validate generation service configuration.

        Args:
            settings: Settings object to validate.

        Returns:
            ValidationResult for the ollama section.
        """
        result = ValidationResult()
        ollama = settings.ollama

        parsed = urlparse(ollama.base_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            result.add_error(f"ollama.base_url must be an http(s) URL, got '{ollama.base_url}'")

        if not ollama.model:
            result.add_error("ollama.model must be specified")

        if not 0.0 <= ollama.temperature <= 2.0:
            result.add_error("ollama.temperature must be between 0 and 2")

        if ollama.top_p is not None and not 0.0 < ollama.top_p <= 1.0:
            result.add_error("ollama.top_p must be in (0, 1]")

        if ollama.num_predict < 1:
            result.add_error("ollama.num_predict must be at least 1")
        elif ollama.num_predict < 1024:
            result.add_warning(
                f"ollama.num_predict is {ollama.num_predict}, "
                "feature lists may be truncated"
            )

        if ollama.timeout_seconds <= 0:
            result.add_error("ollama.timeout_seconds must be positive")
        if ollama.availability_timeout_seconds <= 0:
            result.add_error("ollama.availability_timeout_seconds must be positive")

        return result

    def validate_automation(self, settings: Settings) -> ValidationResult:
        """
        Validate automation configuration values.

        Args:
            settings: Settings object to validate.

        Returns:
            ValidationResult for the automation section.
        """
        result = ValidationResult()
        automation = settings.automation

        if not isinstance(automation.shell_mode, ShellMode):
            result.add_error(f"Invalid shell mode: {automation.shell_mode}")
        elif automation.shell_mode == ShellMode.MOCK:
            result.add_warning("automation.shell_mode is 'mock', commands will only be simulated")

        if not 0.0 <= automation.mock_failure_rate <= 1.0:
            result.add_error("automation.mock_failure_rate must be between 0 and 1")

        if automation.mock_min_latency < 0:
            result.add_error("automation.mock_min_latency must be non-negative")
        if automation.mock_max_latency < automation.mock_min_latency:
            result.add_error("automation.mock_max_latency must not be less than mock_min_latency")

        if automation.step_timeout_seconds is not None and automation.step_timeout_seconds <= 0:
            result.add_error("automation.step_timeout_seconds must be positive")

        if automation.stderr_tail_lines < 0:
            result.add_error("automation.stderr_tail_lines must be non-negative")

        return result

    def validate_credentials(
        self, settings: Settings, storage: "SettingsStorage"
    ) -> ValidationResult:
        """
        Check that the GitHub account is fully configured.

        A username without a stored token (or the reverse) is reported as a
        warning; neither is needed for local automation.

        Args:
            settings: Settings object to validate.
            storage: SettingsStorage instance for token lookup.

        Returns:
            ValidationResult for credentials validation.
        """
        result = ValidationResult()
        has_token = storage.has_github_token()

        if settings.github.username and not has_token:
            result.add_warning(
                f"GitHub username '{settings.github.username}' is set but no token is stored"
            )
        elif has_token and not settings.github.username:
            result.add_warning("A GitHub token is stored but github.username is empty")

        return result
