"""
Settings data models for Project Maker.

This module defines all configuration-related data classes including:
- ShellMode: How automation commands are executed
- OllamaConfig: Connection and sampling settings for the generation service
- AutomationSettings: Automation run settings
- GitHubConfig: GitHub account settings (the token lives in the keyring)
- Settings: Main settings class aggregating all configuration options
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class ShellMode(Enum):
    """
    How automation steps are executed.

    - NATIVE: Run real commands in the project directory
    - MOCK: Simulate commands with random latency and failures
    """

    NATIVE = "native"
    MOCK = "mock"


@dataclass
class OllamaConfig:
    """
    Generation service settings.

    Attributes:
        base_url: Ollama API URL.
        model: Model used for feature generation and automation planning.
        temperature: Sampling temperature for feature generation.
        top_p: Optional nucleus sampling cutoff.
        num_predict: Maximum tokens generated per request.
        timeout_seconds: Timeout for generation requests.
        availability_timeout_seconds: Timeout for the connection probe.
    """

    base_url: str = "http://localhost:11434"
    model: str = "llama3"
    temperature: float = 0.7
    top_p: Optional[float] = None
    num_predict: int = 4096
    timeout_seconds: float = 300.0
    availability_timeout_seconds: float = 5.0


@dataclass
class AutomationSettings:
    """
    Automation run settings.

    Attributes:
        shell_mode: Native execution or simulated mock.
        mock_failure_rate: Probability a mock command fails.
        mock_min_latency: Minimum simulated command duration in seconds.
        mock_max_latency: Maximum simulated command duration in seconds.
        step_timeout_seconds: Kill a step after this many seconds (None = no limit).
        stderr_tail_lines: Lines of stderr included in a step failure message.
    """

    shell_mode: ShellMode = ShellMode.NATIVE
    mock_failure_rate: float = 0.05
    mock_min_latency: float = 1.0
    mock_max_latency: float = 3.0
    step_timeout_seconds: Optional[float] = None
    stderr_tail_lines: int = 20


@dataclass
class GitHubConfig:
    """GitHub account settings."""

    username: str = ""


@dataclass
class Settings:
    """
    Global settings for Project Maker.

    Attributes:
        ollama: Generation service settings.
        automation: Automation run settings.
        github: GitHub account settings.
        database_url: SQLAlchemy URL (empty string for the default file in the config dir).
        default_project_path: Directory suggested for new projects.
    """

    ollama: OllamaConfig = field(default_factory=OllamaConfig)
    automation: AutomationSettings = field(default_factory=AutomationSettings)
    github: GitHubConfig = field(default_factory=GitHubConfig)
    database_url: str = ""
    default_project_path: str = ""
