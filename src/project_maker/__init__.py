"""
Project Maker - Kanban-driven feature planning and automation

Project Maker turns a project description into a backlog of features with a
local LLM, tracks them on a Kanban board, and automates a feature when it is
moved into the todo column: the model plans a sequence of shell commands and
each command is executed in the project directory while its output streams
into the feature's automation log.

Architecture:
    - LLM Layer: Ollama gateway, prompt builders and response parsers
    - State Layer: SQL-backed feature and project stores with in-memory caches
    - Execution Layer: Subprocess, mock and scripted shell executors
    - Core Layer: Automation orchestrator, feature generator, Kanban controller

Example usage:
    from project_maker import Application

    async with Application(database_url="sqlite:///board.db") as app:
        project = await app.projects.create("TodoApp", "/work/todo")
        proposals = await app.generator.generate(project.name, "A todo list app")
        features = await app.generator.import_features(project.id, proposals)
        await app.kanban.move_feature(features[0].id, "todo")
"""

__version__ = "0.1.0"
__author__ = "Project Maker Team"

from .app import Application
from .core import (
    AutomationConfig,
    AutomationOrchestrator,
    AutomationResult,
    FeatureGenerator,
    KanbanController,
)
from .execution import (
    CommandOptions,
    CommandResult,
    MockShellExecutor,
    ScriptedShellExecutor,
    ShellExecutor,
    SubprocessShellExecutor,
)
from .llm import (
    CancellationToken,
    GenerateRequest,
    LLMError,
    LLMGateway,
    OllamaGateway,
    ParseError,
)
from .models import (
    AutomationLog,
    AutomationStatus,
    AutomationStep,
    Feature,
    FeatureComplexity,
    FeatureStatus,
    GeneratedFeature,
    LogType,
    Project,
    ProjectSettings,
)
from .settings import ConfigValidator, Settings, SettingsStorage
from .state import Database, FeatureStore, ProjectStore

__all__ = [
    # Version info
    "__version__",
    "__author__",
    # Application
    "Application",
    # Core
    "AutomationConfig",
    "AutomationOrchestrator",
    "AutomationResult",
    "FeatureGenerator",
    "KanbanController",
    # Execution
    "CommandOptions",
    "CommandResult",
    "MockShellExecutor",
    "ScriptedShellExecutor",
    "ShellExecutor",
    "SubprocessShellExecutor",
    # LLM
    "CancellationToken",
    "GenerateRequest",
    "LLMError",
    "LLMGateway",
    "OllamaGateway",
    "ParseError",
    # Models
    "AutomationLog",
    "AutomationStatus",
    "AutomationStep",
    "Feature",
    "FeatureComplexity",
    "FeatureStatus",
    "GeneratedFeature",
    "LogType",
    "Project",
    "ProjectSettings",
    # Settings
    "ConfigValidator",
    "Settings",
    "SettingsStorage",
    # State
    "Database",
    "FeatureStore",
    "ProjectStore",
]
