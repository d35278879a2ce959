"""
Command execution for Project Maker.

Provides the ShellExecutor interface with a native subprocess
implementation, a simulated mock, and a scripted deterministic executor.
"""

from .shell import (
    CommandOptions,
    CommandResult,
    MockShellExecutor,
    ScriptedResponse,
    ScriptedShellExecutor,
    ShellExecutor,
    SubprocessShellExecutor,
    create_shell_executor,
)

__all__ = [
    "CommandOptions",
    "CommandResult",
    "MockShellExecutor",
    "ScriptedResponse",
    "ScriptedShellExecutor",
    "ShellExecutor",
    "SubprocessShellExecutor",
    "create_shell_executor",
]
