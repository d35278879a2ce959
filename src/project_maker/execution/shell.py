"""
Shell Executor

Runs one external command to completion while streaming its output line by
line to callbacks. Ordinary command failures (non-zero exit, missing
executable, timeout) are reported through the result's exit code, never
raised, so callers can branch uniformly on CommandResult.exit_code.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import os
import random
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

LineCallback = Callable[[str], "Awaitable[None] | None"]

# Conventional shell exit codes for launch failures
EXIT_NOT_EXECUTABLE = 126
EXIT_NOT_FOUND = 127

# Per-line buffer limit for the subprocess pipes
STREAM_LIMIT = 1024 * 1024


@dataclass
class CommandOptions:
    """
    Options for a single command execution.

    Attributes:
        args: Argument list passed to the program
        cwd: Working directory (defaults to the current directory)
        env: Environment overrides merged over the current environment
        on_stdout: Called once per stdout line as it is produced
        on_stderr: Called once per stderr line as it is produced
        timeout: Seconds before the process is killed (None = no limit)
    """
    args: list[str] = field(default_factory=list)
    cwd: str | None = None
    env: dict[str, str] | None = None
    on_stdout: LineCallback | None = None
    on_stderr: LineCallback | None = None
    timeout: float | None = None


@dataclass
class CommandResult:
    """
    Outcome of a command execution.

    Attributes:
        exit_code: Process exit code, or None if the process never finished
        stdout: All stdout lines joined with newlines
        stderr: All stderr lines joined with newlines
        timed_out: Whether the process was killed on timeout
    """
    exit_code: int | None
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False

    @property
    def success(self) -> bool:
        return self.exit_code == 0


async def _emit(callback: LineCallback | None, line: str) -> None:
    if callback is None:
        return
    outcome = callback(line)
    if inspect.isawaitable(outcome):
        await outcome


class ShellExecutor(ABC):
    """Abstract interface for running one command and capturing its output."""

    @abstractmethod
    async def execute(
        self,
        program: str,
        options: CommandOptions | None = None,
    ) -> CommandResult:
        """
        Run a program to completion.

        Args:
            program: Executable name or path
            options: Arguments, working directory, environment and callbacks

        Returns:
            CommandResult with the exit code and captured output
        """

    def get_name(self) -> str:
        return type(self).__name__


class SubprocessShellExecutor(ShellExecutor):
    """Runs commands as native child processes via asyncio subprocesses."""

    async def execute(
        self,
        program: str,
        options: CommandOptions | None = None,
    ) -> CommandResult:
        options = options or CommandOptions()
        cwd = Path(options.cwd).expanduser() if options.cwd else Path.cwd()
        logger.debug("Executing %s %s (cwd=%s)", program, " ".join(options.args), cwd)

        if not cwd.is_dir():
            message = f"Working directory does not exist: {cwd}"
            await _emit(options.on_stderr, message)
            return CommandResult(exit_code=1, stderr=message)

        env = None
        if options.env:
            env = os.environ.copy()
            env.update(options.env)

        try:
            process = await asyncio.create_subprocess_exec(
                program,
                *options.args,
                cwd=str(cwd),
                env=env,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=STREAM_LIMIT,
            )
        except FileNotFoundError:
            message = f"Command not found: {program}"
            await _emit(options.on_stderr, message)
            return CommandResult(exit_code=EXIT_NOT_FOUND, stderr=message)
        except PermissionError:
            message = f"Permission denied executing command: {program}"
            await _emit(options.on_stderr, message)
            return CommandResult(exit_code=EXIT_NOT_EXECUTABLE, stderr=message)
        except OSError as e:
            message = f"Failed to launch {program}: {e}"
            await _emit(options.on_stderr, message)
            return CommandResult(exit_code=1, stderr=message)

        stdout_lines: list[str] = []
        stderr_lines: list[str] = []

        async def pump(stream: asyncio.StreamReader, lines: list[str], callback: LineCallback | None):
            while True:
                raw = await stream.readline()
                if not raw:
                    break
                line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
                lines.append(line)
                await _emit(callback, line)

        async def run() -> int:
            await asyncio.gather(
                pump(process.stdout, stdout_lines, options.on_stdout),
                pump(process.stderr, stderr_lines, options.on_stderr),
            )
            return await process.wait()

        try:
            exit_code = await asyncio.wait_for(run(), timeout=options.timeout)
        except asyncio.TimeoutError:
            await self._kill(process)
            message = f"Command timed out after {options.timeout} seconds"
            stderr_lines.append(message)
            await _emit(options.on_stderr, message)
            return CommandResult(
                exit_code=None,
                stdout="\n".join(stdout_lines),
                stderr="\n".join(stderr_lines),
                timed_out=True,
            )
        except BaseException:
            # Cancellation or a failing callback: do not leave the child running
            await self._kill(process)
            raise

        return CommandResult(
            exit_code=exit_code,
            stdout="\n".join(stdout_lines),
            stderr="\n".join(stderr_lines),
        )

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process) -> None:
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()


class MockShellExecutor(ShellExecutor):
    """
    Simulated executor for environments without a native execution host.

    Sleeps for a random latency, then succeeds with a synthetic message or,
    with probability failure_rate, fails with a synthetic error.
    """

    def __init__(
        self,
        failure_rate: float = 0.05,
        min_latency: float = 1.0,
        max_latency: float = 3.0,
        seed: int | None = None,
    ):
        self.failure_rate = failure_rate
        self.min_latency = min_latency
        self.max_latency = max_latency
        self._random = random.Random(seed)

    async def execute(
        self,
        program: str,
        options: CommandOptions | None = None,
    ) -> CommandResult:
        options = options or CommandOptions()
        logger.warning("No native execution host, mocking: %s %s", program, " ".join(options.args))

        is_error = self._random.random() < self.failure_rate
        await asyncio.sleep(self._random.uniform(self.min_latency, self.max_latency))

        if is_error:
            message = f"Mock error: Command '{program}' failed."
            await _emit(options.on_stderr, message)
            return CommandResult(exit_code=1, stderr=message)

        message = f"Mock success: {program} {' '.join(options.args)} executed successfully."
        await _emit(options.on_stdout, message)
        return CommandResult(exit_code=0, stdout=message)


@dataclass
class ScriptedResponse:
    """Canned outcome for ScriptedShellExecutor."""
    exit_code: int | None = 0
    stdout: list[str] = field(default_factory=list)
    stderr: list[str] = field(default_factory=list)


class ScriptedShellExecutor(ShellExecutor):
    """
    Deterministic executor whose outcomes are supplied up front.

    Responses are looked up by the full command line ("program arg1 arg2"),
    then by program name, then fall back to the default response. Every
    invocation is recorded in `calls` as (program, args, cwd).
    """

    def __init__(
        self,
        responses: dict[str, ScriptedResponse] | None = None,
        default: ScriptedResponse | None = None,
    ):
        self.responses = responses or {}
        self.default = default or ScriptedResponse()
        self.calls: list[tuple[str, list[str], str | None]] = []

    @property
    def command_lines(self) -> list[str]:
        return [" ".join([program, *args]) for program, args, _ in self.calls]

    async def execute(
        self,
        program: str,
        options: CommandOptions | None = None,
    ) -> CommandResult:
        options = options or CommandOptions()
        self.calls.append((program, list(options.args), options.cwd))

        command_line = " ".join([program, *options.args])
        response = self.responses.get(command_line) or self.responses.get(program) or self.default

        for line in response.stdout:
            await _emit(options.on_stdout, line)
        for line in response.stderr:
            await _emit(options.on_stderr, line)

        return CommandResult(
            exit_code=response.exit_code,
            stdout="\n".join(response.stdout),
            stderr="\n".join(response.stderr),
        )


def create_shell_executor(
    mode: str = "native",
    failure_rate: float = 0.05,
    min_latency: float = 1.0,
    max_latency: float = 3.0,
) -> ShellExecutor:
    """
    Create the executor for a configured shell mode.

    Args:
        mode: "native" for real subprocesses, "mock" for simulated execution

    Raises:
        ValueError: For an unknown mode
    """
    if mode == "native":
        return SubprocessShellExecutor()
    if mode == "mock":
        return MockShellExecutor(
            failure_rate=failure_rate,
            min_latency=min_latency,
            max_latency=max_latency,
        )
    raise ValueError(f"Unknown shell mode: {mode}")
