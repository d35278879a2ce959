"""
Automation Orchestrator for Project Maker

Drives a feature from "moved to todo" to "implemented":
ask the model for an ordered plan of shell commands, run each command in
the project directory, and stream progress into the feature's automation
log and status.

Run state machine (persisted on the feature):
    idle -> running -> success | failed
    success | failed -> running      (a fresh run clears the previous log first)

A failing step aborts the run; already executed steps are not rolled back.
"""

from __future__ import annotations

import asyncio
import logging
import shlex
from collections.abc import Callable
from dataclasses import dataclass, field

from ..execution.shell import CommandOptions, ShellExecutor
from ..llm.base import GenerateOptions, GenerateRequest, LLMGateway
from ..llm.prompts import (
    AUTOMATION_SYSTEM_PROMPT,
    build_automation_plan_prompt,
    parse_automation_plan_response,
)
from ..models import AutomationStatus, AutomationStep, Feature, LogType, Project
from ..state.database import PersistenceError
from ..state.errors import StoreError
from ..state.feature_store import FeatureStore
from ..state.project_store import ProjectStore

logger = logging.getLogger(__name__)

PLANNING_STEP = "Planning implementation..."
FINISHED_STEP = "Finished"


class AutomationError(Exception):
    """Base exception for a failed automation run."""
    pass


class PlanGenerationError(AutomationError):
    """Raised when the model produced no usable steps."""
    pass


class StepExecutionError(AutomationError):
    """Raised when a step's command exits with a non-zero code."""

    def __init__(self, step: str, exit_code: int | None, stderr_tail: str, timed_out: bool = False):
        code = "timeout" if timed_out else exit_code
        message = f'Step "{step}" failed with code {code}'
        if stderr_tail:
            message += f": {stderr_tail}"
        super().__init__(message)
        self.step = step
        self.exit_code = exit_code
        self.stderr_tail = stderr_tail
        self.timed_out = timed_out


@dataclass
class AutomationConfig:
    """
    Configuration for automation runs.

    Attributes:
        model: Model used to plan the steps
        temperature: Optional sampling temperature for planning
        step_timeout_seconds: Kill a step's command after this long (None = no limit)
        stderr_tail_lines: Lines of stderr quoted in a step failure message
    """
    model: str = "llama3"
    temperature: float | None = None
    step_timeout_seconds: float | None = None
    stderr_tail_lines: int = 20


@dataclass
class RunState:
    """
    Transient, UI-facing view of a feature's run (never persisted).

    Attributes:
        feature_id: Feature being automated
        is_running: Cleared when the run ends, whatever the outcome
        current_step: Name of the step being executed
        error: Error message of the last failed run
    """
    feature_id: str
    is_running: bool = False
    current_step: str | None = None
    error: str | None = None


@dataclass
class AutomationResult:
    """Outcome of one call to AutomationOrchestrator.run()."""
    feature_id: str
    status: AutomationStatus | None
    steps: list[AutomationStep] = field(default_factory=list)
    steps_completed: int = 0
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.status == AutomationStatus.SUCCESS


def split_command(command: str) -> tuple[str, list[str]]:
    """
    Split a command line into program and arguments.

    Uses shell-word rules so quoted arguments stay intact; falls back to
    plain whitespace splitting when the quoting is unbalanced.
    """
    try:
        parts = shlex.split(command)
    except ValueError:
        parts = command.split()
    if not parts:
        raise ValueError("Empty command")
    return parts[0], parts[1:]


def tail_lines(text: str, count: int) -> str:
    lines = text.strip().splitlines()
    return "\n".join(lines[-count:]) if count > 0 else ""


class AutomationOrchestrator:
    """
    Plans and executes automation runs for features.

    At most one run per feature is active at a time; a second trigger for a
    feature that is already running is rejected without touching its state.
    """

    def __init__(
        self,
        features: FeatureStore,
        projects: ProjectStore,
        gateway: LLMGateway,
        shell: ShellExecutor,
        config: AutomationConfig | None = None,
        on_progress: Callable[[RunState], None] | None = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            features: Store holding feature status and logs
            projects: Store resolving the feature's project (for its path)
            gateway: Generation service used for planning
            shell: Executor running each step's command
            config: Automation configuration
            on_progress: Called whenever a feature's RunState changes
        """
        self.features = features
        self.projects = projects
        self.gateway = gateway
        self.shell = shell
        self.config = config or AutomationConfig()
        self.on_progress = on_progress
        self._locks: dict[str, asyncio.Lock] = {}
        self._states: dict[str, RunState] = {}

    def get_run_state(self, feature_id: str) -> RunState:
        return self._states.get(feature_id) or RunState(feature_id=feature_id)

    def is_running(self, feature_id: str) -> bool:
        lock = self._locks.get(feature_id)
        return bool(lock and lock.locked())

    def _notify(self, state: RunState) -> None:
        if self.on_progress:
            self.on_progress(state)

    async def run(self, feature_id: str) -> AutomationResult:
        """
        Execute one automation run for a feature.

        Failures inside the run are recorded on the feature (status failed
        plus an error log entry) and returned in the result rather than
        raised. Task cancellation is recorded the same way and re-raised.

        Returns:
            AutomationResult describing the outcome
        """
        feature = self.features.get(feature_id)
        project = self.projects.get(feature.project_id) if feature else None
        if feature is None or project is None:
            logger.error("Cannot automate %s: feature or project not found", feature_id)
            return AutomationResult(
                feature_id=feature_id,
                status=None,
                error="Feature or project not found",
            )

        lock = self._locks.setdefault(feature_id, asyncio.Lock())
        if lock.locked():
            logger.warning("Automation already running for %s, ignoring trigger", feature_id)
            return AutomationResult(
                feature_id=feature_id,
                status=None,
                error="Automation is already running for this feature",
            )

        async with lock:
            state = RunState(feature_id=feature_id, is_running=True, current_step=PLANNING_STEP)
            self._states[feature_id] = state
            self._notify(state)
            try:
                return await self._execute(feature, project, state)
            finally:
                state.is_running = False
                self._notify(state)

    async def _execute(self, feature: Feature, project: Project, state: RunState) -> AutomationResult:
        feature_id = feature.id
        logger.info("Starting automation for feature %s (%s)", feature_id, feature.title)

        steps: list[AutomationStep] = []
        completed = 0
        try:
            if self.features.require(feature_id).automation_status == AutomationStatus.RUNNING:
                # The run lock is free, so no live run owns this status
                logger.warning("Feature %s was left running by an earlier run, resetting", feature_id)
                await self.features.reset_automation(feature_id)
            await self.features.clear_automation_logs(feature_id)
            await self.features.update_automation_status(feature_id, AutomationStatus.RUNNING)
            await self._log(feature_id, "Analyzer", "Analyzing feature for implementation steps...")

            steps = await self._plan(feature, project)
            await self._log(
                feature_id, "Planner", f"Generated {len(steps)} implementation steps.", LogType.SUCCESS
            )

            for step in steps:
                await self._run_step(feature_id, project, step, state)
                completed += 1

            await self.features.update_automation_status(feature_id, AutomationStatus.SUCCESS)
            await self._log(feature_id, "Finalizer", "Feature implemented successfully!", LogType.SUCCESS)
            state.current_step = FINISHED_STEP
            self._notify(state)
            logger.info("Automation succeeded for feature %s", feature_id)
            return AutomationResult(
                feature_id=feature_id,
                status=AutomationStatus.SUCCESS,
                steps=steps,
                steps_completed=completed,
            )

        except asyncio.CancelledError:
            await self._record_failure(feature_id, state, "Automation cancelled")
            raise
        except Exception as e:
            message = str(e) or type(e).__name__
            await self._record_failure(feature_id, state, message)
            return AutomationResult(
                feature_id=feature_id,
                status=AutomationStatus.FAILED,
                steps=steps,
                steps_completed=completed,
                error=message,
            )

    async def _plan(self, feature: Feature, project: Project) -> list[AutomationStep]:
        prompt = build_automation_plan_prompt(
            project.path,
            feature.title,
            feature.description,
            feature.key_points,
        )
        options = None
        if self.config.temperature is not None:
            options = GenerateOptions(temperature=self.config.temperature)

        response = await self.gateway.generate(GenerateRequest(
            model=self.config.model,
            prompt=prompt,
            system=AUTOMATION_SYSTEM_PROMPT,
            options=options,
        ))
        steps = parse_automation_plan_response(response)
        if not steps:
            raise PlanGenerationError("AI failed to generate implementation steps")
        return steps

    async def _run_step(
        self,
        feature_id: str,
        project: Project,
        step: AutomationStep,
        state: RunState,
    ) -> None:
        state.current_step = step.step
        self._notify(state)
        await self._log(feature_id, "Executor", f"Starting step: {step.step}")
        await self._log(feature_id, "Command", f"$ {step.command}")

        program, args = split_command(step.command)
        result = await self.shell.execute(program, CommandOptions(
            args=args,
            cwd=project.path,
            on_stdout=lambda line: self._log(feature_id, "stdout", line, LogType.INFO),
            on_stderr=lambda line: self._log(feature_id, "stderr", line, LogType.WARNING),
            timeout=self.config.step_timeout_seconds,
        ))

        if result.exit_code != 0:
            raise StepExecutionError(
                step.step,
                result.exit_code,
                tail_lines(result.stderr, self.config.stderr_tail_lines),
                timed_out=result.timed_out,
            )

        await self._log(feature_id, "Executor", f"Completed step: {step.step}", LogType.SUCCESS)

    async def _record_failure(self, feature_id: str, state: RunState, message: str) -> None:
        logger.warning("Automation failed for feature %s: %s", feature_id, message)
        state.error = message
        self._notify(state)
        try:
            if self.features.require(feature_id).automation_status != AutomationStatus.RUNNING:
                await self.features.update_automation_status(feature_id, AutomationStatus.RUNNING)
            await self.features.update_automation_status(feature_id, AutomationStatus.FAILED)
        except (StoreError, PersistenceError) as e:
            logger.error("Could not mark automation failed for %s: %s", feature_id, e)
        try:
            await self._log(feature_id, "Error", message, LogType.ERROR)
        except (StoreError, PersistenceError) as e:
            logger.error("Could not record automation failure for %s: %s", feature_id, e)

    async def _log(
        self,
        feature_id: str,
        step: str,
        message: str,
        log_type: LogType = LogType.INFO,
    ) -> None:
        await self.features.append_automation_log(feature_id, step, message, log_type)
