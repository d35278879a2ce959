"""
Domain models for Project Maker.

Defines the entities tracked on the Kanban board:
- Project: a local code repository features are implemented in
- Feature: a unit of work with a board status and automation state
- AutomationLog: one entry of a feature's append-only automation log
- GeneratedFeature / AutomationStep: typed results parsed from LLM output
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 string (or pass a datetime through)."""
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


class FeatureStatus(str, Enum):
    """Board column a feature lives in."""
    BACKLOG = "backlog"
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    IN_REVIEW = "in_review"
    DONE = "done"

    @classmethod
    def get_order(cls) -> list["FeatureStatus"]:
        """Get statuses in board column order."""
        return [cls.BACKLOG, cls.TODO, cls.IN_PROGRESS, cls.IN_REVIEW, cls.DONE]

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()


class FeatureComplexity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AutomationStatus(str, Enum):
    """
    State of a feature's automation run.

    - IDLE: never run, or reset for a manual retry
    - RUNNING: a run is in progress
    - SUCCESS: the last run executed every step
    - FAILED: the last run stopped on an error
    """
    IDLE = "idle"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


class LogType(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class AutomationLog:
    """
    A single automation log entry.

    Attributes:
        timestamp: When the entry was recorded
        step: Short source label ("Executor", "stdout", ...)
        message: Log text
        type: Severity of the entry
    """
    timestamp: datetime
    step: str
    message: str
    type: LogType = LogType.INFO

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "step": self.step,
            "message": self.message,
            "type": self.type.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AutomationLog":
        """Create from dictionary (JSON deserialization)."""
        try:
            log_type = LogType(data.get("type", "info"))
        except ValueError:
            log_type = LogType.INFO
        return cls(
            timestamp=parse_timestamp(data["timestamp"]),
            step=data.get("step", ""),
            message=data.get("message", ""),
            type=log_type,
        )


@dataclass
class ProjectSettings:
    """Per-project preferences carried along with the project record."""
    default_cli: str = "claude"
    auto_run_tests: bool = True
    auto_create_pr: bool = True
    build_command: str | None = None
    test_command: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "default_cli": self.default_cli,
            "auto_run_tests": self.auto_run_tests,
            "auto_create_pr": self.auto_create_pr,
            "build_command": self.build_command,
            "test_command": self.test_command,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ProjectSettings":
        data = data or {}
        return cls(
            default_cli=data.get("default_cli", "claude"),
            auto_run_tests=data.get("auto_run_tests", True),
            auto_create_pr=data.get("auto_create_pr", True),
            build_command=data.get("build_command"),
            test_command=data.get("test_command"),
        )


@dataclass
class Project:
    """
    A project owning a set of features.

    Attributes:
        id: Unique identifier
        name: Display name
        description: Free text description
        path: Local filesystem path commands are executed in
        settings: Per-project preferences
        created_at: Creation timestamp
        updated_at: Last modification timestamp
    """
    id: str
    name: str
    path: str
    description: str = ""
    settings: ProjectSettings = field(default_factory=ProjectSettings)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)


@dataclass
class Feature:
    """
    A unit of work tracked on the Kanban board.

    Attributes:
        id: Unique identifier, immutable
        project_id: Owning project, never reassigned
        title: Short title
        description: Detailed description
        status: Board column
        order: Rank within the (project_id, status) column
        key_points: Implementation notes
        acceptance_criteria: How to verify the feature
        suggested_tests: Tests worth writing
        estimated_complexity: low / medium / high
        dependencies: Titles of features this one depends on
        automation_status: State of the automation run
        automation_logs: Append-only automation log
        branch_name: Git branch, set by external tooling
        pr_url: Pull request URL, set by external tooling
        created_at: Creation timestamp
        updated_at: Refreshed on every mutation
    """
    id: str
    project_id: str
    title: str
    description: str = ""
    status: FeatureStatus = FeatureStatus.BACKLOG
    order: int = 0
    key_points: list[str] = field(default_factory=list)
    acceptance_criteria: list[str] = field(default_factory=list)
    suggested_tests: list[str] = field(default_factory=list)
    estimated_complexity: FeatureComplexity = FeatureComplexity.MEDIUM
    dependencies: list[str] = field(default_factory=list)
    automation_status: AutomationStatus = AutomationStatus.IDLE
    automation_logs: tuple[AutomationLog, ...] = ()
    branch_name: str | None = None
    pr_url: str | None = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {
            "id": self.id,
            "project_id": self.project_id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "order": self.order,
            "key_points": list(self.key_points),
            "acceptance_criteria": list(self.acceptance_criteria),
            "suggested_tests": list(self.suggested_tests),
            "estimated_complexity": self.estimated_complexity.value,
            "dependencies": list(self.dependencies),
            "automation_status": self.automation_status.value,
            "automation_logs": [entry.to_dict() for entry in self.automation_logs],
            "branch_name": self.branch_name,
            "pr_url": self.pr_url,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class GeneratedFeature:
    """A feature proposal parsed from an LLM response, not yet persisted."""
    title: str
    description: str = ""
    key_points: list[str] = field(default_factory=list)
    acceptance_criteria: list[str] = field(default_factory=list)
    suggested_tests: list[str] = field(default_factory=list)
    estimated_complexity: FeatureComplexity = FeatureComplexity.MEDIUM
    dependencies: list[str] = field(default_factory=list)


@dataclass
class AutomationStep:
    """
    One step of an automation plan.

    Attributes:
        step: Short step name shown as the current step
        command: Single shell command line to execute
        description: What the command is for
    """
    step: str
    command: str
    description: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AutomationStep":
        return cls(
            step=str(data.get("step") or ""),
            command=str(data.get("command") or ""),
            description=str(data.get("description") or ""),
        )
