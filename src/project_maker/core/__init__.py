"""
Core services for Project Maker.

- automation: plans features into shell steps and executes them
- generation: turns a project description into feature proposals
- kanban: board moves and the todo-column automation trigger
"""

from .automation import (
    AutomationConfig,
    AutomationError,
    AutomationOrchestrator,
    AutomationResult,
    PlanGenerationError,
    RunState,
    StepExecutionError,
    split_command,
)
from .generation import FeatureGenerator
from .kanban import BoardColumn, KanbanController

__all__ = [
    "AutomationConfig",
    "AutomationError",
    "AutomationOrchestrator",
    "AutomationResult",
    "PlanGenerationError",
    "RunState",
    "StepExecutionError",
    "split_command",
    "FeatureGenerator",
    "BoardColumn",
    "KanbanController",
]
