"""
Kanban Controller for Project Maker

Translates board interactions (moves, reorders, manual retries) into store
mutations, and starts an automation run in the background whenever a
feature enters the todo column from another column.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from ..models import Feature, FeatureStatus
from ..state.feature_store import FeatureStore
from .automation import AutomationOrchestrator, AutomationResult

logger = logging.getLogger(__name__)


@dataclass
class BoardColumn:
    """One column of the board with its features sorted by order."""
    status: FeatureStatus
    features: list[Feature] = field(default_factory=list)

    @property
    def title(self) -> str:
        return self.status.label


class KanbanController:
    """
    Board-facing entry point for feature moves and automation triggers.

    Automation runs are scheduled as asyncio tasks so a move returns as soon
    as the new status is persisted; use wait_for_automation() to await the
    outcome of a run.
    """

    def __init__(self, store: FeatureStore, orchestrator: AutomationOrchestrator):
        self.store = store
        self.orchestrator = orchestrator
        self._tasks: dict[str, asyncio.Task[AutomationResult]] = {}

    def board(self, project_id: str) -> list[BoardColumn]:
        """Get every column of a project's board in fixed column order."""
        return [
            BoardColumn(status=status, features=self.store.list_by_status(project_id, status))
            for status in FeatureStatus.get_order()
        ]

    async def move_feature(
        self,
        feature_id: str,
        status: FeatureStatus | str,
        order: int | None = None,
    ) -> Feature:
        """
        Move a feature to a column.

        Entering todo from any other column schedules exactly one automation
        run; dropping a feature that is already in todo does not.

        Raises:
            FeatureNotFoundError: If the id is unknown
        """
        status = FeatureStatus(status)
        previous = self.store.require(feature_id).status
        feature = await self.store.move_to_status(feature_id, status, order)

        if status == FeatureStatus.TODO and previous != FeatureStatus.TODO:
            logger.info("Feature %s entered todo, starting automation", feature_id)
            self._schedule(feature_id)
        return feature

    async def reorder_column(
        self,
        project_id: str,
        status: FeatureStatus | str,
        ordered_ids: Sequence[str],
    ) -> None:
        await self.store.reorder(project_id, status, ordered_ids)

    async def start_automation(self, feature_id: str) -> asyncio.Task[AutomationResult] | None:
        """
        Manually (re)start automation for a feature.

        The feature is reset to idle first. Returns None when a run for the
        feature is already active.
        """
        self.store.require(feature_id)
        if self.is_running(feature_id):
            logger.warning("Automation already running for %s", feature_id)
            return None
        await self.store.reset_automation(feature_id)
        return self._schedule(feature_id)

    async def cancel_automation(self, feature_id: str) -> bool:
        """
        Cancel a feature's active run and wait for it to wind down.

        Returns:
            True if a run was cancelled
        """
        task = self._tasks.get(feature_id)
        if task is None or task.done():
            return False
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Cancelled automation for %s", feature_id)
        return True

    async def wait_for_automation(self, feature_id: str) -> AutomationResult | None:
        """Await the feature's scheduled run; None if none is scheduled."""
        task = self._tasks.get(feature_id)
        if task is None:
            return None
        return await task

    def is_running(self, feature_id: str) -> bool:
        task = self._tasks.get(feature_id)
        return bool(task and not task.done()) or self.orchestrator.is_running(feature_id)

    async def close(self) -> None:
        """Cancel every scheduled run."""
        tasks = [task for task in self._tasks.values() if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _schedule(self, feature_id: str) -> asyncio.Task[AutomationResult]:
        existing = self._tasks.get(feature_id)
        if existing is not None and not existing.done():
            return existing

        task = asyncio.create_task(
            self.orchestrator.run(feature_id),
            name=f"automation-{feature_id}",
        )
        self._tasks[feature_id] = task
        task.add_done_callback(lambda t: self._on_done(feature_id, t))
        return task

    def _on_done(self, feature_id: str, task: asyncio.Task[AutomationResult]) -> None:
        if task.cancelled():
            logger.info("Automation task for %s was cancelled", feature_id)
            return
        error = task.exception()
        if error is not None:
            logger.error("Automation task for %s crashed: %s", feature_id, error)
            return
        result = task.result()
        if result.error:
            logger.warning("Automation for %s ended with error: %s", feature_id, result.error)
