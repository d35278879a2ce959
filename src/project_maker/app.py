"""
Application root for Project Maker.

Builds every service from Settings and owns their lifecycle. Consumers get
the stores, the gateway and the controllers from an Application instance
instead of reaching for module-level singletons.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from .core.automation import AutomationConfig, AutomationOrchestrator, RunState
from .core.generation import FeatureGenerator
from .core.kanban import KanbanController
from .execution.shell import ShellExecutor, create_shell_executor
from .llm.base import GenerateOptions, LLMGateway
from .llm.ollama import OllamaGateway
from .settings.models import Settings
from .settings.storage import SettingsStorage
from .state.database import IN_MEMORY_URL, Database
from .state.feature_store import FeatureStore
from .state.project_store import ProjectStore

logger = logging.getLogger(__name__)


class Application:
    """
    Wires together database, stores, gateway, shell and controllers.

    Example:
        async with Application.from_storage(SettingsStorage()) as app:
            project = await app.projects.create("TodoApp", "/tmp/todo")
            await app.kanban.move_feature(feature_id, "todo")
    """

    def __init__(
        self,
        settings: Settings | None = None,
        database_url: str = IN_MEMORY_URL,
        gateway: LLMGateway | None = None,
        shell: ShellExecutor | None = None,
        on_progress: Callable[[RunState], None] | None = None,
    ):
        """
        Build the service graph.

        Args:
            settings: Settings to configure services with (defaults if None)
            database_url: SQLAlchemy URL of the database
            gateway: Gateway override (an OllamaGateway is built otherwise)
            shell: Shell executor override (built from automation.shell_mode otherwise)
            on_progress: Receives automation RunState updates
        """
        self.settings = settings or Settings()
        ollama = self.settings.ollama
        automation = self.settings.automation

        self.db = Database(database_url)
        self.features = FeatureStore(self.db)
        self.projects = ProjectStore(self.db)

        self.gateway = gateway or OllamaGateway(
            base_url=ollama.base_url,
            timeout=ollama.timeout_seconds,
            availability_timeout=ollama.availability_timeout_seconds,
        )
        self.shell = shell or create_shell_executor(
            automation.shell_mode.value,
            failure_rate=automation.mock_failure_rate,
            min_latency=automation.mock_min_latency,
            max_latency=automation.mock_max_latency,
        )

        self.orchestrator = AutomationOrchestrator(
            self.features,
            self.projects,
            self.gateway,
            self.shell,
            AutomationConfig(
                model=ollama.model,
                step_timeout_seconds=automation.step_timeout_seconds,
                stderr_tail_lines=automation.stderr_tail_lines,
            ),
            on_progress=on_progress,
        )
        self.generator = FeatureGenerator(
            self.gateway,
            self.features,
            model=ollama.model,
            options=GenerateOptions(
                temperature=ollama.temperature,
                top_p=ollama.top_p,
                num_predict=ollama.num_predict,
            ),
        )
        self.kanban = KanbanController(self.features, self.orchestrator)

    @classmethod
    def from_storage(cls, storage: SettingsStorage, **kwargs) -> "Application":
        """Build an application from the settings stored on disk."""
        settings = storage.load()
        if not settings.database_url:
            storage.config_dir.mkdir(parents=True, exist_ok=True)
        return cls(settings, database_url=storage.database_url(settings), **kwargs)

    async def start(self) -> None:
        """Create the schema and load projects and features into memory."""
        await self.db.init()
        await self.projects.load()
        await self.features.load()
        logger.debug(
            "Loaded %d projects and %d features",
            len(self.projects.list_all()),
            sum(len(self.features.list_by_project(p.id)) for p in self.projects.list_all()),
        )

    async def close(self) -> None:
        await self.kanban.close()
        await self.gateway.close()
        await self.db.close()

    async def __aenter__(self) -> "Application":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def delete_feature(self, feature_id: str) -> None:
        """Cancel the feature's automation run, if any, then delete it."""
        self.features.require(feature_id)
        await self.kanban.cancel_automation(feature_id)
        await self.features.delete(feature_id)

    async def delete_project(self, project_id: str) -> None:
        """
        Delete a project together with all of its features.

        Running automation for the project's features is cancelled first.
        """
        self.projects.require(project_id)
        for feature in self.features.list_by_project(project_id):
            await self.kanban.cancel_automation(feature.id)
        await self.features.delete_by_project(project_id)
        await self.projects.delete(project_id)
        logger.info("Deleted project %s", project_id)
