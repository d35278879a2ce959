"""
Project Store for Project Maker

Keeps the list of projects and the active-project selection. Project rows
follow the same persist-then-cache rule as features; only the active
project selection is applied optimistically and rolled back when the
background write fails, since a briefly stale selection is harmless.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from dataclasses import replace
from typing import Any

from ..models import Project, ProjectSettings, parse_timestamp, utc_now
from .database import Database, PersistenceError, deserialize, serialize
from .errors import ProjectNotFoundError

logger = logging.getLogger(__name__)

ACTIVE_PROJECT_KEY = "activeProjectId"

# Project attribute -> projects column
PROJECT_COLUMNS: dict[str, str] = {
    "name": "name",
    "description": "description",
    "path": "path",
    "settings": "settings",
}


def _row_to_project(row: dict[str, Any]) -> Project:
    return Project(
        id=row["id"],
        name=row["name"],
        path=row["path"],
        description=row.get("description") or "",
        settings=ProjectSettings.from_dict(deserialize(row.get("settings"), default={})),
        created_at=parse_timestamp(row["created_at"]),
        updated_at=parse_timestamp(row["updated_at"]),
    )


class ProjectStore:
    """CRUD over projects plus the persisted active-project selection."""

    def __init__(self, db: Database):
        self.db = db
        self._projects: dict[str, Project] = {}
        self._active_project_id: str | None = None
        self._lock = asyncio.Lock()

    async def load(self) -> list[Project]:
        """Load projects and the active selection (falls back to the most recent project)."""
        rows = await self.db.query("SELECT * FROM projects ORDER BY updated_at DESC")
        projects = [_row_to_project(row) for row in rows]
        active_rows = await self.db.query(
            "SELECT value FROM settings WHERE id = :id", {"id": ACTIVE_PROJECT_KEY}
        )

        async with self._lock:
            self._projects = {p.id: p for p in projects}
            active_id = json.loads(active_rows[0]["value"]) if active_rows else None
            if active_id not in self._projects:
                active_id = projects[0].id if projects else None
            self._active_project_id = active_id
        return projects

    # ── Queries ──────────────────────────────────────────────────────

    def get(self, project_id: str) -> Project | None:
        return self._projects.get(project_id)

    def require(self, project_id: str) -> Project:
        project = self._projects.get(project_id)
        if project is None:
            raise ProjectNotFoundError(project_id)
        return project

    def list_all(self) -> list[Project]:
        """Projects, most recently updated first."""
        return sorted(self._projects.values(), key=lambda p: p.updated_at, reverse=True)

    def find_by_path(self, path: str) -> Project | None:
        for project in self._projects.values():
            if project.path == path:
                return project
        return None

    @property
    def active_project_id(self) -> str | None:
        return self._active_project_id

    def get_active(self) -> Project | None:
        if self._active_project_id is None:
            return None
        return self._projects.get(self._active_project_id)

    # ── Mutations ────────────────────────────────────────────────────

    async def create(
        self,
        name: str,
        path: str,
        description: str = "",
        settings: ProjectSettings | None = None,
    ) -> Project:
        """
        Create a project and make it active.

        A project already registered for the same path is re-activated and
        returned instead of creating a duplicate.
        """
        existing = self.find_by_path(path)
        if existing:
            logger.warning("Project with path already exists: %s", path)
            await self.set_active(existing.id)
            return existing

        now = utc_now()
        project = Project(
            id=str(uuid.uuid4()),
            name=name,
            path=path,
            description=description,
            settings=settings or ProjectSettings(),
            created_at=now,
            updated_at=now,
        )
        async with self._lock:
            await self.db.execute(
                """
                INSERT INTO projects (id, name, path, description, settings, created_at, updated_at)
                VALUES (:id, :name, :path, :description, :settings, :created_at, :updated_at)
                """,
                {
                    "id": project.id,
                    "name": project.name,
                    "path": project.path,
                    "description": project.description,
                    "settings": serialize(project.settings.to_dict()),
                    "created_at": now.isoformat(),
                    "updated_at": now.isoformat(),
                },
            )
            self._projects[project.id] = project

        await self.set_active(project.id)
        return project

    async def update(self, project_id: str, **changes: Any) -> Project:
        """Persist changed project fields (name, description, path, settings)."""
        unknown = set(changes) - set(PROJECT_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown project fields: {', '.join(sorted(unknown))}")

        async with self._lock:
            project = self.require(project_id)
            if not changes:
                return project
            now = utc_now()
            params: dict[str, Any] = {"id": project_id, "updated_at": now.isoformat()}
            clauses = []
            for name, value in changes.items():
                column = PROJECT_COLUMNS[name]
                clauses.append(f"{column} = :{column}")
                params[column] = serialize(value.to_dict()) if name == "settings" else value
            clauses.append("updated_at = :updated_at")

            await self.db.execute(
                f"UPDATE projects SET {', '.join(clauses)} WHERE id = :id", params
            )
            updated = replace(project, **changes, updated_at=now)
            self._projects[project_id] = updated
            return updated

    async def delete(self, project_id: str) -> None:
        """
        Delete a project row.

        Its features are NOT removed here; the caller deletes them through
        FeatureStore.delete_by_project.
        """
        async with self._lock:
            self.require(project_id)
            await self.db.execute("DELETE FROM projects WHERE id = :id", {"id": project_id})
            del self._projects[project_id]

        if self._active_project_id == project_id:
            remaining = self.list_all()
            await self.set_active(remaining[0].id if remaining else None)

    async def set_active(self, project_id: str | None) -> None:
        """
        Select the active project.

        The selection is applied immediately and persisted afterwards; if
        persisting fails the previous selection is restored and the error
        re-raised.
        """
        if project_id is not None:
            self.require(project_id)

        previous = self._active_project_id
        self._active_project_id = project_id
        try:
            await self.db.execute_many([
                ("DELETE FROM settings WHERE id = :id", {"id": ACTIVE_PROJECT_KEY}),
                (
                    "INSERT INTO settings (id, value) VALUES (:id, :value)",
                    {"id": ACTIVE_PROJECT_KEY, "value": json.dumps(project_id)},
                ),
            ])
        except PersistenceError:
            logger.warning("Failed to persist active project, restoring %s", previous)
            if self._active_project_id == project_id:
                self._active_project_id = previous
            raise
