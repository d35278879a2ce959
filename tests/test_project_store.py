"""Tests for ProjectStore."""

from unittest.mock import AsyncMock

import pytest

from project_maker.models import ProjectSettings
from project_maker.state import PersistenceError, ProjectNotFoundError, ProjectStore


class TestProjectStore:
    """Tests for project CRUD and the active selection."""

    @pytest.mark.asyncio
    async def test_create_activates(self, project_store, tmp_path):
        """Test that a new project becomes the active one."""
        project = await project_store.create("TodoApp", str(tmp_path), "A todo app")

        assert project_store.active_project_id == project.id
        assert project_store.get_active() == project
        assert project.settings == ProjectSettings()

    @pytest.mark.asyncio
    async def test_duplicate_path_reuses_project(self, project_store, tmp_path):
        """Test that registering the same path again returns the existing project."""
        first = await project_store.create("TodoApp", str(tmp_path))
        await project_store.create("Other", str(tmp_path / "other"))

        again = await project_store.create("Renamed", str(tmp_path))

        assert again.id == first.id
        assert again.name == "TodoApp"
        assert project_store.active_project_id == first.id
        assert len(project_store.list_all()) == 2

    @pytest.mark.asyncio
    async def test_list_most_recent_first(self, project_store, tmp_path):
        """Test that list_all orders by updated_at descending."""
        a = await project_store.create("A", str(tmp_path / "a"))
        b = await project_store.create("B", str(tmp_path / "b"))
        assert [p.name for p in project_store.list_all()] == ["B", "A"]

        await project_store.update(a.id, description="touched")

        assert [p.id for p in project_store.list_all()] == [a.id, b.id]

    @pytest.mark.asyncio
    async def test_update_settings_persisted(self, db, project_store, tmp_path):
        """Test that settings changes survive a reload."""
        project = await project_store.create("A", str(tmp_path))
        settings = ProjectSettings(default_cli="codex", auto_create_pr=False, test_command="npm test")

        await project_store.update(project.id, settings=settings)

        reloaded = ProjectStore(db)
        await reloaded.load()
        assert reloaded.require(project.id).settings == settings

    @pytest.mark.asyncio
    async def test_update_unknown_field(self, project_store, project):
        """Test that unknown fields are refused."""
        with pytest.raises(ValueError):
            await project_store.update(project.id, owner="someone")

    @pytest.mark.asyncio
    async def test_load_restores_active(self, db, project_store, tmp_path):
        """Test that the active selection is restored from the database."""
        a = await project_store.create("A", str(tmp_path / "a"))
        await project_store.create("B", str(tmp_path / "b"))
        await project_store.set_active(a.id)

        reloaded = ProjectStore(db)
        await reloaded.load()

        assert reloaded.active_project_id == a.id

    @pytest.mark.asyncio
    async def test_set_active_rolls_back(self, db, project_store, tmp_path, monkeypatch):
        """Test that a failed write restores the previous selection."""
        a = await project_store.create("A", str(tmp_path / "a"))
        b = await project_store.create("B", str(tmp_path / "b"))
        monkeypatch.setattr(db, "execute_many", AsyncMock(side_effect=PersistenceError("locked")))

        with pytest.raises(PersistenceError):
            await project_store.set_active(a.id)

        assert project_store.active_project_id == b.id

    @pytest.mark.asyncio
    async def test_set_active_unknown(self, project_store):
        """Test that selecting an unknown project raises."""
        with pytest.raises(ProjectNotFoundError):
            await project_store.set_active("missing")

    @pytest.mark.asyncio
    async def test_delete_reassigns_active(self, db, project_store, feature_store, tmp_path):
        """Test active reassignment and that features are left to the caller."""
        a = await project_store.create("A", str(tmp_path / "a"))
        b = await project_store.create("B", str(tmp_path / "b"))
        await feature_store.create(b.id, title="Orphan")

        await project_store.delete(b.id)

        assert project_store.get(b.id) is None
        assert project_store.active_project_id == a.id
        rows = await db.query("SELECT title FROM features")
        assert [row["title"] for row in rows] == ["Orphan"]

    @pytest.mark.asyncio
    async def test_delete_last_clears_active(self, project_store, project):
        """Test that deleting the only project leaves no active project."""
        await project_store.delete(project.id)

        assert project_store.active_project_id is None
        assert project_store.get_active() is None

    @pytest.mark.asyncio
    async def test_delete_unknown(self, project_store):
        """Test that deleting an unknown project raises."""
        with pytest.raises(ProjectNotFoundError):
            await project_store.delete("missing")
