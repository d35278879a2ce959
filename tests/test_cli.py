"""Tests for the command-line interface."""

import importlib
import re

import pytest
import yaml
from typer.testing import CliRunner

from conftest import FakeGateway, plan
from project_maker.app import Application
from project_maker.cli.main import app
from project_maker.execution.shell import ScriptedResponse, ScriptedShellExecutor
from project_maker.llm.base import GatewayError, GenerationCancelledError
from project_maker.settings import SettingsStorage
from project_maker.settings.storage import HOME_ENV_VAR

cli_main = importlib.import_module("project_maker.cli.main")
runner = CliRunner()


@pytest.fixture(autouse=True)
def pm_home(tmp_path, monkeypatch):
    """Isolated config directory and no real keyring access."""
    home = tmp_path / "home"
    monkeypatch.setenv(HOME_ENV_VAR, str(home))
    monkeypatch.setattr("project_maker.settings.storage.keyring.get_password", lambda service, name: None)
    monkeypatch.setattr(cli_main.console, "width", 200)
    return home


@pytest.fixture
def workdir(tmp_path):
    path = tmp_path / "todo"
    path.mkdir()
    return path


@pytest.fixture
def fake_services(monkeypatch):
    """Route CLI commands through a fake gateway and a scripted shell."""
    gateway = FakeGateway(response=plan(("Install", "npm install lucide-react")))
    shell = ScriptedShellExecutor(default=ScriptedResponse(stdout=["added 1 package"]))

    def build(on_progress=None):
        return Application.from_storage(SettingsStorage(), gateway=gateway, shell=shell, on_progress=on_progress)

    monkeypatch.setattr(cli_main, "_build_app", build)
    return gateway, shell


def add_project(workdir, name="TodoApp"):
    result = runner.invoke(app, ["project", "add", name, str(workdir), "-d", "A simple todo list app"])
    assert result.exit_code == 0, result.output
    return result


def add_feature(title="Add icons", *extra):
    result = runner.invoke(app, ["feature", "add", title, *extra])
    assert result.exit_code == 0, result.output
    return re.search(r"Created feature (\w+)", result.output).group(1)


class TestGlobal:
    """Tests for top-level commands."""

    def test_help(self):
        """Test that --help lists the command groups."""
        result = runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        for group in ("project", "feature", "board", "generate", "config"):
            assert group in result.output

    def test_version(self):
        """Test the version command."""
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert "Project Maker v" in result.output


class TestProjectCommands:
    """Tests for project commands."""

    def test_add_and_list(self, workdir):
        """Test registering and listing a project."""
        add_project(workdir)

        result = runner.invoke(app, ["project", "list"])

        assert result.exit_code == 0
        assert "TodoApp" in result.output

    def test_list_empty(self):
        """Test listing with no projects."""
        result = runner.invoke(app, ["project", "list"])

        assert result.exit_code == 0
        assert "No projects yet" in result.output

    def test_use_unknown_project(self):
        """Test that selecting an unknown project fails."""
        result = runner.invoke(app, ["project", "use", "Nope"])

        assert result.exit_code == 1

    def test_remove(self, workdir):
        """Test removing a project with its features."""
        add_project(workdir)
        add_feature()

        result = runner.invoke(app, ["project", "remove", "TodoApp", "--yes"])

        assert result.exit_code == 0
        assert "No projects yet" in runner.invoke(app, ["project", "list"]).output


class TestFeatureCommands:
    """Tests for feature commands."""

    def test_add_requires_active_project(self):
        """Test that adding a feature without a project fails."""
        result = runner.invoke(app, ["feature", "add", "Orphan"])

        assert result.exit_code == 1
        assert "No active project" in result.output

    def test_add_and_list(self, workdir):
        """Test adding and listing features."""
        add_project(workdir)
        add_feature("Add icons", "-k", "Install lucide-react", "-c", "low")

        result = runner.invoke(app, ["feature", "list"])

        assert result.exit_code == 0
        assert "Add icons" in result.output

    def test_invalid_complexity(self, workdir):
        """Test that an unknown complexity is a usage error."""
        add_project(workdir)

        result = runner.invoke(app, ["feature", "add", "X", "-c", "extreme"])

        assert result.exit_code == 2

    def test_show_and_edit(self, workdir):
        """Test editing a feature and showing the result."""
        add_project(workdir)
        feature_id = add_feature("Draft")

        edited = runner.invoke(app, ["feature", "edit", feature_id, "--title", "Final"])
        shown = runner.invoke(app, ["feature", "show", feature_id])

        assert edited.exit_code == 0
        assert "Final" in shown.output

    def test_move_to_done(self, workdir):
        """Test moving a feature without triggering automation."""
        add_project(workdir)
        feature_id = add_feature()

        result = runner.invoke(app, ["feature", "move", feature_id, "done"])

        assert result.exit_code == 0
        assert f"Moved {feature_id}" in result.output
        assert "Automation started" not in result.output

    def test_move_invalid_status(self, workdir):
        """Test that an unknown column is a usage error."""
        add_project(workdir)
        feature_id = add_feature()

        result = runner.invoke(app, ["feature", "move", feature_id, "archived"])

        assert result.exit_code == 2

    def test_move_to_todo_runs_automation(self, workdir, fake_services):
        """Test that moving into todo runs and reports the automation."""
        _, shell = fake_services
        add_project(workdir)
        feature_id = add_feature("Add icons", "-k", "Install lucide-react")

        result = runner.invoke(app, ["feature", "move", feature_id, "todo"])

        assert result.exit_code == 0, result.output
        assert "Automation started" in result.output
        assert "Feature implemented successfully!" in result.output
        assert shell.command_lines == ["npm install lucide-react"]

        logs = runner.invoke(app, ["feature", "logs", feature_id])
        assert "Automation: success" in logs.output

    def test_failed_run_exits_nonzero(self, workdir, fake_services):
        """Test that a failing automation run exits with code 1."""
        _, shell = fake_services
        shell.default = ScriptedResponse(exit_code=1, stderr=["npm ERR! network"])
        add_project(workdir)
        feature_id = add_feature()

        result = runner.invoke(app, ["feature", "run", feature_id])

        assert result.exit_code == 1
        assert "Automation Failed" in result.output

    def test_unknown_feature(self, workdir):
        """Test that an unknown feature id fails cleanly."""
        add_project(workdir)

        result = runner.invoke(app, ["feature", "show", "deadbeef"])

        assert result.exit_code == 1

    def test_delete(self, workdir):
        """Test deleting a feature."""
        add_project(workdir)
        feature_id = add_feature("Temporary")

        result = runner.invoke(app, ["feature", "delete", feature_id, "--yes"])

        assert result.exit_code == 0
        assert "No features" in runner.invoke(app, ["feature", "list"]).output

    def test_board(self, workdir):
        """Test rendering the board."""
        add_project(workdir)
        add_feature("Board item")

        result = runner.invoke(app, ["board"])

        assert result.exit_code == 0
        assert "Backlog (1)" in result.output
        assert "Board item" in result.output


class TestGenerateCommand:
    """Tests for the generate command."""

    def test_cancelled_generation_is_not_an_error(self, fake_services):
        """Test that a cancelled generation is reported as a warning."""
        gateway, _ = fake_services
        gateway.error = GenerationCancelledError("Generation cancelled")

        result = runner.invoke(app, ["generate", "A todo app", "--name", "TodoApp"])

        assert result.exit_code == 1
        assert "! Generation cancelled" in result.output
        assert "x Generation cancelled" not in result.output

    def test_gateway_failure_is_an_error(self, fake_services):
        """Test that a failing generation request is reported as an error."""
        gateway, _ = fake_services
        gateway.error = GatewayError("Ollama request failed (500): model not loaded", status_code=500)

        result = runner.invoke(app, ["generate", "A todo app", "--name", "TodoApp"])

        assert result.exit_code == 1
        assert "x Ollama request failed (500): model not loaded" in result.output


class TestConfigCommands:
    """Tests for configuration commands."""

    def test_set_and_show(self, pm_home):
        """Test that a changed setting is saved and shown."""
        result = runner.invoke(app, ["config", "set", "ollama.model", "codellama:7b"])

        assert result.exit_code == 0
        saved = yaml.safe_load((pm_home / "config.yaml").read_text())
        assert saved["ollama"]["model"] == "codellama:7b"

        shown = runner.invoke(app, ["config", "show"])
        assert shown.exit_code == 0
        assert "codellama:7b" in shown.output

    def test_unknown_key(self):
        """Test that an unknown key is rejected."""
        result = runner.invoke(app, ["config", "set", "ollama.colour", "blue"])

        assert result.exit_code == 1

    def test_invalid_value(self, pm_home):
        """Test that a value failing validation is not saved."""
        result = runner.invoke(app, ["config", "set", "ollama.temperature", "5"])

        assert result.exit_code == 1
        assert not (pm_home / "config.yaml").exists()
