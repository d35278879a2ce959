#!/usr/bin/env python3
"""
Project Maker CLI

Command-line interface for Project Maker:
- project-maker project: Register, list, select and remove projects
- project-maker feature: Manage features and run automation
- project-maker board: Show the Kanban board of a project
- project-maker generate: Generate features from a project description
- project-maker llm: Inspect the generation service
- project-maker config: Configuration management
"""

import asyncio
import sys
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, TypeVar

import keyring.errors
import typer
from rich.console import Console

from .. import __version__
from ..app import Application
from ..core.automation import RunState
from ..llm.base import CancellationToken, GenerationCancelledError, LLMError
from ..llm.ollama import OllamaGateway
from ..llm.prompts import ParseError
from ..models import Feature, FeatureComplexity, FeatureStatus, Project
from ..settings.storage import SettingsStorage
from ..settings.validation import ConfigValidator
from ..state.database import PersistenceError
from ..state.errors import FeatureNotFoundError, ProjectNotFoundError, StoreError
from .output import OutputManager, configure_logging

T = TypeVar("T")

app = typer.Typer(
    name="project-maker",
    help="Project Maker - plan features with a local LLM and automate them from a Kanban board",
    add_completion=False,
    no_args_is_help=True,
)
project_app = typer.Typer(name="project", help="Project management commands", no_args_is_help=True)
feature_app = typer.Typer(name="feature", help="Feature management commands", no_args_is_help=True)
llm_app = typer.Typer(name="llm", help="Generation service commands", no_args_is_help=True)
config_app = typer.Typer(name="config", help="Configuration management", no_args_is_help=True)
app.add_typer(project_app)
app.add_typer(feature_app)
app.add_typer(llm_app)
app.add_typer(config_app)

console = Console()
output = OutputManager(console)

STATUS_CHOICES = ", ".join(status.value for status in FeatureStatus.get_order())


# ========== Helper Functions ==========

def _storage() -> SettingsStorage:
    return SettingsStorage()


def _build_app(on_progress: Optional[Callable[[RunState], None]] = None) -> Application:
    """Build the application from stored settings."""
    return Application.from_storage(_storage(), on_progress=on_progress)


def _run(
    func: Callable[[Application], Awaitable[T]],
    on_progress: Optional[Callable[[RunState], None]] = None,
) -> T:
    """Run an async command body against a started application."""
    async def runner() -> T:
        async with _build_app(on_progress) as application:
            return await func(application)

    try:
        return asyncio.run(runner())
    except GenerationCancelledError as e:
        output.print_warning(str(e) or "Generation cancelled")
        raise typer.Exit(1)
    except (StoreError, PersistenceError, LLMError, ParseError, ValueError) as e:
        output.print_error(str(e))
        raise typer.Exit(1)


def _parse_status(value: str) -> FeatureStatus:
    try:
        return FeatureStatus(value)
    except ValueError:
        raise typer.BadParameter(f"Unknown status '{value}'. Choose from: {STATUS_CHOICES}")


def _parse_complexity(value: str) -> FeatureComplexity:
    try:
        return FeatureComplexity(value)
    except ValueError:
        raise typer.BadParameter(f"Unknown complexity '{value}'. Choose from: low, medium, high")


def _resolve_project(application: Application, ref: Optional[str]) -> Project:
    """Find a project by id, id prefix or name; the active project when ref is None."""
    if ref is None:
        project = application.projects.get_active()
        if project is None:
            output.print_error("No active project. Use 'project add' or 'project use' first.")
            raise typer.Exit(1)
        return project

    project = application.projects.get(ref)
    if project:
        return project
    matches = [
        p for p in application.projects.list_all()
        if p.id.startswith(ref) or p.name == ref
    ]
    if len(matches) != 1:
        raise ProjectNotFoundError(ref)
    return matches[0]


def _resolve_feature(application: Application, ref: str) -> Feature:
    """Find a feature by id or unique id prefix across all projects."""
    feature = application.features.get(ref)
    if feature:
        return feature
    matches = [
        f
        for p in application.projects.list_all()
        for f in application.features.list_by_project(p.id)
        if f.id.startswith(ref)
    ]
    if len(matches) != 1:
        raise FeatureNotFoundError(ref)
    return matches[0]


def _print_progress(state: RunState) -> None:
    """Announce step changes of a running automation."""
    if state.is_running and state.current_step:
        output.print(f"  [cyan]>[/cyan] {state.current_step}")


async def _await_automation(application: Application, feature_id: str) -> None:
    result = await application.kanban.wait_for_automation(feature_id)
    feature = application.features.get(feature_id)
    if feature:
        output.automation_logs(feature.automation_logs)
    if result is not None:
        output.automation_result(result)
        if not result.success:
            raise typer.Exit(1)


# ========== Global ==========

@app.callback()
def _main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
):
    """Project Maker - plan features with a local LLM and automate them from a Kanban board."""
    configure_logging(verbose)


@app.command()
def version():
    """Show the Project Maker version."""
    output.print(f"Project Maker v{__version__}")


@app.command()
def board(
    project_ref: Optional[str] = typer.Option(None, "--project", "-p", help="Project id or name"),
):
    """Show the Kanban board of a project."""
    async def body(application: Application) -> None:
        project = _resolve_project(application, project_ref)
        output.print_header(project.name, project.path)
        output.board(application.kanban.board(project.id))

    _run(body)


@app.command()
def generate(
    description: str = typer.Argument(..., help="Project description"),
    project_ref: Optional[str] = typer.Option(None, "--project", "-p", help="Project id or name"),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Project name used in the prompt"),
    stream: bool = typer.Option(False, "--stream", "-s", help="Stream the response while generating"),
    import_features: bool = typer.Option(False, "--import", "-i", help="Import the features into the backlog"),
):
    """
    Generate features for a project description.

    Examples:
        project-maker generate "A todo app with tags and due dates" --name TodoApp
        project-maker generate "A CLI weather client" --stream --import
    """
    async def body(application: Application) -> None:
        project = None
        if import_features or name is None:
            project = _resolve_project(application, project_ref)
        project_name = name or project.name

        if not await application.generator.check_connection():
            output.print_error(f"Cannot reach Ollama at {application.gateway.base_url}")
            raise typer.Exit(1)

        output.print_info(f"Generating features with {application.generator.model}...")
        if stream:
            printed = [0]

            def on_progress(text: str) -> None:
                console.print(text[printed[0]:], end="", highlight=False, markup=False)
                printed[0] = len(text)
                sys.stdout.flush()

            features = await application.generator.generate_streaming(
                project_name, description, on_progress, CancellationToken()
            )
            console.print()
        else:
            with output.spinner("Waiting for the model..."):
                features = await application.generator.generate(project_name, description)

        output.generated_features_table(features)

        if import_features:
            created = await application.generator.import_features(project.id, features)
            output.print_success(f"Imported {len(created)} features into {project.name}")

    _run(body)


# ========== Projects ==========

@project_app.command("add")
def project_add(
    name: str = typer.Argument(..., help="Project name"),
    path: Optional[str] = typer.Argument(None, help="Project directory (default: <default_project_path>/<name> or cwd)"),
    description: str = typer.Option("", "--description", "-d", help="Project description"),
):
    """Register a project and make it active."""
    async def body(application: Application) -> None:
        if path:
            project_path = Path(path)
        elif application.settings.default_project_path:
            project_path = Path(application.settings.default_project_path) / name
        else:
            project_path = Path.cwd()
        project_path = project_path.expanduser().resolve()
        if not project_path.exists():
            output.print_warning(f"Directory does not exist yet: {project_path}")

        project = await application.projects.create(name, str(project_path), description)
        output.print_success(f"Active project: {project.name} ({project.id[:8]})")

    _run(body)


@project_app.command("list")
def project_list():
    """List registered projects."""
    async def body(application: Application) -> None:
        projects = application.projects.list_all()
        if not projects:
            output.print_info("No projects yet. Add one with 'project add'.")
            return
        output.projects_table(projects, application.projects.active_project_id)

    _run(body)


@project_app.command("use")
def project_use(
    project_ref: str = typer.Argument(..., help="Project id, id prefix or name"),
):
    """Make a project active."""
    async def body(application: Application) -> None:
        project = _resolve_project(application, project_ref)
        await application.projects.set_active(project.id)
        output.print_success(f"Active project: {project.name}")

    _run(body)


@project_app.command("remove")
def project_remove(
    project_ref: str = typer.Argument(..., help="Project id, id prefix or name"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
):
    """Remove a project and all of its features (files on disk are kept)."""
    async def body(application: Application) -> None:
        project = _resolve_project(application, project_ref)
        count = len(application.features.list_by_project(project.id))
        if not yes and not typer.confirm(f"Remove '{project.name}' and its {count} features?"):
            raise typer.Exit(0)
        await application.delete_project(project.id)
        output.print_success(f"Removed project {project.name}")

    _run(body)


# ========== Features ==========

@feature_app.command("add")
def feature_add(
    title: str = typer.Argument(..., help="Feature title"),
    description: str = typer.Option("", "--description", "-d", help="Feature description"),
    complexity: str = typer.Option("medium", "--complexity", "-c", help="low, medium or high"),
    key_points: Optional[List[str]] = typer.Option(None, "--key-point", "-k", help="Key point (repeatable)"),
    criteria: Optional[List[str]] = typer.Option(None, "--criterion", help="Acceptance criterion (repeatable)"),
    project_ref: Optional[str] = typer.Option(None, "--project", "-p", help="Project id or name"),
):
    """Add a feature to the backlog."""
    level = _parse_complexity(complexity)

    async def body(application: Application) -> None:
        project = _resolve_project(application, project_ref)
        feature = await application.features.create(
            project.id,
            title=title,
            description=description,
            estimated_complexity=level,
            key_points=key_points or [],
            acceptance_criteria=criteria or [],
        )
        output.print_success(f"Created feature {feature.id[:8]}: {feature.title}")

    _run(body)


@feature_app.command("list")
def feature_list(
    status: Optional[str] = typer.Option(None, "--status", "-s", help=f"Filter by status ({STATUS_CHOICES})"),
    project_ref: Optional[str] = typer.Option(None, "--project", "-p", help="Project id or name"),
):
    """List the features of a project."""
    column = _parse_status(status) if status else None

    async def body(application: Application) -> None:
        project = _resolve_project(application, project_ref)
        if column:
            features = application.features.list_by_status(project.id, column)
        else:
            features = application.features.list_by_project(project.id)
        if not features:
            output.print_info("No features")
            return
        output.features_table(features, title=f"Features of {project.name}")

    _run(body)


@feature_app.command("show")
def feature_show(
    feature_ref: str = typer.Argument(..., help="Feature id or id prefix"),
):
    """Show every field of a feature."""
    async def body(application: Application) -> None:
        output.feature_detail(_resolve_feature(application, feature_ref))

    _run(body)


@feature_app.command("edit")
def feature_edit(
    feature_ref: str = typer.Argument(..., help="Feature id or id prefix"),
    title: Optional[str] = typer.Option(None, "--title", "-t", help="New title"),
    description: Optional[str] = typer.Option(None, "--description", "-d", help="New description"),
    complexity: Optional[str] = typer.Option(None, "--complexity", "-c", help="low, medium or high"),
    key_points: Optional[List[str]] = typer.Option(None, "--key-point", "-k", help="Replace key points"),
    branch: Optional[str] = typer.Option(None, "--branch", help="Git branch name"),
    pr_url: Optional[str] = typer.Option(None, "--pr-url", help="Pull request URL"),
):
    """Edit the fields of a feature."""
    changes = {
        "title": title,
        "description": description,
        "estimated_complexity": _parse_complexity(complexity) if complexity else None,
        "key_points": key_points or None,
        "branch_name": branch,
        "pr_url": pr_url,
    }
    changes = {key: value for key, value in changes.items() if value is not None}
    if not changes:
        output.print_warning("Nothing to change")
        raise typer.Exit(0)

    async def body(application: Application) -> None:
        feature = _resolve_feature(application, feature_ref)
        await application.features.update(feature.id, **changes)
        output.print_success(f"Updated {', '.join(changes)} of {feature.id[:8]}")

    _run(body)


@feature_app.command("move")
def feature_move(
    feature_ref: str = typer.Argument(..., help="Feature id or id prefix"),
    status: str = typer.Argument(..., help=f"Target column ({STATUS_CHOICES})"),
    order: Optional[int] = typer.Option(None, "--order", "-o", help="Position in the column (default: last)"),
):
    """
    Move a feature to another column.

    Moving a feature into todo starts its automation and waits for it to finish.
    """
    target = _parse_status(status)

    async def body(application: Application) -> None:
        feature = _resolve_feature(application, feature_ref)
        moved = await application.kanban.move_feature(feature.id, target, order)
        output.print_success(f"Moved {moved.id[:8]} to {moved.status.label}")
        if application.kanban.is_running(moved.id):
            output.print_info("Automation started")
            await _await_automation(application, moved.id)

    _run(body, on_progress=_print_progress)


@feature_app.command("reorder")
def feature_reorder(
    status: str = typer.Argument(..., help=f"Column to reorder ({STATUS_CHOICES})"),
    feature_refs: List[str] = typer.Argument(..., help="Feature ids in the new order"),
    project_ref: Optional[str] = typer.Option(None, "--project", "-p", help="Project id or name"),
):
    """Set the order of a column's features."""
    column = _parse_status(status)

    async def body(application: Application) -> None:
        project = _resolve_project(application, project_ref)
        ids = [_resolve_feature(application, ref).id for ref in feature_refs]
        await application.kanban.reorder_column(project.id, column, ids)
        output.print_success(f"Reordered {len(ids)} features in {column.label}")

    _run(body)


@feature_app.command("delete")
def feature_delete(
    feature_ref: str = typer.Argument(..., help="Feature id or id prefix"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
):
    """Delete a feature."""
    async def body(application: Application) -> None:
        feature = _resolve_feature(application, feature_ref)
        if not yes and not typer.confirm(f"Delete '{feature.title}'?"):
            raise typer.Exit(0)
        await application.delete_feature(feature.id)
        output.print_success(f"Deleted {feature.id[:8]}")

    _run(body)


@feature_app.command("logs")
def feature_logs(
    feature_ref: str = typer.Argument(..., help="Feature id or id prefix"),
):
    """Show the automation log of a feature."""
    async def body(application: Application) -> None:
        feature = _resolve_feature(application, feature_ref)
        output.print_header(feature.title, f"Automation: {feature.automation_status.value}")
        output.automation_logs(feature.automation_logs)

    _run(body)


@feature_app.command("run")
def feature_run(
    feature_ref: str = typer.Argument(..., help="Feature id or id prefix"),
):
    """Run (or retry) automation for a feature and wait for the result."""
    async def body(application: Application) -> None:
        feature = _resolve_feature(application, feature_ref)
        task = await application.kanban.start_automation(feature.id)
        if task is None:
            output.print_warning("Automation is already running for this feature")
            raise typer.Exit(1)
        output.print_info(f"Automating {feature.title}")
        await _await_automation(application, feature.id)

    _run(body, on_progress=_print_progress)


# ========== Generation Service ==========

def _gateway() -> OllamaGateway:
    ollama = _storage().load().ollama
    return OllamaGateway(
        base_url=ollama.base_url,
        timeout=ollama.timeout_seconds,
        availability_timeout=ollama.availability_timeout_seconds,
    )


@llm_app.command("status")
def llm_status():
    """Check whether the generation service is reachable."""
    gateway = _gateway()

    async def check() -> bool:
        try:
            return await gateway.is_available()
        finally:
            await gateway.close()

    available = asyncio.run(check())
    output.status_panel({
        "URL": gateway.base_url,
        "Model": _storage().load().ollama.model,
        "Connected": available,
    }, title="Ollama")
    if not available:
        raise typer.Exit(1)


@llm_app.command("models")
def llm_models():
    """List installed and recommended models."""
    gateway = _gateway()

    async def fetch():
        try:
            return await gateway.list_models()
        finally:
            await gateway.close()

    try:
        models = asyncio.run(fetch())
    except LLMError as e:
        output.print_error(str(e))
        raise typer.Exit(1)
    output.models_table(models, OllamaGateway.RECOMMENDED_MODELS)


# ========== Configuration ==========

def _flatten(data: dict, prefix: str = "") -> dict:
    flat = {}
    for key, value in data.items():
        name = f"{prefix}{key}"
        if isinstance(value, dict):
            flat.update(_flatten(value, f"{name}."))
        else:
            flat[name] = value
    return flat


@config_app.command("show")
def config_show():
    """Show the current configuration."""
    storage = _storage()
    settings = storage.load()
    config = _flatten(storage.settings_to_dict(settings))
    config["database_url"] = storage.database_url(settings)
    config["github.token"] = storage.has_github_token()
    output.print_info(f"Config file: {storage.config_file}")
    output.config_display(config)

    result = ConfigValidator().validate(settings)
    for warning in result.warnings:
        output.print_warning(warning)
    for error in result.errors:
        output.print_error(error)


@config_app.command("set")
def config_set(
    key: str = typer.Argument(..., help="Dotted setting key, e.g. ollama.model"),
    value: str = typer.Argument(..., help="New value"),
):
    """Change one setting."""
    storage = _storage()
    try:
        settings = storage.set_value(storage.load(), key, value)
    except ValueError as e:
        output.print_error(str(e))
        raise typer.Exit(1)

    result = ConfigValidator().validate(settings)
    if not result.valid:
        for error in result.errors:
            output.print_error(error)
        raise typer.Exit(1)

    storage.save(settings)
    for warning in result.warnings:
        output.print_warning(warning)
    output.print_success(f"{key} = {value}")


@config_app.command("set-token")
def config_set_token(
    token: Optional[str] = typer.Option(None, "--token", help="GitHub token (prompted when omitted)"),
    delete: bool = typer.Option(False, "--delete", help="Remove the stored token"),
):
    """Store the GitHub token in the system keyring."""
    storage = _storage()
    if delete:
        storage.delete_github_token()
        output.print_success("GitHub token removed")
        return

    if token is None:
        token = typer.prompt("GitHub token", hide_input=True)
    try:
        storage.set_github_token(token)
    except keyring.errors.KeyringError as e:
        output.print_error(f"Keyring unavailable: {e}")
        raise typer.Exit(1)
    output.print_success("GitHub token stored in keyring")


def main():
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
