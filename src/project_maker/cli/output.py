"""
Rich Terminal Output for Project Maker CLI

Provides terminal output with tables, panels, spinners and styled text.
Uses the Rich library for all formatting.
"""

import logging
from contextlib import contextmanager
from typing import Any, Optional

from rich.columns import Columns
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from ..core.automation import AutomationResult
from ..core.kanban import BoardColumn
from ..llm.base import ModelInfo
from ..models import AutomationLog, Feature, GeneratedFeature, Project


def configure_logging(verbose: bool = False, console: Optional[Console] = None) -> None:
    """
    Route library logging through rich.

    Args:
        verbose: Log at DEBUG instead of WARNING
        console: Console to render to (stderr by default)
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console or Console(stderr=True), rich_tracebacks=verbose)],
        force=True,
    )


class OutputManager:
    """
    Manages rich terminal output for Project Maker CLI.

    Provides consistent styling and formatting for:
    - Tables for projects, features and models
    - Board columns
    - Panels for feature details and automation results
    - Automation log rendering
    """

    # Color scheme
    COLORS = {
        "primary": "blue",
        "success": "green",
        "warning": "yellow",
        "error": "red",
        "muted": "dim",
        "highlight": "cyan",
    }

    # Automation status icons
    ICONS = {
        "idle": "[dim]o[/dim]",
        "running": "[cyan]*[/cyan]",
        "success": "[green]v[/green]",
        "failed": "[red]x[/red]",
    }

    # Log type -> color
    LOG_STYLES = {
        "info": "blue",
        "success": "green",
        "warning": "yellow",
        "error": "red",
    }

    COMPLEXITY_STYLES = {
        "low": "green",
        "medium": "yellow",
        "high": "red",
    }

    def __init__(self, console: Optional[Console] = None):
        """
        Initialize the output manager.

        Args:
            console: Rich Console instance (creates one if not provided)
        """
        self.console = console or Console()

    # ==================== Basic Output ====================

    def print(self, message: str = "", style: str | None = None) -> None:
        self.console.print(message, style=style)

    def print_header(self, title: str, subtitle: str | None = None) -> None:
        """
        Print a styled header.

        Args:
            title: Header title
            subtitle: Optional subtitle
        """
        self.console.print()
        self.console.print(f"[bold blue]{title}[/bold blue]")
        if subtitle:
            self.console.print(f"[dim]{subtitle}[/dim]")
        self.console.print()

    def print_success(self, message: str) -> None:
        self.console.print(f"[green]v[/green] {message}")

    def print_error(self, message: str) -> None:
        self.console.print(f"[red]x[/red] {message}")

    def print_warning(self, message: str) -> None:
        self.console.print(f"[yellow]![/yellow] {message}")

    def print_info(self, message: str) -> None:
        self.console.print(f"[blue]i[/blue] {message}")

    @contextmanager
    def spinner(self, message: str = "Working..."):
        """Show a spinner while the block runs."""
        with self.console.status(message):
            yield

    # ==================== Panels ====================

    def status_panel(self, status: dict[str, Any], title: str = "Status") -> None:
        """
        Display a status panel.

        Args:
            status: Status dictionary
            title: Panel title
        """
        lines = []
        for key, value in status.items():
            if isinstance(value, bool):
                value_str = "[green]Yes[/green]" if value else "[red]No[/red]"
            else:
                value_str = escape(str(value))
            lines.append(f"[bold]{key}:[/bold] {value_str}")

        self.console.print(Panel("\n".join(lines), title=title, border_style="cyan"))

    # ==================== Projects ====================

    def projects_table(self, projects: list[Project], active_id: str | None = None) -> None:
        """
        Display projects as a table.

        Args:
            projects: Projects to display
            active_id: Id of the active project (marked with *)
        """
        table = Table(title="Projects")
        table.add_column("", width=1)
        table.add_column("ID", style="cyan", width=8)
        table.add_column("Name", style="white")
        table.add_column("Path", style="dim")

        for project in projects:
            marker = "[green]*[/green]" if project.id == active_id else ""
            table.add_row(marker, project.id[:8], escape(project.name), escape(project.path))

        self.console.print(table)

    # ==================== Features ====================

    def features_table(self, features: list[Feature], title: str = "Features") -> None:
        """
        Display features as a table.

        Args:
            features: Features to display
            title: Table title
        """
        table = Table(title=title)
        table.add_column("#", style="dim", width=4)
        table.add_column("ID", style="cyan", width=8)
        table.add_column("Title", style="white", width=40)
        table.add_column("Status", width=12)
        table.add_column("Complexity", width=10)
        table.add_column("Automation", width=12)

        for feature in features:
            complexity = feature.estimated_complexity.value
            color = self.COMPLEXITY_STYLES.get(complexity, "white")
            automation = feature.automation_status.value
            table.add_row(
                str(feature.order),
                feature.id[:8],
                escape(feature.title),
                feature.status.label,
                f"[{color}]{complexity}[/{color}]",
                f"{self.ICONS.get(automation, '')} {automation}",
            )

        self.console.print(table)

    def feature_detail(self, feature: Feature) -> None:
        """Display every field of a feature in a panel."""
        lines = [
            f"[bold]ID:[/bold] {feature.id}",
            f"[bold]Status:[/bold] {feature.status.label}",
            f"[bold]Order:[/bold] {feature.order}",
            f"[bold]Complexity:[/bold] {feature.estimated_complexity.value}",
            f"[bold]Automation:[/bold] {feature.automation_status.value}",
        ]
        if feature.branch_name:
            lines.append(f"[bold]Branch:[/bold] {escape(feature.branch_name)}")
        if feature.pr_url:
            lines.append(f"[bold]PR:[/bold] {escape(feature.pr_url)}")
        if feature.description:
            lines.extend(["", escape(feature.description)])

        sections = [
            ("Key Points", feature.key_points),
            ("Acceptance Criteria", feature.acceptance_criteria),
            ("Suggested Tests", feature.suggested_tests),
            ("Dependencies", feature.dependencies),
        ]
        for heading, items in sections:
            if items:
                lines.append("")
                lines.append(f"[bold]{heading}:[/bold]")
                for item in items:
                    lines.append(f"  - {escape(item)}")

        self.console.print(Panel(
            "\n".join(lines),
            title=escape(feature.title),
            border_style="blue",
        ))

    def generated_features_table(self, features: list[GeneratedFeature]) -> None:
        """Display generated feature proposals before import."""
        table = Table(title=f"Generated Features ({len(features)})")
        table.add_column("#", style="dim", width=4)
        table.add_column("Title", style="white", width=36)
        table.add_column("Complexity", width=10)
        table.add_column("Description", style="dim")

        for index, feature in enumerate(features, start=1):
            complexity = feature.estimated_complexity.value
            color = self.COMPLEXITY_STYLES.get(complexity, "white")
            table.add_row(
                str(index),
                escape(feature.title),
                f"[{color}]{complexity}[/{color}]",
                escape(feature.description),
            )

        self.console.print(table)

    # ==================== Board ====================

    def board(self, columns: list[BoardColumn]) -> None:
        """Render board columns side by side."""
        panels = []
        for column in columns:
            lines = []
            for feature in column.features:
                icon = self.ICONS.get(feature.automation_status.value, "")
                lines.append(f"{icon} [cyan]{feature.id[:8]}[/cyan] {escape(feature.title)}")
            panels.append(Panel(
                "\n".join(lines) or "[dim](empty)[/dim]",
                title=f"{column.title} ({len(column.features)})",
                border_style="blue",
                width=36,
            ))
        self.console.print(Columns(panels))

    # ==================== Automation ====================

    def automation_log(self, entry: AutomationLog) -> None:
        """Print one automation log entry."""
        color = self.LOG_STYLES.get(entry.type.value, "white")
        timestamp = entry.timestamp.strftime("%H:%M:%S")
        self.console.print(
            f"[dim]{timestamp}[/dim] [{color}]{escape(entry.step)}[/{color}] {escape(entry.message)}",
            highlight=False,
        )

    def automation_logs(self, logs: tuple[AutomationLog, ...] | list[AutomationLog]) -> None:
        if not logs:
            self.print("[dim]No automation logs[/dim]")
            return
        for entry in logs:
            self.automation_log(entry)

    def automation_result(self, result: AutomationResult) -> None:
        """
        Display the outcome of an automation run.

        Args:
            result: AutomationResult returned by the orchestrator
        """
        if result.success:
            title = "[green]Automation Completed Successfully[/green]"
            border = "green"
        else:
            title = "[red]Automation Failed[/red]"
            border = "red"

        lines = [
            f"[bold]Feature:[/bold] {result.feature_id}",
            f"[bold]Steps:[/bold] {result.steps_completed}/{len(result.steps)}",
        ]
        if result.error:
            lines.append(f"\n[bold red]Error:[/bold red] {escape(result.error)}")

        self.console.print(Panel("\n".join(lines), title=title, border_style=border))

    # ==================== Models & Configuration ====================

    def models_table(self, models: list[ModelInfo], recommended: list[dict[str, str]]) -> None:
        """Display installed models followed by the recommended catalogue."""
        installed = {model.name for model in models}

        table = Table(title="Installed Models")
        table.add_column("Name", style="cyan")
        table.add_column("Size", justify="right")
        table.add_column("Modified", style="dim")
        for model in models:
            table.add_row(model.name, f"{model.size / 1e9:.1f}GB", model.modified_at[:19])
        self.console.print(table)

        table = Table(title="Recommended Models")
        table.add_column("Name", style="cyan")
        table.add_column("Size", justify="right")
        table.add_column("Description", style="dim")
        table.add_column("Installed", width=9)
        for model in recommended:
            mark = "[green]v[/green]" if model["name"] in installed else ""
            table.add_row(model["name"], model["size"], model["description"], mark)
        self.console.print(table)

    def config_display(self, config: dict[str, Any]) -> None:
        """
        Display configuration.

        Args:
            config: Flat dictionary of dotted keys to values
        """
        table = Table(title="Configuration")
        table.add_column("Setting", style="cyan")
        table.add_column("Value", style="white")

        for key, value in config.items():
            if key.lower().endswith(("token", "password", "secret")):
                value = "***" if value else "(not set)"
            table.add_row(key, escape(str(value)))

        self.console.print(table)
