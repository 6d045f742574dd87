"""Terminal reporter with rich output formatting."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.markup import escape
from rich.table import Table

if TYPE_CHECKING:
    from forkplan.sharding.report import WorkerSummary

console = Console()


_SECONDS_PER_MINUTE = 60.0
_BALANCED_RATIO = 0.9
_UNEVEN_RATIO = 0.6
_BAR_WIDTH = 30
_MAX_GROUPS_DISPLAY = 5


def _format_duration(seconds: float) -> str:
    """Format a duration in seconds to a human-readable string."""
    if seconds >= _SECONDS_PER_MINUTE:
        return f"{seconds / _SECONDS_PER_MINUTE:.1f}m"
    return f"{seconds:.1f}s"


def _load_color(ratio: float) -> str:
    """Return a Rich color for a fork's load relative to the slowest fork."""
    if ratio >= _BALANCED_RATIO:
        return "green"
    if ratio >= _UNEVEN_RATIO:
        return "yellow"
    return "red"


class CLIReporter:
    """Rich terminal output reporter for test plans."""

    def __init__(self) -> None:
        """Initialize the CLI reporter."""
        self.console = console

    def print_header(self, title: str) -> None:
        """Print a bold header."""
        self.console.print(f"\n[bold cyan]{title}[/bold cyan]\n")

    def print_success(self, message: str) -> None:
        """Print a success message."""
        self.console.print(f"[green]✓[/green] {message}")

    def print_error(self, message: str) -> None:
        """Print an error message."""
        self.console.print(f"[red]✗[/red] {message}")

    def print_warning(self, message: str) -> None:
        """Print a warning message."""
        self.console.print(f"[yellow]⚠[/yellow] {message}")

    def print_info(self, message: str) -> None:
        """Print an info message."""
        self.console.print(f"[dim]{message}[/dim]")

    def print_plan_summary(self, summaries: list[WorkerSummary]) -> None:
        """Print one row per fork with its estimated load."""
        makespan = max((s.duration for s in summaries), default=0.0)

        table = Table(title="Test Plan", title_style="bold cyan")
        table.add_column("Fork", justify="right", style="bold")
        table.add_column("Load")
        table.add_column("Duration", justify="right")
        table.add_column("Tests", justify="right")
        table.add_column("Groups")

        for summary in summaries:
            ratio = summary.duration / makespan if makespan else 0.0
            table.add_row(
                str(summary.index),
                self._build_load_bar(ratio),
                _format_duration(summary.duration),
                str(summary.test_count),
                self._format_groups(summary),
            )

        self.console.print(table)

        total = sum(s.duration for s in summaries)
        self.console.print(
            f"\n  [bold]{len(summaries)}[/bold] forks  "
            f"makespan [bold]{_format_duration(makespan)}[/bold]  "
            f"[dim]total {_format_duration(total)}[/dim]"
        )

    def _format_groups(self, summary: WorkerSummary) -> str:
        names = [escape(b.name) for b in summary.buckets]
        if len(names) > _MAX_GROUPS_DISPLAY:
            hidden = len(names) - _MAX_GROUPS_DISPLAY
            return ", ".join(names[:_MAX_GROUPS_DISPLAY]) + f" [dim](+{hidden} more)[/dim]"
        return ", ".join(names)

    def _build_load_bar(self, ratio: float, width: int = _BAR_WIDTH) -> str:
        """Build a colored bar whose filled part is proportional to *ratio*."""
        filled = min(width, round(ratio * width))
        color = _load_color(ratio)
        return f"[{color}]{'█' * filled}[/{color}][dim]{'░' * (width - filled)}[/dim]"


# Singleton instance for easy import
reporter = CLIReporter()
