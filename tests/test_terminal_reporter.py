"""Tests for the terminal (Rich) reporter."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from rich.console import Console
from rich.table import Table

from forkplan.reporters.terminal import (
    CLIReporter,
    _format_duration,
    _load_color,
    reporter,
)
from forkplan.sharding.report import BucketSummary, WorkerSummary

# ── Fixtures ────────────────────────────────────────────────────


@pytest.fixture
def mock_console() -> MagicMock:
    """Return a MagicMock that replaces the console."""
    return MagicMock()


@pytest.fixture
def cli_reporter(mock_console: MagicMock) -> CLIReporter:
    """Return a CLIReporter with a mocked console."""
    r = CLIReporter()
    r.console = mock_console
    return r


def _summary(index: int, duration: float, groups: int = 1) -> WorkerSummary:
    return WorkerSummary(
        index=index,
        duration=duration,
        test_count=groups,
        buckets=[
            BucketSummary(name=f"G{index}_{i}*", task="unit", duration=duration / groups)
            for i in range(groups)
        ],
    )


# ── Helper function tests ───────────────────────────────────────


class TestFormatDuration:
    def test_seconds(self) -> None:
        assert _format_duration(42.0) == "42.0s"

    def test_minutes(self) -> None:
        assert _format_duration(90.0) == "1.5m"


class TestLoadColor:
    def test_balanced(self) -> None:
        assert _load_color(1.0) == "green"

    def test_uneven(self) -> None:
        assert _load_color(0.7) == "yellow"

    def test_underused(self) -> None:
        assert _load_color(0.1) == "red"


# ── CLIReporter ─────────────────────────────────────────────────


class TestMessages:
    def test_header(self, cli_reporter: CLIReporter, mock_console: MagicMock) -> None:
        cli_reporter.print_header("forkplan plan")
        assert "forkplan plan" in mock_console.print.call_args[0][0]

    @pytest.mark.parametrize(
        ("method", "marker"),
        [
            ("print_success", "✓"),
            ("print_error", "✗"),
            ("print_warning", "⚠"),
            ("print_info", "[dim]"),
        ],
    )
    def test_prefixed_messages(
        self, cli_reporter: CLIReporter, mock_console: MagicMock, method: str, marker: str
    ) -> None:
        getattr(cli_reporter, method)("hello")
        printed = mock_console.print.call_args[0][0]
        assert marker in printed
        assert "hello" in printed


class TestPrintPlanSummary:
    def test_prints_table_and_totals(
        self, cli_reporter: CLIReporter, mock_console: MagicMock
    ) -> None:
        cli_reporter.print_plan_summary([_summary(0, 100.0), _summary(1, 50.0, groups=2)])

        table = mock_console.print.call_args_list[0][0][0]
        assert isinstance(table, Table)
        assert table.row_count == 2
        footer = mock_console.print.call_args_list[-1][0][0]
        assert "2[/bold] forks" in footer
        assert "1.7m" in footer  # makespan 100s
        assert "2.5m" in footer  # total 150s

    def test_empty_summary(self, cli_reporter: CLIReporter, mock_console: MagicMock) -> None:
        cli_reporter.print_plan_summary([])
        table = mock_console.print.call_args_list[0][0][0]
        assert table.row_count == 0

    def test_long_group_lists_truncated(self, cli_reporter: CLIReporter) -> None:
        text = cli_reporter._format_groups(_summary(0, 80.0, groups=8))
        assert "G0_4*" in text
        assert "G0_5*" not in text
        assert "(+3 more)" in text

    def test_load_bar_width(self, cli_reporter: CLIReporter) -> None:
        bar = cli_reporter._build_load_bar(0.5, width=10)
        assert bar.count("█") == 5
        assert bar.count("░") == 5

    def test_renders_with_real_console(self) -> None:
        r = CLIReporter()
        r.console = Console(record=True, width=120)
        r.print_plan_summary([_summary(0, 30.0), _summary(1, 20.0)])
        output = r.console.export_text()
        assert "Test Plan" in output
        assert "G1_0*" in output

    def test_bracketed_group_names_render_literally(self) -> None:
        r = CLIReporter()
        r.console = Console(record=True, width=200)
        summary = WorkerSummary(
            index=0,
            duration=20.0,
            test_count=2,
            buckets=[
                BucketSummary(name="test_x[bold]*", task="unit", duration=10.0),
                BucketSummary(name="Foo[/red]*", task="unit", duration=10.0),
            ],
        )
        r.print_plan_summary([summary])
        output = r.console.export_text()
        assert "test_x[bold]*, Foo[/red]*" in output


def test_module_singleton() -> None:
    assert isinstance(reporter, CLIReporter)
