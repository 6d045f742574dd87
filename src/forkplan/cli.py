"""forkplan command line interface."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click
from rich.markup import escape

from forkplan import __version__
from forkplan.config import ForkPlanConfig, SourceConfig, load_config, validate_config
from forkplan.reporters.terminal import reporter
from forkplan.sharding.allocator import BucketingAllocator
from forkplan.sharding.models import PlanningError
from forkplan.sharding.plan_file import read_plan, write_plan
from forkplan.sharding.report import log_plan_summary, summarize_plan
from forkplan.sharding.sources import CsvTimingProvider, FileTestLister

if TYPE_CHECKING:
    from collections.abc import Callable

    from forkplan.sharding.allocator import TestPlan

logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _parse_source_option(
    _ctx: click.Context, _param: click.Parameter, values: tuple[str, ...]
) -> list[SourceConfig]:
    """Parse repeated ``--source TASK=FILE`` options."""
    sources: list[SourceConfig] = []
    for value in values:
        task, sep, path = value.partition("=")
        if not sep or not task.strip() or not path.strip():
            msg = f"expected TASK=FILE, got {value!r}"
            raise click.BadParameter(msg)
        sources.append(SourceConfig(task=task.strip(), path=path.strip()))
    return sources


_PLANNING_OPTIONS = [
    click.option(
        "--path",
        default=".",
        type=click.Path(exists=True, file_okay=False, resolve_path=True),
        help="Project root directory (where .forkplan.yml lives).",
    ),
    click.option("--forks", type=int, default=None, help="Number of parallel forks."),
    click.option(
        "--timings",
        type=click.Path(dir_okay=False),
        default=None,
        help="CSV file with historical test durations.",
    ),
    click.option(
        "--source",
        "sources",
        multiple=True,
        callback=_parse_source_option,
        help="TASK=FILE discovery source (repeatable, replaces configured sources).",
    ),
]


def _planning_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Attach the options shared by every command that generates a plan."""
    for option in reversed(_PLANNING_OPTIONS):
        func = option(func)
    return func


def _load_settings(
    path: str,
    forks: int | None,
    timings: str | None,
    sources: list[SourceConfig],
) -> ForkPlanConfig:
    """Load ``.forkplan.yml`` and apply command line overrides."""
    try:
        config = load_config(path)
    except Exception as e:
        reporter.print_error(f"Failed to load configuration: {escape(str(e))}")
        raise click.Abort from e

    if forks is not None:
        config.forks = forks
    if timings is not None:
        config.timings.path = str(Path(timings).resolve())
    if sources:
        config.sources = [
            SourceConfig(task=s.task, path=str(Path(s.path).resolve())) for s in sources
        ]

    errors = validate_config(config)
    if errors:
        raise click.UsageError("Invalid configuration:\n  " + "\n  ".join(errors))
    return config


def _build_allocator(config: ForkPlanConfig) -> BucketingAllocator[str]:
    """Wire the configured collaborators into an allocator."""
    provider = CsvTimingProvider(
        config.resolve_path(config.timings.path),
        name_column=config.timings.name_column,
        duration_column=config.timings.duration_column,
    )
    allocator: BucketingAllocator[str] = BucketingAllocator(config.forks, provider)
    for source in config.sources:
        allocator.register_source(FileTestLister(config.resolve_path(source.path)), source.task)
    return allocator


def _generate(config: ForkPlanConfig) -> TestPlan[str]:
    allocator = _build_allocator(config)
    try:
        plan = allocator.generate()
    except (PlanningError, OSError) as e:
        reporter.print_error(f"Test plan generation failed: {escape(str(e))}")
        raise click.Abort from e
    log_plan_summary(plan, logging.DEBUG)
    return plan


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.version_option(version=__version__, prog_name="forkplan")
@click.pass_context
def cli(ctx: click.Context, *, verbose: bool) -> None:
    """forkplan — balance a test suite across parallel forks by historical duration."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING, format=_LOG_FORMAT)


@cli.command()
@_planning_options
@click.option(
    "--output",
    "output_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path to write the plan JSON (default: output.plan_file from config).",
)
@click.option("--json", "as_json", is_flag=True, help="Print the summary as JSON.")
def plan(**kwargs: Any) -> None:
    """Generate a test plan and show the estimated load of every fork."""
    config = _load_settings(kwargs["path"], kwargs["forks"], kwargs["timings"], kwargs["sources"])
    output_path: Path | None = None
    if kwargs.get("output_path"):
        output_path = Path(kwargs["output_path"])
    elif config.output.plan_file:
        output_path = config.resolve_path(config.output.plan_file)
    as_json: bool = bool(kwargs.get("as_json")) or config.output.format == "json"

    test_plan = _generate(config)
    summaries = summarize_plan(test_plan)

    if output_path:
        write_plan(test_plan, output_path)

    if as_json:
        payload = {
            "fork_count": test_plan.fork_count,
            "makespan": test_plan.makespan,
            "workers": [s.to_dict() for s in summaries],
        }
        click.echo(json.dumps(payload, indent=2))
        return

    reporter.print_header("forkplan plan")
    reporter.print_plan_summary(summaries)
    if output_path:
        reporter.print_info(f"Plan written to {escape(str(output_path))}")
    reporter.print_success(
        f"Planned {sum(len(s.buckets) for s in summaries)} test groups "
        f"across {test_plan.fork_count} forks"
    )


@cli.command()
@_planning_options
@click.option("--worker", type=int, required=True, help="Zero-based fork index.")
@click.option("--task", required=True, help="Task whose tests should be listed.")
@click.option(
    "--plan",
    "plan_file",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Read a plan written by 'forkplan plan --output' instead of generating one.",
)
def tests(**kwargs: Any) -> None:
    """Print the include patterns one fork should run for a task.

    Patterns are printed one per line, ready to be passed to the test
    runner's include filter.
    """
    worker: int = kwargs["worker"]
    task: str = kwargs["task"]
    plan_file: str | None = kwargs.get("plan_file")

    try:
        if plan_file:
            try:
                snapshot = read_plan(Path(plan_file))
            except (OSError, ValueError, KeyError) as e:
                reporter.print_error(
                    f"Failed to read plan file {escape(plan_file)}: {escape(str(e))}"
                )
                raise click.Abort from e
            names = snapshot.tests_for(worker, task)
        else:
            config = _load_settings(
                kwargs["path"], kwargs["forks"], kwargs["timings"], kwargs["sources"]
            )
            names = _generate(config).tests_for(worker, task)
    except ValueError as e:
        raise click.UsageError(str(e)) from e

    logger.info("Fork %d runs %d groups for task %s", worker, len(names), task)
    for name in names:
        click.echo(name)
