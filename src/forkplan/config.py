"""Configuration parsing from ``.forkplan.yml``."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from forkplan.sharding.sources import DEFAULT_DURATION_COLUMN, DEFAULT_NAME_COLUMN

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".forkplan.yml"

_ENV_VAR_RE = re.compile(r"\$\{(\w+)\}")

_DEFAULT_FORKS = 1
_DEFAULT_TIMINGS_PATH = "test-timings.csv"


def _resolve_env_vars(value: str) -> str:
    """Replace ``${VAR_NAME}`` placeholders with environment variable values."""

    def _replace(match: re.Match[str]) -> str:
        var = match.group(1)
        resolved = os.environ.get(var)
        if resolved is None:
            logger.warning("Environment variable %s is not set (referenced in config)", var)
            return ""
        return resolved

    return _ENV_VAR_RE.sub(_replace, value)


def _resolve_value(value: Any) -> Any:
    if isinstance(value, str):
        return _resolve_env_vars(value)
    if isinstance(value, dict):
        return _resolve_dict(value)
    if isinstance(value, list):
        return [_resolve_value(item) for item in value]
    return value


def _resolve_dict(data: dict[str, Any]) -> dict[str, Any]:
    """Recursively resolve environment variables in a dictionary."""
    return {key: _resolve_value(value) for key, value in data.items()}


@dataclass
class TimingsConfig:
    """Historical timing data configuration."""

    path: str = _DEFAULT_TIMINGS_PATH
    """CSV file with per-test durations, relative to the project root."""

    name_column: str = DEFAULT_NAME_COLUMN
    """CSV header of the test name column."""

    duration_column: str = DEFAULT_DURATION_COLUMN
    """CSV header of the duration column (seconds)."""


@dataclass
class SourceConfig:
    """A discovery source: a file of test group patterns run by one task."""

    task: str
    """Name of the task that runs these tests."""

    path: str
    """File listing one wildcard pattern per line."""


@dataclass
class OutputConfig:
    """Plan output configuration."""

    plan_file: str = ""
    """Where ``forkplan plan`` writes the plan JSON (empty = don't write)."""

    format: str = "terminal"
    """Summary format: terminal or json."""


@dataclass
class ForkPlanConfig:
    """Complete forkplan configuration from ``.forkplan.yml``."""

    root: str
    """Project root directory."""

    forks: int = _DEFAULT_FORKS
    """Number of parallel forks to balance across."""

    timings: TimingsConfig = field(default_factory=TimingsConfig)
    """Historical timing configuration."""

    sources: list[SourceConfig] = field(default_factory=list)
    """Discovery sources in registration order."""

    output: OutputConfig = field(default_factory=OutputConfig)
    """Plan output configuration."""

    raw: dict[str, Any] = field(default_factory=dict)
    """Raw parsed YAML for extension/debugging."""

    def resolve_path(self, path: str) -> Path:
        """Resolve *path* against the project root unless it is absolute."""
        candidate = Path(path)
        return candidate if candidate.is_absolute() else Path(self.root) / candidate


def _parse_timings_config(raw: dict[str, Any]) -> TimingsConfig:
    """Parse timing configuration from raw YAML."""
    timings_raw = raw.get("timings", {})
    if isinstance(timings_raw, str):
        timings_raw = {"path": timings_raw}
    if not isinstance(timings_raw, dict):
        timings_raw = {}

    return TimingsConfig(
        path=str(
            timings_raw.get("path", os.environ.get("FORKPLAN_TIMINGS", _DEFAULT_TIMINGS_PATH))
        ),
        name_column=str(timings_raw.get("name_column", DEFAULT_NAME_COLUMN)),
        duration_column=str(timings_raw.get("duration_column", DEFAULT_DURATION_COLUMN)),
    )


def _parse_sources_config(raw: dict[str, Any]) -> list[SourceConfig]:
    """Parse discovery sources from raw YAML.

    Entries without both ``task`` and ``path`` are skipped with a warning.
    """
    sources_raw = raw.get("sources", [])
    if not isinstance(sources_raw, list):
        sources_raw = []

    sources: list[SourceConfig] = []
    for entry in sources_raw:
        if not isinstance(entry, dict) or not entry.get("task") or not entry.get("path"):
            logger.warning("Ignoring invalid source entry in config: %r", entry)
            continue
        sources.append(SourceConfig(task=str(entry["task"]), path=str(entry["path"])))
    return sources


def _parse_output_config(raw: dict[str, Any]) -> OutputConfig:
    """Parse output configuration from raw YAML."""
    output_raw = raw.get("output", {})
    if not isinstance(output_raw, dict):
        output_raw = {}

    return OutputConfig(
        plan_file=str(output_raw.get("plan_file", "")),
        format=str(output_raw.get("format", "terminal")),
    )


def load_config(root: str | Path) -> ForkPlanConfig:
    """Load and parse ``.forkplan.yml``.

    Falls back to defaults and environment variables when the YAML file is
    missing or incomplete.
    """
    root_path = Path(root).resolve()
    config_file = root_path / CONFIG_FILENAME

    raw: dict[str, Any] = {}
    if config_file.is_file():
        parsed = yaml.safe_load(config_file.read_text(encoding="utf-8"))
        if isinstance(parsed, dict):
            raw = _resolve_dict(parsed)

    forks_raw = raw.get("forks", os.environ.get("FORKPLAN_FORKS", _DEFAULT_FORKS))
    try:
        forks = int(forks_raw)
    except (TypeError, ValueError):
        logger.warning("Invalid forks value %r, using %d", forks_raw, _DEFAULT_FORKS)
        forks = _DEFAULT_FORKS

    return ForkPlanConfig(
        root=str(root_path),
        forks=forks,
        timings=_parse_timings_config(raw),
        sources=_parse_sources_config(raw),
        output=_parse_output_config(raw),
        raw=raw,
    )


def validate_config(config: ForkPlanConfig) -> list[str]:
    """Validate the configuration and return a list of error messages.

    Returns an empty list if the configuration is valid.
    """
    errors: list[str] = []

    if config.forks < 1:
        errors.append(f"forks must be >= 1 (got {config.forks})")

    if not config.timings.path:
        errors.append("timings.path is required")

    if not config.sources:
        errors.append("at least one source is required")

    for i, source in enumerate(config.sources):
        if not config.resolve_path(source.path).is_file():
            errors.append(f"sources[{i}].path does not exist: {source.path}")

    if config.output.format not in {"terminal", "json"}:
        errors.append(f"output.format must be 'terminal' or 'json' (got '{config.output.format}')")

    return errors
