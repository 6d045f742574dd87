"""Test group, timing record and bucket models."""

from __future__ import annotations

import math
from collections.abc import Hashable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from collections.abc import Iterable

# ── Constants ─────────────────────────────────────────────────────

WILDCARD = "*"
"""Marker terminating every discovered test group name."""

MIN_TEST_DURATION = 10.0
"""Floor applied to each matched test and to every bucket (seconds)."""

TaskT = TypeVar("TaskT", bound=Hashable)


# ── Errors ────────────────────────────────────────────────────────


class PlanningError(Exception):
    """Base class for test plan contract violations."""


class InvalidTestGroupError(PlanningError, ValueError):
    """Raised when a discovered test group name lacks the wildcard marker."""


# ── Data models ───────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class TestGroup(Generic[TaskT]):
    """A discovered wildcard pattern owned by a build task."""

    __test__ = False

    raw_name: str
    """Pattern as discovered, e.g. ``com.example.FooTest*``."""

    task: TaskT
    """Task that runs the tests of this group."""

    def __post_init__(self) -> None:
        if not self.raw_name.endswith(WILDCARD):
            msg = f"test group {self.raw_name!r} must end with {WILDCARD!r}"
            raise InvalidTestGroupError(msg)

    @property
    def prefix(self) -> str:
        """Name with the trailing wildcard removed."""
        return self.raw_name[: -len(WILDCARD)]


@dataclass(frozen=True, slots=True)
class TimingRecord:
    """Historical duration of a single test."""

    name: str
    """Fully qualified test name."""

    duration: float
    """Measured duration in seconds."""

    def __post_init__(self) -> None:
        if not math.isfinite(self.duration) or self.duration < 0:
            msg = f"duration must be a finite number >= 0, got {self.duration} for {self.name!r}"
            raise ValueError(msg)


def bucket_duration(records: Iterable[TimingRecord]) -> float:
    """Estimate the duration of a set of matched tests.

    Every test costs at least ``MIN_TEST_DURATION`` and so does the whole
    set, even when nothing matched.
    """
    total = sum(max(r.duration, MIN_TEST_DURATION) for r in records)
    return max(total, MIN_TEST_DURATION)


@dataclass(frozen=True, slots=True)
class Bucket(Generic[TaskT]):
    """Schedulable unit: a test group plus its estimated duration."""

    group: TestGroup[TaskT]
    matched: tuple[TimingRecord, ...] = ()
    duration: float = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "duration", bucket_duration(self.matched))

    @classmethod
    def from_matches(
        cls, group: TestGroup[TaskT], matched: Iterable[TimingRecord]
    ) -> Bucket[TaskT]:
        return cls(group=group, matched=tuple(matched))

    @property
    def task(self) -> TaskT:
        return self.group.task

    @property
    def raw_name(self) -> str:
        return self.group.raw_name

    @property
    def prefix(self) -> str:
        return self.group.prefix

    @property
    def test_count(self) -> int:
        """Number of historical tests matched by this bucket."""
        return len(self.matched)
