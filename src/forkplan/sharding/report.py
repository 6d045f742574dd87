"""Diagnostic summary of a generated test plan."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from forkplan.sharding.allocator import TestPlan
    from forkplan.sharding.models import TimingRecord

logger = logging.getLogger(__name__)


@dataclass
class BucketSummary:
    """One group pattern as scheduled on a fork."""

    name: str
    """Wildcard group pattern."""

    task: str
    """Owning task, rendered with ``str()``."""

    duration: float
    """Estimated duration of the group in seconds."""

    matched: list[TimingRecord] = field(default_factory=list)
    """Historical tests matched by the pattern."""


@dataclass
class WorkerSummary:
    """Estimated load of a single fork."""

    index: int
    duration: float = 0.0
    """Estimated total duration in seconds."""

    test_count: int = 0
    """Number of historical tests matched across all groups."""

    buckets: list[BucketSummary] = field(default_factory=list)
    """Groups in assignment order."""

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "duration": self.duration,
            "test_count": self.test_count,
            "groups": [
                {
                    "name": b.name,
                    "task": b.task,
                    "duration": b.duration,
                    "matched": [{"name": r.name, "duration": r.duration} for r in b.matched],
                }
                for b in self.buckets
            ],
        }


def summarize_plan(plan: TestPlan[Any]) -> list[WorkerSummary]:
    """Build a per-fork summary of *plan*, ordered by fork index."""
    summaries: list[WorkerSummary] = []
    for worker in plan.workers:
        buckets = worker.buckets
        summaries.append(
            WorkerSummary(
                index=worker.index,
                duration=worker.running_duration,
                test_count=sum(b.test_count for b in buckets),
                buckets=[
                    BucketSummary(
                        name=b.raw_name,
                        task=str(b.task),
                        duration=b.duration,
                        matched=list(b.matched),
                    )
                    for b in buckets
                ],
            )
        )
    return summaries


def log_plan_summary(plan: TestPlan[Any], level: int = logging.INFO) -> None:
    """Write the plan summary to the module logger."""
    if not logger.isEnabledFor(level):
        return
    for summary in summarize_plan(plan):
        logger.log(
            level,
            "Fork %d: %.1fs estimated, %d tests in %d groups",
            summary.index,
            summary.duration,
            summary.test_count,
            len(summary.buckets),
        )
        for bucket in summary.buckets:
            logger.log(level, "  %s [%s] %.1fs", bucket.name, bucket.task, bucket.duration)
            for record in bucket.matched:
                logger.log(level, "    %s, %s", record.name, record.duration)
