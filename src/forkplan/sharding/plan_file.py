"""Plan serialization for exchanging a generated plan between CI jobs."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pathlib import Path

    from forkplan.sharding.allocator import TestPlan

PLAN_FORMAT_VERSION = 1


@dataclass
class WorkerSnapshot:
    """Tests of one fork as read back from a plan file."""

    index: int
    duration: float = 0.0
    tests: dict[str, list[str]] = field(default_factory=dict)
    """Group patterns per task name."""


@dataclass
class PlanSnapshot:
    """Read-only view of a plan file."""

    workers: list[WorkerSnapshot] = field(default_factory=list)

    @property
    def fork_count(self) -> int:
        return len(self.workers)

    @property
    def makespan(self) -> float:
        return max((w.duration for w in self.workers), default=0.0)

    def tests_for(self, worker_index: int, task: str) -> list[str]:
        """Return the group patterns *task* runs on fork *worker_index*.

        Raises:
            ValueError: If *worker_index* is not a valid fork index.
        """
        if worker_index < 0 or worker_index >= self.fork_count:
            msg = f"worker_index must be in [0, {self.fork_count}), got {worker_index}"
            raise ValueError(msg)
        return list(self.workers[worker_index].tests.get(task, []))


def write_plan(plan: TestPlan[Any], output_path: Path) -> None:
    """Serialize and write *plan* to a JSON file."""
    data = _serialize_plan(plan)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(json.dumps(data, indent=2), encoding="utf-8")


def read_plan(path: Path) -> PlanSnapshot:
    """Read a plan JSON file written by ``write_plan``.

    Raises:
        ValueError: If the file is not a supported plan document.
    """
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict) or data.get("version") != PLAN_FORMAT_VERSION:
        msg = f"{path} is not a version {PLAN_FORMAT_VERSION} plan file"
        raise ValueError(msg)

    workers = [
        WorkerSnapshot(
            index=int(w["index"]),
            duration=float(w.get("duration", 0.0)),
            tests={str(task): [str(n) for n in names] for task, names in w["tests"].items()},
        )
        for w in data.get("workers", [])
    ]
    workers.sort(key=lambda w: w.index)
    if [w.index for w in workers] != list(range(len(workers))):
        msg = f"{path}: worker indices are not contiguous from 0"
        raise ValueError(msg)
    return PlanSnapshot(workers=workers)


def _serialize_plan(plan: TestPlan[Any]) -> dict[str, Any]:
    """Convert a TestPlan to a JSON-serializable dict."""
    return {
        "version": PLAN_FORMAT_VERSION,
        "fork_count": plan.fork_count,
        "makespan": plan.makespan,
        "workers": [
            {
                "index": worker.index,
                "duration": worker.running_duration,
                "tests": {str(task): worker.tests_for(task) for task in worker.tasks},
            }
            for worker in plan.workers
        ],
    }
