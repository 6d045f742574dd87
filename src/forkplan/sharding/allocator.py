"""Longest-processing-time-first allocation of buckets to forks.

Buckets are sorted by estimated duration (largest first, stable for ties)
and each one goes to the fork with the smallest running total, lowest index
winning ties.  The makespan of the result is at most
``(4/3 - 1/(3N))`` times the optimal one for ``N`` forks.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Generic

from forkplan.sharding.container import WorkerContainer
from forkplan.sharding.matcher import build_buckets
from forkplan.sharding.models import PlanningError, TaskT, TestGroup

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from forkplan.sharding.models import Bucket
    from forkplan.sharding.sources import TestLister, TimingProvider

logger = logging.getLogger(__name__)


class PlanNotGeneratedError(PlanningError):
    """Raised when the plan is queried before ``generate()`` completed."""


def allocate_buckets(
    buckets: Iterable[Bucket[TaskT]],
    containers: Sequence[WorkerContainer[TaskT]],
) -> None:
    """Assign every bucket to the currently least-loaded container.

    *containers* must be ordered by index; ``min`` returns the first of
    several equally loaded containers, which is the lowest index.
    """
    if not containers:
        msg = "at least one container is required"
        raise ValueError(msg)

    for bucket in sorted(buckets, key=lambda b: b.duration, reverse=True):
        target = min(containers, key=lambda c: c.running_duration)
        target.add_bucket(bucket)
        logger.debug(
            "Assigned %s (%.1fs) to fork %d (now %.1fs)",
            bucket.raw_name,
            bucket.duration,
            target.index,
            target.running_duration,
        )


def _check_worker_index(worker_index: int, fork_count: int) -> None:
    if worker_index < 0 or worker_index >= fork_count:
        msg = f"worker_index must be in [0, {fork_count}), got {worker_index}"
        raise ValueError(msg)


class TestPlan(Generic[TaskT]):
    """Frozen result of one ``BucketingAllocator.generate()`` call."""

    __test__ = False

    def __init__(self, containers: Sequence[WorkerContainer[TaskT]]) -> None:
        unfrozen = [c.index for c in containers if not c.is_frozen]
        if unfrozen:
            msg = f"containers {unfrozen} must be frozen before building a plan"
            raise PlanningError(msg)
        self._workers = tuple(containers)

    @property
    def fork_count(self) -> int:
        return len(self._workers)

    @property
    def workers(self) -> tuple[WorkerContainer[TaskT], ...]:
        return self._workers

    def worker(self, worker_index: int) -> WorkerContainer[TaskT]:
        _check_worker_index(worker_index, self.fork_count)
        return self._workers[worker_index]

    def tests_for(self, worker_index: int, task: TaskT) -> list[str]:
        """Return the group patterns *task* runs on fork *worker_index*.

        Raises:
            ValueError: If *worker_index* is not a valid fork index.
        """
        return self.worker(worker_index).tests_for(task)

    @property
    def durations(self) -> list[float]:
        """Estimated duration of each fork, by index."""
        return [w.running_duration for w in self._workers]

    @property
    def makespan(self) -> float:
        """Estimated duration of the slowest fork."""
        return max(self.durations)

    @property
    def tasks(self) -> list[TaskT]:
        """Every task with at least one bucket, in first-seen order."""
        seen: dict[TaskT, None] = {}
        for w in self._workers:
            for task in w.tasks:
                seen.setdefault(task, None)
        return list(seen)


class BucketingAllocator(Generic[TaskT]):
    """Builds duration-balanced test plans across a fixed number of forks.

    Register one or more discovery sources with ``register_source``, then
    call ``generate``.  Each fork's tests for a task are read back with
    ``query_tests``.

    Args:
        fork_count: Number of parallel forks (>= 1).
        timing_provider: Source of historical test durations.
    """

    def __init__(self, fork_count: int, timing_provider: TimingProvider) -> None:
        if fork_count < 1:
            msg = f"fork_count must be >= 1, got {fork_count}"
            raise ValueError(msg)
        self._fork_count = fork_count
        self._timing_provider = timing_provider
        self._sources: list[tuple[TestLister, TaskT]] = []
        self._containers: list[WorkerContainer[TaskT]] = self._new_containers()
        self._plan: TestPlan[TaskT] | None = None

    @property
    def fork_count(self) -> int:
        return self._fork_count

    @property
    def containers(self) -> list[WorkerContainer[TaskT]]:
        """Containers of the current plan (empty and accumulating before ``generate``)."""
        return list(self._containers)

    @property
    def plan(self) -> TestPlan[TaskT]:
        """The latest generated plan.

        Raises:
            PlanNotGeneratedError: If ``generate`` has not completed yet.
        """
        if self._plan is None:
            msg = "no test plan yet; call generate() first"
            raise PlanNotGeneratedError(msg)
        return self._plan

    def register_source(self, lister: TestLister, task: TaskT) -> None:
        """Add a discovery source whose groups are run by *task*."""
        self._sources.append((lister, task))

    def generate(self) -> TestPlan[TaskT]:
        """Discover, match, allocate and freeze a new plan.

        Each call works on a fresh set of containers and replaces the
        previous plan only once every container is frozen.  Exceptions from
        the collaborators propagate and leave the previous state untouched.
        """
        records = list(self._timing_provider.get_timings())
        groups = self._discover_groups()
        logger.info(
            "Planning %d test groups from %d sources with %d timing records across %d forks",
            len(groups),
            len(self._sources),
            len(records),
            self._fork_count,
        )

        buckets = build_buckets(groups, records)
        containers = self._new_containers()
        allocate_buckets(buckets, containers)
        for container in containers:
            container.freeze()

        plan = TestPlan(containers)
        self._containers = containers
        self._plan = plan
        logger.info("Test plan ready, makespan %.1fs", plan.makespan)
        return plan

    def query_tests(self, worker_index: int, task: TaskT) -> list[str]:
        """Return the group patterns *task* runs on fork *worker_index*.

        Raises:
            PlanNotGeneratedError: If ``generate`` has not completed yet.
            ValueError: If *worker_index* is not in ``[0, fork_count)``.
        """
        return self.plan.tests_for(worker_index, task)

    def _discover_groups(self) -> list[TestGroup[TaskT]]:
        groups: list[TestGroup[TaskT]] = []
        for lister, task in self._sources:
            groups.extend(TestGroup(raw_name=name, task=task) for name in lister.list_tests())
        return groups

    def _new_containers(self) -> list[WorkerContainer[TaskT]]:
        return [WorkerContainer(i) for i in range(self._fork_count)]
