"""Per-fork bucket container with an accumulate-then-freeze lifecycle."""

from __future__ import annotations

import threading
from enum import Enum
from typing import TYPE_CHECKING, Generic

from forkplan.sharding.models import PlanningError, TaskT

if TYPE_CHECKING:
    from forkplan.sharding.models import Bucket


class FrozenContainerError(PlanningError):
    """Raised when a bucket is added to a frozen container."""


class ContainerNotFrozenError(PlanningError):
    """Raised when a container is queried before it has been frozen."""


class ContainerState(Enum):
    """Lifecycle state of a ``WorkerContainer``."""

    ACCUMULATING = "accumulating"
    FROZEN = "frozen"


class WorkerContainer(Generic[TaskT]):
    """Buckets assigned to one fork.

    While accumulating, ``add_bucket`` appends a bucket and bumps the
    running duration under the container's lock, so concurrent callers never
    see one without the other.  ``freeze`` groups the buckets by task; the
    container is read-only afterwards.

    Args:
        index: Zero-based fork index.
    """

    def __init__(self, index: int) -> None:
        if index < 0:
            msg = f"index must be >= 0, got {index}"
            raise ValueError(msg)
        self._index = index
        self._lock = threading.Lock()
        self._state = ContainerState.ACCUMULATING
        self._running_duration = 0.0
        self._buckets: list[Bucket[TaskT]] = []
        self._by_task: dict[TaskT, tuple[Bucket[TaskT], ...]] = {}

    def __repr__(self) -> str:
        return (
            f"WorkerContainer(index={self._index}, state={self._state.value}, "
            f"buckets={len(self._buckets)}, duration={self._running_duration})"
        )

    @property
    def index(self) -> int:
        return self._index

    @property
    def state(self) -> ContainerState:
        return self._state

    @property
    def is_frozen(self) -> bool:
        return self._state is ContainerState.FROZEN

    @property
    def running_duration(self) -> float:
        """Sum of the durations of every bucket added so far."""
        with self._lock:
            return self._running_duration

    @property
    def buckets(self) -> list[Bucket[TaskT]]:
        """Snapshot of the buckets in the order they were added."""
        with self._lock:
            return list(self._buckets)

    @property
    def bucket_count(self) -> int:
        with self._lock:
            return len(self._buckets)

    @property
    def test_count(self) -> int:
        """Number of historical tests matched across all buckets."""
        with self._lock:
            return sum(b.test_count for b in self._buckets)

    def add_bucket(self, bucket: Bucket[TaskT]) -> None:
        """Append *bucket* and add its duration to the running total.

        Raises:
            FrozenContainerError: If the container has been frozen.
        """
        with self._lock:
            if self._state is ContainerState.FROZEN:
                msg = f"container {self._index} is frozen; cannot add {bucket.raw_name!r}"
                raise FrozenContainerError(msg)
            self._buckets.append(bucket)
            self._running_duration += bucket.duration

    def freeze(self) -> None:
        """Group buckets by task and reject further additions.

        Calling ``freeze`` again is a no-op.
        """
        with self._lock:
            if self._state is ContainerState.FROZEN:
                return
            grouped: dict[TaskT, list[Bucket[TaskT]]] = {}
            for bucket in self._buckets:
                grouped.setdefault(bucket.task, []).append(bucket)
            self._by_task = {task: tuple(items) for task, items in grouped.items()}
            self._state = ContainerState.FROZEN

    @property
    def tasks(self) -> list[TaskT]:
        """Tasks with at least one bucket here, in first-assignment order."""
        self._require_frozen()
        return list(self._by_task)

    def buckets_for(self, task: TaskT) -> list[Bucket[TaskT]]:
        """Return the buckets of *task* in the order they were added."""
        self._require_frozen()
        return list(self._by_task.get(task, ()))

    def tests_for(self, task: TaskT) -> list[str]:
        """Return the group patterns *task* should run on this fork.

        Unknown tasks yield an empty list.

        Raises:
            ContainerNotFrozenError: If the container is still accumulating.
        """
        return [b.raw_name for b in self.buckets_for(task)]

    def _require_frozen(self) -> None:
        if self._state is not ContainerState.FROZEN:
            msg = f"container {self._index} has not been frozen yet"
            raise ContainerNotFrozenError(msg)
