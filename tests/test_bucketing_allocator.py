"""Tests for forkplan.sharding.allocator."""

from __future__ import annotations

import itertools
import random
from collections import Counter
from unittest.mock import MagicMock

import pytest

from forkplan.sharding.allocator import (
    BucketingAllocator,
    PlanNotGeneratedError,
    TestPlan,
    allocate_buckets,
)
from forkplan.sharding.container import ContainerState, WorkerContainer
from forkplan.sharding.models import (
    Bucket,
    InvalidTestGroupError,
    PlanningError,
    TestGroup,
    TimingRecord,
)
from forkplan.sharding.sources import StaticTestLister, StaticTimingProvider

# ── Helpers ─────────────────────────────────────────────────────


def _bucket(name: str, duration: float, task: str = "unit") -> Bucket[str]:
    return Bucket.from_matches(TestGroup(name, task), [TimingRecord(name[:-1], duration)])


def _containers(n: int) -> list[WorkerContainer[str]]:
    return [WorkerContainer(i) for i in range(n)]


def _worked_example() -> BucketingAllocator[str]:
    provider = StaticTimingProvider([("A1", 5.0), ("A2", 30.0), ("B1", 100.0)])
    allocator: BucketingAllocator[str] = BucketingAllocator(2, provider)
    allocator.register_source(StaticTestLister(["A*", "B*", "C*"]), "unit")
    return allocator


def _optimal_makespan(durations: list[float], forks: int) -> float:
    best = float("inf")
    for assignment in itertools.product(range(forks), repeat=len(durations)):
        loads = [0.0] * forks
        for duration, fork in zip(durations, assignment, strict=True):
            loads[fork] += duration
        best = min(best, max(loads))
    return best


# ── allocate_buckets ────────────────────────────────────────────


class TestAllocateBuckets:
    def test_largest_first_to_least_loaded(self) -> None:
        containers = _containers(2)
        allocate_buckets(
            [_bucket("A*", 40.0), _bucket("B*", 100.0), _bucket("C*", 10.0)], containers
        )
        assert [b.raw_name for b in containers[0].buckets] == ["B*"]
        assert [b.raw_name for b in containers[1].buckets] == ["A*", "C*"]
        assert [c.running_duration for c in containers] == [100.0, 50.0]

    def test_ties_go_to_lowest_index(self) -> None:
        containers = _containers(3)
        allocate_buckets([_bucket("A*", 20.0)], containers)
        assert containers[0].bucket_count == 1
        assert containers[1].bucket_count == 0

    def test_equal_durations_keep_discovery_order(self) -> None:
        containers = _containers(2)
        buckets = [_bucket(f"G{i}*", 10.0) for i in range(5)]
        allocate_buckets(buckets, containers)
        assert [b.raw_name for b in containers[0].buckets] == ["G0*", "G2*", "G4*"]
        assert [b.raw_name for b in containers[1].buckets] == ["G1*", "G3*"]

    def test_more_forks_than_buckets(self) -> None:
        containers = _containers(4)
        allocate_buckets([_bucket("A*", 30.0), _bucket("B*", 20.0)], containers)
        assert [c.bucket_count for c in containers] == [1, 1, 0, 0]

    def test_requires_containers(self) -> None:
        with pytest.raises(ValueError, match="at least one container"):
            allocate_buckets([_bucket("A*", 10.0)], [])

    @pytest.mark.parametrize("seed", range(12))
    def test_makespan_within_lpt_bound(self, seed: int) -> None:
        rng = random.Random(seed)
        forks = rng.randint(2, 3)
        durations = [float(rng.randint(10, 120)) for _ in range(rng.randint(forks, 7))]
        containers = _containers(forks)
        allocate_buckets([_bucket(f"G{i}*", d) for i, d in enumerate(durations)], containers)

        makespan = max(c.running_duration for c in containers)
        bound = (4 / 3 - 1 / (3 * forks)) * _optimal_makespan(durations, forks)
        assert makespan <= bound + 1e-9


# ── TestPlan ────────────────────────────────────────────────────


class TestTestPlan:
    def test_rejects_unfrozen_containers(self) -> None:
        with pytest.raises(PlanningError, match="must be frozen"):
            TestPlan(_containers(2))

    def test_accessors(self) -> None:
        plan = _worked_example().generate()
        assert plan.fork_count == 2
        assert plan.durations == [100.0, 50.0]
        assert plan.makespan == 100.0
        assert plan.tasks == ["unit"]
        assert plan.worker(1).index == 1
        assert len(plan.workers) == 2

    def test_worker_index_out_of_range(self) -> None:
        plan = _worked_example().generate()
        with pytest.raises(ValueError, match=r"worker_index must be in \[0, 2\)"):
            plan.tests_for(2, "unit")
        with pytest.raises(ValueError, match="worker_index must be in"):
            plan.worker(-1)


# ── BucketingAllocator ──────────────────────────────────────────


class TestBucketingAllocator:
    @pytest.mark.parametrize("forks", [0, -3])
    def test_invalid_fork_count(self, forks: int) -> None:
        with pytest.raises(ValueError, match="fork_count must be >= 1"):
            BucketingAllocator(forks, StaticTimingProvider())

    def test_containers_exist_before_generate(self) -> None:
        allocator: BucketingAllocator[str] = BucketingAllocator(3, StaticTimingProvider())
        assert allocator.fork_count == 3
        assert [c.index for c in allocator.containers] == [0, 1, 2]
        assert all(c.state is ContainerState.ACCUMULATING for c in allocator.containers)

    def test_worked_example(self) -> None:
        allocator = _worked_example()
        allocator.generate()
        assert allocator.query_tests(0, "unit") == ["B*"]
        assert allocator.query_tests(1, "unit") == ["A*", "C*"]
        assert [c.running_duration for c in allocator.containers] == [100.0, 50.0]
        assert all(c.is_frozen for c in allocator.containers)

    def test_query_before_generate(self) -> None:
        allocator = _worked_example()
        with pytest.raises(PlanNotGeneratedError, match="call generate"):
            allocator.query_tests(0, "unit")
        with pytest.raises(PlanNotGeneratedError):
            _ = allocator.plan

    def test_query_unknown_worker_index(self) -> None:
        allocator = _worked_example()
        allocator.generate()
        with pytest.raises(ValueError, match="worker_index must be in"):
            allocator.query_tests(5, "unit")

    def test_query_unknown_task_returns_empty(self) -> None:
        allocator = _worked_example()
        allocator.generate()
        assert allocator.query_tests(0, "integration") == []

    def test_repeated_query_is_stable(self) -> None:
        allocator = _worked_example()
        allocator.generate()
        first = allocator.query_tests(1, "unit")
        assert allocator.query_tests(1, "unit") == first
        assert allocator.query_tests(1, "unit") == first

    def test_partition_across_tasks(self) -> None:
        rng = random.Random(7)
        history = [
            (f"pkg{i}.Test{j}", float(rng.randint(0, 90))) for i in range(20) for j in range(3)
        ]
        allocator: BucketingAllocator[str] = BucketingAllocator(4, StaticTimingProvider(history))
        unit = [f"pkg{i}.*" for i in range(0, 12)]
        integration = [f"pkg{i}.*" for i in range(12, 20)] + ["missing.*"]
        allocator.register_source(StaticTestLister(unit), "unit")
        allocator.register_source(StaticTestLister(integration), "integration")
        allocator.generate()

        for task, expected in (("unit", unit), ("integration", integration)):
            planned = [name for w in range(4) for name in allocator.query_tests(w, task)]
            assert Counter(planned) == Counter(expected)

    def test_same_task_registered_twice(self) -> None:
        allocator: BucketingAllocator[str] = BucketingAllocator(2, StaticTimingProvider())
        allocator.register_source(StaticTestLister(["A*"]), "unit")
        allocator.register_source(StaticTestLister(["B*"]), "unit")
        allocator.generate()
        planned = allocator.query_tests(0, "unit") + allocator.query_tests(1, "unit")
        assert sorted(planned) == ["A*", "B*"]

    def test_no_sources_gives_empty_plan(self) -> None:
        allocator: BucketingAllocator[str] = BucketingAllocator(2, StaticTimingProvider())
        plan = allocator.generate()
        assert plan.durations == [0.0, 0.0]
        assert allocator.query_tests(1, "unit") == []

    def test_collaborators_called_once_per_generate(self) -> None:
        provider = MagicMock()
        provider.get_timings.return_value = [TimingRecord("A1", 20.0)]
        lister_a = MagicMock()
        lister_a.list_tests.return_value = ["A*"]
        lister_b = MagicMock()
        lister_b.list_tests.return_value = ["B*"]

        allocator: BucketingAllocator[str] = BucketingAllocator(2, provider)
        allocator.register_source(lister_a, "unit")
        allocator.register_source(lister_b, "integration")
        allocator.generate()

        provider.get_timings.assert_called_once_with()
        lister_a.list_tests.assert_called_once_with()
        lister_b.list_tests.assert_called_once_with()

    def test_deterministic(self) -> None:
        def build() -> BucketingAllocator[str]:
            history = [(f"T{i}", float((i * 37) % 50)) for i in range(40)]
            provider = StaticTimingProvider(history)
            allocator: BucketingAllocator[str] = BucketingAllocator(3, provider)
            allocator.register_source(StaticTestLister([f"T{i}*" for i in range(40)]), "unit")
            return allocator

        plans = []
        for _ in range(3):
            allocator = build()
            allocator.generate()
            plans.append([allocator.query_tests(w, "unit") for w in range(3)])
        assert plans[0] == plans[1] == plans[2]

    def test_regenerate_produces_independent_plan(self) -> None:
        allocator = _worked_example()
        first = allocator.generate()
        second = allocator.generate()

        assert second is not first
        assert allocator.plan is second
        assert second.durations == first.durations == [100.0, 50.0]
        assert allocator.query_tests(1, "unit") == ["A*", "C*"]
        assert first.tests_for(1, "unit") == ["A*", "C*"]

    def test_timing_provider_failure_publishes_nothing(self) -> None:
        provider = MagicMock()
        provider.get_timings.side_effect = OSError("history unavailable")
        allocator: BucketingAllocator[str] = BucketingAllocator(2, provider)
        allocator.register_source(StaticTestLister(["A*"]), "unit")

        with pytest.raises(OSError, match="history unavailable"):
            allocator.generate()
        with pytest.raises(PlanNotGeneratedError):
            allocator.query_tests(0, "unit")
        assert all(c.bucket_count == 0 for c in allocator.containers)

    def test_discovery_failure_keeps_previous_plan(self) -> None:
        lister = MagicMock()
        lister.list_tests.side_effect = [["A*", "B*"], RuntimeError("classpath scan failed")]
        allocator: BucketingAllocator[str] = BucketingAllocator(2, StaticTimingProvider())
        allocator.register_source(lister, "unit")

        plan = allocator.generate()
        with pytest.raises(RuntimeError, match="classpath scan failed"):
            allocator.generate()

        assert allocator.plan is plan
        assert allocator.query_tests(0, "unit") == ["A*"]
        assert allocator.query_tests(1, "unit") == ["B*"]

    def test_group_without_wildcard_aborts_generation(self) -> None:
        allocator: BucketingAllocator[str] = BucketingAllocator(2, StaticTimingProvider())
        allocator.register_source(StaticTestLister(["A*", "BrokenTest"]), "unit")
        with pytest.raises(InvalidTestGroupError, match="BrokenTest"):
            allocator.generate()
        with pytest.raises(PlanNotGeneratedError):
            allocator.query_tests(0, "unit")
