"""Duration-balanced test sharding across parallel forks."""

from forkplan.sharding.allocator import (
    BucketingAllocator,
    PlanNotGeneratedError,
    TestPlan,
    allocate_buckets,
)
from forkplan.sharding.container import (
    ContainerNotFrozenError,
    ContainerState,
    FrozenContainerError,
    WorkerContainer,
)
from forkplan.sharding.matcher import TimingIndex, build_buckets, match_timings
from forkplan.sharding.models import (
    MIN_TEST_DURATION,
    WILDCARD,
    Bucket,
    InvalidTestGroupError,
    PlanningError,
    TestGroup,
    TimingRecord,
    bucket_duration,
)
from forkplan.sharding.plan_file import PlanSnapshot, read_plan, write_plan
from forkplan.sharding.report import WorkerSummary, log_plan_summary, summarize_plan
from forkplan.sharding.sources import (
    CsvTimingProvider,
    FileTestLister,
    StaticTestLister,
    StaticTimingProvider,
    TestLister,
    TimingDataError,
    TimingProvider,
)

__all__ = [
    "MIN_TEST_DURATION",
    "WILDCARD",
    "Bucket",
    "BucketingAllocator",
    "ContainerNotFrozenError",
    "ContainerState",
    "CsvTimingProvider",
    "FileTestLister",
    "FrozenContainerError",
    "InvalidTestGroupError",
    "PlanNotGeneratedError",
    "PlanSnapshot",
    "PlanningError",
    "StaticTestLister",
    "StaticTimingProvider",
    "TestGroup",
    "TestLister",
    "TestPlan",
    "TimingDataError",
    "TimingIndex",
    "TimingProvider",
    "WorkerContainer",
    "WorkerSummary",
    "allocate_buckets",
    "bucket_duration",
    "build_buckets",
    "log_plan_summary",
    "match_timings",
    "read_plan",
    "summarize_plan",
    "write_plan",
]
