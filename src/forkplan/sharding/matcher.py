"""Match discovered test groups to historical timing records."""

from __future__ import annotations

import logging
from bisect import bisect_left
from collections import Counter
from typing import TYPE_CHECKING

from forkplan.sharding.models import Bucket, TaskT, TestGroup, TimingRecord

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

logger = logging.getLogger(__name__)


def match_timings(group: TestGroup[TaskT], records: Iterable[TimingRecord]) -> list[TimingRecord]:
    """Return the records whose name starts with the group's prefix.

    Linear scan; callers must not rely on the order of the result.
    """
    prefix = group.prefix
    return [r for r in records if r.name.startswith(prefix)]


class TimingIndex:
    """Sorted view over timing records for repeated prefix lookups.

    Names sharing a prefix are contiguous once sorted, so each lookup is a
    binary search for the first candidate followed by a scan that stops at
    the first non-matching name.  The input order of *records* is irrelevant.
    """

    def __init__(self, records: Iterable[TimingRecord]) -> None:
        self._records = sorted(records, key=lambda r: r.name)
        self._names = [r.name for r in self._records]

    def __len__(self) -> int:
        return len(self._records)

    def match(self, prefix: str) -> list[TimingRecord]:
        """Return every record whose name starts with *prefix*."""
        matched: list[TimingRecord] = []
        for i in range(bisect_left(self._names, prefix), len(self._names)):
            if not self._names[i].startswith(prefix):
                break
            matched.append(self._records[i])
        return matched


def build_buckets(
    groups: Sequence[TestGroup[TaskT]],
    records: Iterable[TimingRecord],
) -> list[Bucket[TaskT]]:
    """Build one bucket per group, in discovery order.

    A record matched by more than one group (overlapping prefixes such as
    ``Foo*`` and ``FooBar*``) is counted in every such bucket.  That is
    reported as a warning and left as is.
    """
    index = TimingIndex(records)
    buckets: list[Bucket[TaskT]] = []
    hits: Counter[str] = Counter()

    for group in groups:
        matched = index.match(group.prefix)
        hits.update({r.name for r in matched})
        buckets.append(Bucket.from_matches(group, matched))

    shared = sorted(name for name, count in hits.items() if count > 1)
    if shared:
        logger.warning(
            "%d timing record(s) matched more than one test group and are counted "
            "in each bucket (first: %s)",
            len(shared),
            shared[0],
        )

    logger.debug("Built %d buckets from %d timing records", len(buckets), len(index))
    return buckets
