"""Discovery and timing-history collaborators.

The allocator only depends on the two protocols below.  The concrete
classes are small reference implementations used by the CLI: test groups
listed in text files and timings loaded from a CSV export of a previous run.
"""

from __future__ import annotations

import csv
import logging
from typing import TYPE_CHECKING, Protocol

from forkplan.sharding.models import PlanningError, TimingRecord

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_NAME_COLUMN = "Test Name"
DEFAULT_DURATION_COLUMN = "Duration"


class TimingDataError(PlanningError):
    """Raised when the timing history contains an unusable row."""


# ── Protocols ─────────────────────────────────────────────────────


class TestLister(Protocol):
    """Lists the test groups discovered for one task."""

    def list_tests(self) -> Sequence[str]:
        """Return wildcard-suffixed group names in discovery order."""
        ...


class TimingProvider(Protocol):
    """Supplies historical per-test durations."""

    def get_timings(self) -> Iterable[TimingRecord]:
        """Return every known timing record; order is irrelevant."""
        ...


# ── Discovery ─────────────────────────────────────────────────────


class StaticTestLister:
    """Lister over a fixed list of group names."""

    def __init__(self, names: Iterable[str]) -> None:
        self._names = list(names)

    def list_tests(self) -> list[str]:
        return list(self._names)


class FileTestLister:
    """Lister reading one group name per line from a text file.

    Blank lines and lines starting with ``#`` are skipped.  A missing file
    is a discovery failure and raises ``FileNotFoundError``.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def list_tests(self) -> list[str]:
        names: list[str] = []
        for line in self.path.read_text(encoding="utf-8").splitlines():
            stripped = line.strip()
            if stripped and not stripped.startswith("#"):
                names.append(stripped)
        logger.debug("Discovered %d test groups in %s", len(names), self.path)
        return names


# ── Timing history ────────────────────────────────────────────────


class StaticTimingProvider:
    """Provider over in-memory ``(name, duration)`` pairs."""

    def __init__(self, pairs: Iterable[tuple[str, float]] = ()) -> None:
        self._records = [TimingRecord(name=name, duration=float(d)) for name, d in pairs]

    def get_timings(self) -> list[TimingRecord]:
        return list(self._records)


class CsvTimingProvider:
    """Provider reading a CSV file with a header row.

    A missing file means there is no history yet and yields no records.

    Args:
        path: CSV file exported from a previous run.
        name_column: Header of the test name column.
        duration_column: Header of the duration column (seconds).
    """

    def __init__(
        self,
        path: Path,
        *,
        name_column: str = DEFAULT_NAME_COLUMN,
        duration_column: str = DEFAULT_DURATION_COLUMN,
    ) -> None:
        self.path = path
        self.name_column = name_column
        self.duration_column = duration_column

    def get_timings(self) -> list[TimingRecord]:
        """Parse the CSV file.

        Raises:
            TimingDataError: If the file is not UTF-8 CSV, a column is
                missing or a duration is not a finite non-negative number.
        """
        if not self.path.is_file():
            logger.info("No timing history at %s, every group gets the minimum estimate", self.path)
            return []

        try:
            records = self._read_records()
        except (UnicodeDecodeError, csv.Error) as exc:
            msg = f"{self.path}: unreadable timing history: {exc}"
            raise TimingDataError(msg) from exc

        logger.info("Loaded %d timing records from %s", len(records), self.path)
        return records

    def _read_records(self) -> list[TimingRecord]:
        records: list[TimingRecord] = []
        with self.path.open(encoding="utf-8", newline="") as fh:
            reader = csv.DictReader(fh)
            header = reader.fieldnames
            if header is None:
                logger.info("Timing history %s is empty", self.path)
                return []
            missing = [c for c in (self.name_column, self.duration_column) if c not in header]
            if missing:
                msg = f"{self.path}: missing column(s) {', '.join(missing)}"
                raise TimingDataError(msg)

            for row in reader:
                name = (row.get(self.name_column) or "").strip()
                if not name:
                    continue
                raw = (row.get(self.duration_column) or "").strip()
                try:
                    records.append(TimingRecord(name=name, duration=float(raw)))
                except ValueError as exc:
                    msg = f"{self.path}:{reader.line_num}: invalid duration {raw!r} for {name!r}"
                    raise TimingDataError(msg) from exc
        return records
