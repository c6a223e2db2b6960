"""Per-dataset counters and the end-of-run transform report."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class DatasetStats:
    """Row counters for one fact dataset.

    ``read`` counts every raw row handed to the enricher, so a finished
    dataset always satisfies ``read == written + rejected``. Partitions that
    could not be read at all are listed in ``failed_files``.
    """

    dataset: str
    read: int = 0
    rejected: int = 0
    written: int = 0
    files: int = 0
    failed_files: list[str] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def add(self, *, read: int = 0, rejected: int = 0, written: int = 0, files: int = 0) -> None:
        with self._lock:
            self.read += read
            self.rejected += rejected
            self.written += written
            self.files += files

    def fail(self, filename: str) -> None:
        with self._lock:
            self.failed_files.append(filename)

    @property
    def balanced(self) -> bool:
        return self.read == self.written + self.rejected

    def as_dict(self) -> dict[str, int]:
        return {
            "read": self.read,
            "rejected": self.rejected,
            "written": self.written,
            "files": self.files,
            "failed": len(self.failed_files),
        }


@dataclass
class TransformReport:
    """Holds the stats of every dataset processed in one run, in load order."""

    datasets: dict[str, DatasetStats] = field(default_factory=dict)
    lookup_sizes: dict[str, int] = field(default_factory=dict)

    def stats_for(self, dataset: str) -> DatasetStats:
        return self.datasets.setdefault(dataset, DatasetStats(dataset=dataset))

    @property
    def failed_files(self) -> list[str]:
        return [name for s in self.datasets.values() for name in s.failed_files]

    @property
    def total_read(self) -> int:
        return sum(s.read for s in self.datasets.values())

    @property
    def total_rejected(self) -> int:
        return sum(s.rejected for s in self.datasets.values())

    @property
    def total_written(self) -> int:
        return sum(s.written for s in self.datasets.values())

    def log_summary(self) -> None:
        for stats in self.datasets.values():
            logger.info(
                "%s: files=%d failed=%d read=%d written=%d rejected=%d",
                stats.dataset,
                stats.files,
                len(stats.failed_files),
                stats.read,
                stats.written,
                stats.rejected,
            )
        logger.info(
            "Transform finished — read=%d written=%d rejected=%d",
            self.total_read,
            self.total_written,
            self.total_rejected,
        )
