"""Stream the downloaded archives through the enricher into a writer sink.

Phase A loads the six lookup tables. Phase B walks the fact datasets in
load order; within a dataset every partition archive is extracted and
parsed by its own worker thread, and enriched batches flow through a
bounded queue to the writer, which runs on the calling thread. The queue
is the only backpressure point: a slow writer blocks the workers.
"""

from __future__ import annotations

import logging
import queue
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Union

from tqdm import tqdm

from bulk.archive import extract_archive
from bulk.catalog import (
    FACT_DATASETS,
    LOOKUP_DATASETS,
    CatalogEntry,
    Dataset,
    build_catalog,
    current_period,
    entries_for,
)
from bulk.config import DEFAULT_MAX_PARALLEL
from bulk.errors import ArchiveCorruptError, ConfigError, RfbError
from models.base import BaseSchema

from processing.errors import (
    LookupLoadError,
    PartitionsFailed,
    RowRejected,
    TransformCancelled,
    TransformError,
)
from processing.loaders.base import WriterSink
from processing.lookups import Lookups, load_lookups
from processing.readers import iter_csv_rows
from processing.transformers.base import DatasetStats, TransformReport
from processing.transformers.cnpj import DatasetSchema, enrich_row, schema_for

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 10_000
DEFAULT_CHANNEL_BATCHES = 8

# How long blocked queue operations wait before re-checking the stop flags
_POLL_SECS = 0.1


@dataclass(frozen=True)
class TransformConfig:
    """Settings for one transform run."""

    data_dir: Path = Path("data")
    staging_dir: Optional[Path] = None
    privacy: bool = False
    max_workers: int = DEFAULT_MAX_PARALLEL
    batch_size: int = DEFAULT_BATCH_SIZE
    channel_batches: int = DEFAULT_CHANNEL_BATCHES

    @property
    def staging(self) -> Path:
        """Where archives are extracted; ``<data_dir>/extracted`` by default."""
        return self.staging_dir or self.data_dir / "extracted"

    def validate(self) -> TransformConfig:
        if self.max_workers < 1:
            raise ConfigError(f"workers must be at least 1, got {self.max_workers}")
        if self.batch_size < 1:
            raise ConfigError(f"batch size must be at least 1, got {self.batch_size}")
        if self.channel_batches < 1:
            raise ConfigError(f"channel capacity must be at least 1, got {self.channel_batches}")
        return self


@dataclass(frozen=True)
class _PartitionDone:
    """End-of-partition marker a worker always puts on the queue."""

    filename: str
    error: Optional[BaseException] = None


_QueueItem = Union[list[BaseSchema], _PartitionDone]


class StreamTransformer:
    """Run the lookup and fact phases against a :class:`WriterSink`.

    Args:
        config: Transform settings.
        writer: Sink receiving every dataset; committed at the end of the run.
        catalog: Entries naming the archives to read; defaults to the
            current period's catalog (only filenames matter here).
        cancel: Set it to stop workers between batches and roll back the
            open dataset.
        progress: Show a tqdm row counter per dataset.
    """

    def __init__(
        self,
        config: TransformConfig,
        writer: WriterSink,
        *,
        catalog: Optional[Sequence[CatalogEntry]] = None,
        cancel: Optional[threading.Event] = None,
        progress: bool = True,
    ) -> None:
        self._config = config.validate()
        self._writer = writer
        self._catalog = tuple(catalog) if catalog is not None else build_catalog(current_period())
        self._cancel = cancel or threading.Event()
        self._progress = progress

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(self) -> TransformReport:
        """Load lookups, stream every fact dataset, then commit the snapshot.

        Raises:
            LookupLoadError: a lookup archive is missing or unreadable.
            WriterError: the sink failed; datasets committed before stay.
            TransformCancelled: the cancel event was set.
            PartitionsFailed: some partition archives could not be read;
                everything else was written and committed.
        """
        report = TransformReport()
        logger.info("Starting transform from %s", self._config.data_dir)

        lookups = self.load_lookups()
        report.lookup_sizes = lookups.sizes()

        for dataset in FACT_DATASETS:
            self._check_cancelled()
            self.transform_dataset(dataset, lookups, report.stats_for(dataset))

        self._writer.commit()
        report.log_summary()
        if report.failed_files:
            raise PartitionsFailed(report.failed_files)
        return report

    def load_lookups(self) -> Lookups:
        """Phase A: extract the six lookup archives and build the code maps."""
        sources: dict[Dataset, list[Path]] = {}
        for dataset in LOOKUP_DATASETS:
            paths: list[Path] = []
            for entry in entries_for(self._catalog, dataset):
                archive = self._config.data_dir / entry.filename
                if not archive.exists():
                    raise LookupLoadError(f"{dataset}: {archive} not found")
                try:
                    paths.extend(extract_archive(archive, self._config.staging / entry.stem))
                except (ArchiveCorruptError, OSError) as exc:
                    raise LookupLoadError(f"{dataset}: {exc}") from exc
            sources[dataset] = paths
        return load_lookups(sources)

    def transform_dataset(self, dataset: Dataset, lookups: Lookups, stats: DatasetStats) -> None:
        """Phase B for one fact dataset, inside one writer transaction."""
        schema = schema_for(dataset)
        entries = self._available_entries(dataset)
        if not entries:
            logger.warning("No archives found for %s, skipping dataset", dataset)
            return

        config = self._config
        channel: queue.Queue[_QueueItem] = queue.Queue(maxsize=config.channel_batches)
        stop = threading.Event()
        workers = min(config.max_workers, len(entries))
        logger.info("Transforming %s: %d archive(s), %d worker(s)", dataset, len(entries), workers)

        self._writer.begin_dataset(dataset)
        bar = tqdm(desc=str(dataset), unit=" rows", unit_scale=True, disable=not self._progress)
        try:
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=f"rfb-{dataset}") as pool:
                try:
                    for entry in entries:
                        pool.submit(self._produce, entry, schema, lookups, channel, stats, stop)
                    self._drain(dataset, channel, len(entries), stats, bar)
                except BaseException:
                    # Unblock the workers before the pool waits for them
                    stop.set()
                    raise
            self._writer.end_dataset(dataset)
        except BaseException:
            self._writer.abort()
            raise
        finally:
            bar.close()

        logger.info(
            "%s done — read=%d written=%d rejected=%d",
            dataset,
            stats.read,
            stats.written,
            stats.rejected,
        )

    # ------------------------------------------------------------------
    # Consumer (calling thread)
    # ------------------------------------------------------------------

    def _drain(
        self,
        dataset: Dataset,
        channel: queue.Queue[_QueueItem],
        partitions: int,
        stats: DatasetStats,
        bar: tqdm,
    ) -> None:
        remaining = partitions
        while remaining:
            self._check_cancelled()
            try:
                item = channel.get(timeout=_POLL_SECS)
            except queue.Empty:
                continue
            if isinstance(item, _PartitionDone):
                if item.error is not None:
                    logger.error("%s: %s failed, continuing without it: %s", dataset, item.filename, item.error)
                    stats.fail(item.filename)
                remaining -= 1
                continue
            result = self._writer.write_batch(dataset, item)
            stats.add(written=result.written, rejected=result.failed)
            bar.update(len(item))

    # ------------------------------------------------------------------
    # Producers (worker threads)
    # ------------------------------------------------------------------

    def _produce(
        self,
        entry: CatalogEntry,
        schema: DatasetSchema,
        lookups: Lookups,
        channel: queue.Queue[_QueueItem],
        stats: DatasetStats,
        stop: threading.Event,
    ) -> None:
        error: Optional[BaseException] = None
        try:
            self._produce_partition(entry, schema, lookups, channel, stats, stop)
        except RfbError as exc:
            error = exc
        except Exception as exc:
            error = TransformError(f"{entry.filename}: {exc}")
            error.__cause__ = exc
        self._put(channel, _PartitionDone(entry.filename, error), stop)

    def _produce_partition(
        self,
        entry: CatalogEntry,
        schema: DatasetSchema,
        lookups: Lookups,
        channel: queue.Queue[_QueueItem],
        stats: DatasetStats,
        stop: threading.Event,
    ) -> None:
        config = self._config
        csv_paths = extract_archive(config.data_dir / entry.filename, config.staging / entry.stem)

        batch: list[BaseSchema] = []
        read = rejected = 0

        def on_csv_error(exc: Exception) -> None:
            nonlocal read, rejected
            read += 1
            rejected += 1
            logger.debug("%s: unparseable line: %s", entry.filename, exc)

        for path in csv_paths:
            for row in iter_csv_rows(path, on_error=on_csv_error):
                read += 1
                try:
                    batch.append(enrich_row(row, schema, lookups, config.privacy))
                except RowRejected as exc:
                    rejected += 1
                    logger.debug("%s: row rejected: %s", entry.filename, exc.reason)
                if len(batch) >= config.batch_size:
                    stats.add(read=read, rejected=rejected)
                    read = rejected = 0
                    if not self._put(channel, batch, stop):
                        return
                    batch = []

        stats.add(read=read, rejected=rejected, files=1)
        if batch:
            self._put(channel, batch, stop)
        logger.debug("%s: all rows queued", entry.filename)

    def _put(self, channel: queue.Queue[_QueueItem], item: _QueueItem, stop: threading.Event) -> bool:
        """Blocking put that gives up once the run is stopping."""
        while not (stop.is_set() or self._cancel.is_set()):
            try:
                channel.put(item, timeout=_POLL_SECS)
                return True
            except queue.Full:
                continue
        return False

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _available_entries(self, dataset: Dataset) -> list[CatalogEntry]:
        available = []
        for entry in entries_for(self._catalog, dataset):
            if (self._config.data_dir / entry.filename).exists():
                available.append(entry)
            else:
                logger.warning("Archive %s not found in %s, skipping", entry.filename, self._config.data_dir)
        return available

    def _check_cancelled(self) -> None:
        if self._cancel.is_set():
            raise TransformCancelled("transform cancelled")
