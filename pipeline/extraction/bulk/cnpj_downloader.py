"""Receita Federal CNPJ open data bulk downloader.

Fetches the monthly catalog (~37 archives, tens of GB) into a staging
directory. Files whose origin advertises byte ranges are downloaded in
fixed-size windows appended in order, so an interrupted run resumes from
the local file length. Up to ``max_parallel`` files transfer at once.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Iterable, Optional

import httpx
from tqdm import tqdm

from bulk.catalog import CatalogEntry
from bulk.config import DownloadConfig
from bulk.errors import DownloadCancelled, DownloadError, InternalError, ShortReadError
from bulk.fetcher import HttpFetcher, RemoteFile, with_retries

logger = logging.getLogger(__name__)


@dataclass
class DownloadOutcome:
    """Result of one catalog entry's transfer."""

    entry: CatalogEntry
    path: Path
    bytes_written: int = 0
    resumed_from: int = 0
    already_complete: bool = False
    error: Optional[DownloadError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def select_pending(catalog: Iterable[CatalogEntry], config: DownloadConfig) -> list[CatalogEntry]:
    """Catalog entries left after the skip-existing filter, in catalog order."""
    pending = []
    for entry in catalog:
        if config.skip_existing and (config.data_dir / entry.filename).exists():
            logger.info("Skipping existing file: %s", entry.filename)
            continue
        pending.append(entry)
    return pending


def list_pending(catalog: Iterable[CatalogEntry], config: DownloadConfig) -> list[str]:
    """URLs that :meth:`Downloader.download` would transfer."""
    return [entry.url for entry in select_pending(catalog, config)]


class Downloader:
    """Download every pending catalog entry into ``config.data_dir``.

    Args:
        config: Validated download configuration.
        catalog: Entries to consider, usually ``build_catalog(period)``.
        transport: Optional httpx transport (tests pass ``httpx.MockTransport``).
        sleep: Backoff sleep, injectable for tests.
        cancel: Set it to stop after the in-flight window of every transfer.
        progress: Show one tqdm bar per active transfer.
    """

    def __init__(
        self,
        config: DownloadConfig,
        catalog: Iterable[CatalogEntry],
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        cancel: Optional[asyncio.Event] = None,
        progress: bool = True,
    ) -> None:
        self._config = config.validate()
        self._catalog = tuple(catalog)
        self._transport = transport
        self._sleep = sleep
        self._cancel = cancel
        self._progress = progress

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def list_pending(self) -> list[str]:
        return list_pending(self._catalog, self._config)

    async def download(self) -> list[DownloadOutcome]:
        """Transfer all pending entries.

        Every file is attempted even when others fail. Once all transfers
        have settled, the first failure in catalog order is raised.

        Returns:
            One :class:`DownloadOutcome` per pending entry, in catalog order.
        """
        config = self._config
        logger.info("Starting download into %s", config.data_dir)
        config.data_dir.mkdir(parents=True, exist_ok=True)

        pending = select_pending(self._catalog, config)
        if not pending:
            logger.info("No files to download")
            return []
        logger.info("Files to download: %d (max_parallel=%d)", len(pending), config.max_parallel)

        # Each slot number doubles as the tqdm bar position of its transfer
        slots: asyncio.Queue[int] = asyncio.Queue()
        for slot in range(config.max_parallel):
            slots.put_nowait(slot)

        async with HttpFetcher(
            timeout=config.timeout_secs,
            user_agent=config.user_agent,
            transport=self._transport,
        ) as fetcher:
            outcomes = await asyncio.gather(
                *(self._run_slot(fetcher, slots, entry) for entry in pending)
            )

        failures = [o for o in outcomes if not o.ok]
        total_bytes = sum(o.bytes_written for o in outcomes)
        logger.info(
            "Download finished — files=%d ok=%d failed=%d bytes=%d",
            len(outcomes),
            len(outcomes) - len(failures),
            len(failures),
            total_bytes,
        )
        if failures:
            raise failures[0].error
        return list(outcomes)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _run_slot(
        self,
        fetcher: HttpFetcher,
        slots: asyncio.Queue[int],
        entry: CatalogEntry,
    ) -> DownloadOutcome:
        position = await slots.get()
        outcome = DownloadOutcome(entry=entry, path=self._config.data_dir / entry.filename)
        try:
            await self._download_entry(fetcher, outcome, position)
        except DownloadError as exc:
            logger.error("%s failed: %s", entry.filename, exc)
            outcome.error = exc
        except OSError as exc:
            logger.error("%s failed writing to disk: %s", entry.filename, exc)
            outcome.error = DownloadError(entry.url, f"I/O error: {exc}")
        finally:
            slots.put_nowait(position)
        return outcome

    def _check_cancelled(self, url: str) -> None:
        if self._cancel is not None and self._cancel.is_set():
            raise DownloadCancelled(url)

    async def _download_entry(
        self, fetcher: HttpFetcher, outcome: DownloadOutcome, position: int
    ) -> None:
        entry, path, config = outcome.entry, outcome.path, self._config
        self._check_cancelled(entry.url)

        if config.restart and path.exists():
            logger.info("Restart requested, removing partial file %s", path.name)
            path.unlink()

        remote = await with_retries(
            lambda: fetcher.head(entry.url),
            url=entry.url,
            max_retries=config.max_retries,
            sleep=self._sleep,
            label=f"HEAD {entry.filename}",
        )

        bar = tqdm(
            total=remote.content_length,
            desc=entry.filename,
            unit="B",
            unit_scale=True,
            unit_divisor=1024,
            position=position,
            leave=False,
            disable=not self._progress,
        )
        try:
            if remote.supports_range and remote.content_length:
                await self._download_chunked(fetcher, outcome, remote, bar)
            else:
                await self._download_whole(fetcher, outcome, remote, bar)
        finally:
            bar.close()

        logger.info(
            "Downloaded %s (%.1f MB)", entry.filename, path.stat().st_size / (1024 * 1024)
        )

    async def _download_chunked(
        self,
        fetcher: HttpFetcher,
        outcome: DownloadOutcome,
        remote: RemoteFile,
        bar: tqdm,
    ) -> None:
        config, path, url = self._config, outcome.path, outcome.entry.url
        total = remote.content_length
        if total is None:
            raise InternalError(f"{url}: ranged download without a content length")

        offset = path.stat().st_size if path.exists() else 0
        if offset > total:
            logger.warning(
                "%s is larger than the remote file (%d > %d), starting over",
                path.name,
                offset,
                total,
            )
            offset = 0
        if offset == total:
            logger.info("%s already complete (%d bytes)", path.name, total)
            outcome.already_complete = True
            bar.update(total)
            return
        if offset:
            logger.info("Resuming %s at byte %d of %d", path.name, offset, total)
        outcome.resumed_from = offset
        bar.update(offset)

        with path.open("ab" if offset else "wb") as fh:
            while offset < total:
                self._check_cancelled(url)
                end = min(offset + config.chunk_size, total) - 1
                data = await with_retries(
                    lambda start=offset, stop=end: fetcher.get_range(url, start, stop),
                    url=url,
                    max_retries=config.max_retries,
                    sleep=self._sleep,
                    label=f"{path.name} bytes {offset}-{end}",
                )
                fh.write(data)
                offset += len(data)
                outcome.bytes_written += len(data)
                bar.update(len(data))

        actual = path.stat().st_size
        if actual != total:
            raise ShortReadError(url, total, actual)

    async def _download_whole(
        self,
        fetcher: HttpFetcher,
        outcome: DownloadOutcome,
        remote: RemoteFile,
        bar: tqdm,
    ) -> None:
        config, path, url = self._config, outcome.path, outcome.entry.url

        async def attempt() -> int:
            # A failed attempt leaves a partial body behind; always start over
            bar.reset(total=remote.content_length)
            with path.open("wb") as fh:
                return await fetcher.stream_to(url, fh, on_bytes=bar.update)

        outcome.bytes_written = await with_retries(
            attempt,
            url=url,
            max_retries=config.max_retries,
            sleep=self._sleep,
            label=f"GET {path.name}",
        )

        actual = path.stat().st_size
        if remote.content_length is not None and actual != remote.content_length:
            raise ShortReadError(url, remote.content_length, actual)
