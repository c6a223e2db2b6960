"""HTTP fetcher — HEAD / ranged GET / streamed GET against the CNPJ origin.

Every httpx failure is translated here into the download error hierarchy so
the downloader only has to decide between "retry" (:class:`NetworkError`)
and "give up" (everything else).
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import IO, AsyncIterator, Awaitable, Callable, Optional, TypeVar

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from bulk.config import DEFAULT_TIMEOUT_SECS, USER_AGENT
from bulk.errors import (
    DownloadError,
    MaxRetriesExceededError,
    NetworkError,
    PermanentHTTPError,
)

logger = logging.getLogger(__name__)

PERMANENT_STATUSES = frozenset({400, 401, 403, 404, 410})
MAX_REDIRECTS = 10
MAX_BACKOFF_SECS = 32
STREAM_CHUNK = 64 * 1024

T = TypeVar("T")


@dataclass(frozen=True)
class RemoteFile:
    """What a HEAD request told us about a remote artifact."""

    url: str
    content_length: Optional[int]
    supports_range: bool


def _log_retry(label: str, max_retries: int) -> Callable[[RetryCallState], None]:
    def log(state: RetryCallState) -> None:
        delay = state.next_action.sleep if state.next_action else 0
        logger.warning(
            "Retry %d/%d for %s in %ds: %s",
            state.attempt_number,
            max_retries,
            label,
            delay,
            state.outcome.exception() if state.outcome else None,
        )

    return log


async def with_retries(
    operation: Callable[[], Awaitable[T]],
    *,
    url: str,
    max_retries: int,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    label: str = "request",
) -> T:
    """Run *operation* until it succeeds or *max_retries* attempts have failed.

    Waits ``2^attempt`` seconds between attempts, capped at 32. Only
    :class:`NetworkError` is retried; any other error propagates untouched
    on the first occurrence.

    Raises:
        MaxRetriesExceededError: after the last failed attempt.
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_retries),
        wait=wait_exponential(multiplier=2, exp_base=2, max=MAX_BACKOFF_SECS),
        retry=retry_if_exception_type(NetworkError),
        sleep=sleep,
        before_sleep=_log_retry(label, max_retries),
    )
    try:
        return await retrying(operation)
    except RetryError as exc:
        last = exc.last_attempt
        error = last.exception()
        raise MaxRetriesExceededError(url, last.attempt_number, error) from error


def _parse_content_length(response: httpx.Response) -> Optional[int]:
    raw = response.headers.get("content-length")
    if raw is None:
        return None
    try:
        value = int(raw)
    except ValueError:
        return None
    return value if value > 0 else None


class HttpFetcher:
    """Thin async client for the CNPJ origin.

    Use as an async context manager so the underlying connection pool is
    closed::

        async with HttpFetcher(timeout=300) as fetcher:
            remote = await fetcher.head(url)
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT_SECS,
        user_agent: str = USER_AGENT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            headers={"User-Agent": user_agent},
            follow_redirects=True,
            max_redirects=MAX_REDIRECTS,
            transport=transport,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def head(self, url: str) -> RemoteFile:
        async with self._translate_errors(url):
            response = await self._client.head(url)
        self._raise_for_status(url, response)
        supports_range = response.headers.get("accept-ranges", "").strip().lower() == "bytes"
        return RemoteFile(
            url=url,
            content_length=_parse_content_length(response),
            supports_range=supports_range,
        )

    async def get_range(self, url: str, start: int, end: int) -> bytes:
        """Fetch the inclusive byte window ``[start, end]``.

        A body whose length differs from the window is a transient failure:
        the origin either cut the connection or ignored the Range header.
        """
        async with self._translate_errors(url):
            response = await self._client.get(url, headers={"Range": f"bytes={start}-{end}"})
        self._raise_for_status(url, response)
        body = response.content
        expected = end - start + 1
        if len(body) != expected:
            raise NetworkError(
                url,
                f"range {start}-{end} returned {len(body)} bytes, expected {expected}",
                response.status_code,
            )
        return body

    async def stream_to(
        self,
        url: str,
        fh: IO[bytes],
        on_bytes: Optional[Callable[[int], None]] = None,
    ) -> int:
        """Stream the whole body of *url* into *fh*. Returns bytes written."""
        total = 0
        async with self._translate_errors(url):
            async with self._client.stream("GET", url) as response:
                self._raise_for_status(url, response)
                async for chunk in response.aiter_bytes(chunk_size=STREAM_CHUNK):
                    fh.write(chunk)
                    total += len(chunk)
                    if on_bytes is not None:
                        on_bytes(len(chunk))
        return total

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Context manager support
    # ------------------------------------------------------------------

    async def __aenter__(self) -> HttpFetcher:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _raise_for_status(url: str, response: httpx.Response) -> None:
        if response.status_code in PERMANENT_STATUSES:
            raise PermanentHTTPError(url, response.status_code)
        if not response.is_success:
            raise NetworkError(url, f"HTTP {response.status_code}", response.status_code)

    @staticmethod
    @asynccontextmanager
    async def _translate_errors(url: str) -> AsyncIterator[None]:
        try:
            yield
        except httpx.TooManyRedirects as exc:
            raise DownloadError(url, f"more than {MAX_REDIRECTS} redirects") from exc
        except httpx.TimeoutException as exc:
            raise NetworkError(url, f"timeout ({exc.__class__.__name__})") from exc
        except httpx.RequestError as exc:
            raise NetworkError(url, f"{exc.__class__.__name__}: {exc}") from exc
