"""Async fetching of upstream aggregation feeds.

This module fetches the raw payload for one source from the aggregation
endpoint (``GET {base_url}/api/s?id=<source id>``) with bounded retry.

Retry Strategy:
    - Up to ``attempts`` requests per source (default 3)
    - Exponential backoff between attempts: 1s, 2s, 4s, capped at 5s
    - An empty-but-successful response is retried like a failure
    - Retry eligibility is decided by ``is_retryable`` on the classified
      error; non-retryable errors end the loop immediately

Error Handling Strategy:
    - Errors are classified into ``ErrorKind`` values, never re-raised
    - After the last attempt the fetch returns ``FetchFailure`` carrying
      the final error, so one source's failure cannot abort a run
    - ``asyncio.CancelledError`` always propagates
"""

import asyncio
import json
import logging
import ssl
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable

import aiohttp
import certifi

from models.news import NewsSource

logger = logging.getLogger(__name__)

# Browser-like User-Agent to avoid being blocked by some servers
USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/130.0.0.0 Safari/537.36"
)

REQUEST_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "application/json, text/plain, */*",
    "Accept-Language": "zh-CN,zh;q=0.9,en;q=0.8",
    "Cache-Control": "no-cache",
}

DEFAULT_TIMEOUT = 15
DEFAULT_ATTEMPTS = 3
BACKOFF_BASE_MS = 1000
BACKOFF_CAP_MS = 5000


class ErrorKind(str, Enum):
    """Classification of a failed fetch attempt."""

    NETWORK_UNAVAILABLE = "network_unavailable"
    TIMEOUT = "timeout"
    SERVER_ERROR = "server_error"           # HTTP 5xx
    RATE_LIMITED = "rate_limited"           # HTTP 429
    CLIENT_ERROR = "client_error"           # HTTP 4xx other than 429
    MALFORMED_PAYLOAD = "malformed_payload" # Body is not JSON
    EMPTY_PAYLOAD = "empty_payload"         # No usable items
    UNKNOWN = "unknown"


RETRYABLE_KINDS: frozenset[ErrorKind] = frozenset({
    ErrorKind.NETWORK_UNAVAILABLE,
    ErrorKind.TIMEOUT,
    ErrorKind.SERVER_ERROR,
    ErrorKind.RATE_LIMITED,
    ErrorKind.EMPTY_PAYLOAD,
    ErrorKind.UNKNOWN,
})


class FetchError(Exception):
    """A classified fetch failure."""

    def __init__(self, kind: ErrorKind, message: str, status: int | None = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status = status

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


def status_kind(status: int) -> ErrorKind:
    """Map an HTTP error status to an error kind."""
    if status == 429:
        return ErrorKind.RATE_LIMITED
    if 500 <= status < 600:
        return ErrorKind.SERVER_ERROR
    if 400 <= status < 500:
        return ErrorKind.CLIENT_ERROR
    return ErrorKind.UNKNOWN


def classify_error(exc: BaseException) -> FetchError:
    """Convert any exception raised by a fetch attempt into a FetchError.

    Unrecognized exceptions classify as ``UNKNOWN``, which is retryable.
    """
    if isinstance(exc, FetchError):
        return exc
    if isinstance(exc, aiohttp.ClientResponseError):
        return FetchError(status_kind(exc.status), f"HTTP {exc.status}: {exc.message}", exc.status)
    if isinstance(exc, (asyncio.TimeoutError, aiohttp.ServerTimeoutError)):
        return FetchError(ErrorKind.TIMEOUT, "Request timed out")
    if isinstance(exc, (aiohttp.ClientConnectionError, ConnectionError)):
        return FetchError(ErrorKind.NETWORK_UNAVAILABLE, f"{type(exc).__name__}: {exc}")
    if isinstance(exc, (json.JSONDecodeError, aiohttp.ContentTypeError, UnicodeDecodeError)):
        return FetchError(ErrorKind.MALFORMED_PAYLOAD, f"{type(exc).__name__}: {exc}")
    return FetchError(ErrorKind.UNKNOWN, f"{type(exc).__name__}: {exc}")


def is_retryable(error: FetchError) -> bool:
    return error.kind in RETRYABLE_KINDS


def backoff_delay(attempt: int) -> float:
    """Seconds to wait after the given 1-based attempt.

    ``min(1000 * 2^(attempt-1), 5000)`` milliseconds.
    """
    return min(BACKOFF_BASE_MS * 2 ** (attempt - 1), BACKOFF_CAP_MS) / 1000


@dataclass(frozen=True)
class FetchSuccess:
    """Raw items returned by a source, already truncated to its cap."""

    source_id: str
    items: list[dict[str, Any]] = field(default_factory=list)
    attempts: int = 1
    cached: bool = False

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class FetchFailure:
    """Final error for a source after the retry loop ended."""

    source_id: str
    error: FetchError
    attempts: int

    @property
    def ok(self) -> bool:
        return False

    @property
    def items(self) -> list[dict[str, Any]]:
        return []


FetchResult = FetchSuccess | FetchFailure


def _ssl_context() -> ssl.SSLContext:
    return ssl.create_default_context(cafile=certifi.where())


def extract_items(payload: Any, max_items: int) -> list[dict[str, Any]]:
    """Return the ``items`` list of a decoded payload, truncated.

    A missing or non-list ``items`` field yields an empty list.
    """
    if not isinstance(payload, dict):
        return []
    items = payload.get("items")
    if not isinstance(items, list):
        return []
    return items[:max_items]


class SourceFetcher:
    """Fetches raw items for one source with bounded retry.

    The fetcher reuses ``session`` when given (the collector shares one
    pooled session across a run); otherwise each call opens its own.

    Example:
        >>> fetcher = SourceFetcher("http://localhost:5173")
        >>> result = await fetcher.fetch(NewsSource(id="ithome", name="IT之家"))
        >>> result.items if result.ok else result.error
    """

    def __init__(
        self,
        base_url: str,
        attempts: int = DEFAULT_ATTEMPTS,
        timeout: float = DEFAULT_TIMEOUT,
        session: aiohttp.ClientSession | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.base_url = base_url.rstrip("/")
        self.attempts = max(1, attempts)
        self.timeout = timeout
        self.session = session
        self._sleep = sleep

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/api/s"

    @asynccontextmanager
    async def _session_scope(self) -> AsyncIterator[aiohttp.ClientSession]:
        if self.session is not None:
            yield self.session
            return
        async with aiohttp.ClientSession() as session:
            yield session

    async def _request(self, session: aiohttp.ClientSession, source: NewsSource) -> list[dict[str, Any]]:
        """Perform one GET and return the truncated item list.

        Raises:
            FetchError: On HTTP error status or a non-JSON body
            aiohttp.ClientError / asyncio.TimeoutError: On transport failure
        """
        async with session.get(
            self.endpoint,
            params={"id": source.id},
            timeout=aiohttp.ClientTimeout(total=self.timeout),
            headers=REQUEST_HEADERS,
            ssl=_ssl_context(),
        ) as resp:
            if resp.status >= 400:
                raise FetchError(status_kind(resp.status), f"HTTP {resp.status}", status=resp.status)
            try:
                payload = await resp.json(content_type=None)
            except ValueError as e:
                raise FetchError(ErrorKind.MALFORMED_PAYLOAD, f"Invalid JSON body: {e}") from e
        return extract_items(payload, source.max_items)

    async def fetch(self, source: NewsSource) -> FetchResult:
        """Fetch one source, retrying per the module's retry strategy.

        Args:
            source: Source to fetch

        Returns:
            FetchSuccess with raw items, or FetchFailure with the last error
        """
        last_error = FetchError(ErrorKind.UNKNOWN, "No attempt made")
        attempt = 0

        async with self._session_scope() as session:
            for attempt in range(1, self.attempts + 1):
                logger.debug("Fetching source | id=%s attempt=%d/%d", source.id, attempt, self.attempts)
                try:
                    items = await self._request(session, source)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    last_error = classify_error(e)
                else:
                    if items:
                        logger.debug("Source fetched | id=%s items=%d attempt=%d", source.id, len(items), attempt)
                        return FetchSuccess(source_id=source.id, items=items, attempts=attempt)
                    last_error = FetchError(ErrorKind.EMPTY_PAYLOAD, "Empty response from API")

                logger.warning(
                    "Source fetch failed | id=%s attempt=%d/%d error=%s",
                    source.id, attempt, self.attempts, last_error,
                )
                if not is_retryable(last_error):
                    logger.error("Non-retryable error, giving up | id=%s error=%s", source.id, last_error)
                    break
                if attempt < self.attempts:
                    delay = backoff_delay(attempt)
                    logger.debug("Retrying after backoff | id=%s delay=%.1fs", source.id, delay)
                    await self._sleep(delay)

        logger.error("Source fetch exhausted | id=%s attempts=%d error=%s", source.id, attempt, last_error)
        return FetchFailure(source_id=source.id, error=last_error, attempts=attempt)
