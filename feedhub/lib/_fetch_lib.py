"""
Retry and fetch primitives shared by every upstream call.

Design Pattern: Decorator-style retry wrapper around an async operation
Algorithm: Capped exponential backoff with multiplicative jitter, per-attempt deadline
Big O: O(max_retries) attempts per call
"""

from __future__ import annotations

import asyncio
import hashlib
import random
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Optional, TypeVar
from urllib.parse import urlsplit

import requests

T = TypeVar("T")

DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "application/json,text/html,text/plain,*/*",
}


def sha256_hex(data: bytes) -> str:
    h = hashlib.sha256()
    h.update(data)
    return h.hexdigest()


class FetchError(RuntimeError):
    """Network or upstream failure. ``retryable`` tells callers whether trying again can help."""

    def __init__(self, message: str, *, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable


class FetchTimeoutError(FetchError):
    def __init__(self, timeout_seconds: float, url: Optional[str] = None):
        where = f" for {url}" if url else ""
        super().__init__(f"Attempt timed out after {timeout_seconds:.1f}s{where}", retryable=True)
        self.timeout_seconds = timeout_seconds


class UpstreamServiceError(FetchError):
    def __init__(
        self,
        status: int,
        upstream: str,
        message: Optional[str] = None,
        *,
        retryable: Optional[bool] = None,
    ):
        if retryable is None:
            retryable = status >= 500 or status == 429
        super().__init__(message or f"{upstream} returned HTTP {status}", retryable=retryable)
        self.status = status
        self.upstream = upstream


@dataclass(frozen=True)
class RetryOptions:
    max_retries: int = 3
    initial_delay_seconds: float = 1.0
    max_delay_seconds: float = 10.0
    backoff_multiplier: float = 2.0
    timeout_seconds: float = 10.0
    jitter: bool = True
    # None means every error is retryable
    is_retryable: Optional[Callable[[BaseException], bool]] = None
    on_retry: Optional[Callable[[int, BaseException, float], None]] = None

    def merged(self, **overrides: Any) -> RetryOptions:
        return replace(self, **overrides)


RETRY_CONFIGS: dict[str, RetryOptions] = {
    # Government / open-data APIs
    "stable_api": RetryOptions(
        max_retries=2, initial_delay_seconds=0.5, max_delay_seconds=2.0, timeout_seconds=8.0
    ),
    # HTML and compressed-feed scrapers
    "scraper": RetryOptions(
        max_retries=3, initial_delay_seconds=1.0, max_delay_seconds=5.0, timeout_seconds=15.0
    ),
    # ICS feeds
    "calendar": RetryOptions(
        max_retries=2, initial_delay_seconds=0.5, max_delay_seconds=3.0, timeout_seconds=10.0
    ),
    "critical": RetryOptions(
        max_retries=4, initial_delay_seconds=0.5, max_delay_seconds=8.0, timeout_seconds=20.0
    ),
}


def calculate_delay(
    attempt: int, options: RetryOptions, rand: Callable[[], float] = random.random
) -> float:
    """Delay before the retry that follows ``attempt`` (0-based). Jitter only ever adds."""
    delay = min(
        options.max_delay_seconds,
        options.initial_delay_seconds * (options.backoff_multiplier ** attempt),
    )
    if options.jitter:
        delay *= 1 + rand() * 0.25
    return delay


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    options: Optional[RetryOptions] = None,
    *,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """
    Run ``operation`` up to ``max_retries + 1`` times.

    Each attempt is bounded by ``timeout_seconds``. The error from the final
    attempt is raised once attempts run out or ``is_retryable`` says no.
    """
    options = options or RetryOptions()
    is_retryable = options.is_retryable or (lambda error: True)
    last_error: Optional[BaseException] = None

    for attempt in range(options.max_retries + 1):
        try:
            return await asyncio.wait_for(operation(), timeout=options.timeout_seconds)
        except asyncio.TimeoutError as exc:
            last_error = FetchTimeoutError(options.timeout_seconds)
            last_error.__cause__ = exc
        except Exception as exc:
            last_error = exc

        if attempt >= options.max_retries or not is_retryable(last_error):
            raise last_error

        delay = calculate_delay(attempt, options)
        if options.on_retry is not None:
            options.on_retry(attempt + 1, last_error, delay)
        await sleep(delay)

    # Loop always returns or raises; kept for type checkers.
    raise last_error  # type: ignore[misc]


def is_retryable_error(error: BaseException) -> bool:
    """Default classification: connection, timeout and reset failures plus retryable FetchErrors."""
    if isinstance(error, FetchError):
        return error.retryable
    if isinstance(error, (requests.ConnectionError, requests.Timeout, asyncio.TimeoutError)):
        return True
    return False


async def fetch_with_retry(
    url: str,
    *,
    method: str = "GET",
    headers: Optional[dict[str, str]] = None,
    params: Optional[dict[str, Any]] = None,
    retry: Optional[RetryOptions] = None,
    session: Optional[requests.Session] = None,
    upstream: Optional[str] = None,
) -> requests.Response:
    """
    HTTP request through with_retry.

    5xx responses become a retryable UpstreamServiceError inside the attempt.
    2xx and 4xx responses are returned to the caller untouched.
    """
    options = retry or RetryOptions()
    if options.is_retryable is None:
        options = options.merged(is_retryable=is_retryable_error)

    hdrs = dict(DEFAULT_HEADERS)
    if headers:
        hdrs.update(headers)
    http = session if session is not None else requests
    label = upstream or urlsplit(url).netloc

    async def _attempt() -> requests.Response:
        # requests' own timeout bounds the worker thread once wait_for gives up on it
        response = await asyncio.to_thread(
            http.request,
            method,
            url,
            headers=hdrs,
            params=params,
            timeout=options.timeout_seconds,
        )
        if response.status_code >= 500:
            raise UpstreamServiceError(response.status_code, label)
        return response

    return await with_retry(_attempt, options)


def raise_for_upstream(response: requests.Response, upstream: str) -> requests.Response:
    if not 200 <= response.status_code < 300:
        raise UpstreamServiceError(response.status_code, upstream)
    return response


def parse_json_response(response: requests.Response, upstream: str) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise FetchError(f"{upstream} returned invalid JSON", retryable=False) from exc


def response_text(response: requests.Response) -> str:
    """
    Body as text. Without an explicit charset, requests falls back to
    ISO-8859-1 for text/* types; the feeds we read are UTF-8.
    """
    content_type = response.headers.get("Content-Type", "")
    if "charset=" in content_type.lower():
        return response.text
    return response.content.decode("utf-8", errors="replace")
