"""
Utility functions for endpoints: response envelope, error mapping and
abuse-tracking glue.

Design Pattern: Utility Module Pattern
Algorithm: Helper functions for common operations
Big O: O(1) for most operations
"""

from datetime import datetime, timezone
from typing import Any, Optional

import requests
from fastapi import Request
from fastapi.responses import JSONResponse

from feedhub.lib._fetch_lib import FetchError, UpstreamServiceError
from feedhub.lib._geo_lib import ValidationError

from ..abuse_monitor import AbuseDecision, RequestIdentity
from ..constants import API_VERSION
from ..data_sources.calendars import UnknownCalendarError
from ..logging_config import get_logger
from ..state import Services

logger = get_logger(__name__)

STALE_SUFFIX = " (cached)"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def build_meta(*, cached: bool = False, stale: bool = False, source: Optional[str] = None) -> dict[str, Any]:
    return {
        "version": API_VERSION,
        "timestamp": utc_now_iso(),
        "cached": cached,
        "stale": stale,
        "source": source,
    }


def cache_control(ttl: Optional[int]) -> dict[str, str]:
    if not ttl:
        return {}
    return {"Cache-Control": f"s-maxage={ttl}, stale-while-revalidate={ttl * 2}"}


def success_response(
    data: Any,
    *,
    cached: bool = False,
    stale: bool = False,
    source: Optional[str] = None,
    ttl: Optional[int] = None,
    headers: Optional[dict[str, str]] = None,
    status_code: int = 200,
    success: bool = True,
) -> JSONResponse:
    all_headers = cache_control(ttl)
    if headers:
        all_headers.update(headers)
    return JSONResponse(
        status_code=status_code,
        content={
            "success": success,
            "data": data,
            "meta": build_meta(cached=cached, stale=stale, source=source),
        },
        headers=all_headers,
    )


def error_response(
    status_code: int,
    code: str,
    message: str,
    *,
    retryable: bool = False,
    details: Optional[dict[str, Any]] = None,
    headers: Optional[dict[str, str]] = None,
) -> JSONResponse:
    error: dict[str, Any] = {"code": code, "message": message, "retryable": retryable}
    if details:
        error.update(details)
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": error, "meta": build_meta()},
        headers=headers or {},
    )


def classify_error(error: BaseException) -> tuple[int, str, bool]:
    """(HTTP status, error code, retryable) for an exception raised by a data source."""
    if isinstance(error, ValidationError):
        return 400, "VALIDATION_ERROR", False
    if isinstance(error, UnknownCalendarError):
        return 404, "NOT_FOUND", False
    if isinstance(error, UpstreamServiceError) and error.status == 429:
        return 429, "RATE_LIMITED", True
    if isinstance(error, FetchError):
        return 502, "SOURCE_UNAVAILABLE", error.retryable
    if isinstance(error, requests.RequestException):
        return 502, "SOURCE_UNAVAILABLE", True
    return 500, "INTERNAL_ERROR", True


def error_from_exception(
    error: BaseException,
    *,
    headers: Optional[dict[str, str]] = None,
    details: Optional[dict[str, Any]] = None,
) -> JSONResponse:
    status_code, code, retryable = classify_error(error)
    extra = dict(details or {})
    if isinstance(error, UpstreamServiceError):
        extra["upstream"] = error.upstream
    if status_code >= 500:
        logger.error(f"[API] {code}: {type(error).__name__}: {error}", exc_info=status_code == 500)
    return error_response(status_code, code, str(error) or type(error).__name__,
                          retryable=retryable, details=extra, headers=headers)


def mark_stale_dict(data: dict[str, Any]) -> dict[str, Any]:
    """Copy of a cached payload with the stale marker appended to ``last_updated``."""
    stale = dict(data)
    if stale.get("last_updated"):
        stale["last_updated"] = f"{stale['last_updated']}{STALE_SUFFIX}"
    return stale


async def track_abuse(request: Request, services: Services, endpoint: str, slug: Optional[str]) -> AbuseDecision:
    identity = RequestIdentity.from_request_headers(
        request.headers, request.client.host if request.client else None
    )
    return await services.abuse_monitor.track_request(identity, endpoint, slug)


def blocked_response(decision: AbuseDecision) -> JSONResponse:
    return error_response(
        429, "RATE_LIMITED", "Too many requests",
        retryable=True, headers=decision.headers,
    )
