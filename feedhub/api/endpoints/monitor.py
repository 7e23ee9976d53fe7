"""
Monitoring endpoints - abuse counters summary and upstream health.

Design Pattern: Read-only status endpoints
Algorithm: One counter-store pipeline / one concurrent probe round
Big O: O(s) for s probed sources
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header

from ..constants import CACHE_TTL
from ..logging_config import get_logger
from ..state import Services, get_services
from .utils import error_response, success_response

router = APIRouter()
logger = get_logger(__name__)


def _authorized(expected: Optional[str], authorization: Optional[str], monitor_key: Optional[str]) -> bool:
    if not expected:
        return True
    bearer = (authorization or "").strip()
    if bearer.lower().startswith("bearer "):
        bearer = bearer[len("bearer "):].strip()
    return bearer == expected or (monitor_key or "").strip() == expected


@router.get("/v1/monitor/abuse-summary")
async def get_abuse_summary(
    authorization: Optional[str] = Header(None),
    x_monitor_key: Optional[str] = Header(None),
    services: Services = Depends(get_services),
):
    """1m/5m/1h request counts per tracked endpoint plus the top IP and UA hashes."""
    if not _authorized(services.settings.monitor_api_key, authorization, x_monitor_key):
        return error_response(401, "UNAUTHORIZED", "Unauthorized")

    summary = await services.abuse_monitor.get_abuse_summary()
    return success_response(summary, ttl=30)


@router.get("/v1/health/status")
async def get_health_status(services: Services = Depends(get_services)):
    """
    Probe every upstream once. 503 when a critical source is down or half
    of all sources are down, so external uptime checks flag it.
    """
    report = await services.health_probe.run()
    report["abuse"] = await services.abuse_monitor.get_abuse_health_summary()

    healthy = report["overall"] != "unhealthy"
    if not healthy:
        logger.error(f"[HEALTH] {report['uptime_message']}")
    return success_response(
        report,
        ttl=CACHE_TTL["health"],
        status_code=200 if healthy else 503,
        success=healthy,
    )
