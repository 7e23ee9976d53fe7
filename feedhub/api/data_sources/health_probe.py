"""
Upstream health probe for /health/status.

Every source gets one HEAD (or GET where HEAD is refused) with a hard
timeout and no retries; the probes run concurrently.

Design Pattern: Fan-out / gather
Algorithm: asyncio.gather over blocking requests calls in worker threads
Big O: O(s) requests for s sources, wall time bounded by the slowest probe
"""

import asyncio
import time
from dataclasses import asdict, dataclass
from typing import Any, Optional

import requests

from ..logging_config import get_logger

logger = get_logger(__name__)

PROBE_TIMEOUT_SECONDS = 8.0
SLOW_LATENCY_MS = 3000
PROBE_HEADERS = {"User-Agent": "FeedHub/1.0 Health Check", "Accept": "*/*"}


@dataclass(frozen=True)
class ProbeTarget:
    name: str
    category: str
    url: str
    method: str = "HEAD"
    critical: bool = False


@dataclass(frozen=True)
class SourceStatus:
    name: str
    category: str
    status: str
    critical: bool
    latency: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


PROBE_TARGETS = (
    ProbeTarget(
        "Fixtur.es (Football/Rugby)", "calendars",
        "https://ics.fixtur.es/v2/paris-saint-germain.ics", critical=True,
    ),
    ProbeTarget(
        "Better F1 Calendar", "calendars",
        "https://better-f1-calendar.vercel.app/api/calendar.ics", critical=True,
    ),
    # HEAD is not supported by the two below
    ProbeTarget(
        "FootMercato (TV Schedule)", "scraping",
        "https://www.footmercato.net/programme-tv/france/ligue-1", method="GET",
    ),
    ProbeTarget(
        "Flashscore (Results)", "scraping",
        "https://www.flashscore.fr/football/france/ligue-1/resultats/", method="GET",
    ),
    ProbeTarget(
        "OpenDataSoft (FINESS)", "api",
        "https://public.opendatasoft.com/api/explore/v2.1/catalog/datasets/healthref-france-finess/records?limit=1",
        method="GET",
    ),
    ProbeTarget(
        "Prix des carburants", "api",
        "https://data.economie.gouv.fr/api/explore/v2.1/catalog/datasets/"
        "prix-des-carburants-en-france-flux-instantane-v2/records?limit=1",
        method="GET",
    ),
    ProbeTarget(
        "DataNova La Poste", "api",
        "https://datanova.laposte.fr/data-fair/api/v1/datasets/laposte-poincont2/lines?size=1",
        method="GET",
    ),
)


class HealthProbe:
    def __init__(self, targets=PROBE_TARGETS, session: Optional[requests.Session] = None):
        self.targets = tuple(targets)
        self.session = session or requests.Session()

    def _request(self, target: ProbeTarget) -> requests.Response:
        return self.session.request(
            target.method,
            target.url,
            headers=PROBE_HEADERS,
            timeout=PROBE_TIMEOUT_SECONDS,
            allow_redirects=True,
        )

    async def check(self, target: ProbeTarget) -> SourceStatus:
        start = time.monotonic()
        try:
            response = await asyncio.to_thread(self._request, target)
        except requests.RequestException as e:
            return SourceStatus(
                target.name, target.category, "down", target.critical,
                latency=round((time.monotonic() - start) * 1000), error=str(e) or type(e).__name__,
            )

        latency = round((time.monotonic() - start) * 1000)
        if response.ok:
            status = "degraded" if latency > SLOW_LATENCY_MS else "ok"
            return SourceStatus(target.name, target.category, status, target.critical, latency=latency)
        return SourceStatus(
            target.name, target.category, "degraded", target.critical,
            latency=latency, error=f"HTTP {response.status_code}",
        )

    async def run(self) -> dict[str, Any]:
        results = await asyncio.gather(*(self.check(t) for t in self.targets))
        return summarize(list(results))


def summarize(results: list[SourceStatus]) -> dict[str, Any]:
    """
    Unhealthy when a critical source is down or at least half of all sources
    are down; degraded when anything is short of ok.
    """
    total = len(results)
    down = sum(1 for r in results if r.status == "down")
    degraded = sum(1 for r in results if r.status == "degraded")
    critical_down = [r.name for r in results if r.status == "down" and r.critical]

    if critical_down or (total and down >= total / 2):
        overall = "unhealthy"
        message = f"CRITICAL - {len(critical_down)} critical sources down: {', '.join(critical_down) or 'multiple failures'}"
    elif down or degraded:
        overall = "degraded"
        message = f"WARN - {degraded} degraded, {down} down"
    else:
        overall = "healthy"
        message = f"OK - All {total} sources healthy"

    if overall != "healthy":
        logger.warning(f"[HEALTH] {message}")

    return {
        "overall": overall,
        "sources": [r.to_dict() for r in results],
        "summary": {
            "total": total,
            "healthy": sum(1 for r in results if r.status == "ok"),
            "degraded": degraded,
            "down": down,
            "critical_down": len(critical_down),
        },
        "uptime_message": message,
    }
