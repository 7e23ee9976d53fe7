"""
FeedHub API - FastAPI Backend

Re-serves third-party sports, calendar and open-data sources behind a
cached, abuse-aware JSON/ICS API.

Endpoints:
  GET /api/v1/calendars/list              - Registered calendar feeds
  GET /api/v1/calendars/rugby/{team}      - One Top 14 team cut from the league feed
  GET /api/v1/calendars/{slug}            - ICS proxy (renamed, filtered)
  GET /api/v1/calendars/metadata/{slug}   - Next event, event count, date range
  GET /api/v1/sports/results/{sport}      - football | rugby | f1 | motogp
  GET /api/v1/sports/tv-schedule          - Ligue 1 broadcast schedule
  GET /api/v1/services/{service}          - pharmacies | stations | hospitals | post-offices
  GET /api/v1/monitor/abuse-summary       - Abuse counters
  GET /api/v1/health/status               - Upstream health

Usage:
  uvicorn feedhub.api.main:app --reload --port 8000

Debug Mode:
  DEBUG=true uvicorn feedhub.api.main:app --reload --port 8000

Design Pattern: Modular Router Pattern
Algorithm: FastAPI router composition
Big O: O(1) for route registration
"""

import time
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from .config import load_settings
from .constants import API_VERSION
from .endpoints import calendars, monitor, sports
from .endpoints import services as service_endpoints
from .logging_config import DEBUG_MODE, setup_logging
from .state import Services, build_services

# Set up logging; a fresh process starts a fresh log file
logger = setup_logging(overwrite_log_file=True)

SLOW_REQUEST_SECONDS = 1.0
ALERT_DRAIN_SECONDS = 5.0


class TimingMiddleware(BaseHTTPMiddleware):
    """
    Logs each request's wall time and exposes it as ``X-Response-Time``.

    Upstream scrapes dominate latency, so slow requests are logged at
    WARNING with the query string to spot which feed is dragging.

    Design Pattern: Middleware Pattern
    Big O: O(1) overhead per request
    """
    async def dispatch(self, request: Request, call_next):
        route = f"{request.method} {request.url.path}"
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as exc:
            elapsed = time.perf_counter() - started
            logger.error(f"[TIMING] {route} failed after {elapsed:.3f}s: {type(exc).__name__}: {exc}")
            raise

        elapsed = time.perf_counter() - started
        response.headers["X-Response-Time"] = f"{elapsed * 1000:.1f}ms"
        if elapsed > SLOW_REQUEST_SECONDS:
            query = f"?{request.url.query}" if request.url.query else ""
            logger.warning(f"[TIMING] slow {route}{query} -> {response.status_code} in {elapsed:.3f}s")
        else:
            logger.debug(f"[TIMING] {route} -> {response.status_code} in {elapsed:.3f}s")
        return response


def create_app(services: Optional[Services] = None) -> FastAPI:
    app = FastAPI(
        title="FeedHub API",
        description="Sports results, TV schedules, ICS calendars and nearby public services",
        version=API_VERSION,
    )

    if DEBUG_MODE:
        logger.info(f"[STARTUP] FeedHub API {API_VERSION} in debug mode, cache and timing logs are verbose")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Monitor-Key"],
    )
    app.add_middleware(TimingMiddleware)

    app.include_router(calendars.router, prefix="/api", tags=["calendars"])
    app.include_router(sports.router, prefix="/api", tags=["sports"])
    app.include_router(service_endpoints.router, prefix="/api", tags=["services"])
    app.include_router(monitor.router, prefix="/api", tags=["monitor"])

    if services is None:
        settings = load_settings()
        services = build_services(settings)
        logger.info(
            f"FeedHub API ready - abuse mode={settings.abuse_mode}, "
            f"counter store={services.abuse_monitor.counter_store.provider}"
        )
    app.state.services = services

    @app.on_event("shutdown")
    async def flush_alerts():
        """Give in-flight abuse alert mails a bounded chance to go out."""
        await app.state.services.abuse_monitor.drain_alerts(timeout=ALERT_DRAIN_SECONDS)

    return app


app = create_app()
