"""
Process-wide service container.

Everything with state (caches, counter store, notifier, scrapers) is built
once here from Settings and attached to ``app.state.services``; handlers
reach it through the ``get_services`` dependency so tests can swap it out.

Design Pattern: Composition Root
Algorithm: Straight-line construction
Big O: O(1)
"""

from dataclasses import dataclass, field
from typing import Optional

from fastapi import Request

from .abuse_monitor import AbuseMonitor
from .alert_email import build_alert_notifier
from .cache import TTLCache
from .config import Settings
from .constants import CACHE_TTL
from .counter_store import build_counter_store
from .data_sources.calendars import CalendarSource
from .data_sources.flashscore import FlashscoreScraper
from .data_sources.footmercato import TvScheduleScraper
from .data_sources.health_probe import HealthProbe
from .data_sources.hospitals import HospitalSearch
from .data_sources.pharmacies import PharmacySearch
from .data_sources.post_offices import PostOfficeSearch
from .data_sources.service_search import ServiceSearchFamily
from .data_sources.stations import StationSearch


@dataclass
class Services:
    settings: Settings
    abuse_monitor: AbuseMonitor
    calendars: CalendarSource
    results_scraper: FlashscoreScraper
    tv_scraper: TvScheduleScraper
    health_probe: HealthProbe
    calendar_cache: TTLCache
    metadata_cache: TTLCache
    results_cache: TTLCache
    tv_cache: TTLCache
    service_families: dict[str, ServiceSearchFamily] = field(default_factory=dict)


def build_services(settings: Settings) -> Services:
    counter_store = build_counter_store(settings)
    notifier = build_alert_notifier(settings, counter_store)

    post_office_ttl = CACHE_TTL["post_offices"]
    families = {
        "pharmacies": PharmacySearch(TTLCache(CACHE_TTL["pharmacies"], name="pharmacies")),
        "stations": StationSearch(TTLCache(CACHE_TTL["stations"], name="stations")),
        "hospitals": HospitalSearch(TTLCache(CACHE_TTL["hospitals"], name="hospitals")),
        "post-offices": PostOfficeSearch(
            TTLCache(post_office_ttl, name="post_offices"),
            dataset_cache=TTLCache(post_office_ttl, name="post_offices_dataset"),
        ),
    }

    return Services(
        settings=settings,
        abuse_monitor=AbuseMonitor(settings, counter_store, notifier),
        calendars=CalendarSource(log_precision=settings.metadata_precision_debug),
        results_scraper=FlashscoreScraper(),
        tv_scraper=TvScheduleScraper(),
        health_probe=HealthProbe(),
        calendar_cache=TTLCache(CACHE_TTL["calendar"], name="calendars"),
        metadata_cache=TTLCache(CACHE_TTL["metadata"], name="metadata"),
        # Per-sport TTLs are passed on set()
        results_cache=TTLCache(CACHE_TTL["match_results"], name="results"),
        tv_cache=TTLCache(CACHE_TTL["tv_schedule"], name="tv_schedule"),
        service_families=families,
    )


def get_services(request: Request) -> Services:
    services: Optional[Services] = getattr(request.app.state, "services", None)
    if services is None:
        raise RuntimeError("Services not initialized")
    return services
