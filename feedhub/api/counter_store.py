"""
Remote atomic counter store used by the abuse monitor and alert dedup locks.

Two capability variants share one interface: UpstashCounterStore talks to an
Upstash Redis REST endpoint, DisabledCounterStore answers None to everything.
Callers never branch on configuration; a None result means "store
unavailable" and they fail open.

Design Pattern: Null Object for the unconfigured case
Algorithm: One pipelined HTTP POST per logical operation
Big O: O(c) for c commands per pipeline
"""

import asyncio
from typing import Any, Optional

import requests

from .config import Settings
from .logging_config import get_logger

logger = get_logger(__name__)

PIPELINE_TIMEOUT_SECONDS = 3.0


def normalize_pipeline_response(payload: Any) -> list:
    """Unwrap ``[{"result": x}, ...]`` (or a ``result``/``results`` envelope) into ``[x, ...]``."""
    if isinstance(payload, list):
        return [
            item["result"] if isinstance(item, dict) and "result" in item else item
            for item in payload
        ]
    if isinstance(payload, dict):
        for key in ("result", "results"):
            if isinstance(payload.get(key), list):
                return normalize_pipeline_response(payload[key])
    return []


class DisabledCounterStore:
    provider = "disabled"
    configured = False

    async def pipeline(self, commands: list[list[Any]]) -> Optional[list]:
        return None

    async def command(self, command: list[Any]) -> Optional[Any]:
        return None


class UpstashCounterStore:
    provider = "upstash"
    configured = True

    def __init__(
        self,
        url: str,
        token: str,
        session: Optional[requests.Session] = None,
        timeout_seconds: float = PIPELINE_TIMEOUT_SECONDS,
    ):
        self.url = url.rstrip("/")
        self.token = token
        self.session = session or requests.Session()
        self.timeout_seconds = timeout_seconds

    def _post(self, commands: list[list[Any]]) -> requests.Response:
        return self.session.post(
            f"{self.url}/pipeline",
            json=commands,
            headers={"Authorization": f"Bearer {self.token}"},
            timeout=self.timeout_seconds,
        )

    async def pipeline(self, commands: list[list[Any]]) -> Optional[list]:
        """Run commands in one round trip. Returns None on any failure."""
        try:
            response = await asyncio.to_thread(self._post, commands)
            if not response.ok:
                logger.warning(f"[ABUSE] Counter store returned HTTP {response.status_code}")
                return None
            return normalize_pipeline_response(response.json())
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"[ABUSE] Counter store unavailable: {type(e).__name__}: {e}")
            return None

    async def command(self, command: list[Any]) -> Optional[Any]:
        results = await self.pipeline([command])
        if not results:
            return None
        return results[0]


def build_counter_store(settings: Settings):
    if settings.upstash_url and settings.upstash_token:
        return UpstashCounterStore(settings.upstash_url, settings.upstash_token)
    logger.info("[ABUSE] Counter store not configured - abuse tracking disabled")
    return DisabledCounterStore()
