"""
Abuse-aware request accounting for the calendar endpoints.

Every tracked request increments 1m/5m/1h counters per endpoint, slug,
IP hash and User-Agent hash in the remote counter store, and feeds two
5-minute leaderboards. The 1-minute counts decide the severity; in enforce
mode an unknown client over the hard thresholds is blocked.

Raw IPs and User-Agents never leave this module: only 16-hex-char SHA-256
prefixes are stored or returned.

Design Pattern: Fixed-window counters in a shared atomic store
Algorithm: One pipeline of INCR/EXPIRE + ZINCRBY per request
Big O: O(1) per request (24 counter commands + 4 leaderboard commands)
"""

import asyncio
import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from feedhub.lib._fetch_lib import sha256_hex

from .config import Settings
from .logging_config import get_logger

logger = get_logger(__name__)

WINDOW_1M = 60
WINDOW_5M = 300
WINDOW_1H = 3600
TRACK_WINDOWS = (WINDOW_1M, WINDOW_5M, WINDOW_1H)
# Counter TTL is window + pad
EXPIRY_PAD_SECONDS = 30
COUNTER_KINDS = ("global", "slug", "ip", "ua")
SUMMARY_ENDPOINTS = ("calendars", "metadata")
TOP_LIST_SIZE = 10

MAX_UA_LENGTH = 256
MAX_TOKEN_LENGTH = 120
HEADER_PREFIX = "X-Feedhub-Abuse"

KNOWN_UA_PATTERNS = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"FeedHub",
        r"CFNetwork",
        r"Calendar",
        r"iCalendar",
        r"iPhone|iPad|iOS",
        r"AppleCoreMedia",
        r"Mozilla",
        r"Mac OS X",
    )
)

_UNSAFE_TOKEN_RE = re.compile(r"[^a-zA-Z0-9._:-]")


def sanitize_token(value: str) -> str:
    return _UNSAFE_TOKEN_RE.sub("-", value)[:MAX_TOKEN_LENGTH]


def hash_short(value: str) -> str:
    return sha256_hex(value.encode("utf-8"))[:16]


def normalize_ip(raw: Optional[str]) -> str:
    """First forwarded-for entry without IPv6-mapped prefix, brackets or port."""
    if not raw:
        return "unknown"
    first = raw.split(",")[0].strip()
    if not first:
        return "unknown"
    first = re.sub(r"^::ffff:", "", first)
    first = re.sub(r"^\[(.*)\](?::\d+)?$", r"\1", first)
    # host:port only; bare IPv6 has more than one colon
    if first.count(":") == 1:
        first = first.split(":")[0]
    return first


def is_known_user_agent(user_agent: str) -> bool:
    return any(pattern.search(user_agent) for pattern in KNOWN_UA_PATTERNS)


def build_counter_key(kind: str, endpoint: str, window_seconds: int, token: Optional[str] = None) -> str:
    base = f"abuse:v1:{kind}:{sanitize_token(endpoint)}:{window_seconds}s"
    return f"{base}:{sanitize_token(token)}" if token else base


def build_top_key(kind: str, endpoint: str) -> str:
    return f"abuse:v1:{kind}:{sanitize_token(endpoint)}:{WINDOW_5M}s"


def to_int(value: Any) -> int:
    try:
        return max(0, int(float(value)))
    except (TypeError, ValueError):
        return 0


@dataclass(frozen=True)
class RequestIdentity:
    ip_hash: str
    ua_hash: str
    is_known_ua: bool

    @classmethod
    def from_request_headers(cls, headers: Mapping[str, str], client_host: Optional[str] = None) -> "RequestIdentity":
        user_agent = (headers.get("user-agent") or "unknown")[:MAX_UA_LENGTH] or "unknown"
        ip = normalize_ip(headers.get("x-forwarded-for") or headers.get("x-real-ip") or client_host)
        return cls(
            ip_hash=hash_short(ip),
            ua_hash=hash_short(user_agent),
            is_known_ua=is_known_user_agent(user_agent),
        )


@dataclass(frozen=True)
class AbuseDecision:
    mode: str
    provider: str
    blocked: bool = False
    reason: Optional[str] = None
    severity: str = "normal"
    headers: dict[str, str] = field(default_factory=dict)
    metrics: Optional[dict[str, Any]] = None


class AbuseMonitor:
    def __init__(self, settings: Settings, counter_store, notifier):
        self.settings = settings
        self.thresholds = settings.abuse_thresholds
        self.mode = settings.abuse_mode
        self.counter_store = counter_store
        self.notifier = notifier
        # Strong refs so in-flight alert tasks are not garbage collected
        self._alert_tasks: set[asyncio.Task] = set()

    def _base_headers(self, provider: str) -> dict[str, str]:
        return {
            f"{HEADER_PREFIX}-Mode": self.mode,
            f"{HEADER_PREFIX}-Provider": provider,
        }

    def _pass_through(self) -> AbuseDecision:
        return AbuseDecision(mode=self.mode, provider="disabled", headers=self._base_headers("disabled"))

    def _build_commands(self, endpoint: str, slug: str, identity: RequestIdentity) -> tuple[list[list[Any]], dict[str, int]]:
        commands: list[list[Any]] = []
        index: dict[str, int] = {}
        tokens = {"global": None, "slug": slug, "ip": identity.ip_hash, "ua": identity.ua_hash}

        for window in TRACK_WINDOWS:
            for kind in COUNTER_KINDS:
                key = build_counter_key(kind, endpoint, window, tokens[kind])
                index[f"{kind}:{window}"] = len(commands)
                commands.append(["INCR", key])
                commands.append(["EXPIRE", key, window + EXPIRY_PAD_SECONDS])

        for kind, member in (("topip", identity.ip_hash), ("topua", identity.ua_hash)):
            key = build_top_key(kind, endpoint)
            commands.append(["ZINCRBY", key, 1, member])
            commands.append(["EXPIRE", key, WINDOW_5M + EXPIRY_PAD_SECONDS])

        return commands, index

    async def track_request(self, identity: RequestIdentity, endpoint: str, slug: Optional[str] = None) -> AbuseDecision:
        """
        Count one request and classify it.

        Never raises: an unconfigured or unreachable store yields a
        non-blocking decision with provider "disabled".
        """
        if not self.counter_store.configured:
            return self._pass_through()

        endpoint = sanitize_token(endpoint)
        slug = sanitize_token(slug or "none")
        commands, index = self._build_commands(endpoint, slug, identity)

        results = await self.counter_store.pipeline(commands)
        if not results:
            return self._pass_through()

        def count(name: str) -> int:
            position = index[name]
            return to_int(results[position]) if position < len(results) else 0

        global_1m = count(f"global:{WINDOW_1M}")
        global_5m = count(f"global:{WINDOW_5M}")
        ip_1m = count(f"ip:{WINDOW_1M}")
        ua_1m = count(f"ua:{WINDOW_1M}")
        t = self.thresholds
        unknown_ua = not identity.is_known_ua

        critical = (
            global_1m >= t.global_spike_1m
            or ip_1m >= t.ip_hard_1m
            or (unknown_ua and ua_1m >= t.unknown_ua_1m)
        )
        warning = not critical and (ip_1m >= t.ip_soft_1m or ua_1m >= t.unknown_ua_1m // 2)
        severity = "critical" if critical else "warning" if warning else "normal"

        blocked = False
        reason = None
        if self.settings.enforce and unknown_ua and (ip_1m >= t.ip_hard_1m or ua_1m >= t.unknown_ua_1m):
            blocked = True
            reason = "rate_limit_exceeded"

        metrics = {
            "endpoint": endpoint,
            "slug": slug,
            "ip_hash": identity.ip_hash,
            "ua_hash": identity.ua_hash,
            "is_known_ua": identity.is_known_ua,
            "global_1m": global_1m,
            "global_5m": global_5m,
            "ip_1m": ip_1m,
            "ua_1m": ua_1m,
        }

        if critical:
            logger.warning(
                f"[ABUSE] critical on {endpoint}/{slug}: global_1m={global_1m} "
                f"ip_1m={ip_1m} ua_1m={ua_1m} ip={identity.ip_hash} blocked={blocked}"
            )
            self._schedule_alert(metrics)
        elif warning:
            logger.info(f"[ABUSE] warning on {endpoint}/{slug}: ip_1m={ip_1m} ua_1m={ua_1m}")

        headers = self._base_headers(self.counter_store.provider)
        headers[f"{HEADER_PREFIX}-Window-1m"] = str(global_1m)
        headers[f"{HEADER_PREFIX}-Window-5m"] = str(global_5m)
        headers[f"{HEADER_PREFIX}-Severity"] = severity

        return AbuseDecision(
            mode=self.mode,
            provider=self.counter_store.provider,
            blocked=blocked,
            reason=reason,
            severity=severity,
            headers=headers,
            metrics=metrics,
        )

    def _schedule_alert(self, metrics: dict[str, Any]) -> None:
        task = asyncio.create_task(self._notify(metrics))
        self._alert_tasks.add(task)
        task.add_done_callback(self._alert_tasks.discard)

    async def drain_alerts(self, timeout: Optional[float] = None) -> None:
        """Wait for alert deliveries still in flight (shutdown, tests)."""
        if self._alert_tasks:
            await asyncio.wait(set(self._alert_tasks), timeout=timeout)

    async def _notify(self, metrics: dict[str, Any]) -> None:
        try:
            await self.notifier.notify_critical(
                endpoint=metrics["endpoint"],
                slug=metrics["slug"],
                ip_hash=metrics["ip_hash"],
                ua_hash=metrics["ua_hash"],
                global_1m=metrics["global_1m"],
                ip_1m=metrics["ip_1m"],
                ua_1m=metrics["ua_1m"],
                mode=self.mode,
            )
        except Exception as e:
            # Alerting must never fail the request
            logger.warning(f"[ABUSE] Alert notification failed: {type(e).__name__}: {e}")

    # =========================================================================
    # Summaries
    # =========================================================================

    def _empty_summary(self, provider: str) -> dict[str, Any]:
        return {
            "mode": self.mode,
            "provider": provider,
            "endpoints": {
                name: {"one_minute": 0, "five_minutes": 0, "one_hour": 0}
                for name in SUMMARY_ENDPOINTS
            },
            "top_ip_hashes": [],
            "top_ua_hashes": [],
        }

    @staticmethod
    def _parse_top_list(raw: Any) -> list[dict[str, Any]]:
        if not isinstance(raw, list):
            return []
        out = []
        for i in range(0, len(raw), 2):
            member = raw[i]
            if not isinstance(member, str) or not member:
                continue
            score = raw[i + 1] if i + 1 < len(raw) else 0
            out.append({"hash": member, "count": to_int(score)})
        return out

    async def get_abuse_summary(self) -> dict[str, Any]:
        if not self.counter_store.configured:
            return self._empty_summary("disabled")

        commands: list[list[Any]] = [
            ["MGET", *(build_counter_key("global", name, w) for w in TRACK_WINDOWS)]
            for name in SUMMARY_ENDPOINTS
        ]
        commands.append(["ZREVRANGE", build_top_key("topip", "calendars"), 0, TOP_LIST_SIZE - 1, "WITHSCORES"])
        commands.append(["ZREVRANGE", build_top_key("topua", "calendars"), 0, TOP_LIST_SIZE - 1, "WITHSCORES"])

        results = await self.counter_store.pipeline(commands)
        if not results or len(results) < len(commands):
            return self._empty_summary("disabled")

        summary = self._empty_summary(self.counter_store.provider)
        for offset, name in enumerate(SUMMARY_ENDPOINTS):
            values = results[offset] if isinstance(results[offset], list) else []
            values = list(values) + [0] * (len(TRACK_WINDOWS) - len(values))
            summary["endpoints"][name] = {
                "one_minute": to_int(values[0]),
                "five_minutes": to_int(values[1]),
                "one_hour": to_int(values[2]),
            }
        summary["top_ip_hashes"] = self._parse_top_list(results[len(SUMMARY_ENDPOINTS)])
        summary["top_ua_hashes"] = self._parse_top_list(results[len(SUMMARY_ENDPOINTS) + 1])
        return summary

    async def get_abuse_health_summary(self) -> dict[str, Any]:
        summary = await self.get_abuse_summary()
        requests_5m = sum(e["five_minutes"] for e in summary["endpoints"].values())
        suspicious = any(e["count"] >= self.thresholds.ip_hard_1m for e in summary["top_ip_hashes"])
        return {
            "mode": summary["mode"],
            "provider": summary["provider"],
            "requests_5m": requests_5m,
            "suspicious": suspicious,
        }
