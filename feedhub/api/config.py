"""
Environment configuration for the feedhub API.

Design Pattern: Settings Object built once from the environment
Algorithm: os.environ lookups with typed fallbacks
Big O: O(1)

Environment Variables:
    ABUSE_MONITOR_MODE: "observe" (default) or "enforce"
    ABUSE_SPIKE_GLOBAL_1M, ABUSE_BURST_IP_SOFT_1M, ABUSE_BURST_IP_HARD_1M,
    ABUSE_SPIKE_UNKNOWN_UA_1M, ABUSE_ALERT_DEDUP_SECONDS: integer thresholds
    UPSTASH_REDIS_REST_URL, UPSTASH_REDIS_REST_TOKEN: remote counter store
    ALERT_SMTP_HOST, ALERT_SMTP_PORT, ALERT_SMTP_SECURE, ALERT_SMTP_USER,
    ALERT_SMTP_PASS, ALERT_EMAIL_FROM, ALERT_EMAIL_TO: critical alert mail
    METADATA_TIME_PRECISION_DEBUG: "1" to log per-event precision decisions
    MONITOR_API_KEY: when set, required (Bearer or X-Monitor-Key) on /monitor routes
"""

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

_TRUTHY = ("true", "1", "yes", "on")


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def _env_str(env: Mapping[str, str], name: str) -> Optional[str]:
    raw = env.get(name)
    if raw is None:
        return None
    raw = raw.strip()
    return raw or None


@dataclass(frozen=True)
class AbuseThresholds:
    global_spike_1m: int = 6000
    ip_soft_1m: int = 260
    ip_hard_1m: int = 420
    unknown_ua_1m: int = 1200


@dataclass(frozen=True)
class SmtpSettings:
    host: Optional[str] = None
    port: int = 465
    secure: bool = True
    user: Optional[str] = None
    password: Optional[str] = None
    sender: Optional[str] = None
    recipients: tuple[str, ...] = ()

    @property
    def configured(self) -> bool:
        return bool(self.host and self.sender and self.recipients)


@dataclass(frozen=True)
class Settings:
    abuse_mode: str = "observe"
    abuse_thresholds: AbuseThresholds = field(default_factory=AbuseThresholds)
    abuse_alert_dedup_seconds: int = 1800
    upstash_url: Optional[str] = None
    upstash_token: Optional[str] = None
    smtp: SmtpSettings = field(default_factory=SmtpSettings)
    metadata_precision_debug: bool = False
    monitor_api_key: Optional[str] = None

    @property
    def enforce(self) -> bool:
        return self.abuse_mode == "enforce"


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Read Settings from the process environment (or an explicit mapping)."""
    env = os.environ if env is None else env

    mode = (env.get("ABUSE_MONITOR_MODE") or "observe").strip().lower()
    if mode not in ("observe", "enforce"):
        mode = "observe"

    thresholds = AbuseThresholds(
        global_spike_1m=_env_int(env, "ABUSE_SPIKE_GLOBAL_1M", 6000),
        ip_soft_1m=_env_int(env, "ABUSE_BURST_IP_SOFT_1M", 260),
        ip_hard_1m=_env_int(env, "ABUSE_BURST_IP_HARD_1M", 420),
        unknown_ua_1m=_env_int(env, "ABUSE_SPIKE_UNKNOWN_UA_1M", 1200),
    )

    port = _env_int(env, "ALERT_SMTP_PORT", 465)
    secure_raw = _env_str(env, "ALERT_SMTP_SECURE")
    secure = secure_raw.lower() in _TRUTHY if secure_raw is not None else port == 465
    recipients = tuple(
        part.strip() for part in (env.get("ALERT_EMAIL_TO") or "").split(",") if part.strip()
    )
    smtp = SmtpSettings(
        host=_env_str(env, "ALERT_SMTP_HOST"),
        port=port,
        secure=secure,
        user=_env_str(env, "ALERT_SMTP_USER"),
        password=env.get("ALERT_SMTP_PASS") or None,
        sender=_env_str(env, "ALERT_EMAIL_FROM"),
        recipients=recipients,
    )

    upstash_url = _env_str(env, "UPSTASH_REDIS_REST_URL")
    return Settings(
        abuse_mode=mode,
        abuse_thresholds=thresholds,
        abuse_alert_dedup_seconds=_env_int(env, "ABUSE_ALERT_DEDUP_SECONDS", 1800),
        upstash_url=upstash_url.rstrip("/") if upstash_url else None,
        upstash_token=_env_str(env, "UPSTASH_REDIS_REST_TOKEN"),
        smtp=smtp,
        metadata_precision_debug=env.get("METADATA_TIME_PRECISION_DEBUG") == "1",
        monitor_api_key=_env_str(env, "MONITOR_API_KEY"),
    )
