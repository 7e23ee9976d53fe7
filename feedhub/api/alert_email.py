"""
Critical-abuse alert mail.

SmtpAlertNotifier sends plain-text mail through smtplib behind a dedup lock
held in the counter store; DisabledAlertNotifier is used when SMTP is not
configured. Neither ever raises into the request path.

Design Pattern: Null Object + distributed lock (SET NX EX)
Algorithm: One SET NX per alert, then one SMTP dialogue
Big O: O(r) for r recipients
"""

import asyncio
import smtplib
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from email.message import EmailMessage
from email.utils import formatdate
from typing import Optional

from .config import Settings, SmtpSettings
from .logging_config import get_logger

logger = get_logger(__name__)

SMTP_TIMEOUT_SECONDS = 15.0
DEFAULT_DEDUP_WINDOW_SECONDS = 1800
EHLO_NAME = "feedhub.local"


@dataclass(frozen=True)
class EmailResult:
    sent: bool
    skipped: bool
    reason: Optional[str] = None


class DisabledAlertNotifier:
    configured = False

    async def send_alert(
        self,
        subject: str,
        text: str,
        dedup_key: Optional[str] = None,
        dedup_window_seconds: int = DEFAULT_DEDUP_WINDOW_SECONDS,
    ) -> EmailResult:
        return EmailResult(sent=False, skipped=True, reason="missing_email_config")

    async def notify_critical(self, **details) -> EmailResult:
        return EmailResult(sent=False, skipped=True, reason="missing_email_config")


class SmtpAlertNotifier:
    configured = True

    def __init__(self, smtp: SmtpSettings, counter_store, dedup_window_seconds: int = DEFAULT_DEDUP_WINDOW_SECONDS):
        self.smtp = smtp
        self.counter_store = counter_store
        self.dedup_window_seconds = dedup_window_seconds

    async def acquire_dedup_lock(self, key: str, ttl_seconds: int) -> bool:
        """True when this caller owns the alert window. Store unavailable counts as acquired."""
        result = await self.counter_store.command(
            ["SET", f"alert-lock:{key}", str(int(time.time() * 1000)), "EX", ttl_seconds, "NX"]
        )
        if result is None:
            if not self.counter_store.configured:
                return True
            # NX refused, or the store could not be reached
            return False if await self._lock_exists(key) else True
        return str(result).upper() == "OK"

    async def _lock_exists(self, key: str) -> bool:
        exists = await self.counter_store.command(["EXISTS", f"alert-lock:{key}"])
        return bool(exists)

    def _build_message(self, subject: str, text: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.smtp.sender
        message["To"] = ", ".join(self.smtp.recipients)
        message["Subject"] = subject
        message["Date"] = formatdate(usegmt=True)
        message.set_content(text, charset="utf-8")
        return message

    def _deliver(self, message: EmailMessage) -> None:
        smtp_class = smtplib.SMTP_SSL if self.smtp.secure else smtplib.SMTP
        with smtp_class(self.smtp.host, self.smtp.port, timeout=SMTP_TIMEOUT_SECONDS) as client:
            client.ehlo(EHLO_NAME)
            if self.smtp.user and self.smtp.password:
                client.login(self.smtp.user, self.smtp.password)
            client.send_message(message, from_addr=self.smtp.sender, to_addrs=list(self.smtp.recipients))

    async def send_alert(
        self,
        subject: str,
        text: str,
        dedup_key: Optional[str] = None,
        dedup_window_seconds: Optional[int] = None,
    ) -> EmailResult:
        window = dedup_window_seconds or self.dedup_window_seconds
        key = (dedup_key or "").strip()
        if key and not await self.acquire_dedup_lock(key, window):
            logger.info(f"[ALERT] Skipped '{subject}' - dedup lock active for {key}")
            return EmailResult(sent=False, skipped=True, reason="dedup_lock_active")

        try:
            await asyncio.to_thread(self._deliver, self._build_message(subject, text))
        except (smtplib.SMTPException, OSError) as e:
            logger.warning(f"[ALERT] SMTP delivery failed: {type(e).__name__}: {e}")
            return EmailResult(sent=False, skipped=True, reason=str(e) or "smtp_error")

        logger.info(f"[ALERT] Sent '{subject}' to {len(self.smtp.recipients)} recipient(s)")
        return EmailResult(sent=True, skipped=False)

    async def notify_critical(
        self,
        *,
        endpoint: str,
        slug: str,
        ip_hash: str,
        ua_hash: str,
        global_1m: int,
        ip_1m: int,
        ua_1m: int,
        mode: str,
    ) -> EmailResult:
        subject = f"[FeedHub] Abuse spike detecte ({endpoint})"
        body = "\n".join([
            "Alerte anti-abus (critique)",
            f"- Endpoint: {endpoint}",
            f"- Slug: {slug}",
            f"- Mode: {mode}",
            f"- global(1m): {global_1m}",
            f"- ip(1m): {ip_1m}",
            f"- ua(1m): {ua_1m}",
            f"- ipHash: {ip_hash}",
            f"- uaHash: {ua_hash}",
            f"- Timestamp: {datetime.now(timezone.utc).isoformat()}",
        ])
        return await self.send_alert(
            subject,
            body,
            dedup_key=f"abuse:{endpoint}:{slug}:{ip_hash}",
            dedup_window_seconds=self.dedup_window_seconds,
        )


def build_alert_notifier(settings: Settings, counter_store):
    if settings.smtp.configured:
        return SmtpAlertNotifier(settings.smtp, counter_store, settings.abuse_alert_dedup_seconds)
    logger.info("[ALERT] SMTP not configured - critical alerts disabled")
    return DisabledAlertNotifier()
