"""Alert mail dedup locks and delivery outcomes. SMTP is never contacted."""

import asyncio
import smtplib

from feedhub.api.alert_email import (
    DisabledAlertNotifier,
    SmtpAlertNotifier,
    build_alert_notifier,
)
from feedhub.api.config import Settings, SmtpSettings
from feedhub.api.counter_store import DisabledCounterStore

SMTP = SmtpSettings(
    host="smtp.example.org",
    port=465,
    user="alerts",
    password="secret",
    sender="alerts@example.org",
    recipients=("ops@example.org", "oncall@example.org"),
)


def _notifier(store, fail=False):
    notifier = SmtpAlertNotifier(SMTP, store, dedup_window_seconds=600)
    notifier.delivered = []

    def deliver(message):
        if fail:
            raise smtplib.SMTPAuthenticationError(535, b"bad credentials")
        notifier.delivered.append(message)

    notifier._deliver = deliver
    return notifier


def test_dedup_lock_is_held_for_the_window(counter_store):
    notifier = _notifier(counter_store)
    assert asyncio.run(notifier.acquire_dedup_lock("abuse:calendars", 600)) is True
    assert asyncio.run(notifier.acquire_dedup_lock("abuse:calendars", 600)) is False
    assert asyncio.run(notifier.acquire_dedup_lock("abuse:metadata", 600)) is True


def test_dedup_lock_expires_after_the_window(counter_store):
    notifier = _notifier(counter_store)
    assert asyncio.run(notifier.acquire_dedup_lock("abuse:calendars", 600)) is True
    counter_store.advance(599)
    assert asyncio.run(notifier.acquire_dedup_lock("abuse:calendars", 600)) is False
    counter_store.advance(1)
    assert asyncio.run(notifier.acquire_dedup_lock("abuse:calendars", 600)) is True


def test_dedup_lock_fails_open_without_store(unreachable_store):
    assert asyncio.run(_notifier(DisabledCounterStore()).acquire_dedup_lock("k", 60)) is True
    assert asyncio.run(_notifier(unreachable_store).acquire_dedup_lock("k", 60)) is True


def test_send_alert_delivers_once_per_dedup_key(counter_store):
    notifier = _notifier(counter_store)

    first = asyncio.run(notifier.send_alert("Spike", "body", dedup_key="abuse:x"))
    second = asyncio.run(notifier.send_alert("Spike", "body", dedup_key="abuse:x"))

    assert (first.sent, first.skipped) == (True, False)
    assert (second.sent, second.reason) == (False, "dedup_lock_active")
    assert len(notifier.delivered) == 1

    message = notifier.delivered[0]
    assert message["To"] == "ops@example.org, oncall@example.org"
    assert message["From"] == "alerts@example.org"
    assert message["Subject"] == "Spike"


def test_send_alert_without_dedup_key_always_sends(counter_store):
    notifier = _notifier(counter_store)
    asyncio.run(notifier.send_alert("A", "body"))
    asyncio.run(notifier.send_alert("A", "body"))
    assert len(notifier.delivered) == 2


def test_smtp_failure_is_reported_not_raised(counter_store):
    result = asyncio.run(_notifier(counter_store, fail=True).send_alert("A", "body"))
    assert result.sent is False
    assert result.skipped is True
    assert "bad credentials" in result.reason


def test_notify_critical_builds_dedup_key_and_body(counter_store):
    notifier = _notifier(counter_store)
    result = asyncio.run(notifier.notify_critical(
        endpoint="calendars", slug="f1", ip_hash="aaaa", ua_hash="bbbb",
        global_1m=10, ip_1m=500, ua_1m=7, mode="enforce",
    ))

    assert result.sent is True
    assert "alert-lock:abuse:calendars:f1:aaaa" in counter_store.values
    body = notifier.delivered[0].get_content()
    assert "- ip(1m): 500" in body
    assert "- Mode: enforce" in body


def test_disabled_notifier_and_factory(counter_store):
    disabled = asyncio.run(DisabledAlertNotifier().send_alert("A", "b"))
    assert (disabled.sent, disabled.reason) == (False, "missing_email_config")

    assert isinstance(build_alert_notifier(Settings(), counter_store), DisabledAlertNotifier)
    configured = build_alert_notifier(Settings(smtp=SMTP, abuse_alert_dedup_seconds=90), counter_store)
    assert isinstance(configured, SmtpAlertNotifier)
    assert configured.dedup_window_seconds == 90
