"""Environment parsing and counter-store plumbing."""

import asyncio

import requests

from feedhub.api.config import load_settings
from feedhub.api.counter_store import (
    DisabledCounterStore,
    UpstashCounterStore,
    build_counter_store,
    normalize_pipeline_response,
)


def test_defaults_from_empty_environment():
    settings = load_settings({})
    assert settings.abuse_mode == "observe"
    assert settings.enforce is False
    assert settings.abuse_thresholds.ip_hard_1m == 420
    assert settings.abuse_alert_dedup_seconds == 1800
    assert settings.smtp.configured is False
    assert settings.monitor_api_key is None


def test_environment_overrides():
    settings = load_settings({
        "ABUSE_MONITOR_MODE": " Enforce ",
        "ABUSE_BURST_IP_HARD_1M": "50",
        "ABUSE_BURST_IP_SOFT_1M": "not-a-number",
        "ABUSE_SPIKE_GLOBAL_1M": "-5",
        "UPSTASH_REDIS_REST_URL": "https://eu1.upstash.io/",
        "UPSTASH_REDIS_REST_TOKEN": "tok",
        "ALERT_SMTP_HOST": "smtp.example.org",
        "ALERT_SMTP_PORT": "587",
        "ALERT_EMAIL_FROM": "alerts@example.org",
        "ALERT_EMAIL_TO": "a@example.org, ,b@example.org",
        "METADATA_TIME_PRECISION_DEBUG": "1",
        "MONITOR_API_KEY": "k3y",
    })
    assert settings.enforce is True
    assert settings.abuse_thresholds.ip_hard_1m == 50
    assert settings.abuse_thresholds.ip_soft_1m == 260
    assert settings.abuse_thresholds.global_spike_1m == 6000
    assert settings.upstash_url == "https://eu1.upstash.io"
    assert settings.smtp.port == 587
    assert settings.smtp.secure is False
    assert settings.smtp.recipients == ("a@example.org", "b@example.org")
    assert settings.smtp.configured is True
    assert settings.metadata_precision_debug is True
    assert settings.monitor_api_key == "k3y"


def test_unknown_mode_falls_back_to_observe():
    assert load_settings({"ABUSE_MONITOR_MODE": "block"}).abuse_mode == "observe"


def test_explicit_smtp_secure_flag():
    assert load_settings({"ALERT_SMTP_PORT": "587", "ALERT_SMTP_SECURE": "true"}).smtp.secure is True
    assert load_settings({"ALERT_SMTP_SECURE": "false"}).smtp.secure is False


def test_normalize_pipeline_response_shapes():
    assert normalize_pipeline_response([{"result": 1}, {"result": "OK"}, 3]) == [1, "OK", 3]
    assert normalize_pipeline_response({"result": [{"result": 5}]}) == [5]
    assert normalize_pipeline_response({"results": [7]}) == [7]
    assert normalize_pipeline_response("garbage") == []


def test_build_counter_store_requires_url_and_token():
    assert isinstance(build_counter_store(load_settings({})), DisabledCounterStore)
    store = build_counter_store(load_settings({
        "UPSTASH_REDIS_REST_URL": "https://eu1.upstash.io",
        "UPSTASH_REDIS_REST_TOKEN": "tok",
    }))
    assert isinstance(store, UpstashCounterStore)
    assert store.configured is True


class _Response:
    def __init__(self, status_code, payload):
        self.status_code = status_code
        self.ok = status_code < 400
        self._payload = payload

    def json(self):
        return self._payload


class _Session:
    def __init__(self, outcome):
        self.outcome = outcome
        self.posts = []

    def post(self, url, **kwargs):
        self.posts.append((url, kwargs))
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


def test_upstash_pipeline_posts_commands_with_bearer_token():
    session = _Session(_Response(200, [{"result": 1}, {"result": 1}]))
    store = UpstashCounterStore("https://eu1.upstash.io/", "tok", session=session)

    results = asyncio.run(store.pipeline([["INCR", "k"], ["EXPIRE", "k", 90]]))

    assert results == [1, 1]
    url, kwargs = session.posts[0]
    assert url == "https://eu1.upstash.io/pipeline"
    assert kwargs["headers"] == {"Authorization": "Bearer tok"}
    assert kwargs["json"] == [["INCR", "k"], ["EXPIRE", "k", 90]]


def test_upstash_failures_return_none():
    for outcome in (_Response(500, None), requests.ConnectionError("down")):
        store = UpstashCounterStore("https://eu1.upstash.io", "tok", session=_Session(outcome))
        assert asyncio.run(store.pipeline([["INCR", "k"]])) is None
        assert asyncio.run(store.command(["GET", "k"])) is None
