"""
Retry and fetch primitives: backoff schedule, attempt counting, timeouts and
upstream status handling. No network; requests are faked.
"""

import asyncio

import pytest
import requests

from feedhub.lib._fetch_lib import (
    RETRY_CONFIGS,
    FetchError,
    FetchTimeoutError,
    RetryOptions,
    UpstreamServiceError,
    calculate_delay,
    fetch_with_retry,
    is_retryable_error,
    parse_json_response,
    raise_for_upstream,
    response_text,
    with_retry,
)


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class FakeSession:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        result = self.responses.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def _record_sleeps():
    sleeps = []

    async def sleep(delay):
        sleeps.append(delay)

    return sleeps, sleep


def test_calculate_delay_without_jitter_is_capped_exponential():
    options = RetryOptions(initial_delay_seconds=0.5, max_delay_seconds=3.0, backoff_multiplier=2.0, jitter=False)
    assert [calculate_delay(i, options) for i in range(5)] == [0.5, 1.0, 2.0, 3.0, 3.0]


def test_calculate_delay_jitter_only_adds_up_to_a_quarter():
    options = RetryOptions(initial_delay_seconds=1.0, jitter=True)
    assert calculate_delay(0, options, rand=lambda: 0.0) == 1.0
    assert calculate_delay(0, options, rand=lambda: 1.0) == pytest.approx(1.25)


def test_with_retry_returns_after_transient_failures():
    sleeps, sleep = _record_sleeps()
    attempts = []

    async def operation():
        attempts.append(1)
        if len(attempts) < 3:
            raise ConnectionError("reset")
        return "ok"

    options = RetryOptions(max_retries=3, jitter=False, initial_delay_seconds=0.1)
    result = asyncio.run(with_retry(operation, options, sleep=sleep))

    assert result == "ok"
    assert len(attempts) == 3
    assert sleeps == [0.1, 0.2]


def test_with_retry_raises_last_error_after_max_retries():
    sleeps, sleep = _record_sleeps()
    attempts = []

    async def operation():
        attempts.append(1)
        raise ConnectionError(f"attempt {len(attempts)}")

    options = RetryOptions(max_retries=2, jitter=False)
    with pytest.raises(ConnectionError, match="attempt 3"):
        asyncio.run(with_retry(operation, options, sleep=sleep))
    assert len(attempts) == 3
    assert len(sleeps) == 2


def test_with_retry_stops_on_non_retryable_error():
    sleeps, sleep = _record_sleeps()
    attempts = []

    async def operation():
        attempts.append(1)
        raise UpstreamServiceError(404, "example.org")

    options = RetryOptions(max_retries=3, is_retryable=is_retryable_error)
    with pytest.raises(UpstreamServiceError):
        asyncio.run(with_retry(operation, options, sleep=sleep))
    assert len(attempts) == 1
    assert sleeps == []


def test_with_retry_reports_retries_to_callback():
    _, sleep = _record_sleeps()
    seen = []
    attempts = []

    async def operation():
        attempts.append(1)
        if len(attempts) == 1:
            raise ConnectionError("boom")
        return 42

    options = RetryOptions(jitter=False, on_retry=lambda n, err, delay: seen.append((n, str(err), delay)))
    assert asyncio.run(with_retry(operation, options, sleep=sleep)) == 42
    assert seen == [(1, "boom", 1.0)]


def test_with_retry_attempt_timeout_becomes_fetch_timeout_error():
    async def operation():
        await asyncio.sleep(1)

    options = RetryOptions(max_retries=0, timeout_seconds=0.01)
    with pytest.raises(FetchTimeoutError) as exc_info:
        asyncio.run(with_retry(operation, options))
    assert exc_info.value.retryable is True


def test_upstream_error_retryable_by_status():
    assert UpstreamServiceError(503, "x").retryable is True
    assert UpstreamServiceError(429, "x").retryable is True
    assert UpstreamServiceError(404, "x").retryable is False
    assert UpstreamServiceError(404, "x", retryable=True).retryable is True


def test_is_retryable_error_classification():
    assert is_retryable_error(requests.ConnectionError()) is True
    assert is_retryable_error(requests.Timeout()) is True
    assert is_retryable_error(FetchError("bad", retryable=False)) is False
    assert is_retryable_error(ValueError("parse")) is False


def test_fetch_with_retry_retries_5xx_then_returns():
    session = FakeSession([FakeResponse(503), FakeResponse(200, payload={"ok": True})])
    retry = RetryOptions(max_retries=2, initial_delay_seconds=0.0, jitter=False)

    response = asyncio.run(
        fetch_with_retry("https://api.example.org/data", retry=retry, session=session, params={"q": 1})
    )

    assert response.status_code == 200
    assert len(session.calls) == 2
    method, url, kwargs = session.calls[0]
    assert method == "GET"
    assert kwargs["params"] == {"q": 1}
    assert "User-Agent" in kwargs["headers"]


def test_fetch_with_retry_returns_4xx_without_retrying():
    session = FakeSession([FakeResponse(404)])
    retry = RetryOptions(max_retries=3, initial_delay_seconds=0.0)
    response = asyncio.run(fetch_with_retry("https://api.example.org/x", retry=retry, session=session))
    assert response.status_code == 404
    assert len(session.calls) == 1


def test_fetch_with_retry_exhausted_5xx_raises_upstream_error():
    session = FakeSession([FakeResponse(502), FakeResponse(502)])
    retry = RetryOptions(max_retries=1, initial_delay_seconds=0.0, jitter=False)
    with pytest.raises(UpstreamServiceError) as exc_info:
        asyncio.run(fetch_with_retry("https://api.example.org/x", retry=retry, session=session, upstream="example"))
    assert exc_info.value.status == 502
    assert exc_info.value.upstream == "example"


def test_raise_for_upstream_and_parse_json():
    assert raise_for_upstream(FakeResponse(200), "x").status_code == 200
    with pytest.raises(UpstreamServiceError):
        raise_for_upstream(FakeResponse(403), "x")
    assert parse_json_response(FakeResponse(payload={"a": 1}), "x") == {"a": 1}
    with pytest.raises(FetchError, match="invalid JSON"):
        parse_json_response(FakeResponse(), "x")


def test_retry_presets_exist():
    assert set(RETRY_CONFIGS) == {"stable_api", "scraper", "calendar", "critical"}
    assert RETRY_CONFIGS["calendar"].merged(max_retries=0).max_retries == 0


def _raw_response(body: bytes, content_type: str) -> requests.Response:
    response = requests.Response()
    response.status_code = 200
    response._content = body
    response.headers["Content-Type"] = content_type
    response.encoding = requests.utils.get_encoding_from_headers(response.headers)
    return response


def test_response_text_defaults_to_utf8_without_charset():
    body = "SUMMARY:Grand Prix de Monaco - Épreuve ÷¬".encode("utf-8")
    response = _raw_response(body, "text/calendar")
    assert response.encoding == "ISO-8859-1"
    assert response_text(response) == "SUMMARY:Grand Prix de Monaco - Épreuve ÷¬"


def test_response_text_honours_declared_charset():
    response = _raw_response("Épreuve".encode("latin-1"), "text/plain; charset=ISO-8859-1")
    assert response_text(response) == "Épreuve"
