import pytest
import requests

from application.messages import Cancelled, CancelToken
from infrastructure.sources import HttpClient, HttpClientError, HttpRateLimitError, RateLimiter


class DummyResponse:
    def __init__(self, status_code=200, payload=None, text="", headers=None):
        self.status_code = status_code
        self._payload = payload
        self.text = text
        self.headers = headers or {}

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class FlakySession:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.calls.append((url, params, headers, timeout))
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class Clock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    monkeypatch.setattr(HttpClient, "_sleep", lambda self, delay, token: None)


def test_get_json_passes_headers_and_timeout():
    session = FlakySession([DummyResponse(payload={"ok": True})])
    client = HttpClient(session=session, timeout=7.0, headers={"Accept": "application/json"})
    assert client.get_json("https://x.test/api", params={"q": "rg"}) == {"ok": True}
    url, params, headers, timeout = session.calls[0]
    assert params == {"q": "rg"}
    assert headers["User-Agent"] == "hoard-cli"
    assert headers["Accept"] == "application/json"
    assert timeout == 7.0


def test_retries_network_errors_then_succeeds():
    session = FlakySession([requests.ConnectionError("boom"), DummyResponse(text="hi")])
    client = HttpClient(session=session)
    assert client.get_text("https://x.test") == "hi"
    assert len(session.calls) == 2


def test_network_errors_exhaust_attempts():
    session = FlakySession([requests.Timeout("slow")] * 3)
    with pytest.raises(HttpClientError, match="network error"):
        HttpClient(session=session, max_attempts=3).get("https://x.test")


def test_server_errors_retry_then_fail():
    session = FlakySession([DummyResponse(502), DummyResponse(503)])
    with pytest.raises(HttpClientError) as exc:
        HttpClient(session=session, max_attempts=2).get("https://x.test")
    assert exc.value.status == 503


def test_client_error_is_not_retried():
    session = FlakySession([DummyResponse(404)])
    with pytest.raises(HttpClientError, match="HTTP 404"):
        HttpClient(session=session).get("https://x.test")
    assert len(session.calls) == 1


def test_rate_limit_with_long_reset_fails_fast():
    clock = Clock()
    limiter = RateLimiter(clock=clock)
    headers = {"X-RateLimit-Remaining": "0", "X-RateLimit-Reset": str(clock.now + 600)}
    session = FlakySession([DummyResponse(403, headers=headers)])
    with pytest.raises(HttpRateLimitError):
        HttpClient(session=session, rate_limiter=limiter).get("https://api.github.com/search")
    assert limiter.wait_time() == pytest.approx(600)


def test_invalid_json():
    session = FlakySession([DummyResponse(payload=None)])
    with pytest.raises(HttpClientError, match="invalid JSON"):
        HttpClient(session=session).get_json("https://x.test")


def test_cancelled_token_stops_before_request():
    token = CancelToken()
    token.cancel()
    session = FlakySession([DummyResponse()])
    with pytest.raises(Cancelled):
        HttpClient(session=session).get("https://x.test", token)
    assert session.calls == []


def test_rate_limiter_honours_retry_after():
    clock = Clock()
    limiter = RateLimiter(clock=clock)
    limiter.update({"retry-after": "2"})
    assert limiter.wait_time() == pytest.approx(2)
    assert limiter.acquire(cancelled=lambda: True) is False
    clock.now += 2
    assert limiter.acquire() is True


def test_rate_limiter_low_remaining_without_reset_backs_off():
    clock = Clock()
    limiter = RateLimiter(clock=clock)
    limiter.update({"X-RateLimit-Remaining": "1"})
    assert limiter.last_remaining == 1
    assert limiter.wait_time() == pytest.approx(60)


def test_rate_limiter_min_interval():
    clock = Clock()
    limiter = RateLimiter(min_interval=1.5, clock=clock)
    assert limiter.acquire() is True
    assert limiter.wait_time() == pytest.approx(1.5)
