from __future__ import annotations

import json
import os
import sys
import threading
from collections import deque
from pathlib import Path

import pytest
import requests

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))


from store_geocoder.geocoding.errors import failure
from store_geocoder.geocoding.models import (
    ConnectionTest,
    ErrorKind,
    GeocodeResult,
    Precision,
    ProviderDescriptor,
)
from store_geocoder.geocoding.throttling import RateLimiter


class FakeClock:
    """Manual clock; `sleep` advances time instead of blocking."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def make_response(status_code=200, body=None, text=None, headers=None, url="https://example.test/"):
    response = requests.Response()
    response.status_code = status_code
    response._content = (json.dumps(body) if body is not None else (text or "")).encode("utf-8")
    response.encoding = "utf-8"
    response.headers.update(headers or {})
    response.url = url
    response.reason = "OK" if status_code < 400 else "Error"
    # Body is already in memory, so iter_content replays it
    response._content_consumed = True
    return response


class TricklingResponse(requests.Response):
    """200 response whose body arrives one byte per `delay` seconds on `clock`."""

    def __init__(self, body: bytes, clock: FakeClock, delay: float):
        super().__init__()
        self.status_code = 200
        self.encoding = "utf-8"
        self.body = body
        self.clock = clock
        self.delay = delay
        self.closed = False

    def iter_content(self, chunk_size=1, decode_unicode=False):
        for i in range(len(self.body)):
            self.clock.advance(self.delay)
            yield self.body[i:i + 1]

    def close(self):
        self.closed = True


class StalledResponse(requests.Response):
    """200 response that stops sending mid-body until it is closed."""

    def __init__(self, stall_s: float = 5.0):
        super().__init__()
        self.status_code = 200
        self.encoding = "utf-8"
        self.stall_s = stall_s
        self.released = threading.Event()

    def iter_content(self, chunk_size=1, decode_unicode=False):
        yield b'{"status": '
        self.released.wait(timeout=self.stall_s)
        yield b'"ZERO_RESULTS"}'

    def close(self):
        self.released.set()


class FakeSession:
    """Stands in for requests.Session: replays queued responses or raises queued exceptions."""

    def __init__(self, *replies):
        self.replies = deque(replies)
        self.calls: list[dict] = []
        self.closed = False

    def queue(self, *replies) -> None:
        self.replies.extend(replies)

    def get(self, url, params=None, headers=None, timeout=None, stream=False):
        self.calls.append({
            "url": url,
            "params": dict(params or {}),
            "headers": dict(headers or {}),
            "timeout": timeout,
            "stream": stream,
        })
        if not self.replies:
            raise AssertionError(f"Unexpected request to {url}")
        reply = self.replies.popleft()
        if isinstance(reply, BaseException):
            raise reply
        return reply

    def close(self) -> None:
        self.closed = True


class FakeProvider:
    """Scripted provider: returns queued outcomes (or raises queued exceptions)."""

    def __init__(self, provider_id, outcomes=(), configured=True, rate=10.0, burst=20):
        self.provider_id = provider_id
        self.outcomes = deque(outcomes)
        self.configured = configured
        self.rate = rate
        self.burst = burst
        self.calls: list[str] = []
        self.connection_tests = 0
        self.closed = False

    @property
    def descriptor(self) -> ProviderDescriptor:
        return ProviderDescriptor(
            id=self.provider_id,
            tokens_per_second=self.rate,
            burst_capacity=self.burst,
            timeout_ms=1000,
            configured=self.configured,
        )

    def is_configured(self) -> bool:
        return self.configured

    def resolve(self, address):
        self.calls.append(address)
        outcome = self.outcomes.popleft() if self.outcomes else ok(self.provider_id)
        if isinstance(outcome, BaseException):
            raise outcome
        if callable(outcome):
            return outcome(address)
        return outcome

    def resolve_batch(self, addresses):
        return [self.resolve(a) for a in addresses]

    def test_connection(self):
        self.connection_tests += 1
        return ConnectionTest(success=True, message="Connection successful", latency_ms=1.0)

    def close(self):
        self.closed = True


def ok(provider_id, lat=40.7580, lon=-73.9855):
    return GeocodeResult(
        latitude=lat,
        longitude=lon,
        precision=Precision.EXACT,
        provider_id=provider_id,
        formatted_address="Times Square, New York, NY, USA",
    )


def fail(provider_id, kind=ErrorKind.SERVER_ERROR, message="boom"):
    return failure(kind, message, provider_id)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def limiter(clock):
    return RateLimiter(clock=clock, sleep=clock.sleep)


@pytest.fixture
def isolated_env(monkeypatch, tmp_path):
    """Run with no geocoding variables set and no .env in the working directory."""
    for name in list(os.environ):
        if name.startswith("GEOCODING_") or name in {
            "GOOGLE_MAPS_API_KEY",
            "GOOGLE_GEOCODING_API_KEY",
            "MAPBOX_ACCESS_TOKEN",
            "MAPBOX_TOKEN",
        }:
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path
