from __future__ import annotations

import pytest
import requests

from conftest import FakeClock, FakeSession, TricklingResponse, fail, make_response, ok
from store_geocoder.geocoding.models import ErrorKind
from store_geocoder.geocoding.transport import JsonTransport, resolve_sequentially, run_connection_test


def test_get_json_returns_body_and_sends_headers():
    session = FakeSession(make_response(200, {"hello": "world"}))
    transport = JsonTransport("demo", timeout_s=3.0, session=session, headers={"X-Client": "tests"})

    body = transport.get_json("https://example.test/search", params={"q": "x"})

    assert body == {"hello": "world"}
    call = session.calls[0]
    assert call["timeout"] == 3.0
    assert call["headers"]["Accept"] == "application/json"
    assert call["headers"]["X-Client"] == "tests"


def test_get_json_connection_error_is_server_error():
    transport = JsonTransport("demo", timeout_s=1.0, session=FakeSession(requests.exceptions.ConnectionError("refused")))

    result = transport.get_json("https://example.test/")

    assert result.kind is ErrorKind.SERVER_ERROR
    assert result.retryable is True
    assert result.provider_id == "demo"


def test_get_json_streams_the_body():
    session = FakeSession(make_response(200, {"hello": "world"}))

    JsonTransport("demo", timeout_s=3.0, session=session).get_json("https://example.test/")

    assert session.calls[0]["stream"] is True


def test_slow_body_is_cut_off_at_the_deadline():
    clock = FakeClock()
    response = TricklingResponse(b'{"status": "OK", "results": []}', clock, delay=0.3)
    transport = JsonTransport("google", timeout_s=0.5, session=FakeSession(response), clock=clock)

    result = transport.get_json("https://example.test/")

    assert result.kind is ErrorKind.TIMEOUT
    assert result.retryable is True
    assert result.code == "deadline_exceeded"
    assert response.closed
    # Reading stopped at the first chunk past the deadline
    assert clock.now == pytest.approx(1000.6)


def test_trickling_body_within_deadline_is_returned():
    clock = FakeClock()
    response = TricklingResponse(b'{"ok": true}', clock, delay=0.01)
    transport = JsonTransport("demo", timeout_s=1.0, session=FakeSession(response), clock=clock)

    assert transport.get_json("https://example.test/") == {"ok": True}
    assert response.closed


def test_close_closes_session():
    session = FakeSession()

    JsonTransport("demo", timeout_s=1.0, session=session).close()

    assert session.closed


def test_resolve_sequentially_contains_exceptions():
    def resolve(address):
        if address == "bad":
            raise ValueError("unparseable")
        return ok("demo")

    sleeps = []
    results = resolve_sequentially(resolve, ["a", "bad", "c"], pause_s=0.5, provider_id="demo", sleep=sleeps.append)

    assert [r.is_success() for r in results] == [True, False, True]
    assert results[1].kind is ErrorKind.PARSE_ERROR
    assert sleeps == [0.5, 0.5]


def test_connection_test_measures_latency():
    clock = FakeClock()

    def resolve(address):
        clock.advance(0.1234)
        return ok("demo")

    result = run_connection_test("demo", True, resolve, clock=clock)

    assert result.success
    assert result.latency_ms == 123.4


def test_connection_test_reports_failure_message():
    result = run_connection_test("demo", True, lambda address: fail("demo", message="quota"))

    assert not result.success
    assert result.message == "Test failed: quota"
