from __future__ import annotations

import pytest

from conftest import FakeClock
from store_geocoder.geocoding.throttling import RateLimiter, TokenBucket
from store_geocoder.utils.errors import UnknownProviderError


def make_bucket(clock, rate=2.0, capacity=3):
    return TokenBucket(rate, capacity=capacity, clock=clock, sleep=clock.sleep)


def test_new_bucket_starts_full(clock):
    bucket = make_bucket(clock)

    status = bucket.status()

    assert status.current_tokens == 3
    assert status.time_until_next_token == 0.0


def test_capacity_defaults_to_twice_rate(clock):
    assert TokenBucket(5, clock=clock, sleep=clock.sleep).capacity == 10
    assert TokenBucket(0.2, clock=clock, sleep=clock.sleep).capacity == 1


@pytest.mark.parametrize("rate, capacity", [(0, None), (-1, None), (1, 0)])
def test_invalid_bucket_parameters_raise(clock, rate, capacity):
    with pytest.raises(ValueError):
        TokenBucket(rate, capacity=capacity, clock=clock, sleep=clock.sleep)


def test_acquire_with_tokens_does_not_wait(clock):
    bucket = make_bucket(clock)

    waits = [bucket.acquire() for _ in range(3)]

    assert waits == [0.0, 0.0, 0.0]
    assert clock.sleeps == []
    assert bucket.status().current_tokens == pytest.approx(0.0)


def test_acquire_on_empty_bucket_waits_for_next_token(clock):
    bucket = make_bucket(clock, rate=2.0, capacity=1)
    bucket.acquire()

    waited = bucket.acquire()

    assert waited == pytest.approx(0.5)
    assert clock.sleeps == [pytest.approx(0.5)]


def test_acquire_with_partial_token_waits_at_least_the_shortfall(clock):
    bucket = make_bucket(clock, rate=4.0, capacity=1)
    bucket.acquire()
    clock.advance(0.1)  # 0.4 tokens earned

    waited = bucket.acquire()

    assert waited >= (1 - 0.4) / 4.0 - 1e-9
    assert waited == pytest.approx(0.15)


def test_waiting_callers_queue_behind_reserved_tokens():
    clock = FakeClock()
    # A sleep that does not advance time models two callers racing for one bucket
    sleeps = []
    bucket = TokenBucket(1.0, capacity=1, clock=clock, sleep=sleeps.append)
    bucket.acquire()

    first = bucket.acquire()
    second = bucket.acquire()

    assert first == pytest.approx(1.0)
    assert second == pytest.approx(2.0)
    assert bucket.state.tokens == 0.0


def test_tokens_stay_within_bounds_over_mixed_sequence(clock):
    bucket = make_bucket(clock, rate=3.0, capacity=4)
    steps = [0.0, 0.1, 5.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.33, 0.01, 2.0, 0.0]

    for elapsed in steps:
        clock.advance(elapsed)
        bucket.acquire()
        assert 0.0 <= bucket.state.tokens <= bucket.capacity
        assert 0.0 <= bucket.status().current_tokens <= bucket.capacity

    clock.advance(100)
    assert bucket.status().current_tokens == 4


def test_status_does_not_mutate_bucket(clock):
    bucket = make_bucket(clock, rate=1.0, capacity=2)
    bucket.acquire()
    bucket.acquire()
    clock.advance(0.25)
    before = (bucket.state.tokens, bucket.state.last_refill)

    status = bucket.status()

    assert status.current_tokens == pytest.approx(0.25)
    assert status.time_until_next_token == pytest.approx(0.75)
    assert (bucket.state.tokens, bucket.state.last_refill) == before


def test_reset_refills_to_capacity(clock):
    bucket = make_bucket(clock)
    for _ in range(5):
        bucket.acquire()

    bucket.reset()

    assert bucket.status().current_tokens == bucket.capacity


def test_rate_limiter_registers_and_acquires_per_provider(limiter, clock):
    limiter.register("slow", 1.0, 1)
    limiter.register("fast", 10.0)

    assert limiter.capacity("fast") == 20
    assert "slow" in limiter and len(limiter) == 2
    assert limiter.acquire("slow") == 0.0
    assert limiter.acquire("fast") == 0.0
    assert limiter.acquire("slow") == pytest.approx(1.0)
    assert clock.sleeps == [pytest.approx(1.0)]


def test_rate_limiter_unknown_provider_raises(limiter):
    limiter.register("google", 10.0)

    with pytest.raises(UnknownProviderError) as excinfo:
        limiter.acquire("bing")

    assert excinfo.value.provider_id == "bing"
    assert "bing" in str(excinfo.value)
    with pytest.raises(KeyError):
        limiter.status("bing")


def test_reset_all_restores_every_bucket(limiter):
    limiter.register("a", 1.0, 2)
    limiter.register("b", 5.0, 3)
    for pid in ("a", "b"):
        for _ in range(3):
            limiter.acquire(pid)

    limiter.reset_all()

    statuses = limiter.status_all()
    assert statuses["a"].current_tokens == 2
    assert statuses["b"].current_tokens == 3


def test_register_replaces_existing_bucket(limiter):
    limiter.register("a", 1.0, 1)
    limiter.acquire("a")

    limiter.register("a", 2.0, 4)

    assert limiter.capacity("a") == 4
    assert limiter.status("a").current_tokens == 4
    assert limiter.provider_ids == ["a"]


def test_rate_limiter_default_clock_is_real():
    limiter = RateLimiter()
    limiter.register("x", 100.0, 1)

    assert limiter.acquire("x") == 0.0
