"""
Rate limiting for outbound geocoding requests.

One token bucket per provider keeps request rates under each service's
quota. Buckets are thread-safe; the clock and sleep functions are
injectable so callers (and tests) control how time passes.
"""

from __future__ import annotations

import time
import logging
import threading
from typing import Callable, Optional, Dict, List

from .models import BucketState, BucketStatus
from ..utils.errors import UnknownProviderError

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
Sleep = Callable[[float], None]


class TokenBucket:
    """
    Token bucket rate limiter.

    Maintains a bucket of "tokens" that refill at a specified rate
    (requests per second) up to `capacity`. Each request consumes one token.
    When the bucket is empty, `acquire` sleeps for exactly the time it takes
    to earn the next token.

    The bucket is committed to its post-wait state before sleeping: the
    token earned during the wait is reserved for the waiting caller by
    moving the refill clock forward, so `tokens` stays within
    [0, capacity] at every point.
    """

    def __init__(
        self,
        rate: float,
        capacity: Optional[int] = None,
        clock: Clock = time.perf_counter,
        sleep: Sleep = time.sleep,
    ):
        """
        Initialize token bucket.

        Args:
            rate: Tokens per second (i.e., requests per second allowed)
            capacity: Maximum bucket size (defaults to 2x rate)
            clock: Monotonic time source in seconds
            sleep: Function used to wait for a token
        """
        if rate <= 0:
            raise ValueError("rate must be > 0")
        if capacity is not None and capacity < 1:
            raise ValueError("capacity must be >= 1")

        self.rate = float(rate)
        self.capacity = capacity or max(1, int(rate * 2))
        self.clock = clock
        self.sleep = sleep
        self.lock = threading.Lock()
        self.state = BucketState(tokens=float(self.capacity), last_refill=self.clock())

    def _refill(self, now: float) -> None:
        elapsed = now - self.state.last_refill
        # A negative elapsed time means the next token is already reserved
        if elapsed > 0:
            self.state.tokens = min(self.capacity, self.state.tokens + elapsed * self.rate)
            self.state.last_refill = now

    def _wait_time(self, tokens: float, last_refill: float, now: float) -> float:
        reserved = max(0.0, last_refill - now)
        return reserved + (1.0 - tokens) / self.rate

    def acquire(self) -> float:
        """
        Take one token, sleeping until one is available.

        Returns:
            Seconds spent waiting (0.0 when a token was available)
        """
        with self.lock:
            now = self.clock()
            self._refill(now)

            if self.state.tokens >= 1:
                self.state.tokens -= 1
                return 0.0

            wait = self._wait_time(self.state.tokens, self.state.last_refill, now)
            self.state.tokens = 0.0
            self.state.last_refill = now + wait

        self.sleep(wait)
        return wait

    def status(self) -> BucketStatus:
        """Report current tokens and time to the next token without mutating the bucket."""
        with self.lock:
            now = self.clock()
            tokens = self.state.tokens
            last_refill = self.state.last_refill

        elapsed = now - last_refill
        if elapsed > 0:
            tokens = min(self.capacity, tokens + elapsed * self.rate)

        if tokens >= 1:
            return BucketStatus(current_tokens=tokens, time_until_next_token=0.0)
        return BucketStatus(
            current_tokens=tokens,
            time_until_next_token=self._wait_time(tokens, last_refill, now),
        )

    def reset(self) -> None:
        """Refill the bucket to capacity."""
        with self.lock:
            self.state = BucketState(tokens=float(self.capacity), last_refill=self.clock())


class RateLimiter:
    """
    Per-provider admission control.

    Holds one TokenBucket per registered provider id. Registration happens
    when the orchestrator is built; asking about an unregistered id is a
    programming error and raises UnknownProviderError.
    """

    def __init__(self, clock: Clock = time.perf_counter, sleep: Sleep = time.sleep):
        self.clock = clock
        self.sleep = sleep
        self._buckets: Dict[str, TokenBucket] = {}

    def register(
        self,
        provider_id: str,
        tokens_per_second: float,
        burst_capacity: Optional[int] = None,
    ) -> TokenBucket:
        """Create a full bucket for a provider, replacing any existing one."""
        bucket = TokenBucket(
            tokens_per_second,
            capacity=burst_capacity,
            clock=self.clock,
            sleep=self.sleep,
        )
        self._buckets[provider_id] = bucket
        logger.debug(
            f"Registered rate limit for {provider_id}: "
            f"{bucket.rate}/s, burst={bucket.capacity}"
        )
        return bucket

    def _bucket(self, provider_id: str) -> TokenBucket:
        try:
            return self._buckets[provider_id]
        except KeyError:
            raise UnknownProviderError(provider_id) from None

    def acquire(self, provider_id: str) -> float:
        """Take one token for `provider_id`, waiting if the bucket is empty."""
        waited = self._bucket(provider_id).acquire()
        if waited:
            logger.debug(f"Waited {waited:.3f}s for a {provider_id} token")
        return waited

    def status(self, provider_id: str) -> BucketStatus:
        return self._bucket(provider_id).status()

    def status_all(self) -> Dict[str, BucketStatus]:
        return {pid: bucket.status() for pid, bucket in self._buckets.items()}

    def capacity(self, provider_id: str) -> int:
        return self._bucket(provider_id).capacity

    def reset_all(self) -> None:
        """Reinitialize every bucket to full capacity."""
        for bucket in self._buckets.values():
            bucket.reset()
        logger.info(f"Reset {len(self._buckets)} rate limiter(s)")

    @property
    def provider_ids(self) -> List[str]:
        return list(self._buckets)

    def __contains__(self, provider_id: object) -> bool:
        return provider_id in self._buckets

    def __len__(self) -> int:
        return len(self._buckets)
