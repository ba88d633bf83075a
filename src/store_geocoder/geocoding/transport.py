"""
Shared plumbing for provider adapters.

Adapters compose a JsonTransport for HTTP and use the free functions
here for result building, sequential batches and connection tests.
"""

from __future__ import annotations

import json
import time
import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Any, Callable, Iterable, List, Mapping, Optional

import requests

from .errors import failure, failure_from_exception, failure_from_response
from .models import (
    ConnectionTest,
    ErrorKind,
    GeocodeFailure,
    GeocodeOutcome,
    GeocodeResult,
    Precision,
    valid_coordinates,
)

logger = logging.getLogger(__name__)

# Well-known address used to check provider connectivity
TEST_ADDRESS = "Times Square, New York, NY, USA"

DEFAULT_USER_AGENT = "store-geocoder/0.1"

# Small reads so a trickling body is checked against the deadline often
CHUNK_SIZE = 256


class JsonTransport:
    """
    HTTP GET bounded by a per-provider deadline that returns parsed JSON.

    `requests`' own `timeout=` only limits the connect step and each socket
    read, so the whole exchange (headers and body) runs on a worker thread
    and is abandoned once `timeout_s` has elapsed: the response is closed
    and a retryable timeout failure is returned.

    Transport problems are never raised: a non-2xx status, a timeout, a
    connection error or an unparseable body comes back as a classified
    GeocodeFailure.
    """

    def __init__(
        self,
        provider_id: str,
        timeout_s: float,
        session: Optional[requests.Session] = None,
        headers: Optional[Mapping[str, str]] = None,
        clock: Callable[[], float] = time.perf_counter,
    ):
        self.provider_id = provider_id
        self.timeout_s = timeout_s
        self.session = session or requests.Session()
        self.clock = clock
        self.headers = {"Accept": "application/json", "User-Agent": DEFAULT_USER_AGENT}
        if headers:
            self.headers.update(headers)
        # A second worker keeps one abandoned request from delaying the next
        self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix=f"{provider_id}-http")

    def get_json(self, url: str, params: Optional[Mapping[str, Any]] = None) -> Any | GeocodeFailure:
        """
        Issue one GET request and read its body before the deadline.

        Returns:
            The decoded JSON body, or a GeocodeFailure
        """
        # Params carry API keys, so only the URL is logged
        logger.debug(f"{self.provider_id} GET {url} (timeout={self.timeout_s}s)")
        deadline = self.clock() + self.timeout_s
        opened: List[requests.Response] = []
        future = self._executor.submit(self._fetch, url, params, deadline, opened)

        try:
            response, body = future.result(timeout=self.timeout_s)
        except FutureTimeout:
            for response in opened:
                response.close()
            return self._deadline_exceeded()
        except requests.RequestException as e:
            logger.warning(f"{self.provider_id} request failed: {type(e).__name__}")
            return failure_from_exception(e, self.provider_id)

        if body is None:
            return self._deadline_exceeded()

        if not response.ok:
            return failure_from_response(response, self.provider_id, body=body)

        try:
            return json.loads(body)
        except ValueError as e:
            return failure_from_exception(e, self.provider_id)

    def _fetch(
        self,
        url: str,
        params: Optional[Mapping[str, Any]],
        deadline: float,
        opened: List[requests.Response],
    ) -> tuple[requests.Response, Optional[bytes]]:
        """Run the request and read the body; `None` body means the deadline passed."""
        response = self.session.get(
            url,
            params=params,
            headers=self.headers,
            timeout=self.timeout_s,
            stream=True,
        )
        opened.append(response)
        with response:
            chunks = []
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                chunks.append(chunk)
                if self.clock() > deadline:
                    return response, None
        return response, b"".join(chunks)

    def _deadline_exceeded(self) -> GeocodeFailure:
        logger.warning(f"{self.provider_id} request exceeded {self.timeout_s}s")
        return failure(
            ErrorKind.TIMEOUT,
            "Request timeout",
            provider_id=self.provider_id,
            code="deadline_exceeded",
        )

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
        self.session.close()


def build_result(
    provider_id: str,
    latitude: Any,
    longitude: Any,
    precision: Precision,
    formatted_address: Optional[str] = None,
    raw: Optional[dict[str, Any]] = None,
) -> GeocodeOutcome:
    """
    Turn a provider candidate into a GeocodeResult.

    Missing, non-numeric or out-of-range coordinates yield a
    non-retryable parse failure instead.
    """
    if not valid_coordinates(latitude, longitude):
        return failure(
            ErrorKind.PARSE_ERROR,
            f"Invalid coordinates in response: lat={latitude!r}, lon={longitude!r}",
            provider_id=provider_id,
            code="invalid_coordinates",
        )
    return GeocodeResult(
        latitude=float(latitude),
        longitude=float(longitude),
        precision=precision,
        provider_id=provider_id,
        formatted_address=formatted_address,
        raw=raw or {},
    )


def resolve_sequentially(
    resolve: Callable[[str], GeocodeOutcome],
    addresses: Iterable[str],
    pause_s: float,
    provider_id: str,
    sleep: Callable[[float], None] = time.sleep,
) -> List[GeocodeOutcome]:
    """
    Resolve addresses one at a time, pausing between requests.

    Results keep the input order. A raising `resolve` only fails its own
    address.
    """
    results: List[GeocodeOutcome] = []
    for i, address in enumerate(addresses):
        if i and pause_s > 0:
            sleep(pause_s)
        try:
            results.append(resolve(address))
        except Exception as e:
            logger.exception(f"{provider_id} raised while resolving address #{i}")
            results.append(failure_from_exception(e, provider_id))
    return results


def run_connection_test(
    provider_id: str,
    configured: bool,
    resolve: Callable[[str], GeocodeOutcome],
    test_address: str = TEST_ADDRESS,
    clock: Callable[[], float] = time.perf_counter,
) -> ConnectionTest:
    """Geocode a known address and time it."""
    if not configured:
        return ConnectionTest(success=False, message=f"{provider_id} is not configured")

    start = clock()
    outcome = resolve(test_address)
    latency_ms = round((clock() - start) * 1000.0, 1)

    if isinstance(outcome, GeocodeFailure):
        return ConnectionTest(
            success=False,
            message=f"Test failed: {outcome.message}",
            latency_ms=latency_ms,
        )
    return ConnectionTest(success=True, message="Connection successful", latency_ms=latency_ms)
