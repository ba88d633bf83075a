"""
Provider orchestration: fallback between geocoding services and batches.

The orchestrator owns the configured providers, their rate limiters and
the fallback order. It is the single entry point the import pipeline
uses to resolve addresses.
"""

from __future__ import annotations

import time
import logging
from collections import Counter
from dataclasses import replace
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

import requests

from .base import GeocodingProvider
from .errors import failure, failure_from_exception
from .models import (
    BatchJob,
    ConnectionTest,
    ErrorKind,
    GeocodeFailure,
    GeocodeOutcome,
    ProviderDescriptor,
    ProviderHealth,
    ProviderStats,
    normalize_address,
)
from .providers import build_providers
from .throttling import RateLimiter
from ..settings import Settings, load_settings
from ..utils.errors import DuplicateProviderError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]

NO_PROVIDERS_MESSAGE = "No geocoding providers available"


class ProviderOrchestrator:
    """
    Sequences geocoding providers for single addresses and batches.

    For each address the providers are tried strictly one after another in
    the fallback order. Unconfigured providers are skipped, every call
    waits for a rate-limit token first, the first success wins, and any
    failure (retryable or not) moves on to the next provider. Batches are
    resolved one address at a time and keep the input order.

    Usage:
        orchestrator = ProviderOrchestrator.from_settings(load_settings())
        outcome = orchestrator.geocode("1600 Amphitheatre Pkwy, Mountain View, CA")
        outcomes = orchestrator.batch_geocode(addresses, on_progress=print)
    """

    def __init__(
        self,
        providers: Sequence[GeocodingProvider],
        rate_limiter: Optional[RateLimiter] = None,
        fallback_order: Optional[Sequence[str]] = None,
        preferred_provider_id: Optional[str] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            providers: Provider adapters; ids must be unique
            rate_limiter: Limiter to register providers in (a new one by default)
            fallback_order: Preferred default order of provider ids; registered
                providers missing from it are appended in registration order
            preferred_provider_id: Provider tried first when a call names none
        """
        self._providers: Dict[str, GeocodingProvider] = {}
        for provider in providers:
            if provider.provider_id in self._providers:
                raise DuplicateProviderError(provider.provider_id)
            self._providers[provider.provider_id] = provider

        self.descriptors: Dict[str, ProviderDescriptor] = {
            pid: provider.descriptor for pid, provider in self._providers.items()
        }

        self.rate_limiter = rate_limiter if rate_limiter is not None else RateLimiter()
        for pid, descriptor in self.descriptors.items():
            self.rate_limiter.register(pid, descriptor.tokens_per_second, descriptor.burst_capacity)

        self.default_order = self._build_default_order(fallback_order or [])
        self.preferred_provider_id = _clean_id(preferred_provider_id)
        self._usage: Dict[str, Counter] = {pid: Counter() for pid in self._providers}

        configured = [pid for pid, d in self.descriptors.items() if d.configured]
        logger.info(
            f"Initialized ProviderOrchestrator: order={self.default_order}, "
            f"configured={configured}, preferred={self.preferred_provider_id}"
        )

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        session: Optional[requests.Session] = None,
        rate_limiter: Optional[RateLimiter] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> "ProviderOrchestrator":
        """Build the enabled providers from settings and wrap them in an orchestrator."""
        settings = settings or load_settings()
        return cls(
            build_providers(settings, session=session, sleep=sleep),
            rate_limiter=rate_limiter,
            fallback_order=settings.fallback_order,
            preferred_provider_id=settings.preferred_provider,
        )

    def _build_default_order(self, fallback_order: Sequence[str]) -> List[str]:
        order: List[str] = []
        for pid in fallback_order:
            pid = _clean_id(pid)
            if pid in self._providers and pid not in order:
                order.append(pid)
            elif pid and pid not in self._providers:
                logger.debug(f"Fallback order names unregistered provider '{pid}'")
        order.extend(pid for pid in self._providers if pid not in order)
        return order

    @property
    def provider_ids(self) -> List[str]:
        return list(self._providers)

    def provider(self, provider_id: str) -> GeocodingProvider:
        return self._providers[provider_id]

    # --- Fallback -----------------------------------------------------------

    def fallback_order(self, preferred_provider_id: Optional[str] = None) -> List[str]:
        """
        Order in which providers are tried for one address.

        The preferred id (the argument, else the orchestrator default) moves
        to the front when it is a registered provider; the rest keep their
        configured relative order. Each registered id appears exactly once.
        """
        preferred = _clean_id(preferred_provider_id) or self.preferred_provider_id
        order = list(self.default_order)
        if preferred:
            if preferred in self._providers:
                order.remove(preferred)
                order.insert(0, preferred)
            else:
                logger.warning(f"Ignoring unknown preferred provider '{preferred}'")
        return order

    def _eligible(self, order: Iterable[str]) -> Iterator[GeocodingProvider]:
        for pid in order:
            provider = self._providers[pid]
            if not provider.is_configured():
                logger.debug(f"Skipping unconfigured provider {pid}")
                continue
            yield provider

    def _call(self, provider: GeocodingProvider, address: str) -> GeocodeOutcome:
        pid = provider.provider_id
        self._usage[pid]["requests"] += 1
        try:
            outcome = provider.resolve(address)
        except Exception as e:
            logger.exception(f"Provider {pid} raised instead of returning a failure")
            outcome = failure_from_exception(e, pid)
        self._usage[pid]["successes" if outcome.is_success() else "failures"] += 1
        return outcome

    def geocode(self, address: str, preferred_provider_id: Optional[str] = None) -> GeocodeOutcome:
        """
        Resolve one address, falling back across providers.

        Args:
            address: Free-text address
            preferred_provider_id: Provider to try first

        Returns:
            The first GeocodeResult, or the last provider's GeocodeFailure
            (earlier failures in its `attempts`), a validation failure for a
            blank address (no provider is called), or a non-retryable
            "no providers available" failure when no provider was eligible
        """
        if not normalize_address(address):
            return failure(ErrorKind.VALIDATION, "Address is required", code="empty_address")

        failures: List[GeocodeFailure] = []

        for provider in self._eligible(self.fallback_order(preferred_provider_id)):
            pid = provider.provider_id
            self.rate_limiter.acquire(pid)
            outcome = self._call(provider, address)

            if outcome.is_success():
                if failures:
                    logger.debug(f"Resolved with {pid} after {len(failures)} failed provider(s)")
                return outcome

            logger.warning(
                f"{pid} failed ({outcome.kind.value}, retryable={outcome.retryable}): {outcome.message}"
            )
            failures.append(outcome)

        if not failures:
            logger.warning(NO_PROVIDERS_MESSAGE)
            return failure(ErrorKind.CONFIGURATION, NO_PROVIDERS_MESSAGE, code="no_providers")

        last_error = failures[-1]
        if len(failures) > 1:
            last_error = replace(last_error, attempts=tuple(failures[:-1]))
        return last_error

    # --- Batches ------------------------------------------------------------

    def iter_geocode(
        self,
        addresses: Iterable[str],
        preferred_provider_id: Optional[str] = None,
    ) -> Iterator[Tuple[int, GeocodeOutcome]]:
        """
        Resolve addresses one at a time, yielding `(index, outcome)`.

        Nothing is resolved ahead of the consumer, so stopping the iteration
        stops the batch.
        """
        for index, address in enumerate(addresses):
            yield index, self.geocode(address, preferred_provider_id)

    def batch_geocode(
        self,
        addresses: Sequence[str],
        preferred_provider_id: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> List[GeocodeOutcome]:
        """
        Resolve addresses in input order.

        One address's failure never aborts the batch: its slot holds the
        GeocodeFailure. `on_progress(done, total)` runs after every address.
        """
        job = BatchJob(list(addresses))
        logger.info(f"Starting batch geocoding for {job.total} addresses")

        for _, outcome in self.iter_geocode(job.addresses, preferred_provider_id):
            job.record(outcome)
            if on_progress is not None:
                on_progress(job.cursor, job.total)

        summary = job.summary()
        by_provider = Counter(r.provider_id for r in job.results if r.is_success())
        logger.info(
            f"Batch geocoding complete: {summary['successful']}/{summary['total']} successful, "
            f"{summary['failed']} failed, provider usage={dict(by_provider)}"
        )
        return job.results

    # --- Observability ------------------------------------------------------

    def test_all_providers(self) -> Dict[str, ProviderHealth]:
        """Run a connection test against every configured provider."""
        report: Dict[str, ProviderHealth] = {}
        for pid, provider in self._providers.items():
            configured = provider.is_configured()
            connection_test = None
            if configured:
                try:
                    self.rate_limiter.acquire(pid)
                    connection_test = provider.test_connection()
                except Exception as e:
                    logger.warning(f"Connection test for {pid} raised: {e}")
                    connection_test = ConnectionTest(success=False, message=f"Test failed: {e}")
            report[pid] = ProviderHealth(
                available=True,
                configured=configured,
                connection_test=connection_test,
            )
        return report

    def get_provider_stats(self) -> Dict[str, ProviderStats]:
        """Merge static provider metadata with live rate limiter state and usage counts."""
        stats: Dict[str, ProviderStats] = {}
        for pid, provider in self._providers.items():
            descriptor = self.descriptors[pid]
            status = self.rate_limiter.status(pid)
            usage = self._usage[pid]
            stats[pid] = ProviderStats(
                configured=provider.is_configured(),
                rate_limit=descriptor.tokens_per_second,
                burst_capacity=descriptor.burst_capacity,
                current_tokens=status.current_tokens,
                time_until_next_token=status.time_until_next_token,
                requests=usage["requests"],
                successes=usage["successes"],
                failures=usage["failures"],
            )
        return stats

    def reset_rate_limiters(self) -> None:
        self.rate_limiter.reset_all()

    def reset_stats(self) -> None:
        for usage in self._usage.values():
            usage.clear()

    def get_configuration_summary(self) -> Dict[str, Any]:
        return {
            "available_providers": [pid for pid, p in self._providers.items() if p.is_configured()],
            "preferred_provider": self.preferred_provider_id,
            "fallback_order": list(self.default_order),
            "rate_limits": {pid: d.tokens_per_second for pid, d in self.descriptors.items()},
        }

    # --- Lifecycle ----------------------------------------------------------

    def close(self) -> None:
        """Release every provider's HTTP resources."""
        for pid, provider in self._providers.items():
            try:
                provider.close()
            except Exception as e:
                logger.warning(f"Closing provider {pid} failed: {e}")

    def __enter__(self) -> "ProviderOrchestrator":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


def _clean_id(provider_id: Optional[str]) -> Optional[str]:
    if provider_id is None:
        return None
    cleaned = provider_id.strip()
    return cleaned or None
