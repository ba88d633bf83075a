"""
Nominatim (OpenStreetMap) search adapter.

Reference: https://nominatim.org/release-docs/latest/api/Search/

The public instance requires an identifying User-Agent and allows at
most one request per second.
"""

import time
import logging
from typing import Any, Callable, List, Optional

import requests

from ..errors import failure
from ..models import (
    ConnectionTest,
    ErrorKind,
    GeocodeFailure,
    GeocodeOutcome,
    Precision,
    ProviderDescriptor,
)
from ..normalizers import AddressNormalizer
from ..transport import JsonTransport, build_result, resolve_sequentially, run_connection_test
from ...settings import NominatimSettings

logger = logging.getLogger(__name__)


def nominatim_precision(place: dict[str, Any]) -> Precision:
    """Derive precision from the OSM category/type and place_rank of a hit."""
    category = place.get("category") or place.get("class")
    category = category if isinstance(category, str) else None
    place_type = place.get("type")
    place_type = place_type if isinstance(place_type, str) else None

    if place_type == "house" or category == "building":
        return Precision.EXACT
    if category == "highway":
        return Precision.GEOMETRIC_CENTER

    try:
        rank = int(place.get("place_rank"))
    except (TypeError, ValueError):
        rank = None
    if rank is not None:
        if rank >= 30:
            return Precision.EXACT
        if rank >= 26:
            return Precision.GEOMETRIC_CENTER
        return Precision.APPROXIMATE

    if category in {"place", "boundary"}:
        return Precision.APPROXIMATE
    return Precision.UNKNOWN


class NominatimGeocoder:
    """Nominatim geocoding provider. Needs no key, only a User-Agent."""

    provider_id = "nominatim"

    def __init__(
        self,
        settings: Optional[NominatimSettings] = None,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings or NominatimSettings()
        self.user_agent = self.settings.user_agent.strip()
        self.normalizer = AddressNormalizer()
        self.sleep = sleep
        self.transport = JsonTransport(
            self.provider_id,
            timeout_s=self.settings.timeout_ms / 1000.0,
            session=session,
            headers={"User-Agent": self.user_agent} if self.user_agent else None,
        )
        logger.info(
            f"Initialized NominatimGeocoder: {self.settings.base_url}, "
            f"configured={self.is_configured()}, timeout={self.settings.timeout_ms}ms"
        )

    @property
    def descriptor(self) -> ProviderDescriptor:
        return ProviderDescriptor(
            id=self.provider_id,
            tokens_per_second=self.settings.rate_limit_per_second,
            burst_capacity=self.settings.burst,
            timeout_ms=self.settings.timeout_ms,
            configured=self.is_configured(),
            base_url=self.settings.base_url,
        )

    def is_configured(self) -> bool:
        return bool(self.user_agent)

    def resolve(self, address: str) -> GeocodeOutcome:
        query = self.normalizer.normalize(address)
        if not query:
            return failure(ErrorKind.VALIDATION, "Address is required", self.provider_id)
        if not self.is_configured():
            return failure(ErrorKind.CONFIGURATION, "Nominatim User-Agent not configured", self.provider_id)

        params = {
            "q": query,
            "format": "jsonv2",
            "limit": 1,
            "addressdetails": 0,
            "accept-language": self.settings.language,
        }
        if self.settings.country_codes:
            params["countrycodes"] = self.settings.country_codes

        endpoint = f"{self.settings.base_url.rstrip('/')}/search"
        payload = self.transport.get_json(endpoint, params=params)
        if isinstance(payload, GeocodeFailure):
            return payload
        return self._parse(payload)

    def _parse(self, payload: Any) -> GeocodeOutcome:
        if isinstance(payload, dict) and "error" in payload:
            error = payload["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            return failure(ErrorKind.UNKNOWN, f"Nominatim error: {message}", self.provider_id)
        if not isinstance(payload, list):
            return failure(ErrorKind.PARSE_ERROR, "Unexpected response shape", self.provider_id)
        if not payload:
            return failure(ErrorKind.NOT_FOUND, "No results found for address", self.provider_id)

        best = payload[0]
        if not isinstance(best, dict):
            return failure(ErrorKind.PARSE_ERROR, "Unexpected result shape", self.provider_id)
        return build_result(
            self.provider_id,
            best.get("lat"),
            best.get("lon"),
            nominatim_precision(best),
            formatted_address=best.get("display_name"),
            raw=best,
        )

    def resolve_batch(self, addresses: List[str]) -> List[GeocodeOutcome]:
        return resolve_sequentially(
            self.resolve,
            addresses,
            pause_s=self.settings.batch_pause_ms / 1000.0,
            provider_id=self.provider_id,
            sleep=self.sleep,
        )

    def test_connection(self) -> ConnectionTest:
        return run_connection_test(self.provider_id, self.is_configured(), self.resolve)

    def close(self) -> None:
        self.transport.close()
