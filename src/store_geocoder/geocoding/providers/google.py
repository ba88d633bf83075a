"""
Google Maps Geocoding API adapter.

Reference: https://developers.google.com/maps/documentation/geocoding/requests-geocoding
"""

import time
import logging
from typing import Any, Callable, List, Mapping, Optional

import requests

from ..errors import classify_code, failure
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
from ...settings import GoogleSettings

logger = logging.getLogger(__name__)

# Values of the response's top-level "status" field
GOOGLE_STATUS_KINDS: Mapping[str, ErrorKind] = {
    "ZERO_RESULTS": ErrorKind.NOT_FOUND,
    "OVER_QUERY_LIMIT": ErrorKind.RATE_LIMITED,
    "OVER_DAILY_LIMIT": ErrorKind.RATE_LIMITED,
    "REQUEST_DENIED": ErrorKind.CONFIGURATION,
    "INVALID_REQUEST": ErrorKind.VALIDATION,
    "UNKNOWN_ERROR": ErrorKind.SERVER_ERROR,
}

_LOCATION_TYPE_PRECISION: Mapping[str, Precision] = {
    "ROOFTOP": Precision.EXACT,
    "RANGE_INTERPOLATED": Precision.INTERPOLATED,
    "GEOMETRIC_CENTER": Precision.GEOMETRIC_CENTER,
    "APPROXIMATE": Precision.APPROXIMATE,
}

# Result "types", most precise first
_TYPE_PRECISION: List[tuple[str, Precision]] = [
    ("street_address", Precision.EXACT),
    ("premise", Precision.EXACT),
    ("route", Precision.GEOMETRIC_CENTER),
    ("intersection", Precision.GEOMETRIC_CENTER),
    ("neighborhood", Precision.APPROXIMATE),
    ("postal_code", Precision.APPROXIMATE),
    ("locality", Precision.APPROXIMATE),
    ("administrative_area_level_1", Precision.APPROXIMATE),
    ("country", Precision.APPROXIMATE),
]


def google_precision(result: dict[str, Any]) -> Precision:
    """Derive precision from geometry.location_type, falling back to result types."""
    geometry = result.get("geometry")
    location_type = geometry.get("location_type") if isinstance(geometry, dict) else None
    if isinstance(location_type, str) and location_type in _LOCATION_TYPE_PRECISION:
        return _LOCATION_TYPE_PRECISION[location_type]
    types = result.get("types")
    if not isinstance(types, list):
        return Precision.UNKNOWN
    for type_name, precision in _TYPE_PRECISION:
        if type_name in types:
            return precision
    return Precision.UNKNOWN


class GoogleGeocoder:
    """
    Google Maps geocoding provider.

    Requires an API key. Google has no batch endpoint in the standard
    API, so batches are resolved sequentially.
    """

    provider_id = "google"

    def __init__(
        self,
        settings: Optional[GoogleSettings] = None,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings or GoogleSettings()
        self.api_key = (self.settings.api_key or "").strip()
        self.normalizer = AddressNormalizer()
        self.sleep = sleep
        self.transport = JsonTransport(
            self.provider_id,
            timeout_s=self.settings.timeout_ms / 1000.0,
            session=session,
        )
        logger.info(
            f"Initialized GoogleGeocoder: {self.settings.base_url}, "
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
        return bool(self.api_key)

    def resolve(self, address: str) -> GeocodeOutcome:
        """
        Geocode a single address.

        Returns:
            GeocodeResult for the first candidate, or a classified GeocodeFailure
        """
        query = self.normalizer.normalize(address)
        if not query:
            return failure(ErrorKind.VALIDATION, "Address is required", self.provider_id)
        if not self.is_configured():
            return failure(ErrorKind.CONFIGURATION, "Google Maps API key not configured", self.provider_id)

        params = {"address": query, "key": self.api_key, "language": self.settings.language}
        if self.settings.region:
            params["region"] = self.settings.region

        payload = self.transport.get_json(self.settings.base_url, params=params)
        if isinstance(payload, GeocodeFailure):
            return payload
        return self._parse(payload)

    def _parse(self, payload: Any) -> GeocodeOutcome:
        if not isinstance(payload, dict):
            return failure(ErrorKind.PARSE_ERROR, "Unexpected response shape", self.provider_id)

        status = payload.get("status")
        if status != "OK":
            kind = classify_code(status, GOOGLE_STATUS_KINDS)
            detail = payload.get("error_message")
            message = f"Google status {status}" + (f": {detail}" if detail else "")
            return failure(kind, message, self.provider_id, code=None if status is None else str(status))

        results = payload.get("results") or []
        if not isinstance(results, list):
            return failure(ErrorKind.PARSE_ERROR, "Unexpected response shape", self.provider_id)
        if not results:
            return failure(ErrorKind.NOT_FOUND, "No results found for address", self.provider_id)

        best = results[0]
        geometry = best.get("geometry") if isinstance(best, dict) else None
        location = geometry.get("location") if isinstance(geometry, dict) else None
        if not isinstance(location, dict):
            return failure(ErrorKind.PARSE_ERROR, "Unexpected result shape", self.provider_id)
        return build_result(
            self.provider_id,
            location.get("lat"),
            location.get("lng"),
            google_precision(best),
            formatted_address=best.get("formatted_address"),
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
