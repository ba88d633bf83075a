"""
Mapbox Geocoding API (v5, mapbox.places) adapter.

Reference: https://docs.mapbox.com/api/search/geocoding-v5/
"""

import time
import logging
from typing import Any, Callable, List, Mapping, Optional
from urllib.parse import quote

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
from ...settings import MapboxSettings

logger = logging.getLogger(__name__)

# properties.accuracy on address features
_ACCURACY_PRECISION: Mapping[str, Precision] = {
    "rooftop": Precision.EXACT,
    "parcel": Precision.EXACT,
    "point": Precision.EXACT,
    "interpolated": Precision.INTERPOLATED,
    "intersection": Precision.GEOMETRIC_CENTER,
    "street": Precision.GEOMETRIC_CENTER,
    "approximate": Precision.APPROXIMATE,
}

# place_type when no accuracy is reported
_PLACE_TYPE_PRECISION: Mapping[str, Precision] = {
    "address": Precision.INTERPOLATED,
    "poi": Precision.EXACT,
    "neighborhood": Precision.APPROXIMATE,
    "locality": Precision.APPROXIMATE,
    "place": Precision.APPROXIMATE,
    "postcode": Precision.APPROXIMATE,
    "district": Precision.APPROXIMATE,
    "region": Precision.APPROXIMATE,
    "country": Precision.APPROXIMATE,
}


def mapbox_precision(feature: dict[str, Any]) -> Precision:
    properties = feature.get("properties")
    accuracy = properties.get("accuracy") if isinstance(properties, dict) else None
    if isinstance(accuracy, str) and accuracy in _ACCURACY_PRECISION:
        return _ACCURACY_PRECISION[accuracy]
    place_types = feature.get("place_type")
    if not isinstance(place_types, list):
        return Precision.UNKNOWN
    for place_type in place_types:
        if isinstance(place_type, str) and place_type in _PLACE_TYPE_PRECISION:
            return _PLACE_TYPE_PRECISION[place_type]
    return Precision.UNKNOWN


class MapboxGeocoder:
    """Mapbox geocoding provider. Requires an access token."""

    provider_id = "mapbox"

    def __init__(
        self,
        settings: Optional[MapboxSettings] = None,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings or MapboxSettings()
        self.access_token = (self.settings.api_key or "").strip()
        self.normalizer = AddressNormalizer()
        self.sleep = sleep
        self.transport = JsonTransport(
            self.provider_id,
            timeout_s=self.settings.timeout_ms / 1000.0,
            session=session,
        )
        logger.info(
            f"Initialized MapboxGeocoder: {self.settings.base_url}, "
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
        return bool(self.access_token)

    def _endpoint(self, query: str) -> str:
        # The query is a path segment, so "/" and ";" must be encoded too
        return f"{self.settings.base_url.rstrip('/')}/mapbox.places/{quote(query, safe='')}.json"

    def resolve(self, address: str) -> GeocodeOutcome:
        query = self.normalizer.normalize(address)
        if not query:
            return failure(ErrorKind.VALIDATION, "Address is required", self.provider_id)
        if not self.is_configured():
            return failure(ErrorKind.CONFIGURATION, "Mapbox access token not configured", self.provider_id)

        params = {
            "access_token": self.access_token,
            "limit": 1,
            "language": self.settings.language,
        }
        if self.settings.country:
            params["country"] = self.settings.country

        payload = self.transport.get_json(self._endpoint(query), params=params)
        if isinstance(payload, GeocodeFailure):
            return payload
        return self._parse(payload)

    def _parse(self, payload: Any) -> GeocodeOutcome:
        if not isinstance(payload, dict) or "features" not in payload:
            return failure(ErrorKind.PARSE_ERROR, "Unexpected response shape", self.provider_id)

        features = payload.get("features") or []
        if not isinstance(features, list):
            return failure(ErrorKind.PARSE_ERROR, "Unexpected response shape", self.provider_id)
        if not features:
            return failure(ErrorKind.NOT_FOUND, "No results found for address", self.provider_id)

        best = features[0]
        if not isinstance(best, dict) or not isinstance(best.get("properties") or {}, dict):
            return failure(ErrorKind.PARSE_ERROR, "Unexpected result shape", self.provider_id)
        center = best.get("center") or []
        if not isinstance(center, list) or len(center) != 2:
            return failure(
                ErrorKind.PARSE_ERROR,
                f"Invalid coordinates in response: center={center!r}",
                self.provider_id,
                code="invalid_coordinates",
            )

        longitude, latitude = center
        return build_result(
            self.provider_id,
            latitude,
            longitude,
            mapbox_precision(best),
            formatted_address=best.get("place_name"),
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
