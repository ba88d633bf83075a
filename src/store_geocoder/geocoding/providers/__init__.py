"""
Concrete geocoding provider adapters.

- GoogleGeocoder: Google Maps Geocoding API (API key)
- MapboxGeocoder: Mapbox Geocoding v5 (access token)
- NominatimGeocoder: OpenStreetMap Nominatim (User-Agent)
"""

import time
from typing import Callable, List, Optional

import requests

from .google import GoogleGeocoder, GOOGLE_STATUS_KINDS, google_precision
from .mapbox import MapboxGeocoder, mapbox_precision
from .nominatim import NominatimGeocoder, nominatim_precision
from ..base import GeocodingProvider
from ...settings import Settings

# Registration order used when a provider is missing from the fallback order
PROVIDER_CLASSES = (GoogleGeocoder, MapboxGeocoder, NominatimGeocoder)


def build_providers(
    settings: Settings,
    session: Optional[requests.Session] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> List[GeocodingProvider]:
    """Instantiate every enabled provider from settings."""
    providers: List[GeocodingProvider] = []
    for provider_cls in PROVIDER_CLASSES:
        provider_settings = settings.provider(provider_cls.provider_id)
        if not provider_settings.enabled:
            continue
        providers.append(provider_cls(provider_settings, session=session, sleep=sleep))
    return providers


__all__ = [
    "GoogleGeocoder",
    "MapboxGeocoder",
    "NominatimGeocoder",
    "GOOGLE_STATUS_KINDS",
    "google_precision",
    "mapbox_precision",
    "nominatim_precision",
    "PROVIDER_CLASSES",
    "build_providers",
]
