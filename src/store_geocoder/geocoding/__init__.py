"""
- Models: Data structures (GeocodeRequest, GeocodeResult, GeocodeFailure, ...)
- Base classes: Normalizer ABC and the GeocodingProvider protocol
- Errors: Failure taxonomy and classification
- Normalizers: Address clean-up before querying
- Throttling: Per-provider token bucket rate limiting
- Transport: Shared HTTP and batching helpers for adapters
- Providers: Google, Mapbox and Nominatim adapters
- Orchestrator: Provider fallback and batch geocoding
"""

from .models import (
    Precision,
    ErrorKind,
    AddressComponents,
    GeocodeRequest,
    GeocodeResult,
    GeocodeFailure,
    GeocodeOutcome,
    ProviderDescriptor,
    BucketState,
    BucketStatus,
    ConnectionTest,
    ProviderHealth,
    ProviderStats,
    BatchJob,
    normalize_address,
    valid_coordinates,
)

from .base import (
    Normalizer,
    GeocodingProvider,
)

from .errors import (
    failure,
    classify_status,
    classify_code,
    classify_exception,
    failure_from_exception,
    failure_from_response,
)

from .normalizers import (
    AddressNormalizer,
)

from .throttling import (
    TokenBucket,
    RateLimiter,
)

from .transport import (
    JsonTransport,
    build_result,
    resolve_sequentially,
    run_connection_test,
)

from .providers import (
    GoogleGeocoder,
    MapboxGeocoder,
    NominatimGeocoder,
    build_providers,
)

from .orchestrator import (
    ProviderOrchestrator,
    NO_PROVIDERS_MESSAGE,
)

__all__ = [
    # Models
    "Precision",
    "ErrorKind",
    "AddressComponents",
    "GeocodeRequest",
    "GeocodeResult",
    "GeocodeFailure",
    "GeocodeOutcome",
    "ProviderDescriptor",
    "BucketState",
    "BucketStatus",
    "ConnectionTest",
    "ProviderHealth",
    "ProviderStats",
    "BatchJob",
    "normalize_address",
    "valid_coordinates",
    # Base classes
    "Normalizer",
    "GeocodingProvider",
    # Errors
    "failure",
    "classify_status",
    "classify_code",
    "classify_exception",
    "failure_from_exception",
    "failure_from_response",
    # Normalizers
    "AddressNormalizer",
    # Throttling
    "TokenBucket",
    "RateLimiter",
    # Transport
    "JsonTransport",
    "build_result",
    "resolve_sequentially",
    "run_connection_test",
    # Providers
    "GoogleGeocoder",
    "MapboxGeocoder",
    "NominatimGeocoder",
    "build_providers",
    # Orchestrator
    "ProviderOrchestrator",
    "NO_PROVIDERS_MESSAGE",
]
