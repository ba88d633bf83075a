"""
Core data models for geocoding operations.

These immutable, frozen dataclasses serve as the contract between
the rate limiter, the provider adapters and the orchestrator.
"""

from dataclasses import dataclass, field
from enum import StrEnum
from math import isfinite
from typing import Any, Optional, List, Union
import re


_WHITESPACE = re.compile(r"\s+")


def normalize_address(address: Optional[str]) -> str:
    """
    Trim an address and collapse internal whitespace runs to single spaces.

    Examples:
        normalize_address("  12  Main St,\\n Springfield ")
        → "12 Main St, Springfield"
    """
    if not address:
        return ""
    return _WHITESPACE.sub(" ", str(address)).strip()


def valid_coordinates(latitude: Any, longitude: Any) -> bool:
    """Check that a lat/lon pair is numeric, finite and within geographic ranges."""
    try:
        lat = float(latitude)
        lon = float(longitude)
    except (TypeError, ValueError):
        return False
    if not (isfinite(lat) and isfinite(lon)):
        return False
    return -90 <= lat <= 90 and -180 <= lon <= 180


class Precision(StrEnum):
    """How exactly a geocoded point matches the input address."""
    EXACT = "exact"
    INTERPOLATED = "interpolated"
    GEOMETRIC_CENTER = "geometric_center"
    APPROXIMATE = "approximate"
    UNKNOWN = "unknown"


class ErrorKind(StrEnum):
    """Uniform failure taxonomy shared by every provider."""
    CONFIGURATION = "configuration"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    SERVER_ERROR = "server_error"
    PARSE_ERROR = "parse_error"
    UNKNOWN = "unknown"

    @property
    def retryable(self) -> bool:
        return self in _RETRYABLE_KINDS


_RETRYABLE_KINDS = frozenset({
    ErrorKind.RATE_LIMITED,
    ErrorKind.TIMEOUT,
    ErrorKind.SERVER_ERROR,
})


@dataclass(frozen=True)
class AddressComponents:
    """
    Structured address fields from an uploaded store record.

    Only non-blank parts are used when formatting the geocoding query.
    """
    address: str = ""
    city: str = ""
    postcode: str = ""
    country: str = ""

    def format(self) -> str:
        parts = [self.address, self.city, self.postcode, self.country]
        return ", ".join(normalize_address(p) for p in parts if p and p.strip())


@dataclass(frozen=True)
class GeocodeRequest:
    """A single normalized address to resolve."""
    address: str

    @classmethod
    def from_raw(cls, address: Optional[str]) -> "GeocodeRequest":
        return cls(normalize_address(address))

    @classmethod
    def from_components(cls, components: AddressComponents) -> "GeocodeRequest":
        return cls.from_raw(components.format())

    def is_valid(self) -> bool:
        """Check if the request has an address to query."""
        return bool(self.address.strip())


@dataclass(frozen=True)
class GeocodeResult:
    """
    A successful geocoding outcome.

    Coordinates are validated on construction: an out-of-range or
    non-finite pair raises ValueError, so every instance in circulation
    holds a usable point.
    """
    latitude: float
    longitude: float
    precision: Precision
    provider_id: str
    formatted_address: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    def __post_init__(self) -> None:
        if not valid_coordinates(self.latitude, self.longitude):
            raise ValueError(
                f"Coordinates out of range: lat={self.latitude!r}, lon={self.longitude!r}"
            )

    def is_success(self) -> bool:
        return True

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "status": "success",
            "latitude": self.latitude,
            "longitude": self.longitude,
            "precision": self.precision.value,
            "provider_id": self.provider_id,
            "formatted_address": self.formatted_address,
        }


@dataclass(frozen=True)
class GeocodeFailure:
    """
    A failed geocoding outcome.

    Failures are returned, never raised. `attempts` holds the failures of
    providers tried earlier in the same orchestrated call, oldest first.
    """
    message: str
    retryable: bool
    kind: ErrorKind = ErrorKind.UNKNOWN
    provider_id: Optional[str] = None
    code: Optional[str] = None
    status_code: Optional[int] = None
    attempts: tuple["GeocodeFailure", ...] = ()

    def is_success(self) -> bool:
        return False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "status": "failed",
            "message": self.message,
            "retryable": self.retryable,
            "kind": self.kind.value,
            "provider_id": self.provider_id,
            "code": self.code,
            "status_code": self.status_code,
            "attempts": [a.to_dict() for a in self.attempts],
        }


GeocodeOutcome = Union[GeocodeResult, GeocodeFailure]


@dataclass(frozen=True)
class ProviderDescriptor:
    """Static per-adapter metadata, built once from settings."""
    id: str
    tokens_per_second: float
    burst_capacity: int
    timeout_ms: int
    configured: bool
    base_url: str = ""

    @property
    def timeout_s(self) -> float:
        return self.timeout_ms / 1000.0


@dataclass
class BucketState:
    """Mutable token count of one provider's bucket."""
    tokens: float
    last_refill: float


@dataclass(frozen=True)
class BucketStatus:
    """Point-in-time view of a bucket, for observability."""
    current_tokens: float
    time_until_next_token: float


@dataclass(frozen=True)
class ConnectionTest:
    """Outcome of a provider's connectivity check."""
    success: bool
    message: str
    latency_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {"success": self.success, "message": self.message, "latency_ms": self.latency_ms}


@dataclass(frozen=True)
class ProviderHealth:
    available: bool
    configured: bool
    connection_test: Optional[ConnectionTest] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "available": self.available,
            "configured": self.configured,
            "connection_test": self.connection_test.to_dict() if self.connection_test else None,
        }


@dataclass(frozen=True)
class ProviderStats:
    configured: bool
    rate_limit: float
    burst_capacity: int
    current_tokens: float
    time_until_next_token: float
    requests: int = 0
    successes: int = 0
    failures: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "configured": self.configured,
            "rate_limit": self.rate_limit,
            "burst_capacity": self.burst_capacity,
            "current_tokens": self.current_tokens,
            "time_until_next_token": self.time_until_next_token,
            "requests": self.requests,
            "successes": self.successes,
            "failures": self.failures,
        }


@dataclass
class BatchJob:
    """
    Progress of a batch of addresses.

    `results` lines up 1:1 with `addresses` once `done` is true; `cursor`
    only moves forward.
    """
    addresses: List[str]
    cursor: int = 0
    results: List[GeocodeOutcome] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.addresses)

    @property
    def done(self) -> bool:
        return self.cursor >= self.total

    def record(self, outcome: GeocodeOutcome) -> None:
        if self.done:
            raise IndexError("BatchJob is already complete")
        self.results.append(outcome)
        self.cursor += 1

    def summary(self) -> dict[str, int]:
        successes = sum(1 for r in self.results if r.is_success())
        return {
            "total": self.total,
            "completed": self.cursor,
            "successful": successes,
            "failed": self.cursor - successes,
        }
