"""
Interfaces for the geocoding system.

Providers are described by a capability protocol rather than a base
class: any object with these members can be orchestrated.
"""

from abc import ABC, abstractmethod
from typing import Optional, List, Protocol, runtime_checkable

from .models import GeocodeOutcome, ProviderDescriptor, ConnectionTest


class Normalizer(ABC):
    """
    Abstract base for string normalizers.

    Normalizers are responsible for transforming input strings into
    the form sent to a geocoding service.
    """

    @abstractmethod
    def normalize(self, value: str, context: Optional[str] = None) -> str:
        """
        Normalize a string value.

        Args:
            value: String to normalize
            context: Optional context (e.g., country for an address)

        Returns:
            Normalized string
        """
        pass

    def normalize_batch(self, values: List[str]) -> List[str]:
        """
        Normalize multiple values. Default implementation calls normalize()
        for each value, but subclasses can override for efficiency.
        """
        return [self.normalize(v) for v in values]


@runtime_checkable
class GeocodingProvider(Protocol):
    """
    What the orchestrator needs from a geocoding backend.

    `resolve` and `resolve_batch` never raise for provider outcomes: every
    failure comes back as a GeocodeFailure. Each `resolve` call is bounded
    by the provider's configured timeout.
    """

    provider_id: str

    @property
    def descriptor(self) -> ProviderDescriptor: ...

    def resolve(self, address: str) -> GeocodeOutcome: ...

    def resolve_batch(self, addresses: List[str]) -> List[GeocodeOutcome]: ...

    def is_configured(self) -> bool: ...

    def test_connection(self) -> ConnectionTest: ...

    def close(self) -> None: ...
