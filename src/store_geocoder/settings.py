from pathlib import Path
from typing import Any, Optional
import os

from dotenv import dotenv_values
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .utils.errors import SettingsValidationError

ENV_FILE = Path(".env")


class ProviderSettings(BaseModel):
    """Options shared by every geocoding provider."""
    enabled: bool = True
    api_key: Optional[str] = None
    rate_limit_per_second: float = Field(1.0, gt=0)
    burst_capacity: Optional[int] = Field(None, ge=1)
    timeout_ms: int = Field(10_000, gt=0)
    base_url: str = ""
    batch_pause_ms: int = Field(50, ge=0)
    language: str = "en"

    @property
    def burst(self) -> int:
        """Burst size, defaulting to twice the per-second rate."""
        return self.burst_capacity or max(1, int(self.rate_limit_per_second * 2))


class GoogleSettings(ProviderSettings):
    base_url: str = "https://maps.googleapis.com/maps/api/geocode/json"
    rate_limit_per_second: float = Field(10.0, gt=0)
    region: Optional[str] = None


class MapboxSettings(ProviderSettings):
    base_url: str = "https://api.mapbox.com/geocoding/v5"
    rate_limit_per_second: float = Field(10.0, gt=0)
    country: Optional[str] = None


class NominatimSettings(ProviderSettings):
    base_url: str = "https://nominatim.openstreetmap.org"
    # Nominatim usage policy: at most one request per second
    rate_limit_per_second: float = Field(1.0, gt=0, le=1.0)
    burst_capacity: Optional[int] = Field(1, ge=1)
    batch_pause_ms: int = Field(1000, ge=0)
    user_agent: str = "store-geocoder/0.1"
    country_codes: Optional[str] = None


# Conventional variable names checked when the prefixed one is unset
_CREDENTIAL_ENV_VARS: dict[str, list[str]] = {
    "google": ["GOOGLE_MAPS_API_KEY", "GOOGLE_GEOCODING_API_KEY"],
    "mapbox": ["MAPBOX_ACCESS_TOKEN", "MAPBOX_TOKEN"],
}


def _credential_from_env(names: list[str], env_file: Path = ENV_FILE) -> Optional[str]:
    for name in names:
        val = os.getenv(name)
        if val and val.strip():
            return val.strip()
    if env_file.is_file():
        file_values = dotenv_values(env_file)
        for name in names:
            val = file_values.get(name)
            if val and val.strip():
                return val.strip()
    return None


class Settings(BaseSettings):
    """
    Geocoding configuration.

    Read from `GEOCODING_*` environment variables and `.env`, with nested
    provider options separated by `__`, e.g. `GEOCODING_GOOGLE__API_KEY`.
    """
    google: GoogleSettings = Field(default_factory=GoogleSettings)
    mapbox: MapboxSettings = Field(default_factory=MapboxSettings)
    nominatim: NominatimSettings = Field(default_factory=NominatimSettings)

    preferred_provider: Optional[str] = None
    fallback_order: list[str] = Field(default_factory=lambda: ["google", "mapbox", "nominatim"])

    model_config = SettingsConfigDict(
        env_prefix="GEOCODING_",
        env_file=ENV_FILE,
        env_nested_delimiter="__",
        extra="ignore",
    )

    @field_validator("preferred_provider")
    @classmethod
    def _lower_preferred(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        return value.strip().lower()

    @field_validator("fallback_order")
    @classmethod
    def _dedupe_order(cls, value: list[str]) -> list[str]:
        order: list[str] = []
        for pid in value:
            key = pid.strip().lower()
            if key and key not in order:
                order.append(key)
        return order

    @model_validator(mode="after")
    def _fill_credentials(self) -> "Settings":
        for provider_id, names in _CREDENTIAL_ENV_VARS.items():
            provider = getattr(self, provider_id)
            if not provider.api_key:
                provider.api_key = _credential_from_env(names)
        return self

    def provider(self, provider_id: str) -> ProviderSettings:
        """Return the settings block for a provider id."""
        value = getattr(self, provider_id, None)
        if not isinstance(value, ProviderSettings):
            raise KeyError(provider_id)
        return value


def load_settings(**overrides: Any) -> Settings:
    """Create Settings from the environment, applying programmatic overrides."""
    try:
        return Settings(**overrides)
    except ValidationError as e:
        raise SettingsValidationError("environment", e.errors(), e) from e
