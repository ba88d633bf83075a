from typing import Any
from pydantic import ValidationError


class SettingsValidationError(Exception):
    def __init__(self, source: str, errors: list[dict[str, Any]], original: ValidationError | None = None):
        self.source = source
        self.errors = errors
        self.original = original
        msg = f"Invalid geocoding settings: {len(errors)} problem(s) in '{source}'"

        super().__init__(msg)

    def summary(self, limit: int = 5) -> str:
        """Human-readable summary of the first few validation issues."""
        lines = []
        for err in self.errors[:limit]:
            loc = ".".join(str(p) for p in err.get("loc", []))
            lines.append(f"- {loc}: {err.get('msg')} ({err.get('type')})")
        if len(self.errors) > limit:
            lines.append(f"... ({len(self.errors) - limit} more)")
        return "\n".join(lines)


class UnknownProviderError(KeyError):
    """Raised when a rate limiter is asked about a provider it never registered."""

    def __init__(self, provider_id: str):
        self.provider_id = provider_id
        super().__init__(provider_id)

    def __str__(self) -> str:
        return f"No rate limiter registered for provider '{self.provider_id}'"


class DuplicateProviderError(ValueError):
    def __init__(self, provider_id: str):
        self.provider_id = provider_id
        super().__init__(f"Provider '{provider_id}' registered more than once")
