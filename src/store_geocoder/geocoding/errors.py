"""
Error classification for geocoding providers.

Maps heterogeneous failure causes (HTTP statuses, `requests` exceptions,
provider-specific status codes) onto the ErrorKind taxonomy and builds
the GeocodeFailure values adapters return.
"""

import json
import logging
from typing import Mapping, Optional

import requests

from .models import ErrorKind, GeocodeFailure

logger = logging.getLogger(__name__)

_STATUS_KINDS: Mapping[int, ErrorKind] = {
    400: ErrorKind.VALIDATION,
    401: ErrorKind.CONFIGURATION,
    403: ErrorKind.CONFIGURATION,
    404: ErrorKind.NOT_FOUND,
    408: ErrorKind.TIMEOUT,
    422: ErrorKind.VALIDATION,
    429: ErrorKind.RATE_LIMITED,
}


def failure(
    kind: ErrorKind,
    message: str,
    provider_id: Optional[str] = None,
    code: Optional[str] = None,
    status_code: Optional[int] = None,
) -> GeocodeFailure:
    """Build a GeocodeFailure whose retryable flag follows its kind."""
    return GeocodeFailure(
        message=message,
        retryable=kind.retryable,
        kind=kind,
        provider_id=provider_id,
        code=code,
        status_code=status_code,
    )


def classify_status(status_code: int) -> ErrorKind:
    """Classify an HTTP status code returned by a provider."""
    if status_code in _STATUS_KINDS:
        return _STATUS_KINDS[status_code]
    if status_code >= 500:
        return ErrorKind.SERVER_ERROR
    return ErrorKind.UNKNOWN


def classify_code(
    code: Optional[str],
    table: Mapping[str, ErrorKind],
    default: ErrorKind = ErrorKind.UNKNOWN,
) -> ErrorKind:
    """Look up a provider-specific status code, falling back to `default`."""
    if code is None:
        return default
    return table.get(str(code).upper(), default)


def classify_exception(exc: BaseException) -> ErrorKind:
    """Classify an exception raised while talking to a provider."""
    # ConnectTimeout is both a Timeout and a ConnectionError
    if isinstance(exc, requests.exceptions.Timeout):
        return ErrorKind.TIMEOUT
    if isinstance(exc, requests.exceptions.HTTPError) and exc.response is not None:
        return classify_status(exc.response.status_code)
    if isinstance(exc, requests.exceptions.ConnectionError):
        return ErrorKind.SERVER_ERROR
    if isinstance(exc, (requests.exceptions.InvalidJSONError, ValueError)):
        return ErrorKind.PARSE_ERROR
    return ErrorKind.UNKNOWN


def failure_from_exception(exc: BaseException, provider_id: Optional[str] = None) -> GeocodeFailure:
    """Convert an exception into a classified failure."""
    kind = classify_exception(exc)
    status_code = None
    response = getattr(exc, "response", None)
    if response is not None:
        status_code = getattr(response, "status_code", None)

    if kind is ErrorKind.TIMEOUT:
        message = "Request timeout"
    elif kind is ErrorKind.PARSE_ERROR:
        message = f"Malformed response: {exc}"
    else:
        message = f"{type(exc).__name__}: {exc}"

    return failure(
        kind,
        message[:500],
        provider_id=provider_id,
        code=type(exc).__name__,
        status_code=status_code,
    )


def _response_message(response: requests.Response, body: Optional[bytes] = None) -> str:
    raw = response.content if body is None else body
    text = (raw or b"").decode(response.encoding or "utf-8", errors="replace")
    try:
        payload = json.loads(text)
    except ValueError:
        return (text or response.reason or "")[:500]
    if isinstance(payload, dict):
        for key in ("error_message", "message", "error"):
            if payload.get(key):
                return str(payload[key])[:500]
    return str(payload)[:500]


def failure_from_response(
    response: requests.Response,
    provider_id: Optional[str] = None,
    body: Optional[bytes] = None,
) -> GeocodeFailure:
    """
    Convert a non-2xx HTTP response into a classified failure.

    The provider's own error text is used when the body carries one.
    `body` is the already-read content of a streamed response.
    """
    kind = classify_status(response.status_code)
    detail = _response_message(response, body)
    message = f"HTTP {response.status_code}"
    if kind is ErrorKind.RATE_LIMITED:
        retry_after = response.headers.get("Retry-After")
        message = "Rate limit exceeded" + (f" (retry after {retry_after}s)" if retry_after else "")
    if detail:
        message = f"{message}: {detail}"

    logger.debug(f"{provider_id} responded {response.status_code} ({kind.value})")
    return failure(
        kind,
        message,
        provider_id=provider_id,
        code=f"http_{response.status_code}",
        status_code=response.status_code,
    )
