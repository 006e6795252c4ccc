"""
Error classification.

WHAT: Map transport failures and HTTP error responses onto the closed error taxonomy
WHY: Callers handle one small set of typed errors, never raw httpx exceptions or bodies
HOW: Status-code table, preferring the provider's structured error message over the raw body
"""

import json
import re
from typing import Any

import httpx

from .types import (
    ProviderDecodingError,
    ProviderError,
    ProviderRateLimitedError,
    ProviderRequestError,
    ProviderServerError,
    ProviderTimeoutError,
    ProviderUnauthorizedError,
    ProviderUnavailableError,
    ProviderUnknownError,
)


def extract_error_message(body: bytes | str | None) -> str | None:
    """
    Pull the human-readable message out of a provider error envelope.

    Recognizes `{"error": {"message": ...}}`, `{"error": "..."}` and
    `{"message": ...}`.

    Returns:
        The message, or None if the body is not a recognizable envelope
    """
    if not body:
        return None
    try:
        data = json.loads(body)
    except (ValueError, UnicodeDecodeError):
        return None
    if not isinstance(data, dict):
        return None

    error = data.get("error")
    if isinstance(error, dict):
        message = error.get("message")
        if isinstance(message, str) and message:
            return message
    if isinstance(error, str) and error:
        return error

    message = data.get("message")
    if isinstance(message, str) and message and data.get("type") in (None, "error"):
        return message
    return None


def error_text(status: int, body: bytes | str | None) -> str:
    """Envelope message if present, else the raw body, else `HTTP <status>`."""
    message = extract_error_message(body)
    if message:
        return message
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    body = (body or "").strip()
    return body or f"HTTP {status}"


def classify_http_error(
    status: int,
    body: bytes | str | None,
    *,
    auth_statuses: tuple[int, ...] = (401,),
) -> ProviderError:
    """
    Classify a non-2xx HTTP response.

    Args:
        status: HTTP status code
        body: Response body (may be empty)
        auth_statuses: Statuses meaning the credential was rejected

    Returns:
        The ProviderError subclass instance to raise
    """
    text = error_text(status, body)
    if status in auth_statuses:
        return ProviderUnauthorizedError(text)
    if status == 429:
        return ProviderRateLimitedError(text)
    if 400 <= status <= 499:
        return ProviderServerError(f"Client Error: {text}")
    if 500 <= status <= 599:
        return ProviderServerError(f"Server Error: {text}")
    return ProviderUnknownError(f"Unknown error: {text}")


def classify_transport_error(exc: httpx.HTTPError) -> ProviderRequestError:
    """Map an httpx failure to a requestFailed error."""
    if isinstance(exc, httpx.TimeoutException):
        return ProviderTimeoutError(f"Request timed out: {exc}")
    if isinstance(exc, httpx.ConnectError):
        return ProviderUnavailableError(f"Provider is not reachable: {exc}")
    return ProviderRequestError(f"Request failed: {exc}")


def is_unsupported_parameter_error(error: ProviderError, parameter: str) -> bool:
    """
    Check whether `error` says the provider rejects `parameter`.

    Only serverError/unknown carry provider text worth matching.
    """
    if not isinstance(error, (ProviderServerError, ProviderUnknownError)):
        return False
    message = error.detail.lower()
    name = parameter.lower()
    if f"'{name}' is not supported" in message:
        return True
    if "unsupported parameter" in message and name in message:
        return True
    near = re.escape(name) + r".{0,60}not supported|not supported.{0,60}" + re.escape(name)
    return re.search(near, message) is not None


def decode_json(payload: bytes | str, context: str) -> Any:
    """
    Parse a JSON payload, mapping malformed input to decodingFailed.

    Args:
        payload: Raw JSON text
        context: What was being decoded (for the error detail)
    """
    try:
        return json.loads(payload)
    except (ValueError, UnicodeDecodeError) as e:
        raise ProviderDecodingError(f"Failed to parse {context}: {e}") from e
