"""
Credential providers.

WHAT: API keys and Google OAuth2 access tokens for provider requests
WHY: Vertex AI needs short-lived bearer tokens refreshed from Application Default Credentials
HOW: Static credentials for key-based providers; refresh-token exchange with an expiry-buffered
     cache (pydantic validates the ADC file and token response) for Google
"""

import asyncio
import time
from pathlib import Path

import httpx
from pydantic import BaseModel, ValidationError

from .errors import classify_transport_error, error_text
from .types import ProviderDecodingError, ProviderUnauthorizedError
from ..core.config import settings
from ..utils.logger import get_logger

logger = get_logger(__name__)


class StaticCredential:
    """A fixed API key or bearer token."""

    def __init__(self, token: str):
        self.token = token

    async def get_token(self) -> str:
        return self.token

    def invalidate(self) -> None:
        pass


class AuthorizedUserCredentials(BaseModel):
    """Application Default Credentials of type `authorized_user`."""
    client_id: str
    client_secret: str
    refresh_token: str
    type: str = "authorized_user"


class TokenResponse(BaseModel):
    """OAuth2 token endpoint reply."""
    access_token: str
    expires_in: int = 3600
    token_type: str = "Bearer"


def load_adc_credentials(source: str | None = None) -> AuthorizedUserCredentials:
    """
    Load ADC credentials from JSON text or a file path.

    Args:
        source: JSON document, or path to one; defaults to settings.GOOGLE_ADC_PATH

    Raises:
        ProviderUnauthorizedError: File missing, malformed, or not `authorized_user`
    """
    raw = source or settings.GOOGLE_ADC_PATH
    if not raw.lstrip().startswith("{"):
        path = Path(raw).expanduser()
        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ProviderUnauthorizedError(f"Cannot read ADC credentials at {path}: {e}") from e

    try:
        credentials = AuthorizedUserCredentials.model_validate_json(raw)
    except ValidationError as e:
        raise ProviderUnauthorizedError(f"Invalid ADC credentials: {e.error_count()} field error(s)") from e

    if credentials.type != "authorized_user":
        raise ProviderUnauthorizedError(
            f"Unsupported ADC credential type '{credentials.type}'; run `gcloud auth application-default login`"
        )
    return credentials


class GoogleOAuthCredential:
    """
    Google OAuth2 access tokens from a refresh token.

    Tokens are cached and reused until `GOOGLE_TOKEN_EXPIRY_BUFFER` seconds
    before expiry. Concurrent callers share one refresh.
    """

    def __init__(
        self,
        credentials: AuthorizedUserCredentials,
        client: httpx.AsyncClient,
        *,
        token_url: str | None = None,
        expiry_buffer: int | None = None,
    ):
        self.credentials = credentials
        self.client = client
        self.token_url = token_url or settings.GOOGLE_TOKEN_URL
        self.expiry_buffer = settings.GOOGLE_TOKEN_EXPIRY_BUFFER if expiry_buffer is None else expiry_buffer
        self._token: str | None = None
        self._expires_at: float = 0.0
        self._lock = asyncio.Lock()

    def _cached(self) -> str | None:
        if self._token and time.monotonic() < self._expires_at - self.expiry_buffer:
            return self._token
        return None

    async def get_token(self) -> str:
        token = self._cached()
        if token:
            return token

        async with self._lock:
            token = self._cached()
            if token:
                return token
            return await self._refresh()

    async def _refresh(self) -> str:
        form = {
            "client_id": self.credentials.client_id,
            "client_secret": self.credentials.client_secret,
            "refresh_token": self.credentials.refresh_token,
            "grant_type": "refresh_token",
        }
        try:
            response = await self.client.post(self.token_url, data=form)
        except httpx.HTTPError as e:
            raise classify_transport_error(e) from e

        if not 200 <= response.status_code <= 299:
            logger.warning(f"Google token refresh failed with HTTP {response.status_code}")
            raise ProviderUnauthorizedError(f"Token refresh failed: {error_text(response.status_code, response.content)}")

        try:
            payload = TokenResponse.model_validate_json(response.content)
        except ValidationError as e:
            raise ProviderDecodingError(f"Invalid token response: {e.error_count()} field error(s)") from e

        self._token = payload.access_token
        self._expires_at = time.monotonic() + payload.expires_in
        logger.info(f"Google access token refreshed (expires in {payload.expires_in}s)")
        return payload.access_token

    def invalidate(self) -> None:
        self._token = None
        self._expires_at = 0.0
