"""
Shared HTTP transport.

WHAT: One-shot and streamed HTTP execution over a pooled httpx client
WHY: Every adapter reuses the same connections, timeouts, and error mapping
HOW: httpx.AsyncClient with a request timeout, asyncio.wait_for for the whole-call
     resource timeout, and asyncio tasks as cancellable handles
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable

import httpx

from .errors import classify_transport_error
from .types import HTTPRequest, ProviderTimeoutError
from ..core.config import settings
from ..utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class TransportResponse:
    """Buffered response."""
    status: int
    headers: httpx.Headers
    body: bytes

    @property
    def ok(self) -> bool:
        return 200 <= self.status <= 299


class StreamingResponse:
    """Live response whose body is consumed lazily, line by line."""

    def __init__(self, response: httpx.Response):
        self._response = response
        self.status = response.status_code
        self.headers = response.headers

    @property
    def ok(self) -> bool:
        return 200 <= self.status <= 299

    def lines(self) -> AsyncIterator[str]:
        return self._response.aiter_lines()

    async def read(self) -> bytes:
        return await self._response.aread()


class Transport:
    """HTTP transport shared by provider adapters."""

    def __init__(
        self,
        *,
        request_timeout: float | None = None,
        resource_timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize transport with a pooled httpx client.

        Args:
            request_timeout: Max seconds to wait for any single read (default from settings)
            resource_timeout: Max seconds for a whole buffered call (default from settings)
            client: Pre-built client (tests, custom proxies)
        """
        self.request_timeout = request_timeout or settings.LLM_REQUEST_TIMEOUT
        self.resource_timeout = resource_timeout or settings.LLM_RESOURCE_TIMEOUT
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(self.request_timeout, connect=settings.LLM_CONNECT_TIMEOUT),
            limits=httpx.Limits(
                max_keepalive_connections=settings.LLM_MAX_KEEPALIVE_CONNECTIONS,
                max_connections=settings.LLM_MAX_CONNECTIONS,
            ),
            http2=False,
        )

    async def execute(self, request: HTTPRequest) -> TransportResponse:
        """
        Execute a request and buffer the full body.

        Raises:
            ProviderTimeoutError: Read or whole-call timeout
            ProviderUnavailableError: Connection refused / DNS failure
            ProviderRequestError: Any other transport failure
        """
        logger.debug(f"{request.method} {request.url}")
        try:
            response = await asyncio.wait_for(
                self.client.request(
                    request.method,
                    request.url,
                    headers=request.headers,
                    json=request.json,
                ),
                timeout=self.resource_timeout,
            )
        except asyncio.TimeoutError as e:
            raise ProviderTimeoutError(f"Request exceeded {self.resource_timeout}s") from e
        except httpx.HTTPError as e:
            logger.warning(f"Transport failure for {request.url}: {e}")
            raise classify_transport_error(e) from e

        return TransportResponse(response.status_code, response.headers, response.content)

    @asynccontextmanager
    async def execute_streaming(self, request: HTTPRequest) -> AsyncIterator[StreamingResponse]:
        """
        Open a streamed request; the body is read lazily inside the context.

        Transport failures while opening or reading are mapped the same way
        as in `execute`.
        """
        logger.debug(f"{request.method} {request.url} (stream)")
        try:
            async with self.client.stream(
                request.method,
                request.url,
                headers=request.headers,
                json=request.json,
            ) as response:
                yield StreamingResponse(response)
        except httpx.HTTPError as e:
            logger.warning(f"Streaming transport failure for {request.url}: {e}")
            raise classify_transport_error(e) from e

    def start(self, work: Awaitable) -> asyncio.Task:
        """Run `work` as a cancellable task and return its handle."""
        return asyncio.ensure_future(work)

    def cancel(self, handle: asyncio.Task | None) -> None:
        """Abort an in-flight call; a finished or missing handle is a no-op."""
        if handle is not None and not handle.done():
            handle.cancel()

    async def close(self):
        """Close the underlying HTTP client."""
        await self.client.aclose()


# Shared instance
_transport_instance: Transport | None = None


def get_transport() -> Transport:
    """Get the process-wide transport, creating it on first use."""
    global _transport_instance
    if _transport_instance is None:
        _transport_instance = Transport()
    return _transport_instance


def reset_transport() -> None:
    """Drop the shared transport (useful for testing)."""
    global _transport_instance
    _transport_instance = None
