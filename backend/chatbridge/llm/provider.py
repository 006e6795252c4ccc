"""
LLM provider protocol definitions.

WHAT: Abstract interfaces for the client surface, its wire codecs, and external collaborators
WHY: Decouple calling code from specific provider implementations and storage layers
HOW: Use Protocol to define the uniform async surface and the pluggable seams
"""

from typing import Any, Protocol, TYPE_CHECKING

from .types import (
    ConversationMessage,
    DecodedResponse,
    HTTPRequest,
    PreparedMessage,
    ProviderError,
    ResolvedAttachment,
    StreamFragment,
    StreamState,
    ToolDefinition,
)

if TYPE_CHECKING:
    from .streaming_handler import TextStream


class ChatProvider(Protocol):
    """Protocol defining the interface every provider adapter exposes."""

    async def send_message(
        self,
        messages: list[ConversationMessage],
        temperature: float,
    ) -> str:
        """Send a conversation and return the complete reply text."""
        ...

    async def send_message_stream(
        self,
        messages: list[ConversationMessage],
        temperature: float,
    ) -> "TextStream":
        """Send a conversation and return a cancellable stream of text increments."""
        ...

    async def fetch_models(self) -> list[str]:
        """List model ids (best-effort; static where the provider has no discovery)."""
        ...

    def cancel_ongoing_requests(self) -> None:
        """Cancel the in-flight call started by this adapter, if any."""
        ...


class WireCodec(Protocol):
    """
    Request encoding and response decoding for one wire protocol.

    Codecs are pure translators: they never perform I/O. The adapter resolves
    attachments and credentials before encoding.
    """

    auth_statuses: tuple[int, ...]
    supports_tools: bool

    def encode_request(
        self,
        messages: list[PreparedMessage],
        *,
        temperature: float,
        stream: bool,
        credential: str,
        include_temperature: bool = True,
        tools: list[ToolDefinition] | None = None,
        allow_tool_calls: bool = True,
    ) -> HTTPRequest:
        """
        Build the wire request.

        With `allow_tool_calls=False` the tools stay advertised (the history may
        hold tool turns) but the model is told not to call them.
        """
        ...

    def decode_response(self, body: bytes) -> DecodedResponse:
        ...

    def decode_stream_line(self, line: str, state: StreamState) -> StreamFragment:
        ...

    def open_span_closer(self, state: StreamState) -> str | None:
        """Text that would close a span (reasoning block) currently open on `state`."""
        ...

    def finish_stream(self, state: StreamState) -> str | None:
        """Return a trailing delta to flush when the stream ends (or is cancelled)."""
        ...

    def classify_error(self, status: int, body: bytes) -> ProviderError:
        ...

    def models_request(self, credential: str) -> HTTPRequest | None:
        ...

    def parse_models(self, body: bytes) -> list[str]:
        ...


class AttachmentLoader(Protocol):
    """Resolves opaque attachment ids to bytes at encode time."""

    def resolve(self, attachment_id: str) -> ResolvedAttachment | None:
        ...


class AssetStore(Protocol):
    """Persists provider-generated images and hands back an id for the placeholder."""

    def store(self, data: bytes, mime_type: str) -> str:
        ...


class CredentialProvider(Protocol):
    """Supplies the API key or bearer token for a provider."""

    async def get_token(self) -> str:
        ...

    def invalidate(self) -> None:
        """Drop any cached token (called after 401/403)."""
        ...


class ToolExecutor(Protocol):
    """Runs tools the model asks for during a non-streaming send."""

    def definitions(self) -> list[ToolDefinition]:
        ...

    async def execute(self, name: str, arguments: dict[str, Any]) -> str:
        ...
