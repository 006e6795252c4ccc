"""
LLM client types, dataclasses, and exceptions.

WHAT: Standard type definitions shared by every provider codec
WHY: Ensure consistent contracts across all wire protocols
HOW: Dataclasses for messages/config/stream state, an exception hierarchy for the error taxonomy
"""

import base64
from dataclasses import dataclass, field
from typing import Any, Literal


Role = Literal["system", "user", "assistant", "tool"]

ErrorKind = Literal[
    "requestFailed",
    "invalidResponse",
    "decodingFailed",
    "unauthorized",
    "rateLimited",
    "serverError",
    "unknown",
    "noProviderSelected",
]


@dataclass
class ToolCall:
    """A function call requested by the model."""
    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass
class ToolDefinition:
    """A tool advertised to the model (JSON-schema parameters)."""
    name: str
    description: str
    parameters: dict[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})


@dataclass
class ConversationMessage:
    """
    One message of the conversation handed to the client.

    `attachments` holds opaque ids resolved through the attachment loader.
    `provider_payload` is an opaque blob previously returned by
    `consume_provider_payload()` (Gemini thought-signature parts).
    """
    role: Role
    content: str
    attachments: list[str] = field(default_factory=list)
    provider_payload: dict[str, Any] | None = None
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_call_id: str | None = None


@dataclass
class ResolvedAttachment:
    """Attachment bytes as returned by the attachment loader."""
    data: bytes
    mime_type: str
    filename: str | None = None

    @property
    def is_image(self) -> bool:
        return self.mime_type.lower().startswith("image/")

    def base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.base64()}"


@dataclass
class PreparedMessage:
    """
    A conversation message with every attachment resolved.

    `text` has attachment placeholders stripped. `segments` keeps the
    original interleaving of text and attachments for codecs that
    preserve it (Gemini).
    """
    role: Role
    text: str
    attachments: list[ResolvedAttachment] = field(default_factory=list)
    segments: list["str | ResolvedAttachment"] = field(default_factory=list)
    provider_payload: dict[str, Any] | None = None
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_call_id: str | None = None


@dataclass(frozen=True)
class ProviderConfig:
    """Immutable configuration for one adapter instance."""
    provider_id: str
    model_id: str
    base_url: str = ""
    credential: str = ""
    project_id: str | None = None
    region: str | None = None
    image_generation: bool = False


@dataclass
class HTTPRequest:
    """A wire request produced by a codec."""
    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    json: dict[str, Any] | None = None


@dataclass
class DecodedResponse:
    """Result of decoding a single-shot response body."""
    text: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    provider_payload: dict[str, Any] | None = None


@dataclass
class StreamFragment:
    """Outcome of decoding one stream line."""
    delta: str | None = None
    finished: bool = False


@dataclass
class StreamState:
    """
    Per-stream decoder state, owned by exactly one streaming call.

    `aggregated_text` is everything emitted to the caller so far and only
    ever grows. `snapshot` is the merger's reference text for providers with
    snapshot semantics; it may be replaced by a shorter snapshot.
    """
    aggregated_text: str = ""
    snapshot: str = ""
    finished: bool = False
    reasoning_open: bool = False
    yielded_content: bool = False
    inline_assets: dict[str, str] = field(default_factory=dict)
    increments: int = 0
    last_parts: list[dict[str, Any]] | None = None

    def record(self, delta: str) -> None:
        """Account for a delta that is about to be delivered."""
        self.aggregated_text += delta
        self.increments += 1


# Provider exceptions
class ProviderError(Exception):
    """Base class for every classified client failure."""

    kind: ErrorKind = "unknown"

    def __init__(self, detail: str = ""):
        super().__init__(detail or self.kind)
        self.detail = detail


class ProviderRequestError(ProviderError):
    """Transport-level failure (DNS, connect, TLS, broken stream)."""
    kind = "requestFailed"


class ProviderTimeoutError(ProviderRequestError):
    """Request to provider timed out."""
    pass


class ProviderUnavailableError(ProviderRequestError):
    """Provider is not reachable or down."""
    pass


class ProviderInvalidResponseError(ProviderError):
    """No usable HTTP response object."""
    kind = "invalidResponse"


class ProviderDecodingError(ProviderError):
    """Malformed or unexpected JSON shape."""
    kind = "decodingFailed"


class ProviderUnauthorizedError(ProviderError):
    """Credential rejected by the provider."""
    kind = "unauthorized"


class ProviderRateLimitedError(ProviderError):
    """Provider asked us to slow down."""
    kind = "rateLimited"


class ProviderServerError(ProviderError):
    """Provider reported an error with a human-readable message."""
    kind = "serverError"


class ProviderUnknownError(ProviderError):
    """Anything the classifier could not place."""
    kind = "unknown"


class NoProviderSelectedError(ProviderError):
    """Configuration names no known provider; raised before any I/O."""
    kind = "noProviderSelected"
