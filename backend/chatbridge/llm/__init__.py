"""LLM provider layer."""

from .types import (
    ConversationMessage,
    ProviderConfig,
    ResolvedAttachment,
    ToolCall,
    ToolDefinition,
    ProviderError,
    ProviderRequestError,
    ProviderTimeoutError,
    ProviderUnavailableError,
    ProviderInvalidResponseError,
    ProviderDecodingError,
    ProviderUnauthorizedError,
    ProviderRateLimitedError,
    ProviderServerError,
    ProviderUnknownError,
    NoProviderSelectedError,
)
from .provider import ChatProvider, AttachmentLoader, AssetStore, CredentialProvider, ToolExecutor
from .adapter import ProviderAdapter
from .attachments import InMemoryAttachmentStore
from .capabilities import CapabilityMemory, default_capability_memory
from .delta_merger import merge_delta
from .streaming_handler import TextStream
from .tools import ToolRegistry
from .transport import Transport, get_transport, reset_transport
from .provider_factory import create_provider, normalize_provider_id

__all__ = [
    "ConversationMessage",
    "ProviderConfig",
    "ResolvedAttachment",
    "ToolCall",
    "ToolDefinition",
    "ProviderError",
    "ProviderRequestError",
    "ProviderTimeoutError",
    "ProviderUnavailableError",
    "ProviderInvalidResponseError",
    "ProviderDecodingError",
    "ProviderUnauthorizedError",
    "ProviderRateLimitedError",
    "ProviderServerError",
    "ProviderUnknownError",
    "NoProviderSelectedError",
    "ChatProvider",
    "AttachmentLoader",
    "AssetStore",
    "CredentialProvider",
    "ToolExecutor",
    "ProviderAdapter",
    "InMemoryAttachmentStore",
    "CapabilityMemory",
    "default_capability_memory",
    "merge_delta",
    "TextStream",
    "ToolRegistry",
    "Transport",
    "get_transport",
    "reset_transport",
    "create_provider",
    "normalize_provider_id",
]
