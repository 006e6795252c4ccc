"""
LLM provider factory.

WHAT: Build the adapter for a configured provider identifier
WHY: Callers pick a provider by name and get one capability-uniform interface back
HOW: Normalize the identifier, pick the wire codec (lazy imports), wire up credentials
     and shared collaborators, log the selection
"""

from pathlib import Path

from .adapter import ProviderAdapter
from .capabilities import CapabilityMemory
from .credentials import GoogleOAuthCredential, StaticCredential, load_adc_credentials
from .provider import AssetStore, AttachmentLoader, CredentialProvider, ToolExecutor, WireCodec
from .transport import Transport, get_transport
from .types import NoProviderSelectedError, ProviderConfig
from ..core.config import settings
from ..utils.logger import get_logger, mask_secret

logger = get_logger(__name__)

# Identifier -> settings field holding the default endpoint
OPENAI_COMPATIBLE_URLS = {
    "chatgpt": "OPENAI_COMPLETIONS_URL",
    "openai": "OPENAI_COMPLETIONS_URL",
    "openai-completions": "OPENAI_COMPLETIONS_URL",
    "xai": "XAI_URL",
    "deepseek": "DEEPSEEK_URL",
    "perplexity": "PERPLEXITY_URL",
    "lmstudio": "LM_STUDIO_URL",
    "lm-studio": "LM_STUDIO_URL",
}

SUPPORTED_PROVIDERS = sorted(
    set(OPENAI_COMPATIBLE_URLS)
    | {"openai-responses", "claude", "anthropic", "gemini", "vertex", "ollama", "openrouter"}
)


def normalize_provider_id(provider_id: str) -> str:
    return provider_id.strip().lower().replace("_", "-")


def build_codec(config: ProviderConfig, assets: AssetStore | None = None) -> WireCodec:
    """
    Pick the wire codec for `config.provider_id`.

    Raises:
        NoProviderSelectedError: Unknown identifier
    """
    provider_id = normalize_provider_id(config.provider_id)

    if provider_id in OPENAI_COMPATIBLE_URLS:
        from .openai_completions import OpenAICompletionsCodec
        default_url = getattr(settings, OPENAI_COMPATIBLE_URLS[provider_id])
        return OpenAICompletionsCodec(config, default_url=default_url, assets=assets)
    if provider_id == "openai-responses":
        from .openai_responses import OpenAIResponsesCodec
        return OpenAIResponsesCodec(config, assets=assets)
    if provider_id in ("claude", "anthropic"):
        from .claude import ClaudeCodec
        return ClaudeCodec(config, assets=assets)
    if provider_id == "gemini":
        from .gemini import GeminiCodec
        return GeminiCodec(config, assets=assets)
    if provider_id == "vertex":
        from .vertex import VertexClaudeCodec, VertexGeminiCodec, is_vertex_claude_model
        if is_vertex_claude_model(config.model_id):
            return VertexClaudeCodec(config, assets=assets)
        return VertexGeminiCodec(config, assets=assets)
    if provider_id == "ollama":
        from .ollama import OllamaCodec
        return OllamaCodec(config, assets=assets)
    if provider_id == "openrouter":
        from .openrouter import OpenRouterCodec
        return OpenRouterCodec(config, assets=assets)

    raise NoProviderSelectedError(
        f"Unknown LLM provider: {config.provider_id!r} (supported: {', '.join(SUPPORTED_PROVIDERS)})"
    )


def build_credentials(config: ProviderConfig, transport: Transport) -> CredentialProvider:
    """
    Credentials for a provider.

    Vertex accepts ADC JSON, a path to an ADC file, or (empty) the default
    ADC path; anything else is used as a ready-made bearer token.
    """
    if normalize_provider_id(config.provider_id) != "vertex":
        return StaticCredential(config.credential)

    source = config.credential.strip()
    if source and not source.startswith("{") and not Path(source).expanduser().is_file():
        return StaticCredential(source)
    return GoogleOAuthCredential(load_adc_credentials(source or None), transport.client)


def create_provider(
    config: ProviderConfig,
    *,
    transport: Transport | None = None,
    loader: AttachmentLoader | None = None,
    assets: AssetStore | None = None,
    credentials: CredentialProvider | None = None,
    tool_executor: ToolExecutor | None = None,
    capability_memory: CapabilityMemory | None = None,
) -> ProviderAdapter:
    """
    Create the adapter for a provider configuration.

    Args:
        config: Provider, model, endpoint and credential
        transport: Shared transport (default: process-wide instance)
        loader: Resolves attachment ids at encode time
        assets: Persists provider-generated images
        credentials: Overrides the credential derived from `config`
        tool_executor: Enables the single tool-call hop on non-streaming sends
        capability_memory: Isolated capability memory (default: process-wide)

    Returns:
        ProviderAdapter ready to send

    Raises:
        NoProviderSelectedError: Unknown provider identifier (before any I/O)
    """
    codec = build_codec(config, assets)
    transport = transport or get_transport()
    credentials = credentials or build_credentials(config, transport)

    adapter = ProviderAdapter(
        config,
        codec,
        transport=transport,
        credentials=credentials,
        loader=loader,
        capability_memory=capability_memory,
        tool_executor=tool_executor,
    )
    logger.info(
        f"LLM provider initialized: {normalize_provider_id(config.provider_id)} "
        f"(model={config.model_id}, codec={type(codec).__name__}, key={mask_secret(config.credential)})"
    )
    return adapter
