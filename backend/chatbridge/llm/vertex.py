"""
Vertex AI wire codecs.

WHAT: Gemini and Claude models hosted on Google Cloud Vertex AI
WHY: Same payloads as the public APIs, but project/region URLs, OAuth bearer auth,
     and Vertex's own error table
HOW: Thin specializations of the Gemini and Claude codecs; the factory picks one by model id
"""

from typing import Any

from .claude import ClaudeCodec
from .gemini import GeminiCodec, classify_google_error, normalize_model
from .types import (
    HTTPRequest,
    PreparedMessage,
    ProviderConfig,
    ProviderError,
    ProviderUnknownError,
    ToolDefinition,
)
from ..core.config import settings

VERTEX_ERROR_LABEL = "Vertex AI Error"


def is_vertex_claude_model(model_id: str) -> bool:
    return normalize_model(model_id).lower().startswith("claude")


def vertex_url(config: ProviderConfig, publisher: str, action: str) -> str:
    """
    Build a Vertex AI model endpoint URL.

    Raises:
        ProviderUnknownError: No GCP project configured
    """
    project = (config.project_id or "").strip()
    if not project:
        raise ProviderUnknownError("GCP Project ID is required for Vertex AI")
    region = (config.region or settings.VERTEX_DEFAULT_REGION).strip()
    model = normalize_model(config.model_id)
    return (
        f"https://{region}-aiplatform.googleapis.com/v1/projects/{project}"
        f"/locations/{region}/publishers/{publisher}/models/{model}:{action}"
    )


def bearer_headers(credential: str) -> dict[str, str]:
    return {"Content-Type": "application/json", "Authorization": f"Bearer {credential}"}


class VertexGeminiCodec(GeminiCodec):
    """Gemini models on Vertex AI."""

    service_type = "vertex"
    error_label = VERTEX_ERROR_LABEL

    def request_url(self, stream: bool) -> str:
        if stream:
            return vertex_url(self.config, "google", "streamGenerateContent") + "?alt=sse"
        return vertex_url(self.config, "google", "generateContent")

    def build_headers(self, credential: str, stream: bool = False) -> dict[str, str]:
        headers = bearer_headers(credential)
        if stream:
            headers["Accept"] = "text/event-stream"
        return headers

    def models_request(self, credential: str) -> HTTPRequest | None:
        return None

    def static_models(self) -> list[str]:
        return settings.get_vertex_models()


class VertexClaudeCodec(ClaudeCodec):
    """Anthropic Claude models on Vertex AI (rawPredict)."""

    auth_statuses: tuple[int, ...] = (401, 403)

    def build_headers(self, credential: str) -> dict[str, str]:
        return bearer_headers(credential)

    def request_url(self, stream: bool) -> str:
        return vertex_url(self.config, "anthropic", "streamRawPredict" if stream else "rawPredict")

    def build_body(
        self,
        system: str,
        conversation: list[PreparedMessage],
        *,
        temperature: float,
        stream: bool,
        include_temperature: bool,
        tools: list[ToolDefinition] | None,
        allow_tool_calls: bool = True,
    ) -> dict[str, Any]:
        if not conversation:
            raise ProviderUnknownError("Claude request requires at least one user or assistant message")
        body = super().build_body(
            system,
            conversation,
            temperature=temperature,
            stream=stream,
            include_temperature=include_temperature,
            tools=tools,
            allow_tool_calls=allow_tool_calls,
        )
        # The model lives in the URL on Vertex
        body.pop("model", None)
        return {"anthropic_version": settings.VERTEX_ANTHROPIC_VERSION, **body}

    def classify_error(self, status: int, body: bytes) -> ProviderError:
        return classify_google_error(status, body, label=VERTEX_ERROR_LABEL)

    def models_request(self, credential: str) -> HTTPRequest | None:
        return None

    def static_models(self) -> list[str]:
        return settings.get_vertex_models()
