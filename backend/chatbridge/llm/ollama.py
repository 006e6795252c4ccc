"""
Ollama wire codec.

WHAT: Request/response translation for a local Ollama server's /api/chat
WHY: Ollama streams newline-delimited JSON objects instead of SSE
HOW: One JSON object per line (an optional `data:` prefix is tolerated), `done` marks the end
"""

from typing import Any

import httpx

from .errors import classify_http_error, decode_json
from .sse import frame_sse_line
from .provider import AssetStore
from .types import (
    DecodedResponse,
    HTTPRequest,
    PreparedMessage,
    ProviderConfig,
    ProviderDecodingError,
    ProviderError,
    ProviderServerError,
    StreamFragment,
    StreamState,
    ToolDefinition,
)
from ..core.config import settings


def _error_message(data: dict[str, Any]) -> str | None:
    error = data.get("error")
    if isinstance(error, dict):
        return error.get("message") or str(error)
    if isinstance(error, str) and error:
        return error
    return None


class OllamaCodec:
    """Codec for http://localhost:11434/api/chat."""

    auth_statuses: tuple[int, ...] = (401,)
    supports_tools = False

    def __init__(self, config: ProviderConfig, *, assets: AssetStore | None = None):
        self.config = config
        self.model = config.model_id
        self.url = config.base_url or settings.OLLAMA_URL
        self.assets = assets

    def build_headers(self, credential: str) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if credential:
            headers["Authorization"] = f"Bearer {credential}"
        return headers

    def encode_message(self, message: PreparedMessage) -> dict[str, Any]:
        encoded: dict[str, Any] = {"role": message.role, "content": message.text}
        images = [a.base64() for a in message.attachments if a.is_image]
        if images:
            encoded["images"] = images
        return encoded

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
        body: dict[str, Any] = {
            "model": self.model,
            "stream": stream,
            "messages": [self.encode_message(m) for m in messages],
        }
        if include_temperature:
            body["options"] = {"temperature": temperature}
        return HTTPRequest("POST", self.url, self.build_headers(credential), body)

    def decode_response(self, body: bytes) -> DecodedResponse:
        data = decode_json(body, "Ollama response")
        if not isinstance(data, dict):
            raise ProviderDecodingError("Ollama response is not a JSON object")
        message = _error_message(data)
        if message:
            raise ProviderServerError(message)

        content = (data.get("message") or {}).get("content")
        if not isinstance(content, str):
            raise ProviderDecodingError("Ollama response has no message content")
        return DecodedResponse(text=content)

    def decode_stream_line(self, line: str, state: StreamState) -> StreamFragment:
        framed = frame_sse_line(line)
        if framed is None:
            return StreamFragment()
        if framed.done:
            return StreamFragment(finished=True)

        data = decode_json(framed.payload, "Ollama stream chunk")
        if not isinstance(data, dict):
            raise ProviderDecodingError(f"Unexpected Ollama chunk: {framed.payload[:100]}")
        message = _error_message(data)
        if message:
            raise ProviderServerError(message)

        content = (data.get("message") or {}).get("content")
        delta = content if isinstance(content, str) and content else None
        return StreamFragment(delta=delta, finished=bool(data.get("done")))

    def open_span_closer(self, state: StreamState) -> str | None:
        return None

    def finish_stream(self, state: StreamState) -> str | None:
        return None

    def classify_error(self, status: int, body: bytes) -> ProviderError:
        return classify_http_error(status, body, auth_statuses=self.auth_statuses)

    def models_request(self, credential: str) -> HTTPRequest | None:
        url = httpx.URL(self.url).copy_with(path="/api/tags", query=None)
        return HTTPRequest("GET", str(url), self.build_headers(credential))

    def parse_models(self, body: bytes) -> list[str]:
        data = decode_json(body, "Ollama models list")
        try:
            return [item["name"] for item in data["models"]]
        except (KeyError, TypeError) as e:
            raise ProviderDecodingError(f"Unexpected models list shape: {e}") from e
