"""
OpenAI Chat Completions wire codec.

WHAT: Request/response translation for /chat/completions-style APIs
WHY: OpenAI, xAI, DeepSeek, Perplexity, LM Studio (and OpenRouter) all speak this dialect
HOW: Bearer auth, content arrays for attachments, SSE `choices[].delta.content` streaming
"""

import json
from typing import Any

import httpx

from .errors import classify_http_error, decode_json, extract_error_message
from .sse import frame_sse_line
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
    ToolCall,
    ToolDefinition,
)
from .provider import AssetStore
from ..core.config import settings


def parse_tool_calls(raw_calls: list[dict[str, Any]] | None) -> list[ToolCall]:
    """Parse `message.tool_calls` entries; arguments arrive as a JSON string."""
    calls = []
    for raw in raw_calls or []:
        function = raw.get("function") or {}
        arguments = function.get("arguments") or "{}"
        if isinstance(arguments, str):
            try:
                arguments = json.loads(arguments)
            except ValueError as e:
                raise ProviderDecodingError(f"Tool call arguments are not JSON: {e}") from e
        calls.append(ToolCall(id=raw.get("id", ""), name=function.get("name", ""), arguments=arguments))
    return calls


class OpenAICompletionsCodec:
    """Codec for OpenAI Chat Completions compatible endpoints."""

    auth_statuses: tuple[int, ...] = (401,)
    supports_tools = True

    def __init__(self, config: ProviderConfig, *, default_url: str | None = None, assets: AssetStore | None = None):
        self.config = config
        self.model = config.model_id
        self.url = config.base_url or default_url or settings.OPENAI_COMPLETIONS_URL
        self.assets = assets

    # Request encoding

    def build_headers(self, credential: str) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if credential:
            headers["Authorization"] = f"Bearer {credential}"
        return headers

    def effective_temperature(self, temperature: float) -> float:
        """Reasoning-only models accept nothing but temperature=1."""
        if self.model.lower() in settings.get_reasoning_models():
            return 1.0
        return temperature

    def message_text(self, message: PreparedMessage) -> str:
        return message.text

    def encode_message(self, message: PreparedMessage) -> dict[str, Any]:
        text = self.message_text(message)

        if message.role == "tool":
            return {"role": "tool", "tool_call_id": message.tool_call_id or "", "content": text}

        if message.role == "assistant" and message.tool_calls:
            return {
                "role": "assistant",
                "content": text or None,
                "tool_calls": [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {"name": call.name, "arguments": json.dumps(call.arguments)},
                    }
                    for call in message.tool_calls
                ],
            }

        # Only user turns may carry image/file parts
        if message.role == "user" and message.attachments:
            content: list[dict[str, Any]] = []
            if text:
                content.append({"type": "text", "text": text})
            for attachment in message.attachments:
                if attachment.is_image:
                    content.append({"type": "image_url", "image_url": {"url": attachment.data_url()}})
                else:
                    content.append({
                        "type": "file",
                        "file": {
                            "filename": attachment.filename or "document.pdf",
                            "file_data": attachment.data_url(),
                        },
                    })
            return {"role": message.role, "content": content}

        return {"role": message.role, "content": text}

    def encode_tools(self, tools: list[ToolDefinition]) -> list[dict[str, Any]]:
        return [
            {
                "type": "function",
                "function": {"name": t.name, "description": t.description, "parameters": t.parameters},
            }
            for t in tools
        ]

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
            body["temperature"] = self.effective_temperature(temperature)
        if tools and not stream:
            body["tools"] = self.encode_tools(tools)
            if not allow_tool_calls:
                body["tool_choice"] = "none"

        return HTTPRequest("POST", self.url, self.build_headers(credential), body)

    # Response decoding

    def render_message(self, message: dict[str, Any]) -> str | None:
        content = message.get("content")
        if isinstance(content, list):
            return "".join(part.get("text", "") for part in content if isinstance(part, dict))
        return content

    def decode_response(self, body: bytes) -> DecodedResponse:
        data = decode_json(body, "chat completion")
        if not isinstance(data, dict):
            raise ProviderDecodingError("Chat completion is not a JSON object")

        if data.get("error"):
            raise ProviderServerError(extract_error_message(body) or str(data["error"]))

        choices = data.get("choices")
        if not choices:
            raise ProviderDecodingError("Chat completion has no choices")

        message = choices[-1].get("message") or {}
        tool_calls = parse_tool_calls(message.get("tool_calls"))
        content = self.render_message(message)
        if content is None and not tool_calls:
            raise ProviderDecodingError("Chat completion message has no content")

        return DecodedResponse(text=content or "", tool_calls=tool_calls)

    def decode_delta(self, delta: dict[str, Any], state: StreamState) -> str | None:
        content = delta.get("content")
        return content if isinstance(content, str) and content else None

    def decode_stream_line(self, line: str, state: StreamState) -> StreamFragment:
        framed = frame_sse_line(line)
        if framed is None:
            return StreamFragment()
        if framed.done:
            return StreamFragment(finished=True)

        data = decode_json(framed.payload, "stream chunk")
        if not isinstance(data, dict):
            raise ProviderDecodingError(f"Unexpected stream chunk: {framed.payload[:100]}")

        if data.get("error"):
            raise ProviderServerError(extract_error_message(framed.payload) or framed.payload)

        choices = data.get("choices") or []
        if not choices:
            return StreamFragment()

        choice = choices[0]
        delta = self.decode_delta(choice.get("delta") or {}, state)
        return StreamFragment(delta=delta, finished=choice.get("finish_reason") == "stop")

    def open_span_closer(self, state: StreamState) -> str | None:
        return None

    def finish_stream(self, state: StreamState) -> str | None:
        return None

    def classify_error(self, status: int, body: bytes) -> ProviderError:
        return classify_http_error(status, body, auth_statuses=self.auth_statuses)

    # Model discovery

    def models_url(self) -> str:
        """`.../v1/chat/completions` -> `.../v1/models`."""
        url = httpx.URL(self.url)
        segments = [s for s in url.path.split("/") if s]
        path = "/".join(segments[:-2] + ["models"])
        return str(url.copy_with(path=f"/{path}", query=None))

    def models_request(self, credential: str) -> HTTPRequest | None:
        return HTTPRequest("GET", self.models_url(), self.build_headers(credential))

    def parse_models(self, body: bytes) -> list[str]:
        data = decode_json(body, "models list")
        try:
            return [item["id"] for item in data["data"]]
        except (KeyError, TypeError) as e:
            raise ProviderDecodingError(f"Unexpected models list shape: {e}") from e
