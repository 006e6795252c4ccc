"""
Anthropic Claude wire codec.

WHAT: Request/response translation for the Anthropic Messages API
WHY: Claude has no system role, uses x-api-key auth, and streams typed SSE events
HOW: Lift system messages into the top-level `system` field, encode attachments and tool
     turns as content blocks, decode events by their `type`
"""

from typing import Any

import httpx

from .errors import classify_http_error, decode_json, extract_error_message
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
    ToolCall,
    ToolDefinition,
)
from ..core.config import settings
from ..utils.logger import get_logger

logger = get_logger(__name__)


def split_system(messages: list[PreparedMessage]) -> tuple[str, list[PreparedMessage]]:
    """
    Separate system text from the conversation.

    The first system message leads the returned system text; any later
    system messages are appended after it.
    """
    system_parts = [m.text for m in messages if m.role == "system" and m.text]
    rest = [m for m in messages if m.role != "system"]
    return "\n\n".join(system_parts), rest


def encode_attachment_block(attachment) -> dict[str, Any]:
    block_type = "image" if attachment.is_image else "document"
    return {
        "type": block_type,
        "source": {"type": "base64", "media_type": attachment.mime_type, "data": attachment.base64()},
    }


def encode_claude_messages(messages: list[PreparedMessage]) -> list[dict[str, Any]]:
    """
    Encode non-system messages as Claude turns.

    Tool results become `tool_result` blocks inside a user turn; consecutive
    results share one turn.
    """
    encoded: list[dict[str, Any]] = []
    for message in messages:
        if message.role == "tool":
            block = {"type": "tool_result", "tool_use_id": message.tool_call_id or "", "content": message.text}
            if encoded and encoded[-1]["role"] == "user" and encoded[-1].get("_tool_results"):
                encoded[-1]["content"].append(block)
            else:
                encoded.append({"role": "user", "content": [block], "_tool_results": True})
            continue

        if message.role == "assistant" and message.tool_calls:
            content: list[dict[str, Any]] = []
            if message.text:
                content.append({"type": "text", "text": message.text})
            for call in message.tool_calls:
                content.append({"type": "tool_use", "id": call.id, "name": call.name, "input": call.arguments})
            encoded.append({"role": "assistant", "content": content})
            continue

        if message.role == "user" and message.attachments:
            content = [encode_attachment_block(a) for a in message.attachments]
            if message.text:
                content.append({"type": "text", "text": message.text})
            encoded.append({"role": "user", "content": content})
            continue

        encoded.append({"role": message.role, "content": message.text})

    for turn in encoded:
        turn.pop("_tool_results", None)
    return encoded


def decode_claude_message(data: Any) -> DecodedResponse:
    """Join text blocks with newlines and collect tool_use blocks."""
    if not isinstance(data, dict):
        raise ProviderDecodingError("Claude response is not a JSON object")
    if data.get("type") == "error" or data.get("error"):
        raise ProviderServerError(extract_error_message_from(data))

    blocks = data.get("content")
    if not isinstance(blocks, list):
        raise ProviderDecodingError("Claude response has no content blocks")
    blocks = [b for b in blocks if isinstance(b, dict)]

    texts = [b["text"] for b in blocks if b.get("type") == "text" and isinstance(b.get("text"), str)]
    tool_calls = [
        ToolCall(id=b.get("id", ""), name=b.get("name", ""), arguments=b.get("input") or {})
        for b in blocks
        if b.get("type") == "tool_use"
    ]
    text = "\n".join(texts)
    if not text and not tool_calls:
        raise ProviderDecodingError("Claude response contains no text")
    return DecodedResponse(text=text, tool_calls=tool_calls)


def extract_error_message_from(data: dict[str, Any]) -> str:
    error = data.get("error")
    if isinstance(error, dict) and error.get("message"):
        return error["message"]
    return str(error or data)


def decode_claude_event(line: str, state: StreamState) -> StreamFragment:
    """
    Decode one line of a Claude SSE stream.

    Text arrives on `content_block_start` and `content_block_delta`;
    `message_delta` with a stop_reason or `message_stop` ends the stream.
    """
    framed = frame_sse_line(line, require_data_prefix=True)
    if framed is None:
        return StreamFragment()
    if framed.done:
        return StreamFragment(finished=True)

    data = decode_json(framed.payload, "Claude stream event")
    if not isinstance(data, dict):
        raise ProviderDecodingError(f"Unexpected Claude event: {framed.payload[:100]}")

    event_type = data.get("type")
    if event_type == "error" or data.get("error"):
        raise ProviderServerError(extract_error_message(framed.payload) or framed.payload)

    if event_type == "content_block_start":
        block = data.get("content_block") or {}
        text = block.get("text")
        return StreamFragment(delta=text or None)

    if event_type == "content_block_delta":
        delta = data.get("delta") or {}
        text = delta.get("text")
        return StreamFragment(delta=text or None)

    if event_type == "message_delta":
        delta = data.get("delta") or {}
        return StreamFragment(finished=bool(delta.get("stop_reason")))

    if event_type == "message_stop":
        return StreamFragment(finished=True)

    if event_type not in ("message_start", "content_block_stop", "ping"):
        logger.debug(f"Unhandled Claude event type: {event_type}")
    return StreamFragment()


class ClaudeCodec:
    """Codec for https://api.anthropic.com/v1/messages."""

    auth_statuses: tuple[int, ...] = (401,)
    supports_tools = True

    def __init__(self, config: ProviderConfig, *, assets: AssetStore | None = None):
        self.config = config
        self.model = config.model_id
        self.url = config.base_url or settings.CLAUDE_URL
        self.assets = assets

    def build_headers(self, credential: str) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": credential,
            "anthropic-version": settings.ANTHROPIC_VERSION,
        }

    def request_url(self, stream: bool) -> str:
        return self.url

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
        body: dict[str, Any] = {
            "model": self.model,
            "messages": encode_claude_messages(conversation),
            "stream": stream,
            "max_tokens": settings.CLAUDE_MAX_TOKENS,
        }
        if system:
            body["system"] = system
        if include_temperature:
            body["temperature"] = temperature
        if tools and not stream:
            body["tools"] = [
                {"name": t.name, "description": t.description, "input_schema": t.parameters} for t in tools
            ]
            if not allow_tool_calls:
                body["tool_choice"] = {"type": "none"}
        return body

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
        system, conversation = split_system(messages)
        body = self.build_body(
            system,
            conversation,
            temperature=temperature,
            stream=stream,
            include_temperature=include_temperature,
            tools=tools,
            allow_tool_calls=allow_tool_calls,
        )
        return HTTPRequest("POST", self.request_url(stream), self.build_headers(credential), body)

    def decode_response(self, body: bytes) -> DecodedResponse:
        return decode_claude_message(decode_json(body, "Claude response"))

    def decode_stream_line(self, line: str, state: StreamState) -> StreamFragment:
        return decode_claude_event(line, state)

    def open_span_closer(self, state: StreamState) -> str | None:
        return None

    def finish_stream(self, state: StreamState) -> str | None:
        return None

    def classify_error(self, status: int, body: bytes) -> ProviderError:
        return classify_http_error(status, body, auth_statuses=self.auth_statuses)

    def models_request(self, credential: str) -> HTTPRequest | None:
        url = httpx.URL(self.url)
        segments = [s for s in url.path.split("/") if s]
        path = "/".join(segments[:-1] + ["models"])
        return HTTPRequest("GET", str(url.copy_with(path=f"/{path}", query=None)), self.build_headers(credential))

    def parse_models(self, body: bytes) -> list[str]:
        data = decode_json(body, "Claude models list")
        try:
            return [item["id"] for item in data["data"]]
        except (KeyError, TypeError) as e:
            raise ProviderDecodingError(f"Unexpected models list shape: {e}") from e
