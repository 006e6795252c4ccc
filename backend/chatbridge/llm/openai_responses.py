"""
OpenAI Responses API wire codec.

WHAT: Request/response translation for POST /v1/responses
WHY: The Responses API uses typed input parts, typed stream events, and can return
     generated images alongside text
HOW: Encode input_text/input_image/input_file parts; decode `*.delta` events, replay
     `response.completed` only when nothing was streamed, persist images via the asset store
"""

from typing import Any

import httpx

from .attachments import store_inline_image
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

IMAGE_ITEM_TYPES = {"image_generation_call", "output_image", "image"}
TEXT_ITEM_TYPES = {"input_text", "output_text", "text"}


def join_segments(segments: list[str]) -> str:
    return "\n\n".join(s.strip() for s in segments if s.strip()).strip()


def collect_image_payloads(item: dict[str, Any], hint: str | None = None) -> list[tuple[str, str | None]]:
    """
    Find base64 image payloads anywhere inside an output item.

    Returns:
        (base64, mime-or-format hint) pairs in document order
    """
    hint = item.get("mime_type") or item.get("media_type") or item.get("content_type") or item.get("format") or hint
    found: list[tuple[str, str | None]] = []

    result = item.get("result")
    if isinstance(result, str):
        found.append((result, hint))
    elif isinstance(result, list):
        found.extend((r, hint) for r in result if isinstance(r, str))
    elif isinstance(result, dict):
        found.extend(collect_image_payloads(result, hint))

    if isinstance(item.get("image"), dict):
        found.extend(collect_image_payloads(item["image"], hint))
    for key in ("images", "data", "media"):
        entries = item.get(key)
        if isinstance(entries, list):
            for entry in entries:
                if isinstance(entry, dict):
                    found.extend(collect_image_payloads(entry, hint))

    for key in ("b64_json", "base64"):
        if isinstance(item.get(key), str):
            found.append((item[key], hint))

    inline = item.get("inline_data")
    if isinstance(inline, dict) and isinstance(inline.get("data"), str):
        found.append((inline["data"], inline.get("mime_type") or hint))

    url = item.get("image_url")
    if isinstance(url, str) and url.startswith("data:image") and "," in url:
        metadata, payload = url.split(",", 1)
        found.append((payload, metadata.split(":")[-1].split(";")[0] or hint))

    return found


class OpenAIResponsesCodec:
    """Codec for https://api.openai.com/v1/responses."""

    auth_statuses: tuple[int, ...] = (401,)
    supports_tools = False

    def __init__(self, config: ProviderConfig, *, assets: AssetStore | None = None):
        self.config = config
        self.model = config.model_id
        self.url = config.base_url or settings.OPENAI_RESPONSES_URL
        self.assets = assets

    # Request encoding

    def build_headers(self, credential: str, stream: bool = False) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {credential}",
            "OpenAI-Beta": "responses=v1",
        }
        if stream:
            headers["Accept"] = "text/event-stream"
        return headers

    def encode_message(self, message: PreparedMessage) -> dict[str, Any]:
        text_type = "output_text" if message.role == "assistant" else "input_text"
        content: list[dict[str, Any]] = []
        if message.text:
            content.append({"type": text_type, "text": message.text})

        if message.role != "assistant":
            for attachment in message.attachments:
                if attachment.is_image:
                    content.append({"type": "input_image", "image_url": attachment.data_url()})
                else:
                    content.append({
                        "type": "input_file",
                        "file_data": attachment.data_url(),
                        "filename": attachment.filename or "document.pdf",
                    })

        role = "user" if message.role == "tool" else message.role
        return {"role": role, "content": content}

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
            "input": [self.encode_message(m) for m in messages],
        }
        if include_temperature:
            reasoning_only = self.model.lower() in settings.get_reasoning_models()
            body["temperature"] = 1.0 if reasoning_only else temperature
        if self.config.image_generation:
            body["tools"] = [{"type": "image_generation"}]
        if stream:
            body["stream"] = True
        return HTTPRequest("POST", self.url, self.build_headers(credential, stream), body)

    # Output aggregation

    def image_placeholders(self, item: dict[str, Any], cache: dict[str, str]) -> list[str]:
        placeholders = []
        for payload, hint in collect_image_payloads(item):
            placeholder = store_inline_image(self.assets, payload, hint, cache)
            if placeholder and placeholder not in placeholders:
                placeholders.append(placeholder)
        return placeholders

    def aggregate_content(self, items: list[dict[str, Any]], cache: dict[str, str]) -> str:
        segments: list[str] = []
        for item in items:
            if not isinstance(item, dict):
                continue
            item_type = item.get("type")
            if item_type in TEXT_ITEM_TYPES or item_type is None:
                text = item.get("text") or item.get("output_text")
                if isinstance(text, str):
                    segments.append(text)
            elif item_type == "refusal":
                if isinstance(item.get("refusal"), str):
                    segments.append(item["refusal"])
            else:
                segments.extend(self.image_placeholders(item, cache))
                if isinstance(item.get("text"), str):
                    segments.append(item["text"])
        return join_segments(segments)

    def aggregate_output(self, items: list[dict[str, Any]], cache: dict[str, str]) -> str:
        segments: list[str] = []
        for item in items:
            if not isinstance(item, dict):
                continue
            item_type = item.get("type")
            content = item.get("content") if isinstance(item.get("content"), list) else None

            if item_type == "output_text":
                text = item.get("text") or item.get("output_text")
                if isinstance(text, str):
                    segments.append(text)
            elif item_type in IMAGE_ITEM_TYPES:
                segments.extend(self.image_placeholders(item, cache))
            elif item_type == "refusal" and isinstance(item.get("refusal"), str):
                segments.append(item["refusal"])
            elif content is not None:
                segments.append(self.aggregate_content(content, cache))
            else:
                segments.extend(self.image_placeholders(item, cache))
                if isinstance(item.get("text"), str):
                    segments.append(item["text"])
        return join_segments(segments)

    def extract_message(self, data: dict[str, Any], cache: dict[str, str]) -> str | None:
        """Render a response object (or a fragment of one) as text."""
        if isinstance(data.get("response"), dict):
            return self.extract_message(data["response"], cache)

        output_text = data.get("output_text")
        if isinstance(output_text, str) and output_text.strip():
            return output_text

        if isinstance(data.get("output"), list):
            return self.aggregate_output(data["output"], cache) or None
        if isinstance(data.get("content"), list):
            return self.aggregate_content(data["content"], cache) or None
        if isinstance(data.get("message"), dict):
            return self.extract_message(data["message"], cache)
        return None

    # Response decoding

    def decode_response(self, body: bytes) -> DecodedResponse:
        data = decode_json(body, "Responses API reply")
        if not isinstance(data, dict):
            raise ProviderDecodingError("Responses API reply is not a JSON object")
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            raise ProviderServerError(error["message"])

        text = self.extract_message(data, {})
        if text is None:
            raise ProviderDecodingError("Failed to parse response")
        return DecodedResponse(text=text)

    def _emit(self, state: StreamState, delta: str | None, finished: bool = False) -> StreamFragment:
        if delta:
            state.yielded_content = True
        return StreamFragment(delta=delta or None, finished=finished)

    def decode_stream_line(self, line: str, state: StreamState) -> StreamFragment:
        framed = frame_sse_line(line, require_data_prefix=True)
        if framed is None:
            return StreamFragment()
        if framed.done:
            return StreamFragment(finished=True)

        data = decode_json(framed.payload, "Responses stream event")
        if not isinstance(data, dict):
            raise ProviderDecodingError(f"Unexpected Responses event: {framed.payload[:100]}")

        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            raise ProviderServerError(error["message"])

        event_type = data.get("type")
        if event_type == "response.completed":
            # Text was already streamed as deltas; do not replay it
            if state.yielded_content:
                return StreamFragment(finished=True)
            return self._emit(state, self.extract_message(data, state.inline_assets), finished=True)

        if event_type in ("response.error", "error", "response.failed"):
            response_error = (data.get("response") or {}).get("error") or {}
            message = data.get("message") or response_error.get("message") or framed.payload
            raise ProviderServerError(message)

        if isinstance(event_type, str):
            if event_type.endswith(".delta"):
                delta = data.get("delta")
                if isinstance(delta, str):
                    return self._emit(state, delta)
                if isinstance(delta, dict):
                    return self._emit(state, join_segments(self.image_placeholders(delta, state.inline_assets)))
                return StreamFragment()
            if event_type == "response.output_item.done":
                item = data.get("item") or {}
                if item.get("type") in IMAGE_ITEM_TYPES:
                    placeholders = join_segments(self.image_placeholders(item, state.inline_assets))
                    if placeholders and state.yielded_content:
                        placeholders = "\n\n" + placeholders
                    return self._emit(state, placeholders)
                return StreamFragment()
            if event_type.startswith("response."):
                return StreamFragment()

        message = self.extract_message(data, state.inline_assets)
        if message:
            return self._emit(state, message)
        if isinstance(data.get("delta"), str):
            return self._emit(state, data["delta"])
        return StreamFragment()

    def open_span_closer(self, state: StreamState) -> str | None:
        return None

    def finish_stream(self, state: StreamState) -> str | None:
        return None

    def classify_error(self, status: int, body: bytes) -> ProviderError:
        return classify_http_error(status, body, auth_statuses=self.auth_statuses)

    # Model discovery

    def models_request(self, credential: str) -> HTTPRequest | None:
        url = httpx.URL(self.url)
        segments = [s for s in url.path.split("/") if s]
        path = "/".join(segments[:-1] + ["models"])
        return HTTPRequest("GET", str(url.copy_with(path=f"/{path}", query=None)), self.build_headers(credential))

    def parse_models(self, body: bytes) -> list[str]:
        data = decode_json(body, "models list")
        try:
            return [item["id"] for item in data["data"]]
        except (KeyError, TypeError) as e:
            raise ProviderDecodingError(f"Unexpected models list shape: {e}") from e
