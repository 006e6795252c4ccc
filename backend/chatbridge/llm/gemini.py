"""
Google Gemini wire codec.

WHAT: Request/response translation for the Gemini generateContent API
WHY: Gemini uses role/parts contents, resends text snapshots while streaming, and may
     return generated images inline as base64
HOW: Encode interleaved text/inlineData parts, render responses through the delta merger,
     persist inline images via the asset store and substitute placeholders
"""

from typing import Any

from .attachments import append_inline_placeholder, store_inline_image
from .delta_merger import merge_delta
from .errors import decode_json, error_text
from .sse import frame_sse_line
from .provider import AssetStore
from .types import (
    DecodedResponse,
    HTTPRequest,
    PreparedMessage,
    ProviderConfig,
    ProviderDecodingError,
    ProviderError,
    ProviderRateLimitedError,
    ProviderServerError,
    ProviderUnauthorizedError,
    ProviderUnknownError,
    ResolvedAttachment,
    StreamFragment,
    StreamState,
    ToolDefinition,
)
from ..core.config import settings
from ..utils.logger import get_logger

logger = get_logger(__name__)

TERMINAL_FINISH_REASONS = {"STOP", "MAX_TOKENS", "SAFETY", "RECITATION", "BLOCKLIST", "OTHER"}


def classify_google_error(status: int, body: bytes, *, label: str) -> ProviderError:
    """Gemini and Vertex share one status table; 403 also means a bad credential."""
    message = error_text(status, body)
    if status == 400:
        return ProviderServerError(f"Bad Request: {message}")
    if status in (401, 403):
        return ProviderUnauthorizedError(message)
    if status == 429:
        return ProviderRateLimitedError(message)
    if 500 <= status <= 599:
        return ProviderServerError(f"{label}: {message}")
    return ProviderUnknownError(message)


def normalize_model(model_id: str) -> str:
    return model_id[len("models/"):] if model_id.startswith("models/") else model_id


def _field(data: dict[str, Any], camel: str, snake: str) -> Any:
    value = data.get(camel)
    return data.get(snake) if value is None else value


def response_parts(data: Any) -> list[dict[str, Any]] | None:
    """Parts of the first candidate, or None when the response carries no content."""
    if not isinstance(data, dict):
        return None
    candidates = data.get("candidates") or []
    if not candidates:
        return None
    content = candidates[0].get("content") or {}
    parts = content.get("parts")
    return parts if isinstance(parts, list) else None


def is_finished(data: dict[str, Any]) -> bool:
    for candidate in data.get("candidates") or []:
        reason = _field(candidate, "finishReason", "finish_reason")
        if isinstance(reason, str) and reason.upper() in TERMINAL_FINISH_REASONS:
            return True
    return False


class GeminiCodec:
    """Codec for https://generativelanguage.googleapis.com/v1beta/models."""

    auth_statuses: tuple[int, ...] = (401, 403)
    supports_tools = False
    service_type = "gemini"
    error_label = "Gemini API Error"

    def __init__(self, config: ProviderConfig, *, assets: AssetStore | None = None):
        self.config = config
        self.model = normalize_model(config.model_id)
        self.base_url = (config.base_url or settings.GEMINI_URL).rstrip("/")
        self.assets = assets
        self.last_parts: list[dict[str, Any]] | None = None

    @property
    def requires_thought_signatures(self) -> bool:
        return "gemini-3" in self.model.lower()

    # Request encoding

    def request_url(self, stream: bool) -> str:
        if stream:
            return f"{self.base_url}/{self.model}:streamGenerateContent?alt=sse"
        return f"{self.base_url}/{self.model}:generateContent"

    def build_headers(self, credential: str, stream: bool = False) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "x-goog-api-key": credential}
        if stream:
            headers["Accept"] = "text/event-stream"
        return headers

    def encode_parts(self, message: PreparedMessage) -> list[dict[str, Any]]:
        parts = []
        for segment in message.segments:
            if isinstance(segment, ResolvedAttachment):
                parts.append({"inlineData": {"mimeType": segment.mime_type, "data": segment.base64()}})
            elif segment.strip():
                parts.append({"text": segment})
        return parts

    def stored_parts(self, payload: dict[str, Any] | None) -> list[dict[str, Any]] | None:
        """Parts from a payload envelope produced by `consume_provider_payload`."""
        if not isinstance(payload, dict):
            return None
        if str(payload.get("service_type", "")).lower() not in ("gemini", "vertex"):
            return None
        parts = [
            p for p in payload.get("parts") or []
            if (isinstance(p.get("text"), str) and p["text"].strip())
            or p.get("inlineData")
            or p.get("thoughtSignature")
        ]
        return parts or None

    def encode_contents(self, messages: list[PreparedMessage]) -> tuple[dict[str, Any] | None, list[dict[str, Any]]]:
        system_texts = []
        contents = []

        for message in messages:
            if message.role == "system":
                if message.text:
                    system_texts.append(message.text)
                continue

            parts = self.stored_parts(message.provider_payload) or self.encode_parts(message)
            if not parts:
                continue

            if message.role == "assistant":
                # gemini-3 rejects model turns without their thought signatures
                if self.requires_thought_signatures and not any(p.get("thoughtSignature") for p in parts):
                    continue
                contents.append({"role": "model", "parts": parts})
            else:
                contents.append({"role": "user", "parts": parts})

        system_instruction = None
        if system_texts:
            system_instruction = {"parts": [{"text": "\n\n".join(system_texts)}]}
        return system_instruction, contents

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
        system_instruction, contents = self.encode_contents(messages)
        if not contents:
            raise ProviderUnknownError("Gemini request requires at least one user or assistant message")

        body: dict[str, Any] = {"contents": contents}
        if system_instruction:
            body["systemInstruction"] = system_instruction
        if include_temperature:
            body["generationConfig"] = {"temperature": temperature}

        return HTTPRequest("POST", self.request_url(stream), self.build_headers(credential, stream), body)

    # Response decoding

    def render_parts(self, parts: list[dict[str, Any]], cache: dict[str, str]) -> str | None:
        """
        Render parts as text, replacing inline images with placeholders.

        Images already seen in `cache` reuse their placeholder instead of
        being stored again.
        """
        message = ""
        for part in parts:
            text = part.get("text")
            if isinstance(text, str) and text:
                message += text

            inline = _field(part, "inlineData", "inline_data")
            if isinstance(inline, dict) and inline.get("data"):
                placeholder = store_inline_image(
                    self.assets,
                    inline["data"],
                    _field(inline, "mimeType", "mime_type"),
                    cache,
                )
                if placeholder:
                    message = append_inline_placeholder(message, placeholder)

        message = message.rstrip("\n")
        return message or None

    def decode_response(self, body: bytes) -> DecodedResponse:
        data = decode_json(body, "Gemini response")
        if isinstance(data, dict) and isinstance(data.get("error"), dict):
            raise ProviderServerError(data["error"].get("message") or str(data["error"]))

        parts = response_parts(data)
        self.last_parts = parts
        text = self.render_parts(parts or [], {})
        if text is None:
            raise ProviderDecodingError("Empty Gemini response")
        return DecodedResponse(text=text, provider_payload=self.consume_provider_payload(clear=False))

    def decode_stream_line(self, line: str, state: StreamState) -> StreamFragment:
        framed = frame_sse_line(line, require_data_prefix=True)
        if framed is None:
            return StreamFragment()
        if framed.done:
            return StreamFragment(finished=True)

        data = decode_json(framed.payload, "Gemini stream chunk")

        if isinstance(data, str):
            merged = merge_delta(state.snapshot, data)
            state.snapshot = merged.snapshot
            return StreamFragment(delta=merged.delta)

        if not isinstance(data, dict):
            raise ProviderDecodingError(f"Unexpected Gemini chunk: {framed.payload[:100]}")

        if isinstance(data.get("error"), dict):
            raise ProviderServerError(data["error"].get("message") or framed.payload)

        parts = response_parts(data) or []
        delta = None
        cumulative = False
        rendered = self.render_parts(parts, state.inline_assets)
        if rendered:
            cumulative = not state.snapshot or rendered.startswith(state.snapshot)
            merged = merge_delta(state.snapshot, rendered)
            state.snapshot = merged.snapshot
            delta = merged.delta

        if parts:
            if cumulative or state.last_parts is None:
                state.last_parts = list(parts)
            else:
                state.last_parts.extend(parts)
            self.last_parts = state.last_parts

        return StreamFragment(delta=delta, finished=is_finished(data))

    def open_span_closer(self, state: StreamState) -> str | None:
        return None

    def finish_stream(self, state: StreamState) -> str | None:
        return None

    def consume_provider_payload(self, clear: bool = True) -> dict[str, Any] | None:
        """
        Return the last response's parts (with thought signatures) as an opaque envelope.

        Attach the envelope to the assistant message as `provider_payload` so the
        next request re-sends the exact parts.
        """
        parts = self.last_parts
        if clear:
            self.last_parts = None
        if not parts:
            return None

        request_parts = []
        for part in parts:
            signature = _field(part, "thoughtSignature", "thought_signature")
            inline = _field(part, "inlineData", "inline_data")
            if isinstance(part.get("text"), str):
                encoded: dict[str, Any] = {"text": part["text"]}
            elif isinstance(inline, dict) and inline.get("data") and _field(inline, "mimeType", "mime_type"):
                encoded = {"inlineData": {"mimeType": _field(inline, "mimeType", "mime_type"), "data": inline["data"]}}
            else:
                continue
            if signature:
                encoded["thoughtSignature"] = signature
            request_parts.append(encoded)

        if not request_parts:
            return None
        return {"service_type": self.service_type, "parts": request_parts}

    def classify_error(self, status: int, body: bytes) -> ProviderError:
        return classify_google_error(status, body, label=self.error_label)

    # Model discovery

    def models_request(self, credential: str) -> HTTPRequest | None:
        return HTTPRequest("GET", self.base_url, self.build_headers(credential))

    def parse_models(self, body: bytes) -> list[str]:
        data = decode_json(body, "Gemini models list")
        try:
            return [normalize_model(item["name"]) for item in data["models"]]
        except (KeyError, TypeError) as e:
            raise ProviderDecodingError(f"Unexpected models list shape: {e}") from e
