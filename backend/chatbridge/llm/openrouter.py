"""
OpenRouter wire codec.

WHAT: OpenAI-compatible codec with OpenRouter attribution and reasoning support
WHY: OpenRouter streams model "thinking" on a separate `reasoning` field
HOW: Extend the Chat Completions codec; wrap reasoning runs in <think> markers,
     strip <think> blocks from outgoing history
"""

import re
from typing import Any

from .openai_completions import OpenAICompletionsCodec
from .provider import AssetStore
from .types import PreparedMessage, ProviderConfig, StreamState
from ..core.config import settings

REASONING_OPEN = "<think>\n"
REASONING_CLOSE = "\n</think>\n\n"

_THINK_BLOCK = re.compile(r"<think>\s*([\s\S]*?)\s*</think>")


def remove_thinking_tags(content: str) -> str:
    """Drop <think>...</think> blocks so earlier reasoning is not re-sent."""
    return _THINK_BLOCK.sub("", content).strip()


class OpenRouterCodec(OpenAICompletionsCodec):
    """Codec for https://openrouter.ai/api/v1/chat/completions."""

    def __init__(self, config: ProviderConfig, *, default_url: str | None = None, assets: AssetStore | None = None):
        super().__init__(config, default_url=default_url or settings.OPENROUTER_URL, assets=assets)

    def build_headers(self, credential: str) -> dict[str, str]:
        headers = super().build_headers(credential)
        headers["HTTP-Referer"] = settings.OPENROUTER_REFERER
        headers["X-Title"] = settings.APP_NAME
        return headers

    def message_text(self, message: PreparedMessage) -> str:
        return remove_thinking_tags(message.text)

    def render_message(self, message: dict[str, Any]) -> str | None:
        content = super().render_message(message)
        reasoning = message.get("reasoning")
        if content is not None and isinstance(reasoning, str) and reasoning:
            return f"{REASONING_OPEN}{reasoning}{REASONING_CLOSE}{content}"
        return content

    def decode_delta(self, delta: dict[str, Any], state: StreamState) -> str | None:
        """
        Translate one delta, tracking the open reasoning span on `state`.

        A reasoning run gets exactly one opening marker; the closing marker
        is emitted before the first content that follows it.
        """
        out = ""
        reasoning = delta.get("reasoning")
        if isinstance(reasoning, str) and reasoning:
            if not state.reasoning_open:
                state.reasoning_open = True
                out += REASONING_OPEN
            out += reasoning

        content = delta.get("content")
        if isinstance(content, str) and content:
            if state.reasoning_open:
                state.reasoning_open = False
                out += REASONING_CLOSE
            out += content

        return out or None

    def open_span_closer(self, state: StreamState) -> str | None:
        return REASONING_CLOSE if state.reasoning_open else None

    def finish_stream(self, state: StreamState) -> str | None:
        closer = self.open_span_closer(state)
        state.reasoning_open = False
        return closer
