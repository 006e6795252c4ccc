"""
Unit tests for the Claude codec.

WHAT: Test system extraction, attachment/tool blocks, response and event decoding
WHY: Claude has no system role and streams typed events
HOW: Encode prepared messages and decode canned bodies/SSE lines
"""

import json

import pytest

from chatbridge.llm.attachments import prepare_messages
from chatbridge.llm.claude import ClaudeCodec, split_system
from chatbridge.llm.types import (
    ConversationMessage,
    ProviderConfig,
    ProviderDecodingError,
    ProviderServerError,
    StreamState,
    ToolCall,
    ToolDefinition,
)


def make_codec() -> ClaudeCodec:
    return ClaudeCodec(ProviderConfig("claude", "claude-sonnet-4-5"))


def encode(messages, loader=None, **kwargs):
    params = {"temperature": 0.3, "stream": False, "credential": "sk-ant"}
    params.update(kwargs)
    return make_codec().encode_request(prepare_messages(messages, loader), **params)


def event(data: dict) -> str:
    return f"data: {json.dumps(data)}"


@pytest.mark.unit
class TestClaudeEncoding:
    """Test request encoding."""

    def test_system_message_is_extracted(self):
        request = encode([ConversationMessage("system", "S"), ConversationMessage("user", "U")])
        assert request.json["system"] == "S"
        assert request.json["messages"] == [{"role": "user", "content": "U"}]

    def test_headers_and_limits(self):
        request = encode([ConversationMessage("user", "U")])
        assert request.url == "https://api.anthropic.com/v1/messages"
        assert request.headers["x-api-key"] == "sk-ant"
        assert request.headers["anthropic-version"] == "2023-06-01"
        assert request.json["max_tokens"] == 4096
        assert request.json["temperature"] == 0.3
        assert "system" not in request.json

    def test_later_system_messages_are_appended(self):
        system, rest = split_system(prepare_messages([
            ConversationMessage("system", "First"),
            ConversationMessage("user", "U"),
            ConversationMessage("system", "Second"),
        ], None))
        assert system == "First\n\nSecond"
        assert [m.role for m in rest] == ["user"]

    def test_attachments_become_blocks(self, attachment_store):
        image_id = attachment_store.add(b"\xff\xd8jpeg", "image/jpeg")
        pdf_id = attachment_store.add(b"%PDF", "application/pdf", "a.pdf")
        request = encode([ConversationMessage("user", "Describe", attachments=[image_id, pdf_id])], attachment_store)

        content = request.json["messages"][0]["content"]
        assert [block["type"] for block in content] == ["image", "document", "text"]
        assert content[0]["source"]["media_type"] == "image/jpeg"
        assert content[1]["source"]["type"] == "base64"
        assert content[2] == {"type": "text", "text": "Describe"}

    def test_tool_use_and_results(self):
        request = encode([
            ConversationMessage("user", "Weather?"),
            ConversationMessage("assistant", "Checking", tool_calls=[ToolCall("tu_1", "get_weather", {"city": "Oslo"})]),
            ConversationMessage("tool", "Sunny", tool_call_id="tu_1"),
        ], tools=[ToolDefinition("get_weather", "Weather lookup")])

        assistant, results = request.json["messages"][1:]
        assert assistant["content"][1] == {"type": "tool_use", "id": "tu_1", "name": "get_weather", "input": {"city": "Oslo"}}
        assert results == {"role": "user", "content": [{"type": "tool_result", "tool_use_id": "tu_1", "content": "Sunny"}]}
        assert request.json["tools"][0]["input_schema"]["type"] == "object"
        assert "tool_choice" not in request.json

    def test_tool_calls_can_be_forbidden_with_tools_still_defined(self):
        request = encode(
            [ConversationMessage("user", "Weather?")],
            tools=[ToolDefinition("get_weather", "Weather lookup")],
            allow_tool_calls=False,
        )
        assert request.json["tools"][0]["name"] == "get_weather"
        assert request.json["tool_choice"] == {"type": "none"}


@pytest.mark.unit
class TestClaudeDecoding:
    """Test response and stream decoding."""

    def test_text_blocks_are_joined(self):
        body = {"content": [{"type": "text", "text": "one"}, {"type": "text", "text": "two"}]}
        assert make_codec().decode_response(json.dumps(body).encode()).text == "one\ntwo"

    def test_tool_use_response(self):
        body = {"content": [{"type": "tool_use", "id": "tu_1", "name": "get_weather", "input": {"city": "Oslo"}}]}
        decoded = make_codec().decode_response(json.dumps(body).encode())
        assert decoded.tool_calls == [ToolCall("tu_1", "get_weather", {"city": "Oslo"})]

    def test_empty_content_is_decoding_error(self):
        with pytest.raises(ProviderDecodingError):
            make_codec().decode_response(b'{"content": []}')

    def test_non_object_blocks_are_decoding_error(self):
        with pytest.raises(ProviderDecodingError):
            make_codec().decode_response(b'{"content": ["x", 3]}')

    def test_non_object_blocks_are_skipped(self):
        body = {"content": ["x", {"type": "text", "text": "kept"}]}
        assert make_codec().decode_response(json.dumps(body).encode()).text == "kept"

    def test_error_body(self):
        body = b'{"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}}'
        with pytest.raises(ProviderServerError, match="Overloaded"):
            make_codec().decode_response(body)

    def test_event_sequence(self):
        codec, state = make_codec(), StreamState()
        lines = [
            "event: message_start",
            event({"type": "message_start", "message": {"id": "msg_1"}}),
            event({"type": "content_block_start", "index": 0, "content_block": {"type": "text", "text": ""}}),
            event({"type": "ping"}),
            event({"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "Hel"}}),
            event({"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "lo"}}),
            event({"type": "content_block_stop", "index": 0}),
            event({"type": "message_delta", "delta": {"stop_reason": "end_turn"}}),
        ]
        deltas = []
        finished = False
        for line in lines:
            fragment = codec.decode_stream_line(line, state)
            if fragment.delta:
                deltas.append(fragment.delta)
            finished = fragment.finished
        assert deltas == ["Hel", "lo"]
        assert finished is True

    def test_message_stop_finishes(self):
        assert make_codec().decode_stream_line(event({"type": "message_stop"}), StreamState()).finished

    def test_stream_error_event(self):
        line = event({"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}})
        with pytest.raises(ProviderServerError) as exc:
            make_codec().decode_stream_line(line, StreamState())
        assert exc.value.detail == "Overloaded"

    def test_models_request(self):
        request = make_codec().models_request("sk-ant")
        assert request.url == "https://api.anthropic.com/v1/models"
        assert request.headers["x-api-key"] == "sk-ant"
