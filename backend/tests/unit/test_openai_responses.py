"""
Unit tests for the OpenAI Responses codec.

WHAT: Test input encoding, output aggregation, image persistence, typed stream events
WHY: The Responses API nests text and images in typed output items
HOW: Encode prepared messages, decode canned response objects and events
"""

import json

import pytest

from chatbridge.llm.attachments import prepare_messages
from chatbridge.llm.openai_responses import OpenAIResponsesCodec, collect_image_payloads
from chatbridge.llm.types import (
    ConversationMessage,
    ProviderConfig,
    ProviderDecodingError,
    ProviderServerError,
    StreamState,
)
from tests.fixtures.fakes import PNG_BASE64


def make_codec(model: str = "gpt-4.1", image_generation: bool = False, assets=None) -> OpenAIResponsesCodec:
    config = ProviderConfig("openai-responses", model, image_generation=image_generation)
    return OpenAIResponsesCodec(config, assets=assets)


def event(data: dict) -> str:
    return f"data: {json.dumps(data)}"


def message_output(text: str) -> dict:
    return {"type": "message", "role": "assistant", "content": [{"type": "output_text", "text": text}]}


@pytest.mark.unit
class TestResponsesEncoding:
    """Test request encoding."""

    def test_input_parts_and_headers(self, attachment_store):
        image_id = attachment_store.add(b"\xff\xd8jpeg", "image/jpeg")
        pdf_id = attachment_store.add(b"%PDF", "application/pdf")
        request = make_codec().encode_request(
            prepare_messages([
                ConversationMessage("system", "Be kind"),
                ConversationMessage("user", "Look", attachments=[image_id, pdf_id]),
                ConversationMessage("assistant", "Nice"),
            ], attachment_store),
            temperature=0.6, stream=True, credential="sk-test",
        )

        assert request.url == "https://api.openai.com/v1/responses"
        assert request.headers["OpenAI-Beta"] == "responses=v1"
        assert request.headers["Accept"] == "text/event-stream"
        assert request.json["stream"] is True
        assert request.json["temperature"] == 0.6

        system, user, assistant = request.json["input"]
        assert system == {"role": "system", "content": [{"type": "input_text", "text": "Be kind"}]}
        assert user["content"][0] == {"type": "input_text", "text": "Look"}
        assert user["content"][1]["type"] == "input_image"
        assert user["content"][1]["image_url"].startswith("data:image/jpeg;base64,")
        assert user["content"][2]["type"] == "input_file"
        assert user["content"][2]["filename"] == "document.pdf"
        assert assistant == {"role": "assistant", "content": [{"type": "output_text", "text": "Nice"}]}

    def test_image_generation_tool(self):
        request = make_codec(image_generation=True).encode_request(
            prepare_messages([ConversationMessage("user", "Draw a cat")], None),
            temperature=1, stream=False, credential="k",
        )
        assert request.json["tools"] == [{"type": "image_generation"}]
        assert "stream" not in request.json
        assert "Accept" not in request.headers

    def test_reasoning_model_temperature(self):
        request = make_codec("o1").encode_request(
            prepare_messages([ConversationMessage("user", "Hi")], None), temperature=0.2, stream=False, credential="k"
        )
        assert request.json["temperature"] == 1.0

    def test_models_url(self):
        assert make_codec().models_request("k").url == "https://api.openai.com/v1/models"


@pytest.mark.unit
class TestResponsesDecoding:
    """Test single-shot decoding."""

    def test_output_text_shortcut(self):
        assert make_codec().decode_response(b'{"output_text": "Hi there"}').text == "Hi there"

    def test_message_items_are_joined(self):
        body = {"output": [
            {"type": "reasoning", "summary": []},
            message_output("First"),
            message_output("Second"),
        ]}
        assert make_codec().decode_response(json.dumps(body).encode()).text == "First\n\nSecond"

    def test_refusal(self):
        body = {"output": [{"type": "message", "content": [{"type": "refusal", "refusal": "I can't help"}]}]}
        assert make_codec().decode_response(json.dumps(body).encode()).text == "I can't help"

    def test_generated_image_becomes_placeholder(self, attachment_store):
        body = {"output": [
            {"type": "image_generation_call", "id": "ig_1", "status": "completed", "result": PNG_BASE64},
            message_output("Here is your cat"),
        ]}
        text = make_codec(assets=attachment_store).decode_response(json.dumps(body).encode()).text

        asset_id = next(iter(attachment_store.items))
        assert text == f"<image-uuid>{asset_id}</image-uuid>\n\nHere is your cat"

    def test_error_envelope(self):
        with pytest.raises(ProviderServerError, match="model not found"):
            make_codec().decode_response(b'{"error": {"message": "model not found"}}')

    def test_unparseable_shape(self):
        with pytest.raises(ProviderDecodingError):
            make_codec().decode_response(b'{"id": "resp_1", "output": []}')

    def test_collect_image_payloads_shapes(self):
        item = {
            "type": "output_image",
            "images": [{"b64_json": "AAA"}],
            "inline_data": {"data": "BBB", "mime_type": "image/webp"},
            "image_url": "data:image/gif;base64,CCC",
        }
        assert collect_image_payloads(item) == [("AAA", None), ("BBB", "image/webp"), ("CCC", "image/gif")]


@pytest.mark.unit
class TestResponsesStreaming:
    """Test typed stream events."""

    def test_deltas_then_completed_without_replay(self):
        codec, state = make_codec(), StreamState()
        lines = [
            "event: response.created",
            event({"type": "response.created", "response": {"id": "resp_1", "output": []}}),
            event({"type": "response.output_text.delta", "delta": "Hel"}),
            event({"type": "response.output_text.delta", "delta": "lo"}),
            event({"type": "response.output_text.done", "text": "Hello"}),
            event({"type": "response.completed", "response": {"output": [message_output("Hello")]}}),
        ]
        deltas, finished = [], False
        for line in lines:
            fragment = codec.decode_stream_line(line, state)
            if fragment.delta:
                deltas.append(fragment.delta)
            finished = fragment.finished
        assert deltas == ["Hel", "lo"]
        assert finished is True

    def test_completed_carries_text_when_nothing_streamed(self):
        codec, state = make_codec(), StreamState()
        fragment = codec.decode_stream_line(
            event({"type": "response.completed", "response": {"output": [message_output("All at once")]}}), state
        )
        assert fragment.delta == "All at once"
        assert fragment.finished is True

    def test_streamed_image_item(self, attachment_store):
        codec, state = make_codec(assets=attachment_store), StreamState()
        codec.decode_stream_line(event({"type": "response.output_text.delta", "delta": "Cat:"}), state)
        fragment = codec.decode_stream_line(event({
            "type": "response.output_item.done",
            "item": {"type": "image_generation_call", "result": PNG_BASE64},
        }), state)
        asset_id = next(iter(attachment_store.items))
        assert fragment.delta == f"\n\n<image-uuid>{asset_id}</image-uuid>"

    def test_error_event(self):
        with pytest.raises(ProviderServerError, match="rate limit"):
            make_codec().decode_stream_line(
                event({"type": "response.error", "message": "rate limit"}), StreamState()
            )

    def test_failed_event(self):
        with pytest.raises(ProviderServerError, match="server_error"):
            make_codec().decode_stream_line(
                event({"type": "response.failed", "response": {"error": {"message": "server_error"}}}), StreamState()
            )
