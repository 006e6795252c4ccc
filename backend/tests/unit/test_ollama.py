"""
Unit tests for the Ollama codec.

WHAT: Test /api/chat encoding, JSON-lines stream decoding, model listing
WHY: Ollama streams bare JSON objects rather than SSE
HOW: Encode prepared messages and decode canned lines
"""

import json

import pytest

from chatbridge.llm.attachments import prepare_messages
from chatbridge.llm.ollama import OllamaCodec
from chatbridge.llm.types import (
    ConversationMessage,
    ProviderConfig,
    ProviderDecodingError,
    ProviderServerError,
    StreamState,
)


def make_codec() -> OllamaCodec:
    return OllamaCodec(ProviderConfig("ollama", "llama3.2"))


@pytest.mark.unit
class TestOllamaCodec:
    """Test the Ollama wire format."""

    def test_encode_with_images(self, attachment_store):
        image_id = attachment_store.add(b"\x89PNG", "image/png")
        request = make_codec().encode_request(
            prepare_messages([ConversationMessage("user", "What is this?", attachments=[image_id])], attachment_store),
            temperature=0.8, stream=True, credential="",
        )
        assert request.url == "http://localhost:11434/api/chat"
        assert "Authorization" not in request.headers
        assert request.json["model"] == "llama3.2"
        assert request.json["stream"] is True
        assert request.json["options"] == {"temperature": 0.8}
        assert request.json["messages"][0]["content"] == "What is this?"
        assert request.json["messages"][0]["images"] == ["iVBORw=="]

    def test_decode_response(self):
        body = {"model": "llama3.2", "message": {"role": "assistant", "content": "Hi!"}, "done": True}
        assert make_codec().decode_response(json.dumps(body).encode()).text == "Hi!"

    def test_decode_error(self):
        with pytest.raises(ProviderServerError, match="model 'x' not found"):
            make_codec().decode_response(b'{"error": "model \'x\' not found"}')

    def test_stream_lines(self):
        codec, state = make_codec(), StreamState()
        first = codec.decode_stream_line('{"message": {"role": "assistant", "content": "Hel"}, "done": false}', state)
        last = codec.decode_stream_line('{"message": {"role": "assistant", "content": ""}, "done": true}', state)
        assert (first.delta, first.finished) == ("Hel", False)
        assert (last.delta, last.finished) == (None, True)

    def test_stream_tolerates_data_prefix(self):
        fragment = make_codec().decode_stream_line('data: {"message": {"content": "x"}, "done": false}', StreamState())
        assert fragment.delta == "x"

    def test_stream_malformed_line(self):
        with pytest.raises(ProviderDecodingError):
            make_codec().decode_stream_line("{truncated", StreamState())

    def test_models(self):
        codec = make_codec()
        assert codec.models_request("").url == "http://localhost:11434/api/tags"
        assert codec.parse_models(b'{"models": [{"name": "llama3.2:latest"}]}') == ["llama3.2:latest"]
