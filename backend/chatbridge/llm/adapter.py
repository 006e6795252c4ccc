"""
Provider adapter.

WHAT: The uniform send/stream/models/cancel surface over one wire codec
WHY: Transport, credentials, attachments, capability fallback and cancellation are
     the same for every provider; only the wire format differs
HOW: Compose a WireCodec with the shared Transport; each call runs as a cancellable
     asyncio task, and a new call cancels the adapter's previous one
"""

import asyncio

from .attachments import prepare_messages
from .capabilities import CapabilityMemory, default_capability_memory
from .credentials import StaticCredential
from .errors import is_unsupported_parameter_error
from .provider import AttachmentLoader, CredentialProvider, ToolExecutor, WireCodec
from .streaming_handler import Emit, TextStream
from .transport import Transport, get_transport
from .types import (
    ConversationMessage,
    DecodedResponse,
    PreparedMessage,
    ProviderConfig,
    ProviderError,
    StreamState,
    ToolDefinition,
)
from ..core.config import settings
from ..utils.logger import get_logger

logger = get_logger(__name__)

TEMPERATURE = "temperature"


class ProviderAdapter:
    """
    One configured provider/model.

    Holds at most one active operation handle. Starting a new send or
    stream cancels whatever this instance was still running.
    """

    def __init__(
        self,
        config: ProviderConfig,
        codec: WireCodec,
        *,
        transport: Transport | None = None,
        credentials: CredentialProvider | None = None,
        loader: AttachmentLoader | None = None,
        capability_memory: CapabilityMemory | None = None,
        tool_executor: ToolExecutor | None = None,
    ):
        self.config = config
        self.codec = codec
        self.transport = transport or get_transport()
        self.credentials = credentials or StaticCredential(config.credential)
        self.loader = loader
        self.capabilities = capability_memory or default_capability_memory
        self.tool_executor = tool_executor
        self.label = f"{config.provider_id}/{config.model_id}"
        self._active: asyncio.Task | TextStream | None = None

    # Active handle

    def _set_active(self, handle: asyncio.Task | TextStream) -> None:
        self.cancel_ongoing_requests()
        self._active = handle

    def cancel_ongoing_requests(self) -> None:
        """Cancel the in-flight send or stream started by this adapter, if any."""
        handle, self._active = self._active, None
        if handle is None:
            return
        if isinstance(handle, TextStream):
            handle.cancel()
        else:
            self.transport.cancel(handle)

    # Shared helpers

    def _classify(self, status: int, body: bytes) -> ProviderError:
        error = self.codec.classify_error(status, body)
        if status in self.codec.auth_statuses:
            self.credentials.invalidate()
        logger.warning(f"{self.label}: HTTP {status} classified as {error.kind}: {error.detail[:200]}")
        return error

    def _temperature_rejected(self, error: ProviderError) -> bool:
        """Record a temperature rejection; True if `error` was one."""
        if not is_unsupported_parameter_error(error, TEMPERATURE):
            return False
        self.capabilities.mark_unsupported(self.config.model_id, TEMPERATURE)
        return True

    def _tool_definitions(self) -> list[ToolDefinition] | None:
        if self.tool_executor is None or not self.codec.supports_tools:
            return None
        return self.tool_executor.definitions() or None

    # Non-streaming

    async def send_message(self, messages: list[ConversationMessage], temperature: float) -> str:
        """
        Send a conversation and return the complete reply.

        Raises:
            ProviderError: Classified failure
            asyncio.CancelledError: The call was cancelled or superseded by a newer call
        """
        task = self.transport.start(self._send(messages, temperature))
        self._set_active(task)
        try:
            return await task
        finally:
            if self._active is task:
                self._active = None

    async def _send(self, messages: list[ConversationMessage], temperature: float) -> str:
        prepared = prepare_messages(messages, self.loader)
        tools = self._tool_definitions()
        decoded = await self._request(prepared, temperature, tools)

        hops = 0
        while decoded.tool_calls and self.tool_executor is not None and hops < settings.TOOL_CALL_MAX_HOPS:
            hops += 1
            logger.info(f"{self.label}: tool hop {hops} ({', '.join(c.name for c in decoded.tool_calls)})")
            prepared = prepared + await self._run_tools(decoded)
            decoded = await self._request(
                prepared, temperature, tools, allow_tool_calls=hops < settings.TOOL_CALL_MAX_HOPS
            )

        if decoded.tool_calls:
            logger.warning(f"{self.label}: tool calls left unanswered after {hops} hop(s)")
        return decoded.text

    async def _run_tools(self, decoded: DecodedResponse) -> list[PreparedMessage]:
        turns = [PreparedMessage(role="assistant", text=decoded.text, tool_calls=list(decoded.tool_calls))]
        for call in decoded.tool_calls:
            output = await self.tool_executor.execute(call.name, call.arguments)
            turns.append(PreparedMessage(role="tool", text=output, tool_call_id=call.id))
        return turns

    async def _request(
        self,
        prepared: list[PreparedMessage],
        temperature: float,
        tools: list[ToolDefinition] | None,
        allow_tool_calls: bool = True,
    ) -> DecodedResponse:
        include_temperature = self.capabilities.is_supported(self.config.model_id, TEMPERATURE)
        try:
            return await self._request_once(prepared, temperature, tools, include_temperature, allow_tool_calls)
        except ProviderError as e:
            if include_temperature and self._temperature_rejected(e):
                logger.info(f"{self.label}: retrying without temperature")
                return await self._request_once(prepared, temperature, tools, False, allow_tool_calls)
            raise

    async def _request_once(
        self,
        prepared: list[PreparedMessage],
        temperature: float,
        tools: list[ToolDefinition] | None,
        include_temperature: bool,
        allow_tool_calls: bool = True,
    ) -> DecodedResponse:
        token = await self.credentials.get_token()
        request = self.codec.encode_request(
            prepared,
            temperature=temperature,
            stream=False,
            credential=token,
            include_temperature=include_temperature,
            tools=tools,
            allow_tool_calls=allow_tool_calls,
        )
        response = await self.transport.execute(request)
        if not response.ok:
            raise self._classify(response.status, response.body)
        return self.codec.decode_response(response.body)

    # Streaming

    async def send_message_stream(self, messages: list[ConversationMessage], temperature: float) -> TextStream:
        """
        Start a streamed send.

        Returns:
            TextStream yielding text increments; `cancel()` on it ends the
            stream cleanly and aborts the transfer
        """

        async def producer(emit: Emit) -> None:
            await self._stream(messages, temperature, emit)

        stream = TextStream(producer, label=self.label)
        self._set_active(stream)
        return stream

    async def _stream(self, messages: list[ConversationMessage], temperature: float, emit: Emit) -> None:
        prepared = prepare_messages(messages, self.loader)
        include_temperature = self.capabilities.is_supported(self.config.model_id, TEMPERATURE)
        state = StreamState()
        try:
            await self._stream_once(prepared, temperature, include_temperature, state, emit)
        except ProviderError as e:
            # Retry only while the caller has seen nothing
            if include_temperature and self._temperature_rejected(e) and state.increments == 0:
                logger.info(f"{self.label}: retrying stream without temperature")
                await self._stream_once(prepared, temperature, False, StreamState(), emit)
                return
            raise

    def _deliver(self, delta: str, state: StreamState, emit: Emit) -> None:
        state.record(delta)
        emit(delta, self.codec.open_span_closer(state))

    async def _stream_once(
        self,
        prepared: list[PreparedMessage],
        temperature: float,
        include_temperature: bool,
        state: StreamState,
        emit: Emit,
    ) -> None:
        token = await self.credentials.get_token()
        request = self.codec.encode_request(
            prepared,
            temperature=temperature,
            stream=True,
            credential=token,
            include_temperature=include_temperature,
        )

        async with self.transport.execute_streaming(request) as response:
            if not response.ok:
                body = await response.read()
                raise self._classify(response.status, body)

            async for line in response.lines():
                fragment = self.codec.decode_stream_line(line, state)
                if fragment.delta:
                    self._deliver(fragment.delta, state, emit)
                if fragment.finished:
                    state.finished = True
                    break

        trailer = self.codec.finish_stream(state)
        if trailer:
            self._deliver(trailer, state, emit)
        logger.info(f"{self.label}: stream complete ({state.increments} increments, finished={state.finished})")

    # Models and provider payloads

    async def fetch_models(self) -> list[str]:
        """
        List available model ids.

        Providers without a discovery endpoint return their curated static list.
        """
        static_models = getattr(self.codec, "static_models", None)
        if static_models is not None:
            return static_models()

        token = await self.credentials.get_token()
        request = self.codec.models_request(token)
        if request is None:
            return []
        response = await self.transport.execute(request)
        if not response.ok:
            raise self._classify(response.status, response.body)
        return self.codec.parse_models(response.body)

    def consume_provider_payload(self) -> dict | None:
        """
        Hand over the provider-specific payload of the last response (Gemini/Vertex parts).

        Returns None for providers that keep no such payload.
        """
        consume = getattr(self.codec, "consume_provider_payload", None)
        return consume() if consume is not None else None
