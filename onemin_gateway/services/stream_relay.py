"""
Streaming Relay Module

Relays the 1min.ai raw text stream to clients as protocol-specific SSE events.

The relay is a protocol-agnostic state machine:
    STARTED -> STREAMING -> FINALIZING -> DONE
Formatters supply the event payloads for each surface protocol.
"""

import asyncio
import contextlib
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from onemin_gateway.common.sse import SSE_DONE, format_sse
from onemin_gateway.common.time import unix_seconds
from onemin_gateway.common.token_counter import calculate_tokens
from onemin_gateway.common.utf8 import StreamingUTF8Decoder
from onemin_gateway.services.transformers import (
    build_output_message,
    new_anthropic_message_id,
    new_chat_completion_id,
    new_output_message_id,
    new_response_id,
)

logger = logging.getLogger(__name__)


class RelayState(str, Enum):
    STARTED = "started"
    STREAMING = "streaming"
    FINALIZING = "finalizing"
    DONE = "done"


class StreamProtocol(str, Enum):
    OPENAI_CHAT = "openai_chat"
    OPENAI_RESPONSES = "openai_responses"
    ANTHROPIC = "anthropic"


class StreamRelayError(Exception):
    """Upstream read failed mid-stream; the client connection must be aborted"""


class StreamEventFormatter(ABC):
    """Maps relay lifecycle steps to SSE frames for one protocol"""

    protocol: StreamProtocol

    def __init__(self, model: str):
        self.model = model

    @abstractmethod
    def preamble(self) -> list[bytes]:
        """Events sent before any upstream bytes are read"""

    @abstractmethod
    def delta(self, text: str) -> list[bytes]:
        """Events for one decoded, non-empty text fragment"""

    @abstractmethod
    def finalize(self, full_text: str) -> list[bytes]:
        """Completion events carrying the aggregate fields"""

    @abstractmethod
    def terminal(self) -> list[bytes]:
        """Terminal sentinel events"""


class OpenAIChatStreamFormatter(StreamEventFormatter):
    protocol = StreamProtocol.OPENAI_CHAT

    def __init__(self, model: str):
        super().__init__(model)
        self.id = new_chat_completion_id()
        self.created = unix_seconds()

    def _chunk(self, delta: dict[str, Any], finish_reason: Optional[str]) -> bytes:
        return format_sse(
            {
                "id": self.id,
                "object": "chat.completion.chunk",
                "created": self.created,
                "model": self.model,
                "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
            }
        )

    def preamble(self) -> list[bytes]:
        return [self._chunk({"role": "assistant", "content": ""}, None)]

    def delta(self, text: str) -> list[bytes]:
        return [self._chunk({"content": text}, None)]

    def finalize(self, full_text: str) -> list[bytes]:
        return [self._chunk({}, "stop")]

    def terminal(self) -> list[bytes]:
        return [SSE_DONE]


class ResponsesStreamFormatter(StreamEventFormatter):
    protocol = StreamProtocol.OPENAI_RESPONSES

    def __init__(self, model: str, input_tokens: int = 0):
        super().__init__(model)
        self.input_tokens = input_tokens
        self.response_id = new_response_id()
        self.message_id = new_output_message_id()

    def _response(self, status: str, output: list[dict[str, Any]], usage: dict[str, int]) -> dict[str, Any]:
        return {
            "id": self.response_id,
            "object": "response",
            "created_at": unix_seconds(),
            "model": self.model,
            "output": output,
            "status": status,
            "usage": usage,
        }

    @staticmethod
    def _event(event_type: str, **fields: Any) -> bytes:
        return format_sse({"type": event_type, **fields}, event=event_type)

    def preamble(self) -> list[bytes]:
        empty_usage = {"input_tokens": 0, "output_tokens": 0, "total_tokens": 0}
        return [
            self._event("response.created", response=self._response("in_progress", [], empty_usage)),
            self._event(
                "response.output_item.added",
                output_index=0,
                item=build_output_message("", self.message_id, status="in_progress"),
            ),
            self._event(
                "response.content_part.added",
                output_index=0,
                content_index=0,
                part={"type": "output_text", "text": ""},
            ),
        ]

    def delta(self, text: str) -> list[bytes]:
        return [
            self._event("response.output_text.delta", output_index=0, content_index=0, delta=text)
        ]

    def finalize(self, full_text: str) -> list[bytes]:
        completed_item = build_output_message(full_text, self.message_id)
        output_tokens = calculate_tokens(full_text, self.model)
        usage = {
            "input_tokens": self.input_tokens,
            "output_tokens": output_tokens,
            "total_tokens": self.input_tokens + output_tokens,
        }
        return [
            self._event("response.output_text.done", output_index=0, content_index=0, text=full_text),
            self._event(
                "response.content_part.done",
                output_index=0,
                content_index=0,
                part={"type": "output_text", "text": full_text},
            ),
            self._event("response.output_item.done", output_index=0, item=completed_item),
            self._event("response.done", response=self._response("completed", [completed_item], usage)),
        ]

    def terminal(self) -> list[bytes]:
        return [SSE_DONE]


class AnthropicStreamFormatter(StreamEventFormatter):
    protocol = StreamProtocol.ANTHROPIC

    def __init__(self, model: str, input_tokens: int = 0):
        super().__init__(model)
        self.input_tokens = input_tokens
        self.message_id = new_anthropic_message_id()

    @staticmethod
    def _event(event_type: str, **fields: Any) -> bytes:
        return format_sse({"type": event_type, **fields}, event=event_type)

    def preamble(self) -> list[bytes]:
        message = {
            "id": self.message_id,
            "type": "message",
            "role": "assistant",
            "content": [],
            "model": self.model,
            "stop_reason": None,
            "stop_sequence": None,
            "usage": {"input_tokens": self.input_tokens, "output_tokens": 0},
        }
        return [
            self._event("message_start", message=message),
            self._event("content_block_start", index=0, content_block={"type": "text", "text": ""}),
            self._event("ping"),
        ]

    def delta(self, text: str) -> list[bytes]:
        return [
            self._event("content_block_delta", index=0, delta={"type": "text_delta", "text": text})
        ]

    def finalize(self, full_text: str) -> list[bytes]:
        return [
            self._event("content_block_stop", index=0),
            self._event(
                "message_delta",
                delta={"stop_reason": "end_turn", "stop_sequence": None},
                usage={"output_tokens": calculate_tokens(full_text, self.model)},
            ),
        ]

    def terminal(self) -> list[bytes]:
        return [self._event("message_stop")]


def create_formatter(protocol: StreamProtocol, model: str, input_tokens: int = 0) -> StreamEventFormatter:
    if protocol is StreamProtocol.OPENAI_CHAT:
        return OpenAIChatStreamFormatter(model)
    if protocol is StreamProtocol.OPENAI_RESPONSES:
        return ResponsesStreamFormatter(model, input_tokens)
    if protocol is StreamProtocol.ANTHROPIC:
        return AnthropicStreamFormatter(model, input_tokens)
    raise ValueError(f"Unsupported stream protocol: {protocol}")


_END = object()


class _Failure:
    def __init__(self, error: BaseException):
        self.error = error


class StreamRelay:
    """
    Streaming Relay

    A producer task reads upstream and writes SSE frames into a bounded queue;
    the consumer (`stream()`) is the response body. A full queue suspends the
    upstream read. Closing the consumer cancels the producer and runs `on_close`.
    """

    def __init__(
        self,
        upstream_chunks: AsyncIterator[bytes],
        formatter: StreamEventFormatter,
        queue_size: int = 16,
        on_close: Optional[Callable[[], Awaitable[None]]] = None,
    ):
        self.upstream_chunks = upstream_chunks
        self.formatter = formatter
        self.on_close = on_close
        self.state = RelayState.STARTED
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max(1, queue_size))
        self._producer: Optional[asyncio.Task] = None

    async def _emit(self, frames: list[bytes]) -> None:
        for frame in frames:
            await self._queue.put(frame)

    async def _produce(self) -> None:
        try:
            await self._emit(self.formatter.preamble())

            self.state = RelayState.STREAMING
            decoder = StreamingUTF8Decoder()
            parts: list[str] = []
            async for chunk in self.upstream_chunks:
                text = decoder.decode(chunk)
                if text:
                    parts.append(text)
                    await self._emit(self.formatter.delta(text))
            tail = decoder.decode(b"", final=True)
            if tail:
                parts.append(tail)
                await self._emit(self.formatter.delta(tail))

            self.state = RelayState.FINALIZING
            await self._emit(self.formatter.finalize("".join(parts)))

            self.state = RelayState.DONE
            await self._emit(self.formatter.terminal())
            await self._queue.put(_END)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("%s stream relay failed in state %s: %s", self.formatter.protocol.value, self.state.value, e)
            await self._queue.put(_Failure(e))

    async def stream(self) -> AsyncIterator[bytes]:
        """
        Yield SSE frames until the terminal event

        Raises:
            StreamRelayError: Upstream failed after the stream started
        """
        self._producer = asyncio.create_task(self._produce())
        try:
            while True:
                item = await self._queue.get()
                if item is _END:
                    return
                if isinstance(item, _Failure):
                    raise StreamRelayError(str(item.error)) from item.error
                yield item
        finally:
            await self._shutdown()

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self.stream()

    async def _shutdown(self) -> None:
        producer = self._producer
        if producer is not None and not producer.done():
            producer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await producer
        if self.on_close is not None:
            try:
                await self.on_close()
            except Exception as e:
                logger.warning("Failed to close upstream stream: %s", e)
