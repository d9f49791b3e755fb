"""
Unit tests for the streaming relay
"""

import asyncio
import json

import pytest

from onemin_gateway.services.stream_relay import (
    AnthropicStreamFormatter,
    OpenAIChatStreamFormatter,
    RelayState,
    ResponsesStreamFormatter,
    StreamProtocol,
    StreamRelay,
    StreamRelayError,
    create_formatter,
)


async def _chunks(*chunks: bytes):
    for chunk in chunks:
        yield chunk


def _parse(frames: list[bytes]) -> list[tuple]:
    """Split SSE frames into (event, data) pairs; data is JSON or the raw sentinel"""
    events = []
    for frame in frames:
        event = None
        data = None
        for line in frame.decode("utf-8").strip().split("\n"):
            if line.startswith("event: "):
                event = line[len("event: "):]
            elif line.startswith("data: "):
                raw = line[len("data: "):]
                data = raw if raw == "[DONE]" else json.loads(raw)
        events.append((event, data))
    return events


async def _collect(relay: StreamRelay) -> list[bytes]:
    return [frame async for frame in relay.stream()]


@pytest.mark.asyncio
async def test_openai_chat_sequence():
    """Test role chunk, content deltas, stop chunk and [DONE]"""
    relay = StreamRelay(_chunks(b"Hel", b"lo"), OpenAIChatStreamFormatter("gpt-4o-mini"))

    events = _parse(await _collect(relay))

    assert events[0][1]["choices"][0]["delta"] == {"role": "assistant", "content": ""}
    assert [e[1]["choices"][0]["delta"]["content"] for e in events[1:3]] == ["Hel", "lo"]
    assert events[3][1]["choices"][0] == {"index": 0, "delta": {}, "finish_reason": "stop"}
    assert events[4] == (None, "[DONE]")
    assert len(events) == 5
    ids = {e[1]["id"] for e in events[:4]}
    assert len(ids) == 1
    assert all(e[1]["object"] == "chat.completion.chunk" for e in events[:4])
    assert relay.state is RelayState.DONE


@pytest.mark.asyncio
async def test_responses_sequence():
    """Test the Responses lifecycle events and final aggregate"""
    relay = StreamRelay(_chunks(b"Hi ", b"there"), ResponsesStreamFormatter("gpt-4o-mini", input_tokens=4))

    events = _parse(await _collect(relay))
    names = [e[0] for e in events]

    assert names == [
        "response.created",
        "response.output_item.added",
        "response.content_part.added",
        "response.output_text.delta",
        "response.output_text.delta",
        "response.output_text.done",
        "response.content_part.done",
        "response.output_item.done",
        "response.done",
        None,
    ]
    assert events[0][1]["response"]["status"] == "in_progress"
    assert events[5][1]["text"] == "Hi there"
    done = events[8][1]["response"]
    assert done["status"] == "completed"
    assert done["output"][0]["content"][0]["text"] == "Hi there"
    assert done["usage"]["input_tokens"] == 4
    assert done["usage"]["total_tokens"] == 4 + done["usage"]["output_tokens"]
    assert done["id"] == events[0][1]["response"]["id"]
    assert events[-1][1] == "[DONE]"


@pytest.mark.asyncio
async def test_anthropic_sequence():
    """Test the Anthropic event order ends with message_stop and no [DONE]"""
    relay = StreamRelay(_chunks(b"Hello"), AnthropicStreamFormatter("claude-3-5-haiku", input_tokens=3))

    events = _parse(await _collect(relay))
    names = [e[0] for e in events]

    assert names == [
        "message_start",
        "content_block_start",
        "ping",
        "content_block_delta",
        "content_block_stop",
        "message_delta",
        "message_stop",
    ]
    start = events[0][1]["message"]
    assert start["id"].startswith("msg_")
    assert start["usage"] == {"input_tokens": 3, "output_tokens": 0}
    assert events[3][1]["delta"] == {"type": "text_delta", "text": "Hello"}
    assert events[5][1]["delta"]["stop_reason"] == "end_turn"
    assert events[5][1]["usage"]["output_tokens"] > 0
    assert all(e[1] != "[DONE]" for e in events)


@pytest.mark.asyncio
async def test_split_multibyte_characters_are_reassembled():
    """Test a character split across upstream chunks is emitted whole"""
    euro = "€".encode("utf-8")
    relay = StreamRelay(_chunks(b"1" + euro[:1], euro[1:] + b"2"), OpenAIChatStreamFormatter("m"))

    events = _parse(await _collect(relay))
    deltas = [e[1]["choices"][0]["delta"].get("content") for e in events[1:-2]]

    assert deltas == ["1", "€2"]


@pytest.mark.asyncio
async def test_empty_chunks_produce_no_deltas():
    relay = StreamRelay(_chunks(b"", b"a", b""), OpenAIChatStreamFormatter("m"))
    events = _parse(await _collect(relay))
    assert len(events) == 4


@pytest.mark.asyncio
async def test_upstream_error_raises_after_preamble():
    """Test a mid-stream upstream failure aborts the stream"""

    async def failing():
        yield b"partial"
        raise ConnectionError("upstream reset")

    closed = []

    async def on_close():
        closed.append(True)

    relay = StreamRelay(failing(), OpenAIChatStreamFormatter("m"), on_close=on_close)
    received = []

    with pytest.raises(StreamRelayError):
        async for frame in relay.stream():
            received.append(frame)

    assert len(received) == 2
    assert b"[DONE]" not in b"".join(received)
    assert closed == [True]


@pytest.mark.asyncio
async def test_consumer_close_cancels_producer():
    """Test closing the response body stops the upstream read and releases it"""
    closed = asyncio.Event()

    async def endless():
        while True:
            yield b"x"
            await asyncio.sleep(0)

    async def on_close():
        closed.set()

    relay = StreamRelay(endless(), OpenAIChatStreamFormatter("m"), queue_size=2, on_close=on_close)
    stream = relay.stream()

    await stream.__anext__()
    await stream.__anext__()
    await stream.aclose()

    assert closed.is_set()
    assert relay._producer.done()
    assert relay.state is RelayState.STREAMING


@pytest.mark.asyncio
async def test_backpressure_bounds_upstream_reads():
    """Test a stalled consumer suspends upstream reads at the queue bound"""
    reads = []

    async def counting():
        for i in range(100):
            reads.append(i)
            yield b"x"

    relay = StreamRelay(counting(), OpenAIChatStreamFormatter("m"), queue_size=4)
    stream = relay.stream()

    await stream.__anext__()
    for _ in range(10):
        await asyncio.sleep(0)

    # Queue capacity plus the frame in flight bounds how far the producer runs ahead
    assert len(reads) <= 6
    await stream.aclose()


def test_create_formatter():
    assert isinstance(create_formatter(StreamProtocol.OPENAI_CHAT, "m"), OpenAIChatStreamFormatter)
    assert isinstance(create_formatter(StreamProtocol.OPENAI_RESPONSES, "m", 3), ResponsesStreamFormatter)
    formatter = create_formatter(StreamProtocol.ANTHROPIC, "m", 5)
    assert isinstance(formatter, AnthropicStreamFormatter)
    assert formatter.input_tokens == 5
