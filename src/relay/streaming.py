"""Upstream SSE to canonical SSE translation.

Both providers frame their streams as ``data: <json>`` lines. Each complete
line is parsed, a text fragment is pulled out with a provider-specific
extractor, and re-emitted as ``data: {"content": ...}``. ``[DONE]`` is passed
through once, and is appended on a clean end of stream when the upstream never
sent one. A stream cut off by an upstream error ends without ``[DONE]``.
Lines that are not JSON are keep-alives and are dropped.
"""

import asyncio
import codecs
import json
import logging
from collections.abc import AsyncIterable, AsyncIterator, Callable
from contextlib import aclosing
from typing import Any, Protocol

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"
DONE_FRAME = b"data: [DONE]\n\n"
DEFAULT_MAX_PENDING = 16

FragmentExtractor = Callable[[dict[str, Any]], str | None]


class ByteStream(Protocol):
    def aiter_bytes(self) -> AsyncIterator[bytes]: ...

    async def aclose(self) -> None: ...


def encode_event(content: str) -> bytes:
    return f"{DATA_PREFIX}{json.dumps({'content': content}, ensure_ascii=False)}\n\n".encode("utf-8")


class SSELineBuffer:
    """Splits a byte stream into complete lines.

    The trailing fragment without a newline is held until more bytes arrive.
    Multi-byte UTF-8 sequences split across chunks decode correctly.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    @property
    def pending(self) -> str:
        return self._buffer

    def feed(self, chunk: bytes) -> list[str]:
        self._buffer += self._decoder.decode(chunk)
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        return lines


def translate_line(line: str, extract: FragmentExtractor) -> bytes | None:
    stripped = line.strip()
    if not stripped or not stripped.startswith(DATA_PREFIX):
        return None
    data = stripped[len(DATA_PREFIX):]
    if data == DONE_SENTINEL:
        return DONE_FRAME
    try:
        parsed = json.loads(data)
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, dict):
        return None
    fragment = extract(parsed)
    if not fragment:
        return None
    return encode_event(fragment)


async def translate_chunks(
    chunks: AsyncIterable[bytes], extract: FragmentExtractor
) -> AsyncIterator[bytes]:
    # An unterminated last line is never flushed; it cannot be complete JSON.
    buffer = SSELineBuffer()
    done_sent = False
    async for chunk in chunks:
        for line in buffer.feed(chunk):
            frame = translate_line(line, extract)
            if frame is None:
                continue
            if frame == DONE_FRAME:
                if done_sent:
                    continue
                done_sent = True
            yield frame
    # Anthropic streams end with message_stop rather than [DONE].
    if not done_sent:
        yield DONE_FRAME


async def relay_stream(
    upstream: ByteStream,
    extract: FragmentExtractor,
    *,
    max_pending: int = DEFAULT_MAX_PENDING,
) -> AsyncIterator[bytes]:
    """Pipe translated frames from ``upstream`` through a bounded queue.

    The producer task reads and translates, the caller iterates. Whatever
    ends the iteration (completion, upstream failure, client disconnect),
    the producer is cancelled and the upstream response is closed.
    """
    queue: asyncio.Queue[tuple[str, bytes | None]] = asyncio.Queue(maxsize=max_pending)

    async def producer() -> None:
        try:
            async with aclosing(translate_chunks(upstream.aiter_bytes(), extract)) as frames:
                async for frame in frames:
                    await queue.put(("data", frame))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("upstream stream interrupted: %s", exc)
            await queue.put(("error", None))
            return
        await queue.put(("done", None))

    producer_task = asyncio.create_task(producer())
    try:
        while True:
            kind, frame = await queue.get()
            if kind != "data" or frame is None:
                break
            yield frame
    finally:
        try:
            if not producer_task.done():
                producer_task.cancel()
            await asyncio.gather(producer_task, return_exceptions=True)
        finally:
            await upstream.aclose()
