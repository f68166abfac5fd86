"""Incremental decoder for the chunked ``data: ...`` stream of the generation backend.

The response body arrives as arbitrary byte chunks. Frames are newline
terminated ``data: <json>`` lines carrying ``choices[0].delta.content``; the
stream ends with ``data: [DONE]`` or simply when the body closes. Chunk
boundaries may split a UTF-8 sequence, a line, or a JSON document anywhere.
"""

import codecs
import json
import logging
from collections.abc import AsyncIterable, AsyncIterator, Callable
from typing import Any

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


def extract_content(payload: Any) -> str | None:
    """Return ``choices[0].delta.content`` if present and a string."""
    if not isinstance(payload, dict):
        return None
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None
    delta = choices[0].get("delta")
    if not isinstance(delta, dict):
        return None
    content = delta.get("content")
    return content if isinstance(content, str) else None


class FrameDecoder:
    """Buffers partial lines between chunks and yields text deltas.

    ``feed`` handles one chunk and returns the deltas it completed. A data
    line whose JSON does not parse yet is put back at the head of the buffer
    and retried when more bytes arrive. ``finish`` flushes what is left once
    the source is exhausted; a trailing frame that still does not parse is
    dropped there.
    """

    def __init__(self) -> None:
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.done = False

    def feed(self, chunk: bytes) -> list[str]:
        if self.done:
            return []
        self._buffer += self._utf8.decode(chunk)

        deltas: list[str] = []
        newline = self._buffer.find("\n")
        while newline != -1:
            line = self._buffer[:newline]
            self._buffer = self._buffer[newline + 1:]
            if line.endswith("\r"):
                line = line[:-1]
            if line.startswith(":") or not line.strip():
                newline = self._buffer.find("\n")
                continue
            if not line.startswith(DATA_PREFIX):
                newline = self._buffer.find("\n")
                continue

            payload = line[len(DATA_PREFIX):].strip()
            if payload == DONE_SENTINEL:
                self.done = True
                self._buffer = ""
                break
            try:
                parsed = json.loads(payload)
            except json.JSONDecodeError:
                # incomplete frame: wait for more bytes
                self._buffer = line + "\n" + self._buffer
                break

            content = extract_content(parsed)
            if content:
                deltas.append(content)
            newline = self._buffer.find("\n")
        return deltas

    def finish(self) -> list[str]:
        self._buffer += self._utf8.decode(b"", final=True)
        remaining, self._buffer = self._buffer, ""
        if self.done or not remaining.strip():
            return []

        deltas: list[str] = []
        for raw in remaining.split("\n"):
            if not raw:
                continue
            if raw.endswith("\r"):
                raw = raw[:-1]
            if not raw.startswith(DATA_PREFIX):
                continue
            payload = raw[len(DATA_PREFIX):].strip()
            if payload == DONE_SENTINEL:
                continue
            try:
                parsed = json.loads(payload)
            except json.JSONDecodeError:
                logger.debug("Dropping truncated trailing frame (%d chars)", len(payload))
                continue
            content = extract_content(parsed)
            if content:
                deltas.append(content)
        return deltas


async def iter_deltas(chunks: AsyncIterable[bytes]) -> AsyncIterator[str]:
    """Lazily decode a byte-chunk source into content deltas, in order."""
    decoder = FrameDecoder()
    async for chunk in chunks:
        for delta in decoder.feed(chunk):
            yield delta
        if decoder.done:
            break
    for delta in decoder.finish():
        yield delta


async def decode_stream(
    chunks: AsyncIterable[bytes],
    on_delta: Callable[[str], None],
    on_done: Callable[[], None],
) -> None:
    """Drive ``on_delta`` per content fragment, then ``on_done`` exactly once.

    I/O errors from the source propagate and ``on_done`` is not called.
    Cancellation behaves the same way.
    """
    async for delta in iter_deltas(chunks):
        on_delta(delta)
    on_done()
