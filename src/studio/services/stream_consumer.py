# --- studio-stream ---
from __future__ import annotations

"""Decode a streamed reply and drive document callbacks.

Wire format is Server-Sent Events. One protocol unit is a block of lines
ended by a blank line; its ``data:`` lines, joined with newlines, hold one
JSON chunk (see ``domain.document.parse_chunk``). ``:`` lines are comments,
an ``event:`` line names the chunk type when the JSON has none, and a
``[DONE]`` data line is ignored: completion is signalled only by the end
of the byte stream.
"""

import inspect
import json
import logging
import os
from typing import Any, Callable, List, Optional, Set, Tuple

from ..domain.document import Chunk, Document, Metadata, apply_chunk, parse_chunk
from ..errors import StudioError
from .streaming import ByteStream, StreamDetached, StreamTransportError

logger = logging.getLogger("studio.stream")

DONE_SENTINEL = "[DONE]"
_SEPARATORS = (b"\r\n\r\n", b"\n\n", b"\r\r")


def _max_unit_bytes() -> int:
    raw = os.getenv("STUDIO_MAX_STREAM_UNIT_BYTES")
    try:
        value = int(raw) if raw else 1024 * 1024
    except ValueError:
        value = 1024 * 1024
    return value if value > 0 else 1024 * 1024


class StreamDecodeError(StudioError):
    def __init__(self, cause: Optional[str] = None) -> None:
        super().__init__("upstream_malformed:stream", cause=cause)


class SSEDecoder:
    """Push-based decoder holding at most one incomplete unit."""

    def __init__(self, max_unit_bytes: Optional[int] = None) -> None:
        self._buffer = bytearray()
        self._max_unit_bytes = max_unit_bytes or _max_unit_bytes()
        self.error: Optional[StreamDecodeError] = None

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    def _next_boundary(self) -> Tuple[int, int]:
        best, width = -1, 0
        for sep in _SEPARATORS:
            idx = self._buffer.find(sep)
            if idx != -1 and (best == -1 or idx < best):
                best, width = idx, len(sep)
        return best, width

    def feed(self, data: bytes) -> List[Chunk]:
        """Decode every complete unit now buffered.

        Stops at the first malformed unit and records it on ``self.error``;
        chunks decoded before it are still returned.
        """
        if self.error is not None:
            return []
        self._buffer.extend(data)
        chunks: List[Chunk] = []
        while True:
            end, width = self._next_boundary()
            if end == -1:
                break
            unit = bytes(self._buffer[:end])
            del self._buffer[: end + width]
            try:
                chunk = decode_unit(unit)
            except StreamDecodeError as exc:
                self.error = exc
                return chunks
            if chunk is not None:
                chunks.append(chunk)
        if len(self._buffer) > self._max_unit_bytes:
            self.error = StreamDecodeError(f"unit larger than {self._max_unit_bytes} bytes")
        return chunks

    def flush(self) -> List[Chunk]:
        """Decode a trailing unit left without its blank-line terminator."""
        if self.error is not None:
            return []
        leftover = bytes(self._buffer)
        self._buffer.clear()
        if not leftover.strip():
            return []
        try:
            chunk = decode_unit(leftover)
        except StreamDecodeError as exc:
            self.error = exc
            return []
        return [chunk] if chunk is not None else []


def decode_unit(unit: bytes) -> Optional[Chunk]:
    try:
        text = unit.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise StreamDecodeError(f"invalid utf-8: {exc}") from exc

    event: Optional[str] = None
    data_lines: List[str] = []
    for line in text.splitlines():
        if not line or line.startswith(":"):
            continue
        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "data":
            data_lines.append(value)
        elif name == "event":
            event = value.strip() or None

    if not data_lines:
        return None
    data = "\n".join(data_lines)
    if data.strip() == DONE_SENTINEL:
        return None
    try:
        obj: Any = json.loads(data)
    except ValueError as exc:
        raise StreamDecodeError(f"unit is not JSON: {exc}") from exc
    if event and isinstance(obj, dict) and "type" not in obj:
        obj = {**obj, "type": event}
    try:
        return parse_chunk(obj)
    except ValueError as exc:
        raise StreamDecodeError(str(exc)) from exc


Callback = Optional[Callable[[Any], Any]]


async def _call(callback: Callback, arg: Any) -> None:
    if callback is None:
        return
    result = callback(arg)
    if inspect.isawaitable(result):
        await result


class StreamConsumer:
    """Consume one ByteStream, folding chunks into a Document.

    Callbacks fire in arrival order. ``on_complete`` fires once after the
    stream ends; ``on_error`` fires once on a decode or transport failure.
    Nothing fires after either, and nothing fires once the stream has been
    detached to another owner. Metadata is reported once per distinct key.
    """

    def __init__(
        self,
        stream: ByteStream,
        *,
        on_chunk: Callback = None,
        on_metadata: Callback = None,
        on_complete: Callback = None,
        on_error: Callback = None,
        max_unit_bytes: Optional[int] = None,
    ) -> None:
        self._stream = stream
        self._on_chunk = on_chunk
        self._on_metadata = on_metadata
        self._on_complete = on_complete
        self._on_error = on_error
        self._decoder = SSEDecoder(max_unit_bytes)
        self._seen_keys: Set[str] = set()
        self.document = Document()
        self.error: Optional[StudioError] = None
        self.finished = False
        self.chunks_applied = 0

    @property
    def stream(self) -> ByteStream:
        return self._stream

    async def run(self) -> Optional[Document]:
        """Consume until end-of-data; returns the final document, or None on failure or handoff."""
        if self.finished:
            raise RuntimeError("stream consumer already ran")
        while True:
            try:
                frame = await self._stream.__anext__()
            except StopAsyncIteration:
                break
            except StreamDetached:
                logger.debug("consumer stopped: stream handed off after %s chunk(s)", self.chunks_applied)
                return None
            except StudioError as exc:
                await self._fail(exc)
                return None
            except Exception as exc:
                await self._fail(StreamTransportError(repr(exc)))
                return None

            if not await self._deliver(self._decoder.feed(frame)):
                return None
            if self._decoder.error is not None:
                await self._fail(self._decoder.error)
                return None

        if not await self._deliver(self._decoder.flush()):
            return None
        if self._decoder.error is not None:
            await self._fail(self._decoder.error)
            return None

        self.finished = True
        self.document = self.document.finalize()
        logger.debug("stream complete: %s part(s)", len(self.document))
        await self._stream.aclose()
        await _call(self._on_complete, self.document)
        return self.document

    async def _deliver(self, chunks: List[Chunk]) -> bool:
        for chunk in chunks:
            await self._dispatch(chunk)
            if self._stream.detached:
                logger.debug("consumer stopped inside callback: stream handed off")
                return False
        return True

    async def _dispatch(self, chunk: Chunk) -> None:
        if isinstance(chunk, Metadata):
            fresh = {k: v for k, v in chunk.payload.items() if k not in self._seen_keys}
            if not fresh:
                return
            self._seen_keys.update(fresh)
            await _call(self._on_metadata, fresh)
            return
        self.document = apply_chunk(self.document, chunk)
        self.chunks_applied += 1
        await _call(self._on_chunk, self.document)

    async def _fail(self, exc: StudioError) -> None:
        self.finished = True
        self.error = exc
        logger.warning("stream failed after %s chunk(s): %s (%s)", self.chunks_applied, exc.code, exc.cause)
        await self._stream.aclose()
        await _call(self._on_error, exc)
