# --- studio-stream ---
from __future__ import annotations

"""Single-owner byte streams that can change owner mid-flight.

A ``ByteStream`` wraps the raw frames of a streamed reply. Exactly one
reader owns it at a time. ``detach()`` ends the current reader's ownership
and returns a new reader. A replayable stream keeps every frame it has seen,
so the new reader replays them before continuing with the live source and
the new owner rebuilds the same document without the request being issued
again. A plain stream keeps nothing it has already handed out; its new
reader continues from the current position.

The client side of a reply (the stream a view may hand off) is replayable.
The server-side relay is not, so it never holds the whole response.

Reads from the underlying source happen in a shared task that is awaited
with ``asyncio.wait``: a reader that stops waiting (cancelled or detached)
never cancels the pending read, so no frame is lost in the transfer.
"""

import asyncio
import inspect
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Iterable, List, Optional

from ..errors import StudioError

logger = logging.getLogger("studio.stream")


class StreamDetached(Exception):
    """Raised to a reader whose stream was handed to another owner."""


class StreamTransportError(StudioError):
    def __init__(self, cause: Optional[str] = None) -> None:
        super().__init__("offline:stream", cause=cause)


def iter_as_async(it: Iterable[bytes]) -> AsyncIterator[bytes]:
    async def gen() -> AsyncIterator[bytes]:
        for x in it:
            yield x

    return gen()


class _SharedSource:
    def __init__(
        self,
        source: AsyncIterator[bytes],
        on_close: Optional[Callable[[], Any]] = None,
        replayable: bool = False,
    ) -> None:
        self._source = source
        self._on_close = on_close
        self._replayable = replayable
        # _frames[0] is the frame at absolute position _base
        self._frames: List[bytes] = []
        self._base = 0
        self._pending: Optional[asyncio.Task] = None
        self._finished = False
        self._closed = False
        self._error: Optional[BaseException] = None

    @property
    def buffered_bytes(self) -> int:
        return sum(len(frame) for frame in self._frames)

    def _release_before(self, position: int) -> None:
        if self._replayable or position <= self._base:
            return
        del self._frames[: position - self._base]
        self._base = position

    async def read(self, position: int) -> Optional[bytes]:
        if position < self._base:
            raise StreamDetached("frames before this position were already released")
        self._release_before(position)
        while position >= self._base + len(self._frames):
            if self._error is not None:
                raise self._error
            if self._finished:
                return None
            if self._pending is None:
                self._pending = asyncio.ensure_future(self._pull())
                self._pending.add_done_callback(self._collect)
            await asyncio.wait([self._pending])
        return self._frames[position - self._base]

    async def _pull(self) -> Optional[bytes]:
        try:
            return await self._source.__anext__()
        except StopAsyncIteration:
            return None

    def _collect(self, task: asyncio.Task) -> None:
        if self._pending is task:
            self._pending = None
        if task.cancelled():
            self._error = StreamTransportError("read cancelled")
            return
        exc = task.exception()
        if exc is not None:
            self._error = exc
            return
        frame = task.result()
        if frame is None:
            self._finished = True
        else:
            self._frames.append(bytes(frame))

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if not self._replayable:
            self._base += len(self._frames)
            self._frames.clear()
        pending = self._pending
        if pending is not None and not pending.done():
            pending.cancel()
            await asyncio.wait([pending])
        closer = getattr(self._source, "aclose", None)
        if closer is not None:
            await closer()
        if self._on_close is not None:
            result = self._on_close()
            if inspect.isawaitable(result):
                await result


class ByteStream:
    def __init__(
        self,
        source: AsyncIterator[bytes],
        *,
        on_close: Optional[Callable[[], Any]] = None,
        replayable: bool = False,
    ) -> None:
        self._shared = _SharedSource(source, on_close, replayable)
        self._position = 0
        self._detached = False

    @classmethod
    def _sharing(cls, shared: _SharedSource, position: int) -> "ByteStream":
        clone = cls.__new__(cls)
        clone._shared = shared
        clone._position = position
        clone._detached = False
        return clone

    @classmethod
    def from_frames(cls, frames: Iterable[bytes], *, replayable: bool = False) -> "ByteStream":
        return cls(iter_as_async(list(frames)), replayable=replayable)

    @property
    def detached(self) -> bool:
        return self._detached

    @property
    def position(self) -> int:
        return self._position

    @property
    def replayable(self) -> bool:
        return self._shared._replayable

    @property
    def buffered_bytes(self) -> int:
        """Bytes held for replay or for the reader's current frame."""
        return self._shared.buffered_bytes

    def detach(self) -> "ByteStream":
        if self._detached:
            raise StreamDetached("stream already handed off")
        self._detached = True
        logger.debug(
            "byte stream detached after %s frame(s), %s byte(s) buffered",
            self._position,
            self.buffered_bytes,
        )
        start = 0 if self.replayable else self._position
        return ByteStream._sharing(self._shared, start)

    def __aiter__(self) -> "ByteStream":
        return self

    async def __anext__(self) -> bytes:
        if self._detached:
            raise StreamDetached("stream was handed to another reader")
        frame = await self._shared.read(self._position)
        if self._detached:
            raise StreamDetached("stream was handed to another reader")
        if frame is None:
            raise StopAsyncIteration
        self._position += 1
        return frame

    async def aclose(self) -> None:
        await self._shared.close()

    async def read_all(self) -> bytes:
        return b"".join([frame async for frame in self])


async def relay_bytes(stream: ByteStream, on_done: Optional[Callable[[str], Awaitable[None]]] = None) -> AsyncIterator[bytes]:
    """Yield frames unchanged, reporting how the relay ended."""
    outcome = "completed"
    try:
        async for frame in stream:
            yield frame
    except Exception:
        outcome = "failed"
        logger.exception("stream relay interrupted")
        raise
    finally:
        await stream.aclose()
        if on_done is not None:
            await on_done(outcome)
