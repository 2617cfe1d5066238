"""Chunking of an input byte stream into upload parts."""
import inspect
from functools import partial
from typing import Any, AsyncIterable, AsyncIterator, Iterable, Iterator, Optional, Union

import anyio

from .exceptions import InputStreamError

ByteStream = Union[bytes, bytearray, memoryview, AsyncIterable[bytes], Iterable[bytes], Any]


class ByteSource:
    """Uniform ``read(n)`` over the input kinds ``upload`` accepts.

    Accepts bytes-like objects, sync or async file-like objects and sync or
    async iterables of bytes. Blocking reads run in a worker thread.
    """

    def __init__(self, stream: ByteStream):
        self._data: Optional[memoryview] = None
        self._reader = None
        self._async_reader = False
        self._aiter: Optional[AsyncIterator[bytes]] = None
        self._iter: Optional[Iterator[bytes]] = None
        self._pending = b""
        self._eof = False

        if isinstance(stream, (bytes, bytearray, memoryview)):
            self._data = memoryview(stream).cast("B")
        elif hasattr(stream, "read"):
            self._reader = stream.read
            self._async_reader = inspect.iscoroutinefunction(stream.read)
        elif hasattr(stream, "__aiter__"):
            self._aiter = stream.__aiter__()
        elif hasattr(stream, "__iter__") and not isinstance(stream, str):
            self._iter = iter(stream)
        else:
            raise TypeError(f"Unsupported input stream type: {type(stream).__name__}")

    async def read(self, n: int) -> bytes:
        """Return up to ``n`` bytes; ``b""`` only at end of input."""
        if self._data is not None:
            chunk, self._data = self._data[:n], self._data[n:]
            return bytes(chunk)
        if self._reader is not None:
            if self._async_reader:
                chunk = await self._reader(n)
            else:
                chunk = await anyio.to_thread.run_sync(partial(self._reader, n))
            return bytes(chunk or b"")
        return await self._read_iterable(n)

    async def _read_iterable(self, n: int) -> bytes:
        while not self._pending and not self._eof:
            piece = await self._next_piece()
            if piece is None:
                self._eof = True
            else:
                self._pending = bytes(piece)
        chunk, self._pending = self._pending[:n], self._pending[n:]
        return chunk

    async def _next_piece(self) -> Optional[bytes]:
        if self._aiter is not None:
            try:
                return await self._aiter.__anext__()
            except StopAsyncIteration:
                return None
        return await anyio.to_thread.run_sync(next, self._iter, None)


class PartBuffer:
    """Cuts an input stream into parts of exactly ``part_size`` bytes.

    Every chunk but the last is ``part_size`` long. A final tail shorter
    than ``min_part_size`` is merged into the previous part instead of being
    sent as its own part, so the buffer holds one chunk of lookahead. An
    empty input produces a single empty chunk. Not safe for concurrent use.
    """

    def __init__(
        self,
        stream: ByteStream,
        part_size: int,
        min_part_size: Optional[int] = None,
    ):
        if part_size < 1:
            raise ValueError("part_size must be positive")
        self.part_size = part_size
        self.min_part_size = min(min_part_size or part_size, part_size)
        self._source = stream if isinstance(stream, ByteSource) else ByteSource(stream)
        self._lookahead: Optional[bytes] = None
        self._started = False
        self._done = False
        self.bytes_read = 0

    async def next_chunk(self) -> Optional[bytes]:
        """Return the next part's bytes, or None at end of input.

        Raises:
            InputStreamError: Reading the underlying stream failed
        """
        if self._done:
            return None

        if self._lookahead is None:
            current = await self._fill()
            if not current:
                self._done = True
                if not self._started:
                    self._started = True
                    return b""
                return None
        else:
            current, self._lookahead = self._lookahead, None
        self._started = True

        if len(current) < self.part_size:
            # short read means the stream ended
            self._done = True
            return current

        following = await self._fill()
        if not following:
            self._done = True
            return current
        if len(following) < self.part_size and len(following) < self.min_part_size:
            self._done = True
            return current + following
        self._lookahead = following
        return current

    async def __aiter__(self):
        while True:
            chunk = await self.next_chunk()
            if chunk is None:
                return
            yield chunk

    async def _fill(self) -> bytes:
        buf = bytearray()
        while len(buf) < self.part_size:
            try:
                piece = await self._source.read(self.part_size - len(buf))
            except Exception as exc:
                self._done = True
                raise InputStreamError(exc) from exc
            if not piece:
                break
            buf.extend(piece)
        self.bytes_read += len(buf)
        return bytes(buf)
