"""Pull-based, resumable object reads."""
from typing import AsyncIterator, Optional

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception

from objstore.core.logging_config import get_logger
from .base import TransportResponse
from .config import ObjectStoreConfig
from .dispatch import RequestDispatcher
from .exceptions import (
    ObjectStoreError,
    ReadError,
    ServiceError,
    TransportError,
    ValidationError,
)
from .models import ByteRange
from .utils import backoff, is_transient, object_path, range_header

logger = get_logger(__name__)


class ObjectReader:
    """Byte stream over one object, optionally limited to a ``ByteRange``.

    Nothing is requested until the first read. When the connection drops
    mid-body the reader reopens a range request at the first byte not yet
    delivered, so every requested byte is produced exactly once and in
    order. Reopens are bounded by ``retry_budget`` over the reader's whole
    lifetime; once exhausted the reader raises ``ReadError`` and produces
    nothing more.

    Usage::

        async with client.open_object("bucket", "key") as reader:
            async for chunk in reader:
                ...
    """

    def __init__(
        self,
        dispatcher: RequestDispatcher,
        bucket: str,
        key: str,
        byte_range: Optional[ByteRange] = None,
        config: Optional[ObjectStoreConfig] = None,
    ):
        self.dispatcher = dispatcher
        self.bucket = bucket
        self.key = key
        self.byte_range = byte_range
        self.config = config or ObjectStoreConfig()
        self._path = object_path(bucket, key)
        self._start = byte_range.offset if byte_range else 0
        self._end = byte_range.end if byte_range else None
        self.delivered = 0
        self.resumes = 0
        self.etag: Optional[str] = None

        self._response: Optional[TransportResponse] = None
        self._chunks: Optional[AsyncIterator[bytes]] = None
        self._expected: Optional[int] = None
        self._received = 0
        self._skip = 0
        self._buffer = bytearray()
        self._eof = False
        self._closed = False
        self._error: Optional[ReadError] = None

    @property
    def position(self) -> int:
        """Absolute object offset of the next byte to deliver."""
        return self._start + self.delivered

    async def read(self, size: int = -1) -> bytes:
        """Return up to ``size`` bytes (all remaining if negative); ``b""`` at end.

        Raises:
            ReadError: The object could not be read within the retry budget
        """
        if size == 0:
            return b""
        while size < 0 or len(self._buffer) < size:
            try:
                chunk = await self._next_chunk()
            except ReadError:
                # hand out what was already pulled; the next call raises
                if not self._buffer:
                    raise
                break
            if chunk is None:
                break
            self._buffer.extend(chunk)
        if size < 0:
            size = len(self._buffer)
        data = bytes(self._buffer[:size])
        del self._buffer[:size]
        return data

    async def __aiter__(self) -> AsyncIterator[bytes]:
        if self._buffer:
            data = bytes(self._buffer)
            self._buffer.clear()
            yield data
        while True:
            chunk = await self._next_chunk()
            if chunk is None:
                return
            yield chunk

    async def aclose(self) -> None:
        self._closed = True
        await self._drop_response()

    async def __aenter__(self) -> "ObjectReader":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def _next_chunk(self) -> Optional[bytes]:
        if self._error is not None:
            raise self._error
        if self._closed:
            raise ValidationError("Reader is closed")
        if self._eof:
            return None

        retrying = AsyncRetrying(
            stop=self._budget_exhausted,
            wait=backoff(self.config),
            retry=retry_if_exception(is_transient),
            before_sleep=self._before_resume,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await self._pull()
        except ObjectStoreError as exc:
            await self._drop_response()
            self._error = ReadError(self.bucket, self.key, self.position, exc)
            logger.warning(
                "Object read failed",
                bucket=self.bucket,
                key=self.key,
                offset=self.position,
                resumes=self.resumes,
                error=str(exc),
            )
            raise self._error from exc

    def _budget_exhausted(self, retry_state: RetryCallState) -> bool:
        return self.resumes >= self.config.retry_budget

    def _before_resume(self, retry_state: RetryCallState) -> None:
        self.resumes += 1
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "Resuming object read after transient failure",
            bucket=self.bucket,
            key=self.key,
            offset=self.position,
            attempt=self.resumes,
            error=str(exc),
        )

    async def _pull(self) -> Optional[bytes]:
        while True:
            if self._end is not None and self.position >= self._end:
                await self._finish()
                return None
            if self._response is None:
                await self._open()
                if self._eof:
                    return None

            try:
                chunk = await self._chunks.__anext__()
            except StopAsyncIteration:
                if self._expected is not None and self._received < self._expected:
                    await self._drop_response()
                    raise TransportError(
                        f"Response body ended after {self._received} "
                        f"of {self._expected} bytes"
                    )
                await self._finish()
                return None
            except TransportError:
                await self._drop_response()
                raise

            self._received += len(chunk)
            if self._skip:
                if len(chunk) <= self._skip:
                    self._skip -= len(chunk)
                    continue
                chunk = chunk[self._skip:]
                self._skip = 0
            if self._end is not None:
                chunk = chunk[: self._end - self.position]
            if not chunk:
                continue
            self.delivered += len(chunk)
            return chunk

    async def _open(self) -> None:
        start = self.position
        headers = {}
        ranged = start > 0 or self._end is not None
        if ranged:
            headers["Range"] = range_header(start, self._end)
        if self.etag:
            # never stitch bytes from two versions of the object together
            headers["If-Match"] = self.etag

        try:
            response = await self.dispatcher.send(
                "GET",
                self._path,
                headers=headers,
                stream=True,
                operation="get_object",
            )
        except ServiceError as exc:
            # a body without Content-Length can drop right after its last
            # byte; resuming at the object size then answers 416
            if exc.status == 416 and self.delivered > 0 and self._end is None:
                logger.debug(
                    "Object read resumed at end of object",
                    bucket=self.bucket,
                    key=self.key,
                    offset=start,
                )
                await self._finish()
                return
            raise
        if self.etag is None:
            self.etag = response.header("ETag")
        # a 200 to a range request carries the whole object
        self._skip = start if ranged and response.status_code == 200 else 0
        length = response.header("Content-Length")
        self._expected = int(length) if length and length.isdigit() else None
        self._received = 0
        self._response = response
        self._chunks = response.iter_bytes()
        logger.debug(
            "Object read opened",
            bucket=self.bucket,
            key=self.key,
            offset=start,
            status=response.status_code,
            resumed=self.delivered > 0,
        )

    async def _finish(self) -> None:
        self._eof = True
        await self._drop_response()

    async def _drop_response(self) -> None:
        response, self._response = self._response, None
        chunks, self._chunks = self._chunks, None
        if chunks is not None:
            await chunks.aclose()
        if response is not None:
            await response.aclose()
