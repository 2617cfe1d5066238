"""Upload orchestration: stream -> parts -> concurrent part uploads -> completion."""
from typing import Optional

import anyio

from objstore.core.logging_config import get_logger
from .config import ObjectStoreConfig
from .dispatch import RequestDispatcher
from .exceptions import (
    AbortError,
    CompletionError,
    InvalidSessionStateError,
    UploadCancelledError,
    UploadFailedError,
    ValidationError,
)
from .models import ObjectMetadata, UploadState
from .multipart import MultipartUploadSession
from .part_buffer import ByteStream, PartBuffer
from .utils import retrying

logger = get_logger(__name__)


class UploadOrchestrator:
    """Drives one input stream through a multipart upload.

    Part numbers are assigned by the single producer loop before dispatch.
    At most ``concurrency`` chunks are held in memory for in-flight parts;
    the producer waits for a free slot before reading the next chunk.
    """

    def __init__(
        self,
        dispatcher: RequestDispatcher,
        config: Optional[ObjectStoreConfig] = None,
    ):
        self.dispatcher = dispatcher
        self.config = config or ObjectStoreConfig()

    async def upload(
        self,
        bucket: str,
        key: str,
        stream: ByteStream,
        *,
        part_size: Optional[int] = None,
        concurrency: Optional[int] = None,
        cancel_event: Optional[anyio.Event] = None,
        content_type: Optional[str] = None,
        metadata: Optional[dict[str, str]] = None,
    ) -> ObjectMetadata:
        """Upload ``stream`` to ``bucket/key``.

        Args:
            bucket: Target bucket
            key: Object key
            stream: Input bytes (bytes, file-like or iterable of bytes)
            part_size: Bytes per part, defaults to the configured size
            concurrency: Max parts in flight, defaults to the configured value
            cancel_event: Set it to stop issuing parts and abort
            content_type: Content-Type of the resulting object
            metadata: User metadata (x-amz-meta-*)

        Returns:
            Metadata of the completed object

        Raises:
            ValidationError: Invalid part_size or concurrency, before any request
            TypeError: Unsupported input stream type, before any request
            InitiationError: The upload could not be created
            UploadFailedError: A part, the input or completion failed; the upload was aborted
            UploadCancelledError: ``cancel_event`` was set; the upload was aborted
        """
        part_size = part_size or self.config.part_size
        concurrency = concurrency or self.config.concurrency
        if part_size < self.config.min_part_size:
            raise ValidationError(
                f"part_size must be at least {self.config.min_part_size} bytes"
            )
        if concurrency < 1:
            raise ValidationError("concurrency must be positive")
        # reject unusable input before the remote upload exists
        buffer = PartBuffer(stream, part_size, self.config.min_part_size)

        session = await MultipartUploadSession.initiate(
            self.dispatcher,
            bucket,
            key,
            self.config,
            content_type=content_type,
            metadata=metadata,
        )
        run = _UploadRun(session, self.config, concurrency, cancel_event)

        try:
            await run.dispatch_parts(buffer)
        except anyio.get_cancelled_exc_class():
            with anyio.CancelScope(shield=True):
                await _abort_quietly(session)
            raise

        if run.failure is not None:
            abort_error = await _abort_quietly(session)
            logger.error(
                "Multipart upload failed",
                bucket=bucket,
                key=key,
                upload_id=session.upload_id,
                error=str(run.failure),
            )
            raise UploadFailedError(run.failure, abort_error, session.upload_id)

        if run.cancelled:
            abort_error = await _abort_quietly(session)
            raise UploadCancelledError(session.upload_id, abort_error)

        try:
            return await self._complete(session)
        except anyio.get_cancelled_exc_class():
            with anyio.CancelScope(shield=True):
                await _abort_quietly(session)
            raise
        except CompletionError as exc:
            abort_error = await _abort_quietly(session)
            raise UploadFailedError(exc, abort_error, session.upload_id) from exc

    async def _complete(self, session: MultipartUploadSession) -> ObjectMetadata:
        if not self.config.retry_complete:
            return await session.complete()
        # opt-in: the service is expected to treat a repeated completion of
        # the same part set as success; the client cannot verify that
        async for attempt in retrying(self.config):
            with attempt:
                return await session.complete()


class _UploadRun:
    """Producer loop and part workers for one upload."""

    def __init__(
        self,
        session: MultipartUploadSession,
        config: ObjectStoreConfig,
        concurrency: int,
        cancel_event: Optional[anyio.Event],
    ):
        self.session = session
        self.config = config
        self.cancel_event = cancel_event
        self.slots = anyio.Semaphore(concurrency)
        self.failure: Optional[BaseException] = None
        self.cancelled = False
        self.parts_dispatched = 0

    def _should_stop(self) -> bool:
        if self.failure is not None:
            return True
        if self.cancel_event is not None and self.cancel_event.is_set():
            self.cancelled = True
            return True
        return False

    async def dispatch_parts(self, buffer: PartBuffer) -> None:
        """Issue parts until input ends or a stop condition; wait for all in-flight parts."""
        async with anyio.create_task_group() as tg:
            while True:
                await self.slots.acquire()
                if self._should_stop():
                    self.slots.release()
                    break
                try:
                    chunk = await buffer.next_chunk()
                except Exception as exc:
                    self.slots.release()
                    self._record_failure(exc)
                    break
                if chunk is None:
                    self.slots.release()
                    break
                self.parts_dispatched += 1
                tg.start_soon(self._upload_part, self.parts_dispatched, chunk)

    async def _upload_part(self, part_number: int, chunk: bytes) -> None:
        try:
            async for attempt in retrying(self.config):
                with attempt:
                    if self.failure is not None:
                        # another part failed permanently; do not retry this one
                        return
                    await self.session.upload_part(part_number, chunk)
        except Exception as exc:
            self._record_failure(exc)
        finally:
            self.slots.release()

    def _record_failure(self, exc: BaseException) -> None:
        if self.failure is None:
            self.failure = exc
        else:
            logger.warning(
                "Additional failure during failed upload",
                upload_id=self.session.upload_id,
                error=str(exc),
            )


async def _abort_quietly(session: MultipartUploadSession) -> Optional[AbortError]:
    """Abort and return the abort failure instead of raising it.

    Whatever the abort raises is reported as the secondary error so it can
    never replace the failure that triggered the abort.
    """
    if session.state in (UploadState.COMPLETED, UploadState.ABORTED):
        return None
    try:
        await session.abort()
    except AbortError as exc:
        return exc
    except InvalidSessionStateError:
        return None
    except Exception as exc:
        logger.warning(
            "Multipart upload abort failed unexpectedly",
            upload_id=session.upload_id,
            error=repr(exc),
        )
        return AbortError(session.upload_id, exc)
    return None
