"""Multipart upload session state machine.

States::

    OPEN -> COMPLETING -> COMPLETED
    OPEN | COMPLETING -> ABORTED

Part uploads may run concurrently for distinct part numbers. The part map
is the only shared mutable structure and every write to it happens under
the session lock. Completion serializes parts by ascending part number,
never by arrival order.
"""
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional

import anyio

from objstore.core.logging_config import get_logger
from .config import ObjectStoreConfig
from .dispatch import RequestDispatcher
from .exceptions import (
    AbortError,
    CompletionError,
    IncompletePartsError,
    InitiationError,
    InvalidSessionStateError,
    MalformedResponseError,
    ObjectStoreError,
    PartLimitExceeded,
    PartUploadError,
    ServiceError,
    ValidationError,
)
from .models import ObjectMetadata, PartResult, UploadSession, UploadState
from .responses import build_complete_body, parse_complete, parse_error, parse_initiate
from .utils import object_path, retrying, strip_etag

logger = get_logger(__name__)


class MultipartUploadSession:
    """Coordinates one multipart upload against the service."""

    def __init__(
        self,
        dispatcher: RequestDispatcher,
        session: UploadSession,
        config: Optional[ObjectStoreConfig] = None,
    ):
        self.dispatcher = dispatcher
        self.session = session
        self.config = config or ObjectStoreConfig()
        self._lock = anyio.Lock()

    @classmethod
    async def initiate(
        cls,
        dispatcher: RequestDispatcher,
        bucket: str,
        key: str,
        config: Optional[ObjectStoreConfig] = None,
        content_type: Optional[str] = None,
        metadata: Optional[dict[str, str]] = None,
    ) -> "MultipartUploadSession":
        """Create the remote upload and return an OPEN session.

        Transient failures are retried within the retry budget.

        Raises:
            InitiationError: The service refused or could not be reached
        """
        config = config or ObjectStoreConfig()
        path = object_path(bucket, key)
        headers = {}
        if content_type:
            headers["Content-Type"] = content_type
        for name, value in (metadata or {}).items():
            headers[f"x-amz-meta-{name}"] = value

        try:
            async for attempt in retrying(config):
                with attempt:
                    response = await dispatcher.send(
                        "POST",
                        path,
                        query={"uploads": ""},
                        headers=headers,
                        operation="initiate",
                    )
                    try:
                        body = await response.read()
                    finally:
                        await response.aclose()
            upload_id = parse_initiate(body)
        except ObjectStoreError as exc:
            raise InitiationError(bucket, key, exc) from exc

        logger.info("Multipart upload initiated", bucket=bucket, key=key, upload_id=upload_id)
        return cls(
            dispatcher,
            UploadSession(upload_id=upload_id, bucket=bucket, key=key),
            config,
        )

    @property
    def upload_id(self) -> str:
        return self.session.upload_id

    @property
    def state(self) -> UploadState:
        return self.session.state

    def parts(self) -> list[PartResult]:
        """Snapshot of recorded parts in ascending part order."""
        return [self.session.parts[n] for n in sorted(self.session.parts)]

    async def upload_part(self, part_number: int, data: bytes) -> PartResult:
        """Upload one part and record its ETag.

        Raises:
            PartLimitExceeded: part_number beyond the service maximum, before any request
            InvalidSessionStateError: The session is no longer OPEN
            PartUploadError: The request failed; ``transient`` tells whether to retry
        """
        if part_number < 1:
            raise ValidationError(f"Part numbers start at 1, got {part_number}")
        if part_number > self.config.max_parts:
            raise PartLimitExceeded(part_number, self.config.max_parts)
        self._require(UploadState.OPEN, operation="upload a part to")

        try:
            response = await self.dispatcher.send(
                "PUT",
                object_path(self.session.bucket, self.session.key),
                query={"partNumber": str(part_number), "uploadId": self.upload_id},
                headers={"Content-Length": str(len(data))},
                body=data,
                operation="upload_part",
            )
            await response.aclose()
        except ObjectStoreError as exc:
            raise PartUploadError(part_number, exc) from exc

        etag = response.header("ETag")
        if not etag:
            raise PartUploadError(
                part_number,
                MalformedResponseError("Upload part response missing ETag header"),
            )

        result = PartResult(part_number=part_number, etag=etag, size=len(data))
        async with self._lock:
            if self.session.state is not UploadState.OPEN:
                # aborted or completing while this request was in flight
                raise InvalidSessionStateError(self.session.state.value, "record a part for")
            self.session.parts[part_number] = result
        logger.debug(
            "Part uploaded",
            upload_id=self.upload_id,
            part_number=part_number,
            size=len(data),
        )
        return result

    def missing_parts(self) -> list[int]:
        recorded = self.session.parts
        if not recorded:
            return [1]
        highest = max(recorded)
        return [n for n in range(1, highest + 1) if n not in recorded]

    async def complete(self) -> ObjectMetadata:
        """Finish the upload. Not retried internally.

        A gap in part numbers fails before any request and leaves the
        session OPEN. A failed request leaves it COMPLETING; the caller may
        call ``complete`` again or ``abort``.

        Raises:
            IncompletePartsError: Some part in 1..max is not recorded
            InvalidSessionStateError: Already completed or aborted
            CompletionError: The completion request failed
        """
        async with self._lock:
            state = self.session.state
            if state.terminal:
                raise InvalidSessionStateError(state.value, "complete")
            missing = self.missing_parts()
            if missing:
                raise IncompletePartsError(missing)
            self.session.state = UploadState.COMPLETING
            parts = self.parts()

        try:
            response = await self.dispatcher.send(
                "POST",
                object_path(self.session.bucket, self.session.key),
                query={"uploadId": self.upload_id},
                headers={"Content-Type": "application/xml"},
                body=build_complete_body(parts),
                operation="complete",
            )
            try:
                body = await response.read()
            finally:
                await response.aclose()
            # the service may report failure inside a 200 response
            error = parse_error(body)
            if error is not None:
                raise ServiceError(
                    status=response.status_code,
                    code=error.code,
                    message=error.message,
                    request_id=error.request_id,
                    operation="complete",
                )
            etag = parse_complete(body)
        except ObjectStoreError as exc:
            logger.warning(
                "Multipart upload completion failed",
                upload_id=self.upload_id,
                error=str(exc),
            )
            raise CompletionError(self.upload_id, exc) from exc

        async with self._lock:
            self.session.state = UploadState.COMPLETED

        logger.info(
            "Multipart upload completed",
            bucket=self.session.bucket,
            key=self.session.key,
            upload_id=self.upload_id,
            parts=len(parts),
        )
        return ObjectMetadata(
            key=self.session.key,
            size=sum(part.size for part in parts),
            etag=strip_etag(etag),
            last_modified=_response_date(response.header("Date")),
        )

    async def abort(self) -> None:
        """Abort the upload. Best effort remotely, unconditional locally.

        Raises:
            InvalidSessionStateError: Already completed or aborted
            AbortError: The remote call failed; the session is ABORTED anyway
        """
        async with self._lock:
            state = self.session.state
            if state.terminal:
                raise InvalidSessionStateError(state.value, "abort")
            self.session.state = UploadState.ABORTED

        try:
            response = await self.dispatcher.send(
                "DELETE",
                object_path(self.session.bucket, self.session.key),
                query={"uploadId": self.upload_id},
                operation="abort",
            )
            await response.aclose()
        except ObjectStoreError as exc:
            logger.warning(
                "Multipart upload abort failed",
                upload_id=self.upload_id,
                error=str(exc),
            )
            raise AbortError(self.upload_id, exc) from exc

        logger.info(
            "Multipart upload aborted",
            bucket=self.session.bucket,
            key=self.session.key,
            upload_id=self.upload_id,
        )

    def _require(self, state: UploadState, operation: str) -> None:
        if self.session.state is not state:
            raise InvalidSessionStateError(self.session.state.value, operation)


def _response_date(value: Optional[str]) -> datetime:
    if value:
        try:
            return parsedate_to_datetime(value)
        except (TypeError, ValueError):
            pass
    return datetime.now(timezone.utc)
