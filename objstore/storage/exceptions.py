"""Object storage exceptions.

Every error exposes ``transient``: whether retrying the same operation has a
reasonable chance of succeeding.
"""
from typing import Optional, Sequence

TRANSIENT_ERROR_CODES = {
    "InternalError",
    "RequestTimeout",
    "ServiceUnavailable",
    "SlowDown",
    "Throttling",
}


class ObjectStoreError(Exception):
    """Base object storage exception."""

    def __init__(self, message: str, details: Optional[dict] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    @property
    def transient(self) -> bool:
        return False


class ConfigurationError(ObjectStoreError):
    """Client configuration error."""
    pass


class ValidationError(ObjectStoreError):
    """Invalid argument passed to a storage operation."""
    pass


class TransportError(ObjectStoreError):
    """Network failure, timeout or truncated body. Always transient."""

    @property
    def transient(self) -> bool:
        return True


class ServiceError(ObjectStoreError):
    """The service answered with an error status."""

    def __init__(
        self,
        status: int,
        code: Optional[str] = None,
        message: Optional[str] = None,
        request_id: Optional[str] = None,
        operation: Optional[str] = None,
    ) -> None:
        self.status = status
        self.code = code
        self.request_id = request_id
        self.operation = operation
        text = message or f"Service returned status {status}"
        super().__init__(
            text,
            details={
                "status": status,
                "code": code,
                "request_id": request_id,
                "operation": operation,
            },
        )

    @property
    def transient(self) -> bool:
        if self.status == 429 or self.status >= 500:
            return True
        # 200 with an <Error> body (completion) follows the error code
        if 200 <= self.status < 300:
            return self.code in TRANSIENT_ERROR_CODES
        return False

    def __str__(self) -> str:
        parts = [self.message, f"Status: {self.status}"]
        if self.code:
            parts.append(f"Code: {self.code}")
        if self.operation:
            parts.append(f"Operation: {self.operation}")
        if self.request_id:
            parts.append(f"Request ID: {self.request_id}")
        return " | ".join(parts)


class _CausedError(ObjectStoreError):
    """Wraps a lower-level error; transience follows the cause."""

    def __init__(
        self,
        message: str,
        cause: Optional[BaseException] = None,
        details: Optional[dict] = None,
    ) -> None:
        self.cause = cause
        super().__init__(message, details)
        if cause is not None:
            self.__cause__ = cause

    @property
    def transient(self) -> bool:
        return bool(getattr(self.cause, "transient", False))


class InitiationError(_CausedError):
    """Creating the multipart upload failed."""

    def __init__(self, bucket: str, key: str, cause: Optional[BaseException] = None) -> None:
        self.bucket = bucket
        self.key = key
        super().__init__(
            f"Failed to initiate multipart upload for {bucket}/{key}: {cause}",
            cause,
            {"bucket": bucket, "key": key},
        )


class PartUploadError(_CausedError):
    """Uploading one part failed."""

    def __init__(self, part_number: int, cause: Optional[BaseException] = None) -> None:
        self.part_number = part_number
        super().__init__(
            f"Failed to upload part {part_number}: {cause}",
            cause,
            {"part_number": part_number},
        )


class PartLimitExceeded(ObjectStoreError):
    """Part number outside the range the service accepts."""

    def __init__(self, part_number: int, limit: int) -> None:
        self.part_number = part_number
        self.limit = limit
        super().__init__(
            f"Part number {part_number} exceeds the limit of {limit} parts",
            {"part_number": part_number, "limit": limit},
        )


class IncompletePartsError(ObjectStoreError):
    """Completion requested while part numbers are missing."""

    def __init__(self, missing: Sequence[int]) -> None:
        self.missing = list(missing)
        shown = ", ".join(str(n) for n in self.missing[:10])
        if len(self.missing) > 10:
            shown += ", ..."
        super().__init__(
            f"Cannot complete upload, missing parts: {shown}",
            {"missing": self.missing},
        )


class InvalidSessionStateError(ObjectStoreError):
    """Operation not permitted in the session's current state."""

    def __init__(self, state: str, operation: str) -> None:
        self.state = state
        self.operation = operation
        super().__init__(
            f"Cannot {operation} an upload session in state {state}",
            {"state": state, "operation": operation},
        )


class CompletionError(_CausedError):
    """The completion request failed."""

    def __init__(self, upload_id: str, cause: Optional[BaseException] = None) -> None:
        self.upload_id = upload_id
        super().__init__(
            f"Failed to complete multipart upload {upload_id}: {cause}",
            cause,
            {"upload_id": upload_id},
        )


class AbortError(_CausedError):
    """The remote abort failed. The local session is aborted regardless."""

    def __init__(self, upload_id: str, cause: Optional[BaseException] = None) -> None:
        self.upload_id = upload_id
        super().__init__(
            f"Failed to abort multipart upload {upload_id}: {cause}",
            cause,
            {"upload_id": upload_id},
        )


class ListingError(_CausedError):
    """A listing page could not be fetched."""

    def __init__(
        self,
        bucket: str,
        prefix: Optional[str] = None,
        cause: Optional[BaseException] = None,
        message: Optional[str] = None,
    ) -> None:
        self.bucket = bucket
        self.prefix = prefix
        super().__init__(
            message or f"Failed to list objects in {bucket} (prefix={prefix!r}): {cause}",
            cause,
            {"bucket": bucket, "prefix": prefix},
        )


class ReadError(_CausedError):
    """Reading an object failed and no further bytes will be produced."""

    def __init__(
        self,
        bucket: str,
        key: str,
        offset: int,
        cause: Optional[BaseException] = None,
    ) -> None:
        self.bucket = bucket
        self.key = key
        self.offset = offset
        super().__init__(
            f"Failed to read {bucket}/{key} at offset {offset}: {cause}",
            cause,
            {"bucket": bucket, "key": key, "offset": offset},
        )


class InputStreamError(_CausedError):
    """The caller's input stream failed while being read."""

    def __init__(self, cause: Optional[BaseException] = None) -> None:
        super().__init__(f"Input stream failed: {cause}", cause)

    @property
    def transient(self) -> bool:
        return False


class UploadFailedError(ObjectStoreError):
    """A multipart upload failed and was aborted.

    ``primary`` is the error that ended the upload. ``abort_error`` is set
    when the cleanup abort also failed; it never replaces ``primary``.
    """

    def __init__(
        self,
        primary: BaseException,
        abort_error: Optional[AbortError] = None,
        upload_id: Optional[str] = None,
    ) -> None:
        self.primary = primary
        self.abort_error = abort_error
        self.upload_id = upload_id
        message = f"Upload failed: {primary}"
        if abort_error is not None:
            message += f" (abort also failed: {abort_error.cause})"
        super().__init__(message, {"upload_id": upload_id})
        self.__cause__ = primary


class UploadCancelledError(ObjectStoreError):
    """The upload was cancelled cooperatively and aborted."""

    def __init__(
        self,
        upload_id: Optional[str] = None,
        abort_error: Optional[AbortError] = None,
    ) -> None:
        self.upload_id = upload_id
        self.abort_error = abort_error
        super().__init__(f"Upload {upload_id} cancelled", {"upload_id": upload_id})


class MalformedResponseError(ObjectStoreError):
    """A response body could not be parsed."""
    pass
