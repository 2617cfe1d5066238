"""Storage data transfer objects."""
from datetime import datetime
from enum import Enum
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

MAX_PART_NUMBER = 10000

ObjectKey = Annotated[str, Field(min_length=1, max_length=1024)]


class ObjectMetadata(BaseModel):
    """Metadata of one stored object."""
    model_config = ConfigDict(frozen=True)

    key: ObjectKey
    size: int = Field(ge=0)
    etag: str
    last_modified: Optional[datetime] = None


class ListingPage(BaseModel):
    """One page of a bucket listing, in the order the service returned it."""
    model_config = ConfigDict(frozen=True)

    entries: tuple[ObjectMetadata, ...] = ()
    continuation_token: Optional[str] = None
    is_truncated: bool = False

    @model_validator(mode="after")
    def _token_iff_truncated(self):
        if self.is_truncated != (self.continuation_token is not None):
            raise ValueError(
                "continuation_token must be present exactly when is_truncated is set"
            )
        return self


class ByteRange(BaseModel):
    """Read scope. ``length=None`` reads to the end of the object."""
    model_config = ConfigDict(frozen=True)

    offset: int = Field(default=0, ge=0)
    length: Optional[int] = Field(default=None, gt=0)

    @property
    def end(self) -> Optional[int]:
        """Exclusive end offset, or None when open-ended."""
        if self.length is None:
            return None
        return self.offset + self.length


class PartResult(BaseModel):
    """Outcome of one successful part upload. Replaced, never mutated."""
    model_config = ConfigDict(frozen=True)

    part_number: int = Field(ge=1, le=MAX_PART_NUMBER)
    etag: str
    size: int = Field(ge=0)


class UploadState(str, Enum):
    OPEN = "open"
    COMPLETING = "completing"
    COMPLETED = "completed"
    ABORTED = "aborted"

    @property
    def terminal(self) -> bool:
        return self in (UploadState.COMPLETED, UploadState.ABORTED)


class UploadSession(BaseModel):
    """State of one multipart upload, owned by a single session object."""

    upload_id: str = Field(frozen=True)
    bucket: str = Field(frozen=True)
    key: ObjectKey = Field(frozen=True)
    parts: dict[int, PartResult] = Field(default_factory=dict)
    state: UploadState = UploadState.OPEN


class BucketInfo(BaseModel):
    """Bucket entry from a bucket listing."""
    model_config = ConfigDict(frozen=True)

    name: str
    creation_date: Optional[datetime] = None
