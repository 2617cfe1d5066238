"""Object storage core: listing, resumable reads and multipart uploads."""
from functools import lru_cache

from pydantic import ValidationError as PydanticValidationError

from objstore.core.config import load_settings
from .base import RequestSigner, TransportPort, TransportResponse
from .client import ObjectStorageClient
from .config import ObjectStoreConfig, SignerType
from .factory import create_client, register_signer
from .exceptions import (
    AbortError,
    CompletionError,
    ConfigurationError,
    IncompletePartsError,
    InitiationError,
    InputStreamError,
    InvalidSessionStateError,
    ListingError,
    MalformedResponseError,
    ObjectStoreError,
    PartLimitExceeded,
    PartUploadError,
    ReadError,
    ServiceError,
    TransportError,
    UploadCancelledError,
    UploadFailedError,
    ValidationError,
)
from .lister import ObjectIterator
from .models import (
    BucketInfo,
    ByteRange,
    ListingPage,
    ObjectMetadata,
    PartResult,
    UploadSession,
    UploadState,
)
from .multipart import MultipartUploadSession
from .part_buffer import PartBuffer
from .reader import ObjectReader
from .uploader import UploadOrchestrator


@lru_cache
def get_objstore_config() -> ObjectStoreConfig:
    """Assemble the client configuration from settings.

    Settings stay the single source of truth; this only maps them onto
    the validated runtime model.
    """
    s = load_settings().objstore
    try:
        return ObjectStoreConfig(**s.model_dump())
    except PydanticValidationError as exc:
        raise ConfigurationError(f"Invalid object store settings: {exc}") from exc


__all__ = [
    "AbortError",
    "BucketInfo",
    "ByteRange",
    "CompletionError",
    "ConfigurationError",
    "IncompletePartsError",
    "InitiationError",
    "InputStreamError",
    "InvalidSessionStateError",
    "ListingError",
    "ListingPage",
    "MalformedResponseError",
    "MultipartUploadSession",
    "ObjectIterator",
    "ObjectMetadata",
    "ObjectReader",
    "ObjectStorageClient",
    "ObjectStoreConfig",
    "ObjectStoreError",
    "PartBuffer",
    "PartLimitExceeded",
    "PartResult",
    "PartUploadError",
    "ReadError",
    "RequestSigner",
    "ServiceError",
    "SignerType",
    "TransportError",
    "TransportPort",
    "TransportResponse",
    "UploadCancelledError",
    "UploadFailedError",
    "UploadOrchestrator",
    "UploadSession",
    "UploadState",
    "ValidationError",
    "create_client",
    "get_objstore_config",
    "register_signer",
]
