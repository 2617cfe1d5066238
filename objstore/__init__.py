"""Client library for S3-compatible object storage."""
from objstore.storage import (
    ByteRange,
    ObjectIterator,
    ObjectMetadata,
    ObjectReader,
    ObjectStorageClient,
    ObjectStoreConfig,
    create_client,
)

__all__ = [
    "ByteRange",
    "ObjectIterator",
    "ObjectMetadata",
    "ObjectReader",
    "ObjectStorageClient",
    "ObjectStoreConfig",
    "create_client",
]

__version__ = "0.1.0"
