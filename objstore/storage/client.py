"""Application-facing client: list, read and upload objects."""
from typing import Optional

import anyio

from objstore.core.logging_config import get_logger
from .base import RequestSigner, TransportPort
from .config import ObjectStoreConfig
from .dispatch import RequestDispatcher
from .lister import ObjectIterator
from .models import BucketInfo, ByteRange, ObjectMetadata
from .part_buffer import ByteStream
from .reader import ObjectReader
from .responses import parse_list_buckets
from .uploader import UploadOrchestrator
from .utils import object_path, retrying

logger = get_logger(__name__)


class ObjectStorageClient:
    """Entry point for one S3-compatible endpoint.

    The transport (and optional signer) are injected; the client keeps no
    process-wide state.
    """

    def __init__(
        self,
        transport: TransportPort,
        signer: Optional[RequestSigner] = None,
        config: Optional[ObjectStoreConfig] = None,
    ):
        self.transport = transport
        self.config = config or ObjectStoreConfig()
        self.dispatcher = RequestDispatcher(transport, signer)

    def list_objects(
        self,
        bucket: str,
        prefix: Optional[str] = None,
        page_size: Optional[int] = None,
        start_after: Optional[str] = None,
    ) -> ObjectIterator:
        """Lazily list objects; nothing is fetched until iteration starts."""
        return ObjectIterator(
            self.dispatcher,
            bucket,
            prefix=prefix,
            page_size=page_size,
            start_after=start_after,
            config=self.config,
        )

    def open_object(
        self,
        bucket: str,
        key: str,
        byte_range: Optional[ByteRange] = None,
    ) -> ObjectReader:
        """Open a lazy reader; the GET is issued on the first read."""
        return ObjectReader(
            self.dispatcher,
            bucket,
            key,
            byte_range=byte_range,
            config=self.config,
        )

    async def upload(
        self,
        bucket: str,
        key: str,
        stream: ByteStream,
        part_size: Optional[int] = None,
        concurrency: Optional[int] = None,
        *,
        cancel_event: Optional[anyio.Event] = None,
        content_type: Optional[str] = None,
        metadata: Optional[dict[str, str]] = None,
    ) -> ObjectMetadata:
        """Multipart-upload ``stream``; see ``UploadOrchestrator.upload``."""
        orchestrator = UploadOrchestrator(self.dispatcher, self.config)
        return await orchestrator.upload(
            bucket,
            key,
            stream,
            part_size=part_size,
            concurrency=concurrency,
            cancel_event=cancel_event,
            content_type=content_type,
            metadata=metadata,
        )

    async def delete_object(self, bucket: str, key: str) -> None:
        async for attempt in retrying(self.config):
            with attempt:
                response = await self.dispatcher.send(
                    "DELETE",
                    object_path(bucket, key),
                    operation="delete_object",
                )
                await response.aclose()
        logger.info("Deleted object", bucket=bucket, key=key)

    async def list_buckets(self, instance_id: Optional[str] = None) -> list[BucketInfo]:
        """List the buckets visible to the credentials.

        Args:
            instance_id: Service instance whose buckets to list, sent as
                ``ibm-service-instance-id`` on this request only
        """
        headers = {"ibm-service-instance-id": instance_id} if instance_id else {}
        async for attempt in retrying(self.config):
            with attempt:
                response = await self.dispatcher.send(
                    "GET",
                    "/",
                    headers=headers,
                    operation="list_buckets",
                )
                try:
                    body = await response.read()
                finally:
                    await response.aclose()
        return parse_list_buckets(body)

    async def aclose(self) -> None:
        closer = getattr(self.transport, "aclose", None)
        if closer is not None:
            await closer()

    async def __aenter__(self) -> "ObjectStorageClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()
