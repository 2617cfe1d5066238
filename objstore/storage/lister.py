"""Lazy, page-at-a-time bucket listing."""
from collections import deque
from typing import AsyncIterator, Deque, Optional

from objstore.core.logging_config import get_logger
from .config import ObjectStoreConfig
from .dispatch import RequestDispatcher
from .exceptions import ListingError, ObjectStoreError, ValidationError
from .models import ListingPage, ObjectMetadata
from .responses import build_listing_page, parse_list_objects
from .utils import object_path, retrying

logger = get_logger(__name__)


class ObjectIterator:
    """Async iterator over the objects under a prefix.

    Holds the continuation cursor and fetches one page whenever the
    buffered entries run out. Entries come out in service order. A failed
    page fetch ends the iteration with ``ListingError``; entries already
    yielded stay valid. Restart by creating a new iterator.
    """

    def __init__(
        self,
        dispatcher: RequestDispatcher,
        bucket: str,
        prefix: Optional[str] = None,
        page_size: Optional[int] = None,
        start_after: Optional[str] = None,
        config: Optional[ObjectStoreConfig] = None,
    ):
        self.dispatcher = dispatcher
        self.bucket = bucket
        self.prefix = prefix
        self.config = config or ObjectStoreConfig()
        self.page_size = page_size or self.config.page_size
        if not 1 <= self.page_size <= 1000:
            raise ValidationError("page_size must be between 1 and 1000")
        self.start_after = start_after
        self.continuation_token: Optional[str] = None
        self.pages_fetched = 0
        self._entries: Deque[ObjectMetadata] = deque()
        self._exhausted = False
        self._failed: Optional[ListingError] = None

    def __aiter__(self) -> "ObjectIterator":
        return self

    async def __anext__(self) -> ObjectMetadata:
        while not self._entries:
            page = await self.next_page()
            if page is None:
                raise StopAsyncIteration
            self._entries.extend(page.entries)
        return self._entries.popleft()

    async def pages(self) -> AsyncIterator[ListingPage]:
        """Iterate whole pages instead of single entries."""
        while True:
            page = await self.next_page()
            if page is None:
                return
            yield page

    async def next_page(self) -> Optional[ListingPage]:
        """Fetch the next page, or return None once the listing is done.

        Raises:
            ListingError: The fetch failed, or the service reported more
                pages without a continuation token
        """
        if self._failed is not None:
            raise self._failed
        if self._exhausted:
            return None

        try:
            page = await self._fetch()
        except ListingError as exc:
            self._failed = exc
            raise
        except ObjectStoreError as exc:
            self._failed = ListingError(self.bucket, self.prefix, exc)
            raise self._failed from exc

        self.pages_fetched += 1
        if page.is_truncated:
            self.continuation_token = page.continuation_token
        else:
            self._exhausted = True
        logger.debug(
            "Listing page fetched",
            bucket=self.bucket,
            prefix=self.prefix,
            page=self.pages_fetched,
            entries=len(page.entries),
            truncated=page.is_truncated,
        )
        return page

    async def _fetch(self) -> ListingPage:
        query = {"list-type": "2", "max-keys": str(self.page_size)}
        if self.prefix:
            query["prefix"] = self.prefix
        if self.continuation_token:
            query["continuation-token"] = self.continuation_token
        elif self.start_after:
            query["start-after"] = self.start_after

        async for attempt in retrying(self.config):
            with attempt:
                response = await self.dispatcher.send(
                    "GET",
                    object_path(self.bucket),
                    query=query,
                    operation="list_objects",
                )
                try:
                    body = await response.read()
                finally:
                    await response.aclose()

        entries, is_truncated, token = parse_list_objects(body)
        if is_truncated and not token:
            raise ListingError(
                self.bucket,
                self.prefix,
                message=(
                    f"Listing of {self.bucket} reported more results "
                    "without a continuation token"
                ),
            )
        if is_truncated and token == self.continuation_token:
            raise ListingError(
                self.bucket,
                self.prefix,
                message=f"Listing of {self.bucket} returned the same continuation token twice",
            )
        return build_listing_page(entries, is_truncated, token)
