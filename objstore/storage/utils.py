"""Storage utility functions: retry policy and request helpers."""
import logging
from typing import Optional
from urllib.parse import quote

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from .config import ObjectStoreConfig
from .exceptions import ValidationError

# tenacity's before_sleep_log expects a stdlib logger
_retry_logger = logging.getLogger("objstore.retry")


def is_transient(exc: BaseException) -> bool:
    """True for errors worth retrying (network, 429, 5xx)."""
    return bool(getattr(exc, "transient", False))


def retrying(
    config: ObjectStoreConfig,
    retry_budget: Optional[int] = None,
) -> AsyncRetrying:
    """Build a retry controller for transient errors.

    Allows ``retry_budget`` retries after the first attempt, with
    exponential backoff between them.

    Example:
        async for attempt in retrying(config):
            with attempt:
                await do_something()
    """
    budget = config.retry_budget if retry_budget is None else retry_budget
    return AsyncRetrying(
        stop=stop_after_attempt(budget + 1),
        wait=backoff(config),
        retry=retry_if_exception(is_transient),
        before_sleep=before_sleep_log(_retry_logger, logging.WARNING),
        reraise=True,
    )


def backoff(config: ObjectStoreConfig) -> wait_exponential:
    return wait_exponential(
        multiplier=config.backoff_multiplier,
        max=config.backoff_max,
    )


def object_path(bucket: str, key: Optional[str] = None) -> str:
    """Build a path-style request path for a bucket or object.

    Args:
        bucket: Bucket name
        key: Object key, left out for bucket-level requests

    Returns:
        Percent-encoded path, e.g. ``/bucket/a%20b/c.txt``
    """
    if not bucket or "/" in bucket:
        raise ValidationError(f"Invalid bucket name: {bucket!r}")
    if key is None:
        return f"/{bucket}"
    if not key:
        raise ValidationError("Object key must not be empty")
    return f"/{bucket}/{quote(key, safe='/~')}"


def range_header(start: int, end: Optional[int]) -> str:
    """Format a Range header; ``end`` is exclusive, None means open-ended."""
    if end is None:
        return f"bytes={start}-"
    return f"bytes={start}-{end - 1}"


def strip_etag(etag: Optional[str]) -> str:
    return (etag or "").strip('"')
