"""XML response extraction and request body serialization.

Only the fields the client needs are read: upload id, ETags, continuation
token, object key/size/last-modified, bucket names and error codes. Element
names are matched without their namespace so both namespaced and bare
documents are accepted.
"""
import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from typing import Iterable, NamedTuple, Optional

from .exceptions import MalformedResponseError
from .models import BucketInfo, ListingPage, ObjectMetadata, PartResult
from .utils import strip_etag

S3_NAMESPACE = "http://s3.amazonaws.com/doc/2006-03-01/"


class ErrorDocument(NamedTuple):
    code: Optional[str]
    message: Optional[str]
    request_id: Optional[str]


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _parse(body: bytes, expected: str) -> ET.Element:
    try:
        root = ET.fromstring(body)
    except ET.ParseError as exc:
        raise MalformedResponseError(f"Invalid XML in {expected} response: {exc}") from exc
    if _local(root.tag) != expected:
        raise MalformedResponseError(
            f"Expected <{expected}> document, got <{_local(root.tag)}>"
        )
    return root


def _child(element: ET.Element, name: str) -> Optional[ET.Element]:
    for child in element:
        if _local(child.tag) == name:
            return child
    return None


def _children(element: ET.Element, name: str) -> Iterable[ET.Element]:
    return (child for child in element if _local(child.tag) == name)


def _text(element: ET.Element, name: str) -> Optional[str]:
    child = _child(element, name)
    if child is None or child.text is None:
        return None
    return child.text.strip()


def _raw(element: ET.Element, name: str) -> Optional[str]:
    """Element text exactly as sent; keys and tokens are opaque."""
    child = _child(element, name)
    if child is None:
        return None
    return child.text


def _required(element: ET.Element, name: str) -> str:
    value = _raw(element, name)
    if not value:
        raise MalformedResponseError(f"Response missing <{name}>")
    return value


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_error(body: bytes) -> Optional[ErrorDocument]:
    """Return the error document in ``body``, or None if it is not one."""
    if not body or b"<Error" not in body:
        return None
    try:
        root = ET.fromstring(body)
    except ET.ParseError:
        return None
    if _local(root.tag) != "Error":
        return None
    return ErrorDocument(
        code=_text(root, "Code"),
        message=_text(root, "Message"),
        request_id=_text(root, "RequestId"),
    )


def parse_initiate(body: bytes) -> str:
    """Extract the upload id from InitiateMultipartUploadResult."""
    root = _parse(body, "InitiateMultipartUploadResult")
    return _required(root, "UploadId")


def parse_complete(body: bytes) -> str:
    """Extract the object ETag from CompleteMultipartUploadResult."""
    root = _parse(body, "CompleteMultipartUploadResult")
    return strip_etag(_raw(root, "ETag"))


def parse_list_objects(body: bytes) -> tuple[list[ObjectMetadata], bool, Optional[str]]:
    """Extract (entries, is_truncated, next token) from ListBucketResult.

    The pair is returned raw so the caller can decide what to do about a
    truncated page without a token.
    """
    root = _parse(body, "ListBucketResult")
    entries = []
    for contents in _children(root, "Contents"):
        size = _text(contents, "Size") or "0"
        try:
            size_value = int(size)
        except ValueError as exc:
            raise MalformedResponseError(f"Invalid object size: {size!r}") from exc
        entries.append(
            ObjectMetadata(
                key=_required(contents, "Key"),
                size=size_value,
                etag=strip_etag(_raw(contents, "ETag")),
                last_modified=parse_timestamp(_text(contents, "LastModified")),
            )
        )
    is_truncated = (_text(root, "IsTruncated") or "false").lower() == "true"
    token = _raw(root, "NextContinuationToken") or None
    return entries, is_truncated, token


def build_listing_page(
    entries: list[ObjectMetadata],
    is_truncated: bool,
    token: Optional[str],
) -> ListingPage:
    return ListingPage(
        entries=tuple(entries),
        continuation_token=token if is_truncated else None,
        is_truncated=is_truncated,
    )


def parse_list_buckets(body: bytes) -> list[BucketInfo]:
    root = _parse(body, "ListAllMyBucketsResult")
    buckets = _child(root, "Buckets")
    if buckets is None:
        return []
    return [
        BucketInfo(
            name=_required(bucket, "Name"),
            creation_date=parse_timestamp(_text(bucket, "CreationDate")),
        )
        for bucket in _children(buckets, "Bucket")
    ]


def build_complete_body(parts: Iterable[PartResult]) -> bytes:
    """Serialize CompleteMultipartUpload, always in ascending part order."""
    root = ET.Element("CompleteMultipartUpload", xmlns=S3_NAMESPACE)
    for part in sorted(parts, key=lambda p: p.part_number):
        element = ET.SubElement(root, "Part")
        ET.SubElement(element, "PartNumber").text = str(part.part_number)
        ET.SubElement(element, "ETag").text = part.etag
    return ET.tostring(root, encoding="utf-8", xml_declaration=True)
