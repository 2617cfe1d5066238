"""Signs requests, hands them to the transport and checks the status."""
from typing import Mapping, Optional

from objstore.core.logging_config import get_logger
from .base import RequestSigner, TransportPort, TransportResponse
from .responses import parse_error
from .exceptions import ServiceError, TransportError

logger = get_logger(__name__)

# Error bodies are small; cap what is buffered from a misbehaving server
MAX_ERROR_BODY = 64 * 1024


class RequestDispatcher:
    """Single place where the core talks to the Transport Port."""

    def __init__(
        self,
        transport: TransportPort,
        signer: Optional[RequestSigner] = None,
    ):
        self.transport = transport
        self.signer = signer

    async def send(
        self,
        method: str,
        path: str,
        *,
        query: Optional[Mapping[str, str]] = None,
        headers: Optional[Mapping[str, str]] = None,
        body: Optional[bytes] = None,
        stream: bool = False,
        operation: str = "",
    ) -> TransportResponse:
        """Send one request and return the 2xx response.

        Raises:
            ServiceError: Non-2xx status; the error code is read from the body
            TransportError: Raised by the transport
        """
        query = dict(query or {})
        request_headers = dict(headers or {})
        if self.signer is not None:
            request_headers.update(
                self.signer.sign(method, path, query, request_headers, body)
            )

        response = await self.transport.request(
            method,
            path,
            query=query,
            headers=request_headers,
            body=body,
            stream=stream,
        )
        if response.is_success:
            return response

        try:
            raw = await _read_limited(response)
        except TransportError:
            raw = b""
        finally:
            await response.aclose()
        error = parse_error(raw)
        request_id = response.header("x-amz-request-id")
        logger.debug(
            "Storage request rejected",
            operation=operation,
            method=method,
            path=path,
            status=response.status_code,
            code=error.code if error else None,
        )
        raise ServiceError(
            status=response.status_code,
            code=error.code if error else None,
            message=error.message if error and error.message else None,
            request_id=(error.request_id if error and error.request_id else request_id),
            operation=operation or None,
        )


async def _read_limited(response: TransportResponse) -> bytes:
    if response.stream is None:
        return response.content[:MAX_ERROR_BODY]
    collected = bytearray()
    async for chunk in response.iter_bytes():
        collected.extend(chunk)
        if len(collected) >= MAX_ERROR_BODY:
            break
    return bytes(collected[:MAX_ERROR_BODY])
