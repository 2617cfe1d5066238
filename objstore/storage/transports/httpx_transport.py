"""Transport Port implementation on top of httpx."""
from typing import AsyncIterator, Mapping, Optional

import httpx

from objstore.core.logging_config import get_logger
from ..base import TransportResponse
from ..exceptions import TransportError

logger = get_logger(__name__)


class HttpxTransport:
    """Sends requests to one endpoint with a shared ``httpx.AsyncClient``.

    Network errors and timeouts, including ones raised while a streamed
    body is consumed, surface as ``TransportError``. Statuses are returned
    untouched; classifying them is the caller's job.
    """

    def __init__(
        self,
        endpoint: str,
        timeout: float = 30.0,
        chunk_size: int = 64 * 1024,
        verify_ssl: bool = True,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.endpoint = endpoint.rstrip("/")
        self.chunk_size = chunk_size
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            verify=verify_ssl,
            follow_redirects=False,
        )

    async def request(
        self,
        method: str,
        path: str,
        query: Optional[Mapping[str, str]] = None,
        headers: Optional[Mapping[str, str]] = None,
        body: Optional[bytes] = None,
        stream: bool = False,
    ) -> TransportResponse:
        request = self._client.build_request(
            method,
            f"{self.endpoint}{path}",
            params=dict(query or {}),
            headers=dict(headers or {}),
            content=body,
        )
        try:
            response = await self._client.send(request, stream=stream)
        except httpx.TransportError as exc:
            raise TransportError(f"{method} {path} failed: {exc}") from exc

        if not stream:
            return TransportResponse(
                status_code=response.status_code,
                headers=dict(response.headers),
                content=response.content,
            )

        return TransportResponse(
            status_code=response.status_code,
            headers=dict(response.headers),
            stream=self._iter_body(response, method, path),
            closer=response.aclose,
        )

    async def _iter_body(
        self,
        response: httpx.Response,
        method: str,
        path: str,
    ) -> AsyncIterator[bytes]:
        # raw bytes: ranges and Content-Length refer to the stored encoding.
        # No chunker, so bytes received before a failure are still handed out
        try:
            async for data in response.aiter_raw():
                for start in range(0, len(data), self.chunk_size):
                    yield data[start:start + self.chunk_size]
        except httpx.TransportError as exc:
            raise TransportError(f"{method} {path} body interrupted: {exc}") from exc
        except httpx.StreamError as exc:
            raise TransportError(f"{method} {path} body unreadable: {exc}") from exc

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
