"""Port definitions the storage core depends on.

The core never opens connections or signs requests itself. It is handed a
``TransportPort`` and, optionally, a ``RequestSigner`` at construction time.
"""
from dataclasses import dataclass, field
from typing import (
    AsyncIterator,
    Awaitable,
    Callable,
    Mapping,
    Optional,
    Protocol,
    runtime_checkable,
)


@dataclass
class TransportResponse:
    """One HTTP response as seen by the core.

    The body is either fully buffered in ``content`` or exposed as an async
    byte ``stream``; ``iter_bytes`` covers both. Header lookups are
    case-insensitive through ``header``.
    """
    status_code: int
    headers: Mapping[str, str] = field(default_factory=dict)
    content: bytes = b""
    stream: Optional[AsyncIterator[bytes]] = None
    closer: Optional[Callable[[], Awaitable[None]]] = None

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        lowered = name.lower()
        for k, v in self.headers.items():
            if k.lower() == lowered:
                return v
        return default

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        if self.stream is not None:
            async for chunk in self.stream:
                if chunk:
                    yield chunk
        elif self.content:
            yield self.content

    async def read(self) -> bytes:
        """Buffer the whole body."""
        if self.stream is None:
            return self.content
        chunks = [chunk async for chunk in self.iter_bytes()]
        self.content = b"".join(chunks)
        self.stream = None
        return self.content

    async def aclose(self) -> None:
        closer, self.closer = self.closer, None
        if closer is not None:
            await closer()


@runtime_checkable
class TransportPort(Protocol):
    """Performs one HTTP request.

    Implementations raise ``TransportError`` for network failures and
    timeouts, including failures while a streamed body is being consumed.
    Non-2xx statuses are returned, not raised.
    """

    async def request(
        self,
        method: str,
        path: str,
        query: Optional[Mapping[str, str]] = None,
        headers: Optional[Mapping[str, str]] = None,
        body: Optional[bytes] = None,
        stream: bool = False,
    ) -> TransportResponse:
        ...


@runtime_checkable
class RequestSigner(Protocol):
    """Produces authentication headers for a request."""

    def sign(
        self,
        method: str,
        path: str,
        query: Mapping[str, str],
        headers: Mapping[str, str],
        body: Optional[bytes],
    ) -> dict[str, str]:
        """Return the headers to merge into the request."""
        ...
