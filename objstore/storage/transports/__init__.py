"""Transport Port implementations."""
from .httpx_transport import HttpxTransport

__all__ = ["HttpxTransport"]
