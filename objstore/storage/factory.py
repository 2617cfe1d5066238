"""Client factory with a signer registry."""
from typing import Callable, Optional

from pydantic import ValidationError as PydanticValidationError

from objstore.core.logging_config import get_logger
from .base import RequestSigner, TransportPort
from .client import ObjectStorageClient
from .config import ObjectStoreConfig, SignerType
from .exceptions import ConfigurationError
from .signing import BearerTokenSigner, SigV4Signer
from .transports import HttpxTransport

logger = get_logger(__name__)

SignerBuilder = Callable[[ObjectStoreConfig], Optional[RequestSigner]]

_signer_registry: dict[str, SignerBuilder] = {}


def register_signer(signer_type: str, builder: SignerBuilder) -> None:
    """Register a signer builder under ``signer_type``."""
    _signer_registry[signer_type] = builder
    logger.debug("Registered request signer", signer=signer_type)


def _build_sigv4(config: ObjectStoreConfig) -> RequestSigner:
    return SigV4Signer(
        endpoint=config.endpoint or "",
        access_key_id=config.access_key_id or "",
        secret_access_key=config.secret_access_key or "",
        region=config.region,
        session_token=config.session_token,
    )


def _build_bearer(config: ObjectStoreConfig) -> RequestSigner:
    return BearerTokenSigner(config.bearer_token or "")


register_signer(SignerType.NONE.value, lambda config: None)
register_signer(SignerType.BEARER.value, _build_bearer)
register_signer(SignerType.SIGV4.value, _build_sigv4)


def build_signer(config: ObjectStoreConfig) -> Optional[RequestSigner]:
    signer_type = SignerType(config.signer).value
    if signer_type not in _signer_registry:
        raise ConfigurationError(
            f"Request signer '{signer_type}' not registered. "
            f"Available: {sorted(_signer_registry)}"
        )
    return _signer_registry[signer_type](config)


def create_client(
    config: Optional[ObjectStoreConfig] = None,
    transport: Optional[TransportPort] = None,
    **overrides,
) -> ObjectStorageClient:
    """Build a client from configuration.

    Args:
        config: Client configuration; assembled from settings when omitted
        transport: Transport to use instead of the httpx one
        **overrides: Field overrides applied on top of ``config``

    Raises:
        ConfigurationError: Invalid configuration or missing endpoint
    """
    if config is None:
        from . import get_objstore_config

        config = get_objstore_config()
    if overrides:
        try:
            config = ObjectStoreConfig(**{**config.model_dump(), **overrides})
        except PydanticValidationError as exc:
            raise ConfigurationError(f"Invalid object store configuration: {exc}") from exc

    if transport is None:
        if not config.endpoint:
            raise ConfigurationError("An endpoint is required to build the HTTP transport")
        transport = HttpxTransport(
            config.endpoint,
            timeout=config.timeout,
            chunk_size=config.read_chunk_size,
        )

    client = ObjectStorageClient(transport, build_signer(config), config)
    logger.info(
        "Created object storage client",
        endpoint=config.endpoint,
        signer=SignerType(config.signer).value,
    )
    return client
