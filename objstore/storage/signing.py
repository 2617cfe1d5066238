"""Request signers handed to the client at construction.

The core only merges the headers a signer returns; it never builds
credentials itself.
"""
from typing import Callable, Mapping, Optional, Union
from urllib.parse import quote, urlencode

from .exceptions import ConfigurationError

# Headers SigV4 adds that the transport must send unchanged
_SIGV4_HEADERS = {
    "authorization",
    "x-amz-date",
    "x-amz-content-sha256",
    "x-amz-security-token",
}


class BearerTokenSigner:
    """Adds ``Authorization: Bearer <token>`` (IAM-style token auth).

    ``token`` may be a string or a zero-argument callable, so a token
    manager that refreshes expiring tokens can be plugged in.
    """

    def __init__(
        self,
        token: Union[str, Callable[[], str]],
        extra_headers: Optional[Mapping[str, str]] = None,
    ):
        if not token:
            raise ConfigurationError("Bearer token signer requires a token")
        self._token = token
        self._extra = dict(extra_headers or {})

    def sign(self, method, path, query, headers, body) -> dict[str, str]:
        token = self._token() if callable(self._token) else self._token
        return {**self._extra, "Authorization": f"Bearer {token}"}


class SigV4Signer:
    """AWS Signature Version 4 through botocore."""

    def __init__(
        self,
        endpoint: str,
        access_key_id: str,
        secret_access_key: str,
        region: str = "us-east-1",
        session_token: Optional[str] = None,
        service: str = "s3",
    ):
        if not endpoint:
            raise ConfigurationError("SigV4 signing requires an endpoint")
        if not access_key_id or not secret_access_key:
            raise ConfigurationError("SigV4 signing requires access key id and secret")
        try:
            from botocore.auth import S3SigV4Auth
            from botocore.credentials import Credentials
        except ImportError as exc:
            raise ConfigurationError("botocore is required for SigV4 signing") from exc

        self.endpoint = endpoint.rstrip("/")
        self.region = region
        self._auth = S3SigV4Auth(
            Credentials(access_key_id, secret_access_key, session_token),
            service,
            region,
        )

    def sign(self, method, path, query, headers, body) -> dict[str, str]:
        from botocore.awsrequest import AWSRequest

        url = f"{self.endpoint}{path}"
        if query:
            url = f"{url}?{urlencode(query, quote_via=quote)}"
        request = AWSRequest(
            method=method,
            url=url,
            data=body or b"",
            headers=dict(headers),
        )
        self._auth.add_auth(request)
        return {
            name: value
            for name, value in request.headers.items()
            if name.lower() in _SIGV4_HEADERS
        }
