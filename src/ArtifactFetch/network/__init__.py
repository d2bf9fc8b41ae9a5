"""Network subsystem: authenticated HTTPX client and HTTP policy constants.

Modules:
- client: HTTPX client factory (scoped credentials, cancellation hooks, Hishel cache)
- policy: HTTP policy constants (pooling, body caps, headers, caching)

Example:
    >>> from ArtifactFetch.network import build_http_client
    >>> client = build_http_client(settings, credentials, token)
"""

from ArtifactFetch.network.client import (
    GitHubAuth,
    build_http_client,
    configure_transport,
    reset_transport,
)
from ArtifactFetch.network.policy import (
    DOWNLOAD_CHUNK_SIZE,
    DOWNLOAD_ERROR_BODY_LIMIT,
    ERROR_BODY_LIMIT,
)

__all__ = [
    "GitHubAuth",
    "build_http_client",
    "configure_transport",
    "reset_transport",
    "DOWNLOAD_CHUNK_SIZE",
    "DOWNLOAD_ERROR_BODY_LIMIT",
    "ERROR_BODY_LIMIT",
]
