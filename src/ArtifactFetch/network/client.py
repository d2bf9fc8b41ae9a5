# === NAVMAP v1 ===
# {
#   "module": "ArtifactFetch.network.client",
#   "purpose": "HTTPX client factory with scoped credentials, cancellation hooks, and optional Hishel caching.",
#   "sections": [
#     {"id": "github-auth", "name": "GitHubAuth", "anchor": "class-githubauth", "kind": "class"},
#     {"id": "api-host-router", "name": "_ApiHostRouter", "anchor": "class-apihostrouter", "kind": "class"},
#     {"id": "configure-transport", "name": "configure_transport", "anchor": "function-configure-transport", "kind": "function"},
#     {"id": "reset-transport", "name": "reset_transport", "anchor": "function-reset-transport", "kind": "function"},
#     {"id": "build-http-client", "name": "build_http_client", "anchor": "function-build-http-client", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""HTTPX client factory for the Actions REST API.

Key design:
- **Scoped credentials**: :class:`GitHubAuth` only decorates requests bound for
  the API host; pre-signed archive URLs on blob storage never see the token.
- **Cancellation**: the request event hook checks the shared
  :class:`~ArtifactFetch.cancellation.CancellationToken` before every request,
  so cancellation is observed at the next network boundary.
- **Uniform timeouts**: one :class:`httpx.Timeout` built from settings applies to
  every call.
- **Caching**: when enabled, API requests go through a Hishel ``CacheTransport``
  so listings are revalidated with ETags; archive downloads bypass it.
- **Redirects**: disabled; the download-URL endpoint answers with a redirect
  whose ``Location`` is read explicitly.
"""

from __future__ import annotations

import base64
import logging
import ssl
import threading
import time
from typing import Generator, Optional

import certifi
import hishel
import httpx

from .. import __version__
from ..cancellation import CancellationToken
from ..errors import FilesystemError
from ..settings import Credentials, FetchSettings
from .policy import (
    ACCEPT_HEADER,
    API_VERSION_HEADER,
    CACHE_STORAGE_TTL_SECONDS,
    CACHEABLE_METHODS,
    CACHEABLE_STATUS_CODES,
    KEEPALIVE_EXPIRY,
    MAX_CONNECTIONS,
    MAX_KEEPALIVE_CONNECTIONS,
    USER_AGENT_TEMPLATE,
)

logger = logging.getLogger("ArtifactFetch.network")


# ============================================================================
# Global Transport Override
# ============================================================================

_TRANSPORT_LOCK = threading.RLock()
_TRANSPORT_OVERRIDE: Optional[httpx.BaseTransport] = None


def configure_transport(transport: Optional[httpx.BaseTransport]) -> None:
    """Install ``transport`` for every client built afterwards (tests only)."""

    global _TRANSPORT_OVERRIDE
    with _TRANSPORT_LOCK:
        _TRANSPORT_OVERRIDE = transport


def reset_transport() -> None:
    configure_transport(None)


def _current_override() -> Optional[httpx.BaseTransport]:
    with _TRANSPORT_LOCK:
        return _TRANSPORT_OVERRIDE


# ============================================================================
# Authentication
# ============================================================================


class GitHubAuth(httpx.Auth):
    """Attach GitHub credentials to requests for the API host only.

    Basic auth is used when a user name is configured (the token acts as the
    password), otherwise the token is sent as a bearer token.
    """

    def __init__(self, credentials: Credentials, api_host: str) -> None:
        self._credentials = credentials
        self._api_host = api_host.lower()

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        if self._credentials.has_token and request.url.host.lower() == self._api_host:
            token = self._credentials.token.get_secret_value()  # type: ignore[union-attr]
            if self._credentials.user:
                userpass = f"{self._credentials.user}:{token}".encode("utf-8")
                request.headers["Authorization"] = "Basic " + base64.b64encode(userpass).decode(
                    "ascii"
                )
            else:
                request.headers["Authorization"] = f"Bearer {token}"
        yield request


# ============================================================================
# Transport Composition
# ============================================================================


class _ApiHostRouter(httpx.BaseTransport):
    """Send API-host requests through the cache and everything else directly."""

    def __init__(
        self, api_host: str, cached: httpx.BaseTransport, direct: httpx.BaseTransport
    ) -> None:
        self._api_host = api_host.lower()
        self._cached = cached
        self._direct = direct

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        if request.url.host.lower() == self._api_host:
            return self._cached.handle_request(request)
        return self._direct.handle_request(request)

    def close(self) -> None:
        # the cache transport owns ``direct`` and closes it
        self._cached.close()


def _build_ssl_context() -> ssl.SSLContext:
    context = ssl.create_default_context()
    context.load_verify_locations(certifi.where())
    return context


def _timeout_for(settings: FetchSettings) -> httpx.Timeout:
    return httpx.Timeout(settings.timeout_sec, connect=settings.connect_timeout_sec)


def _limits() -> httpx.Limits:
    return httpx.Limits(
        max_connections=MAX_CONNECTIONS,
        max_keepalive_connections=MAX_KEEPALIVE_CONNECTIONS,
        keepalive_expiry=KEEPALIVE_EXPIRY,
    )


def _cache_transport(settings: FetchSettings, inner: httpx.BaseTransport) -> httpx.BaseTransport:
    cache_dir = settings.resolved_cache_dir()
    try:
        cache_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise FilesystemError(f"error creating http cache dir: {exc}", path=cache_dir) from exc
    controller = hishel.Controller(
        cacheable_methods=CACHEABLE_METHODS,
        cacheable_status_codes=CACHEABLE_STATUS_CODES,
        allow_heuristics=False,
        always_revalidate=True,
        cache_private=True,
    )
    storage = hishel.FileStorage(base_path=cache_dir, ttl=CACHE_STORAGE_TTL_SECONDS)
    logger.debug("http cache enabled", extra={"stage": "http", "cache_dir": str(cache_dir)})
    return hishel.CacheTransport(transport=inner, storage=storage, controller=controller)


# ============================================================================
# Event Hooks
# ============================================================================


def _request_hook(cancel_token: CancellationToken):
    def on_request(request: httpx.Request) -> None:
        cancel_token.raise_if_cancelled()
        request.extensions["artifact_fetch_start"] = time.perf_counter()

    return on_request


def _response_hook(response: httpx.Response) -> None:
    start = response.request.extensions.get("artifact_fetch_start")
    elapsed_ms = None
    if isinstance(start, float):
        elapsed_ms = round((time.perf_counter() - start) * 1000, 1)
    logger.debug(
        "http response",
        extra={
            "stage": "http",
            "method": response.request.method,
            "url": str(response.request.url.copy_with(query=None)),
            "status": response.status_code,
            "elapsed_ms": elapsed_ms,
            "from_cache": bool(response.extensions.get("from_cache")),
        },
    )


# ============================================================================
# Public API
# ============================================================================


def build_http_client(
    settings: FetchSettings,
    credentials: Credentials,
    cancel_token: CancellationToken,
    *,
    transport: Optional[httpx.BaseTransport] = None,
) -> httpx.Client:
    """Create the authenticated client shared by every component.

    Args:
        settings: Resolved configuration (timeouts, API URL, cache toggle).
        credentials: Token and optional user name read from the environment.
        cancel_token: Token checked before each request is sent.
        transport: Explicit transport; defaults to the override installed by
            :func:`configure_transport` or a real ``httpx.HTTPTransport``.

    Returns:
        A configured :class:`httpx.Client`; the caller owns closing it.
    """

    api_host = httpx.URL(settings.api_url).host
    base = transport or _current_override()
    if base is None:
        base = httpx.HTTPTransport(
            retries=settings.connect_retries, verify=_build_ssl_context()
        )
    if settings.http_cache:
        base = _ApiHostRouter(api_host, _cache_transport(settings, base), base)

    if not credentials.has_token:
        logger.warning(
            "no GITHUB_TOKEN set; artifact downloads will likely be rejected",
            extra={"stage": "http"},
        )

    return httpx.Client(
        transport=base,
        timeout=_timeout_for(settings),
        limits=_limits(),
        follow_redirects=False,
        auth=GitHubAuth(credentials, api_host),
        headers={
            "Accept": ACCEPT_HEADER,
            "X-GitHub-Api-Version": API_VERSION_HEADER,
            "User-Agent": USER_AGENT_TEMPLATE.format(version=__version__),
        },
        event_hooks={"request": [_request_hook(cancel_token)], "response": [_response_hook]},
    )


__all__ = [
    "GitHubAuth",
    "build_http_client",
    "configure_transport",
    "reset_transport",
]
