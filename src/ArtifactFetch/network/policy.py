# === NAVMAP v1 ===
# {
#   "module": "ArtifactFetch.network.policy",
#   "purpose": "HTTP policy constants and defaults.",
#   "sections": []
# }
# === /NAVMAP ===

"""HTTP policy constants and defaults.

Timeouts themselves come from :class:`~ArtifactFetch.settings.FetchSettings`
so that every call (listing, lookup, manifest, download) shares one budget.
"""

# ============================================================================
# Connection Pooling
# ============================================================================

#: A single logical thread of control issues requests; a small pool suffices.
MAX_CONNECTIONS = 10

MAX_KEEPALIVE_CONNECTIONS = 5

#: Seconds an idle connection stays open
KEEPALIVE_EXPIRY = 30.0


# ============================================================================
# Response Bodies
# ============================================================================

#: Cap for error bodies decoded from regular API calls
ERROR_BODY_LIMIT = 16 * 1024

#: Cap for error bodies returned by the download-URL endpoint
DOWNLOAD_ERROR_BODY_LIMIT = 32 * 1024

#: Chunk size used when streaming artifact archives to disk
DOWNLOAD_CHUNK_SIZE = 1 << 16


# ============================================================================
# Request Headers
# ============================================================================

ACCEPT_HEADER = "application/vnd.github+json"

API_VERSION_HEADER = "2022-11-28"

USER_AGENT_TEMPLATE = "artifact-fetch/{version}"


# ============================================================================
# Hishel Cache Settings
# ============================================================================

#: Only API listings are worth revalidating; archives are never cached.
CACHEABLE_METHODS = ["GET"]

CACHEABLE_STATUS_CODES = [200]

#: Cache storage TTL (garbage collection interval, not freshness)
CACHE_STORAGE_TTL_SECONDS = 7 * 24 * 3600


__all__ = [
    "MAX_CONNECTIONS",
    "MAX_KEEPALIVE_CONNECTIONS",
    "KEEPALIVE_EXPIRY",
    "ERROR_BODY_LIMIT",
    "DOWNLOAD_ERROR_BODY_LIMIT",
    "DOWNLOAD_CHUNK_SIZE",
    "ACCEPT_HEADER",
    "API_VERSION_HEADER",
    "USER_AGENT_TEMPLATE",
    "CACHEABLE_METHODS",
    "CACHEABLE_STATUS_CODES",
    "CACHE_STORAGE_TTL_SECONDS",
]
