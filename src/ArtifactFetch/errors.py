"""Exception hierarchy shared across run enumeration, artifact listing and download.

The retrieval pipeline spans configuration parsing, HTTP calls against the
Actions REST API, streaming downloads and zip extraction.  This module groups
the failure modes into a small hierarchy so the CLI can react to high-level
categories (fatal configuration problems vs. errors that abort the enumeration)
while callers still have access to the status code, server message or file path
that explains a failure.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

__all__ = [
    "ArtifactFetchError",
    "ConfigError",
    "TransportError",
    "OperationCancelled",
    "RemoteError",
    "DecodeError",
    "FilesystemError",
]


class ArtifactFetchError(RuntimeError):
    """Base exception for artifact retrieval failures."""


class ConfigError(ArtifactFetchError):
    """Raised when a required setting is missing or invalid."""


class TransportError(ArtifactFetchError):
    """Raised when a request fails at the network level."""


class OperationCancelled(TransportError):
    """Raised at the next network boundary once cancellation was requested."""


class RemoteError(ArtifactFetchError):
    """Raised when the remote API answers with an error status."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        server_message: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.server_message = server_message


class DecodeError(ArtifactFetchError):
    """Raised when a JSON payload or zip archive cannot be decoded."""


class FilesystemError(ArtifactFetchError):
    """Raised when creating, writing or deleting local files fails."""

    def __init__(self, message: str, *, path: Optional[Union[str, Path]] = None) -> None:
        super().__init__(message)
        self.path = Path(path) if path is not None else None
# === NAVMAP v1 ===
# {
#   "module": "ArtifactFetch.errors",
#   "purpose": "Define the exception hierarchy used across enumeration, listing, and download",
#   "sections": [
#     {"id": "base", "name": "Base Exceptions", "anchor": "BAS", "kind": "api"},
#     {"id": "configuration", "name": "Configuration Errors", "anchor": "CFG", "kind": "api"},
#     {"id": "network", "name": "Transport & Remote Errors", "anchor": "NET", "kind": "api"},
#     {"id": "payload", "name": "Decode & Filesystem Errors", "anchor": "PAY", "kind": "api"}
#   ]
# }
# === /NAVMAP ===
