# === NAVMAP v1 ===
# {
#   "module": "ArtifactFetch.api",
#   "purpose": "Thin adapter over the GitHub Actions REST endpoints used by the fetcher",
#   "sections": [
#     {"id": "helpers", "name": "Response helpers", "anchor": "HLP", "kind": "helpers"},
#     {"id": "client", "name": "ActionsClient", "anchor": "CLI", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Thin adapter over the GitHub Actions REST endpoints.

Every method translates failures into the package hierarchy: network problems
become :class:`~ArtifactFetch.errors.TransportError`, error statuses become
:class:`~ArtifactFetch.errors.RemoteError` carrying the server's ``message`` and
malformed payloads become :class:`~ArtifactFetch.errors.DecodeError`.  Error
bodies are read through a size cap so a huge or malformed error page cannot
exhaust memory.
"""

from __future__ import annotations

import contextlib
import json
import logging
from typing import Any, Dict, Iterator, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from .errors import DecodeError, RemoteError, TransportError
from .models import ArtifactManifest, RepoRef, WorkflowRun, WorkflowRunPage
from .network.policy import DOWNLOAD_ERROR_BODY_LIMIT, ERROR_BODY_LIMIT
from .settings import DEFAULT_API_URL

__all__ = ["ActionsClient", "check_response", "read_capped", "server_message"]

LOGGER = logging.getLogger("ArtifactFetch.api")

_ModelT = TypeVar("_ModelT", bound=BaseModel)

_REDIRECT_STATUSES = {301, 302, 303, 307, 308}


# --- Response helpers ----------------------------------------------------------


def read_capped(response: httpx.Response, limit: int) -> bytes:
    """Read at most ``limit`` bytes from a streamed ``response``."""

    buffer = bytearray()
    for chunk in response.iter_bytes():
        remaining = limit - len(buffer)
        buffer.extend(chunk[:remaining])
        if len(buffer) >= limit:
            break
    return bytes(buffer)


def server_message(body: bytes) -> str:
    """Extract the ``message`` field GitHub puts in error payloads, if any."""

    try:
        payload = json.loads(body.decode("utf-8", errors="replace"))
    except ValueError:
        return ""
    if isinstance(payload, dict) and isinstance(payload.get("message"), str):
        return payload["message"]
    return ""


def check_response(response: httpx.Response, *, limit: int = ERROR_BODY_LIMIT) -> None:
    """Raise :class:`RemoteError` when ``response`` carries an error status."""

    if response.status_code < 400:
        return
    message = server_message(read_capped(response, limit))
    raise RemoteError(
        f"StatusCode: {response.status_code}, Message: {message}",
        status_code=response.status_code,
        server_message=message or None,
    )


# --- Client ----------------------------------------------------------------------


class ActionsClient:
    """Calls the workflow-run and artifact endpoints through an authenticated client."""

    def __init__(self, http: httpx.Client, api_url: str = DEFAULT_API_URL) -> None:
        self._http = http
        self._api_url = api_url.rstrip("/")

    def _repo_url(self, repo: RepoRef, path: str) -> str:
        return f"{self._api_url}/repos/{repo.owner}/{repo.name}/{path.lstrip('/')}"

    @contextlib.contextmanager
    def stream(
        self,
        url: str,
        *,
        what: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> Iterator[httpx.Response]:
        """Open a streamed GET, raising package errors for failures.

        Transport errors raised while the caller iterates the body are
        translated as well.
        """

        try:
            with self._http.stream("GET", url, params=params, follow_redirects=True) as response:
                check_response(response)
                yield response
        except httpx.HTTPError as exc:
            raise TransportError(f"error doing {what} request: {exc}") from exc

    def _get_model(
        self,
        url: str,
        model: Type[_ModelT],
        *,
        what: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> _ModelT:
        with self.stream(url, what=what, params=params) as response:
            body = response.read()
        try:
            payload = json.loads(body)
        except ValueError as exc:
            raise DecodeError(f"malformed {what} payload from {url}: {exc}") from exc
        try:
            return model.model_validate(payload)
        except PydanticValidationError as exc:
            raise DecodeError(f"unexpected {what} payload from {url}: {exc}") from exc

    def list_workflow_runs(
        self,
        repo: RepoRef,
        *,
        page: int,
        per_page: int,
        branch: Optional[str] = None,
        event: Optional[str] = None,
    ) -> WorkflowRunPage:
        params: Dict[str, Any] = {"page": page, "per_page": per_page}
        if branch:
            params["branch"] = branch
        if event:
            params["event"] = event
        return self._get_model(
            self._repo_url(repo, "actions/runs"),
            WorkflowRunPage,
            what="list workflow runs",
            params=params,
        )

    def get_workflow_run(self, repo: RepoRef, run_id: int) -> WorkflowRun:
        return self._get_model(
            self._repo_url(repo, f"actions/runs/{run_id}"),
            WorkflowRun,
            what="get workflow run",
        )

    def get_artifact_manifest(self, artifacts_url: str) -> ArtifactManifest:
        return self._get_model(artifacts_url, ArtifactManifest, what="artifacts")

    def get_artifact_download_url(self, repo: RepoRef, artifact_id: int) -> str:
        """Resolve the short-lived archive URL the API redirects to."""

        url = self._repo_url(repo, f"actions/artifacts/{artifact_id}/zip")
        try:
            with self._http.stream("GET", url, follow_redirects=False) as response:
                if response.status_code >= 400:
                    message = server_message(read_capped(response, DOWNLOAD_ERROR_BODY_LIMIT))
                    LOGGER.debug(
                        "download url request failed",
                        extra={
                            "stage": "download",
                            "repo": str(repo),
                            "artifact_id": artifact_id,
                            "status": response.status_code,
                        },
                    )
                    raise RemoteError(
                        f"error getting url to download artifact: {message}: "
                        f"StatusCode: {response.status_code}",
                        status_code=response.status_code,
                        server_message=message or None,
                    )
                location = response.headers.get("Location")
                if response.status_code not in _REDIRECT_STATUSES or not location:
                    raise RemoteError(
                        "error getting url to download artifact: response carried no location "
                        f"(StatusCode: {response.status_code})",
                        status_code=response.status_code,
                    )
                return str(response.url.join(location))
        except httpx.HTTPError as exc:
            raise TransportError(f"error getting url to download artifact: {exc}") from exc
