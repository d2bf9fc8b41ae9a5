"""Testing utilities for exercising the artifact fetcher without network access.

:class:`FakeActionsAPI` emulates the runs listing, single-run lookup, artifact
manifest and download-URL endpoints of the Actions REST API, plus the blob host
the download URLs redirect to.  It builds an :class:`httpx.MockTransport` and
records every request it answers.
"""

from __future__ import annotations

import contextlib
import io
import json
import stat
import zipfile
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

import httpx

from .network import configure_transport, reset_transport
from .settings import DEFAULT_API_URL

__all__ = [
    "BLOB_URL",
    "FakeActionsAPI",
    "RequestRecord",
    "ResponseSpec",
    "make_zip",
    "use_mock_transport",
]

BLOB_URL = "https://blobs.actions.test"


@contextlib.contextmanager
def use_mock_transport(transport: httpx.BaseTransport) -> Iterator[httpx.BaseTransport]:
    """Route every client built while the context is active through ``transport``."""

    configure_transport(transport)
    try:
        yield transport
    finally:
        reset_transport()


def make_zip(
    entries: Mapping[str, Optional[bytes]],
    *,
    modes: Optional[Mapping[str, int]] = None,
    symlinks: Optional[Mapping[str, str]] = None,
) -> bytes:
    """Build an in-memory zip archive.

    Args:
        entries: Member name to content; ``None`` (or a name ending in ``/``)
            creates a directory entry.
        modes: Optional permission bits per member, stored as unix attributes.
        symlinks: Member name to link target, stored as unix symlink entries.
    """

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for name, content in entries.items():
            is_dir = content is None or name.endswith("/")
            member = name if not is_dir or name.endswith("/") else f"{name}/"
            info = zipfile.ZipInfo(member)
            info.create_system = 3
            mode = (modes or {}).get(name, 0o755 if is_dir else 0o644)
            kind = stat.S_IFDIR if is_dir else stat.S_IFREG
            info.external_attr = (kind | mode) << 16
            if is_dir:
                info.external_attr |= 0x10
                archive.writestr(info, b"")
            else:
                info.compress_type = zipfile.ZIP_DEFLATED
                archive.writestr(info, content or b"")
        for name, target in (symlinks or {}).items():
            info = zipfile.ZipInfo(name)
            info.create_system = 3
            info.external_attr = (stat.S_IFLNK | 0o777) << 16
            archive.writestr(info, target.encode("utf-8"))
    return buffer.getvalue()


@dataclass
class ResponseSpec:
    """Canned response returned instead of the emulated endpoint."""

    status: int = 200
    body: Union[bytes, str, Mapping[str, object]] = b""
    headers: Mapping[str, str] = field(default_factory=dict)

    def serialise_body(self) -> bytes:
        if isinstance(self.body, bytes):
            return self.body
        if isinstance(self.body, str):
            return self.body.encode("utf-8")
        return json.dumps(self.body).encode("utf-8")


@dataclass
class RequestRecord:
    """Captured HTTP request answered by :class:`FakeActionsAPI`."""

    method: str
    url: str
    path: str
    params: Dict[str, str]
    headers: Dict[str, str]

    @property
    def host(self) -> str:
        return httpx.URL(self.url).host


class FakeActionsAPI:
    """In-memory stand-in for the Actions REST API of one repository."""

    def __init__(
        self,
        repo: str = "octo/widgets",
        *,
        api_url: str = DEFAULT_API_URL,
        blob_url: str = BLOB_URL,
        chunk_size: int = 1024,
    ) -> None:
        self.repo = repo
        self.api_url = api_url.rstrip("/")
        self.blob_url = blob_url.rstrip("/")
        self.chunk_size = chunk_size
        self.total_count_override: Optional[int] = None
        self.on_request: Optional[Callable[[httpx.Request], None]] = None
        self.on_blob_chunk: Optional[Callable[[int], None]] = None
        self._runs: Dict[int, Dict[str, object]] = {}
        self._artifacts: Dict[int, List[Dict[str, object]]] = {}
        self._blobs: Dict[int, bytes] = {}
        self._overrides: Dict[Tuple[str, str], ResponseSpec] = {}
        self._next_artifact_id = 1
        self._requests: List[RequestRecord] = []

    # --- Fixture helpers ------------------------------------------------------

    @property
    def repo_path(self) -> str:
        return f"/repos/{self.repo}"

    def add_run(
        self,
        run_id: int,
        *,
        branch: Optional[str] = "main",
        event: str = "push",
        commit_id: Optional[str] = None,
        message: str = "",
    ) -> Dict[str, object]:
        run: Dict[str, object] = {
            "id": run_id,
            "head_branch": branch,
            "event": event,
            "artifacts_url": f"{self.api_url}{self.repo_path}/actions/runs/{run_id}/artifacts",
            "head_commit": {"id": commit_id or f"{run_id:040x}", "message": message},
        }
        self._runs[run_id] = run
        self._artifacts.setdefault(run_id, [])
        return run

    def add_artifact(
        self,
        run_id: int,
        name: str,
        *,
        content: Optional[bytes] = None,
        files: Optional[Mapping[str, Optional[bytes]]] = None,
        expired: bool = False,
        size_in_bytes: Optional[int] = None,
    ) -> Dict[str, object]:
        """Attach an artifact to ``run_id``; ``files`` is zipped when ``content`` is not given."""

        if run_id not in self._runs:
            self.add_run(run_id)
        artifact_id = self._next_artifact_id
        self._next_artifact_id += 1
        blob = content if content is not None else make_zip(files or {"file.txt": b""})
        artifact: Dict[str, object] = {
            "id": artifact_id,
            "name": name,
            "archive_download_url": (
                f"{self.api_url}{self.repo_path}/actions/artifacts/{artifact_id}/zip"
            ),
            "expired": expired,
            "size_in_bytes": len(blob) if size_in_bytes is None else size_in_bytes,
        }
        self._artifacts[run_id].append(artifact)
        self._blobs[artifact_id] = blob
        return artifact

    def respond(self, path: str, spec: ResponseSpec, *, host: Optional[str] = None) -> None:
        """Answer every request for ``path`` on ``host`` (the API host by default) with ``spec``."""

        self._overrides[(host or httpx.URL(self.api_url).host, path)] = spec

    def fail(self, path: str, status: int, message: str = "") -> None:
        body: Dict[str, object] = {"message": message} if message else {}
        self.respond(path, ResponseSpec(status=status, body=body))

    @property
    def requests(self) -> List[RequestRecord]:
        return list(self._requests)

    def requests_for(self, suffix: str) -> List[RequestRecord]:
        return [record for record in self._requests if record.path.endswith(suffix)]

    # --- Transport --------------------------------------------------------------

    def build_transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self._requests.append(
            RequestRecord(
                method=request.method,
                url=str(request.url),
                path=request.url.path,
                params=dict(request.url.params),
                headers=dict(request.headers),
            )
        )
        if self.on_request is not None:
            self.on_request(request)

        override = self._overrides.get((request.url.host, request.url.path))
        if override is not None:
            return httpx.Response(
                override.status,
                headers=dict(override.headers),
                content=override.serialise_body(),
                request=request,
            )
        if request.url.host == httpx.URL(self.blob_url).host:
            return self._serve_blob(request)
        if request.url.host == httpx.URL(self.api_url).host:
            return self._serve_api(request)
        return self._not_found(request)

    def _not_found(self, request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"message": "Not Found"}, request=request)

    def _serve_api(self, request: httpx.Request) -> httpx.Response:
        prefix = self.repo_path + "/actions/"
        path = request.url.path
        if not path.startswith(prefix):
            return self._not_found(request)
        parts = path[len(prefix) :].split("/")

        if parts == ["runs"]:
            return self._list_runs(request)
        if len(parts) == 2 and parts[0] == "runs" and parts[1].isdigit():
            run = self._runs.get(int(parts[1]))
            if run is None:
                return self._not_found(request)
            return httpx.Response(200, json=run, request=request)
        if len(parts) == 3 and parts[0] == "runs" and parts[2] == "artifacts":
            run_id = int(parts[1]) if parts[1].isdigit() else -1
            if run_id not in self._runs:
                return self._not_found(request)
            artifacts = self._artifacts[run_id]
            payload = {"total_count": len(artifacts), "artifacts": artifacts}
            return httpx.Response(200, json=payload, request=request)
        if len(parts) == 3 and parts[0] == "artifacts" and parts[2] == "zip":
            artifact_id = int(parts[1]) if parts[1].isdigit() else -1
            if artifact_id not in self._blobs:
                return self._not_found(request)
            location = f"{self.blob_url}/artifacts/{artifact_id}.zip?sig=signed"
            return httpx.Response(302, headers={"Location": location}, request=request)
        return self._not_found(request)

    def _list_runs(self, request: httpx.Request) -> httpx.Response:
        params = request.url.params
        page = int(params.get("page", "1"))
        per_page = int(params.get("per_page", "30"))
        runs = [self._runs[run_id] for run_id in sorted(self._runs, reverse=True)]
        if params.get("branch"):
            runs = [run for run in runs if run["head_branch"] == params["branch"]]
        if params.get("event"):
            runs = [run for run in runs if run["event"] == params["event"]]
        total = len(runs) if self.total_count_override is None else self.total_count_override
        start = (page - 1) * per_page
        payload = {"total_count": total, "workflow_runs": runs[start : start + per_page]}
        return httpx.Response(200, json=payload, request=request)

    def _serve_blob(self, request: httpx.Request) -> httpx.Response:
        name = request.url.path.rsplit("/", 1)[-1]
        stem = name[: -len(".zip")] if name.endswith(".zip") else ""
        if not stem.isdigit() or int(stem) not in self._blobs:
            return httpx.Response(404, content=b"BlobNotFound", request=request)
        blob = self._blobs[int(stem)]

        def chunks() -> Iterable[bytes]:
            for index, offset in enumerate(range(0, len(blob), self.chunk_size)):
                if self.on_blob_chunk is not None:
                    self.on_blob_chunk(index)
                yield blob[offset : offset + self.chunk_size]

        return httpx.Response(
            200,
            headers={"Content-Type": "application/zip"},
            content=chunks(),
            request=request,
        )
