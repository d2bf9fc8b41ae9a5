# === NAVMAP v1 ===
# {
#   "module": "ArtifactFetch.pipeline",
#   "purpose": "Drive enumeration, listing, filtering, and downloads for one invocation",
#   "sections": [
#     {"id": "result", "name": "PipelineResult", "anchor": "class-pipelineresult", "kind": "class"},
#     {"id": "metadata", "name": "write_run_metadata", "anchor": "function-write-run-metadata", "kind": "function"},
#     {"id": "process-run", "name": "process_run", "anchor": "function-process-run", "kind": "function"},
#     {"id": "run-pipeline", "name": "run_pipeline", "anchor": "function-run-pipeline", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Control flow of one fetch invocation.

Runs are processed strictly one at a time and artifacts one at a time within a
run.  Any error aborts the whole enumeration (fail-fast); the checkpoint owned
by the caller keeps the progress made before the failure.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from .api import ActionsClient
from .artifacts import ArtifactFilter, list_artifacts, select_artifacts
from .cancellation import CancellationToken
from .download import DownloadedArtifact, download_artifact
from .enumerator import Checkpoint, fetch_single_run, iter_workflow_runs
from .errors import FilesystemError
from .models import RepoRef, WorkflowRun
from .settings import FetchSettings

__all__ = ["PipelineResult", "write_run_metadata", "process_run", "run_pipeline"]

LOGGER = logging.getLogger("ArtifactFetch.pipeline")

_METADATA_FILE_MODE = 0o600
_RUN_DIR_MODE = 0o700


@dataclass
class PipelineResult:
    """Counters and outputs collected while processing runs."""

    runs_visited: int = 0
    downloads: List[DownloadedArtifact] = field(default_factory=list)
    listed_urls: List[str] = field(default_factory=list)


def _write_text(path: Path, text: str) -> None:
    try:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, _METADATA_FILE_MODE)
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
    except OSError as exc:
        raise FilesystemError(f"error writing run metadata: {exc}", path=path) from exc


def write_run_metadata(run: WorkflowRun, run_dir: Path) -> None:
    """Write the ``commit``, ``event`` and ``message`` side-car files of ``run``."""

    try:
        run_dir.mkdir(mode=_RUN_DIR_MODE, parents=True, exist_ok=True)
    except OSError as exc:
        raise FilesystemError(f"error creating run dir: {exc}", path=run_dir) from exc
    _write_text(run_dir / "commit", run.commit_id)
    _write_text(run_dir / "event", run.event)
    _write_text(run_dir / "message", run.commit_message)


def process_run(
    client: ActionsClient,
    repo: RepoRef,
    run: WorkflowRun,
    *,
    artifact_filter: ArtifactFilter,
    output: Optional[Path],
    result: PipelineResult,
    cancel_token: Optional[CancellationToken] = None,
    emit_url: Callable[[str], None] = print,
) -> None:
    """List, filter and materialise the artifacts of one run.

    With ``output`` unset, the download URL of each selected artifact is passed
    to ``emit_url`` instead of being downloaded.  Side-car files are written
    just before the first selected artifact is downloaded.
    """

    manifest = list_artifacts(client, run)
    run_dir = output / str(run.id) if output is not None else None
    metadata_written = False

    for artifact in select_artifacts(manifest.artifacts, artifact_filter):
        if run_dir is None:
            emit_url(artifact.archive_download_url)
            result.listed_urls.append(artifact.archive_download_url)
            continue
        if not metadata_written:
            write_run_metadata(run, run_dir)
            metadata_written = True
        downloaded = download_artifact(
            client,
            repo,
            artifact,
            run_dir,
            unpack=artifact_filter.unpack,
            cancel_token=cancel_token,
        )
        result.downloads.append(downloaded)


def _runs_for(
    client: ActionsClient,
    settings: FetchSettings,
    checkpoint: Checkpoint,
    cancel_token: Optional[CancellationToken],
) -> Iterable[WorkflowRun]:
    repo = settings.repo_ref
    if settings.run_id is not None:
        return [fetch_single_run(client, repo, settings.run_id, checkpoint=checkpoint)]
    return iter_workflow_runs(
        client,
        repo,
        since=settings.since_run_id,
        checkpoint=checkpoint,
        branch=settings.branch,
        event=settings.event,
        per_page=settings.per_page,
        cancel_token=cancel_token,
    )


def run_pipeline(
    client: ActionsClient,
    settings: FetchSettings,
    *,
    checkpoint: Checkpoint,
    cancel_token: Optional[CancellationToken] = None,
    artifact_filter: Optional[ArtifactFilter] = None,
    emit_url: Callable[[str], None] = print,
) -> PipelineResult:
    """Process every run selected by ``settings``.

    Args:
        client: API adapter bound to an authenticated HTTP client.
        settings: Resolved configuration.
        checkpoint: Owned by the caller so its value survives exceptions.
        cancel_token: Checked before each run is processed.
        artifact_filter: Defaults to one built from ``settings``.
        emit_url: Receives download URLs in list mode (no output directory).

    Raises:
        TransportError, RemoteError, DecodeError, FilesystemError: the first
        failure aborts all remaining runs.
    """

    artifact_filter = artifact_filter or ArtifactFilter.from_pattern(
        settings.pattern, unpack=settings.unpack
    )
    repo = settings.repo_ref
    result = PipelineResult()

    for run in _runs_for(client, settings, checkpoint, cancel_token):
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        LOGGER.info(
            "processing run %s",
            run.id,
            extra={"stage": "run", "run_id": run.id, "event": run.event, "branch": run.head_branch},
        )
        result.runs_visited += 1
        process_run(
            client,
            repo,
            run,
            artifact_filter=artifact_filter,
            output=settings.output,
            result=result,
            cancel_token=cancel_token,
            emit_url=emit_url,
        )

    LOGGER.info(
        "finished: %d runs, %d artifacts",
        result.runs_visited,
        len(result.downloads),
        extra={"stage": "summary", "checkpoint": checkpoint.value},
    )
    return result
