# === NAVMAP v1 ===
# {
#   "module": "ArtifactFetch.enumerator",
#   "purpose": "Paginate workflow runs above a resume bound and track the checkpoint",
#   "sections": [
#     {"id": "checkpoint", "name": "Checkpoint", "anchor": "class-checkpoint", "kind": "class"},
#     {"id": "iter-workflow-runs", "name": "iter_workflow_runs", "anchor": "function-iter-workflow-runs", "kind": "function"},
#     {"id": "fetch-single-run", "name": "fetch_single_run", "anchor": "function-fetch-single-run", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Workflow-run enumeration with a resumable checkpoint.

The runs listing is sorted newest first, so enumeration walks pages until the
advertised total is consumed or a run at or below the caller's lower bound
appears; everything after that run is older and is never requested.

The :class:`Checkpoint` is advanced *before* a run is handed to the caller.  If
processing that run fails, the value printed on exit still covers it and every
newer run, and the next invocation resumes from there.
"""

from __future__ import annotations

import logging
import threading
from typing import Iterator, Optional

from .api import ActionsClient
from .cancellation import CancellationToken
from .models import RepoRef, WorkflowRun

__all__ = ["DEFAULT_PAGE_SIZE", "Checkpoint", "iter_workflow_runs", "fetch_single_run"]

LOGGER = logging.getLogger("ArtifactFetch.enumerator")

DEFAULT_PAGE_SIZE = 50


class Checkpoint:
    """Highest run ID seen so far; only ever increases."""

    def __init__(self, initial: int = 0) -> None:
        self._value = initial
        self._lock = threading.Lock()

    @property
    def value(self) -> int:
        return self._value

    def advance(self, run_id: int) -> bool:
        """Raise the checkpoint to ``run_id`` if it is higher.

        Returns:
            ``True`` when the checkpoint moved.
        """
        with self._lock:
            if run_id <= self._value:
                return False
            self._value = run_id
            return True

    def __repr__(self) -> str:
        return f"Checkpoint({self._value})"


def iter_workflow_runs(
    client: ActionsClient,
    repo: RepoRef,
    *,
    since: int,
    checkpoint: Checkpoint,
    branch: Optional[str] = None,
    event: Optional[str] = None,
    per_page: int = DEFAULT_PAGE_SIZE,
    cancel_token: Optional[CancellationToken] = None,
) -> Iterator[WorkflowRun]:
    """Yield runs newer than ``since``, newest first, one page at a time.

    Args:
        client: API adapter used for the page requests.
        repo: Repository whose runs are listed.
        since: Exclusive lower bound; the first run with ``id <= since`` ends
            the enumeration.
        checkpoint: Advanced to each yielded run's ID before it is yielded.
        branch: Optional branch filter passed to the listing.
        event: Optional triggering-event filter passed to the listing.
        per_page: Page size requested from the API.
        cancel_token: Checked before each page request.

    Raises:
        TransportError: A page request failed or was cancelled.
        RemoteError: The listing returned an error status.
        DecodeError: A page could not be decoded.
    """

    page = 1
    consumed = 0
    total: Optional[int] = None

    while total is None or consumed < total:
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        result = client.list_workflow_runs(
            repo, page=page, per_page=per_page, branch=branch, event=event
        )
        if total is None:
            total = result.total_count
            LOGGER.debug(
                "listing workflow runs",
                extra={"stage": "enumerate", "repo": str(repo), "total_count": total},
            )
        if not result.workflow_runs:
            break

        for run in result.workflow_runs:
            consumed += 1
            if run.id <= since:
                LOGGER.debug(
                    "reached resume bound",
                    extra={"stage": "enumerate", "run_id": run.id, "since": since},
                )
                return
            checkpoint.advance(run.id)
            yield run
        page += 1


def fetch_single_run(
    client: ActionsClient,
    repo: RepoRef,
    run_id: int,
    *,
    checkpoint: Checkpoint,
) -> WorkflowRun:
    """Look up one run by ID, bypassing enumeration."""

    run = client.get_workflow_run(repo, run_id)
    checkpoint.advance(run.id)
    return run
