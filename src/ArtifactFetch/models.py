"""Pydantic models for the Actions REST payloads consumed by the fetcher."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .errors import ConfigError

__all__ = [
    "RepoRef",
    "HeadCommit",
    "WorkflowRun",
    "WorkflowRunPage",
    "Artifact",
    "ArtifactManifest",
]

_PAYLOAD_CONFIG = ConfigDict(frozen=True, extra="ignore")


class RepoRef(BaseModel):
    """An ``owner/name`` repository reference used to build API paths."""

    owner: str
    name: str

    model_config = ConfigDict(frozen=True)

    @classmethod
    def parse(cls, value: str) -> "RepoRef":
        owner, sep, name = value.strip().partition("/")
        if not sep or not owner or not name or "/" in name:
            raise ConfigError(f"repository must use the form <org>/<repository>, got {value!r}")
        return cls(owner=owner, name=name)

    def __str__(self) -> str:
        return f"{self.owner}/{self.name}"


class HeadCommit(BaseModel):
    id: str = ""
    message: str = ""

    model_config = _PAYLOAD_CONFIG


class WorkflowRun(BaseModel):
    """One execution of a workflow as returned by the runs endpoints."""

    id: int
    head_branch: Optional[str] = None
    event: str = ""
    artifacts_url: str
    head_commit: Optional[HeadCommit] = None

    model_config = _PAYLOAD_CONFIG

    @property
    def commit_id(self) -> str:
        return self.head_commit.id if self.head_commit else ""

    @property
    def commit_message(self) -> str:
        return self.head_commit.message if self.head_commit else ""


class WorkflowRunPage(BaseModel):
    total_count: int = 0
    workflow_runs: List[WorkflowRun] = Field(default_factory=list)

    model_config = _PAYLOAD_CONFIG


class Artifact(BaseModel):
    """A downloadable artifact belonging to a workflow run.

    ``size_in_bytes`` is informational only; the downloader derives the real
    archive length from the bytes it wrote.
    """

    id: int
    name: str
    archive_download_url: str = ""
    expired: bool = False
    size_in_bytes: int = 0

    model_config = _PAYLOAD_CONFIG


class ArtifactManifest(BaseModel):
    total_count: int = 0
    artifacts: List[Artifact] = Field(default_factory=list)

    model_config = _PAYLOAD_CONFIG
# === NAVMAP v1 ===
# {
#   "module": "ArtifactFetch.models",
#   "purpose": "Typed views of workflow run and artifact payloads",
#   "sections": [
#     {"id": "repo", "name": "RepoRef", "anchor": "REP", "kind": "api"},
#     {"id": "runs", "name": "Workflow Runs", "anchor": "RUN", "kind": "api"},
#     {"id": "artifacts", "name": "Artifacts", "anchor": "ART", "kind": "api"}
#   ]
# }
# === /NAVMAP ===
