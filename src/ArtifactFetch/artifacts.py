"""Artifact listing for one run and the name/expiry filter."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Iterator, Pattern

from .api import ActionsClient
from .models import Artifact, ArtifactManifest, WorkflowRun
from .settings import DEFAULT_PATTERN

__all__ = ["ArtifactFilter", "list_artifacts", "select_artifacts"]

LOGGER = logging.getLogger("ArtifactFetch.artifacts")


@dataclass(frozen=True)
class ArtifactFilter:
    """Compiled name pattern plus the unpack flag, shared read-only by a run.

    Names are matched with search semantics: the pattern may match anywhere in
    the artifact name.
    """

    pattern: Pattern[str]
    unpack: bool = True

    @classmethod
    def from_pattern(
        cls, pattern: str = DEFAULT_PATTERN, *, unpack: bool = True
    ) -> "ArtifactFilter":
        return cls(pattern=re.compile(pattern), unpack=unpack)

    def select(self, artifact: Artifact) -> bool:
        """Return ``True`` when ``artifact`` should be downloaded."""

        if artifact.expired:
            LOGGER.debug(
                "Skipping expired artifact %s",
                artifact.name,
                extra={"stage": "filter", "artifact": artifact.name, "reason": "expired"},
            )
            return False
        if self.pattern.search(artifact.name) is None:
            LOGGER.debug(
                "Skipping non-matching artifact %s, pattern %s",
                artifact.name,
                self.pattern.pattern,
                extra={"stage": "filter", "artifact": artifact.name, "reason": "no-match"},
            )
            return False
        return True


def list_artifacts(client: ActionsClient, run: WorkflowRun) -> ArtifactManifest:
    """Fetch the artifact manifest of ``run``.

    The request shares the client's timeout budget.  Errors are not retried.
    """

    manifest = client.get_artifact_manifest(run.artifacts_url)
    LOGGER.debug(
        "Got artifact list",
        extra={"stage": "list", "run_id": run.id, "num_artifacts": len(manifest.artifacts)},
    )
    return manifest


def select_artifacts(
    artifacts: Iterable[Artifact], artifact_filter: ArtifactFilter
) -> Iterator[Artifact]:
    """Yield the artifacts ``artifact_filter`` selects, in manifest order."""

    for artifact in artifacts:
        if artifact_filter.select(artifact):
            yield artifact
