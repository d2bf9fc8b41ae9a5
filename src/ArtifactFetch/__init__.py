# === NAVMAP v1 ===
# {
#   "module": "ArtifactFetch",
#   "purpose": "Package initialization for ArtifactFetch",
#   "sections": [
#     {
#       "id": "getattr",
#       "name": "__getattr__",
#       "anchor": "function-getattr",
#       "kind": "function"
#     },
#     {
#       "id": "dir",
#       "name": "__dir__",
#       "anchor": "function-dir",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Public API for retrieving GitHub Actions workflow artifacts.

This facade exposes the run enumerator, the artifact lister and filter, the
downloader/extractor and the pipeline that ties them together.  Attributes are
imported lazily so that ``import ArtifactFetch`` stays cheap and free of network
dependencies.
"""

from __future__ import annotations

from importlib import import_module
from typing import Any, Dict, Tuple

__version__ = "0.3.0"

_EXPORT_MAP: Dict[str, Tuple[str, str]] = {
    "ActionsClient": ("ArtifactFetch.api", "ActionsClient"),
    "Artifact": ("ArtifactFetch.models", "Artifact"),
    "ArtifactFilter": ("ArtifactFetch.artifacts", "ArtifactFilter"),
    "ArtifactManifest": ("ArtifactFetch.models", "ArtifactManifest"),
    "CancellationToken": ("ArtifactFetch.cancellation", "CancellationToken"),
    "Checkpoint": ("ArtifactFetch.enumerator", "Checkpoint"),
    "FetchSettings": ("ArtifactFetch.settings", "FetchSettings"),
    "PipelineResult": ("ArtifactFetch.pipeline", "PipelineResult"),
    "RepoRef": ("ArtifactFetch.models", "RepoRef"),
    "SignalCancellation": ("ArtifactFetch.cancellation", "SignalCancellation"),
    "WorkflowRun": ("ArtifactFetch.models", "WorkflowRun"),
    "download_artifact": ("ArtifactFetch.download", "download_artifact"),
    "fetch_single_run": ("ArtifactFetch.enumerator", "fetch_single_run"),
    "iter_workflow_runs": ("ArtifactFetch.enumerator", "iter_workflow_runs"),
    "list_artifacts": ("ArtifactFetch.artifacts", "list_artifacts"),
    "run_pipeline": ("ArtifactFetch.pipeline", "run_pipeline"),
}

__all__ = ["__version__", *sorted(_EXPORT_MAP)]


def __getattr__(name: str) -> Any:
    """Lazily import API exports on first access."""

    spec = _EXPORT_MAP.get(name)
    if spec is None:
        raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
    module_name, attribute = spec
    value = getattr(import_module(module_name), attribute)
    globals()[name] = value
    return value


def __dir__() -> list[str]:
    """Expose lazily-populated attributes in ``dir()`` results."""

    return sorted(set(globals()) | set(__all__))
