# === NAVMAP v1 ===
# {
#   "module": "ArtifactFetch.cli",
#   "purpose": "Typer command line entry point for artifact retrieval",
#   "sections": [
#     {"id": "app", "name": "app", "anchor": "APP", "kind": "api"},
#     {"id": "fetch", "name": "fetch", "anchor": "function-fetch", "kind": "function"},
#     {"id": "main", "name": "main", "anchor": "function-main", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Command line interface for ``artifact-fetch``.

The command resolves settings, installs signal-driven cancellation and runs the
pipeline.  Whatever happens during retrieval, the final checkpoint is printed as
the last line on stdout so wrapper scripts can persist it and pass it back with
``--since`` on the next invocation.

Exit codes:
    0: every selected run was processed.
    1: configuration error or unusable log directory; no checkpoint is printed.
    2: retrieval failed or was cancelled; the checkpoint is still printed.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import typer
from pydantic import ValidationError as PydanticValidationError
from rich.console import Console
from rich.markup import escape

from . import __version__
from .api import ActionsClient
from .cancellation import CancellationToken, SignalCancellation
from .enumerator import Checkpoint
from .errors import ArtifactFetchError, ConfigError, FilesystemError, OperationCancelled
from .logging_utils import setup_logging
from .network import build_http_client
from .pipeline import run_pipeline
from .settings import Credentials, FetchSettings, load_settings

__all__ = ["app", "main"]

LOGGER = logging.getLogger("ArtifactFetch.cli")

EXIT_CONFIG_ERROR = 1
EXIT_RETRIEVAL_ERROR = 2

_console = Console(stderr=True)

app = typer.Typer(
    name="artifact-fetch",
    help="Download GitHub Actions workflow artifacts newer than a checkpoint.",
    add_completion=False,
)


def _resolve(
    config: Optional[Path], overrides: Dict[str, Any]
) -> Tuple[FetchSettings, Credentials]:
    settings = load_settings(config, overrides)
    try:
        credentials = Credentials()
    except PydanticValidationError as exc:
        raise ConfigError(f"invalid credentials in environment: {exc}") from exc
    return settings, credentials


def _report_failure(exc: ArtifactFetchError, settings: FetchSettings) -> None:
    if isinstance(exc, OperationCancelled):
        LOGGER.warning("retrieval cancelled", extra={"stage": "shutdown"})
        return
    if settings.log_level == "DEBUG":
        LOGGER.exception("retrieval failed: %s", exc, extra={"stage": "shutdown"})
    else:
        LOGGER.error("retrieval failed: %s", exc, extra={"stage": "shutdown"})


@app.command()
def fetch(
    repo: Optional[str] = typer.Option(
        None, "--repo", "-r", envvar="GITHUB_REPO", help="Repository as <org>/<repository>"
    ),
    since: Optional[int] = typer.Option(
        None, "--since", "-s", min=0, help="Only process runs with an ID above this checkpoint"
    ),
    run_id: Optional[int] = typer.Option(
        None,
        "--run-id",
        envvar="GITHUB_WORKFLOW_ID",
        min=1,
        help="Fetch artifacts of this single run instead of enumerating",
    ),
    branch: Optional[str] = typer.Option(None, "--branch", help="Only list runs for this branch"),
    event: Optional[str] = typer.Option(
        None, "--event", help="Only list runs triggered by this event (push, pull_request, ...)"
    ),
    pattern: Optional[str] = typer.Option(
        None,
        "--pattern",
        "-p",
        envvar="ARTIFACT_PATTERN",
        help="Regex matched against artifact names",
    ),
    unpack: Optional[bool] = typer.Option(
        None, "--unpack/--no-unpack", help="Extract archives (default) or keep the .zip files"
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        envvar="ARTIFACT_OUTPUT",
        help="Output directory; without it the download URLs are printed",
    ),
    api_url: Optional[str] = typer.Option(None, "--api-url", help="GitHub API base URL"),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", help="Per-request timeout in seconds"
    ),
    per_page: Optional[int] = typer.Option(
        None, "--per-page", help="Page size used when listing workflow runs (1-100)"
    ),
    http_cache: Optional[bool] = typer.Option(
        None, "--http-cache/--no-http-cache", help="Revalidate API listings through a local cache"
    ),
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", envvar="ARTIFACT_FETCH_CONFIG", help="YAML configuration file"
    ),
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="DEBUG, INFO, WARNING or ERROR"
    ),
    log_dir: Optional[Path] = typer.Option(
        None, "--log-dir", envvar="ARTIFACT_FETCH_LOG_DIR", help="Write JSON logs to this directory"
    ),
    version: bool = typer.Option(False, "--version", "-V", help="Show version and exit"),
) -> None:
    """Download the artifacts of workflow runs newer than ``--since``."""

    if version:
        typer.echo(f"artifact-fetch {__version__}")
        raise typer.Exit(0)

    overrides: Dict[str, Any] = {
        "repo": repo,
        "since_run_id": since,
        "run_id": run_id,
        "branch": branch,
        "event": event,
        "pattern": pattern,
        "unpack": unpack,
        "output": output,
        "api_url": api_url,
        "timeout_sec": timeout,
        "per_page": per_page,
        "http_cache": http_cache,
        "log_level": log_level,
        "log_dir": log_dir,
    }
    try:
        settings, credentials = _resolve(config, overrides)
        setup_logging(level=settings.log_level, log_dir=settings.log_dir)
    except (ConfigError, FilesystemError) as exc:
        _console.print(f"[red]Configuration error:[/red] {escape(str(exc))}", soft_wrap=True)
        raise typer.Exit(EXIT_CONFIG_ERROR) from exc

    cancel_token = CancellationToken()
    checkpoint = Checkpoint(settings.since_run_id)
    exit_code = 0
    with SignalCancellation(cancel_token):
        try:
            with build_http_client(settings, credentials, cancel_token) as http:
                client = ActionsClient(http, settings.api_url)
                run_pipeline(
                    client,
                    settings,
                    checkpoint=checkpoint,
                    cancel_token=cancel_token,
                    emit_url=typer.echo,
                )
        except ArtifactFetchError as exc:
            exit_code = EXIT_RETRIEVAL_ERROR
            _report_failure(exc, settings)
        finally:
            typer.echo(str(checkpoint.value))

    if exit_code:
        raise typer.Exit(exit_code)


def main() -> None:
    """Console script entry point."""

    app()


if __name__ == "__main__":  # pragma: no cover
    main()
