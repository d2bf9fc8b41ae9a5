"""Tests for structured logging setup, JSON formatting and retention."""

from __future__ import annotations

import gzip
import json
import logging
import os
import sys
import time
from pathlib import Path

import pytest

from ArtifactFetch.errors import FilesystemError
from ArtifactFetch.logging_utils import JSONFormatter, mask_sensitive_data, setup_logging


def _record(message: str, **extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        "ArtifactFetch.test", logging.INFO, __file__, 1, message, None, None
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_extra_fields() -> None:
    payload = json.loads(
        JSONFormatter().format(_record("processing run 7", stage="run", run_id=7))
    )

    assert payload["message"] == "processing run 7"
    assert payload["level"] == "INFO"
    assert payload["logger"] == "ArtifactFetch.test"
    assert payload["stage"] == "run"
    assert payload["run_id"] == 7
    assert payload["timestamp"].endswith("Z")


def test_json_formatter_masks_secrets() -> None:
    payload = json.loads(
        JSONFormatter().format(
            _record("request", authorization="Bearer abc", headers={"token": "t0ps3cret"})
        )
    )

    assert payload["authorization"] == "***masked***"
    assert payload["headers"]["token"] == "***masked***"


def test_mask_sensitive_data_detects_github_tokens() -> None:
    masked = mask_sensitive_data(
        {"note": "ghp_" + "a" * 36, "url": "https://api.github.com/repos/octo/widgets"}
    )
    assert masked["note"] == "***masked***"
    assert masked["url"] == "https://api.github.com/repos/octo/widgets"


def test_setup_logging_console_goes_to_stderr() -> None:
    logger = setup_logging(level="debug")

    stream_handlers = [
        handler
        for handler in logger.handlers
        if isinstance(handler, logging.StreamHandler)
        and not isinstance(handler, logging.FileHandler)
    ]
    assert len(stream_handlers) == 1
    assert stream_handlers[0].stream is sys.stderr
    assert logger.level == logging.DEBUG
    assert logger.propagate is False


def test_setup_logging_replaces_managed_handlers(tmp_path: Path) -> None:
    setup_logging(level="INFO", log_dir=tmp_path)
    logger = setup_logging(level="INFO", log_dir=tmp_path)

    assert len(logger.handlers) == 2


def test_file_handler_writes_json_lines(tmp_path: Path) -> None:
    logger = setup_logging(level="INFO", log_dir=tmp_path)
    logging.getLogger("ArtifactFetch.pipeline").info(
        "processing run %s", 12, extra={"stage": "run", "run_id": 12}
    )
    for handler in logger.handlers:
        handler.flush()

    (log_file,) = tmp_path.glob("artifact-fetch-*.jsonl")
    entry = json.loads(log_file.read_text(encoding="utf-8").splitlines()[-1])
    assert entry["message"] == "processing run 12"
    assert entry["run_id"] == 12


def test_retention_compresses_and_purges(tmp_path: Path) -> None:
    old_log = tmp_path / "artifact-fetch-20200101.jsonl"
    old_log.write_text('{"message": "old"}\n', encoding="utf-8")
    old_archive = tmp_path / "artifact-fetch-20190101.jsonl.gz"
    with gzip.open(old_archive, "wb") as handle:
        handle.write(b"ancient")
    stale = time.time() - 40 * 86400
    os.utime(old_log, (stale, stale))
    os.utime(old_archive, (stale, stale))

    setup_logging(level="INFO", log_dir=tmp_path, retention_days=30)

    assert not old_log.exists()
    compressed = tmp_path / "artifact-fetch-20200101.jsonl.gz"
    assert compressed.exists()
    assert gzip.decompress(compressed.read_bytes()) == b'{"message": "old"}\n'
    assert not old_archive.exists()


def test_setup_logging_wraps_log_dir_errors(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("x", encoding="utf-8")

    with pytest.raises(FilesystemError) as excinfo:
        setup_logging(level="INFO", log_dir=blocker / "logs")

    assert excinfo.value.path == blocker / "logs"
    assert isinstance(excinfo.value.__cause__, OSError)


def test_retention_ignores_foreign_files(tmp_path: Path) -> None:
    foreign = tmp_path / "other-tool.jsonl"
    foreign.write_text("{}\n", encoding="utf-8")
    stale = time.time() - 40 * 86400
    os.utime(foreign, (stale, stale))

    setup_logging(level="INFO", log_dir=tmp_path, retention_days=30)

    assert foreign.exists()
