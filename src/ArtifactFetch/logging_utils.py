"""Structured logging helpers shared across artifact fetch components."""

from __future__ import annotations

import gzip
import json
import logging
import re
import shutil
import sys
import time
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, Optional

from .errors import FilesystemError

__all__ = ["JSONFormatter", "mask_sensitive_data", "setup_logging"]

LOGGER_NAME = "ArtifactFetch"

_MANAGED_ATTR = "_artifact_fetch_managed"
_LOG_FILE_PREFIX = "artifact-fetch-"
_SENSITIVE_KEYS = {"authorization", "api_key", "apikey", "token", "secret", "password"}
_TOKEN_PATTERN = re.compile(r"^(gh[pousr]_|github_pat_)[A-Za-z0-9_]{20,}$")
_MASK = "***masked***"

# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RESERVED_ATTRS = set(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None)).keys()
) | {"message", "asctime"}


def mask_sensitive_data(payload: Dict[str, object]) -> Dict[str, object]:
    """Return a copy of ``payload`` with common secret fields masked."""

    def _mask_value(value: object, key_hint: Optional[str] = None) -> object:
        if isinstance(value, dict):
            return {
                sub_key: _mask_value(sub_value, str(sub_key).lower())
                for sub_key, sub_value in value.items()
            }
        if isinstance(value, (list, tuple)):
            return [_mask_value(item, key_hint) for item in value]
        if isinstance(value, str):
            lowered = value.lower()
            if key_hint in _SENSITIVE_KEYS:
                return _MASK
            if "bearer " in lowered or "basic " in lowered:
                return _MASK
            if _TOKEN_PATTERN.match(value.strip()):
                return _MASK
        return value

    masked: Dict[str, object] = {}
    for key, value in payload.items():
        lower = key.lower()
        if lower in _SENSITIVE_KEYS:
            masked[key] = _MASK
        else:
            masked[key] = _mask_value(value, lower)
    return masked


class JSONFormatter(logging.Formatter):
    """Formatter emitting masked JSON log entries."""

    def format(self, record: logging.LogRecord) -> str:
        now = datetime.now(timezone.utc)
        payload: Dict[str, object] = {
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "stage": getattr(record, "stage", None),
        }
        for key, value in vars(record).items():
            if key in _RESERVED_ATTRS or key.startswith("_") or key in payload:
                continue
            payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(mask_sensitive_data(payload), default=str)


def _apply_retention(log_dir: Path, retention_days: int, logger: logging.Logger) -> None:
    """Gzip stale ``artifact-fetch`` logs and purge stale archives in ``log_dir``.

    Files are selected by modification time, so an archive produced here starts
    a fresh retention window.
    """

    cutoff = time.time() - retention_days * 86400
    for path in sorted(log_dir.glob(f"{_LOG_FILE_PREFIX}*")):
        if not path.is_file() or path.stat().st_mtime >= cutoff:
            continue
        if path.suffix == ".gz":
            path.unlink(missing_ok=True)
            logger.debug(
                "purged expired log archive", extra={"stage": "logging", "log_file": path.name}
            )
            continue
        archive = path.with_name(path.name + ".gz")
        with path.open("rb") as source, gzip.open(archive, "wb") as target:
            shutil.copyfileobj(source, target)
        path.unlink()
        logger.debug(
            "compressed stale log",
            extra={"stage": "logging", "log_file": path.name, "archive": archive.name},
        )


def _remove_managed_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        if getattr(handler, _MANAGED_ATTR, False):
            logger.removeHandler(handler)
            if isinstance(handler, logging.StreamHandler) and not isinstance(
                handler, logging.FileHandler
            ):
                continue
            handler.close()


def setup_logging(
    *,
    level: str = "INFO",
    log_dir: Optional[Path] = None,
    retention_days: int = 30,
    max_log_size_mb: int = 100,
    propagate: bool = False,
) -> logging.Logger:
    """Configure the ``ArtifactFetch`` logger hierarchy.

    Console records go to stderr because stdout carries the checkpoint and the
    URLs printed in list mode.  When ``log_dir`` is given, JSON lines are also
    written to a rotating daily file there, after old files are compressed or
    purged according to ``retention_days``.  Calling this again replaces the
    handlers installed by the previous call.  A log directory that cannot be
    created or written raises :class:`FilesystemError`.
    """

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    _remove_managed_handlers(logger)

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    setattr(stream_handler, _MANAGED_ATTR, True)
    logger.addHandler(stream_handler)

    if log_dir is not None:
        today = datetime.now(timezone.utc).strftime("%Y%m%d")
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
            _apply_retention(log_dir, retention_days, logger)
            file_handler = RotatingFileHandler(
                log_dir / f"{_LOG_FILE_PREFIX}{today}.jsonl",
                maxBytes=int(max_log_size_mb * 1024 * 1024),
                backupCount=5,
                encoding="utf-8",
            )
        except OSError as exc:
            raise FilesystemError(f"error preparing log dir: {exc}", path=log_dir) from exc
        file_handler.setFormatter(JSONFormatter())
        setattr(file_handler, _MANAGED_ATTR, True)
        logger.addHandler(file_handler)

    logger.propagate = propagate
    return logger
