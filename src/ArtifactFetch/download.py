# === NAVMAP v1 ===
# {
#   "module": "ArtifactFetch.download",
#   "purpose": "Stream artifact archives to disk and extract them under a per-artifact directory",
#   "sections": [
#     {"id": "result", "name": "DownloadedArtifact", "anchor": "class-downloadedartifact", "kind": "class"},
#     {"id": "section-reader", "name": "_SectionReader", "anchor": "class-sectionreader", "kind": "class"},
#     {"id": "path-safety", "name": "Path validation", "anchor": "PATH", "kind": "helpers"},
#     {"id": "extract", "name": "extract_archive", "anchor": "function-extract-archive", "kind": "function"},
#     {"id": "download-artifact", "name": "download_artifact", "anchor": "function-download-artifact", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Download and extraction of a single artifact archive.

The archive is streamed into ``<destination>/<name>.zip``, opened read/write so
the very same handle can be re-read as a zip.  The archive length comes from the
handle's write position, never from the manifest's ``size_in_bytes``, which is
not reliable.  Entries are extracted under ``<destination>/<name>/`` so two
artifacts sharing internal paths cannot overwrite each other.

Failures abort the artifact without rolling back: whatever was extracted before
the error stays on disk for inspection.
"""

from __future__ import annotations

import io
import logging
import os
import shutil
import stat
import zipfile
import zlib
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import BinaryIO, List, Optional, Tuple

from .api import ActionsClient
from .cancellation import CancellationToken
from .errors import DecodeError, FilesystemError
from .models import Artifact, RepoRef
from .network.policy import DOWNLOAD_CHUNK_SIZE

__all__ = ["DownloadedArtifact", "download_artifact", "extract_archive"]

LOGGER = logging.getLogger("ArtifactFetch.download")

_ARCHIVE_FILE_MODE = 0o600
_OUTPUT_DIR_MODE = 0o700
_EXTRACTED_DIR_MODE = 0o755
_DEFAULT_FILE_MODE = 0o666
_PERMISSION_BITS = 0o777
_UNIX_CREATE_SYSTEM = 3


@dataclass
class DownloadedArtifact:
    """Outcome of :func:`download_artifact`."""

    artifact: Artifact
    path: Path
    unpacked: bool
    archive_bytes: int = 0
    files: List[Path] = field(default_factory=list)


class _SectionReader(io.RawIOBase):
    """Read-only view over the first ``length`` bytes of ``handle``."""

    def __init__(self, handle: BinaryIO, length: int) -> None:
        super().__init__()
        self._handle = handle
        self._length = length
        self._pos = 0

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return True

    def tell(self) -> int:
        return self._pos

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        if whence == io.SEEK_SET:
            position = offset
        elif whence == io.SEEK_CUR:
            position = self._pos + offset
        elif whence == io.SEEK_END:
            position = self._length + offset
        else:
            raise ValueError(f"invalid whence: {whence}")
        if position < 0:
            # zipfile probes for the end record and expects OSError on short files
            raise OSError("negative seek position")
        self._pos = position
        return position

    def readinto(self, buffer) -> int:  # type: ignore[override]
        remaining = self._length - self._pos
        if remaining <= 0:
            return 0
        size = min(len(buffer), remaining)
        self._handle.seek(self._pos)
        data = self._handle.read(size)
        count = len(data)
        buffer[:count] = data
        self._pos += count
        return count


# --- Path validation -------------------------------------------------------------


def _validate_artifact_name(name: str) -> str:
    if not name or name in {".", ".."} or "/" in name or "\\" in name or "\x00" in name:
        raise DecodeError(f"Unsafe artifact name: {name!r}")
    return name


def _validate_member_path(member_name: str) -> PurePosixPath:
    """Reject archive member paths that would escape the extraction root."""

    normalized = member_name.replace("\\", "/")
    relative = PurePosixPath(normalized)
    if relative.is_absolute():
        raise DecodeError(f"Unsafe absolute path detected in archive: {member_name}")
    parts = [part for part in relative.parts if part not in {"", "."}]
    if not parts:
        raise DecodeError(f"Empty path detected in archive: {member_name}")
    if ".." in parts:
        raise DecodeError(f"Unsafe path detected in archive: {member_name}")
    return PurePosixPath(*parts)


def _entry_mode(info: zipfile.ZipInfo) -> int:
    # permission bits only; setuid, setgid and sticky are dropped
    mode = (info.external_attr >> 16) & _PERMISSION_BITS
    if info.create_system == _UNIX_CREATE_SYSTEM and mode:
        return mode
    return _DEFAULT_FILE_MODE


def _is_link(info: zipfile.ZipInfo) -> bool:
    mode = (info.external_attr >> 16) & 0xFFFF
    return info.create_system == _UNIX_CREATE_SYSTEM and stat.S_ISLNK(mode)


# --- Filesystem helpers ------------------------------------------------------------


def _make_dirs(path: Path, mode: int, message: str) -> None:
    try:
        path.mkdir(mode=mode, parents=True, exist_ok=True)
    except OSError as exc:
        raise FilesystemError(f"{message}: {exc}", path=path) from exc


def _remove_archive(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        raise FilesystemError(f"error removing downloaded archive: {exc}", path=path) from exc


def _copy_entry(
    archive: zipfile.ZipFile, info: zipfile.ZipInfo, target: Path, archive_path: Path
) -> None:
    try:
        source = archive.open(info, "r")
    except (zipfile.BadZipFile, NotImplementedError, RuntimeError) as exc:
        raise DecodeError(
            f"error opening file in zip {archive_path}: {info.filename}: {exc}"
        ) from exc

    with source:
        try:
            fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, _entry_mode(info))
        except OSError as exc:
            raise FilesystemError(
                f"error creating file for unpacked result: {exc}", path=target
            ) from exc
        with os.fdopen(fd, "wb") as sink:
            try:
                shutil.copyfileobj(source, sink)
            except (zipfile.BadZipFile, zlib.error, EOFError) as exc:
                raise DecodeError(
                    f"error reading {info.filename} from zip {archive_path}: {exc}"
                ) from exc
            except OSError as exc:
                raise FilesystemError(f"error writing unpacked file: {exc}", path=target) from exc


# --- Extraction ----------------------------------------------------------------------


def extract_archive(
    handle: BinaryIO,
    length: int,
    destination: Path,
    *,
    archive_path: Optional[Path] = None,
) -> List[Path]:
    """Extract the zip held in the first ``length`` bytes of ``handle``.

    Args:
        handle: Seekable binary handle containing the archive.
        length: Number of valid bytes in ``handle``.
        destination: Root directory receiving the entries.
        archive_path: File name used in error messages.

    Returns:
        Paths of the regular files written, in archive order.

    Raises:
        DecodeError: The bytes are not a readable zip, or an entry path is unsafe.
        FilesystemError: A directory or file could not be created or written.
    """

    label = archive_path or Path(getattr(handle, "name", "<archive>"))
    try:
        archive = zipfile.ZipFile(_SectionReader(handle, length))
    except (zipfile.BadZipFile, EOFError, ValueError) as exc:
        raise DecodeError(f"error making zip reader from file {label}: {exc}") from exc

    extracted: List[Path] = []
    with archive:
        members: List[Tuple[zipfile.ZipInfo, PurePosixPath]] = []
        for info in archive.infolist():
            if _is_link(info):
                raise DecodeError(f"Unsafe link detected in archive: {info.filename}")
            members.append((info, _validate_member_path(info.filename)))

        for info, relative in members:
            target = destination.joinpath(*relative.parts)
            if info.is_dir():
                _make_dirs(target, _EXTRACTED_DIR_MODE, "error creating dir from zip")
                continue
            _make_dirs(
                target.parent, _EXTRACTED_DIR_MODE, "error creating parent dir for file in zip"
            )
            _copy_entry(archive, info, target, label)
            extracted.append(target)
    return extracted


def _stream_to(
    client: ActionsClient,
    url: str,
    handle: BinaryIO,
    archive_path: Path,
    cancel_token: Optional[CancellationToken],
) -> int:
    written = 0
    with client.stream(url, what="download artifact") as response:
        for chunk in response.iter_bytes(DOWNLOAD_CHUNK_SIZE):
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            try:
                handle.write(chunk)
            except OSError as exc:
                raise FilesystemError(
                    f"error writing artifact archive: {exc}", path=archive_path
                ) from exc
            written += len(chunk)
    return written


def download_artifact(
    client: ActionsClient,
    repo: RepoRef,
    artifact: Artifact,
    destination: Path,
    *,
    unpack: bool = True,
    cancel_token: Optional[CancellationToken] = None,
) -> DownloadedArtifact:
    """Download ``artifact`` into ``destination`` and optionally extract it.

    With ``unpack`` disabled the archive ``<destination>/<name>.zip`` is the
    result.  Otherwise its entries end up below ``<destination>/<name>/`` and the
    archive is removed.

    Raises:
        TransportError: Resolving or streaming the archive failed, or the
            operation was cancelled.
        RemoteError: The API refused to hand out a download URL.
        DecodeError: The archive could not be read or contains unsafe paths.
        FilesystemError: Local files or directories could not be written.
    """

    name = _validate_artifact_name(artifact.name)
    url = client.get_artifact_download_url(repo, artifact.id)

    _make_dirs(destination, _OUTPUT_DIR_MODE, "error creating artifact dir")
    archive_path = destination / f"{name}.zip"
    try:
        fd = os.open(archive_path, os.O_CREAT | os.O_RDWR | os.O_TRUNC, _ARCHIVE_FILE_MODE)
    except OSError as exc:
        raise FilesystemError(f"error creating save file: {exc}", path=archive_path) from exc

    with os.fdopen(fd, "w+b") as handle:
        written = _stream_to(client, url, handle, archive_path, cancel_token)
        LOGGER.debug(
            "artifact archive written",
            extra={
                "stage": "download",
                "artifact": name,
                "bytes": written,
                "reported_bytes": artifact.size_in_bytes,
            },
        )
        if not unpack:
            return DownloadedArtifact(
                artifact=artifact, path=archive_path, unpacked=False, archive_bytes=written
            )

        try:
            handle.flush()
            length = handle.seek(0, io.SEEK_CUR)
        except OSError as exc:
            raise FilesystemError(
                f"error getting artifact size: {exc}", path=archive_path
            ) from exc

        target = destination / name
        files = extract_archive(handle, length, target, archive_path=archive_path)

    _remove_archive(archive_path)
    LOGGER.info(
        "extracted artifact %s",
        name,
        extra={"stage": "extract", "artifact": name, "files": len(files)},
    )
    return DownloadedArtifact(
        artifact=artifact, path=target, unpacked=True, archive_bytes=length, files=files
    )
