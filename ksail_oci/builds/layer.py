"""Manifest archive packaging.

This module handles:
- Writing manifest files into a single tar stream at root-relative paths
- Normalizing entry metadata so identical inputs give identical bytes
- Compressing the stream into an OCI layer blob and computing its digests

Entry metadata (mode, mtime, ownership) comes from fixed values rather than
the filesystem, so layers built on different machines hash the same.
"""

from __future__ import annotations

import gzip
import hashlib
import io
import logging
import os
import tarfile
from dataclasses import dataclass

from ksail_oci import errors
from ksail_oci.errors import KsailOciError

logger = logging.getLogger(__name__)

LAYER_MEDIA_TYPE = "application/vnd.oci.image.layer.v1.tar+gzip"

# Fixed entry metadata
ENTRY_MODE = 0o644
ENTRY_MTIME = 0


class LayerPackagingError(KsailOciError):
    """Raised when a manifest file cannot be added to the archive."""

    default_code = errors.LAYER_PACKAGING

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


@dataclass(frozen=True)
class Layer:
    """A compressed tar layer blob.

    Attributes:
        blob: Gzip-compressed tar bytes as pushed to the registry.
        digest: Digest of the compressed blob (sha256:...).
        diff_id: Digest of the uncompressed tar stream (sha256:...).
        media_type: OCI media type of the blob.
    """

    blob: bytes
    digest: str
    diff_id: str
    media_type: str = LAYER_MEDIA_TYPE

    @property
    def size(self) -> int:
        """Size of the compressed blob in bytes."""
        return len(self.blob)

    def tar_bytes(self) -> bytes:
        """Return the uncompressed tar stream."""
        return gzip.decompress(self.blob)


def sha256_digest(data: bytes) -> str:
    """Compute an OCI content digest.

    Args:
        data: Content bytes.

    Returns:
        Digest string in 'sha256:<hex>' form.
    """
    return f"sha256:{hashlib.sha256(data).hexdigest()}"


def archive_name(root: str, path: str) -> str:
    """Return the slash-separated archive entry name for a file.

    Args:
        root: Source root directory.
        path: File path below root.

    Returns:
        Path relative to root using '/' separators.

    Raises:
        LayerPackagingError: If no relative path exists.
    """
    try:
        rel = os.path.relpath(path, root)
    except ValueError as e:
        raise LayerPackagingError(
            f"get relative path for {path}: {e}", path
        ) from e
    return rel.replace(os.sep, "/")


def add_file_to_archive(tar: tarfile.TarFile, root: str, path: str) -> None:
    """Add a single file to the archive with normalized metadata.

    Args:
        tar: Open tar archive to write to.
        root: Source root directory.
        path: File to add.

    Raises:
        LayerPackagingError: If the file cannot be stat'ed, read or written.
    """
    try:
        info = os.stat(path)
    except OSError as e:
        raise LayerPackagingError(f"stat file {path}: {e}", path) from e

    entry = tarfile.TarInfo(name=archive_name(root, path))
    entry.size = info.st_size
    entry.mode = ENTRY_MODE
    entry.mtime = ENTRY_MTIME
    entry.uid = entry.gid = 0
    entry.uname = entry.gname = ""
    entry.type = tarfile.REGTYPE

    try:
        with open(path, "rb") as f:
            tar.addfile(entry, f)
    except (OSError, tarfile.TarError) as e:
        raise LayerPackagingError(f"copy file {path} to tar: {e}", path) from e


def write_manifest_archive(root: str, files: list[str]) -> bytes:
    """Write manifest files into an uncompressed tar stream.

    Entries are written in the given order.

    Args:
        root: Source root directory.
        files: Manifest file paths (normally sorted by the collector).

    Returns:
        Tar stream bytes.

    Raises:
        LayerPackagingError: If any file cannot be archived.
    """
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w", format=tarfile.PAX_FORMAT) as tar:
        for path in files:
            add_file_to_archive(tar, root, path)
    return buf.getvalue()


def new_manifest_layer(root: str, files: list[str]) -> Layer:
    """Package manifest files into an OCI layer.

    Args:
        root: Source root directory.
        files: Manifest file paths in archive order.

    Returns:
        Layer with compressed blob and digests.

    Raises:
        LayerPackagingError: If any file cannot be archived.
    """
    tar_data = write_manifest_archive(root, files)
    blob = gzip.compress(tar_data, mtime=ENTRY_MTIME)

    layer = Layer(
        blob=blob,
        digest=sha256_digest(blob),
        diff_id=sha256_digest(tar_data),
    )
    logger.debug(
        "Packaged %d file(s) into layer %s (%d bytes)",
        len(files),
        layer.digest[:19],
        layer.size,
    )
    return layer


__all__ = [
    "ENTRY_MODE",
    "LAYER_MEDIA_TYPE",
    "Layer",
    "LayerPackagingError",
    "add_file_to_archive",
    "archive_name",
    "new_manifest_layer",
    "sha256_digest",
    "write_manifest_archive",
]
