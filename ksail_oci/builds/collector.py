"""Manifest file discovery.

This module handles:
- Walking a source directory for Kubernetes manifest files
- Rejecting empty manifest files (the walk stops at the first one)
- Returning a sorted path list so archive layout is reproducible
"""

from __future__ import annotations

import logging
import os
import stat
from collections.abc import Iterator

from ksail_oci import errors
from ksail_oci.errors import KsailOciError

logger = logging.getLogger(__name__)

# Recognized manifest extensions (lowercase, compared case-insensitively)
MANIFEST_EXTENSIONS = frozenset({".yaml", ".yml", ".json"})


class EmptyManifestError(KsailOciError):
    """Raised when a manifest file has no content."""

    default_code = errors.EMPTY_MANIFEST

    def __init__(self, path: str) -> None:
        super().__init__(f"manifest file {path} is empty")
        self.path = path


class ManifestDiscoveryError(KsailOciError):
    """Raised when the source directory cannot be walked."""

    default_code = errors.MANIFEST_DISCOVERY

    def __init__(self, message: str, path: str) -> None:
        super().__init__(message)
        self.path = path


class NoManifestFilesError(KsailOciError):
    """Raised when the source directory contains no manifest files."""

    default_code = errors.NO_MANIFEST_FILES

    def __init__(self, path: str) -> None:
        super().__init__(f"no manifest files found in source directory: {path}")
        self.path = path


def is_manifest_file(filename: str) -> bool:
    """Check whether a filename has a manifest extension.

    Args:
        filename: File name or path.

    Returns:
        True for .yaml, .yml and .json files (any letter case).
    """
    return os.path.splitext(filename)[1].lower() in MANIFEST_EXTENSIONS


def _raise_walk_error(error: OSError) -> None:
    raise error


def iter_manifest_files(root: str) -> Iterator[str]:
    """Walk a directory and yield manifest file paths.

    Directories are walked in lexical order and symlinked directories are
    not followed. Iteration stops with an exception at the first empty
    manifest file.

    Args:
        root: Absolute directory to walk.

    Yields:
        Paths of non-empty manifest files.

    Raises:
        EmptyManifestError: If a manifest file has zero size.
        ManifestDiscoveryError: If a directory or file cannot be inspected.
    """
    try:
        for dirpath, dirnames, filenames in os.walk(root, onerror=_raise_walk_error):
            dirnames.sort()
            for filename in sorted(filenames):
                if not is_manifest_file(filename):
                    continue

                path = os.path.join(dirpath, filename)
                try:
                    info = os.stat(path)
                except OSError as e:
                    raise ManifestDiscoveryError(
                        f"get file info for {path}: {e}", path
                    ) from e

                if not stat.S_ISREG(info.st_mode):
                    continue
                if info.st_size == 0:
                    raise EmptyManifestError(path)

                yield path
    except OSError as e:
        failed = e.filename if e.filename is not None else root
        raise ManifestDiscoveryError(
            f"walk directory {root}: {e}", os.fsdecode(failed)
        ) from e


def collect_manifest_files(root: str) -> list[str]:
    """Collect all manifest files below a directory.

    An empty result is not an error here; callers decide whether that is
    acceptable.

    Args:
        root: Absolute directory to walk.

    Returns:
        Lexicographically sorted list of manifest file paths.

    Raises:
        EmptyManifestError: If a manifest file has zero size.
        ManifestDiscoveryError: If the walk fails.
    """
    manifests = sorted(iter_manifest_files(root))
    logger.debug("Collected %d manifest file(s) from %s", len(manifests), root)
    return manifests


__all__ = [
    "MANIFEST_EXTENSIONS",
    "EmptyManifestError",
    "ManifestDiscoveryError",
    "NoManifestFilesError",
    "collect_manifest_files",
    "is_manifest_file",
    "iter_manifest_files",
]
