"""Build request validation and normalization.

This module handles:
- Resolving and checking the manifest source directory
- Normalizing the registry endpoint to a bare host[:port]
- Validating semantic versions (or the special ``latest`` tag)
- Deriving repository and artifact names from sanitized path segments

Rules are applied in a fixed order and the first failing rule wins.
"""

from __future__ import annotations

import logging
import os
import re
import stat

from ksail_oci import errors
from ksail_oci.errors import KsailOciError
from ksail_oci.types import BuildRequest, ValidatedBuildRequest

logger = logging.getLogger(__name__)

DEFAULT_REPOSITORY_NAME = "ksail-workloads"
DEFAULT_ARTIFACT_NAME = "ksail-workload"
LATEST_VERSION = "latest"

# Scheme prefixes stripped from registry endpoints, in order
ENDPOINT_PREFIXES = ("oci://", "https://", "http://")

# Semantic Versioning 2.0.0: MAJOR.MINOR.PATCH[-prerelease][+build]
SEMVER_PATTERN = re.compile(
    r"(?P<major>0|[1-9][0-9]*)\.(?P<minor>0|[1-9][0-9]*)\.(?P<patch>0|[1-9][0-9]*)"
    r"(?:-(?P<prerelease>"
    r"(?:0|[1-9][0-9]*|[0-9]*[a-zA-Z-][0-9a-zA-Z-]*)"
    r"(?:\.(?:0|[1-9][0-9]*|[0-9]*[a-zA-Z-][0-9a-zA-Z-]*))*"
    r"))?"
    r"(?:\+(?P<build>[0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*))?"
)

# Anything that is not a lowercase ASCII letter or digit
_SEPARATOR_RUN = re.compile(r"[^a-z0-9]+")


class BuildValidationError(KsailOciError):
    """Base class for build request validation failures."""


class SourcePathRequiredError(BuildValidationError):
    """Raised when no source path was provided."""

    default_code = errors.SOURCE_PATH_REQUIRED

    def __init__(self) -> None:
        super().__init__("source path is required")


class SourcePathNotFoundError(BuildValidationError):
    """Raised when the source path does not exist."""

    default_code = errors.SOURCE_PATH_NOT_FOUND

    def __init__(self, path: str) -> None:
        super().__init__(f"source path does not exist: {path}")
        self.path = path


class SourcePathNotDirectoryError(BuildValidationError):
    """Raised when the source path is not a directory."""

    default_code = errors.SOURCE_PATH_NOT_DIRECTORY

    def __init__(self, path: str) -> None:
        super().__init__(f"source path must be a directory: {path}")
        self.path = path


class SourcePathResolveError(BuildValidationError):
    """Raised when the source path cannot be resolved or inspected."""

    default_code = errors.SOURCE_PATH_RESOLVE


class RegistryEndpointRequiredError(BuildValidationError):
    """Raised when the registry endpoint is missing."""

    default_code = errors.REGISTRY_ENDPOINT_REQUIRED

    def __init__(self) -> None:
        super().__init__("registry endpoint is required")


class VersionRequiredError(BuildValidationError):
    """Raised when no version was provided."""

    default_code = errors.VERSION_REQUIRED

    def __init__(self) -> None:
        super().__init__("version is required")


class VersionInvalidError(BuildValidationError):
    """Raised when the version does not follow semantic versioning."""

    default_code = errors.VERSION_INVALID

    def __init__(self, version: str, reason: str) -> None:
        super().__init__(f"version must follow semantic versioning: {reason}")
        self.version = version


def parse_semver(version: str) -> dict[str, str | None]:
    """Parse a semantic version string.

    Args:
        version: Version without a leading 'v'.

    Returns:
        Dictionary with major, minor, patch, prerelease and build parts.

    Raises:
        ValueError: If the string is not a valid semantic version.
    """
    match = SEMVER_PATTERN.fullmatch(version)
    if match is None:
        raise ValueError(f"invalid semantic version: {version!r}")
    return match.groupdict()


def resolve_source_path(raw: str) -> str:
    """Resolve and check the manifest source directory.

    Args:
        raw: User-supplied source path.

    Returns:
        Absolute path to an existing directory.

    Raises:
        SourcePathRequiredError: If the path is empty.
        SourcePathNotFoundError: If the path does not exist.
        SourcePathNotDirectoryError: If the path is not a directory.
        SourcePathResolveError: If the path cannot be resolved or stat'ed.
    """
    trimmed = raw.strip()
    if not trimmed:
        raise SourcePathRequiredError()

    try:
        abs_source = os.path.abspath(trimmed)
    except (OSError, ValueError) as e:
        raise SourcePathResolveError(f"resolve source path: {e}") from e

    try:
        info = os.stat(abs_source)
    except FileNotFoundError:
        raise SourcePathNotFoundError(abs_source) from None
    except (OSError, ValueError) as e:
        raise SourcePathResolveError(f"stat source path {abs_source}: {e}") from e

    if not stat.S_ISDIR(info.st_mode):
        raise SourcePathNotDirectoryError(abs_source)

    return abs_source


def normalize_registry_endpoint(raw: str) -> str:
    """Strip scheme prefixes and path suffixes from a registry endpoint.

    Applying this function to its own output returns the same value.

    Args:
        raw: Registry endpoint, e.g. 'https://localhost:5000/extra'.

    Returns:
        Bare host[:port], e.g. 'localhost:5000'.

    Raises:
        RegistryEndpointRequiredError: If nothing remains after stripping.
    """
    trimmed = raw.strip()
    while trimmed.startswith(ENDPOINT_PREFIXES):
        prefix = next(p for p in ENDPOINT_PREFIXES if trimmed.startswith(p))
        trimmed = trimmed[len(prefix) :].strip()

    # Keep host[:port] only; a leading '/' leaves no host
    idx = trimmed.find("/")
    if idx >= 0:
        trimmed = trimmed[:idx].strip()

    if not trimmed:
        raise RegistryEndpointRequiredError()

    return trimmed


def normalize_version(raw: str) -> str:
    """Validate and normalize a version string.

    Accepts semantic versions with an optional leading 'v', or 'latest'
    in any letter case, which is always returned as lowercase 'latest'.

    Args:
        raw: User-supplied version.

    Returns:
        The version without a leading 'v', or 'latest'.

    Raises:
        VersionRequiredError: If the version is empty.
        VersionInvalidError: If the version is not a semantic version.
    """
    trimmed = raw.strip()
    if not trimmed:
        raise VersionRequiredError()

    if trimmed.lower() == LATEST_VERSION:
        return LATEST_VERSION

    trimmed = trimmed.removeprefix("v")
    if not trimmed:
        raise VersionRequiredError()

    try:
        parse_semver(trimmed)
    except ValueError as e:
        raise VersionInvalidError(trimmed, str(e)) from e

    return trimmed


def sanitize_segment(segment: str) -> str:
    """Convert a name segment to lowercase alphanumerics joined by hyphens.

    Runs of any other characters (including existing hyphens and non-ASCII
    characters) collapse into a single hyphen; leading and trailing hyphens
    are removed.

    Args:
        segment: Raw path segment.

    Returns:
        Sanitized segment, possibly empty.
    """
    lowered = segment.strip().lower()
    return _SEPARATOR_RUN.sub("-", lowered).strip("-")


def normalize_repository_name(candidate: str, source_path: str) -> str:
    """Build a repository path from the candidate or the source directory name.

    Args:
        candidate: User-supplied repository (may be empty).
        source_path: Absolute source directory, used when candidate is empty.

    Returns:
        Slash-separated sanitized repository path.
    """
    path_candidate = candidate.strip()
    if not path_candidate:
        path_candidate = os.path.basename(os.path.normpath(source_path))

    path_candidate = path_candidate.replace("\\", "/").strip("/")
    if not path_candidate:
        return DEFAULT_REPOSITORY_NAME

    segments = [sanitize_segment(s) for s in path_candidate.split("/")]
    normalized = [s for s in segments if s]

    if not normalized:
        return DEFAULT_REPOSITORY_NAME

    return "/".join(normalized)


def normalize_artifact_name(candidate: str, repository: str) -> str:
    """Derive the artifact name from the candidate or the repository.

    Args:
        candidate: User-supplied name (may be empty).
        repository: Normalized repository path.

    Returns:
        Sanitized artifact name.
    """
    trimmed = candidate.strip()
    if not trimmed:
        trimmed = repository.rsplit("/", 1)[-1]

    return sanitize_segment(trimmed) or DEFAULT_ARTIFACT_NAME


def validate_build_request(request: BuildRequest) -> ValidatedBuildRequest:
    """Normalize and verify a build request.

    Args:
        request: Raw build request.

    Returns:
        ValidatedBuildRequest with canonical, non-empty fields.

    Raises:
        BuildValidationError: The first failing validation rule.
    """
    source_path = resolve_source_path(request.source_path)
    endpoint = normalize_registry_endpoint(request.registry_endpoint)
    version = normalize_version(request.version)
    repository = normalize_repository_name(request.repository, source_path)
    name = normalize_artifact_name(request.name, repository)

    logger.debug(
        "Validated build request: %s/%s:%s (name=%s, source=%s)",
        endpoint,
        repository,
        version,
        name,
        source_path,
    )

    return ValidatedBuildRequest(
        name=name,
        source_path=source_path,
        registry_endpoint=endpoint,
        repository=repository,
        version=version,
    )


__all__ = [
    "DEFAULT_ARTIFACT_NAME",
    "DEFAULT_REPOSITORY_NAME",
    "LATEST_VERSION",
    "SEMVER_PATTERN",
    "BuildValidationError",
    "RegistryEndpointRequiredError",
    "SourcePathNotDirectoryError",
    "SourcePathNotFoundError",
    "SourcePathRequiredError",
    "SourcePathResolveError",
    "VersionInvalidError",
    "VersionRequiredError",
    "normalize_artifact_name",
    "normalize_registry_endpoint",
    "normalize_repository_name",
    "normalize_version",
    "parse_semver",
    "resolve_source_path",
    "sanitize_segment",
    "validate_build_request",
]
