"""Error base class and stable error codes.

Every error raised by ksail_oci carries a ``code`` attribute so callers
(the CLI, automation) can branch on it without parsing messages.
"""

from typing import Any

# Validation
SOURCE_PATH_REQUIRED = "source_path_required"
SOURCE_PATH_NOT_FOUND = "source_path_not_found"
SOURCE_PATH_NOT_DIRECTORY = "source_path_not_directory"
SOURCE_PATH_RESOLVE = "source_path_resolve"
REGISTRY_ENDPOINT_REQUIRED = "registry_endpoint_required"
VERSION_REQUIRED = "version_required"
VERSION_INVALID = "version_invalid"

# Build pipeline
NO_MANIFEST_FILES = "no_manifest_files"
EMPTY_MANIFEST = "empty_manifest"
MANIFEST_DISCOVERY = "manifest_discovery"
LAYER_PACKAGING = "layer_packaging"
IMAGE_BUILD = "image_build"

# Registry
INVALID_REFERENCE = "invalid_reference"
PUBLISH_FAILED = "publish_failed"
HTTP_ERROR = "http_error"
TIMEOUT = "timeout"
NETWORK_ERROR = "network_error"
AUTH_ERROR = "auth_error"
CANCELLED = "cancelled"

INTERNAL_ERROR = "internal_error"


class KsailOciError(Exception):
    """Base class for all ksail_oci errors."""

    default_code = INTERNAL_ERROR

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code or self.default_code


def error_to_dict(error: BaseException) -> dict[str, Any]:
    """Render an exception as a structured error object.

    Args:
        error: Exception to render.

    Returns:
        Dictionary with ``code`` and ``message`` keys, plus ``cause`` when
        the error was chained from another exception.
    """
    result: dict[str, Any] = {
        "code": getattr(error, "code", INTERNAL_ERROR),
        "message": str(error),
    }
    if error.__cause__ is not None:
        result["cause"] = str(error.__cause__)
    return result


__all__ = [
    "AUTH_ERROR",
    "CANCELLED",
    "EMPTY_MANIFEST",
    "HTTP_ERROR",
    "IMAGE_BUILD",
    "INTERNAL_ERROR",
    "INVALID_REFERENCE",
    "LAYER_PACKAGING",
    "MANIFEST_DISCOVERY",
    "NETWORK_ERROR",
    "NO_MANIFEST_FILES",
    "PUBLISH_FAILED",
    "REGISTRY_ENDPOINT_REQUIRED",
    "SOURCE_PATH_NOT_DIRECTORY",
    "SOURCE_PATH_NOT_FOUND",
    "SOURCE_PATH_REQUIRED",
    "SOURCE_PATH_RESOLVE",
    "TIMEOUT",
    "VERSION_INVALID",
    "VERSION_REQUIRED",
    "KsailOciError",
    "error_to_dict",
]
