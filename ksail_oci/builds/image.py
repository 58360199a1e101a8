"""OCI image assembly.

This module handles:
- Building the OCI image config (platform, creation time, labels)
- Building the OCI image manifest referencing the config and one layer
- Computing the content digests pushed to the registry

Each artifact is a fresh image with exactly one layer and no base image.
"""

from __future__ import annotations

import json
import logging
import platform
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from ksail_oci import errors
from ksail_oci.builds.layer import Layer, sha256_digest
from ksail_oci.errors import KsailOciError
from ksail_oci.types import ValidatedBuildRequest

logger = logging.getLogger(__name__)

MANIFEST_MEDIA_TYPE = "application/vnd.oci.image.manifest.v1+json"
CONFIG_MEDIA_TYPE = "application/vnd.oci.image.config.v1+json"

# Standard OCI annotation keys used as image labels
LABEL_TITLE = "org.opencontainers.image.title"
LABEL_VERSION = "org.opencontainers.image.version"
LABEL_SOURCE = "org.opencontainers.image.source"
# Provenance labels
LABEL_REPOSITORY = "devantler.tech/ksail/repository"
LABEL_REGISTRY_ENDPOINT = "devantler.tech/ksail/registryEndpoint"

# platform.machine() values mapped to OCI architecture names
_ARCH_ALIASES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "i386": "386",
    "i686": "386",
    "x86": "386",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv7l": "arm",
    "armv6l": "arm",
    "ppc64le": "ppc64le",
    "s390x": "s390x",
    "riscv64": "riscv64",
}

# sys.platform prefixes mapped to OCI OS names
_OS_ALIASES = {
    "linux": "linux",
    "darwin": "darwin",
    "win32": "windows",
    "cygwin": "windows",
    "freebsd": "freebsd",
}


class ImageBuildError(KsailOciError):
    """Raised when the image config or manifest cannot be assembled."""

    default_code = errors.IMAGE_BUILD


@dataclass(frozen=True)
class Image:
    """An assembled single-layer OCI image.

    Attributes:
        config: Serialized image config blob.
        manifest: Serialized image manifest.
        layer: The image's only layer.
    """

    config: bytes
    manifest: bytes
    layer: Layer
    media_type: str = MANIFEST_MEDIA_TYPE

    @property
    def config_digest(self) -> str:
        """Digest of the config blob."""
        return sha256_digest(self.config)

    @property
    def digest(self) -> str:
        """Digest of the manifest, identifying the image in the registry."""
        return sha256_digest(self.manifest)

    def config_file(self) -> dict[str, Any]:
        """Return the decoded image config."""
        return json.loads(self.config)

    @property
    def labels(self) -> dict[str, str]:
        """Labels embedded in the image config."""
        return self.config_file()["config"]["Labels"]

    @property
    def created(self) -> str:
        """Creation timestamp recorded in the image config."""
        return self.config_file()["created"]


def current_platform() -> tuple[str, str]:
    """Return the build environment's OS and architecture in OCI terms.

    Returns:
        Tuple of (os, architecture), e.g. ('linux', 'amd64').
    """
    machine = platform.machine().lower()
    arch = _ARCH_ALIASES.get(machine, machine or "unknown")

    os_name = sys.platform
    for prefix, name in _OS_ALIASES.items():
        if sys.platform.startswith(prefix):
            os_name = name
            break

    return os_name, arch


def format_timestamp(value: datetime) -> str:
    """Format a datetime as an RFC 3339 UTC timestamp.

    Args:
        value: Timezone-aware or naive (assumed UTC) datetime.

    Returns:
        Timestamp like '2024-01-02T03:04:05Z'.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def build_labels(request: ValidatedBuildRequest) -> dict[str, str]:
    """Build the descriptive label set for an artifact.

    Args:
        request: Validated build request.

    Returns:
        Label mapping embedded in the image config.
    """
    return {
        LABEL_TITLE: request.name,
        LABEL_VERSION: request.version,
        LABEL_SOURCE: request.source_path,
        LABEL_REPOSITORY: request.repository,
        LABEL_REGISTRY_ENDPOINT: request.registry_endpoint,
    }


def _canonical_json(data: dict[str, Any]) -> bytes:
    return json.dumps(data, sort_keys=True, separators=(",", ":")).encode("utf-8")


def build_config(
    layer: Layer,
    request: ValidatedBuildRequest,
    created: datetime | None = None,
) -> dict[str, Any]:
    """Build the OCI image config for a layer.

    Args:
        layer: The image's only layer.
        request: Validated build request.
        created: Creation time; defaults to now (UTC).

    Returns:
        Image config dictionary.
    """
    if created is None:
        created = datetime.now(timezone.utc)
    os_name, arch = current_platform()

    return {
        "architecture": arch,
        "os": os_name,
        "created": format_timestamp(created),
        "config": {"Labels": build_labels(request)},
        "rootfs": {"type": "layers", "diff_ids": [layer.diff_id]},
    }


def build_manifest(config: bytes, layer: Layer) -> dict[str, Any]:
    """Build the OCI image manifest.

    Args:
        config: Serialized config blob.
        layer: The image's only layer.

    Returns:
        Image manifest dictionary.
    """
    return {
        "schemaVersion": 2,
        "mediaType": MANIFEST_MEDIA_TYPE,
        "config": {
            "mediaType": CONFIG_MEDIA_TYPE,
            "digest": sha256_digest(config),
            "size": len(config),
        },
        "layers": [
            {
                "mediaType": layer.media_type,
                "digest": layer.digest,
                "size": layer.size,
            }
        ],
    }


def build_image(
    layer: Layer,
    request: ValidatedBuildRequest,
    created: datetime | None = None,
) -> Image:
    """Assemble a single-layer OCI image with artifact labels.

    Args:
        layer: Manifest layer.
        request: Validated build request.
        created: Creation time; defaults to now (UTC).

    Returns:
        Assembled Image.

    Raises:
        ImageBuildError: If the config or manifest cannot be serialized.
    """
    try:
        config = _canonical_json(build_config(layer, request, created))
        manifest = _canonical_json(build_manifest(config, layer))
    except (TypeError, ValueError) as e:
        raise ImageBuildError(f"serialize image: {e}") from e

    image = Image(config=config, manifest=manifest, layer=layer)
    logger.debug("Assembled image %s for %s", image.digest[:19], request.name)
    return image


__all__ = [
    "CONFIG_MEDIA_TYPE",
    "LABEL_REGISTRY_ENDPOINT",
    "LABEL_REPOSITORY",
    "LABEL_SOURCE",
    "LABEL_TITLE",
    "LABEL_VERSION",
    "MANIFEST_MEDIA_TYPE",
    "Image",
    "ImageBuildError",
    "build_config",
    "build_image",
    "build_labels",
    "build_manifest",
    "current_platform",
    "format_timestamp",
]
