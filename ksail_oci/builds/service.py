"""Build service module.

This module provides the high-level build API:
- WorkloadArtifactBuilder.build(): validate, package and push an artifact
- build_artifact(): one-shot convenience wrapper

The pipeline is linear and stops at the first failing stage. Nothing
outside the process is touched before the push, so earlier failures need
no cleanup.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from ksail_oci.builds.collector import NoManifestFilesError, collect_manifest_files
from ksail_oci.builds.image import build_image
from ksail_oci.builds.layer import new_manifest_layer
from ksail_oci.builds.validation import validate_build_request
from ksail_oci.config import get_settings
from ksail_oci.registry.publisher import publish_image, resolve_reference
from ksail_oci.registry.transport import RemoteImagePusher
from ksail_oci.types import Artifact, BuildRequest, BuildResult

if TYPE_CHECKING:
    from ksail_oci.config import Settings
    from ksail_oci.registry.transport import ImagePusher

logger = logging.getLogger(__name__)


class WorkloadArtifactBuilder:
    """Packages manifest directories into OCI artifacts and pushes them.

    Args:
        pusher: Registry transport. Defaults to a RemoteImagePusher
            configured from settings, created on first use.
        settings: Settings used for the default pusher and push timeout.
    """

    def __init__(
        self,
        pusher: ImagePusher | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._pusher = pusher
        self._settings = settings

    @property
    def settings(self) -> Settings:
        if self._settings is None:
            self._settings = get_settings()
        return self._settings

    @property
    def pusher(self) -> ImagePusher:
        """The configured pusher, creating the default one if needed."""
        if self._pusher is None:
            self._pusher = RemoteImagePusher.from_settings(self.settings)
        return self._pusher

    def build(
        self,
        request: BuildRequest,
        *,
        timeout: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> BuildResult:
        """Validate, package and push a manifest directory.

        Steps:
        1. Validate and normalize the request
        2. Collect manifest files from the source directory
        3. Package them into a tar layer
        4. Assemble a single-layer image with artifact labels
        5. Resolve the destination reference
        6. Push the image
        7. Return artifact metadata

        Args:
            request: Raw build request.
            timeout: Overall push deadline in seconds; None waits indefinitely.
            cancel_event: Event that aborts the push when set.

        Returns:
            BuildResult with the published artifact.

        Raises:
            BuildValidationError: If the request is invalid.
            NoManifestFilesError: If the directory has no manifest files.
            EmptyManifestError: If a manifest file is empty.
            ManifestDiscoveryError: If the directory cannot be walked.
            LayerPackagingError: If a file cannot be archived.
            ImageBuildError: If the image cannot be assembled.
            InvalidReferenceError: If the destination reference is invalid.
            PublishError: If the push fails.
        """
        validated = validate_build_request(request)

        manifest_files = collect_manifest_files(validated.source_path)
        if not manifest_files:
            raise NoManifestFilesError(validated.source_path)

        layer = new_manifest_layer(validated.source_path, manifest_files)
        image = build_image(layer, validated)

        reference = resolve_reference(
            validated, insecure=self.settings.insecure_registry
        )
        digest = publish_image(
            self.pusher,
            reference,
            image,
            timeout=timeout,
            cancel_event=cancel_event,
        )

        artifact = Artifact(
            name=validated.name,
            version=validated.version,
            registry_endpoint=validated.registry_endpoint,
            repository=validated.repository,
            tag=validated.version,
            source_path=validated.source_path,
            created_at=datetime.now(timezone.utc),
        )

        logger.info(
            "Published %s (%d manifest file(s), digest %s)",
            reference,
            len(manifest_files),
            digest,
        )
        return BuildResult(artifact=artifact, reference=str(reference), digest=digest)


def build_artifact(
    request: BuildRequest,
    pusher: ImagePusher | None = None,
    timeout: float | None = None,
    cancel_event: threading.Event | None = None,
) -> BuildResult:
    """Build and push an artifact with a one-off builder.

    Args:
        request: Raw build request.
        pusher: Optional registry transport.
        timeout: Overall push deadline in seconds.
        cancel_event: Event that aborts the push when set.

    Returns:
        BuildResult with the published artifact.
    """
    builder = WorkloadArtifactBuilder(pusher=pusher)
    return builder.build(request, timeout=timeout, cancel_event=cancel_event)


__all__ = ["WorkloadArtifactBuilder", "build_artifact"]
