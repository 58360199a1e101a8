"""Artifact publishing.

Resolves the destination reference for a validated build request and
delegates the push to an ImagePusher. Retries are left to the caller.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from ksail_oci import errors
from ksail_oci.errors import KsailOciError
from ksail_oci.registry.reference import Reference, parse_reference

if TYPE_CHECKING:
    from ksail_oci.builds.image import Image
    from ksail_oci.registry.transport import ImagePusher
    from ksail_oci.types import ValidatedBuildRequest

logger = logging.getLogger(__name__)


class PublishError(KsailOciError):
    """Raised when pushing an artifact to the registry fails."""

    default_code = errors.PUBLISH_FAILED

    def __init__(self, reference: str, reason: str) -> None:
        super().__init__(f"push artifact {reference}: {reason}")
        self.reference = reference


def format_reference(request: ValidatedBuildRequest) -> str:
    """Return '{endpoint}/{repository}:{version}' for a request."""
    return f"{request.registry_endpoint}/{request.repository}:{request.version}"


def resolve_reference(
    request: ValidatedBuildRequest,
    insecure: bool = True,
) -> Reference:
    """Parse the destination reference for a request.

    Parsing is permissive so registries without verified TLS and
    repositories outside strict naming conventions are accepted.

    Args:
        request: Validated build request.
        insecure: Allow plain HTTP for the registry.

    Returns:
        Parsed Reference.

    Raises:
        InvalidReferenceError: If the reference is malformed.
    """
    return parse_reference(format_reference(request), insecure=insecure)


def publish_image(
    pusher: ImagePusher,
    reference: Reference,
    image: Image,
    timeout: float | None = None,
    cancel_event: threading.Event | None = None,
) -> str:
    """Push an image through the given pusher.

    Args:
        pusher: Registry transport.
        reference: Destination reference.
        image: Assembled image.
        timeout: Overall push deadline in seconds.
        cancel_event: Event that aborts the push when set.

    Returns:
        Manifest digest reported by the pusher.

    Raises:
        PublishError: Wrapping any transport failure.
    """
    try:
        digest = pusher.push(
            reference, image, timeout=timeout, cancel_event=cancel_event
        )
    except Exception as e:
        raise PublishError(str(reference), str(e)) from e

    logger.debug("Published %s with digest %s", reference, digest)
    return digest


__all__ = [
    "PublishError",
    "format_reference",
    "publish_image",
    "resolve_reference",
]
