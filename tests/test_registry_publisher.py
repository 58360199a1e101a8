"""Tests for registry/publisher.py module."""

import threading

import pytest
from conftest import FakePusher

from ksail_oci.builds.image import build_image
from ksail_oci.builds.layer import new_manifest_layer
from ksail_oci.registry.publisher import (
    PublishError,
    format_reference,
    publish_image,
    resolve_reference,
)
from ksail_oci.registry.reference import InvalidReferenceError
from ksail_oci.types import ValidatedBuildRequest


@pytest.fixture
def validated(manifest_dir) -> ValidatedBuildRequest:
    return ValidatedBuildRequest(
        name="app",
        source_path=str(manifest_dir),
        registry_endpoint="localhost:5000",
        repository="sample/app",
        version="1.2.3",
    )


@pytest.fixture
def image(manifest_dir, validated):
    layer = new_manifest_layer(
        str(manifest_dir), [str(manifest_dir / "deployment.yaml")]
    )
    return build_image(layer, validated)


class TestResolveReference:
    """Tests for reference formatting and resolution."""

    def test_format_reference(self, validated):
        """Should join endpoint, repository and version."""
        assert format_reference(validated) == "localhost:5000/sample/app:1.2.3"

    def test_resolve_reference(self, validated):
        """Should parse the formatted reference."""
        ref = resolve_reference(validated)
        assert ref.registry == "localhost:5000"
        assert ref.repository == "sample/app"
        assert ref.tag == "1.2.3"
        assert ref.insecure is True

    def test_resolve_secure(self, validated):
        """Should pass the insecure flag through."""
        assert resolve_reference(validated, insecure=False).insecure is False

    def test_build_metadata_not_a_valid_tag(self, validated):
        """Versions with build metadata cannot be used as tags."""
        request = ValidatedBuildRequest(
            name=validated.name,
            source_path=validated.source_path,
            registry_endpoint=validated.registry_endpoint,
            repository=validated.repository,
            version="1.2.3+build.5",
        )
        with pytest.raises(InvalidReferenceError):
            resolve_reference(request)


class TestPublishImage:
    """Tests for publish_image function."""

    def test_returns_digest(self, validated, image):
        """Should return the pusher's digest."""
        pusher = FakePusher(digest="sha256:" + "1" * 64)
        ref = resolve_reference(validated)

        assert publish_image(pusher, ref, image) == "sha256:" + "1" * 64
        (call,) = pusher.calls
        assert call.reference == ref
        assert call.image is image

    def test_forwards_timeout_and_cancel_event(self, validated, image):
        """Should pass the deadline and cancel event to the pusher."""
        pusher = FakePusher()
        event = threading.Event()

        publish_image(
            pusher, resolve_reference(validated), image, timeout=5.0, cancel_event=event
        )

        assert pusher.calls[0].timeout == 5.0
        assert pusher.calls[0].cancel_event is event

    def test_wraps_errors(self, validated, image):
        """Should wrap pusher failures and keep the cause."""
        cause = ConnectionError("connection refused")
        pusher = FakePusher(error=cause)

        with pytest.raises(PublishError) as exc_info:
            publish_image(pusher, resolve_reference(validated), image)

        assert exc_info.value.__cause__ is cause
        assert exc_info.value.code == "publish_failed"
        assert "localhost:5000/sample/app:1.2.3" in str(exc_info.value)
        assert "connection refused" in str(exc_info.value)
