"""Shared fixtures for ksail_oci tests."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from ksail_oci.builds.image import Image
from ksail_oci.registry.reference import Reference

FAKE_DIGEST = "sha256:" + "0" * 64


@dataclass
class PushCall:
    """Arguments recorded for a single push."""

    reference: Reference
    image: Image
    timeout: float | None
    cancel_event: threading.Event | None


@dataclass
class FakePusher:
    """ImagePusher that records pushes instead of talking to a registry."""

    error: Exception | None = None
    digest: str = FAKE_DIGEST
    calls: list[PushCall] = field(default_factory=list)

    def push(
        self,
        reference: Reference,
        image: Image,
        *,
        timeout: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> str:
        self.calls.append(PushCall(reference, image, timeout, cancel_event))
        if self.error is not None:
            raise self.error
        return self.digest


DEPLOYMENT_YAML = """\
apiVersion: apps/v1
kind: Deployment
metadata:
  name: sample
"""


@pytest.fixture
def fake_pusher() -> FakePusher:
    """Create a pusher that records calls."""
    return FakePusher()


@pytest.fixture
def manifest_dir(tmp_path: Path) -> Path:
    """Create a directory holding a single deployment manifest."""
    source = tmp_path / "app"
    source.mkdir()
    (source / "deployment.yaml").write_text(DEPLOYMENT_YAML)
    return source
