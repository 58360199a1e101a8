"""Shared type definitions for ksail_oci.

This module contains the request/result types passed between the build
pipeline stages, kept here to avoid circular imports between subpackages.
"""

import os
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class BuildRequest(BaseModel):
    """User-supplied inputs for building an artifact from a manifest directory.

    Values may be empty or unnormalized; see
    :func:`ksail_oci.builds.validation.validate_build_request`.

    Attributes:
        name: Optional artifact name (derived from repository if empty).
        source_path: Directory containing manifest files.
        registry_endpoint: Registry host, optionally with scheme and path.
        repository: Optional repository path (derived from source if empty).
        version: Semantic version or ``latest``.
    """

    model_config = ConfigDict(
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    name: str = Field(default="", description="Artifact name")
    source_path: str = Field(default="", description="Manifest directory")
    registry_endpoint: str = Field(default="", description="Registry host[:port]")
    repository: str = Field(default="", description="Repository path")
    version: str = Field(default="", description="Semantic version or 'latest'")

    @field_validator("*", mode="before")
    @classmethod
    def coerce_to_str(cls, v: Any) -> Any:
        """Accept None and path-like values for string fields."""
        if v is None:
            return ""
        if isinstance(v, os.PathLike):
            return os.fspath(v)
        return v


@dataclass(frozen=True)
class ValidatedBuildRequest:
    """Sanitized build inputs ready for packaging and publishing.

    All fields are non-empty and canonical.
    """

    name: str
    source_path: str
    registry_endpoint: str
    repository: str
    version: str


class Artifact(BaseModel):
    """Metadata describing a published OCI artifact.

    Serialized with camelCase keys (``registryEndpoint``, ``sourcePath``,
    ``createdAt``) when dumped with ``by_alias=True``.
    """

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    name: str
    version: str
    registry_endpoint: str
    repository: str
    tag: str
    source_path: str
    created_at: datetime


@dataclass(frozen=True)
class BuildResult:
    """Outcome of a successful artifact build.

    Attributes:
        artifact: Published artifact metadata.
        reference: Registry reference the image was pushed to.
        digest: Manifest digest reported by the registry transport.
    """

    artifact: Artifact
    reference: str
    digest: str


__all__ = [
    "Artifact",
    "BuildRequest",
    "BuildResult",
    "ValidatedBuildRequest",
]
