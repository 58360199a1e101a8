"""Registry reference parsing.

This module handles:
- Splitting 'registry/repository:tag' strings into their parts
- Permissive ("weak") validation: a missing tag defaults to 'latest'
- Choosing the URL scheme for insecure and loopback registries
"""

from __future__ import annotations

import ipaddress
import re
from dataclasses import dataclass

from ksail_oci import errors
from ksail_oci.errors import KsailOciError

DEFAULT_REGISTRY = "index.docker.io"
DOCKER_HUB_ALIASES = frozenset({"docker.io", "index.docker.io"})
DEFAULT_TAG = "latest"
MAX_REPOSITORY_LENGTH = 255

REGISTRY_PATTERN = re.compile(
    r"(?:[a-zA-Z0-9](?:[a-zA-Z0-9-]*[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]*[a-zA-Z0-9])?)*"
    r"|\[[0-9a-fA-F:]+\])"
    r"(?::[0-9]+)?"
)
REPOSITORY_COMPONENT_PATTERN = re.compile(r"[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*")
TAG_PATTERN = re.compile(r"[\w][\w.-]{0,127}", re.ASCII)
DIGEST_PATTERN = re.compile(r"sha256:[a-f0-9]{64}")


class InvalidReferenceError(KsailOciError):
    """Raised when a registry reference cannot be parsed."""

    default_code = errors.INVALID_REFERENCE

    def __init__(self, reference: str, reason: str) -> None:
        super().__init__(f"parse reference {reference!r}: {reason}")
        self.reference = reference


@dataclass(frozen=True)
class Reference:
    """A parsed registry reference.

    Attributes:
        registry: Registry host[:port].
        repository: Repository path within the registry.
        tag: Tag, when the reference names a tag.
        digest: Digest, when the reference names a digest.
        insecure: Whether plain HTTP is acceptable for this registry.
    """

    registry: str
    repository: str
    tag: str | None = None
    digest: str | None = None
    insecure: bool = False

    @property
    def identifier(self) -> str:
        """Tag or digest used to address the manifest."""
        return self.digest or self.tag or DEFAULT_TAG

    @property
    def context(self) -> str:
        """Registry and repository without the identifier."""
        return f"{self.registry}/{self.repository}"

    @property
    def scheme(self) -> str:
        """URL scheme to reach the registry with."""
        if self.insecure or is_loopback_or_private(self.registry):
            return "http"
        return "https"

    def __str__(self) -> str:
        if self.digest:
            return f"{self.context}@{self.digest}"
        return f"{self.context}:{self.identifier}"


def _host(registry: str) -> str:
    if registry.startswith("["):
        return registry[1 : registry.find("]")]
    return registry.rsplit(":", 1)[0] if ":" in registry else registry


def is_loopback_or_private(registry: str) -> bool:
    """Check whether a registry host is local or on a private network.

    Args:
        registry: Registry host[:port].

    Returns:
        True for localhost, loopback and RFC 1918 addresses.
    """
    host = _host(registry)
    if host == "localhost":
        return True
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return False
    return address.is_loopback or address.is_private


def _split_registry(name: str) -> tuple[str, str]:
    first, sep, rest = name.partition("/")
    if sep and ("." in first or ":" in first or first == "localhost"):
        return first, rest
    return DEFAULT_REGISTRY, name


def parse_reference(
    reference: str,
    insecure: bool = False,
    strict: bool = False,
) -> Reference:
    """Parse a registry reference string.

    Args:
        reference: String like 'localhost:5000/sample/app:1.2.3'.
        insecure: Allow plain HTTP for this registry.
        strict: Require an explicit tag or digest.

    Returns:
        Parsed Reference.

    Raises:
        InvalidReferenceError: If the reference is malformed.
    """
    name = reference.strip()
    if not name:
        raise InvalidReferenceError(reference, "reference is empty")

    tag: str | None = None
    digest: str | None = None

    name, at, digest_part = name.partition("@")
    if at:
        if not DIGEST_PATTERN.fullmatch(digest_part):
            raise InvalidReferenceError(reference, f"invalid digest {digest_part!r}")
        digest = digest_part
    else:
        colon = name.rfind(":")
        if colon > name.rfind("/"):
            tag = name[colon + 1 :]
            name = name[:colon]
            if not TAG_PATTERN.fullmatch(tag):
                raise InvalidReferenceError(reference, f"invalid tag {tag!r}")

    if tag is None and digest is None:
        if strict:
            raise InvalidReferenceError(reference, "a tag or digest is required")
        tag = DEFAULT_TAG

    registry, repository = _split_registry(name)
    if not REGISTRY_PATTERN.fullmatch(registry):
        raise InvalidReferenceError(reference, f"invalid registry {registry!r}")

    if registry in DOCKER_HUB_ALIASES:
        registry = DEFAULT_REGISTRY
        if "/" not in repository:
            repository = f"library/{repository}"

    if not repository or len(repository) > MAX_REPOSITORY_LENGTH:
        raise InvalidReferenceError(
            reference, f"repository must be 1-{MAX_REPOSITORY_LENGTH} characters"
        )
    for component in repository.split("/"):
        if not REPOSITORY_COMPONENT_PATTERN.fullmatch(component):
            raise InvalidReferenceError(
                reference, f"invalid repository component {component!r}"
            )

    return Reference(
        registry=registry,
        repository=repository,
        tag=tag,
        digest=digest,
        insecure=insecure,
    )


__all__ = [
    "DEFAULT_REGISTRY",
    "DEFAULT_TAG",
    "InvalidReferenceError",
    "Reference",
    "is_loopback_or_private",
    "parse_reference",
]
