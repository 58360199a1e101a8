"""Registry transport for pushing OCI images.

This module handles:
- The ImagePusher protocol the build pipeline depends on
- A default implementation speaking the OCI distribution API over httpx
- Registry authentication (HTTP basic and bearer token challenges)
- Overall push deadlines and cancellation of in-flight requests

Blobs are uploaded monolithically (POST then PUT) and skipped when the
registry already has them.
"""

from __future__ import annotations

import logging
import re
import threading
import time
from typing import TYPE_CHECKING, Any, Callable, Protocol

import httpx

from ksail_oci import errors
from ksail_oci.errors import KsailOciError
from ksail_oci.registry.reference import DEFAULT_REGISTRY, is_loopback_or_private

if TYPE_CHECKING:
    from ksail_oci.builds.image import Image
    from ksail_oci.config import Settings
    from ksail_oci.registry.reference import Reference

logger = logging.getLogger(__name__)

# Per-request timeout when no overall deadline is tighter (seconds)
REQUEST_TIMEOUT = 60.0

# How often a waiting push checks its cancel event (seconds)
CANCEL_POLL_INTERVAL = 0.05

DEFAULT_USER_AGENT = "ksail-oci"

# Docker Hub's API lives on a different host than its reference name
DOCKER_HUB_API_HOST = "registry-1.docker.io"

_CHALLENGE_PARAM = re.compile(r'(\w+)="([^"]*)"')


class TransportError(KsailOciError):
    """Raised when talking to the registry fails."""

    default_code = errors.HTTP_ERROR

    def __init__(
        self,
        message: str,
        code: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, code)
        self.status_code = status_code


class ImagePusher(Protocol):
    """Pushes an assembled image to a registry reference."""

    def push(
        self,
        reference: Reference,
        image: Image,
        *,
        timeout: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> str:
        """Push an image and return its manifest digest."""
        ...


def parse_challenge(header: str) -> tuple[str, dict[str, str]]:
    """Parse a WWW-Authenticate header.

    Args:
        header: Header value, e.g. 'Bearer realm="...",service="..."'.

    Returns:
        Tuple of (lowercase scheme, parameters).
    """
    scheme, _, params = header.strip().partition(" ")
    return scheme.lower(), dict(_CHALLENGE_PARAM.findall(params))


def registry_host(registry: str) -> str:
    """Return the host serving the registry API for a reference registry."""
    return DOCKER_HUB_API_HOST if registry == DEFAULT_REGISTRY else registry


class _Deadline:
    """Tracks the overall push deadline and cancellation."""

    def __init__(
        self,
        timeout: float | None,
        cancel_event: threading.Event | None,
    ) -> None:
        self.expires_at = None if timeout is None else time.monotonic() + timeout
        self.cancel_event = cancel_event

    def request_timeout(self, operation: str) -> float:
        """Check cancellation and return the timeout for the next request."""
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise TransportError(
                f"Push cancelled before {operation}", code=errors.CANCELLED
            )
        if self.expires_at is None:
            return REQUEST_TIMEOUT
        remaining = self.expires_at - time.monotonic()
        if remaining <= 0:
            raise TransportError(
                f"Push timed out before {operation}", code=errors.TIMEOUT
            )
        return min(remaining, REQUEST_TIMEOUT)

    def run(
        self, operation: str, send: Callable[[], httpx.Response]
    ) -> httpx.Response:
        """Run a blocking request, giving up as soon as the push is cancelled.

        Without a cancel event the request runs on the calling thread.
        Otherwise it runs on a worker thread while the caller waits on the
        event; an abandoned request is left to fail when its client closes.

        Raises:
            TransportError: With code 'cancelled' if the event is set first.
        """
        if self.cancel_event is None:
            return send()

        outcome: dict[str, Any] = {}
        done = threading.Event()

        def worker() -> None:
            try:
                outcome["response"] = send()
            except Exception as e:
                outcome["error"] = e
            finally:
                done.set()

        threading.Thread(
            target=worker, name=f"ksail-oci {operation}", daemon=True
        ).start()
        while not done.wait(CANCEL_POLL_INTERVAL):
            if self.cancel_event.is_set():
                raise TransportError(
                    f"Push cancelled during {operation}", code=errors.CANCELLED
                )

        if "error" in outcome:
            raise outcome["error"]
        return outcome["response"]


class _RegistrySession:
    """State for a single push: base URL, credentials and deadline."""

    def __init__(
        self,
        client: httpx.Client,
        reference: Reference,
        deadline: _Deadline,
        username: str | None,
        password: str | None,
    ) -> None:
        self.client = client
        self.reference = reference
        self.deadline = deadline
        self.username = username
        self.password = password
        self.host = registry_host(reference.registry)
        self.base_url = f"{reference.scheme}://{self.host}"
        self.auth: httpx.Auth | None = None
        self.headers: dict[str, str] = {}

    def request(
        self,
        method: str,
        url: str,
        operation: str,
        headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        timeout = self.deadline.request_timeout(operation)
        try:
            return self.deadline.run(
                operation,
                lambda: self.client.request(
                    method,
                    url,
                    headers={**self.headers, **(headers or {})},
                    auth=self.auth,
                    timeout=timeout,
                    follow_redirects=True,
                    **kwargs,
                ),
            )
        except httpx.TimeoutException as e:
            raise TransportError(
                f"Timeout during {operation} ({url})", code=errors.TIMEOUT
            ) from e
        except httpx.RequestError as e:
            raise TransportError(
                f"Network error during {operation} ({url}): {e}",
                code=errors.NETWORK_ERROR,
            ) from e

    @staticmethod
    def expect(
        response: httpx.Response,
        operation: str,
        *statuses: int,
    ) -> httpx.Response:
        if response.status_code in statuses:
            return response
        code = (
            errors.AUTH_ERROR
            if response.status_code in (401, 403)
            else errors.HTTP_ERROR
        )
        raise TransportError(
            f"HTTP error during {operation}: "
            f"{response.status_code} {response.reason_phrase}",
            code=code,
            status_code=response.status_code,
        )

    def schemes(self) -> list[str]:
        ref = self.reference
        if ref.insecure and not is_loopback_or_private(ref.registry):
            # Prefer TLS when the registry offers it
            return ["https", "http"]
        return [ref.scheme]

    def _ping_any(self) -> httpx.Response:
        *fallbacks, last = self.schemes()
        for scheme in fallbacks:
            try:
                response = self.request("GET", f"{scheme}://{self.host}/v2/", "ping")
            except TransportError as e:
                if e.code != errors.NETWORK_ERROR:
                    raise
                logger.debug("Ping over %s failed, trying next scheme: %s", scheme, e)
                continue
            self.base_url = f"{scheme}://{self.host}"
            return response

        response = self.request("GET", f"{last}://{self.host}/v2/", "ping")
        self.base_url = f"{last}://{self.host}"
        return response

    def ping(self) -> None:
        """Find a working scheme and authenticate if challenged."""
        response = self._ping_any()
        if response.status_code == 401:
            self.authenticate(response.headers.get("WWW-Authenticate", ""))
        else:
            self.expect(response, "ping", 200)

    def authenticate(self, challenge: str) -> None:
        scheme, params = parse_challenge(challenge)
        basic = (
            httpx.BasicAuth(self.username, self.password or "")
            if self.username
            else None
        )

        if scheme == "basic":
            if basic is None:
                raise TransportError(
                    f"Registry {self.reference.registry} requires credentials",
                    code=errors.AUTH_ERROR,
                    status_code=401,
                )
            self.auth = basic
            return

        if scheme != "bearer" or "realm" not in params:
            raise TransportError(
                f"Unsupported auth challenge from {self.reference.registry}: {challenge!r}",
                code=errors.AUTH_ERROR,
                status_code=401,
            )

        query = {"scope": f"repository:{self.reference.repository}:pull,push"}
        if "service" in params:
            query["service"] = params["service"]

        timeout = self.deadline.request_timeout("token request")
        try:
            response = self.deadline.run(
                "token request",
                lambda: self.client.get(
                    params["realm"],
                    params=query,
                    auth=basic,
                    timeout=timeout,
                    follow_redirects=True,
                ),
            )
        except httpx.TimeoutException as e:
            raise TransportError("Timeout requesting token", code=errors.TIMEOUT) from e
        except httpx.RequestError as e:
            raise TransportError(
                f"Network error requesting token: {e}", code=errors.NETWORK_ERROR
            ) from e

        if response.status_code != 200:
            raise TransportError(
                f"Token request failed: {response.status_code} {response.reason_phrase}",
                code=errors.AUTH_ERROR,
                status_code=response.status_code,
            )
        try:
            body = response.json()
        except ValueError as e:
            raise TransportError(
                "Token response is not JSON", code=errors.AUTH_ERROR
            ) from e

        token = body.get("token") or body.get("access_token")
        if not token:
            raise TransportError("Token response has no token", code=errors.AUTH_ERROR)

        self.headers["Authorization"] = f"Bearer {token}"
        logger.debug("Obtained bearer token for %s", self.reference.context)

    def blob_exists(self, digest: str) -> bool:
        url = f"{self.base_url}/v2/{self.reference.repository}/blobs/{digest}"
        response = self.request("HEAD", url, "blob check")
        if response.status_code == 404:
            return False
        self.expect(response, "blob check", 200)
        return True

    def upload_blob(self, digest: str, data: bytes) -> None:
        if self.blob_exists(digest):
            logger.debug("Blob %s already present, skipping upload", digest[:19])
            return

        start_url = f"{self.base_url}/v2/{self.reference.repository}/blobs/uploads/"
        response = self.expect(
            self.request("POST", start_url, "upload start"), "upload start", 202
        )
        location = response.headers.get("Location")
        if not location:
            raise TransportError(
                "Registry did not return an upload location",
                status_code=response.status_code,
            )

        upload_url = str(httpx.URL(self.base_url).join(location))
        self.expect(
            self.request(
                "PUT",
                upload_url,
                "blob upload",
                params={"digest": digest},
                content=data,
                headers={"Content-Type": "application/octet-stream"},
            ),
            "blob upload",
            201,
        )
        logger.debug("Uploaded blob %s (%d bytes)", digest[:19], len(data))

    def put_manifest(self, image: Image) -> str:
        url = (
            f"{self.base_url}/v2/{self.reference.repository}"
            f"/manifests/{self.reference.identifier}"
        )
        response = self.expect(
            self.request(
                "PUT",
                url,
                "manifest upload",
                content=image.manifest,
                headers={"Content-Type": image.media_type},
            ),
            "manifest upload",
            200,
            201,
        )
        return response.headers.get("Docker-Content-Digest", image.digest)


class RemoteImagePusher:
    """Pushes images to a registry over the OCI distribution API.

    Args:
        client: Optional HTTPX client; one is created per push when omitted.
        username: Optional registry username.
        password: Optional registry password or token.
        user_agent: User-Agent header for created clients.
    """

    def __init__(
        self,
        client: httpx.Client | None = None,
        username: str | None = None,
        password: str | None = None,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self.client = client
        self.username = username
        self.password = password
        self.user_agent = user_agent

    @classmethod
    def from_settings(cls, settings: Settings) -> RemoteImagePusher:
        """Create a pusher from application settings."""
        password = (
            settings.registry_password.get_secret_value()
            if settings.registry_password
            else None
        )
        return cls(
            username=settings.registry_username,
            password=password,
            user_agent=settings.user_agent,
        )

    def push(
        self,
        reference: Reference,
        image: Image,
        *,
        timeout: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> str:
        """Push an image to the registry.

        Args:
            reference: Destination reference.
            image: Assembled image.
            timeout: Overall deadline for the push in seconds.
            cancel_event: Event that aborts the push when set, including a
                request already in flight.

        Returns:
            Manifest digest reported by the registry.

        Raises:
            TransportError: If any registry request fails.
        """
        logger.info("Pushing %s", reference)
        deadline = _Deadline(timeout, cancel_event)

        if self.client is not None:
            return self._push(self.client, reference, image, deadline)

        with httpx.Client(
            verify=not reference.insecure,
            headers={"User-Agent": self.user_agent},
            follow_redirects=True,
        ) as client:
            return self._push(client, reference, image, deadline)

    def _push(
        self,
        client: httpx.Client,
        reference: Reference,
        image: Image,
        deadline: _Deadline,
    ) -> str:
        session = _RegistrySession(
            client, reference, deadline, self.username, self.password
        )
        session.ping()
        session.upload_blob(image.layer.digest, image.layer.blob)
        session.upload_blob(image.config_digest, image.config)
        digest = session.put_manifest(image)

        logger.info("Pushed %s (%s)", reference, digest)
        return digest


__all__ = [
    "REQUEST_TIMEOUT",
    "ImagePusher",
    "RemoteImagePusher",
    "TransportError",
    "parse_challenge",
    "registry_host",
]
