"""Image reference parsing and trusted-registry validation.

Every operation that touches the metadata service first checks that the
image it was given lives under the trusted registry domain. Parsing is
lenient: a missing tag is accepted and a missing registry falls back to
Docker Hub, which is never trusted.

Example:
    >>> from floe_metadata_grafeas.image import ImageReference, is_valid_trusted_image
    >>> ref = ImageReference.parse("us.gcr.io/proj/img:tag")
    >>> ref.registry, ref.project, ref.tag
    ('us.gcr.io', 'proj', 'tag')
    >>> is_valid_trusted_image("us.gcr.io/proj/img:tag")
    True
    >>> is_valid_trusted_image("docker.io/proj/img")
    False
"""

from __future__ import annotations

import re

import structlog
from pydantic import BaseModel, ConfigDict, Field

from floe_metadata_grafeas.config import DEFAULT_TRUSTED_SUFFIX
from floe_metadata_grafeas.errors import ImageReferenceParseError

logger = structlog.get_logger(__name__)

# Registry assumed when the reference names none
DEFAULT_REGISTRY = "index.docker.io"

_REPOSITORY_PATTERN = re.compile(r"[a-z0-9_.\-/]{2,255}")
_TAG_PATTERN = re.compile(r"[A-Za-z0-9_][A-Za-z0-9_.\-]{0,127}")
_DIGEST_PATTERN = re.compile(r"sha256:[0-9a-f]{64}")
_REGISTRY_PATTERN = re.compile(r"[A-Za-z0-9.\-]+(:[0-9]+)?")


class ImageReference(BaseModel):
    """A parsed container image reference.

    Attributes:
        raw: The reference exactly as supplied.
        registry: Registry host, with port if one was given.
        repository: Path below the registry.
        tag: Optional tag.
        digest: Optional manifest digest (sha256:...).
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    raw: str = Field(..., description="Reference as supplied by the caller")
    registry: str = Field(..., description="Registry host[:port]")
    repository: str = Field(..., description="Repository path below the registry")
    tag: str | None = Field(default=None, description="Image tag")
    digest: str | None = Field(default=None, description="Manifest digest")

    @classmethod
    def parse(cls, reference: str) -> ImageReference:
        """Parse ``registry/path[:tag][@digest]`` with weak validation.

        Args:
            reference: Image reference string.

        Returns:
            The parsed ImageReference.

        Raises:
            ImageReferenceParseError: If any component is malformed.
        """
        if not reference:
            raise ImageReferenceParseError(reference, "empty reference")

        name, digest = reference, None
        if "@" in reference:
            name, digest = reference.split("@", 1)
            if not _DIGEST_PATTERN.fullmatch(digest):
                raise ImageReferenceParseError(reference, f"invalid digest {digest!r}")

        tag = None
        colon = name.rfind(":")
        if colon > name.rfind("/"):
            name, tag = name[:colon], name[colon + 1 :]
            if not _TAG_PATTERN.fullmatch(tag):
                raise ImageReferenceParseError(reference, f"invalid tag {tag!r}")

        registry, repository = DEFAULT_REGISTRY, name
        parts = name.split("/", 1)
        if len(parts) == 2 and _looks_like_registry(parts[0]):
            registry, repository = parts
            if not _REGISTRY_PATTERN.fullmatch(registry):
                raise ImageReferenceParseError(reference, f"invalid registry {registry!r}")
        elif registry == DEFAULT_REGISTRY and "/" not in repository:
            repository = f"library/{repository}"

        if not _REPOSITORY_PATTERN.fullmatch(repository) or "" in repository.split("/"):
            raise ImageReferenceParseError(reference, f"invalid repository {repository!r}")

        return cls(raw=reference, registry=registry, repository=repository, tag=tag, digest=digest)

    @property
    def project(self) -> str:
        """First repository segment, the owning project on project-scoped registries."""
        return self.repository.split("/", 1)[0]

    @property
    def registry_labels(self) -> list[str]:
        """Registry host split on dots, port left attached to the last label."""
        return self.registry.split(".")

    @property
    def name(self) -> str:
        """Registry and repository without tag or digest."""
        return f"{self.registry}/{self.repository}"


def _looks_like_registry(component: str) -> bool:
    return "." in component or ":" in component or component == "localhost"


def is_trusted_registry(
    registry: str,
    trusted_suffix: tuple[str, str] = DEFAULT_TRUSTED_SUFFIX,
) -> bool:
    """Return True if the registry host ends with the trusted label pair.

    Args:
        registry: Registry host as parsed from a reference.
        trusted_suffix: The two trailing labels required.

    Example:
        >>> is_trusted_registry("eu.gcr.io")
        True
        >>> is_trusted_registry("gcr.io.evil.com")
        False
    """
    labels = registry.split(".")
    if len(labels) < 2:
        return False
    return labels[-2] == trusted_suffix[0] and labels[-1] == trusted_suffix[1]


def is_valid_trusted_image(
    reference: str,
    *,
    trusted_suffix: tuple[str, str] = DEFAULT_TRUSTED_SUFFIX,
) -> bool:
    """Decide whether a reference is an image hosted on the trusted registry.

    Never raises: unparseable references are logged and rejected.

    Args:
        reference: Image reference string.
        trusted_suffix: The two trailing registry labels required.

    Returns:
        True only for parseable references whose registry host ends with
        the trusted suffix.
    """
    try:
        ref = ImageReference.parse(reference)
    except ImageReferenceParseError as e:
        logger.warning("image_reference_parse_failed", image=reference, reason=e.reason)
        return False
    return is_trusted_registry(ref.registry, trusted_suffix)


__all__ = [
    "DEFAULT_REGISTRY",
    "ImageReference",
    "is_trusted_registry",
    "is_valid_trusted_image",
]
