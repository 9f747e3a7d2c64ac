"""Metadata fetcher contract.

Policy evaluators depend on MetadataFetcher, not on a concrete service:
given an image they need its vulnerabilities and its attestations.

Example:
    >>> class StaticFetcher(MetadataFetcher):
    ...     @property
    ...     def name(self) -> str:
    ...         return "static"
    ...     @property
    ...     def version(self) -> str:
    ...         return "1.0.0"
    ...     @property
    ...     def floe_api_version(self) -> str:
    ...         return "0.1"
    ...     def get_vulnerabilities(self, image, *, timeout=None):
    ...         return []
    ...     def get_attestations(self, image, *, timeout=None):
    ...         return []
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pydantic import BaseModel

    from floe_metadata_grafeas.models import PgpAttestation, Vulnerability


class HealthState(Enum):
    """Health states reported by health_check()."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class HealthStatus:
    """Health check result.

    Attributes:
        state: The health state.
        message: Optional human-readable message.
        details: Optional diagnostic information.
    """

    state: HealthState
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)


class MetadataFetcher(ABC):
    """Abstract source of per-image vulnerabilities and attestations.

    Abstract Properties:
        name: Fetcher identifier
        version: Fetcher version in semver format (X.Y.Z)
        floe_api_version: Required floe API version (X.Y format)

    Lifecycle Methods:
        startup(): Called before first use
        shutdown(): Called when no longer needed
        health_check(): Returns current health status
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Fetcher identifier."""
        ...

    @property
    @abstractmethod
    def version(self) -> str:
        """Fetcher version in semver format."""
        ...

    @property
    @abstractmethod
    def floe_api_version(self) -> str:
        """Required floe API version."""
        ...

    @property
    def description(self) -> str:
        """Human-readable description (default: empty)."""
        return ""

    def get_config_schema(self) -> type[BaseModel] | None:
        """Return the Pydantic model validating this fetcher's config, if any."""
        return None

    def startup(self) -> None:  # noqa: B027
        """Initialize resources. Default does nothing."""

    def shutdown(self) -> None:  # noqa: B027
        """Release resources. Default does nothing."""

    def health_check(self) -> HealthStatus:
        """Return current health. Default reports HEALTHY."""
        return HealthStatus(state=HealthState.HEALTHY)

    @abstractmethod
    def get_vulnerabilities(
        self,
        image: str,
        *,
        timeout: float | None = None,
    ) -> list[Vulnerability]:
        """Return the vulnerability findings recorded for an image."""
        ...

    @abstractmethod
    def get_attestations(
        self,
        image: str,
        *,
        timeout: float | None = None,
    ) -> list[PgpAttestation]:
        """Return the PGP attestations recorded for an image."""
        ...


__all__ = [
    "HealthState",
    "HealthStatus",
    "MetadataFetcher",
]
