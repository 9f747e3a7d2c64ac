"""Configuration models for the Grafeas Metadata Plugin.

This module provides the Pydantic configuration model for talking to a
Grafeas / Container Analysis service.

Models:
    GrafeasMetadataConfig: Complete metadata plugin settings

Example:
    >>> from floe_metadata_grafeas.config import GrafeasMetadataConfig
    >>> config = GrafeasMetadataConfig(page_size=50, timeout_seconds=10)
    >>> config.trusted_registry_suffix
    ('gcr', 'io')
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Listing page size shared by every occurrence query
DEFAULT_PAGE_SIZE = 100

# Prefix turning an image reference into a resource locator
DEFAULT_RESOURCE_URL_PREFIX = "https://"

# Last two DNS labels a registry host must carry to be trusted
DEFAULT_TRUSTED_SUFFIX: tuple[str, str] = ("gcr", "io")


class GrafeasMetadataConfig(BaseModel):
    """Grafeas metadata plugin configuration.

    Attributes:
        trusted_registry_suffix: Last two registry host labels accepted.
        resource_url_prefix: Prefix prepended to image references.
        page_size: Page size requested from the listing API.
        timeout_seconds: Default per-call timeout (None disables it).
        api_endpoint: Optional Container Analysis endpoint override.
        health_check_project: Project probed by health_check().

    Example:
        >>> config = GrafeasMetadataConfig(
        ...     api_endpoint="containeranalysis.googleapis.com",
        ...     health_check_project="my-project",
        ... )
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    trusted_registry_suffix: tuple[str, str] = Field(
        default=DEFAULT_TRUSTED_SUFFIX,
        description="Last two DNS labels of a trusted registry host",
        examples=[("gcr", "io")],
    )
    resource_url_prefix: str = Field(
        default=DEFAULT_RESOURCE_URL_PREFIX,
        description="Prefix prepended to an image reference to form its resource locator",
        min_length=1,
    )
    page_size: int = Field(
        default=DEFAULT_PAGE_SIZE,
        ge=1,
        le=1000,
        description="Page size for occurrence listings",
    )
    timeout_seconds: float | None = Field(
        default=30.0,
        gt=0,
        description="Default timeout for remote calls in seconds",
    )
    api_endpoint: str | None = Field(
        default=None,
        description="Container Analysis API endpoint override",
        examples=["containeranalysis.googleapis.com"],
    )
    health_check_project: str | None = Field(
        default=None,
        description="Project used to probe the service in health_check()",
        min_length=1,
    )

    @field_validator("trusted_registry_suffix")
    @classmethod
    def validate_suffix(cls, v: tuple[str, str]) -> tuple[str, str]:
        """Normalize suffix labels and reject empty or dotted labels."""
        labels = tuple(label.strip().lower() for label in v)
        for label in labels:
            if not label or "." in label:
                raise ValueError(f"Invalid registry label: {label!r}")
        return labels  # type: ignore[return-value]

    @field_validator("api_endpoint")
    @classmethod
    def validate_endpoint(cls, v: str | None) -> str | None:
        """Strip any scheme from the endpoint; the client expects host[:port]."""
        if v is None:
            return v
        for scheme in ("https://", "http://"):
            if v.startswith(scheme):
                v = v[len(scheme) :]
        v = v.rstrip("/")
        if not v:
            raise ValueError("api_endpoint must not be empty")
        return v


__all__ = [
    "DEFAULT_PAGE_SIZE",
    "DEFAULT_RESOURCE_URL_PREFIX",
    "DEFAULT_TRUSTED_SUFFIX",
    "GrafeasMetadataConfig",
]
