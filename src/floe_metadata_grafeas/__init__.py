"""Grafeas Metadata Plugin for floe.

This package retrieves vulnerability and attestation metadata for container
images from a Grafeas / Container Analysis service, and manages the
attestation-authority notes and signed occurrences that mark an image as
approved.

Example:
    >>> from floe_metadata_grafeas import GrafeasMetadataPlugin
    >>> plugin = GrafeasMetadataPlugin()
    >>> plugin.startup()
    >>> plugin.get_attestations("gcr.io/proj/img:1.0")

Public API:
    - GrafeasMetadataPlugin: Main plugin class (implements MetadataFetcher)
    - GrafeasMetadataConfig: Configuration model
    - MetadataBackend / GrafeasBackend: Remote store interface and client adapter
    - AttestationSigner / GpgSigner: Signing delegate and gpg-based signer
"""

from __future__ import annotations

__version__ = "0.1.0"

# Public API exports
from floe_metadata_grafeas.backend import GrafeasBackend, MetadataBackend
from floe_metadata_grafeas.config import GrafeasMetadataConfig
from floe_metadata_grafeas.errors import (
    AccessDeniedError,
    BackendNotInitializedError,
    BackendUnavailableError,
    ConflictError,
    DetailsMismatchError,
    GpgNotFoundError,
    GrafeasMetadataError,
    ImageReferenceParseError,
    InvalidImageError,
    MalformedNoteReferenceError,
    NotFoundError,
    RemoteCallError,
    SigningError,
    map_api_error,
)
from floe_metadata_grafeas.extractors import (
    pgp_attestation_from_occurrence,
    vulnerability_from_occurrence,
)
from floe_metadata_grafeas.fetcher import HealthState, HealthStatus, MetadataFetcher
from floe_metadata_grafeas.image import ImageReference, is_valid_trusted_image
from floe_metadata_grafeas.models import (
    AttestationAuthority,
    AttestationDetails,
    Note,
    Occurrence,
    OccurrenceKind,
    PackageIssue,
    PgpAttestation,
    Severity,
    SigningKey,
    UnsupportedDetails,
    Version,
    VersionKind,
    Vulnerability,
    VulnerabilityDetails,
)
from floe_metadata_grafeas.plugin import GrafeasMetadataPlugin
from floe_metadata_grafeas.query import build_list_filter, project_scope, resource_url
from floe_metadata_grafeas.signing import AttestationSigner, GpgSigner, Signer

__all__ = [
    "__version__",
    "GrafeasMetadataPlugin",
    "GrafeasMetadataConfig",
    "MetadataFetcher",
    "HealthState",
    "HealthStatus",
    # Backend
    "MetadataBackend",
    "GrafeasBackend",
    # Validation and naming
    "ImageReference",
    "is_valid_trusted_image",
    "build_list_filter",
    "project_scope",
    "resource_url",
    # Models
    "AttestationAuthority",
    "AttestationDetails",
    "Note",
    "Occurrence",
    "OccurrenceKind",
    "PackageIssue",
    "PgpAttestation",
    "Severity",
    "SigningKey",
    "UnsupportedDetails",
    "Version",
    "VersionKind",
    "Vulnerability",
    "VulnerabilityDetails",
    # Extractors
    "pgp_attestation_from_occurrence",
    "vulnerability_from_occurrence",
    # Signing
    "AttestationSigner",
    "GpgSigner",
    "Signer",
    # Errors
    "AccessDeniedError",
    "BackendNotInitializedError",
    "BackendUnavailableError",
    "ConflictError",
    "DetailsMismatchError",
    "GpgNotFoundError",
    "GrafeasMetadataError",
    "ImageReferenceParseError",
    "InvalidImageError",
    "MalformedNoteReferenceError",
    "NotFoundError",
    "RemoteCallError",
    "SigningError",
    "map_api_error",
]
