"""Domain models for container image metadata.

Occurrences are records attached to one image (the resource). Each carries
exactly one details variant, modelled as a discriminated union on ``kind``:

- VulnerabilityDetails: severity plus affected/fixed package issues
- AttestationDetails: a detached signature and the id of the signing key
- UnsupportedDetails: any variant this package does not interpret

Example:
    >>> from floe_metadata_grafeas.models import Occurrence, VulnerabilityDetails, Severity
    >>> occ = Occurrence(
    ...     resource_url="https://gcr.io/proj/img",
    ...     note_name="projects/goog-vulnz/notes/CVE-2024-0001",
    ...     details=VulnerabilityDetails(severity=Severity.HIGH),
    ... )
    >>> occ.kind
    'PACKAGE_VULNERABILITY'
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, SecretStr


class OccurrenceKind(str, Enum):
    """Occurrence kinds understood by the list filter.

    The value is the literal token used in ``kind="..."`` filters.
    """

    PACKAGE_VULNERABILITY = "PACKAGE_VULNERABILITY"
    ATTESTATION_AUTHORITY = "ATTESTATION_AUTHORITY"


class Severity(str, Enum):
    """Vulnerability severity, named as the service names it."""

    SEVERITY_UNSPECIFIED = "SEVERITY_UNSPECIFIED"
    MINIMAL = "MINIMAL"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class VersionKind(str, Enum):
    """Kind of a package version.

    MAXIMUM marks a sentinel "no fixed version exists" version.
    """

    VERSION_KIND_UNSPECIFIED = "VERSION_KIND_UNSPECIFIED"
    NORMAL = "NORMAL"
    MINIMUM = "MINIMUM"
    MAXIMUM = "MAXIMUM"


class Version(BaseModel):
    """A package version as reported by the vulnerability scanner."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(default="", description="Version string")
    kind: VersionKind = Field(
        default=VersionKind.VERSION_KIND_UNSPECIFIED,
        description="Version kind; MAXIMUM means no fix is available",
    )


class PackageIssue(BaseModel):
    """One affected package and where (if anywhere) it is fixed."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    affected_package: str = Field(default="", description="Affected package name")
    fixed_package: str = Field(default="", description="Package name carrying the fix")
    fixed_version: Version = Field(
        default_factory=Version,
        description="Version in which the issue is fixed",
    )


# =============================================================================
# Occurrence details variants
# =============================================================================


class VulnerabilityDetails(BaseModel):
    """Details of a package vulnerability occurrence."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["PACKAGE_VULNERABILITY"] = Field(
        default="PACKAGE_VULNERABILITY",
        description="Details variant discriminator",
    )
    severity: Severity = Field(
        default=Severity.SEVERITY_UNSPECIFIED,
        description="Scanner-assigned severity",
    )
    package_issues: tuple[PackageIssue, ...] = Field(
        default=(),
        description="Affected packages and their fixes",
    )


class AttestationDetails(BaseModel):
    """Details of a signed attestation occurrence.

    Attributes:
        signature: Detached signature bytes.
        key_id: Identifier of the signing key (never secret material).
        serialized_payload: The exact bytes that were signed, if recorded.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["ATTESTATION_AUTHORITY"] = Field(
        default="ATTESTATION_AUTHORITY",
        description="Details variant discriminator",
    )
    signature: bytes = Field(..., description="Detached signature")
    key_id: str = Field(..., description="Signing key identifier")
    serialized_payload: bytes = Field(default=b"", description="Signed payload")


class UnsupportedDetails(BaseModel):
    """Details of a variant this package does not interpret."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["UNSUPPORTED"] = Field(
        default="UNSUPPORTED",
        description="Details variant discriminator",
    )
    variant: str = Field(default="", description="Remote variant name, if known")


OccurrenceDetails = Annotated[
    VulnerabilityDetails | AttestationDetails | UnsupportedDetails,
    Field(discriminator="kind"),
]
"""Discriminated union of occurrence details variants."""


# =============================================================================
# Remote records
# =============================================================================


class Occurrence(BaseModel):
    """A metadata record attached to one image.

    Attributes:
        name: Server-assigned name; empty until created.
        resource_url: Locator of the image the record is about.
        note_name: Name of the note this occurrence instantiates.
        details: Exactly one details variant.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(default="", description="Server-assigned occurrence name")
    resource_url: str = Field(..., description="Image resource locator")
    note_name: str = Field(default="", description="Parent note name")
    details: OccurrenceDetails = Field(..., description="Occurrence payload")

    @property
    def kind(self) -> str:
        """The details variant discriminator."""
        return self.details.kind


class Note(BaseModel):
    """An attestation-authority note: the authority's identity record."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., description="projects/<project>/notes/<id>")
    short_description: str = Field(default="", description="One-line description")
    long_description: str = Field(default="", description="Detailed description")
    kind: OccurrenceKind = Field(
        default=OccurrenceKind.ATTESTATION_AUTHORITY,
        description="Kind of occurrences this note anchors",
    )
    human_readable_name: str = Field(default="", description="Attestation hint")


# =============================================================================
# Caller-facing descriptors and results
# =============================================================================


class AttestationAuthority(BaseModel):
    """Descriptor of an attestation authority.

    Example:
        >>> authority = AttestationAuthority(
        ...     name="qa-attestor",
        ...     namespace="default",
        ...     note_reference="containeranalysis.googleapis.com/projects/my-proj",
        ... )
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., min_length=1, description="Authority name, also the note id")
    namespace: str = Field(default="", description="Namespace the authority is deployed in")
    note_reference: str = Field(
        ...,
        description="<api>/projects/<project> reference to the owning project",
        examples=["containeranalysis.googleapis.com/projects/my-proj"],
    )


class SigningKey(BaseModel):
    """Signing key material handed to the external signer.

    Only ``secret_name`` is ever written to an occurrence.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    secret_name: str = Field(..., min_length=1, description="Public key identifier")
    public_key: str | None = Field(default=None, description="Armored public key")
    private_key: SecretStr | None = Field(
        default=None,
        description="Armored private key (never logged)",
    )


class Vulnerability(BaseModel):
    """A vulnerability finding projected from an occurrence."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    severity: str = Field(..., description="Severity enum name")
    has_fix_available: bool = Field(..., description="False if any issue has no fix")
    cve: str = Field(..., description="Identifier taken from the occurrence's note name")


class PgpAttestation(BaseModel):
    """A PGP attestation projected from an occurrence."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    signature: bytes = Field(..., description="Detached signature")
    key_id: str = Field(..., description="Signing key identifier")


__all__ = [
    "AttestationAuthority",
    "AttestationDetails",
    "Note",
    "Occurrence",
    "OccurrenceDetails",
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
]
