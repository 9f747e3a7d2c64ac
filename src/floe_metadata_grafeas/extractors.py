"""Project occurrences into typed findings.

Each extractor accepts exactly one details variant. Handing it another
variant is a caller bug and raises DetailsMismatchError.
"""

from __future__ import annotations

from collections.abc import Iterable

from floe_metadata_grafeas.errors import DetailsMismatchError
from floe_metadata_grafeas.models import (
    AttestationDetails,
    Occurrence,
    PackageIssue,
    PgpAttestation,
    VersionKind,
    Vulnerability,
    VulnerabilityDetails,
)


def has_fix_available(issues: Iterable[PackageIssue]) -> bool:
    """Return False if any issue's fixed version is the MAXIMUM sentinel.

    An empty issue list counts as fixable.
    """
    return not any(issue.fixed_version.kind is VersionKind.MAXIMUM for issue in issues)


def vulnerability_from_occurrence(occurrence: Occurrence) -> Vulnerability:
    """Project a vulnerability occurrence into a Vulnerability.

    The ``cve`` field is the occurrence's note name, verbatim.

    Raises:
        DetailsMismatchError: If the occurrence is not a vulnerability.
    """
    details = occurrence.details
    if not isinstance(details, VulnerabilityDetails):
        raise DetailsMismatchError(expected="PACKAGE_VULNERABILITY", actual=details.kind)
    return Vulnerability(
        severity=details.severity.name,
        has_fix_available=has_fix_available(details.package_issues),
        cve=occurrence.note_name,
    )


def pgp_attestation_from_occurrence(occurrence: Occurrence) -> PgpAttestation:
    """Project an attestation occurrence into a PgpAttestation.

    Raises:
        DetailsMismatchError: If the occurrence is not an attestation.
    """
    details = occurrence.details
    if not isinstance(details, AttestationDetails):
        raise DetailsMismatchError(expected="ATTESTATION_AUTHORITY", actual=details.kind)
    return PgpAttestation(signature=details.signature, key_id=details.key_id)


__all__ = [
    "has_fix_available",
    "pgp_attestation_from_occurrence",
    "vulnerability_from_occurrence",
]
