"""Metadata service backends.

MetadataBackend is the narrow interface the plugin depends on: list, get,
create and delete over notes and occurrences. Backends raise
google-api-core exceptions; the plugin maps them.

GrafeasBackend implements it over ``grafeas.grafeas_v1.GrafeasClient`` and
converts proto-plus messages to and from the domain models. Calls are made
with ``retry=None``: this package never retries.

Example:
    >>> from google.cloud.devtools import containeranalysis_v1
    >>> client = containeranalysis_v1.ContainerAnalysisClient().get_grafeas_client()
    >>> backend = GrafeasBackend(client)
    >>> occurrences = list(backend.list_occurrences("projects/p", 'kind="..."', 100))
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import TYPE_CHECKING, Protocol, runtime_checkable

import structlog
from grafeas import grafeas_v1

from floe_metadata_grafeas.errors import DetailsMismatchError
from floe_metadata_grafeas.models import (
    AttestationDetails,
    Note,
    Occurrence,
    OccurrenceKind,
    PackageIssue,
    Severity,
    UnsupportedDetails,
    Version,
    VersionKind,
    VulnerabilityDetails,
)

if TYPE_CHECKING:
    from grafeas.grafeas_v1 import GrafeasClient

logger = structlog.get_logger(__name__)


@runtime_checkable
class MetadataBackend(Protocol):
    """Remote store of notes and occurrences.

    Every method accepts a ``timeout`` in seconds; None means the client
    default. Failures surface as google.api_core.exceptions.GoogleAPIError.
    """

    def list_occurrences(
        self,
        parent: str,
        filter_: str,
        page_size: int,
        *,
        timeout: float | None = None,
    ) -> Iterator[Occurrence]:
        """Iterate every occurrence under parent matching the filter."""
        ...

    def get_note(self, name: str, *, timeout: float | None = None) -> Note:
        """Fetch a note by its full name."""
        ...

    def create_note(
        self,
        parent: str,
        note_id: str,
        note: Note,
        *,
        timeout: float | None = None,
    ) -> Note:
        """Create a note under parent with the given id."""
        ...

    def delete_note(self, name: str, *, timeout: float | None = None) -> None:
        """Delete a note by its full name."""
        ...

    def create_occurrence(
        self,
        parent: str,
        occurrence: Occurrence,
        *,
        timeout: float | None = None,
    ) -> Occurrence:
        """Create an occurrence under parent; returns it with its assigned name."""
        ...

    def delete_occurrence(self, name: str, *, timeout: float | None = None) -> None:
        """Delete an occurrence by its full name."""
        ...


# =============================================================================
# Proto-plus conversion
# =============================================================================


def _details_variant(message: grafeas_v1.Occurrence | grafeas_v1.Note, oneof: str) -> str:
    return type(message).pb(message).WhichOneof(oneof) or ""


def _severity_from_proto(value: int) -> Severity:
    try:
        return Severity[grafeas_v1.Severity(value).name]
    except (ValueError, KeyError):
        logger.debug("unknown_severity", value=int(value))
        return Severity.SEVERITY_UNSPECIFIED


def _version_kind_from_proto(value: int) -> VersionKind:
    try:
        return VersionKind[grafeas_v1.Version.VersionKind(value).name]
    except (ValueError, KeyError):
        logger.debug("unknown_version_kind", value=int(value))
        return VersionKind.VERSION_KIND_UNSPECIFIED


def occurrence_from_proto(message: grafeas_v1.Occurrence) -> Occurrence:
    """Convert a Grafeas occurrence into the domain model.

    Unknown details variants become UnsupportedDetails rather than failing,
    so listings never break on variants this package does not interpret.
    """
    if "vulnerability" in message:
        vuln = message.vulnerability
        details: VulnerabilityDetails | AttestationDetails | UnsupportedDetails
        details = VulnerabilityDetails(
            severity=_severity_from_proto(vuln.severity),
            package_issues=tuple(
                PackageIssue(
                    affected_package=issue.affected_package,
                    fixed_package=issue.fixed_package,
                    fixed_version=Version(
                        name=issue.fixed_version.name,
                        kind=_version_kind_from_proto(issue.fixed_version.kind),
                    ),
                )
                for issue in vuln.package_issue
            ),
        )
    elif "attestation" in message:
        attestation = message.attestation
        # Occurrences written by this package carry exactly one signature
        signature = attestation.signatures[0] if attestation.signatures else None
        details = AttestationDetails(
            signature=signature.signature if signature is not None else b"",
            key_id=signature.public_key_id if signature is not None else "",
            serialized_payload=attestation.serialized_payload,
        )
    else:
        details = UnsupportedDetails(variant=_details_variant(message, "details"))

    return Occurrence(
        name=message.name,
        resource_url=message.resource_uri,
        note_name=message.note_name,
        details=details,
    )


def occurrence_to_proto(occurrence: Occurrence) -> grafeas_v1.Occurrence:
    """Convert a domain occurrence into a Grafeas occurrence for creation.

    Raises:
        DetailsMismatchError: If the details variant cannot be written.
    """
    message = grafeas_v1.Occurrence(
        resource_uri=occurrence.resource_url,
        note_name=occurrence.note_name,
    )
    details = occurrence.details
    if isinstance(details, AttestationDetails):
        message.kind = grafeas_v1.NoteKind.ATTESTATION
        message.attestation = grafeas_v1.AttestationOccurrence(
            serialized_payload=details.serialized_payload,
            signatures=[
                grafeas_v1.Signature(
                    signature=details.signature,
                    public_key_id=details.key_id,
                )
            ],
        )
    elif isinstance(details, VulnerabilityDetails):
        message.kind = grafeas_v1.NoteKind.VULNERABILITY
        message.vulnerability = grafeas_v1.VulnerabilityOccurrence(
            severity=grafeas_v1.Severity[details.severity.name],
            package_issue=[
                grafeas_v1.VulnerabilityOccurrence.PackageIssue(
                    affected_package=issue.affected_package,
                    fixed_package=issue.fixed_package,
                    fixed_version=grafeas_v1.Version(
                        name=issue.fixed_version.name,
                        kind=grafeas_v1.Version.VersionKind[issue.fixed_version.kind.name],
                    ),
                )
                for issue in details.package_issues
            ],
        )
    else:
        raise DetailsMismatchError(
            expected="ATTESTATION_AUTHORITY or PACKAGE_VULNERABILITY",
            actual=details.kind,
        )
    return message


def note_from_proto(message: grafeas_v1.Note) -> Note:
    """Convert a Grafeas note into the domain model.

    Raises:
        DetailsMismatchError: If the note is neither an attestation nor a
            vulnerability note.
    """
    human_readable_name = ""
    if "attestation" in message:
        kind = OccurrenceKind.ATTESTATION_AUTHORITY
        human_readable_name = message.attestation.hint.human_readable_name
    elif "vulnerability" in message:
        kind = OccurrenceKind.PACKAGE_VULNERABILITY
    else:
        raise DetailsMismatchError(
            expected="ATTESTATION_AUTHORITY",
            actual=_details_variant(message, "type") or "UNSUPPORTED",
        )
    return Note(
        name=message.name,
        short_description=message.short_description,
        long_description=message.long_description,
        kind=kind,
        human_readable_name=human_readable_name,
    )


def note_to_proto(note: Note) -> grafeas_v1.Note:
    """Convert a domain attestation note into a Grafeas note."""
    return grafeas_v1.Note(
        name=note.name,
        short_description=note.short_description,
        long_description=note.long_description,
        kind=grafeas_v1.NoteKind.ATTESTATION,
        attestation=grafeas_v1.AttestationNote(
            hint=grafeas_v1.AttestationNote.Hint(
                human_readable_name=note.human_readable_name,
            ),
        ),
    )


# =============================================================================
# GrafeasBackend
# =============================================================================


class GrafeasBackend:
    """MetadataBackend over a Grafeas v1 client.

    Args:
        client: A configured GrafeasClient, typically obtained from
            ``ContainerAnalysisClient.get_grafeas_client()``.
    """

    def __init__(self, client: GrafeasClient) -> None:
        self._client = client

    @property
    def client(self) -> GrafeasClient:
        """Return the underlying Grafeas client."""
        return self._client

    def list_occurrences(
        self,
        parent: str,
        filter_: str,
        page_size: int,
        *,
        timeout: float | None = None,
    ) -> Iterator[Occurrence]:
        pager = self._client.list_occurrences(
            request={"parent": parent, "filter": filter_, "page_size": page_size},
            retry=None,
            timeout=timeout,
        )
        for message in pager:
            yield occurrence_from_proto(message)

    def get_note(self, name: str, *, timeout: float | None = None) -> Note:
        message = self._client.get_note(name=name, retry=None, timeout=timeout)
        return note_from_proto(message)

    def create_note(
        self,
        parent: str,
        note_id: str,
        note: Note,
        *,
        timeout: float | None = None,
    ) -> Note:
        message = self._client.create_note(
            parent=parent,
            note_id=note_id,
            note=note_to_proto(note),
            retry=None,
            timeout=timeout,
        )
        return note_from_proto(message)

    def delete_note(self, name: str, *, timeout: float | None = None) -> None:
        self._client.delete_note(name=name, retry=None, timeout=timeout)

    def create_occurrence(
        self,
        parent: str,
        occurrence: Occurrence,
        *,
        timeout: float | None = None,
    ) -> Occurrence:
        message = self._client.create_occurrence(
            parent=parent,
            occurrence=occurrence_to_proto(occurrence),
            retry=None,
            timeout=timeout,
        )
        return occurrence_from_proto(message)

    def delete_occurrence(self, name: str, *, timeout: float | None = None) -> None:
        self._client.delete_occurrence(name=name, retry=None, timeout=timeout)

    def close(self) -> None:
        """Close the client transport."""
        logger.debug("closing_grafeas_transport")
        self._client.transport.close()


__all__ = [
    "GrafeasBackend",
    "MetadataBackend",
    "note_from_proto",
    "note_to_proto",
    "occurrence_from_proto",
    "occurrence_to_proto",
]
