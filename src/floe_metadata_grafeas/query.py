"""Resource naming and query construction for the metadata service.

All names produced here are bit-exact with what the service stores:

- resource locator: ``<prefix><image>``
- project scope: ``projects/<project>``
- note name: ``projects/<project>/notes/<note_id>``
- list filter: ``resource_url="<locator>" AND kind="<KIND>"``
"""

from __future__ import annotations

from floe_metadata_grafeas.config import DEFAULT_RESOURCE_URL_PREFIX
from floe_metadata_grafeas.errors import MalformedNoteReferenceError
from floe_metadata_grafeas.models import OccurrenceKind


def resource_url(image: str, prefix: str = DEFAULT_RESOURCE_URL_PREFIX) -> str:
    """Return the resource locator for an image reference.

    Example:
        >>> resource_url("us.gcr.io/proj/img:tag")
        'https://us.gcr.io/proj/img:tag'
    """
    return f"{prefix}{image}"


def project_scope(image: str) -> str:
    """Return the project owning a trusted image reference.

    The project is the second ``/``-delimited segment: for a trusted
    reference the first segment is always the registry host.

    Raises:
        ValueError: If the reference has no path below the registry.
    """
    parts = image.split("/")
    if len(parts) < 2 or not parts[1]:
        raise ValueError(f"Image reference {image!r} has no project segment")
    return parts[1]


def project_path(project: str) -> str:
    """Return the ``projects/<project>`` parent path."""
    return f"projects/{project}"


def note_name(project: str, note_id: str) -> str:
    """Return the fully qualified note name."""
    return f"projects/{project}/notes/{note_id}"


def note_project(note_reference: str) -> str:
    """Extract the owning project from a note reference.

    A note reference has the form ``<api>/projects/<project>[/...]``;
    splitting on ``/`` must yield at least three segments.

    Args:
        note_reference: The authority's note reference.

    Returns:
        The third segment of the reference.

    Raises:
        MalformedNoteReferenceError: If there are fewer than three segments.

    Example:
        >>> note_project("containeranalysis.googleapis.com/projects/my-proj")
        'my-proj'
    """
    parts = note_reference.split("/")
    if len(parts) < 3:
        raise MalformedNoteReferenceError(note_reference)
    return parts[2]


def quote(value: str) -> str:
    """Double-quote a filter value, escaping backslashes, quotes and control characters."""
    escaped = []
    for char in value:
        if char in ('"', "\\"):
            escaped.append("\\" + char)
        elif char == "\n":
            escaped.append("\\n")
        elif char == "\t":
            escaped.append("\\t")
        elif char == "\r":
            escaped.append("\\r")
        elif ord(char) < 0x20 or ord(char) == 0x7F:
            escaped.append(f"\\x{ord(char):02x}")
        else:
            escaped.append(char)
    return '"' + "".join(escaped) + '"'


def build_list_filter(
    image: str,
    kind: OccurrenceKind,
    prefix: str = DEFAULT_RESOURCE_URL_PREFIX,
) -> str:
    """Build the occurrence list filter for one image and kind.

    Example:
        >>> build_list_filter("gcr.io/p/i", OccurrenceKind.PACKAGE_VULNERABILITY)
        'resource_url="https://gcr.io/p/i" AND kind="PACKAGE_VULNERABILITY"'
    """
    return f"resource_url={quote(resource_url(image, prefix))} AND kind={quote(kind.value)}"


__all__ = [
    "build_list_filter",
    "note_name",
    "note_project",
    "project_path",
    "project_scope",
    "quote",
    "resource_url",
]
