"""OpenTelemetry tracing helpers for the Grafeas Metadata Plugin.

Every plugin operation (list_occurrences, create_attestation_note,
create_attestation_occurrence, ...) emits one span.

Security:
    - Spans MUST NOT include key material, signatures or signed payloads
    - Only include operation metadata (project, kind, resource locator)

Example:
    >>> from floe_metadata_grafeas.tracing import get_tracer, metadata_span
    >>> tracer = get_tracer()
    >>> with metadata_span(tracer, "list_occurrences", project="proj") as span:
    ...     span.set_attribute("metadata.occurrence_count", 3)
"""

from __future__ import annotations

import re
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

if TYPE_CHECKING:
    from collections.abc import Iterator

TRACER_NAME = "floe.metadata.grafeas"

ATTR_OPERATION = "metadata.operation"
ATTR_PROJECT = "metadata.project"
ATTR_KIND = "metadata.kind"
ATTR_RESOURCE_URL = "metadata.resource_url"
ATTR_NOTE_NAME = "metadata.note_name"
ATTR_RESULT_COUNT = "metadata.result_count"

# Maximum error message length recorded on a span
MAX_ERROR_MESSAGE_LENGTH = 500

_SECRET_PATTERNS = (
    re.compile(
        r"-----BEGIN PGP (PRIVATE KEY|SIGNATURE|MESSAGE) BLOCK-----.*?"
        r"-----END PGP \1 BLOCK-----",
        re.DOTALL,
    ),
    re.compile(r"(?i)(bearer\s+)[A-Za-z0-9._~+/=-]+"),
    re.compile(r"(?i)(access_token|password|secret|api_key)=([^\s&]+)"),
)


def get_tracer() -> trace.Tracer:
    """Get the OpenTelemetry tracer for metadata operations.

    Returns a no-op tracer when no tracer provider is configured.
    """
    return trace.get_tracer(TRACER_NAME)


@contextmanager
def metadata_span(
    tracer: trace.Tracer,
    operation: str,
    *,
    project: str | None = None,
    kind: str | None = None,
    resource_url: str | None = None,
    note_name: str | None = None,
    extra_attributes: dict[str, Any] | None = None,
) -> Iterator[trace.Span]:
    """Context manager for metadata operation spans.

    Creates a ``metadata.<operation>`` span, sets OK status on success and
    ERROR status (exception type only) on failure.

    Args:
        tracer: OpenTelemetry tracer instance.
        operation: Operation name (e.g., "list_occurrences").
        project: Project scope of the call.
        kind: Occurrence kind being listed or written.
        resource_url: Image resource locator.
        note_name: Note the operation addresses.
        extra_attributes: Additional span attributes.

    Yields:
        The active span for adding custom attributes.
    """
    attributes: dict[str, Any] = {ATTR_OPERATION: operation}

    if project is not None:
        attributes[ATTR_PROJECT] = project
    if kind is not None:
        attributes[ATTR_KIND] = kind
    if resource_url is not None:
        attributes[ATTR_RESOURCE_URL] = resource_url
    if note_name is not None:
        attributes[ATTR_NOTE_NAME] = note_name
    if extra_attributes:
        attributes.update(extra_attributes)

    with tracer.start_as_current_span(f"metadata.{operation}", attributes=attributes) as span:
        try:
            yield span
            span.set_status(Status(StatusCode.OK))
        except Exception as e:
            span.set_status(Status(StatusCode.ERROR, type(e).__name__))
            span.record_exception(e)
            raise


def sanitize_error_message(message: str) -> str:
    """Redact armored PGP blocks and credential-looking tokens, then truncate.

    Example:
        >>> sanitize_error_message("failed: password=hunter2")
        'failed: password=<REDACTED>'
    """
    message = _SECRET_PATTERNS[0].sub("<REDACTED PGP BLOCK>", message)
    message = _SECRET_PATTERNS[1].sub(r"\1<REDACTED>", message)
    message = _SECRET_PATTERNS[2].sub(r"\1=<REDACTED>", message)
    return message[:MAX_ERROR_MESSAGE_LENGTH]


def set_error_attributes(
    span: trace.Span,
    error: Exception,
    *,
    include_message: bool = True,
) -> None:
    """Set error attributes on a span safely.

    Args:
        span: The span to annotate.
        error: The exception that occurred.
        include_message: Whether to record the sanitized message.
    """
    span.set_attribute("error.type", type(error).__name__)
    if include_message:
        span.set_attribute("error.message", sanitize_error_message(str(error)))


__all__ = [
    "ATTR_KIND",
    "ATTR_NOTE_NAME",
    "ATTR_OPERATION",
    "ATTR_PROJECT",
    "ATTR_RESOURCE_URL",
    "ATTR_RESULT_COUNT",
    "TRACER_NAME",
    "get_tracer",
    "metadata_span",
    "sanitize_error_message",
    "set_error_attributes",
]
