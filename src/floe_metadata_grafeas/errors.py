"""Exception hierarchy and error mapping for the Grafeas Metadata Plugin.

Exception Hierarchy:
    GrafeasMetadataError (base)
    ├── InvalidImageError            # Image failed trusted-registry validation
    ├── ImageReferenceParseError     # String is not an image reference
    ├── MalformedNoteReferenceError  # Note reference has < 3 segments
    ├── DetailsMismatchError         # Extractor applied to the wrong variant
    ├── SigningError                 # External signer failed
    │   └── GpgNotFoundError         # gpg CLI not on PATH
    ├── BackendNotInitializedError   # startup() not called
    └── RemoteCallError              # Remote call failed (cause preserved)
        ├── NotFoundError            # Note or occurrence missing
        ├── ConflictError            # Note or occurrence already exists
        ├── AccessDeniedError        # Permission denied / unauthenticated
        └── BackendUnavailableError  # Service unreachable or deadline hit

Example:
    >>> from floe_metadata_grafeas.errors import map_api_error
    >>> from google.api_core.exceptions import NotFound
    >>> try:
    ...     raise NotFound("note missing")
    ... except Exception as e:
    ...     raise map_api_error(e, operation="get_note") from e
"""

from __future__ import annotations

import structlog
from google.api_core import exceptions as api_exceptions

logger = structlog.get_logger(__name__)


class GrafeasMetadataError(Exception):
    """Base exception for all metadata plugin errors."""

    pass


class InvalidImageError(GrafeasMetadataError, ValueError):
    """Raised when an image reference is not hosted on the trusted registry.

    Attributes:
        image: The rejected image reference.

    Example:
        >>> raise InvalidImageError("docker.io/proj/img")
        Traceback (most recent call last):
            ...
        InvalidImageError: docker.io/proj/img is not a valid image hosted in GCR
    """

    def __init__(self, image: str) -> None:
        self.image = image
        super().__init__(f"{image} is not a valid image hosted in GCR")


class ImageReferenceParseError(GrafeasMetadataError, ValueError):
    """Raised when a string cannot be parsed as an image reference.

    Attributes:
        image: The unparseable reference.
        reason: What part of the reference was rejected.
    """

    def __init__(self, image: str, reason: str) -> None:
        self.image = image
        self.reason = reason
        super().__init__(f"Could not parse image reference {image!r}: {reason}")


class MalformedNoteReferenceError(GrafeasMetadataError, ValueError):
    """Raised when a note reference cannot yield an owning project."""

    def __init__(self, note_reference: str) -> None:
        self.note_reference = note_reference
        super().__init__(
            f"Invalid note reference {note_reference!r}. "
            "Should be in format <api>/projects/<project_id>"
        )


class DetailsMismatchError(GrafeasMetadataError, TypeError):
    """Raised when an extractor receives an occurrence of another variant.

    This is a caller contract fault, not a remote failure.

    Attributes:
        expected: Variant the extractor handles.
        actual: Variant carried by the occurrence.
    """

    def __init__(self, expected: str, actual: str) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f"Expected {expected} occurrence details, got {actual}")


class SigningError(GrafeasMetadataError):
    """Raised when the external signer fails to produce a signature."""

    pass


class GpgNotFoundError(SigningError):
    """Raised when the gpg CLI is not available on PATH."""

    def __init__(self) -> None:
        msg = "gpg CLI not found on PATH"
        msg += "\n\nRemediation:\n"
        msg += "  - Install GnuPG (apt-get install gnupg / brew install gnupg)\n"
        msg += "  - Or inject a custom signer into GrafeasMetadataPlugin"
        super().__init__(msg)


class BackendNotInitializedError(GrafeasMetadataError):
    """Raised when an operation runs before startup() created the backend."""

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(
            f"Metadata backend not initialized for '{operation}'. Call startup() first."
        )


class RemoteCallError(GrafeasMetadataError):
    """Raised when a call to the metadata service fails.

    Attributes:
        operation: Plugin operation that issued the call.
        resource: Resource name or scope the call addressed.
        cause: The original client library exception.
    """

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        resource: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.operation = operation
        self.resource = resource
        self.cause = cause
        super().__init__(message)


class NotFoundError(RemoteCallError):
    """Raised when a note or occurrence does not exist."""

    pass


class ConflictError(RemoteCallError):
    """Raised when creating a note or occurrence that already exists."""

    pass


class AccessDeniedError(RemoteCallError, PermissionError):
    """Raised when the caller lacks permission or credentials."""

    pass


class BackendUnavailableError(RemoteCallError, ConnectionError):
    """Raised when the metadata service is unreachable or times out."""

    pass


# Exceptions raised by the google-api-core client stack
API_EXCEPTION_TYPES: tuple[type[Exception], ...] = (
    api_exceptions.GoogleAPIError,
)


def map_api_error(
    error: Exception,
    *,
    operation: str | None = None,
    resource: str | None = None,
) -> RemoteCallError:
    """Map a google-api-core exception to a RemoteCallError.

    The original message is preserved and the original exception is kept
    as ``cause``.

    Args:
        error: The client library exception to map.
        operation: Optional operation name for context.
        resource: Optional resource name for context.

    Returns:
        A RemoteCallError subclass appropriate for the error type.

    Examples:
        >>> from google.api_core.exceptions import AlreadyExists
        >>> mapped = map_api_error(AlreadyExists("note exists"), operation="create_note")
        >>> isinstance(mapped, ConflictError)
        True
    """
    message = str(error)
    context = {"operation": operation, "resource": resource, "cause": error}

    if isinstance(error, api_exceptions.NotFound):
        logger.debug("metadata_resource_not_found", operation=operation, resource=resource)
        return NotFoundError(message, **context)

    if isinstance(error, (api_exceptions.AlreadyExists, api_exceptions.Conflict)):
        logger.info("metadata_resource_conflict", operation=operation, resource=resource)
        return ConflictError(message, **context)

    if isinstance(error, (api_exceptions.PermissionDenied, api_exceptions.Unauthenticated)):
        logger.warning("metadata_access_denied", operation=operation, error=message)
        return AccessDeniedError(message, **context)

    if isinstance(
        error,
        (
            api_exceptions.ServiceUnavailable,
            api_exceptions.DeadlineExceeded,
            api_exceptions.RetryError,
        ),
    ):
        logger.warning("metadata_service_unavailable", operation=operation, error=message)
        return BackendUnavailableError(message, **context)

    logger.error(
        "metadata_remote_call_failed",
        operation=operation,
        error_type=type(error).__name__,
        error=message,
    )
    return RemoteCallError(message, **context)


__all__ = [
    "API_EXCEPTION_TYPES",
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
