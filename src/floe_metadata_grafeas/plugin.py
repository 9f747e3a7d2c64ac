"""GrafeasMetadataPlugin implementation for floe.

This module provides the metadata plugin backed by Grafeas / Container
Analysis. It retrieves vulnerability and attestation occurrences for images
on the trusted registry, and manages attestation-authority notes and signed
attestation occurrences.

Example:
    >>> from floe_metadata_grafeas import GrafeasMetadataConfig, GrafeasMetadataPlugin
    >>> plugin = GrafeasMetadataPlugin(GrafeasMetadataConfig())
    >>> plugin.startup()
    >>> try:
    ...     vulns = plugin.get_vulnerabilities("us.gcr.io/proj/img:tag")
    ... finally:
    ...     plugin.shutdown()
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog
from google.auth.exceptions import GoogleAuthError
from google.cloud.devtools import containeranalysis_v1

from floe_metadata_grafeas.backend import GrafeasBackend, MetadataBackend
from floe_metadata_grafeas.config import GrafeasMetadataConfig
from floe_metadata_grafeas.errors import (
    API_EXCEPTION_TYPES,
    AccessDeniedError,
    BackendNotInitializedError,
    ImageReferenceParseError,
    InvalidImageError,
    map_api_error,
)
from floe_metadata_grafeas.extractors import (
    pgp_attestation_from_occurrence,
    vulnerability_from_occurrence,
)
from floe_metadata_grafeas.fetcher import HealthState, HealthStatus, MetadataFetcher
from floe_metadata_grafeas.image import ImageReference, is_trusted_registry, is_valid_trusted_image
from floe_metadata_grafeas.models import (
    AttestationAuthority,
    AttestationDetails,
    Note,
    Occurrence,
    OccurrenceKind,
    PgpAttestation,
    SigningKey,
    Vulnerability,
)
from floe_metadata_grafeas.query import (
    build_list_filter,
    note_name,
    note_project,
    project_path,
    quote,
    resource_url,
)
from floe_metadata_grafeas.signing import AttestationSigner, GpgSigner, Signer
from floe_metadata_grafeas.tracing import (
    ATTR_PROJECT,
    ATTR_RESOURCE_URL,
    ATTR_RESULT_COUNT,
    get_tracer,
    metadata_span,
    set_error_attributes,
)

if TYPE_CHECKING:
    from pydantic import BaseModel

logger = structlog.get_logger(__name__)

ATTESTOR_SHORT_DESCRIPTION = "Image Policy Security Attestor"
ATTESTOR_LONG_DESCRIPTION = "Image Policy Security Attestor deployed in {namespace} namespace"


class GrafeasMetadataPlugin(MetadataFetcher):
    """Metadata plugin over a Grafeas / Container Analysis service.

    The plugin keeps no state beyond its backend: notes and occurrences live
    in the remote service. No call is retried.

    Args:
        config: Plugin configuration (defaults apply when omitted).
        backend: Pre-built backend; when omitted, startup() builds one from
            the Container Analysis client.
        signer: Signing primitive for attestations (defaults to GpgSigner).
    """

    def __init__(
        self,
        config: GrafeasMetadataConfig | None = None,
        *,
        backend: MetadataBackend | None = None,
        signer: Signer | None = None,
    ) -> None:
        self._config = config or GrafeasMetadataConfig()
        self._backend = backend
        self._owns_backend = False
        self._signer = AttestationSigner(signer if signer is not None else GpgSigner())

    @property
    def config(self) -> GrafeasMetadataConfig:
        """Return the plugin configuration."""
        return self._config

    # =========================================================================
    # Plugin metadata
    # =========================================================================

    @property
    def name(self) -> str:
        return "grafeas"

    @property
    def version(self) -> str:
        return "0.1.0"

    @property
    def floe_api_version(self) -> str:
        return "0.1"

    @property
    def description(self) -> str:
        return "Grafeas metadata plugin for image vulnerabilities and attestations"

    def get_config_schema(self) -> type[BaseModel]:
        """Return the GrafeasMetadataConfig model class."""
        return GrafeasMetadataConfig

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def startup(self) -> None:
        """Create the Grafeas backend unless one was injected.

        Raises:
            AccessDeniedError: If application default credentials are missing.
        """
        if self._backend is not None:
            return

        log = logger.bind(api_endpoint=self._config.api_endpoint)
        client_options = (
            {"api_endpoint": self._config.api_endpoint} if self._config.api_endpoint else None
        )
        try:
            analysis_client = containeranalysis_v1.ContainerAnalysisClient(
                client_options=client_options,
            )
        except GoogleAuthError as e:
            log.error("grafeas_client_credentials_failed", error=str(e))
            raise AccessDeniedError(str(e), operation="startup", cause=e) from e

        grafeas_client = analysis_client.get_grafeas_client()
        # The Grafeas client opens its own channel
        analysis_client.transport.close()

        self._backend = GrafeasBackend(grafeas_client)
        self._owns_backend = True
        log.info("grafeas_backend_started")

    def shutdown(self) -> None:
        """Release the backend this plugin created. Injected backends are kept."""
        if self._owns_backend and isinstance(self._backend, GrafeasBackend):
            self._backend.close()
            self._backend = None
            self._owns_backend = False
            logger.info("grafeas_backend_stopped")

    def health_check(self) -> HealthStatus:
        """Check that the metadata service answers.

        When ``health_check_project`` is configured, lists at most one
        attestation occurrence in that project as a probe.

        Returns:
            HealthStatus with response_time_ms and checked_at in details.
        """
        log = logger.bind(operation="health_check")
        checked_at = datetime.now(timezone.utc)
        start_time = time.perf_counter()

        if self._backend is None:
            log.warning("health_check_not_started")
            return HealthStatus(
                state=HealthState.UNHEALTHY,
                message="Metadata backend not initialized",
                details={"reason": "startup() not called", "checked_at": checked_at},
            )

        project = self._config.health_check_project
        if project is None:
            return HealthStatus(
                state=HealthState.HEALTHY,
                message="Metadata backend initialized (no probe project configured)",
                details={"probed": False, "checked_at": checked_at},
            )

        tracer = get_tracer()
        with metadata_span(tracer, "health_check", project=project) as span:
            try:
                probe = self._backend.list_occurrences(
                    project_path(project),
                    f"kind={quote(OccurrenceKind.ATTESTATION_AUTHORITY.value)}",
                    1,
                    timeout=self._config.timeout_seconds,
                )
                next(iter(probe), None)
            except API_EXCEPTION_TYPES as e:
                elapsed_ms = (time.perf_counter() - start_time) * 1000
                set_error_attributes(span, e)
                log.warning("health_check_failed", error=str(e), response_time_ms=elapsed_ms)
                return HealthStatus(
                    state=HealthState.UNHEALTHY,
                    message=f"Metadata service probe failed: {type(e).__name__}",
                    details={
                        "reason": str(e),
                        "response_time_ms": elapsed_ms,
                        "checked_at": checked_at,
                    },
                )

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        log.debug("health_check_passed", response_time_ms=elapsed_ms)
        return HealthStatus(
            state=HealthState.HEALTHY,
            message="Metadata service reachable",
            details={"probed": True, "response_time_ms": elapsed_ms, "checked_at": checked_at},
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _require_backend(self, operation: str) -> MetadataBackend:
        if self._backend is None:
            raise BackendNotInitializedError(operation)
        return self._backend

    def _timeout(self, timeout: float | None) -> float | None:
        return timeout if timeout is not None else self._config.timeout_seconds

    def is_trusted_image(self, image: str) -> bool:
        """Return True if the image is hosted on the configured trusted registry."""
        return is_valid_trusted_image(image, trusted_suffix=self._config.trusted_registry_suffix)

    def _trusted_reference(
        self, image: str, log: structlog.typing.FilteringBoundLogger
    ) -> ImageReference:
        try:
            ref = ImageReference.parse(image)
        except ImageReferenceParseError as e:
            log.warning("untrusted_image_rejected", reason=e.reason)
            raise InvalidImageError(image) from e
        if not is_trusted_registry(ref.registry, self._config.trusted_registry_suffix):
            log.warning("untrusted_image_rejected", registry=ref.registry)
            raise InvalidImageError(image)
        return ref

    # =========================================================================
    # Retrieval
    # =========================================================================

    def list_occurrences(
        self,
        image: str,
        kind: OccurrenceKind,
        *,
        timeout: float | None = None,
    ) -> list[Occurrence]:
        """List every occurrence of one kind recorded for an image.

        Drives the paginated listing to exhaustion. Any failure during
        iteration discards the partial result.

        Args:
            image: Image reference on the trusted registry.
            kind: Occurrence kind to list.
            timeout: Per-call timeout in seconds (config default if None).

        Returns:
            Occurrences in the order the service returned them.

        Raises:
            InvalidImageError: If the image is not on the trusted registry.
                No remote call is made.
            RemoteCallError: If the service call fails.
        """
        tracer = get_tracer()
        with metadata_span(tracer, "list_occurrences", kind=kind.value) as span:
            log = logger.bind(image=image, kind=kind.value)
            ref = self._trusted_reference(image, log)
            backend = self._require_backend("list_occurrences")

            prefix = self._config.resource_url_prefix
            parent = project_path(ref.project)
            span.set_attribute(ATTR_PROJECT, ref.project)
            span.set_attribute(ATTR_RESOURCE_URL, resource_url(image, prefix))

            try:
                occurrences = list(
                    backend.list_occurrences(
                        parent,
                        build_list_filter(image, kind, prefix),
                        self._config.page_size,
                        timeout=self._timeout(timeout),
                    )
                )
            except API_EXCEPTION_TYPES as e:
                set_error_attributes(span, e)
                log.error("list_occurrences_failed", error=str(e))
                raise map_api_error(e, operation="list_occurrences", resource=parent) from e

            span.set_attribute(ATTR_RESULT_COUNT, len(occurrences))
            log.info("occurrences_listed", count=len(occurrences))
            return occurrences

    def get_vulnerabilities(
        self,
        image: str,
        *,
        timeout: float | None = None,
    ) -> list[Vulnerability]:
        """Return the package vulnerabilities recorded for an image."""
        occurrences = self.list_occurrences(
            image, OccurrenceKind.PACKAGE_VULNERABILITY, timeout=timeout
        )
        return [vulnerability_from_occurrence(occ) for occ in occurrences]

    def get_attestations(
        self,
        image: str,
        *,
        timeout: float | None = None,
    ) -> list[PgpAttestation]:
        """Return the PGP attestations recorded for an image."""
        occurrences = self.list_occurrences(
            image, OccurrenceKind.ATTESTATION_AUTHORITY, timeout=timeout
        )
        return [pgp_attestation_from_occurrence(occ) for occ in occurrences]

    # =========================================================================
    # Attestation notes
    # =========================================================================

    def create_attestation_note(
        self,
        authority: AttestationAuthority,
        *,
        timeout: float | None = None,
    ) -> Note:
        """Create the attestation-authority note for an authority.

        The note is created as ``projects/<project>/notes/<authority.name>``
        where the project comes from the authority's note reference. An
        existing note is not treated as success.

        Args:
            authority: The attestation authority descriptor.
            timeout: Per-call timeout in seconds (config default if None).

        Returns:
            The created note.

        Raises:
            MalformedNoteReferenceError: If the note reference has fewer
                than three segments.
            ConflictError: If the note already exists.
            RemoteCallError: If the service call fails otherwise.
        """
        tracer = get_tracer()
        with metadata_span(tracer, "create_attestation_note") as span:
            log = logger.bind(authority=authority.name, namespace=authority.namespace)
            project = note_project(authority.note_reference)
            backend = self._require_backend("create_attestation_note")

            name = note_name(project, authority.name)
            span.set_attribute(ATTR_PROJECT, project)
            note = Note(
                name=name,
                short_description=ATTESTOR_SHORT_DESCRIPTION,
                long_description=ATTESTOR_LONG_DESCRIPTION.format(namespace=authority.namespace),
                kind=OccurrenceKind.ATTESTATION_AUTHORITY,
                human_readable_name=authority.name,
            )

            try:
                created = backend.create_note(
                    project_path(project),
                    authority.name,
                    note,
                    timeout=self._timeout(timeout),
                )
            except API_EXCEPTION_TYPES as e:
                set_error_attributes(span, e)
                log.error("create_attestation_note_failed", note_name=name, error=str(e))
                raise map_api_error(e, operation="create_attestation_note", resource=name) from e

            log.info("attestation_note_created", note_name=created.name)
            return created

    def get_attestation_note(
        self,
        authority: AttestationAuthority,
        *,
        timeout: float | None = None,
    ) -> Note:
        """Fetch the attestation-authority note for an authority.

        Raises:
            MalformedNoteReferenceError: If the note reference is malformed.
            NotFoundError: If the note does not exist.
            RemoteCallError: If the service call fails otherwise.
        """
        tracer = get_tracer()
        with metadata_span(tracer, "get_attestation_note") as span:
            log = logger.bind(authority=authority.name)
            project = note_project(authority.note_reference)
            backend = self._require_backend("get_attestation_note")
            name = note_name(project, authority.name)
            span.set_attribute(ATTR_PROJECT, project)

            try:
                note = backend.get_note(name, timeout=self._timeout(timeout))
            except API_EXCEPTION_TYPES as e:
                set_error_attributes(span, e)
                log.error("get_attestation_note_failed", note_name=name, error=str(e))
                raise map_api_error(e, operation="get_attestation_note", resource=name) from e

            log.debug("attestation_note_fetched", note_name=name)
            return note

    def delete_attestation_note(
        self,
        authority: AttestationAuthority,
        *,
        timeout: float | None = None,
    ) -> None:
        """Delete the attestation-authority note for an authority.

        Occurrences bound to the note are not deleted.

        Raises:
            MalformedNoteReferenceError: If the note reference is malformed.
            NotFoundError: If the note does not exist.
        """
        tracer = get_tracer()
        with metadata_span(tracer, "delete_attestation_note") as span:
            log = logger.bind(authority=authority.name)
            project = note_project(authority.note_reference)
            backend = self._require_backend("delete_attestation_note")
            name = note_name(project, authority.name)
            span.set_attribute(ATTR_PROJECT, project)

            try:
                backend.delete_note(name, timeout=self._timeout(timeout))
            except API_EXCEPTION_TYPES as e:
                set_error_attributes(span, e)
                log.error("delete_attestation_note_failed", note_name=name, error=str(e))
                raise map_api_error(e, operation="delete_attestation_note", resource=name) from e

            log.info("attestation_note_deleted", note_name=name)

    # =========================================================================
    # Attestation occurrences
    # =========================================================================

    def create_attestation_occurrence(
        self,
        note: Note,
        image: str,
        signing_key: SigningKey,
        *,
        timeout: float | None = None,
    ) -> Occurrence:
        """Sign an image and record the attestation under a note.

        The image is validated before the signer is invoked. The created
        occurrence carries the signature and ``signing_key.secret_name`` as
        key id; no private key material leaves the signer.

        Args:
            note: The authority's attestation note.
            image: Image reference on the trusted registry.
            signing_key: Key handed to the signer.
            timeout: Per-call timeout in seconds (config default if None).

        Returns:
            The created occurrence, with its server-assigned name.

        Raises:
            InvalidImageError: If the image is not on the trusted registry.
            SigningError: If the signer fails.
            RemoteCallError: If the service call fails.
        """
        tracer = get_tracer()
        with metadata_span(
            tracer,
            "create_attestation_occurrence",
            kind=OccurrenceKind.ATTESTATION_AUTHORITY.value,
            note_name=note.name,
        ) as span:
            log = logger.bind(image=image, note_name=note.name, key_id=signing_key.secret_name)
            ref = self._trusted_reference(image, log)
            backend = self._require_backend("create_attestation_occurrence")

            signed = self._signer.sign(ref, signing_key)

            url = resource_url(image, self._config.resource_url_prefix)
            parent = project_path(ref.project)
            span.set_attribute(ATTR_PROJECT, ref.project)
            span.set_attribute(ATTR_RESOURCE_URL, url)
            occurrence = Occurrence(
                resource_url=url,
                note_name=note.name,
                details=AttestationDetails(
                    signature=signed.signature,
                    key_id=signed.key_id,
                    serialized_payload=signed.payload,
                ),
            )

            try:
                created = backend.create_occurrence(
                    parent,
                    occurrence,
                    timeout=self._timeout(timeout),
                )
            except API_EXCEPTION_TYPES as e:
                set_error_attributes(span, e)
                log.error("create_attestation_occurrence_failed", error=str(e))
                raise map_api_error(
                    e, operation="create_attestation_occurrence", resource=parent
                ) from e

            log.info("attestation_occurrence_created", occurrence_name=created.name)
            return created

    def delete_occurrence(self, name: str, *, timeout: float | None = None) -> None:
        """Delete an occurrence by its full name.

        Raises:
            NotFoundError: If the occurrence does not exist.
        """
        tracer = get_tracer()
        with metadata_span(tracer, "delete_occurrence") as span:
            log = logger.bind(occurrence_name=name)
            backend = self._require_backend("delete_occurrence")

            try:
                backend.delete_occurrence(name, timeout=self._timeout(timeout))
            except API_EXCEPTION_TYPES as e:
                set_error_attributes(span, e)
                log.error("delete_occurrence_failed", error=str(e))
                raise map_api_error(e, operation="delete_occurrence", resource=name) from e

            log.info("occurrence_deleted")


__all__ = [
    "ATTESTOR_LONG_DESCRIPTION",
    "ATTESTOR_SHORT_DESCRIPTION",
    "GrafeasMetadataPlugin",
]
