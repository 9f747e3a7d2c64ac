"""Unit test fixtures for floe-metadata-grafeas.

Unit tests run fast with no external services: the metadata service is an
in-memory backend raising the same google-api-core exceptions the real
client raises.
"""

from __future__ import annotations

import itertools
import re
from collections.abc import Callable, Iterator
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
from google.api_core.exceptions import AlreadyExists, NotFound
from grafeas import grafeas_v1
from grafeas.grafeas_v1.services.grafeas import pagers
from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from floe_metadata_grafeas.config import GrafeasMetadataConfig
from floe_metadata_grafeas.models import Note, Occurrence, SigningKey
from floe_metadata_grafeas.plugin import GrafeasMetadataPlugin

_FILTER = re.compile(r'^resource_url="(?P<url>.*)" AND kind="(?P<kind>.*)"$')

FAKE_SIGNATURE = "-----BEGIN PGP SIGNATURE-----\nfake\n-----END PGP SIGNATURE-----\n"


class FakeBackend:
    """In-memory MetadataBackend.

    Attributes:
        notes: Notes keyed by full name.
        occurrences: (parent, occurrence) pairs keyed by full name.
        list_calls: Arguments of every list_occurrences call.
        list_error: Raised while iterating, after ``fail_after`` items.
        fail_after: Number of items yielded before ``list_error`` is raised.
    """

    def __init__(self) -> None:
        self.notes: dict[str, Note] = {}
        self.occurrences: dict[str, tuple[str, Occurrence]] = {}
        self.list_calls: list[dict[str, Any]] = []
        self.calls: list[str] = []
        self.list_error: Exception | None = None
        self.fail_after = 0
        self._ids = itertools.count(1)

    def add_occurrence(self, parent: str, occurrence: Occurrence) -> Occurrence:
        """Seed an occurrence as if another client had written it."""
        name = f"{parent}/occurrences/seed-{next(self._ids)}"
        stored = occurrence.model_copy(update={"name": name})
        self.occurrences[name] = (parent, stored)
        return stored

    def list_occurrences(
        self,
        parent: str,
        filter_: str,
        page_size: int,
        *,
        timeout: float | None = None,
    ) -> Iterator[Occurrence]:
        self.calls.append("list_occurrences")
        self.list_calls.append(
            {"parent": parent, "filter": filter_, "page_size": page_size, "timeout": timeout}
        )
        match = _FILTER.match(filter_)
        yielded = 0
        for occ_parent, occurrence in list(self.occurrences.values()):
            if self.list_error is not None and yielded >= self.fail_after:
                raise self.list_error
            if occ_parent != parent:
                continue
            if match is not None and (
                occurrence.resource_url != match["url"] or occurrence.kind != match["kind"]
            ):
                continue
            yielded += 1
            yield occurrence
        if self.list_error is not None:
            raise self.list_error

    def get_note(self, name: str, *, timeout: float | None = None) -> Note:
        self.calls.append("get_note")
        if name not in self.notes:
            raise NotFound(f"note {name} not found")
        return self.notes[name]

    def create_note(
        self,
        parent: str,
        note_id: str,
        note: Note,
        *,
        timeout: float | None = None,
    ) -> Note:
        self.calls.append("create_note")
        name = f"{parent}/notes/{note_id}"
        if name in self.notes:
            raise AlreadyExists(f"note {name} already exists")
        self.notes[name] = note
        return note

    def delete_note(self, name: str, *, timeout: float | None = None) -> None:
        self.calls.append("delete_note")
        if name not in self.notes:
            raise NotFound(f"note {name} not found")
        del self.notes[name]

    def create_occurrence(
        self,
        parent: str,
        occurrence: Occurrence,
        *,
        timeout: float | None = None,
    ) -> Occurrence:
        self.calls.append("create_occurrence")
        name = f"{parent}/occurrences/{next(self._ids)}"
        created = occurrence.model_copy(update={"name": name})
        self.occurrences[name] = (parent, created)
        return created

    def delete_occurrence(self, name: str, *, timeout: float | None = None) -> None:
        self.calls.append("delete_occurrence")
        if name not in self.occurrences:
            raise NotFound(f"occurrence {name} not found")
        del self.occurrences[name]


class RecordingSigner:
    """Signer double recording every payload it is asked to sign."""

    def __init__(self, signature: str = FAKE_SIGNATURE) -> None:
        self.signature = signature
        self.calls: list[tuple[bytes, SigningKey]] = []

    def __call__(self, payload: bytes, key: SigningKey) -> str:
        self.calls.append((payload, key))
        return self.signature


@pytest.fixture
def fake_backend() -> FakeBackend:
    """Empty in-memory backend."""
    return FakeBackend()


@pytest.fixture
def recording_signer() -> RecordingSigner:
    """Signer double returning a fixed armored signature."""
    return RecordingSigner()


@pytest.fixture
def plugin(fake_backend: FakeBackend, recording_signer: RecordingSigner) -> GrafeasMetadataPlugin:
    """Plugin wired to the in-memory backend and recording signer."""
    return GrafeasMetadataPlugin(
        GrafeasMetadataConfig(timeout_seconds=5.0),
        backend=fake_backend,
        signer=recording_signer,
    )


@pytest.fixture
def span_exporter() -> InMemorySpanExporter:
    """In-memory span exporter for capturing spans in tests."""
    return InMemorySpanExporter()


@pytest.fixture
def tracer_with_exporter(span_exporter: InMemorySpanExporter) -> trace.Tracer:
    """Tracer backed by the in-memory exporter."""
    provider = TracerProvider(resource=Resource.create({}))
    provider.add_span_processor(SimpleSpanProcessor(span_exporter))
    return provider.get_tracer("test.metadata.grafeas")


@pytest.fixture
def traced_plugin(
    plugin: GrafeasMetadataPlugin,
    tracer_with_exporter: trace.Tracer,
) -> Iterator[GrafeasMetadataPlugin]:
    """Plugin whose spans land in the in-memory exporter."""
    with patch("floe_metadata_grafeas.plugin.get_tracer", return_value=tracer_with_exporter):
        yield plugin


@pytest.fixture
def grafeas_pager() -> Callable[..., pagers.ListOccurrencesPager]:
    """Factory for a real ListOccurrencesPager over canned pages.

    Each positional argument is one page: a list of occurrence messages, or
    an exception raised when that page is requested. The first page must be
    a list.
    """

    def build(*pages: list[grafeas_v1.Occurrence] | Exception) -> pagers.ListOccurrencesPager:
        def response(index: int, page: list[grafeas_v1.Occurrence]) -> Any:
            token = f"page-{index + 1}" if index < len(pages) - 1 else ""
            return grafeas_v1.ListOccurrencesResponse(occurrences=page, next_page_token=token)

        first, *rest = [
            page if isinstance(page, Exception) else response(index, page)
            for index, page in enumerate(pages)
        ]
        return pagers.ListOccurrencesPager(
            method=MagicMock(side_effect=rest),
            request=grafeas_v1.ListOccurrencesRequest(parent="projects/proj"),
            response=first,
        )

    return build
