"""Shared pytest configuration for floe-metadata-grafeas tests.

Test directories do NOT have __init__.py files.
"""

from __future__ import annotations

import pytest

from floe_metadata_grafeas.models import AttestationAuthority, SigningKey


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "requirement(id): Mark test as covering a specific requirement",
    )


@pytest.fixture
def authority() -> AttestationAuthority:
    """An attestation authority owned by project my-proj."""
    return AttestationAuthority(
        name="qa-attestor",
        namespace="qa",
        note_reference="containeranalysis.googleapis.com/projects/my-proj",
    )


@pytest.fixture
def signing_key() -> SigningKey:
    """A signing key whose private material must never leak."""
    return SigningKey(
        secret_name="qa-signing-secret",
        public_key="-----BEGIN PGP PUBLIC KEY BLOCK-----\n...\n-----END PGP PUBLIC KEY BLOCK-----",
        private_key="super-secret-private-key",
    )
