"""Unit tests for image reference parsing and trusted-registry validation.

Requirements Covered:
    - MD-001: Only images on the trusted registry reach the metadata service
"""

from __future__ import annotations

from unittest.mock import patch

import pytest

from floe_metadata_grafeas.errors import ImageReferenceParseError
from floe_metadata_grafeas.image import (
    DEFAULT_REGISTRY,
    ImageReference,
    is_trusted_registry,
    is_valid_trusted_image,
)

DIGEST = "sha256:" + "a" * 64


class TestImageReferenceParse:
    """Tests for ImageReference.parse."""

    @pytest.mark.requirement("MD-001")
    def test_parses_registry_repository_and_tag(self) -> None:
        """Test a fully qualified tagged reference is split into components."""
        ref = ImageReference.parse("us.gcr.io/proj/img:tag")

        assert ref.registry == "us.gcr.io"
        assert ref.repository == "proj/img"
        assert ref.tag == "tag"
        assert ref.digest is None
        assert ref.project == "proj"
        assert ref.raw == "us.gcr.io/proj/img:tag"

    @pytest.mark.requirement("MD-001")
    def test_missing_tag_is_accepted(self) -> None:
        """Test weak validation accepts references without a tag."""
        ref = ImageReference.parse("gcr.io/proj/img")

        assert ref.tag is None
        assert ref.name == "gcr.io/proj/img"

    @pytest.mark.requirement("MD-001")
    def test_parses_digest_reference(self) -> None:
        """Test a digest reference keeps both tag and digest."""
        ref = ImageReference.parse(f"gcr.io/proj/img:1.0@{DIGEST}")

        assert ref.tag == "1.0"
        assert ref.digest == DIGEST

    @pytest.mark.requirement("MD-001")
    def test_missing_registry_defaults_to_docker_hub(self) -> None:
        """Test a bare name falls back to Docker Hub's library namespace."""
        ref = ImageReference.parse("ubuntu")

        assert ref.registry == DEFAULT_REGISTRY
        assert ref.repository == "library/ubuntu"

    @pytest.mark.requirement("MD-001")
    def test_first_segment_without_dot_is_repository(self) -> None:
        """Test 'proj/img' is a Docker Hub repository, not a registry."""
        ref = ImageReference.parse("proj/img")

        assert ref.registry == DEFAULT_REGISTRY
        assert ref.repository == "proj/img"

    @pytest.mark.requirement("MD-001")
    def test_registry_port_is_not_a_tag(self) -> None:
        """Test the colon of a registry port is not read as a tag."""
        ref = ImageReference.parse("localhost:5000/proj/img")

        assert ref.registry == "localhost:5000"
        assert ref.tag is None

    @pytest.mark.requirement("MD-001")
    @pytest.mark.parametrize(
        "reference",
        [
            "",
            "gcr.io/Proj/img",
            "gcr.io/proj//img",
            "gcr.io/proj/img:",
            "gcr.io/proj/img@sha256:short",
            "gcr.io/a",
            "bad host!/proj/img",
            "gcr.io/proj/img\n",
            "gcr.io/proj/img:tag\n",
            "gcr.io/proj/img:t\u00e1g",
            f"gcr.io/proj/img@{DIGEST}\n",
        ],
    )
    def test_malformed_references_raise(self, reference: str) -> None:
        """Test malformed references raise ImageReferenceParseError."""
        with pytest.raises(ImageReferenceParseError):
            ImageReference.parse(reference)


class TestIsTrustedRegistry:
    """Tests for is_trusted_registry."""

    @pytest.mark.requirement("MD-001")
    @pytest.mark.parametrize("registry", ["gcr.io", "us.gcr.io", "eu.gcr.io", "a.b.gcr.io"])
    def test_trusted_hosts(self, registry: str) -> None:
        """Test hosts ending in gcr.io are trusted."""
        assert is_trusted_registry(registry) is True

    @pytest.mark.requirement("MD-001")
    @pytest.mark.parametrize(
        "registry",
        ["gcr", "docker.io", "gcr.io.evil.com", "gcr.io:443", "evilgcr.io", "io"],
    )
    def test_untrusted_hosts(self, registry: str) -> None:
        """Test any host whose last two labels are not gcr/io is rejected."""
        assert is_trusted_registry(registry) is False

    @pytest.mark.requirement("MD-001")
    def test_custom_suffix(self) -> None:
        """Test the trusted suffix is configurable."""
        assert is_trusted_registry("europe-docker.pkg.dev", ("pkg", "dev")) is True
        assert is_trusted_registry("us.gcr.io", ("pkg", "dev")) is False


class TestIsValidTrustedImage:
    """Tests for is_valid_trusted_image."""

    @pytest.mark.requirement("MD-001")
    def test_trusted_image(self) -> None:
        """Test an image on a gcr.io subdomain is valid."""
        assert is_valid_trusted_image("us.gcr.io/proj/img:tag") is True

    @pytest.mark.requirement("MD-001")
    def test_docker_hub_image_rejected(self) -> None:
        """Test an image on another registry is rejected."""
        assert is_valid_trusted_image("docker.io/proj/img") is False

    @pytest.mark.requirement("MD-001")
    def test_bare_name_rejected(self) -> None:
        """Test a reference without registry resolves to Docker Hub and is rejected."""
        assert is_valid_trusted_image("img") is False

    @pytest.mark.requirement("MD-001")
    def test_parse_failure_logs_warning_and_returns_false(self) -> None:
        """Test unparseable references are logged, not raised."""
        with patch("floe_metadata_grafeas.image.logger") as mock_logger:
            assert is_valid_trusted_image("gcr.io/UPPER/img") is False

        mock_logger.warning.assert_called_once()
        assert mock_logger.warning.call_args.args[0] == "image_reference_parse_failed"

    @pytest.mark.requirement("MD-001")
    @pytest.mark.parametrize(
        "reference",
        [
            "gcr.io/proj/img\n",
            "gcr.io/proj/img:tag\n",
            "gcr.io/proj/img:tág",
            f"gcr.io/proj/img@{DIGEST}\n",
        ],
    )
    def test_trailing_newline_and_non_ascii_tag_rejected(self, reference: str) -> None:
        """Test references with a trailing newline or non-ASCII tag are not trusted."""
        assert is_valid_trusted_image(reference) is False
