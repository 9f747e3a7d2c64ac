"""Unit tests for the signing delegate and gpg signer.

Requirements Covered:
    - MD-007: Signatures come from an external signer; only the key id is recorded
"""

from __future__ import annotations

import json
import subprocess
from typing import TYPE_CHECKING
from unittest.mock import MagicMock, patch

import pytest

from floe_metadata_grafeas.errors import GpgNotFoundError, SigningError
from floe_metadata_grafeas.models import SigningKey
from floe_metadata_grafeas.signing import (
    ATOMIC_SIGNATURE_TYPE,
    AttestationSigner,
    GpgSigner,
    Signer,
    attestation_payload,
)

if TYPE_CHECKING:
    from conftest import RecordingSigner

DIGEST = "sha256:" + "b" * 64


class TestAttestationPayload:
    """Tests for attestation_payload."""

    @pytest.mark.requirement("MD-007")
    def test_payload_identifies_image(self) -> None:
        """Test the payload names the image repository and digest."""
        payload = json.loads(attestation_payload(f"gcr.io/proj/img@{DIGEST}"))

        assert payload["critical"]["identity"]["docker-reference"] == "gcr.io/proj/img"
        assert payload["critical"]["image"]["docker-manifest-digest"] == DIGEST
        assert payload["critical"]["type"] == ATOMIC_SIGNATURE_TYPE

    @pytest.mark.requirement("MD-007")
    def test_payload_is_canonical(self) -> None:
        """Test identical inputs produce byte-identical compact payloads."""
        first = attestation_payload("gcr.io/proj/img:1.0")

        assert first == attestation_payload("gcr.io/proj/img:1.0")
        assert b" " not in first


class TestAttestationSigner:
    """Tests for AttestationSigner."""

    @pytest.mark.requirement("MD-007")
    def test_packages_signature_with_key_id(
        self,
        recording_signer: RecordingSigner,
        signing_key: SigningKey,
    ) -> None:
        """Test the result carries the signature bytes and the key's secret name."""
        signed = AttestationSigner(recording_signer).sign("gcr.io/proj/img:1.0", signing_key)

        assert signed.signature == recording_signer.signature.encode("utf-8")
        assert signed.key_id == "qa-signing-secret"
        assert signed.payload == attestation_payload("gcr.io/proj/img:1.0")
        assert recording_signer.calls == [(signed.payload, signing_key)]

    @pytest.mark.requirement("MD-007")
    def test_bytes_signature_passed_through(self, signing_key: SigningKey) -> None:
        """Test signers may return raw bytes."""
        signed = AttestationSigner(lambda payload, key: b"\x01\x02").sign(
            "gcr.io/proj/img", signing_key
        )

        assert signed.signature == b"\x01\x02"

    @pytest.mark.requirement("MD-007")
    def test_signer_exception_wrapped(self, signing_key: SigningKey) -> None:
        """Test arbitrary signer failures become SigningError with the cause chained."""
        failing = MagicMock(side_effect=RuntimeError("hsm offline"))

        with pytest.raises(SigningError, match="hsm offline") as exc_info:
            AttestationSigner(failing).sign("gcr.io/proj/img", signing_key)

        assert isinstance(exc_info.value.__cause__, RuntimeError)

    @pytest.mark.requirement("MD-007")
    def test_empty_signature_rejected(self, signing_key: SigningKey) -> None:
        """Test an empty signature is treated as a failure."""
        with pytest.raises(SigningError, match="empty signature"):
            AttestationSigner(lambda payload, key: "").sign("gcr.io/proj/img", signing_key)

    @pytest.mark.requirement("MD-007")
    def test_secrets_never_logged(
        self,
        recording_signer: RecordingSigner,
        signing_key: SigningKey,
    ) -> None:
        """Test neither the private key nor the signature reaches the logger."""
        with patch("floe_metadata_grafeas.signing.logger") as mock_logger:
            AttestationSigner(recording_signer).sign("gcr.io/proj/img", signing_key)

        logged = repr(mock_logger.mock_calls)
        assert "super-secret-private-key" not in logged
        assert "fake" not in logged

    @pytest.mark.requirement("MD-007")
    def test_recording_signer_satisfies_protocol(self, recording_signer: RecordingSigner) -> None:
        """Test callables with the signing signature satisfy the Signer protocol."""
        assert isinstance(recording_signer, Signer)
        assert isinstance(GpgSigner(), Signer)


class TestGpgSigner:
    """Tests for GpgSigner with subprocess mocked."""

    @pytest.mark.requirement("MD-007")
    def test_missing_gpg_raises(self, signing_key: SigningKey) -> None:
        """Test a missing gpg binary raises GpgNotFoundError."""
        with patch("floe_metadata_grafeas.signing.shutil.which", return_value=None):
            with pytest.raises(GpgNotFoundError):
                GpgSigner()(b"payload", signing_key)

    @pytest.mark.requirement("MD-007")
    def test_signs_with_local_user_when_no_private_key(self) -> None:
        """Test keys without private material are looked up by name in the keyring."""
        key = SigningKey(secret_name="attestor@example.com")
        completed = subprocess.CompletedProcess(args=[], returncode=0, stdout=b"SIG", stderr=b"")

        with (
            patch("floe_metadata_grafeas.signing.shutil.which", return_value="/usr/bin/gpg"),
            patch(
                "floe_metadata_grafeas.signing.subprocess.run", return_value=completed
            ) as mock_run,
        ):
            signature = GpgSigner(homedir="/keys")(b"payload", key)

        assert signature == "SIG"
        cmd = mock_run.call_args.args[0]
        assert cmd[:5] == ["gpg", "--batch", "--yes", "--homedir", "/keys"]
        assert "--detach-sign" in cmd
        assert cmd[-2:] == ["--local-user", "attestor@example.com"]
        assert mock_run.call_args.kwargs["input"] == b"payload"

    @pytest.mark.requirement("MD-007")
    def test_imports_private_key_into_temporary_keyring(self, signing_key: SigningKey) -> None:
        """Test private key material is imported via stdin, never via argv."""
        completed = subprocess.CompletedProcess(args=[], returncode=0, stdout=b"SIG", stderr=b"")

        with (
            patch("floe_metadata_grafeas.signing.shutil.which", return_value="/usr/bin/gpg"),
            patch(
                "floe_metadata_grafeas.signing.subprocess.run", return_value=completed
            ) as mock_run,
        ):
            GpgSigner()(b"payload", signing_key)

        import_call, sign_call = mock_run.call_args_list
        assert "--import" in import_call.args[0]
        assert import_call.kwargs["input"] == b"super-secret-private-key"
        assert all("super-secret" not in arg for arg in import_call.args[0])
        assert "--local-user" not in sign_call.args[0]
        homedir = import_call.args[0][import_call.args[0].index("--homedir") + 1]
        assert homedir == sign_call.args[0][sign_call.args[0].index("--homedir") + 1]

    @pytest.mark.requirement("MD-007")
    def test_nonzero_exit_raises(self) -> None:
        """Test gpg failures surface as SigningError with stderr."""
        key = SigningKey(secret_name="missing-key")
        failed = subprocess.CompletedProcess(
            args=[], returncode=2, stdout=b"", stderr=b"secret key not available"
        )

        with (
            patch("floe_metadata_grafeas.signing.shutil.which", return_value="/usr/bin/gpg"),
            patch("floe_metadata_grafeas.signing.subprocess.run", return_value=failed),
        ):
            with pytest.raises(SigningError, match="secret key not available"):
                GpgSigner()(b"payload", key)

    @pytest.mark.requirement("MD-007")
    def test_timeout_raises(self) -> None:
        """Test a hung gpg process surfaces as SigningError."""
        key = SigningKey(secret_name="k")

        with (
            patch("floe_metadata_grafeas.signing.shutil.which", return_value="/usr/bin/gpg"),
            patch(
                "floe_metadata_grafeas.signing.subprocess.run",
                side_effect=subprocess.TimeoutExpired(cmd="gpg", timeout=1.0),
            ),
        ):
            with pytest.raises(SigningError, match="timed out"):
                GpgSigner(timeout=1.0)(b"payload", key)
