"""Signing delegate for attestation occurrences.

The cryptographic primitive is external: anything satisfying the Signer
protocol can produce the detached signature. This module builds the
payload that gets signed, calls the signer, and packages the result with
the public key identifier. Key material, payloads and signatures are never
logged.

Example:
    >>> from floe_metadata_grafeas.signing import AttestationSigner, GpgSigner
    >>> signer = AttestationSigner(GpgSigner())
    >>> signed = signer.sign("gcr.io/proj/img:1.0", key)
    >>> signed.key_id == key.secret_name
    True
"""

from __future__ import annotations

import json
import shutil
import subprocess
import tempfile
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import structlog

from floe_metadata_grafeas.errors import GpgNotFoundError, SigningError
from floe_metadata_grafeas.image import ImageReference
from floe_metadata_grafeas.models import SigningKey

logger = structlog.get_logger(__name__)

# Signature type string of the atomic container signature format
ATOMIC_SIGNATURE_TYPE = "atomic container signature"

# Seconds allowed for one gpg invocation
DEFAULT_GPG_TIMEOUT = 60.0


@runtime_checkable
class Signer(Protocol):
    """External signing primitive.

    Given the payload bytes and a key, returns a detached signature.
    """

    def __call__(self, payload: bytes, key: SigningKey) -> str | bytes:
        """Sign payload with key and return the detached signature."""
        ...


@dataclass(frozen=True)
class SignedAttestation:
    """Result of signing an image attestation.

    Attributes:
        signature: Detached signature bytes.
        key_id: Public identifier of the signing key.
        payload: The exact bytes that were signed.
    """

    signature: bytes
    key_id: str
    payload: bytes


def attestation_payload(image: str | ImageReference) -> bytes:
    """Build the canonical payload attesting to an image.

    The payload is the atomic container signature document, serialized with
    sorted keys and compact separators so identical inputs sign identically.

    Args:
        image: Image reference being attested, raw or already parsed.

    Returns:
        UTF-8 encoded JSON payload.

    Example:
        >>> attestation_payload("gcr.io/proj/img:1.0")
        b'{"critical":{"identity":{"docker-reference":"gcr.io/proj/img"},...}'
    """
    ref = image if isinstance(image, ImageReference) else ImageReference.parse(image)
    document = {
        "critical": {
            "identity": {"docker-reference": ref.name},
            "image": {"docker-manifest-digest": ref.digest or ""},
            "type": ATOMIC_SIGNATURE_TYPE,
        },
    }
    return json.dumps(document, sort_keys=True, separators=(",", ":")).encode("utf-8")


class AttestationSigner:
    """Adapter from a Signer to attestation occurrence fields."""

    def __init__(self, signer: Signer) -> None:
        self._signer = signer

    def sign(self, image: str | ImageReference, key: SigningKey) -> SignedAttestation:
        """Sign the attestation payload for an image.

        Args:
            image: Validated image reference.
            key: Signing key; only its ``secret_name`` leaves this call.

        Returns:
            SignedAttestation carrying the signature and key id.

        Raises:
            SigningError: If the signer fails or returns an empty signature.
        """
        raw = image.raw if isinstance(image, ImageReference) else image
        log = logger.bind(image=raw, key_id=key.secret_name)
        payload = attestation_payload(image)
        try:
            signature = self._signer(payload, key)
        except SigningError:
            log.error("attestation_signing_failed")
            raise
        except Exception as e:
            log.error("attestation_signing_failed", error_type=type(e).__name__)
            raise SigningError(f"Signer failed for key {key.secret_name!r}: {e}") from e

        if isinstance(signature, str):
            signature = signature.encode("utf-8")
        if not signature:
            raise SigningError(f"Signer returned an empty signature for key {key.secret_name!r}")

        log.debug("attestation_signed", payload_size=len(payload))
        return SignedAttestation(signature=signature, key_id=key.secret_name, payload=payload)


def check_gpg_available() -> bool:
    """Check if the gpg CLI is available on PATH."""
    return shutil.which("gpg") is not None


class GpgSigner:
    """Signer producing armored detached PGP signatures via the gpg CLI.

    When the key carries private key material it is imported into a
    throwaway keyring for the duration of the call. Otherwise the key is
    looked up by ``secret_name`` in the configured (or default) keyring.
    """

    def __init__(self, homedir: str | None = None, timeout: float = DEFAULT_GPG_TIMEOUT) -> None:
        self._homedir = homedir
        self._timeout = timeout

    def __call__(self, payload: bytes, key: SigningKey) -> str:
        if not check_gpg_available():
            raise GpgNotFoundError()

        if key.private_key is None:
            return self._detach_sign(payload, self._homedir, local_user=key.secret_name)

        with tempfile.TemporaryDirectory(prefix="floe-gpg-") as homedir:
            self._run(
                "import",
                ["--import"],
                homedir,
                key.private_key.get_secret_value().encode("utf-8"),
            )
            return self._detach_sign(payload, homedir, local_user=None)

    def _detach_sign(self, payload: bytes, homedir: str | None, local_user: str | None) -> str:
        args = ["--pinentry-mode", "loopback", "--detach-sign", "--armor"]
        if local_user is not None:
            args += ["--local-user", local_user]
        return self._run("detach-sign", args, homedir, payload).decode("utf-8")

    def _run(self, action: str, args: list[str], homedir: str | None, stdin: bytes) -> bytes:
        cmd = ["gpg", "--batch", "--yes"]
        if homedir is not None:
            cmd += ["--homedir", homedir]
        cmd += args

        logger.debug("running_gpg", command=" ".join(cmd[:4]) + " ...")
        try:
            result = subprocess.run(
                cmd,
                input=stdin,
                capture_output=True,
                timeout=self._timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise SigningError(f"gpg timed out after {self._timeout} seconds") from e

        if result.returncode != 0:
            stderr = result.stderr.decode("utf-8", errors="replace").strip()
            raise SigningError(f"gpg {action} failed: {stderr}")
        return result.stdout


__all__ = [
    "ATOMIC_SIGNATURE_TYPE",
    "AttestationSigner",
    "GpgSigner",
    "SignedAttestation",
    "Signer",
    "attestation_payload",
    "check_gpg_available",
]
