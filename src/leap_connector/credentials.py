"""
Credential sets used to authenticate a LEAP session.

A credential set is the trust material for one side of one processor's
session: the authority chain used to verify the peer, plus the client
certificate and private key presented as our identity.
"""

import base64
import binascii
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.serialization import load_pem_private_key

# On-disk field names, shared with documents written by existing installations.
FIELD_AUTHORITY = "ca"
FIELD_CERTIFICATE = "cert"
FIELD_PRIVATE_KEY = "key"

_ATTRIBUTE_FIELDS = (
    ("authority_chain", FIELD_AUTHORITY),
    ("client_certificate", FIELD_CERTIFICATE),
    ("client_private_key", FIELD_PRIVATE_KEY),
)


def _as_bytes(value: Any) -> bytes:
    if value is None:
        return b""
    if isinstance(value, str):
        return value.encode("utf-8")
    return bytes(value)


@dataclass(frozen=True)
class CredentialSet:
    """Trust material for one processor session.

    Attributes:
        authority_chain: PEM encoded certificate authority chain
        client_certificate: PEM encoded client certificate
        client_private_key: PEM encoded client private key

    A set with any empty field is incomplete and must be treated as absent.
    """
    authority_chain: bytes
    client_certificate: bytes
    client_private_key: bytes

    def __repr__(self) -> str:
        return (
            f"CredentialSet(authority_chain=<{len(self.authority_chain)} bytes>, "
            f"client_certificate=<{len(self.client_certificate)} bytes>, "
            f"client_private_key=<redacted>)"
        )

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "CredentialSet":
        """Build a set from a mapping keyed by on-disk or attribute names.

        Text values are UTF-8 encoded. Missing fields become empty bytes,
        which leaves the set incomplete rather than raising.
        """
        values = {}
        for attribute, field_name in _ATTRIBUTE_FIELDS:
            value = mapping.get(field_name, mapping.get(attribute))
            values[attribute] = _as_bytes(value)
        return cls(**values)

    def is_complete(self) -> bool:
        """Check that all three fields are present."""
        return bool(self.authority_chain and self.client_certificate and self.client_private_key)

    def encode(self) -> dict[str, str]:
        """Encode each field as base64 text for embedding in a document.

        This is an interchange encoding, not encryption.
        """
        return {
            field_name: base64.b64encode(getattr(self, attribute)).decode("ascii")
            for attribute, field_name in _ATTRIBUTE_FIELDS
        }

    @classmethod
    def decode(cls, mapping: Mapping[str, Any]) -> "CredentialSet":
        """Decode a mapping produced by encode().

        Raises:
            ValueError: If a field is not valid base64
        """
        values = {}
        for attribute, field_name in _ATTRIBUTE_FIELDS:
            raw = mapping.get(field_name)
            if raw is None:
                values[attribute] = b""
                continue
            try:
                values[attribute] = base64.b64decode(_as_bytes(raw), validate=True)
            except binascii.Error as e:
                raise ValueError(f"Field '{field_name}' is not valid base64") from e
        return cls(**values)

    def _authority_certificates(self) -> list[x509.Certificate]:
        return x509.load_pem_x509_certificates(self.authority_chain)

    def _certificate(self) -> x509.Certificate:
        return x509.load_pem_x509_certificate(self.client_certificate)

    def validate(self) -> None:
        """Parse all three PEM blobs.

        Raises:
            ValueError: If the set is incomplete or any blob is malformed
        """
        if not self.is_complete():
            raise ValueError("Credential set is incomplete")
        self._authority_certificates()
        self._certificate()
        # cryptography raises ValueError or TypeError for unreadable keys
        try:
            load_pem_private_key(self.client_private_key, password=None)
        except TypeError as e:
            raise ValueError("Client private key is encrypted or unsupported") from e

    def authority_fingerprint(self) -> str:
        """SHA256 fingerprint of the first certificate in the authority chain."""
        certificate = self._authority_certificates()[0]
        return certificate.fingerprint(hashes.SHA256()).hex().upper()

    def certificate_expires_at(self) -> datetime:
        """When the client certificate stops being valid (UTC)."""
        return self._certificate().not_valid_after_utc

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Check if the client certificate has expired."""
        now = now or datetime.now(timezone.utc)
        return now > self.certificate_expires_at()

    def to_dict(self, include_private_key: bool = False) -> dict[str, Any]:
        """Convert to a dictionary suitable for diagnostics.

        Args:
            include_private_key: Include the PEM private key in output

        Returns:
            Dictionary representation
        """
        result: dict[str, Any] = {
            "complete": self.is_complete(),
            "authority_chain": self.authority_chain.decode("utf-8", "replace"),
            "client_certificate": self.client_certificate.decode("utf-8", "replace"),
        }
        if include_private_key:
            result["client_private_key"] = self.client_private_key.decode("utf-8", "replace")
        return result
