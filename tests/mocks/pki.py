"""Throwaway PKI for tests.

Generates an authority, a processor (server) certificate and a client
certificate signed by that authority, mirroring what a pairing produces.
EC keys keep generation fast.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from ipaddress import ip_address
from typing import Tuple

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
)
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from leap_connector.credentials import CredentialSet


@dataclass
class PairingMaterial:
    """PEM material for one simulated processor and its paired client."""
    ca_cert: bytes
    ca_key: bytes
    server_cert: bytes
    server_key: bytes
    client_cert: bytes
    client_key: bytes

    def client_credentials(self) -> CredentialSet:
        return CredentialSet(
            authority_chain=self.ca_cert,
            client_certificate=self.client_cert,
            client_private_key=self.client_key,
        )

    def ca_fingerprint(self) -> str:
        cert = x509.load_pem_x509_certificate(self.ca_cert)
        return cert.fingerprint(hashes.SHA256()).hex().upper()

    def server_fingerprint(self) -> str:
        cert = x509.load_pem_x509_certificate(self.server_cert)
        return cert.fingerprint(hashes.SHA256()).hex().upper()


def _key_to_pem(key: ec.EllipticCurvePrivateKey) -> bytes:
    return key.private_bytes(
        encoding=Encoding.PEM,
        format=PrivateFormat.PKCS8,
        encryption_algorithm=NoEncryption(),
    )


def _key_usage(cert_sign: bool) -> x509.KeyUsage:
    return x509.KeyUsage(
        digital_signature=True,
        key_cert_sign=cert_sign,
        crl_sign=cert_sign,
        key_encipherment=False,
        content_commitment=False,
        data_encipherment=False,
        key_agreement=False,
        encipher_only=False,
        decipher_only=False,
    )


def _generate_ca(common_name: str) -> Tuple[x509.Certificate, ec.EllipticCurvePrivateKey]:
    key = ec.generate_private_key(ec.SECP256R1())
    subject = issuer = x509.Name([
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "LEAP Test"),
        x509.NameAttribute(NameOID.COMMON_NAME, common_name),
    ])

    now = datetime.now(timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(minutes=5))
        .not_valid_after(now + timedelta(days=30))
        .add_extension(x509.BasicConstraints(ca=True, path_length=0), critical=True)
        .add_extension(_key_usage(cert_sign=True), critical=True)
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
        .sign(key, hashes.SHA256())
    )
    return cert, key


def _generate_leaf(
    ca_cert: x509.Certificate,
    ca_key: ec.EllipticCurvePrivateKey,
    common_name: str,
    usage: x509.ObjectIdentifier,
) -> Tuple[x509.Certificate, ec.EllipticCurvePrivateKey]:
    key = ec.generate_private_key(ec.SECP256R1())

    now = datetime.now(timezone.utc)
    builder = (
        x509.CertificateBuilder()
        .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)]))
        .issuer_name(ca_cert.subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(minutes=5))
        .not_valid_after(now + timedelta(days=7))
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(_key_usage(cert_sign=False), critical=True)
        .add_extension(x509.ExtendedKeyUsage([usage]), critical=False)
        .add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(ca_key.public_key()),
            critical=False,
        )
    )
    if usage == ExtendedKeyUsageOID.SERVER_AUTH:
        builder = builder.add_extension(
            x509.SubjectAlternativeName([
                x509.DNSName(common_name),
                x509.DNSName("localhost"),
                x509.IPAddress(ip_address("127.0.0.1")),
            ]),
            critical=False,
        )

    return builder.sign(ca_key, hashes.SHA256()), key


def generate_pairing_material(processor_name: str = "processor.local") -> PairingMaterial:
    """Generate a complete authority, processor and client certificate set."""
    ca_cert, ca_key = _generate_ca(f"{processor_name} authority")
    server_cert, server_key = _generate_leaf(
        ca_cert, ca_key, processor_name, ExtendedKeyUsageOID.SERVER_AUTH
    )
    client_cert, client_key = _generate_leaf(
        ca_cert, ca_key, "leap-client", ExtendedKeyUsageOID.CLIENT_AUTH
    )

    return PairingMaterial(
        ca_cert=ca_cert.public_bytes(Encoding.PEM),
        ca_key=_key_to_pem(ca_key),
        server_cert=server_cert.public_bytes(Encoding.PEM),
        server_key=_key_to_pem(server_key),
        client_cert=client_cert.public_bytes(Encoding.PEM),
        client_key=_key_to_pem(client_key),
    )
