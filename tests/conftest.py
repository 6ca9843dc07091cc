"""Shared certificate fixtures."""

from datetime import datetime, timedelta, timezone

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from agentlink.certificate import Certificate


def make_certificate(
    common_name,
    issuer=None,
    ca=None,
    not_before=None,
    not_after=None,
    key_size=2048,
):
    """
    Create a certificate carrying its private key.

    Args:
        common_name: Subject CN
        issuer: Issuing Certificate (with private key); self-signed when None
        ca: BasicConstraints CA flag; extension omitted when None
        not_before: Start of validity (default: yesterday)
        not_after: End of validity (default: in a year)
    """
    now = datetime.now(timezone.utc)
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
    subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])

    if issuer is None:
        issuer_name = subject
        signing_key = private_key
    else:
        issuer_name = issuer.x509.subject
        signing_key = issuer.private_key

    builder = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer_name)
        .public_key(private_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before or now - timedelta(days=1))
        .not_valid_after(not_after or now + timedelta(days=365))
    )
    if ca is not None:
        builder = builder.add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True)

    cert = builder.sign(signing_key, hashes.SHA256())
    return Certificate(cert, private_key=private_key)


@pytest.fixture
def root_ca():
    """Self-signed authority."""
    return make_certificate("Agent Server CA", ca=True)


@pytest.fixture
def other_ca():
    """An unrelated self-signed authority."""
    return make_certificate("Unrelated Root CA", ca=True)


@pytest.fixture
def leaf_cert(root_ca):
    """Certificate issued directly by root_ca."""
    return make_certificate("agent.example.com", issuer=root_ca)


@pytest.fixture
def public_only(leaf_cert):
    """leaf_cert without its private key."""
    return Certificate(leaf_cert.x509)
