"""Certificate handles: loading, identity and descriptive parsing."""

import functools
import hashlib
import logging
import warnings
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import AuthorityInformationAccessOID, ExtensionOID, NameOID

from agentlink.models import CertificateInfo

logger = logging.getLogger(__name__)


@functools.lru_cache(maxsize=256)
def _load_cert_with_cache(cert_data: bytes, pem: bool = False) -> x509.Certificate:
    """
    Load a certificate while suppressing CryptographyDeprecationWarning about serial numbers.

    Args:
        cert_data: Certificate data (DER or PEM bytes)
        pem: If True, treat as PEM format; otherwise DER

    Returns:
        Loaded certificate
    """
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        if pem:
            return x509.load_pem_x509_certificate(cert_data)
        return x509.load_der_x509_certificate(cert_data)


def _public_key_bytes(public_key) -> bytes:
    return public_key.public_bytes(
        serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo
    )


@dataclass(frozen=True, eq=False)
class Certificate:
    """
    Immutable handle to an X.509 identity.

    Wraps a cryptography certificate and, when the holder owns it, the matching
    private key. Identity comparison uses the SHA-1 thumbprint.
    """

    x509: x509.Certificate
    private_key: Optional[rsa.RSAPrivateKey] = None
    friendly_name: str = ""

    @classmethod
    def from_der(cls, data: bytes, friendly_name: str = "") -> "Certificate":
        if not data:
            raise ValueError("Certificate data must be provided")
        return cls(_load_cert_with_cache(bytes(data), pem=False), friendly_name=friendly_name)

    @classmethod
    def from_pem(cls, data: Union[bytes, str], friendly_name: str = "") -> "Certificate":
        if not data:
            raise ValueError("Certificate data must be provided")
        if isinstance(data, str):
            data = data.encode("ascii")
        return cls(_load_cert_with_cache(bytes(data), pem=True), friendly_name=friendly_name)

    @classmethod
    def from_file(
        cls,
        path: Union[str, Path],
        key_path: Optional[Union[str, Path]] = None,
        password: Optional[bytes] = None,
    ) -> "Certificate":
        """
        Load a certificate from a PEM or DER file.

        Args:
            path: Certificate file
            key_path: Optional PEM private key file to attach
            password: Optional private key password

        Returns:
            Certificate, carrying the private key when key_path is given
        """
        if not path:
            raise ValueError("Certificate path must be provided")
        data = Path(path).read_bytes()
        if b"-----BEGIN CERTIFICATE-----" in data:
            cert = cls.from_pem(data)
        else:
            cert = cls.from_der(data)
        if key_path:
            key = serialization.load_pem_private_key(Path(key_path).read_bytes(), password=password)
            cert = cert.with_private_key(key)
        return cert

    @classmethod
    def from_pkcs12(cls, data: bytes, password: Optional[bytes] = None) -> "Certificate":
        """Load a certificate and its private key from a PKCS#12 bundle."""
        if not data:
            raise ValueError("PKCS#12 data must be provided")
        key, cert, _ = pkcs12.load_key_and_certificates(data, password)
        if cert is None:
            raise ValueError("PKCS#12 bundle does not contain a certificate")
        return cls(cert, private_key=key)

    def with_private_key(self, private_key) -> "Certificate":
        """Return a new handle carrying private_key; the key must match the certificate."""
        if private_key is None:
            raise ValueError("Private key must be provided")
        if _public_key_bytes(private_key.public_key()) != _public_key_bytes(self.x509.public_key()):
            raise ValueError("Private key does not match certificate public key")
        return Certificate(self.x509, private_key=private_key, friendly_name=self.friendly_name)

    @property
    def subject(self) -> str:
        return self.x509.subject.rfc4514_string()

    @property
    def issuer(self) -> str:
        return self.x509.issuer.rfc4514_string()

    @property
    def common_name(self) -> str:
        attrs = self.x509.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
        return str(attrs[0].value) if attrs else ""

    @property
    def display_name(self) -> str:
        return self.friendly_name or self.common_name or self.subject

    @property
    def der(self) -> bytes:
        return self.x509.public_bytes(serialization.Encoding.DER)

    @property
    def pem(self) -> bytes:
        return self.x509.public_bytes(serialization.Encoding.PEM)

    @property
    def thumbprint(self) -> str:
        return hashlib.sha1(self.der).hexdigest().upper()

    @property
    def public_key(self):
        return self.x509.public_key()

    @property
    def has_private_key(self) -> bool:
        return self.private_key is not None

    @property
    def not_before(self) -> datetime:
        return self.x509.not_valid_before_utc

    @property
    def not_after(self) -> datetime:
        return self.x509.not_valid_after_utc

    def is_time_valid(self, at: datetime) -> bool:
        return self.not_before <= at <= self.not_after

    @property
    def is_self_signed(self) -> bool:
        """True if subject equals issuer and the certificate verifies against its own key."""
        if self.x509.subject != self.x509.issuer:
            return False
        try:
            self.x509.verify_directly_issued_by(self.x509)
            return True
        except Exception as e:
            logger.debug(f"Certificate '{self.subject}' has subject==issuer but is not self-signed: {e}")
            return False

    def __eq__(self, other) -> bool:
        if not isinstance(other, Certificate):
            return NotImplemented
        return self.thumbprint == other.thumbprint

    def __hash__(self) -> int:
        return hash(self.thumbprint)

    def __str__(self) -> str:
        return f"[Subject] {self.subject} [Issuer] {self.issuer} [Thumbprint] {self.thumbprint}"


def parse_certificate(cert: Certificate) -> CertificateInfo:
    """
    Parse a certificate into a descriptive record.

    Args:
        cert: Certificate handle

    Returns:
        CertificateInfo
    """
    x = cert.x509

    ca_issuers_urls = []
    try:
        aia = x.extensions.get_extension_for_oid(ExtensionOID.AUTHORITY_INFORMATION_ACCESS).value
        for desc in aia:
            if desc.access_method == AuthorityInformationAccessOID.CA_ISSUERS and isinstance(
                desc.access_location, x509.UniformResourceIdentifier
            ):
                ca_issuers_urls.append(desc.access_location.value)
    except x509.ExtensionNotFound:
        pass

    is_ca = None
    try:
        is_ca = x.extensions.get_extension_for_class(x509.BasicConstraints).value.ca
    except x509.ExtensionNotFound:
        pass

    try:
        signature_algorithm = x.signature_algorithm_oid._name
    except AttributeError:
        signature_algorithm = x.signature_algorithm_oid.dotted_string

    return CertificateInfo(
        subject=cert.subject,
        issuer=cert.issuer,
        serial_number=format(x.serial_number, "X"),
        not_before=cert.not_before,
        not_after=cert.not_after,
        fingerprint_sha256=hashlib.sha256(cert.der).hexdigest(),
        thumbprint=cert.thumbprint,
        public_key_algorithm=type(cert.public_key).__name__.lstrip("_"),
        signature_algorithm=signature_algorithm,
        ca_issuers_urls=ca_issuers_urls,
        is_ca=is_ca,
        friendly_name=cert.display_name,
        has_private_key=cert.has_private_key,
    )
