"""RSA encryption with certificate keys.

Padding is PKCS#1 v1.5, kept for interoperability with existing peers. It is a
known weak default; moving to OAEP changes the wire format and needs both
sides upgraded together.
"""

import logging

from cryptography.hazmat.primitives.asymmetric import padding, rsa

from agentlink.certificate import Certificate
from agentlink.exceptions import MissingPrivateKeyError

logger = logging.getLogger(__name__)


def _padding() -> padding.AsymmetricPadding:
    return padding.PKCS1v15()


def encrypt(cert: Certificate, data: bytes) -> bytes:
    """
    Encrypt data with the certificate's public key.

    Args:
        cert: The certificate to use
        data: The data to encrypt

    Returns:
        The encrypted bytes
    """
    if cert is None:
        raise ValueError("A certificate must be provided!")
    if data is None:
        raise ValueError("Data must be provided")

    public_key = cert.public_key
    if not isinstance(public_key, rsa.RSAPublicKey):
        raise TypeError(f"Certificate '{cert.subject}' does not carry an RSA public key")
    logger.debug(f"Encrypting {len(data)} byte(s) for '{cert.subject}'")
    return public_key.encrypt(bytes(data), _padding())


def decrypt(cert: Certificate, data: bytes) -> bytes:
    """
    Decrypt data with the certificate's private key.

    Args:
        cert: The certificate to use; must carry a private key
        data: The data to decrypt

    Returns:
        The decrypted bytes
    """
    if cert is None:
        raise ValueError("A certificate must be provided!")
    if data is None:
        raise ValueError("Data must be provided")
    if not cert.has_private_key:
        raise MissingPrivateKeyError("Certificate must have a private key!")

    private_key = cert.private_key
    if not isinstance(private_key, rsa.RSAPrivateKey):
        raise TypeError(f"Certificate '{cert.subject}' does not carry an RSA private key")
    logger.debug(f"Decrypting {len(data)} byte(s) with '{cert.subject}'")
    return private_key.decrypt(bytes(data), _padding())


def encrypt_text(cert: Certificate, data: str) -> str:
    """Encrypt a UTF-8 string, returning a hex string."""
    if cert is None:
        raise ValueError("A certificate must be provided!")
    if not data:
        raise ValueError("Data must be provided")

    return encrypt(cert, data.encode("utf-8")).hex()


def decrypt_text(cert: Certificate, data: str) -> str:
    """Decrypt a hex string, returning the UTF-8 plaintext."""
    if cert is None:
        raise ValueError("A certificate must be provided!")
    if not data:
        raise ValueError("Data must be provided")

    return decrypt(cert, bytes.fromhex(data)).decode("utf-8")
