"""Machine-wide root certificate store access."""

import logging
import os
import re
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Iterator, List, Optional, Union

import certifi

from agentlink.certificate import Certificate
from agentlink.exceptions import StoreAccessError
from agentlink.models import DEFAULT_ROOT_STORE, AgentConfig

logger = logging.getLogger(__name__)

SERVER_CA_NAME = "Agent Server CA"
PROJECT_ROOT_NAME = "Agent Project Root"

SYSTEM_BUNDLE = Path("/etc/ssl/certs/ca-certificates.crt")
STORE_SUFFIXES = (".pem", ".crt", ".cer")


class OpenMode(str, Enum):
    """Access mode for a store handle."""

    READ_ONLY = "ReadOnly"
    READ_WRITE = "ReadWrite"


def _split_pem_certificates(data: bytes) -> List[bytes]:
    """Split PEM data into individual certificate blocks."""
    pattern = rb"-----BEGIN CERTIFICATE-----(.*?)-----END CERTIFICATE-----"
    matches = re.findall(pattern, data, re.DOTALL)
    return [
        b"-----BEGIN CERTIFICATE-----" + match + b"-----END CERTIFICATE-----\n"
        for match in matches
    ]


def _load_bundle(path: Path) -> List[Certificate]:
    certs: List[Certificate] = []
    for cert_pem in _split_pem_certificates(path.read_bytes()):
        try:
            certs.append(Certificate.from_pem(cert_pem))
        except Exception as e:
            logger.debug(f"Error parsing certificate in {path}: {e}")
    return certs


def _load_system_trust_store() -> List[Certificate]:
    """
    Load certificates from the system trust store.

    Returns:
        Certificates from the certifi bundle followed by the platform bundle
    """
    trust_store_certs: List[Certificate] = []

    certifi_path = Path(certifi.where())
    if certifi_path.exists():
        trust_store_certs.extend(_load_bundle(certifi_path))

    if os.name == "posix" and SYSTEM_BUNDLE.exists():
        trust_store_certs.extend(_load_bundle(SYSTEM_BUNDLE))

    logger.debug(f"Loaded {len(trust_store_certs)} certificate(s) from system trust store")
    return trust_store_certs


class StoreHandle:
    """
    An open view of a RootStore.

    Handles are scoped to a single call; use them as context managers so they
    are closed on every exit path.
    """

    def __init__(self, store: "RootStore", mode: OpenMode):
        self._store = store
        self.mode = mode
        self._closed = False
        self._certificates: Optional[List[Certificate]] = None

    def __enter__(self) -> "StoreHandle":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def _ensure_open(self) -> None:
        if self._closed:
            raise StoreAccessError(f"Store handle for {self._store.location} is closed")

    @property
    def certificates(self) -> List[Certificate]:
        """All certificates in enumeration order."""
        self._ensure_open()
        if self._certificates is None:
            self._certificates = list(self._store._enumerate())
        return list(self._certificates)

    def find_by_subject_name(self, name: str, valid_only: bool = True) -> List[Certificate]:
        """
        Find certificates whose subject contains name (case-insensitive).

        Args:
            name: Partial subject name
            valid_only: Only return certificates valid at the current time

        Returns:
            Matches in enumeration order
        """
        needle = name.lower()
        now = datetime.now(timezone.utc)
        matches = []
        for cert in self.certificates:
            if needle not in cert.subject.lower():
                continue
            if valid_only and not cert.is_time_valid(now):
                logger.debug(f"Skipping '{cert.subject}': outside its validity period")
                continue
            matches.append(cert)
        return matches

    def add(self, certificate: Certificate) -> None:
        """Add a certificate to the store; a certificate already present is left in place."""
        self._ensure_open()
        if self.mode != OpenMode.READ_WRITE:
            raise StoreAccessError("Store was opened read-only")

        location = self._store.location
        location.mkdir(parents=True, exist_ok=True)
        target = location / f"{certificate.thumbprint}.pem"
        if target.exists():
            logger.debug(f"Certificate {certificate.thumbprint} already present in {location}")
            return
        target.write_bytes(certificate.pem)
        self._certificates = None

    def close(self) -> None:
        self._certificates = None
        self._closed = True


class RootStore:
    """
    The trusted root certificate store.

    Store-resident certificates are PEM files in a directory. Enumeration is
    deterministic: files sorted by name, certificates in file order, then the
    system bundle when include_system is set.
    """

    def __init__(self, location: Union[str, Path] = DEFAULT_ROOT_STORE, include_system: bool = False):
        self.location = Path(location)
        self.include_system = include_system

    def open(self, mode: OpenMode = OpenMode.READ_ONLY) -> StoreHandle:
        if mode == OpenMode.READ_WRITE and self.location.exists() and not os.access(self.location, os.W_OK):
            raise StoreAccessError(f"Insufficient privilege to write {self.location}")
        return StoreHandle(self, mode)

    def _enumerate(self) -> Iterator[Certificate]:
        if self.location.is_dir():
            for path in sorted(self.location.iterdir()):
                if path.is_file() and path.suffix.lower() in STORE_SUFFIXES:
                    yield from _load_bundle(path)
        if self.include_system:
            yield from _load_system_trust_store()

    def __repr__(self) -> str:
        return f"RootStore({str(self.location)!r}, include_system={self.include_system})"


def default_store(config: Optional[AgentConfig] = None) -> RootStore:
    """Root store described by config, or by the AGENTLINK_* environment when omitted."""
    config = config or AgentConfig.from_env()
    return RootStore(config.root_store, include_system=config.include_system_roots)


def get_root_certificate(name: str, store: Optional[RootStore] = None) -> Optional[Certificate]:
    """
    Look up a root certificate by subject name.

    A fresh store lookup is made on every call.

    Args:
        name: Partial subject name of the certificate to retrieve
        store: Root store to search (default store when omitted)

    Returns:
        The first matching certificate, or None
    """
    if not name:
        raise ValueError("Certificate name must be provided!")

    store = store or default_store()
    try:
        with store.open(OpenMode.READ_ONLY) as handle:
            matches = handle.find_by_subject_name(name, valid_only=True)
            if not matches:
                logger.debug(f"{name} cert not found in {store.location}")
                return None
            if len(matches) > 1:
                logger.debug(f"{len(matches)} certificates match {name}, using the first one")
            logger.info(f"{name} cert found")
            return matches[0]
    except Exception as e:
        logger.error(f"Unable to retrieve {name}: {e}")
        return None


def inject_ca(certificate: Certificate, store: Optional[RootStore] = None) -> bool:
    """
    Add a CA certificate to the root store.

    Args:
        certificate: The certificate to add
        store: Root store to write (default store when omitted)

    Returns:
        True if the certificate is in the store afterwards
    """
    if certificate is None:
        raise ValueError("A certificate must be provided!")

    logger.info(f"Injecting root CA: {certificate.display_name}")
    store = store or default_store()
    try:
        with store.open(OpenMode.READ_WRITE) as handle:
            handle.add(certificate)
        return True
    except Exception as e:
        logger.error(f"Unable to inject CA: {e}")
        return False


def server_certificate(store: Optional[RootStore] = None) -> Optional[Certificate]:
    """The server CA root certificate."""
    return get_root_certificate(SERVER_CA_NAME, store)


def project_certificate(store: Optional[RootStore] = None) -> Optional[Certificate]:
    """The project root certificate."""
    return get_root_certificate(PROJECT_ROOT_NAME, store)
