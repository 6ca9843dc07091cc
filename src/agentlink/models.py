"""Data models for trust validation results and agent configuration."""

import os
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from agentlink.certificate import Certificate

DEFAULT_ROOT_STORE = Path("/usr/local/share/ca-certificates/agentlink")


class RevocationMode(str, Enum):
    """How the chain engine treats revocation checking."""

    NO_CHECK = "NoCheck"
    OFFLINE = "Offline"
    ONLINE = "Online"


class RevocationFlag(str, Enum):
    """Which chain elements revocation checking applies to."""

    END_CERTIFICATE_ONLY = "EndCertificateOnly"
    ENTIRE_CHAIN = "EntireChain"
    EXCLUDE_ROOT = "ExcludeRoot"


class ChainStatusCode(str, Enum):
    """Problems the chain engine can report for an element or a whole chain."""

    NOT_TIME_VALID = "NotTimeValid"
    NOT_SIGNATURE_VALID = "NotSignatureValid"
    INVALID_BASIC_CONSTRAINTS = "InvalidBasicConstraints"
    REVOCATION_STATUS_UNKNOWN = "RevocationStatusUnknown"
    OFFLINE_REVOCATION = "OfflineRevocation"
    UNTRUSTED_ROOT = "UntrustedRoot"
    PARTIAL_CHAIN = "PartialChain"
    CYCLIC = "Cyclic"


@dataclass
class CertificateInfo:
    """Information about a single certificate."""

    subject: str
    issuer: str
    serial_number: str
    not_before: datetime
    not_after: datetime
    fingerprint_sha256: str
    thumbprint: str  # SHA-1, identity comparison
    public_key_algorithm: str
    signature_algorithm: str
    ca_issuers_urls: List[str] = field(default_factory=list)  # AIA CA Issuers URLs
    is_ca: Optional[bool] = None  # None when BasicConstraints is absent
    friendly_name: str = ""
    has_private_key: bool = False


@dataclass
class ChainStatus:
    """A single problem reported by the chain engine."""

    code: ChainStatusCode
    information: str

    def __str__(self) -> str:
        return f"{self.information.strip()} ({self.code.value})"


@dataclass
class ChainElement:
    """One certificate in a built chain together with its own problems."""

    certificate: "Certificate"
    statuses: List[ChainStatus] = field(default_factory=list)


@dataclass
class ChainBuildResult:
    """Outcome of a chain build, ordered leaf first."""

    elements: List[ChainElement]
    statuses: List[ChainStatus]  # Union of element and chain-level problems

    @property
    def is_valid(self) -> bool:
        return not self.statuses

    @property
    def thumbprints(self) -> List[str]:
        return [element.certificate.thumbprint for element in self.elements]


@dataclass
class AgentConfig:
    """Agent connection and trust configuration."""

    server_url: str = "http://localhost"
    socket_path: str = "/socket"
    timeout: float = 10.0
    proxy: Optional[str] = None
    root_store: Path = DEFAULT_ROOT_STORE
    include_system_roots: bool = False

    def __post_init__(self):
        if not self.server_url:
            raise ValueError("server_url must be provided")
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        self.root_store = Path(self.root_store)

    @property
    def socket_url(self) -> str:
        """WebSocket URL derived from the server URL."""
        base = self.server_url.rstrip("/")
        base = base.replace("https://", "wss://", 1).replace("http://", "ws://", 1)
        return f"{base}{self.socket_path}"

    @classmethod
    def from_env(cls) -> "AgentConfig":
        """Build a configuration from AGENTLINK_* environment variables."""
        kwargs = {}
        if os.getenv("AGENTLINK_SERVER_URL"):
            kwargs["server_url"] = os.environ["AGENTLINK_SERVER_URL"]
        if os.getenv("AGENTLINK_SOCKET_PATH"):
            kwargs["socket_path"] = os.environ["AGENTLINK_SOCKET_PATH"]
        if os.getenv("AGENTLINK_TIMEOUT"):
            kwargs["timeout"] = float(os.environ["AGENTLINK_TIMEOUT"])
        if os.getenv("AGENTLINK_PROXY"):
            kwargs["proxy"] = os.environ["AGENTLINK_PROXY"]
        if os.getenv("AGENTLINK_ROOT_STORE"):
            kwargs["root_store"] = Path(os.environ["AGENTLINK_ROOT_STORE"])
        if os.getenv("AGENTLINK_INCLUDE_SYSTEM_ROOTS"):
            kwargs["include_system_roots"] = os.environ["AGENTLINK_INCLUDE_SYSTEM_ROOTS"].lower() in ("1", "true", "yes")
        return cls(**kwargs)
