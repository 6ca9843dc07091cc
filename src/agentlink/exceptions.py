"""Exceptions raised by agentlink."""


class AgentLinkError(Exception):
    """Base class for all agentlink errors."""


class NotBoundError(AgentLinkError):
    """Raised when bus traffic is attempted without an attached binding."""


class TransportError(AgentLinkError):
    """Raised when a binding fails to exchange a payload with the server."""


class StoreAccessError(AgentLinkError):
    """Raised when a trust store handle is misused or the store cannot be accessed."""


class ChainBuildingError(AgentLinkError):
    """Raised when the chain engine cannot process a certificate."""


class MissingPrivateKeyError(AgentLinkError, ValueError):
    """Raised when decryption is requested with a certificate lacking a private key."""
