"""Server binding capability interface."""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from agentlink.exceptions import NotBoundError


Payload = Dict[str, Any]


class ServerBinding(ABC):
    """
    A transport through which the agent exchanges JSON payloads with the server.

    attach() and detach() report failure by returning False rather than
    raising, so a selector can fall through to the next candidate. request()
    and submit() raise TransportError on I/O failure; they never return stale
    data.
    """

    name = "binding"

    def __init__(self):
        self._attached = False

    @property
    def is_attached(self) -> bool:
        return self._attached

    def _require_attached(self) -> None:
        if not self._attached:
            raise NotBoundError(f"{self.name} binding is not attached")

    @abstractmethod
    def attach(self) -> bool:
        """Establish the transport."""

    @abstractmethod
    def detach(self) -> bool:
        """Release the transport's resources."""

    @abstractmethod
    def request(self, url: str, payload: Optional[Payload] = None) -> Payload:
        """GET-equivalent exchange."""

    @abstractmethod
    def submit(self, url: str, payload: Optional[Payload] = None) -> Payload:
        """POST-equivalent exchange."""

    def __repr__(self) -> str:
        state = "attached" if self._attached else "detached"
        return f"<{type(self).__name__} {state}>"
