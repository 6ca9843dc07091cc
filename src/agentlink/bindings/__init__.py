"""Server bindings: pluggable transports for bus traffic."""

from agentlink.bindings.base import ServerBinding
from agentlink.bindings.polling import PollingBinding
from agentlink.bindings.websocket import SocketBinding

__all__ = ["ServerBinding", "SocketBinding", "PollingBinding"]
