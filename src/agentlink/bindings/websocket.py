"""Real-time WebSocket binding."""

import json
import logging
import ssl
from typing import Optional

from websockets.exceptions import WebSocketException
from websockets.sync.client import ClientConnection, connect

from agentlink.bindings.base import Payload, ServerBinding
from agentlink.exceptions import TransportError

logger = logging.getLogger(__name__)


class SocketBinding(ServerBinding):
    """
    Primary binding over a persistent WebSocket.

    Each exchange sends one JSON frame {"method", "url", "data"} and reads one
    JSON reply.
    """

    name = "socket"

    def __init__(self, url: str, timeout: float = 10.0, ssl_context: Optional[ssl.SSLContext] = None):
        super().__init__()
        if not url:
            raise ValueError("A socket URL must be provided!")
        self.url = url
        self.timeout = timeout
        self.ssl_context = ssl_context
        self._connection: Optional[ClientConnection] = None

    def attach(self) -> bool:
        if self._attached:
            return True

        kwargs = {"open_timeout": self.timeout}
        if self.url.startswith("wss://"):
            kwargs["ssl"] = self.ssl_context or ssl.create_default_context()

        try:
            logger.info(f"Connecting to WebSocket: {self.url}")
            self._connection = connect(self.url, **kwargs)
        except Exception as e:
            logger.warning(f"Socket binding could not connect to {self.url}: {e}")
            self._connection = None
            return False

        self._attached = True
        logger.info(f"Socket binding attached to {self.url}")
        return True

    def detach(self) -> bool:
        if self._connection is None:
            return False
        try:
            self._connection.close()
            return True
        except Exception as e:
            logger.error(f"Could not close socket binding: {e}")
            return False
        finally:
            self._connection = None
            self._attached = False

    def _exchange(self, method: str, url: str, payload: Optional[Payload]) -> Payload:
        self._require_attached()
        frame = json.dumps({"method": method, "url": url, "data": payload or {}})
        try:
            self._connection.send(frame)
            reply = self._connection.recv(timeout=self.timeout)
            body = json.loads(reply)
        except (WebSocketException, OSError, TimeoutError, ValueError) as e:
            raise TransportError(f"{method} {url} failed: {e}") from e

        if not isinstance(body, dict):
            raise TransportError(f"{method} {url} did not return a JSON object")
        return body

    def request(self, url: str, payload: Optional[Payload] = None) -> Payload:
        return self._exchange("GET", url, payload)

    def submit(self, url: str, payload: Optional[Payload] = None) -> Payload:
        return self._exchange("POST", url, payload)
