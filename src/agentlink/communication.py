"""Binding selection and server communication."""

import contextlib
import functools
import logging
import threading
from pathlib import Path
from typing import Callable, Optional, Sequence, Union

import httpx

from agentlink.bindings import PollingBinding, ServerBinding, SocketBinding
from agentlink.bindings.base import Payload
from agentlink.exceptions import NotBoundError
from agentlink.http_client import create_http_client
from agentlink.models import AgentConfig

logger = logging.getLogger(__name__)

BindingFactory = Callable[[], ServerBinding]


class Communication:
    """
    A session routing bus traffic through the first binding that attaches.

    Bindings are tried in the given priority order. The active binding slot is
    guarded by a lock, so one session can be shared between threads.
    """

    def __init__(self, bindings: Sequence[BindingFactory]):
        if not bindings:
            raise ValueError("At least one binding must be provided!")
        self._factories = list(bindings)
        self._binding: Optional[ServerBinding] = None
        self._lock = threading.RLock()

    @classmethod
    def from_config(cls, config: AgentConfig) -> "Communication":
        """Session trying the WebSocket binding first, then HTTP polling."""
        return cls(
            [
                functools.partial(SocketBinding, config.socket_url, timeout=config.timeout),
                functools.partial(PollingBinding, config.server_url, timeout=config.timeout, proxy=config.proxy),
            ]
        )

    @property
    def active_binding(self) -> Optional[ServerBinding]:
        with self._lock:
            return self._binding

    @property
    def is_bound(self) -> bool:
        return self.active_binding is not None

    def _require_binding(self) -> ServerBinding:
        if self._binding is None:
            raise NotBoundError("Server is not bound to the bus; call bind_server_to_bus() first")
        return self._binding

    def bind_server_to_bus(self) -> bool:
        """
        Bind server communication to the bus.

        Returns:
            True if a binding attached
        """
        with self._lock:
            if self._binding is not None:
                logger.info(f"Replacing active {self._binding.name} binding")
                self._binding.detach()
                self._binding = None

            for factory in self._factories:
                binding = None
                try:
                    binding = factory()
                    attached = binding.attach()
                except Exception as e:
                    logger.error(f"Binding {binding.name if binding else factory} failed to attach: {e}")
                    attached = False

                if attached:
                    logger.info(f"Server bound to bus using {binding.name} binding")
                    self._binding = binding
                    return True

                logger.warning(f"Could not attach {binding.name if binding else 'binding'}, trying next")

            logger.error("No binding could attach to the server")
            return False

    def unbind_server_from_bus(self) -> bool:
        """
        Unbind server communication from the bus.

        Returns:
            True if the active binding detached
        """
        with self._lock:
            binding = self._require_binding()
            detached = binding.detach()
            if detached:
                logger.info(f"Server unbound from {binding.name} binding")
                self._binding = None
            else:
                logger.error(f"Could not detach {binding.name} binding")
            return detached

    def get(self, url: str, payload: Optional[Payload] = None) -> Payload:
        with self._lock:
            return self._require_binding().request(url, payload)

    def post(self, url: str, payload: Optional[Payload] = None) -> Payload:
        with self._lock:
            return self._require_binding().submit(url, payload)


def get_text(url: str, client: Optional[httpx.Client] = None, timeout: float = 10.0) -> str:
    """
    Get the text response of a url.

    Args:
        url: The URL to retrieve
        client: Optional HTTP client; a scoped client is created when omitted
        timeout: Request timeout in seconds for the scoped client

    Returns:
        The unparsed response body
    """
    if not url:
        raise ValueError("A URL must be provided!")

    logger.info(f"URL: {url}")

    owns_client = client is None
    client = client or create_http_client(timeout=timeout)
    try:
        response = client.get(url)
        response.raise_for_status()
        return response.text
    finally:
        if owns_client:
            client.close()


def download_file(
    url: str,
    file_path: Union[str, Path],
    client: Optional[httpx.Client] = None,
    timeout: float = 10.0,
) -> bool:
    """
    Download a file from a server.

    Args:
        url: The URL to download from
        file_path: The path to save the file to
        client: Optional HTTP client; a scoped client is created when omitted
        timeout: Request timeout in seconds for the scoped client

    Returns:
        True if the file exists once the transfer completes
    """
    if not url:
        raise ValueError("A URL must be provided!")
    if not file_path:
        raise ValueError("A file path must be provided!")

    logger.info(f"URL: {url}")
    path = Path(file_path)

    owns_client = client is None
    started = False
    try:
        client = client or create_http_client(timeout=timeout)
        path.parent.mkdir(parents=True, exist_ok=True)
        with client.stream("GET", url) as response:
            response.raise_for_status()
            with open(path, "wb") as f:
                started = True
                for chunk in response.iter_bytes():
                    f.write(chunk)
    except Exception as e:
        logger.error(f"Could not download file: {e}")
        if started:
            with contextlib.suppress(OSError):
                path.unlink(missing_ok=True)
        return False
    finally:
        if owns_client and client is not None:
            client.close()

    return path.exists()
