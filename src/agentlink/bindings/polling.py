"""HTTP request/response binding."""

import json
import logging
from typing import Optional

import httpx

from agentlink.bindings.base import Payload, ServerBinding
from agentlink.exceptions import TransportError
from agentlink.http_client import create_http_client

logger = logging.getLogger(__name__)


def _query_params(payload: Optional[Payload]) -> dict:
    if not payload:
        return {}
    return {key: value if isinstance(value, str) else json.dumps(value) for key, value in payload.items()}


class PollingBinding(ServerBinding):
    """
    Fallback binding exchanging payloads over plain HTTP.

    request() is an HTTP GET carrying the payload as query parameters,
    submit() an HTTP POST with a JSON body. Both expect a JSON object back.
    """

    name = "polling"

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        proxy: Optional[str] = None,
        probe_path: str = "/",
        transport: Optional[httpx.BaseTransport] = None,
    ):
        super().__init__()
        if not base_url:
            raise ValueError("A server URL must be provided!")
        self.base_url = base_url
        self.timeout = timeout
        self.proxy = proxy
        self.probe_path = probe_path
        self._transport = transport
        self._client: Optional[httpx.Client] = None

    def attach(self) -> bool:
        if self._attached:
            return True

        client = create_http_client(
            proxy=self.proxy,
            timeout=self.timeout,
            base_url=self.base_url,
            transport=self._transport,
        )
        try:
            response = client.get(self.probe_path)
            if response.status_code >= 500:
                logger.warning(f"Polling probe of {self.base_url} returned HTTP {response.status_code}")
                client.close()
                return False
        except Exception as e:
            logger.warning(f"Polling binding could not reach {self.base_url}: {e}")
            client.close()
            return False

        self._client = client
        self._attached = True
        logger.info(f"Polling binding attached to {self.base_url}")
        return True

    def detach(self) -> bool:
        if self._client is None:
            return False
        try:
            self._client.close()
            return True
        except Exception as e:
            logger.error(f"Could not close polling binding: {e}")
            return False
        finally:
            self._client = None
            self._attached = False

    def _exchange(self, method: str, url: str, payload: Optional[Payload]) -> Payload:
        self._require_attached()
        try:
            if method == "GET":
                response = self._client.get(url, params=_query_params(payload))
            else:
                response = self._client.post(url, json=payload or {})
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise TransportError(f"{method} {url} failed: {e}") from e

        if not isinstance(body, dict):
            raise TransportError(f"{method} {url} did not return a JSON object")
        return body

    def request(self, url: str, payload: Optional[Payload] = None) -> Payload:
        return self._exchange("GET", url, payload)

    def submit(self, url: str, payload: Optional[Payload] = None) -> Payload:
        return self._exchange("POST", url, payload)
