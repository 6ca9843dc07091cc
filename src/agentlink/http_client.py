"""HTTP client factory shared by the polling binding and plain resource retrieval."""

import logging
from typing import Optional

import httpx

from agentlink import __version__

logger = logging.getLogger(__name__)

USER_AGENT = f"agentlink/{__version__}"


def create_http_client(
    proxy: Optional[str] = None,
    timeout: float = 10.0,
    follow_redirects: bool = True,
    base_url: str = "",
    transport: Optional[httpx.BaseTransport] = None,
) -> httpx.Client:
    """
    Create a synchronous HTTP client.

    Args:
        proxy: Optional proxy URL
        timeout: Request timeout in seconds
        follow_redirects: Follow HTTP redirects
        base_url: Optional base URL relative request paths resolve against
        transport: Optional transport (used to inject mock transports)

    Returns:
        Configured httpx.Client; callers own it and must close it
    """
    if proxy:
        logger.debug(f"Using proxy {proxy}")
    return httpx.Client(
        proxy=proxy,
        timeout=timeout,
        follow_redirects=follow_redirects,
        base_url=base_url,
        transport=transport,
        headers={"User-Agent": USER_AGENT},
    )
