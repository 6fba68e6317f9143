"""
services/remote.py  –  Shared httpx plumbing for the remote systems

Every remote call goes through `send_json`, which bounds it with the
configured timeout and turns transport failures into RemoteUnavailableError.
A timeout is retryable; an error answer from the platform is not.
"""

import logging
from typing import Any, Optional, Tuple

import httpx

from config import settings
from utils.errors import RemoteUnavailableError

logger = logging.getLogger(__name__)


def build_client(base_url: str = "", headers: Optional[dict] = None, timeout: Optional[float] = None) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=base_url,
        headers=headers or {},
        timeout=httpx.Timeout(timeout if timeout is not None else settings.REMOTE_TIMEOUT_SECONDS),
    )


async def send_json(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    system: str,
    **kwargs,
) -> Tuple[int, Any]:
    """Issue one request and return (http_status, decoded_json)."""
    try:
        response = await client.request(method, url, **kwargs)
    except httpx.TimeoutException as e:
        logger.warning(f"⏱️ {system} timed out on {method} {url}: {e}")
        raise RemoteUnavailableError(f"{system} did not answer in time, please retry", retryable=True)
    except httpx.HTTPError as e:
        logger.error(f"❌ {system} unreachable on {method} {url}: {e}")
        raise RemoteUnavailableError(f"{system} is unreachable: {e}", retryable=True)

    if not response.content:
        return response.status_code, None

    try:
        return response.status_code, response.json()
    except ValueError:
        snippet = response.text[:200]
        logger.error(f"❌ {system} returned non-JSON ({response.status_code}) for {url}: {snippet}")
        raise RemoteUnavailableError(f"{system} returned an unreadable response")
