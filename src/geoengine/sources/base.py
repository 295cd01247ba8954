"""Shared plumbing for the network adapters.

Each adapter owns a busy flag instead of cancelling in-flight calls, and
wraps every httpx failure in a TransportFailure. None of them retries.
"""

from __future__ import annotations

import httpx
from loguru import logger

from geoengine.errors import TransportFailure
from geoengine.layers.registry import LayerRegistry

DEFAULT_USER_AGENT = "GeoWorkbench/0.1.0"
DEFAULT_TIMEOUT = 30.0


class SourceAdapter:
    """Base class for adapters that pull layers from a remote service.

    Args:
        registry: Registry that receives the fetched layers.
        client: Shared httpx.AsyncClient. When omitted a short-lived client
            is opened per request.
        user_agent: User-Agent header sent with every request.
        timeout: Per-request timeout in seconds.
    """

    service = "source"

    def __init__(
        self,
        registry: LayerRegistry,
        client: httpx.AsyncClient | None = None,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.registry = registry
        self.bus = registry.bus
        self.client = client
        self.user_agent = user_agent
        self.timeout = timeout
        self.busy = False

    def _claim(self) -> bool:
        """Set the busy flag; False (plus a notice) if a call is already running."""
        if self.busy:
            self.bus.notify(
                "source.busy",
                f"A {self.service} request is already in progress.",
                level="warning",
            )
            return False
        self.busy = True
        return True

    def _release(self) -> None:
        self.busy = False

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Issue one request. Non-2xx responses are returned, not raised."""
        headers = {"User-Agent": self.user_agent, **kwargs.pop("headers", {})}
        try:
            if self.client is not None:
                return await self.client.request(
                    method, url, headers=headers, timeout=self.timeout, **kwargs
                )
            async with httpx.AsyncClient() as client:
                return await client.request(
                    method, url, headers=headers, timeout=self.timeout, **kwargs
                )
        except httpx.HTTPError as e:
            logger.warning(f"{self.service} request failed: {url}: {e}")
            raise TransportFailure(f"Could not reach {self.service}: {e}") from e


def raise_for_status(response: httpx.Response, service: str) -> None:
    """TransportFailure carrying the upstream status for any non-2xx response."""
    if response.is_success:
        return
    logger.warning(f"{service} answered {response.status_code}: {response.text[:200]}")
    raise TransportFailure(
        f"{service} error: {response.status_code} {response.reason_phrase}",
        status_code=response.status_code,
    )
