"""Abstract interface for upstream data gateways."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from .models import UpstreamRequest


class UpstreamGateway(ABC):
    """Contract for the read-only providers behind the live-update service.

    A gateway performs exactly one outbound call per fetch(). It never
    retries and never caches: rate control comes from the ResponseCache TTLs
    sitting above it, and retries come from the next scheduler tick.

    Lifecycle:
        gateway = create_upstream_gateway(settings)
        payload = await gateway.fetch(matchups_request("123", 3))
        # ... app runs ...
        await gateway.close()
    """

    @abstractmethod
    async def fetch(self, request: UpstreamRequest) -> Any:
        """Perform one GET and return the decoded JSON body.

        Raises UpstreamError on a transport failure, a non-2xx response or
        a body that is not JSON.
        """

    @abstractmethod
    async def close(self) -> None:
        """Release connections. Safe to call multiple times."""
