"""Factory for creating upstream gateways."""

from __future__ import annotations

import logging

from .interface import UpstreamGateway
from .settings import Settings

logger = logging.getLogger(__name__)


def create_upstream_gateway(settings: Settings | None = None) -> UpstreamGateway:
    """Create the appropriate upstream gateway based on environment variables.

    - FANTASY_SIMULATOR truthy → SimulatedGateway (offline league simulation)
    - Otherwise → HttpGateway (Sleeper + ESPN REST APIs)

    The returned gateway opens connections lazily on first fetch.
    """
    settings = settings or Settings.from_env()

    if settings.simulator:
        from .simulator import SimulatedGateway

        logger.info("Upstream gateway: league simulator")
        return SimulatedGateway()
    else:
        from .http_gateway import HttpGateway

        logger.info("Upstream gateway: Sleeper/ESPN REST APIs")
        return HttpGateway(
            sleeper_base_url=settings.sleeper_base_url,
            espn_base_url=settings.espn_base_url,
            timeout=settings.upstream_timeout,
        )
