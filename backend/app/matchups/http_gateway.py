"""httpx-backed gateway for the Sleeper and ESPN REST APIs."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from .errors import UpstreamError
from .interface import UpstreamGateway
from .models import LEAGUE_PROVIDER, SCHEDULE_PROVIDER, UpstreamRequest
from .settings import DEFAULT_ESPN_BASE_URL, DEFAULT_SLEEPER_BASE_URL

logger = logging.getLogger(__name__)


class HttpGateway(UpstreamGateway):
    """UpstreamGateway that issues plain GETs with a pooled httpx.AsyncClient.

    The league provider (Sleeper) serves user, league, roster, matchup and
    player catalog endpoints; the schedule provider (ESPN) serves the weekly
    scoreboard. Neither needs an auth token.
    """

    def __init__(
        self,
        sleeper_base_url: str = DEFAULT_SLEEPER_BASE_URL,
        espn_base_url: str = DEFAULT_ESPN_BASE_URL,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_urls = {
            LEAGUE_PROVIDER: sleeper_base_url,
            SCHEDULE_PROVIDER: espn_base_url,
        }
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            kwargs: dict[str, Any] = {"follow_redirects": True}
            if self._timeout is not None:
                kwargs["timeout"] = self._timeout
            if self._transport is not None:
                kwargs["transport"] = self._transport
            self._client = httpx.AsyncClient(**kwargs)
        return self._client

    def url_for(self, request: UpstreamRequest) -> str:
        try:
            base_url = self._base_urls[request.provider]
        except KeyError:
            raise UpstreamError(None, f"unknown provider {request.provider!r}") from None
        return request.url(base_url)

    async def fetch(self, request: UpstreamRequest) -> Any:
        url = self.url_for(request)
        try:
            response = await self._get_client().get(url)
        except httpx.RequestError as e:
            raise UpstreamError(None, f"{type(e).__name__} for {url}: {e}") from e

        if response.is_error:
            raise UpstreamError(response.status_code, f"{response.reason_phrase} for {url}")

        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamError(response.status_code, f"invalid JSON from {url}") from e

        logger.debug("[FETCH] %s", request.cache_key)
        return payload

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
