"""National Weather Service API access."""

from __future__ import annotations

from typing import Any

import httpx
import structlog

logger = structlog.get_logger()


class NwsClient:
    """Minimal NWS client; every failure is reported as ``None``."""

    def __init__(
        self,
        base_url: str = "https://api.weather.gov",
        *,
        user_agent: str = "weather-app/1.0",
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.user_agent = user_agent
        self.timeout = timeout
        self._transport = transport

    def points_url(self, coords: str) -> str:
        return f"{self.base_url}/points/{coords}"

    def alerts_url(self, coords: str) -> str:
        return f"{self.base_url}/alerts/active?point={coords}"

    async def get_json(self, url: str) -> dict[str, Any] | None:
        headers = {
            "User-Agent": self.user_agent,
            "Accept": "application/geo+json",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.get(url, headers=headers)
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("nws.request_failed", url=url, error=f"{type(e).__name__}: {e}")
            return None
        if not isinstance(data, dict):
            logger.warning("nws.unexpected_payload", url=url, payload_type=type(data).__name__)
            return None
        return data
