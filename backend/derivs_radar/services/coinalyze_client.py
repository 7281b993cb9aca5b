from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

import httpx

from ..config import Settings, get_settings
from .http_client import RateLimitedClient, RetryPolicy


class CoinalyzeClient:
    """Thin wrapper over the Coinalyze v1 REST API.

    Every call carries the ``api_key`` query parameter; without a key the
    upstream answers 401 and each request ends in ``UpstreamError``.
    """

    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None, **kwargs: Any) -> None:
        s = settings or get_settings()
        policy = RetryPolicy(
            max_attempts=s.retry_attempts,
            base_delay=s.retry_base_delay_sec,
            rate_limit_wait=s.rate_limit_wait_sec,
            max_rate_limit_waits=s.max_rate_limit_waits,
        )
        self.http = RateLimitedClient(
            "coinalyze",
            s.coinalyze_base_url,
            policy=policy,
            params={"api_key": s.coinalyze_api_key},
            timeout=s.http_timeout_sec,
            transport=transport,
            **kwargs,
        )

    async def close(self) -> None:
        await self.http.close()

    async def future_markets(self) -> List[Dict[str, Any]]:
        return await self.http.request("/future-markets")

    async def open_interest(self, symbols: Sequence[str]) -> List[Dict[str, Any]]:
        return await self.http.request(
            "/open-interest",
            params={"symbols": ",".join(symbols), "convert_to_usd": "true"},
        )

    async def funding_rate(self, symbols: Sequence[str]) -> List[Dict[str, Any]]:
        return await self.http.request("/funding-rate", params={"symbols": ",".join(symbols)})

    async def open_interest_history(self, symbols: Sequence[str], interval: str, start: int, end: int) -> List[Dict[str, Any]]:
        return await self.http.request(
            "/open-interest-history",
            params={
                "symbols": ",".join(symbols),
                "interval": interval,
                "from": start,
                "to": end,
                "convert_to_usd": "true",
            },
        )

    async def funding_rate_history(self, symbols: Sequence[str], interval: str, start: int, end: int) -> List[Dict[str, Any]]:
        return await self.http.request(
            "/funding-rate-history",
            params={"symbols": ",".join(symbols), "interval": interval, "from": start, "to": end},
        )

    async def long_short_ratio_history(self, symbols: Sequence[str], interval: str, start: int, end: int) -> List[Dict[str, Any]]:
        return await self.http.request(
            "/long-short-ratio-history",
            params={"symbols": ",".join(symbols), "interval": interval, "from": start, "to": end},
        )
