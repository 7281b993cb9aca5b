from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from ..config import Settings, get_settings
from .http_client import RateLimitedClient, RetryPolicy


class CoinGeckoClient:
    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None, **kwargs: Any) -> None:
        s = settings or get_settings()
        # Demo tier answers 429 without Retry-After; wait out the full minute
        policy = RetryPolicy(
            max_attempts=s.retry_attempts,
            base_delay=s.retry_base_delay_sec,
            rate_limit_wait=s.coingecko_rate_limit_wait_sec,
            max_rate_limit_waits=s.max_rate_limit_waits,
        )
        self.http = RateLimitedClient(
            "coingecko",
            s.coingecko_base_url,
            policy=policy,
            params={"x_cg_demo_api_key": s.coingecko_api_key},
            timeout=s.http_timeout_sec,
            transport=transport,
            **kwargs,
        )

    async def close(self) -> None:
        await self.http.close()

    async def derivatives(self) -> List[Dict[str, Any]]:
        return await self.http.request("/derivatives")
