from __future__ import annotations

from typing import Any, Optional

import httpx

from ..config import Settings, get_settings
from .http_client import RateLimitedClient, RetryPolicy


class HyperliquidClient:
    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None, **kwargs: Any) -> None:
        s = settings or get_settings()
        policy = RetryPolicy(
            max_attempts=s.retry_attempts,
            base_delay=s.retry_base_delay_sec,
            rate_limit_wait=s.rate_limit_wait_sec,
            max_rate_limit_waits=s.max_rate_limit_waits,
        )
        self.http = RateLimitedClient(
            "hyperliquid",
            s.hyperliquid_base_url,
            policy=policy,
            headers={"Content-Type": "application/json"},
            timeout=s.http_timeout_sec,
            transport=transport,
            **kwargs,
        )

    async def close(self) -> None:
        await self.http.close()

    async def meta_and_asset_ctxs(self) -> Any:
        """Return ``[meta, assetCtxs]``; ``meta["universe"][i]`` pairs with ``assetCtxs[i]``."""
        return await self.http.request("/info", json={"type": "metaAndAssetCtxs"})
