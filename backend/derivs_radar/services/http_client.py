from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from ..errors import RateLimitBackoff, UpstreamError


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 2.0
    rate_limit_wait: float = 5.0
    max_rate_limit_waits: int = 5

    def backoff(self, attempt: int) -> float:
        return self.base_delay * attempt


def _retry_after(response: httpx.Response, default: float) -> float:
    raw = response.headers.get("Retry-After")
    if not raw:
        return default
    try:
        return max(0.0, float(raw))
    except ValueError:
        return default


class RateLimitedClient:
    """httpx client for one upstream source with retry/backoff and 429 handling.

    A 429 response does not consume an attempt: the client sleeps for the
    ``Retry-After`` value (or the policy default) and repeats the same attempt,
    up to ``max_rate_limit_waits`` times in a row.
    """

    def __init__(
        self,
        source: str,
        base_url: str,
        policy: Optional[RetryPolicy] = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.source = source
        self.policy = policy or RetryPolicy()
        self._default_params = dict(params or {})
        all_headers = {"User-Agent": "derivs-radar/0.1"}
        all_headers.update(headers or {})
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers=all_headers,
            transport=transport,
        )
        self._sleep = sleep
        self.logger = logging.getLogger(f"drr.http.{source}")

    async def close(self) -> None:
        await self._client.aclose()

    async def _send(self, target: str, params: Dict[str, Any], json: Any) -> Any:
        if json is not None:
            r = await self._client.post(target, params=params, json=json)
        else:
            r = await self._client.get(target, params=params)
        if r.status_code == 429:
            raise RateLimitBackoff(_retry_after(r, self.policy.rate_limit_wait))
        r.raise_for_status()
        return r.json()

    async def request(self, target: str, params: Optional[Dict[str, Any]] = None, json: Any = None) -> Any:
        query = dict(self._default_params)
        query.update(params or {})
        attempt = 1
        rate_limit_waits = 0
        while True:
            try:
                return await self._send(target, query, json)
            except RateLimitBackoff as rl:
                rate_limit_waits += 1
                if rate_limit_waits > self.policy.max_rate_limit_waits:
                    self.logger.error("%s %s still rate limited after %d waits", self.source, target, rate_limit_waits - 1)
                    raise UpstreamError(self.source, target, 429, "rate limit not lifted") from rl
                self.logger.warning("%s rate limited on %s, waiting %.1fs", self.source, target, rl.wait_sec)
                await self._sleep(rl.wait_sec)
                continue
            except (httpx.HTTPError, ValueError) as e:
                status = e.response.status_code if isinstance(e, httpx.HTTPStatusError) else None
                if attempt >= self.policy.max_attempts:
                    self.logger.error("%s %s failed after %d attempts: %s", self.source, target, attempt, e)
                    raise UpstreamError(self.source, target, status, str(e)) from e
                delay = self.policy.backoff(attempt)
                self.logger.warning(
                    "%s %s attempt %d/%d failed (%s), retrying in %.1fs",
                    self.source, target, attempt, self.policy.max_attempts, e, delay,
                )
                await self._sleep(delay)
                attempt += 1
                rate_limit_waits = 0
