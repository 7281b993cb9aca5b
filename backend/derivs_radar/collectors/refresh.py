from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Dict, List, Optional, Set, Tuple, TypeVar

from ..analytics.aggregate import (
    aggregate_funding,
    aggregate_open_interest,
    aggregate_venues,
    average_history,
    long_short_history,
    sum_history,
)
from ..analytics.trend import classify
from ..config import Settings, get_settings
from ..errors import UpstreamError
from ..models import COINS, CoinSnapshot, MarketSnapshot, MetricPoint
from ..services.coinalyze_client import CoinalyzeClient
from ..services.coingecko_client import CoinGeckoClient
from ..services.hyperliquid_client import HyperliquidClient
from ..services.snapshot_store import SnapshotStore
from .adapters import (
    CoinalyzeAdapter,
    CoinalyzeCurrent,
    CoinalyzeHistory,
    CoinGeckoAdapter,
    HyperliquidAdapter,
    VenuePoints,
)


logger = logging.getLogger("drr.refresh")

T = TypeVar("T")


@dataclass
class Sources:
    coinalyze: CoinalyzeAdapter
    hyperliquid: HyperliquidAdapter
    coingecko: Optional[CoinGeckoAdapter] = None

    async def close(self) -> None:
        await self.coinalyze.client.close()
        await self.hyperliquid.client.close()
        if self.coingecko is not None:
            await self.coingecko.client.close()


def build_sources(settings: Optional[Settings] = None) -> Sources:
    s = settings or get_settings()
    if not s.coinalyze_api_key:
        logger.warning("COINALYZE_API_KEY is not set; coinalyze requests will fail")
    coingecko = CoinGeckoAdapter(CoinGeckoClient(s), s) if s.coingecko_enabled else None
    return Sources(
        coinalyze=CoinalyzeAdapter(CoinalyzeClient(s), s),
        hyperliquid=HyperliquidAdapter(HyperliquidClient(s), s),
        coingecko=coingecko,
    )


async def _isolated(name: str, coro: Awaitable[T]) -> Optional[T]:
    """Run one source's fetch; a failure yields ``None`` instead of aborting the cycle."""
    try:
        return await coro
    except UpstreamError as e:
        logger.warning("%s unavailable this cycle: %s", name, e)
    except Exception:
        logger.exception("%s fetch failed while parsing", name)
    return None


async def _fetch_coinalyze(sources: Sources, store: SnapshotStore, settings: Settings) -> Tuple[Optional[CoinalyzeCurrent], Optional[CoinalyzeHistory]]:
    adapter = sources.coinalyze
    current = await _isolated("coinalyze current", adapter.fetch_current(store.universe))
    await asyncio.sleep(settings.inter_call_delay_sec)
    history = await _isolated("coinalyze history", adapter.fetch_history(store.universe, int(time.time())))
    return current, history


def _build_coin(
    coin: str,
    current: Optional[CoinalyzeCurrent],
    history: Optional[CoinalyzeHistory],
    hyper: Optional[Dict[str, Tuple[Optional[MetricPoint], Optional[MetricPoint]]]],
    venues: Optional[Dict[str, VenuePoints]],
    settings: Settings,
    now_ms: int,
) -> CoinSnapshot:
    oi_points: List[MetricPoint] = []
    fr_points: List[MetricPoint] = []
    if current is not None:
        oi_points.extend(current.open_interest.get(coin, []))
        fr_points.extend(current.funding.get(coin, []))
    if hyper is not None:
        hl_oi, hl_fr = hyper.get(coin, (None, None))
        if hl_oi is not None:
            oi_points.append(hl_oi)
        if hl_fr is not None:
            fr_points.append(hl_fr)

    funding = aggregate_funding(fr_points)
    oi_hist = sum_history(history.open_interest.get(coin, [])) if history else []
    fr_hist = average_history(history.funding.get(coin, [])) if history else []
    ls_hist = long_short_history(history.long_short.get(coin, [])) if history else []

    venue_summary = None
    if venues is not None:
        vp = venues.get(coin) or VenuePoints()
        venue_summary = aggregate_venues(vp.open_interest, vp.funding, vp.volume, timestamp=now_ms)

    snap = CoinSnapshot(
        coin=coin,
        open_interest=aggregate_open_interest(oi_points),
        funding=funding,
        oi_history=oi_hist,
        funding_history=fr_hist,
        long_short_history=ls_hist,
        venues=venue_summary,
    )
    return snap.model_copy(update={"trend": classify(snap, settings.analytics())})


async def build_snapshot(sources: Sources, store: SnapshotStore, settings: Settings) -> Optional[MarketSnapshot]:
    """Fetch every source and assemble a new snapshot, or ``None`` if all failed."""
    now_ms = int(time.time() * 1000)
    coingecko_task: Awaitable[Any]
    if sources.coingecko is not None:
        coingecko_task = _isolated("coingecko", sources.coingecko.fetch())
    else:
        coingecko_task = asyncio.sleep(0, result=None)

    hyper, venues, (current, history) = await asyncio.gather(
        _isolated("hyperliquid", sources.hyperliquid.fetch(now_ms)),
        coingecko_task,
        _fetch_coinalyze(sources, store, settings),
    )
    sources_ok = {
        "coinalyze_current": current is not None,
        "coinalyze_history": history is not None,
        "hyperliquid": hyper is not None,
    }
    if sources.coingecko is not None:
        sources_ok["coingecko"] = venues is not None
    if not any(sources_ok.values()):
        return None

    coins = {c: _build_coin(c, current, history, hyper, venues, settings, now_ms) for c in COINS}
    btc_funding = [
        p.model_dump(mode="json", include={"symbol", "value"})
        for p in (current.funding.get("BTC", []) if current else [])
    ]
    if hyper is not None and hyper["BTC"][1] is not None:
        btc_funding.append(hyper["BTC"][1].model_dump(mode="json", include={"symbol", "value"}))
    raw_samples: Dict[str, Any] = {
        "btc_funding": btc_funding,
        "coingecko_exchanges": [e.exchange for e in coins["BTC"].venues.exchanges] if coins["BTC"].venues else [],
    }
    return MarketSnapshot(
        btc=coins["BTC"],
        eth=coins["ETH"],
        updated_at_ms=int(time.time() * 1000),
        sources_ok=sources_ok,
        raw_samples=raw_samples,
    )


async def refresh_once(store: SnapshotStore, sources: Sources, settings: Optional[Settings] = None) -> bool:
    """Run one refresh cycle. Returns True when a new snapshot was published.

    A call made while another cycle is running returns False straight away and
    leaves both the running cycle and the published snapshot alone.
    """
    s = settings or get_settings()
    if not store.begin_refresh():
        return False
    started = time.monotonic()
    logger.info("refreshing data")
    try:
        snapshot = await build_snapshot(sources, store, s)
        if snapshot is None:
            store.last_error = "all sources failed"
            logger.error("all sources failed; keeping previous snapshot")
            return False
        store.publish(snapshot)
        logger.info(
            "data refreshed in %.1fs sources=%s",
            time.monotonic() - started,
            ",".join(k for k, ok in snapshot.sources_ok.items() if ok),
        )
        return True
    except Exception as e:
        store.last_error = str(e)
        logger.exception("refresh cycle failed; keeping previous snapshot")
        return False
    finally:
        store.end_refresh()


async def run_refresh_loop(
    store: SnapshotStore,
    sources: Sources,
    stop_event: asyncio.Event,
    settings: Optional[Settings] = None,
) -> None:
    """Fire a refresh every ``refresh_interval_sec`` until ``stop_event`` is set.

    Ticks are not queued: when the previous cycle is still running the new one
    is skipped by the store's refresh flag.
    """
    s = settings or get_settings()
    in_flight: Set[asyncio.Task] = set()
    try:
        while not stop_event.is_set():
            task = asyncio.create_task(refresh_once(store, sources, s))
            in_flight.add(task)
            task.add_done_callback(in_flight.discard)
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=s.refresh_interval_sec)
            except asyncio.TimeoutError:
                pass
    finally:
        if in_flight:
            await asyncio.gather(*in_flight, return_exceptions=True)
