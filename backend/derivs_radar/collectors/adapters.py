from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Dict, List, Optional, Tuple

from ..analytics.aggregate import funding_pct_within_bound, normalize_ts_ms
from ..config import Settings
from ..errors import UpstreamError
from ..models import (
    COINS,
    InstrumentLongShort,
    InstrumentSeries,
    InstrumentUniverse,
    LongShortSample,
    MetricPoint,
    SeriesPoint,
    SourceTag,
)
from ..services.coinalyze_client import CoinalyzeClient
from ..services.coingecko_client import CoinGeckoClient
from ..services.hyperliquid_client import HyperliquidClient
from .symbols import exchange_code, exchange_name


logger = logging.getLogger("drr.adapters")

_COIN_ALIASES: Dict[str, Tuple[str, ...]] = {
    "BTC": ("BTC", "XBT"),
    "ETH": ("ETH",),
}


def _to_float(raw: Any) -> Optional[float]:
    if raw is None or raw == "":
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        return None


def display_exchange(source: SourceTag, symbol: str, market: Optional[str] = None) -> str:
    if source is SourceTag.HYPERLIQUID:
        return "Hyperliquid"
    if source is SourceTag.COINGECKO:
        return market or "Unknown"
    return exchange_name(exchange_code(symbol))


def sane_funding(value: Optional[float], bound: float, where: str) -> Optional[float]:
    if value is None:
        return None
    if not funding_pct_within_bound(value, bound):
        logger.debug("dropping funding %s from %s: outside +/-%s", value, where, bound)
        return None
    return value


# Coinalyze

def parse_coinalyze_current(rows: Any, funding: bool = False, bound: float = 0.005) -> List[MetricPoint]:
    out: List[MetricPoint] = []
    for row in rows or []:
        sym = str(row.get("symbol") or "")
        if not sym:
            continue
        value = _to_float(row.get("value"))
        if funding:
            value = sane_funding(value, bound, sym)
        if value is None:
            continue
        ts = row.get("update")
        out.append(
            MetricPoint(
                source=SourceTag.COINALYZE,
                symbol=sym,
                exchange=display_exchange(SourceTag.COINALYZE, sym),
                value=value,
                ts_ms=normalize_ts_ms(ts) if ts is not None else None,
            )
        )
    return out


def parse_coinalyze_history(rows: Any, funding: bool = False, bound: float = 0.005) -> List[InstrumentSeries]:
    out: List[InstrumentSeries] = []
    for row in rows or []:
        sym = str(row.get("symbol") or "")
        points: List[SeriesPoint] = []
        for p in row.get("history") or []:
            if p.get("t") is None:
                continue
            value = _to_float(p.get("c"))
            if funding:
                value = sane_funding(value, bound, sym)
            if value is None:
                continue
            points.append(SeriesPoint(t_ms=normalize_ts_ms(p["t"]), value=value))
        out.append(InstrumentSeries(source=SourceTag.COINALYZE, symbol=sym, points=points))
    return out


def parse_coinalyze_long_short(rows: Any) -> List[InstrumentLongShort]:
    out: List[InstrumentLongShort] = []
    for row in rows or []:
        sym = str(row.get("symbol") or "")
        points: List[LongShortSample] = []
        for p in row.get("history") or []:
            ratio = _to_float(p.get("r"))
            if ratio is None or p.get("t") is None:
                continue
            long_pct = _to_float(p.get("l"))
            short_pct = _to_float(p.get("s"))
            if long_pct is None:
                long_pct = ratio / (1 + ratio) * 100.0
            if short_pct is None:
                short_pct = 1 / (1 + ratio) * 100.0
            points.append(
                LongShortSample(t_ms=normalize_ts_ms(p["t"]), ratio=ratio, long_pct=long_pct, short_pct=short_pct)
            )
        out.append(InstrumentLongShort(source=SourceTag.COINALYZE, symbol=sym, points=points))
    return out


@dataclass
class CoinalyzeCurrent:
    open_interest: Dict[str, List[MetricPoint]] = field(default_factory=dict)
    funding: Dict[str, List[MetricPoint]] = field(default_factory=dict)
    raw_funding: Dict[str, Any] = field(default_factory=dict)


@dataclass
class CoinalyzeHistory:
    open_interest: Dict[str, List[InstrumentSeries]] = field(default_factory=dict)
    funding: Dict[str, List[InstrumentSeries]] = field(default_factory=dict)
    long_short: Dict[str, List[InstrumentLongShort]] = field(default_factory=dict)


class CoinalyzeAdapter:
    """Coinalyze calls, isolated per (coin, metric).

    A failed call leaves only its own slot empty; the whole fetch raises only
    when every call in it failed. Coins with no resolved symbols are skipped.
    """

    def __init__(self, client: CoinalyzeClient, settings: Settings) -> None:
        self.client = client
        self.settings = settings

    async def _guarded(self, what: str, coro: Awaitable[Any]) -> Tuple[bool, Any]:
        try:
            return True, await coro
        except UpstreamError as e:
            logger.warning("coinalyze %s unavailable: %s", what, e)
            return False, e

    @staticmethod
    def _raise_if_all_failed(outcomes: List[Tuple[bool, Any]]) -> None:
        if outcomes and not any(ok for ok, _ in outcomes):
            raise outcomes[0][1]

    async def fetch_current(self, universe: InstrumentUniverse) -> CoinalyzeCurrent:
        bound = self.settings.funding_sanity_bound
        jobs: List[Tuple[str, str, Awaitable[Any]]] = []
        for coin in COINS:
            symbols = universe.for_coin(coin)
            if not symbols:
                continue
            jobs.append((coin, "oi", self._guarded(f"{coin} open interest", self.client.open_interest(symbols))))
            jobs.append((coin, "fr", self._guarded(f"{coin} funding", self.client.funding_rate(symbols))))
        outcomes = await asyncio.gather(*(job for _, _, job in jobs))
        self._raise_if_all_failed(list(outcomes))

        current = CoinalyzeCurrent()
        for (coin, metric, _), (ok, rows) in zip(jobs, outcomes):
            if not ok:
                continue
            if metric == "oi":
                current.open_interest[coin] = parse_coinalyze_current(rows)
            else:
                current.funding[coin] = parse_coinalyze_current(rows, funding=True, bound=bound)
                current.raw_funding[coin] = rows
        return current

    async def fetch_history(self, universe: InstrumentUniverse, now_sec: int) -> CoinalyzeHistory:
        """Pull OI, funding and long/short history one metric at a time."""
        s = self.settings
        start = now_sec - s.history_hours * 3600
        interval = s.history_interval
        hist = CoinalyzeHistory()
        outcomes: List[Tuple[bool, Any]] = []

        groups = (
            ("open interest history", self.client.open_interest_history, hist.open_interest,
             lambda rows: parse_coinalyze_history(rows)),
            ("funding history", self.client.funding_rate_history, hist.funding,
             lambda rows: parse_coinalyze_history(rows, funding=True, bound=s.funding_sanity_bound)),
            ("long/short history", self.client.long_short_ratio_history, hist.long_short,
             parse_coinalyze_long_short),
        )
        for what, call, target, parse in groups:
            for coin in COINS:
                symbols = universe.for_coin(coin)
                if not symbols:
                    continue
                if outcomes:
                    await asyncio.sleep(s.inter_call_delay_sec)
                ok, rows = await self._guarded(f"{coin} {what}", call(symbols, interval, start, now_sec))
                outcomes.append((ok, rows))
                if ok:
                    target[coin] = parse(rows)
        self._raise_if_all_failed(outcomes)
        return hist


# Hyperliquid

def parse_hyperliquid(payload: Any, funding_scale: float = 800.0, bound: float = 0.005, now_ms: Optional[int] = None) -> Dict[str, Tuple[Optional[MetricPoint], Optional[MetricPoint]]]:
    """Map ``metaAndAssetCtxs`` to per-coin (open interest, funding) points.

    Open interest is ``openInterest * markPx`` in USD. ``funding`` is the hourly
    rate as a fraction; ``funding_scale`` turns it into percent per 8h.
    """
    out: Dict[str, Tuple[Optional[MetricPoint], Optional[MetricPoint]]] = {c: (None, None) for c in COINS}
    if not isinstance(payload, list) or len(payload) < 2:
        logger.warning("unexpected hyperliquid payload shape")
        return out
    universe = (payload[0] or {}).get("universe") or []
    ctxs = payload[1] or []
    for idx, asset in enumerate(universe):
        name = str(asset.get("name") or "")
        if name not in out or idx >= len(ctxs):
            continue
        ctx = ctxs[idx] or {}
        symbol = f"{name}.HYPERLIQUID"
        oi_raw = _to_float(ctx.get("openInterest"))
        mark = _to_float(ctx.get("markPx"))
        funding_raw = _to_float(ctx.get("funding"))
        oi_point = None
        if oi_raw is not None and mark is not None:
            oi_point = MetricPoint(
                source=SourceTag.HYPERLIQUID, symbol=symbol, exchange="Hyperliquid", value=oi_raw * mark, ts_ms=now_ms
            )
        fr_point = None
        funding_pct = sane_funding(funding_raw * funding_scale if funding_raw is not None else None, bound, symbol)
        if funding_pct is not None:
            fr_point = MetricPoint(
                source=SourceTag.HYPERLIQUID, symbol=symbol, exchange="Hyperliquid", value=funding_pct, ts_ms=now_ms
            )
        logger.debug("%s hyperliquid funding=%s -> %s%%", name, funding_raw, funding_pct)
        out[name] = (oi_point, fr_point)
    return out


class HyperliquidAdapter:
    def __init__(self, client: HyperliquidClient, settings: Settings) -> None:
        self.client = client
        self.settings = settings

    async def fetch(self, now_ms: Optional[int] = None) -> Dict[str, Tuple[Optional[MetricPoint], Optional[MetricPoint]]]:
        payload = await self.client.meta_and_asset_ctxs()
        return parse_hyperliquid(
            payload,
            funding_scale=self.settings.hyperliquid_funding_scale,
            bound=self.settings.funding_sanity_bound,
            now_ms=now_ms,
        )


# CoinGecko

@dataclass
class VenuePoints:
    open_interest: List[MetricPoint] = field(default_factory=list)
    funding: List[MetricPoint] = field(default_factory=list)
    volume: List[MetricPoint] = field(default_factory=list)


def _ticker_coins(ticker: Dict[str, Any]) -> List[str]:
    """Coins a perpetual ticker belongs to; a cross pair like ETHBTC counts for both."""
    sym = str(ticker.get("symbol") or "").upper()
    if not sym or ticker.get("contract_type") != "perpetual":
        return []
    return [coin for coin, aliases in _COIN_ALIASES.items() if any(a in sym for a in aliases)]


def parse_coingecko(tickers: Any, bound: float = 0.005) -> Dict[str, VenuePoints]:
    out: Dict[str, VenuePoints] = {c: VenuePoints() for c in COINS}
    for t in tickers or []:
        coins = _ticker_coins(t)
        if not coins:
            continue
        sym = str(t.get("symbol"))
        market = display_exchange(SourceTag.COINGECKO, sym, t.get("market"))
        oi = _to_float(t.get("open_interest"))
        fr = sane_funding(_to_float(t.get("funding_rate")), bound, f"{market}:{sym}")
        vol = _to_float(t.get("volume_24h"))
        for coin in coins:
            bucket = out[coin]
            if oi:
                bucket.open_interest.append(MetricPoint(source=SourceTag.COINGECKO, symbol=sym, exchange=market, value=oi))
            if fr is not None:
                bucket.funding.append(MetricPoint(source=SourceTag.COINGECKO, symbol=sym, exchange=market, value=fr))
            if vol:
                bucket.volume.append(MetricPoint(source=SourceTag.COINGECKO, symbol=sym, exchange=market, value=vol))
    return out


class CoinGeckoAdapter:
    def __init__(self, client: CoinGeckoClient, settings: Settings) -> None:
        self.client = client
        self.settings = settings

    async def fetch(self) -> Dict[str, VenuePoints]:
        tickers = await self.client.derivatives()
        return parse_coingecko(tickers, bound=self.settings.funding_sanity_bound)
