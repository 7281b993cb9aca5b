from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List

from ..errors import SymbolResolutionFailure, UpstreamError
from ..models import InstrumentUniverse


logger = logging.getLogger("drr.symbols")

# Coinalyze exchange code -> display name
EXCHANGES: Dict[str, str] = {
    "A": "Binance",
    "6": "Bybit",
    "4": "Huobi",
    "3": "OKX",
}

FALLBACK_UNIVERSE = InstrumentUniverse(
    btc=["BTCUSDT_PERP.A", "BTCUSDT.6", "BTCUSDT.4", "BTCUSDT_PERP.3"],
    eth=["ETHUSDT_PERP.A", "ETHUSDT.6", "ETHUSDT.4", "ETHUSDT_PERP.3"],
    fallback=True,
)


def exchange_code(symbol: str) -> str:
    _, _, code = symbol.rpartition(".")
    return code


def exchange_name(code: str) -> str:
    return EXCHANGES.get(code, code)


def is_usdt_perp(symbol: str) -> bool:
    return "USDT_PERP" in symbol or "USDT." in symbol


def pick_one_per_exchange(markets: Iterable[Dict[str, Any]]) -> List[str]:
    """Keep one symbol per exchange code, preferring USDT-margined perps.

    The first USDT-margined symbol seen for an exchange wins; when an exchange
    has none, its first listed symbol is kept.
    """
    chosen: Dict[str, str] = {}
    for m in markets:
        sym = str(m.get("symbol") or "")
        if not sym:
            continue
        code = exchange_code(sym)
        current = chosen.get(code)
        if current is None or (is_usdt_perp(sym) and not is_usdt_perp(current)):
            chosen[code] = sym
    return list(chosen.values())


def _filter_markets(markets: Iterable[Dict[str, Any]], base: str) -> List[Dict[str, Any]]:
    out: List[Dict[str, Any]] = []
    for m in markets:
        sym = str(m.get("symbol") or "")
        if m.get("base_asset") != base or not m.get("is_perpetual"):
            continue
        if exchange_code(sym) not in EXCHANGES:
            continue
        out.append(m)
    return out


def universe_from_listing(markets: List[Dict[str, Any]]) -> InstrumentUniverse:
    if not isinstance(markets, list):
        raise SymbolResolutionFailure(f"unexpected listing payload: {type(markets).__name__}")
    btc = pick_one_per_exchange(_filter_markets(markets, "BTC"))
    eth = pick_one_per_exchange(_filter_markets(markets, "ETH"))
    if not btc and not eth:
        raise SymbolResolutionFailure("listing had no supported BTC/ETH perpetuals")
    # A coin missing from the listing keeps its fixed instruments
    if not btc:
        logger.warning("listing had no BTC perpetuals, using fallback list for BTC")
        btc = list(FALLBACK_UNIVERSE.btc)
    if not eth:
        logger.warning("listing had no ETH perpetuals, using fallback list for ETH")
        eth = list(FALLBACK_UNIVERSE.eth)
    return InstrumentUniverse(btc=btc, eth=eth)


async def resolve_instrument_universe(
    fetch_listing: Callable[[], Awaitable[List[Dict[str, Any]]]],
) -> InstrumentUniverse:
    """Discover BTC/ETH perpetuals once; fall back to a fixed list on failure."""
    try:
        markets = await fetch_listing()
        universe = universe_from_listing(markets)
    except (UpstreamError, SymbolResolutionFailure) as e:
        logger.warning("symbol resolution failed, using fallback list: %s", e)
        return FALLBACK_UNIVERSE
    logger.info("resolved BTC: %s", ", ".join(universe.btc))
    logger.info("resolved ETH: %s", ", ".join(universe.eth))
    return universe
