import json
from typing import Any, Callable, Dict

import httpx
import pytest

from derivs_radar.collectors.adapters import CoinalyzeAdapter, CoinGeckoAdapter, HyperliquidAdapter
from derivs_radar.collectors.refresh import Sources
from derivs_radar.config import Settings
from derivs_radar.models import InstrumentUniverse
from derivs_radar.services.coinalyze_client import CoinalyzeClient
from derivs_radar.services.coingecko_client import CoinGeckoClient
from derivs_radar.services.hyperliquid_client import HyperliquidClient
from derivs_radar.services.snapshot_store import SnapshotStore


BTC_SYMBOLS = ["BTCUSDT_PERP.A", "BTCUSDT.6"]
ETH_SYMBOLS = ["ETHUSDT_PERP.A", "ETHUSDT.6"]

T0 = 1_700_000_000  # seconds


def _history(symbols, values, key="c"):
    return [
        {"symbol": s, "history": [{"t": T0 + i * 14400, key: v} for i, v in enumerate(values)]}
        for s in symbols
    ]


def coinalyze_handler(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    symbols = request.url.params.get("symbols", "").split(",")
    is_btc = symbols[0].startswith("BTC")
    if path.endswith("/open-interest"):
        values = {"BTCUSDT_PERP.A": 100.0, "BTCUSDT.6": 50.0, "ETHUSDT_PERP.A": 40.0, "ETHUSDT.6": 20.0}
        body = [{"symbol": s, "value": values[s], "update": 1_700_000_000_000} for s in symbols]
    elif path.endswith("/funding-rate"):
        values = {"BTCUSDT_PERP.A": 0.01, "BTCUSDT.6": 0.02, "ETHUSDT_PERP.A": -0.02, "ETHUSDT.6": 0.9}
        body = [{"symbol": s, "value": values[s], "update": 1_700_000_000_000} for s in symbols]
    elif path.endswith("/open-interest-history"):
        body = _history(symbols, [100, 100, 100, 110, 120, 130] if is_btc else [50] * 6)
    elif path.endswith("/funding-rate-history"):
        body = _history(symbols, [0.01, 0.02, 0.03])
    elif path.endswith("/long-short-ratio-history"):
        body = _history(symbols, [1.0, 1.2] if is_btc else [0.8], key="r")
    elif path.endswith("/future-markets"):
        body = [
            {"symbol": "BTCUSD_PERP.A", "base_asset": "BTC", "is_perpetual": True},
            {"symbol": "BTCUSDT_PERP.A", "base_asset": "BTC", "is_perpetual": True},
            {"symbol": "BTCUSDT.6", "base_asset": "BTC", "is_perpetual": True},
            {"symbol": "ETHUSDT_PERP.A", "base_asset": "ETH", "is_perpetual": True},
        ]
    else:
        return httpx.Response(404, json={"error": "not found"})
    return httpx.Response(200, json=body)


def hyperliquid_handler(request: httpx.Request) -> httpx.Response:
    assert json.loads(request.content) == {"type": "metaAndAssetCtxs"}
    return httpx.Response(
        200,
        json=[
            {"universe": [{"name": "BTC"}, {"name": "ETH"}, {"name": "SOL"}]},
            [
                {"openInterest": "10", "markPx": "30", "funding": "0.0000125"},
                {"openInterest": "5", "markPx": "2", "funding": "0.01"},
                {"openInterest": "1", "markPx": "1", "funding": "0.0"},
            ],
        ],
    )


def coingecko_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(
        200,
        json=[
            {"market": "Binance (Futures)", "symbol": "BTCUSDT", "contract_type": "perpetual",
             "open_interest": 1000.0, "funding_rate": 0.01, "volume_24h": 10.0},
            {"market": "Binance (Futures)", "symbol": "BTCUSD_PERP", "contract_type": "perpetual",
             "open_interest": 500.0, "funding_rate": 0.03, "volume_24h": 5.0},
            {"market": "BitMEX", "symbol": "XBTUSD", "contract_type": "perpetual",
             "open_interest": 800.0, "funding_rate": None, "volume_24h": 1.0},
            {"market": "OKX", "symbol": "ETH-USDT-SWAP", "contract_type": "perpetual",
             "open_interest": 300.0, "funding_rate": 0.005, "volume_24h": 2.0},
            {"market": "OKX", "symbol": "BTC-USD-240329", "contract_type": "futures",
             "open_interest": 999.0, "funding_rate": 0.0, "volume_24h": 2.0},
        ],
    )


def failing_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(500, json={"error": "boom"})


async def _no_sleep(_: float) -> None:
    return None


@pytest.fixture
def settings() -> Settings:
    s = Settings()
    s.coinalyze_api_key = "test-key"
    s.inter_call_delay_sec = 0.0
    s.retry_base_delay_sec = 0.0
    s.rate_limit_wait_sec = 0.0
    s.coingecko_rate_limit_wait_sec = 0.0
    s.startup_delay_sec = 0.0
    return s


@pytest.fixture
def universe() -> InstrumentUniverse:
    return InstrumentUniverse(btc=BTC_SYMBOLS, eth=ETH_SYMBOLS)


@pytest.fixture
def store(universe) -> SnapshotStore:
    st = SnapshotStore()
    st.universe = universe
    return st


@pytest.fixture
def make_sources(settings) -> Callable[..., Sources]:
    """Build Sources backed by MockTransport handlers (override per source)."""

    def _make(
        coinalyze: Callable[[httpx.Request], httpx.Response] = coinalyze_handler,
        hyperliquid: Callable[[httpx.Request], httpx.Response] = hyperliquid_handler,
        coingecko: Any = coingecko_handler,
    ) -> Sources:
        kw: Dict[str, Any] = {"sleep": _no_sleep}
        cg = None
        if coingecko is not None:
            cg = CoinGeckoAdapter(CoinGeckoClient(settings, transport=httpx.MockTransport(coingecko), **kw), settings)
        return Sources(
            coinalyze=CoinalyzeAdapter(
                CoinalyzeClient(settings, transport=httpx.MockTransport(coinalyze), **kw), settings
            ),
            hyperliquid=HyperliquidAdapter(
                HyperliquidClient(settings, transport=httpx.MockTransport(hyperliquid), **kw), settings
            ),
            coingecko=cg,
        )

    return _make


@pytest.fixture
def fail_handler() -> Callable[[httpx.Request], httpx.Response]:
    return failing_handler


@pytest.fixture
def coingecko_tickers():
    return coingecko_handler(httpx.Request("GET", "https://api.coingecko.com/api/v3/derivatives")).json()


@pytest.fixture
def coinalyze_failing_on() -> Callable[..., Callable[[httpx.Request], httpx.Response]]:
    """Coinalyze handler that answers 500 on the given path suffixes and serves the rest."""

    def _make(*suffixes: str) -> Callable[[httpx.Request], httpx.Response]:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith(suffixes):
                return failing_handler(request)
            return coinalyze_handler(request)

        return handler

    return _make


@pytest.fixture
def coinalyze_strict() -> Callable[[httpx.Request], httpx.Response]:
    """Coinalyze handler that rejects an empty ``symbols`` parameter like the real API."""

    def handler(request: httpx.Request) -> httpx.Response:
        if "/future-markets" not in request.url.path and not request.url.params.get("symbols"):
            return httpx.Response(400, json={"error": "symbols is required"})
        return coinalyze_handler(request)

    return handler
