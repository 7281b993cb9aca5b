import asyncio
import math

import pytest

from derivs_radar.collectors.refresh import build_snapshot, refresh_once, run_refresh_loop
from derivs_radar.models import CoinSnapshot, InstrumentUniverse, MarketSnapshot


@pytest.mark.asyncio
async def test_full_cycle_publishes_merged_snapshot(store, make_sources, settings):
    sources = make_sources()
    try:
        assert await refresh_once(store, sources, settings) is True
    finally:
        await sources.close()

    snap = store.snapshot
    assert snap is not None
    assert snap.sources_ok == {
        "coinalyze_current": True,
        "coinalyze_history": True,
        "hyperliquid": True,
        "coingecko": True,
    }

    btc = snap.btc
    assert btc.open_interest.total == 450.0
    assert [(r.exchange, r.value) for r in btc.open_interest.by_exchange] == [
        ("Hyperliquid", 300.0),
        ("Binance", 100.0),
        ("Bybit", 50.0),
    ]
    assert math.isclose(btc.funding.average, (0.01 + 0.02 + 0.01) / 3)
    assert [p.value for p in btc.oi_history] == [200, 200, 200, 220, 240, 260]
    assert all(b.t > a.t for a, b in zip(btc.oi_history, btc.oi_history[1:]))
    assert btc.oi_history[0].t == 1_700_000_000_000
    assert [round(p.value, 4) for p in btc.funding_history] == [0.01, 0.02, 0.03]
    assert btc.long_short_history[-1].ratio == 1.2
    assert btc.trend.trend == "bullish"
    assert btc.trend.confidence == "high"
    assert btc.venues.total_open_interest == 2300.0
    assert math.isclose(btc.venues.average_funding_rate, 0.02)

    eth = snap.eth
    # Bybit 0.9% and Hyperliquid 8%/8h are outside the sanity bound
    assert [r.exchange for r in eth.funding.by_exchange] == ["Binance"]
    assert eth.funding.average == -0.02
    assert eth.trend.trend == "bearish"
    assert eth.trend.confidence == "moderate"

    assert {"symbol": "BTC.HYPERLIQUID", "value": 0.01} in [
        {"symbol": s["symbol"], "value": round(s["value"], 6)} for s in snap.raw_samples["btc_funding"]
    ]
    assert store.is_refreshing is False


@pytest.mark.asyncio
async def test_one_source_down_still_publishes(store, make_sources, settings, fail_handler):
    sources = make_sources(coinalyze=fail_handler, coingecko=None)
    try:
        assert await refresh_once(store, sources, settings) is True
    finally:
        await sources.close()
    snap = store.snapshot
    assert snap.sources_ok == {"coinalyze_current": False, "coinalyze_history": False, "hyperliquid": True}
    assert [r.exchange for r in snap.btc.open_interest.by_exchange] == ["Hyperliquid"]
    assert snap.btc.oi_history == []
    assert snap.btc.venues is None


@pytest.mark.asyncio
async def test_all_sources_down_keeps_previous_snapshot(store, make_sources, settings, fail_handler):
    previous = MarketSnapshot(btc=CoinSnapshot(coin="BTC"), eth=CoinSnapshot(coin="ETH"), updated_at_ms=1)
    store.publish(previous)
    sources = make_sources(coinalyze=fail_handler, hyperliquid=fail_handler, coingecko=fail_handler)
    try:
        assert await refresh_once(store, sources, settings) is False
    finally:
        await sources.close()
    assert store.snapshot is previous
    assert store.last_error == "all sources failed"
    assert store.is_refreshing is False


@pytest.mark.asyncio
async def test_build_snapshot_returns_none_when_everything_fails(store, make_sources, settings, fail_handler):
    sources = make_sources(coinalyze=fail_handler, hyperliquid=fail_handler, coingecko=None)
    try:
        assert await build_snapshot(sources, store, settings) is None
    finally:
        await sources.close()


@pytest.mark.asyncio
async def test_second_refresh_while_running_is_noop(store, make_sources, settings):
    sources = make_sources()
    gate = asyncio.Event()
    entered = asyncio.Event()
    original = sources.hyperliquid.fetch

    async def slow_fetch(now_ms=None):
        entered.set()
        await gate.wait()
        return await original(now_ms)

    sources.hyperliquid.fetch = slow_fetch
    try:
        first = asyncio.create_task(refresh_once(store, sources, settings))
        await entered.wait()
        assert store.is_refreshing is True

        assert await refresh_once(store, sources, settings) is False
        assert store.is_refreshing is True
        assert store.snapshot is None

        gate.set()
        assert await first is True
    finally:
        await sources.close()
    assert store.snapshot is not None
    assert store.is_refreshing is False


@pytest.mark.asyncio
async def test_unexpected_error_keeps_previous_snapshot(store, make_sources, settings, monkeypatch):
    previous = MarketSnapshot(btc=CoinSnapshot(coin="BTC"), eth=CoinSnapshot(coin="ETH"), updated_at_ms=1)
    store.publish(previous)

    async def explode(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr("derivs_radar.collectors.refresh.build_snapshot", explode)
    sources = make_sources()
    try:
        assert await refresh_once(store, sources, settings) is False
    finally:
        await sources.close()
    assert store.snapshot is previous
    assert store.last_error == "boom"
    assert store.is_refreshing is False


@pytest.mark.asyncio
async def test_refresh_loop_runs_until_stopped(store, make_sources, settings):
    settings.refresh_interval_sec = 0.01
    sources = make_sources()
    stop = asyncio.Event()
    task = asyncio.create_task(run_refresh_loop(store, sources, stop, settings))
    try:
        for _ in range(200):
            if store.snapshot is not None:
                break
            await asyncio.sleep(0.01)
        stop.set()
        await asyncio.wait_for(task, timeout=5)
    finally:
        await sources.close()
    assert store.snapshot is not None
    assert store.is_refreshing is False


@pytest.mark.asyncio
async def test_failed_long_short_history_keeps_oi_and_funding_history(store, make_sources, settings, coinalyze_failing_on):
    sources = make_sources(coinalyze=coinalyze_failing_on("/long-short-ratio-history"))
    try:
        assert await refresh_once(store, sources, settings) is True
    finally:
        await sources.close()
    snap = store.snapshot
    assert snap.sources_ok["coinalyze_history"] is True
    assert [p.value for p in snap.btc.oi_history] == [200, 200, 200, 220, 240, 260]
    assert [round(p.value, 4) for p in snap.btc.funding_history] == [0.01, 0.02, 0.03]
    assert snap.btc.long_short_history == []
    assert snap.eth.long_short_history == []


@pytest.mark.asyncio
async def test_failed_current_funding_keeps_current_open_interest(store, make_sources, settings, coinalyze_failing_on):
    sources = make_sources(coinalyze=coinalyze_failing_on("/funding-rate"))
    try:
        assert await refresh_once(store, sources, settings) is True
    finally:
        await sources.close()
    snap = store.snapshot
    assert snap.sources_ok["coinalyze_current"] is True
    assert [r.exchange for r in snap.btc.open_interest.by_exchange] == ["Hyperliquid", "Binance", "Bybit"]
    assert [r.exchange for r in snap.btc.funding.by_exchange] == ["Hyperliquid"]


@pytest.mark.asyncio
async def test_coin_without_instruments_does_not_sink_the_other(store, make_sources, settings, coinalyze_strict):
    store.universe = InstrumentUniverse(btc=["BTCUSDT_PERP.A", "BTCUSDT.6"], eth=[])
    sources = make_sources(coinalyze=coinalyze_strict, coingecko=None)
    try:
        assert await refresh_once(store, sources, settings) is True
    finally:
        await sources.close()
    snap = store.snapshot
    assert snap.sources_ok["coinalyze_current"] is True
    assert snap.sources_ok["coinalyze_history"] is True
    assert [r.exchange for r in snap.btc.open_interest.by_exchange] == ["Hyperliquid", "Binance", "Bybit"]
    assert [p.value for p in snap.btc.oi_history] == [200, 200, 200, 220, 240, 260]
    assert [r.exchange for r in snap.eth.open_interest.by_exchange] == ["Hyperliquid"]
    assert snap.eth.oi_history == []
