from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from ..services.snapshot_store import SnapshotStore, get_store

router = APIRouter(prefix="/api", tags=["debug"])


@router.get("/debug")
async def debug_state(store: SnapshotStore = Depends(get_store)):
    snap = store.snapshot
    last = store.last_update_ms
    return {
        "btcSymbols": store.universe.btc,
        "ethSymbols": store.universe.eth,
        "fallbackSymbols": store.universe.fallback,
        "lastUpdate": datetime.fromtimestamp(last / 1000, tz=timezone.utc).isoformat() if last else None,
        "isRefreshing": store.is_refreshing,
        "lastError": store.last_error,
        "sources": snap.sources_ok if snap else {},
        "sampleFR": snap.raw_samples.get("btc_funding", []) if snap else [],
        "coingeckoExchanges": snap.raw_samples.get("coingecko_exchanges", []) if snap else [],
    }
