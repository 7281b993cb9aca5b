from fastapi import APIRouter, Depends

from ..services.snapshot_store import SnapshotStore, get_store
from .common import coin_snapshot

router = APIRouter(prefix="/api", tags=["history"])


@router.get("/open-interest-history/{coin}")
async def get_open_interest_history(coin: str, store: SnapshotStore = Depends(get_store)):
    sym, data, snap = coin_snapshot(store, coin)
    history = [p.model_dump() for p in data.oi_history]
    return {"coin": sym, "history": history, "timestamp": snap.updated_at_ms}


@router.get("/funding-rate-history/{coin}")
async def get_funding_rate_history(coin: str, store: SnapshotStore = Depends(get_store)):
    sym, data, snap = coin_snapshot(store, coin)
    history = [p.model_dump() for p in data.funding_history]
    return {"coin": sym, "history": history, "timestamp": snap.updated_at_ms}


@router.get("/long-short-history/{coin}")
async def get_long_short_history(coin: str, store: SnapshotStore = Depends(get_store)):
    sym, data, snap = coin_snapshot(store, coin)
    history = [p.model_dump() for p in data.long_short_history]
    return {"coin": sym, "history": history, "timestamp": snap.updated_at_ms}
