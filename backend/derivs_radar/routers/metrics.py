from fastapi import APIRouter, Depends

from ..services.snapshot_store import SnapshotStore, get_store
from .common import coin_snapshot

router = APIRouter(prefix="/api", tags=["metrics"])


@router.get("/open-interest/{coin}")
async def get_open_interest(coin: str, store: SnapshotStore = Depends(get_store)):
    sym, data, snap = coin_snapshot(store, coin)
    return {"coin": sym, **data.open_interest.model_dump(by_alias=True), "timestamp": snap.updated_at_ms}


@router.get("/funding-rate/{coin}")
async def get_funding_rate(coin: str, store: SnapshotStore = Depends(get_store)):
    sym, data, snap = coin_snapshot(store, coin)
    return {"coin": sym, **data.funding.model_dump(by_alias=True), "timestamp": snap.updated_at_ms}
