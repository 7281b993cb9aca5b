from fastapi import APIRouter, Depends, HTTPException

from ..services.snapshot_store import SnapshotStore, get_store
from .common import coin_snapshot

router = APIRouter(prefix="/api", tags=["venues"])


@router.get("/coingecko/{coin}")
async def get_venues(coin: str, store: SnapshotStore = Depends(get_store)):
    sym, data, _ = coin_snapshot(store, coin)
    if data.venues is None:
        raise HTTPException(status_code=503, detail="No data")
    return {"coin": sym, **data.venues.model_dump(by_alias=True)}
