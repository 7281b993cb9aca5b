from fastapi import APIRouter, Depends

from ..services.snapshot_store import SnapshotStore, get_store
from .common import coin_snapshot

router = APIRouter(prefix="/api", tags=["trend"])


@router.get("/trend/{coin}")
async def get_trend(coin: str, store: SnapshotStore = Depends(get_store)):
    sym, data, snap = coin_snapshot(store, coin)
    return {"coin": sym, **data.trend.model_dump(), "timestamp": snap.updated_at_ms}
