from fastapi import APIRouter, Depends

from ..services.snapshot_store import SnapshotStore, get_store

router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live")
def live():
    return {"status": "live"}


@router.get("/ready")
def ready(store: SnapshotStore = Depends(get_store)):
    if store.snapshot is None:
        return {"status": "loading"}
    return {"status": "ready", "last_update": store.last_update_ms}
